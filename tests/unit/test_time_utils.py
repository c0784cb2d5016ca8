from trendboard.utils.time import epoch_ms, fmt_local, local_date_key

def test_epoch_ms():
    assert epoch_ms(1.5) == 1500
    assert epoch_ms(1_700_000_000) == 1_700_000_000_000

def test_local_date_key_uses_trading_timezone():
    # 2024-03-01 03:00 UTC is still Feb 29 in New York
    ts = 1709262000
    assert local_date_key(ts, "UTC") == "2024-03-01"
    assert local_date_key(ts, "America/New_York") == "2024-02-29"

def test_fmt_local():
    assert fmt_local(1709262000, "America/New_York") == "10:00:00 PM EST"
    # single-digit hours have no leading zero
    assert fmt_local(1709262000, "UTC") == "3:00:00 AM UTC"
    assert fmt_local(1709262000 + 10 * 3600, "UTC") == "1:00:00 PM UTC"
