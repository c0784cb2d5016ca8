import asyncio
import smtplib

import pytest

from trendboard.notify import mailer
from trendboard.notify.mailer import EmailConfig, EmailNotifier
from trendboard.notify.queue import NotifyQueue
from tests.helpers.fakes import T0

EVT = {"symbol": "AAPL", "oldTrend": "Try Long", "newTrend": "Neutral", "price": 190.5,
       "extremeValue": 55.0, "kind": "trend_change", "ts": T0}

class _FakeSMTP:
    instances = []

    def __init__(self, host, port, timeout=None):
        self.host, self.port, self.timeout = host, port, timeout
        self.calls = []
        self.sent = []
        _FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.calls.append("quit")
        return False

    def starttls(self):
        self.calls.append("starttls")

    def login(self, user, pw):
        self.calls.append(("login", user))

    def send_message(self, msg):
        self.sent.append(msg)

class _RefusingSMTP(_FakeSMTP):
    def login(self, user, pw):
        raise smtplib.SMTPAuthenticationError(535, b"bad credentials")

def _cfg():
    return EmailConfig(sender="bot@example.com", recipients=["me@example.com", "you@example.com"],
                       smtp_user="bot@example.com", smtp_pass="secret")

def test_config_from_env_requires_everything(monkeypatch):
    for k in ("EMAIL_ENABLED", "EMAIL_FROM", "EMAIL_TO", "SMTP_USER", "SMTP_PASS"):
        monkeypatch.delenv(k, raising=False)
    with pytest.raises(RuntimeError):
        mailer.config_from_env()

    monkeypatch.setenv("EMAIL_ENABLED", "true")
    monkeypatch.setenv("EMAIL_FROM", "bot@example.com")
    monkeypatch.setenv("EMAIL_TO", "a@example.com, b@example.com")
    monkeypatch.setenv("SMTP_USER", "bot@example.com")
    monkeypatch.setenv("SMTP_PASS", "secret")
    cfg = mailer.config_from_env()
    assert cfg.recipients == ["a@example.com", "b@example.com"]
    assert cfg.smtp_port == 587

def test_build_message():
    msg = mailer.build_message(_cfg(), EVT)
    assert msg["Subject"] == "⭐ AAPL Trend Changed: Try Long → Neutral"
    assert msg["To"] == "me@example.com, you@example.com"
    assert msg.is_multipart()
    html = msg.get_body(preferencelist=("html",)).get_content()
    assert "Starred Alert: AAPL" in html

@pytest.mark.asyncio
async def test_notify_sends_over_starttls():
    _FakeSMTP.instances.clear()
    n = EmailNotifier(_cfg(), NotifyQueue(), smtp_factory=_FakeSMTP)
    assert await n.notify(EVT)
    smtp = _FakeSMTP.instances[-1]
    assert (smtp.host, smtp.port) == ("smtp.gmail.com", 587)
    assert smtp.calls == ["starttls", ("login", "bot@example.com"), "quit"]
    assert len(smtp.sent) == 1
    assert n.sent == 1

@pytest.mark.asyncio
async def test_smtp_failure_counts_and_returns_false():
    n = EmailNotifier(_cfg(), NotifyQueue(), smtp_factory=_RefusingSMTP)
    assert await n.notify(EVT) is False
    assert n.failed == 1

@pytest.mark.asyncio
async def test_unbuildable_event_does_not_stop_the_worker():
    _FakeSMTP.instances.clear()
    q = NotifyQueue()
    n = EmailNotifier(_cfg(), q, smtp_factory=_FakeSMTP)
    await n.start()
    q.try_put({**EVT, "symbol": "BAD\nSYM"})
    q.try_put(EVT)
    for _ in range(100):
        if n.sent:
            break
        await asyncio.sleep(0.01)
    await n.stop()

    assert n.failed == 1
    assert n.sent == 1
    assert [m["Subject"] for s in _FakeSMTP.instances for m in s.sent] == [
        "⭐ AAPL Trend Changed: Try Long → Neutral",
    ]
