from __future__ import annotations

import asyncio
import os
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Optional

import structlog

from trendboard.alerts.formatting import email_html, email_subject, format_notification_line

log = structlog.get_logger("email")

@dataclass(slots=True)
class EmailConfig:
    sender: str
    recipients: list[str]
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_pass: Optional[str] = None
    use_starttls: bool = True
    timeout_s: float = 15.0
    tz_name: str = "America/New_York"

def config_from_env() -> EmailConfig:
    """Raises when email is disabled or sender/recipient/credentials are missing."""
    enabled = os.getenv("EMAIL_ENABLED", "0").lower() in ("1", "true", "yes")
    sender = os.getenv("EMAIL_FROM")
    to = os.getenv("EMAIL_TO")
    user = os.getenv("SMTP_USER")
    pw = os.getenv("SMTP_PASS")
    if not enabled or not sender or not to or not user or not pw:
        raise RuntimeError("EMAIL_ENABLED / EMAIL_FROM / EMAIL_TO / SMTP_USER / SMTP_PASS not set")
    return EmailConfig(
        sender=sender,
        recipients=[a.strip() for a in to.split(",") if a.strip()],
        smtp_host=os.getenv("SMTP_HOST", "smtp.gmail.com"),
        smtp_port=int(os.getenv("SMTP_PORT", "587")),
        smtp_user=user,
        smtp_pass=pw,
        tz_name=os.getenv("NOTIFY_TZ", "America/New_York"),
    )

def build_message(cfg: EmailConfig, evt: dict) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = email_subject(evt)
    msg["From"] = cfg.sender
    msg["To"] = ", ".join(cfg.recipients)
    msg.set_content(format_notification_line(evt, cfg.tz_name))
    msg.add_alternative(email_html(evt, cfg.tz_name), subtype="html")
    return msg

class EmailNotifier:
    """
    Drains a NotifyQueue and mails each notification over SMTP.
    smtplib is blocking, so each send runs in a worker thread.
    """
    def __init__(self, cfg: EmailConfig, queue, smtp_factory=smtplib.SMTP):
        self.cfg = cfg
        self.q = queue
        self._smtp_factory = smtp_factory
        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()
        self.sent = 0
        self.failed = 0

    async def start(self):
        self._stop.clear()
        self._task = asyncio.create_task(self._loop(), name="email-notifier")

    async def stop(self):
        self._stop.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def _loop(self):
        try:
            while not self._stop.is_set():
                evt = await self.q.get()
                await self.notify(evt)
        except asyncio.CancelledError:
            return

    async def notify(self, evt: dict) -> bool:
        try:
            msg = build_message(self.cfg, evt)
        except Exception as e:
            self.failed += 1
            log.warning("email_format_failed", symbol=evt.get("symbol"), err=str(e))
            return False
        try:
            await asyncio.to_thread(self._send_blocking, msg)
        except Exception as e:
            self.failed += 1
            log.warning("email_send_failed", symbol=evt.get("symbol"), err=str(e))
            return False
        self.sent += 1
        log.info("email_sent", symbol=evt.get("symbol"), new=evt.get("newTrend"))
        return True

    def _send_blocking(self, msg: EmailMessage) -> None:
        with self._smtp_factory(self.cfg.smtp_host, self.cfg.smtp_port, timeout=self.cfg.timeout_s) as smtp:
            if self.cfg.use_starttls:
                smtp.starttls()
            if self.cfg.smtp_user:
                smtp.login(self.cfg.smtp_user, self.cfg.smtp_pass or "")
            smtp.send_message(msg)
