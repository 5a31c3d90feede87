"""Outbound mail over an SMTP relay or a transactional-mail HTTP API."""

from __future__ import annotations

import asyncio
import logging
import smtplib
import uuid
from email.message import EmailMessage
from typing import Protocol, runtime_checkable

import httpx

from passlink.config import ConfigurationError, settings

logger = logging.getLogger(__name__)


class MailError(Exception):
    """Raised when a message could not be handed to the transport."""


@runtime_checkable
class Mailer(Protocol):
    """Interface for sending a plain-text message."""

    async def send(self, to: str, sender: str, subject: str, text: str) -> None: ...


def build_message(to: str, sender: str, subject: str, text: str) -> EmailMessage:
    msg = EmailMessage()
    msg["To"] = to
    msg["From"] = sender
    msg["Subject"] = subject
    msg.set_content(text)
    return msg


class SMTPMailer:
    """Relays through an SMTP server; smtplib runs in a worker thread."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 25,
        username: str = "",
        password: str = "",
        starttls: bool = False,
        timeout: float = 30.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.starttls = starttls
        self.timeout = timeout

    async def send(self, to: str, sender: str, subject: str, text: str) -> None:
        try:
            msg = build_message(to, sender, subject, text)
        except ValueError as e:
            raise MailError(f"Refusing to build message for {to!r}: {e}") from e
        try:
            await asyncio.to_thread(self._deliver, msg)
        except (smtplib.SMTPException, OSError) as e:
            raise MailError(f"SMTP delivery to {self.host}:{self.port} failed: {e}") from e

    def _deliver(self, msg: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.starttls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password)
            smtp.send_message(msg)


class HTTPMailer:
    """Posts {from, to, subject, text} JSON to a Resend-style mail API."""

    def __init__(self, api_url: str, api_key: str, timeout: float = 15.0) -> None:
        self.api_url = api_url
        self.api_key = api_key
        self.timeout = timeout

    async def send(self, to: str, sender: str, subject: str, text: str) -> None:
        payload = {
            "from": sender,
            "to": [to],
            "subject": subject,
            "text": text,
            # Stops mail clients threading successive sign-in links together
            "headers": {"X-Entity-Ref-ID": uuid.uuid4().hex},
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                resp = await client.post(self.api_url, json=payload, headers=headers)
                resp.raise_for_status()
            except httpx.HTTPStatusError as e:
                logger.error("Mail API error: %s %s", e.response.status_code, e.response.text[:200])
                raise MailError(f"Mail API error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise MailError(f"Mail API request failed: {e}") from e


def get_mailer() -> Mailer:
    """Factory: returns the Mailer named by settings.mail_transport."""
    if settings.mail_transport == "smtp":
        return SMTPMailer(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            starttls=settings.smtp_starttls,
            timeout=settings.smtp_timeout,
        )
    if settings.mail_transport == "http":
        if not settings.mail_api_key:
            raise ConfigurationError("mail_api_key is required for the http mail transport")
        return HTTPMailer(settings.mail_api_url, settings.mail_api_key)
    raise ConfigurationError(f"Unknown mail transport: {settings.mail_transport!r}")
