"""
email_alert.py — Email alert delivery channel.

Delivery mechanism:
    • SMTP submission through aiosmtplib (implicit TLS on 465, STARTTLS
      on any other port)
    • multipart/alternative: plain-text part + HTML card
    • One message per call, no retry

═══════════════════════════════════════════════════════════════════════════
EMAIL TEMPLATE STRUCTURE
═══════════════════════════════════════════════════════════════════════════

    Subject: ⚠️ Alerta de Enchentes — {location}
    Body:
        ┌─────────────────────────────────────────┐
        │  ⚠️ ALERTA OFICIAL                        │
        │  {headline}                               │
        │  {description}                            │
        │  ─────────────                            │
        │  — Sistema Alerta de Enchentes            │
        └─────────────────────────────────────────┘
"""

from __future__ import annotations

import html as html_lib
import logging
import re
from email.message import EmailMessage
from typing import Optional

import aiosmtplib

from backend.app.alerts.models import (
    AlertChannel,
    DeliveryResult,
    DeliveryStatus,
    WarningRecord,
)
from backend.app.core.config import settings

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]+>")
_BLANK_RE = re.compile(r"[ \t]+")


def html_to_text(html: str) -> str:
    """Crude plain-text rendering: drop tags, squeeze spaces, unescape entities."""
    text = _TAG_RE.sub(" ", html)
    lines = (_BLANK_RE.sub(" ", line).strip() for line in text.splitlines())
    return html_lib.unescape("\n".join(line for line in lines if line))


def build_warning_subject(location: Optional[str] = None) -> str:
    return f"⚠️ Alerta de Enchentes — {location or settings.ALERT_LOCATION_NAME}"


def build_warning_html(warning: WarningRecord) -> str:
    headline = html_lib.escape(warning.headline)
    description = html_lib.escape(warning.description)
    return f"""
    <div style="font-family:Arial,sans-serif">
      <h2>⚠️ ALERTA OFICIAL</h2>
      <p><strong>{headline}</strong></p>
      <p>{description}</p>
      <hr style="border:none;border-top:1px solid #eee;margin:16px 0" />
      <p style="color:#666">— Sistema Alerta de Enchentes</p>
    </div>
    """


def build_welcome_html(name: str) -> str:
    return f"""
    <div style="font-family:Arial,sans-serif">
      <p>Olá, {html_lib.escape(name)}!</p>
      <p>Seu cadastro no <strong>Alerta de Enchentes</strong> foi confirmado com sucesso.</p>
      <p>Você passará a receber os alertas oficiais de enchente por e-mail e SMS.</p>
      <p style="color:#666">— Alerta de Enchentes (Projeto)</p>
    </div>
    """


class EmailSender:
    """
    Submit one email per call through the configured provider.

    Parameters
    ----------
    provider : str
        "smtp" or "simulation".
    """

    def __init__(
        self,
        provider: Optional[str] = None,
        *,
        host: Optional[str] = None,
        port: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        from_address: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        self.provider = provider or settings.EMAIL_PROVIDER
        self.host = host or settings.SMTP_HOST
        self.port = port or settings.SMTP_PORT
        self.username = username if username is not None else settings.SMTP_USER
        self.password = password if password is not None else settings.SMTP_PASSWORD
        self.from_address = from_address or settings.email_sender
        self.timeout_seconds = timeout_seconds or settings.SMTP_TIMEOUT

    def build_message(
        self, to: str, subject: str, html: str, text: Optional[str] = None
    ) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.from_address
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text or html_to_text(html))
        message.add_alternative(html, subtype="html")
        return message

    async def send(
        self, to: str, subject: str, html: str, text: Optional[str] = None
    ) -> DeliveryResult:
        """
        Send one email.

        Returns
        -------
        DeliveryResult
            DELIVERED when the relay accepted the message, FAILED with the
            transport error otherwise. Never raises for transport errors.
        """
        result = DeliveryResult(
            channel=AlertChannel.EMAIL,
            status=DeliveryStatus.FAILED,
            destination=to,
        )

        if self.provider == "simulation":
            logger.info("[EMAIL] → %s: Subject='%s'", to, subject, extra={"channel": "email"})
            result.status = DeliveryStatus.DELIVERED
            result.provider_response = {"mode": "simulated", "html_size": len(html)}
            return result

        if self.provider != "smtp":
            result.error_message = f"Unknown email provider: {self.provider}"
            logger.error("[EMAIL] %s", result.error_message)
            return result

        message = self.build_message(to, subject, html, text)
        implicit_tls = self.port == 465

        try:
            errors, response = await aiosmtplib.send(
                message,
                hostname=self.host,
                port=self.port,
                username=self.username or None,
                password=self.password or None,
                use_tls=implicit_tls,
                start_tls=not implicit_tls,
                timeout=self.timeout_seconds,
            )
        except (aiosmtplib.SMTPException, OSError) as exc:
            result.error_message = str(exc) or type(exc).__name__
            logger.error("[EMAIL] Failed for %s: %s", to, result.error_message)
            return result

        if errors:
            result.error_message = "; ".join(
                f"{rcpt}: {err.message}" for rcpt, err in errors.items()
            )
            logger.error("[EMAIL] Recipient refused %s: %s", to, result.error_message)
            return result

        logger.info("📧 E-mail sent to %s", to, extra={"channel": "email"})
        result.status = DeliveryStatus.DELIVERED
        result.provider_response = {"response": response}
        return result
