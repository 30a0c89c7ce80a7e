"""
sms_gateway.py — SMS delivery channel via the ClickSend REST gateway.

Delivery mechanism:
    • POST {CLICKSEND_API_URL}/sms/send, HTTP basic auth (user + API key)
    • One message per call, no retry: a failed send is logged and the
      (recipient, warning) pair is abandoned until the next cycle
    • The per-message status string is logged, not validated

═══════════════════════════════════════════════════════════════════════════
REQUEST SHAPE
═══════════════════════════════════════════════════════════════════════════

    {"messages": [{"source": "python", "body": "...",
                   "to": "+5511987654321", "from": "Alertas"}]}

Providers: "clicksend" (live) and "simulation" (log only, the default
for development).
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from backend.app.alerts.models import (
    AlertChannel,
    DeliveryResult,
    DeliveryStatus,
    WarningRecord,
)
from backend.app.core.config import settings

logger = logging.getLogger(__name__)

SMS_SIGN_OFF = "— Alerta de Enchentes (Projeto)."
SMS_UNSUBSCRIBE_HINT = "Para cancelar SMS, responda STOP."


def format_warning_sms(warning: WarningRecord) -> str:
    """Warning SMS: banner, headline, description, sign-off and opt-out hint."""
    return (
        f"⚠️ ALERTA OFICIAL\n"
        f"{warning.headline}\n\n"
        f"{warning.description}\n\n"
        f"{SMS_SIGN_OFF}\n"
        f"{SMS_UNSUBSCRIBE_HINT}"
    )


def format_welcome_sms(name: str) -> str:
    return (
        f"Olá, {name}! Seu cadastro no Alerta de Enchentes foi confirmado. "
        f"Você receberá alertas oficiais por SMS. {SMS_UNSUBSCRIBE_HINT}"
    )


def to_destination(phone: str, country_code: Optional[str] = None) -> str:
    """11-digit national number → E.164-ish destination (``+55`` prefix)."""
    return f"{country_code or settings.SMS_COUNTRY_CODE}{str(phone).strip()}"


class SmsGateway:
    """
    Send one SMS per call through the configured provider.

    Parameters
    ----------
    provider : str
        "clicksend" or "simulation".
    client : httpx.AsyncClient | None
        Injected client (tests); created lazily otherwise.
    """

    def __init__(
        self,
        provider: Optional[str] = None,
        *,
        api_url: Optional[str] = None,
        username: Optional[str] = None,
        api_key: Optional[str] = None,
        sender_id: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.provider = provider or settings.SMS_PROVIDER
        self.api_url = (api_url or settings.CLICKSEND_API_URL).rstrip("/")
        self.username = username if username is not None else settings.CLICKSEND_USER
        self.api_key = api_key if api_key is not None else settings.CLICKSEND_KEY
        self.sender_id = sender_id or settings.SMS_SENDER_ID
        self.timeout_seconds = timeout_seconds or settings.SMS_TIMEOUT
        self._http_client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self._http_client

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def send(self, destination: str, body: str) -> DeliveryResult:
        """
        Send ``body`` to ``destination``.

        Returns
        -------
        DeliveryResult
            DELIVERED when the provider accepted the message, FAILED with
            the provider error otherwise. Never raises for provider errors.
        """
        result = DeliveryResult(
            channel=AlertChannel.SMS,
            status=DeliveryStatus.FAILED,
            destination=destination,
        )

        if self.provider == "simulation":
            logger.info(
                "[SMS] → %s: %d chars → '%s'",
                destination, len(body),
                body[:60].replace("\n", " ") + ("..." if len(body) > 60 else ""),
                extra={"channel": "sms"},
            )
            result.status = DeliveryStatus.DELIVERED
            result.provider_response = {"mode": "simulated", "length": len(body)}
            return result

        if self.provider != "clicksend":
            result.error_message = f"Unknown SMS provider: {self.provider}"
            logger.error("[SMS] %s", result.error_message)
            return result

        if not self.username or not self.api_key:
            result.error_message = "ClickSend credentials not configured"
            logger.error("[SMS] %s", result.error_message)
            return result

        payload = {
            "messages": [{
                "source": settings.SMS_SOURCE,
                "body": body,
                "to": destination,
                "from": self.sender_id,
            }]
        }

        try:
            response = await self._get_client().post(
                f"{self.api_url}/sms/send",
                json=payload,
                auth=(self.username, self.api_key),
            )
            response.raise_for_status()
            data: Dict[str, Any] = response.json()
        except httpx.HTTPStatusError as exc:
            result.error_message = f"HTTP {exc.response.status_code}: {exc.response.text[:200]}"
            logger.error("[SMS] Failed for %s: %s", destination, result.error_message)
            return result
        except (httpx.HTTPError, ValueError) as exc:
            result.error_message = str(exc) or type(exc).__name__
            logger.error("[SMS] Failed for %s: %s", destination, result.error_message)
            return result

        messages = (data.get("data") or {}).get("messages") or [{}]
        status = messages[0].get("status")
        logger.info("[SMS] Sent to %s: %s", destination, status, extra={"channel": "sms"})
        result.status = DeliveryStatus.DELIVERED
        result.provider_response = {"status": status}
        return result
