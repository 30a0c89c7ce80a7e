"""
alert_service.py — Official-warning fan-out orchestration.

This is the central coordinator that, once per alert cycle:
    1. Polls the weather source for active official warnings
    2. Short-circuits when there are none
    3. Reads a snapshot of the contact directory
    4. Sends one SMS and one email per (recipient, warning)
    5. Collects a typed result per send into a CycleReport

═══════════════════════════════════════════════════════════════════════════
ORCHESTRATION FLOW
═══════════════════════════════════════════════════════════════════════════

    ┌─────────────────────┐
    │  Scheduler tick     │  hourly, plus once at startup
    └─────────┬───────────┘
              │  (skipped if a cycle is already in flight)
              ▼
    ┌─────────────────────┐
    │  1. Fetch warnings  │  no API key → skip quietly
    │                     │  fetch error → log, end cycle
    └─────────┬───────────┘
              │  zero warnings → end cycle
              ▼
    ┌─────────────────────┐
    │  2. Directory       │  snapshot of all recipients
    │     snapshot        │
    └─────────┬───────────┘
              ▼
    ┌─────────────────────┐
    │  3. Per recipient   │  SMS:   valid 11-digit phone AND "alerta"
    │                     │         cooldown authorizes → one SMS per warning
    │                     │  Email: address present → one email per warning
    └─────────┬───────────┘
              ▼
    ┌─────────────────────┐
    │  4. CycleReport     │  per-send results, summary log line
    └─────────────────────┘

═══════════════════════════════════════════════════════════════════════════
FAILURE POLICY
═══════════════════════════════════════════════════════════════════════════

    • Nothing escapes run_alert_cycle(): the schedule must survive any cycle.
    • Each send is isolated. A dispatcher that fails (or raises) is logged
      and recorded; the loop moves on to the next warning / recipient.
    • A cooldown store that errors (e.g. Redis down) fails that recipient's
      SMS for the cycle; their email still goes out.
    • No retry within a cycle. The "alerta" cooldown is stamped when
      authorization is granted, before delivery, so a failed SMS is not
      re-attempted until the window expires.
    • Email is not rate limited.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, Protocol

from backend.app.alerts.channels.email_alert import (
    EmailSender,
    build_warning_html,
    build_warning_subject,
    build_welcome_html,
)
from backend.app.alerts.channels.sms_gateway import (
    SmsGateway,
    format_warning_sms,
    format_welcome_sms,
    to_destination,
)
from backend.app.alerts.models import (
    AlertChannel,
    ChannelClass,
    CycleOutcome,
    CycleReport,
    DeliveryResult,
    DeliveryStatus,
    Recipient,
    WarningRecord,
)
from backend.app.alerts.rate_limiter import RateLimiter
from backend.app.core.logging_config import bind_log_context, reset_log_context
from backend.app.ingestion.weather_service import WeatherAPIKeyMissing

logger = logging.getLogger(__name__)


class WarningSource(Protocol):
    async def fetch_official_warnings(self) -> List[WarningRecord]: ...


class RecipientDirectory(Protocol):
    async def list_recipients(self) -> List[Recipient]: ...


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def _guarded_send(
    channel: AlertChannel,
    recipient: Recipient,
    destination: str,
    send: Callable[[], Awaitable[DeliveryResult]],
    warning: Optional[WarningRecord] = None,
) -> DeliveryResult:
    """Run one dispatcher call; a raised exception becomes a FAILED result."""
    try:
        result = await send()
    except Exception as exc:
        logger.exception(
            "%s dispatch raised for recipient %s", channel.value.upper(), recipient.recipient_id,
            extra={"recipient": recipient.recipient_id, "channel": channel.value},
        )
        result = DeliveryResult(
            channel=channel,
            status=DeliveryStatus.FAILED,
            destination=destination,
            error_message=str(exc) or type(exc).__name__,
        )

    result.recipient_id = recipient.recipient_id
    if warning is not None:
        result.warning_headline = warning.headline
    if not result.ok:
        logger.error(
            "❌ %s failed for recipient %s: %s",
            channel.value.upper(), recipient.recipient_id, result.error_message,
            extra={"recipient": recipient.recipient_id, "channel": channel.value},
        )
    return result


def _unsent_sms(
    recipient: Recipient,
    destination: str,
    status: DeliveryStatus,
    warning: Optional[WarningRecord] = None,
    error_message: Optional[str] = None,
) -> DeliveryResult:
    return DeliveryResult(
        channel=AlertChannel.SMS,
        status=status,
        recipient_id=recipient.recipient_id,
        destination=destination,
        warning_headline=warning.headline if warning is not None else None,
        error_message=error_message,
    )


class AlertOrchestrator:
    """
    Ties the weather source, directory, rate limiter and dispatchers together.

    Usage:
        orchestrator = AlertOrchestrator(
            warning_source=WeatherService(),
            directory=ContactDirectory(),
            rate_limiter=build_rate_limiter(),
            sms=SmsGateway(),
            email=EmailSender(),
        )
        report = await orchestrator.run_alert_cycle()
    """

    def __init__(
        self,
        warning_source: WarningSource,
        directory: RecipientDirectory,
        rate_limiter: RateLimiter,
        sms: SmsGateway,
        email: EmailSender,
        *,
        location_name: Optional[str] = None,
    ) -> None:
        self.warning_source = warning_source
        self.directory = directory
        self.rate_limiter = rate_limiter
        self.sms = sms
        self.email = email
        self.location_name = location_name
        self._cycle_lock = asyncio.Lock()
        self.last_report: Optional[CycleReport] = None

    @property
    def cycle_in_flight(self) -> bool:
        return self._cycle_lock.locked()

    # ───────────────────────────────────────────────────────────────────────
    # Alert cycle
    # ───────────────────────────────────────────────────────────────────────

    async def run_alert_cycle(self) -> CycleReport:
        """
        Run one alert cycle. Never raises.

        Returns
        -------
        CycleReport
            Outcome plus one DeliveryResult per (recipient, channel, warning).
            A tick that arrives while another cycle is running is not run and
            gets an OVERLAP_SKIPPED report.
        """
        if self._cycle_lock.locked():
            logger.warning("Alert cycle already in flight; skipping this tick")
            return CycleReport(outcome=CycleOutcome.OVERLAP_SKIPPED, completed_at=_now())

        async with self._cycle_lock:
            report = CycleReport()
            token = bind_log_context(cycle_id=report.cycle_id)
            try:
                await self._run_cycle(report)
            except Exception as exc:
                logger.exception("Alert cycle %s aborted", report.cycle_id)
                report.outcome = CycleOutcome.ABORTED
                report.error = str(exc) or type(exc).__name__
            finally:
                report.completed_at = _now()
                reset_log_context(token)

        self.last_report = report
        logger.info(
            "Alert cycle %s: %s, %d warning(s), %d recipient(s), %d send(s), %d failure(s)",
            report.cycle_id, report.outcome.value, len(report.warnings),
            report.recipient_count, report.attempts, len(report.failures),
            extra={
                "cycle_id": report.cycle_id,
                "warning_count": len(report.warnings),
                "recipient_count": report.recipient_count,
            },
        )
        return report

    async def _run_cycle(self, report: CycleReport) -> None:
        try:
            warnings = await self.warning_source.fetch_official_warnings()
        except WeatherAPIKeyMissing:
            logger.warning("⚠️ WEATHER_API_KEY missing; skipping alert check")
            report.outcome = CycleOutcome.NO_CREDENTIAL
            return
        except Exception as exc:
            logger.exception("Weather check failed")
            report.outcome = CycleOutcome.SOURCE_ERROR
            report.error = str(exc) or type(exc).__name__
            return

        report.warnings = list(warnings)
        if not report.warnings:
            report.outcome = CycleOutcome.NO_WARNINGS
            return

        try:
            recipients = await self.directory.list_recipients()
        except Exception as exc:
            logger.exception("Contact directory read failed")
            report.outcome = CycleOutcome.DIRECTORY_ERROR
            report.error = str(exc) or type(exc).__name__
            return

        report.recipient_count = len(recipients)
        self.rate_limiter.prune()

        for recipient in recipients:
            report.results.extend(await self._notify_sms(recipient, report.warnings))
            report.results.extend(await self._notify_email(recipient, report.warnings))

        report.outcome = CycleOutcome.COMPLETED

    async def _notify_sms(
        self, recipient: Recipient, warnings: List[WarningRecord]
    ) -> List[DeliveryResult]:
        if not recipient.has_valid_phone:
            return []

        destination = to_destination(recipient.phone)

        # One authorization covers the whole batch of this cycle's warnings
        try:
            authorized = await self._authorize(recipient, ChannelClass.ALERTA)
        except Exception as exc:
            error = f"cooldown check failed: {str(exc) or type(exc).__name__}"
            return [
                _unsent_sms(recipient, destination, DeliveryStatus.FAILED, w, error)
                for w in warnings
            ]
        if not authorized:
            return [
                _unsent_sms(recipient, destination, DeliveryStatus.RATE_LIMITED, w)
                for w in warnings
            ]

        results = []
        for warning in warnings:
            body = format_warning_sms(warning)
            results.append(await _guarded_send(
                AlertChannel.SMS, recipient, destination,
                lambda: self.sms.send(destination, body),
                warning,
            ))
        return results

    async def _notify_email(
        self, recipient: Recipient, warnings: List[WarningRecord]
    ) -> List[DeliveryResult]:
        if not recipient.email:
            return []

        subject = build_warning_subject(self.location_name)
        results = []
        for warning in warnings:
            html = build_warning_html(warning)
            results.append(await _guarded_send(
                AlertChannel.EMAIL, recipient, recipient.email,
                lambda: self.email.send(recipient.email, subject, html),
                warning,
            ))
        return results

    # ───────────────────────────────────────────────────────────────────────
    # Registration
    # ───────────────────────────────────────────────────────────────────────

    async def notify_registration(self, recipient: Recipient) -> List[DeliveryResult]:
        """
        Welcome a newly registered contact.

        Email is always attempted. The welcome SMS is gated by the "cadastro"
        cooldown so re-registering the same phone cannot be used to spam it.
        """
        results: List[DeliveryResult] = []

        if recipient.email:
            results.append(await _guarded_send(
                AlertChannel.EMAIL, recipient, recipient.email,
                lambda: self.email.send(
                    recipient.email,
                    "Cadastro confirmado — Alerta de Enchentes",
                    build_welcome_html(recipient.name),
                ),
            ))

        if recipient.has_valid_phone:
            destination = to_destination(recipient.phone)
            try:
                authorized = await self._authorize(recipient, ChannelClass.CADASTRO)
            except Exception as exc:
                results.append(_unsent_sms(
                    recipient, destination, DeliveryStatus.FAILED,
                    error_message=f"cooldown check failed: {str(exc) or type(exc).__name__}",
                ))
            else:
                if authorized:
                    results.append(await _guarded_send(
                        AlertChannel.SMS, recipient, destination,
                        lambda: self.sms.send(destination, format_welcome_sms(recipient.name)),
                    ))
                else:
                    results.append(_unsent_sms(recipient, destination, DeliveryStatus.RATE_LIMITED))

        return results

    async def _authorize(self, recipient: Recipient, channel_class: ChannelClass) -> bool:
        """Cooldown check; store errors are logged and re-raised to the caller."""
        try:
            return await self.rate_limiter.maybe_authorize(recipient.phone, channel_class)
        except Exception:
            logger.exception(
                "Cooldown check (%s) failed for recipient %s",
                channel_class.value, recipient.recipient_id,
                extra={"recipient": recipient.recipient_id, "channel_class": channel_class.value},
            )
            raise

    async def close(self) -> None:
        await self.sms.close()
        close_source = getattr(self.warning_source, "close", None)
        if close_source is not None:
            await close_source()
