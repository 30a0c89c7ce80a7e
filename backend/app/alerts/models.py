"""
models.py — Shared data structures for the flood alert fan-out.

Defines:
    • ChannelClass    — rate-limit category (alerta / cadastro)
    • AlertChannel    — delivery channel enum
    • DeliveryStatus  — per-send outcome
    • CycleOutcome    — how an alert cycle ended
    • Recipient       — a registered contact (directory snapshot row)
    • WarningRecord   — one official warning from the weather source
    • DeliveryResult  — outcome of one (recipient, channel, warning) send
    • CycleReport     — batch report for one alert cycle

═══════════════════════════════════════════════════════════════════════════
COOLDOWN WINDOWS
═══════════════════════════════════════════════════════════════════════════

    Channel class    Window    Used for
    ─────────────    ──────    ─────────────────────────────────────────
    alerta           5 h       official warning SMS
    cadastro         1 h       registration welcome SMS

The window is keyed by (channel class, phone number). Email is never
throttled.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class ChannelClass(str, Enum):
    """Rate-limit category; each class has its own fixed cooldown window."""
    ALERTA   = "alerta"
    CADASTRO = "cadastro"


class AlertChannel(str, Enum):
    """Available notification channels."""
    SMS   = "sms"
    EMAIL = "email"


class DeliveryStatus(str, Enum):
    DELIVERED    = "delivered"      # accepted by the provider
    FAILED       = "failed"         # provider rejected or unreachable
    RATE_LIMITED = "rate_limited"   # cooldown window still open
    SKIPPED      = "skipped"        # nothing to send to


class CycleOutcome(str, Enum):
    COMPLETED       = "completed"
    NO_WARNINGS     = "no_warnings"
    NO_CREDENTIAL   = "no_credential"
    SOURCE_ERROR    = "source_error"
    DIRECTORY_ERROR = "directory_error"
    OVERLAP_SKIPPED = "overlap_skipped"
    ABORTED         = "aborted"         # unexpected error past the per-send guards


# ═══════════════════════════════════════════════════════════════════════════
# Data Structures
# ═══════════════════════════════════════════════════════════════════════════

_PHONE_RE = re.compile(r"[0-9]{11}")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def is_valid_phone(phone: Optional[str]) -> bool:
    """True only for exactly 11 digits (DDD + number, no country code)."""
    return bool(phone) and _PHONE_RE.fullmatch(str(phone)) is not None


@dataclass(frozen=True)
class Recipient:
    """
    A registered contact, as read from the directory for one cycle.

    Attributes
    ----------
    recipient_id : str
        Directory primary key.
    name : str
        Display name.
    phone : str | None
        11-digit national number; anything else disables SMS.
    email : str | None
        Email address; None disables email.
    """
    recipient_id: str
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None

    @property
    def has_valid_phone(self) -> bool:
        return is_valid_phone(self.phone)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recipient_id": self.recipient_id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
        }


@dataclass(frozen=True)
class WarningRecord:
    """One official warning; produced fresh on each poll."""
    headline: str
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {"headline": self.headline, "description": self.description}


@dataclass
class DeliveryResult:
    """Record of a single send (or non-send) to one recipient via one channel."""
    channel: AlertChannel
    status: DeliveryStatus
    recipient_id: str = ""
    destination: str = ""
    warning_headline: Optional[str] = None
    error_message: Optional[str] = None
    provider_response: Optional[Dict[str, Any]] = None
    attempted_at: datetime = field(default_factory=_now)

    @property
    def ok(self) -> bool:
        return self.status == DeliveryStatus.DELIVERED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "channel": self.channel.value,
            "status": self.status.value,
            "recipient_id": self.recipient_id,
            "destination": self.destination,
            "warning_headline": self.warning_headline,
            "error_message": self.error_message,
            "attempted_at": self.attempted_at.isoformat(),
        }


@dataclass
class CycleReport:
    """Batch report for one alert cycle."""
    cycle_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    outcome: CycleOutcome = CycleOutcome.COMPLETED
    started_at: datetime = field(default_factory=_now)
    completed_at: Optional[datetime] = None
    warnings: List[WarningRecord] = field(default_factory=list)
    recipient_count: int = 0
    results: List[DeliveryResult] = field(default_factory=list)
    error: Optional[str] = None

    def count(
        self,
        channel: Optional[AlertChannel] = None,
        status: Optional[DeliveryStatus] = None,
    ) -> int:
        return sum(
            1 for r in self.results
            if (channel is None or r.channel == channel)
            and (status is None or r.status == status)
        )

    @property
    def attempts(self) -> int:
        """Sends actually handed to a dispatcher (delivered or failed)."""
        return self.count(status=DeliveryStatus.DELIVERED) + self.count(
            status=DeliveryStatus.FAILED
        )

    @property
    def failures(self) -> List[DeliveryResult]:
        return [r for r in self.results if r.status == DeliveryStatus.FAILED]

    def to_dict(self) -> Dict[str, Any]:
        by_channel = {
            ch.value: {
                st.value: self.count(ch, st) for st in DeliveryStatus
            }
            for ch in AlertChannel
        }
        return {
            "cycle_id": self.cycle_id,
            "outcome": self.outcome.value,
            "started_at": self.started_at.isoformat(),
            "completed_at": (
                self.completed_at.isoformat() if self.completed_at else None
            ),
            "warning_count": len(self.warnings),
            "warnings": [w.to_dict() for w in self.warnings],
            "recipient_count": self.recipient_count,
            "attempts": self.attempts,
            "by_channel": by_channel,
            "error": self.error,
            "results": [r.to_dict() for r in self.results],
        }
