"""
Pydantic schemas for the contact and alert APIs.

Separated from the route handlers so they are reusable across the
codebase (background jobs, tests).
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from backend.app.contacts.directory import normalize_email, normalize_phone

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class ContactRegistration(BaseModel):
    """
    A citizen signing up for alerts.

    Phone numbers are accepted in any punctuation ("(11) 98765-4321",
    "+55 11 98765 4321") and stored as the last 11 digits.
    """
    name: str = Field(..., examples=["Maria Silva"])
    phone: str = Field(..., examples=["11987654321"])
    email: str = Field(..., examples=["maria@example.com"])
    terms_accepted: bool = Field(..., description="Privacy terms acknowledgment")

    @field_validator("name")
    @classmethod
    def _name_length(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 3:
            raise ValueError("name must have at least 3 characters")
        return v

    @field_validator("phone")
    @classmethod
    def _phone_digits(cls, v: str) -> str:
        digits = normalize_phone(v)
        if len(digits) != 11:
            raise ValueError("phone must have 11 digits (e.g. 11999999999)")
        return digits

    @field_validator("email")
    @classmethod
    def _email_shape(cls, v: str) -> str:
        v = normalize_email(v)
        if not _EMAIL_RE.match(v):
            raise ValueError("invalid email address")
        return v

    @field_validator("terms_accepted")
    @classmethod
    def _terms(cls, v: bool) -> bool:
        if not v:
            raise ValueError("the privacy terms must be accepted")
        return v


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class ContactOut(BaseModel):
    recipient_id: str
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None


class RegistrationResponse(BaseModel):
    contact: ContactOut
    notifications: List[Dict[str, Any]] = Field(default_factory=list)


class CooldownOut(BaseModel):
    channel_class: str
    window_seconds: int
    description: str


class UnregisterResponse(BaseModel):
    recipient_id: str
    removed: bool = True
