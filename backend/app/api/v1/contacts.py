"""
FastAPI route: contact registration and removal.

    POST   /api/v1/contacts                  — register a recipient and send the
                                             welcome email / SMS
    DELETE /api/v1/contacts/{recipient_id}   — stop all alerts to a recipient
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status

from backend.app.alerts.alert_service import AlertOrchestrator
from backend.app.api.deps import get_contact_directory, get_orchestrator
from backend.app.api.schemas import (
    ContactOut,
    ContactRegistration,
    RegistrationResponse,
    UnregisterResponse,
)
from backend.app.contacts.directory import ContactDirectory

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/contacts", tags=["contacts"])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=RegistrationResponse)
async def register_contact(
    body: ContactRegistration,
    directory: ContactDirectory = Depends(get_contact_directory),
    orchestrator: AlertOrchestrator = Depends(get_orchestrator),
) -> RegistrationResponse:
    """
    Register a contact for flood alerts.

    Returns 409 when the email or phone is already registered. Welcome
    notification failures do not fail the registration; they are reported
    in ``notifications``.
    """
    recipient = await directory.register(body.name, body.phone, body.email)
    results = await orchestrator.notify_registration(recipient)

    return RegistrationResponse(
        contact=ContactOut(**recipient.to_dict()),
        notifications=[r.to_dict() for r in results],
    )


@router.delete("/{recipient_id}", response_model=UnregisterResponse)
async def unregister_contact(
    recipient_id: str,
    directory: ContactDirectory = Depends(get_contact_directory),
) -> UnregisterResponse:
    """Remove a contact from the directory; 404 when it does not exist."""
    await directory.unregister(recipient_id)
    return UnregisterResponse(recipient_id=recipient_id)
