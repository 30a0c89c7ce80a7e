"""
directory.py — Contact Directory backed by the ``usuarios`` table.

Reads return an immutable snapshot (a list of Recipient) so an alert
cycle never sees rows change underneath it.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.alerts.models import Recipient
from backend.app.contacts.models import Contact
from backend.app.core.database import get_session_factory
from backend.app.core.errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D")


def normalize_email(email: Optional[str]) -> str:
    return str(email or "").strip().lower()


def normalize_phone(phone: Optional[str]) -> str:
    """Keep digits only, then the last 11 (drops a leading +55 or 0)."""
    return _NON_DIGITS.sub("", str(phone or ""))[-11:]


class ContactDirectory:
    """
    Parameters
    ----------
    session_factory : callable
        Returns an AsyncSession usable as an async context manager.
        Defaults to the application's shared session factory.
    """

    def __init__(self, session_factory: Optional[Callable[[], AsyncSession]] = None) -> None:
        self._session_factory = session_factory or get_session_factory()

    async def list_recipients(self) -> List[Recipient]:
        """Snapshot of every registered contact."""
        async with self._session_factory() as session:
            rows = (await session.scalars(select(Contact).order_by(Contact.id))).all()
        recipients = [row.to_recipient() for row in rows]
        logger.debug("Directory snapshot: %d recipients", len(recipients))
        return recipients

    async def register(self, name: str, phone: str, email: str) -> Recipient:
        """
        Insert a new contact.

        Raises
        ------
        ConflictError
            When the email or the phone is already registered.
        """
        async with self._session_factory() as session:
            existing = (await session.scalars(
                select(Contact).where(or_(Contact.email == email, Contact.phone == phone))
            )).first()
            if existing is not None:
                field = "email" if existing.email == email else "phone"
                raise ConflictError("Contact", field=field)

            contact = Contact(name=name.strip(), phone=phone, email=email)
            session.add(contact)
            try:
                await session.commit()
            except IntegrityError as e:
                # Lost a race with a concurrent registration
                await session.rollback()
                raise ConflictError("Contact", field="email or phone") from e
            await session.refresh(contact)

        logger.info("Contact registered: id=%s", contact.id)
        return contact.to_recipient()

    async def unregister(self, recipient_id: str) -> None:
        """
        Delete a contact so later cycles no longer notify it.

        Raises
        ------
        NotFoundError
            When no contact has this id.
        """
        try:
            pk = int(recipient_id)
        except (TypeError, ValueError):
            raise NotFoundError("Contact", recipient_id=recipient_id) from None

        async with self._session_factory() as session:
            contact = await session.get(Contact, pk)
            if contact is None:
                raise NotFoundError("Contact", recipient_id=recipient_id)
            await session.delete(contact)
            await session.commit()

        logger.info("Contact unregistered: id=%s", pk)
