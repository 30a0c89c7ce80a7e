"""ORM mapping for registered contacts."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.alerts.models import Recipient
from backend.app.core.database import Base


class Contact(Base):
    """One registered citizen. Column names follow the existing ``usuarios`` table."""

    __tablename__ = "usuarios"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column("nome", String(120), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column("celular", String(20), unique=True)
    email: Mapped[Optional[str]] = mapped_column(String(254), unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def to_recipient(self) -> Recipient:
        return Recipient(
            recipient_id=str(self.id),
            name=self.name,
            phone=self.phone,
            email=self.email or None,
        )
