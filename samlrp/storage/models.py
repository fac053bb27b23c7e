"""SQLAlchemy 2.x ORM models for samlrp persistent state."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class ConsumedIdentifier(Base):
    """A message or assertion identifier that has already been accepted.

    The primary key makes acceptance at-most-once per identifier: a second
    insert of the same identifier fails with an integrity error.
    Instants are stored as naive UTC.
    """

    __tablename__ = "consumed_identifiers"

    identifier: Mapped[str] = mapped_column(String(512), primary_key=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    consumed_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    def __repr__(self) -> str:
        return f"<ConsumedIdentifier(identifier='{self.identifier}', expires_at='{self.expires_at}')>"
