"""
Module: farm_kernel.models.lease
Responsibility: ORM persistence for per-event processing leases.
Architecture position: Kernel > Models.

Invariants enforced:
    - At most one lease row per event (UNIQUE on event_id).  A lease is
      taken over only by a conditional UPDATE that matches an expired
      ``expires_at``; it is released only by a DELETE matching its owner.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from farm_kernel.db.base import Base, UUIDString


class EventLease(Base):
    """Exclusive, expiring claim of one locker on one event."""

    __tablename__ = "event_leases"
    __table_args__ = (UniqueConstraint("event_id", name="uq_event_lease_event"),)

    event_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("events.id"), nullable=False
    )

    tenant_id: Mapped[str] = mapped_column(nullable=False)

    owner_token: Mapped[str] = mapped_column(String(200), nullable=False)

    acquired_at: Mapped[datetime] = mapped_column(nullable=False)

    expires_at: Mapped[datetime] = mapped_column(nullable=False)
