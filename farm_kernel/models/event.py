"""
Module: farm_kernel.models.event
Responsibility: ORM persistence for business events awaiting or having
    undergone posting, and for the idempotency records guarding their creation.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - (tenant_id, idempotency_key) is unique on both events and
      idempotency_records; the record is written in the same transaction as
      the event it protects and never updated.
    - Status only moves along VALID_TRANSITIONS; EventStore applies every
      change as a compare-and-swap UPDATE guarded by the expected status.
    - The payload is written once at creation and never modified.

Failure modes:
    - IntegrityError on a duplicate idempotency key (resolved by EventStore
      into an idempotent return of the existing event).
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from farm_kernel.db.base import Base, TrackedBase, UUIDString


class EventType(str, Enum):
    FEED_LIVESTOCK = "FEED_LIVESTOCK"
    SELL_LIVESTOCK = "SELL_LIVESTOCK"
    PURCHASE_LIVESTOCK = "PURCHASE_LIVESTOCK"
    INVENTORY_ADJUSTMENT = "INVENTORY_ADJUSTMENT"
    INVENTORY_TRANSFER = "INVENTORY_TRANSFER"
    RECEIVE_PURCHASE_ORDER = "RECEIVE_PURCHASE_ORDER"
    SALE = "SALE"
    TREATMENT = "TREATMENT"
    LABOR = "LABOR"
    MAINTENANCE = "MAINTENANCE"
    PAYMENT_SENT = "PAYMENT_SENT"
    BILL_VARIANCE_POSTED = "BILL_VARIANCE_POSTED"


class SourceType(str, Enum):
    API = "API"
    SYSTEM = "SYSTEM"
    IMPORT = "IMPORT"


class EventStatus(str, Enum):
    """
    Posting lifecycle of an event.

    PENDING --> PROCESSING --> POSTED --> REVERSED
                    |   ^
                    v   |
                   FAILED
    """

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    POSTED = "POSTED"
    FAILED = "FAILED"
    REVERSED = "REVERSED"


VALID_TRANSITIONS: dict[EventStatus, frozenset[EventStatus]] = {
    EventStatus.PENDING: frozenset({EventStatus.PROCESSING}),
    EventStatus.PROCESSING: frozenset({EventStatus.POSTED, EventStatus.FAILED}),
    EventStatus.FAILED: frozenset({EventStatus.PROCESSING}),
    EventStatus.POSTED: frozenset({EventStatus.REVERSED}),
    EventStatus.REVERSED: frozenset(),
}


def is_valid_transition(from_status: EventStatus | str, to_status: EventStatus | str) -> bool:
    return EventStatus(to_status) in VALID_TRANSITIONS[EventStatus(from_status)]


class Event(TrackedBase):
    """
    A recorded business occurrence (feeding, sale, purchase, adjustment...).

    Contract:
        Created PENDING by EventStore.create_event.  Enters PROCESSING only
        while the posting engine holds the event's lease.  POSTED events
        reference the JournalEntry they produced; FAILED events keep the
        error that stopped them for operator inspection and retry.

    Non-goals:
        Events are never deleted.  A posted event is undone by reversal.
    """

    __tablename__ = "events"
    __table_args__ = (
        UniqueConstraint("tenant_id", "idempotency_key", name="uq_event_tenant_idempotency"),
        Index("idx_event_tenant_status", "tenant_id", "status"),
        Index("idx_event_tenant_type", "tenant_id", "event_type"),
        Index("idx_event_retry", "status", "next_retry_at"),
    )

    tenant_id: Mapped[str] = mapped_column(nullable=False)

    site_id: Mapped[str] = mapped_column(nullable=False)

    event_type: Mapped[EventType] = mapped_column(String(50), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    source_type: Mapped[SourceType] = mapped_column(
        String(20), default=SourceType.API.value, nullable=False
    )

    payload: Mapped[dict] = mapped_column(JSON, nullable=False)

    idempotency_key: Mapped[str] = mapped_column(String(300), nullable=False)

    status: Mapped[EventStatus] = mapped_column(
        String(20), default=EventStatus.PENDING.value, nullable=False
    )

    # Failure bookkeeping
    processing_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    failure_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    attempt_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_attempt_at: Mapped[datetime | None] = mapped_column(nullable=True)
    next_retry_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Posting outcome
    posted_journal_entry_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    posted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Reversal outcome
    reversal_journal_entry_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    reversal_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    reversed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    reversed_by: Mapped[str | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<Event {self.id} {self.event_type} {self.status}>"


class IdempotencyRecord(Base):
    """(tenant_id, idempotency_key) -> event_id.  Written once, never updated."""

    __tablename__ = "idempotency_records"
    __table_args__ = (
        UniqueConstraint("tenant_id", "idempotency_key", name="uq_idempotency_tenant_key"),
    )

    tenant_id: Mapped[str] = mapped_column(nullable=False)

    idempotency_key: Mapped[str] = mapped_column(String(300), nullable=False)

    event_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("events.id"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(nullable=False)
