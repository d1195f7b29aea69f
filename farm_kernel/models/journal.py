"""
Module: farm_kernel.models.journal
Responsibility: ORM persistence for journal entries and their ledger lines,
    the financial record produced by posting an event.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Debits == credits per entry (checked by LedgerWriter before flush; the
      is_balanced property is a read-side convenience).
    - Entries and lines are immutable once written (db/immutability.py).
      A correction is a new entry with reversal_of_id set.
    - At most one reversal per entry (UNIQUE on reversal_of_id).

Audit relevance:
    event_id is a back-reference to the event that produced the entry; a
    reversal entry carries the same event_id plus reversal_of_id.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from farm_kernel.db.base import Base, TrackedBase, UUIDString


class LineSide(str, Enum):
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"

    def flipped(self) -> "LineSide":
        return LineSide.CREDIT if self is LineSide.DEBIT else LineSide.DEBIT


class JournalEntry(TrackedBase):
    """
    Journal entry header.

    Contract:
        Written by LedgerWriter in the same transaction that advances the
        owning event to POSTED (or REVERSED, for reversal entries).

    Guarantees:
        - lines are ordered by line_seq.
        - Never updated or deleted after flush.
    """

    __tablename__ = "journal_entries"
    __table_args__ = (
        UniqueConstraint("reversal_of_id", name="uq_journal_reversal_of"),
        Index("idx_journal_tenant_event", "tenant_id", "event_id"),
        Index("idx_journal_tenant_date", "tenant_id", "entry_date"),
    )

    tenant_id: Mapped[str] = mapped_column(nullable=False)

    event_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("events.id"), nullable=False
    )

    event_type: Mapped[str] = mapped_column(String(50), nullable=False)

    entry_date: Mapped[date] = mapped_column(Date, nullable=False)

    memo: Mapped[str | None] = mapped_column(Text, nullable=True)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    posted_at: Mapped[datetime] = mapped_column(nullable=False)

    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=True
    )

    lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        order_by="JournalLine.line_seq",
        lazy="selectin",
    )

    @property
    def total_debits(self) -> Decimal:
        return sum(
            (line.amount for line in self.lines if line.side == LineSide.DEBIT),
            Decimal("0"),
        )

    @property
    def total_credits(self) -> Decimal:
        return sum(
            (line.amount for line in self.lines if line.side == LineSide.CREDIT),
            Decimal("0"),
        )

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits

    @property
    def is_reversal(self) -> bool:
        return self.reversal_of_id is not None

    def __repr__(self) -> str:
        return f"<JournalEntry {self.id} event={self.event_id} lines={len(self.lines)}>"


class JournalLine(Base):
    """
    One debit or credit of a journal entry.

    amount is never negative; side carries the direction.
    """

    __tablename__ = "journal_lines"
    __table_args__ = (
        UniqueConstraint("journal_entry_id", "line_seq", name="uq_journal_line_seq"),
        Index("idx_journal_line_account", "account_id"),
    )

    journal_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=False
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=False
    )

    # Denormalized for readable ledgers and reversal without a join
    account_code: Mapped[str] = mapped_column(String(20), nullable=False)

    side: Mapped[LineSide] = mapped_column(String(10), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    site_id: Mapped[str | None] = mapped_column(nullable=True)

    memo: Mapped[str | None] = mapped_column(Text, nullable=True)

    line_seq: Mapped[int] = mapped_column(Integer, nullable=False)

    entry: Mapped[JournalEntry] = relationship(back_populates="lines")
