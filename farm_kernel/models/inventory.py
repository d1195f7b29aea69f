"""
Module: farm_kernel.models.inventory
Responsibility: ORM persistence for per-site, per-item inventory balances and
    the movement audit trail written alongside every change.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One balance row per (tenant_id, site_id, item_id).
    - Every change to a balance increments ``version`` in the same UPDATE,
      guarded by the version the writer read (compare-and-swap).  A writer
      that lost the race updates zero rows and must fail, not overwrite.
    - quantity_on_hand MAY be negative: consumption logged before a
      physical count is recorded, not rejected.
    - Movements are append-only and numbered from a monotonic sequence, so
      listing them by ``sequence`` replays the order they were applied in.

Audit relevance:
    Balances are mutated only by the posting engine (and reversal, when the
    tenant opts into inventory reversal).  The movement rows explain every
    change and link it to the event that caused it.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from farm_kernel.db.base import Base, UUIDString


class MovementType(str, Enum):
    RECEIPT = "RECEIPT"
    CONSUMPTION = "CONSUMPTION"
    TRANSFER_IN = "TRANSFER_IN"
    TRANSFER_OUT = "TRANSFER_OUT"
    ADJUSTMENT_IN = "ADJUSTMENT_IN"
    ADJUSTMENT_OUT = "ADJUSTMENT_OUT"
    REVERSAL_IN = "REVERSAL_IN"
    REVERSAL_OUT = "REVERSAL_OUT"

    @property
    def is_inbound(self) -> bool:
        return self in _INBOUND


_INBOUND = frozenset(
    {
        MovementType.RECEIPT,
        MovementType.TRANSFER_IN,
        MovementType.ADJUSTMENT_IN,
        MovementType.REVERSAL_IN,
    }
)


class InventoryBalance(Base):
    """Quantity on hand and weighted-average unit cost of one item at one site."""

    __tablename__ = "inventory_balances"
    __table_args__ = (
        UniqueConstraint("tenant_id", "site_id", "item_id", name="uq_inventory_balance_key"),
    )

    tenant_id: Mapped[str] = mapped_column(nullable=False)

    site_id: Mapped[str] = mapped_column(nullable=False)

    item_id: Mapped[str] = mapped_column(nullable=False)

    quantity_on_hand: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    avg_cost_per_unit: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    reorder_point: Mapped[Decimal | None] = mapped_column(nullable=True)

    reorder_quantity: Mapped[Decimal | None] = mapped_column(nullable=True)

    last_movement_type: Mapped[str | None] = mapped_column(String(20), nullable=True)

    last_movement_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @property
    def is_below_reorder_point(self) -> bool:
        return self.reorder_point is not None and self.quantity_on_hand <= self.reorder_point


class InventoryMovement(Base):
    """Append-only record of one quantity change on a balance."""

    __tablename__ = "inventory_movements"
    __table_args__ = (
        Index("idx_inventory_movement_event", "event_id"),
        Index("idx_inventory_movement_key", "tenant_id", "site_id", "item_id"),
        UniqueConstraint("sequence", name="uq_inventory_movement_sequence"),
    )

    tenant_id: Mapped[str] = mapped_column(nullable=False)

    site_id: Mapped[str] = mapped_column(nullable=False)

    item_id: Mapped[str] = mapped_column(nullable=False)

    movement_type: Mapped[MovementType] = mapped_column(String(20), nullable=False)

    # Signed: positive for inbound movements, negative for outbound
    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    unit_cost: Mapped[Decimal] = mapped_column(nullable=False)

    total_cost: Mapped[Decimal] = mapped_column(nullable=False)

    quantity_after: Mapped[Decimal] = mapped_column(nullable=False)

    avg_cost_after: Mapped[Decimal] = mapped_column(nullable=False)

    event_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("events.id"), nullable=False
    )

    related_site_id: Mapped[str | None] = mapped_column(nullable=True)

    reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

    recorded_at: Mapped[datetime] = mapped_column(nullable=False)

    # Order of the movement within the posting that wrote it
    line_seq: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Application order across all postings, from the inventory_movement sequence
    sequence: Mapped[int] = mapped_column(nullable=False)
