"""
Posting plan DTOs.

A posting rule turns an event into a PostingPlan: the proposed ledger lines,
the inventory deltas computed in its workbook, and any livestock cost-basis
adjustments.  The engine applies the whole plan in one transaction.

Pure, immutable, no ORM.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from farm_kernel.domain.chart import AccountRef, ChartOfAccounts
from farm_kernel.domain.inventory_costing import InventoryDelta, InventoryWorkbook
from farm_kernel.domain.payloads import EventPayload
from farm_kernel.domain.values import ZERO
from farm_kernel.models.journal import LineSide
from farm_kernel.models.tenant_settings import CostingMode


@dataclass(frozen=True, slots=True)
class LineSpec:
    """One proposed ledger line."""

    account: AccountRef
    side: LineSide
    amount: Decimal
    site_id: str | None = None
    memo: str | None = None


@dataclass(frozen=True, slots=True)
class CostBasisDelta:
    """Change to a livestock group's running cost basis."""

    group_id: str
    amount: Decimal  # signed


@dataclass(frozen=True)
class PostingPlan:
    memo: str
    lines: tuple[LineSpec, ...] = ()
    inventory_deltas: tuple[InventoryDelta, ...] = ()
    cost_basis_deltas: tuple[CostBasisDelta, ...] = ()

    @property
    def has_ledger_effect(self) -> bool:
        return bool(self.lines)

    @property
    def total_debits(self) -> Decimal:
        return sum((l.amount for l in self.lines if l.side == LineSide.DEBIT), ZERO)

    @property
    def total_credits(self) -> Decimal:
        return sum((l.amount for l in self.lines if l.side == LineSide.CREDIT), ZERO)


@dataclass(frozen=True, slots=True)
class TenantPolicy:
    """Snapshot of the tenant switches that influence posting and reversal."""

    livestock_costing_mode: CostingMode = CostingMode.EXPENSE
    reverse_inventory_on_reversal: bool = False
    auto_reorder_enabled: bool = False


@dataclass(frozen=True, slots=True)
class EventSnapshot:
    """The fields of an event that posting rules may look at."""

    id: UUID
    tenant_id: str
    site_id: str
    event_type: str
    occurred_at: datetime


@dataclass(frozen=True)
class PostingContext:
    event: EventSnapshot
    payload: EventPayload
    chart: ChartOfAccounts
    inventory: InventoryWorkbook
    policy: TenantPolicy = field(default_factory=TenantPolicy)
    amount_places: int = 2
