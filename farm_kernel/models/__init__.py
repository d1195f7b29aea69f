"""Domain models for the posting engine."""

from farm_kernel.models.account import (
    Account,
    AccountType,
    NormalBalance,
    normal_balance_for,
)
from farm_kernel.models.event import (
    VALID_TRANSITIONS,
    Event,
    EventStatus,
    EventType,
    IdempotencyRecord,
    SourceType,
    is_valid_transition,
)
from farm_kernel.models.inventory import InventoryBalance, InventoryMovement, MovementType
from farm_kernel.models.journal import JournalEntry, JournalLine, LineSide
from farm_kernel.models.lease import EventLease
from farm_kernel.models.livestock import LivestockCostBasis
from farm_kernel.models.sequence import SequenceCounter
from farm_kernel.models.tenant_settings import CostingMode, TenantSettings

__all__ = [
    "Account",
    "AccountType",
    "NormalBalance",
    "normal_balance_for",
    "Event",
    "EventType",
    "EventStatus",
    "SourceType",
    "IdempotencyRecord",
    "VALID_TRANSITIONS",
    "is_valid_transition",
    "EventLease",
    "JournalEntry",
    "JournalLine",
    "LineSide",
    "InventoryBalance",
    "InventoryMovement",
    "MovementType",
    "LivestockCostBasis",
    "SequenceCounter",
    "CostingMode",
    "TenantSettings",
]
