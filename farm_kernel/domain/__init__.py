"""
Pure domain layer.

Payload variants, inventory costing arithmetic, the chart of accounts
snapshot, posting plans and the retry policy.  No session, no I/O; time
arrives through a Clock.
"""

from farm_kernel.domain.chart import AccountDefinition, AccountRef, AccountRole, ChartOfAccounts
from farm_kernel.domain.clock import Clock, DeterministicClock, SystemClock, ensure_utc
from farm_kernel.domain.inventory_costing import (
    InventoryDelta,
    InventoryPosition,
    InventoryWorkbook,
    MovementRecord,
    apply_consumption,
    apply_receipt,
)
from farm_kernel.domain.payloads import (
    PAYLOAD_TYPES,
    EventPayload,
    ItemType,
    PaymentMethod,
    parse_payload,
)
from farm_kernel.domain.plans import (
    CostBasisDelta,
    EventSnapshot,
    LineSpec,
    PostingContext,
    PostingPlan,
    TenantPolicy,
)
from farm_kernel.domain.retry_policy import RetryPolicy
from farm_kernel.domain.settings import EngineSettings

__all__ = [
    "AccountDefinition",
    "AccountRef",
    "AccountRole",
    "ChartOfAccounts",
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "ensure_utc",
    "InventoryDelta",
    "InventoryPosition",
    "InventoryWorkbook",
    "MovementRecord",
    "apply_consumption",
    "apply_receipt",
    "PAYLOAD_TYPES",
    "EventPayload",
    "ItemType",
    "PaymentMethod",
    "parse_payload",
    "CostBasisDelta",
    "EventSnapshot",
    "LineSpec",
    "PostingContext",
    "PostingPlan",
    "TenantPolicy",
    "RetryPolicy",
    "EngineSettings",
]
