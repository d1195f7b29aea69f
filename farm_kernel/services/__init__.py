"""
Kernel services -- the imperative shell around the pure domain.

Services that take a ``session`` work inside the caller's transaction and
never commit.  PostingEngine, ReversalService, RetryService and
EventLockManager take a ``session_factory`` and own their transactions.
"""

from farm_kernel.services.chart_of_accounts_service import ChartOfAccountsService, account_ref
from farm_kernel.services.event_store import CreateEventResult, EventInput, EventStore
from farm_kernel.services.inventory_service import BalanceSnapshot, InventoryService
from farm_kernel.services.ledger_writer import LedgerWriter
from farm_kernel.services.lock_manager import EventLockManager, Lease
from farm_kernel.services.posting_engine import PostingEngine, ProcessingResult
from farm_kernel.services.retry_service import RetryService
from farm_kernel.services.reversal_service import ReversalResult, ReversalService
from farm_kernel.services.tenant_settings_service import TenantSettingsService

__all__ = [
    "ChartOfAccountsService",
    "account_ref",
    "CreateEventResult",
    "EventInput",
    "EventStore",
    "BalanceSnapshot",
    "InventoryService",
    "LedgerWriter",
    "EventLockManager",
    "Lease",
    "PostingEngine",
    "ProcessingResult",
    "RetryService",
    "ReversalResult",
    "ReversalService",
    "TenantSettingsService",
]
