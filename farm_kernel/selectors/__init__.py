"""Read-only selectors."""

from farm_kernel.selectors.ledger_selector import (
    JournalEntryView,
    JournalLineView,
    LedgerSelector,
    TrialBalanceRow,
)

__all__ = ["JournalEntryView", "JournalLineView", "LedgerSelector", "TrialBalanceRow"]
