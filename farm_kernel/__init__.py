"""
Farm posting kernel.

Turns recorded farm business events (feedings, sales, purchases, inventory
adjustments and transfers) into balanced double-entry journal entries while
keeping weighted-average inventory balances in step, exactly once per event,
under concurrent and retried invocations.
"""

__version__ = "0.1.0"
