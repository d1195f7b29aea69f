"""
Typed exception hierarchy for the posting engine.

Every failure the engine can produce has its own class with a stable
machine-readable ``code`` class attribute and the structured data of the
failure stored as attributes. Callers catch by type, log by code, and never
parse message strings.

Hierarchy:

    FarmKernelError
    |
    +-- EventError
    |   +-- EventNotFoundError
    |   +-- ValidationError
    |   +-- InvalidTransitionError
    |
    +-- LockUnavailableError
    |
    +-- PostingError
    |   +-- UnbalancedEntryError
    |   +-- EmptyEntryError
    |   +-- InvalidAmountError
    |   +-- PostingRuleNotFoundError
    |
    +-- AccountError
    |   +-- AccountNotFoundError
    |   +-- AccountInactiveError
    |   +-- SystemAccountError
    |
    +-- InventoryError
    |   +-- InvalidQuantityError
    |
    +-- StorageConflictError
    |
    +-- ReversalError
    |   +-- EventNotPostedError
    |
    +-- RetryNotAllowedError
    |
    +-- ImmutabilityViolationError

Propagation:
    ValidationError is raised at event creation and never reaches the engine.
    Everything raised while a posting is being built or applied is caught by
    the engine and recorded on the event (status FAILED, ``processing_error``
    and ``failure_code``) so the event can be retried.
    InvalidTransitionError means two processors got past the lease at once.
    It is a defect, logged at CRITICAL and re-raised, never retried.
"""


class FarmKernelError(Exception):
    """Base exception for all posting engine errors."""

    code: str = "FARM_KERNEL_ERROR"


# Event-related exceptions


class EventError(FarmKernelError):
    """Base exception for event-related errors."""

    code: str = "EVENT_ERROR"


class EventNotFoundError(EventError):
    """Event with given ID was not found for the tenant."""

    code: str = "EVENT_NOT_FOUND"

    def __init__(self, event_id: str, tenant_id: str | None = None):
        self.event_id = str(event_id)
        self.tenant_id = tenant_id
        super().__init__(f"Event not found: {event_id}")


class ValidationError(EventError):
    """
    Event input or payload is malformed for its declared type.

    ``field_errors`` is a list of ``{"field": ..., "message": ...}`` dicts,
    one per problem found, so a caller can report every issue at once.
    """

    code: str = "VALIDATION_ERROR"

    def __init__(self, event_type: str | None, field_errors: list[dict]):
        self.event_type = event_type
        self.field_errors = field_errors
        summary = "; ".join(
            f"{err['field']}: {err['message']}" for err in field_errors
        )
        super().__init__(
            f"Invalid {event_type or 'event'} input: {summary}"
        )


class InvalidTransitionError(EventError):
    """Compare-and-swap on an event's status failed or the pair is illegal."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        event_id: str,
        from_status: str,
        to_status: str,
        actual_status: str | None = None,
    ):
        self.event_id = str(event_id)
        self.from_status = from_status
        self.to_status = to_status
        self.actual_status = actual_status
        detail = f" (actual status: {actual_status})" if actual_status else ""
        super().__init__(
            f"Invalid transition for event {event_id}: "
            f"{from_status} -> {to_status}{detail}"
        )


class LockUnavailableError(FarmKernelError):
    """Another locker holds an unexpired lease on the event."""

    code: str = "LOCK_UNAVAILABLE"

    def __init__(self, event_id: str, locker_id: str, held_by: str | None = None):
        self.event_id = str(event_id)
        self.locker_id = locker_id
        self.held_by = held_by
        super().__init__(
            f"Event {event_id} is locked"
            + (f" by {held_by}" if held_by else "")
        )


# Posting exceptions


class PostingError(FarmKernelError):
    """Base exception for posting errors."""

    code: str = "POSTING_ERROR"


class UnbalancedEntryError(PostingError):
    """Journal entry debits do not equal credits."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, debits: str, credits: str, currency: str):
        self.debits = debits
        self.credits = credits
        self.currency = currency
        super().__init__(
            f"Unbalanced entry in {currency}: debits={debits}, credits={credits}"
        )


class EmptyEntryError(PostingError):
    """Journal entry has no lines."""

    code: str = "EMPTY_ENTRY"

    def __init__(self, event_id: str | None = None):
        self.event_id = str(event_id) if event_id else None
        super().__init__("Journal entry must have at least one line")


class InvalidAmountError(PostingError):
    """A ledger line amount is negative."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: str, account_code: str):
        self.amount = amount
        self.account_code = account_code
        super().__init__(
            f"Line amount must not be negative: {amount} on account {account_code}"
        )


class AmountOutOfRangeError(PostingError):
    """A computed amount is too large to round to the configured places."""

    code: str = "AMOUNT_OUT_OF_RANGE"

    def __init__(self, value: str, places: int):
        self.value = value
        self.places = places
        super().__init__(f"Amount {value} cannot be rounded to {places} decimal places")


class PostingRuleNotFoundError(PostingError):
    """No posting rule is registered for the event type."""

    code: str = "POSTING_RULE_NOT_FOUND"

    def __init__(self, event_type: str):
        self.event_type = event_type
        super().__init__(f"No posting rule registered for event type: {event_type}")


# Account exceptions


class AccountError(FarmKernelError):
    """Base exception for chart of accounts errors."""

    code: str = "ACCOUNT_ERROR"


class AccountNotFoundError(AccountError):
    """No account with the given code (or for the given role) exists."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_code: str, tenant_id: str | None = None):
        self.account_code = account_code
        self.tenant_id = tenant_id
        super().__init__(f"Account not found: {account_code}")


class AccountInactiveError(AccountError):
    """Account exists but is not active."""

    code: str = "ACCOUNT_INACTIVE"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account is inactive: {account_code}")


class SystemAccountError(AccountError):
    """System accounts of the default chart cannot be deleted."""

    code: str = "ACCOUNT_SYSTEM_PROTECTED"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"System account cannot be deleted: {account_code}")


# Inventory exceptions


class InventoryError(FarmKernelError):
    """Base exception for inventory costing errors."""

    code: str = "INVENTORY_ERROR"


class InvalidQuantityError(InventoryError):
    """Quantity for a receipt, consumption or transfer is not positive."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: str, operation: str):
        self.quantity = quantity
        self.operation = operation
        super().__init__(
            f"Quantity for {operation} must be positive, got {quantity}"
        )


class StorageConflictError(FarmKernelError):
    """A concurrent write won the compare-and-swap on a shared row."""

    code: str = "STORAGE_CONFLICT"

    def __init__(self, entity_type: str, key: str, expected_version: int | None = None):
        self.entity_type = entity_type
        self.key = key
        self.expected_version = expected_version
        super().__init__(
            f"Concurrent update on {entity_type} {key}"
            + (
                f" (expected version {expected_version})"
                if expected_version is not None
                else ""
            )
        )


# Reversal exceptions


class ReversalError(FarmKernelError):
    """Base exception for reversal errors."""

    code: str = "REVERSAL_ERROR"


class EventNotPostedError(ReversalError):
    """Only POSTED events can be reversed."""

    code: str = "EVENT_NOT_POSTED"

    def __init__(self, event_id: str, status: str):
        self.event_id = str(event_id)
        self.status = status
        super().__init__(
            f"Event {event_id} cannot be reversed from status {status}"
        )


class RetryNotAllowedError(FarmKernelError):
    """Retry requested for an event that is not in a retryable state."""

    code: str = "RETRY_NOT_ALLOWED"

    def __init__(self, event_id: str, status: str, reason: str = ""):
        self.event_id = str(event_id)
        self.status = status
        self.reason = reason
        super().__init__(
            f"Retry not allowed for event {event_id} (status={status})"
            + (f": {reason}" if reason else "")
        )


class ImmutabilityViolationError(FarmKernelError):
    """Attempt to modify or delete a record that is immutable once written."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")
