"""
PostingEngine -- turns a PENDING or FAILED event into ledger and inventory effects.

Responsibility:
    Drives one event through its posting lifecycle under a lease:

        lease --> PROCESSING (committed) --> plan + ledger + inventory
                                             + POSTED (one transaction)
                                  on error: rollback, then FAILED

Architecture position:
    Kernel > Services -- imperative shell.  Owns its transaction boundaries:
    every step gets its own session from ``session_factory`` so that the
    PROCESSING claim and the FAILED record survive a rolled-back posting.
    Dispatches to the pure posting rules through PostingRuleRegistry.

Invariants enforced:
    - Only the lease holder changes an event's status, and every change is a
      compare-and-swap on the expected status (EventStore).
    - Ledger lines, inventory balances, cost basis and the POSTED status are
      committed together or not at all.
    - Processing a POSTED (or REVERSED) event again is a no-op returning the
      stored journal entry id.
    - The lease is released on every path.

Failure modes:
    - EventNotFoundError: propagated (nothing to record the failure on).
    - Lease held by any locker, this one included: ProcessingResult(
      success=False, error="locked"); nothing mutated.
    - Any FarmKernelError or database error while posting: recorded on the
      event as FAILED with ``failure_code`` and ``next_retry_at``, returned
      as ProcessingResult(success=False).
    - InvalidTransitionError: two processors got past the lease.  Logged at
      CRITICAL and re-raised; never recorded as an ordinary failure.

Audit relevance:
    Every step logs under LogContext(tenant_id, event_id, locker_id); the
    attempt count and last error stay on the event row.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from farm_kernel.db.engine import session_scope
from farm_kernel.domain.clock import Clock, SystemClock, ensure_utc
from farm_kernel.domain.payloads import parse_payload
from farm_kernel.domain.plans import EventSnapshot, PostingContext
from farm_kernel.domain.settings import EngineSettings
from farm_kernel.exceptions import FarmKernelError, InvalidTransitionError
from farm_kernel.logging_config import LogContext, get_logger
from farm_kernel.models.event import Event, EventStatus
from farm_kernel.posting_rules.registry import PostingRuleRegistry, default_registry
from farm_kernel.services.chart_of_accounts_service import ChartOfAccountsService
from farm_kernel.services.event_store import EventStore
from farm_kernel.services.inventory_service import InventoryService
from farm_kernel.services.ledger_writer import LedgerWriter
from farm_kernel.services.lock_manager import EventLockManager
from farm_kernel.services.tenant_settings_service import TenantSettingsService

logger = get_logger("services.posting_engine")

LOCKED = "locked"
LEASE_EXPIRED_CODE = "LEASE_EXPIRED"
DATABASE_ERROR_CODE = "DATABASE_ERROR"
UNEXPECTED_ERROR_CODE = "UNEXPECTED_ERROR"

_MAX_ERROR_LENGTH = 2000

_DONE = frozenset({EventStatus.POSTED, EventStatus.REVERSED})


@dataclass(frozen=True)
class ProcessingResult:
    """Outcome of one process_event call."""

    success: bool
    event_id: UUID
    status: EventStatus | None
    journal_entry_id: UUID | None = None
    error: str | None = None
    error_code: str | None = None
    already_posted: bool = False

    @property
    def is_locked(self) -> bool:
        return self.error == LOCKED

    @classmethod
    def posted(cls, event_id: UUID, journal_entry_id: UUID | None) -> "ProcessingResult":
        return cls(True, event_id, EventStatus.POSTED, journal_entry_id)

    @classmethod
    def already_done(cls, event: Event) -> "ProcessingResult":
        return cls(
            True,
            event.id,
            EventStatus(event.status),
            event.posted_journal_entry_id,
            already_posted=True,
        )

    @classmethod
    def locked(cls, event_id: UUID, status: EventStatus | None) -> "ProcessingResult":
        return cls(False, event_id, status, error=LOCKED, error_code="LOCK_UNAVAILABLE")

    @classmethod
    def failed(cls, event_id: UUID, error: str, error_code: str) -> "ProcessingResult":
        return cls(False, event_id, EventStatus.FAILED, error=error, error_code=error_code)


def failure_code_for(exc: BaseException) -> str:
    if isinstance(exc, FarmKernelError):
        return exc.code
    if isinstance(exc, SQLAlchemyError):
        return DATABASE_ERROR_CODE
    return UNEXPECTED_ERROR_CODE


def format_error(code: str, exc: BaseException | str) -> str:
    return f"{code}: {exc}"[:_MAX_ERROR_LENGTH]


class PostingEngine:
    """
    Processes events into journal entries and inventory changes.

    Contract:
        process_event(tenant_id, event_id, locker_id) -> ProcessingResult.
        Safe to call concurrently for the same or different events from
        any number of threads or processes sharing the database, even when
        two calls pass the same locker_id: the second finds the lease live
        and returns a locked result.

    Non-goals:
        - Does NOT schedule retries (RetryService decides when).
        - Does NOT consult retry backoff: an explicit call always proceeds.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        settings: EngineSettings | None = None,
        lock_manager: EventLockManager | None = None,
        registry: PostingRuleRegistry | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._settings = settings or EngineSettings()
        self._clock = clock or SystemClock()
        self._locks = lock_manager or EventLockManager(
            session_factory, self._clock, self._settings.lock_ttl_seconds
        )
        self._registry = registry or default_registry()

    @property
    def lock_manager(self) -> EventLockManager:
        return self._locks

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    def process_event(self, tenant_id: str, event_id: UUID, locker_id: str) -> ProcessingResult:
        with LogContext.bind(tenant_id=tenant_id, event_id=event_id, locker_id=locker_id):
            with session_scope(self._session_factory) as session:
                current = EventStore(session, self._clock).get_event(tenant_id, event_id)
                status = EventStatus(current.status)

            if not self._locks.acquire(tenant_id, event_id, locker_id):
                logger.info("event_locked", extra={"status": status.value})
                return ProcessingResult.locked(event_id, status)

            try:
                return self._process_locked(tenant_id, event_id, locker_id)
            finally:
                self._locks.release(event_id, locker_id)

    # ------------------------------------------------------------------
    # Steps (all run while holding the lease)
    # ------------------------------------------------------------------

    def _load(self, tenant_id: str, event_id: UUID) -> Event:
        with session_scope(self._session_factory) as session:
            return EventStore(session, self._clock).get_event(tenant_id, event_id)

    def _process_locked(self, tenant_id: str, event_id: UUID, locker_id: str) -> ProcessingResult:
        event = self._load(tenant_id, event_id)
        status = EventStatus(event.status)

        if status in _DONE:
            logger.info("event_already_posted", extra={"status": status.value})
            return ProcessingResult.already_done(event)

        if status == EventStatus.PROCESSING:
            # We hold the lease, so the processor that set PROCESSING lost its own
            event = self._recover_stale(tenant_id, event_id)
            status = EventStatus(event.status)
            if status in _DONE:
                return ProcessingResult.already_done(event)

        attempts = self._claim(tenant_id, event_id, status)
        logger.info(
            "event_processing_started",
            extra={"event_type": event.event_type, "attempt": attempts},
        )

        try:
            with session_scope(self._session_factory) as session:
                entry_id = self._post(session, tenant_id, event_id, locker_id)
        except InvalidTransitionError as exc:
            self._critical(exc)
            raise
        except (FarmKernelError, SQLAlchemyError) as exc:
            return self._record_failure(tenant_id, event_id, exc, attempts)
        except Exception as exc:
            self._record_failure(tenant_id, event_id, exc, attempts)
            raise

        logger.info(
            "event_posted",
            extra={
                "journal_entry_id": str(entry_id) if entry_id else None,
                "attempt": attempts,
            },
        )
        return ProcessingResult.posted(event_id, entry_id)

    def _recover_stale(self, tenant_id: str, event_id: UUID) -> Event:
        """Record an abandoned PROCESSING attempt as FAILED."""
        logger.warning("stale_processing_recovered")
        try:
            with session_scope(self._session_factory) as session:
                return EventStore(session, self._clock).transition_status(
                    tenant_id,
                    event_id,
                    EventStatus.PROCESSING,
                    EventStatus.FAILED,
                    processing_error=format_error(LEASE_EXPIRED_CODE, "processing lease expired"),
                    failure_code=LEASE_EXPIRED_CODE,
                )
        except InvalidTransitionError as exc:
            # The abandoned processor may have finished after all
            event = self._load(tenant_id, event_id)
            if EventStatus(event.status) in _DONE:
                return event
            self._critical(exc)
            raise

    def _claim(self, tenant_id: str, event_id: UUID, status: EventStatus) -> int:
        """Move to PROCESSING and count the attempt.  Committed on return."""
        try:
            with session_scope(self._session_factory) as session:
                event = EventStore(session, self._clock).transition_status(
                    tenant_id,
                    event_id,
                    status,
                    EventStatus.PROCESSING,
                    attempt_count=Event.attempt_count + 1,
                    last_attempt_at=self._clock.now(),
                    next_retry_at=None,
                )
                return event.attempt_count
        except InvalidTransitionError as exc:
            self._critical(exc)
            raise

    def _post(self, session: Session, tenant_id: str, event_id: UUID, locker_id: str) -> UUID | None:
        """Build and apply the posting plan inside the caller's transaction."""
        settings = self._settings
        store = EventStore(session, self._clock)
        event = store.get_event(tenant_id, event_id)

        payload = parse_payload(event.event_type, event.payload, site_id=event.site_id)
        chart = ChartOfAccountsService(session, self._clock, settings.role_codes).snapshot(tenant_id)
        policy = TenantSettingsService(session, self._clock, settings.tenant_defaults).get(tenant_id)
        inventory = InventoryService(session, self._clock, settings.cost_places)

        occurred_at = ensure_utc(event.occurred_at)
        ctx = PostingContext(
            event=EventSnapshot(
                id=event.id,
                tenant_id=tenant_id,
                site_id=event.site_id,
                event_type=event.event_type,
                occurred_at=occurred_at,
            ),
            payload=payload,
            chart=chart,
            inventory=inventory.workbook(tenant_id),
            policy=policy,
            amount_places=settings.amount_places,
        )
        plan = self._registry.build_plan(ctx)

        entry_id = None
        if plan.has_ledger_effect:
            entry = LedgerWriter(
                session, self._clock, settings.currency, settings.amount_places
            ).write_entry(
                tenant_id=tenant_id,
                event_id=event.id,
                event_type=event.event_type,
                entry_date=occurred_at.date(),
                lines=plan.lines,
                actor_id=locker_id,
                memo=plan.memo,
            )
            entry_id = entry.id

        inventory.apply_deltas(tenant_id, event.id, plan.inventory_deltas)
        inventory.apply_cost_basis_deltas(tenant_id, plan.cost_basis_deltas)

        store.transition_status(
            tenant_id,
            event_id,
            EventStatus.PROCESSING,
            EventStatus.POSTED,
            posted_journal_entry_id=entry_id,
            posted_at=self._clock.now(),
            processing_error=None,
            failure_code=None,
        )
        return entry_id

    def _record_failure(
        self,
        tenant_id: str,
        event_id: UUID,
        exc: BaseException,
        attempts: int,
    ) -> ProcessingResult:
        code = failure_code_for(exc)
        message = format_error(code, exc)
        next_retry_at = self._settings.retry_policy.next_retry_at(self._clock.now(), attempts)
        log = logger.error if code in (DATABASE_ERROR_CODE, UNEXPECTED_ERROR_CODE) else logger.warning
        log(
            "event_failed",
            extra={
                "error_code": code,
                "error": message,
                "attempt": attempts,
                "next_retry_at": next_retry_at.isoformat() if next_retry_at else None,
            },
        )
        try:
            with session_scope(self._session_factory) as session:
                EventStore(session, self._clock).transition_status(
                    tenant_id,
                    event_id,
                    EventStatus.PROCESSING,
                    EventStatus.FAILED,
                    processing_error=message,
                    failure_code=code,
                    next_retry_at=next_retry_at,
                )
        except InvalidTransitionError as critical:
            self._critical(critical)
            raise
        return ProcessingResult.failed(event_id, message, code)

    @staticmethod
    def _critical(exc: InvalidTransitionError) -> None:
        logger.critical(
            "concurrent_processing_detected",
            extra={
                "from_status": exc.from_status,
                "to_status": exc.to_status,
                "actual_status": exc.actual_status,
            },
        )
