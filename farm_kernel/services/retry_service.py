"""
RetryService -- batch and operator-driven re-processing of events.

Responsibility:
    Finds events that are due for another posting attempt and hands them to
    the PostingEngine with a fresh locker id:

    - FAILED events with attempts left whose backoff has elapsed;
    - PROCESSING events whose processor vanished (lease expired or gone).

    Also processes PENDING events in bulk for callers that defer posting,
    and lets an operator force a retry of one FAILED event.

Architecture position:
    Kernel > Services -- imperative shell.  A library entry point only:
    there is no scheduler; whoever calls retry_due() decides the cadence.

Invariants enforced:
    - The backoff and attempt ceiling of RetryPolicy apply to the batch path
      only.  retry_event() and PostingEngine.process_event() always proceed.
    - retry_event() only accepts FAILED events.

Failure modes:
    - RetryNotAllowedError from retry_event() for any other status.
"""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session, sessionmaker

from farm_kernel.db.engine import session_scope
from farm_kernel.domain.clock import Clock, SystemClock
from farm_kernel.domain.retry_policy import RetryPolicy
from farm_kernel.exceptions import RetryNotAllowedError
from farm_kernel.logging_config import LogContext, get_logger
from farm_kernel.models.event import Event, EventStatus
from farm_kernel.models.lease import EventLease
from farm_kernel.services.event_store import EventStore
from farm_kernel.services.posting_engine import PostingEngine, ProcessingResult

logger = get_logger("services.retry")


class RetryService:
    """
    Drives retries through the posting engine.

    Contract:
        Every call returns the ProcessingResult of each event it touched,
        in the order processed.

    Non-goals:
        - Does NOT post anything itself.
        - Does NOT sleep or loop; one call is one pass.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        engine: PostingEngine,
        retry_policy: RetryPolicy | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._engine = engine
        self._policy = retry_policy or engine.settings.retry_policy
        self._clock = clock or SystemClock()

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def due_events(
        self, tenant_id: str, now: datetime | None = None, limit: int = 100
    ) -> list[Event]:
        """FAILED events whose backoff elapsed plus abandoned PROCESSING events."""
        now = now or self._clock.now()
        failed_due = and_(
            Event.status == EventStatus.FAILED.value,
            Event.attempt_count < self._policy.max_attempts,
            or_(Event.next_retry_at.is_(None), Event.next_retry_at <= now),
        )
        abandoned = and_(
            Event.status == EventStatus.PROCESSING.value,
            or_(EventLease.id.is_(None), EventLease.expires_at <= now),
        )
        stmt = (
            select(Event)
            .outerjoin(EventLease, EventLease.event_id == Event.id)
            .where(Event.tenant_id == tenant_id, or_(failed_due, abandoned))
            .order_by(Event.occurred_at, Event.created_at)
            .limit(limit)
        )
        with session_scope(self._session_factory) as session:
            return list(session.execute(stmt).scalars().all())

    def pending_events(self, tenant_id: str, limit: int = 100) -> list[Event]:
        with session_scope(self._session_factory) as session:
            return list(
                session.execute(
                    select(Event)
                    .where(
                        Event.tenant_id == tenant_id,
                        Event.status == EventStatus.PENDING.value,
                    )
                    .order_by(Event.occurred_at, Event.created_at)
                    .limit(limit)
                )
                .scalars()
                .all()
            )

    def _run(self, tenant_id: str, events: list[Event], locker_prefix: str) -> list[ProcessingResult]:
        results = []
        for event in events:
            results.append(
                self._engine.process_event(tenant_id, event.id, f"{locker_prefix}-{uuid4()}")
            )
        posted = sum(1 for r in results if r.success)
        logger.info(
            "batch_processed",
            extra={
                "tenant_id": tenant_id,
                "locker_prefix": locker_prefix,
                "event_count": len(results),
                "posted_count": posted,
            },
        )
        return results

    def retry_due(
        self,
        tenant_id: str,
        locker_prefix: str = "retry",
        limit: int = 100,
    ) -> list[ProcessingResult]:
        """Re-process every event due for a retry (one pass)."""
        return self._run(tenant_id, self.due_events(tenant_id, limit=limit), locker_prefix)

    def process_pending(
        self,
        tenant_id: str,
        locker_prefix: str = "batch",
        limit: int = 100,
    ) -> list[ProcessingResult]:
        """Process deferred PENDING events, oldest first."""
        return self._run(tenant_id, self.pending_events(tenant_id, limit=limit), locker_prefix)

    def retry_event(self, tenant_id: str, event_id: UUID, locker_id: str) -> ProcessingResult:
        """Operator retry of one FAILED event, ignoring backoff and the attempt ceiling."""
        with LogContext.bind(tenant_id=tenant_id, event_id=event_id, locker_id=locker_id):
            with session_scope(self._session_factory) as session:
                event = EventStore(session, self._clock).get_event(tenant_id, event_id)
                status = event.status
                attempts = event.attempt_count
            if status != EventStatus.FAILED.value:
                logger.warning("retry_rejected", extra={"status": status})
                raise RetryNotAllowedError(str(event_id), status, "only FAILED events can be retried")
            logger.info("retry_requested", extra={"attempt_count": attempts})
            return self._engine.process_event(tenant_id, event_id, locker_id)
