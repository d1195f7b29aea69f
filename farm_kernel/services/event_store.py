"""
EventStore -- event creation with payload validation and idempotency.

Responsibility:
    Entry point for business events.  Validates the event input and its
    type-specific payload at the boundary, enforces at most one event per
    (tenant, idempotency key), and applies every status change as a
    compare-and-swap so a second processor can never silently overwrite the
    first.

Architecture position:
    Kernel > Services -- imperative shell.  Called by the request layer
    (create/read) and by the posting engine, reversal and retry services
    (status transitions).

Invariants enforced:
    - Malformed input is rejected with ValidationError before anything is
      written.
    - Event and IdempotencyRecord are inserted together inside a savepoint;
      a duplicate key (including a concurrent insert that wins the unique
      constraint) returns the existing event unchanged.
    - transition_status only performs legal transitions and only when the
      stored status still equals the expected one.

Failure modes:
    - ValidationError: bad input or payload (every field error listed).
    - EventNotFoundError: unknown event id for the tenant.
    - InvalidTransitionError: illegal pair or lost compare-and-swap.

Audit relevance:
    Events are never deleted; creation, duplicates and every transition are
    logged with the event id and tenant.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from farm_kernel.domain.clock import Clock, SystemClock, ensure_utc
from farm_kernel.domain.payloads import EventPayload, parse_payload
from farm_kernel.exceptions import (
    EventNotFoundError,
    InvalidTransitionError,
    StorageConflictError,
    ValidationError,
)
from farm_kernel.logging_config import get_logger
from farm_kernel.models.event import (
    Event,
    EventStatus,
    EventType,
    IdempotencyRecord,
    SourceType,
    is_valid_transition,
)
from farm_kernel.utils.hashing import to_json_safe

logger = get_logger("services.event_store")

_MAX_KEY_LENGTH = 300


@dataclass(frozen=True)
class EventInput:
    """What a caller supplies to create an event."""

    site_id: str
    event_type: EventType | str
    occurred_at: datetime
    payload: dict[str, Any]
    idempotency_key: str
    source_type: SourceType | str = SourceType.API
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CreateEventResult:
    event: Event
    created: bool

    @property
    def is_duplicate(self) -> bool:
        return not self.created


def _input_errors(tenant_id: str, data: EventInput, actor_id: str) -> list[dict]:
    errors = []
    if not tenant_id or not str(tenant_id).strip():
        errors.append({"field": "tenantId", "message": "is required"})
    if not actor_id or not str(actor_id).strip():
        errors.append({"field": "actorId", "message": "is required"})
    if not isinstance(data.site_id, str) or not data.site_id.strip():
        errors.append({"field": "siteId", "message": "is required"})
    if not isinstance(data.occurred_at, datetime):
        errors.append({"field": "occurredAt", "message": "must be a datetime"})
    if not isinstance(data.idempotency_key, str) or not data.idempotency_key.strip():
        errors.append({"field": "idempotencyKey", "message": "is required"})
    elif len(data.idempotency_key) > _MAX_KEY_LENGTH:
        errors.append(
            {"field": "idempotencyKey", "message": f"must be at most {_MAX_KEY_LENGTH} characters"}
        )
    try:
        SourceType(data.source_type)
    except ValueError:
        errors.append({"field": "sourceType", "message": "must be one of API, SYSTEM, IMPORT"})
    return errors


class EventStore:
    """
    Persistence and lifecycle of events.

    Contract:
        create_event returns the new or the pre-existing event for the
        idempotency key; transition_status moves one event between two
        statuses atomically.

    Non-goals:
        - Does NOT commit; the caller owns the transaction.
        - Does NOT post anything (PostingEngine does).
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def validate(self, tenant_id: str, data: EventInput, actor_id: str) -> EventPayload:
        """Validate input and payload; return the typed payload."""
        errors = _input_errors(tenant_id, data, actor_id)
        site_id = data.site_id if isinstance(data.site_id, str) else None
        try:
            payload = parse_payload(data.event_type, data.payload, site_id=site_id)
        except ValidationError as exc:
            errors.extend(exc.field_errors)
            payload = None
        if errors:
            event_type = getattr(data.event_type, "value", data.event_type)
            logger.warning(
                "event_rejected_validation",
                extra={"event_type": event_type, "error_count": len(errors)},
            )
            raise ValidationError(str(event_type), errors)
        return payload

    def create_event(
        self,
        tenant_id: str,
        data: EventInput,
        actor_id: str,
    ) -> CreateEventResult:
        """
        Create a PENDING event, or return the event already holding the key.

        Postconditions:
            - created=True: Event and IdempotencyRecord are flushed.
            - created=False: nothing was written; the prior event is returned
              unchanged, whatever the new input contained.
        """
        payload = self.validate(tenant_id, data, actor_id)
        event_type = payload.event_type

        existing = self.find_by_idempotency_key(tenant_id, data.idempotency_key)
        if existing is not None:
            logger.info(
                "event_duplicate",
                extra={"event_id": str(existing.id), "event_type": event_type.value},
            )
            return CreateEventResult(event=existing, created=False)

        now = self._clock.now()
        event = Event(
            tenant_id=tenant_id,
            site_id=data.site_id.strip(),
            event_type=event_type.value,
            occurred_at=ensure_utc(data.occurred_at),
            source_type=SourceType(data.source_type).value,
            payload=to_json_safe(data.payload),
            idempotency_key=data.idempotency_key,
            status=EventStatus.PENDING.value,
            attempt_count=0,
            created_at=now,
            created_by=actor_id,
        )
        try:
            with self._session.begin_nested():
                self._session.add(event)
                self._session.flush()
                self._session.add(
                    IdempotencyRecord(
                        tenant_id=tenant_id,
                        idempotency_key=data.idempotency_key,
                        event_id=event.id,
                        created_at=now,
                    )
                )
                self._session.flush()
        except IntegrityError:
            # A concurrent create with the same key won the unique constraint
            logger.warning(
                "concurrent_event_insert_conflict",
                extra={"idempotency_key": data.idempotency_key},
            )
            existing = self.find_by_idempotency_key(tenant_id, data.idempotency_key)
            if existing is None:
                raise StorageConflictError("Event", data.idempotency_key) from None
            return CreateEventResult(event=existing, created=False)

        logger.info(
            "event_created",
            extra={
                "event_id": str(event.id),
                "event_type": event_type.value,
                "site_id": event.site_id,
                "source_type": event.source_type,
            },
        )
        return CreateEventResult(event=event, created=True)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_by_idempotency_key(self, tenant_id: str, idempotency_key: str) -> Event | None:
        return self._session.execute(
            select(Event).where(
                Event.tenant_id == tenant_id,
                Event.idempotency_key == idempotency_key,
            )
        ).scalar_one_or_none()

    def find_event(self, tenant_id: str, event_id: UUID) -> Event | None:
        return self._session.execute(
            select(Event)
            .where(Event.id == event_id, Event.tenant_id == tenant_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_event(self, tenant_id: str, event_id: UUID) -> Event:
        event = self.find_event(tenant_id, event_id)
        if event is None:
            raise EventNotFoundError(str(event_id), tenant_id)
        return event

    def list_events(
        self,
        tenant_id: str,
        status: EventStatus | str | None = None,
        event_type: EventType | str | None = None,
        site_id: str | None = None,
        limit: int = 100,
    ) -> list[Event]:
        """Events of a tenant, most recently occurred first."""
        stmt = select(Event).where(Event.tenant_id == tenant_id)
        if status is not None:
            stmt = stmt.where(Event.status == EventStatus(status).value)
        if event_type is not None:
            stmt = stmt.where(Event.event_type == EventType(event_type).value)
        if site_id is not None:
            stmt = stmt.where(Event.site_id == site_id)
        stmt = stmt.order_by(Event.occurred_at.desc(), Event.created_at.desc()).limit(limit)
        return list(self._session.execute(stmt).scalars().all())

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    def transition_status(
        self,
        tenant_id: str,
        event_id: UUID,
        from_status: EventStatus | str,
        to_status: EventStatus | str,
        **fields: Any,
    ) -> Event:
        """
        Compare-and-swap the event's status from ``from_status`` to ``to_status``.

        ``fields`` are additional columns written in the same UPDATE
        (processing_error, posted_journal_entry_id, ...).

        Raises:
            InvalidTransitionError: if the pair is not a legal transition or
                the stored status no longer equals ``from_status``.
        """
        from_status = EventStatus(from_status)
        to_status = EventStatus(to_status)
        if not is_valid_transition(from_status, to_status):
            raise InvalidTransitionError(str(event_id), from_status.value, to_status.value)

        result = self._session.execute(
            update(Event)
            .where(
                Event.id == event_id,
                Event.tenant_id == tenant_id,
                Event.status == from_status.value,
            )
            .values(status=to_status.value, updated_at=self._clock.now(), **fields)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = self.find_event(tenant_id, event_id)
            if current is None:
                raise EventNotFoundError(str(event_id), tenant_id)
            raise InvalidTransitionError(
                str(event_id), from_status.value, to_status.value, actual_status=current.status
            )

        logger.info(
            "event_status_changed",
            extra={
                "event_id": str(event_id),
                "from_status": from_status.value,
                "to_status": to_status.value,
            },
        )
        return self.get_event(tenant_id, event_id)
