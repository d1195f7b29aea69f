"""
ReversalService -- compensating entries for posted events.

Responsibility:
    Undoes a POSTED event without destroying history: writes a new journal
    entry whose lines mirror the original with every side flipped, and moves
    the event to REVERSED.  Inventory is left alone unless the tenant (or the
    caller) asks for the movements to be inverted too.

Architecture position:
    Kernel > Services -- imperative shell.  Holds the event's lease for the
    duration so a reversal cannot interleave with a posting attempt; the
    ledger write, optional inventory inversion and status change commit in
    one transaction.

Invariants enforced:
    - Only POSTED events are reversed.
    - The original journal entry is never modified (immutability listeners);
      at most one reversal exists per entry (UNIQUE reversal_of_id).
    - Default is a ledger-only reversal: the physical correction of stock
      is expected as a fresh INVENTORY_ADJUSTMENT dated when it happened.
    - Livestock cost basis is not touched by a reversal.

Failure modes:
    - ValidationError: empty reason or actor.
    - EventNotFoundError, EventNotPostedError.
    - LockUnavailableError: the event is being processed.
    - InvalidTransitionError: logged at CRITICAL and re-raised.
"""

from dataclasses import dataclass
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from farm_kernel.db.engine import session_scope
from farm_kernel.domain.clock import Clock, SystemClock
from farm_kernel.domain.inventory_costing import InventoryWorkbook
from farm_kernel.domain.settings import EngineSettings
from farm_kernel.exceptions import EventNotPostedError, InvalidTransitionError, ValidationError
from farm_kernel.logging_config import LogContext, get_logger
from farm_kernel.models.event import Event, EventStatus
from farm_kernel.models.inventory import InventoryMovement, MovementType
from farm_kernel.models.journal import JournalEntry
from farm_kernel.services.event_store import EventStore
from farm_kernel.services.inventory_service import InventoryService
from farm_kernel.services.ledger_writer import LedgerWriter
from farm_kernel.services.lock_manager import EventLockManager
from farm_kernel.services.tenant_settings_service import TenantSettingsService

logger = get_logger("services.reversal")


@dataclass(frozen=True)
class ReversalResult:
    event_id: UUID
    original_entry_id: UUID | None
    reversal_entry_id: UUID | None
    inventory_reversed: bool
    movements_reversed: int = 0


class ReversalService:
    """
    Reverses posted events.

    Contract:
        reverse_event() either commits the reversal entry, any inventory
        inversion and the REVERSED status together, or raises and leaves
        everything as it was.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        settings: EngineSettings | None = None,
        lock_manager: EventLockManager | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._settings = settings or EngineSettings()
        self._clock = clock or SystemClock()
        self._locks = lock_manager or EventLockManager(
            session_factory, self._clock, self._settings.lock_ttl_seconds
        )

    def reverse_event(
        self,
        tenant_id: str,
        event_id: UUID,
        reason: str,
        actor_id: str,
        reverse_inventory: bool | None = None,
        locker_id: str | None = None,
    ) -> ReversalResult:
        """
        Reverse a POSTED event.

        Args:
            reverse_inventory: invert the event's inventory movements as
                well.  None means "use the tenant setting".
        """
        errors = []
        if not reason or not reason.strip():
            errors.append({"field": "reason", "message": "is required"})
        if not actor_id or not actor_id.strip():
            errors.append({"field": "actorId", "message": "is required"})
        if errors:
            raise ValidationError("REVERSAL", errors)

        locker_id = locker_id or f"reversal-{uuid4()}"
        with LogContext.bind(
            tenant_id=tenant_id, event_id=event_id, locker_id=locker_id, actor_id=actor_id
        ):
            with session_scope(self._session_factory) as session:
                EventStore(session, self._clock).get_event(tenant_id, event_id)

            with self._locks.held(tenant_id, event_id, locker_id):
                try:
                    with session_scope(self._session_factory) as session:
                        result = self._reverse(
                            session, tenant_id, event_id, reason.strip(), actor_id, reverse_inventory
                        )
                except InvalidTransitionError as exc:
                    logger.critical(
                        "concurrent_processing_detected",
                        extra={
                            "from_status": exc.from_status,
                            "to_status": exc.to_status,
                            "actual_status": exc.actual_status,
                        },
                    )
                    raise

        logger.info(
            "event_reversed",
            extra={
                "event_id": str(event_id),
                "reversal_entry_id": str(result.reversal_entry_id) if result.reversal_entry_id else None,
                "inventory_reversed": result.inventory_reversed,
                "movements_reversed": result.movements_reversed,
            },
        )
        return result

    def _reverse(
        self,
        session: Session,
        tenant_id: str,
        event_id: UUID,
        reason: str,
        actor_id: str,
        reverse_inventory: bool | None,
    ) -> ReversalResult:
        store = EventStore(session, self._clock)
        event = store.get_event(tenant_id, event_id)
        if event.status != EventStatus.POSTED.value:
            logger.warning("reversal_rejected", extra={"status": event.status})
            raise EventNotPostedError(str(event_id), event.status)

        if reverse_inventory is None:
            policy = TenantSettingsService(session, self._clock, self._settings.tenant_defaults).get(tenant_id)
            reverse_inventory = policy.reverse_inventory_on_reversal

        now = self._clock.now()
        reversal_entry_id = None
        if event.posted_journal_entry_id is not None:
            original = session.get(JournalEntry, event.posted_journal_entry_id)
            writer = LedgerWriter(
                session, self._clock, self._settings.currency, self._settings.amount_places
            )
            reversal = writer.write_reversal(
                original,
                actor_id=actor_id,
                entry_date=now.date(),
                memo=f"Reversal: {reason}",
            )
            reversal_entry_id = reversal.id

        movements = 0
        if reverse_inventory:
            movements = self._reverse_inventory(session, tenant_id, event, reason)

        store.transition_status(
            tenant_id,
            event_id,
            EventStatus.POSTED,
            EventStatus.REVERSED,
            reversal_journal_entry_id=reversal_entry_id,
            reversal_reason=reason,
            reversed_at=now,
            reversed_by=actor_id,
            updated_by=actor_id,
        )
        return ReversalResult(
            event_id=event_id,
            original_entry_id=event.posted_journal_entry_id,
            reversal_entry_id=reversal_entry_id,
            inventory_reversed=bool(reverse_inventory),
            movements_reversed=movements,
        )

    def _reverse_inventory(self, session: Session, tenant_id: str, event: Event, reason: str) -> int:
        """Invert each movement the event recorded, newest first.

        Inbound movements are taken back out at the current average; outbound
        movements are put back at the unit cost they left at.
        """
        inventory = InventoryService(session, self._clock, self._settings.cost_places)
        workbook: InventoryWorkbook = inventory.workbook(tenant_id)
        originals: list[InventoryMovement] = inventory.list_movements(tenant_id, event_id=event.id)
        for movement in reversed(originals):
            qty = abs(movement.quantity)
            if MovementType(movement.movement_type).is_inbound:
                workbook.consume(
                    movement.site_id,
                    movement.item_id,
                    qty,
                    movement_type=MovementType.REVERSAL_OUT,
                    related_site_id=movement.related_site_id,
                    reason=reason[:255],
                )
            else:
                workbook.receive(
                    movement.site_id,
                    movement.item_id,
                    qty,
                    movement.unit_cost,
                    movement_type=MovementType.REVERSAL_IN,
                    related_site_id=movement.related_site_id,
                    reason=reason[:255],
                )
        return inventory.apply_deltas(tenant_id, event.id, workbook.deltas())
