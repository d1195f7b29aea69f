"""
InventoryService -- persistence of inventory balances and cost basis.

Responsibility:
    Reads (site, item) positions for posting rules and applies the deltas a
    posting produced.  Every balance change is a compare-and-swap on the
    row's ``version``: the UPDATE only matches if nobody changed the balance
    since it was read, so two concurrent postings can never both apply a
    change computed from the same stale position.

Architecture position:
    Kernel > Services.  Runs inside the caller's transaction (the posting
    engine's atomic posting transaction); never commits.

Invariants enforced:
    - Balances never change without an InventoryMovement row explaining it.
    - Movements are numbered from the inventory_movement sequence in the
      order they are applied; list_movements returns them in that order.
    - A lost compare-and-swap raises StorageConflictError; nothing is
      overwritten.  The caller rolls back the whole posting.
    - Livestock cost basis never goes below zero.

Failure modes:
    - StorageConflictError on a lost race (UPDATE matched no row, or the
      INSERT of a new balance hit the unique constraint).
"""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from farm_kernel.domain.clock import Clock, SystemClock
from farm_kernel.domain.inventory_costing import (
    InventoryDelta,
    InventoryPosition,
    InventoryWorkbook,
    PositionReader,
)
from farm_kernel.domain.plans import CostBasisDelta
from farm_kernel.domain.values import ZERO, quantize
from farm_kernel.exceptions import StorageConflictError
from farm_kernel.logging_config import get_logger
from farm_kernel.models.inventory import InventoryBalance, InventoryMovement
from farm_kernel.models.livestock import LivestockCostBasis
from farm_kernel.services.sequence_service import SequenceService

logger = get_logger("services.inventory")


@dataclass(frozen=True, slots=True)
class BalanceSnapshot:
    """Read-only view of a balance row, including its reorder settings."""

    site_id: str
    item_id: str
    quantity_on_hand: Decimal
    avg_cost_per_unit: Decimal
    version: int
    reorder_point: Decimal | None
    reorder_quantity: Decimal | None

    @property
    def is_below_reorder_point(self) -> bool:
        return self.reorder_point is not None and self.quantity_on_hand <= self.reorder_point


def _snapshot(row: InventoryBalance) -> BalanceSnapshot:
    return BalanceSnapshot(
        site_id=row.site_id,
        item_id=row.item_id,
        quantity_on_hand=row.quantity_on_hand,
        avg_cost_per_unit=row.avg_cost_per_unit,
        version=row.version,
        reorder_point=row.reorder_point,
        reorder_quantity=row.reorder_quantity,
    )


def _position(row: InventoryBalance) -> InventoryPosition:
    return InventoryPosition(
        quantity_on_hand=row.quantity_on_hand,
        avg_cost_per_unit=row.avg_cost_per_unit,
        version=row.version,
    )


class InventoryService:
    """
    Inventory balances, movements and livestock cost basis for one session.

    Contract:
        Positions handed to posting rules carry the version they were read at;
        apply_deltas() only succeeds if every balance is still at that
        version.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        cost_places: int = 2,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._cost_places = cost_places

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _find_row(self, tenant_id: str, site_id: str, item_id: str) -> InventoryBalance | None:
        return self._session.execute(
            select(InventoryBalance)
            .where(
                InventoryBalance.tenant_id == tenant_id,
                InventoryBalance.site_id == site_id,
                InventoryBalance.item_id == item_id,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def read_position(self, tenant_id: str, site_id: str, item_id: str) -> InventoryPosition:
        """Current position; version 0 (and zeros) when no balance row exists."""
        row = self._find_row(tenant_id, site_id, item_id)
        if row is None:
            return InventoryPosition()
        return _position(row)

    def get_balance(self, tenant_id: str, site_id: str, item_id: str) -> InventoryPosition:
        """Current position, creating a zero balance row on first access."""
        row = self._find_row(tenant_id, site_id, item_id)
        if row is None:
            row = self._create_row(tenant_id, site_id, item_id)
        return _position(row)

    def _create_row(self, tenant_id: str, site_id: str, item_id: str) -> InventoryBalance:
        row = InventoryBalance(
            tenant_id=tenant_id,
            site_id=site_id,
            item_id=item_id,
            quantity_on_hand=ZERO,
            avg_cost_per_unit=ZERO,
            version=1,
        )
        try:
            with self._session.begin_nested():
                self._session.add(row)
                self._session.flush()
        except IntegrityError:
            # Created concurrently; use the winner's row
            existing = self._find_row(tenant_id, site_id, item_id)
            if existing is None:
                raise StorageConflictError("InventoryBalance", f"{site_id}/{item_id}") from None
            return existing
        return row

    def snapshot(self, tenant_id: str, site_id: str, item_id: str) -> BalanceSnapshot | None:
        row = self._find_row(tenant_id, site_id, item_id)
        return _snapshot(row) if row is not None else None

    def list_balances(self, tenant_id: str, site_id: str | None = None) -> list[BalanceSnapshot]:
        stmt = select(InventoryBalance).where(InventoryBalance.tenant_id == tenant_id)
        if site_id is not None:
            stmt = stmt.where(InventoryBalance.site_id == site_id)
        stmt = stmt.order_by(InventoryBalance.site_id, InventoryBalance.item_id)
        return [_snapshot(row) for row in self._session.execute(stmt).scalars()]

    def reader(self, tenant_id: str) -> PositionReader:
        """Position reader bound to a tenant, for an InventoryWorkbook."""

        def read(site_id: str, item_id: str) -> InventoryPosition:
            return self.read_position(tenant_id, site_id, item_id)

        return read

    def workbook(self, tenant_id: str) -> InventoryWorkbook:
        return InventoryWorkbook(self.reader(tenant_id), cost_places=self._cost_places)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def apply_deltas(
        self,
        tenant_id: str,
        event_id: UUID,
        deltas: tuple[InventoryDelta, ...] | list[InventoryDelta],
    ) -> int:
        """
        Apply posting deltas with a compare-and-swap per balance.

        Returns:
            Number of movement rows written.

        Raises:
            StorageConflictError: if any balance changed since it was read.
        """
        now = self._clock.now()
        written = 0
        movement_count = sum(len(delta.movements) for delta in deltas)
        if movement_count:
            first_sequence = SequenceService(self._session).allocate(
                SequenceService.INVENTORY_MOVEMENT, movement_count
            )
        for delta in deltas:
            last_type = delta.movements[-1].movement_type.value if delta.movements else None
            if delta.expected_version == 0:
                self._insert_balance(tenant_id, delta, last_type, now)
            else:
                self._swap_balance(tenant_id, delta, last_type, now)

            for movement in delta.movements:
                self._session.add(
                    InventoryMovement(
                        tenant_id=tenant_id,
                        site_id=delta.site_id,
                        item_id=delta.item_id,
                        movement_type=movement.movement_type.value,
                        quantity=movement.quantity,
                        unit_cost=movement.unit_cost,
                        total_cost=quantize(movement.total_cost, self._cost_places),
                        quantity_after=movement.quantity_after,
                        avg_cost_after=movement.avg_cost_after,
                        event_id=event_id,
                        related_site_id=movement.related_site_id,
                        reason=movement.reason,
                        recorded_at=now,
                        line_seq=written,
                        sequence=first_sequence + written,
                    )
                )
                written += 1

            logger.info(
                "inventory_balance_updated",
                extra={
                    "site_id": delta.site_id,
                    "item_id": delta.item_id,
                    "quantity_on_hand": str(delta.after.quantity_on_hand),
                    "avg_cost_per_unit": str(delta.after.avg_cost_per_unit),
                    "version": delta.expected_version + 1,
                },
            )
        self._session.flush()
        return written

    def _insert_balance(self, tenant_id, delta: InventoryDelta, last_type, now) -> None:
        try:
            with self._session.begin_nested():
                self._session.add(
                    InventoryBalance(
                        tenant_id=tenant_id,
                        site_id=delta.site_id,
                        item_id=delta.item_id,
                        quantity_on_hand=delta.after.quantity_on_hand,
                        avg_cost_per_unit=delta.after.avg_cost_per_unit,
                        version=1,
                        last_movement_type=last_type,
                        last_movement_at=now,
                    )
                )
                self._session.flush()
        except IntegrityError:
            self._conflict(delta)

    def _swap_balance(self, tenant_id, delta: InventoryDelta, last_type, now) -> None:
        result = self._session.execute(
            update(InventoryBalance)
            .where(
                InventoryBalance.tenant_id == tenant_id,
                InventoryBalance.site_id == delta.site_id,
                InventoryBalance.item_id == delta.item_id,
                InventoryBalance.version == delta.expected_version,
            )
            .values(
                quantity_on_hand=delta.after.quantity_on_hand,
                avg_cost_per_unit=delta.after.avg_cost_per_unit,
                version=delta.expected_version + 1,
                last_movement_type=last_type,
                last_movement_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self._conflict(delta)

    def _conflict(self, delta: InventoryDelta) -> None:
        logger.warning(
            "inventory_conflict",
            extra={
                "site_id": delta.site_id,
                "item_id": delta.item_id,
                "expected_version": delta.expected_version,
            },
        )
        raise StorageConflictError(
            "InventoryBalance",
            f"{delta.site_id}/{delta.item_id}",
            expected_version=delta.expected_version,
        ) from None

    def set_reorder_point(
        self,
        tenant_id: str,
        site_id: str,
        item_id: str,
        reorder_point: Decimal | None,
        reorder_quantity: Decimal | None = None,
    ) -> BalanceSnapshot:
        """Set (or clear, with None) the reorder threshold of a balance."""
        if reorder_point is not None and reorder_point < ZERO:
            raise ValueError("reorder_point must not be negative")
        if reorder_quantity is not None and reorder_quantity <= ZERO:
            raise ValueError("reorder_quantity must be positive")
        self.get_balance(tenant_id, site_id, item_id)
        self._session.execute(
            update(InventoryBalance)
            .where(
                InventoryBalance.tenant_id == tenant_id,
                InventoryBalance.site_id == site_id,
                InventoryBalance.item_id == item_id,
            )
            .values(reorder_point=reorder_point, reorder_quantity=reorder_quantity)
            .execution_options(synchronize_session=False)
        )
        logger.info(
            "reorder_point_set",
            extra={
                "site_id": site_id,
                "item_id": item_id,
                "reorder_point": str(reorder_point) if reorder_point is not None else None,
            },
        )
        return self.snapshot(tenant_id, site_id, item_id)

    def items_below_reorder_point(
        self, tenant_id: str, site_id: str | None = None
    ) -> list[BalanceSnapshot]:
        """Balances whose quantity on hand is at or below their reorder point."""
        stmt = select(InventoryBalance).where(
            InventoryBalance.tenant_id == tenant_id,
            InventoryBalance.reorder_point.is_not(None),
            InventoryBalance.quantity_on_hand <= InventoryBalance.reorder_point,
        )
        if site_id is not None:
            stmt = stmt.where(InventoryBalance.site_id == site_id)
        stmt = stmt.order_by(InventoryBalance.site_id, InventoryBalance.item_id)
        return [_snapshot(row) for row in self._session.execute(stmt).scalars()]

    def list_movements(
        self,
        tenant_id: str,
        event_id: UUID | None = None,
        site_id: str | None = None,
        item_id: str | None = None,
    ) -> list[InventoryMovement]:
        stmt = select(InventoryMovement).where(InventoryMovement.tenant_id == tenant_id)
        if event_id is not None:
            stmt = stmt.where(InventoryMovement.event_id == event_id)
        if site_id is not None:
            stmt = stmt.where(InventoryMovement.site_id == site_id)
        if item_id is not None:
            stmt = stmt.where(InventoryMovement.item_id == item_id)
        stmt = stmt.order_by(InventoryMovement.sequence)
        return list(self._session.execute(stmt).scalars().all())

    # ------------------------------------------------------------------
    # Livestock cost basis
    # ------------------------------------------------------------------

    def get_cost_basis(self, tenant_id: str, group_id: str) -> Decimal:
        row = self._find_cost_basis(tenant_id, group_id)
        return row.total_cost if row is not None else ZERO

    def _find_cost_basis(self, tenant_id: str, group_id: str) -> LivestockCostBasis | None:
        return self._session.execute(
            select(LivestockCostBasis)
            .where(
                LivestockCostBasis.tenant_id == tenant_id,
                LivestockCostBasis.group_id == group_id,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def apply_cost_basis_deltas(
        self,
        tenant_id: str,
        deltas: tuple[CostBasisDelta, ...] | list[CostBasisDelta],
    ) -> None:
        """Add signed amounts to group cost bases, flooring each at zero."""
        for delta in deltas:
            row = self._find_cost_basis(tenant_id, delta.group_id)
            if row is None:
                try:
                    with self._session.begin_nested():
                        self._session.add(
                            LivestockCostBasis(
                                tenant_id=tenant_id,
                                group_id=delta.group_id,
                                total_cost=max(delta.amount, ZERO),
                                version=1,
                            )
                        )
                        self._session.flush()
                except IntegrityError:
                    raise StorageConflictError("LivestockCostBasis", delta.group_id, 0) from None
                new_total = max(delta.amount, ZERO)
            else:
                new_total = max(row.total_cost + delta.amount, ZERO)
                result = self._session.execute(
                    update(LivestockCostBasis)
                    .where(
                        LivestockCostBasis.id == row.id,
                        LivestockCostBasis.version == row.version,
                    )
                    .values(total_cost=new_total, version=row.version + 1)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise StorageConflictError("LivestockCostBasis", delta.group_id, row.version)
            logger.info(
                "cost_basis_updated",
                extra={"group_id": delta.group_id, "total_cost": str(new_total)},
            )
