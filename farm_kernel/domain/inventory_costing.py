"""
Weighted-average inventory costing.

Responsibility:
    Pure arithmetic of receipts and consumptions on an (site, item) position,
    and the InventoryWorkbook that posting rules use to chain several
    movements within one posting before anything is persisted.

Architecture position:
    Kernel > Domain.  Pure.  InventoryService supplies the positions read
    from storage and applies the resulting deltas with a compare-and-swap on
    the balance row version.

Invariants enforced:
    - Receipt: new_avg = (q * avg + qty * cost) / (q + qty), new_q = q + qty.
      Negative stock blends by value too, so the balance keeps matching the
      inventory account.  Only when the receipt leaves the quantity at zero
      or below does the incoming cost become the average.
    - Consumption never changes the average and may drive the quantity
      negative (consumption logged before a physical count reconciles).
    - Quantities for receipt and consumption must be positive.

Failure modes:
    - InvalidQuantityError for qty <= 0.
"""

from collections.abc import Callable
from dataclasses import dataclass, field, replace
from decimal import Decimal

from farm_kernel.domain.values import ZERO, quantize
from farm_kernel.exceptions import InvalidQuantityError
from farm_kernel.models.inventory import MovementType


@dataclass(frozen=True, slots=True)
class InventoryPosition:
    """
    Quantity on hand and average unit cost of one item at one site.

    ``version`` is the storage version the position was read at (0 for a
    balance that does not exist yet).
    """

    quantity_on_hand: Decimal = ZERO
    avg_cost_per_unit: Decimal = ZERO
    version: int = 0

    @property
    def total_value(self) -> Decimal:
        return self.quantity_on_hand * self.avg_cost_per_unit


def apply_receipt(
    position: InventoryPosition,
    qty: Decimal,
    cost_per_unit: Decimal,
    cost_places: int = 2,
) -> InventoryPosition:
    """Receive ``qty`` units at ``cost_per_unit`` and re-weight the average."""
    if qty <= ZERO:
        raise InvalidQuantityError(str(qty), "receipt")
    new_qty = position.quantity_on_hand + qty
    if new_qty <= ZERO:
        # Still short after the receipt: there is no quantity to spread value over
        new_avg = cost_per_unit
    else:
        new_avg = (
            position.quantity_on_hand * position.avg_cost_per_unit + qty * cost_per_unit
        ) / new_qty
    return replace(
        position,
        quantity_on_hand=new_qty,
        avg_cost_per_unit=quantize(new_avg, cost_places),
    )


def apply_consumption(
    position: InventoryPosition,
    qty: Decimal,
) -> tuple[InventoryPosition, Decimal]:
    """Consume ``qty`` units at the current average.

    Returns:
        (new position, unit cost the units were consumed at)
    """
    if qty <= ZERO:
        raise InvalidQuantityError(str(qty), "consumption")
    return (
        replace(position, quantity_on_hand=position.quantity_on_hand - qty),
        position.avg_cost_per_unit,
    )


@dataclass(frozen=True, slots=True)
class MovementRecord:
    """One movement applied in a workbook, for the audit trail."""

    movement_type: MovementType
    quantity: Decimal  # signed
    unit_cost: Decimal
    quantity_after: Decimal
    avg_cost_after: Decimal
    related_site_id: str | None = None
    reason: str | None = None

    @property
    def total_cost(self) -> Decimal:
        return abs(self.quantity) * self.unit_cost


@dataclass(frozen=True)
class InventoryDelta:
    """Final position of one (site, item) after a posting, plus its movements."""

    site_id: str
    item_id: str
    expected_version: int
    before: InventoryPosition
    after: InventoryPosition
    movements: tuple[MovementRecord, ...]

    @property
    def quantity_change(self) -> Decimal:
        return self.after.quantity_on_hand - self.before.quantity_on_hand


PositionReader = Callable[[str, str], InventoryPosition]


@dataclass
class _Line:
    before: InventoryPosition
    current: InventoryPosition
    movements: list[MovementRecord] = field(default_factory=list)


class InventoryWorkbook:
    """
    Working set of inventory positions for one posting.

    Each (site, item) is read once through ``reader``; later movements on the
    same key build on the in-memory result, so a purchase order listing the
    same item twice blends both receipts.  ``deltas()`` yields the net change
    per key for atomic application.
    """

    def __init__(self, reader: PositionReader, cost_places: int = 2):
        self._reader = reader
        self._cost_places = cost_places
        self._lines: dict[tuple[str, str], _Line] = {}

    def _line(self, site_id: str, item_id: str) -> _Line:
        key = (site_id, item_id)
        if key not in self._lines:
            position = self._reader(site_id, item_id)
            self._lines[key] = _Line(before=position, current=position)
        return self._lines[key]

    def position(self, site_id: str, item_id: str) -> InventoryPosition:
        return self._line(site_id, item_id).current

    def receive(
        self,
        site_id: str,
        item_id: str,
        qty: Decimal,
        cost_per_unit: Decimal,
        movement_type: MovementType = MovementType.RECEIPT,
        related_site_id: str | None = None,
        reason: str | None = None,
    ) -> InventoryPosition:
        line = self._line(site_id, item_id)
        line.current = apply_receipt(line.current, qty, cost_per_unit, self._cost_places)
        line.movements.append(
            MovementRecord(
                movement_type=movement_type,
                quantity=qty,
                unit_cost=cost_per_unit,
                quantity_after=line.current.quantity_on_hand,
                avg_cost_after=line.current.avg_cost_per_unit,
                related_site_id=related_site_id,
                reason=reason,
            )
        )
        return line.current

    def consume(
        self,
        site_id: str,
        item_id: str,
        qty: Decimal,
        movement_type: MovementType = MovementType.CONSUMPTION,
        related_site_id: str | None = None,
        reason: str | None = None,
    ) -> Decimal:
        """Consume at average cost and return the unit cost used."""
        line = self._line(site_id, item_id)
        line.current, unit_cost = apply_consumption(line.current, qty)
        line.movements.append(
            MovementRecord(
                movement_type=movement_type,
                quantity=-qty,
                unit_cost=unit_cost,
                quantity_after=line.current.quantity_on_hand,
                avg_cost_after=line.current.avg_cost_per_unit,
                related_site_id=related_site_id,
                reason=reason,
            )
        )
        return unit_cost

    def deltas(self) -> tuple[InventoryDelta, ...]:
        return tuple(
            InventoryDelta(
                site_id=site_id,
                item_id=item_id,
                expected_version=line.before.version,
                before=line.before,
                after=line.current,
                movements=tuple(line.movements),
            )
            for (site_id, item_id), line in self._lines.items()
            if line.movements
        )
