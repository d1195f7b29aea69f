"""
Typed event payloads.

Responsibility:
    One frozen dataclass per event type, carrying only the fields that type
    needs.  ``parse_payload`` turns the raw JSON payload of an event into the
    matching variant or raises ValidationError listing every field problem.
    Posting rules receive the typed variant, never the raw dict.

Architecture position:
    Kernel > Domain.  Pure.  Used by EventStore at creation (reject before
    persisting) and by the posting engine at dispatch (the stored payload is
    parsed again, so rules never read raw dicts).

Invariants enforced:
    - PAYLOAD_TYPES covers every EventType (checked at import).
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar

from farm_kernel.domain.schemas import FieldType, PayloadField, validate_fields
from farm_kernel.exceptions import ValidationError
from farm_kernel.models.event import EventType


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CREDIT = "CREDIT"


class ItemType(str, Enum):
    FEED = "FEED"
    SUPPLY = "SUPPLY"
    MEDICAL = "MEDICAL"
    OTHER = "OTHER"


_PAYMENT_METHODS = frozenset(m.value for m in PaymentMethod)
_ITEM_TYPES = frozenset(t.value for t in ItemType)


def _payment_method(default: PaymentMethod) -> PayloadField:
    return PayloadField(
        "paymentMethod", FieldType.STRING, required=False,
        default=default.value, allowed_values=_PAYMENT_METHODS,
    )


def _item_type(default: ItemType = ItemType.SUPPLY) -> PayloadField:
    return PayloadField(
        "itemType", FieldType.STRING, required=False,
        default=default.value, allowed_values=_ITEM_TYPES,
    )


def _optional_text(name: str, max_length: int = 500) -> PayloadField:
    return PayloadField(name, FieldType.STRING, required=False, max_length=max_length)


class EventPayload:
    """Base of all payload variants."""

    event_type: ClassVar[EventType]
    FIELDS: ClassVar[tuple[PayloadField, ...]]

    def cross_field_errors(self, site_id: str | None) -> list[dict]:
        """Errors that involve more than one field (or the event's site)."""
        return []

    @classmethod
    def build(cls, values: dict[str, Any]) -> "EventPayload":
        return cls(**values)


@dataclass(frozen=True)
class FeedLivestockPayload(EventPayload):
    event_type: ClassVar[EventType] = EventType.FEED_LIVESTOCK
    FIELDS: ClassVar[tuple[PayloadField, ...]] = (
        PayloadField("feedItemId", FieldType.STRING),
        PayloadField("qty", FieldType.DECIMAL, positive=True),
        PayloadField("livestockGroupId", FieldType.STRING, required=False),
        _optional_text("notes"),
    )

    feed_item_id: str
    qty: Decimal
    livestock_group_id: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class SellLivestockPayload(EventPayload):
    event_type: ClassVar[EventType] = EventType.SELL_LIVESTOCK
    FIELDS: ClassVar[tuple[PayloadField, ...]] = (
        PayloadField("saleAmount", FieldType.DECIMAL, positive=True),
        PayloadField("costAmount", FieldType.DECIMAL, required=False, non_negative=True),
        _payment_method(PaymentMethod.CASH),
        PayloadField("livestockGroupId", FieldType.STRING, required=False),
        PayloadField("headCount", FieldType.INTEGER, required=False, positive=True),
        _optional_text("buyer"),
    )

    sale_amount: Decimal
    cost_amount: Decimal | None = None
    payment_method: str = PaymentMethod.CASH.value
    livestock_group_id: str | None = None
    head_count: int | None = None
    buyer: str | None = None


@dataclass(frozen=True)
class SalePayload(EventPayload):
    """
    General sale.  The cost side is either ``costAmount`` (booked against the
    livestock asset) or an inventory item consumed at average cost.
    """

    event_type: ClassVar[EventType] = EventType.SALE
    FIELDS: ClassVar[tuple[PayloadField, ...]] = (
        PayloadField("saleAmount", FieldType.DECIMAL, positive=True),
        PayloadField("costAmount", FieldType.DECIMAL, required=False, non_negative=True),
        _payment_method(PaymentMethod.CASH),
        PayloadField("itemId", FieldType.STRING, required=False),
        PayloadField("qty", FieldType.DECIMAL, required=False, positive=True),
        _item_type(),
        _optional_text("customer"),
    )

    sale_amount: Decimal
    cost_amount: Decimal | None = None
    payment_method: str = PaymentMethod.CASH.value
    item_id: str | None = None
    qty: Decimal | None = None
    item_type: str = ItemType.SUPPLY.value
    customer: str | None = None

    def cross_field_errors(self, site_id: str | None) -> list[dict]:
        errors = []
        if (self.item_id is None) != (self.qty is None):
            errors.append({"field": "qty", "message": "itemId and qty must be given together"})
        if self.item_id is not None and self.cost_amount is not None:
            errors.append(
                {"field": "costAmount", "message": "costAmount cannot be combined with itemId"}
            )
        return errors


@dataclass(frozen=True)
class PurchaseLivestockPayload(EventPayload):
    event_type: ClassVar[EventType] = EventType.PURCHASE_LIVESTOCK
    FIELDS: ClassVar[tuple[PayloadField, ...]] = (
        PayloadField("totalCost", FieldType.DECIMAL, positive=True),
        _payment_method(PaymentMethod.CREDIT),
        PayloadField("livestockGroupId", FieldType.STRING, required=False),
        PayloadField("animalIds", FieldType.STRING_LIST, required=False, default=()),
        PayloadField("headCount", FieldType.INTEGER, required=False, positive=True),
        _optional_text("vendor"),
    )

    total_cost: Decimal
    payment_method: str = PaymentMethod.CREDIT.value
    livestock_group_id: str | None = None
    animal_ids: tuple[str, ...] = ()
    head_count: int | None = None
    vendor: str | None = None


@dataclass(frozen=True)
class InventoryAdjustmentPayload(EventPayload):
    event_type: ClassVar[EventType] = EventType.INVENTORY_ADJUSTMENT
    FIELDS: ClassVar[tuple[PayloadField, ...]] = (
        PayloadField("itemId", FieldType.STRING),
        PayloadField("qtyDelta", FieldType.DECIMAL, non_zero=True),
        PayloadField("costPerUnit", FieldType.DECIMAL, required=False, non_negative=True),
        _item_type(),
        _optional_text("reason"),
    )

    item_id: str
    qty_delta: Decimal
    cost_per_unit: Decimal | None = None
    item_type: str = ItemType.SUPPLY.value
    reason: str | None = None


@dataclass(frozen=True)
class InventoryTransferPayload(EventPayload):
    event_type: ClassVar[EventType] = EventType.INVENTORY_TRANSFER
    FIELDS: ClassVar[tuple[PayloadField, ...]] = (
        PayloadField("itemId", FieldType.STRING),
        PayloadField("qty", FieldType.DECIMAL, positive=True),
        PayloadField("toSiteId", FieldType.STRING),
        PayloadField("fromSiteId", FieldType.STRING, required=False),
        _item_type(),
    )

    item_id: str
    qty: Decimal
    to_site_id: str
    from_site_id: str | None = None
    item_type: str = ItemType.SUPPLY.value

    def source_site(self, event_site_id: str) -> str:
        return self.from_site_id or event_site_id

    def cross_field_errors(self, site_id: str | None) -> list[dict]:
        source = self.from_site_id or site_id
        if source is not None and source == self.to_site_id:
            return [{"field": "toSiteId", "message": "must differ from the source site"}]
        return []


@dataclass(frozen=True)
class ReceivedItem:
    item_id: str
    qty: Decimal
    cost_per_unit: Decimal
    item_type: str | None = None

    @property
    def total_cost(self) -> Decimal:
        return self.qty * self.cost_per_unit


_RECEIVED_ITEM_FIELDS = (
    PayloadField("itemId", FieldType.STRING),
    PayloadField("qty", FieldType.DECIMAL, positive=True),
    PayloadField("costPerUnit", FieldType.DECIMAL, non_negative=True),
    PayloadField("itemType", FieldType.STRING, required=False, allowed_values=_ITEM_TYPES),
)


@dataclass(frozen=True)
class ReceivePurchaseOrderPayload(EventPayload):
    event_type: ClassVar[EventType] = EventType.RECEIVE_PURCHASE_ORDER
    FIELDS: ClassVar[tuple[PayloadField, ...]] = (
        PayloadField(
            "items", FieldType.OBJECT_LIST, item_fields=_RECEIVED_ITEM_FIELDS, min_items=1
        ),
        PayloadField("destinationSiteId", FieldType.STRING, required=False),
        _payment_method(PaymentMethod.CREDIT),
        _item_type(),
        _optional_text("poNumber", max_length=100),
    )

    items: tuple[ReceivedItem, ...]
    destination_site_id: str | None = None
    payment_method: str = PaymentMethod.CREDIT.value
    item_type: str = ItemType.SUPPLY.value
    po_number: str | None = None

    @classmethod
    def build(cls, values: dict[str, Any]) -> "ReceivePurchaseOrderPayload":
        items = tuple(ReceivedItem(**item) for item in values.pop("items"))
        return cls(items=items, **values)

    def item_type_of(self, item: ReceivedItem) -> str:
        return item.item_type or self.item_type


@dataclass(frozen=True)
class TreatmentPayload(EventPayload):
    """Medicine or supplies administered to animals, consumed from inventory."""

    event_type: ClassVar[EventType] = EventType.TREATMENT
    FIELDS: ClassVar[tuple[PayloadField, ...]] = (
        PayloadField("itemId", FieldType.STRING),
        PayloadField("qty", FieldType.DECIMAL, positive=True),
        _item_type(ItemType.MEDICAL),
        PayloadField("livestockGroupId", FieldType.STRING, required=False),
        PayloadField("animalId", FieldType.STRING, required=False),
        _optional_text("notes"),
    )

    item_id: str
    qty: Decimal
    item_type: str = ItemType.MEDICAL.value
    livestock_group_id: str | None = None
    animal_id: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class LaborPayload(EventPayload):
    event_type: ClassVar[EventType] = EventType.LABOR
    FIELDS: ClassVar[tuple[PayloadField, ...]] = (
        PayloadField("hours", FieldType.DECIMAL, required=False, positive=True),
        PayloadField("rate", FieldType.DECIMAL, required=False, non_negative=True),
        PayloadField("totalCost", FieldType.DECIMAL, required=False, non_negative=True),
        _payment_method(PaymentMethod.CASH),
        PayloadField("workerId", FieldType.STRING, required=False),
        _optional_text("notes"),
    )

    hours: Decimal | None = None
    rate: Decimal | None = None
    total_cost: Decimal | None = None
    payment_method: str = PaymentMethod.CASH.value
    worker_id: str | None = None
    notes: str | None = None

    @property
    def cost(self) -> Decimal:
        if self.total_cost is not None:
            return self.total_cost
        return self.hours * self.rate

    def cross_field_errors(self, site_id: str | None) -> list[dict]:
        if self.total_cost is None and (self.hours is None or self.rate is None):
            return [{"field": "totalCost", "message": "give totalCost or both hours and rate"}]
        return []


@dataclass(frozen=True)
class MaintenancePayload(EventPayload):
    event_type: ClassVar[EventType] = EventType.MAINTENANCE
    FIELDS: ClassVar[tuple[PayloadField, ...]] = (
        PayloadField("totalCost", FieldType.DECIMAL, positive=True),
        _payment_method(PaymentMethod.CASH),
        PayloadField("equipmentId", FieldType.STRING, required=False),
        _optional_text("description"),
    )

    total_cost: Decimal
    payment_method: str = PaymentMethod.CASH.value
    equipment_id: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class BillAllocation:
    bill_id: str
    amount: Decimal


_ALLOCATION_FIELDS = (
    PayloadField("billId", FieldType.STRING),
    PayloadField("amount", FieldType.DECIMAL, positive=True),
)


@dataclass(frozen=True)
class PaymentSentPayload(EventPayload):
    """
    A payment to a vendor settling open bills.

    ``bankAccountCode`` names the chart account the money leaves from; the
    CASH role account is used when it is absent.
    """

    event_type: ClassVar[EventType] = EventType.PAYMENT_SENT
    FIELDS: ClassVar[tuple[PayloadField, ...]] = (
        PayloadField("amount", FieldType.DECIMAL, positive=True),
        PayloadField("vendorId", FieldType.STRING),
        PayloadField("paymentNumber", FieldType.STRING, required=False, max_length=100),
        PayloadField("method", FieldType.STRING, required=False, max_length=50),
        PayloadField("bankAccountCode", FieldType.STRING, required=False, max_length=20),
        PayloadField(
            "allocations", FieldType.OBJECT_LIST, required=False, default=(),
            item_fields=_ALLOCATION_FIELDS,
        ),
    )

    amount: Decimal
    vendor_id: str
    payment_number: str | None = None
    method: str | None = None
    bank_account_code: str | None = None
    allocations: tuple[BillAllocation, ...] = ()

    @classmethod
    def build(cls, values: dict[str, Any]) -> "PaymentSentPayload":
        allocations = tuple(BillAllocation(**item) for item in values.pop("allocations"))
        return cls(allocations=allocations, **values)

    @property
    def bill_ids(self) -> tuple[str, ...]:
        return tuple(a.bill_id for a in self.allocations)

    def cross_field_errors(self, site_id: str | None) -> list[dict]:
        allocated = sum((a.amount for a in self.allocations), Decimal("0"))
        if allocated > self.amount:
            return [{"field": "allocations", "message": "allocated more than the payment amount"}]
        return []


@dataclass(frozen=True)
class BillVariancePayload(EventPayload):
    """
    Difference between a vendor bill and what was received against it.

    Positive: the bill is higher than the receipts, so more is owed.
    """

    event_type: ClassVar[EventType] = EventType.BILL_VARIANCE_POSTED
    FIELDS: ClassVar[tuple[PayloadField, ...]] = (
        PayloadField("varianceAmount", FieldType.DECIMAL, non_zero=True),
        PayloadField("vendorId", FieldType.STRING),
        PayloadField("billNumber", FieldType.STRING, required=False, max_length=100),
    )

    variance_amount: Decimal
    vendor_id: str
    bill_number: str | None = None


PAYLOAD_TYPES: dict[EventType, type[EventPayload]] = {
    cls.event_type: cls
    for cls in (
        FeedLivestockPayload,
        SellLivestockPayload,
        SalePayload,
        PurchaseLivestockPayload,
        InventoryAdjustmentPayload,
        InventoryTransferPayload,
        ReceivePurchaseOrderPayload,
        TreatmentPayload,
        LaborPayload,
        MaintenancePayload,
        PaymentSentPayload,
        BillVariancePayload,
    )
}

_missing = set(EventType) - set(PAYLOAD_TYPES)
if _missing:
    raise RuntimeError(f"Event types without a payload schema: {sorted(_missing)}")


def parse_payload(
    event_type: EventType | str,
    raw: Any,
    site_id: str | None = None,
) -> EventPayload:
    """
    Validate ``raw`` for ``event_type`` and build the typed payload.

    Raises:
        ValidationError: with every field error found.
    """
    try:
        event_type = EventType(event_type)
    except ValueError:
        raise ValidationError(
            str(event_type), [{"field": "type", "message": f"unknown event type {event_type!r}"}]
        ) from None

    if not isinstance(raw, dict):
        raise ValidationError(event_type.value, [{"field": "payload", "message": "must be an object"}])

    payload_cls = PAYLOAD_TYPES[event_type]
    errors: list[dict] = []
    values = validate_fields(payload_cls.FIELDS, raw, errors)
    if errors:
        raise ValidationError(event_type.value, errors)

    payload = payload_cls.build(values)
    errors = payload.cross_field_errors(site_id)
    if errors:
        raise ValidationError(event_type.value, errors)
    return payload


