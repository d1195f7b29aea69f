"""
Typed payload parsing.

Every event type has a payload schema; parse_payload reports all field
errors at once and produces a frozen, typed variant.
"""

from decimal import Decimal

import pytest

from farm_kernel.domain.payloads import (
    PAYLOAD_TYPES,
    BillVariancePayload,
    FeedLivestockPayload,
    InventoryTransferPayload,
    LaborPayload,
    PaymentSentPayload,
    PurchaseLivestockPayload,
    ReceivePurchaseOrderPayload,
    SalePayload,
    SellLivestockPayload,
    parse_payload,
)
from farm_kernel.exceptions import ValidationError
from farm_kernel.models.event import EventType


def _fields(exc_info) -> set[str]:
    return {err["field"] for err in exc_info.value.field_errors}


class TestPayloadRegistry:
    def test_every_event_type_has_a_schema(self):
        assert set(PAYLOAD_TYPES) == set(EventType)


class TestParsePayload:
    def test_feed_livestock(self):
        payload = parse_payload(
            EventType.FEED_LIVESTOCK, {"feedItemId": "corn", "qty": "30", "livestockGroupId": "pen-3"}
        )
        assert isinstance(payload, FeedLivestockPayload)
        assert payload.feed_item_id == "corn"
        assert payload.qty == Decimal("30")
        assert payload.livestock_group_id == "pen-3"

    def test_event_type_given_as_string(self):
        payload = parse_payload("SELL_LIVESTOCK", {"saleAmount": 2500, "costAmount": 1800})
        assert isinstance(payload, SellLivestockPayload)
        assert payload.sale_amount == Decimal("2500")

    def test_float_numbers_go_through_str(self):
        payload = parse_payload(EventType.SALE, {"saleAmount": 0.1})
        assert payload.sale_amount == Decimal("0.1")

    def test_payment_method_defaults(self):
        sale = parse_payload(EventType.SALE, {"saleAmount": "10"})
        purchase = parse_payload(EventType.PURCHASE_LIVESTOCK, {"totalCost": "10"})
        assert sale.payment_method == "CASH"
        assert purchase.payment_method == "CREDIT"

    def test_payment_method_case_insensitive(self):
        payload = parse_payload(EventType.SALE, {"saleAmount": "10", "paymentMethod": "credit"})
        assert payload.payment_method == "CREDIT"

    def test_purchase_order_items(self):
        payload = parse_payload(
            EventType.RECEIVE_PURCHASE_ORDER,
            {
                "items": [
                    {"itemId": "corn", "qty": "100", "costPerUnit": "15.50", "itemType": "feed"},
                    {"itemId": "gloves", "qty": "2", "costPerUnit": "4"},
                ],
                "poNumber": "PO-17",
            },
        )
        assert isinstance(payload, ReceivePurchaseOrderPayload)
        assert len(payload.items) == 2
        assert payload.items[0].total_cost == Decimal("1550.00")
        assert payload.item_type_of(payload.items[0]) == "FEED"
        assert payload.item_type_of(payload.items[1]) == "SUPPLY"

    def test_animal_ids_become_tuple(self):
        payload = parse_payload(EventType.PURCHASE_LIVESTOCK, {"totalCost": "900", "animalIds": ["a1", "a2"]})
        assert isinstance(payload, PurchaseLivestockPayload)
        assert payload.animal_ids == ("a1", "a2")

    def test_labor_cost_from_hours_and_rate(self):
        payload = parse_payload(EventType.LABOR, {"hours": "7.5", "rate": "20"})
        assert isinstance(payload, LaborPayload)
        assert payload.cost == Decimal("150.0")

    def test_labor_total_cost_wins(self):
        payload = parse_payload(EventType.LABOR, {"hours": "7.5", "rate": "20", "totalCost": "140"})
        assert payload.cost == Decimal("140")

    def test_payment_allocations(self):
        payload = parse_payload(
            EventType.PAYMENT_SENT,
            {
                "amount": "300",
                "vendorId": "feed-co",
                "method": "ACH",
                "allocations": [{"billId": "b-1", "amount": "200"}, {"billId": "b-2", "amount": "100"}],
            },
        )
        assert isinstance(payload, PaymentSentPayload)
        assert payload.bill_ids == ("b-1", "b-2")
        assert payload.allocations[0].amount == Decimal("200")
        assert payload.bank_account_code is None

    def test_payment_without_allocations(self):
        payload = parse_payload(EventType.PAYMENT_SENT, {"amount": "50", "vendorId": "vet"})
        assert payload.allocations == ()

    def test_bill_variance_keeps_its_sign(self):
        payload = parse_payload(EventType.BILL_VARIANCE_POSTED, {"varianceAmount": "-4.10", "vendorId": "feed-co"})
        assert isinstance(payload, BillVariancePayload)
        assert payload.variance_amount == Decimal("-4.10")

    def test_payload_is_frozen(self):
        payload = parse_payload(EventType.SALE, {"saleAmount": "10"})
        with pytest.raises(AttributeError):
            payload.sale_amount = Decimal("1")


class TestPayloadValidation:
    def test_unknown_event_type(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_payload("HARVEST", {})
        assert _fields(exc_info) == {"type"}

    def test_payload_must_be_object(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_payload(EventType.SALE, ["not", "a", "dict"])
        assert _fields(exc_info) == {"payload"}

    def test_all_errors_reported_at_once(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_payload(EventType.FEED_LIVESTOCK, {"qty": "-3"})
        assert _fields(exc_info) == {"feedItemId", "qty"}
        assert exc_info.value.event_type == "FEED_LIVESTOCK"

    @pytest.mark.parametrize("amount", ["0", "-5", "abc", True, None])
    def test_sale_amount_must_be_positive_number(self, amount):
        with pytest.raises(ValidationError) as exc_info:
            parse_payload(EventType.SALE, {"saleAmount": amount})
        assert "saleAmount" in _fields(exc_info)

    def test_non_finite_number_rejected(self):
        with pytest.raises(ValidationError):
            parse_payload(EventType.MAINTENANCE, {"totalCost": "NaN"})

    def test_amount_beyond_storage_range_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_payload(EventType.LABOR, {"totalCost": "1e27"})
        (error,) = exc_info.value.field_errors
        assert error["field"] == "totalCost"
        assert error["message"] == "must be smaller than 1e12 in magnitude"

    def test_amount_with_too_many_places_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_payload(EventType.LABOR, {"totalCost": "1.0000000001"})
        (error,) = exc_info.value.field_errors
        assert error["message"] == "must have at most 9 decimal places"

    def test_amount_at_storage_scale_accepted(self):
        payload = parse_payload(EventType.LABOR, {"totalCost": "999999999999.123456789"})
        assert payload.total_cost == Decimal("999999999999.123456789")

    def test_payment_allocated_beyond_amount(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_payload(
                EventType.PAYMENT_SENT,
                {"amount": "100", "vendorId": "feed-co", "allocations": [{"billId": "b-1", "amount": "100.01"}]},
            )
        assert _fields(exc_info) == {"allocations"}

    def test_payment_allocation_fields_checked(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_payload(EventType.PAYMENT_SENT, {"amount": "10", "allocations": [{"amount": "0"}]})
        assert _fields(exc_info) == {"vendorId", "allocations[0].billId", "allocations[0].amount"}

    def test_zero_bill_variance_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_payload(EventType.BILL_VARIANCE_POSTED, {"varianceAmount": "0", "vendorId": "feed-co"})
        assert _fields(exc_info) == {"varianceAmount"}

    def test_unknown_payment_method(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_payload(EventType.SALE, {"saleAmount": "10", "paymentMethod": "BARTER"})
        assert _fields(exc_info) == {"paymentMethod"}

    def test_head_count_must_be_whole(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_payload(EventType.SELL_LIVESTOCK, {"saleAmount": "10", "headCount": "2.5"})
        assert _fields(exc_info) == {"headCount"}

    def test_adjustment_delta_must_not_be_zero(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_payload(EventType.INVENTORY_ADJUSTMENT, {"itemId": "corn", "qtyDelta": "0"})
        assert _fields(exc_info) == {"qtyDelta"}

    def test_purchase_order_needs_items(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_payload(EventType.RECEIVE_PURCHASE_ORDER, {"items": []})
        assert _fields(exc_info) == {"items"}

    def test_purchase_order_item_errors_are_indexed(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_payload(
                EventType.RECEIVE_PURCHASE_ORDER,
                {"items": [{"itemId": "corn", "qty": "1", "costPerUnit": "1"}, {"qty": "0"}]},
            )
        assert _fields(exc_info) == {"items[1].itemId", "items[1].qty", "items[1].costPerUnit"}

    def test_sale_item_and_qty_go_together(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_payload(EventType.SALE, {"saleAmount": "10", "itemId": "corn"})
        assert _fields(exc_info) == {"qty"}

    def test_sale_cost_amount_excludes_item(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_payload(EventType.SALE, {"saleAmount": "10", "itemId": "corn", "qty": "1", "costAmount": "3"})
        assert _fields(exc_info) == {"costAmount"}

    def test_transfer_to_same_site_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_payload(
                EventType.INVENTORY_TRANSFER, {"itemId": "corn", "qty": "5", "toSiteId": "north"}, site_id="north"
            )
        assert _fields(exc_info) == {"toSiteId"}

    def test_transfer_source_defaults_to_event_site(self):
        payload = parse_payload(
            EventType.INVENTORY_TRANSFER, {"itemId": "corn", "qty": "5", "toSiteId": "south"}, site_id="north"
        )
        assert isinstance(payload, InventoryTransferPayload)
        assert payload.source_site("north") == "north"

    def test_labor_needs_cost_or_hours_and_rate(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_payload(EventType.LABOR, {"hours": "3"})
        assert _fields(exc_info) == {"totalCost"}

    def test_blank_string_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_payload(EventType.TREATMENT, {"itemId": "   ", "qty": "1"})
        assert _fields(exc_info) == {"itemId"}

    def test_unknown_keys_ignored(self):
        payload = parse_payload(EventType.SALE, {"saleAmount": "10", "color": "red"})
        assert isinstance(payload, SalePayload)
