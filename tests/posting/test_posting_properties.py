"""
Property tests: any sequence of posted events leaves the ledger balanced and
the stock count equal to what was received minus what was used.
"""

from decimal import Decimal
from uuid import uuid4

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from farm_kernel.models.event import EventType
from farm_kernel.selectors.ledger_selector import LedgerSelector
from farm_kernel.services.inventory_service import InventoryService

from conftest import DEFAULT_SITE, TEST_ACTOR

ITEMS = ("corn", "hay", "mineral")

quantities = st.decimals(min_value=Decimal("0.5"), max_value=Decimal("500"), places=1)
prices = st.decimals(min_value=Decimal("0.01"), max_value=Decimal("99"), places=2)

receipts = st.tuples(st.just("receive"), st.sampled_from(ITEMS), quantities, prices)
feedings = st.tuples(st.just("feed"), st.sampled_from(ITEMS), quantities, st.none())
labor = st.tuples(st.just("labor"), st.none(), st.decimals(min_value=Decimal("0.25"), max_value=Decimal("12"), places=2), prices)
sales = st.tuples(st.just("sale"), st.none(), st.none(), prices)

steps = st.lists(st.one_of(receipts, feedings, labor, sales), min_size=1, max_size=12)


def _payload(kind, item, qty, price):
    if kind == "receive":
        return EventType.RECEIVE_PURCHASE_ORDER, {
            "items": [{"itemId": item, "qty": str(qty), "costPerUnit": str(price)}],
            "itemType": "FEED",
        }
    if kind == "feed":
        return EventType.FEED_LIVESTOCK, {"feedItemId": item, "qty": str(qty)}
    if kind == "labor":
        return EventType.LABOR, {"hours": str(qty), "rate": str(price)}
    return EventType.SALE, {"saleAmount": str(price)}


class TestPostingProperties:
    @given(steps=steps)
    @settings(
        max_examples=25,
        deadline=None,
        suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    )
    def test_ledger_balances_and_stock_adds_up(
        self, steps, in_session, chart_service_factory, post_event, deterministic_clock
    ):
        # The database is shared between examples; each one gets its own farm.
        tenant = f"prop-{uuid4().hex[:10]}"
        with in_session() as s:
            chart_service_factory(s).seed_defaults(tenant, TEST_ACTOR)

        expected = {item: Decimal("0") for item in ITEMS}
        for kind, item, qty, price in steps:
            event_type, payload = _payload(kind, item, qty, price)
            _, result = post_event(event_type, payload, tenant=tenant)
            assert result.success, result.error
            if kind == "receive":
                expected[item] += qty
            elif kind == "feed":
                expected[item] -= qty

        with in_session() as s:
            rows = LedgerSelector(s).trial_balance(tenant)
            inventory = InventoryService(s, deterministic_clock)
            on_hand = {
                item: inventory.read_position(tenant, DEFAULT_SITE, item).quantity_on_hand
                for item in ITEMS
            }

        assert sum(r.debit_total for r in rows) == sum(r.credit_total for r in rows)
        assert on_hand == expected
