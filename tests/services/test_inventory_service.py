"""
InventoryService: balance reads, versioned delta application, reorder
points and livestock cost basis.
"""

from decimal import Decimal

import pytest

from farm_kernel.domain.plans import CostBasisDelta
from farm_kernel.exceptions import StorageConflictError
from farm_kernel.models.event import EventType
from farm_kernel.models.inventory import MovementType
from farm_kernel.services.inventory_service import InventoryService

from conftest import DEFAULT_SITE

D = Decimal


@pytest.fixture
def event_id(create_event):
    return create_event(EventType.LABOR, {"totalCost": "1"})


@pytest.fixture
def inventory(session, deterministic_clock, engine_settings):
    return InventoryService(session, deterministic_clock, cost_places=engine_settings.cost_places)


def _receive(inventory, tenant_id, event_id, item_id, *lots, site_id=DEFAULT_SITE):
    workbook = inventory.workbook(tenant_id)
    for qty, cost in lots:
        workbook.receive(site_id, item_id, D(qty), D(cost))
    return inventory.apply_deltas(tenant_id, event_id, workbook.deltas())


class TestReads:
    def test_missing_position_is_zero_at_version_zero(self, inventory, tenant_id):
        position = inventory.read_position(tenant_id, DEFAULT_SITE, "corn")
        assert position.quantity_on_hand == 0
        assert position.version == 0
        assert inventory.snapshot(tenant_id, DEFAULT_SITE, "corn") is None

    def test_get_balance_creates_row(self, inventory, tenant_id):
        position = inventory.get_balance(tenant_id, DEFAULT_SITE, "corn")
        assert position.version == 1
        assert inventory.get_balance(tenant_id, DEFAULT_SITE, "corn").version == 1
        assert inventory.snapshot(tenant_id, DEFAULT_SITE, "corn").quantity_on_hand == 0

    def test_balances_are_per_tenant(self, inventory, tenant_id, event_id):
        _receive(inventory, tenant_id, event_id, "corn", ("10", "1"))
        assert inventory.read_position("farm-other", DEFAULT_SITE, "corn").version == 0


class TestApplyDeltas:
    def test_receipts_blend_to_weighted_average(self, inventory, tenant_id, event_id):
        written = _receive(inventory, tenant_id, event_id, "corn", ("100", "15.50"), ("50", "20.00"))

        assert written == 2
        position = inventory.read_position(tenant_id, DEFAULT_SITE, "corn")
        assert position.quantity_on_hand == D("150")
        assert position.avg_cost_per_unit == D("17.00")
        assert position.version == 1

    def test_consumption_bumps_version_and_records_movement(self, inventory, tenant_id, event_id):
        _receive(inventory, tenant_id, event_id, "corn", ("100", "15.50"), ("50", "20.00"))
        workbook = inventory.workbook(tenant_id)
        unit_cost = workbook.consume(DEFAULT_SITE, "corn", D("30"))
        inventory.apply_deltas(tenant_id, event_id, workbook.deltas())

        assert unit_cost == D("17.00")
        snapshot = inventory.snapshot(tenant_id, DEFAULT_SITE, "corn")
        assert snapshot.quantity_on_hand == D("120")
        assert snapshot.version == 2

        movements = inventory.list_movements(tenant_id, item_id="corn")
        assert [m.movement_type for m in movements] == [
            MovementType.RECEIPT.value,
            MovementType.RECEIPT.value,
            MovementType.CONSUMPTION.value,
        ]
        assert movements[-1].quantity == D("-30")
        assert movements[-1].total_cost == D("510.00")
        assert movements[-1].quantity_after == D("120")

    def test_stale_update_is_rejected(self, inventory, tenant_id, event_id, captured_logs):
        _receive(inventory, tenant_id, event_id, "corn", ("100", "2"))
        first = inventory.workbook(tenant_id)
        second = inventory.workbook(tenant_id)
        first.consume(DEFAULT_SITE, "corn", D("10"))
        second.consume(DEFAULT_SITE, "corn", D("20"))

        inventory.apply_deltas(tenant_id, event_id, first.deltas())
        with pytest.raises(StorageConflictError) as exc_info:
            inventory.apply_deltas(tenant_id, event_id, second.deltas())

        assert exc_info.value.expected_version == 1
        assert inventory.read_position(tenant_id, DEFAULT_SITE, "corn").quantity_on_hand == D("90")
        assert any(r["message"] == "inventory_conflict" for r in captured_logs())

    def test_concurrent_first_insert_is_rejected(self, inventory, tenant_id, event_id):
        first = inventory.workbook(tenant_id)
        second = inventory.workbook(tenant_id)
        first.receive(DEFAULT_SITE, "hay", D("5"), D("8"))
        second.receive(DEFAULT_SITE, "hay", D("7"), D("9"))

        inventory.apply_deltas(tenant_id, event_id, first.deltas())
        with pytest.raises(StorageConflictError):
            inventory.apply_deltas(tenant_id, event_id, second.deltas())
        assert inventory.read_position(tenant_id, DEFAULT_SITE, "hay").quantity_on_hand == D("5")

    def test_movements_listed_in_applied_order_across_postings(self, inventory, tenant_id, event_id):
        # Every posting below records at the same clock reading
        _receive(inventory, tenant_id, event_id, "corn", ("10", "1"), ("10", "2"))
        _receive(inventory, tenant_id, event_id, "hay", ("4", "3"))
        workbook = inventory.workbook(tenant_id)
        workbook.consume(DEFAULT_SITE, "hay", D("1"))
        workbook.consume(DEFAULT_SITE, "corn", D("5"))
        inventory.apply_deltas(tenant_id, event_id, workbook.deltas())

        movements = inventory.list_movements(tenant_id)
        assert [(m.item_id, m.movement_type) for m in movements] == [
            ("corn", "RECEIPT"),
            ("corn", "RECEIPT"),
            ("hay", "RECEIPT"),
            ("hay", "CONSUMPTION"),
            ("corn", "CONSUMPTION"),
        ]
        sequences = [m.sequence for m in movements]
        assert sequences == sorted(sequences)
        assert len(set(sequences)) == len(sequences)

    def test_list_movements_filters(self, inventory, tenant_id, event_id):
        _receive(inventory, tenant_id, event_id, "corn", ("1", "1"))
        _receive(inventory, tenant_id, event_id, "corn", ("1", "1"), site_id="site-south")
        assert len(inventory.list_movements(tenant_id, event_id=event_id)) == 2
        assert len(inventory.list_movements(tenant_id, site_id="site-south")) == 1

    def test_list_balances(self, inventory, tenant_id, event_id):
        _receive(inventory, tenant_id, event_id, "corn", ("1", "1"))
        _receive(inventory, tenant_id, event_id, "hay", ("1", "1"), site_id="site-south")
        assert [b.item_id for b in inventory.list_balances(tenant_id)] == ["corn", "hay"]
        assert [b.item_id for b in inventory.list_balances(tenant_id, site_id="site-south")] == ["hay"]


class TestReorderPoints:
    def test_flags_items_at_or_below_threshold(self, inventory, tenant_id, event_id):
        _receive(inventory, tenant_id, event_id, "corn", ("40", "3"))
        _receive(inventory, tenant_id, event_id, "hay", ("500", "1"))
        inventory.set_reorder_point(tenant_id, DEFAULT_SITE, "corn", D("40"), D("200"))
        inventory.set_reorder_point(tenant_id, DEFAULT_SITE, "hay", D("100"))

        (low,) = inventory.items_below_reorder_point(tenant_id)
        assert low.item_id == "corn"
        assert low.is_below_reorder_point
        assert low.reorder_quantity == D("200")

    def test_clearing_the_threshold(self, inventory, tenant_id):
        inventory.set_reorder_point(tenant_id, DEFAULT_SITE, "corn", D("10"))
        assert len(inventory.items_below_reorder_point(tenant_id)) == 1
        snapshot = inventory.set_reorder_point(tenant_id, DEFAULT_SITE, "corn", None)
        assert snapshot.reorder_point is None
        assert inventory.items_below_reorder_point(tenant_id) == []

    def test_site_filter(self, inventory, tenant_id):
        inventory.set_reorder_point(tenant_id, "site-south", "corn", D("10"))
        assert inventory.items_below_reorder_point(tenant_id, site_id=DEFAULT_SITE) == []

    @pytest.mark.parametrize("point,qty", [(D("-1"), None), (D("5"), D("0"))])
    def test_rejects_bad_values(self, inventory, tenant_id, point, qty):
        with pytest.raises(ValueError):
            inventory.set_reorder_point(tenant_id, DEFAULT_SITE, "corn", point, qty)


class TestCostBasis:
    def test_absent_group_is_zero(self, inventory, tenant_id):
        assert inventory.get_cost_basis(tenant_id, "pen-1") == 0

    def test_accumulates_and_floors_at_zero(self, inventory, tenant_id):
        inventory.apply_cost_basis_deltas(tenant_id, [CostBasisDelta("pen-1", D("1200.00"))])
        inventory.apply_cost_basis_deltas(tenant_id, [CostBasisDelta("pen-1", D("300.50"))])
        assert inventory.get_cost_basis(tenant_id, "pen-1") == D("1500.50")

        inventory.apply_cost_basis_deltas(tenant_id, [CostBasisDelta("pen-1", D("-2000"))])
        assert inventory.get_cost_basis(tenant_id, "pen-1") == 0

    def test_first_delta_negative_starts_at_zero(self, inventory, tenant_id):
        inventory.apply_cost_basis_deltas(tenant_id, [CostBasisDelta("pen-2", D("-50"))])
        assert inventory.get_cost_basis(tenant_id, "pen-2") == 0
