"""
Journal immutability: posted entries and lines cannot be edited or
deleted, and accounts they reference cannot be deleted.
"""

from datetime import date
from decimal import Decimal

import pytest

from farm_kernel.db.engine import get_session
from farm_kernel.domain.plans import LineSpec
from farm_kernel.exceptions import ImmutabilityViolationError
from farm_kernel.models.event import EventType
from farm_kernel.models.journal import JournalEntry, LineSide
from farm_kernel.services.ledger_writer import LedgerWriter

from conftest import TEST_ACTOR


@pytest.fixture
def entry(session, create_event, chart_service_factory, deterministic_clock, tenant_id):
    event_id = create_event(EventType.LABOR, {"totalCost": "40"})
    chart = chart_service_factory(session).snapshot(tenant_id)
    return LedgerWriter(session, deterministic_clock).write_entry(
        tenant_id,
        event_id,
        EventType.LABOR.value,
        date(2024, 3, 15),
        [
            LineSpec(chart.by_code("6400"), LineSide.DEBIT, Decimal("40")),
            LineSpec(chart.by_code("1000"), LineSide.CREDIT, Decimal("40")),
        ],
        TEST_ACTOR,
    )


class TestJournalImmutability:
    def test_entry_update_blocked(self, session, entry, captured_logs):
        entry.memo = "edited"
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "JournalEntry"
        assert "memo" in exc_info.value.reason
        assert any(r["message"] == "immutability_violation_blocked" for r in captured_logs())

    def test_line_amount_update_blocked(self, session, entry):
        entry.lines[0].amount = Decimal("41")
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "JournalLine"

    def test_entry_delete_blocked(self, session, entry):
        session.delete(entry)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_line_delete_blocked(self, session, entry):
        session.delete(entry.lines[1])
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_audit_fields_may_change(self, session, entry):
        entry.updated_by = "auditor"
        session.flush()


class TestAccountDeletionProtection:
    def test_referenced_account_cannot_be_deleted(
        self, session, create_event, chart_service_factory, deterministic_clock, tenant_id
    ):
        event_id = create_event(EventType.TREATMENT, {"itemId": "wormer", "qty": "1"})
        chart_service = chart_service_factory(session)
        chart_service.create_account(tenant_id, "6750", "Vet Fees", "EXPENSE", actor_id=TEST_ACTOR)
        chart = chart_service.snapshot(tenant_id)
        LedgerWriter(session, deterministic_clock).write_entry(
            tenant_id, event_id, "TREATMENT", date(2024, 3, 15),
            [
                LineSpec(chart.by_code("6750"), LineSide.DEBIT, Decimal("12")),
                LineSpec(chart.by_code("1000"), LineSide.CREDIT, Decimal("12")),
            ],
            TEST_ACTOR,
        )

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            chart_service.delete_account(tenant_id, "6750")
        assert exc_info.value.entity_type == "Account"


class TestModuleSession:
    def test_listeners_apply_to_get_session(self, post_event):
        _, result = post_event(EventType.LABOR, {"totalCost": "12"})

        s = get_session()
        try:
            s.get(JournalEntry, result.journal_entry_id).memo = "edited"
            with pytest.raises(ImmutabilityViolationError):
                s.flush()
        finally:
            s.rollback()
            s.close()
