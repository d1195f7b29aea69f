"""
ChartOfAccountsService: default chart seeding, account lifecycle and the
role snapshot used by posting rules.
"""

from uuid import uuid4

import pytest

from farm_kernel.domain.chart import AccountRole
from farm_kernel.exceptions import (
    AccountInactiveError,
    AccountNotFoundError,
    SystemAccountError,
    ValidationError,
)
from farm_kernel.models.account import AccountType, NormalBalance
from farm_kernel.services.chart_of_accounts_service import ChartOfAccountsService

from conftest import TEST_ACTOR


@pytest.fixture
def chart_service(session, chart_service_factory):
    return chart_service_factory(session)


class TestSeedDefaults:
    def test_seeds_default_chart_once(self, chart_service, captured_logs):
        tenant = f"farm-{uuid4().hex[:8]}"
        assert chart_service.seed_defaults(tenant, TEST_ACTOR) == 26
        assert chart_service.seed_defaults(tenant, TEST_ACTOR) == 0

        messages = [r["message"] for r in captured_logs()]
        assert "chart_seeded" in messages
        assert "chart_seed_skipped" in messages

    def test_seeded_accounts_are_active_system_accounts(self, chart_service, tenant_id):
        accounts = chart_service.list_accounts(tenant_id)
        assert len(accounts) == 26
        assert all(a.is_system and a.is_active for a in accounts)
        assert [a.code for a in accounts] == sorted(a.code for a in accounts)

    def test_medicine_and_variance_accounts_seeded(self, chart_service, tenant_id):
        chart = chart_service.snapshot(tenant_id)
        assert chart.for_role(AccountRole.MEDICINE_INVENTORY).code == "1220"
        assert chart.for_role(AccountRole.MEDICINE_INVENTORY).name == "Medicine Inventory"
        assert chart.for_role(AccountRole.PURCHASE_PRICE_VARIANCE).account_type == AccountType.COGS

    def test_normal_balance_follows_type(self, chart_service, tenant_id):
        assert chart_service.get_by_code(tenant_id, "1000").normal_balance == NormalBalance.DEBIT.value
        assert chart_service.get_by_code(tenant_id, "2000").normal_balance == NormalBalance.CREDIT.value
        assert chart_service.get_by_code(tenant_id, "4000").normal_balance == NormalBalance.CREDIT.value
        assert chart_service.get_by_code(tenant_id, "5000").normal_balance == NormalBalance.DEBIT.value


class TestCreateAccount:
    def test_create(self, chart_service, tenant_id):
        account = chart_service.create_account(
            tenant_id, "6750", "Veterinary Fees", AccountType.EXPENSE, actor_id=TEST_ACTOR
        )
        assert account.is_system is False
        assert account.normal_balance == NormalBalance.DEBIT.value
        assert chart_service.find_by_code(tenant_id, "6750").name == "Veterinary Fees"

    def test_duplicate_code(self, chart_service, tenant_id):
        with pytest.raises(ValidationError) as exc_info:
            chart_service.create_account(tenant_id, "1000", "Petty Cash", "ASSET", actor_id=TEST_ACTOR)
        assert exc_info.value.field_errors[0]["field"] == "code"

    def test_reports_every_problem(self, chart_service, tenant_id):
        with pytest.raises(ValidationError) as exc_info:
            chart_service.create_account(tenant_id, "", " ", "GOODWILL", actor_id=TEST_ACTOR)
        assert {e["field"] for e in exc_info.value.field_errors} == {"code", "name", "accountType"}

    def test_code_too_long(self, chart_service, tenant_id):
        with pytest.raises(ValidationError):
            chart_service.create_account(tenant_id, "9" * 21, "Long", "ASSET", actor_id=TEST_ACTOR)


class TestActivation:
    def test_deactivate_and_reactivate(self, chart_service, tenant_id):
        chart_service.deactivate_account(tenant_id, "6600", TEST_ACTOR)
        assert chart_service.get_by_code(tenant_id, "6600").is_active is False
        assert "6600" not in {a.code for a in chart_service.list_accounts(tenant_id, active_only=True)}

        account = chart_service.activate_account(tenant_id, "6600", TEST_ACTOR)
        assert account.is_active is True
        assert account.updated_by == TEST_ACTOR

    def test_unknown_code(self, chart_service, tenant_id):
        with pytest.raises(AccountNotFoundError):
            chart_service.deactivate_account(tenant_id, "9999", TEST_ACTOR)


class TestDeleteAccount:
    def test_user_account_can_be_deleted(self, chart_service, tenant_id):
        chart_service.create_account(tenant_id, "6750", "Vet", "EXPENSE", actor_id=TEST_ACTOR)
        chart_service.delete_account(tenant_id, "6750")
        assert chart_service.find_by_code(tenant_id, "6750") is None

    def test_system_account_cannot_be_deleted(self, chart_service, tenant_id):
        with pytest.raises(SystemAccountError):
            chart_service.delete_account(tenant_id, "1000")
        assert chart_service.find_by_code(tenant_id, "1000") is not None


class TestSnapshot:
    def test_resolves_roles(self, chart_service, tenant_id):
        chart = chart_service.snapshot(tenant_id)
        assert len(chart) == 26
        assert chart.for_role(AccountRole.CASH).code == "1000"
        assert chart.for_role(AccountRole.LABOR_EXPENSE).code == "6400"
        assert "1500" in chart

    def test_inactive_role_account(self, chart_service, tenant_id):
        chart_service.deactivate_account(tenant_id, "6300", TEST_ACTOR)
        with pytest.raises(AccountInactiveError):
            chart_service.snapshot(tenant_id).for_role(AccountRole.MEDICAL_EXPENSE)

    def test_role_code_missing_from_chart(self, session, deterministic_clock, engine_settings):
        empty = ChartOfAccountsService(session, deterministic_clock, role_codes=engine_settings.role_codes)
        with pytest.raises(AccountNotFoundError):
            empty.snapshot("farm-empty").for_role(AccountRole.CASH)

    def test_unmapped_role(self, session, deterministic_clock, engine_settings, tenant_id):
        unmapped = ChartOfAccountsService(session, deterministic_clock, role_codes={})
        with pytest.raises(AccountNotFoundError) as exc_info:
            unmapped.snapshot(tenant_id).for_role(AccountRole.CASH)
        assert "CASH" in exc_info.value.account_code
