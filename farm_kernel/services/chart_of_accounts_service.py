"""
ChartOfAccountsService -- a tenant's chart of accounts.

Responsibility:
    Seeds the default farm chart, creates and deactivates accounts, and
    produces the immutable ChartOfAccounts snapshot that posting rules
    resolve account roles against.

Architecture position:
    Kernel > Services.  The default chart and the role -> code mapping are
    handed in by the caller (farm_config supplies them); the kernel never
    reads configuration itself.

Invariants enforced:
    - Account codes are unique per tenant.
    - normal_balance is always derived from account_type.
    - Seeded accounts are system accounts and cannot be deleted; accounts
      referenced by ledger lines cannot be deleted either, only deactivated.

Failure modes:
    - ValidationError: bad or duplicate code, empty name, unknown type.
    - AccountNotFoundError: unknown code.
    - SystemAccountError / ImmutabilityViolationError on forbidden deletes.
"""

from collections.abc import Mapping, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from farm_kernel.domain.chart import AccountDefinition, AccountRef, AccountRole, ChartOfAccounts
from farm_kernel.domain.clock import Clock, SystemClock
from farm_kernel.exceptions import AccountNotFoundError, SystemAccountError, ValidationError
from farm_kernel.logging_config import get_logger
from farm_kernel.models.account import Account, AccountType, NormalBalance, normal_balance_for

logger = get_logger("services.chart_of_accounts")

_MAX_CODE_LENGTH = 20


def account_ref(account: Account) -> AccountRef:
    """Read-only view of an account row."""
    return AccountRef(
        id=account.id,
        code=account.code,
        name=account.name,
        account_type=AccountType(account.account_type),
        normal_balance=NormalBalance(account.normal_balance),
        is_active=account.is_active,
    )


class ChartOfAccountsService:
    """Manage a tenant's accounts.  Does not commit."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        role_codes: Mapping[AccountRole, str] | None = None,
        default_chart: Sequence[AccountDefinition] = (),
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._role_codes = dict(role_codes or {})
        self._default_chart = tuple(default_chart)

    def seed_defaults(self, tenant_id: str, actor_id: str) -> int:
        """Create the default chart for a tenant that has no accounts yet.

        Returns:
            Number of accounts created (0 if the tenant already had a chart).
        """
        existing = self._session.execute(
            select(func.count(Account.id)).where(Account.tenant_id == tenant_id)
        ).scalar_one()
        if existing:
            logger.info(
                "chart_seed_skipped",
                extra={"tenant_id": tenant_id, "existing_accounts": existing},
            )
            return 0

        try:
            with self._session.begin_nested():
                for definition in self._default_chart:
                    self._session.add(self._new_account(tenant_id, definition, actor_id, is_system=True))
                self._session.flush()
        except IntegrityError:
            # Seeded concurrently by another caller
            logger.info("chart_seed_conflict", extra={"tenant_id": tenant_id})
            return 0

        logger.info(
            "chart_seeded",
            extra={"tenant_id": tenant_id, "account_count": len(self._default_chart)},
        )
        return len(self._default_chart)

    def _new_account(
        self,
        tenant_id: str,
        definition: AccountDefinition,
        actor_id: str,
        is_system: bool = False,
    ) -> Account:
        account_type = AccountType(definition.account_type)
        return Account(
            tenant_id=tenant_id,
            code=definition.code,
            name=definition.name,
            account_type=account_type.value,
            subtype=definition.subtype,
            normal_balance=normal_balance_for(account_type).value,
            is_active=True,
            is_system=is_system,
            created_at=self._clock.now(),
            created_by=actor_id,
        )

    def create_account(
        self,
        tenant_id: str,
        code: str,
        name: str,
        account_type: AccountType | str,
        subtype: str | None = None,
        *,
        actor_id: str,
    ) -> Account:
        errors = []
        code = (code or "").strip()
        if not code:
            errors.append({"field": "code", "message": "is required"})
        elif len(code) > _MAX_CODE_LENGTH:
            errors.append({"field": "code", "message": f"must be at most {_MAX_CODE_LENGTH} characters"})
        if not name or not name.strip():
            errors.append({"field": "name", "message": "is required"})
        try:
            account_type = AccountType(account_type)
        except ValueError:
            errors.append({"field": "accountType", "message": f"unknown account type {account_type!r}"})
        if not errors and self.find_by_code(tenant_id, code) is not None:
            errors.append({"field": "code", "message": f"account {code} already exists"})
        if errors:
            raise ValidationError("Account", errors)

        account = self._new_account(
            tenant_id,
            AccountDefinition(code=code, name=name.strip(), account_type=account_type, subtype=subtype),
            actor_id,
        )
        try:
            with self._session.begin_nested():
                self._session.add(account)
                self._session.flush()
        except IntegrityError:
            raise ValidationError(
                "Account", [{"field": "code", "message": f"account {code} already exists"}]
            ) from None

        logger.info(
            "account_created",
            extra={"tenant_id": tenant_id, "account_code": code, "account_type": account_type.value},
        )
        return account

    def find_by_code(self, tenant_id: str, code: str) -> Account | None:
        return self._session.execute(
            select(Account).where(Account.tenant_id == tenant_id, Account.code == code)
        ).scalar_one_or_none()

    def get_by_code(self, tenant_id: str, code: str) -> Account:
        account = self.find_by_code(tenant_id, code)
        if account is None:
            raise AccountNotFoundError(code, tenant_id)
        return account

    def list_accounts(self, tenant_id: str, active_only: bool = False) -> list[Account]:
        stmt = select(Account).where(Account.tenant_id == tenant_id)
        if active_only:
            stmt = stmt.where(Account.is_active.is_(True))
        return list(self._session.execute(stmt.order_by(Account.code)).scalars().all())

    def _set_active(self, tenant_id: str, code: str, active: bool, actor_id: str) -> Account:
        account = self.get_by_code(tenant_id, code)
        account.is_active = active
        account.updated_by = actor_id
        self._session.flush()
        logger.info(
            "account_activated" if active else "account_deactivated",
            extra={"tenant_id": tenant_id, "account_code": code},
        )
        return account

    def deactivate_account(self, tenant_id: str, code: str, actor_id: str) -> Account:
        return self._set_active(tenant_id, code, False, actor_id)

    def activate_account(self, tenant_id: str, code: str, actor_id: str) -> Account:
        return self._set_active(tenant_id, code, True, actor_id)

    def delete_account(self, tenant_id: str, code: str) -> None:
        """
        Delete a user-created account that no ledger line references.

        Raises:
            SystemAccountError: for accounts of the default chart.
            ImmutabilityViolationError: if ledger lines reference it.
        """
        account = self.get_by_code(tenant_id, code)
        if account.is_system:
            raise SystemAccountError(code)
        self._session.delete(account)
        self._session.flush()
        logger.info("account_deleted", extra={"tenant_id": tenant_id, "account_code": code})

    def snapshot(self, tenant_id: str) -> ChartOfAccounts:
        """Immutable view of the tenant's accounts with the configured roles."""
        accounts = self.list_accounts(tenant_id)
        return ChartOfAccounts(
            tenant_id=tenant_id,
            accounts=[account_ref(account) for account in accounts],
            role_codes=self._role_codes,
        )
