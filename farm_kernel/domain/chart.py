"""
Chart of accounts snapshot and account roles.

Responsibility:
    Posting rules never hard-code account codes.  They ask a ChartOfAccounts
    snapshot for the account playing a role (CASH, FEED_INVENTORY, ...); the
    role -> code mapping comes from configuration and the accounts from the
    tenant's chart at posting time.

Architecture position:
    Kernel > Domain.  Pure; imports only enum types from models.

Failure modes:
    - AccountNotFoundError when a role is unmapped or its code is missing
      from the tenant's chart.
    - AccountInactiveError when the resolved account is deactivated.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from farm_kernel.exceptions import AccountInactiveError, AccountNotFoundError
from farm_kernel.models.account import AccountType, NormalBalance, normal_balance_for


class AccountRole(str, Enum):
    """Semantic slots the posting rules debit and credit."""

    CASH = "CASH"
    ACCOUNTS_RECEIVABLE = "ACCOUNTS_RECEIVABLE"
    FEED_INVENTORY = "FEED_INVENTORY"
    SUPPLY_INVENTORY = "SUPPLY_INVENTORY"
    MEDICINE_INVENTORY = "MEDICINE_INVENTORY"
    LIVESTOCK = "LIVESTOCK"
    ACCOUNTS_PAYABLE = "ACCOUNTS_PAYABLE"
    SALES_REVENUE = "SALES_REVENUE"
    COGS = "COGS"
    PURCHASE_PRICE_VARIANCE = "PURCHASE_PRICE_VARIANCE"
    FEED_EXPENSE = "FEED_EXPENSE"
    INVENTORY_ADJUSTMENT = "INVENTORY_ADJUSTMENT"
    MEDICAL_EXPENSE = "MEDICAL_EXPENSE"
    LABOR_EXPENSE = "LABOR_EXPENSE"
    REPAIRS_EXPENSE = "REPAIRS_EXPENSE"


@dataclass(frozen=True, slots=True)
class AccountDefinition:
    """One account of a chart template (seeded into a tenant's chart)."""

    code: str
    name: str
    account_type: AccountType
    subtype: str | None = None

    @property
    def normal_balance(self) -> NormalBalance:
        return normal_balance_for(self.account_type)


@dataclass(frozen=True, slots=True)
class AccountRef:
    """Read-only view of a persisted account."""

    id: UUID
    code: str
    name: str
    account_type: AccountType
    normal_balance: NormalBalance
    is_active: bool


class ChartOfAccounts:
    """Immutable snapshot of one tenant's accounts plus the role mapping."""

    def __init__(
        self,
        tenant_id: str,
        accounts: Iterable[AccountRef],
        role_codes: Mapping[AccountRole, str],
    ):
        self.tenant_id = tenant_id
        self._by_code = {account.code: account for account in accounts}
        self._role_codes = dict(role_codes)

    def __len__(self) -> int:
        return len(self._by_code)

    def __contains__(self, code: str) -> bool:
        return code in self._by_code

    def by_code(self, code: str) -> AccountRef:
        try:
            return self._by_code[code]
        except KeyError:
            raise AccountNotFoundError(code, self.tenant_id) from None

    def for_role(self, role: AccountRole) -> AccountRef:
        """Resolve the active account playing ``role``."""
        code = self._role_codes.get(AccountRole(role))
        if code is None:
            raise AccountNotFoundError(f"<role {AccountRole(role).value}>", self.tenant_id)
        account = self.by_code(code)
        if not account.is_active:
            raise AccountInactiveError(code)
        return account
