"""
Module: farm_kernel.models.account
Responsibility: ORM persistence for a tenant's chart of accounts.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Account code is unique per tenant (UNIQUE constraint).
    - normal_balance is derived from account_type and can never contradict it
      (validated on assignment of either column).
    - is_system accounts cannot be deleted (db/immutability.py).

Audit relevance:
    Posting rules resolve accounts by role and code at posting time.  An
    account referenced by journal lines is deactivated, never removed.
"""

from enum import Enum

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, validates

from farm_kernel.db.base import TrackedBase


class AccountType(str, Enum):
    """Fundamental account classification."""

    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"
    COGS = "COGS"


class NormalBalance(str, Enum):
    """The side on which an account's balance normally increases."""

    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


_NORMAL_BALANCES = {
    AccountType.ASSET: NormalBalance.DEBIT,
    AccountType.EXPENSE: NormalBalance.DEBIT,
    AccountType.COGS: NormalBalance.DEBIT,
    AccountType.LIABILITY: NormalBalance.CREDIT,
    AccountType.EQUITY: NormalBalance.CREDIT,
    AccountType.INCOME: NormalBalance.CREDIT,
}


def normal_balance_for(account_type: AccountType | str) -> NormalBalance:
    """Return the normal balance implied by an account type."""
    return _NORMAL_BALANCES[AccountType(account_type)]


class Account(TrackedBase):
    """
    A ledger account in one tenant's chart of accounts.

    Contract:
        Created through ChartOfAccountsService, which derives normal_balance
        from account_type.  Assigning a contradicting normal_balance raises
        ValueError at the ORM level.

    Non-goals:
        No account hierarchy; the farm chart is flat.
    """

    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_account_tenant_code"),
        Index("idx_account_tenant_type", "tenant_id", "account_type"),
    )

    tenant_id: Mapped[str] = mapped_column(nullable=False)

    code: Mapped[str] = mapped_column(String(20), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    account_type: Mapped[AccountType] = mapped_column(String(20), nullable=False)

    # Free-form refinement of the type (CASH, AR, INVENTORY, FEED, ...)
    subtype: Mapped[str | None] = mapped_column(String(50), nullable=True)

    normal_balance: Mapped[NormalBalance] = mapped_column(String(10), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    @validates("account_type")
    def _validate_account_type(self, key, value):
        account_type = AccountType(value)
        if self.normal_balance is not None and normal_balance_for(account_type) != self.normal_balance:
            raise ValueError(
                f"Account type {account_type.value} requires normal balance "
                f"{normal_balance_for(account_type).value}"
            )
        return account_type.value

    @validates("normal_balance")
    def _validate_normal_balance(self, key, value):
        normal_balance = NormalBalance(value)
        if self.account_type is not None and normal_balance_for(self.account_type) != normal_balance:
            raise ValueError(
                f"Normal balance {normal_balance.value} contradicts account type "
                f"{self.account_type}"
            )
        return normal_balance.value

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name} ({self.account_type})>"
