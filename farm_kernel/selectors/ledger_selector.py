"""
Module: farm_kernel.selectors.ledger_selector
Responsibility: Read-only ledger queries: trial balance, account balances and
    the journal entries of an event.  Balances are derived from JournalLines
    at query time; nothing stores a ledger balance.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Sum of debit totals equals sum of credit totals over a trial balance
      (every entry written balances).
    - Amounts are summed as Decimal in Python so results are exact on every
      backend.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from farm_kernel.exceptions import AccountNotFoundError
from farm_kernel.models.account import Account, NormalBalance
from farm_kernel.models.journal import JournalEntry, JournalLine, LineSide
from farm_kernel.selectors.base import BaseSelector

_ZERO = Decimal("0")


@dataclass(frozen=True)
class TrialBalanceRow:
    """Debit and credit totals of one account."""

    account_id: UUID
    account_code: str
    account_name: str
    account_type: str
    normal_balance: str
    debit_total: Decimal
    credit_total: Decimal

    @property
    def balance(self) -> Decimal:
        """Net balance, positive on the account's normal side."""
        if self.normal_balance == NormalBalance.DEBIT.value:
            return self.debit_total - self.credit_total
        return self.credit_total - self.debit_total


@dataclass(frozen=True)
class JournalLineView:
    line_seq: int
    account_id: UUID
    account_code: str
    side: LineSide
    amount: Decimal
    site_id: str | None
    memo: str | None


@dataclass(frozen=True)
class JournalEntryView:
    id: UUID
    event_id: UUID
    event_type: str
    entry_date: date
    memo: str | None
    currency: str
    reversal_of_id: UUID | None
    lines: tuple[JournalLineView, ...]

    @property
    def total_debits(self) -> Decimal:
        return sum((l.amount for l in self.lines if l.side == LineSide.DEBIT), _ZERO)

    @property
    def total_credits(self) -> Decimal:
        return sum((l.amount for l in self.lines if l.side == LineSide.CREDIT), _ZERO)

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits

    @property
    def is_reversal(self) -> bool:
        return self.reversal_of_id is not None


def _entry_view(entry: JournalEntry) -> JournalEntryView:
    return JournalEntryView(
        id=entry.id,
        event_id=entry.event_id,
        event_type=entry.event_type,
        entry_date=entry.entry_date,
        memo=entry.memo,
        currency=entry.currency,
        reversal_of_id=entry.reversal_of_id,
        lines=tuple(
            JournalLineView(
                line_seq=line.line_seq,
                account_id=line.account_id,
                account_code=line.account_code,
                side=LineSide(line.side),
                amount=line.amount,
                site_id=line.site_id,
                memo=line.memo,
            )
            for line in entry.lines
        ),
    )


class LedgerSelector(BaseSelector):
    """Trial balance and journal reads for one tenant at a time."""

    def _totals(self, tenant_id: str, account_id: UUID | None = None):
        stmt = (
            select(JournalLine.account_id, JournalLine.side, JournalLine.amount)
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(JournalEntry.tenant_id == tenant_id)
        )
        if account_id is not None:
            stmt = stmt.where(JournalLine.account_id == account_id)

        totals: dict[UUID, list] = defaultdict(lambda: [_ZERO, _ZERO, 0])
        for line_account_id, side, amount in self.session.execute(stmt):
            bucket = totals[line_account_id]
            if side == LineSide.DEBIT.value:
                bucket[0] += amount
            else:
                bucket[1] += amount
            bucket[2] += 1
        return totals

    def trial_balance(self, tenant_id: str) -> list[TrialBalanceRow]:
        """One row per account with ledger activity, ordered by account code."""
        totals = self._totals(tenant_id)
        if not totals:
            return []
        accounts = self.session.execute(
            select(Account).where(Account.tenant_id == tenant_id, Account.id.in_(totals.keys()))
        ).scalars()
        rows = [
            TrialBalanceRow(
                account_id=account.id,
                account_code=account.code,
                account_name=account.name,
                account_type=account.account_type,
                normal_balance=account.normal_balance,
                debit_total=totals[account.id][0],
                credit_total=totals[account.id][1],
            )
            for account in accounts
        ]
        return sorted(rows, key=lambda row: row.account_code)

    def account_balance(self, tenant_id: str, code: str) -> TrialBalanceRow:
        """Totals of one account (zeros when it has no lines)."""
        account = self.session.execute(
            select(Account).where(Account.tenant_id == tenant_id, Account.code == code)
        ).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(code, tenant_id)
        debit, credit, _ = self._totals(tenant_id, account.id).get(account.id, (_ZERO, _ZERO, 0))
        return TrialBalanceRow(
            account_id=account.id,
            account_code=account.code,
            account_name=account.name,
            account_type=account.account_type,
            normal_balance=account.normal_balance,
            debit_total=debit,
            credit_total=credit,
        )

    def entries_for_event(self, tenant_id: str, event_id: UUID) -> list[JournalEntryView]:
        """The event's entry and its reversal, oldest first."""
        entries = self.session.execute(
            select(JournalEntry)
            .where(JournalEntry.tenant_id == tenant_id, JournalEntry.event_id == event_id)
            .order_by(JournalEntry.posted_at, JournalEntry.reversal_of_id.is_not(None))
        ).scalars()
        return [_entry_view(entry) for entry in entries]

    def get_entry(self, tenant_id: str, entry_id: UUID) -> JournalEntryView | None:
        entry = self.session.execute(
            select(JournalEntry).where(
                JournalEntry.tenant_id == tenant_id, JournalEntry.id == entry_id
            )
        ).scalar_one_or_none()
        return _entry_view(entry) if entry is not None else None

    def entry_count(self, tenant_id: str) -> int:
        return self.session.execute(
            select(func.count(JournalEntry.id)).where(JournalEntry.tenant_id == tenant_id)
        ).scalar_one()
