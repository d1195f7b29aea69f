"""
LedgerWriter -- validated journal entry persistence.

Responsibility:
    Turns the ledger lines of a posting plan into a persisted JournalEntry
    with its JournalLines, after checking that the entry is well formed.
    Also writes reversal entries (every line of the original, side flipped).

Architecture position:
    Kernel > Services.  Called by PostingEngine and ReversalService inside
    their posting transaction.  Does NOT commit.

Invariants enforced:
    - An entry has at least one line.
    - No line amount is negative; amounts are rounded to the currency's
      places before the balance check.
    - Sum of debits equals sum of credits.
    - Every line's account exists in the tenant's chart and is active
      (reversals only require the account to exist).
    - Journal rows are never touched again once flushed
      (db/immutability.py).

Failure modes:
    - EmptyEntryError, InvalidAmountError, UnbalancedEntryError.
    - AccountNotFoundError, AccountInactiveError.
    - IntegrityError on a second reversal of the same entry (UNIQUE
      reversal_of_id), surfaced to the caller.

Audit relevance:
    Each written entry is logged with its line count and totals.
"""

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from farm_kernel.domain.clock import Clock, SystemClock
from farm_kernel.domain.plans import LineSpec
from farm_kernel.domain.values import ZERO, quantize
from farm_kernel.exceptions import (
    AccountInactiveError,
    AccountNotFoundError,
    EmptyEntryError,
    InvalidAmountError,
    UnbalancedEntryError,
)
from farm_kernel.logging_config import get_logger
from farm_kernel.models.account import Account
from farm_kernel.models.journal import JournalEntry, JournalLine, LineSide
from farm_kernel.services.chart_of_accounts_service import account_ref

logger = get_logger("services.ledger_writer")


class LedgerWriter:
    """
    Writes balanced journal entries.

    Contract:
        write_entry() either flushes a complete, balanced entry or raises
        before anything is added to the session.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        currency: str = "USD",
        amount_places: int = 2,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._currency = currency
        self._amount_places = amount_places

    def validate_lines(
        self,
        tenant_id: str,
        lines: Sequence[LineSpec],
        event_id: UUID | None = None,
        require_active: bool = True,
    ) -> list[LineSpec]:
        """Check the lines and return them with amounts rounded."""
        if not lines:
            raise EmptyEntryError(event_id)

        rounded = []
        for line in lines:
            if line.amount < ZERO:
                raise InvalidAmountError(str(line.amount), line.account.code)
            rounded.append(
                LineSpec(
                    account=line.account,
                    side=LineSide(line.side),
                    amount=quantize(line.amount, self._amount_places),
                    site_id=line.site_id,
                    memo=line.memo,
                )
            )

        debits = sum((l.amount for l in rounded if l.side == LineSide.DEBIT), ZERO)
        credits = sum((l.amount for l in rounded if l.side == LineSide.CREDIT), ZERO)
        if debits != credits:
            logger.warning(
                "entry_unbalanced",
                extra={"debits": str(debits), "credits": str(credits)},
            )
            raise UnbalancedEntryError(str(debits), str(credits), self._currency)

        self._check_accounts(tenant_id, rounded, require_active)
        return rounded

    def _check_accounts(
        self, tenant_id: str, lines: Sequence[LineSpec], require_active: bool
    ) -> None:
        ids = {line.account.id for line in lines}
        rows = {
            account.id: account
            for account in self._session.execute(
                select(Account).where(Account.tenant_id == tenant_id, Account.id.in_(ids))
            ).scalars()
        }
        for line in lines:
            account = rows.get(line.account.id)
            if account is None:
                raise AccountNotFoundError(line.account.code, tenant_id)
            if require_active and not account.is_active:
                raise AccountInactiveError(account.code)

    def write_entry(
        self,
        tenant_id: str,
        event_id: UUID,
        event_type: str,
        entry_date: date,
        lines: Sequence[LineSpec],
        actor_id: str,
        memo: str | None = None,
        reversal_of_id: UUID | None = None,
    ) -> JournalEntry:
        """Validate ``lines`` and flush them as one journal entry."""
        checked = self.validate_lines(
            tenant_id,
            lines,
            event_id=event_id,
            require_active=reversal_of_id is None,
        )
        now = self._clock.now()
        entry = JournalEntry(
            tenant_id=tenant_id,
            event_id=event_id,
            event_type=event_type,
            entry_date=entry_date,
            memo=memo,
            currency=self._currency,
            posted_at=now,
            reversal_of_id=reversal_of_id,
            created_at=now,
            created_by=actor_id,
        )
        for seq, line in enumerate(checked):
            entry.lines.append(
                JournalLine(
                    account_id=line.account.id,
                    account_code=line.account.code,
                    side=line.side.value,
                    amount=line.amount,
                    site_id=line.site_id,
                    memo=line.memo,
                    line_seq=seq,
                )
            )
        self._session.add(entry)
        self._session.flush()

        total = sum((l.amount for l in checked if l.side == LineSide.DEBIT), ZERO)
        logger.info(
            "journal_entry_written",
            extra={
                "entry_id": str(entry.id),
                "event_id": str(event_id),
                "line_count": len(checked),
                "total": str(total),
                "is_reversal": reversal_of_id is not None,
            },
        )
        return entry

    def write_reversal(
        self,
        original: JournalEntry,
        actor_id: str,
        entry_date: date,
        memo: str | None = None,
    ) -> JournalEntry:
        """Write the mirror image of ``original``: same lines, sides flipped."""
        accounts = {
            account.id: account
            for account in self._session.execute(
                select(Account).where(
                    Account.tenant_id == original.tenant_id,
                    Account.id.in_({line.account_id for line in original.lines}),
                )
            ).scalars()
        }
        flipped = []
        for line in original.lines:
            account = accounts.get(line.account_id)
            if account is None:
                raise AccountNotFoundError(line.account_code, original.tenant_id)
            flipped.append(
                LineSpec(
                    account=account_ref(account),
                    side=LineSide(line.side).flipped(),
                    amount=Decimal(line.amount),
                    site_id=line.site_id,
                    memo=line.memo,
                )
            )
        return self.write_entry(
            tenant_id=original.tenant_id,
            event_id=original.event_id,
            event_type=original.event_type,
            entry_date=entry_date,
            lines=flipped,
            actor_id=actor_id,
            memo=memo or f"Reversal of {original.memo or original.id}",
            reversal_of_id=original.id,
        )
