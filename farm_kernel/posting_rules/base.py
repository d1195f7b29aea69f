"""
Base posting rule.

A posting rule turns one event into a PostingPlan.  Rules are pure: the
only state they see is the PostingContext (typed payload, chart snapshot,
inventory workbook, tenant policy), and the only thing they produce is the
plan.  Nothing is persisted until the engine applies the plan.
"""

from abc import ABC, abstractmethod
from decimal import Decimal

from farm_kernel.domain.chart import AccountRef, AccountRole, ChartOfAccounts
from farm_kernel.domain.payloads import EventPayload, ItemType, PaymentMethod
from farm_kernel.domain.plans import LineSpec, PostingContext, PostingPlan
from farm_kernel.domain.values import quantize
from farm_kernel.models.event import EventType
from farm_kernel.models.journal import LineSide


def inventory_role(item_type: str) -> AccountRole:
    """Feed and medicine have their own inventory accounts; everything else is Supply Inventory."""
    if item_type == ItemType.FEED.value:
        return AccountRole.FEED_INVENTORY
    if item_type == ItemType.MEDICAL.value:
        return AccountRole.MEDICINE_INVENTORY
    return AccountRole.SUPPLY_INVENTORY


def receivable_role(payment_method: str) -> AccountRole:
    """Where sale proceeds land."""
    if payment_method == PaymentMethod.CASH.value:
        return AccountRole.CASH
    return AccountRole.ACCOUNTS_RECEIVABLE


def payable_role(payment_method: str) -> AccountRole:
    """Where a purchase is settled."""
    if payment_method == PaymentMethod.CASH.value:
        return AccountRole.CASH
    return AccountRole.ACCOUNTS_PAYABLE


class BasePostingRule(ABC):
    """
    Abstract base class for posting rules.

    Contract:
        ``build_plan`` returns a plan whose lines balance.  Rules build lines
        in debit/credit pairs of the same rounded amount, so a balanced
        result follows from construction; LedgerWriter still verifies it.
    """

    event_type: EventType
    payload_type: type[EventPayload]
    version: int = 1

    def build_plan(self, ctx: PostingContext) -> PostingPlan:
        self.validate_context(ctx)
        return self.compute(ctx)

    @abstractmethod
    def compute(self, ctx: PostingContext) -> PostingPlan:
        ...

    def validate_context(self, ctx: PostingContext) -> None:
        if ctx.event.event_type != self.event_type.value:
            raise ValueError(
                f"Event type mismatch: expected {self.event_type.value}, "
                f"got {ctx.event.event_type}"
            )
        if not isinstance(ctx.payload, self.payload_type):
            raise ValueError(
                f"{type(self).__name__} expects {self.payload_type.__name__}, "
                f"got {type(ctx.payload).__name__}"
            )

    # Helpers ------------------------------------------------------------

    @staticmethod
    def money(ctx: PostingContext, value: Decimal) -> Decimal:
        return quantize(value, ctx.amount_places)

    @staticmethod
    def pair(
        debit: AccountRef,
        credit: AccountRef,
        amount: Decimal,
        site_id: str | None = None,
        memo: str | None = None,
    ) -> tuple[LineSpec, LineSpec]:
        """A debit and a credit of the same amount."""
        return (
            LineSpec(account=debit, side=LineSide.DEBIT, amount=amount, site_id=site_id, memo=memo),
            LineSpec(account=credit, side=LineSide.CREDIT, amount=amount, site_id=site_id, memo=memo),
        )

    @staticmethod
    def role(chart: ChartOfAccounts, role: AccountRole) -> AccountRef:
        return chart.for_role(role)
