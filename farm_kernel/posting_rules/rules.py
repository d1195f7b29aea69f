"""
Posting rules for the farm event types.

Account roles are resolved through the tenant's chart snapshot; inventory
effects go through the posting's InventoryWorkbook.  Every rule is a pure
function of its PostingContext.

    FEED_LIVESTOCK          Dr Feed Expense (or Livestock, capitalized)  Cr Feed Inventory
    SELL_LIVESTOCK          Dr Cash / A/R     Cr Sales Revenue
                            Dr COGS           Cr Livestock            (when costAmount)
    SALE                    Dr Cash / A/R     Cr Sales Revenue
                            Dr COGS           Cr Inventory / Livestock (when a cost applies)
    PURCHASE_LIVESTOCK      Dr Livestock      Cr Cash / A/P
    RECEIVE_PURCHASE_ORDER  Dr Inventory      Cr Cash / A/P
    INVENTORY_ADJUSTMENT    Dr Inventory      Cr Inventory Adjustment (gain; reversed for loss)
    INVENTORY_TRANSFER      no ledger lines, two inventory movements
    TREATMENT               Dr Medical Expense  Cr Inventory
    LABOR                   Dr Labor Expense    Cr Cash / A/P
    MAINTENANCE             Dr Repairs          Cr Cash / A/P
    PAYMENT_SENT            Dr A/P              Cr Cash (or the named bank account)
    BILL_VARIANCE_POSTED    Dr Price Variance   Cr A/P  (bill above receipt; reversed below)
"""

from decimal import Decimal

from farm_kernel.domain.chart import AccountRole
from farm_kernel.domain.payloads import (
    BillVariancePayload,
    FeedLivestockPayload,
    InventoryAdjustmentPayload,
    InventoryTransferPayload,
    LaborPayload,
    MaintenancePayload,
    PaymentSentPayload,
    PurchaseLivestockPayload,
    ReceivePurchaseOrderPayload,
    SalePayload,
    SellLivestockPayload,
    TreatmentPayload,
)
from farm_kernel.domain.plans import CostBasisDelta, LineSpec, PostingContext, PostingPlan
from farm_kernel.domain.values import ZERO, normalize
from farm_kernel.models.event import EventType
from farm_kernel.models.inventory import MovementType
from farm_kernel.models.journal import LineSide
from farm_kernel.models.tenant_settings import CostingMode
from farm_kernel.posting_rules.base import (
    BasePostingRule,
    inventory_role,
    payable_role,
    receivable_role,
)


class FeedLivestockRule(BasePostingRule):
    event_type = EventType.FEED_LIVESTOCK
    payload_type = FeedLivestockPayload

    def compute(self, ctx: PostingContext) -> PostingPlan:
        p: FeedLivestockPayload = ctx.payload
        site = ctx.event.site_id
        unit_cost = ctx.inventory.consume(site, p.feed_item_id, p.qty, reason=p.notes)
        amount = self.money(ctx, p.qty * unit_cost)
        memo = f"Fed {normalize(p.qty)} of {p.feed_item_id}"

        cost_basis: tuple[CostBasisDelta, ...] = ()
        if ctx.policy.livestock_costing_mode == CostingMode.CAPITALIZE:
            debit = self.role(ctx.chart, AccountRole.LIVESTOCK)
            if p.livestock_group_id:
                cost_basis = (CostBasisDelta(p.livestock_group_id, amount),)
        else:
            debit = self.role(ctx.chart, AccountRole.FEED_EXPENSE)
        credit = self.role(ctx.chart, AccountRole.FEED_INVENTORY)

        return PostingPlan(
            memo=memo,
            lines=self.pair(debit, credit, amount, site, memo),
            inventory_deltas=ctx.inventory.deltas(),
            cost_basis_deltas=cost_basis,
        )


class SellLivestockRule(BasePostingRule):
    event_type = EventType.SELL_LIVESTOCK
    payload_type = SellLivestockPayload

    def compute(self, ctx: PostingContext) -> PostingPlan:
        p: SellLivestockPayload = ctx.payload
        site = ctx.event.site_id
        memo = "Livestock sale" + (f" to {p.buyer}" if p.buyer else "")

        lines: list[LineSpec] = list(
            self.pair(
                self.role(ctx.chart, receivable_role(p.payment_method)),
                self.role(ctx.chart, AccountRole.SALES_REVENUE),
                self.money(ctx, p.sale_amount),
                site,
                memo,
            )
        )
        cost_basis: tuple[CostBasisDelta, ...] = ()
        if p.cost_amount:
            cost = self.money(ctx, p.cost_amount)
            lines.extend(
                self.pair(
                    self.role(ctx.chart, AccountRole.COGS),
                    self.role(ctx.chart, AccountRole.LIVESTOCK),
                    cost,
                    site,
                    "Cost of livestock sold",
                )
            )
            if p.livestock_group_id:
                cost_basis = (CostBasisDelta(p.livestock_group_id, -cost),)

        return PostingPlan(memo=memo, lines=tuple(lines), cost_basis_deltas=cost_basis)


class SaleRule(BasePostingRule):
    event_type = EventType.SALE
    payload_type = SalePayload

    def compute(self, ctx: PostingContext) -> PostingPlan:
        p: SalePayload = ctx.payload
        site = ctx.event.site_id
        memo = "Sale" + (f" to {p.customer}" if p.customer else "")

        lines: list[LineSpec] = list(
            self.pair(
                self.role(ctx.chart, receivable_role(p.payment_method)),
                self.role(ctx.chart, AccountRole.SALES_REVENUE),
                self.money(ctx, p.sale_amount),
                site,
                memo,
            )
        )
        if p.item_id is not None:
            unit_cost = ctx.inventory.consume(site, p.item_id, p.qty, reason="sale")
            lines.extend(
                self.pair(
                    self.role(ctx.chart, AccountRole.COGS),
                    self.role(ctx.chart, inventory_role(p.item_type)),
                    self.money(ctx, p.qty * unit_cost),
                    site,
                    f"Cost of {normalize(p.qty)} {p.item_id} sold",
                )
            )
        elif p.cost_amount:
            lines.extend(
                self.pair(
                    self.role(ctx.chart, AccountRole.COGS),
                    self.role(ctx.chart, AccountRole.LIVESTOCK),
                    self.money(ctx, p.cost_amount),
                    site,
                    "Cost of goods sold",
                )
            )

        return PostingPlan(
            memo=memo, lines=tuple(lines), inventory_deltas=ctx.inventory.deltas()
        )


class PurchaseLivestockRule(BasePostingRule):
    event_type = EventType.PURCHASE_LIVESTOCK
    payload_type = PurchaseLivestockPayload

    def compute(self, ctx: PostingContext) -> PostingPlan:
        p: PurchaseLivestockPayload = ctx.payload
        amount = self.money(ctx, p.total_cost)
        head = p.head_count or len(p.animal_ids) or None
        memo = "Livestock purchase" + (f" ({head} head)" if head else "")

        cost_basis = (
            (CostBasisDelta(p.livestock_group_id, amount),) if p.livestock_group_id else ()
        )
        return PostingPlan(
            memo=memo,
            lines=self.pair(
                self.role(ctx.chart, AccountRole.LIVESTOCK),
                self.role(ctx.chart, payable_role(p.payment_method)),
                amount,
                ctx.event.site_id,
                memo,
            ),
            cost_basis_deltas=cost_basis,
        )


class ReceivePurchaseOrderRule(BasePostingRule):
    event_type = EventType.RECEIVE_PURCHASE_ORDER
    payload_type = ReceivePurchaseOrderPayload

    def compute(self, ctx: PostingContext) -> PostingPlan:
        p: ReceivePurchaseOrderPayload = ctx.payload
        site = p.destination_site_id or ctx.event.site_id
        memo = f"Received PO {p.po_number}" if p.po_number else "Received purchase order"

        # Inventory value per account role, in first-seen order
        received: dict[AccountRole, Decimal] = {}
        for item in p.items:
            ctx.inventory.receive(site, item.item_id, item.qty, item.cost_per_unit, reason=memo)
            role = inventory_role(p.item_type_of(item))
            received[role] = received.get(role, ZERO) + self.money(ctx, item.total_cost)

        lines = [
            LineSpec(
                account=self.role(ctx.chart, role),
                side=LineSide.DEBIT,
                amount=value,
                site_id=site,
                memo=memo,
            )
            for role, value in received.items()
        ]
        lines.append(
            LineSpec(
                account=self.role(ctx.chart, payable_role(p.payment_method)),
                side=LineSide.CREDIT,
                amount=sum(received.values(), ZERO),
                site_id=site,
                memo=memo,
            )
        )
        return PostingPlan(memo=memo, lines=tuple(lines), inventory_deltas=ctx.inventory.deltas())


class InventoryAdjustmentRule(BasePostingRule):
    event_type = EventType.INVENTORY_ADJUSTMENT
    payload_type = InventoryAdjustmentPayload

    def compute(self, ctx: PostingContext) -> PostingPlan:
        p: InventoryAdjustmentPayload = ctx.payload
        site = ctx.event.site_id
        inventory = self.role(ctx.chart, inventory_role(p.item_type))
        adjustment = self.role(ctx.chart, AccountRole.INVENTORY_ADJUSTMENT)
        memo = f"Inventory adjustment {normalize(p.qty_delta):+} {p.item_id}" + (
            f": {p.reason}" if p.reason else ""
        )

        if p.qty_delta > ZERO:
            unit_cost = p.cost_per_unit
            if unit_cost is None:
                unit_cost = ctx.inventory.position(site, p.item_id).avg_cost_per_unit
            ctx.inventory.receive(
                site, p.item_id, p.qty_delta, unit_cost,
                movement_type=MovementType.ADJUSTMENT_IN, reason=p.reason,
            )
            lines = self.pair(inventory, adjustment, self.money(ctx, p.qty_delta * unit_cost), site, memo)
        else:
            qty = -p.qty_delta
            unit_cost = ctx.inventory.consume(
                site, p.item_id, qty,
                movement_type=MovementType.ADJUSTMENT_OUT, reason=p.reason,
            )
            lines = self.pair(adjustment, inventory, self.money(ctx, qty * unit_cost), site, memo)

        return PostingPlan(memo=memo, lines=lines, inventory_deltas=ctx.inventory.deltas())


class InventoryTransferRule(BasePostingRule):
    """Moves stock between sites at the source's average cost; no value leaves the tenant."""

    event_type = EventType.INVENTORY_TRANSFER
    payload_type = InventoryTransferPayload

    def compute(self, ctx: PostingContext) -> PostingPlan:
        p: InventoryTransferPayload = ctx.payload
        source = p.source_site(ctx.event.site_id)
        unit_cost = ctx.inventory.consume(
            source, p.item_id, p.qty,
            movement_type=MovementType.TRANSFER_OUT, related_site_id=p.to_site_id,
        )
        ctx.inventory.receive(
            p.to_site_id, p.item_id, p.qty, unit_cost,
            movement_type=MovementType.TRANSFER_IN, related_site_id=source,
        )
        return PostingPlan(
            memo=f"Transfer {normalize(p.qty)} {p.item_id} from {source} to {p.to_site_id}",
            inventory_deltas=ctx.inventory.deltas(),
        )


class TreatmentRule(BasePostingRule):
    event_type = EventType.TREATMENT
    payload_type = TreatmentPayload

    def compute(self, ctx: PostingContext) -> PostingPlan:
        p: TreatmentPayload = ctx.payload
        site = ctx.event.site_id
        unit_cost = ctx.inventory.consume(site, p.item_id, p.qty, reason=p.notes)
        memo = f"Treatment with {normalize(p.qty)} {p.item_id}"
        return PostingPlan(
            memo=memo,
            lines=self.pair(
                self.role(ctx.chart, AccountRole.MEDICAL_EXPENSE),
                self.role(ctx.chart, inventory_role(p.item_type)),
                self.money(ctx, p.qty * unit_cost),
                site,
                memo,
            ),
            inventory_deltas=ctx.inventory.deltas(),
        )


class LaborRule(BasePostingRule):
    event_type = EventType.LABOR
    payload_type = LaborPayload

    def compute(self, ctx: PostingContext) -> PostingPlan:
        p: LaborPayload = ctx.payload
        memo = f"Labor {normalize(p.hours)}h" if p.hours is not None else "Labor"
        return PostingPlan(
            memo=memo,
            lines=self.pair(
                self.role(ctx.chart, AccountRole.LABOR_EXPENSE),
                self.role(ctx.chart, payable_role(p.payment_method)),
                self.money(ctx, p.cost),
                ctx.event.site_id,
                memo,
            ),
        )


class MaintenanceRule(BasePostingRule):
    event_type = EventType.MAINTENANCE
    payload_type = MaintenancePayload

    def compute(self, ctx: PostingContext) -> PostingPlan:
        p: MaintenancePayload = ctx.payload
        memo = p.description or "Repairs and maintenance"
        return PostingPlan(
            memo=memo,
            lines=self.pair(
                self.role(ctx.chart, AccountRole.REPAIRS_EXPENSE),
                self.role(ctx.chart, payable_role(p.payment_method)),
                self.money(ctx, p.total_cost),
                ctx.event.site_id,
                memo,
            ),
        )


class PaymentSentRule(BasePostingRule):
    event_type = EventType.PAYMENT_SENT
    payload_type = PaymentSentPayload

    def compute(self, ctx: PostingContext) -> PostingPlan:
        p: PaymentSentPayload = ctx.payload
        memo = f"Payment to vendor {p.vendor_id}" + (
            f" ({p.payment_number})" if p.payment_number else ""
        )
        if p.bank_account_code:
            bank = ctx.chart.by_code(p.bank_account_code)
        else:
            bank = self.role(ctx.chart, AccountRole.CASH)
        return PostingPlan(
            memo=memo,
            lines=self.pair(
                self.role(ctx.chart, AccountRole.ACCOUNTS_PAYABLE),
                bank,
                self.money(ctx, p.amount),
                ctx.event.site_id,
                memo,
            ),
        )


class BillVarianceRule(BasePostingRule):
    """Books the bill-versus-receipt difference against Accounts Payable."""

    event_type = EventType.BILL_VARIANCE_POSTED
    payload_type = BillVariancePayload

    def compute(self, ctx: PostingContext) -> PostingPlan:
        p: BillVariancePayload = ctx.payload
        variance = self.role(ctx.chart, AccountRole.PURCHASE_PRICE_VARIANCE)
        payable = self.role(ctx.chart, AccountRole.ACCOUNTS_PAYABLE)
        bill = f" on bill {p.bill_number}" if p.bill_number else ""
        amount = self.money(ctx, abs(p.variance_amount))

        if p.variance_amount > ZERO:
            memo = f"Purchase price variance{bill}: bill higher than receipt"
            lines = self.pair(variance, payable, amount, ctx.event.site_id, memo)
        else:
            memo = f"Purchase price variance{bill}: bill lower than receipt"
            lines = self.pair(payable, variance, amount, ctx.event.site_id, memo)
        return PostingPlan(memo=memo, lines=lines)


ALL_RULES: tuple[type[BasePostingRule], ...] = (
    FeedLivestockRule,
    SellLivestockRule,
    SaleRule,
    PurchaseLivestockRule,
    ReceivePurchaseOrderRule,
    InventoryAdjustmentRule,
    InventoryTransferRule,
    TreatmentRule,
    LaborRule,
    MaintenanceRule,
    PaymentSentRule,
    BillVarianceRule,
)
