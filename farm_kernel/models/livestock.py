"""
Module: farm_kernel.models.livestock
Responsibility: Running cost basis of livestock groups, maintained by the
    posting engine from purchases, capitalized feed and sales.
Architecture position: Kernel > Models.

Invariants enforced:
    - total_cost never goes below zero (a sale's cost is clamped).
    - Updated with the same version compare-and-swap as inventory balances.
"""

from decimal import Decimal

from sqlalchemy import Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from farm_kernel.db.base import Base


class LivestockCostBasis(Base):
    __tablename__ = "livestock_cost_basis"
    __table_args__ = (
        UniqueConstraint("tenant_id", "group_id", name="uq_livestock_cost_basis_group"),
    )

    tenant_id: Mapped[str] = mapped_column(nullable=False)

    group_id: Mapped[str] = mapped_column(nullable=False)

    total_cost: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
