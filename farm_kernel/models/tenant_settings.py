"""
Module: farm_kernel.models.tenant_settings
Responsibility: Per-tenant switches that change how events are posted.
Architecture position: Kernel > Models.

A tenant without a row uses the defaults from the engine configuration.
"""

from enum import Enum

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from farm_kernel.db.base import TrackedBase


class CostingMode(str, Enum):
    """How feed consumed by livestock is booked."""

    EXPENSE = "EXPENSE"
    CAPITALIZE = "CAPITALIZE"


class TenantSettings(TrackedBase):
    __tablename__ = "tenant_settings"
    __table_args__ = (UniqueConstraint("tenant_id", name="uq_tenant_settings_tenant"),)

    tenant_id: Mapped[str] = mapped_column(nullable=False)

    livestock_costing_mode: Mapped[CostingMode] = mapped_column(String(20), nullable=False)

    reverse_inventory_on_reversal: Mapped[bool] = mapped_column(Boolean, nullable=False)

    auto_reorder_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
