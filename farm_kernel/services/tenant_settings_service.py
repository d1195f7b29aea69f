"""
TenantSettingsService -- per-tenant posting switches.

A tenant without a settings row gets the defaults it was constructed with
(farm_config supplies them from engine.yaml).  ``get`` returns the frozen
TenantPolicy snapshot that posting rules and reversal read.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from farm_kernel.domain.clock import Clock, SystemClock
from farm_kernel.domain.plans import TenantPolicy
from farm_kernel.logging_config import get_logger
from farm_kernel.models.tenant_settings import CostingMode, TenantSettings

logger = get_logger("services.tenant_settings")


class TenantSettingsService:
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        defaults: TenantPolicy | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._defaults = defaults or TenantPolicy()

    @property
    def defaults(self) -> TenantPolicy:
        return self._defaults

    def _find(self, tenant_id: str) -> TenantSettings | None:
        return self._session.execute(
            select(TenantSettings).where(TenantSettings.tenant_id == tenant_id)
        ).scalar_one_or_none()

    def get(self, tenant_id: str) -> TenantPolicy:
        row = self._find(tenant_id)
        if row is None:
            return self._defaults
        return TenantPolicy(
            livestock_costing_mode=CostingMode(row.livestock_costing_mode),
            reverse_inventory_on_reversal=row.reverse_inventory_on_reversal,
            auto_reorder_enabled=row.auto_reorder_enabled,
        )

    def _apply(self, row: TenantSettings, mode: CostingMode, reverse: bool, reorder: bool, actor_id: str) -> None:
        row.livestock_costing_mode = mode.value
        row.reverse_inventory_on_reversal = reverse
        row.auto_reorder_enabled = reorder
        row.updated_by = actor_id
        self._session.flush()

    def update(
        self,
        tenant_id: str,
        actor_id: str,
        livestock_costing_mode: CostingMode | str | None = None,
        reverse_inventory_on_reversal: bool | None = None,
        auto_reorder_enabled: bool | None = None,
    ) -> TenantPolicy:
        """Upsert the tenant's settings; arguments left as None keep their value."""
        current = self.get(tenant_id)
        mode = CostingMode(livestock_costing_mode or current.livestock_costing_mode)
        reverse = (
            current.reverse_inventory_on_reversal
            if reverse_inventory_on_reversal is None
            else reverse_inventory_on_reversal
        )
        reorder = current.auto_reorder_enabled if auto_reorder_enabled is None else auto_reorder_enabled

        row = self._find(tenant_id)
        if row is None:
            row = TenantSettings(
                tenant_id=tenant_id,
                livestock_costing_mode=mode.value,
                reverse_inventory_on_reversal=reverse,
                auto_reorder_enabled=reorder,
                created_at=self._clock.now(),
                created_by=actor_id,
            )
            try:
                with self._session.begin_nested():
                    self._session.add(row)
                    self._session.flush()
            except IntegrityError:
                # Created concurrently; overwrite the winner's values
                self._apply(self._find(tenant_id), mode, reverse, reorder, actor_id)
        else:
            self._apply(row, mode, reverse, reorder, actor_id)

        logger.info(
            "tenant_settings_updated",
            extra={
                "tenant_id": tenant_id,
                "livestock_costing_mode": mode.value,
                "reverse_inventory_on_reversal": reverse,
                "auto_reorder_enabled": reorder,
            },
        )
        return self.get(tenant_id)
