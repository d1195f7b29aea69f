"""
Config -> kernel bridges.

Convert an EngineConfig into the kernel's own types.  These live in
farm_config (the producer) because the kernel never imports farm_config.

Usage:
    from farm_config import get_engine_config
    from farm_config.bridges import build_engine_settings

    settings = build_engine_settings(get_engine_config())
    engine = PostingEngine(session_factory, settings)
"""

from __future__ import annotations

from farm_config.schema import EngineConfig
from farm_kernel.domain.chart import AccountDefinition, AccountRole
from farm_kernel.domain.plans import TenantPolicy
from farm_kernel.domain.retry_policy import RetryPolicy
from farm_kernel.domain.settings import EngineSettings
from farm_kernel.models.account import AccountType
from farm_kernel.models.tenant_settings import CostingMode


def build_role_codes(config: EngineConfig) -> dict[AccountRole, str]:
    return {AccountRole(role): code for role, code in config.posting_accounts}


def build_default_chart(config: EngineConfig) -> tuple[AccountDefinition, ...]:
    return tuple(
        AccountDefinition(
            code=account.code,
            name=account.name,
            account_type=AccountType(account.account_type),
            subtype=account.subtype,
        )
        for account in config.chart_of_accounts
    )


def build_retry_policy(config: EngineConfig) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=config.retry.max_attempts,
        base_delay_seconds=config.retry.base_delay_seconds,
        multiplier=config.retry.multiplier,
        max_delay_seconds=config.retry.max_delay_seconds,
    )


def build_tenant_defaults(config: EngineConfig) -> TenantPolicy:
    defaults = config.tenant_defaults
    return TenantPolicy(
        livestock_costing_mode=CostingMode(defaults.livestock_costing_mode),
        reverse_inventory_on_reversal=defaults.reverse_inventory_on_reversal,
        auto_reorder_enabled=defaults.auto_reorder_enabled,
    )


def build_engine_settings(config: EngineConfig) -> EngineSettings:
    return EngineSettings(
        currency=config.currency,
        amount_places=config.amount_places,
        cost_places=config.cost_places,
        lock_ttl_seconds=config.lock_ttl_seconds,
        role_codes=build_role_codes(config),
        default_chart=build_default_chart(config),
        tenant_defaults=build_tenant_defaults(config),
        retry_policy=build_retry_policy(config),
    )
