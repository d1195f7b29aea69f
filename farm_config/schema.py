"""
Engine configuration schema.

Frozen dataclasses the loader parses engine.yaml and chart_of_accounts.yaml
into.  Plain data: no kernel types here, the bridges convert.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 5
    base_delay_seconds: float = 30.0
    multiplier: float = 2.0
    max_delay_seconds: float = 3600.0


@dataclass(frozen=True)
class TenantDefaultsConfig:
    livestock_costing_mode: str = "EXPENSE"
    reverse_inventory_on_reversal: bool = False
    auto_reorder_enabled: bool = False


@dataclass(frozen=True)
class AccountDef:
    """One account of the default chart."""

    code: str
    name: str
    account_type: str
    subtype: str | None = None


@dataclass(frozen=True)
class EngineConfig:
    """
    Everything configurable about the posting engine.

    ``checksum`` identifies the exact configuration content (SHA-256 over
    the parsed YAML of both files).
    """

    config_id: str
    version: int
    currency: str
    amount_places: int
    cost_places: int
    lock_ttl_seconds: int
    tenant_defaults: TenantDefaultsConfig
    retry: RetryConfig
    posting_accounts: tuple[tuple[str, str], ...]
    chart_of_accounts: tuple[AccountDef, ...]
    checksum: str = ""
    source: str | None = None

    def account_code_for(self, role: str) -> str | None:
        return dict(self.posting_accounts).get(role)

    @property
    def account_codes(self) -> frozenset[str]:
        return frozenset(account.code for account in self.chart_of_accounts)
