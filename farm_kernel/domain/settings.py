"""
EngineSettings -- everything the services need from configuration.

farm_config builds one of these from engine.yaml (see farm_config.bridges);
tests build them directly.  Pure, immutable.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field

from farm_kernel.domain.chart import AccountDefinition, AccountRole
from farm_kernel.domain.plans import TenantPolicy
from farm_kernel.domain.retry_policy import RetryPolicy


@dataclass(frozen=True)
class EngineSettings:
    currency: str = "USD"
    amount_places: int = 2
    cost_places: int = 2
    lock_ttl_seconds: int = 300
    role_codes: Mapping[AccountRole, str] = field(default_factory=dict)
    default_chart: tuple[AccountDefinition, ...] = ()
    tenant_defaults: TenantPolicy = field(default_factory=TenantPolicy)
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)

    def __post_init__(self) -> None:
        if len(self.currency) != 3:
            raise ValueError(f"currency must be an ISO 4217 code, got {self.currency!r}")
        if self.amount_places < 0 or self.cost_places < 0:
            raise ValueError("decimal places must not be negative")
        if self.lock_ttl_seconds <= 0:
            raise ValueError("lock_ttl_seconds must be positive")
