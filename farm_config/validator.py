"""
Configuration validator (``farm_config.validator``).

Checks a parsed EngineConfig for internal consistency before anything
uses it:

* every account role the posting rules use is mapped, and only to a code
  present in the default chart;
* account codes are unique and account types are known;
* numeric settings are in range (places fit the Numeric(38, 9) storage
  scale, the retry policy is well formed).

Errors block loading; warnings (a role mapped to an account of an unusual
type) are logged by ``get_engine_config`` and do not.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from farm_config.schema import EngineConfig
from farm_kernel.domain.chart import AccountRole
from farm_kernel.models.account import AccountType
from farm_kernel.models.tenant_settings import CostingMode

_MAX_PLACES = 9
_MAX_CODE_LENGTH = 20

_EXPECTED_ROLE_TYPES = {
    AccountRole.CASH: AccountType.ASSET,
    AccountRole.ACCOUNTS_RECEIVABLE: AccountType.ASSET,
    AccountRole.FEED_INVENTORY: AccountType.ASSET,
    AccountRole.SUPPLY_INVENTORY: AccountType.ASSET,
    AccountRole.MEDICINE_INVENTORY: AccountType.ASSET,
    AccountRole.LIVESTOCK: AccountType.ASSET,
    AccountRole.ACCOUNTS_PAYABLE: AccountType.LIABILITY,
    AccountRole.SALES_REVENUE: AccountType.INCOME,
    AccountRole.COGS: AccountType.COGS,
    AccountRole.PURCHASE_PRICE_VARIANCE: AccountType.COGS,
    AccountRole.FEED_EXPENSE: AccountType.EXPENSE,
    AccountRole.INVENTORY_ADJUSTMENT: AccountType.EXPENSE,
    AccountRole.MEDICAL_EXPENSE: AccountType.EXPENSE,
    AccountRole.LABOR_EXPENSE: AccountType.EXPENSE,
    AccountRole.REPAIRS_EXPENSE: AccountType.EXPENSE,
}


@dataclass
class ConfigValidationResult:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_engine_config(config: EngineConfig) -> ConfigValidationResult:
    result = ConfigValidationResult()
    _validate_settings(config, result)
    account_types = _validate_chart(config, result)
    _validate_role_mapping(config, account_types, result)
    return result


def _validate_settings(config: EngineConfig, result: ConfigValidationResult) -> None:
    if len(config.currency) != 3 or not config.currency.isalpha():
        result.add_error(f"currency must be a 3-letter ISO 4217 code, got '{config.currency}'")
    for name in ("amount_places", "cost_places"):
        places = getattr(config, name)
        if not 0 <= places <= _MAX_PLACES:
            result.add_error(f"{name} must be between 0 and {_MAX_PLACES}, got {places}")
    if config.lock_ttl_seconds <= 0:
        result.add_error(f"lock_ttl_seconds must be positive, got {config.lock_ttl_seconds}")

    retry = config.retry
    if retry.max_attempts < 1:
        result.add_error(f"retry.max_attempts must be at least 1, got {retry.max_attempts}")
    if retry.multiplier < 1:
        result.add_error(f"retry.multiplier must be >= 1, got {retry.multiplier}")
    if retry.base_delay_seconds < 0 or retry.max_delay_seconds < 0:
        result.add_error("retry delays must not be negative")

    try:
        CostingMode(config.tenant_defaults.livestock_costing_mode)
    except ValueError:
        result.add_error(
            "tenant_defaults.livestock_costing_mode must be EXPENSE or CAPITALIZE, "
            f"got '{config.tenant_defaults.livestock_costing_mode}'"
        )


def _validate_chart(config: EngineConfig, result: ConfigValidationResult) -> dict[str, AccountType]:
    types: dict[str, AccountType] = {}
    if not config.chart_of_accounts:
        result.add_error("chart of accounts is empty")
    for account in config.chart_of_accounts:
        if not account.code or len(account.code) > _MAX_CODE_LENGTH:
            result.add_error(f"account code '{account.code}' must be 1-{_MAX_CODE_LENGTH} characters")
        if account.code in types:
            result.add_error(f"duplicate account code '{account.code}'")
        try:
            types[account.code] = AccountType(account.account_type)
        except ValueError:
            result.add_error(f"account {account.code}: unknown type '{account.account_type}'")
    return types


def _validate_role_mapping(
    config: EngineConfig,
    account_types: dict[str, AccountType],
    result: ConfigValidationResult,
) -> None:
    mapped = dict(config.posting_accounts)
    for role_name in mapped:
        if role_name not in AccountRole.__members__:
            result.add_error(f"posting_accounts: unknown role '{role_name}'")

    for role in AccountRole:
        code = mapped.get(role.value)
        if code is None:
            result.add_error(f"posting_accounts: role {role.value} is not mapped")
            continue
        if code not in account_types:
            if code not in config.account_codes:
                result.add_error(
                    f"posting_accounts: role {role.value} maps to '{code}', "
                    "which is not in the chart of accounts"
                )
            continue
        expected = _EXPECTED_ROLE_TYPES[role]
        if account_types[code] != expected:
            result.add_warning(
                f"posting_accounts: role {role.value} maps to {code} of type "
                f"{account_types[code].value}, expected {expected.value}"
            )
