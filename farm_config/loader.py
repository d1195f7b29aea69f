"""
Configuration loader (``farm_config.loader``).

Responsibility
--------------
Reads engine.yaml (and the chart of accounts file it names) with
``yaml.safe_load`` and parses them into the frozen ``schema`` dataclasses.
Callers use ``farm_config.get_engine_config()``; this module is the
machinery behind it and the entry point for tests that load a custom file.

Invariants enforced
-------------------
* Every problem found raises ``ConfigurationError`` naming the file and key;
  required keys never get silent defaults.
* ``compute_checksum`` is deterministic over the parsed content.

Failure modes
-------------
* Missing file  -> ``ConfigurationError``.
* Malformed YAML  -> ``ConfigurationError`` (wrapping ``yaml.YAMLError``).
* Missing or ill-typed keys  -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from farm_config.schema import (
    AccountDef,
    EngineConfig,
    RetryConfig,
    TenantDefaultsConfig,
)
from farm_config.validator import validate_engine_config

DEFAULTS_DIR = Path(__file__).parent / "defaults"
DEFAULT_ENGINE_CONFIG = DEFAULTS_DIR / "engine.yaml"


class ConfigurationError(ValueError):
    """The engine configuration is missing, malformed or inconsistent."""

    code: str = "CONFIGURATION_ERROR"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load one YAML file as a dict (empty dict for an empty file)."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise ConfigurationError(f"Configuration file not found: {path}") from None
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: top level must be a mapping")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _require(data: dict[str, Any], key: str, source: str) -> Any:
    if key not in data or data[key] is None:
        raise ConfigurationError(f"{source}: missing required key '{key}'")
    return data[key]


def _int(value: Any, key: str, source: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{source}: '{key}' must be an integer, got {value!r}")
    return value


def _number(value: Any, key: str, source: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"{source}: '{key}' must be a number, got {value!r}")
    return float(value)


def _bool(value: Any, key: str, source: str) -> bool:
    if not isinstance(value, bool):
        raise ConfigurationError(f"{source}: '{key}' must be true or false, got {value!r}")
    return value


def parse_retry(data: dict[str, Any], source: str) -> RetryConfig:
    defaults = RetryConfig()
    return RetryConfig(
        max_attempts=_int(data.get("max_attempts", defaults.max_attempts), "retry.max_attempts", source),
        base_delay_seconds=_number(
            data.get("base_delay_seconds", defaults.base_delay_seconds), "retry.base_delay_seconds", source
        ),
        multiplier=_number(data.get("multiplier", defaults.multiplier), "retry.multiplier", source),
        max_delay_seconds=_number(
            data.get("max_delay_seconds", defaults.max_delay_seconds), "retry.max_delay_seconds", source
        ),
    )


def parse_tenant_defaults(data: dict[str, Any], source: str) -> TenantDefaultsConfig:
    defaults = TenantDefaultsConfig()
    return TenantDefaultsConfig(
        livestock_costing_mode=str(
            data.get("livestock_costing_mode", defaults.livestock_costing_mode)
        ).upper(),
        reverse_inventory_on_reversal=_bool(
            data.get("reverse_inventory_on_reversal", defaults.reverse_inventory_on_reversal),
            "tenant_defaults.reverse_inventory_on_reversal",
            source,
        ),
        auto_reorder_enabled=_bool(
            data.get("auto_reorder_enabled", defaults.auto_reorder_enabled),
            "tenant_defaults.auto_reorder_enabled",
            source,
        ),
    )


def parse_account(data: dict[str, Any], source: str) -> AccountDef:
    if not isinstance(data, dict):
        raise ConfigurationError(f"{source}: account entries must be mappings, got {data!r}")
    return AccountDef(
        code=str(_require(data, "code", source)),
        name=str(_require(data, "name", source)),
        account_type=str(_require(data, "type", source)).upper(),
        subtype=str(data["subtype"]) if data.get("subtype") else None,
    )


def parse_chart(data: dict[str, Any], source: str) -> tuple[AccountDef, ...]:
    accounts = _require(data, "accounts", source)
    if not isinstance(accounts, list):
        raise ConfigurationError(f"{source}: 'accounts' must be a list")
    return tuple(parse_account(entry, source) for entry in accounts)


def parse_posting_accounts(data: Any, source: str) -> tuple[tuple[str, str], ...]:
    if not isinstance(data, dict):
        raise ConfigurationError(f"{source}: 'posting_accounts' must be a mapping of role to code")
    return tuple(sorted((str(role).upper(), str(code)) for role, code in data.items()))


def parse_engine_config(
    data: dict[str, Any],
    chart: tuple[AccountDef, ...],
    source: str = "<memory>",
    checksum: str = "",
) -> EngineConfig:
    currency = str(_require(data, "currency", source)).upper()
    return EngineConfig(
        config_id=str(data.get("config_id", "farm-posting")),
        version=_int(data.get("version", 1), "version", source),
        currency=currency,
        amount_places=_int(data.get("amount_places", 2), "amount_places", source),
        cost_places=_int(data.get("cost_places", 2), "cost_places", source),
        lock_ttl_seconds=_int(data.get("lock_ttl_seconds", 300), "lock_ttl_seconds", source),
        tenant_defaults=parse_tenant_defaults(data.get("tenant_defaults") or {}, source),
        retry=parse_retry(data.get("retry") or {}, source),
        posting_accounts=parse_posting_accounts(_require(data, "posting_accounts", source), source),
        chart_of_accounts=chart,
        checksum=checksum,
        source=source,
    )


def load_engine_config(path: Path | str | None = None) -> EngineConfig:
    """
    Load and validate an engine configuration file.

    ``chart_of_accounts_file`` is resolved relative to the engine file;
    without it the packaged default chart is used.

    Raises:
        ConfigurationError: on any parse or validation problem.
    """
    engine_path = Path(path) if path is not None else DEFAULT_ENGINE_CONFIG
    data = load_yaml_file(engine_path)

    chart_file = data.get("chart_of_accounts_file")
    chart_path = (
        engine_path.parent / chart_file if chart_file else DEFAULTS_DIR / "chart_of_accounts.yaml"
    )
    chart_data = load_yaml_file(chart_path)

    config = parse_engine_config(
        data,
        parse_chart(chart_data, str(chart_path)),
        source=str(engine_path),
        checksum=compute_checksum({"engine": data, "chart": chart_data}),
    )

    result = validate_engine_config(config)
    if not result.is_valid:
        raise ConfigurationError(
            f"Configuration validation failed ({engine_path}):\n"
            + "\n".join(f"  - {e}" for e in result.errors)
        )
    return config
