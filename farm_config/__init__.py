"""
farm_config -- single public entrypoint for posting engine configuration.

Responsibility:
    ``get_engine_config()`` is the one way to obtain configuration at
    runtime.  It loads the packaged defaults (or the file named by the
    ``FARM_POSTING_CONFIG`` environment variable), validates them, caches the
    result and emits a ``FARM_CONFIG_TRACE`` log record identifying the exact
    configuration in force.

Architecture position:
    Sits above ``farm_kernel``.  The kernel never imports farm_config;
    ``farm_config.bridges`` turns an EngineConfig into kernel EngineSettings.

Failure modes:
    - ``ConfigurationError`` (a ``ValueError``) for a missing, malformed or
      inconsistent configuration.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path

from farm_config.loader import ConfigurationError, compute_checksum, load_engine_config
from farm_config.schema import EngineConfig
from farm_config.validator import validate_engine_config

__all__ = [
    "CONFIG_ENV_VAR",
    "ConfigurationError",
    "EngineConfig",
    "clear_config_cache",
    "compute_checksum",
    "get_engine_config",
    "load_engine_config",
]

CONFIG_ENV_VAR = "FARM_POSTING_CONFIG"

_logger = logging.getLogger("farm_kernel.config")

_lock = threading.Lock()
_cache: dict[str, EngineConfig] = {}


def get_engine_config(path: Path | str | None = None) -> EngineConfig:
    """Return the validated engine configuration, loading it once per path.

    Resolution order: explicit ``path``, then ``$FARM_POSTING_CONFIG``, then
    the packaged ``defaults/engine.yaml``.
    """
    resolved = path or os.environ.get(CONFIG_ENV_VAR) or None
    key = str(Path(resolved).resolve()) if resolved else "<default>"

    with _lock:
        cached = _cache.get(key)
        if cached is not None:
            return cached

        config = load_engine_config(resolved)
        for warning in validate_engine_config(config).warnings:
            _logger.warning("config_warning", extra={"warning": warning})

        _logger.info(
            "FARM_CONFIG_TRACE",
            extra={
                "trace_type": "FARM_CONFIG_TRACE",
                "config_id": config.config_id,
                "config_version": config.version,
                "checksum": config.checksum,
                "config_source": config.source,
                "account_count": len(config.chart_of_accounts),
                "role_binding_count": len(config.posting_accounts),
            },
        )
        _cache[key] = config
        return config


def clear_config_cache() -> None:
    """Forget cached configurations (tests, or after editing the file)."""
    with _lock:
        _cache.clear()
