"""
fulfillment_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the way to obtain configuration at runtime through
    ``get_active_config()``.  Services receive the returned
    ``EngineConfig``; they never read configuration files or environment
    variables themselves.

Architecture position:
    Configuration -- YAML-driven.  Sits above ``fulfillment_kernel`` and
    below ``fulfillment_services``.  The kernel MUST NEVER import from
    ``fulfillment_config``; the services layer translates an
    ``EngineConfig`` into kernel inputs (permission checker, SoD mode).

Environment:
    FULFILLMENT_CONFIG  path of the YAML file (default: bundled defaults.yaml)
    DATABASE_URL        overrides ``database_url`` from the file

Failure modes:
    - ``FileNotFoundError`` -- configured file does not exist.
    - ``ConfigurationError`` -- malformed YAML or invalid values.

Audit relevance:
    Every ``get_active_config()`` call emits a ``FULFILLMENT_CONFIG_TRACE``
    log entry with source path, checksum, SoD mode and role count.
"""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path

from fulfillment_config.loader import DEFAULTS_PATH, compute_checksum, load_config, parse_config
from fulfillment_config.schema import EngineConfig, RbacConfig, RoleDef
from fulfillment_kernel.logging_config import get_logger

_logger = get_logger("config")

CONFIG_ENV_VAR = "FULFILLMENT_CONFIG"
DATABASE_URL_ENV_VAR = "DATABASE_URL"


def get_active_config(path: Path | str | None = None) -> EngineConfig:
    """Load the active configuration.

    ``path`` wins over ``FULFILLMENT_CONFIG``, which wins over the bundled
    defaults.  ``DATABASE_URL`` always overrides the file's database URL.
    """
    source = path or os.environ.get(CONFIG_ENV_VAR) or DEFAULTS_PATH
    config = load_config(source)

    database_url = os.environ.get(DATABASE_URL_ENV_VAR)
    if database_url:
        config = dataclasses.replace(config, database_url=database_url)

    _logger.info(
        "FULFILLMENT_CONFIG_TRACE",
        extra={
            "trace_type": "FULFILLMENT_CONFIG_TRACE",
            "source": config.source,
            "checksum": config.checksum,
            "sod_mode": config.sod_mode,
            "role_count": len(config.rbac.roles),
        },
    )
    return config


__all__ = [
    "CONFIG_ENV_VAR",
    "DATABASE_URL_ENV_VAR",
    "DEFAULTS_PATH",
    "EngineConfig",
    "RbacConfig",
    "RoleDef",
    "compute_checksum",
    "get_active_config",
    "load_config",
    "parse_config",
]
