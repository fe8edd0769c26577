"""
Configuration Loader (``fulfillment_config.loader``).

Responsibility
--------------
Loads the engine YAML file and parses it into the typed
``fulfillment_config.schema`` dataclasses.  Runtime callers go through
``fulfillment_config.get_active_config()``.

Invariants enforced
-------------------
* Every parse error raises ``ConfigurationError`` naming the file and the
  offending key; no silent defaults for malformed values.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the parsed
  YAML for configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML, unknown sod_mode, bad permission string
  -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from fulfillment_config.schema import SOD_MODES, EngineConfig, RbacConfig, RoleDef
from fulfillment_kernel.exceptions import ConfigurationError

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file and return its contents as a dict."""
    with open(path) as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(str(path), f"invalid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _check_permission(source: str, permission: Any) -> str:
    if not isinstance(permission, str) or not permission:
        raise ConfigurationError(source, f"permission must be a string, got {permission!r}")
    if permission == "*":
        return permission
    resource, sep, action = permission.partition(":")
    if not sep or not resource or not action:
        raise ConfigurationError(
            source, f"permission {permission!r} is not of the form resource:action",
        )
    return permission


def parse_rbac(source: str, data: dict[str, Any]) -> RbacConfig:
    roles_data = data.get("roles") or {}
    if not isinstance(roles_data, dict):
        raise ConfigurationError(source, "rbac.roles must be a mapping of role -> permissions")

    roles = []
    for name, permissions in roles_data.items():
        if not isinstance(permissions, list):
            raise ConfigurationError(source, f"rbac.roles.{name} must be a list")
        roles.append(
            RoleDef(
                name=str(name),
                permissions=tuple(_check_permission(source, p) for p in permissions),
            )
        )

    conflicts = []
    for pair in data.get("permission_conflicts") or []:
        if not isinstance(pair, list) or len(pair) != 2:
            raise ConfigurationError(
                source, f"permission conflict must be a pair, got {pair!r}",
            )
        conflicts.append(
            (_check_permission(source, pair[0]), _check_permission(source, pair[1]))
        )

    return RbacConfig(roles=tuple(roles), permission_conflicts=tuple(conflicts))


def parse_config(data: dict[str, Any], source: str = "<memory>") -> EngineConfig:
    """Parse an already-loaded YAML mapping into an ``EngineConfig``."""
    database_url = data.get("database_url")
    if not database_url or not isinstance(database_url, str):
        raise ConfigurationError(source, "database_url is required")

    sod_mode = data.get("sod_mode", "per_batch_actor")
    if sod_mode not in SOD_MODES:
        raise ConfigurationError(
            source, f"sod_mode must be one of {', '.join(SOD_MODES)}, got {sod_mode!r}",
        )

    voucher_prefix = data.get("voucher_prefix", "RV")
    if not isinstance(voucher_prefix, str) or not voucher_prefix.strip():
        raise ConfigurationError(source, "voucher_prefix must be a non-empty string")

    return EngineConfig(
        database_url=database_url,
        sod_mode=sod_mode,
        voucher_prefix=voucher_prefix.strip(),
        rbac=parse_rbac(source, data.get("rbac") or {}),
        source=source,
        checksum=compute_checksum(data),
    )


def load_config(path: Path | str | None = None) -> EngineConfig:
    """Load and parse an engine configuration file (defaults when None)."""
    path = Path(path) if path is not None else DEFAULTS_PATH
    return parse_config(load_yaml_file(path), source=str(path))
