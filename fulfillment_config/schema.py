"""
Configuration schema (``fulfillment_config.schema``).

Responsibility
--------------
Frozen dataclasses describing the engine configuration: database
location, separation-of-duties mode, receipt-voucher prefix, and the RBAC
grants (role -> permissions) plus permission conflicts.

Architecture position
---------------------
**Config layer** -- pure data definitions.  No I/O, no kernel imports;
``fulfillment_services`` translates these into kernel inputs.

Invariants enforced
-------------------
* All dataclasses are ``frozen=True``.
* Permissions are ``"<resource>:<action>"`` strings; ``"*"`` and
  ``"<resource>:*"`` are wildcards.
"""

from __future__ import annotations

from dataclasses import dataclass, field

SOD_MODES: tuple[str, ...] = ("role", "per_batch_actor")


@dataclass(frozen=True)
class RoleDef:
    """A role and the permissions it grants."""

    name: str
    permissions: tuple[str, ...]


@dataclass(frozen=True)
class RbacConfig:
    """Role grants and separation-of-duties permission conflicts."""

    roles: tuple[RoleDef, ...] = ()
    permission_conflicts: tuple[tuple[str, str], ...] = ()

    def role_permissions(self) -> dict[str, frozenset[str]]:
        return {r.name: frozenset(r.permissions) for r in self.roles}


@dataclass(frozen=True)
class EngineConfig:
    """Complete engine configuration, as loaded from YAML."""

    database_url: str
    sod_mode: str = "per_batch_actor"
    voucher_prefix: str = "RV"
    rbac: RbacConfig = field(default_factory=RbacConfig)
    source: str = "<defaults>"
    checksum: str = ""
