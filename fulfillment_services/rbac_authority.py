"""
fulfillment_services.rbac_authority -- Config-driven permission checks.

Responsibility:
    Answers ``has_permission(actor, resource, action)`` from the role ->
    permission grants in configuration plus any explicit grants carried by
    the actor.  This is the ``PermissionChecker`` the kernel's
    AuthorizationGate is built with.

Architecture position:
    Services layer.  Consumes ``RbacConfig`` from fulfillment_config.

Invariants:
    - Kernel remains actor-agnostic; this module does not resolve actor
      identity (caller supplies the roles on the Actor).
    - Unknown roles grant nothing.  An actor with no roles and no explicit
      grants is denied everything.
    - ``"*"`` grants every permission, ``"<resource>:*"`` every action on
      one resource.
"""

from __future__ import annotations

from typing import Iterable, Mapping

from fulfillment_config.schema import RbacConfig
from fulfillment_kernel.domain.authorization import Actor, permission_key

WILDCARD = "*"


class RoleBasedAuthority:
    """``PermissionChecker`` backed by a role -> permissions map."""

    def __init__(
        self,
        role_permissions: Mapping[str, Iterable[str]],
        permission_conflicts: Iterable[tuple[str, str]] = (),
    ):
        self._role_permissions = {
            role: frozenset(perms) for role, perms in role_permissions.items()
        }
        self._permission_conflicts = tuple(tuple(p) for p in permission_conflicts)

    @classmethod
    def from_config(cls, rbac: RbacConfig) -> RoleBasedAuthority:
        return cls(rbac.role_permissions(), rbac.permission_conflicts)

    @property
    def permission_conflicts(self) -> tuple[tuple[str, str], ...]:
        return self._permission_conflicts

    @property
    def roles(self) -> frozenset[str]:
        return frozenset(self._role_permissions)

    def permissions_for(self, actor: Actor) -> frozenset[str]:
        """Union of the actor's role grants and explicit grants."""
        granted = set(actor.permissions)
        for role in actor.roles:
            granted |= self._role_permissions.get(role, frozenset())
        return frozenset(granted)

    def has_permission(self, actor: Actor, resource: str, action: str) -> bool:
        granted = self.permissions_for(actor)
        return (
            WILDCARD in granted
            or permission_key(resource, WILDCARD) in granted
            or permission_key(resource, action) in granted
        )
