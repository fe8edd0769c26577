"""
Authorization domain types (``fulfillment_kernel.domain.authorization``).

Responsibility
--------------
The actor value passed into every operation and the permission-check
protocol the kernel consults.  The kernel never resolves identity and
never reads role configuration itself; a ``PermissionChecker`` is
injected (see ``fulfillment_services.rbac_authority.RoleBasedAuthority``).

Permissions are ``"<resource>:<action>"`` strings, e.g. ``batch:release``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable
from uuid import UUID


def permission_key(resource: str, action: str) -> str:
    return f"{resource}:{action}"


def split_permission(permission: str) -> tuple[str, str]:
    resource, _, action = permission.partition(":")
    return resource, action


@dataclass(frozen=True)
class Actor:
    """The authenticated user performing an operation.

    ``roles`` are resolved through the configured role map; ``permissions``
    are explicit grants that apply regardless of role.  ``display_role`` is
    recorded on timeline entries.
    """

    actor_id: UUID
    roles: frozenset[str] = field(default_factory=frozenset)
    permissions: frozenset[str] = field(default_factory=frozenset)
    display_role: str | None = None

    def __post_init__(self) -> None:
        # Accept any iterable from callers; store frozensets.
        object.__setattr__(self, "roles", frozenset(self.roles))
        object.__setattr__(self, "permissions", frozenset(self.permissions))

    @property
    def acting_role(self) -> str | None:
        if self.display_role:
            return self.display_role
        return min(self.roles) if self.roles else None


@runtime_checkable
class PermissionChecker(Protocol):
    """Answers whether an actor may perform ``action`` on ``resource``."""

    def has_permission(self, actor: Actor, resource: str, action: str) -> bool:
        ...
