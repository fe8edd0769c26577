"""
AuthorizationGate -- permission and separation-of-duties checks.

Responsibility:
    Single choke point through which every mutating kernel operation asks
    whether the acting user may proceed.  Permission answers come from an
    injected ``PermissionChecker``; the gate adds the separation-of-duties
    rules on top.

Architecture position:
    Kernel > Services.  The kernel stays actor-agnostic: it never resolves
    identity or reads role configuration; the facade builds the gate from
    configuration and passes it in.

Invariants enforced:
    - A denied check raises before any state is read for mutation.
    - Permission conflicts are evaluated against what the actor *holds*
      (through the checker), so wildcard grants conflict as well.
    - In ``per_batch_actor`` mode, anyone who recorded QC for a batch is
      barred from releasing that batch.

Failure modes:
    - PermissionDeniedError: checker answered False.
    - SeparationOfDutiesError: permission conflict or per-entity conflict.
"""

from __future__ import annotations

from typing import Iterable
from uuid import UUID

from fulfillment_kernel.domain.authorization import (
    Actor,
    PermissionChecker,
    permission_key,
    split_permission,
)
from fulfillment_kernel.domain.batch import SodMode
from fulfillment_kernel.exceptions import PermissionDeniedError, SeparationOfDutiesError
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("services.authorization")


class AuthorizationGate:
    """Permission + separation-of-duties enforcement."""

    def __init__(
        self,
        checker: PermissionChecker,
        permission_conflicts: Iterable[tuple[str, str]] = (),
        sod_mode: SodMode = SodMode.PER_BATCH_ACTOR,
    ):
        self._checker = checker
        self._permission_conflicts = tuple(tuple(pair) for pair in permission_conflicts)
        self._sod_mode = SodMode(sod_mode)

    @property
    def sod_mode(self) -> SodMode:
        return self._sod_mode

    @property
    def per_batch_actor(self) -> bool:
        return self._sod_mode == SodMode.PER_BATCH_ACTOR

    def allows(self, actor: Actor, resource: str, action: str) -> bool:
        return self._checker.has_permission(actor, resource, action)

    def require(self, actor: Actor, resource: str, action: str) -> None:
        """
        Raises:
            PermissionDeniedError: If the actor lacks ``resource:action``.
        """
        if not self.allows(actor, resource, action):
            logger.warning(
                "permission_denied",
                extra={
                    "actor_id": str(actor.actor_id),
                    "permission": permission_key(resource, action),
                },
            )
            raise PermissionDeniedError(str(actor.actor_id), resource, action)

    def require_no_permission_conflict(
        self, actor: Actor, resource: str, action: str,
    ) -> None:
        """
        Reject an actor holding a permission configured as conflicting with
        ``resource:action``.

        Raises:
            SeparationOfDutiesError: With rule ``permission_conflict``.
        """
        required = permission_key(resource, action)
        for pair in self._permission_conflicts:
            if required not in pair:
                continue
            for other in pair:
                if other == required:
                    continue
                if self.allows(actor, *split_permission(other)):
                    logger.warning(
                        "separation_of_duties_violation",
                        extra={
                            "actor_id": str(actor.actor_id),
                            "permission": required,
                            "conflicts_with": other,
                        },
                    )
                    raise SeparationOfDutiesError(
                        str(actor.actor_id),
                        "permission_conflict",
                        f"'{required}' conflicts with held permission '{other}'",
                    )

    def require_separation(
        self,
        actor: Actor,
        rule: str,
        barred_actor_ids: Iterable[UUID],
        reason: str,
    ) -> None:
        """
        Reject ``actor`` if it is one of ``barred_actor_ids``.

        Raises:
            SeparationOfDutiesError: With the given ``rule``.
        """
        if actor.actor_id in set(barred_actor_ids):
            logger.warning(
                "separation_of_duties_violation",
                extra={"actor_id": str(actor.actor_id), "rule": rule},
            )
            raise SeparationOfDutiesError(str(actor.actor_id), rule, reason)
