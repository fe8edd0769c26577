"""
Typed Exception Hierarchy for the Fulfillment Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every rejected action must tell the caller *which* rule rejected it: a wrong
status, a missing permission, a separation-of-duties conflict, or a lost
race against a concurrent writer.  Callers catch by type, never by message:

    try:
        engine.release_batch(batch_id, actor, signature="...")
    except SeparationOfDutiesError as e:
        respond(409, code=e.code, actor=e.actor_id)
    except InvalidStateError as e:
        respond(409, code=e.code, current=e.current_status)

Each exception has a ``code`` class attribute (machine-readable, API-safe)
and stores its context as attributes (not only in the message).

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    FulfillmentError (base)
    |
    +-- ValidationError                 malformed / missing input
    +-- NotFoundError                   unresolved entity id
    +-- InvalidStateError               current status forbids the action
    |   +-- TransitionNotAllowedError   target not adjacent to current status
    |   +-- GateNotSatisfiedError       cross-entity gate failed
    |   +-- QcIncompleteError           required QC tests still open
    +-- AuthorizationError
    |   +-- PermissionDeniedError       actor lacks the permission
    |   +-- SeparationOfDutiesError     conflict-of-interest rule
    +-- ConcurrencyError
    |   +-- ConcurrencyConflictError    compare-and-swap lost
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError  write to an immutable record
    |   +-- AuditChainBrokenError       stored audit hash chain does not verify
    +-- ConfigurationError              invalid engine configuration

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                        | When Raised
----------------------------|-----------------------------------------------
VALIDATION_ERROR            | Empty signature / reason, bad QC value, amount <= 0
NOT_FOUND                   | Order, batch, test, invoice or request unknown
INVALID_STATE               | Status forbids the action (e.g. release of FAILED_QC)
TRANSITION_NOT_ALLOWED      | Target status not adjacent to the current one
GATE_NOT_SATISFIED          | Batch not released, shipment not active, ...
QC_INCOMPLETE               | completeQc with required tests still pending
PERMISSION_DENIED           | hasPermission(actor, resource, action) is False
SEPARATION_OF_DUTIES        | Actor barred by an SoD rule
CONCURRENCY_CONFLICT        | Entity changed between read and conditional write
IMMUTABILITY_VIOLATION      | Update/delete of release, voucher, ledger, audit rows
AUDIT_CHAIN_BROKEN          | Recomputed audit hash differs from the stored one
CONFIGURATION_ERROR         | Invalid YAML configuration

No internal retries are performed anywhere in the kernel.  A
ConcurrencyConflictError is surfaced so the caller can re-read current
state and decide whether to retry.
"""


class FulfillmentError(Exception):
    """
    Base exception for all fulfillment kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "FULFILLMENT_ERROR"


# Input validation


class ValidationError(FulfillmentError):
    """Malformed or missing input."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


# Lookup


class NotFoundError(FulfillmentError):
    """Entity with given ID was not found."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


# State


class InvalidStateError(FulfillmentError):
    """The entity's current status forbids the requested action."""

    code: str = "INVALID_STATE"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_status: str,
        action: str,
        message: str | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            message
            or f"Cannot {action} {entity_type} {entity_id} in status {current_status}"
        )


class TransitionNotAllowedError(InvalidStateError):
    """Target status is not adjacent to the current status."""

    code: str = "TRANSITION_NOT_ALLOWED"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_status: str,
        target_status: str,
        allowed: tuple[str, ...] = (),
    ):
        self.target_status = target_status
        self.allowed = allowed
        super().__init__(
            entity_type,
            entity_id,
            current_status,
            action=f"transition to {target_status}",
            message=(
                f"Invalid transition for {entity_type} {entity_id}: "
                f"{current_status} -> {target_status} "
                f"(allowed: {', '.join(allowed) or 'none'})"
            ),
        )


class GateNotSatisfiedError(InvalidStateError):
    """A cross-entity gate (batch released, shipment active, ...) failed."""

    code: str = "GATE_NOT_SATISFIED"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_status: str,
        target_status: str,
        gate: str,
        detail: str,
    ):
        self.target_status = target_status
        self.gate = gate
        self.detail = detail
        super().__init__(
            entity_type,
            entity_id,
            current_status,
            action=f"transition to {target_status}",
            message=(
                f"Gate '{gate}' blocks {entity_type} {entity_id} "
                f"{current_status} -> {target_status}: {detail}"
            ),
        )


class QcIncompleteError(InvalidStateError):
    """QC cannot be completed while required tests are still pending."""

    code: str = "QC_INCOMPLETE"

    def __init__(self, batch_id: str, current_status: str, pending: int):
        self.pending = pending
        super().__init__(
            "Batch",
            batch_id,
            current_status,
            action="complete QC",
            message=(
                f"Cannot complete QC for batch {batch_id}: "
                f"{pending} required test(s) still pending"
            ),
        )


# Authorization


class AuthorizationError(FulfillmentError):
    """Base exception for authorization failures."""

    code: str = "AUTHORIZATION_ERROR"


class PermissionDeniedError(AuthorizationError):
    """Actor lacks the permission for (resource, action)."""

    code: str = "PERMISSION_DENIED"

    def __init__(self, actor_id: str, resource: str, action: str):
        self.actor_id = actor_id
        self.resource = resource
        self.action = action
        super().__init__(
            f"Actor {actor_id} lacks permission '{resource}:{action}'"
        )


class SeparationOfDutiesError(AuthorizationError):
    """Actor is blocked by a conflict-of-interest rule."""

    code: str = "SEPARATION_OF_DUTIES"

    def __init__(self, actor_id: str, rule: str, reason: str):
        self.actor_id = actor_id
        self.rule = rule
        self.reason = reason
        super().__init__(
            f"Separation of duties ({rule}) blocks actor {actor_id}: {reason}"
        )


# Concurrency


class ConcurrencyError(FulfillmentError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrencyConflictError(ConcurrencyError):
    """
    Conditional (compare-and-swap) update matched no row.

    The entity was changed by a concurrent unit of work between the read
    and the write.  The caller should re-read and decide whether to retry.
    """

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, expected: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected = expected
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id}: "
            f"expected {expected} no longer holds"
        )


# Immutability


class ImmutabilityError(FulfillmentError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    BatchRelease, ReceiptVoucher, Payment, timeline events and AuditEvent
    are immutable once created.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Configuration


class ConfigurationError(FulfillmentError):
    """Engine configuration is invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid configuration in {source}: {reason}")


class AuditChainBrokenError(ImmutabilityError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at event {audit_event_id}: "
            f"expected {expected_hash}, got {actual_hash}"
        )
