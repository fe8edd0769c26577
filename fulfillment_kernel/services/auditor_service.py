"""
Hash-chained audit log and the ``AuditRecorder`` implementations.

The engine facade hands every ``AuditRecord`` of a committed operation to
its recorder.  ``DatabaseAuditRecorder`` persists it through
``AuditorService`` in a unit of work of its own, so a failed append is
reported by the facade and never rolls back the transition it describes.

Each ``AuditEvent`` stores ``prev_hash`` (its predecessor's ``hash``, or
NULL for the first event) and ``hash`` = H(entity_type | entity_id |
action | payload_hash | prev_hash).  Sequence numbers come from
``SequenceService``; locking the audit counter also serializes the read
of the chain head.  Audit rows are append-only (see ``db.immutability``).
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from fulfillment_kernel.db.engine import session_scope
from fulfillment_kernel.domain.audit import AuditAction, AuditRecord
from fulfillment_kernel.exceptions import AuditChainBrokenError
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.models.audit_event import AuditEvent
from fulfillment_kernel.services.sequence_service import SequenceService
from fulfillment_kernel.utils.hashing import hash_audit_event, hash_payload, to_json_safe

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditTraceEntry:
    seq: int
    action: AuditAction
    occurred_at: datetime
    actor_id: UUID
    payload: dict[str, Any]
    hash: str

    @classmethod
    def from_event(cls, event: AuditEvent) -> "AuditTraceEntry":
        return cls(
            seq=event.seq,
            action=AuditAction(event.action),
            occurred_at=event.occurred_at,
            actor_id=event.actor_id,
            payload=event.payload or {},
            hash=event.hash,
        )


@dataclass(frozen=True)
class AuditTrace:
    """Audit events of one entity, oldest first."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def actions(self) -> tuple[AuditAction, ...]:
        return tuple(e.action for e in self.entries)


def _link_hash(event: AuditEvent) -> str:
    return hash_audit_event(
        entity_type=event.entity_type,
        entity_id=str(event.entity_id),
        action=event.action,
        payload_hash=event.payload_hash,
        prev_hash=event.prev_hash,
    )


def _broken(event: AuditEvent, expected: str | None, actual: str | None) -> AuditChainBrokenError:
    logger.critical("audit_chain_broken", extra={"seq": event.seq, "audit_event_id": str(event.id)})
    return AuditChainBrokenError(str(event.id), expected or "None", actual or "None")


class AuditorService:
    """Appends to and verifies the audit chain. Flushes; never commits."""

    def __init__(self, session: Session):
        self._session = session
        self._sequences = SequenceService(session)

    def _chain_head(self) -> str | None:
        return self._session.execute(
            select(AuditEvent.hash).order_by(AuditEvent.seq.desc()).limit(1)
        ).scalar_one_or_none()

    def record(self, record: AuditRecord) -> AuditEvent:
        seq = self._sequences.next_value(SequenceService.AUDIT_EVENT)
        payload = to_json_safe(record.payload)
        event = AuditEvent(
            seq=seq,
            entity_type=record.entity_type,
            entity_id=record.entity_id,
            action=AuditAction(record.action).value,
            actor_id=record.actor_id,
            occurred_at=record.occurred_at,
            payload=payload,
            payload_hash=hash_payload(payload),
            prev_hash=self._chain_head(),
        )
        event.hash = _link_hash(event)
        self._session.add(event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": event.entity_type,
                "entity_id": str(event.entity_id),
                "audit_action": event.action,
                "seq": seq,
            },
        )
        return event

    def validate_chain(self) -> bool:
        """Recompute every link in sequence order.

        Raises:
            AuditChainBrokenError: at the first event whose stored hash or
                back-link disagrees with the recomputed chain.
        """
        events: Iterable[AuditEvent] = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars()

        previous: str | None = None
        count = 0
        for event in events:
            if event.prev_hash != previous:
                raise _broken(event, previous, event.prev_hash)
            expected = _link_hash(event)
            if event.hash != expected:
                raise _broken(event, expected, event.hash)
            previous = event.hash
            count += 1

        logger.info("audit_chain_valid", extra={"event_count": count})
        return True

    def get_trace(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        events = self._session.execute(
            select(AuditEvent)
            .where(AuditEvent.entity_type == entity_type, AuditEvent.entity_id == entity_id)
            .order_by(AuditEvent.seq)
        ).scalars()
        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=tuple(AuditTraceEntry.from_event(e) for e in events),
        )


class DatabaseAuditRecorder:
    """
    ``AuditRecorder`` that writes through ``AuditorService``.

    Each append is its own ``session_scope``, separate from the business
    unit of work that produced the record.  A failed append rolls back
    and raises; the facade logs it and carries on.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def append(self, record: AuditRecord) -> None:
        with session_scope(self._session_factory) as session:
            AuditorService(session).record(record)


class InMemoryAuditRecorder:
    """``AuditRecorder`` that keeps records in a list. For tests and embedding."""

    def __init__(self) -> None:
        self.records: list[AuditRecord] = []

    def append(self, record: AuditRecord) -> None:
        self.records.append(record)

    def actions(self) -> list[AuditAction]:
        return [r.action for r in self.records]

    def for_entity(self, entity_id: UUID) -> list[AuditRecord]:
        return [r for r in self.records if r.entity_id == entity_id]
