"""
Canonical JSON and SHA-256 helpers.

Audit payloads, the audit hash chain and release signatures all hash a
canonical text form: sorted keys, no whitespace, and exactly one
rendering for each value.  ``Decimal("6.50")`` and ``Decimal("6.5")``
therefore hash alike, and so do a ``UUID`` and its string.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

GENESIS = "GENESIS"

_RENDERERS: tuple[tuple[type | tuple[type, ...], Any], ...] = (
    (Decimal, lambda d: str(d.normalize())),
    (Enum, lambda e: e.value),
    ((datetime, date), lambda d: d.isoformat()),
    (UUID, str),
    ((set, frozenset), sorted),
)


def _render(obj: Any) -> Any:
    for kinds, render in _RENDERERS:
        if isinstance(obj, kinds):
            return render(obj)
    raise TypeError(f"cannot canonicalize {type(obj).__name__}")


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def canonicalize_json(data: Any) -> str:
    """Compact, key-sorted JSON with domain values rendered one way."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_render)


def to_json_safe(data: dict) -> dict:
    """The plain-JSON form of ``data``, ready for a JSON column."""
    return json.loads(canonicalize_json(data))


def hash_payload(payload: dict) -> str:
    return _sha256(canonicalize_json(payload))


def hash_audit_event(
    entity_type: str,
    entity_id: str,
    action: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """Link hash of one audit event.

    Folding in ``prev_hash`` chains each event to its predecessor; the
    first event chains to the ``GENESIS`` marker.
    """
    return _sha256(
        "|".join((entity_type, str(entity_id), action, payload_hash, prev_hash or GENESIS))
    )


def hash_signature(
    batch_id: UUID,
    signer_id: UUID,
    signature: str,
    meaning: str,
    signed_at: datetime,
) -> str:
    """Seal a release signature to its batch, signer, meaning and time."""
    return hash_payload(
        dict(
            batch_id=batch_id,
            signer_id=signer_id,
            signature=signature,
            meaning=meaning,
            signed_at=signed_at,
        )
    )
