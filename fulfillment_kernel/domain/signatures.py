"""
Electronic-signature meanings.

A release signature is only valid together with the statement the signer
attests to.  Each signable action has a fixed list of meanings; the first
entry is used when the caller does not choose one.
"""

from __future__ import annotations

from enum import Enum


class SignatureCategory(str, Enum):
    BATCH_RELEASE = "BATCH_RELEASE"


SIGNATURE_MEANINGS: dict[SignatureCategory, tuple[str, ...]] = {
    SignatureCategory.BATCH_RELEASE: (
        "I confirm that this batch meets all release criteria",
        "I have reviewed and approve the batch for release",
        "Quality release approval",
    ),
}


def default_meaning(category: SignatureCategory) -> str:
    return SIGNATURE_MEANINGS[category][0]


def is_valid_meaning(category: SignatureCategory, meaning: str) -> bool:
    return meaning in SIGNATURE_MEANINGS[category]
