"""
Module: fulfillment_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines used by
    the fulfillment kernel and services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import fulfillment_kernel domain types, exceptions and
    logging.  MUST NOT import fulfillment_services.

Invariants enforced:
    - Purity: engines never read the clock and perform no I/O.
    - Decimal-only arithmetic for measured values and bounds.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from fulfillment_engines.qc_evaluation import evaluate, summarize
"""

from fulfillment_kernel.logging_config import get_logger

logger = get_logger("engines")

from fulfillment_engines.qc_evaluation import (  # noqa: E402
    coerce_numeric,
    criteria_text,
    evaluate,
    summarize,
    validate_rule,
)
from fulfillment_engines.tracer import traced_engine  # noqa: E402

__all__ = [
    "coerce_numeric",
    "criteria_text",
    "evaluate",
    "summarize",
    "traced_engine",
    "validate_rule",
]
