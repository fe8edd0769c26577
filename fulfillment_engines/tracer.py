"""
fulfillment_engines.tracer -- ENGINE_TRACE records for pure engine calls.

``@traced_engine`` logs one DEBUG record per call with the engine name
and version, a fingerprint of the named inputs, the outcome and the
duration.  Inputs are matched by parameter name whether they were passed
positionally or by keyword, so ``evaluate(rule, value)`` and
``evaluate(rule=rule, value=value)`` fingerprint identically.

Two calls with equal fingerprints saw equal inputs; a QC decision can
then be replayed from the stored rule and value.

Usage:
    @traced_engine("qc_evaluation", "1.0", fingerprint_fields=("rule", "value"))
    def evaluate(rule, value):
        ...
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import inspect
import time
from collections.abc import Callable, Mapping
from decimal import Decimal
from enum import Enum
from typing import Any, TypeVar

from fulfillment_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")

F = TypeVar("F", bound=Callable[..., Any])


def _canonical(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, Decimal):
        return str(value.normalize())
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _canonical(
            {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
        )
    if isinstance(value, Mapping):
        inner = ",".join(f"{k}:{_canonical(v)}" for k, v in sorted(value.items()))
        return "{" + inner + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonical(v) for v in value) + "]"
    return str(value)


def fingerprint(fields: tuple[str, ...], arguments: Mapping[str, Any]) -> str:
    """First 16 hex chars of SHA-256 over ``field=value`` pairs.

    A field absent from ``arguments`` contributes "null".
    """
    text = "|".join(f"{name}={_canonical(arguments.get(name))}" for name in fields)
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


def _outcome(result: Any) -> Any:
    passed = getattr(result, "passed", None)
    if isinstance(passed, bool):
        return "passed" if passed else "failed"
    return type(result).__name__


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable[[F], F]:
    def decorator(func: F) -> F:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fp = ""
            if fingerprint_fields:
                bound = signature.bind_partial(*args, **kwargs)
                fp = fingerprint(fingerprint_fields, bound.arguments)

            started = time.perf_counter()
            result = func(*args, **kwargs)
            elapsed_ms = round((time.perf_counter() - started) * 1000, 3)

            _logger.debug(
                "ENGINE_TRACE",
                extra={
                    "trace_type": "ENGINE_TRACE",
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fp,
                    "outcome": _outcome(result),
                    "duration_ms": elapsed_ms,
                },
            )
            return result

        return wrapper  # type: ignore[return-value]

    return decorator
