"""
planning_engines.tracer -- one PLANNING_ENGINE_TRACE record per engine call.

Responsibility:
    ``@traced_engine`` wraps the pure spreading and rollup functions.  Each
    call logs engine_name, engine_version, outcome, duration_ms and an
    input_fingerprint: the first 16 hex chars of a SHA-256 over the selected
    keyword arguments, so two calls over the same cohort can be matched in
    the logs without dumping the values themselves.

Architecture position:
    Engines -- infrastructure support for the pure calculation layer.
    Emits a log record only; the wrapped function's result is untouched.

Failure modes:
    - A raising engine still emits its trace (outcome="error") and the
      exception propagates unchanged.
    - Fingerprint fields missing from kwargs hash as null.

Usage:
    from planning_engines.tracer import traced_engine

    @traced_engine("spreading", "1.0", fingerprint_fields=("amount", "mode"))
    def apportion(*, amount, shares, mode):
        ...
"""

from __future__ import annotations

import functools
import hashlib
import json
import time
from collections.abc import Callable, Mapping
from decimal import Decimal
from enum import Enum
from typing import Any

from planning_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")

TRACE_TYPE = "PLANNING_ENGINE_TRACE"


def _plain(value: Any) -> Any:
    """Reduce an engine argument to JSON-stable primitives.

    Decimals are normalized so ``Decimal("1.0")`` and ``Decimal("1")`` hash
    alike.
    """
    if isinstance(value, Decimal):
        return format(value.normalize(), "f") if value.is_finite() else str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: dict[str, Any],
) -> str:
    body = json.dumps(
        [[name, _plain(kwargs.get(name))] for name in fingerprint_fields],
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(body.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorator for keyword-only engine functions."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fingerprint = (
                compute_input_fingerprint(fingerprint_fields, kwargs)
                if fingerprint_fields
                else ""
            )
            trace: dict[str, Any] = {
                "trace_type": TRACE_TYPE,
                "engine_name": engine_name,
                "engine_version": engine_version,
                "input_fingerprint": fingerprint,
                "function": func.__qualname__,
            }
            started = time.monotonic()
            try:
                result = func(*args, **kwargs)
            except Exception as exc:
                trace["outcome"] = "error"
                trace["error_type"] = type(exc).__name__
                raise
            else:
                trace["outcome"] = "ok"
                return result
            finally:
                trace["duration_ms"] = round((time.monotonic() - started) * 1000, 2)
                _logger.info(TRACE_TYPE, extra=trace)

        return wrapper

    return decorator
