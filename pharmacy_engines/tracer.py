"""
pharmacy_engines.tracer -- ``engine_trace`` records for pure engine calls.

Responsibility:
    ``@traced_engine`` logs, at DEBUG, one record per engine invocation:
    engine name and version, an input fingerprint, the duration and an
    optional summary of the result.  Two calls over the same lot state and
    the same requirement carry the same fingerprint, so a plan in the logs
    can be matched to the stock snapshot it was computed from.

Architecture position:
    Engines -- support for the pure calculation layer.  Reads keyword
    arguments and the return value; never mutates either.

Usage:
    @traced_engine(
        "fefo_allocation", "1.0",
        fingerprint_fields=("candidates", "required_qty"),
        summarize=lambda plan: {"allocated_qty": plan.allocated_qty},
    )
    def suggest(self, *, candidates, required_qty):
        ...
"""

from __future__ import annotations

import functools
import hashlib
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import fields, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pharmacy_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")

TRACE_EVENT = "engine_trace"


def canonicalize(value: Any) -> str:
    """
    Order-stable text for fingerprinting.

    Dataclasses (``LotCandidate``) render field by field, mappings by sorted
    key, sequences in order.  Dates render as ISO strings and Decimals as
    their normalized value, so ``Decimal("1.50")`` and ``Decimal("1.5")``
    hash the same.
    """
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        return str(value.normalize())
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (int, float, str)):
        return str(value)
    if is_dataclass(value) and not isinstance(value, type):
        return "(" + ",".join(
            f"{f.name}={canonicalize(getattr(value, f.name))}" for f in fields(value)
        ) + ")"
    if isinstance(value, Mapping):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{k}:{canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(canonicalize(v) for v in value) + "]"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: dict[str, Any],
) -> str:
    """16-char SHA-256 prefix over the named kwargs; missing fields hash as "null"."""
    parts = [f"{name}={canonicalize(kwargs.get(name))}" for name in fingerprint_fields]
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
    summarize: Callable[[Any], dict[str, Any]] | None = None,
) -> Callable:
    """
    Decorate an engine entry point that takes its inputs as keyword arguments.

    ``summarize`` maps the return value to extra log fields.  Nothing is
    logged when the engine raises; the exception propagates unchanged.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            t0 = time.monotonic()
            result = func(*args, **kwargs)
            duration_ms = round((time.monotonic() - t0) * 1000, 2)

            if _logger.isEnabledFor(logging.DEBUG):
                extra: dict[str, Any] = {
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": compute_input_fingerprint(fingerprint_fields, kwargs)
                    if fingerprint_fields else "",
                    "duration_ms": duration_ms,
                }
                if summarize is not None:
                    extra.update(summarize(result))
                _logger.debug(TRACE_EVENT, extra=extra)
            return result

        return wrapper

    return decorator
