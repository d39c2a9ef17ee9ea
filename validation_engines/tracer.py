"""
validation_engines.tracer -- one log record per pure-engine call.

``@traced_engine(name, version, fingerprint_fields=...)`` leaves the
wrapped function's behaviour untouched and emits a
``VALIDATION_ENGINE_TRACE`` record carrying the engine name and version,
the wall time spent, and a short fingerprint of the named arguments.
Equal inputs always give equal fingerprints, so two traces can be compared
to tell whether a routing decision was computed from the same facts.

The logger lives under ``validation_kernel`` (so the kernel's JSON handler
picks it up) but is obtained from stdlib ``logging`` directly: engines do
not import kernel modules other than domain types.
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import logging
import time
from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any, TypeVar

_logger = logging.getLogger("validation_kernel.engines.tracer")

TRACE_MESSAGE = "VALIDATION_ENGINE_TRACE"

F = TypeVar("F", bound=Callable[..., Any])


def _canonicalize(value: Any) -> str:
    """Order-independent text form; containers are walked, the rest is ``str``."""
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, Mapping):
        inner = ",".join(f"{k}:{_canonicalize(v)}" for k, v in sorted(value.items()))
        return f"{{{inner}}}"
    if isinstance(value, (list, tuple)):
        return f"[{','.join(map(_canonicalize, value))}]"
    return str(value)


def compute_input_fingerprint(fingerprint_fields: tuple[str, ...], kwargs: Mapping[str, Any]) -> str:
    """First 16 hex chars of SHA-256 over ``field=value`` pairs.

    A field absent from ``kwargs`` contributes ``null``.
    """
    text = "|".join(f"{name}={_canonicalize(kwargs.get(name))}" for name in fingerprint_fields)
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable[[F], F]:
    def decorator(func: F) -> F:
        bind = inspect.signature(func).bind_partial

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = time.perf_counter()
            result = func(*args, **kwargs)
            elapsed_ms = round((time.perf_counter() - started) * 1000, 2)

            fingerprint = (
                compute_input_fingerprint(fingerprint_fields, bind(*args, **kwargs).arguments)
                if fingerprint_fields
                else ""
            )
            _logger.info(
                TRACE_MESSAGE,
                extra={
                    "trace_type": TRACE_MESSAGE,
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "function": func.__name__,
                    "input_fingerprint": fingerprint,
                    "duration_ms": elapsed_ms,
                },
            )
            return result

        return wrapper  # type: ignore[return-value]

    return decorator
