"""OpenTelemetry and structlog integration for the Cloud Objects SDK.

Every SDK component logs through ``get_logger()`` and opens spans through
``trace_operation``. Token values never reach the log output: the
configured processor chain masks them.
"""

from __future__ import annotations

import functools
import inspect
import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Awaitable, Callable, ParamSpec, TypeVar

import structlog
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

if TYPE_CHECKING:
    from collections.abc import Generator, MutableMapping

    from .config import TelemetryConfig

P = ParamSpec("P")
T = TypeVar("T")

SDK_NAME = "cloud-objects-sdk"
SDK_VERSION = "0.1.0"

SENSITIVE_KEYS = frozenset(
    {
        "access_token",
        "refresh_token",
        "custom_token",
        "accessToken",
        "refreshToken",
        "customToken",
        "_token",
        "Authorization",
        "authorization",
    }
)
REDACTED = "***"

_tracer: trace.Tracer | None = None
_logger: structlog.BoundLogger | None = None


def get_tracer() -> trace.Tracer:
    """Get or create the SDK tracer."""
    global _tracer
    if _tracer is None:
        _tracer = trace.get_tracer(SDK_NAME, SDK_VERSION)
    return _tracer


def get_logger() -> structlog.BoundLogger:
    """Get or create the SDK logger."""
    global _logger
    if _logger is None:
        _logger = structlog.get_logger(SDK_NAME)
    return _logger


def redact_credentials(
    logger: Any,
    method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """structlog processor masking token values, including inside nested mappings."""
    for key, value in list(event_dict.items()):
        if key in SENSITIVE_KEYS and value is not None:
            event_dict[key] = REDACTED
        elif isinstance(value, dict):
            event_dict[key] = redact_credentials(logger, method_name, dict(value))
    return event_dict


def configure_telemetry(config: TelemetryConfig) -> None:
    """Configure logging and tracing for the SDK.

    Disabled telemetry swaps in a no-op tracer and leaves the application's
    structlog configuration untouched.

    Args:
        config: Telemetry configuration.
    """
    global _tracer, _logger

    if not config.enabled:
        _tracer = trace.NoOpTracer()
        return

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            redact_credentials,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level(config.log_level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _tracer = trace.get_tracer(config.service_name, SDK_VERSION)
    _logger = structlog.get_logger(config.service_name)


def log_level(name: str) -> int:
    """Numeric level of a level name; unknown names fall back to INFO."""
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


@contextmanager
def trace_operation(
    name: str,
    *,
    attributes: dict[str, Any] | None = None,
) -> Generator[trace.Span, None, None]:
    """Context manager for tracing an operation.

    Args:
        name: Name of the operation.
        attributes: Span attributes; None values are skipped.

    Yields:
        The active span.
    """
    with get_tracer().start_as_current_span(f"cloud_objects.{name}") as span:
        for key, value in (attributes or {}).items():
            if value is not None:
                span.set_attribute(key, value)
        try:
            yield span
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.record_exception(e)
            raise


def traced_async(
    name: str | None = None,
    *,
    record: tuple[str, ...] = (),
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator to trace a coroutine function.

    Args:
        name: Optional span name (defaults to function name).
        record: Parameter names recorded as span attributes when their
            value is a plain scalar.

    Returns:
        Decorated coroutine function.
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        span_name = name or func.__name__
        signature = inspect.signature(func)

        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            attributes: dict[str, Any] = {}
            if record:
                bound = signature.bind_partial(*args, **kwargs)
                for param in record:
                    value = bound.arguments.get(param)
                    if isinstance(value, (str, int, float, bool)):
                        attributes[param] = value
            with trace_operation(span_name, attributes=attributes):
                return await func(*args, **kwargs)

        return wrapper

    return decorator
