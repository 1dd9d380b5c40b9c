"""Structured logging, OpenTelemetry spans and status notifications.

This module provides:
- Structured logging setup via structlog
- OpenTelemetry span helpers for synchronization phases
- Human-readable status notifications for progress reporting
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from enum import Enum
from typing import TYPE_CHECKING, Any

import structlog
from opentelemetry import trace
from opentelemetry.trace import SpanKind, Status, StatusCode

if TYPE_CHECKING:
    from opentelemetry.trace import Span, Tracer
    from structlog.stdlib import BoundLogger

# Module-level logger and tracer
_logger: BoundLogger | None = None
_tracer: Tracer | None = None

# Tracer name for OpenTelemetry
TRACER_NAME = "model_sync"


class SyncStatus(str, Enum):
    """Progress notifications emitted during synchronization."""

    CHECKING_FOR_UPDATE = "checking_for_update"
    RETRIEVING = "retrieving"
    DOWNLOADING = "downloading"
    COMPILING = "compiling"
    LOADING_CACHED = "loading_cached"
    UP_TO_DATE = "up_to_date"
    DONE = "done"

    @property
    def message(self) -> str:
        """Human-readable form of the status."""
        return _STATUS_MESSAGES[self]


_STATUS_MESSAGES: dict[SyncStatus, str] = {
    SyncStatus.CHECKING_FOR_UPDATE: "checking for update...",
    SyncStatus.RETRIEVING: "no local artifact, retrieving...",
    SyncStatus.DOWNLOADING: "downloading latest artifact...",
    SyncStatus.COMPILING: "compiling artifact...",
    SyncStatus.LOADING_CACHED: "loading compiled artifact from cache...",
    SyncStatus.UP_TO_DATE: "artifact already at the latest version",
    SyncStatus.DONE: "done",
}

StatusCallback = Callable[[SyncStatus], None]


def get_logger() -> BoundLogger:
    """Get the module logger, creating it if necessary.

    Returns:
        Configured structlog BoundLogger instance.

    Example:
        >>> logger = get_logger()
        >>> logger.info("artifact_replaced", path="/data/model.mlmodel")
    """
    global _logger
    if _logger is None:
        _logger = structlog.get_logger(TRACER_NAME)
    assert _logger is not None  # Type narrowing for mypy
    return _logger


def get_tracer() -> Tracer:
    """Get the OpenTelemetry tracer for model-sync."""
    global _tracer
    if _tracer is None:
        _tracer = trace.get_tracer(TRACER_NAME)
    return _tracer


def configure_logging(
    *,
    log_level: str = "INFO",
    json_format: bool = True,
    add_timestamp: bool = True,
) -> None:
    """Configure structured logging for model-sync.

    Args:
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_format: If True, output JSON format. If False, output human-readable.
        add_timestamp: If True, add ISO timestamp to log entries.

    Example:
        >>> configure_logging(log_level="DEBUG", json_format=False)
    """
    import logging

    processors: list[Any] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if add_timestamp:
        processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper()),
    )


@contextmanager
def span(
    name: str,
    *,
    kind: SpanKind = SpanKind.INTERNAL,
    attributes: dict[str, Any] | None = None,
    log_start: bool = True,
    log_end: bool = True,
) -> Iterator[Span]:
    """Create an OpenTelemetry span with structured logging.

    Args:
        name: Span name (e.g., "sync.download").
        kind: Span kind (INTERNAL, CLIENT, SERVER, PRODUCER, CONSUMER).
        attributes: Optional span attributes.
        log_start: If True, log span start.
        log_end: If True, log span end.

    Yields:
        OpenTelemetry Span instance.
    """
    tracer = get_tracer()
    logger = get_logger()
    attrs = attributes or {}

    with tracer.start_as_current_span(name, kind=kind, attributes=attrs) as s:
        if log_start:
            logger.debug(f"{name}_started", **attrs)
        try:
            yield s
            s.set_status(Status(StatusCode.OK))
            if log_end:
                logger.info(f"{name}_completed", **attrs)
        except BaseException as exc:
            # CancelledError is a BaseException; record it like any failure
            s.set_status(Status(StatusCode.ERROR, str(exc) or type(exc).__name__))
            s.record_exception(exc)
            logger.error(f"{name}_failed", error=str(exc), error_type=type(exc).__name__, **attrs)
            raise


@contextmanager
def sync_operation(
    phase: str,
    *,
    artifact_path: str | None = None,
    url: str | None = None,
) -> Iterator[Span]:
    """Create a span for a synchronization phase with standard attributes.

    Args:
        phase: Phase name (e.g., "digest_check", "download", "compile").
        artifact_path: Local artifact path.
        url: Remote endpoint involved.

    Yields:
        OpenTelemetry Span instance.

    Example:
        >>> with sync_operation("download", url=config.download_endpoint):
        ...     await transport.download_to(directory)
    """
    attrs: dict[str, Any] = {"sync.phase": phase}
    if artifact_path:
        attrs["sync.artifact_path"] = artifact_path
    if url:
        attrs["sync.url"] = url

    kind = SpanKind.CLIENT if url else SpanKind.INTERNAL
    with span(f"sync.{phase}", kind=kind, attributes=attrs) as s:
        yield s


def notify_status(status: SyncStatus, callback: StatusCallback | None = None) -> None:
    """Emit a progress notification.

    The status is logged and, when given, passed to ``callback``. A failing
    callback is logged and otherwise ignored so progress reporting never
    changes the outcome of a synchronization.

    Args:
        status: The status being reported.
        callback: Optional receiver, e.g. a CLI printer.
    """
    logger = get_logger()
    logger.info("sync_status", status=status.value, message=status.message)
    if callback is None:
        return
    try:
        callback(status)
    except Exception as exc:
        logger.warning("status_callback_failed", status=status.value, error=str(exc))
