"""Telemetry utilities for logging, metrics, and tracing.

This module provides centralized observability infrastructure including:
- Structured logging with identity redaction
- Prometheus metrics collection
- OpenTelemetry tracing setup
- Performance measurement utilities
"""

import asyncio
import re
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from prometheus_client import Counter, Gauge, Histogram, start_http_server
from structlog.processors import JSONRenderer

# Prometheus metrics
OPERATION_COUNTER = Counter(
    "tileflip_operations_total",
    "Total number of operations",
    ["operation", "status"],
)

OPERATION_LATENCY = Histogram(
    "tileflip_operation_duration_seconds",
    "Operation latency in seconds",
    ["operation"],
    buckets=[0.001, 0.005, 0.01, 0.02, 0.05, 0.1, 0.2, 0.5, 1.0, 2.0, 5.0],
)

UPDATES_TOTAL = Counter(
    "tileflip_updates_total",
    "Tile updates received, by classification",
    ["classification"],
)

ADMISSIONS_TOTAL = Counter(
    "tileflip_admissions_total",
    "Admission decisions for available tiles",
    ["decision", "policy"],
)

CHUNKS_TOTAL = Counter(
    "tileflip_chunks_total",
    "Chunks submitted to the executor",
    ["status"],
)

FLIPS_TOTAL = Counter(
    "tileflip_flips_total",
    "Individual flip actions by outcome",
    ["status"],
)

DISPATCH_LATENCY = Histogram(
    "tileflip_dispatch_duration_seconds",
    "Time from chunk submission to executor result",
    buckets=[0.01, 0.05, 0.1, 0.2, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
)

PENDING_QUEUE_DEPTH = Gauge(
    "tileflip_pending_queue_depth",
    "Candidates waiting for the next drain cycle",
)

UPDATE_RATE_GAUGE = Gauge(
    "tileflip_update_rate",
    "Most recent sampled tile update rate (events/second)",
)

CANCELLED_DISPATCHES = Counter(
    "tileflip_cancelled_dispatches_total",
    "Scheduled chunk dispatches cancelled before firing",
)

CONFIG_REJECTIONS = Counter(
    "tileflip_config_rejections_total",
    "Parameter changes rejected as out of bounds",
    ["parameter"],
)

# Full-length identities (felts/addresses) are shortened before logging
IDENTITY_PATTERN = re.compile(r"\b0x([0-9a-fA-F]{4})[0-9a-fA-F]{24,}([0-9a-fA-F]{4})\b")


def redact_identity(text: Any) -> Any:
    """Shorten long hexadecimal identities in text.

    Args:
        text: Input text that may contain account identities

    Returns:
        Text with identities shortened to ``0x1234…abcd``, or original input if
        not a string

    Example:
        >>> redact_identity("owner 0x" + "ab" * 32)
        'owner 0xabab…abab'
    """
    if not isinstance(text, str):
        return text

    return IDENTITY_PATTERN.sub(lambda m: f"0x{m.group(1)}…{m.group(2)}", text)


def identity_redaction_processor(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Structlog processor to shorten identities in log events.

    Args:
        logger: Logger instance (unused)
        method_name: Log method name (unused)
        event_dict: Event dictionary to process

    Returns:
        Event dictionary with identities shortened in string values
    """

    def redact_value(value: Any) -> Any:
        if isinstance(value, str):
            return redact_identity(value)
        elif isinstance(value, dict):
            return {k: redact_value(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [redact_value(item) for item in value]
        return value

    return {key: redact_value(value) for key, value in event_dict.items()}


def setup_logging(
    log_level: str = "INFO",
    enable_identity_redaction: bool = True,
    log_format: str = "json",
) -> None:
    """Initialize structured logging with identity redaction.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        enable_identity_redaction: Whether to enable the redaction processor
        log_format: ``json`` for JSON lines, ``text`` for plain console output

    Raises:
        ValueError: If log_format is not json or text
    """
    if log_format not in ("json", "text"):
        raise ValueError(f"Unsupported log format: {log_format}")

    processors: list[Any] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if enable_identity_redaction:
        processors.append(identity_redaction_processor)

    if log_format == "text":
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
    else:
        processors.append(JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def setup_tracing(
    service_name: str = "tileflip",
    otlp_endpoint: str | None = None,
) -> None:
    """Initialize OpenTelemetry tracing.

    Args:
        service_name: Name of the service for tracing
        otlp_endpoint: OTLP endpoint URL (if None, uses console exporter)
    """
    from tileflip import __version__

    resource = Resource.create(
        {
            "service.name": service_name,
            "service.version": __version__,
        }
    )

    tracer_provider = TracerProvider(resource=resource)
    trace.set_tracer_provider(tracer_provider)

    exporter: OTLPSpanExporter | ConsoleSpanExporter
    if otlp_endpoint:
        exporter = OTLPSpanExporter(endpoint=otlp_endpoint)
    else:
        exporter = ConsoleSpanExporter()

    tracer_provider.add_span_processor(BatchSpanProcessor(exporter))


def get_tracer(name: str) -> trace.Tracer:
    """Get OpenTelemetry tracer for a component.

    Args:
        name: Tracer name (typically module name)

    Returns:
        Tracer instance
    """
    return trace.get_tracer(name)


def get_logger(name: str, **context: Any) -> Any:
    """Get a structured logger with optional context.

    Args:
        name: Logger name
        **context: Additional context to bind to logger

    Returns:
        Bound logger with context
    """
    logger = structlog.get_logger(name)
    if context:
        logger = logger.bind(**context)
    return logger


def log_operation(
    logger: Any,
    operation: str,
    status: str = "success",
    chunk_id: int | None = None,
    size: int | None = None,
    latency_ms: float | None = None,
    **extra_context: Any,
) -> None:
    """Log an operation with standardized fields for observability.

    Args:
        logger: Structured logger instance
        operation: Operation name
        status: Operation status (success, error, warning)
        chunk_id: Chunk identifier
        size: Number of items involved
        latency_ms: Operation latency in milliseconds
        **extra_context: Additional context fields
    """
    log_data = {
        "operation": operation,
        "status": status,
        **extra_context,
    }

    if chunk_id is not None:
        log_data["chunk_id"] = chunk_id
    if size is not None:
        log_data["size"] = size
    if latency_ms is not None:
        log_data["latency_ms"] = latency_ms

    log_data.update(get_timing_context())

    if status == "error":
        logger.error("Operation completed", **log_data)
    elif status == "warning":
        logger.warning("Operation completed", **log_data)
    else:
        logger.info("Operation completed", **log_data)


class PerformanceTimer:
    """Timing state for one measured operation.

    Filled in by ``async_performance_timer``; ``duration`` is available once
    the block has exited.
    """

    def __init__(
        self,
        operation: str,
        chunk_id: int | None = None,
        size: int | None = None,
        logger: structlog.BoundLogger | None = None,
        record_metrics: bool = True,
        create_span: bool = True,
        tracer_name: str = "tileflip.performance",
    ):
        self.operation = operation
        self.chunk_id = chunk_id
        self.size = size
        self.logger = logger or get_logger("tileflip.performance")
        self.record_metrics = record_metrics
        self.tracer = get_tracer(tracer_name) if create_span else None
        self.span: trace.Span | None = None
        self.start_time: float | None = None
        self.end_time: float | None = None

    @property
    def duration(self) -> float | None:
        """Get operation duration in seconds."""
        if self.start_time is not None and self.end_time is not None:
            return self.end_time - self.start_time
        return None

    def _finish(self, status: str, error: BaseException | None = None) -> None:
        self.end_time = time.perf_counter()
        duration = self.end_time - (self.start_time or self.end_time)

        if self.record_metrics:
            OPERATION_COUNTER.labels(operation=self.operation, status=status).inc()
            OPERATION_LATENCY.labels(operation=self.operation).observe(duration)

        if self.span:
            self.span.set_attribute("duration_seconds", duration)
            self.span.set_attribute("status", status)
            if error is not None:
                self.span.set_status(trace.Status(trace.StatusCode.ERROR, str(error)))
                self.span.record_exception(error)
            else:
                self.span.set_status(trace.Status(trace.StatusCode.OK))
            self.span.end()

        extra = {"error": str(error)} if error is not None else {}
        log_operation(
            self.logger,
            self.operation,
            status=status,
            chunk_id=self.chunk_id,
            size=self.size,
            latency_ms=duration * 1000,
            **extra,
        )


@asynccontextmanager
async def async_performance_timer(
    operation: str,
    chunk_id: int | None = None,
    size: int | None = None,
    logger: structlog.BoundLogger | None = None,
    record_metrics: bool = True,
    create_span: bool = True,
    tracer_name: str = "tileflip.performance",
) -> AsyncGenerator[PerformanceTimer, None]:
    """Async context manager for measuring operation performance.

    Args:
        operation: Operation name for metrics/logging
        chunk_id: Chunk identifier (optional)
        size: Number of items involved (optional)
        logger: Logger instance (optional)
        record_metrics: Whether to record Prometheus metrics
        create_span: Whether to create tracing span
        tracer_name: Tracer name for spans

    Yields:
        PerformanceTimer instance
    """
    timer = PerformanceTimer(
        operation=operation,
        chunk_id=chunk_id,
        size=size,
        logger=logger,
        record_metrics=record_metrics,
        create_span=create_span,
        tracer_name=tracer_name,
    )

    timer.start_time = time.perf_counter()

    if timer.tracer:
        timer.span = timer.tracer.start_span(operation)
        if chunk_id is not None:
            timer.span.set_attribute("chunk_id", chunk_id)
        if size is not None:
            timer.span.set_attribute("size", size)

    try:
        yield timer
    except Exception as e:
        timer._finish("error", e)
        raise
    else:
        timer._finish("success")


def record_update(classification: str) -> None:
    """Record a classified tile update.

    Args:
        classification: self_owned, available, foreign or decode_error
    """
    UPDATES_TOTAL.labels(classification=classification).inc()


def record_admission(admitted: bool, policy: str) -> None:
    """Record an admission decision.

    Args:
        admitted: Whether the candidate was admitted
        policy: Admission policy name
    """
    decision = "admitted" if admitted else "rejected"
    ADMISSIONS_TOTAL.labels(decision=decision, policy=policy).inc()


def record_chunk_outcome(size: int, success: bool, latency_seconds: float) -> None:
    """Record the outcome of one executor call.

    Args:
        size: Number of actions in the chunk
        success: Whether the executor accepted the chunk
        latency_seconds: Time from submission to result
    """
    status = "success" if success else "failure"
    CHUNKS_TOTAL.labels(status=status).inc()
    FLIPS_TOTAL.labels(status=status).inc(size)
    DISPATCH_LATENCY.observe(latency_seconds)


def record_cancelled_dispatches(count: int) -> None:
    """Record chunk dispatches cancelled before their timer fired."""
    if count > 0:
        CANCELLED_DISPATCHES.inc(count)


def record_config_rejection(parameter: str) -> None:
    """Record a rejected parameter change."""
    CONFIG_REJECTIONS.labels(parameter=parameter).inc()


def update_pending_depth(depth: int) -> None:
    """Update the pending queue depth gauge."""
    PENDING_QUEUE_DEPTH.set(depth)


def update_rate_gauge(rate: float) -> None:
    """Update the sampled update-rate gauge."""
    UPDATE_RATE_GAUGE.set(rate)


def start_metrics_server(port: int = 8000) -> None:
    """Start Prometheus metrics HTTP server.

    Args:
        port: Port to serve metrics on
    """
    start_http_server(port)


class MonotonicClock:
    """Monotonic clock for internal timing measurements.

    Uses asyncio event loop's monotonic time for consistent timing
    that's not affected by system clock adjustments.
    """

    @staticmethod
    def now() -> float:
        """Get current monotonic time in seconds.

        Returns:
            Current time from asyncio event loop's monotonic clock
        """
        try:
            loop = asyncio.get_running_loop()
            return loop.time()
        except RuntimeError:
            return time.monotonic()

    @staticmethod
    def now_ms() -> float:
        """Get current monotonic time in milliseconds."""
        return MonotonicClock.now() * 1000.0

    @staticmethod
    def wall_time() -> float:
        """Get current wall clock time for display purposes.

        Returns:
            Current wall clock time in seconds since epoch
        """
        return time.time()

    @staticmethod
    def wall_time_ms() -> float:
        """Get current wall clock time in milliseconds since epoch."""
        return time.time() * 1000.0


def get_timing_context() -> dict[str, float]:
    """Get current timing context for logging.

    Returns:
        Dictionary with monotonic_time and wall_time
    """
    return {
        "monotonic_time": MonotonicClock.now(),
        "wall_time": MonotonicClock.wall_time(),
    }
