"""
Observability Infrastructure

Structured logging, tracing and metrics for the CMMN compiler.
Logging goes through loguru; spans and metrics go through OpenTelemetry.
"""

import asyncio
import contextlib
import functools
import json
import sys
import time
import traceback
from enum import Enum
from typing import Any, Callable, Dict, Optional, TextIO, TypeVar, Union

from loguru import logger
from opentelemetry import metrics, trace
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider

F = TypeVar("F", bound=Callable[..., Any])


class LogLevel(str, Enum):
    """Log level enumeration."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ObservabilityConfig:
    """Configuration for observability."""

    def __init__(
        self,
        service_name: str = "cmmn-compiler",
        log_level: Union[str, LogLevel] = LogLevel.INFO,
        json_logs: bool = False,
        enable_tracing: bool = True,
        enable_metrics: bool = True,
        stream: Optional[TextIO] = None,
    ):
        """Initialize observability configuration."""
        self.service_name = service_name
        self.log_level = log_level if isinstance(log_level, str) else log_level.value
        self.json_logs = json_logs
        self.enable_tracing = enable_tracing
        self.enable_metrics = enable_metrics
        self.stream = stream or sys.stderr


class JSONSink:
    """Loguru sink writing one JSON object per record."""

    def __init__(self, stream: TextIO):
        self.stream = stream

    def __call__(self, message: Any) -> None:
        record = message.record
        log_data: Dict[str, Any] = {
            "timestamp": record["time"].isoformat(),
            "level": record["level"].name,
            "logger": record["name"],
            "function": record["function"],
            "line": record["line"],
            "message": record["message"],
        }

        if record["extra"]:
            log_data["extra"] = {k: str(v) for k, v in record["extra"].items()}

        if record["exception"]:
            exc = record["exception"]
            log_data["exception"] = {
                "type": exc.type.__name__ if exc.type else None,
                "value": str(exc.value),
                "traceback": "".join(traceback.format_exception(exc.type, exc.value, exc.traceback)),
            }

        self.stream.write(json.dumps(log_data) + "\n")
        self.stream.flush()


class ObservabilityManager:
    """Centralized observability management."""

    _instance: Optional["ObservabilityManager"] = None

    def __init__(self, config: ObservabilityConfig):
        """Initialize observability manager."""
        self.config = config
        self._setup_logging()

        if config.enable_tracing:
            self._setup_tracing()

        if config.enable_metrics:
            self._setup_metrics()

        logger.debug(
            f"Observability initialized: service={config.service_name}, "
            f"log_level={config.log_level}"
        )

    def _setup_logging(self) -> None:
        """Set up structured logging with loguru."""
        logger.remove()

        if self.config.json_logs:
            logger.add(JSONSink(self.config.stream), level=self.config.log_level)
        else:
            logger.add(
                self.config.stream,
                format=(
                    "<level>{level: <8}</level> | "
                    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
                    "<level>{message}</level>"
                ),
                level=self.config.log_level,
                colorize=False,
                backtrace=True,
                diagnose=False,
            )

    def _setup_tracing(self) -> None:
        """Set up OpenTelemetry tracing."""
        resource = Resource(attributes={SERVICE_NAME: self.config.service_name})
        self.tracer_provider = TracerProvider(resource=resource)
        self.tracer = self.tracer_provider.get_tracer(__name__)

    def _setup_metrics(self) -> None:
        """Set up OpenTelemetry metrics with an in-memory reader."""
        self.metric_reader = InMemoryMetricReader()
        resource = Resource(attributes={SERVICE_NAME: self.config.service_name})
        self.meter_provider = MeterProvider(resource=resource, metric_readers=[self.metric_reader])
        self.meter = self.meter_provider.get_meter(__name__)

        self.counter = self.meter.create_counter(
            "compiler_events_total",
            description="Total number of compiler events",
            unit="1",
        )
        self.histogram = self.meter.create_histogram(
            "compiler_duration_ms",
            description="Operation duration in milliseconds",
            unit="ms",
        )

    @classmethod
    def initialize(cls, config: Optional[ObservabilityConfig] = None) -> "ObservabilityManager":
        """Initialize or get singleton instance."""
        if cls._instance is None:
            cls._instance = cls(config or ObservabilityConfig())
        return cls._instance

    @classmethod
    def get_instance(cls) -> "ObservabilityManager":
        """Get singleton instance."""
        if cls._instance is None:
            cls._instance = cls(ObservabilityConfig())
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton so the next call reconfigures sinks."""
        cls._instance = None


@contextlib.contextmanager
def span(name: str, attributes: Optional[Dict[str, Any]] = None):
    """Context manager for creating spans."""
    manager = ObservabilityManager.get_instance()

    if hasattr(manager, "tracer"):
        with manager.tracer.start_as_current_span(name) as span_obj:
            for key, value in (attributes or {}).items():
                span_obj.set_attribute(key, value)
            yield span_obj
    else:
        yield None


def record_metric(
    metric_name: str,
    value: Union[int, float],
    attributes: Optional[Dict[str, str]] = None,
) -> None:
    """
    Record a metric value.

    Integer values and names ending in ``_total`` go to the counter, everything
    else to the duration histogram.
    """
    manager = ObservabilityManager.get_instance()
    attrs = dict(attributes or {})
    attrs["metric"] = metric_name

    if hasattr(manager, "counter") and hasattr(manager, "histogram"):
        if metric_name.endswith("_total") or isinstance(value, int):
            manager.counter.add(value, attributes=attrs)
        else:
            manager.histogram.record(value, attributes=attrs)

    logger.debug(f"Metric recorded: {metric_name}={value}")


def log_execution(
    level: Union[str, LogLevel] = LogLevel.DEBUG,
    include_result: bool = False,
) -> Callable[[F], F]:
    """
    Decorator logging a call's duration and outcome.

    Works with both sync and async functions.
    """
    log_level = level if isinstance(level, str) else level.value

    def decorator(func: F) -> F:
        func_name = f"{func.__module__}.{func.__qualname__}"

        def _finish(start_time: float, result: Any) -> None:
            duration_ms = (time.perf_counter() - start_time) * 1000
            record_metric(f"{func.__name__}_duration", duration_ms)
            suffix = f" -> {str(result)[:200]}" if include_result else ""
            logger.log(log_level, f"Function executed: {func_name} ({duration_ms:.2f}ms){suffix}")

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            start_time = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                logger.error(f"Function failed: {func_name}: {e}")
                raise
            _finish(start_time, result)
            return result

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            start_time = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.error(f"Function failed: {func_name}: {e}")
                raise
            _finish(start_time, result)
            return result

        if asyncio.iscoroutinefunction(func):
            return async_wrapper  # type: ignore
        return sync_wrapper  # type: ignore

    return decorator


class Timer:
    """Context manager for timing operations."""

    def __init__(self, name: str, log: bool = True):
        """Initialize timer."""
        self.name = name
        self.log = log
        self.start_time: float = 0
        self.elapsed: float = 0

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args: Any) -> None:
        self.elapsed = time.perf_counter() - self.start_time
        if self.log:
            logger.debug(f"Timer '{self.name}': {self.elapsed:.3f}s")
            record_metric(f"{self.name}_duration", self.elapsed * 1000)


__all__ = [
    "LogLevel",
    "ObservabilityConfig",
    "ObservabilityManager",
    "JSONSink",
    "span",
    "log_execution",
    "record_metric",
    "Timer",
]
