"""
Metrics and observability hooks for Verdict.

Provides hooks for metrics without requiring external dependencies. The
evaluator emits counters and timings through `ObservabilityHooks`; plug in
a backend (Prometheus, StatsD, OpenTelemetry) by adding a `MetricHook`.

Quick Start:
    >>> from verdict.observability import ObservabilityHooks, InMemoryMetricHook
    >>>
    >>> memory_hook = InMemoryMetricHook()
    >>> ObservabilityHooks.get_instance().add_metric_hook(memory_hook)
    >>>
    >>> verdict.allowed_to("show?", post, context={"user": user})
    >>> memory_hook.get_counter(METRIC_AUTHORIZE_REQUESTS, {"policy": "post"})
    1.0
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

METRIC_AUTHORIZE_REQUESTS = "verdict.authorize.requests"
METRIC_AUTHORIZE_ALLOWED = "verdict.authorize.allowed"
METRIC_AUTHORIZE_DENIED = "verdict.authorize.denied"
METRIC_AUTHORIZE_CACHE_HITS = "verdict.authorize.cache_hits"
METRIC_AUTHORIZE_LATENCY = "verdict.authorize.latency_ms"
METRIC_SCOPE_REQUESTS = "verdict.scope.requests"


@runtime_checkable
class MetricHook(Protocol):
    """
    Protocol for metric backends.

    Example:
        >>> class StatsdHook:
        ...     def increment(self, name, value=1.0, tags=None):
        ...         statsd.incr(name, value, tags=tags)
        ...
        ...     def timing(self, name, duration_ms, tags=None):
        ...         statsd.timing(name, duration_ms, tags=tags)
    """

    def increment(self, name: str, value: float = 1.0, tags: dict[str, Any] | None = None) -> None:
        """Increment a counter metric."""
        ...

    def timing(self, name: str, duration_ms: float, tags: dict[str, Any] | None = None) -> None:
        """Record a timing/duration measurement in milliseconds."""
        ...


class LoggingMetricHook:
    """
    Simple hook that logs metrics (for development and debugging).

    Example:
        >>> hook = LoggingMetricHook()
        >>> hook.increment("verdict.authorize.requests", 1.0, {"policy": "post"})
        DEBUG:verdict.metrics:COUNTER verdict.authorize.requests=1.0 tags={'policy': 'post'}
    """

    def __init__(self, logger: logging.Logger | None = None, level: int = logging.DEBUG):
        self.logger = logger or logging.getLogger("verdict.metrics")
        self.level = level

    def increment(self, name: str, value: float = 1.0, tags: dict[str, Any] | None = None) -> None:
        """Log a counter increment."""
        self.logger.log(self.level, f"COUNTER {name}={value} tags={tags}")

    def timing(self, name: str, duration_ms: float, tags: dict[str, Any] | None = None) -> None:
        """Log a timing value."""
        self.logger.log(self.level, f"TIMING {name}={duration_ms}ms tags={tags}")


@dataclass
class TimingStats:
    """Statistics for recorded timings."""

    count: int
    total: float
    min: float
    max: float
    avg: float

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "count": self.count,
            "total": self.total,
            "min": self.min,
            "max": self.max,
            "avg": self.avg,
        }


class InMemoryMetricHook:
    """
    In-memory metrics for testing and simple use cases.

    Example:
        >>> hook = InMemoryMetricHook()
        >>> hook.increment("requests", tags={"policy": "post"})
        >>> hook.get_counter("requests", {"policy": "post"})
        1.0
    """

    def __init__(self):
        self.counters: dict[str, float] = defaultdict(float)
        self.timings: dict[str, list[float]] = defaultdict(list)
        self._lock = threading.Lock()

    def _make_key(self, name: str, tags: dict[str, Any] | None) -> str:
        """Create a unique key from metric name and tags."""
        if not tags:
            return name
        sorted_tags = sorted(tags.items())
        tag_str = ",".join(f"{k}={v}" for k, v in sorted_tags)
        return f"{name}[{tag_str}]"

    def increment(self, name: str, value: float = 1.0, tags: dict[str, Any] | None = None) -> None:
        """Increment a counter."""
        with self._lock:
            self.counters[self._make_key(name, tags)] += value

    def timing(self, name: str, duration_ms: float, tags: dict[str, Any] | None = None) -> None:
        """Record a timing value."""
        with self._lock:
            self.timings[self._make_key(name, tags)].append(duration_ms)

    def get_counter(self, name: str, tags: dict[str, Any] | None = None) -> float:
        """Get the current value of a counter, or 0.0 if never incremented."""
        return self.counters.get(self._make_key(name, tags), 0.0)

    def get_timing_stats(
        self, name: str, tags: dict[str, Any] | None = None
    ) -> TimingStats | None:
        """Get statistics for timing measurements, or None if empty."""
        values = self.timings.get(self._make_key(name, tags), [])
        if not values:
            return None
        return TimingStats(
            count=len(values),
            total=sum(values),
            min=min(values),
            max=max(values),
            avg=sum(values) / len(values),
        )

    def reset(self) -> None:
        """Reset all metrics to initial state."""
        with self._lock:
            self.counters.clear()
            self.timings.clear()


class ObservabilityHooks:
    """
    Central registry for metric hooks.

    This is a singleton; use `get_instance()`.
    """

    _instance: ObservabilityHooks | None = None
    _instance_lock = threading.Lock()

    def __init__(self) -> None:
        self._metric_hooks: list[MetricHook] = []

    @classmethod
    def get_instance(cls) -> ObservabilityHooks:
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Drop the singleton. Primarily useful for testing."""
        with cls._instance_lock:
            cls._instance = None

    def add_metric_hook(self, hook: MetricHook) -> None:
        self._metric_hooks.append(hook)

    def remove_metric_hook(self, hook: MetricHook) -> bool:
        try:
            self._metric_hooks.remove(hook)
            return True
        except ValueError:
            return False

    @property
    def metric_hooks(self) -> list[MetricHook]:
        return list(self._metric_hooks)

    def increment(self, name: str, value: float = 1.0, tags: dict[str, Any] | None = None) -> None:
        for hook in self._metric_hooks:
            hook.increment(name, value, tags)

    def timing(self, name: str, duration_ms: float, tags: dict[str, Any] | None = None) -> None:
        for hook in self._metric_hooks:
            hook.timing(name, duration_ms, tags)


def emit_counter(name: str, value: float = 1.0, tags: dict[str, Any] | None = None) -> None:
    """Emit a counter through the global hooks."""
    ObservabilityHooks.get_instance().increment(name, value, tags)


def emit_timing(name: str, duration_ms: float, tags: dict[str, Any] | None = None) -> None:
    """Emit a timing through the global hooks."""
    ObservabilityHooks.get_instance().timing(name, duration_ms, tags)
