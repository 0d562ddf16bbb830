"""
Observability components for Verdict.

Metrics Example:
    >>> from verdict.observability import ObservabilityHooks, LoggingMetricHook
    >>> ObservabilityHooks.get_instance().add_metric_hook(LoggingMetricHook())
"""

from verdict.observability.hooks import (
    METRIC_AUTHORIZE_ALLOWED,
    METRIC_AUTHORIZE_CACHE_HITS,
    METRIC_AUTHORIZE_DENIED,
    METRIC_AUTHORIZE_LATENCY,
    METRIC_AUTHORIZE_REQUESTS,
    METRIC_SCOPE_REQUESTS,
    InMemoryMetricHook,
    LoggingMetricHook,
    MetricHook,
    ObservabilityHooks,
    TimingStats,
    emit_counter,
    emit_timing,
)

__all__ = [
    "MetricHook",
    "LoggingMetricHook",
    "InMemoryMetricHook",
    "ObservabilityHooks",
    "TimingStats",
    "emit_counter",
    "emit_timing",
    "METRIC_AUTHORIZE_REQUESTS",
    "METRIC_AUTHORIZE_ALLOWED",
    "METRIC_AUTHORIZE_DENIED",
    "METRIC_AUTHORIZE_CACHE_HITS",
    "METRIC_AUTHORIZE_LATENCY",
    "METRIC_SCOPE_REQUESTS",
]
