"""
Prometheus metrics module for the practice space scheduler.

Service timings come from the @measure_operation decorator; domain counters
cover lifecycle transitions, snapshot caching, day locks, event delivery and
the auto-cancellation sweep.
"""

from threading import Lock
from time import monotonic
from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Create a custom registry to avoid conflicts with default metrics
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "practice_space_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "practice_space_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "practice_space_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

booking_transitions_total = Counter(
    "practice_space_booking_transitions_total",
    "Booking lifecycle transitions",
    ["from_status", "to_status"],
    registry=REGISTRY,
)

conflict_snapshot_requests_total = Counter(
    "practice_space_conflict_snapshot_requests_total",
    "Conflict snapshot lookups by outcome",
    ["result"],  # hit | miss | fresh | bypass
    registry=REGISTRY,
)

day_lock_total = Counter(
    "practice_space_day_lock_total",
    "Resource-day write lock operations",
    ["action", "outcome"],
    registry=REGISTRY,
)

event_deliveries_total = Counter(
    "practice_space_event_deliveries_total",
    "Lifecycle event deliveries to subscribers",
    ["event_type", "status"],
    registry=REGISTRY,
)

sweep_records_total = Counter(
    "practice_space_sweep_records_total",
    "Auto-cancellation sweep outcomes per record",
    ["outcome"],  # cancelled | skipped | failed
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    _cache_lock: Lock = Lock()
    _cache_payload: Optional[bytes] = None
    _cache_ts: Optional[float] = None
    _cache_ttl_seconds: float = 1.0

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record service operation metrics from @measure_operation decorator.

        Args:
            service: Service name (e.g., 'ReservationService')
            operation: Operation/method name (e.g., 'create_booking')
            duration: Operation duration in seconds
            status: Operation status ('success' or 'error')
            error_type: Type of error if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_transition(from_status: Optional[str], to_status: str) -> None:
        booking_transitions_total.labels(
            from_status=from_status or "new", to_status=to_status
        ).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_snapshot_lookup(result: str) -> None:
        conflict_snapshot_requests_total.labels(result=result).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_day_lock(action: str, outcome: str) -> None:
        day_lock_total.labels(action=action, outcome=outcome).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_event_delivery(event_type: str, status: str) -> None:
        event_deliveries_total.labels(event_type=event_type, status=status).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_sweep_outcome(outcome: str) -> None:
        sweep_records_total.labels(outcome=outcome).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def get_metrics() -> bytes:
        """
        Generate Prometheus metrics in exposition format.

        Returns:
            Metrics data in Prometheus text format
        """
        now = monotonic()
        payload = PrometheusMetrics._cache_payload
        ts = PrometheusMetrics._cache_ts
        ttl = PrometheusMetrics._cache_ttl_seconds

        if payload is not None and ts is not None and (now - ts) <= ttl:
            return payload

        with PrometheusMetrics._cache_lock:
            payload = PrometheusMetrics._cache_payload
            ts = PrometheusMetrics._cache_ts
            if payload is None or ts is None or (now - ts) > ttl:
                PrometheusMetrics._cache_payload = cast(bytes, generate_latest(REGISTRY))
                PrometheusMetrics._cache_ts = monotonic()
                payload = PrometheusMetrics._cache_payload

        return cast(bytes, payload)

    @staticmethod
    def get_content_type() -> str:
        """Get the content type for Prometheus metrics."""
        return cast(str, CONTENT_TYPE_LATEST)

    @staticmethod
    def _invalidate_cache() -> None:
        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_ts = None
            PrometheusMetrics._cache_payload = None


prometheus_metrics = PrometheusMetrics()
