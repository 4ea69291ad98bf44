"""
Prometheus metrics collection.

In-memory counters per process; Prometheus handles storage. Each
collector owns its registry so several app instances can coexist in one
process (tests build one per test).
"""

import time
from typing import Optional

import structlog
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, Info

logger = structlog.get_logger(__name__)


class MetricsCollector:
    """
    Centralized metrics collection for KPIGate.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()

        # Service info
        self.service_info = Info(
            "kpigate_service",
            "KPIGate service information",
            registry=self.registry,
        )
        self.service_info.info({
            "version": "0.1.0",
            "service": "kpigate",
        })

        # Request metrics
        self.requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry,
        )

        self.request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
            registry=self.registry,
        )

        # Auth metrics
        self.auth_attempts_total = Counter(
            "auth_attempts_total",
            "Credential checks by outcome",
            ["outcome"],
            registry=self.registry,
        )

        self.rate_limited_total = Counter(
            "rate_limited_requests_total",
            "Requests rejected by the rate limiter",
            ["scope"],
            registry=self.registry,
        )

        # Storage metrics
        self.storage_operations_total = Counter(
            "storage_operations_total",
            "Storage gateway operations",
            ["operation", "table", "outcome"],
            registry=self.registry,
        )

        self.note_sync_failures_total = Counter(
            "pipeline_note_sync_failures_total",
            "Individual note writes that failed during a batch save",
            ["action"],
            registry=self.registry,
        )

        self.uptime_seconds = Gauge(
            "uptime_seconds",
            "Service uptime in seconds",
            registry=self.registry,
        )

        self._start_time = time.time()

    def record_request(
        self,
        method: str,
        endpoint: str,
        status_code: int,
        duration_seconds: float
    ) -> None:
        """Record HTTP request metrics."""
        self.requests_total.labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        self.request_duration.labels(
            method=method,
            endpoint=endpoint
        ).observe(duration_seconds)

    def record_auth_attempt(self, outcome: str) -> None:
        self.auth_attempts_total.labels(outcome=outcome).inc()

    def record_rate_limited(self, scope: str) -> None:
        self.rate_limited_total.labels(scope=scope).inc()

    def record_storage_operation(self, operation: str, table: str, outcome: str) -> None:
        self.storage_operations_total.labels(
            operation=operation,
            table=table,
            outcome=outcome,
        ).inc()

    def record_note_sync_failure(self, action: str) -> None:
        self.note_sync_failures_total.labels(action=action).inc()

    def update_system_metrics(self) -> None:
        """Update system-level metrics."""
        self.uptime_seconds.set(time.time() - self._start_time)
