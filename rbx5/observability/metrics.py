"""
Metrics Collection with Prometheus.

Exposes storefront and upstream metrics for monitoring.
"""

from enum import StrEnum

from prometheus_client import Counter, Gauge, Histogram, Info

from rbx5.config import settings


class MetricLabels(StrEnum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    OUTCOME = "outcome"
    ERROR_TYPE = "error_type"


class StorefrontMetrics:
    """
    Centralized metrics for the RBX5 storefront API.

    Minimum viable metrics covering:
    - HTTP requests (rate, duration, in progress)
    - Roblox upstream calls (rate, duration, outcome)
    - Username lookups and gamepass checks (outcome)
    - Errors by type
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "rbx5_service",
            "Service information",
        )
        self.service_info.info(
            {
                "version": settings.api_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "rbx5_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "rbx5_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "rbx5_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.METHOD],
        )

        # ====================================================================
        # Roblox Upstream Metrics
        # ====================================================================
        self.roblox_requests_total = Counter(
            "rbx5_roblox_requests_total",
            "Total calls to Roblox public APIs",
            [MetricLabels.OPERATION, MetricLabels.OUTCOME],
        )

        self.roblox_request_duration_seconds = Histogram(
            "rbx5_roblox_request_duration_seconds",
            "Roblox API call duration in seconds",
            [MetricLabels.OPERATION],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        # ====================================================================
        # Workflow Metrics
        # ====================================================================
        self.user_lookups_total = Counter(
            "rbx5_user_lookups_total",
            "Username lookups by outcome",
            ["cached", MetricLabels.OUTCOME],
        )

        self.gamepass_checks_total = Counter(
            "rbx5_gamepass_checks_total",
            "Gamepass checks by outcome",
            [MetricLabels.OUTCOME],
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "rbx5_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE, MetricLabels.OPERATION],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_roblox_request(self, operation: str, outcome: str, duration: float) -> None:
        """Record a Roblox upstream call."""
        self.roblox_requests_total.labels(operation=operation, outcome=outcome).inc()
        self.roblox_request_duration_seconds.labels(operation=operation).observe(duration)

    def record_user_lookup(self, cached: bool, outcome: str) -> None:
        """Record a username lookup served by /api/user-info."""
        self.user_lookups_total.labels(cached=str(cached), outcome=outcome).inc()

    def record_gamepass_check(self, outcome: str) -> None:
        """Record a gamepass check (found, mismatch, none, error)."""
        self.gamepass_checks_total.labels(outcome=outcome).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = StorefrontMetrics()
