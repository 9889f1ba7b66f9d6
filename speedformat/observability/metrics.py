"""
Metrics Collection with Prometheus.

Exposes request-pipeline and system metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from speedformat.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    OUTCOME = "outcome"
    PLAN = "plan"
    FORMATTER = "formatter"
    ERROR_TYPE = "error_type"


class FormatterMetrics:
    """
    Centralized metrics for the formatting API.

    Covers:
    - HTTP requests (rate, duration, in progress)
    - Pipeline outcomes (formatted, throttled, unauthenticated, quota exceeded)
    - Formatter execution time
    - Usage recording and quota increments (background work)
    - Identity store failures
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "formatter_service",
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
            "formatter_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "formatter_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "formatter_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Pipeline Metrics
        # ====================================================================
        self.pipeline_outcomes_total = Counter(
            "formatter_pipeline_outcomes_total",
            "Format pipeline terminal states",
            [MetricLabels.ENDPOINT, MetricLabels.OUTCOME, MetricLabels.PLAN],
        )

        self.rate_limit_rejections_total = Counter(
            "formatter_rate_limit_rejections_total",
            "Requests rejected by the rate limiter",
            [MetricLabels.ENDPOINT],
        )

        self.quota_denials_total = Counter(
            "formatter_quota_denials_total",
            "Requests denied by the monthly quota",
            [MetricLabels.PLAN],
        )

        self.format_duration_seconds = Histogram(
            "formatter_format_duration_seconds",
            "Formatting engine duration in seconds",
            [MetricLabels.FORMATTER],
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
        )

        # ====================================================================
        # Background Work Metrics
        # ====================================================================
        self.usage_records_total = Counter(
            "formatter_usage_records_total",
            "Usage records written",
            ["success"],
        )

        self.quota_increments_total = Counter(
            "formatter_quota_increments_total",
            "Quota counter increments",
            ["success"],
        )

        self.background_tasks_in_flight = Gauge(
            "formatter_background_tasks_in_flight",
            "Detached background tasks not yet finished",
        )

        # ====================================================================
        # Store Metrics
        # ====================================================================
        self.store_failures_total = Counter(
            "formatter_store_failures_total",
            "Identity store calls that timed out or failed to connect",
            [MetricLabels.OPERATION],
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "formatter_errors_total",
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

    def record_pipeline_outcome(self, endpoint: str, outcome: str, plan: str) -> None:
        """Record the terminal state of a format request."""
        self.pipeline_outcomes_total.labels(endpoint=endpoint, outcome=outcome, plan=plan).inc()

    def record_format(self, formatter: str, duration: float) -> None:
        """Record formatting engine execution time."""
        self.format_duration_seconds.labels(formatter=formatter).observe(duration)

    def record_usage_write(self, success: bool) -> None:
        """Record a usage record write attempt."""
        self.usage_records_total.labels(success=str(success)).inc()

    def record_quota_increment(self, success: bool) -> None:
        """Record a quota increment attempt."""
        self.quota_increments_total.labels(success=str(success)).inc()

    def record_store_failure(self, operation: str) -> None:
        """Record an identity store timeout or connection failure."""
        self.store_failures_total.labels(operation=operation).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = FormatterMetrics()
