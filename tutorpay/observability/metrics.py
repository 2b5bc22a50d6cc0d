"""
Metrics Collection with Prometheus.

Exposes business and system metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from tutorpay.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    ERROR_TYPE = "error_type"
    SOURCE = "source"
    RESULT = "result"


class PlatformMetrics:
    """
    Centralized metrics for the payment and access service.

    Covers:
    - HTTP requests (rate, duration, errors)
    - Checkout initializations (one-off and subscription)
    - Reconciliation outcomes per source (redirect / webhook)
    - Webhook rejections
    - Processor API calls (rate, duration, failures)
    - Access decisions
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "tutorpay_service",
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
            "tutorpay_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "tutorpay_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "tutorpay_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Checkout Metrics
        # ====================================================================
        self.initializations_total = Counter(
            "tutorpay_initializations_total",
            "Checkout initializations by kind and result",
            ["kind", MetricLabels.RESULT],
        )

        self.initialized_amount_minor = Histogram(
            "tutorpay_initialized_amount_minor",
            "Amounts sent to the processor in minor units",
            buckets=(1000, 5000, 10000, 50000, 100000, 500000, 1000000, 5000000),
        )

        # ====================================================================
        # Reconciliation Metrics
        # ====================================================================
        self.reconciliations_total = Counter(
            "tutorpay_reconciliations_total",
            "Payment events applied to the ledger",
            [MetricLabels.SOURCE, MetricLabels.RESULT],
        )

        self.webhook_rejections_total = Counter(
            "tutorpay_webhook_rejections_total",
            "Webhooks rejected before reconciliation",
            ["reason"],
        )

        # ====================================================================
        # Processor Metrics
        # ====================================================================
        self.processor_calls_total = Counter(
            "tutorpay_processor_calls_total",
            "Outbound payment processor API calls",
            [MetricLabels.OPERATION, "success"],
        )

        self.processor_call_duration_seconds = Histogram(
            "tutorpay_processor_call_duration_seconds",
            "Outbound payment processor call duration in seconds",
            [MetricLabels.OPERATION],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        # ====================================================================
        # Access Metrics
        # ====================================================================
        self.access_decisions_total = Counter(
            "tutorpay_access_decisions_total",
            "Video access decisions by granting rule",
            ["granted", "reason"],
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "tutorpay_errors_total",
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

    def record_initialization(self, kind: str, result: str, amount_minor: int | None = None) -> None:
        """Record a checkout initialization attempt."""
        self.initializations_total.labels(kind=kind, result=result).inc()
        if amount_minor is not None and result == "success":
            self.initialized_amount_minor.observe(amount_minor)

    def record_reconciliation(self, source: str, result: str) -> None:
        """Record the outcome of applying one payment event."""
        self.reconciliations_total.labels(source=source, result=result).inc()

    def record_webhook_rejection(self, reason: str) -> None:
        """Record a webhook rejected before reconciliation."""
        self.webhook_rejections_total.labels(reason=reason).inc()

    def record_processor_call(self, operation: str, success: bool, duration: float) -> None:
        """Record an outbound processor call."""
        self.processor_calls_total.labels(operation=operation, success=str(success)).inc()
        self.processor_call_duration_seconds.labels(operation=operation).observe(duration)

    def record_access_decision(self, granted: bool, reason: str) -> None:
        """Record a video access decision."""
        self.access_decisions_total.labels(granted=str(granted), reason=reason).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = PlatformMetrics()
