"""
Metrics Collection with Prometheus.

Exposes request, chat and credit metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from chatapp.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    ERROR_TYPE = "error_type"
    GENERATOR = "generator"
    REASON = "reason"


class ChatMetrics:
    """
    Centralized metrics for the chat API.

    Covers:
    - HTTP requests (rate, duration, errors)
    - Message sends and generated replies
    - Credit debits and refunds
    - Authentication failures and rate-limit rejections
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        self.service_info = Info(
            "chat_service",
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
            "chat_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "chat_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
        )

        self.http_requests_in_progress = Gauge(
            "chat_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Chat Metrics
        # ====================================================================
        self.messages_sent_total = Counter(
            "chat_messages_sent_total",
            "Send-message transactions by outcome",
            ["success", MetricLabels.ERROR_TYPE],
        )

        self.generation_duration_seconds = Histogram(
            "chat_generation_duration_seconds",
            "Reply generation duration in seconds",
            [MetricLabels.GENERATOR],
            buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
        )

        self.generation_tokens = Histogram(
            "chat_generation_tokens",
            "Tokens reported per generated reply",
            buckets=(10, 50, 100, 250, 500, 1000, 2000, 4000),
        )

        self.generation_failures_total = Counter(
            "chat_generation_failures_total",
            "Reply generation failures",
            [MetricLabels.GENERATOR],
        )

        # ====================================================================
        # Credit Metrics
        # ====================================================================
        self.credits_debited_total = Counter(
            "chat_credits_debited_total",
            "Credits debited for chat turns",
        )

        self.credits_refunded_total = Counter(
            "chat_credits_refunded_total",
            "Credits refunded after failed generation",
        )

        self.insufficient_credits_total = Counter(
            "chat_insufficient_credits_total",
            "Send attempts rejected for insufficient credits",
        )

        # ====================================================================
        # Auth / Abuse Metrics
        # ====================================================================
        self.auth_failures_total = Counter(
            "chat_auth_failures_total",
            "Authentication failures by code",
            [MetricLabels.REASON],
        )

        self.rate_limited_total = Counter(
            "chat_rate_limited_total",
            "Requests rejected by the rate limiter",
        )

        self.realtime_connections = Gauge(
            "chat_realtime_connections",
            "Open realtime websocket connections",
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "chat_errors_total",
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

    def record_message_sent(self, success: bool, error_type: str | None = None) -> None:
        """Record the outcome of a send-message transaction."""
        self.messages_sent_total.labels(
            success=str(success), error_type=error_type or "none"
        ).inc()

    def record_generation(self, generator: str, duration: float, tokens: int) -> None:
        """Record a successful reply generation."""
        self.generation_duration_seconds.labels(generator=generator).observe(duration)
        self.generation_tokens.observe(tokens)

    def record_auth_failure(self, reason: str) -> None:
        """Record an authentication failure."""
        self.auth_failures_total.labels(reason=reason).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = ChatMetrics()
