"""
Prometheus metrics for merchant onboarding.

Tracks:
- Stripe API calls and errors
- Merchant account provisioning outcomes
- Webhook events by type and outcome
- Compliance requests created
- Creator notifications enqueued and published
"""
from prometheus_client import Counter, Gauge, Histogram

# Stripe API metrics
stripe_api_requests_total = Counter(
    "stripe_api_requests_total",
    "Total Stripe API requests",
    ["operation", "status"],  # operation: create_account, retrieve_account, etc.
)

stripe_api_errors_total = Counter(
    "stripe_api_errors_total",
    "Total Stripe API errors",
    ["error_type"],  # transient, permanent, rate_limit
)

stripe_api_duration_seconds = Histogram(
    "stripe_api_duration_seconds",
    "Stripe API call duration in seconds",
    ["operation"],
    buckets=(0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0),
)

# Provisioning metrics
merchant_accounts_provisioned_total = Counter(
    "merchant_accounts_provisioned_total",
    "Merchant account provisioning attempts",
    ["status"],  # created, not_ready, already_has_account, rejected
)

bank_account_syncs_total = Counter(
    "bank_account_syncs_total",
    "Bank account synchronisations with Stripe",
    ["status"],  # unchanged, updated, rejected
)

# Webhook metrics
webhook_events_processed_total = Counter(
    "webhook_events_processed_total",
    "Total webhook events processed",
    ["event_type", "status"],  # success, failed, ignored
)

webhook_processing_duration_seconds = Histogram(
    "webhook_processing_duration_seconds",
    "Webhook processing duration in seconds",
    ["event_type"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

# Compliance metrics
compliance_requests_created_total = Counter(
    "compliance_requests_created_total",
    "Compliance info requests created from Stripe requirements",
    ["kind"],  # kyc, remediation
)

# Outbox metrics
notifications_enqueued_total = Counter(
    "notifications_enqueued_total",
    "Creator notifications written to the outbox",
    ["template"],
)

outbox_queue_depth = Gauge(
    "outbox_queue_depth",
    "Number of unpublished events in outbox",
)

outbox_events_published_total = Counter(
    "outbox_events_published_total",
    "Total outbox events published",
    ["event_type"],
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_vendor_request(operation: str, status: str, duration_seconds: float) -> None:
        """Record Stripe API call."""
        stripe_api_requests_total.labels(operation=operation, status=status).inc()
        stripe_api_duration_seconds.labels(operation=operation).observe(duration_seconds)

    @staticmethod
    def record_vendor_error(error_type: str) -> None:
        """Record Stripe API error."""
        stripe_api_errors_total.labels(error_type=error_type).inc()

    @staticmethod
    def record_provisioning(status: str) -> None:
        merchant_accounts_provisioned_total.labels(status=status).inc()

    @staticmethod
    def record_bank_account_sync(status: str) -> None:
        bank_account_syncs_total.labels(status=status).inc()

    @staticmethod
    def record_webhook_event(event_type: str, status: str, duration_seconds: float) -> None:
        """Record webhook event processing."""
        webhook_events_processed_total.labels(event_type=event_type, status=status).inc()
        webhook_processing_duration_seconds.labels(event_type=event_type).observe(
            duration_seconds
        )

    @staticmethod
    def record_compliance_request(kind: str) -> None:
        compliance_requests_created_total.labels(kind=kind).inc()

    @staticmethod
    def record_notification(template: str) -> None:
        notifications_enqueued_total.labels(template=template).inc()

    @staticmethod
    def set_outbox_queue_depth(depth: int) -> None:
        """Set outbox queue depth."""
        outbox_queue_depth.set(depth)

    @staticmethod
    def record_outbox_event_published(event_type: str) -> None:
        """Record outbox event published."""
        outbox_events_published_total.labels(event_type=event_type).inc()


# Export singleton instance
metrics = MetricsCollector()
