"""Prometheus metrics for the invoicing API and worker.

Exposes key metrics for monitoring:
- Request counts by endpoint and status
- Request duration histograms
- Invoice, payment and estimate activity
- Email and reminder delivery outcomes

Based on Prometheus naming conventions:
https://prometheus.io/docs/practices/naming/
"""

from prometheus_client import Counter, Histogram, generate_latest
from prometheus_client.openmetrics.exposition import CONTENT_TYPE_LATEST

# Request metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# Invoice metrics
invoices_created_total = Counter(
    "invoices_created_total",
    "Total invoices created",
    ["status"],  # draft, pending
)

invoices_sent_total = Counter(
    "invoices_sent_total",
    "Total invoice send attempts",
    ["status"],  # success, failed, queued
)

payments_recorded_total = Counter(
    "payments_recorded_total",
    "Total payments recorded against invoices",
)

# Reminder metrics
reminders_sent_total = Counter(
    "reminders_sent_total",
    "Total reminder emails",
    ["reminder_type", "status"],  # status: sent, failed, cancelled
)

# Email metrics
emails_sent_total = Counter(
    "emails_sent_total",
    "Total emails handed to the email provider",
    ["kind", "status"],  # kind: invoice, estimate, reminder
)

# Estimate metrics
estimates_converted_total = Counter(
    "estimates_converted_total",
    "Total estimates converted into invoices",
)

logo_upload_size_bytes = Histogram(
    "logo_upload_size_bytes",
    "Business logo upload size in bytes",
    buckets=(1024, 10240, 102400, 524288, 1048576, 2097152),  # 1KB to 2MB
)


def get_metrics() -> tuple[bytes, str]:
    """Generate Prometheus metrics in text format.

    Returns:
        Tuple of (metrics bytes, content type)
    """
    return generate_latest(), CONTENT_TYPE_LATEST
