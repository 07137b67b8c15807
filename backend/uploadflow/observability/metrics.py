"""Prometheus metrics for UploadFlow."""

from prometheus_client import Counter, Gauge, Histogram

uploads_created_total = Counter(
    "uploadflow_uploads_created_total",
    "Total number of draft uploads created",
)

attachments_stored_total = Counter(
    "uploadflow_attachments_stored_total",
    "Attachment store outcomes",
    ["result"],  # result: written|deduplicated|rejected|failed
)

attachment_size_bytes = Histogram(
    "uploadflow_attachment_size_bytes",
    "Size of stored attachments in bytes",
    buckets=[1024, 16384, 131072, 1048576, 4194304, 16777216, 67108864],
)

uploads_published_total = Counter(
    "uploadflow_uploads_published_total",
    "Total uploads published",
    ["source"],  # source: HTTP|MAIL
)

lifecycle_rejections_total = Counter(
    "uploadflow_lifecycle_rejections_total",
    "Lifecycle operations rejected or failed",
    ["operation", "kind"],
)

notifications_total = Counter(
    "uploadflow_notifications_total",
    "Notification deliveries by sink",
    ["sink", "status"],  # sink: webhook|broadcast, status: success|error|skipped
)

mail_messages_total = Counter(
    "uploadflow_mail_messages_total",
    "Inbound SMTP messages by outcome",
    ["status"],  # status: accepted|rejected|failed|empty
)

live_subscribers = Gauge(
    "uploadflow_live_subscribers",
    "Currently connected live subscribers",
)
