"""Delivery constants shared by the enqueue and dequeue sides."""

NOTIFICATION_QUEUE = "notification-delivery"
DELIVERY_JOB_NAME = "deliver_notification"

MAX_DELIVERY_ATTEMPTS = 5

# Max concurrent delivery jobs per worker process.
NOTIFICATION_CONCURRENCY = 5

# Backoff per attempt in seconds: 30s, 2m, 10m, 30m, 2h.
BACKOFF_DELAYS_SEC = (30, 120, 600, 1800, 7200)
JITTER_RATIO = 0.2
MIN_RETRY_DELAY_SEC = 1

PREFERENCE_CACHE_TTL_SEC = 5 * 60
