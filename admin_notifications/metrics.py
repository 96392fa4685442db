from prometheus_client import Counter, Gauge

RECORDS_OBSERVED = Counter(
    "admin_records_observed_total",
    "Order and waiter-call records seen by the notification pipeline",
    ["kind", "source"]
)

DUPLICATES_SUPPRESSED = Counter(
    "admin_duplicates_suppressed_total",
    "Records dropped because they were already announced this session",
    ["kind"]
)

NOTIFICATIONS_ENQUEUED = Counter(
    "admin_notifications_enqueued_total",
    "Notifications handed to an admin session queue",
    ["kind"]
)

POLL_FAILURES = Counter(
    "admin_poll_failures_total",
    "Fallback poll queries that failed and were skipped",
    ["table"]
)

LABEL_FALLBACKS = Counter(
    "admin_label_fallbacks_total",
    "Notifications shown with the unknown-location label"
)

ACTIVE_SESSIONS = Gauge(
    "admin_sessions_active",
    "Currently mounted admin notification sessions"
)
