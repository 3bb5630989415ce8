from prometheus_client import Counter


reminders_created_total = Counter(
    "reminders_created_total",
    "Total reminders created via API",
)

reminders_updated_total = Counter(
    "reminders_updated_total",
    "Total reminders changed via API",
)

reminders_rejected_total = Counter(
    "reminders_rejected_total",
    "Total reminder create/update requests rejected by validation",
    ["kind"],
)

scheduler_scans_total = Counter(
    "reminder_scheduler_scans_total",
    "Total scheduler scan cycles",
)

reminders_fired_total = Counter(
    "reminders_fired_total",
    "Total announcements produced by reminders",
)

reminders_suppressed_total = Counter(
    "reminders_suppressed_total",
    "Total reminder occurrences skipped because of the ignore flag",
)

reminders_expired_total = Counter(
    "reminders_expired_total",
    "Total reminders deactivated after expiring",
)

scheduler_failures_total = Counter(
    "reminder_scheduler_failures_total",
    "Total reminders the scheduler failed to process",
)
