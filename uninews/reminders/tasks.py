"""
Scheduler tasks: fire due reminders and retire expired ones
"""
from dataclasses import replace
from datetime import datetime
from typing import Dict, Optional
from celery import shared_task
from celery.utils.log import get_logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from uninews.db.session import SessionLocal
from uninews.utils.timezone import now_local, to_utc_aware
from .celery_app import celery_app
from .config import settings
from .engine import (
    ReminderOutcome,
    ReminderValidationError,
    compute_modification_date,
    evaluate,
    initialize_cursor,
)
from .models import Announcement
from .repository import (
    apply_schedule,
    create_announcement,
    get_due_reminder_ids,
    get_expired_active_reminders,
    lock_due_reminder,
    to_schedule,
)
from .metrics import (
    scheduler_scans_total,
    reminders_fired_total,
    reminders_suppressed_total,
    reminders_expired_total,
    scheduler_failures_total,
)

logger = get_logger(__name__)


def publish_announcement(announcement: Announcement) -> None:
    """Hand a stored announcement to the delivery workers on the output queue."""
    payload = {
        "announcement_id": announcement.id,
        "channel_id": announcement.channel_id,
        "message_number": announcement.message_number,
        "title": announcement.title,
        "text": announcement.text,
        "priority": announcement.priority,
        "reminder_id": announcement.reminder_id,
    }
    celery_app.send_task(
        "announcements.deliver",
        args=[payload],
        queue=settings.RABBITMQ_OUTPUT_QUEUE,
        routing_key=settings.RABBITMQ_OUTPUT_ROUTING_KEY,
    )


def _process_reminder(db: Session, reminder_id: int, now: datetime) -> Optional[ReminderOutcome]:
    row = lock_due_reminder(db, reminder_id, now)
    if row is None:
        # Taken by a concurrent scan or no longer due
        return None

    schedule = to_schedule(row)
    result = evaluate(schedule, now)
    updated = result.schedule

    announcement = None
    if result.advanced and updated.next_date < now:
        # Missed occurrences (e.g. downtime): only the latest one is announced
        updated = initialize_cursor(updated, now)
    if result.outcome is ReminderOutcome.DUE:
        announcement = create_announcement(
            db,
            channel_id=schedule.channel_id,
            title=schedule.title,
            text=schedule.text,
            priority=schedule.priority,
            author_moderator_id=schedule.author_moderator_id,
            now=now,
            reminder_id=schedule.id,
        )
    elif result.outcome is ReminderOutcome.EXPIRED:
        updated = replace(updated, active=False)

    if result.outcome is not ReminderOutcome.NOT_DUE:
        apply_schedule(row, compute_modification_date(updated, now))
    db.commit()

    logger.info(
        f"[Reminders] evaluated reminder_id={reminder_id} channel_id={schedule.channel_id} "
        f"outcome={result.outcome.value} cursor={schedule.next_date.isoformat()} "
        f"next_date={updated.next_date.isoformat()}"
    )

    if announcement is not None:
        reminders_fired_total.inc()
        try:
            publish_announcement(announcement)
        except Exception as e:
            # The announcement is stored; delivery can be retried from the table
            scheduler_failures_total.inc()
            logger.error(f"[Reminders] publish failed announcement_id={announcement.id}: {e!r}")
    elif result.outcome is ReminderOutcome.DUE_SUPPRESSED:
        reminders_suppressed_total.inc()
    elif result.outcome is ReminderOutcome.EXPIRED:
        reminders_expired_total.inc()
    return result.outcome


def scan_and_fire(db: Session, now: datetime, limit: int = 1000) -> Dict[str, int]:
    """Evaluate every due reminder once. Returns the number of reminders per outcome."""
    summary = {outcome.value: 0 for outcome in ReminderOutcome}
    scheduler_scans_total.inc()

    for reminder_id in get_due_reminder_ids(db, now, limit=limit):
        try:
            outcome = _process_reminder(db, reminder_id, now)
        except (ReminderValidationError, SQLAlchemyError) as e:
            db.rollback()
            scheduler_failures_total.inc()
            logger.error(f"[Reminders] failed to process reminder_id={reminder_id}: {e!r}")
            continue
        if outcome is not None:
            summary[outcome.value] += 1

    logger.info(f"[Reminders] scan finished at={now.isoformat()} summary={summary}")
    return summary


def deactivate_expired(db: Session, now: datetime, limit: int = 1000) -> int:
    """Deactivate reminders that can never fire again. Returns the number deactivated."""
    cleaned = 0
    for row in get_expired_active_reminders(db, now, limit=limit):
        row.is_active = False
        row.modification_date = to_utc_aware(now)
        cleaned += 1
        logger.info(f"[Reminders] expired reminder_id={row.id} channel_id={row.channel_id}")
    db.commit()
    reminders_expired_total.inc(cleaned)
    return cleaned


@shared_task(name="reminders.scan_and_fire")
def scan_and_fire_task() -> Dict[str, int]:
    db: Session = SessionLocal()
    try:
        return scan_and_fire(db, now_local(), limit=settings.SCHEDULER_BATCH_SIZE)
    finally:
        db.close()


@shared_task(name="reminders.cleanup_expired")
def cleanup_expired_task() -> int:
    db: Session = SessionLocal()
    try:
        return deactivate_expired(db, now_local(), limit=settings.SCHEDULER_BATCH_SIZE)
    finally:
        db.close()
