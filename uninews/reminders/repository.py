from dataclasses import replace
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import select, func, or_

from .models import Reminder, Announcement
from .schemas import ReminderCreate, ReminderUpdate
from .engine import (
    Priority,
    ReminderSchedule,
    check_schedule_params,
    compute_creation_date,
    compute_modification_date,
    initialize_cursor,
)
from uninews.utils.timezone import to_local, to_utc_aware


def to_schedule(row: Reminder) -> ReminderSchedule:
    """Build the engine value for a stored reminder, dates expressed in the configured zone."""
    return ReminderSchedule(
        id=row.id,
        channel_id=row.channel_id,
        author_moderator_id=row.author_moderator_id,
        title=row.title,
        text=row.text,
        priority=Priority(row.priority),
        start_date=to_local(row.start_date),
        end_date=to_local(row.end_date),
        next_date=to_local(row.next_date),
        interval_seconds=row.interval_seconds,
        ignore_next_firing=bool(row.ignore_next_firing),
        active=bool(row.is_active),
        creation_date=to_local(row.creation_date),
        modification_date=to_local(row.modification_date),
    )


def apply_schedule(row: Reminder, schedule: ReminderSchedule) -> Reminder:
    """Copy a schedule onto its row. Dates are normalized to UTC for storage."""
    row.channel_id = schedule.channel_id
    row.author_moderator_id = schedule.author_moderator_id
    row.title = schedule.title
    row.text = schedule.text
    row.priority = schedule.priority.value
    row.start_date = to_utc_aware(schedule.start_date)
    row.end_date = to_utc_aware(schedule.end_date)
    row.next_date = to_utc_aware(schedule.next_date)
    row.interval_seconds = schedule.interval_seconds
    row.ignore_next_firing = schedule.ignore_next_firing
    row.is_active = schedule.active
    row.creation_date = to_utc_aware(schedule.creation_date)
    row.modification_date = to_utc_aware(schedule.modification_date)
    return row


def create_reminder(
    db: Session,
    channel_id: int,
    author_moderator_id: int,
    data: ReminderCreate,
    now: datetime,
) -> Reminder:
    # Incoming dates keep their instant but move to the configured zone
    start_date = to_local(data.start_date)
    end_date = to_local(data.end_date)
    check_schedule_params(start_date, end_date, data.interval, now)

    schedule = ReminderSchedule(
        channel_id=channel_id,
        author_moderator_id=author_moderator_id,
        title=data.title,
        text=data.text,
        priority=data.priority,
        start_date=start_date,
        end_date=end_date,
        interval_seconds=data.interval,
        ignore_next_firing=data.ignore,
    )
    schedule = compute_creation_date(schedule, now)
    schedule = compute_modification_date(schedule, now)
    schedule = initialize_cursor(schedule, now)

    reminder = apply_schedule(Reminder(), schedule)
    db.add(reminder)
    db.commit()
    db.refresh(reminder)
    return reminder


def update_reminder(db: Session, reminder: Reminder, data: ReminderUpdate, now: datetime) -> Reminder:
    """Apply a partial update. Nothing is written when the new parameters are invalid."""
    current = to_schedule(reminder)

    start_date = to_local(data.start_date) if data.start_date is not None else current.start_date
    end_date = to_local(data.end_date) if data.end_date is not None else current.end_date
    interval = data.interval if data.interval is not None else current.interval_seconds
    check_schedule_params(start_date, end_date, interval, now)

    reactivated = data.active is True and not current.active
    timing_changed = (
        start_date != current.start_date
        or end_date != current.end_date
        or interval != current.interval_seconds
    )

    changes = {
        "start_date": start_date,
        "end_date": end_date,
        "interval_seconds": interval,
    }
    if data.title is not None:
        changes["title"] = data.title
    if data.text is not None:
        changes["text"] = data.text
    if data.priority is not None:
        changes["priority"] = data.priority
    if data.ignore is not None:
        changes["ignore_next_firing"] = data.ignore
    if data.active is not None:
        changes["active"] = data.active
    if timing_changed:
        # Stale cursor: recompute from the new parameters
        changes["next_date"] = None

    schedule = replace(current, **changes)
    if schedule.next_date is None or (reactivated and not schedule.is_one_time):
        # A paused repeating reminder skips the occurrences it missed; a one-time
        # cursor is kept so an announcement that already went out is not repeated
        schedule = initialize_cursor(schedule, now)
    schedule = compute_modification_date(schedule, now)

    apply_schedule(reminder, schedule)
    db.commit()
    db.refresh(reminder)
    return reminder


def get_reminder(db: Session, reminder_id: int) -> Optional[Reminder]:
    return db.get(Reminder, reminder_id)


def list_reminders(
    db: Session,
    channel_id: int,
    active: Optional[bool] = None,
    limit: int = 100,
) -> List[Reminder]:
    stmt = (
        select(Reminder)
        .where(Reminder.channel_id == channel_id)
        .order_by(Reminder.id.asc())
        .limit(limit)
    )
    if active is not None:
        stmt = stmt.where(Reminder.is_active == active)
    return list(db.execute(stmt).scalars())


def delete_reminder(db: Session, reminder: Reminder) -> None:
    db.delete(reminder)
    db.commit()


def get_due_reminder_ids(db: Session, now: datetime, limit: int = 1000) -> List[int]:
    """Ids of active reminders whose cursor reached ``now``, oldest cursor first."""
    stmt = (
        select(Reminder.id)
        .where(Reminder.is_active == True)  # noqa: E712
        .where(Reminder.next_date <= to_utc_aware(now))
        .order_by(Reminder.next_date.asc())
        .limit(limit)
    )
    return list(db.execute(stmt).scalars())


def lock_due_reminder(db: Session, reminder_id: int, now: datetime) -> Optional[Reminder]:
    """Lock one reminder for the rest of the transaction if it is still due.

    Returns None when another scan holds the row or already advanced it, so
    concurrent scans never advance the same occurrence twice.
    """
    stmt = (
        select(Reminder)
        .where(Reminder.id == reminder_id)
        .where(Reminder.is_active == True)  # noqa: E712
        .where(Reminder.next_date <= to_utc_aware(now))
        .with_for_update(skip_locked=True)
        .execution_options(populate_existing=True)
    )
    return db.execute(stmt).scalar_one_or_none()


def get_expired_active_reminders(db: Session, now: datetime, limit: int = 1000) -> List[Reminder]:
    stmt = (
        select(Reminder)
        .where(Reminder.is_active == True)  # noqa: E712
        .where(or_(Reminder.end_date < to_utc_aware(now), Reminder.next_date > Reminder.end_date))
        .limit(limit)
        .with_for_update(skip_locked=True)
    )
    return list(db.execute(stmt).scalars())


def create_announcement(
    db: Session,
    channel_id: int,
    title: str,
    text: str,
    priority: Priority,
    author_moderator_id: int,
    now: datetime,
    reminder_id: Optional[int] = None,
) -> Announcement:
    """Add the next numbered announcement of a channel. The caller commits."""
    last_number = db.execute(
        select(func.max(Announcement.message_number)).where(Announcement.channel_id == channel_id)
    ).scalar()
    announcement = Announcement(
        channel_id=channel_id,
        message_number=(last_number or 0) + 1,
        title=title,
        text=text,
        priority=priority.value,
        author_moderator_id=author_moderator_id,
        reminder_id=reminder_id,
        creation_date=to_utc_aware(now),
    )
    db.add(announcement)
    db.flush()
    return announcement


def list_announcements(db: Session, channel_id: int, limit: int = 100) -> List[Announcement]:
    stmt = (
        select(Announcement)
        .where(Announcement.channel_id == channel_id)
        .order_by(Announcement.message_number.asc())
        .limit(limit)
    )
    return list(db.execute(stmt).scalars())
