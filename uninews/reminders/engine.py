"""
Recurrence engine for channel reminders.

A reminder produces announcement messages at periodic instants. Everything in
this module is a pure function over an immutable ``ReminderSchedule`` and an
explicit ``now``; persistence, logging and announcement creation belong to the
caller (see ``tasks.scan_and_fire_task``).
"""
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone as dt_timezone
from enum import Enum
from typing import Optional


ONE_DAY_SECONDS = 86400
MIN_INTERVAL_SECONDS = ONE_DAY_SECONDS
MAX_INTERVAL_SECONDS = 28 * ONE_DAY_SECONDS  # 4 weeks

_ONE_HOUR = timedelta(hours=1)
_ONE_SECOND = timedelta(seconds=1)


class Priority(str, Enum):
    """Priority of the announcement a reminder produces"""
    NORMAL = "NORMAL"
    HIGH = "HIGH"


class ValidationErrorKind(str, Enum):
    INVALID_INTERVAL = "REMINDER_INVALID_INTERVAL"
    INVALID_DATE_RANGE = "REMINDER_INVALID_DATES"


class ReminderValidationError(ValueError):
    """Raised when reminder schedule parameters are inconsistent"""
    kind: ValidationErrorKind

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidIntervalError(ReminderValidationError):
    kind = ValidationErrorKind.INVALID_INTERVAL


class InvalidDateRangeError(ReminderValidationError):
    kind = ValidationErrorKind.INVALID_DATE_RANGE


class ReminderOutcome(str, Enum):
    """Result of evaluating a reminder at a given instant"""
    DUE = "due"                       # fire an announcement, cursor advanced
    DUE_SUPPRESSED = "due_suppressed"  # ignore flag consumed, cursor advanced
    NOT_DUE = "not_due"
    EXPIRED = "expired"


def is_valid_interval(interval_seconds: int, start_date: datetime, end_date: datetime) -> bool:
    """Check if the interval value is one of the allowed values.

    0 means there is no interval: the reminder fires once. Any other value has
    to be a whole number of days between one day and four weeks, and a reminder
    that starts and ends at the same instant cannot repeat.
    """
    if interval_seconds == 0:
        return True
    if start_date == end_date:
        return False
    if interval_seconds % ONE_DAY_SECONDS != 0:
        return False
    return MIN_INTERVAL_SECONDS <= interval_seconds <= MAX_INTERVAL_SECONDS


def is_valid_date_range(start_date: datetime, end_date: datetime, now: datetime) -> bool:
    """The start date must not be after the end date and the end date has to be in the future."""
    if start_date > end_date:
        return False
    return end_date >= now


def check_schedule_params(
    start_date: datetime,
    end_date: datetime,
    interval_seconds: int,
    now: Optional[datetime] = None,
) -> None:
    """Raise the matching ReminderValidationError for inconsistent parameters.

    The date-range rule that depends on the current time is only checked when
    ``now`` is given.
    """
    if interval_seconds < 0 or not is_valid_interval(interval_seconds, start_date, end_date):
        raise InvalidIntervalError(
            f"Interval of {interval_seconds}s is invalid: use 0 for a one-time reminder "
            f"or a whole number of days between 1 and 28"
        )
    if start_date > end_date:
        raise InvalidDateRangeError("Start date is after end date")
    if now is not None and not is_valid_date_range(start_date, end_date, now):
        raise InvalidDateRangeError("End date is in the past")


@dataclass(frozen=True)
class ReminderSchedule:
    """Scheduling state of one reminder.

    Instances can only be built from consistent parameters: a bad interval or a
    start date after the end date fails at construction time, so the advance
    and eligibility functions never see an unvalidated schedule.
    """
    start_date: datetime
    end_date: datetime
    interval_seconds: int
    channel_id: int
    author_moderator_id: int
    title: str
    text: str
    priority: Priority = Priority.NORMAL
    id: Optional[int] = None
    creation_date: Optional[datetime] = None
    modification_date: Optional[datetime] = None
    next_date: Optional[datetime] = None
    ignore_next_firing: bool = False
    active: bool = True

    def __post_init__(self):
        check_schedule_params(self.start_date, self.end_date, self.interval_seconds)

    @property
    def is_one_time(self) -> bool:
        return self.interval_seconds == 0


@dataclass(frozen=True)
class Evaluation:
    outcome: ReminderOutcome
    schedule: ReminderSchedule

    @property
    def fires(self) -> bool:
        return self.outcome is ReminderOutcome.DUE

    @property
    def advanced(self) -> bool:
        return self.outcome in (ReminderOutcome.DUE, ReminderOutcome.DUE_SUPPRESSED)


def validate(schedule: ReminderSchedule, now: datetime) -> None:
    """Run every validity check against ``now``; raises ReminderValidationError."""
    check_schedule_params(schedule.start_date, schedule.end_date, schedule.interval_seconds, now)


def _is_dst(dt: datetime) -> bool:
    return bool(dt.dst())


def _shift(dt: datetime, delta: timedelta) -> datetime:
    # Instant arithmetic: aware datetimes sharing a tzinfo add on the wall clock otherwise
    return (dt.astimezone(dt_timezone.utc) + delta).astimezone(dt.tzinfo)


def advance_once(schedule: ReminderSchedule) -> ReminderSchedule:
    """Move the cursor to the following occurrence.

    The interval is added as elapsed time and then corrected by one hour when a
    daylight saving transition lies between the two instants, so the reminder
    keeps firing at the same local wall-clock time.
    """
    if schedule.is_one_time:
        # One-time reminder: push the cursor past the end date so it expires
        return replace(schedule, next_date=_shift(schedule.end_date, _ONE_SECOND))

    current = schedule.next_date
    candidate = _shift(current, timedelta(seconds=schedule.interval_seconds))

    if _is_dst(current) and not _is_dst(candidate):
        # Fall back crossed
        candidate = _shift(candidate, _ONE_HOUR)
    elif not _is_dst(current) and _is_dst(candidate):
        # Spring forward crossed
        candidate = _shift(candidate, -_ONE_HOUR)

    return replace(schedule, next_date=candidate)


def compute_first_next_date(schedule: ReminderSchedule, now: datetime) -> ReminderSchedule:
    """Establish the cursor: the start date, fast-forwarded past ``now`` for repeating reminders."""
    if schedule.next_date is None:
        schedule = replace(schedule, next_date=schedule.start_date)
    if schedule.is_one_time:
        return schedule

    # Terminates: a valid interval advances the cursor by at least 23 hours
    while schedule.next_date < now:
        schedule = advance_once(schedule)
    return schedule


initialize_cursor = compute_first_next_date


def _cursor(schedule: ReminderSchedule) -> datetime:
    if schedule.next_date is None:
        raise ValueError(f"Reminder {schedule.id} has no next date; initialize the cursor first")
    return schedule.next_date


def is_expired(schedule: ReminderSchedule, now: datetime) -> bool:
    """True once the cursor passed the end date or the end date itself passed."""
    return _cursor(schedule) > schedule.end_date or schedule.end_date < now


def is_due(schedule: ReminderSchedule, now: datetime) -> bool:
    return schedule.active and not is_expired(schedule, now) and _cursor(schedule) <= now


def evaluate(schedule: ReminderSchedule, now: datetime) -> Evaluation:
    """Classify the reminder at ``now`` and advance the cursor when it is due.

    A due reminder is always advanced exactly once, whether it fires or its
    ignore flag suppresses this occurrence (the flag is cleared then).
    """
    if is_expired(schedule, now):
        return Evaluation(ReminderOutcome.EXPIRED, schedule)
    if not is_due(schedule, now):
        return Evaluation(ReminderOutcome.NOT_DUE, schedule)

    advanced = advance_once(schedule)
    if schedule.ignore_next_firing:
        return Evaluation(ReminderOutcome.DUE_SUPPRESSED, replace(advanced, ignore_next_firing=False))
    return Evaluation(ReminderOutcome.DUE, advanced)


def compute_creation_date(schedule: ReminderSchedule, now: datetime) -> ReminderSchedule:
    """Set the creation date; does nothing if it was already set."""
    if schedule.creation_date is not None:
        return schedule
    return replace(schedule, creation_date=now)


def compute_modification_date(schedule: ReminderSchedule, now: datetime) -> ReminderSchedule:
    return replace(schedule, modification_date=now)
