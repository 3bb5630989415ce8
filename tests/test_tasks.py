"""Tests for the scheduler scan that turns due reminders into announcements."""

from datetime import datetime, timedelta
from unittest.mock import patch

from freezegun import freeze_time

from uninews.reminders.engine import Priority
from uninews.reminders.repository import (
    create_reminder,
    list_announcements,
    to_schedule,
    update_reminder,
)
from uninews.reminders.schemas import ReminderCreate, ReminderUpdate
from uninews.reminders.tasks import cleanup_expired_task, deactivate_expired, scan_and_fire
from conftest import BERLIN, MODERATOR_ID, NOW

DAY = 86400
CHANNEL_ID = 5


def add_reminder(db, start, end, interval=DAY, **kwargs):
    data = ReminderCreate(
        start_date=start,
        end_date=end,
        interval=interval,
        title=kwargs.pop("title", "Lecture moved"),
        text=kwargs.pop("text", "Today's lecture takes place in H22"),
        **kwargs,
    )
    return create_reminder(db, CHANNEL_ID, MODERATOR_ID, data, NOW)


class TestScanAndFire:

    def test_due_reminder_creates_announcement(self, db, mock_publish):
        start = NOW + timedelta(hours=1)
        r = add_reminder(db, start, NOW + timedelta(days=30), priority=Priority.HIGH)

        summary = scan_and_fire(db, start)

        assert summary["due"] == 1
        announcements = list_announcements(db, CHANNEL_ID)
        assert len(announcements) == 1
        assert announcements[0].message_number == 1
        assert announcements[0].title == "Lecture moved"
        assert announcements[0].priority == "HIGH"
        assert announcements[0].reminder_id == r.id
        assert announcements[0].author_moderator_id == MODERATOR_ID
        mock_publish.assert_called_once()

        db.refresh(r)
        assert to_schedule(r).next_date == start + timedelta(days=1)

    def test_same_occurrence_fires_only_once(self, db, mock_publish):
        start = NOW + timedelta(hours=1)
        add_reminder(db, start, NOW + timedelta(days=30))

        scan_and_fire(db, start)
        summary = scan_and_fire(db, start + timedelta(minutes=1))

        assert summary["due"] == 0
        assert len(list_announcements(db, CHANNEL_ID)) == 1
        assert mock_publish.call_count == 1

    def test_nothing_due_before_start(self, db, mock_publish):
        add_reminder(db, NOW + timedelta(hours=1), NOW + timedelta(days=30))
        summary = scan_and_fire(db, NOW)
        assert sum(summary.values()) == 0
        mock_publish.assert_not_called()

    def test_ignore_flag_suppresses_one_occurrence(self, db, mock_publish):
        start = NOW + timedelta(hours=1)
        r = add_reminder(db, start, NOW + timedelta(days=30), ignore=True)

        summary = scan_and_fire(db, start)

        assert summary["due_suppressed"] == 1
        assert list_announcements(db, CHANNEL_ID) == []
        db.refresh(r)
        schedule = to_schedule(r)
        assert schedule.ignore_next_firing is False
        assert schedule.next_date == start + timedelta(days=1)

        summary = scan_and_fire(db, start + timedelta(days=1))
        assert summary["due"] == 1
        assert len(list_announcements(db, CHANNEL_ID)) == 1

    def test_inactive_reminder_is_skipped(self, db, mock_publish):
        start = NOW + timedelta(hours=1)
        r = add_reminder(db, start, NOW + timedelta(days=30))
        update_reminder(db, r, ReminderUpdate(active=False), NOW)

        summary = scan_and_fire(db, start + timedelta(days=3))

        assert sum(summary.values()) == 0
        db.refresh(r)
        assert to_schedule(r).next_date == start

    def test_one_time_reminder_fires_once(self, db, mock_publish):
        start = NOW + timedelta(days=1)
        r = add_reminder(db, start, start + timedelta(hours=1), interval=0)

        assert scan_and_fire(db, start + timedelta(minutes=30))["due"] == 1
        db.refresh(r)
        assert to_schedule(r).next_date == start + timedelta(hours=1, seconds=1)

        assert sum(scan_and_fire(db, start + timedelta(minutes=45)).values()) == 0
        assert len(list_announcements(db, CHANNEL_ID)) == 1

    def test_reactivated_one_time_reminder_does_not_fire_again(self, db, mock_publish):
        start = NOW + timedelta(hours=1)
        r = add_reminder(db, start, start + timedelta(days=2), interval=0)
        assert scan_and_fire(db, start)["due"] == 1

        later = start + timedelta(minutes=1)
        r = update_reminder(db, r, ReminderUpdate(active=False), later)
        r = update_reminder(db, r, ReminderUpdate(active=True), later)

        assert to_schedule(r).next_date == start + timedelta(days=2, seconds=1)
        assert sum(scan_and_fire(db, later).values()) == 0
        assert len(list_announcements(db, CHANNEL_ID)) == 1

    def test_reactivated_daily_reminder_resumes_without_backlog(self, db, mock_publish):
        start = NOW + timedelta(hours=1)
        r = add_reminder(db, start, NOW + timedelta(days=30))
        scan_and_fire(db, start)
        r = update_reminder(db, r, ReminderUpdate(active=False), start)

        back = start + timedelta(days=3, hours=2)
        r = update_reminder(db, r, ReminderUpdate(active=True), back)

        assert to_schedule(r).next_date == start + timedelta(days=4)
        assert sum(scan_and_fire(db, back).values()) == 0

    def test_one_time_reminder_with_equal_dates(self, db, mock_publish):
        # Fires only when a scan lands on the instant itself
        moment = NOW + timedelta(hours=1)
        on_time = add_reminder(db, moment, moment, interval=0, title="On time")
        missed = add_reminder(db, moment + timedelta(days=1), moment + timedelta(days=1), interval=0)

        assert scan_and_fire(db, moment)["due"] == 1
        summary = scan_and_fire(db, moment + timedelta(days=1, seconds=30))

        assert summary["expired"] == 2
        assert [a.title for a in list_announcements(db, CHANNEL_ID)] == ["On time"]
        db.refresh(on_time)
        db.refresh(missed)
        assert missed.is_active is False
        assert on_time.is_active is False

    def test_missed_occurrences_fire_once(self, db, mock_publish):
        start = NOW + timedelta(hours=1)
        r = add_reminder(db, start, NOW + timedelta(days=30))
        late = start + timedelta(days=4, hours=2)

        summary = scan_and_fire(db, late)

        assert summary["due"] == 1
        db.refresh(r)
        assert to_schedule(r).next_date == start + timedelta(days=5)
        assert sum(scan_and_fire(db, late + timedelta(minutes=1)).values()) == 0

    def test_expired_reminder_is_deactivated(self, db, mock_publish):
        start = NOW + timedelta(days=1)
        r = add_reminder(db, start, start + timedelta(hours=23))

        summary = scan_and_fire(db, start + timedelta(days=2))

        assert summary["expired"] == 1
        assert list_announcements(db, CHANNEL_ID) == []
        db.refresh(r)
        assert r.is_active is False

    def test_daily_reminder_across_fall_back(self, db, mock_publish):
        start = datetime(2026, 10, 24, 9, tzinfo=BERLIN)
        r = add_reminder(db, start, datetime(2026, 11, 30, 9, tzinfo=BERLIN))

        scan_and_fire(db, start)
        db.refresh(r)
        next_date = to_schedule(r).next_date
        assert next_date == datetime(2026, 10, 25, 9, tzinfo=BERLIN)
        assert next_date.astimezone(BERLIN).hour == 9

    def test_publish_failure_keeps_announcement(self, db, mock_publish):
        mock_publish.side_effect = ConnectionError("broker unavailable")
        start = NOW + timedelta(hours=1)
        r = add_reminder(db, start, NOW + timedelta(days=30))

        summary = scan_and_fire(db, start)

        assert summary["due"] == 1
        assert len(list_announcements(db, CHANNEL_ID)) == 1
        db.refresh(r)
        assert to_schedule(r).next_date == start + timedelta(days=1)

    def test_announcement_numbers_continue(self, db, mock_publish):
        start = NOW + timedelta(hours=1)
        add_reminder(db, start, NOW + timedelta(days=30), title="First")
        add_reminder(db, start, NOW + timedelta(days=30), title="Second")

        scan_and_fire(db, start)

        numbers = [a.message_number for a in list_announcements(db, CHANNEL_ID)]
        assert numbers == [1, 2]


class TestDeactivateExpired:

    def test_deactivates_only_expired(self, db):
        start = NOW + timedelta(hours=1)
        short = add_reminder(db, start, start + timedelta(days=1))
        long = add_reminder(db, start, start + timedelta(days=30))

        later = start + timedelta(days=2)
        assert deactivate_expired(db, later) == 1

        db.refresh(short)
        db.refresh(long)
        assert short.is_active is False
        assert to_schedule(short).modification_date == later
        assert long.is_active is True

    @freeze_time("2026-10-17 10:00:00")
    def test_cleanup_task_uses_current_time(self, db):
        # 10:00 UTC is NOW in Berlin
        earlier = NOW - timedelta(hours=6)
        data = ReminderCreate(
            start_date=NOW - timedelta(hours=5),
            end_date=NOW - timedelta(hours=4),
            title="Library closed",
            text="The library is closed this morning",
        )
        r = create_reminder(db, CHANNEL_ID, MODERATOR_ID, data, earlier)

        with patch("uninews.reminders.tasks.SessionLocal", return_value=db), \
                patch.object(db, "close"):
            assert cleanup_expired_task() == 1
        db.refresh(r)
        assert r.is_active is False
