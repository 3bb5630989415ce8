"""Reminder service module (API, Celery scheduler, recurrence engine).

Moderators attach reminders to channels; a Celery beat scan evaluates them
against the recurrence engine and turns due occurrences into announcements.
"""
