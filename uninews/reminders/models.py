"""
Reminder and announcement tables
"""
from sqlalchemy import Column, String, DateTime, Boolean, Integer, Index

from uninews.db.base import Base


class Reminder(Base):
    """A reminder produces announcements in a channel at periodic times"""
    __tablename__ = "reminders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    channel_id = Column(Integer, nullable=False, index=True)
    author_moderator_id = Column(Integer, nullable=False)

    # Announcement content
    title = Column(String, nullable=False)
    text = Column(String, nullable=False)
    priority = Column(String, nullable=False, default="NORMAL")

    # Schedule (all stored as UTC, see utils.timezone.to_utc_aware)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    next_date = Column(DateTime(timezone=True), nullable=False)  # internal cursor, never exposed
    interval_seconds = Column(Integer, nullable=False, default=0)  # 0 = one-time reminder
    ignore_next_firing = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    creation_date = Column(DateTime(timezone=True), nullable=False)
    modification_date = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_reminders_active_next_date", "is_active", "next_date"),
    )


class Announcement(Base):
    """Announcement message in a channel"""
    __tablename__ = "announcements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    channel_id = Column(Integer, nullable=False, index=True)
    message_number = Column(Integer, nullable=False)  # ascending per channel
    title = Column(String, nullable=False)
    text = Column(String, nullable=False)
    priority = Column(String, nullable=False, default="NORMAL")
    author_moderator_id = Column(Integer, nullable=False)
    reminder_id = Column(Integer, nullable=True, index=True)  # set when produced by a reminder
    creation_date = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ux_announcements_channel_number", "channel_id", "message_number", unique=True),
    )
