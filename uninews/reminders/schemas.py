"""
Request and response schemas for reminders and announcements
"""
from datetime import datetime
from typing import Optional
from pydantic import AwareDatetime, BaseModel, Field

from .engine import Priority


class ReminderCreate(BaseModel):
    """Schema for creating a reminder; interval 0 makes it a one-time reminder"""
    start_date: AwareDatetime
    end_date: AwareDatetime
    interval: int = Field(default=0, ge=0, description="Interval in seconds, a whole number of days")
    ignore: bool = False
    title: str = Field(..., min_length=1, max_length=255)
    text: str = Field(..., min_length=1)
    priority: Priority = Priority.NORMAL


class ReminderUpdate(BaseModel):
    """Schema for changing a reminder; only provided fields are applied"""
    start_date: Optional[AwareDatetime] = None
    end_date: Optional[AwareDatetime] = None
    interval: Optional[int] = Field(default=None, ge=0)
    ignore: Optional[bool] = None
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    text: Optional[str] = Field(default=None, min_length=1)
    priority: Optional[Priority] = None
    active: Optional[bool] = None


class ReminderRead(BaseModel):
    """Schema for reading reminders. The next firing date stays internal."""
    id: int
    channel_id: int
    author_moderator_id: int
    creation_date: datetime
    modification_date: datetime
    start_date: datetime
    end_date: datetime
    interval: int
    ignore: bool
    title: str
    text: str
    priority: Priority
    active: bool


class AnnouncementRead(BaseModel):
    id: int
    channel_id: int
    message_number: int
    title: str
    text: str
    priority: Priority
    author_moderator_id: int
    reminder_id: Optional[int] = None
    creation_date: datetime
