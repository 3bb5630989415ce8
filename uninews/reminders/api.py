import logging
from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.orm import Session

from uninews.api.deps import get_current_moderator_id, get_db, get_now
from uninews.utils.timezone import to_local
from .engine import Priority, ReminderValidationError
from .models import Announcement, Reminder
from .schemas import AnnouncementRead, ReminderCreate, ReminderRead, ReminderUpdate
from .repository import (
    create_reminder,
    delete_reminder,
    get_reminder,
    list_announcements,
    list_reminders,
    update_reminder,
)
from .metrics import reminders_created_total, reminders_rejected_total, reminders_updated_total

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(get_current_moderator_id)])


def _to_read(r: Reminder) -> ReminderRead:
    return ReminderRead(
        id=r.id,
        channel_id=r.channel_id,
        author_moderator_id=r.author_moderator_id,
        creation_date=to_local(r.creation_date),
        modification_date=to_local(r.modification_date),
        start_date=to_local(r.start_date),
        end_date=to_local(r.end_date),
        interval=r.interval_seconds,
        ignore=r.ignore_next_firing,
        title=r.title,
        text=r.text,
        priority=Priority(r.priority),
        active=r.is_active,
    )


def _announcement_read(a: Announcement) -> AnnouncementRead:
    return AnnouncementRead(
        id=a.id,
        channel_id=a.channel_id,
        message_number=a.message_number,
        title=a.title,
        text=a.text,
        priority=Priority(a.priority),
        author_moderator_id=a.author_moderator_id,
        reminder_id=a.reminder_id,
        creation_date=to_local(a.creation_date),
    )


def _reject(e: ReminderValidationError, channel_id: int) -> HTTPException:
    reminders_rejected_total.labels(kind=e.kind.value).inc()
    logger.warning(f"[Reminders] rejected reminder in channel_id={channel_id}: {e.kind.value} {e.message}")
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"code": e.kind.value, "message": e.message},
    )


def _get_channel_reminder(db: Session, channel_id: int, reminder_id: int) -> Reminder:
    r = get_reminder(db, reminder_id)
    if not r or r.channel_id != channel_id:
        raise HTTPException(status_code=404, detail="Reminder not found")
    return r


@router.post("/{channel_id}/reminder", response_model=ReminderRead, status_code=201)
def create_reminder_endpoint(
    channel_id: int,
    payload: ReminderCreate,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    moderator_id: int = Depends(get_current_moderator_id),
    now: datetime = Depends(get_now),
):
    """Create a reminder in a channel.

    Announcements are only produced between the start and the end date, both
    inclusive, and the scheduler checks once per scan interval. A one-time
    reminder (interval 0) should therefore end at least one scan interval after
    it starts; with equal dates it only fires when a scan hits that instant.
    """
    try:
        r = create_reminder(db, channel_id, moderator_id, payload, now)
    except ReminderValidationError as e:
        raise _reject(e, channel_id)
    reminders_created_total.inc()
    logger.info(f"[Reminders] created reminder_id={r.id} channel_id={channel_id} interval={r.interval_seconds}")
    response.headers["Content-Location"] = str(request.url_for(
        "get_reminder_endpoint", channel_id=channel_id, reminder_id=r.id
    ))
    return _to_read(r)


@router.patch("/{channel_id}/reminder/{reminder_id}", response_model=ReminderRead)
def update_reminder_endpoint(
    channel_id: int,
    reminder_id: int,
    payload: ReminderUpdate,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """Change an existing reminder; the firing schedule is recomputed when its dates or interval change."""
    r = _get_channel_reminder(db, channel_id, reminder_id)
    try:
        r = update_reminder(db, r, payload, now)
    except ReminderValidationError as e:
        raise _reject(e, channel_id)
    reminders_updated_total.inc()
    logger.info(f"[Reminders] updated reminder_id={r.id} channel_id={channel_id}")
    return _to_read(r)


@router.get("/{channel_id}/reminder", response_model=List[ReminderRead])
def list_reminders_endpoint(
    channel_id: int,
    active: Optional[bool] = None,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return [_to_read(r) for r in list_reminders(db, channel_id, active=active, limit=limit)]


@router.get("/{channel_id}/reminder/{reminder_id}", response_model=ReminderRead)
def get_reminder_endpoint(channel_id: int, reminder_id: int, db: Session = Depends(get_db)):
    return _to_read(_get_channel_reminder(db, channel_id, reminder_id))


@router.delete("/{channel_id}/reminder/{reminder_id}", status_code=204)
def delete_reminder_endpoint(channel_id: int, reminder_id: int, db: Session = Depends(get_db)):
    r = _get_channel_reminder(db, channel_id, reminder_id)
    delete_reminder(db, r)
    logger.info(f"[Reminders] deleted reminder_id={reminder_id} channel_id={channel_id}")
    return Response(status_code=204)


@router.get("/{channel_id}/announcement", response_model=List[AnnouncementRead])
def list_announcements_endpoint(
    channel_id: int,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return [_announcement_read(a) for a in list_announcements(db, channel_id, limit=limit)]
