"""
Notification service.
Side-effect sink for job and quote changes plus the recipient-facing queries.
Writes are flushed, never committed: the caller's transaction owns them.
"""
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from ..models.models import Notification, User
from .reference import Role

MAX_LISTED = 50


def create_notification(
    db: Session,
    user_id: uuid.UUID,
    type: str,
    title: str,
    message: str,
    job_id: Optional[uuid.UUID] = None,
) -> Notification:
    """
    Queue a notification row in the current unit of work.

    Args:
        db: Database session
        user_id: Recipient account id
        type: Notification type tag (job_created|status_change|job_assigned|quote_*)
        title: Short title
        message: Human readable message
        job_id: Related job, if any

    Returns:
        The pending Notification
    """
    notification = Notification(
        user_id=user_id,
        job_id=job_id,
        type=type,
        title=title,
        message=message,
        is_read=False,
        created_at=datetime.utcnow(),
    )
    db.add(notification)
    db.flush()
    return notification


def notify_active_staff(
    db: Session,
    type: str,
    title: str,
    message: str,
    job_id: Optional[uuid.UUID] = None,
) -> List[Notification]:
    """Fan one notification out to every active staff account."""
    staff_ids = [
        row.id
        for row in db.query(User.id).filter(User.role == Role.STAFF.value, User.is_active.is_(True)).all()
    ]
    return [create_notification(db, staff_id, type, title, message, job_id=job_id) for staff_id in staff_ids]


def list_for_user(db: Session, user_id: uuid.UUID, unread_only: bool = False) -> List[Notification]:
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return query.order_by(Notification.created_at.desc()).limit(MAX_LISTED).all()


def unread_count(db: Session, user_id: uuid.UUID) -> int:
    return (
        db.query(Notification)
        .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
        .count()
    )


def mark_read(notification: Notification) -> None:
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = datetime.utcnow()


def mark_all_read(db: Session, user_id: uuid.UUID) -> int:
    """Mark every unread notification of ``user_id`` read. Returns the number updated."""
    return (
        db.query(Notification)
        .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
        .update({"is_read": True, "read_at": datetime.utcnow()}, synchronize_session=False)
    )
