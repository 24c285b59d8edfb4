import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session, joinedload

from ..auth.security import get_current_user
from ..db import get_db
from ..models.models import Notification, User
from ..services import notifications as notification_service
from ..services.formatting import iso, uid
from ..services.permissions import authorize

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _serialize_notification(n: Notification) -> dict:
    return {
        "id": str(n.id),
        "type": n.type,
        "title": n.title,
        "message": n.message,
        "job_id": uid(n.job_id),
        "job_number": n.job.job_number if n.job else None,
        "is_read": n.is_read,
        "read_at": iso(n.read_at),
        "created_at": iso(n.created_at),
    }


def _get_owned(db: Session, user: User, notification_id: uuid.UUID) -> Notification:
    notification = (
        db.query(Notification)
        .options(joinedload(Notification.job))
        .filter(Notification.id == notification_id)
        .first()
    )
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    authorize(user, "notification:manage", notification)
    return notification


@router.get("")
def list_notifications(
    unread_only: bool = False,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user)
):
    """Most recent notifications of the current user, newest first (max 50)."""
    rows = notification_service.list_for_user(db, user.id, unread_only=unread_only)
    return [_serialize_notification(n) for n in rows]


@router.get("/unread-count")
def get_unread_count(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return {"unread_count": notification_service.unread_count(db, user.id)}


# Declared before /{notification_id}/read so "read-all" is not parsed as an id
@router.put("/read-all")
def mark_all_read(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    updated = notification_service.mark_all_read(db, user.id)
    db.commit()
    return {"message": "All notifications marked as read", "updated": updated}


@router.put("/{notification_id}/read")
def mark_read(notification_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    notification = _get_owned(db, user, notification_id)
    notification_service.mark_read(notification)
    db.commit()
    return {"message": "Notification marked as read"}


@router.delete("/{notification_id}")
def delete_notification(notification_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    notification = _get_owned(db, user, notification_id)
    db.delete(notification)
    db.commit()
    return {"message": "Notification deleted"}
