import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from ..auth.security import get_current_user, require_roles
from ..db import get_db
from ..models.models import Job, JobAttachment, User
from ..schemas.jobs import JobCreate, JobPatch
from ..services import attachments as attachment_service
from ..services import job_service
from ..services.formatting import iso, money, uid
from ..services.permissions import is_customer, is_staff, is_trade
from ..services.quote_service import CUSTOMER_VISIBLE
from ..services.reference import Role
from ..storage.local_provider import get_storage
from ..storage.provider import StorageProvider
from .quotes import serialize_quote

router = APIRouter(prefix="/jobs", tags=["jobs"])


def _serialize_attachment(a: JobAttachment) -> dict:
    return {
        "id": str(a.id),
        "job_id": str(a.job_id),
        "file_name": a.file_name,
        "file_type": a.file_type,
        "file_size": a.file_size,
        "description": a.description,
        "uploaded_by": str(a.uploaded_by),
        "uploaded_by_name": a.uploader.display_name if a.uploader else None,
        "uploaded_at": iso(a.uploaded_at),
        "download_url": f"/jobs/attachments/{a.id}",
    }


def _serialize_job(job: Job, viewer: User) -> dict:
    data = {
        "id": str(job.id),
        "job_number": job.job_number,
        "title": job.title,
        "description": job.description,
        "customer_id": str(job.customer_id),
        "customer_name": job.customer.organization_name if job.customer else None,
        "category_id": str(job.category_id),
        "category_name": job.category.name if job.category else None,
        "priority_id": str(job.priority_id),
        "priority_name": job.priority.name if job.priority else None,
        "priority_color": job.priority.color_code if job.priority else None,
        "status_id": str(job.status_id),
        "status_name": job.status.name if job.status else None,
        "status_code": job.status.code if job.status else None,
        "location_address": job.location_address,
        "preferred_date": iso(job.preferred_date),
        "preferred_time": job.preferred_time,
        "assigned_staff_id": uid(job.assigned_staff_id),
        "assigned_staff_name": job.assigned_staff.display_name if job.assigned_staff else None,
        "assigned_trade_id": uid(job.assigned_trade_id),
        "assigned_trade_name": job.assigned_trade.company_name if job.assigned_trade else None,
        "estimated_cost": money(job.estimated_cost),
        "final_cost": money(job.final_cost),
        "scheduled_date": iso(job.scheduled_date),
        "completed_date": iso(job.completed_date),
        "customer_notes": job.customer_notes,
        "created_at": iso(job.created_at),
        "updated_at": iso(job.updated_at),
    }
    if is_staff(viewer):
        data["internal_notes"] = job.internal_notes
    return data


def _serialize_job_detail(job: Job, viewer: User) -> dict:
    data = _serialize_job(job, viewer)
    quotes = job.quotes
    if is_customer(viewer):
        quotes = [q for q in quotes if q.status in CUSTOMER_VISIBLE]
    elif is_trade(viewer):
        quotes = [q for q in quotes if q.trade_id == viewer.trade_id]
    data["attachments"] = [_serialize_attachment(a) for a in job.attachments]
    data["quotes"] = [serialize_quote(q) for q in quotes]
    data["history"] = [
        {
            "id": str(h.id),
            "change_type": h.change_type,
            "old_value": h.old_value,
            "new_value": h.new_value,
            "notes": h.notes,
            "changed_by": str(h.changed_by),
            "changed_by_name": h.actor.display_name if h.actor else None,
            "created_at": iso(h.created_at),
        }
        for h in job.history
    ]
    return data


@router.post("", status_code=status.HTTP_201_CREATED)
def create_job(payload: JobCreate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    job = job_service.create_job(db, user, payload)
    return {
        "message": "Job created successfully",
        "job": {"id": str(job.id), "job_number": job.job_number},
    }


@router.get("")
def list_jobs(
    status_id: Optional[uuid.UUID] = None,
    priority_id: Optional[uuid.UUID] = None,
    category_id: Optional[uuid.UUID] = None,
    customer_id: Optional[uuid.UUID] = None,
    assigned_staff_id: Optional[uuid.UUID] = None,
    assigned_trade_id: Optional[uuid.UUID] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    jobs = job_service.list_jobs(
        db,
        user,
        status_id=status_id,
        priority_id=priority_id,
        category_id=category_id,
        customer_id=customer_id,
        assigned_staff_id=assigned_staff_id,
        assigned_trade_id=assigned_trade_id,
    )
    return [_serialize_job(j, user) for j in jobs]


# Attachment routes are declared before /{job_id} so the literal segment wins
@router.post("/attachments", status_code=status.HTTP_201_CREATED)
def upload_attachments(
    job_id: uuid.UUID = Form(...),
    description: Optional[str] = Form(None),
    files: List[UploadFile] = File(...),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    storage: StorageProvider = Depends(get_storage),
):
    created = attachment_service.upload_attachments(db, user, storage, job_id, files, description)
    return {
        "message": "Files uploaded successfully",
        "attachments": [_serialize_attachment(a) for a in created],
    }


@router.get("/attachments/{attachment_id}")
def download_attachment(
    attachment_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    storage: StorageProvider = Depends(get_storage),
):
    attachment = attachment_service.get_attachment_for_viewer(db, user, attachment_id)
    if not storage.exists(attachment.file_key):
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(
        storage.local_path(attachment.file_key),
        media_type=attachment.file_type or "application/octet-stream",
        filename=attachment.file_name,
    )


@router.delete("/attachments/{attachment_id}")
def delete_attachment(
    attachment_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    storage: StorageProvider = Depends(get_storage),
):
    attachment_service.delete_attachment(db, user, storage, attachment_id)
    return {"message": "Attachment deleted successfully"}


@router.get("/{job_id}")
def get_job(job_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    job = job_service.get_job_for_viewer(db, user, job_id)
    return _serialize_job_detail(job, user)


@router.put("/{job_id}")
def update_job(
    job_id: uuid.UUID,
    patch: JobPatch,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(Role.STAFF)),
):
    job = job_service.update_job(db, user, job_id, patch)
    return {"message": "Job updated successfully", "job": _serialize_job(job, user)}
