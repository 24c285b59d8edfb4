"""
Job attachment service.
Files go through the StorageProvider; rows go through the caller's session.
An upload either stores every file and row or none of them.
"""
import uuid
from datetime import datetime
from typing import List, Optional

import structlog
from fastapi import HTTPException, UploadFile, status
from sqlalchemy.orm import Session

from ..config import settings
from ..db import transaction
from ..models.models import JobAttachment, User
from ..storage.local_provider import attachment_key
from ..storage.provider import StorageProvider
from .job_service import get_job_or_404
from .permissions import authorize


logger = structlog.get_logger(__name__)


def upload_attachments(
    db: Session,
    user: User,
    storage: StorageProvider,
    job_id: uuid.UUID,
    files: List[UploadFile],
    description: Optional[str] = None,
) -> List[JobAttachment]:
    if not files:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No files uploaded")
    if len(files) > settings.max_upload_files:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"At most {settings.max_upload_files} files per upload",
        )

    job = get_job_or_404(db, job_id)
    authorize(user, "job:attachments", job)

    stored_keys: List[str] = []
    created: List[JobAttachment] = []
    try:
        with transaction(db):
            for upload in files:
                key = attachment_key(job.id, upload.filename)
                size = storage.copy_in(upload.file, key)
                stored_keys.append(key)
                if size > settings.max_upload_bytes:
                    raise HTTPException(
                        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                        detail=f"File {upload.filename} exceeds the upload size limit",
                    )
                attachment = JobAttachment(
                    job_id=job.id,
                    file_name=upload.filename or "file",
                    file_key=key,
                    file_type=upload.content_type,
                    file_size=size,
                    uploaded_by=user.id,
                    uploaded_at=datetime.utcnow(),
                    description=description,
                )
                db.add(attachment)
                created.append(attachment)
            db.flush()
    except Exception:
        for key in stored_keys:
            storage.delete(key)
        raise

    logger.info("attachments_uploaded", job_id=str(job.id), count=len(created), uploaded_by=str(user.id))
    return created


def get_attachment_or_404(db: Session, attachment_id: uuid.UUID) -> JobAttachment:
    attachment = db.query(JobAttachment).filter(JobAttachment.id == attachment_id).first()
    if not attachment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Attachment not found")
    return attachment


def get_attachment_for_viewer(db: Session, user: User, attachment_id: uuid.UUID) -> JobAttachment:
    attachment = get_attachment_or_404(db, attachment_id)
    authorize(user, "job:view", attachment.job)
    return attachment


def delete_attachment(db: Session, user: User, storage: StorageProvider, attachment_id: uuid.UUID) -> None:
    attachment = get_attachment_or_404(db, attachment_id)
    authorize(user, "job:attachments", attachment.job)

    key = attachment.file_key
    storage.delete(key)
    with transaction(db):
        db.delete(attachment)

    logger.info("attachment_deleted", attachment_id=str(attachment_id), key=key, deleted_by=str(user.id))
