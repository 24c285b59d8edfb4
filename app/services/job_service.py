import random
import string
import time
import uuid
from datetime import datetime
from typing import List, Optional

import structlog
from fastapi import HTTPException, status
from sqlalchemy.orm import Session, joinedload

from ..db import transaction
from ..models.models import (
    Category,
    CustomerProfile,
    Job,
    JobStatus,
    PriorityLevel,
    TradeProfile,
    User,
)
from ..schemas.jobs import JobCreate, JobPatch
from .audit import record_job_history
from .notifications import create_notification
from .permissions import authorize, is_customer, is_staff, is_trade
from .reference import JobStatusCode, PriorityCode, Role, reference_cache


logger = structlog.get_logger(__name__)


def generate_number(prefix: str) -> str:
    """``<prefix>-<epoch ms>-<5 uppercase alphanumerics>``, e.g. ``JOB-1718000000000-X7K2Q``."""
    token = "".join(random.choices(string.ascii_uppercase + string.digits, k=5))
    return f"{prefix}-{int(time.time() * 1000)}-{token}"


def get_job_or_404(db: Session, job_id: uuid.UUID) -> Job:
    job = db.query(Job).filter(Job.id == job_id).first()
    if not job:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return job


def create_job(db: Session, user: User, payload: JobCreate) -> Job:
    if is_customer(user):
        customer_id = user.customer_id
        if customer_id is None:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Customer profile missing")
    elif is_staff(user):
        customer_id = payload.customer_id
        if not customer_id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="customer_id required for staff")
    else:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unauthorized")

    customer = db.query(CustomerProfile).filter(CustomerProfile.id == customer_id).first()
    if not customer:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")

    category = db.query(Category).filter(Category.id == payload.category_id, Category.is_active.is_(True)).first()
    if not category:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")

    if payload.priority_id:
        priority = db.query(PriorityLevel).filter(PriorityLevel.id == payload.priority_id).first()
        if not priority:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Priority not found")
        priority_id = priority.id
    else:
        priority_id = reference_cache.priority(PriorityCode.MEDIUM, db).id

    new_status = reference_cache.status(JobStatusCode.NEW, db)

    with transaction(db):
        job = Job(
            job_number=generate_number("JOB"),
            customer_id=customer.id,
            category_id=category.id,
            priority_id=priority_id,
            status_id=new_status.id,
            title=payload.title,
            description=payload.description,
            location_address=payload.location_address,
            preferred_date=payload.preferred_date,
            preferred_time=payload.preferred_time,
            customer_notes=payload.customer_notes,
            created_at=datetime.utcnow(),
        )
        db.add(job)
        db.flush()

        record_job_history(db, job.id, user.id, "created", new_value=new_status.name, notes="Job created")
        create_notification(
            db,
            customer.user_id,
            "job_created",
            "New Maintenance Request Submitted",
            f'Your maintenance request "{job.title}" has been submitted successfully with job number {job.job_number}.',
            job_id=job.id,
        )

    logger.info("job_created", job_id=str(job.id), job_number=job.job_number, created_by=str(user.id))
    return job


def list_jobs(
    db: Session,
    user: User,
    status_id: Optional[uuid.UUID] = None,
    priority_id: Optional[uuid.UUID] = None,
    category_id: Optional[uuid.UUID] = None,
    customer_id: Optional[uuid.UUID] = None,
    assigned_staff_id: Optional[uuid.UUID] = None,
    assigned_trade_id: Optional[uuid.UUID] = None,
) -> List[Job]:
    query = db.query(Job).options(
        joinedload(Job.customer),
        joinedload(Job.category),
        joinedload(Job.priority),
        joinedload(Job.status),
        joinedload(Job.assigned_staff),
        joinedload(Job.assigned_trade),
    )

    # Role scoping
    if is_customer(user):
        query = query.filter(Job.customer_id == user.customer_id)
    elif is_trade(user):
        query = query.filter(Job.assigned_trade_id == user.trade_id)

    if status_id:
        query = query.filter(Job.status_id == status_id)
    if priority_id:
        query = query.filter(Job.priority_id == priority_id)
    if category_id:
        query = query.filter(Job.category_id == category_id)
    # Cross-customer / assignment filters are staff only
    if is_staff(user):
        if customer_id:
            query = query.filter(Job.customer_id == customer_id)
        if assigned_staff_id:
            query = query.filter(Job.assigned_staff_id == assigned_staff_id)
        if assigned_trade_id:
            query = query.filter(Job.assigned_trade_id == assigned_trade_id)

    return query.order_by(Job.created_at.desc()).all()


def get_job_for_viewer(db: Session, user: User, job_id: uuid.UUID) -> Job:
    job = get_job_or_404(db, job_id)
    authorize(user, "job:view", job)
    return job


def _mark_completed(job: Job) -> None:
    first_completion = job.completed_date is None
    job.completed_date = datetime.utcnow()
    if first_completion and job.assigned_trade is not None:
        job.assigned_trade.total_jobs_completed = (job.assigned_trade.total_jobs_completed or 0) + 1


def update_job(db: Session, user: User, job_id: uuid.UUID, patch: JobPatch) -> Job:
    """
    Apply a staff patch to a job.

    Only fields present in the patch are touched. Status, staff assignment and
    trade assignment changes each write their own history entry; status changes
    notify the customer and a new trade assignment notifies that trade.
    """
    job = get_job_or_404(db, job_id)
    if is_customer(user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Customers cannot update jobs directly")
    if not is_staff(user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")

    changes = patch.changes()
    if not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")
    for required in ("status_id", "priority_id"):
        if required in changes and changes[required] is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{required} cannot be null")

    with transaction(db):
        if "priority_id" in changes:
            priority = db.query(PriorityLevel).filter(PriorityLevel.id == changes["priority_id"]).first()
            if not priority:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Priority not found")
            job.priority_id = priority.id

        if "assigned_staff_id" in changes:
            new_staff_id = changes["assigned_staff_id"]
            if new_staff_id is not None:
                staff = db.query(User).filter(User.id == new_staff_id, User.role == Role.STAFF.value).first()
                if not staff:
                    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Staff member not found")
            if new_staff_id != job.assigned_staff_id:
                old_staff_id = job.assigned_staff_id
                job.assigned_staff_id = new_staff_id
                record_job_history(db, job.id, user.id, "staff_assigned", old_value=old_staff_id, new_value=new_staff_id)

        if "assigned_trade_id" in changes:
            new_trade_id = changes["assigned_trade_id"]
            trade = None
            if new_trade_id is not None:
                trade = db.query(TradeProfile).filter(TradeProfile.id == new_trade_id).first()
                if not trade:
                    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Trade specialist not found")
            if new_trade_id != job.assigned_trade_id:
                old_trade_id = job.assigned_trade_id
                job.assigned_trade_id = new_trade_id
                job.assigned_trade = trade
                record_job_history(db, job.id, user.id, "trade_assigned", old_value=old_trade_id, new_value=new_trade_id)
                if trade is not None:
                    create_notification(
                        db,
                        trade.user_id,
                        "job_assigned",
                        "New Job Assigned",
                        f"You have been assigned to job {job.job_number}. Please review and submit a quote.",
                        job_id=job.id,
                    )

        if "status_id" in changes:
            new_status = db.query(JobStatus).filter(JobStatus.id == changes["status_id"]).first()
            if not new_status:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Status not found")
            if new_status.id != job.status_id:
                old_status = job.status
                job.status_id = new_status.id
                job.status = new_status
                record_job_history(
                    db, job.id, user.id, "status_change",
                    old_value=old_status.name if old_status else None,
                    new_value=new_status.name,
                )
                create_notification(
                    db,
                    job.customer.user_id,
                    "status_change",
                    "Job Status Updated",
                    f"Your maintenance request {job.job_number} status has been updated to {new_status.name}.",
                    job_id=job.id,
                )
                if new_status.code == JobStatusCode.COMPLETED.value:
                    _mark_completed(job)

        for field in ("scheduled_date", "internal_notes", "estimated_cost", "final_cost"):
            if field in changes:
                setattr(job, field, changes[field])

        job.updated_at = datetime.utcnow()
        db.flush()

    logger.info("job_updated", job_id=str(job.id), fields=sorted(changes), updated_by=str(user.id))
    return job
