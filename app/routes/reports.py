import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import get_current_user, require_roles
from ..db import get_db
from ..models.models import User
from ..services import reports
from ..services.reference import Role

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/dashboard")
def dashboard(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return reports.dashboard(db, user)


@router.get("/job-statistics")
def job_statistics(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    customer_id: Optional[uuid.UUID] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    # customer_id is honoured for staff only; other roles are scoped to their own jobs
    return reports.job_statistics(db, user, start_date=start_date, end_date=end_date, customer_id=customer_id)


@router.get("/financial")
def financial(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(Role.CUSTOMER, Role.STAFF)),
):
    return reports.financial(db, user, start_date=start_date, end_date=end_date)


@router.get("/performance")
def performance(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(Role.STAFF)),
):
    return reports.performance(db, user, start_date=start_date, end_date=end_date)
