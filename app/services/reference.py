"""
Reference data: job statuses, priority levels and default categories.

Statuses and priorities are addressed in code by a stable ``code`` through
``JobStatusCode`` / ``PriorityCode`` and resolved to row ids through a
process-wide cache instead of being looked up by display name on every call.
"""
import threading
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ..models.models import Category, JobStatus, PriorityLevel


class Role(str, Enum):
    CUSTOMER = "customer"
    STAFF = "staff"
    TRADE = "trade"


class JobStatusCode(str, Enum):
    NEW = "new"
    UNDER_REVIEW = "under_review"
    AWAITING_QUOTES = "awaiting_quotes"
    QUOTES_RECEIVED = "quotes_received"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PriorityCode(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class QuoteStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


JOB_STATUSES = [
    {"code": JobStatusCode.NEW, "name": "New", "description": "New request submitted by customer", "is_final": False},
    {"code": JobStatusCode.UNDER_REVIEW, "name": "Under Review", "description": "Being reviewed by staff", "is_final": False},
    {"code": JobStatusCode.AWAITING_QUOTES, "name": "Awaiting Quotes", "description": "Waiting for trade specialist quotes", "is_final": False},
    {"code": JobStatusCode.QUOTES_RECEIVED, "name": "Quotes Received", "description": "Quotes have been received from trades", "is_final": False},
    {"code": JobStatusCode.PENDING_APPROVAL, "name": "Pending Approval", "description": "Waiting for customer approval", "is_final": False},
    {"code": JobStatusCode.APPROVED, "name": "Approved", "description": "Quote approved by customer", "is_final": False},
    {"code": JobStatusCode.SCHEDULED, "name": "Scheduled", "description": "Job scheduled with trade specialist", "is_final": False},
    {"code": JobStatusCode.IN_PROGRESS, "name": "In Progress", "description": "Work is currently being performed", "is_final": False},
    {"code": JobStatusCode.COMPLETED, "name": "Completed", "description": "Work has been completed", "is_final": True},
    {"code": JobStatusCode.CANCELLED, "name": "Cancelled", "description": "Job cancelled", "is_final": True},
]

PRIORITY_LEVELS = [
    {"code": PriorityCode.CRITICAL, "name": "Critical", "description": "Immediate safety hazard or emergency", "response_time_hours": 2, "color_code": "#DC2626"},
    {"code": PriorityCode.HIGH, "name": "High", "description": "Urgent issue requiring prompt attention", "response_time_hours": 24, "color_code": "#EA580C"},
    {"code": PriorityCode.MEDIUM, "name": "Medium", "description": "Important but not urgent", "response_time_hours": 72, "color_code": "#F59E0B"},
    {"code": PriorityCode.LOW, "name": "Low", "description": "Routine maintenance or minor issue", "response_time_hours": 168, "color_code": "#10B981"},
]

DEFAULT_CATEGORIES = [
    ("Electrical", "Electrical repairs, installations, and maintenance", "electrical"),
    ("Plumbing", "Plumbing repairs, installations, and drainage", "plumbing"),
    ("HVAC", "Air conditioning, heating, and ventilation", "hvac"),
    ("Carpentry", "Carpentry, woodwork, and structural repairs", "carpentry"),
    ("Painting", "Interior and exterior painting services", "painting"),
    ("Roofing", "Roof repairs, replacements, and gutter work", "roofing"),
    ("Tiling", "Floor and wall tiling services", "tiling"),
    ("Landscaping", "Garden maintenance and landscaping", "landscaping"),
    ("Pest Control", "Pest inspection and treatment services", "pest"),
    ("Cleaning", "Professional cleaning services", "cleaning"),
    ("Locksmith", "Lock repairs and security services", "locksmith"),
    ("Glass & Glazing", "Window and glass repairs", "glass"),
    ("Flooring", "Floor installation and repairs", "flooring"),
    ("General Repairs", "General maintenance and handyman services", "tools"),
]


def seed_reference_data(db: Session) -> None:
    """Insert missing statuses, priorities and categories. Idempotent."""
    existing = {row.code for row in db.query(JobStatus.code).all()}
    for sort_order, row in enumerate(JOB_STATUSES, start=1):
        if row["code"].value not in existing:
            db.add(JobStatus(
                code=row["code"].value,
                name=row["name"],
                description=row["description"],
                sort_order=sort_order,
                is_final=row["is_final"],
            ))

    existing = {row.code for row in db.query(PriorityLevel.code).all()}
    for sort_order, row in enumerate(PRIORITY_LEVELS, start=1):
        if row["code"].value not in existing:
            db.add(PriorityLevel(
                code=row["code"].value,
                name=row["name"],
                description=row["description"],
                response_time_hours=row["response_time_hours"],
                color_code=row["color_code"],
                sort_order=sort_order,
            ))

    existing = {row.name for row in db.query(Category.name).all()}
    for name, description, icon in DEFAULT_CATEGORIES:
        if name not in existing:
            db.add(Category(name=name, description=description, icon=icon))

    db.commit()


@dataclass(frozen=True)
class StatusRef:
    id: uuid.UUID
    code: str
    name: str
    sort_order: int
    is_final: bool


@dataclass(frozen=True)
class PriorityRef:
    id: uuid.UUID
    code: str
    name: str
    sort_order: int


class ReferenceCache:
    """In-memory map of status/priority rows, loaded once and reused by every request."""

    def __init__(self):
        self._lock = threading.Lock()
        self._statuses: Dict[str, StatusRef] = {}
        self._priorities: Dict[str, PriorityRef] = {}

    @property
    def loaded(self) -> bool:
        return bool(self._statuses) and bool(self._priorities)

    def load(self, db: Session) -> None:
        statuses = {
            s.code: StatusRef(id=s.id, code=s.code, name=s.name, sort_order=s.sort_order, is_final=bool(s.is_final))
            for s in db.query(JobStatus).all()
        }
        priorities = {
            p.code: PriorityRef(id=p.id, code=p.code, name=p.name, sort_order=p.sort_order)
            for p in db.query(PriorityLevel).all()
        }
        missing = [c.value for c in JobStatusCode if c.value not in statuses]
        missing += [c.value for c in PriorityCode if c.value not in priorities]
        if missing:
            raise RuntimeError(f"Reference data missing: {', '.join(missing)}")
        with self._lock:
            self._statuses = statuses
            self._priorities = priorities

    def clear(self) -> None:
        with self._lock:
            self._statuses = {}
            self._priorities = {}

    def _ensure(self, db: Optional[Session]) -> None:
        if not self.loaded:
            if db is None:
                raise RuntimeError("Reference data not loaded")
            self.load(db)

    def status(self, code: JobStatusCode, db: Optional[Session] = None) -> StatusRef:
        self._ensure(db)
        return self._statuses[JobStatusCode(code).value]

    def priority(self, code: PriorityCode, db: Optional[Session] = None) -> PriorityRef:
        self._ensure(db)
        return self._priorities[PriorityCode(code).value]

    def status_by_id(self, status_id: uuid.UUID, db: Optional[Session] = None) -> Optional[StatusRef]:
        self._ensure(db)
        for ref in self._statuses.values():
            if ref.id == status_id:
                return ref
        return None

    def statuses_before(self, code: JobStatusCode, db: Optional[Session] = None) -> List[uuid.UUID]:
        """Ids of every status ordered strictly before ``code``."""
        pivot = self.status(code, db)
        return [s.id for s in self._statuses.values() if s.sort_order < pivot.sort_order]


reference_cache = ReferenceCache()
