"""
Job history service.
Append-only audit trail: rows are inserted here and never updated or deleted.
"""
import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..models.models import JobHistory


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def record_job_history(
    db: Session,
    job_id: uuid.UUID,
    changed_by: uuid.UUID,
    change_type: str,
    old_value: Any = None,
    new_value: Any = None,
    notes: Optional[str] = None,
) -> JobHistory:
    """
    Append a history entry for a job in the current unit of work.

    Args:
        db: Database session
        job_id: Job the change applies to
        changed_by: Account that made the change
        change_type: created|status_change|staff_assigned|trade_assigned|quote_submitted|quote_approved|quote_rejected|quote_withdrawn
        old_value: Previous value (stringified)
        new_value: New value (stringified)
        notes: Free text

    Returns:
        Created JobHistory row
    """
    entry = JobHistory(
        job_id=job_id,
        changed_by=changed_by,
        change_type=change_type,
        old_value=_as_text(old_value),
        new_value=_as_text(new_value),
        notes=notes,
        created_at=datetime.utcnow(),
    )
    db.add(entry)
    db.flush()
    return entry
