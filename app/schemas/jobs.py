import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class JobCreate(BaseModel):
    category_id: uuid.UUID
    title: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1)
    priority_id: Optional[uuid.UUID] = None
    customer_id: Optional[uuid.UUID] = None  # staff only; ignored for customers
    location_address: Optional[str] = None
    preferred_date: Optional[date] = None
    preferred_time: Optional[str] = None
    customer_notes: Optional[str] = None

    @field_validator("title", "description", mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v


class JobPatch(BaseModel):
    """
    Staff update of a job.

    Absent fields are left untouched; an explicit ``null`` clears the column.
    Use ``changes()`` to get only the fields the caller sent.
    """
    status_id: Optional[uuid.UUID] = None
    priority_id: Optional[uuid.UUID] = None
    assigned_staff_id: Optional[uuid.UUID] = None
    assigned_trade_id: Optional[uuid.UUID] = None
    scheduled_date: Optional[datetime] = None
    internal_notes: Optional[str] = None
    estimated_cost: Optional[Decimal] = Field(default=None, ge=0)
    final_cost: Optional[Decimal] = Field(default=None, ge=0)

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)
