import uuid
from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class QuoteItemInput(BaseModel):
    description: str = Field(min_length=1, max_length=255)
    quantity: Decimal = Decimal("1")
    unit_price: Decimal
    total_price: Decimal


class QuoteCreate(BaseModel):
    job_id: uuid.UUID
    amount: Decimal = Field(gt=0)
    description: str = Field(min_length=1)
    trade_id: Optional[uuid.UUID] = None  # staff only
    estimated_duration: Optional[str] = None
    estimated_start_date: Optional[date] = None
    validity_days: Optional[int] = Field(default=None, gt=0)
    notes: Optional[str] = None
    items: List[QuoteItemInput] = []


class QuoteStatusUpdate(BaseModel):
    status: str
    rejection_reason: Optional[str] = None
