import uuid
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from .auth import AddressInput


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    icon: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None
    icon: Optional[str] = None
    is_active: Optional[bool] = None


class TradeCreate(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    phone: Optional[str] = None
    company_name: str = Field(min_length=1)
    abn: Optional[str] = None
    license_number: Optional[str] = None
    address: Optional[AddressInput] = None
    service_areas: Optional[str] = None
    categories: List[uuid.UUID] = []


class TradeUpdate(BaseModel):
    company_name: Optional[str] = Field(default=None, min_length=1)
    abn: Optional[str] = None
    license_number: Optional[str] = None
    address: Optional[AddressInput] = None
    service_areas: Optional[str] = None
    # staff only
    is_verified: Optional[bool] = None
    is_active: Optional[bool] = None
    rating: Optional[Decimal] = Field(default=None, ge=0, le=5)
    categories: Optional[List[uuid.UUID]] = None
