from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional


class AddressInput(BaseModel):
    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    role: str = "customer"
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    phone: Optional[str] = None
    organization_name: Optional[str] = None
    organization_type: str = "residential"
    address: Optional[AddressInput] = None

    @field_validator("organization_type")
    @classmethod
    def check_org_type(cls, v):
        if v not in {"residential", "property_management", "sporting_organization"}:
            raise ValueError("organization_type must be residential, property_management or sporting_organization")
        return v


class LoginRequest(BaseModel):
    email: str
    password: str


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    # customer only
    organization_name: Optional[str] = None
    billing_email: Optional[EmailStr] = None
    address: Optional[AddressInput] = None


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(min_length=8)
