"""
Customer Schemas - Pydantic models for API request/response validation.
"""
from datetime import datetime
from typing import Literal, Union
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

from app.domains.users.schemas import USERNAME_PATTERN, normalize_identity


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class CustomerFields(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    baa_number: str | None = Field(None, max_length=100)

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        return value.strip()

    @field_validator("description", "baa_number")
    @classmethod
    def optional_text(cls, value: str | None) -> str | None:
        return _blank_to_none(value)


class AdminAccountFields(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    username: str = Field(..., min_length=3, max_length=100, pattern=USERNAME_PATTERN)

    @field_validator("email", "username")
    @classmethod
    def lowercase(cls, value: str) -> str:
        return normalize_identity(value)


# ============================================================================
# Actions (intent-tagged request bodies)
# ============================================================================


class CreateCustomerAction(CustomerFields):
    """New customer together with its first customer admin."""
    intent: Literal["create"]
    admin_name: str = Field(..., min_length=1, max_length=255)
    admin_email: EmailStr
    admin_username: str = Field(..., min_length=3, max_length=100, pattern=USERNAME_PATTERN)

    @field_validator("admin_email", "admin_username")
    @classmethod
    def lowercase_admin(cls, value: str) -> str:
        return normalize_identity(value)


class UpdateCustomerAction(CustomerFields):
    intent: Literal["update"]
    customer_id: UUID
    active: bool = True


class AddAdminAction(AdminAccountFields):
    intent: Literal["add-admin"]
    customer_id: UUID


CustomerAction = Union[CreateCustomerAction, UpdateCustomerAction, AddAdminAction]


# ============================================================================
# Response Schemas
# ============================================================================


class CustomerResponse(BaseModel):
    id: UUID
    name: str
    description: str | None
    baa_number: str | None
    baa_date: datetime | None
    active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class CustomerSummary(CustomerResponse):
    """Customer row with dependent counts for list views."""
    user_count: int = 0
    provider_group_count: int = 0
    provider_count: int = 0


class CustomerListResponse(BaseModel):
    items: list[CustomerSummary]
    total: int


class CustomerAdminResponse(BaseModel):
    id: UUID
    name: str | None
    email: str
    username: str
    active: bool

    class Config:
        from_attributes = True


class CustomerDetailResponse(CustomerSummary):
    admins: list[CustomerAdminResponse] = []
