"""
Provider Schemas - Pydantic models for API request/response validation.
"""
import re
from datetime import datetime
from typing import Literal, Union
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

NPI_PATTERN = re.compile(r"[0-9]{10}")


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


# ============================================================================
# Provider actions
# ============================================================================


class CreateProviderAction(BaseModel):
    intent: Literal["create"]
    npi: str
    name: str | None = Field(None, max_length=200)
    provider_group_id: UUID | None = None
    # Only read on the global admin endpoint
    customer_id: UUID | None = None

    @field_validator("npi")
    @classmethod
    def ten_digits(cls, value: str) -> str:
        value = value.strip()
        if not NPI_PATTERN.fullmatch(value):
            raise ValueError("NPI must be exactly 10 digits")
        return value

    @field_validator("name")
    @classmethod
    def optional_name(cls, value: str | None) -> str | None:
        return _blank_to_none(value)


class UpdateProviderAction(BaseModel):
    intent: Literal["update"]
    provider_id: UUID
    name: str | None = Field(None, max_length=200)
    provider_group_id: UUID | None = None
    active: bool = True

    @field_validator("name")
    @classmethod
    def optional_name(cls, value: str | None) -> str | None:
        return _blank_to_none(value)


class DeleteProviderAction(BaseModel):
    intent: Literal["delete"]
    provider_id: UUID


ProviderAction = Union[CreateProviderAction, UpdateProviderAction, DeleteProviderAction]


# ============================================================================
# NPI assignment actions (system admin)
# ============================================================================


class AssignNpiAction(BaseModel):
    intent: Literal["assign"]
    user_id: UUID | None = None
    provider_id: UUID | None = None


class UnassignNpiAction(BaseModel):
    intent: Literal["unassign"]
    assignment_id: UUID


NpiAssignmentAction = Union[AssignNpiAction, UnassignNpiAction]


# ============================================================================
# Response Schemas
# ============================================================================


class ProviderResponse(BaseModel):
    """Standard provider response."""
    id: UUID
    npi: str
    name: str | None
    customer_id: UUID
    provider_group_id: UUID | None
    active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ProviderSummary(ProviderResponse):
    assignment_count: int = 0


class ProviderListResponse(BaseModel):
    """Paginated list of providers."""
    items: list[ProviderSummary]
    total: int
    skip: int
    limit: int


class NpiAssignmentResponse(BaseModel):
    id: UUID
    user_id: UUID
    user_name: str | None
    user_email: str
    provider_id: UUID
    npi: str
    provider_name: str | None
    customer_id: UUID
    created_at: datetime


class NpiAssignmentListResponse(BaseModel):
    items: list[NpiAssignmentResponse]
    total: int
