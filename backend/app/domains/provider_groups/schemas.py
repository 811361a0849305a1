from datetime import datetime
from typing import Literal, Union
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class ProviderGroupFields(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = Field(None, max_length=500)
    active: bool = True

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        return value.strip()


class CreateProviderGroupAction(ProviderGroupFields):
    intent: Literal["create"]


class UpdateProviderGroupAction(ProviderGroupFields):
    intent: Literal["update"]
    provider_group_id: UUID


class DeleteProviderGroupAction(BaseModel):
    intent: Literal["delete"]
    provider_group_id: UUID


ProviderGroupAction = Union[CreateProviderGroupAction, UpdateProviderGroupAction, DeleteProviderGroupAction]


class ProviderGroupResponse(BaseModel):
    id: UUID
    customer_id: UUID
    name: str
    description: str | None
    active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ProviderGroupSummary(ProviderGroupResponse):
    user_count: int = 0
    provider_count: int = 0


class ProviderGroupListResponse(BaseModel):
    items: list[ProviderGroupSummary]
    total: int


class GroupMemberResponse(BaseModel):
    id: UUID
    name: str | None
    email: str
    username: str
    active: bool

    class Config:
        from_attributes = True


class GroupProviderResponse(BaseModel):
    id: UUID
    npi: str
    name: str | None
    active: bool

    class Config:
        from_attributes = True


class ProviderGroupDetailResponse(ProviderGroupResponse):
    users: list[GroupMemberResponse] = []
    providers: list[GroupProviderResponse] = []
