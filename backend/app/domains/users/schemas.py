from datetime import datetime
from typing import Literal, Union
from uuid import UUID

from pydantic import AliasChoices, BaseModel, EmailStr, Field, field_validator

from app.domains.users.roles import Role

USERNAME_PATTERN = r"^[a-zA-Z0-9_.-]+$"


def normalize_identity(value: str) -> str:
    return value.strip().lower()


class UserBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    username: str = Field(..., min_length=3, max_length=100, pattern=USERNAME_PATTERN)

    @field_validator("email", "username")
    @classmethod
    def lowercase(cls, value: str) -> str:
        return normalize_identity(value)


class UserFields(UserBase):
    role: Role
    provider_group_id: UUID | None = None
    active: bool = True

    @field_validator("role")
    @classmethod
    def not_system_admin(cls, value: Role) -> Role:
        if value is Role.SYSTEM_ADMIN:
            raise ValueError("System administrators cannot create other system administrators")
        return value


# ============================================================================
# Actions (intent-tagged request bodies)
# ============================================================================


class CreateUserAction(UserFields):
    intent: Literal["create"]


class UpdateUserAction(UserFields):
    intent: Literal["update"]
    user_id: UUID


class DeleteUserAction(BaseModel):
    intent: Literal["delete"]
    user_id: UUID


class AssignNpisAction(BaseModel):
    intent: Literal["assign-npis"]
    user_id: UUID
    provider_ids: list[UUID] = []


UserAction = Union[CreateUserAction, UpdateUserAction, DeleteUserAction, AssignNpisAction]


# ============================================================================
# Responses
# ============================================================================


class UserResponse(BaseModel):
    id: UUID
    name: str | None
    email: str
    username: str
    active: bool
    roles: list[str] = Field(validation_alias=AliasChoices("role_names", "roles"))
    customer_id: UUID | None
    provider_group_id: UUID | None
    assigned_provider_ids: list[UUID] = []
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class UserListResponse(BaseModel):
    items: list[UserResponse]
    total: int
    skip: int
    limit: int


class MeResponse(UserResponse):
    primary_role: Role | None
    dashboard_path: str


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, description="Username or email address")
    password: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    redirect_to: str
