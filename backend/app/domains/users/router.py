"""
Users API Router - login, current user, and user management actions.
"""
import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Body, HTTPException, Query, status

from app.core.actions import ActionResponse, success
from app.core.dependencies import CallerContextDep, CustomerManager, DbSession, SystemAdmin
from app.core.security import create_access_token
from app.domains.users.roles import dashboard_path
from app.domains.users.schemas import (
    AssignNpisAction,
    CreateUserAction,
    DeleteUserAction,
    LoginRequest,
    MeResponse,
    TokenResponse,
    UpdateUserAction,
    UserAction,
    UserListResponse,
    UserResponse,
)
from app.domains.users.service import UsersService, authenticate_user, get_user_by_id

logger = logging.getLogger(__name__)

auth_router = APIRouter()
router = APIRouter()
admin_router = APIRouter()

UserActionBody = Annotated[UserAction, Body(discriminator="intent")]


def handle_user_action(
    service: UsersService,
    action: UserAction,
    redirect_to: str,
    customer_id: UUID | None = None,
) -> ActionResponse:
    """Run one intent against the users service and build the toast."""
    if isinstance(action, CreateUserAction):
        user, temp_password, notification = service.create_user(action, customer_id)
        display = user.name or user.username
        if notification.success:
            description = f"{display} has been created. Login credentials sent via email."
        else:
            description = f"{display} has been created with temporary password: {temp_password}"
        return success("User created", description, redirect_to, user_id=str(user.id))

    if isinstance(action, UpdateUserAction):
        user = service.update_user(action, customer_id)
        return success("User updated", f"{user.name or user.username} has been updated successfully.", redirect_to)

    if isinstance(action, DeleteUserAction):
        display = service.delete_user(action, customer_id)
        return success("User deleted", f"{display} has been deleted successfully.", redirect_to)

    if isinstance(action, AssignNpisAction):
        user, count = service.assign_npis(action, customer_id)
        return success(
            "NPIs assigned",
            f"{count} NPIs have been assigned to {user.name or user.username}.",
            redirect_to,
        )

    raise ValueError(f"Unhandled user action: {action!r}")


def _list_response(service: UsersService, customer_id, search, skip, limit) -> UserListResponse:
    users, total = service.list_users(customer_id=customer_id, search=search, skip=skip, limit=limit)
    return UserListResponse(
        items=[UserResponse.model_validate(u) for u in users],
        total=total,
        skip=skip,
        limit=limit,
    )


# ============================================================================
# Authentication
# ============================================================================


@auth_router.post("/login", response_model=TokenResponse)
def login(credentials: LoginRequest, db: DbSession):
    """Exchange a username (or email) and password for an access token."""
    user = authenticate_user(db, credentials.username, credentials.password)
    if not user:
        logger.info(f"Failed login for {credentials.username}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token = create_access_token(subject=str(user.id), email=user.email)
    logger.info(f"User {user.id} logged in")
    return TokenResponse(access_token=access_token, redirect_to=dashboard_path(user.role_names))


# ============================================================================
# Current user
# ============================================================================


@router.get("/me", response_model=MeResponse)
def get_current_user(db: DbSession, caller: CallerContextDep):
    user = get_user_by_id(db, caller.user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return MeResponse(
        **UserResponse.model_validate(user).model_dump(),
        primary_role=user.primary_role,
        dashboard_path=dashboard_path(user.role_names),
    )


# ============================================================================
# Customer-side user management (customer admins, provider group admins)
# ============================================================================


@router.get("", response_model=UserListResponse)
def list_users(
    db: DbSession,
    caller: CustomerManager,
    search: str | None = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
):
    """
    List users the caller manages.

    Provider group admins only see their own group.
    """
    return _list_response(UsersService(db, caller), None, search, skip, limit)


@router.get("/{user_id}", response_model=UserResponse)
def get_user(user_id: UUID, db: DbSession, caller: CustomerManager):
    user = UsersService(db, caller).get_user(user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.post("", response_model=ActionResponse)
def user_action(action: UserActionBody, db: DbSession, caller: CustomerManager):
    """Create, update, delete or assign NPIs to a user (selected by `intent`)."""
    return handle_user_action(UsersService(db, caller), action, "/customer/users")


# ============================================================================
# System admin user management
# ============================================================================


@admin_router.get("/users", response_model=UserListResponse)
def admin_list_users(
    db: DbSession,
    caller: SystemAdmin,
    search: str | None = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
):
    """List users across all customers."""
    return _list_response(UsersService(db, caller), None, search, skip, limit)


@admin_router.get("/customers/{customer_id}/users", response_model=UserListResponse)
def admin_list_customer_users(
    customer_id: UUID,
    db: DbSession,
    caller: SystemAdmin,
    search: str | None = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
):
    return _list_response(UsersService(db, caller), customer_id, search, skip, limit)


@admin_router.post("/customers/{customer_id}/users", response_model=ActionResponse)
def admin_customer_user_action(
    customer_id: UUID,
    action: UserActionBody,
    db: DbSession,
    caller: SystemAdmin,
):
    return handle_user_action(
        UsersService(db, caller),
        action,
        f"/admin/customer-manage/{customer_id}/users",
        customer_id=customer_id,
    )
