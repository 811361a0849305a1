"""
Provider Group API Router.
"""
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Body, HTTPException, status

from app.core.actions import ActionResponse, success
from app.core.dependencies import CustomerAdmin, CustomerManager, DbSession, SystemAdmin
from app.domains.provider_groups.schemas import (
    CreateProviderGroupAction,
    DeleteProviderGroupAction,
    ProviderGroupAction,
    ProviderGroupDetailResponse,
    ProviderGroupListResponse,
    ProviderGroupResponse,
    ProviderGroupSummary,
    UpdateProviderGroupAction,
)
from app.domains.provider_groups.service import ProviderGroupsService

router = APIRouter()
admin_router = APIRouter()

ProviderGroupActionBody = Annotated[ProviderGroupAction, Body(discriminator="intent")]


def _list_response(rows) -> ProviderGroupListResponse:
    items = [
        ProviderGroupSummary(
            **ProviderGroupResponse.model_validate(group).model_dump(),
            user_count=user_count,
            provider_count=provider_count,
        )
        for group, user_count, provider_count in rows
    ]
    return ProviderGroupListResponse(items=items, total=len(items))


def _detail_response(service: ProviderGroupsService, provider_group_id: UUID, customer_id: UUID | None = None):
    group = service.get_provider_group(provider_group_id, customer_id)
    if not group:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Provider group not found")
    return ProviderGroupDetailResponse.model_validate(group)


def handle_provider_group_action(
    service: ProviderGroupsService,
    action: ProviderGroupAction,
    redirect_to: str,
    customer_id: UUID | None = None,
) -> ActionResponse:
    if isinstance(action, CreateProviderGroupAction):
        group = service.create_provider_group(action, customer_id)
        return success(
            "Provider group created",
            f"{group.name} has been created successfully.",
            redirect_to,
            provider_group_id=str(group.id),
        )

    if isinstance(action, UpdateProviderGroupAction):
        group = service.update_provider_group(action, customer_id)
        return success("Provider group updated", f"{group.name} has been updated successfully.", redirect_to)

    if isinstance(action, DeleteProviderGroupAction):
        name = service.delete_provider_group(action, customer_id)
        return success("Provider group deleted", f"{name} has been deleted successfully.", redirect_to)

    raise ValueError(f"Unhandled provider group action: {action!r}")


# ============================================================================
# Customer-side endpoints
# ============================================================================


@router.get("", response_model=ProviderGroupListResponse)
def list_provider_groups(db: DbSession, caller: CustomerManager, search: str | None = None):
    """List provider groups; provider group admins only see their own."""
    return _list_response(ProviderGroupsService(db, caller).list_provider_groups(search=search))


@router.get("/{provider_group_id}", response_model=ProviderGroupDetailResponse)
def get_provider_group(provider_group_id: UUID, db: DbSession, caller: CustomerManager):
    """A provider group with its users and providers."""
    return _detail_response(ProviderGroupsService(db, caller), provider_group_id)


@router.post("", response_model=ActionResponse)
def provider_group_action(action: ProviderGroupActionBody, db: DbSession, caller: CustomerAdmin):
    return handle_provider_group_action(ProviderGroupsService(db, caller), action, "/customer/provider-groups")


# ============================================================================
# System admin endpoints
# ============================================================================


@admin_router.get("/customers/{customer_id}/provider-groups", response_model=ProviderGroupListResponse)
def admin_list_provider_groups(customer_id: UUID, db: DbSession, caller: SystemAdmin, search: str | None = None):
    service = ProviderGroupsService(db, caller)
    return _list_response(service.list_provider_groups(customer_id=customer_id, search=search))


@admin_router.get(
    "/customers/{customer_id}/provider-groups/{provider_group_id}",
    response_model=ProviderGroupDetailResponse,
)
def admin_get_provider_group(customer_id: UUID, provider_group_id: UUID, db: DbSession, caller: SystemAdmin):
    return _detail_response(ProviderGroupsService(db, caller), provider_group_id, customer_id)


@admin_router.post("/customers/{customer_id}/provider-groups", response_model=ActionResponse)
def admin_provider_group_action(
    customer_id: UUID,
    action: ProviderGroupActionBody,
    db: DbSession,
    caller: SystemAdmin,
):
    return handle_provider_group_action(
        ProviderGroupsService(db, caller),
        action,
        f"/admin/customer-manage/{customer_id}/provider-groups",
        customer_id=customer_id,
    )
