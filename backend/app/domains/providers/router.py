"""
Provider API Router - Endpoints for customer NPI registries and NPI assignments.
"""
import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Body, HTTPException, Query, status

from app.core.actions import ActionResponse, success
from app.core.dependencies import CustomerManager, DbSession, SystemAdmin
from app.domains.providers.schemas import (
    AssignNpiAction,
    CreateProviderAction,
    DeleteProviderAction,
    NpiAssignmentAction,
    NpiAssignmentListResponse,
    NpiAssignmentResponse,
    ProviderAction,
    ProviderListResponse,
    ProviderResponse,
    ProviderSummary,
    UnassignNpiAction,
    UpdateProviderAction,
)
from app.domains.providers.service import ProviderService

logger = logging.getLogger(__name__)

router = APIRouter()
admin_router = APIRouter()

ProviderActionBody = Annotated[ProviderAction, Body(discriminator="intent")]


def _list_response(rows, total: int, skip: int, limit: int) -> ProviderListResponse:
    return ProviderListResponse(
        items=[
            ProviderSummary(
                **ProviderResponse.model_validate(provider).model_dump(),
                assignment_count=assignment_count,
            )
            for provider, assignment_count in rows
        ],
        total=total,
        skip=skip,
        limit=limit,
    )


def handle_provider_action(
    service: ProviderService,
    action: ProviderAction,
    redirect_to: str,
    customer_id: UUID | None = None,
    require_group: bool = False,
) -> ActionResponse:
    if isinstance(action, CreateProviderAction):
        provider = service.create_provider(action, customer_id, require_group=require_group)
        return success(
            "Provider created",
            f"NPI {provider.npi} has been created successfully.",
            redirect_to,
            provider_id=str(provider.id),
        )

    if isinstance(action, UpdateProviderAction):
        provider = service.update_provider(action, customer_id)
        return success("Provider updated", f"NPI {provider.npi} has been updated successfully.", redirect_to)

    if isinstance(action, DeleteProviderAction):
        npi, name = service.delete_provider(action, customer_id)
        return success(
            "Provider deleted",
            f"NPI {npi} ({name or 'unnamed'}) has been deleted successfully.",
            redirect_to,
        )

    raise ValueError(f"Unhandled provider action: {action!r}")


# ============================================================================
# Customer-side endpoints (customer admins, provider group admins)
# ============================================================================


@router.get("", response_model=ProviderListResponse)
def list_providers(
    db: DbSession,
    caller: CustomerManager,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    active: bool | None = None,
    search: str | None = None,
):
    """
    List providers for the caller's customer.

    Provider group admins only see their group's providers.
    """
    service = ProviderService(db, caller)
    rows, total = service.list_providers(skip=skip, limit=limit, active=active, search=search)
    return _list_response(rows, total, skip, limit)


@router.get("/{provider_id}", response_model=ProviderResponse)
def get_provider(provider_id: UUID, db: DbSession, caller: CustomerManager):
    provider = ProviderService(db, caller).get_provider(provider_id)
    if not provider:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Provider not found")
    return provider


@router.post("", response_model=ActionResponse)
def provider_action(action: ProviderActionBody, db: DbSession, caller: CustomerManager):
    """Create, update or delete a provider NPI (selected by `intent`)."""
    return handle_provider_action(
        ProviderService(db, caller),
        action,
        "/customer/provider-npis",
        require_group=True,
    )


# ============================================================================
# System admin endpoints
# ============================================================================


@admin_router.get("/providers", response_model=ProviderListResponse)
def admin_list_providers(
    db: DbSession,
    caller: SystemAdmin,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    active: bool | None = None,
    search: str | None = None,
):
    """List providers across all customers."""
    rows, total = ProviderService(db, caller).list_providers(
        skip=skip, limit=limit, active=active, search=search
    )
    return _list_response(rows, total, skip, limit)


@admin_router.post("/providers", response_model=ActionResponse)
def admin_create_provider(action: CreateProviderAction, db: DbSession, caller: SystemAdmin):
    """Register an NPI for any customer (`customer_id` is required here)."""
    provider = ProviderService(db, caller).create_provider(action, action.customer_id)
    return success(
        "Provider created",
        f"NPI {provider.npi} has been created successfully.",
        "/admin/providers",
        provider_id=str(provider.id),
    )


@admin_router.get("/customers/{customer_id}/providers", response_model=ProviderListResponse)
def admin_list_customer_providers(
    customer_id: UUID,
    db: DbSession,
    caller: SystemAdmin,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    active: bool | None = None,
    search: str | None = None,
):
    rows, total = ProviderService(db, caller).list_providers(
        customer_id=customer_id, skip=skip, limit=limit, active=active, search=search
    )
    return _list_response(rows, total, skip, limit)


@admin_router.post("/customers/{customer_id}/providers", response_model=ActionResponse)
def admin_customer_provider_action(
    customer_id: UUID,
    action: ProviderActionBody,
    db: DbSession,
    caller: SystemAdmin,
):
    return handle_provider_action(
        ProviderService(db, caller),
        action,
        f"/admin/customer-manage/{customer_id}/providers",
        customer_id=customer_id,
    )


# ============================================================================
# NPI assignments
# ============================================================================


@admin_router.get("/npis", response_model=NpiAssignmentListResponse)
def list_npi_assignments(db: DbSession, caller: SystemAdmin, search: str | None = None):
    assignments = ProviderService(db, caller).list_assignments(search=search)
    items = [
        NpiAssignmentResponse(
            id=a.id,
            user_id=a.user_id,
            user_name=a.user.name,
            user_email=a.user.email,
            provider_id=a.provider_id,
            npi=a.provider.npi,
            provider_name=a.provider.name,
            customer_id=a.provider.customer_id,
            created_at=a.created_at,
        )
        for a in assignments
    ]
    return NpiAssignmentListResponse(items=items, total=len(items))


@admin_router.post("/npis", response_model=ActionResponse)
def npi_assignment_action(
    action: Annotated[NpiAssignmentAction, Body(discriminator="intent")],
    db: DbSession,
    caller: SystemAdmin,
):
    service = ProviderService(db, caller)

    if isinstance(action, AssignNpiAction):
        assignment = service.assign_npi(action)
        return success(
            "NPI assigned",
            f"NPI {assignment.provider.npi} has been assigned to {assignment.user.name or assignment.user.username}.",
            "/admin/npis",
        )

    if isinstance(action, UnassignNpiAction):
        service.unassign_npi(action)
        return success("NPI unassigned", "The assignment has been removed.", "/admin/npis")

    raise ValueError(f"Unhandled NPI assignment action: {action!r}")
