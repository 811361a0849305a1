"""
Customer API Router - system admin customer management and customer self-view.
"""
import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Body, HTTPException, status

from app.core.actions import ActionResponse, success
from app.core.dependencies import AnyPortalUser, DbSession, SystemAdmin
from app.domains.customers.schemas import (
    AddAdminAction,
    CreateCustomerAction,
    CustomerAction,
    CustomerAdminResponse,
    CustomerDetailResponse,
    CustomerListResponse,
    CustomerResponse,
    CustomerSummary,
    UpdateCustomerAction,
)
from app.domains.customers.service import CustomersService

logger = logging.getLogger(__name__)

router = APIRouter()
admin_router = APIRouter()

CUSTOMERS_PATH = "/admin/customers"


def _summary(row) -> CustomerSummary:
    customer, user_count, provider_group_count, provider_count = row
    return CustomerSummary(
        **CustomerResponse.model_validate(customer).model_dump(),
        user_count=user_count,
        provider_group_count=provider_group_count,
        provider_count=provider_count,
    )


def _detail(service: CustomersService, customer_id: UUID) -> CustomerDetailResponse:
    row = service.get_customer_summary(customer_id)
    if not row:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")
    return CustomerDetailResponse(
        **_summary(row).model_dump(),
        admins=[CustomerAdminResponse.model_validate(a) for a in service.list_admins(customer_id)],
    )


# ============================================================================
# System admin endpoints
# ============================================================================


@admin_router.get("/customers", response_model=CustomerListResponse)
def list_customers(db: DbSession, caller: SystemAdmin, search: str | None = None):
    """List all customers with user, provider group and provider counts."""
    rows = CustomersService(db, caller).list_customers(search=search)
    return CustomerListResponse(items=[_summary(row) for row in rows], total=len(rows))


@admin_router.get("/customers/{customer_id}", response_model=CustomerDetailResponse)
def get_customer(customer_id: UUID, db: DbSession, caller: SystemAdmin):
    return _detail(CustomersService(db, caller), customer_id)


@admin_router.post("/customers", response_model=ActionResponse)
def customer_action(
    action: Annotated[CustomerAction, Body(discriminator="intent")],
    db: DbSession,
    caller: SystemAdmin,
):
    """
    Customer actions selected by `intent`:
    - create: new customer plus its first customer admin
    - update: rename, change BAA details, activate/deactivate
    - add-admin: another customer admin for an existing customer
    """
    service = CustomersService(db, caller)

    if isinstance(action, CreateCustomerAction):
        customer, admin, temp_password, notification = service.create_customer(action)
        admin_name = admin.name or admin.username
        if notification.success:
            description = (
                f"{customer.name} has been created with admin {admin_name}. "
                "Login credentials sent via email."
            )
        else:
            description = (
                f"{customer.name} has been created with admin {admin_name}. "
                f"Temporary password: {temp_password}"
            )
        return success("Customer created", description, CUSTOMERS_PATH, customer_id=str(customer.id))

    if isinstance(action, UpdateCustomerAction):
        customer = service.update_customer(action)
        return success("Customer updated", f"{customer.name} has been updated successfully.", CUSTOMERS_PATH)

    if isinstance(action, AddAdminAction):
        customer, admin, temp_password, notification = service.add_admin(action)
        admin_name = admin.name or admin.username
        if notification.success:
            description = f"{admin_name} has been added as an admin for {customer.name}. Login credentials sent via email."
        else:
            description = (
                f"{admin_name} has been added as an admin for {customer.name}. "
                f"Temporary password: {temp_password}"
            )
        return success("Admin added", description, CUSTOMERS_PATH)

    raise ValueError(f"Unhandled customer action: {action!r}")


# ============================================================================
# Customer self-view
# ============================================================================


@router.get("/me", response_model=CustomerDetailResponse)
def get_my_customer(db: DbSession, caller: AnyPortalUser):
    """The caller's own customer organization."""
    service = CustomersService(db, caller)
    if caller.customer_id is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")
    return _detail(service, caller.customer_id)
