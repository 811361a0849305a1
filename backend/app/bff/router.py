from uuid import UUID

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import func

from app.core.dependencies import AnyPortalUser, DbSession, SystemAdmin
from app.core.scope import scope_criteria, Resource, RESOURCE_MODELS
from app.domains.customers.service import CustomersService
from app.domains.users.roles import Role

router = APIRouter()


class DashboardResponse(BaseModel):
    primary_role: Role | None
    dashboard_path: str
    user_count: int
    provider_group_count: int
    provider_count: int
    submission_count: int


class CustomerStats(BaseModel):
    id: UUID
    name: str
    active: bool
    user_count: int
    provider_group_count: int
    provider_count: int


class AdminDashboardResponse(BaseModel):
    total_users: int
    total_customers: int
    total_provider_groups: int
    total_providers: int
    customers: list[CustomerStats]


def _scoped_count(db, caller, resource: Resource) -> int:
    model = RESOURCE_MODELS[resource]
    return db.query(func.count(model.id)).filter(*scope_criteria(caller, resource)).scalar() or 0


@router.get("/dashboard", response_model=DashboardResponse)
def get_dashboard(db: DbSession, caller: AnyPortalUser):
    """
    Landing data for the caller's role: where to go, and counts of what
    they can see. BFF pattern: aggregates across domains without persistence.
    """
    return DashboardResponse(
        primary_role=caller.primary_role,
        dashboard_path=caller.capability.dashboard_path,
        user_count=_scoped_count(db, caller, Resource.USER),
        provider_group_count=_scoped_count(db, caller, Resource.PROVIDER_GROUP),
        provider_count=_scoped_count(db, caller, Resource.PROVIDER),
        submission_count=_scoped_count(db, caller, Resource.SUBMISSION),
    )


@router.get("/admin-dashboard", response_model=AdminDashboardResponse)
def get_admin_dashboard(db: DbSession, caller: SystemAdmin):
    """System-wide totals plus a per-customer breakdown."""
    customers = CustomersService(db, caller).list_customers()

    return AdminDashboardResponse(
        total_users=_scoped_count(db, caller, Resource.USER),
        total_customers=len(customers),
        total_provider_groups=_scoped_count(db, caller, Resource.PROVIDER_GROUP),
        total_providers=_scoped_count(db, caller, Resource.PROVIDER),
        customers=[
            CustomerStats(
                id=customer.id,
                name=customer.name,
                active=customer.active,
                user_count=user_count,
                provider_group_count=provider_group_count,
                provider_count=provider_count,
            )
            for customer, user_count, provider_group_count, provider_count in customers
        ],
    )
