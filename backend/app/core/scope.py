import logging
from enum import Enum
from typing import Annotated, Callable, Iterable, TypeVar
from uuid import UUID

from fastapi import Depends, HTTPException, status
from sqlalchemy import false, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.core.database import get_db
from app.core.exceptions import (
    AuthorizationDenied,
    ResourceNotFound,
    ScopeMisconfigured,
    ValidationFailed,
)
from app.core.security import TokenPayload, verify_token
from app.domains.customers.models import Customer
from app.domains.provider_groups.models import ProviderGroup
from app.domains.providers.models import Provider
from app.domains.submissions.models import Submission
from app.domains.users.models import User, UserNpi
from app.domains.users.roles import CAPABILITIES, Capability, Role, RoleScope, primary_role

logger = logging.getLogger(__name__)

MISSING_CUSTOMER = "User must be associated with a customer"
MISSING_PROVIDER_GROUP = "Provider group admin must be assigned to a provider group"


class Resource(str, Enum):
    CUSTOMER = "customer"
    PROVIDER_GROUP = "provider-group"
    PROVIDER = "provider"
    USER = "user"
    SUBMISSION = "submission"


RESOURCE_MODELS: dict[Resource, type] = {
    Resource.CUSTOMER: Customer,
    Resource.PROVIDER_GROUP: ProviderGroup,
    Resource.PROVIDER: Provider,
    Resource.USER: User,
    Resource.SUBMISSION: Submission,
}

MODEL_RESOURCES: dict[type, Resource] = {model: resource for resource, model in RESOURCE_MODELS.items()}


class CallerContext:
    """Request-scoped identity of the caller, resolved from the JWT subject.

    Carries everything the scope filters need: roles plus the customer,
    provider group and NPI assignments the user is tied to.
    """

    def __init__(
        self,
        user_id: UUID,
        roles: Iterable[str],
        customer_id: UUID | None = None,
        provider_group_id: UUID | None = None,
        assigned_provider_ids: Iterable[UUID] = (),
        name: str | None = None,
        email: str | None = None,
    ):
        self.user_id = user_id
        self.roles = list(roles)
        self.customer_id = customer_id
        self.provider_group_id = provider_group_id
        self.assigned_provider_ids = frozenset(assigned_provider_ids)
        self.name = name
        self.email = email
        self.primary_role = primary_role(self.roles)

    @classmethod
    def from_user(cls, user: User) -> "CallerContext":
        return cls(
            user_id=user.id,
            roles=user.role_names,
            customer_id=user.customer_id,
            provider_group_id=user.provider_group_id,
            assigned_provider_ids=user.assigned_provider_ids,
            name=user.name,
            email=user.email,
        )

    def has_role(self, role: Role | str) -> bool:
        return Role(role).value in self.roles

    def has_any_role(self, roles: Iterable[Role | str]) -> bool:
        return any(self.has_role(role) for role in roles)

    @property
    def is_system_admin(self) -> bool:
        return self.primary_role is Role.SYSTEM_ADMIN

    @property
    def is_provider_group_admin(self) -> bool:
        return self.primary_role is Role.PROVIDER_GROUP_ADMIN

    @property
    def is_basic_user(self) -> bool:
        return self.primary_role is Role.BASIC_USER

    @property
    def capability(self) -> Capability:
        if self.primary_role is None:
            raise AuthorizationDenied("Insufficient permissions")
        return CAPABILITIES[self.primary_role]

    def require_customer_id(self) -> UUID:
        if self.customer_id is None:
            raise ScopeMisconfigured(MISSING_CUSTOMER)
        return self.customer_id

    def require_provider_group_id(self) -> UUID:
        if self.provider_group_id is None:
            raise ScopeMisconfigured(MISSING_PROVIDER_GROUP)
        return self.provider_group_id


# ============================================================================
# Scope predicates
# ============================================================================


def _assigned_provider_ids(caller: CallerContext):
    return select(UserNpi.provider_id).where(UserNpi.user_id == caller.user_id)


def _customer_scope(caller: CallerContext, resource: Resource) -> list:
    customer_id = caller.require_customer_id()
    if resource is Resource.CUSTOMER:
        return [Customer.id == customer_id]
    return [RESOURCE_MODELS[resource].customer_id == customer_id]


def _provider_group_scope(caller: CallerContext, resource: Resource) -> list:
    customer_id = caller.require_customer_id()
    group_id = caller.require_provider_group_id()
    if resource is Resource.CUSTOMER:
        return [Customer.id == customer_id]
    if resource is Resource.PROVIDER_GROUP:
        return [ProviderGroup.customer_id == customer_id, ProviderGroup.id == group_id]
    if resource is Resource.PROVIDER:
        return [Provider.customer_id == customer_id, Provider.provider_group_id == group_id]
    if resource is Resource.USER:
        return [User.customer_id == customer_id, User.provider_group_id == group_id]
    group_providers = select(Provider.id).where(Provider.provider_group_id == group_id)
    return [Submission.customer_id == customer_id, Submission.provider_id.in_(group_providers)]


def _user_scope(caller: CallerContext, resource: Resource) -> list:
    customer_id = caller.require_customer_id()
    if resource is Resource.CUSTOMER:
        return [Customer.id == customer_id]
    if resource is Resource.PROVIDER_GROUP:
        if caller.provider_group_id is None:
            return [false()]
        return [ProviderGroup.customer_id == customer_id, ProviderGroup.id == caller.provider_group_id]
    if resource is Resource.PROVIDER:
        return [Provider.customer_id == customer_id, Provider.id.in_(_assigned_provider_ids(caller))]
    if resource is Resource.USER:
        return [User.id == caller.user_id]
    return [Submission.customer_id == customer_id, Submission.provider_id.in_(_assigned_provider_ids(caller))]


_SCOPE_BUILDERS: dict[RoleScope, Callable[[CallerContext, Resource], list]] = {
    RoleScope.SYSTEM: lambda caller, resource: [],
    RoleScope.CUSTOMER: _customer_scope,
    RoleScope.PROVIDER_GROUP: _provider_group_scope,
    RoleScope.USER: _user_scope,
}


def scope_criteria(caller: CallerContext, resource: Resource) -> list:
    """Filter criteria limiting `resource` rows to what the caller may see.

    An empty list means no restriction. Raises ScopeMisconfigured when the
    caller's role needs a customer or provider group the account lacks, and
    AuthorizationDenied when the caller holds no known role.
    """
    return _SCOPE_BUILDERS[caller.capability.scope](caller, resource)


# ============================================================================
# Dependencies
# ============================================================================


def get_caller_context(
    token: TokenPayload = Depends(verify_token),
    db: Session = Depends(get_db),
) -> CallerContext:
    """FastAPI dependency resolving the JWT subject to a live, active user."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        user_id = UUID(token.sub)
    except (TypeError, ValueError):
        raise credentials_exception

    user = (
        db.query(User)
        .options(selectinload(User.npi_assignments))
        .filter(User.id == user_id)
        .first()
    )
    if not user or not user.active:
        logger.warning(f"Rejected token for missing or inactive user {token.sub}")
        raise credentials_exception

    return CallerContext.from_user(user)


CallerContextDep = Annotated[CallerContext, Depends(get_caller_context)]


# Generic type for model classes
T = TypeVar("T")


class ScopedService:
    """Base class for services that read and write within the caller's scope.

    Services should use scoped_query() instead of db.query() for any model
    listed in RESOURCE_MODELS so the role scope is always applied.
    """

    def __init__(self, db: Session, caller: CallerContext):
        self.db = db
        self.caller = caller

    @property
    def user_id(self) -> UUID:
        return self.caller.user_id

    def scoped_query(self, model: type[T]):
        """Return a query on `model` already narrowed to the caller's scope.

        Usage:
            query = self.scoped_query(Provider)
            # Adds e.g. WHERE customer_id = :caller_customer for a customer admin
        """
        criteria = scope_criteria(self.caller, MODEL_RESOURCES[model])
        return self.db.query(model).filter(*criteria)

    def resolve_customer_id(self, customer_id: UUID | None = None) -> UUID:
        """Pick the customer a write applies to.

        System admins must name an existing customer. Everyone else works in
        their own customer; naming any other one is reported as not found.
        """
        if self.caller.is_system_admin:
            if customer_id is None:
                raise ValidationFailed.for_field("customer_id", "Customer is required")
            if not self.db.query(Customer.id).filter(Customer.id == customer_id).first():
                raise ResourceNotFound("Customer not found")
            return customer_id

        own_customer_id = self.caller.require_customer_id()
        if customer_id is not None and customer_id != own_customer_id:
            raise ResourceNotFound("Customer not found")
        return own_customer_id

    def commit(self, conflict_message: str = "A record with these details already exists") -> None:
        """Commit, turning a unique-constraint race into a validation error."""
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Integrity error on commit: {e.orig}")
            raise ValidationFailed.for_form(conflict_message) from e
