"""
Provider Service - Business logic for customer NPI registries.

NPIs are globally unique. Each provider belongs to one customer and
optionally to one of that customer's provider groups. A provider cannot be
deleted while users are still assigned to it.
"""
import logging
from uuid import UUID

from sqlalchemy import func, select

from app.core.exceptions import (
    AuthorizationDenied,
    InvariantViolation,
    ResourceNotFound,
    ValidationFailed,
)
from app.core.scope import ScopedService
from app.domains.provider_groups.models import ProviderGroup
from app.domains.providers.models import Provider
from app.domains.providers.schemas import (
    AssignNpiAction,
    CreateProviderAction,
    DeleteProviderAction,
    UnassignNpiAction,
    UpdateProviderAction,
)
from app.domains.submissions.models import Submission
from app.domains.users.models import User, UserNpi
from app.domains.users.roles import Role

logger = logging.getLogger(__name__)

NPI_TAKEN = "This NPI is already registered in the system"
INVALID_PROVIDER_GROUP = "Invalid provider group selected"


class ProviderService(ScopedService):
    """
    Service for managing providers (NPIs) within the caller's scope.

    Customer admins manage every provider of their customer; provider group
    admins only the providers of their own group.
    """

    def _require_manager(self) -> None:
        if not self.caller.capability.manages_providers:
            raise AuthorizationDenied("Insufficient permissions")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_providers(
        self,
        customer_id: UUID | None = None,
        skip: int = 0,
        limit: int = 100,
        active: bool | None = None,
        search: str | None = None,
    ) -> tuple[list[tuple[Provider, int]], int]:
        """
        List providers with their assignment counts.

        A system admin without a customer_id lists across all customers.
        Search is a substring match over NPI and name.
        """
        query = self.scoped_query(Provider)
        if customer_id is not None or not self.caller.is_system_admin:
            query = query.filter(Provider.customer_id == self.resolve_customer_id(customer_id))

        if active is not None:
            query = query.filter(Provider.active.is_(active))
        if search:
            query = query.filter(Provider.npi.contains(search) | Provider.name.contains(search))

        total = query.count()

        assignment_count = (
            select(func.count(UserNpi.id))
            .where(UserNpi.provider_id == Provider.id)
            .correlate(Provider)
            .scalar_subquery()
        )
        rows = (
            query.add_columns(assignment_count.label("assignment_count"))
            .order_by(Provider.npi)
            .offset(skip)
            .limit(limit)
            .all()
        )
        return [tuple(row) for row in rows], total

    def get_provider(self, provider_id: UUID) -> Provider | None:
        """Get a provider by ID."""
        return self.scoped_query(Provider).filter(Provider.id == provider_id).first()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _npi_taken(self, npi: str) -> bool:
        return self.db.query(Provider.id).filter(Provider.npi == npi).first() is not None

    def _group_in_customer(self, customer_id: UUID, provider_group_id: UUID) -> bool:
        return (
            self.db.query(ProviderGroup.id)
            .filter(ProviderGroup.id == provider_group_id, ProviderGroup.customer_id == customer_id)
            .first()
            is not None
        )

    def _load_in_customer(self, provider_id: UUID, customer_id: UUID, verb: str) -> Provider:
        provider = (
            self.db.query(Provider)
            .filter(Provider.id == provider_id, Provider.customer_id == customer_id)
            .first()
        )
        # Other groups' providers are reported exactly like missing ones
        if not provider or (
            self.caller.is_provider_group_admin
            and provider.provider_group_id != self.caller.require_provider_group_id()
        ):
            raise ResourceNotFound(f"Provider not found or not authorized to {verb} this provider")
        return provider

    def create_provider(
        self,
        action: CreateProviderAction,
        customer_id: UUID | None = None,
        require_group: bool = False,
    ) -> Provider:
        """
        Register a new NPI for a customer.

        Args:
            action: Validated create request
            customer_id: Target customer (system admins); others use their own
            require_group: Reject providers without a provider group
        """
        self._require_manager()
        target_customer_id = self.resolve_customer_id(customer_id)

        errors: dict[str, list[str]] = {}
        if self._npi_taken(action.npi):
            errors["npi"] = [NPI_TAKEN]

        provider_group_id = action.provider_group_id
        if self.caller.is_provider_group_admin:
            own_group_id = self.caller.require_provider_group_id()
            if provider_group_id is None:
                provider_group_id = own_group_id
            elif provider_group_id != own_group_id:
                errors["provider_group_id"] = ["You can only create providers in your assigned provider group"]

        if "provider_group_id" not in errors:
            if provider_group_id is None:
                if require_group:
                    errors["provider_group_id"] = ["Provider group is required"]
            elif not self._group_in_customer(target_customer_id, provider_group_id):
                errors["provider_group_id"] = [INVALID_PROVIDER_GROUP]

        if errors:
            raise ValidationFailed(field_errors=errors)

        provider = Provider(
            npi=action.npi,
            name=action.name,
            customer_id=target_customer_id,
            provider_group_id=provider_group_id,
            active=True,
        )
        self.db.add(provider)
        self.commit(NPI_TAKEN)
        self.db.refresh(provider)
        logger.info(f"Provider {provider.npi} created in customer {target_customer_id} by {self.user_id}")
        return provider

    def update_provider(self, action: UpdateProviderAction, customer_id: UUID | None = None) -> Provider:
        self._require_manager()
        target_customer_id = self.resolve_customer_id(customer_id)
        provider = self._load_in_customer(action.provider_id, target_customer_id, "edit")

        provider_group_id = action.provider_group_id
        if self.caller.is_provider_group_admin and provider_group_id != self.caller.provider_group_id:
            raise ValidationFailed.for_field(
                "provider_group_id", "You can only assign providers to your provider group"
            )
        if provider_group_id is not None and not self._group_in_customer(target_customer_id, provider_group_id):
            raise ValidationFailed.for_field("provider_group_id", INVALID_PROVIDER_GROUP)

        provider.name = action.name
        provider.provider_group_id = provider_group_id
        provider.active = action.active
        self.commit()
        self.db.refresh(provider)
        logger.info(f"Provider {provider.npi} updated by {self.user_id}")
        return provider

    def delete_provider(self, action: DeleteProviderAction, customer_id: UUID | None = None) -> tuple[str, str | None]:
        """Delete a provider with no user assignments. Returns (npi, name)."""
        self._require_manager()
        target_customer_id = self.resolve_customer_id(customer_id)
        provider = self._load_in_customer(action.provider_id, target_customer_id, "delete")

        assignment_count = (
            self.db.query(func.count(UserNpi.id)).filter(UserNpi.provider_id == provider.id).scalar()
        )
        if assignment_count:
            raise InvariantViolation(
                f"Cannot delete provider with {assignment_count} assigned users. "
                "Please unassign users first.",
                title="Cannot delete provider",
            )

        submission_count = (
            self.db.query(func.count(Submission.id)).filter(Submission.provider_id == provider.id).scalar()
        )
        if submission_count:
            raise InvariantViolation(
                f"Cannot delete provider with {submission_count} submissions. "
                "Deactivate the provider instead.",
                title="Cannot delete provider",
            )

        npi, name = provider.npi, provider.name
        self.db.delete(provider)
        self.db.commit()
        logger.info(f"Provider {npi} deleted by {self.user_id}")
        return npi, name

    # ------------------------------------------------------------------
    # Individual NPI assignments (system admin tooling)
    # ------------------------------------------------------------------

    def list_assignments(self, search: str | None = None) -> list[UserNpi]:
        query = (
            self.db.query(UserNpi)
            .join(User, UserNpi.user_id == User.id)
            .join(Provider, UserNpi.provider_id == Provider.id)
            .filter(*self._assignment_scope())
        )
        if search:
            query = query.filter(
                User.name.contains(search) | User.email.contains(search) | Provider.npi.contains(search)
            )
        return query.order_by(UserNpi.created_at.desc()).all()

    def _assignment_scope(self) -> list:
        if self.caller.is_system_admin:
            return []
        return [Provider.customer_id == self.caller.require_customer_id()]

    def assign_npi(self, action: AssignNpiAction) -> UserNpi:
        """Add a single user-to-NPI assignment."""
        if action.user_id is None or action.provider_id is None:
            raise ValidationFailed.for_form("User and Provider are required")

        user = self.db.get(User, action.user_id)
        provider = self.db.get(Provider, action.provider_id)
        if not user:
            raise ValidationFailed.for_field("user_id", "User not found")
        if not provider:
            raise ValidationFailed.for_field("provider_id", "Provider not found")
        if user.customer_id != provider.customer_id:
            raise ValidationFailed.for_field("provider_id", "NPI belongs to a different customer")
        if user.primary_role is not Role.BASIC_USER:
            raise ValidationFailed.for_field("user_id", "NPIs can only be assigned to basic users")
        if not provider.active:
            raise ValidationFailed.for_field("provider_id", "Inactive NPIs cannot be assigned")
        if user.provider_group_id is not None and provider.provider_group_id != user.provider_group_id:
            raise ValidationFailed.for_field("provider_id", "NPI is not in the user's provider group")

        existing = (
            self.db.query(UserNpi.id)
            .filter(UserNpi.user_id == user.id, UserNpi.provider_id == provider.id)
            .first()
        )
        if existing:
            raise ValidationFailed.for_form("This user is already assigned to this NPI")

        assignment = UserNpi(user_id=user.id, provider_id=provider.id)
        self.db.add(assignment)
        self.commit("This user is already assigned to this NPI")
        self.db.refresh(assignment)
        logger.info(f"User {user.id} assigned to NPI {provider.npi} by {self.user_id}")
        return assignment

    def unassign_npi(self, action: UnassignNpiAction) -> None:
        assignment = self.db.get(UserNpi, action.assignment_id)
        if not assignment:
            raise ResourceNotFound("Assignment not found")
        self.db.delete(assignment)
        self.db.commit()
        logger.info(f"Assignment {action.assignment_id} removed by {self.user_id}")
