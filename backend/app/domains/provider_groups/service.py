"""
Provider Group Service - groups of providers and users within a customer.

A group cannot be deleted while users or providers still reference it.
"""
import logging
from uuid import UUID

from sqlalchemy import func, select

from app.core.exceptions import AuthorizationDenied, InvariantViolation, ResourceNotFound, ValidationFailed
from app.core.scope import ScopedService
from app.domains.provider_groups.models import ProviderGroup
from app.domains.provider_groups.schemas import (
    CreateProviderGroupAction,
    DeleteProviderGroupAction,
    UpdateProviderGroupAction,
)
from app.domains.providers.models import Provider
from app.domains.users.models import User

logger = logging.getLogger(__name__)

NAME_TAKEN = "Provider group name already exists"


class ProviderGroupsService(ScopedService):

    def _require_manager(self) -> None:
        if not self.caller.capability.manages_provider_groups:
            raise AuthorizationDenied("Insufficient permissions")

    def list_provider_groups(
        self,
        customer_id: UUID | None = None,
        search: str | None = None,
    ) -> list[tuple[ProviderGroup, int, int]]:
        """Groups in the caller's scope with their user and provider counts."""
        target_customer_id = self.resolve_customer_id(customer_id)

        user_count = (
            select(func.count(User.id))
            .where(User.provider_group_id == ProviderGroup.id)
            .correlate(ProviderGroup)
            .scalar_subquery()
        )
        provider_count = (
            select(func.count(Provider.id))
            .where(Provider.provider_group_id == ProviderGroup.id)
            .correlate(ProviderGroup)
            .scalar_subquery()
        )
        query = (
            self.scoped_query(ProviderGroup)
            .filter(ProviderGroup.customer_id == target_customer_id)
            .add_columns(user_count.label("user_count"), provider_count.label("provider_count"))
        )
        if search:
            query = query.filter(
                ProviderGroup.name.contains(search) | ProviderGroup.description.contains(search)
            )
        return [tuple(row) for row in query.order_by(ProviderGroup.name).all()]

    def get_provider_group(self, provider_group_id: UUID, customer_id: UUID | None = None) -> ProviderGroup | None:
        target_customer_id = self.resolve_customer_id(customer_id)
        return (
            self.scoped_query(ProviderGroup)
            .filter(ProviderGroup.id == provider_group_id, ProviderGroup.customer_id == target_customer_id)
            .first()
        )

    def _load_for_change(self, provider_group_id: UUID, customer_id: UUID | None, verb: str) -> ProviderGroup:
        group = self.get_provider_group(provider_group_id, customer_id)
        if not group:
            raise ResourceNotFound(f"Provider group not found or not authorized to {verb} it")
        return group

    def _name_taken(self, customer_id: UUID, name: str, exclude_id: UUID | None = None) -> bool:
        query = self.db.query(ProviderGroup.id).filter(
            ProviderGroup.customer_id == customer_id,
            ProviderGroup.name == name,
        )
        if exclude_id is not None:
            query = query.filter(ProviderGroup.id != exclude_id)
        return query.first() is not None

    def create_provider_group(
        self,
        action: CreateProviderGroupAction,
        customer_id: UUID | None = None,
    ) -> ProviderGroup:
        self._require_manager()
        target_customer_id = self.resolve_customer_id(customer_id)

        if self._name_taken(target_customer_id, action.name):
            raise ValidationFailed.for_field("name", NAME_TAKEN)

        group = ProviderGroup(
            customer_id=target_customer_id,
            name=action.name,
            description=action.description,
            active=action.active,
        )
        self.db.add(group)
        self.commit(NAME_TAKEN)
        self.db.refresh(group)
        logger.info(f"Provider group {group.id} created in customer {target_customer_id} by {self.user_id}")
        return group

    def update_provider_group(
        self,
        action: UpdateProviderGroupAction,
        customer_id: UUID | None = None,
    ) -> ProviderGroup:
        self._require_manager()
        group = self._load_for_change(action.provider_group_id, customer_id, "edit")

        if self._name_taken(group.customer_id, action.name, exclude_id=group.id):
            raise ValidationFailed.for_field("name", NAME_TAKEN)

        group.name = action.name
        group.description = action.description
        group.active = action.active
        self.commit(NAME_TAKEN)
        self.db.refresh(group)
        logger.info(f"Provider group {group.id} updated by {self.user_id}")
        return group

    def delete_provider_group(
        self,
        action: DeleteProviderGroupAction,
        customer_id: UUID | None = None,
    ) -> str:
        """Delete an empty provider group. Returns the deleted group's name."""
        self._require_manager()
        group = self._load_for_change(action.provider_group_id, customer_id, "delete")

        user_count = self.db.query(func.count(User.id)).filter(User.provider_group_id == group.id).scalar()
        if user_count:
            raise InvariantViolation(
                f"Cannot delete provider group with {user_count} assigned users. "
                "Please reassign or remove users first.",
                title="Cannot delete provider group",
            )

        provider_count = (
            self.db.query(func.count(Provider.id)).filter(Provider.provider_group_id == group.id).scalar()
        )
        if provider_count:
            raise InvariantViolation(
                f"Cannot delete provider group with {provider_count} providers. "
                "Please remove providers first.",
                title="Cannot delete provider group",
            )

        group_id, name = group.id, group.name
        self.db.delete(group)
        self.db.commit()
        logger.info(f"Provider group {group_id} deleted by {self.user_id}")
        return name
