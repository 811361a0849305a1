"""
Customer Service - organization onboarding and maintenance.

Creating a customer always creates its first customer admin in the same
transaction; the welcome email goes out only after that commit.
"""
import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import func, select

from app.core.exceptions import ResourceNotFound, ValidationFailed
from app.core.scope import ScopedService
from app.domains.customers.models import Customer
from app.domains.customers.schemas import (
    AddAdminAction,
    CreateCustomerAction,
    UpdateCustomerAction,
)
from app.domains.notifications.service import NotificationResult, send_temporary_password_email
from app.domains.provider_groups.models import ProviderGroup
from app.domains.providers.models import Provider
from app.domains.users.models import RoleRecord, User
from app.domains.users.roles import Role
from app.domains.users.service import UsersService

logger = logging.getLogger(__name__)

NAME_TAKEN = "Customer name already exists"
BAA_TAKEN = "BAA number already exists"


def _count_of(column, customer_column):
    return (
        select(func.count(column))
        .where(customer_column == Customer.id)
        .correlate(Customer)
        .scalar_subquery()
    )


class CustomersService(ScopedService):

    def _summary_query(self):
        return self.scoped_query(Customer).add_columns(
            _count_of(User.id, User.customer_id).label("user_count"),
            _count_of(ProviderGroup.id, ProviderGroup.customer_id).label("provider_group_count"),
            _count_of(Provider.id, Provider.customer_id).label("provider_count"),
        )

    def list_customers(self, search: str | None = None) -> list[tuple[Customer, int, int, int]]:
        """
        List customers with user, provider group and provider counts.

        Search is a substring match over name, description and BAA number.
        """
        query = self._summary_query()
        if search:
            query = query.filter(
                Customer.name.contains(search)
                | Customer.description.contains(search)
                | Customer.baa_number.contains(search)
            )
        return [tuple(row) for row in query.order_by(Customer.name).all()]

    def get_customer_summary(self, customer_id: UUID) -> tuple[Customer, int, int, int] | None:
        row = self._summary_query().filter(Customer.id == customer_id).first()
        return tuple(row) if row else None

    def get_customer(self, customer_id: UUID) -> Customer | None:
        return self.scoped_query(Customer).filter(Customer.id == customer_id).first()

    def list_admins(self, customer_id: UUID) -> list[User]:
        return (
            self.db.query(User)
            .filter(
                User.customer_id == customer_id,
                User.roles.any(RoleRecord.name == Role.CUSTOMER_ADMIN.value),
            )
            .order_by(User.name)
            .all()
        )

    def _customer_conflicts(
        self,
        name: str,
        baa_number: str | None,
        exclude_id: UUID | None = None,
    ) -> dict[str, list[str]]:
        errors: dict[str, list[str]] = {}

        name_query = self.db.query(Customer.id).filter(Customer.name == name)
        if exclude_id is not None:
            name_query = name_query.filter(Customer.id != exclude_id)
        if name_query.first():
            errors["name"] = [NAME_TAKEN]

        if baa_number:
            baa_query = self.db.query(Customer.id).filter(Customer.baa_number == baa_number)
            if exclude_id is not None:
                baa_query = baa_query.filter(Customer.id != exclude_id)
            if baa_query.first():
                errors["baa_number"] = [BAA_TAKEN]
        return errors

    def create_customer(
        self,
        action: CreateCustomerAction,
    ) -> tuple[Customer, User, str, NotificationResult]:
        """
        Create a customer and its customer admin atomically.

        Returns:
            Tuple of (customer, admin user, temporary password, notification result)
        """
        users_service = UsersService(self.db, self.caller)

        errors = self._customer_conflicts(action.name, action.baa_number)
        errors.update(
            users_service.identity_conflicts(
                action.admin_email,
                action.admin_username,
                email_field="admin_email",
                username_field="admin_username",
            )
        )
        if errors:
            raise ValidationFailed(field_errors=errors)

        try:
            customer = Customer(
                name=action.name,
                description=action.description,
                baa_number=action.baa_number,
                baa_date=datetime.now(timezone.utc) if action.baa_number else None,
                active=True,
            )
            self.db.add(customer)
            self.db.flush()

            admin, temp_password = users_service.new_account(
                name=action.admin_name,
                email=action.admin_email,
                username=action.admin_username,
                role=Role.CUSTOMER_ADMIN,
                customer_id=customer.id,
            )
            self.commit("A customer or user with these details already exists")
        except Exception:
            self.db.rollback()
            logger.error(f"Failed to create customer {action.name}; transaction rolled back")
            raise

        self.db.refresh(customer)
        self.db.refresh(admin)
        logger.info(f"Customer {customer.id} ({customer.name}) created with admin {admin.id} by {self.user_id}")

        notification = send_temporary_password_email(
            to=admin.email,
            admin_name=admin.name or admin.username,
            customer_name=customer.name,
            username=admin.username,
            temp_password=temp_password,
        )
        return customer, admin, temp_password, notification

    def update_customer(self, action: UpdateCustomerAction) -> Customer:
        customer = self.get_customer(action.customer_id)
        if not customer:
            raise ResourceNotFound("Customer not found")

        errors = self._customer_conflicts(action.name, action.baa_number, exclude_id=customer.id)
        if errors:
            raise ValidationFailed(field_errors=errors)

        if action.baa_number and action.baa_number != customer.baa_number:
            customer.baa_date = datetime.now(timezone.utc)
        elif not action.baa_number:
            customer.baa_date = None
        customer.name = action.name
        customer.description = action.description
        customer.baa_number = action.baa_number
        customer.active = action.active

        self.commit("A customer with these details already exists")
        self.db.refresh(customer)
        logger.info(f"Customer {customer.id} updated by {self.user_id}")
        return customer

    def add_admin(self, action: AddAdminAction) -> tuple[Customer, User, str, NotificationResult]:
        """Add another customer admin to an existing customer."""
        customer = self.get_customer(action.customer_id)
        if not customer:
            raise ResourceNotFound("Customer not found")

        users_service = UsersService(self.db, self.caller)
        errors = users_service.identity_conflicts(action.email, action.username)
        if errors:
            raise ValidationFailed(field_errors=errors)

        try:
            admin, temp_password = users_service.new_account(
                name=action.name,
                email=action.email,
                username=action.username,
                role=Role.CUSTOMER_ADMIN,
                customer_id=customer.id,
            )
            self.commit("A user with this email or username already exists")
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(admin)
        logger.info(f"Admin {admin.id} added to customer {customer.id} by {self.user_id}")

        notification = send_temporary_password_email(
            to=admin.email,
            admin_name=admin.name or admin.username,
            customer_name=customer.name,
            username=admin.username,
            temp_password=temp_password,
        )
        return customer, admin, temp_password, notification
