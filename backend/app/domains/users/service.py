"""
Users Service - account management within a caller's scope.

Customer admins manage the provider group admins and basic users of their
customer, provider group admins manage users of their own group, and system
admins manage any customer's users. Every write re-checks scope, uniqueness
and cross-customer references before touching the database.
"""
import logging
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.core.exceptions import (
    AuthorizationDenied,
    InvariantViolation,
    ResourceNotFound,
    ValidationFailed,
)
from app.core.scope import ScopedService
from app.core.security import generate_temporary_password, hash_password, verify_password
from app.domains.customers.models import Customer
from app.domains.notifications.service import NotificationResult, send_user_registration_email
from app.domains.provider_groups.models import ProviderGroup
from app.domains.providers.models import Provider
from app.domains.submissions.models import Submission
from app.domains.users.models import RoleRecord, User, UserNpi
from app.domains.users.roles import Role, can_manage_user
from app.domains.users.schemas import (
    AssignNpisAction,
    CreateUserAction,
    DeleteUserAction,
    UpdateUserAction,
    normalize_identity,
)

logger = logging.getLogger(__name__)

EMAIL_TAKEN = "Email already exists"
USERNAME_TAKEN = "Username already exists"
INVALID_PROVIDER_GROUP = "Invalid provider group selected"

ROLE_PLURALS = {
    Role.SYSTEM_ADMIN: "system administrators",
    Role.CUSTOMER_ADMIN: "customer administrators",
    Role.PROVIDER_GROUP_ADMIN: "provider group administrators",
    Role.BASIC_USER: "basic users",
}


def authenticate_user(db: Session, login: str, password: str) -> User | None:
    """Look a user up by username or email and check the password."""
    login = normalize_identity(login)
    user = db.query(User).filter(or_(User.username == login, User.email == login)).first()
    if not user or not user.active:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


def get_user_by_id(db: Session, user_id: UUID) -> User | None:
    return db.query(User).filter(User.id == user_id).first()


class UsersService(ScopedService):

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_users(
        self,
        customer_id: UUID | None = None,
        search: str | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> tuple[list[User], int]:
        """
        List users visible to the caller.

        Outside the system scope only users holding a role the caller may
        assign are listed, so customer admins do not see each other.
        Search is a substring match over name, email and username.
        """
        query = self.scoped_query(User)

        if customer_id is not None or not self.caller.is_system_admin:
            target_customer_id = self.resolve_customer_id(customer_id)
            query = query.filter(User.customer_id == target_customer_id)

        if not self.caller.is_system_admin:
            manageable = [role.value for role in self.caller.capability.assignable_roles]
            query = query.filter(User.roles.any(RoleRecord.name.in_(manageable)))

        if search:
            query = query.filter(
                User.name.contains(search)
                | User.email.contains(search)
                | User.username.contains(search)
            )

        total = query.count()
        users = query.order_by(User.name).offset(skip).limit(limit).all()
        return users, total

    def get_user(self, user_id: UUID) -> User | None:
        return self.scoped_query(User).filter(User.id == user_id).first()

    # ------------------------------------------------------------------
    # Shared validation helpers
    # ------------------------------------------------------------------

    def identity_conflicts(
        self,
        email: str,
        username: str,
        exclude_user_id: UUID | None = None,
        email_field: str = "email",
        username_field: str = "username",
    ) -> dict[str, list[str]]:
        """Field errors for an email or username already held by another user."""
        errors: dict[str, list[str]] = {}

        email_query = self.db.query(User.id).filter(func.lower(User.email) == normalize_identity(email))
        username_query = self.db.query(User.id).filter(func.lower(User.username) == normalize_identity(username))
        if exclude_user_id is not None:
            email_query = email_query.filter(User.id != exclude_user_id)
            username_query = username_query.filter(User.id != exclude_user_id)

        if email_query.first():
            errors.setdefault(email_field, []).append(EMAIL_TAKEN)
        if username_query.first():
            errors.setdefault(username_field, []).append(USERNAME_TAKEN)
        return errors

    def get_role_record(self, role: Role) -> RoleRecord:
        """Fetch the row for `role`, creating it on first use."""
        record = self.db.query(RoleRecord).filter(RoleRecord.name == role.value).first()
        if record is None:
            record = RoleRecord(name=role.value)
            self.db.add(record)
            self.db.flush()
        return record

    def new_account(
        self,
        name: str,
        email: str,
        username: str,
        role: Role,
        customer_id: UUID,
        provider_group_id: UUID | None = None,
        active: bool = True,
    ) -> tuple[User, str]:
        """Add a user with a fresh temporary password. Flushes but does not commit."""
        temp_password = generate_temporary_password()
        user = User(
            name=name,
            email=normalize_identity(email),
            username=normalize_identity(username),
            password_hash=hash_password(temp_password),
            active=active,
            customer_id=customer_id,
            provider_group_id=provider_group_id,
        )
        user.roles = [self.get_role_record(role)]
        self.db.add(user)
        self.db.flush()
        return user, temp_password

    def _provider_group_in_customer(self, customer_id: UUID, provider_group_id: UUID) -> ProviderGroup | None:
        return (
            self.db.query(ProviderGroup)
            .filter(ProviderGroup.id == provider_group_id, ProviderGroup.customer_id == customer_id)
            .first()
        )

    def _validate_assignment(
        self,
        action: CreateUserAction | UpdateUserAction,
        customer_id: UUID,
        errors: dict[str, list[str]],
        group_mismatch_message: str,
    ) -> UUID | None:
        """Check role and provider group of a create/update; returns the group to store."""
        capability = self.caller.capability
        if action.role not in capability.assignable_roles:
            errors.setdefault("role", []).append("You cannot assign this role")

        provider_group_id = action.provider_group_id
        if self.caller.is_provider_group_admin:
            own_group_id = self.caller.require_provider_group_id()
            if provider_group_id is None:
                provider_group_id = own_group_id
            elif provider_group_id != own_group_id:
                errors.setdefault("provider_group_id", []).append(group_mismatch_message)
                return provider_group_id

        if provider_group_id is not None:
            if not self._provider_group_in_customer(customer_id, provider_group_id):
                errors.setdefault("provider_group_id", []).append(INVALID_PROVIDER_GROUP)
        elif action.role is Role.PROVIDER_GROUP_ADMIN:
            errors.setdefault("provider_group_id", []).append(
                "Provider group is required for provider group admins"
            )
        return provider_group_id

    def _load_target(self, user_id: UUID, customer_id: UUID, not_found_message: str) -> User:
        """Find a user of `customer_id`; anything else is reported as not found."""
        user = (
            self.db.query(User)
            .filter(User.id == user_id, User.customer_id == customer_id)
            .first()
        )
        if not user:
            raise ResourceNotFound(not_found_message)
        return user

    def _check_manageable(self, target: User, verb: str) -> None:
        """Reject targets outside the caller's role reach or provider group."""
        target_role = target.primary_role
        if target_role is not None and not can_manage_user(self.caller.roles, target.role_names):
            raise AuthorizationDenied(f"Cannot {verb} {ROLE_PLURALS[target_role]}")

        if self.caller.is_provider_group_admin:
            if target.provider_group_id != self.caller.require_provider_group_id():
                logger.warning(
                    f"Provider group admin {self.user_id} tried to {verb} user {target.id} outside their group"
                )
                raise AuthorizationDenied(f"You can only {verb} users in your assigned provider group")

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(
        self,
        action: CreateUserAction,
        customer_id: UUID | None = None,
    ) -> tuple[User, str, NotificationResult]:
        """
        Create a user with a temporary password and email them their credentials.

        Returns:
            Tuple of (user, temporary password, notification result)
        """
        target_customer_id = self.resolve_customer_id(customer_id)

        errors = self.identity_conflicts(action.email, action.username)
        provider_group_id = self._validate_assignment(
            action,
            target_customer_id,
            errors,
            "You can only create users in your assigned provider group",
        )
        if errors:
            raise ValidationFailed(field_errors=errors)

        try:
            user, temp_password = self.new_account(
                name=action.name,
                email=action.email,
                username=action.username,
                role=action.role,
                customer_id=target_customer_id,
                provider_group_id=provider_group_id,
                active=action.active,
            )
            self.commit("A user with this email or username already exists")
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(user)
        logger.info(f"User {user.id} ({action.role.value}) created in customer {target_customer_id} by {self.user_id}")

        customer = self.db.get(Customer, target_customer_id)
        group = self.db.get(ProviderGroup, provider_group_id) if provider_group_id else None
        notification = send_user_registration_email(
            to=user.email,
            user_name=user.name or user.username,
            user_role=action.role,
            customer_name=customer.name if customer else "",
            username=user.username,
            temp_password=temp_password,
            provider_group_name=group.name if group else None,
        )
        return user, temp_password, notification

    def update_user(self, action: UpdateUserAction, customer_id: UUID | None = None) -> User:
        target_customer_id = self.resolve_customer_id(customer_id)
        user = self._load_target(
            action.user_id,
            target_customer_id,
            "User not found or not authorized to edit this user",
        )
        self._check_manageable(user, "edit")

        errors = self.identity_conflicts(action.email, action.username, exclude_user_id=user.id)
        provider_group_id = self._validate_assignment(
            action,
            target_customer_id,
            errors,
            "You can only assign users to your provider group",
        )
        if errors:
            raise ValidationFailed(field_errors=errors)

        user.name = action.name
        user.email = action.email
        user.username = action.username
        user.active = action.active
        user.provider_group_id = provider_group_id
        user.roles = [self.get_role_record(action.role)]

        self.commit("A user with this email or username already exists")
        self.db.refresh(user)
        logger.info(f"User {user.id} updated by {self.user_id}")
        return user

    def delete_user(self, action: DeleteUserAction, customer_id: UUID | None = None) -> str:
        """Delete a user and their NPI assignments in one transaction.

        Returns the deleted user's display name.
        """
        target_customer_id = self.resolve_customer_id(customer_id)
        user = self._load_target(
            action.user_id,
            target_customer_id,
            "User not found or not authorized to delete this user",
        )
        if user.id == self.user_id:
            raise AuthorizationDenied("You cannot delete your own account")
        self._check_manageable(user, "delete")

        submission_count = (
            self.db.query(func.count(Submission.id)).filter(Submission.creator_id == user.id).scalar()
        )
        if submission_count:
            raise InvariantViolation(
                f"Cannot delete user with {submission_count} submissions. "
                "Deactivate the user instead.",
                title="Cannot delete user",
            )

        user_id, display_name = user.id, user.name or user.username
        try:
            self.db.query(UserNpi).filter(UserNpi.user_id == user_id).delete(synchronize_session=False)
            self.db.delete(user)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"User {user_id} deleted by {self.user_id}")
        return display_name

    def assign_npis(self, action: AssignNpisAction, customer_id: UUID | None = None) -> tuple[User, int]:
        """
        Replace a basic user's NPI assignments with exactly `action.provider_ids`.

        Every provider must be active, belong to the customer and, when a
        provider group applies, to that group. One invalid id rejects the
        whole request.
        """
        target_customer_id = self.resolve_customer_id(customer_id)
        user = (
            self.db.query(User)
            .filter(User.id == action.user_id, User.customer_id == target_customer_id)
            .first()
        )
        if not user or user.primary_role is not Role.BASIC_USER:
            raise ResourceNotFound("User not found or not authorized to assign NPIs to this user")

        if self.caller.is_provider_group_admin:
            if user.provider_group_id != self.caller.require_provider_group_id():
                raise AuthorizationDenied("You can only assign NPIs to users in your assigned provider group")

        provider_ids = list(dict.fromkeys(action.provider_ids))
        if provider_ids:
            group_id = user.provider_group_id
            if group_id is None and self.caller.is_provider_group_admin:
                group_id = self.caller.provider_group_id

            valid_query = self.db.query(Provider.id).filter(
                Provider.id.in_(provider_ids),
                Provider.customer_id == target_customer_id,
                Provider.active.is_(True),
            )
            if group_id is not None:
                valid_query = valid_query.filter(Provider.provider_group_id == group_id)

            valid_ids = {row.id for row in valid_query.all()}
            if len(valid_ids) != len(provider_ids):
                raise ValidationFailed.for_form("Some selected NPIs are not valid for this user")

        try:
            self.db.query(UserNpi).filter(UserNpi.user_id == user.id).delete(synchronize_session=False)
            for provider_id in provider_ids:
                self.db.add(UserNpi(user_id=user.id, provider_id=provider_id))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(user)
        logger.info(f"Assigned {len(provider_ids)} NPIs to user {user.id} by {self.user_id}")
        return user, len(provider_ids)
