"""Tests for the users service."""
import pytest
from unittest.mock import MagicMock, patch
from uuid import uuid4

from app.core.exceptions import (
    AuthorizationDenied,
    InvariantViolation,
    NotificationFailure,
    ResourceNotFound,
    ValidationFailed,
)
from app.core.security import verify_password
from app.domains.users.models import User, UserNpi
from app.domains.users.roles import Role
from app.domains.users.schemas import (
    AssignNpisAction,
    CreateUserAction,
    DeleteUserAction,
    UpdateUserAction,
)
from app.domains.users.service import UsersService, authenticate_user

TEST_PASSWORD = "password123"


def create_action(**overrides) -> CreateUserAction:
    data = {
        "intent": "create",
        "name": "New Person",
        "email": "new.person@example.com",
        "username": "new.person",
        "role": "basic-user",
    }
    data.update(overrides)
    return CreateUserAction(**data)


def update_action(user: User, **overrides) -> UpdateUserAction:
    data = {
        "intent": "update",
        "user_id": user.id,
        "name": user.name,
        "email": user.email,
        "username": user.username,
        "role": user.primary_role.value,
        "provider_group_id": user.provider_group_id,
    }
    data.update(overrides)
    return UpdateUserAction(**data)


class TestAuthenticate:
    """Tests for password login."""

    def test_login_by_username_or_email(self, db, tenant):
        """Test that either identifier works, case-insensitively."""
        assert authenticate_user(db, "Basic1", TEST_PASSWORD).id == tenant.basic_g1.id
        assert authenticate_user(db, "basic1@example.com", TEST_PASSWORD).id == tenant.basic_g1.id

    def test_wrong_password(self, db, tenant):
        """Test that a bad password fails."""
        assert authenticate_user(db, "basic1", "nope") is None

    def test_inactive_user(self, db, factory):
        """Test that inactive accounts cannot log in."""
        factory.user(Role.SYSTEM_ADMIN, username="dormant", password=TEST_PASSWORD, active=False)
        assert authenticate_user(db, "dormant", TEST_PASSWORD) is None


class TestListUsers:
    """Tests for listing users."""

    def test_customer_admin_sees_manageable_users(self, db, factory, tenant):
        """Test that customer admins list group admins and basic users, not other admins."""
        service = UsersService(db, factory.caller(tenant.customer_admin))
        users, total = service.list_users()

        ids = {u.id for u in users}
        assert total == 4
        assert tenant.customer_admin.id not in ids
        assert {tenant.pga_g1.id, tenant.basic_g2.id} <= ids

    def test_provider_group_admin_sees_group_only(self, db, factory, tenant):
        """Test that provider group admins list users in their group."""
        service = UsersService(db, factory.caller(tenant.pga_g1))
        users, total = service.list_users()
        assert {u.id for u in users} == {tenant.pga_g1.id, tenant.basic_g1.id}

    def test_search(self, db, factory, tenant):
        """Test substring search on username."""
        service = UsersService(db, factory.caller(tenant.customer_admin))
        users, total = service.list_users(search="basic2")
        assert [u.id for u in users] == [tenant.basic_g2.id]

    def test_system_admin_filters_by_customer(self, db, factory, tenant):
        """Test that a system admin can list one customer's users."""
        other = factory.customer("Other")
        stranger = factory.user(Role.BASIC_USER, other)
        service = UsersService(db, factory.caller(tenant.system_admin))

        users, total = service.list_users(customer_id=other.id)
        assert [u.id for u in users] == [stranger.id]


class TestCreateUser:
    """Tests for creating users."""

    def test_creates_user_with_temporary_password(self, db, factory, tenant):
        """Test that a new user gets a hashed temporary password and the role."""
        service = UsersService(db, factory.caller(tenant.customer_admin))
        user, temp_password, notification = service.create_user(create_action(provider_group_id=tenant.g1.id))

        assert user.customer_id == tenant.customer.id
        assert user.role_names == ["basic-user"]
        assert verify_password(temp_password, user.password_hash)
        assert notification.success

    def test_duplicate_email_is_case_insensitive(self, db, factory, tenant):
        """Test that an email differing only in case conflicts."""
        service = UsersService(db, factory.caller(tenant.customer_admin))
        with pytest.raises(ValidationFailed) as exc_info:
            service.create_user(create_action(email="BASIC1@Example.com"))

        assert exc_info.value.field_errors["email"] == ["Email already exists"]
        assert db.query(User).filter(User.username == "new.person").count() == 0

    def test_duplicate_username(self, db, factory, tenant):
        """Test that a taken username is a field error."""
        service = UsersService(db, factory.caller(tenant.customer_admin))
        with pytest.raises(ValidationFailed) as exc_info:
            service.create_user(create_action(username="PGA1"))
        assert exc_info.value.field_errors == {"username": ["Username already exists"]}

    def test_customer_admin_cannot_create_customer_admin(self, db, factory, tenant):
        """Test that role assignment is limited by the capability table."""
        service = UsersService(db, factory.caller(tenant.customer_admin))
        with pytest.raises(ValidationFailed) as exc_info:
            service.create_user(create_action(role="customer-admin"))
        assert exc_info.value.field_errors["role"] == ["You cannot assign this role"]

    def test_group_from_other_customer_rejected(self, db, factory, tenant):
        """Test that a provider group must belong to the target customer."""
        foreign_group = factory.provider_group(factory.customer("Other"))
        service = UsersService(db, factory.caller(tenant.customer_admin))
        with pytest.raises(ValidationFailed) as exc_info:
            service.create_user(create_action(provider_group_id=foreign_group.id))
        assert exc_info.value.field_errors["provider_group_id"] == ["Invalid provider group selected"]

    def test_group_admin_requires_group(self, db, factory, tenant):
        """Test that provider group admins must be placed in a group."""
        service = UsersService(db, factory.caller(tenant.customer_admin))
        with pytest.raises(ValidationFailed) as exc_info:
            service.create_user(create_action(role="provider-group-admin"))
        assert "provider_group_id" in exc_info.value.field_errors

    def test_provider_group_admin_defaults_to_own_group(self, db, factory, tenant):
        """Test that a group admin's new user lands in the admin's group."""
        service = UsersService(db, factory.caller(tenant.pga_g1))
        user, _, _ = service.create_user(create_action())
        assert user.provider_group_id == tenant.g1.id

    def test_provider_group_admin_cannot_target_other_group(self, db, factory, tenant):
        """Test that a group admin cannot create users in another group."""
        service = UsersService(db, factory.caller(tenant.pga_g1))
        with pytest.raises(ValidationFailed) as exc_info:
            service.create_user(create_action(provider_group_id=tenant.g2.id))
        assert exc_info.value.field_errors["provider_group_id"] == [
            "You can only create users in your assigned provider group"
        ]

    def test_email_failure_still_creates_user(self, db, factory, tenant):
        """Test that a failed welcome email does not undo the create."""
        failing_client = MagicMock()
        failing_client.send.side_effect = NotificationFailure("Email API returned status 500")

        service = UsersService(db, factory.caller(tenant.customer_admin))
        with patch("app.domains.notifications.service.get_email_client", return_value=failing_client):
            user, temp_password, notification = service.create_user(create_action())

        assert notification.success is False
        assert "500" in notification.error
        assert db.get(User, user.id) is not None


class TestUpdateUser:
    """Tests for editing users."""

    def test_update_fields(self, db, factory, tenant):
        """Test that a customer admin can rename and move a user."""
        service = UsersService(db, factory.caller(tenant.customer_admin))
        user = service.update_user(update_action(tenant.basic_g2, name="Renamed", provider_group_id=tenant.g1.id))
        assert user.name == "Renamed"
        assert user.provider_group_id == tenant.g1.id

    def test_provider_group_admin_cannot_edit_other_group(self, db, factory, tenant):
        """Test that editing a user in another group is forbidden."""
        service = UsersService(db, factory.caller(tenant.pga_g1))
        with pytest.raises(AuthorizationDenied) as exc_info:
            service.update_user(update_action(tenant.basic_g2, name="Hijacked"))

        assert exc_info.value.status_code == 403
        assert exc_info.value.message == "You can only edit users in your assigned provider group"
        db.refresh(tenant.basic_g2)
        assert tenant.basic_g2.name != "Hijacked"

    def test_customer_admin_cannot_edit_peer_admin(self, db, factory, tenant):
        """Test that admins cannot edit users at their own level."""
        peer = factory.user(Role.CUSTOMER_ADMIN, tenant.customer)
        service = UsersService(db, factory.caller(tenant.customer_admin))
        with pytest.raises(AuthorizationDenied):
            service.update_user(update_action(peer, role="basic-user"))

    def test_provider_group_admin_cannot_edit_peer_admin(self, db, factory, tenant):
        """Test that group admins cannot edit other group admins in their own group."""
        peer = factory.user(Role.PROVIDER_GROUP_ADMIN, tenant.customer, tenant.g1)
        service = UsersService(db, factory.caller(tenant.pga_g1))
        with pytest.raises(AuthorizationDenied) as exc_info:
            service.update_user(update_action(peer, role="basic-user", provider_group_id=tenant.g1.id))

        assert exc_info.value.message == "Cannot edit provider group administrators"
        db.refresh(peer)
        assert peer.primary_role is Role.PROVIDER_GROUP_ADMIN

    def test_user_in_other_customer_not_found(self, db, factory, tenant):
        """Test that users of another customer are invisible."""
        stranger = factory.user(Role.BASIC_USER, factory.customer("Other"))
        service = UsersService(db, factory.caller(tenant.customer_admin))
        with pytest.raises(ResourceNotFound):
            service.update_user(update_action(stranger))

    def test_email_conflict_excludes_self(self, db, factory, tenant):
        """Test that keeping one's own email is not a conflict."""
        service = UsersService(db, factory.caller(tenant.customer_admin))
        user = service.update_user(update_action(tenant.basic_g1, email="BASIC1@example.com"))
        assert user.email == "basic1@example.com"


class TestDeleteUser:
    """Tests for deleting users."""

    def test_delete_removes_assignments(self, db, factory, tenant):
        """Test that a delete also drops the user's NPI assignments."""
        user_id, expected_name = tenant.basic_g1.id, tenant.basic_g1.name
        service = UsersService(db, factory.caller(tenant.customer_admin))
        name = service.delete_user(DeleteUserAction(intent="delete", user_id=user_id))

        assert name == expected_name
        assert db.get(User, user_id) is None
        assert db.query(UserNpi).filter(UserNpi.user_id == user_id).count() == 0

    def test_cannot_delete_self(self, db, factory, tenant):
        """Test that a user cannot delete their own account."""
        service = UsersService(db, factory.caller(tenant.pga_g1))
        with pytest.raises(AuthorizationDenied):
            service.delete_user(DeleteUserAction(intent="delete", user_id=tenant.pga_g1.id))

    def test_user_with_submissions_is_kept(self, db, factory, tenant):
        """Test that users who created submissions cannot be deleted."""
        factory.submission(tenant.p1, tenant.basic_g1)
        service = UsersService(db, factory.caller(tenant.customer_admin))
        with pytest.raises(InvariantViolation):
            service.delete_user(DeleteUserAction(intent="delete", user_id=tenant.basic_g1.id))
        assert db.get(User, tenant.basic_g1.id) is not None

    def test_provider_group_admin_cannot_delete_other_group(self, db, factory, tenant):
        """Test that cross-group deletes are forbidden."""
        service = UsersService(db, factory.caller(tenant.pga_g1))
        with pytest.raises(AuthorizationDenied):
            service.delete_user(DeleteUserAction(intent="delete", user_id=tenant.basic_g2.id))


class TestAssignNpis:
    """Tests for replacing a user's NPI assignments."""

    def test_replaces_assignments(self, db, factory, tenant):
        """Test that assignment is a full replace, not an append."""
        extra = factory.provider(tenant.customer, tenant.g1)
        service = UsersService(db, factory.caller(tenant.customer_admin))

        user, count = service.assign_npis(
            AssignNpisAction(intent="assign-npis", user_id=tenant.basic_g1.id, provider_ids=[extra.id])
        )

        assert count == 1
        assert set(user.assigned_provider_ids) == {extra.id}

    def test_empty_list_clears(self, db, factory, tenant):
        """Test that an empty list removes every assignment."""
        service = UsersService(db, factory.caller(tenant.customer_admin))
        user, count = service.assign_npis(
            AssignNpisAction(intent="assign-npis", user_id=tenant.basic_g1.id, provider_ids=[])
        )
        assert count == 0
        assert user.assigned_provider_ids == []

    def test_provider_outside_group_rejects_all(self, db, factory, tenant):
        """Test that one invalid NPI leaves existing assignments untouched."""
        service = UsersService(db, factory.caller(tenant.customer_admin))
        with pytest.raises(ValidationFailed):
            service.assign_npis(
                AssignNpisAction(intent="assign-npis", user_id=tenant.basic_g1.id, provider_ids=[tenant.p2.id])
            )
        assert factory.caller(tenant.basic_g1).assigned_provider_ids == {tenant.p1.id}

    def test_only_basic_users(self, db, factory, tenant):
        """Test that NPIs are only assigned to basic users."""
        service = UsersService(db, factory.caller(tenant.customer_admin))
        with pytest.raises(ResourceNotFound):
            service.assign_npis(
                AssignNpisAction(intent="assign-npis", user_id=tenant.pga_g1.id, provider_ids=[tenant.p1.id])
            )

    def test_unknown_user(self, db, factory, tenant):
        """Test that an unknown user id is not found."""
        service = UsersService(db, factory.caller(tenant.customer_admin))
        with pytest.raises(ResourceNotFound):
            service.assign_npis(AssignNpisAction(intent="assign-npis", user_id=uuid4(), provider_ids=[]))
