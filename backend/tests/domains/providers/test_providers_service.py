"""Tests for the provider (NPI) service."""
import pytest
from uuid import uuid4
from pydantic import ValidationError

from app.core.exceptions import AuthorizationDenied, InvariantViolation, ResourceNotFound, ValidationFailed
from app.domains.providers.models import Provider
from app.domains.providers.schemas import (
    AssignNpiAction,
    CreateProviderAction,
    DeleteProviderAction,
    UnassignNpiAction,
    UpdateProviderAction,
)
from app.domains.providers.service import ProviderService
from app.domains.submissions.models import SubmissionStatus
from app.domains.users.models import UserNpi
from app.domains.users.roles import Role


class TestProviderSchemas:
    """Tests for provider request validation."""

    def test_npi_must_be_ten_digits(self):
        """Test that malformed NPIs are rejected."""
        with pytest.raises(ValidationError, match="NPI must be exactly 10 digits"):
            CreateProviderAction(intent="create", npi="12345")
        with pytest.raises(ValidationError):
            CreateProviderAction(intent="create", npi="12345abcde")

    def test_npi_must_be_ascii_digits(self):
        """Test that non-ASCII digits are not accepted as an NPI."""
        with pytest.raises(ValidationError, match="NPI must be exactly 10 digits"):
            CreateProviderAction(intent="create", npi="١" * 10)

    def test_npi_is_trimmed(self):
        """Test that surrounding whitespace is ignored."""
        assert CreateProviderAction(intent="create", npi=" 1234567890 ").npi == "1234567890"


class TestProviderService:
    """Tests for ProviderService."""

    @pytest.fixture
    def service(self, db, factory, tenant):
        """Service acting as the customer admin."""
        return ProviderService(db, factory.caller(tenant.customer_admin))

    def test_list_with_assignment_counts(self, service, tenant):
        """Test that providers come back with assignment counts."""
        rows, total = service.list_providers()

        assert total == 3
        counts = {provider.id: count for provider, count in rows}
        assert counts[tenant.p1.id] == 1
        assert counts[tenant.p2.id] == 0

    def test_search_by_npi(self, service, tenant):
        """Test NPI substring search."""
        rows, total = service.list_providers(search=tenant.p2.npi)
        assert [provider.id for provider, _ in rows] == [tenant.p2.id]

    def test_create(self, service, tenant):
        """Test registering an NPI in a group."""
        provider = service.create_provider(
            CreateProviderAction(intent="create", npi="9876543210", name="Dr. New", provider_group_id=tenant.g2.id)
        )
        assert provider.customer_id == tenant.customer.id
        assert provider.provider_group_id == tenant.g2.id
        assert provider.active

    def test_npi_unique_across_customers(self, db, factory, service):
        """Test that an NPI registered by any customer is taken."""
        factory.provider(factory.customer("Other"), npi="5555555555")
        with pytest.raises(ValidationFailed) as exc_info:
            service.create_provider(CreateProviderAction(intent="create", npi="5555555555"))
        assert exc_info.value.field_errors["npi"] == ["This NPI is already registered in the system"]

    def test_group_required_on_customer_side(self, service):
        """Test that the customer-side form requires a provider group."""
        with pytest.raises(ValidationFailed) as exc_info:
            service.create_provider(CreateProviderAction(intent="create", npi="9876543210"), require_group=True)
        assert exc_info.value.field_errors == {"provider_group_id": ["Provider group is required"]}

    def test_provider_group_admin_defaults_to_own_group(self, db, factory, tenant):
        """Test that a group admin's provider lands in their group."""
        service = ProviderService(db, factory.caller(tenant.pga_g1))
        provider = service.create_provider(
            CreateProviderAction(intent="create", npi="9876543210"),
            require_group=True,
        )
        assert provider.provider_group_id == tenant.g1.id

    def test_provider_group_admin_cannot_edit_other_group(self, db, factory, tenant):
        """Test that another group's provider looks missing to a group admin."""
        service = ProviderService(db, factory.caller(tenant.pga_g1))
        with pytest.raises(ResourceNotFound) as exc_info:
            service.update_provider(
                UpdateProviderAction(intent="update", provider_id=tenant.p2.id, provider_group_id=tenant.g1.id)
            )
        assert exc_info.value.message == "Provider not found or not authorized to edit this provider"
        db.refresh(tenant.p2)
        assert tenant.p2.provider_group_id == tenant.g2.id

    def test_provider_group_admin_cannot_delete_other_group(self, db, factory, tenant):
        """Test that deleting another group's provider is reported as not found."""
        service = ProviderService(db, factory.caller(tenant.pga_g1))
        with pytest.raises(ResourceNotFound):
            service.delete_provider(DeleteProviderAction(intent="delete", provider_id=tenant.p2.id))
        assert db.get(Provider, tenant.p2.id) is not None

    def test_update(self, service, tenant):
        """Test moving and deactivating a provider."""
        provider = service.update_provider(
            UpdateProviderAction(
                intent="update",
                provider_id=tenant.p3.id,
                name="Dr. Moved",
                provider_group_id=tenant.g1.id,
                active=False,
            )
        )
        assert provider.provider_group_id == tenant.g1.id
        assert provider.active is False

    def test_delete_blocked_by_assignments(self, db, service, tenant):
        """Test that an assigned provider cannot be deleted."""
        with pytest.raises(InvariantViolation) as exc_info:
            service.delete_provider(DeleteProviderAction(intent="delete", provider_id=tenant.p1.id))
        assert "1 assigned users" in exc_info.value.description
        assert db.get(Provider, tenant.p1.id) is not None

    def test_delete_blocked_by_submissions(self, factory, service, tenant):
        """Test that a provider with submissions cannot be deleted."""
        factory.submission(tenant.p2, tenant.customer_admin, status=SubmissionStatus.SUBMITTED)
        with pytest.raises(InvariantViolation):
            service.delete_provider(DeleteProviderAction(intent="delete", provider_id=tenant.p2.id))

    def test_delete(self, db, service, tenant):
        """Test deleting an unused provider."""
        npi, name = service.delete_provider(DeleteProviderAction(intent="delete", provider_id=tenant.p3.id))
        assert name.startswith("Dr. Provider")
        assert db.query(Provider).filter(Provider.npi == npi).count() == 0

    def test_basic_user_cannot_manage(self, db, factory, tenant):
        """Test that basic users cannot create providers."""
        service = ProviderService(db, factory.caller(tenant.basic_g1))
        with pytest.raises(AuthorizationDenied):
            service.create_provider(CreateProviderAction(intent="create", npi="9876543210"))


class TestNpiAssignments:
    """Tests for single NPI assignments."""

    @pytest.fixture
    def service(self, db, factory, tenant):
        """Service acting as the system admin."""
        return ProviderService(db, factory.caller(tenant.system_admin))

    def test_assign(self, service, tenant):
        """Test adding one assignment."""
        assignment = service.assign_npi(AssignNpiAction(intent="assign", user_id=tenant.basic_g2.id, provider_id=tenant.p2.id))
        assert assignment.provider_id == tenant.p2.id

    def test_missing_ids(self, service):
        """Test that both ids are required."""
        with pytest.raises(ValidationFailed) as exc_info:
            service.assign_npi(AssignNpiAction(intent="assign"))
        assert exc_info.value.form_errors == ["User and Provider are required"]

    def test_duplicate(self, service, tenant):
        """Test that an existing assignment is rejected."""
        with pytest.raises(ValidationFailed) as exc_info:
            service.assign_npi(AssignNpiAction(intent="assign", user_id=tenant.basic_g1.id, provider_id=tenant.p1.id))
        assert exc_info.value.form_errors == ["This user is already assigned to this NPI"]

    def test_cross_customer(self, factory, service, tenant):
        """Test that users cannot be assigned another customer's NPI."""
        foreign = factory.provider(factory.customer("Other"))
        with pytest.raises(ValidationFailed) as exc_info:
            service.assign_npi(AssignNpiAction(intent="assign", user_id=tenant.basic_g1.id, provider_id=foreign.id))
        assert exc_info.value.field_errors == {"provider_id": ["NPI belongs to a different customer"]}

    def test_other_group_provider_rejected(self, db, service, tenant):
        """Test that a grouped user only gets NPIs from their own group."""
        with pytest.raises(ValidationFailed) as exc_info:
            service.assign_npi(AssignNpiAction(intent="assign", user_id=tenant.basic_g1.id, provider_id=tenant.p2.id))
        assert exc_info.value.field_errors == {"provider_id": ["NPI is not in the user's provider group"]}
        assert db.query(UserNpi).filter(UserNpi.user_id == tenant.basic_g1.id).count() == 1

    def test_inactive_provider_rejected(self, factory, service, tenant):
        """Test that inactive NPIs cannot be assigned."""
        inactive = factory.provider(tenant.customer, tenant.g2, active=False)
        with pytest.raises(ValidationFailed) as exc_info:
            service.assign_npi(AssignNpiAction(intent="assign", user_id=tenant.basic_g2.id, provider_id=inactive.id))
        assert exc_info.value.field_errors == {"provider_id": ["Inactive NPIs cannot be assigned"]}

    def test_only_basic_users(self, db, service, tenant):
        """Test that admins cannot receive NPI assignments."""
        with pytest.raises(ValidationFailed) as exc_info:
            service.assign_npi(
                AssignNpiAction(intent="assign", user_id=tenant.customer_admin.id, provider_id=tenant.p3.id)
            )
        assert exc_info.value.field_errors == {"user_id": ["NPIs can only be assigned to basic users"]}
        assert db.query(UserNpi).filter(UserNpi.user_id == tenant.customer_admin.id).count() == 0

    def test_ungrouped_user_any_group(self, factory, service, tenant):
        """Test that a user without a group may get any active NPI of the customer."""
        loose = factory.user(Role.BASIC_USER, tenant.customer)
        assignment = service.assign_npi(AssignNpiAction(intent="assign", user_id=loose.id, provider_id=tenant.p2.id))
        assert assignment.user_id == loose.id

    def test_list_and_unassign(self, db, service, tenant):
        """Test listing then removing an assignment."""
        assignments = service.list_assignments()
        assert len(assignments) == 1

        service.unassign_npi(UnassignNpiAction(intent="unassign", assignment_id=assignments[0].id))
        assert db.query(UserNpi).count() == 0

    def test_unassign_unknown(self, service):
        """Test that removing a missing assignment is not found."""
        with pytest.raises(ResourceNotFound):
            service.unassign_npi(UnassignNpiAction(intent="unassign", assignment_id=uuid4()))
