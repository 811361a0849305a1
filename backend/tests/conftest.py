"""Shared fixtures: an in-memory database and factories for portal records."""
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import settings
from app.core.database import Base, get_db
from app.core.scope import CallerContext
from app.core.security import create_access_token, hash_password
from app.domains.customers.models import Customer
from app.domains.notifications.email_client import EmailClient
from app.domains.provider_groups.models import ProviderGroup
from app.domains.providers.models import Provider
from app.domains.submissions.models import Submission, SubmissionDocument, SubmissionStatus
from app.domains.users.models import RoleRecord, User, UserNpi
from app.domains.users.roles import Role
from app.main import app

# bcrypt's minimum cost keeps the suite fast
settings.PASSWORD_HASH_ROUNDS = 4

TEST_PASSWORD = "password123"


@pytest.fixture
def engine():
    """SQLite engine shared across threads so TestClient requests see the same data."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    """Database session bound to the in-memory engine."""
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def mocked_email(monkeypatch):
    """Route notifications through a client with no API key so nothing is sent."""
    monkeypatch.setattr(
        "app.domains.notifications.service.get_email_client",
        lambda: EmailClient(api_key=""),
    )


class Factory:
    """Creates committed portal records with sensible defaults."""

    def __init__(self, db):
        self.db = db
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def role(self, role: Role) -> RoleRecord:
        record = self.db.query(RoleRecord).filter(RoleRecord.name == role.value).first()
        if record is None:
            record = self._save(RoleRecord(name=role.value))
        return record

    def customer(self, name: str | None = None, **kwargs) -> Customer:
        n = self._next()
        return self._save(Customer(name=name or f"Customer {n}", active=True, **kwargs))

    def provider_group(self, customer: Customer, name: str | None = None) -> ProviderGroup:
        n = self._next()
        return self._save(ProviderGroup(customer_id=customer.id, name=name or f"Group {n}", active=True))

    def provider(
        self,
        customer: Customer,
        group: ProviderGroup | None = None,
        npi: str | None = None,
        active: bool = True,
    ) -> Provider:
        n = self._next()
        return self._save(
            Provider(
                npi=npi or f"{1000000000 + n}",
                name=f"Dr. Provider {n}",
                customer_id=customer.id,
                provider_group_id=group.id if group else None,
                active=active,
            )
        )

    def user(
        self,
        role: Role,
        customer: Customer | None = None,
        group: ProviderGroup | None = None,
        username: str | None = None,
        email: str | None = None,
        password: str | None = None,
        active: bool = True,
    ) -> User:
        n = self._next()
        username = username or f"user{n}"
        user = User(
            name=f"User {n}",
            email=email or f"{username}@example.com",
            username=username,
            password_hash=hash_password(password) if password else None,
            active=active,
            customer_id=customer.id if customer else None,
            provider_group_id=group.id if group else None,
        )
        user.roles = [self.role(role)]
        return self._save(user)

    def assign(self, user: User, *providers: Provider) -> None:
        for provider in providers:
            self.db.add(UserNpi(user_id=user.id, provider_id=provider.id))
        self.db.commit()
        self.db.refresh(user)

    def submission(
        self,
        provider: Provider,
        creator: User,
        status: SubmissionStatus = SubmissionStatus.DRAFT,
        documents: int = 0,
    ) -> Submission:
        n = self._next()
        submission = Submission(
            title=f"Submission {n}",
            purpose_of_submission="ADR",
            recipient="Medicare",
            status=status.value,
            creator_id=creator.id,
            provider_id=provider.id,
            customer_id=provider.customer_id,
            submitted_at=None if status is SubmissionStatus.DRAFT else datetime.now(timezone.utc),
        )
        for i in range(documents):
            submission.documents.append(
                SubmissionDocument(
                    file_name=f"doc{i}.pdf",
                    original_file_name=f"doc{i}.pdf",
                    file_size=1024,
                    mime_type="application/pdf",
                    object_key=f"/temp/doc{i}.pdf",
                    uploader_id=creator.id,
                )
            )
        return self._save(submission)

    def caller(self, user: User) -> CallerContext:
        self.db.refresh(user)
        return CallerContext.from_user(user)


@pytest.fixture
def factory(db):
    """Factory for seeding records."""
    return Factory(db)


@pytest.fixture
def tenant(factory):
    """
    One customer with two provider groups and a user of every role.

    Returns a namespace with customer, g1, g2, providers p1 (G1), p2 (G2),
    p3 (no group), and users system_admin, customer_admin, pga_g1, pga_g2,
    basic_g1 (assigned p1), basic_g2.
    """
    class Tenant:
        pass

    t = Tenant()
    t.customer = factory.customer("Acme")
    t.g1 = factory.provider_group(t.customer, "G1")
    t.g2 = factory.provider_group(t.customer, "G2")
    t.p1 = factory.provider(t.customer, t.g1)
    t.p2 = factory.provider(t.customer, t.g2)
    t.p3 = factory.provider(t.customer)
    t.system_admin = factory.user(Role.SYSTEM_ADMIN, username="root", password=TEST_PASSWORD)
    t.customer_admin = factory.user(Role.CUSTOMER_ADMIN, t.customer, username="acme-admin", password=TEST_PASSWORD)
    t.pga_g1 = factory.user(Role.PROVIDER_GROUP_ADMIN, t.customer, t.g1, username="pga1")
    t.pga_g2 = factory.user(Role.PROVIDER_GROUP_ADMIN, t.customer, t.g2, username="pga2")
    t.basic_g1 = factory.user(Role.BASIC_USER, t.customer, t.g1, username="basic1", password=TEST_PASSWORD)
    t.basic_g2 = factory.user(Role.BASIC_USER, t.customer, t.g2, username="basic2")
    factory.assign(t.basic_g1, t.p1)
    return t


@pytest.fixture
def client(db):
    """TestClient whose requests use the test session."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_headers(user: User) -> dict[str, str]:
    """Bearer header carrying a real access token for `user`."""
    token = create_access_token(subject=str(user.id), email=user.email)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def login_as():
    """Build auth headers for a seeded user."""
    return auth_headers
