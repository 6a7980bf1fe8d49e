import os

os.environ.setdefault("CRM_BILLING_DATABASE_DSN", "sqlite://")
os.environ.setdefault("CRM_BILLING_ENABLE_EXPIRY_SCHEDULER", "false")
os.environ.setdefault("CRM_BILLING_SESSION_SECRET", "test-secret")

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from crm_billing.core.auth import create_session
from crm_billing.core.config import SESSION_COOKIE_NAME
from crm_billing.core.database import Base, get_db
from crm_billing.main import app
from crm_billing.models import User, Client, Plan
from crm_billing.models.client import ClientStatus
from crm_billing.services.access import CallerContext, Role


@pytest.fixture
def engine():
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
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_user(db):
    def _make(role=Role.ADMIN, email=None):
        user = User(email=email or f"{role}-{db.query(User).count() + 1}@example.com", role=role, is_active=True)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


@pytest.fixture
def admin(make_user):
    return make_user(Role.ADMIN)


@pytest.fixture
def admin_caller(admin):
    return CallerContext.from_user(admin)


@pytest.fixture
def make_client(db, admin):
    def _make(owner=None, status=ClientStatus.ACTIVE, company_name=None):
        client = Client(
            company_name=company_name or f"Company {db.query(Client).count() + 1}",
            status=status,
            created_by=(owner or admin).id,
        )
        db.add(client)
        db.commit()
        db.refresh(client)
        return client
    return _make


@pytest.fixture
def make_plan(db):
    def _make(
        name=None,
        price_per_user=Decimal("199.00"),
        billing_cycle="quarterly",
        billing_months=3,
        min_users=5,
        max_users=100,
        is_active=True,
        module_access=None,
    ):
        plan = Plan(
            name=name or f"Plan {db.query(Plan).count() + 1}",
            price_per_user=price_per_user,
            billing_cycle=billing_cycle,
            billing_months=billing_months,
            billing_type="prepaid",
            min_users=min_users,
            max_users=max_users,
            features=[],
            module_access=module_access or {"attendance": True, "payroll": False},
            is_active=is_active,
        )
        db.add(plan)
        db.commit()
        db.refresh(plan)
        return plan
    return _make


@pytest.fixture
def quarterly_plan(make_plan):
    return make_plan(name="Silver")


@pytest.fixture
def api(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def login(api):
    """Send subsequent requests with a session cookie for the given user."""
    def _login(user):
        api.cookies.set(SESSION_COOKIE_NAME, create_session(user.id, user.role, email=user.email))
        return api
    return _login

