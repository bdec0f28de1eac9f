import os
import tempfile
import uuid

# The app reads its configuration at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "0"
os.environ["CLEANUP_ENABLED"] = "0"
os.environ["EMAIL_ENABLED"] = "0"
os.environ["REDIS_URL"] = ""
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["PAYSTACK_SECRET_KEY"] = "sk_test_paystack"
os.environ["ORDER_TOTAL_VERIFICATION"] = "1"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="storefront-uploads-")
os.environ["GOOGLE_CLIENT_ID"] = "google-client"
os.environ["GOOGLE_CLIENT_SECRET"] = "google-secret"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from storefront.auth import service as auth_service
from storefront.core.cache import response_cache
from storefront.core.rate_limiter import limiter
from storefront.database import models  # noqa: F401  registers the entities
from storefront.database.core import Base, get_db
from storefront.orders.models import Order
from storefront.products.models import Product
from storefront.users.models import User, UserRole
from storefront.utils import password_utils

TEST_PASSWORD = "ValidPassword123!"


@pytest.fixture(scope="function")
def db_session():
    """
    Creates a new, isolated in-memory database session for each test.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(autouse=True)
def reset_shared_state():
    """The response cache and the limiter are process-wide."""
    response_cache.clear_all()
    limiter.reset()
    limiter.enabled = False
    yield
    response_cache.clear_all()
    limiter.reset()
    limiter.enabled = False


def make_user(db, email="test@example.com", role=UserRole.CUSTOMER.value, verified=True, active=True, **extra):
    user = User(
        first_name=extra.pop("first_name", "Test"),
        last_name=extra.pop("last_name", "User"),
        email=email,
        password=password_utils.get_password_hash(TEST_PASSWORD),
        role=role,
        is_active=active,
        is_email_verified=verified,
        verification_attempts=0,
        **extra,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_product(db, title="Classic Tee", price=20.0, **extra):
    product = Product(title=title, price=price, **extra)
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


def make_order(db, user, total=20.0, items=None, **extra):
    order = Order(
        user_id=user.id,
        order_number=extra.pop("order_number", f"ORD-TEST-{uuid.uuid4().hex[:10]}"),
        items=items or [{"productId": 1, "title": "Classic Tee", "price": total, "quantity": 1}],
        total_amount=total,
        **extra,
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    return order


def bearer(user):
    return {"Authorization": f"Bearer {auth_service.create_token(user.id)}"}


@pytest.fixture(scope="function")
def test_user(db_session):
    """
    Creates a pre-defined, verified, password-based customer.
    """
    return make_user(db_session)


@pytest.fixture(scope="function")
def admin_user(db_session):
    return make_user(db_session, email="admin@example.com", role=UserRole.ADMIN.value, first_name="Ada")


@pytest.fixture(scope="function")
def client(db_session, mocker):
    """
    Creates a TestClient for the app, overriding the database and mocking external services.
    """
    mocker.patch("storefront.services.denylist_service.is_token_denylisted", return_value=False)
    mocker.patch("storefront.services.denylist_service.add_token_to_denylist", return_value=None)

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def auth_headers(test_user):
    return bearer(test_user)


@pytest.fixture(scope="function")
def admin_headers(admin_user):
    return bearer(admin_user)
