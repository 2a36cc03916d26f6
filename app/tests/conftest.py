"""
PyTest configuration and fixtures
"""

import os
import sys
from datetime import datetime, timedelta
from unittest.mock import Mock, patch

import pytest

# Add the parent directory to the path so we can import modules
sys.path.append(os.path.dirname(os.path.dirname(os.path.dirname(__file__))))

# Must be set before config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("MERCADO_PAGO_WEBHOOK_SECRET", "test-webhook-secret")
os.environ.setdefault("SKIP_DB_TABLE_CREATION", "true")

from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import database
import app.models  # noqa: F401  registers every table on Base.metadata
from config import settings
from database import Base
from app.models.user import User
from app.models.event import Event, EventRegistration, Activity
from app.models.product import Product, AccessTarget
from app.services.payment_gateway import MercadoPagoGateway, GatewayConfig, OrderResult, PixResult

WEBHOOK_SECRET = "test-webhook-secret"

test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture
def db_session(monkeypatch):
    """Fresh in-memory database per test; independent sessions share it"""
    Base.metadata.create_all(bind=test_engine)
    monkeypatch.setattr(database, "SessionLocal", TestingSessionLocal)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(autouse=True)
def mock_task_queue():
    """Keep Celery out of tests"""
    with patch("app.services.purchase_service.queue_purchase_confirmation") as purchase_confirmation, \
            patch("app.services.pix_service.queue_purchase_confirmation") as pix_confirmation, \
            patch("app.services.webhook_service.queue_pix_finalization") as pix_finalization:
        pix_finalization.return_value = True
        yield Mock(
            purchase_confirmation=purchase_confirmation,
            pix_confirmation=pix_confirmation,
            pix_finalization=pix_finalization
        )


@pytest.fixture
def mock_gateway():
    """Payment gateway that captures every order"""
    gateway = Mock(spec=MercadoPagoGateway)
    gateway.config = GatewayConfig(access_token="TEST-token", webhook_secret=WEBHOOK_SECRET)
    gateway.create_order.return_value = OrderResult(
        id="ORD01JTEST", total_amount="10.00", payment_id="PAY01JTEST", status="processed"
    )
    gateway.create_pix_payment.return_value = PixResult(
        payment_id="1234567890",
        status="pending",
        qr_code="00020126580014br.gov.bcb.pix",
        qr_code_base64="iVBORw0KGgo=",
        ticket_url="https://www.mercadopago.com.br/payments/1234567890/ticket"
    )
    return gateway


@pytest.fixture
def buyer(db_session):
    user = User(email="ana@example.com", name="Ana", last_name="Souza")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def friend(db_session):
    user = User(email="bruno@example.com", name="Bruno", last_name="Lima")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def event(db_session, buyer, friend):
    """Event with the buyer and friend registered"""
    now = datetime.utcnow()
    event = Event(
        slug="scti-2025",
        name="SCTI 2025",
        start_date=now + timedelta(days=30),
        end_date=now + timedelta(days=35),
        created_by=buyer.id
    )
    db_session.add(event)
    db_session.flush()

    db_session.add(EventRegistration(event_id=event.id, user_id=buyer.id))
    db_session.add(EventRegistration(event_id=event.id, user_id=friend.id))
    db_session.commit()
    return event


@pytest.fixture
def activities(db_session, event):
    """Opening talk (mandatory), free workshop and paid workshop"""
    opening = Activity(event_id=event.id, name="Opening talk", is_mandatory=True, has_fee=False)
    free_workshop = Activity(event_id=event.id, name="Git workshop", is_mandatory=False, has_fee=False)
    paid_workshop = Activity(event_id=event.id, name="Kubernetes workshop", is_mandatory=False, has_fee=True)
    db_session.add_all([opening, free_workshop, paid_workshop])
    db_session.commit()
    return {"opening": opening, "free": free_workshop, "paid": paid_workshop}


def make_product(db_session, event, **overrides):
    fields = {
        "event_id": event.id,
        "name": "Product",
        "price_int": 1000,
        "quantity": 10,
        "max_ownable_quantity": 1,
        "expires_at": datetime.utcnow() + timedelta(days=20),
    }
    fields.update(overrides)
    product = Product(**fields)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture
def token_pack(db_session, event):
    """Single unit in stock, two activity tokens per unit"""
    return make_product(
        db_session, event,
        name="Token pack",
        quantity=1,
        is_activity_token=True,
        token_quantity=2
    )


@pytest.fixture
def ticket(db_session, event, activities):
    """Unlimited event ticket giving access to every free or mandatory activity"""
    product = make_product(
        db_session, event,
        name="Event ticket",
        price_int=2500,
        has_unlimited_quantity=True,
        quantity=0,
        max_ownable_quantity=2,
        is_event_access=True,
        is_ticket_type=True
    )
    db_session.add(AccessTarget(product_id=product.id, target_id=event.id, is_event=True, event_id=event.id))
    db_session.commit()
    return product


@pytest.fixture
def workshop_pass(db_session, event, activities):
    """Access to the paid workshop only"""
    product = make_product(
        db_session, event,
        name="Kubernetes workshop pass",
        price_int=5000,
        quantity=30,
        is_activity_access=True
    )
    db_session.add(AccessTarget(
        product_id=product.id, target_id=activities["paid"].id, is_event=False, event_id=event.id
    ))
    db_session.commit()
    return product


def make_access_token(user_id: str, token_type: str = "access") -> str:
    payload = {
        "sub": user_id,
        "type": token_type,
        "exp": datetime.utcnow() + timedelta(minutes=15)
    }
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


@pytest.fixture
def auth_headers(buyer):
    return {"Authorization": f"Bearer {make_access_token(buyer.id)}"}


# Pytest configuration
def pytest_configure(config):
    """Configure pytest"""
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "unit: marks tests as unit tests")


def pytest_collection_modifyitems(config, items):
    """Modify test collection"""
    # Add unit marker to tests that don't have other markers
    for item in items:
        if not any(mark.name == 'integration' for mark in item.iter_markers()):
            item.add_marker(pytest.mark.unit)
