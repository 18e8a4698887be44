import pytest
from datetime import date, timedelta
from decimal import Decimal
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from holy_travels.main import app
from holy_travels.config import settings
from holy_travels.database import Base, get_db
from holy_travels.models import Tour, TourDestination, TourStartDate
from holy_travels.auth.schemas import UserCreate
from holy_travels.auth.service import UserService
from holy_travels.auth.utils import create_access_token
from holy_travels.notifications.dispatcher import NotificationDispatcher, get_dispatcher
from holy_travels.notifications.websocket import ConnectionManager
from holy_travels.payments.gateway import get_payment_gateway, to_paise

TEST_SECRET = "test_razorpay_secret"

class FakeGateway:
    """Stands in for Razorpay; records every call"""
    key_id = "rzp_test_key"

    def __init__(self):
        self.orders = []
        self.refunds = []

    def create_order(self, amount, receipt, notes=None):
        order = {
            "id": f"order_{len(self.orders) + 1}",
            "amount": to_paise(amount),
            "currency": "INR",
            "receipt": receipt
        }
        self.orders.append(order)
        return order

    def refund(self, payment_id, amount, notes=None):
        refund = {"id": f"rfnd_{len(self.refunds) + 1}", "payment_id": payment_id, "amount": to_paise(amount)}
        self.refunds.append(refund)
        return refund

@pytest.fixture(autouse=True)
def razorpay_secret(monkeypatch):
    monkeypatch.setattr(settings, "RAZORPAY_KEY_SECRET", TEST_SECRET)
    return TEST_SECRET

@pytest.fixture(name="session_factory")
def session_factory_fixture():
    # One shared in-memory database per test
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(engine)
    engine.dispose()

@pytest.fixture(name="session")
def session_fixture(session_factory):
    session = session_factory()
    yield session
    session.close()

@pytest.fixture(name="gateway")
def gateway_fixture():
    return FakeGateway()

@pytest.fixture(name="connections")
def connections_fixture():
    return ConnectionManager()

@pytest.fixture(name="client")
def client_fixture(session_factory, gateway, connections):
    def get_db_override():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = get_db_override
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_dispatcher] = lambda: NotificationDispatcher(
        session_factory=session_factory,
        connections=connections
    )
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()

def _create_user(session, email, role="user"):
    return UserService.create_user(
        session,
        UserCreate(name=email.split("@")[0], email=email, password="secret123"),
        role=role
    )

def _auth_headers(user):
    token = create_access_token({"sub": str(user.id), "role": user.role})
    return {"Authorization": f"Bearer {token}"}

@pytest.fixture(name="user")
def user_fixture(session):
    return _create_user(session, "pilgrim@example.com")

@pytest.fixture(name="other_user")
def other_user_fixture(session):
    return _create_user(session, "someone@example.com")

@pytest.fixture(name="admin")
def admin_fixture(session):
    return _create_user(session, "admin@example.com", role="admin")

@pytest.fixture(name="user_headers")
def user_headers_fixture(user):
    return _auth_headers(user)

@pytest.fixture(name="other_headers")
def other_headers_fixture(other_user):
    return _auth_headers(other_user)

@pytest.fixture(name="admin_headers")
def admin_headers_fixture(admin):
    return _auth_headers(admin)

def make_tour(session, title="Tour X", price=Decimal("1000"), discounted=None, departures=None, duration_days=5):
    """Insert an active tour; ``departures`` maps dates to total seats"""
    tour = Tour(
        title=title,
        slug=title.lower().replace(" ", "-"),
        description=f"{title} description",
        category="char-dham",
        duration_days=duration_days,
        duration_nights=duration_days - 1,
        price_amount=price,
        price_discounted_amount=discounted,
        price_currency="INR",
        max_group_size=50,
        is_active=True
    )
    tour.destinations = [
        TourDestination(position=0, name="Kedarnath", type="religious"),
        TourDestination(position=1, name="Badrinath", type="religious")
    ]
    tour.start_dates = [
        TourStartDate(date=day, total_seats=seats, available_seats=seats, status="upcoming")
        for day, seats in (departures or {}).items()
    ]
    session.add(tour)
    session.commit()
    session.refresh(tour)
    return tour

@pytest.fixture(name="departure_day")
def departure_day_fixture():
    return date.today() + timedelta(days=40)

@pytest.fixture(name="tour")
def tour_fixture(session, departure_day):
    return make_tour(session, departures={departure_day: 10})

@pytest.fixture(name="tour_factory")
def tour_factory_fixture(session):
    def factory(**kwargs):
        return make_tour(session, **kwargs)
    return factory
