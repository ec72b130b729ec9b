import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("NOTIFICATION_API_URL", "")

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.db import Base  # noqa: E402
from app.models.customer import Customer  # noqa: E402,F401
from app.models.loyalty_account import LoyaltyAccount  # noqa: E402,F401
from app.models.loyalty_tier import LoyaltyTier  # noqa: E402,F401
from app.models.loyalty_transaction import LoyaltyTransaction  # noqa: E402,F401
from app.models.reminder_event import ReminderEvent  # noqa: E402,F401
from app.models.reminder_settings import ReminderSettings  # noqa: E402,F401
from app.services.contact_service import create_customer  # noqa: E402


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def sqlite_foreign_keys(engine):
    with engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA foreign_keys=ON")
    yield
    with engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA foreign_keys=OFF")


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_customer(db):
    def _make(name="Awa Diop", phone="+221 77 000 00 01", whatsapp_number=None):
        customer = create_customer(db, {"name": name, "phone": phone, "whatsapp_number": whatsapp_number})
        db.commit()
        db.refresh(customer)
        return customer

    return _make


class FakeGateway:
    def __init__(self, outcome=None, error=None):
        self.outcome = outcome if outcome is not None else {"SMS": True, "WHATSAPP": True}
        self.error = error
        self.calls: list[tuple[str, str, dict]] = []

    def send(self, trigger: str, recipient_phone: str, template_data: dict) -> dict[str, bool]:
        self.calls.append((trigger, recipient_phone, dict(template_data)))
        if self.error is not None:
            raise self.error
        return dict(self.outcome)


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def failing_gateway():
    return FakeGateway(outcome={"SMS": False, "WHATSAPP": False})


@pytest.fixture
def client(session_factory, fake_gateway):
    from fastapi.testclient import TestClient

    from app.db import get_db
    from app.main import app
    from app.services.notification_gateway import get_notification_gateway

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_notification_gateway] = lambda: fake_gateway
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_gateway():
    return FakeGateway
