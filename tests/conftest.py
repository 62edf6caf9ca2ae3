import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_app.db")
os.environ.setdefault("JWT_SECRET", "test-secret")

import itertools
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import app.models  # noqa: F401  registers tables on Base
from app.config import MobalegendsConfig
from app.database import Base
from app.gateways import CreatedOrder, MobalegendsAdapter
from app.models import Product
from app.store import PaymentStore

SQLALCHEMY_DATABASE_URL = "sqlite:///./test_temp.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={
                       "check_same_thread": False})
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine)


class FakeGateway(MobalegendsAdapter):
    """Mobalegends vocabulary without the network."""

    def __init__(self, name="mobalegends", required_customer_fields=()):
        super().__init__(MobalegendsConfig(api_key="test-key"))
        self.name = name
        self.required_customer_fields = required_customer_fields
        self.supports_webhook = name == "mobalegends"
        self.created = []
        self.polled = []
        self.next_status = "PENDING"
        self.next_utr = None
        self._ids = itertools.count(1)

    def create_order(self, amount, customer, metadata):
        self.created.append((amount, customer, metadata))
        return CreatedOrder(
            external_order_id=f"{self.name.upper()}-{next(self._ids)}",
            payment_url="upi://pay?tr=test",
        )

    def query_status(self, external_order_id):
        self.polled.append(external_order_id)
        return self.observation(external_order_id, self.next_status, utr=self.next_utr)


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def store():
    return PaymentStore(TestingSessionLocal)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def products():
    db = TestingSessionLocal()
    db.add_all([
        Product(id=1, name="Guppy", regular_price=Decimal("120.00"), discount_price=Decimal("99.00")),
        Product(id=2, name="Tank", regular_price=Decimal("250.00")),
        Product(id=3, name="Retired", regular_price=Decimal("10.00"), is_deleted=True),
    ])
    db.commit()
    db.close()


def make_payment(store, order_id="ORD-1", amount="500.00", provider="mobalegends", **fields):
    return store.create(
        order_id=order_id,
        client_txn_id=fields.pop("client_txn_id", f"TXN-{order_id}"),
        provider=provider,
        amount=Decimal(amount),
        currency="INR",
        **fields,
    )
