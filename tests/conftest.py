# tests/conftest.py
import os

# settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("PAYMENT_GATEWAY", "fake")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import threading
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from shopcore.api import deps
from shopcore.data import models  # noqa: F401
from shopcore.data.database import Base, make_engine, make_session_factory
from shopcore.data.models import PaymentModel, ProductModel, UserModel
from shopcore.data.unit_of_work import UnitOfWork
from shopcore.main import create_app
from shopcore.services.cart_service import CartService
from shopcore.services.lock_service import LockService
from shopcore.services.order_service import OrderService
from shopcore.services.payment_gateway import FakePaymentGateway
from shopcore.services.payment_service import PaymentService

ADDRESS = {"street": "1 Main St", "city": "Springfield", "state": "IL", "zip_code": "62701"}

PRODUCTS = [
    {"id": 1, "name": "Product A", "price": Decimal("10.00"), "stock": 10},
    {"id": 2, "name": "Product B", "price": Decimal("5.00"), "stock": 3},
    {"id": 3, "name": "Retired", "price": Decimal("7.00"), "stock": 100, "is_active": False},
    {"id": 4, "name": "Scarce", "price": Decimal("1.00"), "stock": 5},
]


class InMemoryLockService(LockService):
    """Same hold() semantics as the Redis lock, keys kept in a dict."""

    def __init__(self):
        self._keys: dict[str, str] = {}
        self._mutex = threading.Lock()
        self.acquired: list[str] = []

    def acquire(self, key, token, ttl):
        with self._mutex:
            if key in self._keys:
                return False
            self._keys[key] = token
            self.acquired.append(key)
            return True

    def release(self, key, token):
        with self._mutex:
            if self._keys.get(key) != token:
                return False
            del self._keys[key]
            return True


@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'shop.db'}")
    Base.metadata.create_all(bind=engine)
    factory = make_session_factory(engine)

    with factory() as db:
        db.add_all(UserModel(id=i, name=f"user-{i}") for i in (1, 2, 3))
        db.add_all(ProductModel(**p) for p in PRODUCTS)
        db.commit()

    yield factory
    engine.dispose()


@pytest.fixture
def new_uow(session_factory):
    def _new_uow():
        return UnitOfWork(session_factory)

    return _new_uow


@pytest.fixture
def stock_of(session_factory):
    def _stock_of(product_id):
        with session_factory() as db:
            return db.execute(select(ProductModel.stock).where(ProductModel.id == product_id)).scalar_one()

    return _stock_of


@pytest.fixture
def set_price(session_factory):
    def _set_price(product_id, price):
        with session_factory() as db:
            db.get(ProductModel, product_id).price = Decimal(price)
            db.commit()

    return _set_price


@pytest.fixture
def payment_row(session_factory):
    def _payment_row(payment_id):
        with session_factory() as db:
            return db.get(PaymentModel, payment_id)

    return _payment_row


@pytest.fixture
def gateway():
    return FakePaymentGateway()


@pytest.fixture
def lock_service():
    return InMemoryLockService()


@pytest.fixture
def cart_service():
    return CartService()


@pytest.fixture
def order_service():
    return OrderService()


@pytest.fixture
def payment_service(gateway, lock_service):
    return PaymentService(gateway, lock_service, lock_timeout=1)


@pytest.fixture
def place_order(new_uow, order_service):
    def _place_order(user_id=1, items=None, **kwargs):
        items = items or [{"product_id": 1, "quantity": 2}]
        with new_uow() as uow:
            return order_service.create_order(uow, user_id, items, ADDRESS, **kwargs)

    return _place_order


@pytest.fixture
def app(session_factory, gateway, lock_service):
    app = create_app(init=False)

    def _get_uow():
        with UnitOfWork(session_factory) as uow:
            yield uow

    app.dependency_overrides[deps.get_uow] = _get_uow
    app.dependency_overrides[deps.get_payment_gateway] = lambda: gateway
    app.dependency_overrides[deps.get_lock_service] = lambda: lock_service
    return app


@pytest.fixture
def client(app):
    return TestClient(app)
