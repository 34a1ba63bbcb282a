"""Shared fixtures: in-memory database, fake catalog, demo payment provider."""
import os

# before any storefront import, settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CATALOG_DATABASE_URL"] = "sqlite://"
os.environ["CART_BACKEND"] = "memory"

from decimal import Decimal
from typing import Dict, Optional, Set

import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

import storefront.data.models  # noqa: F401
from storefront.celery_worker import celery_app
from storefront.data.database import Base, get_db
from storefront.domain.errors import InsufficientStock, ProductNotFound
from storefront.domain.schemas import ProductSnapshot
from storefront.main import create_app
from storefront.services.cart_service import CartService
from storefront.services.cart_store import MemoryCartStore, RedisCartStore, get_cart_store
from storefront.services.checkout_service import CheckoutService
from storefront.services.order_service import OrderService
from storefront.services.payment_provider import DemoPaymentProvider, get_payment_provider
from storefront.services.payment_service import PaymentService
from storefront.services.product_client import get_product_client


class FakeCatalog:
    """In-process stand-in for ProductClient."""

    def __init__(self):
        self.products: Dict[int, ProductSnapshot] = {}
        self.fail_on: Set[int] = set()
        self.adjustments = []

    def add(self, product_id: int, price: str, stock: int, seller_id: Optional[int] = 7, status: str = "active"):
        self.products[product_id] = ProductSnapshot(
            id=product_id,
            name=f"Product {product_id}",
            price=Decimal(price),
            stock=stock,
            status=status,
            seller_id=seller_id,
        )

    def stock(self, product_id: int) -> int:
        return self.products[product_id].stock

    def get_product(self, product_id: int) -> Optional[ProductSnapshot]:
        product = self.products.get(product_id)
        return product.model_copy() if product else None

    def adjust_stock(self, product_id: int, delta: int) -> int:
        self.adjustments.append((product_id, delta))
        if product_id in self.fail_on:
            raise RuntimeError(f"catalog unavailable for product {product_id}")
        product = self.products.get(product_id)
        if product is None:
            raise ProductNotFound(product_id)
        if product.stock + delta < 0:
            raise InsufficientStock(product_id)
        self.products[product_id] = product.model_copy(update={"stock": product.stock + delta})
        return product.stock + delta


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def send_order_notification(self, buyer_id, order_id, order_number):
        self.sent.append((buyer_id, order_id, order_number))


@pytest.fixture(autouse=True)
def eager_celery():
    celery_app.conf.task_always_eager = True
    celery_app.conf.task_eager_propagates = True
    yield


@pytest.fixture()
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


@pytest.fixture()
def db(engine):
    session = Session(bind=engine, autoflush=False, expire_on_commit=False)
    yield session
    session.close()


@pytest.fixture()
def catalog():
    catalog = FakeCatalog()
    catalog.add(1, "50.00", 10, seller_id=7)
    catalog.add(2, "20.00", 5, seller_id=8)
    catalog.add(3, "5.25", 100, seller_id=7)
    return catalog


@pytest.fixture(params=["memory", "redis"])
def cart_store(request):
    if request.param == "memory":
        return MemoryCartStore()
    return RedisCartStore(client=fakeredis.FakeRedis(decode_responses=True))


@pytest.fixture()
def provider():
    return DemoPaymentProvider(webhook_secret="whsec_test")


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def cart_service(cart_store, catalog):
    return CartService(store=cart_store, product_client=catalog)


@pytest.fixture()
def order_service(db):
    return OrderService(db)


@pytest.fixture()
def payment_service(db, provider, order_service):
    return PaymentService(db, provider, order_service)


@pytest.fixture()
def checkout_service(cart_service, order_service, payment_service, provider, catalog, notifier):
    return CheckoutService(
        cart_service=cart_service,
        order_service=order_service,
        payment_service=payment_service,
        provider=provider,
        product_client=catalog,
        notification_service=notifier,
    )


@pytest.fixture()
def address():
    return {
        "line1": "1 Main St",
        "city": "Springfield",
        "state": "IL",
        "postal_code": "62701",
        "country": "USA",
    }


@pytest.fixture()
def client(db, cart_store, catalog, provider):
    app = create_app()

    def override_db():
        yield db

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_cart_store] = lambda: cart_store
    app.dependency_overrides[get_product_client] = lambda: catalog
    app.dependency_overrides[get_payment_provider] = lambda: provider
    return TestClient(app)
