from decimal import Decimal

import pytest
import requests

from storefront.domain.errors import InsufficientStock, ProductNotFound
from storefront.services import product_client as module
from storefront.services.product_client import ProductClient


class FakeResponse:
    def __init__(self, status_code, payload=None):
        self.status_code = status_code
        self._payload = payload or {}

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


@pytest.fixture()
def client():
    return ProductClient(base_url="http://catalog.test/", timeout=1)


class TestGetProduct:
    def test_parses_snapshot(self, client, monkeypatch):
        seen = {}

        def fake_get(url, timeout):
            seen["url"] = url
            return FakeResponse(200, {"id": 1, "name": "Keyboard", "price": "199.99", "stock": 3, "status": "active", "seller_id": 10})

        monkeypatch.setattr(module.requests, "get", fake_get)

        product = client.get_product(1)

        assert seen["url"] == "http://catalog.test/products/1"
        assert product.price == Decimal("199.99")
        assert product.seller_id == 10

    def test_missing_product_is_none(self, client, monkeypatch):
        monkeypatch.setattr(module.requests, "get", lambda url, timeout: FakeResponse(404))

        assert client.get_product(1) is None

    def test_server_errors_are_retried_then_raised(self, client, monkeypatch):
        calls = []

        def fake_get(url, timeout):
            calls.append(url)
            return FakeResponse(503)

        monkeypatch.setattr(module.requests, "get", fake_get)

        with pytest.raises(requests.HTTPError):
            client.get_product(1)
        assert len(calls) == 3


class TestAdjustStock:
    def test_returns_new_stock(self, client, monkeypatch):
        seen = {}

        def fake_patch(url, json, timeout):
            seen.update(url=url, json=json)
            return FakeResponse(200, {"id": 1, "stock": 8})

        monkeypatch.setattr(module.requests, "patch", fake_patch)

        assert client.adjust_stock(1, -2) == 8
        assert seen == {"url": "http://catalog.test/products/1/stock", "json": {"quantity": -2}}

    def test_conflict_means_insufficient_stock(self, client, monkeypatch):
        monkeypatch.setattr(module.requests, "patch", lambda url, json, timeout: FakeResponse(409))

        with pytest.raises(InsufficientStock):
            client.adjust_stock(1, -2)

    def test_missing_product(self, client, monkeypatch):
        monkeypatch.setattr(module.requests, "patch", lambda url, json, timeout: FakeResponse(404))

        with pytest.raises(ProductNotFound):
            client.adjust_stock(1, -2)

    def test_not_retried(self, client, monkeypatch):
        calls = []

        def fake_patch(url, json, timeout):
            calls.append(url)
            raise requests.Timeout("read timed out")

        monkeypatch.setattr(module.requests, "patch", fake_patch)

        with pytest.raises(requests.Timeout):
            client.adjust_stock(1, -2)
        assert len(calls) == 1
