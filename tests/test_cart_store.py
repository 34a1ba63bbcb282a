from datetime import datetime, timezone
from decimal import Decimal

import fakeredis

from storefront.domain.schemas import CartItem
from storefront.services.cart_store import MemoryCartStore, RedisCartStore, build_cart_store, cart_key


def _item(product_id, quantity=1, price="9.99"):
    now = datetime.now(timezone.utc)
    return CartItem(product_id=product_id, quantity=quantity, price=Decimal(price), added_at=now, updated_at=now)


class TestCartStore:
    def test_missing_cart_reads_as_empty(self, cart_store):
        assert cart_store.get_items("nobody") == {}

    def test_put_replaces_line(self, cart_store):
        cart_store.put_item("u1", _item(1, 2))
        cart_store.put_item("u1", _item(1, 5))
        cart_store.put_item("u1", _item(2, 1))

        items = cart_store.get_items("u1")
        assert sorted(items) == [1, 2]
        assert items[1].quantity == 5
        assert items[1].price == Decimal("9.99")

    def test_delete_item_and_delete(self, cart_store):
        cart_store.put_item("u1", _item(1))
        cart_store.put_item("u1", _item(2))

        cart_store.delete_item("u1", 1)
        assert list(cart_store.get_items("u1")) == [2]

        cart_store.delete("u1")
        assert cart_store.get_items("u1") == {}

    def test_carts_are_isolated_per_owner(self, cart_store):
        cart_store.put_item("u1", _item(1))
        assert cart_store.get_items("u2") == {}


class TestMemoryCartStoreExpiry:
    def test_cart_expires_after_ttl(self):
        now = [1000.0]
        store = MemoryCartStore(ttl=60, clock=lambda: now[0])
        store.put_item("u1", _item(1))

        now[0] += 59
        assert 1 in store.get_items("u1")

        now[0] += 1
        assert store.get_items("u1") == {}

    def test_write_pushes_expiry_forward(self):
        now = [0.0]
        store = MemoryCartStore(ttl=60, clock=lambda: now[0])
        store.put_item("u1", _item(1))

        now[0] = 50
        store.put_item("u1", _item(2))

        now[0] = 100
        assert sorted(store.get_items("u1")) == [1, 2]


class TestRedisCartStore:
    def test_writes_hash_with_ttl(self):
        client = fakeredis.FakeRedis(decode_responses=True)
        store = RedisCartStore(client=client, ttl=120)

        store.put_item("42", _item(3, 2))

        assert client.hkeys(cart_key("42")) == ["3"]
        assert 0 < client.ttl(cart_key("42")) <= 120


def test_build_memory_backend():
    assert build_cart_store("memory").backend == "memory"
