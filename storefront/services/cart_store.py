# storefront/services/cart_store.py
"""
Cart storage backends.

A cart is a hash keyed by product id under ``cart:{owner}``; every write
pushes the expiry CART_TTL_SECONDS forward. RedisCartStore shares carts
across processes. MemoryCartStore keeps them in this process only and is
lost on restart, with otherwise identical semantics.
"""
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Tuple

import redis
from redis.exceptions import RedisError

from storefront.domain.schemas import CartItem
from storefront.utils.retry import redis_retry
from storefront.utils.settings import CART_BACKEND, CART_TTL_SECONDS, REDIS_URL
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

CART_PREFIX = "cart:"


def cart_key(owner: str) -> str:
    return f"{CART_PREFIX}{owner}"


class CartStore(ABC):
    backend = "abstract"

    @abstractmethod
    def get_items(self, owner: str) -> Dict[int, CartItem]:
        ...

    @abstractmethod
    def put_item(self, owner: str, item: CartItem) -> None:
        ...

    @abstractmethod
    def delete_item(self, owner: str, product_id: int) -> None:
        ...

    @abstractmethod
    def delete(self, owner: str) -> None:
        ...


class RedisCartStore(CartStore):
    backend = "redis"

    def __init__(self, client: redis.Redis | None = None, url: str | None = None, ttl: int = CART_TTL_SECONDS):
        self.redis = client or redis.Redis.from_url(url or REDIS_URL, decode_responses=True)
        self.ttl = ttl

    @redis_retry()
    def get_items(self, owner: str) -> Dict[int, CartItem]:
        raw = self.redis.hgetall(cart_key(owner))
        return {int(pid): CartItem.model_validate_json(data) for pid, data in raw.items()}

    @redis_retry()
    def put_item(self, owner: str, item: CartItem) -> None:
        key = cart_key(owner)
        pipe = self.redis.pipeline(transaction=True)
        pipe.hset(key, str(item.product_id), item.model_dump_json())
        pipe.expire(key, self.ttl)
        pipe.execute()

    @redis_retry()
    def delete_item(self, owner: str, product_id: int) -> None:
        self.redis.hdel(cart_key(owner), str(product_id))

    @redis_retry()
    def delete(self, owner: str) -> None:
        self.redis.delete(cart_key(owner))


class MemoryCartStore(CartStore):
    backend = "memory"

    def __init__(self, ttl: int = CART_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.clock = clock
        self._lock = threading.Lock()
        # key -> (product_id -> serialized item, expires_at)
        self._carts: Dict[str, Tuple[Dict[int, str], float]] = {}

    def _live(self, key: str) -> Dict[int, str] | None:
        entry = self._carts.get(key)
        if entry is None:
            return None
        fields, expires_at = entry
        if expires_at <= self.clock():
            del self._carts[key]
            return None
        return fields

    def get_items(self, owner: str) -> Dict[int, CartItem]:
        with self._lock:
            fields = self._live(cart_key(owner)) or {}
            return {pid: CartItem.model_validate_json(data) for pid, data in fields.items()}

    def put_item(self, owner: str, item: CartItem) -> None:
        key = cart_key(owner)
        with self._lock:
            fields = self._live(key) or {}
            fields[item.product_id] = item.model_dump_json()
            self._carts[key] = (fields, self.clock() + self.ttl)

    def delete_item(self, owner: str, product_id: int) -> None:
        key = cart_key(owner)
        with self._lock:
            fields = self._live(key)
            if fields is None:
                return
            fields.pop(product_id, None)
            if not fields:
                del self._carts[key]

    def delete(self, owner: str) -> None:
        with self._lock:
            self._carts.pop(cart_key(owner), None)


def build_cart_store(backend: str = CART_BACKEND) -> CartStore:
    if backend == "memory":
        return MemoryCartStore()

    store = RedisCartStore()
    if backend == "redis":
        return store

    try:
        store.redis.ping()
    except RedisError as e:
        logger.warning(f"Redis unavailable ({e}), carts fall back to process-local storage")
        return MemoryCartStore()
    return store


_current_store: CartStore | None = None


def get_cart_store() -> CartStore:
    global _current_store
    if _current_store is None:
        _current_store = build_cart_store()
        logger.info(f"Cart store backend: {_current_store.backend}")
    return _current_store


def set_cart_store(store: CartStore) -> None:
    global _current_store
    _current_store = store


def reset_cart_store() -> None:
    global _current_store
    _current_store = None
