from __future__ import annotations

import logging
import random
import threading
import time
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, Tuple, TypeVar

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.pool import StaticPool

from .cart_models import Cart, CartItem

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ITEMS = 50
RETRY_ATTEMPTS = 3
RETRY_BASE_DELAY_SECS = 0.05


class CartStoreError(Exception):
    """Base class for persistence failures."""


class StorageUnavailable(CartStoreError):
    pass


class ConcurrentModification(CartStoreError):
    pass


def with_retries(
    fn: Callable[[], T],
    attempts: int = RETRY_ATTEMPTS,
    base_delay: float = RETRY_BASE_DELAY_SECS,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run fn, retrying CartStoreError with jittered exponential backoff.

    The last error is re-raised once attempts are exhausted.
    """
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except CartStoreError as e:
            if attempt >= attempts:
                raise
            delay = base_delay * (2 ** (attempt - 1))
            delay += random.uniform(0, delay)
            logger.warning(f"Cart store attempt {attempt}/{attempts} failed ({e}); retrying in {delay:.3f}s")
            sleep(delay)
    raise ValueError("attempts must be >= 1")


class CartStore(ABC):
    """Conversation-keyed cart persistence.

    Public methods apply the retry policy and always return a fresh snapshot
    read after the write committed. Subclasses implement the underscored
    single-attempt primitives.
    """

    def __init__(self, max_items: int = DEFAULT_MAX_ITEMS) -> None:
        self.max_items = max_items

    def resolve_cart(self, conversation_id: str) -> Cart:
        cart_id = with_retries(lambda: self._resolve_cart_id(conversation_id))
        return Cart(cart_id=cart_id, items=self.list_items(cart_id))

    def list_items(self, cart_id: str) -> Tuple[CartItem, ...]:
        return with_retries(lambda: self._list_items(cart_id))

    def add_item(self, cart_id: str, item_id: str, title: str) -> Cart:
        with_retries(lambda: self._add_item(cart_id, item_id, title))
        return Cart(cart_id=cart_id, items=self.list_items(cart_id))

    def remove_item(self, cart_id: str, item_id: str) -> Cart:
        with_retries(lambda: self._remove_item(cart_id, item_id))
        return Cart(cart_id=cart_id, items=self.list_items(cart_id))

    @property
    def kind(self) -> str:
        return type(self).__name__

    @abstractmethod
    def _resolve_cart_id(self, conversation_id: str) -> str: ...

    @abstractmethod
    def _list_items(self, cart_id: str) -> Tuple[CartItem, ...]: ...

    @abstractmethod
    def _add_item(self, cart_id: str, item_id: str, title: str) -> None: ...

    @abstractmethod
    def _remove_item(self, cart_id: str, item_id: str) -> None: ...


class MemoryCartStore(CartStore):
    """Process-local store. Used when no database is configured and in tests."""

    def __init__(self, max_items: int = DEFAULT_MAX_ITEMS) -> None:
        super().__init__(max_items)
        self._lock = threading.Lock()
        self._bindings: Dict[str, str] = {}
        # cart_id -> item_id -> CartItem; dict order is first-added order
        self._items: Dict[str, Dict[str, CartItem]] = {}

    def _resolve_cart_id(self, conversation_id: str) -> str:
        with self._lock:
            cart_id = self._bindings.get(conversation_id)
            if cart_id is None:
                cart_id = str(uuid.uuid4())
                self._bindings[conversation_id] = cart_id
            return cart_id

    def _list_items(self, cart_id: str) -> Tuple[CartItem, ...]:
        with self._lock:
            items = list(self._items.get(cart_id, {}).values())
        return tuple(items[: self.max_items])

    def _add_item(self, cart_id: str, item_id: str, title: str) -> None:
        with self._lock:
            items = self._items.setdefault(cart_id, {})
            current = items.get(item_id)
            if current is None:
                items[item_id] = CartItem(item_id=item_id, title=title, count=1)
            else:
                items[item_id] = CartItem(item_id=item_id, title=current.title, count=current.count + 1)

    def _remove_item(self, cart_id: str, item_id: str) -> None:
        with self._lock:
            items = self._items.get(cart_id, {})
            current = items.get(item_id)
            if current is None:
                return
            if current.count <= 1:
                del items[item_id]
            else:
                items[item_id] = CartItem(item_id=item_id, title=current.title, count=current.count - 1)


SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS carts (
      conversation_id VARCHAR(255) PRIMARY KEY,
      cart_id VARCHAR(64) NOT NULL UNIQUE,
      created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS cart_items (
      cart_id VARCHAR(64) NOT NULL,
      item_id VARCHAR(255) NOT NULL,
      item_title TEXT NOT NULL,
      item_count INTEGER NOT NULL,
      seq INTEGER NOT NULL,
      PRIMARY KEY (cart_id, item_id)
    )
    """,
    # Two racing first-adds that read the same MAX(seq) collide here and are retried
    "CREATE UNIQUE INDEX IF NOT EXISTS ux_cart_items_cart_seq ON cart_items (cart_id, seq)",
)


class SqlCartStore(CartStore):
    """Cart store on any SQLAlchemy engine (SQLite, PostgreSQL).

    Uses SQLAlchemy Core with plain SQL. Every mutation is a single
    transaction; a racing insert on the same key surfaces as
    ConcurrentModification and is retried by the base class.
    """

    def __init__(self, engine: Engine, max_items: int = DEFAULT_MAX_ITEMS) -> None:
        super().__init__(max_items)
        self._engine = engine
        self.ensure_schema()

    @classmethod
    def from_url(cls, url: str, max_items: int = DEFAULT_MAX_ITEMS) -> "SqlCartStore":
        if url in {"sqlite://", "sqlite:///:memory:"}:
            # One shared connection, otherwise every checkout sees an empty database
            engine = create_engine(
                url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            engine = create_engine(url, pool_pre_ping=True)
        return cls(engine, max_items=max_items)

    @contextmanager
    def _db_errors(self, action: str) -> Iterator[None]:
        try:
            yield
        except IntegrityError as e:
            raise ConcurrentModification(f"{action}: {e.orig}") from e
        except DBAPIError as e:
            raise StorageUnavailable(f"{action}: {e.orig}") from e

    def ensure_schema(self) -> None:
        with self._db_errors("create schema"):
            with self._engine.begin() as conn:
                for stmt in SCHEMA_STATEMENTS:
                    conn.execute(text(stmt))
        logger.info("DB initialized: carts and cart_items tables ready")

    def _resolve_cart_id(self, conversation_id: str) -> str:
        with self._db_errors("resolve cart"):
            with self._engine.begin() as conn:
                row = conn.execute(
                    text("SELECT cart_id FROM carts WHERE conversation_id = :cid"),
                    {"cid": conversation_id},
                ).first()
                if row is not None:
                    return row[0]
                cart_id = str(uuid.uuid4())
                conn.execute(
                    text("INSERT INTO carts (conversation_id, cart_id) VALUES (:cid, :cart)"),
                    {"cid": conversation_id, "cart": cart_id},
                )
                return cart_id

    def _list_items(self, cart_id: str) -> Tuple[CartItem, ...]:
        with self._db_errors("list cart items"):
            with self._engine.connect() as conn:
                rs = conn.execute(
                    text(
                        """
                        SELECT item_id, item_title, item_count
                        FROM cart_items
                        WHERE cart_id = :cart
                        ORDER BY seq, item_id
                        LIMIT :lim
                        """
                    ),
                    {"cart": cart_id, "lim": int(self.max_items)},
                )
                return tuple(
                    CartItem(item_id=r.item_id, title=r.item_title, count=int(r.item_count))
                    for r in rs
                )

    def _add_item(self, cart_id: str, item_id: str, title: str) -> None:
        params = {"cart": cart_id, "item": item_id, "title": title}
        with self._db_errors("add item"):
            with self._engine.begin() as conn:
                updated = conn.execute(
                    text(
                        "UPDATE cart_items SET item_count = item_count + 1 "
                        "WHERE cart_id = :cart AND item_id = :item"
                    ),
                    params,
                ).rowcount
                if not updated:
                    # A racing insert fails on the primary key or on (cart_id, seq)
                    conn.execute(
                        text(
                            """
                            INSERT INTO cart_items (cart_id, item_id, item_title, item_count, seq)
                            VALUES (:cart, :item, :title, 1, :seq)
                            """
                        ),
                        {**params, "seq": self._next_seq(conn, cart_id)},
                    )

    def _next_seq(self, conn, cart_id: str) -> int:
        last_seq = conn.execute(
            text("SELECT MAX(seq) FROM cart_items WHERE cart_id = :cart"),
            {"cart": cart_id},
        ).scalar()
        return int(last_seq or 0) + 1

    def _remove_item(self, cart_id: str, item_id: str) -> None:
        params = {"cart": cart_id, "item": item_id}
        with self._db_errors("remove item"):
            with self._engine.begin() as conn:
                deleted = conn.execute(
                    text(
                        "DELETE FROM cart_items "
                        "WHERE cart_id = :cart AND item_id = :item AND item_count <= 1"
                    ),
                    params,
                ).rowcount
                if not deleted:
                    # No-op when the item is not in the cart at all
                    conn.execute(
                        text(
                            "UPDATE cart_items SET item_count = item_count - 1 "
                            "WHERE cart_id = :cart AND item_id = :item AND item_count > 1"
                        ),
                        params,
                    )
