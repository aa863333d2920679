from __future__ import annotations

import logging
import time
from typing import Any, Callable, Protocol

from .bm_client import TYPING_STARTED, TYPING_STOPPED, OutboundTransportError
from .callback_models import CallbackPayload
from .cart_models import Cart
from .cart_store import CartStore, CartStoreError
from .catalog import Catalog, CatalogMiss
from .dedup_cache import DedupCache
from .intent_router import Action, AddItem, RemoveItem, route
from .reply_builder import Reply, build_reply

logger = logging.getLogger(__name__)

# Outcomes reported back to the webhook caller
REPLIED = "replied"
DUPLICATE = "duplicate"
IGNORED = "ignored"
CATALOG_MISS = "catalog_miss"
STORAGE_ERROR = "storage_error"
EXPIRED = "expired"
ERROR = "error"


class Transport(Protocol):
    def send_event(self, conversation_id: str, event_type: str) -> Any: ...

    def send_message(self, conversation_id: str, reply: Reply) -> Any: ...


class Dispatcher:
    """Runs one webhook callback end to end.

    dedup -> cart load -> route -> cart mutation -> reply -> outbound, with
    every collaborator passed in explicitly. ``handle`` never raises: each
    failure is logged and reported as an outcome string.
    """

    def __init__(
        self,
        catalog: Catalog,
        carts: CartStore,
        dedup: DedupCache,
        transport: Transport,
        budget_secs: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.catalog = catalog
        self.carts = carts
        self.dedup = dedup
        self.transport = transport
        self.budget_secs = budget_secs
        self._clock = clock

    def handle(self, payload: CallbackPayload) -> str:
        try:
            return self._handle(payload)
        except Exception:
            logger.exception(f"Unhandled error in callback for conversation {payload.conversation_id}")
            return ERROR

    def _handle(self, payload: CallbackPayload) -> str:
        started = self._clock()
        conversation_id = payload.conversation_id

        event_id = payload.event_id
        if event_id and not self.dedup.claim(event_id):
            logger.info(f"Dropping duplicate event {event_id} for {conversation_id}")
            return DUPLICATE

        self._log_status_events(payload)
        text = payload.user_text
        if text is None:
            return IGNORED

        try:
            reply = self._compose(conversation_id, text)
        except CatalogMiss as e:
            logger.error(f"Attempted to change cart with item not in inventory: {e.item_id}")
            return CATALOG_MISS
        except CartStoreError as e:
            logger.error(f"Cart storage failed for {conversation_id}: {e}")
            return STORAGE_ERROR

        elapsed = self._clock() - started
        if elapsed > self.budget_secs:
            logger.warning(f"Callback budget of {self.budget_secs}s exceeded ({elapsed:.1f}s); reply discarded")
            return EXPIRED

        self._deliver(conversation_id, reply)
        return REPLIED

    def _compose(self, conversation_id: str, text: str) -> Reply:
        cart = self.carts.resolve_cart(conversation_id)
        action = route(text, cart)
        cart = self._apply(action, cart)
        return build_reply(action, cart, self.catalog)

    def _apply(self, action: Action, cart: Cart) -> Cart:
        if isinstance(action, AddItem):
            item = self.catalog.get(action.item_id)
            return self.carts.add_item(cart.cart_id, item.id, item.title)
        if isinstance(action, RemoveItem):
            item = self.catalog.get(action.item_id)
            return self.carts.remove_item(cart.cart_id, item.id)
        return cart

    def _deliver(self, conversation_id: str, reply: Reply) -> None:
        steps = (
            ("typing started", lambda: self.transport.send_event(conversation_id, TYPING_STARTED)),
            ("message", lambda: self.transport.send_message(conversation_id, reply)),
            ("typing stopped", lambda: self.transport.send_event(conversation_id, TYPING_STOPPED)),
        )
        for label, send in steps:
            try:
                send()
            except OutboundTransportError as e:
                logger.error(f"Outbound {label} failed for {conversation_id}: {e}")
            except Exception:
                logger.exception(f"Outbound {label} raised unexpectedly for {conversation_id}")

    def _log_status_events(self, payload: CallbackPayload) -> None:
        status = payload.user_status
        if status is not None and status.is_typing:
            logger.info(f"User is typing in {payload.conversation_id}")
        if payload.receipts is not None:
            for receipt in payload.receipts.receipts:
                logger.info(f"Receipt: ({receipt.receipt_type}, {receipt.message})")
