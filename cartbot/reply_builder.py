from __future__ import annotations

import logging
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field

from . import constants as C
from .cart_models import Cart, CartItem
from .catalog import Catalog, CatalogMiss, InventoryItem
from .intent_router import (
    Action,
    AddItem,
    RemoveItem,
    ShowCart,
    ShowCatalog,
    ShowHelp,
    ShowHours,
    postback_for,
)

logger = logging.getLogger(__name__)

CARD_WIDTH_MEDIUM = "MEDIUM"


class Suggestion(BaseModel):
    text: str
    postback_data: str


class Card(BaseModel):
    title: str
    description: Optional[str] = None
    media_url: Optional[str] = None
    suggestions: List[Suggestion] = Field(default_factory=list)


class TextReply(BaseModel):
    kind: Literal["text"] = "text"
    text: str
    suggestions: List[Suggestion] = Field(default_factory=list)


class SingleCardReply(BaseModel):
    kind: Literal["card"] = "card"
    card: Card
    suggestions: List[Suggestion] = Field(default_factory=list)


class CarouselReply(BaseModel):
    kind: Literal["carousel"] = "carousel"
    # The platform rejects carousels with fewer than two cards
    cards: List[Card] = Field(min_length=2)
    suggestions: List[Suggestion] = Field(default_factory=list)
    card_width: str = CARD_WIDTH_MEDIUM


Reply = Union[TextReply, SingleCardReply, CarouselReply]


def _chip(text: str, action: Action) -> Suggestion:
    return Suggestion(text=text, postback_data=postback_for(action) or "")


def default_menu(cart: Cart) -> List[Suggestion]:
    if cart.is_empty:
        chips = [_chip(C.SHOP_TEXT, ShowCatalog())]
    else:
        chips = [
            _chip(C.VIEW_CART_TEXT, ShowCart()),
            _chip(C.CONTINUE_SHOPPING_TEXT, ShowCatalog()),
        ]
    chips.append(_chip(C.HOURS_TEXT, ShowHours()))
    chips.append(_chip(C.HELP_TEXT, ShowHelp()))
    return chips


def inventory_suggestions(item_id: str) -> List[Suggestion]:
    return [_chip(C.ADD_ITEM_TEXT, AddItem(item_id))]


def cart_suggestions(item_id: str) -> List[Suggestion]:
    return [
        _chip(C.INCREMENT_COUNT_TEXT, AddItem(item_id)),
        _chip(C.DECREMENT_COUNT_TEXT, RemoveItem(item_id)),
    ]


def inventory_card(item: InventoryItem) -> Card:
    description = f"Price: {item.price:.2f}" if item.price is not None else None
    return Card(
        title=item.title,
        description=description,
        media_url=item.media_url,
        suggestions=inventory_suggestions(item.id),
    )


def cart_card(item: CartItem, catalog: Catalog) -> Card:
    try:
        media_url: Optional[str] = catalog.get(item.item_id).media_url
    except CatalogMiss:
        logger.warning(f"Cart item no longer in catalog, rendering without media: {item.item_id}")
        media_url = None
    return Card(
        title=item.title,
        description=f"Quantity: {item.count}",
        media_url=media_url,
        suggestions=cart_suggestions(item.item_id),
    )


def _cards_reply(cards: List[Card], suggestions: List[Suggestion], empty_text: str) -> Reply:
    if not cards:
        return TextReply(text=empty_text, suggestions=suggestions)
    if len(cards) == 1:
        return SingleCardReply(card=cards[0], suggestions=suggestions)
    return CarouselReply(cards=cards, suggestions=suggestions)


def build_reply(action: Action, cart: Cart, catalog: Catalog) -> Reply:
    """Compose the reply for an already-applied action.

    ``cart`` must be the snapshot taken after any mutation so the menu and
    the cart cards reflect it. AddItem/RemoveItem raise CatalogMiss for ids
    the catalog does not know.
    """
    menu = default_menu(cart)
    if isinstance(action, ShowHelp):
        return TextReply(text=C.RSP_HELP_TEXT, suggestions=menu)
    if isinstance(action, ShowHours):
        return TextReply(text=C.RSP_HOURS_TEXT, suggestions=menu)
    if isinstance(action, ShowCatalog):
        cards = [inventory_card(item) for item in catalog.list()]
        return _cards_reply(cards, menu, C.RSP_EMPTY_CATALOG)
    if isinstance(action, ShowCart):
        cards = [cart_card(item, catalog) for item in cart.items]
        return _cards_reply(cards, menu, C.RSP_EMPTY_CART)
    if isinstance(action, AddItem):
        title = catalog.get(action.item_id).title
        return TextReply(text=C.RSP_ITEM_ADDED.format(title=title), suggestions=menu)
    if isinstance(action, RemoveItem):
        title = catalog.get(action.item_id).title
        return TextReply(text=C.RSP_ITEM_DELETED.format(title=title), suggestions=menu)
    return TextReply(text=C.RSP_DEFAULT, suggestions=menu)


def _card_fallback(card: Card) -> List[str]:
    return [part for part in (card.title, card.description, card.media_url) if part]


def fallback_text(reply: Reply) -> str:
    """Plain-text rendering for clients that cannot show rich cards."""
    if isinstance(reply, TextReply):
        return reply.text
    if isinstance(reply, SingleCardReply):
        return "\n\n".join(_card_fallback(reply.card))
    blocks = []
    for card in reply.cards:
        blocks.append("\n\n".join(_card_fallback(card)) + "\n" + C.FALLBACK_CARD_RULE)
    return "\n\n".join(blocks)
