from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Union

from . import constants as C
from .cart_models import Cart

_HELP_RE = re.compile(C.HELP_PATTERN)


@dataclass(frozen=True)
class ShowHelp:
    pass


@dataclass(frozen=True)
class ShowHours:
    pass


@dataclass(frozen=True)
class ShowCatalog:
    pass


@dataclass(frozen=True)
class ShowCart:
    pass


@dataclass(frozen=True)
class AddItem:
    item_id: str


@dataclass(frozen=True)
class RemoveItem:
    item_id: str


@dataclass(frozen=True)
class EchoDefault:
    pass


Action = Union[ShowHelp, ShowHours, ShowCatalog, ShowCart, AddItem, RemoveItem, EchoDefault]


def normalize(text: str) -> str:
    return (text or "").lower().strip()


def route(text: str, cart: Optional[Cart] = None) -> Action:
    """Map user text (typed or a tapped postback) to an Action.

    Rules are checked in order and the first match wins. ``cart`` is part of
    the call so routing can become cart-aware without touching callers; no
    current rule reads it.
    """
    t = normalize(text)
    if _HELP_RE.fullmatch(t):
        return ShowHelp()
    if t == C.HOURS_COMMAND:
        return ShowHours()
    if t == C.SHOP_COMMAND:
        return ShowCatalog()
    if t == C.VIEW_CART_COMMAND:
        return ShowCart()
    if t.startswith(C.ADD_ITEM_COMMAND):
        return AddItem(item_id=t[len(C.ADD_ITEM_COMMAND):])
    if t.startswith(C.DELETE_ITEM_COMMAND):
        return RemoveItem(item_id=t[len(C.DELETE_ITEM_COMMAND):])
    return EchoDefault()


def postback_for(action: Action) -> Optional[str]:
    """Postback token that routes back to ``action``; None for EchoDefault."""
    if isinstance(action, ShowHelp):
        return C.HELP_COMMAND
    if isinstance(action, ShowHours):
        return C.HOURS_COMMAND
    if isinstance(action, ShowCatalog):
        return C.SHOP_COMMAND
    if isinstance(action, ShowCart):
        return C.VIEW_CART_COMMAND
    if isinstance(action, AddItem):
        return C.ADD_ITEM_COMMAND + action.item_id
    if isinstance(action, RemoveItem):
        return C.DELETE_ITEM_COMMAND + action.item_id
    return None
