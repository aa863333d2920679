from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class CartItem:
    item_id: str
    # Copied from the catalog when first added; survives catalog changes.
    title: str
    count: int


@dataclass(frozen=True)
class Cart:
    """Immutable snapshot of a cart, items in first-added order."""
    cart_id: str
    items: Tuple[CartItem, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.items

    def find(self, item_id: str) -> Optional[CartItem]:
        for item in self.items:
            if item.item_id == item_id:
                return item
        return None
