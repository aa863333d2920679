from __future__ import annotations

import hashlib
import json
import logging
import uuid
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, ValidationError

logger = logging.getLogger(__name__)


class CatalogMiss(KeyError):
    """Raised when an item id is not part of the catalog."""

    def __init__(self, item_id: str) -> None:
        super().__init__(item_id)
        self.item_id = item_id


def stable_item_id(title: str) -> str:
    """Name-based UUID of the title: MD5 digest with version 3 bits set.

    Same title, same id, on every process start.
    """
    digest = hashlib.md5(title.encode("utf-8")).digest()
    return str(uuid.UUID(bytes=digest, version=3))


class InventoryItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    media_url: str
    price: Optional[float] = None


class CatalogEntry(BaseModel):
    title: str
    media_url: str
    price: Optional[float] = None


class Catalog:
    """Read-only product catalog keyed by the stable item id."""

    def __init__(self, entries: Iterable[CatalogEntry]) -> None:
        items: Dict[str, InventoryItem] = {}
        for entry in entries:
            item_id = stable_item_id(entry.title)
            if item_id in items:
                logger.warning(f"Duplicate catalog title skipped: {entry.title}")
                continue
            items[item_id] = InventoryItem(
                id=item_id,
                title=entry.title,
                media_url=entry.media_url,
                price=entry.price,
            )
        self._items = items
        self._ordered: Tuple[InventoryItem, ...] = tuple(items.values())

    @classmethod
    def from_mapping(cls, title_to_media: Mapping[str, str]) -> "Catalog":
        return cls(CatalogEntry(title=t, media_url=u) for t, u in title_to_media.items())

    def list(self) -> Tuple[InventoryItem, ...]:
        return self._ordered

    def get(self, item_id: str) -> InventoryItem:
        try:
            return self._items[item_id]
        except KeyError:
            raise CatalogMiss(item_id) from None

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def __len__(self) -> int:
        return len(self._ordered)


def _read_json(path: Path):
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        logger.warning(f"Catalog file not found: {path}")
        return None


def load_catalog(path: Path) -> Catalog:
    """Load the catalog JSON.

    Accepts either ``{"items": [{"title", "media_url", "price"?}, ...]}`` or a
    flat ``{"<title>": "<media url>"}`` object. Rows that fail validation are
    logged and skipped.
    """
    data = _read_json(path) or {}
    if isinstance(data, dict) and "items" not in data:
        return Catalog.from_mapping({str(k): str(v) for k, v in data.items()})

    rows = data.get("items", []) if isinstance(data, dict) else data
    entries: List[CatalogEntry] = []
    for idx, row in enumerate(rows or []):
        try:
            entries.append(CatalogEntry.model_validate(row))
        except ValidationError as e:
            logger.warning(f"Skipping invalid catalog row {idx}: {e}")
    catalog = Catalog(entries)
    logger.info(f"Loaded {len(catalog)} catalog items from {path}")
    return catalog
