from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

HERE = Path(__file__).resolve().parent
KB_DIR = HERE / "knowledgebase"


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the cart bot, read once at startup."""
    bm_api_url: str
    bm_access_token: Optional[str]
    bm_agent_name: str
    outbound_timeout_secs: float
    callback_budget_secs: float
    dedup_ttl_secs: float
    dedup_max_entries: int
    max_cart_items: int
    database_url: Optional[str]
    catalog_file: Path
    log_level: str
    bm_credentials_file: Optional[str] = None


def _read_token(path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    token = Path(path).read_text(encoding="utf-8").strip()
    return token or None


def normalize_db_url(url: Optional[str]) -> Optional[str]:
    # SQLAlchemy requires the "postgresql://" scheme (not legacy "postgres://").
    if url and url.startswith("postgres://"):
        return "postgresql://" + url[len("postgres://"):]
    return url or None


def load_settings() -> Settings:
    """Build Settings from the environment (and a .env file, when present).

    Invalid numeric values raise ValueError so a misconfigured deployment
    fails at startup rather than on the first webhook.
    """
    load_dotenv()
    catalog_file = os.getenv("CATALOG_FILE")
    return Settings(
        bm_api_url=os.getenv("BM_API_URL", "https://businessmessages.googleapis.com/v1").rstrip("/"),
        bm_access_token=os.getenv("BM_ACCESS_TOKEN") or _read_token(os.getenv("BM_ACCESS_TOKEN_FILE")),
        bm_agent_name=os.getenv("BM_AGENT_NAME", "BM Cart Bot"),
        outbound_timeout_secs=float(os.getenv("OUTBOUND_TIMEOUT_SECS", "10")),
        callback_budget_secs=float(os.getenv("CALLBACK_BUDGET_SECS", "30")),
        dedup_ttl_secs=float(os.getenv("DEDUP_TTL_SECS", "600")),
        dedup_max_entries=int(os.getenv("DEDUP_MAX_ENTRIES", "10000")),
        max_cart_items=int(os.getenv("MAX_CART_ITEMS", "50")),
        database_url=normalize_db_url(os.getenv("DATABASE_URL") or os.getenv("DB_URL")),
        catalog_file=Path(catalog_file) if catalog_file else KB_DIR / "catalog.json",
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        bm_credentials_file=os.getenv("BM_CREDENTIALS_FILE") or None,
    )
