# cartbot/app.py
from __future__ import annotations

import logging
import os
from typing import Optional

from fastapi import FastAPI, Request

from .bm_client import BusinessMessagesClient, load_service_account
from .cart_store import CartStore, MemoryCartStore, SqlCartStore
from .catalog import load_catalog
from .config import Settings, load_settings
from .dedup_cache import DedupCache
from .dispatcher import Dispatcher
from .routers.callback import router as callback_router

logger = logging.getLogger("uvicorn")


def configure_logging(level_name: str) -> None:
    level = getattr(logging, level_name, logging.INFO)
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
    logging.getLogger("cartbot").setLevel(level)


def build_cart_store(settings: Settings) -> CartStore:
    # No database configured: keep carts in process memory
    if not settings.database_url:
        logger.info("DATABASE_URL not set; carts are kept in memory")
        return MemoryCartStore(max_items=settings.max_cart_items)
    return SqlCartStore.from_url(settings.database_url, max_items=settings.max_cart_items)


def build_dispatcher(settings: Settings) -> Dispatcher:
    credentials = None
    if settings.bm_credentials_file:
        logger.info(f"Minting outbound access tokens from {settings.bm_credentials_file}")
        credentials = load_service_account(settings.bm_credentials_file)
    transport = BusinessMessagesClient(
        api_url=settings.bm_api_url,
        access_token=settings.bm_access_token,
        agent_name=settings.bm_agent_name,
        timeout=settings.outbound_timeout_secs,
        credentials=credentials,
    )
    if not transport.ready:
        logger.warning("Neither BM_CREDENTIALS_FILE nor BM_ACCESS_TOKEN set; outbound replies will fail and be logged")
    return Dispatcher(
        catalog=load_catalog(settings.catalog_file),
        carts=build_cart_store(settings),
        dedup=DedupCache(ttl_seconds=settings.dedup_ttl_secs, max_entries=settings.dedup_max_entries),
        transport=transport,
        budget_secs=settings.callback_budget_secs,
    )


def create_app(settings: Optional[Settings] = None, dispatcher: Optional[Dispatcher] = None) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level)
    logger.info("=== App startup: loading catalog and cart store ===")

    app = FastAPI(title="BM Cart Bot")
    app.state.settings = settings
    app.state.dispatcher = dispatcher or build_dispatcher(settings)
    app.include_router(callback_router)

    @app.get("/api/health")
    def health(request: Request):
        d: Dispatcher = request.app.state.dispatcher
        transport_ready = getattr(d.transport, "ready", None)
        return {
            "ok": True,
            "catalog_items": len(d.catalog),
            "cart_store": d.carts.kind,
            "dedup_entries": len(d.dedup),
            "outbound_ready": bool(transport_ready),
        }

    return app


app = create_app()

# ============================================================
# Local dev entrypoint
# ============================================================
if __name__ == "__main__":
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    import uvicorn
    uvicorn.run("cartbot.app:app", host=host, port=port, reload=True)
