from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Request
from pydantic import ValidationError

from ..callback_models import CallbackPayload

router = APIRouter(tags=["callback"])
logger = logging.getLogger(__name__)


@router.post("/callback")
def callback(request: Request, payload: Any = Body(...)) -> dict:
    """Webhook entrypoint. Always answers 200 so the platform does not redeliver."""
    logger.info(f"Inbound callback: {payload}")
    try:
        parsed = CallbackPayload.model_validate(payload)
    except ValidationError as e:
        logger.warning(f"Dropping malformed webhook: {e.errors()}")
        return {"ok": True, "status": "malformed"}
    status = request.app.state.dispatcher.handle(parsed)
    return {"ok": True, "status": status}
