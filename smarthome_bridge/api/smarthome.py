"""
Smart home fulfillment endpoint.

The assistant platform posts every SYNC, QUERY, EXECUTE and DISCONNECT
envelope here.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse

from ..fulfillment import IntentDispatcher
from ..fulfillment.envelope import MALFORMED_BODY
from .dependencies import get_dispatcher

logger = logging.getLogger("bridge.api.smarthome")

router = APIRouter(prefix="/smarthome", tags=["Smart Home"])


@router.post("/fulfillment")
async def fulfillment(
    request: Request,
    authorization: Optional[str] = Header(None),
    dispatcher: IntentDispatcher = Depends(get_dispatcher),
):
    """Handle one smart home envelope."""
    try:
        body = await request.json()
    except ValueError:
        logger.warning("Fulfillment body is not valid JSON")
        return JSONResponse(status_code=400, content=dict(MALFORMED_BODY))

    result = await dispatcher.handle(body, authorization)
    return JSONResponse(status_code=result.status_code, content=result.body)
