"""Search synthesis endpoint."""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from shopassist.api.deps import gateway_dep, read_json_object, required_text
from shopassist.core.types import CommandContext
from shopassist.exceptions import RequestValidationError, ShopAssistError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/search", tags=["Search"])


@router.post("/ai-search")
async def ai_search(request: Request, gateway: gateway_dep):
    """Turn a natural-language query into rows.

    ``sql`` in the answer is the exact text that was validated and executed.
    """
    try:
        body = await read_json_object(request)
        query = required_text(body, "query", "Query is required")
    except RequestValidationError as e:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": e.message, "interpretation": None},
        )

    context = CommandContext.from_payload(body.get("context"))
    composer = gateway.composer
    try:
        outcome = await run_in_threadpool(gateway.search, query, context)
    except ShopAssistError as e:
        status_code, content = composer.search_error_payload(e)
        logger.warning(f"Search request failed with {status_code}: {type(e).__name__}")
        return JSONResponse(status_code=status_code, content=content)
    except Exception as e:
        logger.exception("Unexpected failure in search endpoint")
        status_code, content = composer.search_error_payload(e)
        return JSONResponse(status_code=status_code, content=content)

    return composer.search_payload(outcome)
