"""Command endpoint: free text in, one GatewayResponse out."""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from shopassist.api.deps import gateway_dep, read_json_object, required_text
from shopassist.core.types import CommandContext
from shopassist.exceptions import RequestValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Assistant"])


@router.post("/ai-assistant")
async def handle_command(request: Request, gateway: gateway_dep):
    """Classify a command and run whatever it asks for.

    Search failures still answer 200 with intent ``search_error``; only a
    malformed request (400) or an unexpected failure (500) changes the status.
    """
    try:
        body = await read_json_object(request)
        command = required_text(body, "command", "Command is required")
    except RequestValidationError as e:
        logger.info(f"Rejected command request: {e.message}")
        return JSONResponse(status_code=400, content={"error": "Command is required"})

    context = CommandContext.from_payload(body.get("context"))
    response = await run_in_threadpool(gateway.handle, command, context)
    return response.to_payload()
