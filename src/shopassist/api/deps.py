"""Request helpers shared by the endpoints."""

from __future__ import annotations

import json
from typing import Annotated, Any

from fastapi import Depends, Request

from shopassist.exceptions import ConfigurationError, RequestValidationError
from shopassist.gateway.service import CommandGateway


def get_gateway(request: Request) -> CommandGateway:
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise ConfigurationError("Gateway is not initialized")
    return gateway


gateway_dep = Annotated[CommandGateway, Depends(get_gateway)]


async def read_json_object(request: Request) -> dict[str, Any]:
    """Parse the body as a JSON object.

    Raises:
        RequestValidationError: If the body is not valid JSON or not an object
    """
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise RequestValidationError("Request body must be valid JSON") from e
    if not isinstance(body, dict):
        raise RequestValidationError("Request body must be a JSON object")
    return body


def required_text(body: dict[str, Any], field: str, message: str) -> str:
    value = body.get(field)
    if not isinstance(value, str) or not value.strip():
        raise RequestValidationError(message, field=field)
    return value
