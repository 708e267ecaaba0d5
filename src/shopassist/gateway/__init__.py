"""Pipeline orchestration and response composition."""

from shopassist.gateway.composer import ResponseComposer
from shopassist.gateway.service import CommandGateway, build_gateway

__all__ = ["CommandGateway", "ResponseComposer", "build_gateway"]
