"""Translation of pipeline outcomes into the public response contract.

This is the single place internal error kinds become public responses.
Failures are reported with generic messages; the reason is logged, never
returned, so an adversarial prompt cannot be tuned against the validator.
"""

from __future__ import annotations

from typing import Any

from shopassist.core.types import (
    CreateEntity,
    Error,
    GatewayResponse,
    Intent,
    IntentName,
    MaintenanceCheck,
    Navigation,
    Search,
    SearchOutcome,
    Unknown,
    VinLookup,
)
from shopassist.exceptions import (
    ConfigurationError,
    ExecutionError,
    SafetyViolationError,
    ShopAssistError,
    SynthesisError,
)

HELP_MESSAGE = (
    "Hi there! I can help you navigate pages, check maintenance, "
    "or search for customers. What would you like to do?"
)
SEARCH_FAILED_MESSAGE = "Sorry, I couldn't complete that search. Try rephrasing it."
SEARCH_UNSAFE_MESSAGE = "Query contains unsafe operations or is invalid"
SEARCH_UNAVAILABLE_MESSAGE = "Search service is unavailable"
INTERNAL_ERROR_MESSAGE = "Sorry, I encountered an error. Please try again."

NAVIGATION_MESSAGES = {
    "customers": "Taking you to the customers page.",
    "repair_orders": "Opening repair orders.",
    "parts": "Opening parts manager.",
    "settings": "Opening settings.",
}

NEW_REPAIR_ORDER_URL = "/repair-orders/new"


class ResponseComposer:
    """Builds :class:`GatewayResponse` objects and search endpoint bodies."""

    def __init__(self, include_sql: bool = True) -> None:
        self._include_sql = include_sql

    def compose(self, intent: Intent) -> GatewayResponse:
        """Response for an intent that needs no further work."""
        if isinstance(intent, Navigation):
            return GatewayResponse(
                intent=intent.name,
                message=NAVIGATION_MESSAGES.get(intent.destination, "Navigating."),
                action="navigate",
                url=intent.url,
                action_data={"url": intent.url},
            )
        if isinstance(intent, MaintenanceCheck):
            return GatewayResponse(
                intent=intent.name,
                message="Let me check what services are due for your vehicle.",
                action="show_maintenance_dialog",
                data={},
            )
        if isinstance(intent, CreateEntity):
            return GatewayResponse(
                intent=intent.name,
                message="Let's create a new repair order.",
                action="navigate",
                url=NEW_REPAIR_ORDER_URL,
                action_data={"url": NEW_REPAIR_ORDER_URL, "kind": intent.kind},
            )
        if isinstance(intent, VinLookup):
            return GatewayResponse(
                intent=intent.name,
                message="I'll decode that VIN for you.",
                action="vin_lookup",
                data={"vin": intent.vin},
            )
        if isinstance(intent, Unknown):
            return GatewayResponse(intent=intent.name, message=HELP_MESSAGE)
        if isinstance(intent, Error):
            if intent.kind == "search":
                return GatewayResponse(
                    intent=IntentName.SEARCH_ERROR, message=SEARCH_FAILED_MESSAGE
                )
            return GatewayResponse(intent=intent.name, message=INTERNAL_ERROR_MESSAGE)
        if isinstance(intent, Search):
            raise ValueError("Search intents are composed from their outcome")
        raise TypeError(f"Unhandled intent type: {type(intent).__name__}")

    def search_results(self, intent: Search, outcome: SearchOutcome) -> GatewayResponse:
        """Command-endpoint response for a successful search."""
        action_data: dict[str, Any] = {
            "results": outcome.result.rows,
            "entity": outcome.query.entity_tag,
            "query": intent.query,
            "count": outcome.result.row_count,
        }
        if self._include_sql:
            action_data["sql"] = outcome.query.sql_text
        return GatewayResponse(
            intent=intent.name,
            message=outcome.query.interpretation or f"Found {outcome.result.row_count} results.",
            action="show_search_results",
            action_data=action_data,
        )

    def search_failure(self, error: ShopAssistError) -> GatewayResponse:
        """Command-endpoint response for any failed search."""
        if isinstance(error, ConfigurationError):
            return GatewayResponse(
                intent=IntentName.SEARCH_ERROR, message=SEARCH_UNAVAILABLE_MESSAGE
            )
        return self.compose(Error(kind="search"))

    def search_payload(self, outcome: SearchOutcome) -> dict[str, Any]:
        """Search-endpoint body for a successful search.

        ``sql`` is always the exact text that was validated and executed.
        """
        payload: dict[str, Any] = {
            "success": True,
            "interpretation": outcome.query.interpretation,
            "entity": outcome.query.entity_tag,
            "results": outcome.result.rows,
            "count": outcome.result.row_count,
            "estimated_results": outcome.query.estimated_result_count,
        }
        if self._include_sql:
            payload["sql"] = outcome.query.sql_text
        return payload

    def search_error_payload(self, error: Exception) -> tuple[int, dict[str, Any]]:
        """Status code and search-endpoint body for a failed search."""
        if isinstance(error, SafetyViolationError):
            return 400, {
                "success": False,
                "error": SEARCH_UNSAFE_MESSAGE,
                "interpretation": error.interpretation or "Cannot process this query",
            }
        if isinstance(error, SynthesisError):
            return 400, {
                "success": False,
                "error": "Could not turn that request into a search",
                "interpretation": error.interpretation or "Cannot process this query",
            }
        if isinstance(error, ExecutionError):
            return 500, {
                "success": False,
                "error": "Search failed",
                "interpretation": "Search failed",
            }
        return 500, {
            "success": False,
            "error": SEARCH_UNAVAILABLE_MESSAGE,
            "interpretation": "Search failed",
        }

    def internal_error(self) -> GatewayResponse:
        return self.compose(Error(kind="internal"))
