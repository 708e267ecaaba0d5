"""ShopAssist - natural-language command and search gateway for a repair shop.

Free-text commands (typed or voice-transcribed) are classified into intents.
Navigation, maintenance, create and VIN commands resolve immediately; search
commands are turned into SQL by a text-generation model, checked by a
fail-closed safety validator, and only then run read-only against the shop
database.

Example:
    from shopassist import CommandGateway, DatabaseConnection, Settings, build_gateway

    settings = Settings()
    with DatabaseConnection(settings.database_url) as connection:
        gateway = build_gateway(settings, connection)

        response = gateway.handle("open repair orders")
        # {"intent": "navigation", "action": "navigate", "url": "/repair-orders", ...}
        print(response.to_payload())

    # The validator can be used on its own
    from shopassist import validate_query

    verdict = validate_query("SELECT * FROM customers; DROP TABLE customers;")
    assert not verdict.safe
"""

from shopassist.command.classifier import CommandClassifier, classify_text
from shopassist.core.config import Settings, configure_logging, get_settings
from shopassist.core.connection import DatabaseConnection
from shopassist.core.types import (
    Command,
    CommandContext,
    CreateEntity,
    Error,
    GatewayResponse,
    GeneratedQuery,
    Intent,
    IntentName,
    MaintenanceCheck,
    Navigation,
    QueryResult,
    SafetyVerdict,
    Search,
    SearchOutcome,
    Unknown,
    VinLookup,
    Violation,
    ViolationRule,
)
from shopassist.exceptions import (
    ConfigurationError,
    ExecutionError,
    RequestValidationError,
    SafetyViolationError,
    ShopAssistError,
    SynthesisError,
    UnapprovedQueryError,
)
from shopassist.gateway.composer import ResponseComposer
from shopassist.gateway.service import CommandGateway, build_gateway
from shopassist.query.executor import QueryExecutor
from shopassist.query.validator import ApprovedQuery, SafetyValidator, validate_query

__version__ = "0.1.0"

__all__ = [
    # Gateway
    "CommandGateway",
    "build_gateway",
    "ResponseComposer",
    "CommandClassifier",
    "classify_text",
    "SafetyValidator",
    "ApprovedQuery",
    "validate_query",
    "QueryExecutor",
    # Configuration
    "Settings",
    "get_settings",
    "configure_logging",
    "DatabaseConnection",
    # Types
    "Command",
    "CommandContext",
    "Intent",
    "IntentName",
    "Navigation",
    "MaintenanceCheck",
    "CreateEntity",
    "Search",
    "VinLookup",
    "Unknown",
    "Error",
    "GeneratedQuery",
    "SafetyVerdict",
    "Violation",
    "ViolationRule",
    "QueryResult",
    "SearchOutcome",
    "GatewayResponse",
    # Exceptions
    "ShopAssistError",
    "ConfigurationError",
    "RequestValidationError",
    "SynthesisError",
    "SafetyViolationError",
    "UnapprovedQueryError",
    "ExecutionError",
]
