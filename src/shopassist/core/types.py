"""Core value types for the command and search gateway.

Commands and intents are immutable and produced once per request; nothing
here holds state across requests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, ClassVar

from pydantic import BaseModel, Field

Scalar = str | int | float | bool | None


class IntentName(StrEnum):
    """Wire names of intents as seen by the UI/voice layer."""

    NAVIGATION = "navigation"
    MAINTENANCE = "maintenance_recommendations"
    CREATE = "ro_create"
    SEARCH = "search"
    VIN_LOOKUP = "vin_lookup"
    UNKNOWN = "unknown"
    ERROR = "error"
    SEARCH_ERROR = "search_error"


class CommandContext(BaseModel):
    """Where the user was when they issued the command."""

    current_page: str | None = None
    work_order_id: int | str | None = None
    ro_number: str | None = None
    customer_id: int | str | None = None
    customer_name: str | None = None
    vehicle_id: int | str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    model_config = {"frozen": True}

    @classmethod
    def from_payload(cls, payload: Any) -> CommandContext:
        """Build a context from the loosely-shaped JSON the front end sends.

        Accepts flat keys (``workOrderId``) as well as nested objects
        (``workOrder: {id, ro_number}``). Anything that is not a mapping
        yields an empty context.
        """
        if not isinstance(payload, dict):
            return cls()

        def nested(key: str) -> dict[str, Any]:
            value = payload.get(key)
            return value if isinstance(value, dict) else {}

        work_order = nested("workOrder")
        customer = nested("customer")
        vehicle = nested("vehicle")

        return cls(
            current_page=_as_text(payload.get("page") or payload.get("currentPage")),
            work_order_id=_as_id(payload.get("workOrderId") or work_order.get("id")),
            ro_number=_as_text(payload.get("roNumber") or work_order.get("ro_number")),
            customer_id=_as_id(payload.get("customerId") or customer.get("id")),
            customer_name=_as_text(customer.get("name") or customer.get("customer_name")),
            vehicle_id=_as_id(payload.get("vehicleId") or vehicle.get("id")),
        )

    @property
    def entity_ids(self) -> dict[str, int | str]:
        """Ids of the records currently in focus."""
        ids = {
            "work_order": self.work_order_id,
            "customer": self.customer_id,
            "vehicle": self.vehicle_id,
        }
        return {k: v for k, v in ids.items() if v is not None}


def _as_text(value: Any) -> str | None:
    if value is None or isinstance(value, dict | list):
        return None
    text = str(value).strip()
    return text or None


def _as_id(value: Any) -> int | str | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    return _as_text(value)


@dataclass(frozen=True)
class Command:
    """A free-text command, typed or voice-transcribed."""

    raw_text: str
    normalized_text: str
    context: CommandContext = field(default_factory=CommandContext)

    @classmethod
    def from_text(cls, text: str, context: CommandContext | None = None) -> Command:
        return cls(
            raw_text=text,
            normalized_text=text.strip().lower(),
            context=context or CommandContext(),
        )


# === Intents ===


@dataclass(frozen=True)
class Navigation:
    url: str
    destination: str
    name: ClassVar[IntentName] = IntentName.NAVIGATION


@dataclass(frozen=True)
class MaintenanceCheck:
    name: ClassVar[IntentName] = IntentName.MAINTENANCE


@dataclass(frozen=True)
class CreateEntity:
    kind: str
    name: ClassVar[IntentName] = IntentName.CREATE


@dataclass(frozen=True)
class Search:
    """Open-ended search.

    ``query`` is the command with its leading trigger word stripped (what the
    user is looking for); ``text`` is the full original command, which is
    what gets sent for synthesis.
    """

    query: str
    text: str
    name: ClassVar[IntentName] = IntentName.SEARCH


@dataclass(frozen=True)
class VinLookup:
    vin: str
    name: ClassVar[IntentName] = IntentName.VIN_LOOKUP


@dataclass(frozen=True)
class Unknown:
    name: ClassVar[IntentName] = IntentName.UNKNOWN


@dataclass(frozen=True)
class Error:
    """Terminal failure. ``kind`` is ``"search"`` or ``"internal"``."""

    kind: str
    name: ClassVar[IntentName] = IntentName.ERROR


Intent = Navigation | MaintenanceCheck | CreateEntity | Search | VinLookup | Unknown | Error


# === Query pipeline ===


class GeneratedQuery(BaseModel):
    """Candidate query produced by synthesis. Never executed directly."""

    sql_text: str
    parameters: tuple[Scalar, ...] = ()
    interpretation: str = ""
    entity_tag: str = ""
    estimated_result_count: int | None = None

    model_config = {"frozen": True}


class ViolationRule(StrEnum):
    """Safety rules enforced on generated SQL."""

    EMPTY = "empty"
    MULTIPLE_STATEMENTS = "multiple_statements"
    STATEMENT_TYPE = "statement_type"
    FORBIDDEN_KEYWORD = "forbidden_keyword"
    COMMENT = "comment"
    DANGEROUS_FUNCTION = "dangerous_function"
    MISSING_LIMIT = "missing_limit"
    TABLE_NOT_ALLOWED = "table_not_allowed"
    SYSTEM_CATALOG = "system_catalog"
    PARAMETER_MISMATCH = "parameter_mismatch"
    UNTERMINATED_LITERAL = "unterminated_literal"
    UNSUPPORTED_TOKEN = "unsupported_token"


class Violation(BaseModel):
    rule: ViolationRule
    detail: str

    model_config = {"frozen": True}


class SafetyVerdict(BaseModel):
    """Result of statically checking one exact SQL string."""

    sql_text: str
    safe: bool
    violations: tuple[Violation, ...] = ()
    warnings: tuple[str, ...] = ()
    tables_accessed: tuple[str, ...] = ()

    model_config = {"frozen": True}

    @property
    def rules(self) -> list[str]:
        """Violated rule names, deduplicated, in first-seen order."""
        return list(dict.fromkeys(v.rule.value for v in self.violations))


class QueryResult(BaseModel):
    """Rows returned by the executor for an approved query."""

    rows: list[dict[str, Any]] = Field(default_factory=list)
    row_count: int = 0
    duration_ms: float = 0.0
    truncated: bool = False


class SearchOutcome(BaseModel):
    """Successful trip through synthesis, validation and execution."""

    query: GeneratedQuery
    result: QueryResult
    search_query: str = ""


class GatewayResponse(BaseModel):
    """The only object returned across the system boundary."""

    intent: str
    message: str
    action: str | None = None
    action_data: dict[str, Any] | None = None
    url: str | None = None
    data: dict[str, Any] | None = None

    def to_payload(self) -> dict[str, Any]:
        """JSON body: intent, message and action always; the rest when set."""
        payload: dict[str, Any] = {
            "intent": self.intent,
            "message": self.message,
            "action": self.action,
        }
        for key in ("url", "data", "action_data"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        return payload
