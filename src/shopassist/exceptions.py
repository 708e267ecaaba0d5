"""Custom exceptions for ShopAssist.

Every pipeline stage owns its own error type. The response composer is the
only place these are translated into the public response shape, so the
messages here are for logs and operators, not for end users.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from shopassist.core.types import SafetyVerdict


class ShopAssistError(Exception):
    """Base exception for all ShopAssist errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Return error as JSON-serializable dict for logs and the CLI."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }


class ConfigurationError(ShopAssistError):
    """A required setting is missing or invalid."""

    pass


class RequestValidationError(ShopAssistError):
    """Malformed request body (e.g. missing command)."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message, {"field": field} if field else None)
        self.field = field


class SynthesisError(ShopAssistError):
    """The text-generation capability failed or returned unusable output.

    ``retryable`` is true for transport-level failures (timeouts, connection
    errors, rate limits) and false when the model answered but the answer
    cannot be used.
    """

    def __init__(
        self,
        message: str,
        retryable: bool = False,
        interpretation: str | None = None,
    ) -> None:
        super().__init__(message, {"retryable": retryable})
        self.retryable = retryable
        self.interpretation = interpretation


class SafetyViolationError(ShopAssistError):
    """Generated SQL failed one or more safety rules."""

    def __init__(self, verdict: SafetyVerdict, interpretation: str | None = None) -> None:
        rules = sorted({v.rule.value for v in verdict.violations})
        message = f"Query rejected by safety validator: {', '.join(rules)}"
        super().__init__(
            message,
            {"violations": [v.model_dump(mode="json") for v in verdict.violations]},
        )
        self.verdict = verdict
        self.interpretation = interpretation


class UnapprovedQueryError(ShopAssistError):
    """Something other than an approved query reached the executor."""

    pass


class ExecutionError(ShopAssistError):
    """Database failure after a safe verdict.

    The driver exception is chained as ``__cause__`` and logged; it is never
    part of the message.
    """

    def __init__(self, message: str = "Query execution failed", sql: str | None = None) -> None:
        super().__init__(message, {"sql": sql} if sql else None)
        self.sql = sql
