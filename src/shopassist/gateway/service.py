"""Command and search pipeline.

raw command -> classifier -> (terminal intents) composer
                          -> (search) synthesis -> validator -> executor -> composer

Each request is independent; the gateway keeps no per-request state. The
executor is only reachable through an :class:`ApprovedQuery`, and no pooled
connection is held while synthesis is in flight.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from shopassist.command.classifier import CommandClassifier
from shopassist.core.config import Settings
from shopassist.core.connection import DatabaseConnection
from shopassist.core.types import (
    Command,
    CommandContext,
    GatewayResponse,
    GeneratedQuery,
    Search,
    SearchOutcome,
)
from shopassist.exceptions import (
    ConfigurationError,
    ExecutionError,
    SafetyViolationError,
    ShopAssistError,
    SynthesisError,
)
from shopassist.gateway.composer import ResponseComposer
from shopassist.query.executor import QueryExecutor
from shopassist.query.fallback import RuleBasedSynthesizer
from shopassist.query.generators import get_generator
from shopassist.query.prompt import PromptBuilder
from shopassist.query.synthesis import QuerySynthesisClient, QuerySynthesizer
from shopassist.query.validator import SafetyValidator

logger = logging.getLogger(__name__)


class CommandGateway:
    """Ties classifier, synthesis, validation, execution and composition together."""

    def __init__(
        self,
        classifier: CommandClassifier,
        synthesizer: QuerySynthesizer | None,
        validator: SafetyValidator,
        executor: QueryExecutor,
        composer: ResponseComposer | None = None,
        fallback: QuerySynthesizer | None = None,
        retries: int = 1,
        retry_backoff: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the gateway.

        Args:
            classifier: Command classifier
            synthesizer: Primary query synthesizer (None when not configured)
            validator: Safety validator
            executor: Read-only query executor
            composer: Response composer
            fallback: Synthesizer used after the primary one fails
            retries: Extra attempts for retryable synthesis failures
            retry_backoff: Seconds before the first retry, doubled each time
            sleep: Sleep function (replaced in tests)
        """
        self._classifier = classifier
        self._synthesizer = synthesizer
        self._validator = validator
        self._executor = executor
        self._composer = composer or ResponseComposer()
        self._fallback = fallback
        self._retries = max(retries, 0)
        self._retry_backoff = retry_backoff
        self._sleep = sleep

    @property
    def composer(self) -> ResponseComposer:
        return self._composer

    def handle(self, text: str, context: CommandContext | None = None) -> GatewayResponse:
        """Handle one free-text command end to end.

        Search failures become a ``search_error`` response; anything that is
        not a :class:`ShopAssistError` propagates to the caller.
        """
        command = Command.from_text(text, context)
        logger.info(f"Command: {command.raw_text!r} (page: {command.context.current_page})")

        intent = self._classifier.classify(command)
        if not isinstance(intent, Search):
            return self._composer.compose(intent)

        try:
            # Full text, not the stripped query, gives the model the most context
            outcome = self.search(intent.text, command.context, search_query=intent.query)
        except ShopAssistError as e:
            self._log_search_failure(e)
            return self._composer.search_failure(e)
        return self._composer.search_results(intent, outcome)

    def search(
        self,
        text: str,
        context: CommandContext | None = None,
        search_query: str | None = None,
    ) -> SearchOutcome:
        """Synthesize, validate and execute a search.

        Raises:
            SynthesisError: No usable candidate query
            ConfigurationError: No synthesizer configured and no fallback
            SafetyViolationError: Candidate rejected by the validator
            ExecutionError: Database failure after approval
        """
        context = context or CommandContext()
        query = self._synthesize(text, context)
        approved = self._validator.approve(query)
        result = self._executor.execute(approved)
        return SearchOutcome(query=query, result=result, search_query=search_query or text)

    def _synthesize(self, text: str, context: CommandContext) -> GeneratedQuery:
        error: ShopAssistError
        if self._synthesizer is None:
            error = ConfigurationError("No query synthesizer configured")
        else:
            attempt = 0
            while True:
                try:
                    return self._synthesizer.synthesize(text, context)
                except SynthesisError as e:
                    error = e
                    if not e.retryable or attempt >= self._retries:
                        break
                    delay = self._retry_backoff * (2**attempt)
                    attempt += 1
                    logger.warning(
                        f"Synthesis failed ({e.message}); retry {attempt}/{self._retries} "
                        f"in {delay:.2f}s"
                    )
                    self._sleep(delay)

        if self._fallback is None:
            raise error
        logger.warning(f"Synthesis unavailable ({error.message}); using rule-based fallback")
        return self._fallback.synthesize(text, context)

    def _log_search_failure(self, error: ShopAssistError) -> None:
        if isinstance(error, SafetyViolationError):
            logger.warning(f"Search rejected: rules {', '.join(error.verdict.rules)}")
        elif isinstance(error, SynthesisError):
            logger.warning(f"Search synthesis failed: {error.message}")
        elif isinstance(error, ExecutionError):
            logger.error(f"Search execution failed: {error.message}")
        else:
            logger.error(f"Search failed: {error.message}")


def build_gateway(settings: Settings, connection: DatabaseConnection) -> CommandGateway:
    """Wire a gateway from settings around an already-open connection pool."""
    synthesizer: QuerySynthesizer | None = None
    if settings.llm_api_key:
        generator = get_generator(
            settings.llm_api_key,
            model=settings.llm_model,
            base_url=settings.llm_base_url,
            timeout=settings.synthesis_timeout_seconds,
        )
        synthesizer = QuerySynthesisClient(
            generator,
            prompt_builder=PromptBuilder(tables=settings.allowed_tables),
            max_concurrency=settings.synthesis_concurrency,
            acquire_timeout=settings.synthesis_timeout_seconds,
        )
    else:
        logger.warning("No text-generation API key configured; AI search is disabled")

    return CommandGateway(
        classifier=CommandClassifier(),
        synthesizer=synthesizer,
        validator=SafetyValidator(allowed_tables=settings.allowed_tables),
        executor=QueryExecutor(
            connection,
            statement_timeout_ms=settings.statement_timeout_ms,
            max_rows=settings.max_result_rows,
        ),
        composer=ResponseComposer(include_sql=settings.include_sql_in_responses),
        fallback=RuleBasedSynthesizer() if settings.fallback_search_enabled else None,
        retries=settings.synthesis_retries,
        retry_backoff=settings.synthesis_retry_backoff_seconds,
    )
