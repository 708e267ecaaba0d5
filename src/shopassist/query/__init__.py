"""Search query generation, validation and execution.

Pipeline:
    1. Synthesis - a text-generation model (or the rule-based fallback)
       proposes one parameterized SELECT
    2. Validation - fail-closed static checks issue an ApprovedQuery
    3. Execution - only an ApprovedQuery runs, read-only and row-capped
"""

from shopassist.query.executor import QueryExecutor
from shopassist.query.fallback import RuleBasedSynthesizer
from shopassist.query.generators import OpenAITextGenerator, TextGenerator, get_generator
from shopassist.query.prompt import PromptBuilder
from shopassist.query.synthesis import (
    QuerySynthesisClient,
    QuerySynthesizer,
    parse_generated_query,
)
from shopassist.query.validator import ApprovedQuery, SafetyValidator, validate_query

__all__ = [
    "ApprovedQuery",
    "OpenAITextGenerator",
    "PromptBuilder",
    "QueryExecutor",
    "QuerySynthesisClient",
    "QuerySynthesizer",
    "RuleBasedSynthesizer",
    "SafetyValidator",
    "TextGenerator",
    "get_generator",
    "parse_generated_query",
    "validate_query",
]
