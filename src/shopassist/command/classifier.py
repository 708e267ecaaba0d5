"""Rule-based command classification.

Rules are evaluated top to bottom and the first match wins. Narrow, precise
triggers (navigation, maintenance, create) come before the broad search
triggers so that a word like "order" is not swallowed by search; VIN
detection comes last because its pattern is the most likely to fire inside
unrelated sentences.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from typing import NamedTuple

from shopassist.core.types import (
    Command,
    CommandContext,
    CreateEntity,
    Intent,
    MaintenanceCheck,
    Navigation,
    Search,
    Unknown,
    VinLookup,
)

logger = logging.getLogger(__name__)

NAVIGATION_TRIGGERS = ("go to", "open", "navigate")

# (destination, url, pattern) in priority order
NAVIGATION_DESTINATIONS: tuple[tuple[str, str, re.Pattern[str]], ...] = (
    ("customers", "/customers", re.compile(r"customer")),
    ("repair_orders", "/repair-orders", re.compile(r"repair order|\bro\b")),
    ("parts", "/parts-manager", re.compile(r"part")),
    ("settings", "/settings", re.compile(r"setting")),
)

MAINTENANCE_TRIGGERS = ("service", "maintenance", "due")

CREATE_VERB = re.compile(r"\b(?:create|new)\b")
CREATE_OBJECT = re.compile(r"repair|order|\bro\b")

SEARCH_PREFIXES = ("find ", "search ", "list ", "show ", "all ")
SEARCH_PHRASES = ("search for", "customers who", "repair orders")

# Leading trigger words removed to get the bare search query; "all" is kept
# because "all customers" is itself the query.
SEARCH_STRIP = re.compile(r"^\s*(?:find|search\s+for|search|list|show)\s+", re.IGNORECASE)

# VINs are 17 characters and never contain I, O or Q
VIN_PATTERN = re.compile(r"\b[A-HJ-NPR-Z0-9]{17}\b", re.IGNORECASE)
VIN_WORD = re.compile(r"\bvin\b")


class Rule(NamedTuple):
    name: str
    matches: Callable[[Command], bool]
    build: Callable[[Command], Intent]


def _find_destination(text: str) -> tuple[str, str] | None:
    for destination, url, pattern in NAVIGATION_DESTINATIONS:
        if pattern.search(text):
            return destination, url
    return None


def _is_navigation(command: Command) -> bool:
    text = command.normalized_text
    if not any(trigger in text for trigger in NAVIGATION_TRIGGERS):
        return False
    # A trigger verb without a known destination falls through to later rules
    return _find_destination(text) is not None


def _navigation(command: Command) -> Intent:
    found = _find_destination(command.normalized_text)
    if found is None:
        raise ValueError(f"No navigation destination in command: {command.raw_text!r}")
    destination, url = found
    return Navigation(url=url, destination=destination)


def _is_maintenance(command: Command) -> bool:
    return any(trigger in command.normalized_text for trigger in MAINTENANCE_TRIGGERS)


def _is_create(command: Command) -> bool:
    text = command.normalized_text
    return bool(CREATE_VERB.search(text) and CREATE_OBJECT.search(text))


def _is_search(command: Command) -> bool:
    text = command.normalized_text
    return text.startswith(SEARCH_PREFIXES) or any(p in text for p in SEARCH_PHRASES)


def _search(command: Command) -> Intent:
    text = command.raw_text.strip()
    return Search(query=SEARCH_STRIP.sub("", text).strip(), text=text)


def _is_vin(command: Command) -> bool:
    return bool(VIN_PATTERN.search(command.raw_text) or VIN_WORD.search(command.normalized_text))


def _vin(command: Command) -> Intent:
    match = VIN_PATTERN.search(command.raw_text)
    return VinLookup(vin=match.group(0).upper() if match else "")


RULES: tuple[Rule, ...] = (
    Rule("navigation", _is_navigation, _navigation),
    Rule("maintenance", _is_maintenance, lambda _: MaintenanceCheck()),
    Rule("create", _is_create, lambda _: CreateEntity(kind="repair_order")),
    Rule("search", _is_search, _search),
    Rule("vin_lookup", _is_vin, _vin),
)


class CommandClassifier:
    """Maps a command to exactly one intent.

    Pure and total: the same command always yields the same intent, and a
    command no rule claims yields :class:`Unknown`.
    """

    def __init__(self, rules: tuple[Rule, ...] = RULES) -> None:
        self._rules = rules

    @property
    def rule_names(self) -> list[str]:
        return [rule.name for rule in self._rules]

    def classify(self, command: Command) -> Intent:
        for rule in self._rules:
            if rule.matches(command):
                intent = rule.build(command)
                logger.info(f"Classified command as {intent.name} (rule: {rule.name})")
                return intent
        logger.info("No rule matched command; returning help")
        return Unknown()


def classify_text(text: str, context: CommandContext | None = None) -> Intent:
    """Convenience function to classify raw text with the default rules."""
    return CommandClassifier().classify(Command.from_text(text, context))
