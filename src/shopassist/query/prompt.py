"""Prompt construction for query synthesis.

Renders the readable tables, the user's current context and the answer
format into a single prompt.
"""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import MetaData, Table

from shopassist.core.schema import metadata as application_metadata
from shopassist.core.types import CommandContext

RESPONSE_FORMAT = """{
  "interpretation": "brief explanation of what is being searched for",
  "entity": "primary table queried",
  "sql": "one SELECT statement using $1, $2 ... placeholders and a LIMIT",
  "params": [values for the placeholders, in order],
  "estimated_results": "rough estimate of the result count"
}"""

RULES = (
    "Only generate a single SELECT statement (a WITH ... SELECT is allowed).",
    "Never use INSERT, UPDATE, DELETE, DROP, ALTER, TRUNCATE or any DDL.",
    "Pass every user-supplied value as a positional parameter ($1, $2, ...).",
    "Use ILIKE with % wildcards for case-insensitive text matching.",
    "Always end with a LIMIT clause; use LIMIT 50 unless the user asks for fewer.",
    "Use the current context when the user says 'this RO', 'this customer' or 'current'.",
    "Do not use comments, semicolons or tables not listed above.",
    'If the request is destructive or too vague, set "sql" to null and add an "error" field.',
)

EXAMPLES = (
    (
        "Bob Johnson",
        '{"interpretation": "Searching for customer named Bob Johnson", '
        '"entity": "customers", '
        '"sql": "SELECT * FROM customers WHERE customer_name ILIKE $1 '
        'AND is_active = true LIMIT 50", '
        '"params": ["%Bob Johnson%"], "estimated_results": "1-5 customers"}',
    ),
    (
        "the parts for this RO (current RO ID = 19)",
        '{"interpretation": "Finding parts on current repair order #19", '
        '"entity": "work_order_items", '
        '"sql": "SELECT * FROM work_order_items WHERE work_order_id = $1 '
        "AND item_type = 'part' ORDER BY id LIMIT 50\", "
        '"params": [19], "estimated_results": "5-10 items"}',
    ),
)


def _describe_table(table: Table) -> str:
    lines = []
    for column in table.columns:
        line = f"  {column.name} {column.type}"
        if column.comment:
            line += f"  -- {column.comment}"
        lines.append(line)
    return f"{table.name} (\n" + ",\n".join(lines) + "\n)"


class PromptBuilder:
    """Builds synthesis prompts for a fixed set of readable tables."""

    def __init__(
        self,
        metadata: MetaData = application_metadata,
        tables: Iterable[str] | None = None,
    ) -> None:
        allowed = set(tables) if tables is not None else set(metadata.tables)
        self._tables = [t for name, t in sorted(metadata.tables.items()) if name in allowed]

    def schema_section(self) -> str:
        return "\n\n".join(_describe_table(t) for t in self._tables)

    def context_section(self, context: CommandContext) -> str:
        def show(value: object) -> str:
            return "none" if value is None else str(value)

        return "\n".join(
            [
                f"Current page: {context.current_page or 'unknown'}",
                f"Current RO ID: {show(context.work_order_id)}",
                f"Current RO Number: {show(context.ro_number)}",
                f"Current customer ID: {show(context.customer_id)}",
                f"Current customer name: {show(context.customer_name)}",
                f"Current vehicle ID: {show(context.vehicle_id)}",
            ]
        )

    def build(self, text: str, context: CommandContext) -> str:
        """Build the prompt for one search request.

        Args:
            text: The full original command text.
            context: Where the user currently is.
        """
        rules = "\n".join(f"{i}. {rule}" for i, rule in enumerate(RULES, start=1))
        examples = "\n\n".join(f'Request: "{q}"\nAnswer: {a}' for q, a in EXAMPLES)
        return (
            "Convert the repair-shop search request below into a PostgreSQL query.\n\n"
            f"=== DATABASE SCHEMA ===\n\n{self.schema_section()}\n\n"
            f"=== CURRENT CONTEXT ===\n\n{self.context_section(context)}\n\n"
            f"=== RULES ===\n\n{rules}\n\n"
            f"=== ANSWER FORMAT (JSON only, no markdown) ===\n\n{RESPONSE_FORMAT}\n\n"
            f"=== EXAMPLES ===\n\n{examples}\n\n"
            f'=== REQUEST ===\n\n"{text}"'
        )
