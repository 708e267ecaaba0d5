"""Template-based synthesis used when the text-generation service is down.

Only recognizes a few high-signal patterns; everything else becomes a
customer-name search. Output goes through the safety validator like any
other candidate.
"""

from __future__ import annotations

import re

from shopassist.command.classifier import SEARCH_STRIP, VIN_PATTERN
from shopassist.core.types import CommandContext, GeneratedQuery
from shopassist.query.synthesis import QuerySynthesizer

PHONE_PATTERN = re.compile(r"\d{3}[-.\s]?\d{3}[-.\s]?\d{4}")
RO_PATTERN = re.compile(r"\bRO[-\s]?\d+\b", re.IGNORECASE)

VEHICLE_BY_VIN = (
    "SELECT v.*, c.customer_name FROM vehicles v "
    "LEFT JOIN customers c ON v.customer_id = c.id "
    "WHERE LOWER(v.vin) LIKE LOWER($1) AND v.is_active = true LIMIT 5"
)
CUSTOMER_BY_PHONE = (
    "SELECT * FROM customers "
    "WHERE (phone_primary LIKE $1 OR phone_secondary LIKE $1 OR phone_mobile LIKE $1) "
    "AND is_active = true LIMIT 50"
)
WORK_ORDER_BY_NUMBER = (
    "SELECT wo.*, c.customer_name, v.year, v.make, v.model FROM work_orders wo "
    "LEFT JOIN customers c ON wo.customer_id = c.id "
    "LEFT JOIN vehicles v ON wo.vehicle_id = v.id "
    "WHERE LOWER(wo.ro_number) LIKE LOWER($1) AND wo.is_active = true LIMIT 10"
)
CUSTOMER_BY_NAME = (
    "SELECT * FROM customers WHERE LOWER(customer_name) LIKE LOWER($1) "
    "AND is_active = true LIMIT 50"
)


class RuleBasedSynthesizer(QuerySynthesizer):
    """Deterministic synthesizer built from fixed, pre-reviewed templates."""

    def synthesize(self, text: str, context: CommandContext) -> GeneratedQuery:
        if vin := VIN_PATTERN.search(text):
            return GeneratedQuery(
                sql_text=VEHICLE_BY_VIN,
                parameters=(vin.group(0).upper(),),
                interpretation=f"Searching for vehicle with VIN {vin.group(0).upper()}",
                entity_tag="vehicles",
                estimated_result_count=1,
            )

        if phone := PHONE_PATTERN.search(text):
            digits = re.sub(r"\D", "", phone.group(0))
            return GeneratedQuery(
                sql_text=CUSTOMER_BY_PHONE,
                parameters=(f"%{digits}%",),
                interpretation=f"Searching for customer with phone {phone.group(0)}",
                entity_tag="customers",
                estimated_result_count=5,
            )

        if ro := RO_PATTERN.search(text):
            return GeneratedQuery(
                sql_text=WORK_ORDER_BY_NUMBER,
                parameters=(f"%{ro.group(0)}%",),
                interpretation=f"Searching for repair order {ro.group(0)}",
                entity_tag="work_orders",
                estimated_result_count=1,
            )

        name = SEARCH_STRIP.sub("", text).strip()
        name = re.sub(r"^customers?\s+", "", name, flags=re.IGNORECASE) or text.strip()
        return GeneratedQuery(
            sql_text=CUSTOMER_BY_NAME,
            parameters=(f"%{name}%",),
            interpretation=f"Searching for customer: {name}",
            entity_tag="customers",
        )
