"""Read-only execution of approved queries."""

from __future__ import annotations

import logging
import re
import time
from typing import Any

from sqlalchemy import Connection, text

from shopassist.core.connection import DatabaseConnection
from shopassist.core.types import QueryResult
from shopassist.exceptions import ExecutionError, UnapprovedQueryError
from shopassist.query.validator import ApprovedQuery

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\$(\d+)\b(::)?")


def bind_positional(sql_text: str, parameters: tuple[Any, ...]) -> tuple[str, dict[str, Any]]:
    """Spell ``$n`` placeholders as named driver parameters ``:pn``.

    Only valid for validator-approved text, where every ``$`` is a
    placeholder and no other bind syntax occurs. A placeholder followed by a
    ``::`` cast is parenthesized so the driver marker stays intact.
    """
    statement = _PLACEHOLDER.sub(
        lambda m: f"(:p{m.group(1)})::" if m.group(2) else f":p{m.group(1)}", sql_text
    )
    return statement, {f"p{i}": value for i, value in enumerate(parameters, start=1)}


class QueryExecutor:
    """Runs approved queries on a borrowed pooled connection.

    Defense in depth on top of the validator:
    - the session is read-only (``SET TRANSACTION READ ONLY`` on PostgreSQL,
      ``PRAGMA query_only`` on SQLite) and the transaction is always rolled back
    - PostgreSQL statements are cut off by ``statement_timeout``
    - at most ``max_rows`` rows are fetched whatever the LIMIT says
    """

    def __init__(
        self,
        connection: DatabaseConnection,
        statement_timeout_ms: int = 5000,
        max_rows: int = 200,
    ) -> None:
        self._connection = connection
        self._statement_timeout_ms = int(statement_timeout_ms)
        self._max_rows = max_rows

    def execute(self, approved: ApprovedQuery) -> QueryResult:
        """Execute an approved query.

        Args:
            approved: Token issued by ``SafetyValidator.approve`` for this query

        Returns:
            QueryResult with rows as dicts

        Raises:
            UnapprovedQueryError: If anything other than an intact approval is passed
            ExecutionError: If the database fails; driver detail is logged only
        """
        if not isinstance(approved, ApprovedQuery) or not approved.is_intact():
            raise UnapprovedQueryError("Executor only accepts queries approved by the validator")

        statement, params = bind_positional(approved.sql_text, approved.parameters)
        start_time = time.perf_counter()
        try:
            with self._connection.connect() as conn:
                rows, truncated = self._run(conn, statement, params)
        except Exception as e:
            logger.exception(f"Query execution failed for approved SQL: {approved.sql_text!r}")
            raise ExecutionError(sql=approved.sql_text) from e

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(f"Query returned {len(rows)} rows in {duration_ms:.1f}ms")
        return QueryResult(
            rows=rows,
            row_count=len(rows),
            duration_ms=duration_ms,
            truncated=truncated,
        )

    def _run(
        self, conn: Connection, statement: str, params: dict[str, Any]
    ) -> tuple[list[dict[str, Any]], bool]:
        if conn.dialect.name == "sqlite":
            conn.exec_driver_sql("PRAGMA query_only = ON")
            try:
                return self._fetch(conn, statement, params)
            finally:
                conn.rollback()
                conn.exec_driver_sql("PRAGMA query_only = OFF")
                conn.commit()

        try:
            conn.exec_driver_sql("SET TRANSACTION READ ONLY")
            conn.exec_driver_sql(f"SET LOCAL statement_timeout = {self._statement_timeout_ms}")
            return self._fetch(conn, statement, params)
        finally:
            conn.rollback()

    def _fetch(
        self, conn: Connection, statement: str, params: dict[str, Any]
    ) -> tuple[list[dict[str, Any]], bool]:
        result = conn.execute(text(statement), params)
        fetched = result.fetchmany(self._max_rows + 1)
        result.close()
        truncated = len(fetched) > self._max_rows
        if truncated:
            logger.warning(f"Result capped at {self._max_rows} rows")
        return [dict(row._mapping) for row in fetched[: self._max_rows]], truncated
