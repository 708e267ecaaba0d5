"""Safety validator for model-generated SQL.

This is the security boundary between untrusted model output and the
database. It is fail-closed: anything it cannot positively classify as a
single bounded read against the allowed tables is rejected.

All rules run on every query and every violation is collected, so the
verdict carries full evidence for the audit log. Keyword, comment and
semicolon rules look at the raw text, string literals included; structural
rules (tables, LIMIT, placeholders) look at the text with literal contents
masked out.

A safe verdict is the only way to obtain an :class:`ApprovedQuery`, and an
:class:`ApprovedQuery` is the only thing the executor accepts.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Sequence
from typing import Any, NamedTuple

from shopassist.core.schema import APPLICATION_TABLES
from shopassist.core.types import (
    GeneratedQuery,
    SafetyVerdict,
    Scalar,
    Violation,
    ViolationRule,
)
from shopassist.exceptions import SafetyViolationError, UnapprovedQueryError

logger = logging.getLogger(__name__)

# Rejected wherever they appear, including inside CTEs and string literals
FORBIDDEN_KEYWORDS = (
    "INSERT",
    "UPDATE",
    "DELETE",
    "DROP",
    "ALTER",
    "TRUNCATE",
    "CREATE",
    "GRANT",
    "REVOKE",
    "EXEC",
    "EXECUTE",
    "CALL",
    "COPY",
    "MERGE",
    "UPSERT",
    "INTO",
    "SET",
    "RESET",
    "VACUUM",
    "REINDEX",
    "CLUSTER",
    "LOCK",
    "ATTACH",
    "DETACH",
    "PRAGMA",
    "PREPARE",
    "DEALLOCATE",
    "LISTEN",
    "NOTIFY",
    "UNLISTEN",
    "DISCARD",
    "REFRESH",
    "IMPORT",
    "LOAD",
    "COMMIT",
    "ROLLBACK",
    "SAVEPOINT",
)

# File, process, network and server-control functions (PostgreSQL, SQLite, MySQL, MSSQL)
DANGEROUS_FUNCTIONS = (
    "pg_read_file",
    "pg_read_binary_file",
    "pg_ls_dir",
    "pg_stat_file",
    "pg_file_write",
    "pg_sleep",
    "pg_terminate_backend",
    "pg_cancel_backend",
    "pg_reload_conf",
    "pg_rotate_logfile",
    "lo_import",
    "lo_export",
    "lo_from_bytea",
    "dblink",
    "dblink_exec",
    "dblink_connect",
    "set_config",
    "current_setting",
    "query_to_xml",
    "load_file",
    "load_extension",
    "readfile",
    "writefile",
    "fts3_tokenizer",
    "sleep",
    "benchmark",
    "xp_cmdshell",
    "sys_exec",
    "sys_eval",
)

_KEYWORD_PATTERNS = [(kw, re.compile(rf"\b{kw}\b", re.IGNORECASE)) for kw in FORBIDDEN_KEYWORDS]
_FUNCTION_PATTERNS = [
    (fn, re.compile(rf"\b{fn}\s*\(", re.IGNORECASE)) for fn in DANGEROUS_FUNCTIONS
]

SYSTEM_CATALOG_PATTERN = re.compile(
    r"\b(?:pg_[a-z0-9_]*|information_schema|sqlite_master|sqlite_schema"
    r"|sqlite_temp_master|sqlite_sequence)\b",
    re.IGNORECASE,
)

_LEADING_COMMENTS = re.compile(r"^(?:\s+|--[^\n]*(?:\n|$)|/\*.*?\*/)*", re.DOTALL)
_PLACEHOLDER = re.compile(r"\$(\d+)\b")
_DOLLAR = re.compile(r"\$")
_NAMED_BIND = re.compile(r"(?<![:\w]):[A-Za-z_]")
_LIMIT = re.compile(r"\bLIMIT\s+(?:\d+|\$\d+)\b", re.IGNORECASE)
_SELECT_STAR = re.compile(r"\bSELECT\s+(?:DISTINCT\s+)?\*", re.IGNORECASE)

# FROM keywords that do not introduce a table: EXTRACT(x FROM ...), IS [NOT] DISTINCT FROM
_NON_TABLE_FROM = re.compile(
    r"\b(?:EXTRACT\s*\(\s*\w+\s+|IS\s+(?:NOT\s+)?DISTINCT\s+)FROM\b", re.IGNORECASE
)
_FROM_OR_JOIN = re.compile(r"\b(FROM|JOIN)\b", re.IGNORECASE)
_TABLE_REF = re.compile(r"\s*([A-Za-z_][\w.]*)")
_SUBQUERY = re.compile(r"\s*\(\s*(?:SELECT|WITH)\b", re.IGNORECASE)
# Keywords that end a FROM list at its own nesting level
_FROM_LIST_END = re.compile(
    r"\b(?:WHERE|GROUP|HAVING|WINDOW|ORDER|LIMIT|OFFSET|FETCH|FOR|UNION|INTERSECT|EXCEPT)\b",
    re.IGNORECASE,
)
_TABLE_COMMAND = re.compile(r"\bTABLE\b", re.IGNORECASE)
_CTE_NAME = re.compile(
    r"(?:\bWITH\s+(?:RECURSIVE\s+)?|,\s*)([A-Za-z_]\w*)\s*(?:\([^()]*\)\s*)?"
    r"AS\s*(?:NOT\s+)?(?:MATERIALIZED\s*)?\(",
    re.IGNORECASE,
)


_Flag = Callable[[ViolationRule, str], None]


class _Scan(NamedTuple):
    code: str
    unterminated: bool
    quoted_identifier: bool


def _mask_literals(sql: str) -> _Scan:
    """Blank out the contents of quoted strings and identifiers.

    Quotes are kept and doubled quotes are treated as escapes, so positions
    in ``code`` line up with positions in ``sql``.
    """
    out: list[str] = []
    quoted_identifier = False
    i, n = 0, len(sql)
    while i < n:
        ch = sql[i]
        if ch not in ("'", '"'):
            out.append(ch)
            i += 1
            continue

        j = i + 1
        while True:
            k = sql.find(ch, j)
            if k == -1:
                out.append(" " * (n - i))
                return _Scan("".join(out), True, quoted_identifier)
            if k + 1 < n and sql[k + 1] == ch:
                j = k + 2
                continue
            break

        if ch == '"':
            quoted_identifier = True
        out.append(ch + " " * (k - i - 1) + ch)
        i = k + 1
    return _Scan("".join(out), False, quoted_identifier)


def _paren_depths(code: str) -> tuple[list[int], bool]:
    """Nesting depth at each position, and whether parentheses balance."""
    depths = []
    depth = 0
    balanced = True
    for ch in code:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                balanced = False
        depths.append(depth)
    return depths, balanced and depth == 0


def _list_items(code: str, start: int, depths: list[int], base: int) -> list[int]:
    """Start positions of the comma-separated items of a FROM list.

    The list runs until a clause keyword or a closing parenthesis at the
    list's own nesting level. Commas after JOIN ... ON conditions count too.
    """
    ends = {m.start() for m in _FROM_LIST_END.finditer(code, start)}
    items = [start]
    for i in range(start, len(code)):
        if depths[i] < base or (depths[i] == base and i in ends):
            break
        if depths[i] == base and code[i] == ",":
            items.append(i + 1)
    return items


def _extract_tables(code: str, depths: list[int]) -> tuple[set[str], bool]:
    """Table names referenced after FROM or JOIN, and whether every item was understood.

    Subqueries are skipped here; their own FROM and JOIN keywords are
    matched separately. An item that is neither a plain table name nor a
    ``(SELECT ...)`` subquery leaves the result not understood.
    """
    code = _NON_TABLE_FROM.sub(lambda m: m.group(0)[:-4] + "    ", code)
    tables: set[str] = set()
    understood = True
    for match in _FROM_OR_JOIN.finditer(code):
        if match.group(1).upper() == "FROM":
            starts = _list_items(code, match.end(), depths, depths[match.start()])
        else:
            starts = [match.end()]
        for pos in starts:
            if _SUBQUERY.match(code, pos):
                continue
            ref = _TABLE_REF.match(code, pos)
            if not ref:
                understood = False
                continue
            tables.add(ref.group(1).lower().removeprefix("public."))
    return tables, understood


def _cte_names(code: str) -> set[str]:
    return {m.group(1).lower() for m in _CTE_NAME.finditer(code)}


class ApprovedQuery:
    """A generated query paired with the safe verdict computed for its exact text.

    Only :meth:`SafetyValidator.approve` can create one. Instances are
    immutable.
    """

    __slots__ = ("_query", "_verdict")

    def __init__(self, query: GeneratedQuery, verdict: SafetyVerdict, *, _seal: Any = None) -> None:
        if _seal is not _SEAL:
            raise UnapprovedQueryError("Approved queries are only issued by SafetyValidator")
        if not verdict.safe or verdict.sql_text != query.sql_text:
            raise UnapprovedQueryError("Verdict does not approve this exact query text")
        object.__setattr__(self, "_query", query)
        object.__setattr__(self, "_verdict", verdict)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("ApprovedQuery is immutable")

    @property
    def query(self) -> GeneratedQuery:
        return self._query

    @property
    def verdict(self) -> SafetyVerdict:
        return self._verdict

    @property
    def sql_text(self) -> str:
        return self._query.sql_text

    @property
    def parameters(self) -> tuple[Scalar, ...]:
        return self._query.parameters

    def is_intact(self) -> bool:
        """True when the verdict is safe and still matches the query text."""
        return self._verdict.safe and self._verdict.sql_text == self._query.sql_text

    def __repr__(self) -> str:
        return f"ApprovedQuery(sql_text={self.sql_text!r}, parameters={self.parameters!r})"


_SEAL = object()


class SafetyValidator:
    """Validates model-generated SQL before execution.

    Provides multiple layers of protection:
    1. Single statement, SELECT (or WITH ... SELECT) only
    2. Forbidden keywords, comments and dangerous functions
    3. Table allow-list and system catalog blocking
    4. Mandatory top-level LIMIT
    5. Placeholder/parameter agreement
    """

    def __init__(self, allowed_tables: Iterable[str] | None = None) -> None:
        """Initialize the validator.

        Args:
            allowed_tables: Readable tables (defaults to the application tables)
        """
        tables = APPLICATION_TABLES if allowed_tables is None else allowed_tables
        self._allowed_tables = frozenset(t.lower() for t in tables)

    @property
    def allowed_tables(self) -> frozenset[str]:
        return self._allowed_tables

    def validate(self, sql_text: str, parameters: Sequence[Scalar] = ()) -> SafetyVerdict:
        """Check one exact SQL string.

        Pure and deterministic: the verdict depends only on ``sql_text`` and
        the number of ``parameters``.

        Args:
            sql_text: SQL exactly as it would be executed
            parameters: Values bound to ``$1 .. $n``

        Returns:
            SafetyVerdict carrying every violation found
        """
        if not sql_text or not sql_text.strip():
            return SafetyVerdict(
                sql_text=sql_text,
                safe=False,
                violations=(Violation(rule=ViolationRule.EMPTY, detail="Empty query"),),
            )

        violations: list[Violation] = []

        def flag(rule: ViolationRule, detail: str) -> None:
            violations.append(Violation(rule=rule, detail=detail))

        scan = _mask_literals(sql_text)
        code = scan.code
        if scan.unterminated:
            flag(ViolationRule.UNTERMINATED_LITERAL, "Unterminated string literal or identifier")
        if scan.quoted_identifier:
            flag(ViolationRule.UNSUPPORTED_TOKEN, "Quoted identifiers are not allowed")

        self._check_statement(sql_text, code, flag)
        self._check_keywords(sql_text, flag)
        self._check_tokens(sql_text, code, flag)

        depths, balanced = _paren_depths(code)
        if not balanced:
            flag(ViolationRule.UNSUPPORTED_TOKEN, "Unbalanced parentheses")
        if not any(depths[m.start()] == 0 for m in _LIMIT.finditer(code)):
            flag(ViolationRule.MISSING_LIMIT, "No top-level LIMIT clause")

        tables, understood = _extract_tables(code, depths)
        if not understood:
            flag(ViolationRule.UNSUPPORTED_TOKEN, "Unrecognized FROM or JOIN item")
        if _TABLE_COMMAND.search(code):
            flag(ViolationRule.UNSUPPORTED_TOKEN, "TABLE shorthand is not allowed")
        for catalog in sorted({m.group(0).lower() for m in SYSTEM_CATALOG_PATTERN.finditer(code)}):
            flag(ViolationRule.SYSTEM_CATALOG, f"References system catalog '{catalog}'")
        for table in sorted(tables - self._allowed_tables - _cte_names(code)):
            flag(ViolationRule.TABLE_NOT_ALLOWED, f"Table '{table}' is not readable")

        self._check_parameters(code, parameters, flag)

        warnings = []
        if _SELECT_STAR.search(code):
            warnings.append("SELECT * may return more columns than needed")

        return SafetyVerdict(
            sql_text=sql_text,
            safe=not violations,
            violations=tuple(violations),
            warnings=tuple(warnings),
            tables_accessed=tuple(sorted(tables & self._allowed_tables)),
        )

    def approve(self, query: GeneratedQuery) -> ApprovedQuery:
        """Validate a generated query and issue the executor's admission token.

        Raises:
            SafetyViolationError: If any rule is violated. Each violation is
                logged for audit; none of them should be shown to the user.
        """
        verdict = self.validate(query.sql_text, query.parameters)
        if not verdict.safe:
            for violation in verdict.violations:
                logger.warning(
                    f"Safety violation [{violation.rule.value}] {violation.detail} "
                    f"in: {query.sql_text!r}"
                )
            raise SafetyViolationError(verdict, interpretation=query.interpretation or None)
        return ApprovedQuery(query, verdict, _seal=_SEAL)

    def _check_statement(self, sql_text: str, code: str, flag: _Flag) -> None:
        """Single statement, and it must be a SELECT or WITH ... SELECT."""
        for pos in (i for i, ch in enumerate(sql_text) if ch == ";"):
            if sql_text[pos + 1 :].strip():
                flag(ViolationRule.MULTIPLE_STATEMENTS, "Content after ';'")
                break

        body = _LEADING_COMMENTS.sub("", code, count=1)
        first = re.match(r"[A-Za-z]+", body)
        leading = first.group(0).upper() if first else body[:1]
        if leading == "SELECT":
            return
        if leading == "WITH" and re.search(r"\bSELECT\b", body, re.IGNORECASE):
            return
        flag(ViolationRule.STATEMENT_TYPE, f"Statement starts with '{leading}', not SELECT")

    def _check_keywords(self, sql_text: str, flag: _Flag) -> None:
        if "--" in sql_text or "/*" in sql_text or "*/" in sql_text:
            flag(ViolationRule.COMMENT, "Comment sequences are not allowed")
        for keyword, pattern in _KEYWORD_PATTERNS:
            if pattern.search(sql_text):
                flag(ViolationRule.FORBIDDEN_KEYWORD, f"Forbidden keyword {keyword}")
        for function, pattern in _FUNCTION_PATTERNS:
            if pattern.search(sql_text):
                flag(ViolationRule.DANGEROUS_FUNCTION, f"Dangerous function {function}()")

    def _check_tokens(self, sql_text: str, code: str, flag: _Flag) -> None:
        """Tokens that would make parameter binding ambiguous."""
        if "\\" in sql_text:
            flag(ViolationRule.UNSUPPORTED_TOKEN, "Backslashes are not allowed")
        if _NAMED_BIND.search(sql_text):
            flag(ViolationRule.UNSUPPORTED_TOKEN, "Named bind markers are not allowed")
        if "?" in code:
            flag(ViolationRule.UNSUPPORTED_TOKEN, "'?' placeholders or operators are not allowed")
        if len(_DOLLAR.findall(code)) != len(_DOLLAR.findall(sql_text)):
            flag(ViolationRule.UNSUPPORTED_TOKEN, "'$' inside a string literal")
        if len(_DOLLAR.findall(code)) != len(_PLACEHOLDER.findall(code)):
            flag(ViolationRule.UNSUPPORTED_TOKEN, "'$' outside a positional placeholder")

    def _check_parameters(self, code: str, parameters: Sequence[Scalar], flag: _Flag) -> None:
        indices = {int(m.group(1)) for m in _PLACEHOLDER.finditer(code)}
        highest = max(indices, default=0)
        if indices != set(range(1, highest + 1)):
            flag(
                ViolationRule.PARAMETER_MISMATCH,
                f"Placeholders must be numbered $1..${highest} without gaps",
            )
        if len(parameters) != highest:
            flag(
                ViolationRule.PARAMETER_MISMATCH,
                f"{len(parameters)} parameters for {highest} placeholders",
            )


def validate_query(sql_text: str, parameters: Sequence[Scalar] = ()) -> SafetyVerdict:
    """Convenience function to validate a query against the application tables."""
    return SafetyValidator().validate(sql_text, parameters)
