"""Tests for the SQL safety validator."""

import pytest

from shopassist.core.types import GeneratedQuery, ViolationRule
from shopassist.exceptions import SafetyViolationError, UnapprovedQueryError
from shopassist.query.validator import ApprovedQuery, SafetyValidator, validate_query


@pytest.fixture
def validator() -> SafetyValidator:
    return SafetyValidator()


def rules_of(sql: str, params: tuple = ()) -> set[str]:
    return set(validate_query(sql, params).rules)


class TestSafeQueries:
    """Queries that must be accepted."""

    @pytest.mark.parametrize(
        ("sql", "params"),
        [
            ("SELECT id, customer_name FROM customers LIMIT 50", ()),
            ("select * from customers where customer_name ILIKE $1 limit 10", ("%Bob%",)),
            (
                "SELECT wo.*, c.customer_name FROM work_orders wo "
                "LEFT JOIN customers c ON wo.customer_id = c.id "
                "WHERE wo.id = $1 LIMIT 1",
                (19,),
            ),
            (
                "SELECT * FROM work_order_items WHERE work_order_id = $1 "
                "AND item_type = 'part' ORDER BY id LIMIT $2",
                (19, 50),
            ),
            (
                "WITH recent AS (SELECT * FROM work_orders WHERE state = $1 LIMIT 100) "
                "SELECT * FROM recent LIMIT 20",
                ("estimate",),
            ),
            (
                "SELECT c.id FROM customers c, vehicles v WHERE v.customer_id = c.id LIMIT 5",
                (),
            ),
            (
                "SELECT * FROM customers WHERE id IN "
                "(SELECT customer_id FROM vehicles WHERE make = $1) LIMIT 50",
                ("Honda",),
            ),
            ("SELECT * FROM public.customers LIMIT 5", ()),
            ("SELECT id FROM customers LIMIT 5;", ()),
            ("SELECT EXTRACT(YEAR FROM date_opened) AS y FROM work_orders LIMIT 5", ()),
            ("SELECT 'It''s' AS quote FROM customers LIMIT 1", ()),
        ],
    )
    def test_accepted(self, validator: SafetyValidator, sql: str, params: tuple) -> None:
        verdict = validator.validate(sql, params)
        assert verdict.safe, verdict.violations
        assert verdict.violations == ()

    def test_tables_accessed(self, validator: SafetyValidator) -> None:
        verdict = validator.validate(
            "SELECT * FROM work_orders wo JOIN customers c ON wo.customer_id = c.id LIMIT 5"
        )
        assert verdict.tables_accessed == ("customers", "work_orders")

    def test_select_star_is_a_warning_only(self, validator: SafetyValidator) -> None:
        verdict = validator.validate("SELECT * FROM customers LIMIT 5")
        assert verdict.safe
        assert verdict.warnings

    def test_verdict_is_for_exact_text(self, validator: SafetyValidator) -> None:
        sql = "SELECT id FROM customers LIMIT 5"
        assert validator.validate(sql).sql_text == sql

    def test_deterministic(self, validator: SafetyValidator) -> None:
        sql = "SELECT * FROM customers; DROP TABLE customers;"
        assert validator.validate(sql) == validator.validate(sql)


class TestForbiddenStatements:
    @pytest.mark.parametrize(
        "sql",
        [
            "DELETE FROM customers",
            "delete from customers where id = 1",
            "DeLeTe FROM customers LIMIT 1",
            "DROP TABLE customers",
            "UPDATE customers SET customer_name = 'x' LIMIT 1",
            "INSERT INTO customers (customer_name) VALUES ('x')",
            "TRUNCATE customers",
            "ALTER TABLE customers ADD COLUMN x int",
            "GRANT ALL ON customers TO public",
            "CREATE TABLE t (id int)",
        ],
    )
    def test_forbidden_keyword_any_case(self, sql: str) -> None:
        verdict = validate_query(sql)
        assert not verdict.safe
        assert ViolationRule.FORBIDDEN_KEYWORD in {v.rule for v in verdict.violations}

    def test_delete_reports_every_violation(self) -> None:
        """All rules run; the verdict is not short-circuited on the first failure."""
        assert rules_of("DELETE FROM customers") >= {
            "statement_type",
            "forbidden_keyword",
            "missing_limit",
        }

    def test_forbidden_keyword_inside_cte(self) -> None:
        sql = (
            "WITH gone AS (DELETE FROM customers RETURNING id) "
            "SELECT * FROM gone LIMIT 5"
        )
        assert "forbidden_keyword" in rules_of(sql)

    def test_select_into(self) -> None:
        assert "forbidden_keyword" in rules_of("SELECT * INTO backup FROM customers LIMIT 5")

    def test_keyword_inside_literal_is_rejected(self) -> None:
        """Fail-closed: keywords are rejected even inside string literals."""
        assert "forbidden_keyword" in rules_of(
            "SELECT id FROM customers WHERE notes = 'drop off' LIMIT 5"
        )

    def test_keyword_as_part_of_identifier_is_fine(self) -> None:
        assert validate_query("SELECT updated_at, created_at FROM customers LIMIT 5").safe

    def test_non_select_statement(self) -> None:
        assert "statement_type" in rules_of("EXPLAIN SELECT * FROM customers LIMIT 5")


class TestMultipleStatements:
    def test_drop_after_select(self) -> None:
        verdict = validate_query("SELECT * FROM customers; DROP TABLE customers;")
        assert not verdict.safe
        assert {"multiple_statements", "forbidden_keyword"} <= set(verdict.rules)

    def test_two_selects(self) -> None:
        sql = "SELECT * FROM customers LIMIT 1; SELECT * FROM vehicles LIMIT 1"
        assert "multiple_statements" in rules_of(sql)

    def test_trailing_semicolon_and_whitespace_allowed(self) -> None:
        assert validate_query("SELECT id FROM customers LIMIT 5 ;  \n").safe


class TestComments:
    @pytest.mark.parametrize(
        "sql",
        [
            "SELECT id FROM customers LIMIT 5 -- and more",
            "SELECT id /* hidden */ FROM customers LIMIT 5",
            "/* lead */ SELECT id FROM customers LIMIT 5",
            "SELECT id FROM customers WHERE notes = '--' LIMIT 5",
        ],
    )
    def test_comments_rejected(self, sql: str) -> None:
        assert "comment" in rules_of(sql)


class TestDangerousFunctions:
    @pytest.mark.parametrize(
        "sql",
        [
            "SELECT pg_sleep(10) FROM customers LIMIT 1",
            "SELECT pg_read_file('/etc/passwd') FROM customers LIMIT 1",
            "SELECT set_config('role', 'admin', false) FROM customers LIMIT 1",
            "SELECT current_setting ('data_directory') FROM customers LIMIT 1",
        ],
    )
    def test_dangerous_function(self, sql: str) -> None:
        assert "dangerous_function" in rules_of(sql)


class TestLimit:
    def test_missing_limit(self) -> None:
        assert rules_of("SELECT id FROM customers") == {"missing_limit"}

    def test_limit_only_in_subquery(self) -> None:
        sql = "SELECT * FROM customers WHERE id IN (SELECT customer_id FROM vehicles LIMIT 5)"
        assert "missing_limit" in rules_of(sql)

    def test_limit_all_is_not_a_limit(self) -> None:
        assert "missing_limit" in rules_of("SELECT id FROM customers LIMIT ALL")

    def test_limit_inside_literal_does_not_count(self) -> None:
        assert "missing_limit" in rules_of("SELECT id FROM customers WHERE notes = 'LIMIT 5'")


class TestTables:
    def test_unknown_table(self) -> None:
        verdict = validate_query("SELECT * FROM users LIMIT 5")
        assert not verdict.safe
        assert verdict.rules == ["table_not_allowed"]

    def test_unknown_joined_table(self) -> None:
        sql = "SELECT * FROM customers c JOIN invoices i ON i.customer_id = c.id LIMIT 5"
        assert "table_not_allowed" in rules_of(sql)

    def test_unknown_table_in_subquery(self) -> None:
        sql = "SELECT * FROM customers WHERE id IN (SELECT user_id FROM sessions) LIMIT 5"
        assert "table_not_allowed" in rules_of(sql)

    @pytest.mark.parametrize(
        "sql",
        [
            "SELECT c.id FROM customers c JOIN vehicles v ON v.customer_id = c.id, users u LIMIT 5",
            "SELECT c.id FROM customers c, (SELECT 1 AS x) s, users LIMIT 5",
            "SELECT c.id FROM customers c LEFT JOIN vehicles v USING (id), users LIMIT 5",
            "SELECT * FROM customers WHERE id IN (SELECT id FROM vehicles, users) LIMIT 5",
        ],
    )
    def test_unknown_table_later_in_from_list(self, sql: str) -> None:
        verdict = validate_query(sql)
        assert not verdict.safe
        assert "table_not_allowed" in verdict.rules

    def test_derived_table_in_from_list(self) -> None:
        sql = "SELECT c.id FROM customers c, (SELECT customer_id FROM vehicles) v LIMIT 5"
        verdict = validate_query(sql)
        assert verdict.safe, verdict.violations
        assert verdict.tables_accessed == ("customers", "vehicles")

    @pytest.mark.parametrize(
        "sql",
        [
            "WITH x AS (TABLE users) SELECT * FROM x LIMIT 5",
            "SELECT * FROM customers WHERE id IN (TABLE users) LIMIT 5",
        ],
    )
    def test_table_shorthand(self, sql: str) -> None:
        assert "unsupported_token" in rules_of(sql)

    @pytest.mark.parametrize(
        "sql",
        [
            "SELECT * FROM customers c, (users u JOIN vehicles v ON v.id = u.id) LIMIT 5",
            "SELECT * FROM customers c, 1 LIMIT 5",
        ],
    )
    def test_unrecognized_from_item(self, sql: str) -> None:
        assert "unsupported_token" in rules_of(sql)

    @pytest.mark.parametrize(
        "sql",
        [
            "SELECT * FROM pg_catalog.pg_tables LIMIT 5",
            "SELECT usename FROM pg_user LIMIT 5",
            "SELECT * FROM information_schema.tables LIMIT 5",
            "SELECT sql FROM sqlite_master LIMIT 5",
        ],
    )
    def test_system_catalogs(self, sql: str) -> None:
        assert "system_catalog" in rules_of(sql)

    def test_custom_allow_list(self) -> None:
        validator = SafetyValidator(allowed_tables=["customers"])
        assert validator.validate("SELECT * FROM customers LIMIT 5").safe
        assert not validator.validate("SELECT * FROM vehicles LIMIT 5").safe
        assert validator.allowed_tables == frozenset({"customers"})


class TestParameters:
    def test_missing_parameter(self) -> None:
        assert "parameter_mismatch" in rules_of("SELECT * FROM customers WHERE id = $1 LIMIT 5")

    def test_extra_parameter(self) -> None:
        assert "parameter_mismatch" in rules_of("SELECT * FROM customers LIMIT 5", (1,))

    def test_gap_in_placeholders(self) -> None:
        sql = "SELECT * FROM customers WHERE id = $1 OR id = $3 LIMIT 5"
        assert "parameter_mismatch" in rules_of(sql, (1, 2, 3))

    def test_reused_placeholder(self) -> None:
        sql = "SELECT * FROM customers WHERE phone_primary LIKE $1 OR phone_mobile LIKE $1 LIMIT 5"
        assert validate_query(sql, ("%555%",)).safe

    @pytest.mark.parametrize(
        "sql",
        [
            "SELECT * FROM customers WHERE id = :id LIMIT 5",
            "SELECT * FROM customers WHERE id = ? LIMIT 5",
            "SELECT * FROM customers WHERE notes = '$1' LIMIT 5",
            "SELECT $$text$$ FROM customers LIMIT 5",
            "SELECT * FROM customers WHERE notes = 'a\\' LIMIT 5",
        ],
    )
    def test_ambiguous_binding_tokens(self, sql: str) -> None:
        assert "unsupported_token" in rules_of(sql)

    def test_cast_is_not_a_named_bind(self) -> None:
        assert validate_query("SELECT id::text FROM customers LIMIT 5").safe


class TestMalformed:
    @pytest.mark.parametrize("sql", ["", "   ", "\n\t"])
    def test_empty(self, sql: str) -> None:
        verdict = validate_query(sql)
        assert not verdict.safe
        assert verdict.rules == ["empty"]

    def test_unterminated_literal(self) -> None:
        sql = "SELECT id FROM customers WHERE x = 'oops LIMIT 5"
        assert "unterminated_literal" in rules_of(sql)

    def test_quoted_identifier(self) -> None:
        assert "unsupported_token" in rules_of('SELECT "id" FROM customers LIMIT 5')

    def test_unbalanced_parentheses(self) -> None:
        assert "unsupported_token" in rules_of("SELECT (id FROM customers LIMIT 5")


class TestApproval:
    """Approval is the only way to obtain an executor admission token."""

    def test_approve_safe_query(self, validator: SafetyValidator) -> None:
        query = GeneratedQuery(sql_text="SELECT id FROM customers LIMIT 5")
        approved = validator.approve(query)
        assert isinstance(approved, ApprovedQuery)
        assert approved.sql_text == query.sql_text
        assert approved.is_intact()

    def test_approve_unsafe_query_raises(self, validator: SafetyValidator) -> None:
        query = GeneratedQuery(sql_text="DELETE FROM customers", interpretation="Deleting")
        with pytest.raises(SafetyViolationError) as exc_info:
            validator.approve(query)
        assert not exc_info.value.verdict.safe
        assert exc_info.value.interpretation == "Deleting"

    def test_violations_are_logged(
        self, validator: SafetyValidator, caplog: pytest.LogCaptureFixture
    ) -> None:
        with pytest.raises(SafetyViolationError):
            validator.approve(GeneratedQuery(sql_text="DROP TABLE customers"))
        assert "forbidden_keyword" in caplog.text

    def test_cannot_construct_directly(self, validator: SafetyValidator) -> None:
        query = GeneratedQuery(sql_text="SELECT id FROM customers LIMIT 5")
        verdict = validator.validate(query.sql_text)
        with pytest.raises(UnapprovedQueryError):
            ApprovedQuery(query, verdict)
        with pytest.raises(UnapprovedQueryError):
            ApprovedQuery(query, verdict, _seal=object())

    def test_is_immutable(self, validator: SafetyValidator) -> None:
        approved = validator.approve(GeneratedQuery(sql_text="SELECT id FROM customers LIMIT 5"))
        with pytest.raises(AttributeError):
            approved._query = GeneratedQuery(sql_text="DROP TABLE customers")  # type: ignore[misc]
