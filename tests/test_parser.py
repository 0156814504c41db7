"""
Tests for QueryParser and the usage walk
"""
import pytest

from query_analyser.exceptions import ParameterBindingError, ParseError
from query_analyser.query_parser import (
    AliasBinding,
    Clause,
    ColumnReference,
    InExpression,
    JoinPredicate,
    QueryParser,
    StatementKind,
    normalise_placeholders,
    substitute_parameters,
)


class TestPlaceholders:
    """'?' to $n conversion and literal substitution"""

    def test_question_marks_are_numbered(self):
        sql, count = normalise_placeholders("SELECT * FROM t WHERE a = ? AND b = ?")
        assert sql == "SELECT * FROM t WHERE a = $1 AND b = $2"
        assert count == 2

    def test_literals_identifiers_and_comments_untouched(self):
        query = "SELECT '?', \"a?b\" FROM t /* ? */ WHERE x = ? -- why?\n AND y = 'it''s ?'"
        sql, count = normalise_placeholders(query)
        assert sql == "SELECT '?', \"a?b\" FROM t /* ? */ WHERE x = $1 -- why?\n AND y = 'it''s ?'"
        assert count == 1

    def test_dollar_quoted_body_untouched(self):
        sql, count = normalise_placeholders("SELECT $$ ? $$, ?")
        assert sql == "SELECT $$ ? $$, $1"
        assert count == 1

    def test_numbered_parameters_are_kept(self):
        sql, count = normalise_placeholders("SELECT * FROM t WHERE a = $1 OR b = $2")
        assert sql == "SELECT * FROM t WHERE a = $1 OR b = $2"
        assert count == 2

    def test_substitute_parameters(self):
        sql = substitute_parameters("SELECT * FROM t WHERE a = $1 AND b = '$2'", {1: '5'})
        assert sql == "SELECT * FROM t WHERE a = 5 AND b = '$2'"

    def test_substitute_missing_literal(self):
        with pytest.raises(ParameterBindingError, match=r"\$2"):
            substitute_parameters("SELECT * FROM t WHERE a = $1 AND b = $2", {1: '5'})


class TestQueryParser:
    """Test suite for QueryParser class"""

    @pytest.mark.parametrize("query, kind", [
        ("SELECT * FROM accounts", StatementKind.SELECT),
        ("WITH x AS (SELECT 1) SELECT * FROM x", StatementKind.SELECT),
        ("UPDATE accounts SET balance = 0", StatementKind.UPDATE),
        ("DELETE FROM accounts WHERE id = 1", StatementKind.DELETE),
        ("INSERT INTO accounts (id) VALUES (1)", StatementKind.INSERT),
    ])
    def test_classification(self, query, kind):
        assert QueryParser(query).kind == kind

    def test_empty_query(self):
        with pytest.raises(ParseError, match="Query cannot be empty"):
            QueryParser("   ")

    def test_invalid_sql(self):
        with pytest.raises(ParseError, match="Failed to parse SQL query"):
            QueryParser("SELEC * FROM accounts")

    def test_multiple_statements(self):
        with pytest.raises(ParseError, match="single statement"):
            QueryParser("SELECT 1; SELECT 2")

    def test_unsupported_statement(self):
        with pytest.raises(ParseError, match="Unsupported statement type"):
            QueryParser("CREATE TABLE t (id int)")

    def test_parse_error_is_value_error(self):
        with pytest.raises(ValueError):
            QueryParser("")

    def test_placeholder_count(self):
        parser = QueryParser("SELECT * FROM accounts WHERE id = ?")
        assert parser.has_placeholders
        assert parser.placeholder_count == 1
        assert not QueryParser("SELECT * FROM accounts").has_placeholders

    def test_tables_of_join(self):
        parser = QueryParser(
            "SELECT a.id FROM Accounts a JOIN customers c ON a.customer_id = c.id"
        )
        assert parser.get_tables() == ['accounts', 'customers']

    def test_tables_of_subquery(self):
        parser = QueryParser(
            "SELECT * FROM customers WHERE id IN (SELECT customer_id FROM orders WHERE status = ?)"
        )
        assert parser.get_tables() == ['customers', 'orders']

    def test_cte_names_are_not_tables(self):
        parser = QueryParser(
            "WITH recent AS (SELECT * FROM orders WHERE total > ?) "
            "SELECT * FROM recent r JOIN customers c ON r.customer_id = c.id"
        )
        assert parser.get_tables() == ['orders', 'customers']

    def test_resolve_tables(self, context):
        parser = QueryParser("SELECT * FROM accounts a JOIN customers c ON a.customer_id = c.id")
        assert parser.resolve_tables(context.catalog) == ['accounts', 'customers']
        assert 'accounts' in context.catalog
        assert 'customers' in context.catalog


class TestUsageExtraction:
    """Records produced by the AST walk"""

    def test_alias_and_where_parameter(self):
        usage = QueryParser("SELECT * FROM orders o WHERE o.id = ?").extract_usage()

        assert usage.aliases == [AliasBinding('o', 'orders')]
        assert usage.records == [ColumnReference('id', 'o', 'orders', Clause.WHERE)]
        assert len(usage.parameters) == 1
        site = usage.parameters[0]
        assert (site.number, site.column, site.qualifier, site.table_context) == (1, 'id', 'o', 'orders')

    def test_join_predicates(self):
        usage = QueryParser(
            "SELECT a.id FROM accounts a JOIN customers c ON a.customer_id = c.id WHERE c.email = ?"
        ).extract_usage()

        assert usage.of_type(JoinPredicate) == [
            JoinPredicate('customer_id', 'a', 'customers'),
            JoinPredicate('id', 'c', 'customers'),
        ]
        assert usage.of_type(ColumnReference) == [ColumnReference('email', 'c', 'customers', Clause.WHERE)]
        assert usage.parameters[0].column == 'email'

    def test_in_list_records_left_column_only(self):
        usage = QueryParser("DELETE FROM accounts WHERE id IN (?, ?)").extract_usage()

        assert usage.target_tables == ['accounts']
        assert usage.records == [InExpression('id', None, 'accounts')]
        assert [(p.number, p.column) for p in usage.parameters] == [(1, 'id'), (2, 'id')]

    def test_update_set_and_where(self):
        usage = QueryParser("UPDATE accounts SET balance = ? WHERE id = ?").extract_usage()

        assert usage.target_tables == ['accounts']
        assert usage.records == [
            ColumnReference('balance', None, 'accounts', Clause.SET),
            ColumnReference('id', None, 'accounts', Clause.WHERE),
        ]
        assert [(p.number, p.column, p.clause) for p in usage.parameters] == [
            (1, 'balance', Clause.SET),
            (2, 'id', Clause.WHERE),
        ]

    def test_update_where_on_assigned_column_is_set_usage(self):
        usage = QueryParser(
            "UPDATE accounts SET status = ? WHERE id = ? AND status = ?"
        ).extract_usage()

        clauses = [(r.column, r.clause) for r in usage.of_type(ColumnReference)]
        assert clauses == [
            ('status', Clause.SET),
            ('id', Clause.WHERE),
            ('status', Clause.SET),
        ]

    def test_parameter_before_column(self):
        usage = QueryParser("SELECT * FROM accounts WHERE ? = id").extract_usage()
        assert usage.parameters[0].column == 'id'

    def test_limit_and_offset(self):
        usage = QueryParser("SELECT * FROM accounts WHERE status = ? LIMIT ? OFFSET ?").extract_usage()

        assert usage.has_limit
        assert [(p.number, p.column, p.clause) for p in usage.parameters] == [
            (1, 'status', Clause.WHERE),
            (3, None, Clause.OFFSET),
        ]

    def test_subquery_keeps_outer_context(self):
        usage = QueryParser(
            "SELECT * FROM customers WHERE id IN (SELECT customer_id FROM orders WHERE status = ?) "
            "AND email = ?"
        ).extract_usage()

        where = [(r.column, r.table_context) for r in usage.of_type(ColumnReference)]
        assert where == [('id', 'customers'), ('status', 'orders'), ('email', 'customers')]

    def test_insert_target(self):
        usage = QueryParser("INSERT INTO accounts (id, balance) VALUES (?, ?)").extract_usage()
        assert usage.target_tables == ['accounts']
        assert usage.records == []

    def test_update_with_returning(self):
        usage = QueryParser(
            "UPDATE accounts SET balance = ? WHERE id = ? RETURNING id, balance"
        ).extract_usage()

        assert usage.kind == StatementKind.UPDATE
        assert usage.records == [
            ColumnReference('balance', None, 'accounts', Clause.SET),
            ColumnReference('id', None, 'accounts', Clause.WHERE),
        ]
        assert [p.number for p in usage.parameters] == [1, 2]

    def test_delete_with_returning(self):
        usage = QueryParser("DELETE FROM orders WHERE status = ? RETURNING id").extract_usage()

        assert usage.target_tables == ['orders']
        assert usage.records == [ColumnReference('status', None, 'orders', Clause.WHERE)]
