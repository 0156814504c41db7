"""
Tests for ParameterBinder
"""
import pytest

from query_analyser.exceptions import ParameterBindingError
from query_analyser.parameter_binder import BoundStatement, ParameterBinder, UnsupportedStatement
from query_analyser.query_parser import QueryParser, StatementKind
from query_analyser.sql_types import SqlType


def bind(context, query_id, query):
    return ParameterBinder(context).bind(query_id, QueryParser(query))


class TestSelectBinding:

    def test_alias_resolution(self, context):
        bound = bind(context, 'query.select.001', "SELECT * FROM orders o WHERE o.id = ?")

        assert isinstance(bound, BoundStatement)
        assert bound.parameter_types == [SqlType.BIGINT]
        assert bound.parameter_values == ['5']
        assert 'o.id = 5' in bound.sql
        assert '$' not in bound.sql and '?' not in bound.sql
        assert context.aliases.resolve('o') == 'orders'
        assert context.usage.where_usage('orders') == {'query.select.001': ['id']}

    def test_string_values_are_quoted(self, context):
        bound = bind(context, 'query.select.001', "SELECT * FROM accounts WHERE status = ?")

        assert bound.parameter_types == [SqlType.VARCHAR]
        assert bound.parameter_values == ["'o''k'"]
        assert "status = 'o''k'" in bound.sql

    def test_limit_forced_to_one(self, context):
        bound = bind(context, 'query.select.001', "SELECT * FROM accounts WHERE id = ? LIMIT 50")

        assert 'LIMIT 1' in bound.sql
        assert 'LIMIT 50' not in bound.sql
        assert bound.parameter_types == [SqlType.INTEGER, SqlType.INTEGER]
        assert bound.parameter_values == ['7', '1']

    def test_limit_and_offset_placeholders(self, context):
        bound = bind(
            context, 'query.select.001',
            "SELECT * FROM accounts WHERE status = ? LIMIT ? OFFSET ?"
        )

        assert bound.parameter_types == [SqlType.VARCHAR, SqlType.INTEGER, SqlType.INTEGER]
        assert bound.parameter_values == ["'o''k'", '0', '1']
        assert 'OFFSET 0' in bound.sql
        assert 'LIMIT 1' in bound.sql

    def test_join_usage(self, context):
        bind(
            context, 'query.select.002',
            "SELECT a.id FROM accounts a JOIN customers c ON a.customer_id = c.id WHERE c.email = ?"
        )

        assert context.usage.on_usage('accounts') == {'query.select.002': {'customer_id'}}
        assert context.usage.on_usage('customers') == {'query.select.002': {'id'}}
        assert context.usage.where_usage('customers') == {'query.select.002': ['email']}
        assert context.usage.queries(StatementKind.SELECT, 'accounts') == ['query.select.002']
        assert context.usage.queries(StatementKind.SELECT, 'customers') == ['query.select.002']

    def test_where_columns_are_prepended(self, context):
        bind(context, 'query.select.003', "SELECT * FROM accounts WHERE customer_id = ? AND status = ?")
        assert context.usage.where_usage('accounts') == {'query.select.003': ['status', 'customer_id']}

    def test_unqualified_column_of_other_table(self, context):
        bound = bind(
            context, 'query.select.004',
            "SELECT * FROM orders o JOIN customers c ON o.customer_id = c.id WHERE total > ?"
        )
        assert bound.parameter_types == [SqlType.NUMERIC]
        assert bound.parameter_values == ['9.99']

    def test_null_sample_uses_default(self, context):
        bound = bind(context, 'query.select.005', "SELECT * FROM customers WHERE active = ?")
        assert bound.parameter_values == ['false']

    def test_unknown_column(self, context):
        with pytest.raises(ParameterBindingError, match="nickname"):
            bind(context, 'query.select.006', "SELECT * FROM customers WHERE nickname = ?")

    def test_parameter_without_column(self, context):
        with pytest.raises(ParameterBindingError, match="Cannot determine the column"):
            bind(context, 'query.select.007', "SELECT ? FROM customers")

    def test_derived_table_qualifier(self, context):
        bound = bind(
            context, 'query.select.009',
            "SELECT * FROM (SELECT id, status FROM accounts) s WHERE s.status = ?"
        )

        assert bound.parameter_types == [SqlType.VARCHAR]
        assert bound.parameter_values == ["'o''k'"]
        assert context.usage.where_usage('accounts') == {'query.select.009': ['status']}
        assert 's' not in context.catalog
        assert 's' not in context.usage.tables()

    def test_cte_qualifier(self, context):
        bound = bind(
            context, 'query.select.010',
            "WITH s AS (SELECT id, status FROM accounts) SELECT * FROM s WHERE s.status = ?"
        )

        assert bound.parameter_values == ["'o''k'"]
        assert 's' not in context.usage.tables()

    def test_stale_alias_from_earlier_statement(self, context):
        bind(context, 'query.select.011', "SELECT * FROM orders s WHERE s.id = ?")

        bound = bind(
            context, 'query.select.012',
            "SELECT * FROM (SELECT id, status FROM accounts) s WHERE s.status = ?"
        )

        assert bound.parameter_types == [SqlType.VARCHAR]
        assert bound.parameter_values == ["'o''k'"]
        assert context.usage.where_usage('orders') == {'query.select.011': ['id']}

    def test_without_placeholders_query_is_kept(self, context):
        query = "SELECT * FROM accounts WHERE id = 7 LIMIT 10"
        bound = bind(context, 'query.select.008', query)

        assert bound.sql == query
        assert bound.parameter_types == []
        assert context.usage.where_usage('accounts') == {'query.select.008': ['id']}


class TestModifyingStatements:

    def test_update(self, context, mock_connector):
        bound = bind(context, 'query.update.001', "UPDATE accounts SET balance = ? WHERE id = ?")

        assert bound.kind == StatementKind.UPDATE
        assert bound.parameter_types == [SqlType.NUMERIC, SqlType.INTEGER]
        assert bound.parameter_values == ['12.50', '7']
        assert context.usage.set_usage('accounts') == {'balance'}
        assert context.usage.where_usage('accounts') == {'query.update.001': ['id']}
        assert context.usage.queries(StatementKind.UPDATE, 'accounts') == ['query.update.001']
        mock_connector.get_sample_row.assert_called_once_with('accounts', 'public')

    def test_delete_with_in_list(self, context):
        bound = bind(context, 'query.delete.001', "DELETE FROM accounts WHERE id IN (?, ?)")

        assert bound.parameter_types == [SqlType.INTEGER, SqlType.INTEGER]
        assert bound.parameter_values == ['7', '7']
        assert context.usage.where_usage('accounts') == {'query.delete.001': ['id']}
        assert context.usage.queries(StatementKind.DELETE, 'accounts') == ['query.delete.001']

    def test_insert_with_placeholders_is_unsupported(self, context):
        result = bind(context, 'query.insert.001', "INSERT INTO accounts (id, balance) VALUES (?, ?)")

        assert isinstance(result, UnsupportedStatement)
        assert 'INSERT' in result.reason
        assert context.usage.queries(StatementKind.INSERT, 'accounts') == ['query.insert.001']

    def test_insert_without_placeholders(self, context):
        query = "INSERT INTO accounts (id, balance) VALUES (99, 1.00)"
        bound = bind(context, 'query.insert.002', query)

        assert isinstance(bound, BoundStatement)
        assert bound.sql == query
