"""
Tests for PlanExecutor and plan parsing
"""
from unittest.mock import call

import pytest

from query_analyser.plan_executor import (
    EXPLAIN_ANALYZE,
    EXPLAIN_VERBOSE,
    PlanExecutor,
    parse_plan,
)


class TestParsePlan:
    """Timing extraction from EXPLAIN output"""

    def test_timings(self):
        result = parse_plan([
            'Index Scan using accounts_pkey on public.accounts  (cost=0.15..8.17 rows=1 width=72)',
            '  Output: id, balance',
            'Planning Time: 0.123 ms',
            'Execution Time: 0.045 ms',
        ])

        assert result.planning_time_ms == 0.123
        assert result.execution_time_ms == 0.045
        assert len(result.plan) == 4
        assert result.plan_text.startswith('Index Scan')

    def test_lowercase_timing_lines(self):
        result = parse_plan(['Planning time: 1.5 ms', 'Execution time: 2.25 ms'])
        assert result.planning_time_ms == 1.5
        assert result.execution_time_ms == 2.25

    def test_plan_without_timings(self):
        result = parse_plan(['Seq Scan on public.orders  (cost=0.00..1.01 rows=1 width=40)'], analyzed=False)

        assert result.planning_time_ms is None
        assert result.execution_time_ms is None
        assert not result.analyzed

    def test_unreadable_timing(self):
        assert parse_plan(['Planning Time: n/a']).planning_time_ms is None


class TestPlanExecutor:
    """Test suite for PlanExecutor class"""

    def test_analyze_for_tables_without_foreign_keys(self, context, mock_connector):
        executor = PlanExecutor(mock_connector, context.catalog, plan_count=2)

        result = executor.inspect("SELECT * FROM accounts WHERE id = 7", ['accounts'])

        statement = f"{EXPLAIN_ANALYZE} SELECT * FROM accounts WHERE id = 7"
        assert mock_connector.execute_in_rollback.call_args_list == [
            call(statement, fetch=False),
            call(statement, fetch=False),
            call(statement),
        ]
        assert result.analyzed
        assert result.planning_time_ms == 0.050
        assert result.execution_time_ms == 0.020

    def test_verbose_only_when_foreign_keys(self, context, mock_connector):
        executor = PlanExecutor(mock_connector, context.catalog)

        assert executor.explain_prefix(['accounts', 'orders']) == EXPLAIN_VERBOSE
        assert executor.explain_prefix(['customers']) == EXPLAIN_VERBOSE
        assert executor.explain_prefix(['accounts']) == EXPLAIN_ANALYZE

    def test_verbose_plan_is_not_analyzed(self, context, mock_connector):
        executor = PlanExecutor(mock_connector, context.catalog, plan_count=0)

        result = executor.inspect("DELETE FROM orders WHERE id = 5", ['orders'])

        mock_connector.execute_in_rollback.assert_called_once_with(
            f"{EXPLAIN_VERBOSE} DELETE FROM orders WHERE id = 5"
        )
        assert not result.analyzed

    def test_default_warm_up_count(self, context, mock_connector):
        PlanExecutor(mock_connector, context.catalog).inspect("SELECT 1 FROM accounts", ['accounts'])
        assert mock_connector.execute_in_rollback.call_count == 6

    def test_negative_plan_count(self, context, mock_connector):
        with pytest.raises(ValueError, match="negative"):
            PlanExecutor(mock_connector, context.catalog, plan_count=-1)

    def test_execution_failure_propagates(self, context, mock_connector):
        mock_connector.execute_in_rollback.side_effect = RuntimeError("Failed to execute statement: boom")
        executor = PlanExecutor(mock_connector, context.catalog, plan_count=0)

        with pytest.raises(RuntimeError, match="boom"):
            executor.inspect("SELECT * FROM accounts", ['accounts'])
