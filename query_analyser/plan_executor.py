"""
Plan Executor

Runs EXPLAIN for a rewritten statement inside a rolled-back transaction and
extracts planning and execution timings from the plan text.
"""
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from .config import DEFAULT_PLAN_COUNT

logger = logging.getLogger(__name__)

EXPLAIN_ANALYZE = "EXPLAIN (ANALYZE, VERBOSE, BUFFERS ON)"
EXPLAIN_VERBOSE = "EXPLAIN (VERBOSE)"

PLANNING_TIME_PREFIX = 'planning time:'
EXECUTION_TIME_PREFIX = 'execution time:'


@dataclass
class PlanResult:
    """Plan text and timings of one statement."""
    plan: List[str] = field(default_factory=list)
    planning_time_ms: Optional[float] = None
    execution_time_ms: Optional[float] = None
    analyzed: bool = True

    @property
    def plan_text(self) -> str:
        return '\n'.join(self.plan)


def _timing(line: str, prefix: str) -> Optional[float]:
    """Milliseconds from a 'Planning time: 0.123 ms' style line"""
    rest = line[len(prefix):].strip()
    value = rest.split(' ', 1)[0]
    try:
        return float(value)
    except ValueError:
        logger.warning("Unreadable timing line: %s", line)
        return None


def parse_plan(lines: Iterable[str], analyzed: bool = True) -> PlanResult:
    """
    Extract timings from EXPLAIN output lines

    Args:
        lines: Plan output, one line per row
        analyzed: Whether the plan came from EXPLAIN ANALYZE

    Returns:
        PlanResult; timings stay None when the plan has no timing lines
    """
    result = PlanResult(analyzed=analyzed)
    for line in lines:
        result.plan.append(line)
        stripped = line.strip()
        lowered = stripped.lower()
        if lowered.startswith(PLANNING_TIME_PREFIX):
            result.planning_time_ms = _timing(stripped, PLANNING_TIME_PREFIX)
        elif lowered.startswith(EXECUTION_TIME_PREFIX):
            result.execution_time_ms = _timing(stripped, EXECUTION_TIME_PREFIX)
    return result


class PlanExecutor:
    """
    Profiles statements with EXPLAIN

    Statements touching tables with foreign-key relations are only planned
    (EXPLAIN VERBOSE); all others are executed with EXPLAIN ANALYZE. Every
    execution is rolled back by the connector.
    """

    def __init__(self, db_connector, catalog, plan_count: int = DEFAULT_PLAN_COUNT):
        """
        Args:
            db_connector: DatabaseConnector
            catalog: SchemaCatalog holding the statement's tables
            plan_count: Warm-up executions before the measured one
        """
        if plan_count < 0:
            raise ValueError("plan_count cannot be negative")
        self.db_connector = db_connector
        self.catalog = catalog
        self.plan_count = plan_count

    def explain_prefix(self, tables: Iterable[str]) -> str:
        """EXPLAIN variant for a statement over the given tables"""
        for table in tables:
            if self.catalog.introspect(table).has_foreign_keys:
                return EXPLAIN_VERBOSE
        return EXPLAIN_ANALYZE

    def inspect(self, sql: str, tables: Iterable[str]) -> PlanResult:
        """
        Warm up and then measure a statement

        Args:
            sql: Executable SQL (no placeholders)
            tables: Tables the statement references

        Returns:
            PlanResult of the measured run
        """
        prefix = self.explain_prefix(tables)
        statement = f"{prefix} {sql}"

        for _ in range(self.plan_count):
            self.db_connector.execute_in_rollback(statement, fetch=False)

        lines = self.db_connector.execute_in_rollback(statement)
        result = parse_plan(lines, analyzed=prefix == EXPLAIN_ANALYZE)
        logger.debug(
            "Plan: planning %s ms, execution %s ms",
            result.planning_time_ms, result.execution_time_ms
        )
        return result
