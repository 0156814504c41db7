"""
Batch Query Analyser

Runs a corpus of queries through parsing, parameter binding and plan
inspection in query-id order, then aggregates the recorded column usage into
primary-key and index suggestions.
"""
import json
import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from .config import DEFAULT_PLAN_COUNT, QUERY_PREFIX
from .context import AnalysisContext
from .parameter_binder import ParameterBinder, UnsupportedStatement
from .plan_executor import PlanExecutor
from .query_parser import QueryParser
from .recommender import HotStatus, IndexRecommender
from .replay import write_replay_script

logger = logging.getLogger(__name__)


@dataclass
class QueryResult:
    """Result of analysing a single query."""
    query_id: str
    statement_kind: str
    query: str
    rewritten_query: Optional[str] = None
    tables: List[str] = field(default_factory=list)
    plan: str = ''
    analyzed: bool = False
    planning_time_ms: Optional[float] = None
    execution_time_ms: Optional[float] = None
    parameter_types: List[int] = field(default_factory=list)
    parameter_values: List[str] = field(default_factory=list)
    unsupported_reason: Optional[str] = None
    replay_script: Optional[str] = None

    @property
    def supported(self) -> bool:
        return self.unsupported_reason is None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialisation."""
        return asdict(self)


@dataclass
class BatchAnalysisReport:
    """Aggregated report of an analysis run."""
    timestamp: str
    database: str = ''
    plan_count: int = DEFAULT_PLAN_COUNT
    total_queries: int = 0
    analysed_queries: int = 0
    unsupported_queries: int = 0
    completed: bool = True
    failed_query_id: Optional[str] = None
    error: Optional[str] = None
    query_results: List[Dict[str, Any]] = field(default_factory=list)
    timings: List[Dict[str, Any]] = field(default_factory=list)
    tables: List[Dict[str, Any]] = field(default_factory=list)
    index_suggestions: int = 0
    hot_risk_columns: Dict[str, List[str]] = field(default_factory=dict)
    aliases: Dict[str, str] = field(default_factory=dict)
    analysis_duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialisation."""
        return asdict(self)

    def to_json(self, indent: int = 2) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=indent, default=str)

    def get_summary(self) -> str:
        """Get human-readable summary."""
        lines = [
            "=" * 60,
            "QUERY ANALYSIS REPORT",
            "=" * 60,
            f"Timestamp: {self.timestamp}",
            f"Database: {self.database}",
            f"Duration: {self.analysis_duration_seconds:.2f} seconds",
            "",
            "QUERY STATISTICS",
            "-" * 40,
            f"Total queries: {self.total_queries}",
            f"Analysed: {self.analysed_queries}",
            f"Unsupported: {self.unsupported_queries}",
            f"Warm-up runs per query: {self.plan_count}",
        ]

        if not self.completed:
            lines.append(f"Aborted at {self.failed_query_id}: {self.error}")

        if self.timings:
            lines.extend(["", "TIMINGS (ms)", "-" * 40])
            for timing in self.timings:
                planning = timing['planning_time_ms']
                execution = timing['execution_time_ms']
                lines.append(
                    f"{timing['query_id']}: planning "
                    f"{'-' if planning is None else f'{planning:.3f}'}, execution "
                    f"{'-' if execution is None else f'{execution:.3f}'}"
                )

        lines.extend([
            "",
            "SUGGESTIONS",
            "-" * 40,
            f"Index suggestions: {self.index_suggestions}",
        ])
        for table in self.tables:
            recommendations = table['recommendations']
            primary_key = recommendations['primary_key']
            if not primary_key and not recommendations['indexes']:
                continue
            lines.append(f"{table['name']} ({table['table_size']}, indexes {table['index_size']})")
            if primary_key:
                lines.append(
                    f"  Primary key: ({', '.join(primary_key['columns'])}) "
                    f"matches existing: {primary_key['matches_existing']}"
                )
            for index in recommendations['indexes']:
                warning = '' if index['hot_safe'] else '  [blocks HOT updates]'
                lines.append(f"  IDX{index['rank']}: {index['ddl']}{warning}")

        if self.hot_risk_columns:
            lines.extend(["", "HOT UPDATE RISKS", "-" * 40])
            for table, columns in self.hot_risk_columns.items():
                lines.append(f"{table}: {', '.join(columns)}")

        lines.append("=" * 60)
        return "\n".join(lines)


class BatchAnalyser:
    """
    Analyses a query corpus sequentially against one database

    All queries of a run share one AnalysisContext, so table metadata is read
    once and column usage accumulates across the corpus.
    """

    def __init__(
        self,
        db_connector,
        context: Optional[AnalysisContext] = None,
        plan_count: int = DEFAULT_PLAN_COUNT,
        replay_dir: Optional[Union[str, Path]] = None,
        debug: bool = False,
        metrics=None,
        include_sizes: bool = True
    ):
        """
        Initialise batch analyser.

        Args:
            db_connector: Database connection handler
            context: Run state (a fresh one is created when omitted)
            plan_count: Warm-up executions before each measured plan
            replay_dir: Directory for .cli replay scripts (None disables them)
            debug: Include raw usage maps in the report
            metrics: Optional CloudWatchMetrics publisher
            include_sizes: Read table and index sizes for the report
        """
        self.db_connector = db_connector
        self.context = context or AnalysisContext.for_connector(db_connector)
        self.binder = ParameterBinder(self.context)
        self.executor = PlanExecutor(db_connector, self.context.catalog, plan_count)
        self.recommender = IndexRecommender(self.context.catalog, self.context.usage)
        self.plan_count = plan_count
        self.replay_dir = Path(replay_dir) if replay_dir else None
        self.debug = debug
        self.metrics = metrics
        self.include_sizes = include_sizes
        self.results: List[QueryResult] = []
        self.failed_query_id: Optional[str] = None

    def analyse_single_query(self, query_id: str, query: str) -> QueryResult:
        """
        Analyse a single query.

        Args:
            query_id: Identifier of the query in the corpus
            query: SQL text with '?' placeholders

        Returns:
            QueryResult

        Raises:
            ParseError, SchemaError, ParameterBindingError, RuntimeError
        """
        parser = QueryParser(query)
        bound = self.binder.bind(query_id, parser)

        if isinstance(bound, UnsupportedStatement):
            logger.warning("Skipping %s: %s", query_id, bound.reason)
            return QueryResult(
                query_id=query_id,
                statement_kind=bound.kind.value,
                query=query,
                tables=bound.tables,
                unsupported_reason=bound.reason,
            )

        plan = self.executor.inspect(bound.sql, bound.tables)
        result = QueryResult(
            query_id=query_id,
            statement_kind=bound.kind.value,
            query=query,
            rewritten_query=bound.sql,
            tables=bound.tables,
            plan=plan.plan_text,
            analyzed=plan.analyzed,
            planning_time_ms=plan.planning_time_ms,
            execution_time_ms=plan.execution_time_ms,
            parameter_types=[int(t) for t in bound.parameter_types],
            parameter_values=list(bound.parameter_values),
        )

        if self.replay_dir is not None:
            path = write_replay_script(
                self.replay_dir, query_id, query, bound.parameter_types, bound.parameter_values
            )
            if path is not None:
                result.replay_script = path.name

        if self.metrics is not None:
            self.metrics.record_query_analysis(
                query_id, result.statement_kind, result.planning_time_ms, result.execution_time_ms
            )

        return result

    def _log_failure(self, query_id: str, query: str, error: Exception):
        logger.error("Analysis of %s failed: %s", query_id, error)
        logger.error("Original query: %s", query)
        logger.error("Cached schema state: %s", self.context.catalog.describe())

    def analyse_queries(
        self,
        queries: Dict[str, str],
        progress_callback: Optional[Callable[[int, int], None]] = None
    ) -> BatchAnalysisReport:
        """
        Analyse every 'query.' entry in query-id order.

        A failing query aborts the run: the failure is logged with the query
        text and cached schema state and re-raised. Results of the queries
        analysed before it remain in self.results.

        Args:
            queries: Mapping of query id to SQL text
            progress_callback: Optional callback(current, total) for progress

        Returns:
            BatchAnalysisReport with aggregated results
        """
        start_time = time.time()
        query_ids = sorted(key for key in queries if key.startswith(QUERY_PREFIX))
        self.results = []
        self.failed_query_id = None

        for position, query_id in enumerate(query_ids, 1):
            logger.info("Analysing %s", query_id)
            try:
                result = self.analyse_single_query(query_id, queries[query_id])
            except Exception as e:
                self.failed_query_id = query_id
                self._log_failure(query_id, queries[query_id], e)
                raise
            self.results.append(result)
            if progress_callback:
                progress_callback(position, len(query_ids))

        report = self.build_report(len(query_ids))
        report.analysis_duration_seconds = time.time() - start_time

        if self.metrics is not None:
            self.metrics.record_batch_analysis(
                total_queries=report.total_queries,
                analysed_queries=report.analysed_queries,
                unsupported_queries=report.unsupported_queries,
                duration_seconds=report.analysis_duration_seconds,
                index_suggestions=report.index_suggestions,
                hot_risk_columns=sum(len(c) for c in report.hot_risk_columns.values()),
            )

        return report

    def build_report(
        self,
        total_queries: int,
        error: Optional[Exception] = None
    ) -> BatchAnalysisReport:
        """
        Aggregate the results collected so far

        Args:
            total_queries: Number of queries in the corpus
            error: Failure that aborted the run, if any

        Returns:
            BatchAnalysisReport
        """
        report = BatchAnalysisReport(
            timestamp=datetime.now().isoformat(),
            database=getattr(self.db_connector, 'database', '') or '',
            plan_count=self.plan_count,
            total_queries=total_queries,
            completed=error is None,
            failed_query_id=self.failed_query_id if error is not None else None,
            error=str(error) if error is not None else None,
            aliases=self.context.aliases.to_dict(),
        )

        for result in self.results:
            report.query_results.append(result.to_dict())
            if result.supported:
                report.analysed_queries += 1
                report.timings.append({
                    'query_id': result.query_id,
                    'planning_time_ms': result.planning_time_ms,
                    'execution_time_ms': result.execution_time_ms,
                })
            else:
                report.unsupported_queries += 1

        for name, recommendations in self.recommender.analyse_all().items():
            schema = self.context.catalog.get(name)
            table_report = {
                'name': name,
                'table_size': '',
                'index_size': '',
                'schema': schema.to_dict(),
                'recommendations': recommendations.to_dict(),
            }
            if self.include_sizes:
                table_report['table_size'] = self.db_connector.get_table_size(name)
                table_report['index_size'] = self.db_connector.get_index_size(name)
            if self.debug:
                table_report['usage'] = self.context.usage.to_dict(name)
            report.tables.append(table_report)

            report.index_suggestions += len(recommendations.indexes)
            hot_risk = [
                column for column, status in recommendations.hot_columns.items()
                if status == HotStatus.HOT_RISK
            ]
            if hot_risk:
                report.hot_risk_columns[name] = hot_risk

        return report
