"""
Parameter Binder & Deparser

Replaces placeholders with literals built from sampled table data, forces
LIMIT 1 on selects, and records each column reference in the Usage Tracker.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

from pglast import ast
from pglast.enums.nodes import LimitOption

from .context import AnalysisContext
from .exceptions import ParameterBindingError
from .query_parser import (
    Clause,
    ColumnReference,
    InExpression,
    JoinPredicate,
    ParameterSite,
    QueryParser,
    StatementKind,
    StatementUsage,
    substitute_parameters,
)
from .sql_types import SqlType, default_value, render_literal

logger = logging.getLogger(__name__)


@dataclass
class BoundStatement:
    """A statement ready for plan inspection."""
    query_id: str
    kind: StatementKind
    original_query: str
    sql: str
    tables: List[str] = field(default_factory=list)
    parameter_types: List[SqlType] = field(default_factory=list)
    parameter_values: List[str] = field(default_factory=list)

    @property
    def rewritten(self) -> bool:
        return self.sql != self.original_query


@dataclass
class UnsupportedStatement:
    """A statement the binder cannot turn into executable SQL."""
    query_id: str
    kind: StatementKind
    original_query: str
    reason: str
    tables: List[str] = field(default_factory=list)


BindResult = Union[BoundStatement, UnsupportedStatement]


def force_limit_one(statement):
    """Replace the LIMIT of a select with LIMIT 1"""
    statement.limitCount = ast.A_Const(val=ast.Integer(ival=1))
    statement.limitOption = LimitOption.LIMIT_OPTION_COUNT


class ParameterBinder:
    """
    Turns parsed statements into literal SQL

    Usage and aliases are recorded into the run context as a side effect of
    binding.
    """

    def __init__(self, context: AnalysisContext):
        self.context = context

    @property
    def catalog(self):
        return self.context.catalog

    def bind(self, query_id: str, parser: QueryParser) -> BindResult:
        """
        Bind a parsed statement

        Args:
            query_id: Identifier of the query in the corpus
            parser: Parsed statement

        Returns:
            BoundStatement, or UnsupportedStatement for INSERT with placeholders

        Raises:
            ParameterBindingError: If a placeholder cannot be bound
            SchemaError: If a referenced table cannot be introspected
        """
        usage = parser.extract_usage()
        tables = parser.resolve_tables(self.catalog)

        for binding in usage.aliases:
            self.context.aliases.register(binding.alias, binding.table)

        if usage.kind == StatementKind.SELECT:
            for table in tables:
                self.context.usage.register_statement(usage.kind, table, query_id)
        else:
            for table in usage.target_tables:
                self.context.usage.register_statement(usage.kind, table, query_id)

        if usage.kind == StatementKind.INSERT:
            if parser.has_placeholders:
                return UnsupportedStatement(
                    query_id=query_id,
                    kind=usage.kind,
                    original_query=parser.query,
                    reason="Literal substitution for INSERT statements is not supported",
                    tables=tables,
                )
            return BoundStatement(query_id, usage.kind, parser.query, parser.query, tables)

        if usage.kind in (StatementKind.UPDATE, StatementKind.DELETE):
            for table in usage.target_tables:
                self.catalog.sample_row(table)

        self._record_usage(query_id, usage)

        if not parser.has_placeholders:
            return BoundStatement(query_id, usage.kind, parser.query, parser.query, tables)

        literals: Dict[int, str] = {}
        parameter_types: List[SqlType] = []
        parameter_values: List[str] = []
        for site in sorted(usage.parameters, key=lambda s: s.number):
            if site.number in literals:
                continue
            literal, sql_type = self._synthesise(site, tables)
            literals[site.number] = literal
            parameter_types.append(sql_type)
            parameter_values.append(literal)

        if usage.kind == StatementKind.SELECT and usage.has_limit:
            force_limit_one(parser.statement)
            parameter_types.append(SqlType.INTEGER)
            parameter_values.append('1')

        sql = substitute_parameters(parser.deparse(), literals)
        logger.debug("%s rewritten as: %s", query_id, sql)

        return BoundStatement(
            query_id=query_id,
            kind=usage.kind,
            original_query=parser.query,
            sql=sql,
            tables=tables,
            parameter_types=parameter_types,
            parameter_values=parameter_values,
        )

    def _owner(
        self,
        qualifier: Optional[str],
        table_context: Optional[str],
        column: str,
        tables: List[str]
    ) -> Optional[str]:
        """Table a column reference belongs to"""
        if qualifier:
            table = self.context.aliases.resolve(qualifier)
            if table in tables:
                return table
            # derived table or CTE qualifier, resolved like an unqualified column
        if self._has_column(table_context, column):
            return table_context
        for candidate in tables:
            if self._has_column(candidate, column):
                return candidate
        return table_context

    def _has_column(self, table: Optional[str], column: str) -> bool:
        schema = self.catalog.get(table) if table else None
        return schema is not None and schema.column_type(column) is not None

    def _record_usage(self, query_id: str, usage: StatementUsage):
        tracker = self.context.usage
        for record in usage.records:
            table = self._owner(record.qualifier, record.table_context, record.column, usage.tables)
            if table is None or self.catalog.get(table) is None:
                continue
            if isinstance(record, JoinPredicate):
                tracker.record_on(table, query_id, record.column)
            elif isinstance(record, InExpression):
                tracker.record_where(table, query_id, record.column)
            elif isinstance(record, ColumnReference):
                if record.clause == Clause.SET:
                    tracker.record_set(table, record.column)
                else:
                    tracker.record_where(table, query_id, record.column)

    def _synthesise(self, site: ParameterSite, tables: List[str]) -> Tuple[str, SqlType]:
        """Literal text and type for one placeholder"""
        if site.column is None:
            if site.clause == Clause.OFFSET:
                return '0', SqlType.INTEGER
            if site.clause == Clause.LIMIT:
                return '1', SqlType.INTEGER
            raise ParameterBindingError(f"Cannot determine the column for parameter ${site.number}")

        table = self._owner(site.qualifier, site.table_context, site.column, tables)
        sql_type = self.catalog.introspect(table).column_type(site.column) if table else None
        if sql_type is None:
            raise ParameterBindingError(
                f"Column '{site.column}' for parameter ${site.number} not found in "
                f"{', '.join(tables) or 'any table'}"
            )

        value = self.catalog.sample_row(table).get(site.column)
        if value is None:
            value = default_value(sql_type)
        return render_literal(value, sql_type), sql_type
