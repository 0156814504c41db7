"""
PostgreSQL statement parsing and classification using pglast

Converts JDBC-style '?' placeholders to numbered parameters, classifies the
statement and walks its AST to collect table, alias, column-usage and
parameter records.
"""
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple, Union

import pglast
from pglast.enums.parsenodes import A_Expr_Kind
from pglast.parser import ParseError as SQLSyntaxError
from pglast.stream import RawStream

from .exceptions import ParameterBindingError, ParseError

_IDENTIFIER_CHARS = frozenset('abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_$')
_PARAMETER_RE = re.compile(r'\$(\d+)')
_DOLLAR_TAG_RE = re.compile(r'\$([A-Za-z_][A-Za-z_0-9]*)?\$')


def _skip_quoted(sql: str, start: int, quote: str, backslash_escapes: bool) -> int:
    """Index just past the quoted section opening at start."""
    i = start + 1
    length = len(sql)
    while i < length:
        ch = sql[i]
        if backslash_escapes and ch == '\\':
            i += 2
            continue
        if ch == quote:
            if i + 1 < length and sql[i + 1] == quote:
                i += 2
                continue
            return i + 1
        i += 1
    return length


def rewrite_placeholders(sql: str, replace: Callable[[str], str]) -> str:
    """
    Replace placeholder tokens that appear outside literals and comments

    String literals, quoted identifiers, dollar-quoted bodies and comments are
    copied unchanged.

    Args:
        sql: SQL text
        replace: Called with each '?' or '$n' token, returns its replacement

    Returns:
        Rewritten SQL text
    """
    out = []
    i = 0
    length = len(sql)
    while i < length:
        ch = sql[i]
        previous = sql[i - 1] if i else ''
        if ch == "'":
            escaped = previous in ('e', 'E') and (i < 2 or sql[i - 2] not in _IDENTIFIER_CHARS)
            end = _skip_quoted(sql, i, "'", escaped)
        elif ch == '"':
            end = _skip_quoted(sql, i, '"', False)
        elif sql.startswith('--', i):
            end = sql.find('\n', i)
            end = length if end == -1 else end
        elif sql.startswith('/*', i):
            end = sql.find('*/', i + 2)
            end = length if end == -1 else end + 2
        elif ch == '$' and previous not in _IDENTIFIER_CHARS:
            match = _PARAMETER_RE.match(sql, i)
            if match:
                out.append(replace(match.group(0)))
                i = match.end()
                continue
            tag = _DOLLAR_TAG_RE.match(sql, i)
            if tag:
                end = sql.find(tag.group(0), tag.end())
                end = length if end == -1 else end + len(tag.group(0))
            else:
                end = i + 1
        elif ch == '?':
            out.append(replace(ch))
            i += 1
            continue
        else:
            end = i + 1
        out.append(sql[i:end])
        i = end
    return ''.join(out)


def normalise_placeholders(sql: str) -> Tuple[str, int]:
    """
    Number JDBC '?' placeholders as PostgreSQL parameters

    Returns:
        (sql with $1..$n parameters, number of distinct parameters)
    """
    count = 0
    highest = 0

    def replace(token: str) -> str:
        nonlocal count, highest
        if token == '?':
            count += 1
            return f'${count}'
        highest = max(highest, int(token[1:]))
        return token

    rewritten = rewrite_placeholders(sql, replace)
    return rewritten, max(count, highest)


def substitute_parameters(sql: str, literals: Dict[int, str]) -> str:
    """
    Replace every $n parameter with its literal text

    Raises:
        ParameterBindingError: If a parameter has no literal
    """
    def replace(token: str) -> str:
        if token == '?':
            raise ParameterBindingError("Unnumbered placeholder left in statement")
        number = int(token[1:])
        if number not in literals:
            raise ParameterBindingError(f"No value bound for parameter {token}")
        return literals[number]

    return rewrite_placeholders(sql, replace)


class StatementKind(str, Enum):
    SELECT = 'select'
    UPDATE = 'update'
    DELETE = 'delete'
    INSERT = 'insert'


class Clause(str, Enum):
    """Where in the statement a column or parameter was found."""
    SELECT = 'select'
    ON = 'on'
    WHERE = 'where'
    SET = 'set'
    LIMIT = 'limit'
    OFFSET = 'offset'
    OTHER = 'other'


@dataclass(frozen=True)
class AliasBinding:
    alias: str
    table: str


@dataclass(frozen=True)
class ColumnReference:
    """A column used in a WHERE or SET context."""
    column: str
    qualifier: Optional[str]
    table_context: Optional[str]
    clause: Clause


@dataclass(frozen=True)
class InExpression:
    """Left-hand column of an IN (...) list."""
    column: str
    qualifier: Optional[str]
    table_context: Optional[str]


@dataclass(frozen=True)
class JoinPredicate:
    """A column used in a JOIN ... ON condition."""
    column: str
    qualifier: Optional[str]
    table_context: Optional[str]


@dataclass(frozen=True)
class ParameterSite:
    """
    A placeholder together with the column it is compared against

    column is None when no column could be associated with the placeholder.
    """
    number: int
    column: Optional[str]
    qualifier: Optional[str]
    table_context: Optional[str]
    clause: Clause


UsageRecord = Union[ColumnReference, InExpression, JoinPredicate]


@dataclass
class StatementUsage:
    """Everything the AST walk found in one statement."""
    kind: StatementKind
    tables: List[str] = field(default_factory=list)
    target_tables: List[str] = field(default_factory=list)
    aliases: List[AliasBinding] = field(default_factory=list)
    records: List[UsageRecord] = field(default_factory=list)
    parameters: List[ParameterSite] = field(default_factory=list)
    has_limit: bool = False

    def of_type(self, record_type) -> List[UsageRecord]:
        return [record for record in self.records if isinstance(record, record_type)]


def _column_ref(node) -> Optional[Tuple[Optional[str], str]]:
    """(qualifier, column) of a ColumnRef, None for '*' references"""
    fields = node.fields or ()
    if not fields or not hasattr(fields[-1], 'sval'):
        return None
    column = fields[-1].sval.lower()
    qualifier = None
    if len(fields) >= 2 and hasattr(fields[-2], 'sval'):
        qualifier = fields[-2].sval.lower()
    return qualifier, column


def _returning(node):
    """RETURNING targets of an UPDATE or DELETE"""
    # pglast 8 wraps the target list in a ReturningClause node
    targets = getattr(node, 'returningList', None)
    if targets is None:
        clause = getattr(node, 'returningClause', None)
        targets = clause.exprs if clause is not None else None
    return targets


def _is_column(node) -> bool:
    return node is not None and node.__class__.__name__ == 'ColumnRef'


class UsageExtractor:
    """
    Walks a parsed statement and returns tagged usage records

    The walk has no side effects outside the extractor; callers decide what to
    do with the records.
    """

    # Attributes holding sub-expressions of expression nodes
    EXPRESSION_ATTRS = (
        'lexpr', 'rexpr', 'args', 'arg', 'testexpr', 'expr', 'result',
        'defresult', 'elements', 'val', 'node', 'source', 'agg_filter', 'agg_order',
    )

    def __init__(self, kind: StatementKind):
        self.kind = kind
        self.tables: List[str] = []
        self.target_tables: List[str] = []
        self.aliases: List[AliasBinding] = []
        self.records: List[UsageRecord] = []
        self.parameters: List[ParameterSite] = []
        self.cte_names = set()
        self.set_columns = set()
        self.table_context: Optional[str] = None
        self.current_column: Optional[Tuple[Optional[str], str]] = None
        self.has_limit = False

    def extract(self, statement) -> StatementUsage:
        node_type = statement.__class__.__name__
        if node_type == 'SelectStmt':
            self._visit_select(statement, top_level=True)
        elif node_type == 'UpdateStmt':
            self._visit_update(statement)
        elif node_type == 'DeleteStmt':
            self._visit_delete(statement)
        elif node_type == 'InsertStmt':
            self._visit_insert(statement)

        return StatementUsage(
            kind=self.kind,
            tables=self.tables,
            target_tables=self.target_tables,
            aliases=self.aliases,
            records=self.records,
            parameters=self.parameters,
            has_limit=self.has_limit,
        )

    def _add_table(self, relation) -> Optional[str]:
        table = relation.relname.lower()
        if table in self.cte_names:
            return None
        if table not in self.tables:
            self.tables.append(table)
        if relation.alias is not None and relation.alias.aliasname:
            self.aliases.append(AliasBinding(relation.alias.aliasname.lower(), table))
        return table

    def _add_target(self, relation) -> str:
        table = self._add_table(relation)
        self.target_tables.append(table)
        self.table_context = table
        return table

    def _visit_with(self, with_clause):
        if with_clause is None:
            return
        for cte in with_clause.ctes or ():
            self.cte_names.add(cte.ctename.lower())
            self._visit_subquery(cte.ctequery)

    def _visit_subquery(self, node):
        """Visit a nested query without disturbing the enclosing context"""
        if node is None:
            return
        saved = (self.table_context, self.current_column)
        if node.__class__.__name__ == 'SelectStmt':
            self._visit_select(node)
        else:
            self._visit_expression(node, Clause.OTHER)
        self.table_context, self.current_column = saved

    def _visit_select(self, node, top_level: bool = False):
        self._visit_with(node.withClause)

        if node.larg is not None or node.rarg is not None:
            self._visit_subquery(node.larg)
            self._visit_subquery(node.rarg)
        elif node.valuesLists:
            for row in node.valuesLists:
                self._visit_expression(row, Clause.OTHER)
        else:
            for item in node.fromClause or ():
                self._visit_from(item)
            for target in node.targetList or ():
                self._visit_expression(target, Clause.SELECT)
            self._visit_expression(node.whereClause, Clause.WHERE)
            self._visit_expression(node.groupClause, Clause.OTHER)
            self._visit_expression(node.havingClause, Clause.OTHER)

        self._visit_expression(node.sortClause, Clause.OTHER)

        if node.limitOffset is not None:
            self.current_column = None
            self._visit_expression(node.limitOffset, Clause.OFFSET)
        if node.limitCount is not None:
            if top_level:
                self.has_limit = True
            else:
                self.current_column = None
                self._visit_expression(node.limitCount, Clause.LIMIT)

    def _visit_from(self, item):
        node_type = item.__class__.__name__

        if node_type == 'RangeVar':
            table = self._add_table(item)
            if table is not None:
                self.table_context = table
        elif node_type == 'JoinExpr':
            self._visit_from(item.larg)
            self._visit_from(item.rarg)
            self._visit_expression(item.quals, Clause.ON)
        elif node_type == 'RangeSubselect':
            self._visit_subquery(item.subquery)

    def _visit_update(self, node):
        self._visit_with(node.withClause)
        table = self._add_target(node.relation)
        targets = node.targetList or ()
        self.set_columns = {target.name.lower() for target in targets if target.name}

        for target in targets:
            column = target.name.lower()
            self.records.append(ColumnReference(column, None, table, Clause.SET))
            self.current_column = (None, column)
            value = target.val
            if value.__class__.__name__ == 'MultiAssignRef':
                # SET (a, b) = (x, y): each target owns one element of the row
                source = value.source
                if source.__class__.__name__ == 'RowExpr':
                    self._visit_expression(source.args[value.colno - 1], Clause.SET)
                elif value.colno == 1:
                    self._visit_expression(source, Clause.SET)
            else:
                self._visit_expression(value, Clause.SET)

        for item in node.fromClause or ():
            self._visit_from(item)
        self.table_context = table
        self.current_column = None

        self._visit_expression(node.whereClause, Clause.WHERE)
        self._visit_expression(_returning(node), Clause.OTHER)

    def _visit_delete(self, node):
        self._visit_with(node.withClause)
        table = self._add_target(node.relation)

        for item in node.usingClause or ():
            self._visit_from(item)
        self.table_context = table

        self._visit_expression(node.whereClause, Clause.WHERE)
        self._visit_expression(_returning(node), Clause.OTHER)

    def _visit_insert(self, node):
        self._visit_with(node.withClause)
        self._add_target(node.relation)
        self._visit_subquery(node.selectStmt)

    def _record_column(self, qualifier: Optional[str], column: str, clause: Clause):
        if clause == Clause.ON:
            self.records.append(JoinPredicate(column, qualifier, self.table_context))
        elif clause in (Clause.WHERE, Clause.SET):
            if self.kind == StatementKind.UPDATE and column in self.set_columns:
                clause = Clause.SET
            else:
                clause = Clause.WHERE
            self.records.append(ColumnReference(column, qualifier, self.table_context, clause))

    def _visit_in(self, node, clause: Clause):
        """Only the left-hand column of an IN list counts as usage"""
        qualifier, column = _column_ref(node.lexpr)
        self.current_column = (qualifier, column)
        if clause == Clause.ON:
            self.records.append(JoinPredicate(column, qualifier, self.table_context))
        elif clause in (Clause.WHERE, Clause.SET):
            if self.kind == StatementKind.UPDATE and column in self.set_columns:
                self.records.append(ColumnReference(column, qualifier, self.table_context, Clause.SET))
            else:
                self.records.append(InExpression(column, qualifier, self.table_context))
        self._visit_expression(node.rexpr, Clause.OTHER)

    def _visit_expression(self, node, clause: Clause):
        if node is None:
            return

        if isinstance(node, (list, tuple)):
            for item in node:
                self._visit_expression(item, clause)
            return

        if isinstance(node, (str, int, float, bool)):
            return

        node_type = node.__class__.__name__

        if node_type == 'ColumnRef':
            ref = _column_ref(node)
            if ref is not None:
                self.current_column = ref
                self._record_column(ref[0], ref[1], clause)
            return

        if node_type == 'ParamRef':
            qualifier, column = self.current_column or (None, None)
            self.parameters.append(ParameterSite(
                number=node.number,
                column=column,
                qualifier=qualifier,
                table_context=self.table_context,
                clause=clause,
            ))
            return

        if node_type == 'A_Expr':
            if node.kind == A_Expr_Kind.AEXPR_IN and _is_column(node.lexpr) and _column_ref(node.lexpr):
                self._visit_in(node, clause)
                return
            # '? = column' binds the placeholder to the column on the right
            if _is_column(node.rexpr) and not _is_column(node.lexpr):
                self.current_column = _column_ref(node.rexpr) or self.current_column
            self._visit_expression(node.lexpr, clause)
            self._visit_expression(node.rexpr, clause)
            return

        if node_type == 'SubLink':
            self._visit_expression(node.testexpr, clause)
            self._visit_subquery(node.subselect)
            return

        if node_type == 'SelectStmt':
            self._visit_subquery(node)
            return

        for attr_name in self.EXPRESSION_ATTRS:
            value = getattr(node, attr_name, None)
            if value is not None:
                self._visit_expression(value, clause)


_STATEMENT_KINDS = {
    'SelectStmt': StatementKind.SELECT,
    'UpdateStmt': StatementKind.UPDATE,
    'DeleteStmt': StatementKind.DELETE,
    'InsertStmt': StatementKind.INSERT,
}


class QueryParser:
    """
    Parse one SQL statement and classify it
    """

    def __init__(self, query: str):
        """
        Initialize parser with SQL query

        Args:
            query: SQL text, with '?' or '$n' placeholders

        Raises:
            ParseError: If the query is empty, invalid SQL, not a single
                statement or not a SELECT, UPDATE, DELETE or INSERT
        """
        if not query or not query.strip():
            raise ParseError("Query cannot be empty")

        self.query = query
        self.sql, self.placeholder_count = normalise_placeholders(query)
        try:
            statements = pglast.parse_sql(self.sql)
        except SQLSyntaxError as e:
            raise ParseError(f"Failed to parse SQL query: {e}")

        if len(statements) != 1:
            raise ParseError(f"Expected a single statement, found {len(statements)}")

        self.statement = statements[0].stmt
        node_type = self.statement.__class__.__name__
        if node_type not in _STATEMENT_KINDS:
            raise ParseError(f"Unsupported statement type: {node_type}")
        self.kind = _STATEMENT_KINDS[node_type]
        self._usage: Optional[StatementUsage] = None

    @property
    def has_placeholders(self) -> bool:
        return self.placeholder_count > 0

    def extract_usage(self) -> StatementUsage:
        """
        Walk the statement once and return its usage records

        Returns:
            StatementUsage with tables, aliases, column records and parameter sites
        """
        if self._usage is None:
            self._usage = UsageExtractor(self.kind).extract(self.statement)
        return self._usage

    def get_tables(self) -> List[str]:
        """
        Referenced table names, lowercase, in order of first appearance

        Returns:
            List of table names (CTE names excluded)
        """
        return list(self.extract_usage().tables)

    def resolve_tables(self, catalog) -> List[str]:
        """Introspect every referenced table into the catalog"""
        tables = self.get_tables()
        for table in tables:
            catalog.introspect(table)
        return tables

    def deparse(self) -> str:
        """SQL text of the (possibly modified) statement tree"""
        return RawStream()(self.statement)
