"""
Usage Tracker

Accumulates, per table, which columns each query uses in JOIN ON, WHERE and
SET contexts, plus which queries read or modify the table.
"""
from collections import defaultdict
from typing import Any, Dict, List, Set

from .query_parser import StatementKind


class UsageTracker:
    """
    Run-wide column usage per table

    ON usage is a set of columns per query id; WHERE usage is an ordered list
    per query id with each newly seen column placed at the head; SET usage is
    a single set per table.
    """

    def __init__(self):
        self._on: Dict[str, Dict[str, Set[str]]] = defaultdict(dict)
        self._where: Dict[str, Dict[str, List[str]]] = defaultdict(dict)
        self._set: Dict[str, Set[str]] = defaultdict(set)
        self._statements: Dict[StatementKind, Dict[str, Set[str]]] = {
            kind: defaultdict(set) for kind in StatementKind
        }

    def register_statement(self, kind: StatementKind, table: str, query_id: str):
        self._statements[kind][table].add(query_id)

    def record_on(self, table: str, query_id: str, column: str):
        self._on[table].setdefault(query_id, set()).add(column)

    def record_where(self, table: str, query_id: str, column: str):
        columns = self._where[table].setdefault(query_id, [])
        if column not in columns:
            columns.insert(0, column)

    def record_set(self, table: str, column: str):
        self._set[table].add(column)

    def on_usage(self, table: str) -> Dict[str, Set[str]]:
        return {qid: set(cols) for qid, cols in sorted(self._on.get(table, {}).items())}

    def where_usage(self, table: str) -> Dict[str, List[str]]:
        return {qid: list(cols) for qid, cols in sorted(self._where.get(table, {}).items())}

    def set_usage(self, table: str) -> Set[str]:
        return set(self._set.get(table, set()))

    def queries(self, kind: StatementKind, table: str) -> List[str]:
        """Query ids of the given kind touching the table, sorted"""
        return sorted(self._statements[kind].get(table, set()))

    def tables(self) -> List[str]:
        """Every table with recorded usage or statements"""
        names = set(self._on) | set(self._where) | set(self._set)
        for by_table in self._statements.values():
            names.update(table for table, ids in by_table.items() if ids)
        return sorted(names)

    def has_key_usage(self, table: str) -> bool:
        """True when the table has any ON or WHERE usage"""
        return bool(self._on.get(table)) or bool(self._where.get(table))

    def to_dict(self, table: str) -> Dict[str, Any]:
        return {
            'selects': self.queries(StatementKind.SELECT, table),
            'inserts': self.queries(StatementKind.INSERT, table),
            'updates': self.queries(StatementKind.UPDATE, table),
            'deletes': self.queries(StatementKind.DELETE, table),
            'on': {qid: sorted(cols) for qid, cols in self.on_usage(table).items()},
            'where': self.where_usage(table),
            'set': sorted(self.set_usage(table)),
        }
