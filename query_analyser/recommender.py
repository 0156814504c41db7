"""
Index Recommendation Engine

Derives primary-key and composite-index suggestions from the column usage
recorded over a whole query corpus, and classifies columns by their effect on
heap-only tuple (HOT) updates.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from .schema_catalog import SchemaCatalog, TableSchema
from .usage_tracker import UsageTracker


class HotStatus(str, Enum):
    """Effect of a column on HOT updates."""
    HOT_RISK = 'hot_risk'  # indexed and updated
    MUTATE_ONLY = 'mutate_only'  # updated, not indexed
    PLAIN = 'plain'


@dataclass
class IndexRecommendation:
    """Represents a single index recommendation"""
    table_name: str
    columns: List[str]
    rank: int = 0
    hot_safe: bool = True
    reason: str = ''

    def get_index_name(self) -> str:
        """Generate consistent index name"""
        return f"idx_{self.table_name}_{'_'.join(self.columns)}"

    def get_ddl(self) -> str:
        """Generate CREATE INDEX DDL statement"""
        return f"CREATE INDEX {self.get_index_name()} ON {self.table_name} ({', '.join(self.columns)});"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rank': self.rank,
            'name': self.get_index_name(),
            'table': self.table_name,
            'columns': list(self.columns),
            'hot_safe': self.hot_safe,
            'reason': self.reason,
            'ddl': self.get_ddl(),
        }


@dataclass
class PrimaryKeyRecommendation:
    """Primary key implied by the columns queries filter and join on"""
    table_name: str
    columns: List[str]
    existing_columns: List[str] = field(default_factory=list)

    @property
    def matches_existing(self) -> bool:
        return set(self.columns) == set(self.existing_columns)

    @property
    def matches_label(self) -> str:
        return 'Yes' if self.matches_existing else 'No'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'table': self.table_name,
            'columns': list(self.columns),
            'existing_columns': list(self.existing_columns),
            'matches_existing': self.matches_label,
        }


@dataclass
class TableRecommendations:
    """Suggestions and HOT classification for one table."""
    table_name: str
    primary_key: Optional[PrimaryKeyRecommendation] = None
    indexes: List[IndexRecommendation] = field(default_factory=list)
    hot_columns: Dict[str, HotStatus] = field(default_factory=dict)
    hot_blocking_indexes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'table': self.table_name,
            'primary_key': self.primary_key.to_dict() if self.primary_key else None,
            'indexes': [index.to_dict() for index in self.indexes],
            'hot_columns': {column: status.value for column, status in self.hot_columns.items()},
            'hot_blocking_indexes': list(self.hot_blocking_indexes),
        }


def trim_set_columns(columns: List[str], set_columns: Set[str]) -> List[str]:
    """Drop updated columns from every position but the first"""
    if not columns:
        return []
    return [columns[0]] + [column for column in columns[1:] if column not in set_columns]


class IndexRecommender:
    """
    Recommends primary keys and indexes from recorded column usage

    Candidates come from per-query WHERE column lists, JOIN ON columns and the
    table's foreign-key columns; wider candidates are considered first.
    """

    def __init__(self, catalog: SchemaCatalog, usage: UsageTracker):
        """
        Initialise recommender.

        Args:
            catalog: Schema catalog of the run
            usage: Usage recorded over the run
        """
        self.catalog = catalog
        self.usage = usage

    def suggest_primary_key(self, table_name: str) -> Optional[PrimaryKeyRecommendation]:
        """
        Columns used in ON and WHERE, minus columns that are updated

        Returns:
            PrimaryKeyRecommendation, or None when the table has no such columns
        """
        schema = self.catalog.introspect(table_name)
        columns: Set[str] = set()
        for used in self.usage.on_usage(schema.name).values():
            columns.update(used)
        for used in self.usage.where_usage(schema.name).values():
            columns.update(used)
        columns -= self.usage.set_usage(schema.name)

        if not columns:
            return None
        return PrimaryKeyRecommendation(
            table_name=schema.name,
            columns=sorted(columns),
            existing_columns=list(schema.primary_key),
        )

    def _candidate_pool(self, schema: TableSchema) -> List[List[str]]:
        """Distinct candidate column lists in discovery order"""
        pool: List[List[str]] = []

        def add(columns: List[str]):
            if columns and columns not in pool:
                pool.append(list(columns))

        for columns in self.usage.where_usage(schema.name).values():
            add(columns)
        for columns in self.usage.on_usage(schema.name).values():
            for column in sorted(columns):
                add([column])
        for foreign_key in schema.imported_keys:
            add([foreign_key.fk_column])
        return pool

    def suggest_indexes(self, table_name: str) -> List[IndexRecommendation]:
        """
        Composite index suggestions for one table

        Returns:
            Recommendations in rank order; none repeats an existing index
        """
        schema = self.catalog.introspect(table_name)
        set_columns = self.usage.set_usage(schema.name)
        existing = [list(columns) for columns in schema.indexes.values()]

        ranked = sorted(self._candidate_pool(schema), key=lambda c: -len(c))

        suggested: List[List[str]] = []
        recommendations: List[IndexRecommendation] = []
        for candidate in ranked:
            if len(candidate) > 1 and all(column in set_columns for column in candidate):
                continue
            columns = trim_set_columns(candidate, set_columns)
            if columns in suggested or columns in existing:
                continue
            suggested.append(columns)

            hot_safe = not (len(columns) == 1 and columns[0] in set_columns)
            reason = "Columns used together in WHERE" if len(columns) > 1 else "Column used as lookup key"
            if not hot_safe:
                reason += "; column is updated, index prevents HOT updates"
            recommendations.append(IndexRecommendation(
                table_name=schema.name,
                columns=columns,
                rank=len(recommendations) + 1,
                hot_safe=hot_safe,
                reason=reason,
            ))
        return recommendations

    def classify_hot(self, table_name: str) -> Dict[str, HotStatus]:
        """HOT status of every column of the table"""
        schema = self.catalog.introspect(table_name)
        set_columns = self.usage.set_usage(schema.name)
        indexed = set(schema.indexed_columns())

        statuses: Dict[str, HotStatus] = {}
        for column in schema.columns:
            if column in set_columns and column in indexed:
                statuses[column] = HotStatus.HOT_RISK
            elif column in set_columns:
                statuses[column] = HotStatus.MUTATE_ONLY
            else:
                statuses[column] = HotStatus.PLAIN
        return statuses

    def hot_blocking_indexes(self, table_name: str) -> List[str]:
        """Existing indexes containing any updated column"""
        schema = self.catalog.introspect(table_name)
        set_columns = self.usage.set_usage(schema.name)
        return [
            name for name, columns in schema.indexes.items()
            if any(column in set_columns for column in columns)
        ]

    def analyse_table(self, table_name: str) -> TableRecommendations:
        schema = self.catalog.introspect(table_name)
        recommendations = TableRecommendations(table_name=schema.name)
        if self.usage.has_key_usage(schema.name):
            recommendations.primary_key = self.suggest_primary_key(schema.name)
            recommendations.indexes = self.suggest_indexes(schema.name)
        recommendations.hot_columns = self.classify_hot(schema.name)
        recommendations.hot_blocking_indexes = self.hot_blocking_indexes(schema.name)
        return recommendations

    def analyse_all(self) -> Dict[str, TableRecommendations]:
        """Recommendations for every table in the catalog"""
        return {name: self.analyse_table(name) for name in self.catalog.tables}
