"""
Schema Catalog

Introspects and caches table metadata and one sample row per table for the
duration of an analysis run.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .exceptions import SchemaError
from .sql_types import SqlType, default_value, from_postgres, type_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ForeignKey:
    """One column pair of a foreign-key constraint."""
    name: str
    fk_table: str
    fk_column: str
    pk_table: str
    pk_column: str

    def to_dict(self) -> Dict[str, str]:
        return {
            'name': self.name,
            'fk_table': self.fk_table,
            'fk_column': self.fk_column,
            'pk_table': self.pk_table,
            'pk_column': self.pk_column,
        }


@dataclass
class TableSchema:
    """Introspected metadata of one table, all identifiers lowercase."""
    name: str
    columns: Dict[str, SqlType] = field(default_factory=dict)
    primary_key: List[str] = field(default_factory=list)
    indexes: Dict[str, List[str]] = field(default_factory=dict)
    exported_keys: List[ForeignKey] = field(default_factory=list)
    imported_keys: List[ForeignKey] = field(default_factory=list)

    @property
    def has_foreign_keys(self) -> bool:
        """True when the table takes part in any foreign-key relation."""
        return bool(self.exported_keys or self.imported_keys)

    def column_type(self, column: str) -> Optional[SqlType]:
        return self.columns.get(column.lower())

    def indexed_columns(self) -> List[str]:
        """Columns appearing in at least one index, in index order."""
        seen: List[str] = []
        for columns in self.indexes.values():
            for column in columns:
                if column not in seen:
                    seen.append(column)
        return seen

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'columns': {name: type_name(sql_type) for name, sql_type in self.columns.items()},
            'primary_key': list(self.primary_key),
            'indexes': {name: list(cols) for name, cols in self.indexes.items()},
            'exported_keys': [fk.to_dict() for fk in self.exported_keys],
            'imported_keys': [fk.to_dict() for fk in self.imported_keys],
        }


def _foreign_keys(rows) -> List[ForeignKey]:
    return [
        ForeignKey(
            name=str(name).lower(),
            fk_table=str(fk_table).lower(),
            fk_column=str(fk_column).lower(),
            pk_table=str(pk_table).lower(),
            pk_column=str(pk_column).lower(),
        )
        for name, fk_table, fk_column, pk_table, pk_column in rows
    ]


class SchemaCatalog:
    """
    Per-run cache of table metadata

    Each table's schema and sample row are fetched from the database at most
    once; later lookups are served from memory.
    """

    def __init__(self, db_connector, schema: Optional[str] = None):
        """
        Args:
            db_connector: DatabaseConnector (or anything offering the same metadata calls)
            schema: Schema to introspect (defaults to the connector's schema)
        """
        self.db_connector = db_connector
        self.schema = schema or getattr(db_connector, 'schema', None) or 'public'
        self._tables: Dict[str, TableSchema] = {}
        self._samples: Dict[str, Dict[str, Any]] = {}

    def __contains__(self, table_name: str) -> bool:
        return table_name.lower() in self._tables

    @property
    def tables(self) -> Dict[str, TableSchema]:
        """Introspected tables by name, sorted."""
        return {name: self._tables[name] for name in sorted(self._tables)}

    @property
    def samples(self) -> Dict[str, Dict[str, Any]]:
        return dict(self._samples)

    def get(self, table_name: str) -> Optional[TableSchema]:
        """Cached schema or None, without touching the database."""
        return self._tables.get(table_name.lower())

    def introspect(self, table_name: str) -> TableSchema:
        """
        Fetch (once) and return a table's schema

        Args:
            table_name: Table name, any case

        Returns:
            TableSchema

        Raises:
            SchemaError: If the table does not exist or metadata cannot be read
        """
        name = table_name.lower()
        cached = self._tables.get(name)
        if cached is not None:
            return cached

        logger.debug("Introspecting table %s.%s", self.schema, name)
        try:
            column_rows = self.db_connector.get_columns(name, self.schema)
            if not column_rows:
                raise SchemaError(f"Table '{name}' not found in schema '{self.schema}'")

            columns: Dict[str, SqlType] = {}
            for column_name, udt_name in column_rows:
                columns[str(column_name).lower()] = from_postgres(str(udt_name))

            indexes: Dict[str, List[str]] = {}
            for index_name, index_columns in self.db_connector.get_indexes(name, self.schema):
                ordered: List[str] = []
                for column in index_columns:
                    column = str(column).lower()
                    if column not in ordered:
                        ordered.append(column)
                indexes[str(index_name).lower()] = ordered

            primary_key = [str(c).lower() for c in self.db_connector.get_primary_key(name, self.schema)]
            exported = _foreign_keys(self.db_connector.get_exported_keys(name, self.schema))
            imported = _foreign_keys(self.db_connector.get_imported_keys(name, self.schema))
        except SchemaError:
            raise
        except (ConnectionError, RuntimeError) as e:
            raise SchemaError(f"Failed to introspect table '{name}': {e}")

        table = TableSchema(
            name=name,
            columns=columns,
            primary_key=primary_key,
            indexes=indexes,
            exported_keys=exported,
            imported_keys=imported,
        )
        self._tables[name] = table
        return table

    def sample_row(self, table_name: str) -> Dict[str, Any]:
        """
        Fetch (once) and return one row of the table

        NULL values are replaced with the column type's default value.

        Returns:
            Mapping of lowercase column name to value; empty for an empty table
        """
        name = table_name.lower()
        if name in self._samples:
            return self._samples[name]

        table = self.introspect(name)
        try:
            row = self.db_connector.get_sample_row(name, self.schema) or {}
        except (ConnectionError, RuntimeError) as e:
            raise SchemaError(f"Failed to sample table '{name}': {e}")

        sample: Dict[str, Any] = {}
        for column, value in row.items():
            column = str(column).lower()
            if value is None:
                sql_type = table.column_type(column)
                value = default_value(sql_type) if sql_type is not None else None
            sample[column] = value

        self._samples[name] = sample
        return sample

    def describe(self) -> Dict[str, Any]:
        """Cached state, used when reporting a failed query."""
        return {
            'tables': sorted(self._tables),
            'samples': {name: dict(row) for name, row in self._samples.items()},
        }
