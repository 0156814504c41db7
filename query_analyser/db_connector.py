"""
PostgreSQL Database Connector

Single connection used for catalog metadata, sample rows, storage sizes and
rolled-back statement execution.
"""
import logging
import os
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Tuple

import psycopg2
from psycopg2 import Error as PsycopgError
from psycopg2 import sql
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

COLUMNS_SQL = """
    SELECT column_name::text, udt_name::text
    FROM information_schema.columns
    WHERE table_schema = %s AND table_name = %s
    ORDER BY ordinal_position
"""

INDEXES_SQL = """
    SELECT i.relname::text AS index_name,
           array_agg(a.attname::text ORDER BY k.ord) AS columns
    FROM pg_index ix
    JOIN pg_class t ON t.oid = ix.indrelid
    JOIN pg_class i ON i.oid = ix.indexrelid
    JOIN pg_namespace n ON n.oid = t.relnamespace
    JOIN unnest(ix.indkey::int2[]) WITH ORDINALITY AS k(attnum, ord) ON TRUE
    JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = k.attnum
    WHERE n.nspname = %s AND t.relname = %s
    GROUP BY i.relname
    ORDER BY i.relname
"""

PRIMARY_KEY_SQL = """
    SELECT a.attname::text
    FROM pg_index ix
    JOIN pg_class t ON t.oid = ix.indrelid
    JOIN pg_namespace n ON n.oid = t.relnamespace
    JOIN unnest(ix.indkey::int2[]) WITH ORDINALITY AS k(attnum, ord) ON TRUE
    JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = k.attnum
    WHERE ix.indisprimary AND n.nspname = %s AND t.relname = %s
    ORDER BY k.ord
"""

# {side} is 'ft' for keys the table imports, 'pt' for keys it exports
FOREIGN_KEYS_SQL = """
    SELECT c.conname::text, ft.relname::text, fa.attname::text,
           pt.relname::text, pa.attname::text
    FROM pg_constraint c
    JOIN pg_class ft ON ft.oid = c.conrelid
    JOIN pg_class pt ON pt.oid = c.confrelid
    JOIN pg_namespace n ON n.oid = {side}.relnamespace
    JOIN unnest(c.conkey, c.confkey) AS k(fk_attnum, pk_attnum) ON TRUE
    JOIN pg_attribute fa ON fa.attrelid = c.conrelid AND fa.attnum = k.fk_attnum
    JOIN pg_attribute pa ON pa.attrelid = c.confrelid AND pa.attnum = k.pk_attnum
    WHERE c.contype = 'f' AND n.nspname = %s AND {side}.relname = %s
    ORDER BY c.conname, ft.relname
"""


class DatabaseConnector:
    """
    Handles the PostgreSQL connection used by an analysis run

    The connection runs in autocommit mode; statements under analysis are
    executed through execute_in_rollback, which switches autocommit off for
    the duration of the statement and always rolls back.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        database: Optional[str] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        dsn: Optional[str] = None,
        schema: str = 'public'
    ):
        """
        Initialize database connector

        Args:
            host: Database host (defaults to DB_HOST env var)
            port: Database port (defaults to DB_PORT env var)
            database: Database name (defaults to DB_NAME env var)
            user: Database user (defaults to DB_USER env var)
            password: Database password (defaults to DB_PASSWORD env var)
            dsn: libpq connection string or URI, overrides the other settings
            schema: Schema holding the analysed tables
        """
        self.host = host or os.getenv('DB_HOST', 'localhost')
        self.port = port or int(os.getenv('DB_PORT', '5432'))
        self.database = database or os.getenv('DB_NAME')
        self.user = user or os.getenv('DB_USER')
        self.password = password or os.getenv('DB_PASSWORD')
        self.dsn = dsn or os.getenv('DB_URL')
        self.schema = schema

        if not self.dsn and not all([self.database, self.user, self.password]):
            raise ValueError("Database credentials not provided. Set DB_NAME, DB_USER, and DB_PASSWORD")

        self.connection = None
        self._connect()

    @classmethod
    def from_config(cls, config) -> 'DatabaseConnector':
        """Build a connector from a DatabaseConfig."""
        return cls(
            host=config.host,
            port=config.port,
            database=config.database,
            user=config.user,
            password=config.password,
            dsn=config.url,
            schema=config.schema,
        )

    def _connect(self):
        """Open the connection"""
        try:
            if self.dsn:
                self.connection = psycopg2.connect(self.dsn)
            else:
                self.connection = psycopg2.connect(
                    host=self.host,
                    port=self.port,
                    database=self.database,
                    user=self.user,
                    password=self.password
                )
            self.connection.autocommit = True
        except PsycopgError as e:
            raise ConnectionError(f"Failed to connect to database: {e}")

    @contextmanager
    def get_connection(self):
        """
        Context manager for the shared connection

        Yields:
            psycopg2 connection object
        """
        if self.connection is None or self.connection.closed:
            self._connect()
        try:
            yield self.connection
        except PsycopgError as e:
            raise ConnectionError(f"Database connection failed: {e}")

    def _fetch_all(self, query, params: Optional[Tuple] = None) -> List[Tuple]:
        with self.get_connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute(query, params)
                return cursor.fetchall()

    def execute_in_rollback(self, statement: str, fetch: bool = True) -> List[str]:
        """
        Execute a statement inside a transaction that is always rolled back

        The connection's autocommit setting is saved, disabled for the
        statement and restored on every exit path.

        Args:
            statement: SQL text to execute
            fetch: Return the result rows as text lines

        Returns:
            One line per result row (columns joined with ','), or [] when not fetching

        Raises:
            RuntimeError: If the statement fails
            ConnectionError: If the connection fails while rolling back
        """
        with self.get_connection() as conn:
            autocommit = conn.autocommit
            conn.autocommit = False
            try:
                with conn.cursor() as cursor:
                    cursor.execute(statement)
                    if not fetch or cursor.description is None:
                        return []
                    return [','.join(str(value) for value in row) for row in cursor.fetchall()]
            except PsycopgError as e:
                raise RuntimeError(f"Failed to execute statement: {e}")
            finally:
                try:
                    conn.rollback()
                finally:
                    conn.autocommit = autocommit

    def get_columns(self, table_name: str, schema: Optional[str] = None) -> List[Tuple[str, str]]:
        """
        Column names and PostgreSQL type names in ordinal order

        Args:
            table_name: Table name
            schema: Schema name (defaults to the connector schema)

        Returns:
            List of (column_name, udt_name)
        """
        return self._fetch_all(COLUMNS_SQL, (schema or self.schema, table_name))

    def get_indexes(self, table_name: str, schema: Optional[str] = None) -> List[Tuple[str, List[str]]]:
        """Index names with their ordered key columns"""
        return self._fetch_all(INDEXES_SQL, (schema or self.schema, table_name))

    def get_primary_key(self, table_name: str, schema: Optional[str] = None) -> List[str]:
        """Primary-key columns in key order"""
        rows = self._fetch_all(PRIMARY_KEY_SQL, (schema or self.schema, table_name))
        return [row[0] for row in rows]

    def get_imported_keys(self, table_name: str, schema: Optional[str] = None) -> List[Tuple]:
        """
        Foreign keys declared on the table

        Returns:
            List of (fk_name, fk_table, fk_column, pk_table, pk_column)
        """
        query = FOREIGN_KEYS_SQL.format(side='ft')
        return self._fetch_all(query, (schema or self.schema, table_name))

    def get_exported_keys(self, table_name: str, schema: Optional[str] = None) -> List[Tuple]:
        """
        Foreign keys of other tables referencing this table

        Returns:
            List of (fk_name, fk_table, fk_column, pk_table, pk_column)
        """
        query = FOREIGN_KEYS_SQL.format(side='pt')
        return self._fetch_all(query, (schema or self.schema, table_name))

    def get_sample_row(self, table_name: str, schema: Optional[str] = None) -> Dict[str, Any]:
        """
        First row of an unconstrained scan of the table

        Returns:
            Mapping of column name to value, empty when the table has no rows
        """
        query = sql.SQL("SELECT * FROM {}.{} LIMIT 1").format(
            sql.Identifier(schema or self.schema),
            sql.Identifier(table_name)
        )
        with self.get_connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute(query)
                row = cursor.fetchone()
                if row is None:
                    return {}
                names = [column[0] for column in cursor.description]
                return dict(zip(names, row))

    def _get_size(self, function: str, table_name: str) -> str:
        query = f"SELECT pg_size_pretty({function}(%s::regclass))"
        qualified = f'"{self.schema}"."{table_name}"'
        try:
            rows = self._fetch_all(query, (qualified,))
            return rows[0][0] if rows else ''
        except (ConnectionError, PsycopgError) as e:
            logger.warning("Could not read %s for %s: %s", function, table_name, e)
            return ''

    def get_table_size(self, table_name: str) -> str:
        """Human-readable table size (pg_table_size)"""
        return self._get_size('pg_table_size', table_name)

    def get_index_size(self, table_name: str) -> str:
        """Human-readable size of all indexes of the table (pg_indexes_size)"""
        return self._get_size('pg_indexes_size', table_name)

    def analyze_database(self):
        """Refresh planner statistics before plans are inspected"""
        with self.get_connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute("ANALYZE")
        logger.info("ANALYZE completed")

    def test_connection(self) -> bool:
        """
        Test database connection

        Returns:
            True if connection successful, False otherwise
        """
        try:
            with self.get_connection() as conn:
                with conn.cursor() as cursor:
                    cursor.execute("SELECT 1")
                    result = cursor.fetchone()
                    return result[0] == 1
        except Exception:
            return False

    def close(self):
        """Close the connection"""
        if self.connection and not self.connection.closed:
            self.connection.close()
