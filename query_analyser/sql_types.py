"""
SQL type codes and literal rendering

Type codes are the JDBC java.sql.Types values, which is what replay scripts
carry in their parameter type lines.
"""
from datetime import date, datetime, time
from decimal import Decimal
from enum import IntEnum
from typing import Any


class SqlType(IntEnum):
    """JDBC-compatible SQL type codes."""
    BIT = -7
    TINYINT = -6
    SMALLINT = 5
    INTEGER = 4
    BIGINT = -5
    FLOAT = 6
    REAL = 7
    DOUBLE = 8
    NUMERIC = 2
    DECIMAL = 3
    CHAR = 1
    VARCHAR = 12
    LONGVARCHAR = -1
    DATE = 91
    TIME = 92
    TIMESTAMP = 93
    BINARY = -2
    VARBINARY = -3
    LONGVARBINARY = -4
    OTHER = 1111
    BOOLEAN = 16
    TIME_WITH_TIMEZONE = 2013
    TIMESTAMP_WITH_TIMEZONE = 2014


# PostgreSQL udt_name -> type code, following the PostgreSQL JDBC driver
POSTGRES_TYPES = {
    'int2': SqlType.SMALLINT,
    'int4': SqlType.INTEGER,
    'int8': SqlType.BIGINT,
    'oid': SqlType.BIGINT,
    'numeric': SqlType.NUMERIC,
    'float4': SqlType.REAL,
    'float8': SqlType.DOUBLE,
    'money': SqlType.DOUBLE,
    'bool': SqlType.BIT,
    'bit': SqlType.BIT,
    'char': SqlType.CHAR,
    'bpchar': SqlType.CHAR,
    'varchar': SqlType.VARCHAR,
    'text': SqlType.VARCHAR,
    'name': SqlType.VARCHAR,
    'bytea': SqlType.BINARY,
    'date': SqlType.DATE,
    'time': SqlType.TIME,
    'timetz': SqlType.TIME,
    'timestamp': SqlType.TIMESTAMP,
    'timestamptz': SqlType.TIMESTAMP,
}

BINARY_TYPES = frozenset({SqlType.BINARY, SqlType.VARBINARY, SqlType.LONGVARBINARY})
BOOLEAN_TYPES = frozenset({SqlType.BIT, SqlType.BOOLEAN})
NUMERIC_TYPES = frozenset({
    SqlType.TINYINT, SqlType.SMALLINT, SqlType.INTEGER, SqlType.BIGINT,
    SqlType.FLOAT, SqlType.REAL, SqlType.DOUBLE, SqlType.NUMERIC, SqlType.DECIMAL,
})
STRING_TYPES = frozenset({SqlType.VARCHAR, SqlType.LONGVARCHAR, SqlType.OTHER})
TEMPORAL_TYPES = frozenset({
    SqlType.DATE, SqlType.TIME, SqlType.TIMESTAMP,
    SqlType.TIME_WITH_TIMEZONE, SqlType.TIMESTAMP_WITH_TIMEZONE,
})


def from_postgres(udt_name: str) -> SqlType:
    """Map a PostgreSQL type name (information_schema udt_name) to a type code."""
    return POSTGRES_TYPES.get(udt_name.lower(), SqlType.OTHER)


def type_name(sql_type: SqlType) -> str:
    return SqlType(sql_type).name


def needs_quotes(sql_type: SqlType) -> bool:
    """Textual and temporal values are single-quoted in SQL text."""
    return sql_type == SqlType.CHAR or sql_type in STRING_TYPES or sql_type in TEMPORAL_TYPES


def default_value(sql_type: SqlType) -> Any:
    """
    Value used when a sample row has no value for a column

    Args:
        sql_type: Column type code

    Returns:
        A Python value of the type's family; temporal types yield the current instant
    """
    if sql_type in BINARY_TYPES:
        return b''
    if sql_type in BOOLEAN_TYPES:
        return False
    if sql_type in NUMERIC_TYPES:
        return 0
    if sql_type == SqlType.CHAR:
        return ' '
    if sql_type == SqlType.DATE:
        return date.today()
    if sql_type in (SqlType.TIME, SqlType.TIME_WITH_TIMEZONE):
        return datetime.now().time()
    if sql_type in (SqlType.TIMESTAMP, SqlType.TIMESTAMP_WITH_TIMEZONE):
        return datetime.now()
    return ''


def _to_text(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat(sep=' ')
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return '{' + ','.join(_to_text(v) for v in value) + '}'
    return str(value)


def render_literal(value: Any, sql_type: SqlType) -> str:
    """
    Render a value as SQL literal text for the given column type

    Args:
        value: Sampled or default value
        sql_type: Column type code

    Returns:
        Literal text ready to be placed in a statement
    """
    if sql_type in BINARY_TYPES:
        if isinstance(value, memoryview):
            value = value.tobytes()
        if isinstance(value, str):
            value = value.encode('utf-8')
        return f"decode('{bytes(value).hex()}', 'hex')"

    if sql_type in BOOLEAN_TYPES:
        if isinstance(value, str):
            value = value.strip().lower() in ('t', 'true', '1', 'y', 'yes', 'on')
        return 'true' if value else 'false'

    if sql_type in NUMERIC_TYPES:
        if isinstance(value, bool):
            return '1' if value else '0'
        if isinstance(value, Decimal):
            return format(value, 'f')
        return str(value)

    text = _to_text(value)
    if needs_quotes(sql_type):
        return "'" + text.replace("'", "''") + "'"
    return text
