"""
Analyser configuration

Reads a key=value properties file (database settings plus the query.* corpus)
with environment variables as fallback for the connection settings.
"""
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Union

from dotenv import dotenv_values, load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

QUERY_PREFIX = 'query.'
DEFAULT_PLAN_COUNT = 5
DEFAULT_CONFIG_FILE = 'queryanalyzer.properties'

_TRUE_VALUES = {'true', 'yes', '1', 'on'}


@dataclass
class DatabaseConfig:
    """Connection settings for the analysed database."""
    host: str = 'localhost'
    port: int = 5432
    database: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = None
    url: Optional[str] = None
    schema: str = 'public'

    def describe(self) -> str:
        """Connection target without credentials, for reports."""
        if self.url:
            return self.url.split('@')[-1]
        return f"{self.host}:{self.port}/{self.database}"


@dataclass
class AnalyserConfig:
    """Complete configuration of one analysis run."""
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    plan_count: int = DEFAULT_PLAN_COUNT
    debug: bool = False
    queries: Dict[str, str] = field(default_factory=dict)

    @property
    def query_ids(self):
        """Query ids in processing order."""
        return sorted(self.queries)


def _parse_bool(value: Optional[str]) -> bool:
    return value is not None and value.strip().lower() in _TRUE_VALUES


def _parse_int(key: str, value: Optional[str], default: int) -> int:
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Property '{key}' must be an integer, got '{value}'")


def extract_queries(properties: Dict[str, Optional[str]]) -> Dict[str, str]:
    """
    Pick the query corpus out of a property mapping

    Args:
        properties: Raw key/value pairs

    Returns:
        Mapping of query id to SQL text for keys starting with 'query.'
    """
    return {
        key: value.strip()
        for key, value in properties.items()
        if key.startswith(QUERY_PREFIX) and value and value.strip()
    }


def load_config(path: Optional[Union[str, Path]] = None) -> AnalyserConfig:
    """
    Load the analyser configuration

    Args:
        path: Properties file (defaults to queryanalyzer.properties in the
            working directory; a missing file leaves only environment values)

    Returns:
        AnalyserConfig

    Raises:
        ValueError: If database, user or password are not defined
    """
    config_path = Path(path or DEFAULT_CONFIG_FILE)
    properties: Dict[str, Optional[str]] = {}
    if config_path.exists():
        properties = dict(dotenv_values(config_path, interpolate=False))
        logger.debug("Loaded %d properties from %s", len(properties), config_path)
    elif path is not None:
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    def setting(key: str, env_var: str, default: Optional[str] = None) -> Optional[str]:
        value = properties.get(key)
        if value is None or value == '':
            value = os.getenv(env_var, default)
        return value

    database = DatabaseConfig(
        host=setting('host', 'DB_HOST', 'localhost'),
        port=_parse_int('port', setting('port', 'DB_PORT'), 5432),
        database=setting('database', 'DB_NAME'),
        user=setting('user', 'DB_USER'),
        password=setting('password', 'DB_PASSWORD'),
        url=setting('url', 'DB_URL'),
        schema=setting('schema', 'DB_SCHEMA', 'public'),
    )

    if not database.url:
        for key in ('database', 'user', 'password'):
            if not getattr(database, key):
                raise ValueError(f"{key} not defined")

    plan_count = _parse_int('plan_count', properties.get('plan_count'), DEFAULT_PLAN_COUNT)
    if plan_count < 0:
        raise ValueError("plan_count cannot be negative")

    return AnalyserConfig(
        database=database,
        plan_count=plan_count,
        debug=_parse_bool(properties.get('debug')),
        queries=extract_queries(properties),
    )
