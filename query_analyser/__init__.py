"""
PostgreSQL Query Corpus Analyser - Core Package
"""
from .exceptions import QueryAnalyserError, ParseError, SchemaError, ParameterBindingError
from .config import AnalyserConfig, DatabaseConfig, load_config
from .db_connector import DatabaseConnector
from .schema_catalog import SchemaCatalog, TableSchema, ForeignKey
from .query_parser import QueryParser, StatementKind
from .context import AnalysisContext, AliasMap
from .usage_tracker import UsageTracker
from .parameter_binder import ParameterBinder, BoundStatement, UnsupportedStatement
from .plan_executor import PlanExecutor, PlanResult
from .recommender import (
    IndexRecommender,
    IndexRecommendation,
    PrimaryKeyRecommendation,
    HotStatus,
)
from .batch_analyser import BatchAnalyser, BatchAnalysisReport, QueryResult

__all__ = [
    'QueryAnalyserError',
    'ParseError',
    'SchemaError',
    'ParameterBindingError',
    'AnalyserConfig',
    'DatabaseConfig',
    'load_config',
    'DatabaseConnector',
    'SchemaCatalog',
    'TableSchema',
    'ForeignKey',
    'QueryParser',
    'StatementKind',
    'AnalysisContext',
    'AliasMap',
    'UsageTracker',
    'ParameterBinder',
    'BoundStatement',
    'UnsupportedStatement',
    'PlanExecutor',
    'PlanResult',
    'IndexRecommender',
    'IndexRecommendation',
    'PrimaryKeyRecommendation',
    'HotStatus',
    'BatchAnalyser',
    'BatchAnalysisReport',
    'QueryResult',
]

__version__ = '1.0.0'
