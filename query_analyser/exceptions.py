"""
Exceptions raised while analysing a query corpus
"""


class QueryAnalyserError(Exception):
    """Base class for analyser failures."""


class ParseError(QueryAnalyserError, ValueError):
    """SQL text could not be parsed or is not a supported statement kind."""


class SchemaError(QueryAnalyserError, RuntimeError):
    """Table metadata could not be introspected."""


class ParameterBindingError(QueryAnalyserError, ValueError):
    """A placeholder could not be bound to a concrete literal."""
