# Pydantic models for API request/response validation
from typing import List, Dict, Optional
from pydantic import BaseModel, Field


# Request Models

class AnalyseRequest(BaseModel):
    """Request model for analysing a query corpus"""
    queries: Dict[str, str] = Field(
        ...,
        min_length=1,
        description="Query id to SQL text; only ids starting with 'query.' are analysed"
    )
    plan_count: int = Field(5, ge=0, le=50, description="Warm-up executions before the measured plan")
    include_plans: bool = Field(True, description="Include EXPLAIN output in the response")
    analyze_first: bool = Field(False, description="Run ANALYZE before inspecting plans")


# Response Models

class QueryResultResponse(BaseModel):
    """Result of one analysed query"""
    query_id: str
    statement_kind: str
    query: str
    rewritten_query: Optional[str] = None
    tables: List[str]
    plan: Optional[str] = None
    planning_time_ms: Optional[float] = None
    execution_time_ms: Optional[float] = None
    parameter_types: List[int] = []
    parameter_values: List[str] = []
    unsupported_reason: Optional[str] = None


class IndexSuggestionResponse(BaseModel):
    """Single index suggestion"""
    rank: int
    name: str
    columns: List[str]
    hot_safe: bool
    reason: str
    ddl: str


class PrimaryKeySuggestionResponse(BaseModel):
    """Primary key implied by query usage"""
    columns: List[str]
    existing_columns: List[str]
    matches_existing: str


class TableAnalysisResponse(BaseModel):
    """Suggestions and HOT classification for one table"""
    table: str
    primary_key: Optional[PrimaryKeySuggestionResponse] = None
    indexes: List[IndexSuggestionResponse] = []
    hot_columns: Dict[str, str] = {}
    hot_blocking_indexes: List[str] = []


class AnalyseResponse(BaseModel):
    """Response model for corpus analysis"""
    timestamp: str
    total_queries: int
    analysed_queries: int
    unsupported_queries: int
    index_suggestions: int
    analysis_duration_seconds: float
    queries: List[QueryResultResponse]
    tables: List[TableAnalysisResponse]


class ForeignKeyResponse(BaseModel):
    """One column pair of a foreign key"""
    name: str
    fk_table: str
    fk_column: str
    pk_table: str
    pk_column: str


class TableSchemaResponse(BaseModel):
    """Introspected table metadata"""
    name: str
    columns: Dict[str, str]
    primary_key: List[str]
    indexes: Dict[str, List[str]]
    exported_keys: List[ForeignKeyResponse]
    imported_keys: List[ForeignKeyResponse]
    table_size: str = ""
    index_size: str = ""


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    database_connected: bool
    version: str


class ErrorResponse(BaseModel):
    """Error response"""
    detail: str
