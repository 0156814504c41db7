"""
FastAPI application exposing corpus analysis and table introspection
"""
import logging
import os
from typing import Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Depends, Security
from fastapi.security import APIKeyHeader
from dotenv import load_dotenv

from .models import (
    AnalyseRequest,
    AnalyseResponse,
    QueryResultResponse,
    TableAnalysisResponse,
    TableSchemaResponse,
    HealthResponse,
    ErrorResponse,
)
from .. import __version__
from ..batch_analyser import BatchAnalyser
from ..cloudwatch_metrics import get_cloudwatch_metrics
from ..context import AnalysisContext
from ..db_connector import DatabaseConnector
from ..exceptions import QueryAnalyserError, SchemaError
from ..schema_catalog import SchemaCatalog

load_dotenv()

logger = logging.getLogger(__name__)

db_connector: Optional[DatabaseConnector] = None

API_KEY_NAME = "X-API-Key"
api_key_header = APIKeyHeader(name=API_KEY_NAME, auto_error=False)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle"""
    global db_connector

    try:
        db_connector = DatabaseConnector()
        logger.info("Database connection established")
    except (ValueError, ConnectionError) as e:
        logger.warning("Could not connect to database: %s", e)

    yield

    if db_connector:
        db_connector.close()
        logger.info("Database connection closed")


app = FastAPI(
    title="PostgreSQL Query Analyser API",
    description="Profile a query corpus and get primary-key and index suggestions",
    version=__version__,
    lifespan=lifespan,
)


def get_api_keys() -> list:
    """Get valid API keys from environment"""
    keys_str = os.getenv("API_KEYS", "")
    return [k.strip() for k in keys_str.split(",") if k.strip()]


async def verify_api_key(api_key: str = Security(api_key_header)) -> str:
    """Verify API key when API_KEYS is configured"""
    valid_keys = get_api_keys()
    if not valid_keys:
        return "anonymous"
    if not api_key:
        raise HTTPException(status_code=401, detail="API key required. Provide X-API-Key header.")
    if api_key not in valid_keys:
        raise HTTPException(status_code=401, detail="Invalid API key")
    return api_key


def require_db():
    """Dependency to ensure database is connected"""
    if not db_connector or not db_connector.test_connection():
        raise HTTPException(status_code=503, detail="Database connection not available")
    return db_connector


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Check API and database health"""
    db_connected = bool(db_connector) and db_connector.test_connection()
    return HealthResponse(
        status="healthy" if db_connected else "degraded",
        database_connected=db_connected,
        version=__version__
    )


@app.post(
    "/analyse",
    response_model=AnalyseResponse,
    responses={400: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    tags=["Analysis"],
    dependencies=[Depends(verify_api_key)]
)
async def analyse_queries(
    request: AnalyseRequest,
    db: DatabaseConnector = Depends(require_db)
):
    """
    Analyse a query corpus.

    Each request runs with its own schema cache and usage state; statements
    are executed inside rolled-back transactions.
    """
    analyser = BatchAnalyser(
        db,
        context=AnalysisContext.for_connector(db),
        plan_count=request.plan_count,
        metrics=get_cloudwatch_metrics(),
    )

    try:
        if request.analyze_first:
            db.analyze_database()
        report = analyser.analyse_queries(request.queries)
    except QueryAnalyserError as e:
        raise HTTPException(
            status_code=400,
            detail=f"{analyser.failed_query_id}: {e}" if analyser.failed_query_id else str(e)
        )
    except (RuntimeError, ConnectionError) as e:
        raise HTTPException(status_code=500, detail=f"Analysis failed: {e}")

    return AnalyseResponse(
        timestamp=report.timestamp,
        total_queries=report.total_queries,
        analysed_queries=report.analysed_queries,
        unsupported_queries=report.unsupported_queries,
        index_suggestions=report.index_suggestions,
        analysis_duration_seconds=report.analysis_duration_seconds,
        queries=[
            QueryResultResponse(
                **{**result, 'plan': result['plan'] if request.include_plans else None}
            )
            for result in report.query_results
        ],
        tables=[TableAnalysisResponse(**table['recommendations']) for table in report.tables],
    )


@app.get(
    "/tables/{table_name}",
    response_model=TableSchemaResponse,
    responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    tags=["Schema"],
    dependencies=[Depends(verify_api_key)]
)
async def get_table_schema(
    table_name: str,
    db: DatabaseConnector = Depends(require_db)
):
    """Introspect one table: columns, keys, indexes and storage sizes."""
    try:
        schema = SchemaCatalog(db).introspect(table_name)
    except SchemaError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return TableSchemaResponse(
        **schema.to_dict(),
        table_size=db.get_table_size(schema.name),
        index_size=db.get_index_size(schema.name),
    )
