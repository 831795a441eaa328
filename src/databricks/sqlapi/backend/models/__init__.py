"""
Models for the Statement Execution API.

This package contains data models for API requests and responses.
"""

from databricks.sqlapi.backend.models.base import (
    ServiceError,
    StatementStatus,
    ColumnInfo,
    ResultSchema,
    ChunkInfo,
    ExternalLink,
    ResultData,
    ResultManifest,
)

from databricks.sqlapi.backend.models.requests import (
    StatementParameter,
    ExecuteStatementRequest,
)

from databricks.sqlapi.backend.models.responses import (
    StatementResult,
    ChunkResponse,
    QueryMetrics,
    QueryInfo,
)

__all__ = [
    # Base models
    "ServiceError",
    "StatementStatus",
    "ColumnInfo",
    "ResultSchema",
    "ChunkInfo",
    "ExternalLink",
    "ResultData",
    "ResultManifest",
    # Request models
    "StatementParameter",
    "ExecuteStatementRequest",
    # Response models
    "StatementResult",
    "ChunkResponse",
    "QueryMetrics",
    "QueryInfo",
]
