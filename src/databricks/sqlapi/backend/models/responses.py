"""
Response models for the Statement Execution API.

These models define the structures used in API responses.
"""

from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field, fields

from databricks.sqlapi.backend.types import StatementState
from databricks.sqlapi.backend.models.base import (
    StatementStatus,
    ResultManifest,
    ResultData,
    ResultSchema,
    ServiceError,
    ExternalLink,
    ChunkInfo,
    ColumnInfo,
)


def _parse_status(data: Dict[str, Any]) -> StatementStatus:
    """Parse status from response data."""
    status_data = data.get("status", {})
    error = None
    if "error" in status_data:
        error_data = status_data["error"]
        error = ServiceError(
            message=error_data.get("message", ""),
            error_code=error_data.get("error_code"),
        )

    try:
        state = StatementState(status_data.get("state", ""))
    except ValueError:
        raise ValueError(f"Invalid state: {status_data.get('state', '')}")

    return StatementStatus(
        state=state,
        error=error,
        sql_state=status_data.get("sql_state"),
    )


def _parse_schema(schema_data: Dict[str, Any]) -> ResultSchema:
    columns = [
        ColumnInfo(
            name=column.get("name", ""),
            type_text=column.get("type_text", ""),
            type_name=column.get("type_name", ""),
            position=column.get("position", index),
            type_precision=column.get("type_precision"),
            type_scale=column.get("type_scale"),
            type_interval_type=column.get("type_interval_type"),
        )
        for index, column in enumerate(schema_data.get("columns", []))
    ]
    return ResultSchema(
        columns=columns,
        column_count=schema_data.get("column_count", len(columns)),
    )


def _parse_manifest(data: Dict[str, Any]) -> Optional[ResultManifest]:
    """Parse manifest from response data."""

    if "manifest" not in data:
        return None

    manifest_data = data["manifest"]
    chunks = None
    if "chunks" in manifest_data:
        chunks = [
            ChunkInfo(
                chunk_index=chunk.get("chunk_index", 0),
                row_offset=chunk.get("row_offset", 0),
                row_count=chunk.get("row_count", 0),
                byte_count=chunk.get("byte_count"),
            )
            for chunk in manifest_data.get("chunks", [])
        ]

    return ResultManifest(
        format=manifest_data.get("format", ""),
        schema=_parse_schema(manifest_data.get("schema", {})),
        total_chunk_count=manifest_data.get("total_chunk_count", 0),
        total_row_count=manifest_data.get("total_row_count"),
        total_byte_count=manifest_data.get("total_byte_count"),
        truncated=manifest_data.get("truncated"),
        chunks=chunks,
        result_compression=manifest_data.get("result_compression"),
    )


def _parse_external_links(result_data: Dict[str, Any]) -> Optional[List[ExternalLink]]:
    if "external_links" not in result_data:
        return None

    return [
        ExternalLink(
            external_link=link_data.get("external_link", ""),
            expiration=link_data.get("expiration", ""),
            chunk_index=link_data.get("chunk_index", 0),
            byte_count=link_data.get("byte_count", 0),
            row_count=link_data.get("row_count", 0),
            row_offset=link_data.get("row_offset", 0),
            next_chunk_index=link_data.get("next_chunk_index"),
            next_chunk_internal_link=link_data.get("next_chunk_internal_link"),
            http_headers=link_data.get("http_headers"),
        )
        for link_data in result_data["external_links"]
    ]


def _parse_result(data: Dict[str, Any]) -> Optional[ResultData]:
    """Parse result data from response data."""
    if "result" not in data:
        return None

    result_data = data["result"]
    return ResultData(
        data=result_data.get("data_array"),
        external_links=_parse_external_links(result_data),
        byte_count=result_data.get("byte_count"),
        chunk_index=result_data.get("chunk_index"),
        next_chunk_index=result_data.get("next_chunk_index"),
        next_chunk_internal_link=result_data.get("next_chunk_internal_link"),
        row_count=result_data.get("row_count"),
        row_offset=result_data.get("row_offset"),
    )


@dataclass
class StatementResult:
    """Representation of a statement as returned by the execute and get statement calls.

    A StatementResult is never updated in place: each poll produces a new instance. Only
    SUCCEEDED statements carry a meaningful manifest and result.
    """

    statement_id: str
    status: StatementStatus
    manifest: Optional[ResultManifest] = None
    result: Optional[ResultData] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StatementResult":
        """Create a StatementResult from a dictionary."""
        return cls(
            statement_id=data.get("statement_id", ""),
            status=_parse_status(data),
            manifest=_parse_manifest(data),
            result=_parse_result(data),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "statement_id": self.statement_id,
            "status": self.status.to_dict(),
        }
        if self.manifest is not None:
            result["manifest"] = self.manifest.to_dict()
        if self.result is not None:
            result["result"] = self.result.to_dict()
        return result


@dataclass
class ChunkResponse:
    """
    Response from getting a single result chunk of a statement.

    The response model can be found in the docs, here:
    https://docs.databricks.com/api/workspace/statementexecution/getstatementresultchunkn
    """

    chunk_index: Optional[int] = None
    row_offset: Optional[int] = None
    row_count: Optional[int] = None
    byte_count: Optional[int] = None
    data: Optional[List[List[Any]]] = None
    external_links: Optional[List[ExternalLink]] = None
    next_chunk_index: Optional[int] = None
    next_chunk_internal_link: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChunkResponse":
        """Create a ChunkResponse from a dictionary."""
        result = _parse_result({"result": data})
        assert result is not None
        return cls(
            chunk_index=result.chunk_index,
            row_offset=result.row_offset,
            row_count=result.row_count,
            byte_count=result.byte_count,
            data=result.data,
            external_links=result.external_links,
            next_chunk_index=result.next_chunk_index,
            next_chunk_internal_link=result.next_chunk_internal_link,
        )


@dataclass
class QueryMetrics:
    """
    Execution metrics from the Query History API. All fields are optional; keys the API
    adds later land in ``extra``.

    https://docs.databricks.com/api/workspace/queryhistory/list
    """

    total_time_ms: Optional[int] = None
    compilation_time_ms: Optional[int] = None
    execution_time_ms: Optional[int] = None
    result_fetch_time_ms: Optional[int] = None
    task_total_time_ms: Optional[int] = None
    read_bytes: Optional[int] = None
    read_remote_bytes: Optional[int] = None
    read_cache_bytes: Optional[int] = None
    spill_to_disk_bytes: Optional[int] = None
    rows_produced_count: Optional[int] = None
    rows_read_count: Optional[int] = None
    read_files_count: Optional[int] = None
    pruned_files_count: Optional[int] = None
    result_from_cache: Optional[bool] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueryMetrics":
        known = {f.name for f in fields(cls) if f.name != "extra"}
        return cls(
            **{k: v for k, v in data.items() if k in known},
            extra={k: v for k, v in data.items() if k not in known},
        )


@dataclass
class QueryInfo:
    """Subset of the Query History API ``QueryInfo`` object used for progress reporting."""

    query_id: str
    status: Optional[str] = None
    query_text: Optional[str] = None
    rows_produced: Optional[int] = None
    duration: Optional[int] = None
    is_final: bool = False
    metrics: Optional[QueryMetrics] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueryInfo":
        metrics_data = data.get("metrics")
        return cls(
            query_id=data.get("query_id", ""),
            status=data.get("status"),
            query_text=data.get("query_text"),
            rows_produced=data.get("rows_produced"),
            duration=data.get("duration"),
            is_final=data.get("is_final", False),
            metrics=QueryMetrics.from_dict(metrics_data)
            if metrics_data is not None
            else None,
        )
