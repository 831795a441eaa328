"""
Base models for the Statement Execution API.

These models define the common structures used in API requests and responses.
Every model can be turned back into its wire representation with ``to_dict``,
which omits optional fields that are not set.
"""

from typing import Dict, List, Any, Optional
from dataclasses import dataclass

from databricks.sqlapi.backend.types import StatementState


def _without_none(values: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


@dataclass
class ServiceError:
    """Error information returned by the API."""

    message: str
    error_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _without_none({"message": self.message, "error_code": self.error_code})


@dataclass
class StatementStatus:
    """Status information for a statement execution."""

    state: StatementState
    error: Optional[ServiceError] = None
    sql_state: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _without_none(
            {
                "state": self.state.value,
                "error": self.error.to_dict() if self.error else None,
                "sql_state": self.sql_state,
            }
        )


@dataclass
class ColumnInfo:
    """Schema information for a single result column."""

    name: str
    type_text: str
    type_name: str
    position: int = 0
    type_precision: Optional[int] = None
    type_scale: Optional[int] = None
    type_interval_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _without_none(
            {
                "name": self.name,
                "type_text": self.type_text,
                "type_name": self.type_name,
                "position": self.position,
                "type_precision": self.type_precision,
                "type_scale": self.type_scale,
                "type_interval_type": self.type_interval_type,
            }
        )


@dataclass
class ResultSchema:
    """Ordered column descriptors of a result."""

    columns: List[ColumnInfo]
    column_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "column_count": self.column_count,
            "columns": [column.to_dict() for column in self.columns],
        }


@dataclass
class ChunkInfo:
    """Information about a chunk in the result set."""

    chunk_index: int
    row_offset: int = 0
    row_count: int = 0
    byte_count: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return _without_none(
            {
                "chunk_index": self.chunk_index,
                "row_offset": self.row_offset,
                "row_count": self.row_count,
                "byte_count": self.byte_count,
            }
        )


@dataclass
class ExternalLink:
    """External link information for result data."""

    external_link: str
    expiration: str
    chunk_index: int
    byte_count: int = 0
    row_count: int = 0
    row_offset: int = 0
    next_chunk_index: Optional[int] = None
    next_chunk_internal_link: Optional[str] = None
    http_headers: Optional[Dict[str, str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return _without_none(
            {
                "chunk_index": self.chunk_index,
                "row_offset": self.row_offset,
                "row_count": self.row_count,
                "byte_count": self.byte_count,
                "external_link": self.external_link,
                "expiration": self.expiration,
                "next_chunk_index": self.next_chunk_index,
                "next_chunk_internal_link": self.next_chunk_internal_link,
                "http_headers": self.http_headers,
            }
        )


@dataclass
class ResultData:
    """Result data from a statement execution.

    Either ``data`` (inline rows) or ``external_links`` is set, never both.
    """

    data: Optional[List[List[Any]]] = None
    external_links: Optional[List[ExternalLink]] = None
    byte_count: Optional[int] = None
    chunk_index: Optional[int] = None
    next_chunk_index: Optional[int] = None
    next_chunk_internal_link: Optional[str] = None
    row_count: Optional[int] = None
    row_offset: Optional[int] = None

    @property
    def is_inline(self) -> bool:
        return self.data is not None

    @property
    def has_external_links(self) -> bool:
        return self.external_links is not None

    def to_dict(self) -> Dict[str, Any]:
        return _without_none(
            {
                "chunk_index": self.chunk_index,
                "row_offset": self.row_offset,
                "row_count": self.row_count,
                "byte_count": self.byte_count,
                "data_array": self.data,
                "external_links": [link.to_dict() for link in self.external_links]
                if self.external_links is not None
                else None,
                "next_chunk_index": self.next_chunk_index,
                "next_chunk_internal_link": self.next_chunk_internal_link,
            }
        )


@dataclass
class ResultManifest:
    """Manifest information for a result set."""

    format: str
    schema: ResultSchema
    total_chunk_count: int
    total_row_count: Optional[int] = None
    total_byte_count: Optional[int] = None
    truncated: Optional[bool] = None
    chunks: Optional[List[ChunkInfo]] = None
    result_compression: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _without_none(
            {
                "format": self.format,
                "schema": self.schema.to_dict(),
                "total_chunk_count": self.total_chunk_count,
                "total_row_count": self.total_row_count,
                "total_byte_count": self.total_byte_count,
                "truncated": self.truncated,
                "chunks": [chunk.to_dict() for chunk in self.chunks]
                if self.chunks is not None
                else None,
                "result_compression": self.result_compression,
            }
        )
