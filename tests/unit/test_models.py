"""
Tests for the Statement Execution API models.
"""

import pytest

from databricks.sqlapi.backend.models import (
    ChunkResponse,
    ExecuteStatementRequest,
    QueryInfo,
    StatementParameter,
    StatementResult,
)
from databricks.sqlapi.backend.types import StatementState


class TestStatementResult:
    @pytest.fixture
    def payload(self):
        return {
            "statement_id": "01ef-stmt",
            "status": {"state": "SUCCEEDED"},
            "manifest": {
                "format": "ARROW_STREAM",
                "schema": {
                    "column_count": 2,
                    "columns": [
                        {
                            "name": "price",
                            "type_name": "DECIMAL",
                            "type_text": "DECIMAL(10,2)",
                            "type_precision": 10,
                            "type_scale": 2,
                            "position": 0,
                        },
                        {
                            "name": "name",
                            "type_name": "STRING",
                            "type_text": "STRING",
                            "position": 1,
                        },
                    ],
                },
                "total_chunk_count": 2,
                "total_row_count": 100,
                "total_byte_count": 2048,
                "truncated": False,
                "chunks": [
                    {"chunk_index": 0, "row_offset": 0, "row_count": 60},
                    {"chunk_index": 1, "row_offset": 60, "row_count": 40},
                ],
                "result_compression": "LZ4_FRAME",
            },
            "result": {
                "external_links": [
                    {
                        "chunk_index": 0,
                        "row_offset": 0,
                        "row_count": 60,
                        "byte_count": 1024,
                        "external_link": "https://bucket/c0",
                        "expiration": "2030-01-01T00:00:00Z",
                        "next_chunk_index": 1,
                        "next_chunk_internal_link": "/api/2.0/sql/statements/01ef-stmt/result/chunks/1",
                        "http_headers": {"x-ms-blob-type": "BlockBlob"},
                    }
                ]
            },
        }

    def test_from_dict(self, payload):
        result = StatementResult.from_dict(payload)

        assert result.statement_id == "01ef-stmt"
        assert result.status.state == StatementState.SUCCEEDED
        manifest = result.manifest
        assert manifest.format == "ARROW_STREAM"
        assert manifest.total_chunk_count == 2
        assert manifest.total_row_count == 100
        assert manifest.result_compression == "LZ4_FRAME"
        assert [c.row_offset for c in manifest.chunks] == [0, 60]
        price = manifest.schema.columns[0]
        assert (price.type_precision, price.type_scale) == (10, 2)

        [link] = result.result.external_links
        assert link.external_link == "https://bucket/c0"
        assert link.next_chunk_index == 1
        assert link.http_headers == {"x-ms-blob-type": "BlockBlob"}
        assert result.result.has_external_links

    def test_round_trip_keeps_wire_names(self, payload):
        result = StatementResult.from_dict(payload)

        data = result.to_dict()

        assert StatementResult.from_dict(data) == result
        assert "external_links" in data["result"]

    def test_inline_rows_use_data_array(self):
        result = StatementResult.from_dict(
            {
                "statement_id": "s",
                "status": {"state": "SUCCEEDED"},
                "result": {"chunk_index": 0, "row_count": 1, "data_array": [["1"]]},
            }
        )

        assert result.result.data == [["1"]]
        assert not result.result.has_external_links
        assert result.manifest is None
        assert result.to_dict()["result"]["data_array"] == [["1"]]

    def test_failed_status_carries_error(self):
        result = StatementResult.from_dict(
            {
                "statement_id": "s",
                "status": {
                    "state": "FAILED",
                    "error": {"error_code": "PARSE_SYNTAX_ERROR", "message": "bad"},
                    "sql_state": "42601",
                },
            }
        )

        assert result.status.state == StatementState.FAILED
        assert result.status.error.error_code == "PARSE_SYNTAX_ERROR"
        assert result.status.error.message == "bad"
        assert result.status.sql_state == "42601"

    def test_unknown_state(self):
        with pytest.raises(ValueError, match="Invalid state: EXPLODED"):
            StatementResult.from_dict({"statement_id": "s", "status": {"state": "EXPLODED"}})

    @pytest.mark.parametrize(
        "state,terminal",
        [
            (StatementState.PENDING, False),
            (StatementState.RUNNING, False),
            (StatementState.SUCCEEDED, True),
            (StatementState.FAILED, True),
            (StatementState.CANCELED, True),
            (StatementState.CLOSED, True),
        ],
    )
    def test_terminal_states(self, state, terminal):
        assert state.is_terminal is terminal


class TestChunkResponse:
    def test_inline_chunk(self):
        chunk = ChunkResponse.from_dict(
            {"chunk_index": 3, "row_offset": 300, "row_count": 2, "data_array": [["a"], ["b"]]}
        )

        assert chunk.chunk_index == 3
        assert chunk.data == [["a"], ["b"]]
        assert chunk.external_links is None

    def test_external_link_chunk(self):
        chunk = ChunkResponse.from_dict(
            {
                "external_links": [
                    {"chunk_index": 1, "external_link": "https://c1", "expiration": "x"},
                    {"chunk_index": 2, "external_link": "https://c2", "expiration": "x"},
                ]
            }
        )

        assert [link.chunk_index for link in chunk.external_links] == [1, 2]
        assert chunk.data is None


class TestQueryInfo:
    def test_metrics_keep_unknown_fields(self):
        info = QueryInfo.from_dict(
            {
                "query_id": "q",
                "status": "RUNNING",
                "metrics": {
                    "total_time_ms": 1200,
                    "rows_produced_count": 10,
                    "photon_total_time_ms": 300,
                },
            }
        )

        assert info.metrics.total_time_ms == 1200
        assert info.metrics.rows_produced_count == 10
        assert info.metrics.read_bytes is None
        assert info.metrics.extra == {"photon_total_time_ms": 300}

    def test_without_metrics(self):
        info = QueryInfo.from_dict({"query_id": "q"})

        assert info.metrics is None
        assert info.is_final is False


class TestExecuteStatementRequest:
    def test_to_dict_omits_unset_fields(self):
        request = ExecuteStatementRequest(warehouse_id="w", statement="SELECT 1")

        assert request.to_dict() == {"warehouse_id": "w", "statement": "SELECT 1"}

    def test_parameters(self):
        request = ExecuteStatementRequest(
            warehouse_id="w",
            statement="SELECT :a, :b",
            parameters=[
                StatementParameter(name="a", value="1", type="INT"),
                StatementParameter(name="b"),
            ],
        )

        assert request.to_dict()["parameters"] == [
            {"name": "a", "value": "1", "type": "INT"},
            {"name": "b"},
        ]

    def test_parameter_from_dict(self):
        parameter = StatementParameter.from_value({"name": "d", "value": "2024-01-01", "type": "DATE"})

        assert parameter == StatementParameter(name="d", value="2024-01-01", type="DATE")
