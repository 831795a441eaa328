from unittest.mock import Mock

import pytest

from databricks.sqlapi.backend.client import StatementExecutionClient
from databricks.sqlapi.backend.models import StatementResult


@pytest.fixture
def mock_client():
    """A StatementExecutionClient whose API calls are mocks."""
    client = Mock(spec=StatementExecutionClient)
    client.warehouse_id = "abc123"
    return client


def _columns(column_types):
    return [
        {"name": name, "type_name": type_name, "type_text": type_name, "position": i}
        for i, (name, type_name) in enumerate(column_types)
    ]


@pytest.fixture
def make_result():
    """
    Build a StatementResult from wire-format pieces.

    ``links`` is a list of (chunk_index, url) tuples; ``data`` an inline data_array.
    """

    def _make(
        state="SUCCEEDED",
        statement_id="stmt-1",
        format="JSON_ARRAY",
        total_chunk_count=1,
        total_row_count=None,
        columns=(("id", "INT"),),
        data=None,
        links=None,
        with_manifest=True,
        result_compression=None,
    ):
        payload = {"statement_id": statement_id, "status": {"state": state}}
        if with_manifest:
            manifest = {
                "format": format,
                "schema": {
                    "column_count": len(columns),
                    "columns": _columns(columns),
                },
                "total_chunk_count": total_chunk_count,
            }
            if total_row_count is not None:
                manifest["total_row_count"] = total_row_count
            if result_compression is not None:
                manifest["result_compression"] = result_compression
            payload["manifest"] = manifest
        if data is not None:
            payload["result"] = {"chunk_index": 0, "data_array": data}
        elif links is not None:
            payload["result"] = {
                "external_links": [
                    {
                        "chunk_index": chunk_index,
                        "external_link": url,
                        "expiration": "2030-01-01T00:00:00Z",
                    }
                    for chunk_index, url in links
                ]
            }
        return StatementResult.from_dict(payload)

    return _make
