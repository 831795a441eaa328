import logging
from typing import Dict, Iterator, List, Optional, Tuple

from databricks.sqlapi.auth.authenticators import AuthProvider
from databricks.sqlapi.backend.http_client import ExternalLinkClient, StatementHttpClient
from databricks.sqlapi.backend.models import (
    ChunkResponse,
    ExecuteStatementRequest,
    QueryInfo,
    QueryMetrics,
    StatementResult,
)
from databricks.sqlapi.common.http import HttpMethod
from databricks.sqlapi.types import SSLOptions
from databricks.sqlapi.utils import AbortSignal, extract_warehouse_id

logger = logging.getLogger(__name__)


class StatementExecutionClient:
    """
    Client for the Databricks SQL Statement Execution API of a single workspace.

    It owns two connection pools: one for the authenticated workspace API and one for
    the presigned external links that large results are served from.
    """

    # API paths
    BASE_PATH = "/api/2.0/sql/"
    STATEMENT_PATH = BASE_PATH + "statements"
    STATEMENT_PATH_WITH_ID = STATEMENT_PATH + "/{}"
    CANCEL_STATEMENT_PATH_WITH_ID = STATEMENT_PATH + "/{}/cancel"
    CHUNK_PATH_WITH_ID_AND_INDEX = STATEMENT_PATH + "/{}/result/chunks/{}"
    QUERY_HISTORY_PATH_WITH_ID = BASE_PATH + "history/queries/{}"

    def __init__(
        self,
        server_hostname: str,
        port: int,
        http_path: Optional[str],
        http_headers: List[Tuple[str, str]],
        auth_provider: AuthProvider,
        ssl_options: SSLOptions,
        **kwargs,
    ):
        """
        Initialize the client.

        Args:
            server_hostname: Hostname of the Databricks workspace
            port: Port number for the connection
            http_path: HTTP path of the SQL warehouse; the default warehouse ID is taken from it
            http_headers: List of HTTP headers to include in requests
            auth_provider: Authentication provider
            ssl_options: SSL configuration options
            **kwargs: Additional keyword arguments (retry, timeout and pool settings)
        """

        logger.debug(
            "StatementExecutionClient.__init__(server_hostname=%s, port=%s, http_path=%s)",
            server_hostname,
            port,
            http_path,
        )

        self.server_hostname = server_hostname
        self.warehouse_id: Optional[str] = (
            extract_warehouse_id(http_path) if http_path else None
        )
        self._ssl_options = ssl_options

        self._http_client = StatementHttpClient(
            server_hostname=server_hostname,
            port=port,
            http_headers=http_headers,
            auth_provider=auth_provider,
            ssl_options=ssl_options,
            **kwargs,
        )
        self._link_client = ExternalLinkClient(ssl_options=ssl_options, **kwargs)

    def close(self):
        self._http_client.close()
        self._link_client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def post_statement(
        self, request: ExecuteStatementRequest, signal: Optional[AbortSignal] = None
    ) -> StatementResult:
        """Submit a statement for execution."""

        response_data = self._http_client._make_request(
            method=HttpMethod.POST.value,
            path=self.STATEMENT_PATH,
            data=request.to_dict(),
            signal=signal,
        )
        result = StatementResult.from_dict(response_data)
        logger.debug(
            "Submitted statement %s, state %s",
            result.statement_id,
            result.status.state.value,
        )
        return result

    def get_statement(
        self, statement_id: str, signal: Optional[AbortSignal] = None
    ) -> StatementResult:
        """Poll for the current status (and, once succeeded, the result) of a statement."""

        response_data = self._http_client._make_request(
            method=HttpMethod.GET.value,
            path=self.STATEMENT_PATH_WITH_ID.format(statement_id),
            signal=signal,
        )
        return StatementResult.from_dict(response_data)

    def cancel_statement(
        self, statement_id: str, signal: Optional[AbortSignal] = None
    ) -> None:
        """
        Request cancellation of a running statement.

        The server acknowledges with an empty body; the statement moves to CANCELED
        asynchronously.
        """

        self._http_client._make_request(
            method=HttpMethod.POST.value,
            path=self.CANCEL_STATEMENT_PATH_WITH_ID.format(statement_id),
            signal=signal,
        )

    def get_chunk(
        self,
        statement_id: str,
        chunk_index: int,
        signal: Optional[AbortSignal] = None,
    ) -> ChunkResponse:
        """
        Get a result chunk by index.

        For INLINE results the chunk carries its rows; for EXTERNAL_LINKS results it
        carries the presigned links of that chunk (and possibly of following chunks).
        """

        response_data = self._http_client._make_request(
            method=HttpMethod.GET.value,
            path=self.CHUNK_PATH_WITH_ID_AND_INDEX.format(statement_id, chunk_index),
            signal=signal,
        )
        return ChunkResponse.from_dict(response_data)

    def get_query_metrics(
        self, statement_id: str, signal: Optional[AbortSignal] = None
    ) -> Optional[QueryMetrics]:
        """Fetch execution metrics for a statement from the Query History API."""

        response_data = self._http_client._make_request(
            method=HttpMethod.GET.value,
            path=self.QUERY_HISTORY_PATH_WITH_ID.format(statement_id)
            + "?include_metrics=true",
            signal=signal,
        )
        return QueryInfo.from_dict(response_data).metrics

    def iter_external_link(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        signal: Optional[AbortSignal] = None,
    ) -> Iterator[bytes]:
        """Yield the body behind a presigned external link."""
        return self._link_client.iter_content(url, headers=headers, signal=signal)
