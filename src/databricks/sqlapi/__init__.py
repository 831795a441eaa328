from databricks.sqlapi.exc import *

__version__ = "0.1.0"
USER_AGENT_NAME = "PyDatabricksSqlApi"

from databricks.sqlapi.backend.constants import (
    ResultDisposition,
    ResultFormat,
    OnWaitTimeout,
    RowFormat,
    WaitTimeout,
)
from databricks.sqlapi.backend.models import StatementParameter, StatementResult
from databricks.sqlapi.backend.types import StatementState
from databricks.sqlapi.chunks import resolve_chunk_urls
from databricks.sqlapi.conversion import create_row_mapper, parse_timestamp
from databricks.sqlapi.execution import execute_statement
from databricks.sqlapi.external_links import (
    MergeExternalLinksResult,
    merge_external_links,
)
from databricks.sqlapi.merge import StreamMerger, UrlStreamMerger
from databricks.sqlapi.rows import fetch_all, fetch_row, iter_rows
from databricks.sqlapi.stream import fetch_stream
from databricks.sqlapi.types import SSLOptions
from databricks.sqlapi.utils import AbortSignal


def connect(
    server_hostname: str,
    http_path: str,
    access_token=None,
    auth_provider=None,
    **kwargs
):
    """
    Create a StatementExecutionClient for a SQL warehouse.

    Args:
        server_hostname: Workspace hostname, e.g. ``dbc-xxxx.cloud.databricks.com``
        http_path: HTTP path of the warehouse, e.g. ``/sql/1.0/warehouses/abc123``
        access_token: Personal access token; ignored when ``auth_provider`` is given
        auth_provider: Custom ``AuthProvider`` adding authentication headers
        **kwargs: ``port``, ``http_headers``, ``user_agent_entry``, TLS settings
            (``_tls_no_verify``, ``_tls_verify_hostname``, ``_tls_trusted_ca_file``,
            ``_tls_client_cert_file``, ``_tls_client_cert_key_file``,
            ``_tls_client_cert_key_password``) and the retry, timeout and pool settings
            of the HTTP clients
    """
    from databricks.sqlapi.auth.authenticators import AccessTokenAuthProvider
    from databricks.sqlapi.backend.client import StatementExecutionClient

    if auth_provider is None:
        auth_provider = AccessTokenAuthProvider(access_token)

    user_agent_entry = kwargs.pop("user_agent_entry", None)
    if user_agent_entry:
        user_agent = "{}/{} ({})".format(USER_AGENT_NAME, __version__, user_agent_entry)
    else:
        user_agent = "{}/{}".format(USER_AGENT_NAME, __version__)

    http_headers = list(kwargs.pop("http_headers", None) or [])
    http_headers.append(("User-Agent", user_agent))

    ssl_options = SSLOptions(
        tls_verify=not kwargs.pop("_tls_no_verify", False),
        tls_verify_hostname=kwargs.pop("_tls_verify_hostname", True),
        tls_trusted_ca_file=kwargs.pop("_tls_trusted_ca_file", None),
        tls_client_cert_file=kwargs.pop("_tls_client_cert_file", None),
        tls_client_cert_key_file=kwargs.pop("_tls_client_cert_key_file", None),
        tls_client_cert_key_password=kwargs.pop("_tls_client_cert_key_password", None),
    )

    return StatementExecutionClient(
        server_hostname=server_hostname,
        port=kwargs.pop("port", 443),
        http_path=http_path,
        http_headers=http_headers,
        auth_provider=auth_provider,
        ssl_options=ssl_options,
        user_agent=user_agent,
        **kwargs
    )
