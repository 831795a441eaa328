import json
import logging
import ssl
import time
import urllib.parse
from typing import Dict, Any, Iterator, Optional, List, Tuple

import urllib3
from urllib3 import HTTPSConnectionPool, PoolManager
from urllib3.exceptions import MaxRetryError

from databricks.sqlapi.auth.authenticators import AuthProvider
from databricks.sqlapi.auth.retry import CommandType, StatementRetryPolicy
from databricks.sqlapi.common.http import HttpHeader, HttpMethod
from databricks.sqlapi.types import SSLOptions
from databricks.sqlapi.exc import (
    Error,
    RequestError,
    HttpError,
    AuthenticationError,
    RateLimitError,
)
from databricks.sqlapi.utils import AbortSignal, throw_if_aborted

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_SIZE = 64 * 1024


def _build_retry_policy(kwargs: Dict[str, Any]) -> StatementRetryPolicy:
    return StatementRetryPolicy(
        delay_min=kwargs.get("_retry_delay_min", 1.0),
        delay_max=kwargs.get("_retry_delay_max", 60.0),
        stop_after_attempts_count=kwargs.get("_retry_stop_after_attempts_count", 30),
        stop_after_attempts_duration=kwargs.get(
            "_retry_stop_after_attempts_duration", 900.0
        ),
        force_dangerous_codes=kwargs.get("_retry_dangerous_codes", []),
    )


def _build_timeout(socket_timeout: Optional[float]) -> Optional[urllib3.Timeout]:
    if not socket_timeout:
        return None
    return urllib3.Timeout(connect=socket_timeout, read=socket_timeout)


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def raise_for_status(response, context: Dict[str, Any]):
    """
    Map a non-2xx response to the matching HttpError subclass.

    The server usually answers with ``{"error_code": ..., "message": ...}``; when it
    does, the server message is kept in the error.
    """

    status = response.status
    if 200 <= status < 300:
        return

    context = dict(context, **{"http-code": status})
    server_message = None
    try:
        payload = json.loads(response.data.decode()) if response.data else None
    except (ValueError, UnicodeDecodeError):
        payload = None
    if isinstance(payload, dict):
        server_message = payload.get("message")
        if payload.get("error_code"):
            context["error-code"] = payload["error_code"]

    if status == 401:
        raise AuthenticationError(context)
    if status == 429:
        raise RateLimitError(
            retry_after=_parse_retry_after(
                response.headers.get(HttpHeader.RETRY_AFTER.value)
            ),
            context=context,
        )

    reason = response.reason or ""
    message = "HTTP {}: {}".format(status, server_message or reason)
    raise HttpError(status, reason, message, context)


class StatementHttpClient:
    """
    HTTP client for the Databricks SQL REST APIs of one workspace.

    This client uses urllib3 for HTTP communication with retry policies and
    connection pooling. Responses that are still unsuccessful once the retry
    policy gives up are turned into typed errors by ``raise_for_status``.
    """

    def __init__(
        self,
        server_hostname: str,
        port: int,
        http_headers: List[Tuple[str, str]],
        auth_provider: AuthProvider,
        ssl_options: SSLOptions,
        **kwargs,
    ):
        """
        Initialize the HTTP client.

        Args:
            server_hostname: Hostname of the Databricks workspace
            port: Port number for the connection
            http_headers: List of HTTP headers to include in requests
            auth_provider: Authentication provider
            ssl_options: SSL configuration options
            **kwargs: Additional keyword arguments including retry policy settings
        """

        self.server_hostname = server_hostname
        self.port = port or 443
        self.auth_provider = auth_provider
        self.ssl_options = ssl_options

        self.headers: Dict[str, str] = dict(http_headers)
        self.headers.update({HttpHeader.CONTENT_TYPE.value: "application/json"})

        self.max_connections = kwargs.get("max_connections", 10)
        self.socket_timeout = kwargs.get("_socket_timeout")
        self.retry_policy = _build_retry_policy(kwargs)

        self._pool: Optional[HTTPSConnectionPool] = None
        self._open()

    def _open(self):
        """Initialize the connection pool."""
        self._pool = HTTPSConnectionPool(
            self.server_hostname,
            self.port,
            maxsize=self.max_connections,
            timeout=_build_timeout(self.socket_timeout),
            cert_reqs=ssl.CERT_REQUIRED
            if self.ssl_options.tls_verify
            else ssl.CERT_NONE,
            assert_hostname=None
            if self.ssl_options.tls_verify and self.ssl_options.tls_verify_hostname
            else False,
            ca_certs=self.ssl_options.tls_trusted_ca_file,
            cert_file=self.ssl_options.tls_client_cert_file,
            key_file=self.ssl_options.tls_client_cert_key_file,
            key_password=self.ssl_options.tls_client_cert_key_password,
        )

    def close(self):
        """Close the connection pool."""
        if self._pool:
            self._pool.close()
            self._pool = None

    def set_retry_command_type(self, command_type: CommandType):
        """Set the command type for retry policy decision making."""
        self.retry_policy.command_type = command_type

    def start_retry_timer(self):
        """Start the retry timer for duration-based retry limits."""
        self.retry_policy.start_retry_timer()

    def _get_auth_headers(self) -> Dict[str, str]:
        """Get authentication headers from the auth provider."""
        headers: Dict[str, str] = {}
        self.auth_provider.add_headers(headers)
        return headers

    def _make_request(
        self,
        method: str,
        path: str,
        data: Optional[Dict[str, Any]] = None,
        signal: Optional[AbortSignal] = None,
    ) -> Dict[str, Any]:
        """
        Make an HTTP request to the workspace.

        Args:
            method: HTTP method (GET, POST, DELETE)
            path: API endpoint path, optionally with a query string
            data: Request payload data
            signal: Abort signal checked before the request is sent

        Returns:
            Dict[str, Any]: Response data parsed from JSON

        Raises:
            AbortError: If the signal fired before the request was sent
            AuthenticationError, RateLimitError, HttpError: On a non-2xx final response
            RequestError: If the request fails at the network level or after retries
        """

        throw_if_aborted(signal)

        headers = {**self.headers, **self._get_auth_headers()}

        body = json.dumps(data).encode("utf-8") if data else b""
        if body:
            headers["Content-Length"] = str(len(body))

        command_type = self._get_command_type_from_path(path, method)
        self.set_retry_command_type(command_type)
        self.start_retry_timer()

        logger.debug("Making %s request to %s", method, path)

        if self._pool is None:
            raise RequestError("Connection pool not initialized", None)

        context = {"method": method, "path": path}
        try:
            response = self._pool.request(
                method=method.upper(),
                url=path,
                body=body,
                headers=headers,
                retries=self.retry_policy,
            )
        except MaxRetryError as e:
            logger.error("HTTP request failed with MaxRetryError: %s", e)
            raise RequestError(
                "Error during request to server. {}".format(e),
                dict(context, **{"original-exception": str(e)}),
            ) from e
        except Error:
            raise
        except Exception as e:
            logger.error("HTTP request failed with exception: %s", e)
            raise RequestError(
                "Error during request to server. {}".format(e),
                dict(context, **{"original-exception": str(e)}),
            ) from e

        if not 200 <= response.status < 300:
            logger.error(
                "HTTP request %s %s failed with status %s",
                method,
                path,
                response.status,
            )
            raise_for_status(response, context)

        if response.data:
            return json.loads(response.data.decode())
        return {}

    def _get_command_type_from_path(self, path: str, method: str) -> CommandType:
        """
        Determine the command type based on the API path and method.

        This lets the retry policy refuse to replay a statement submission.
        """

        path = path.split("?")[0].lower()
        method = method.upper()

        if "/history/queries/" in path:
            return CommandType.GET_QUERY_METRICS
        if "/statements" in path:
            if method == "POST" and path.endswith("/statements"):
                return CommandType.EXECUTE_STATEMENT
            elif path.endswith("/cancel"):
                return CommandType.CANCEL_STATEMENT
            elif "/result/chunks/" in path:
                return CommandType.GET_CHUNK
            elif method == "GET":
                return CommandType.GET_STATEMENT

        return CommandType.OTHER


class ExternalLinkClient:
    """
    Downloads result chunks from presigned external links.

    The links already carry their credentials, so no Authorization header is sent.
    Bodies are streamed in pieces of ``DOWNLOAD_CHUNK_SIZE`` bytes and the abort signal
    is checked between pieces.
    """

    def __init__(self, ssl_options: SSLOptions, **kwargs):
        self.ssl_options = ssl_options
        self.download_timeout = kwargs.get("_download_timeout", 60)
        self.min_download_speed = kwargs.get("_min_download_speed", 0.1)
        self.user_agent = kwargs.get("user_agent")
        self.retry_policy = _build_retry_policy(kwargs)
        self._pool_manager: Optional[PoolManager] = PoolManager(
            num_pools=kwargs.get("max_connections", 10),
            retries=self.retry_policy,
            timeout=_build_timeout(self.download_timeout),
            ssl_context=self._create_ssl_context(),
        )

    def _create_ssl_context(self) -> ssl.SSLContext:
        ssl_context = ssl.create_default_context()

        if not self.ssl_options.tls_verify:
            ssl_context.check_hostname = False
            ssl_context.verify_mode = ssl.CERT_NONE
        elif not self.ssl_options.tls_verify_hostname:
            ssl_context.check_hostname = False
            ssl_context.verify_mode = ssl.CERT_REQUIRED

        if self.ssl_options.tls_trusted_ca_file:
            ssl_context.load_verify_locations(self.ssl_options.tls_trusted_ca_file)

        return ssl_context

    def close(self):
        if self._pool_manager:
            self._pool_manager.clear()
            self._pool_manager = None

    def iter_content(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        signal: Optional[AbortSignal] = None,
    ) -> Iterator[bytes]:
        """
        Yield the body of ``url`` piece by piece.

        Raises:
            AbortError: If the signal fires before or during the download
            HttpError: If the link answers with a non-2xx status (e.g. expired link)
            RequestError: If the download fails at the network level
        """

        throw_if_aborted(signal)
        if self._pool_manager is None:
            raise RequestError("Connection pool not initialized", None)

        request_headers: Dict[str, str] = {}
        if self.user_agent:
            request_headers[HttpHeader.USER_AGENT.value] = self.user_agent
        if headers:
            request_headers.update(headers)

        endpoint = url.split("?")[0]
        logger.debug(
            "Making %s request to %s",
            HttpMethod.GET.value,
            urllib.parse.urlparse(url).netloc,
        )
        self.retry_policy.command_type = CommandType.OTHER
        self.retry_policy.start_retry_timer()

        start_time = time.time()
        try:
            response = self._pool_manager.request(
                HttpMethod.GET.value,
                url,
                headers=request_headers,
                preload_content=False,
                retries=self.retry_policy,
            )
        except MaxRetryError as e:
            logger.error("External link download failed after retries: %s", e)
            raise RequestError(
                "HTTP request failed: {}".format(e), {"url": endpoint}
            ) from e
        except Error:
            raise
        except Exception as e:
            logger.error("External link download error: %s", e)
            raise RequestError(
                "HTTP request error: {}".format(e), {"url": endpoint}
            ) from e

        bytes_downloaded = 0
        try:
            if response.status >= 400:
                raise_for_status(response, {"url": endpoint})

            for data in response.stream(DOWNLOAD_CHUNK_SIZE):
                throw_if_aborted(signal)
                bytes_downloaded += len(data)
                yield data
        finally:
            response.release_conn()

        self._log_download_metrics(endpoint, bytes_downloaded, time.time() - start_time)

    def _log_download_metrics(
        self, endpoint: str, bytes_downloaded: int, duration_seconds: float
    ):
        """Log download speed metrics at INFO/WARN levels."""
        if duration_seconds <= 0:
            return
        speed_mbps = (float(bytes_downloaded) / (1024 * 1024)) / duration_seconds

        logger.info(
            "External link download completed: %.4f MB/s, %d bytes in %.3fs from %s",
            speed_mbps,
            bytes_downloaded,
            duration_seconds,
            endpoint,
        )

        if speed_mbps < self.min_download_speed:
            logger.warning(
                "External link download slower than threshold: %.4f MB/s (threshold: %.1f MB/s) from %s",
                speed_mbps,
                self.min_download_speed,
                endpoint,
            )
