import json
from unittest.mock import MagicMock, patch

import pytest
from urllib3 import HTTPResponse
from urllib3.exceptions import MaxRetryError

from databricks.sqlapi.auth.authenticators import AccessTokenAuthProvider
from databricks.sqlapi.auth.retry import CommandType
from databricks.sqlapi.backend.http_client import (
    ExternalLinkClient,
    StatementHttpClient,
    raise_for_status,
)
from databricks.sqlapi.exc import (
    AbortError,
    AuthenticationError,
    HttpError,
    RateLimitError,
    RequestError,
)
from databricks.sqlapi.types import SSLOptions
from databricks.sqlapi.utils import AbortSignal


def json_response(status, payload=None, headers=None, reason=None):
    body = json.dumps(payload).encode() if payload is not None else b""
    return HTTPResponse(body=body, status=status, headers=headers or {}, reason=reason)


class TestRaiseForStatus:
    def test_success_does_nothing(self):
        raise_for_status(json_response(200, {}), {})

    def test_unauthorized(self):
        with pytest.raises(AuthenticationError) as exc_info:
            raise_for_status(json_response(401, reason="Unauthorized"), {"path": "/x"})

        error = exc_info.value
        assert error.status == 401
        assert error.code == "HTTP_401"
        assert str(error) == "Authentication failed. Check your token."
        assert error.context["path"] == "/x"

    def test_rate_limited_keeps_retry_after(self):
        response = json_response(429, headers={"Retry-After": "7"})

        with pytest.raises(RateLimitError) as exc_info:
            raise_for_status(response, {})

        assert exc_info.value.retry_after == 7.0
        assert str(exc_info.value) == "Rate limit exceeded"

    def test_rate_limited_without_retry_after(self):
        with pytest.raises(RateLimitError) as exc_info:
            raise_for_status(json_response(429), {})

        assert exc_info.value.retry_after is None

    def test_server_message_is_used(self):
        response = json_response(
            400,
            {"error_code": "INVALID_PARAMETER_VALUE", "message": "bad warehouse"},
            reason="Bad Request",
        )

        with pytest.raises(HttpError) as exc_info:
            raise_for_status(response, {})

        error = exc_info.value
        assert str(error) == "HTTP 400: bad warehouse"
        assert error.status == 400
        assert error.context["error-code"] == "INVALID_PARAMETER_VALUE"

    def test_falls_back_to_reason(self):
        response = HTTPResponse(body=b"<html>oops</html>", status=502, reason="Bad Gateway")

        with pytest.raises(HttpError) as exc_info:
            raise_for_status(response, {})

        assert str(exc_info.value) == "HTTP 502: Bad Gateway"


class TestStatementHttpClient:
    @pytest.fixture
    def pool(self):
        with patch(
            "databricks.sqlapi.backend.http_client.HTTPSConnectionPool"
        ) as pool_class:
            yield pool_class.return_value

    @pytest.fixture
    def http_client(self, pool):
        return StatementHttpClient(
            server_hostname="test.cloud.databricks.com",
            port=443,
            http_headers=[("X-Custom", "1")],
            auth_provider=AccessTokenAuthProvider("dapi-token"),
            ssl_options=SSLOptions(),
        )

    def test_returns_parsed_json(self, http_client, pool):
        pool.request.return_value = json_response(200, {"statement_id": "stmt-1"})

        data = http_client._make_request(
            "POST", "/api/2.0/sql/statements", data={"statement": "SELECT 1"}
        )

        assert data == {"statement_id": "stmt-1"}
        kwargs = pool.request.call_args.kwargs
        assert kwargs["method"] == "POST"
        assert kwargs["url"] == "/api/2.0/sql/statements"
        assert json.loads(kwargs["body"]) == {"statement": "SELECT 1"}
        assert kwargs["retries"] is http_client.retry_policy
        headers = kwargs["headers"]
        assert headers["Authorization"] == "Bearer dapi-token"
        assert headers["Content-Type"] == "application/json"
        assert headers["X-Custom"] == "1"

    def test_empty_body_returns_empty_dict(self, http_client, pool):
        pool.request.return_value = json_response(200)

        assert http_client._make_request("POST", "/api/2.0/sql/statements/s/cancel") == {}

    def test_http_error_status(self, http_client, pool):
        pool.request.return_value = json_response(
            500, {"message": "internal failure"}, reason="Internal Server Error"
        )

        with pytest.raises(HttpError) as exc_info:
            http_client._make_request("GET", "/api/2.0/sql/statements/s")

        assert exc_info.value.status == 500
        assert str(exc_info.value) == "HTTP 500: internal failure"
        assert exc_info.value.context["method"] == "GET"

    def test_unauthorized_status(self, http_client, pool):
        pool.request.return_value = json_response(401)

        with pytest.raises(AuthenticationError):
            http_client._make_request("GET", "/api/2.0/sql/statements/s")

    def test_max_retry_error_becomes_request_error(self, http_client, pool):
        original = MaxRetryError(pool=None, url="/api/2.0/sql/statements/s")
        pool.request.side_effect = original

        with pytest.raises(RequestError) as exc_info:
            http_client._make_request("GET", "/api/2.0/sql/statements/s")

        assert exc_info.value.__cause__ is original
        assert "original-exception" in exc_info.value.context

    def test_network_error_becomes_request_error(self, http_client, pool):
        pool.request.side_effect = ConnectionResetError("reset")

        with pytest.raises(RequestError) as exc_info:
            http_client._make_request("GET", "/api/2.0/sql/statements/s")

        assert isinstance(exc_info.value.__cause__, ConnectionResetError)

    def test_abort_before_sending(self, http_client, pool):
        signal = AbortSignal()
        signal.abort()

        with pytest.raises(AbortError):
            http_client._make_request(
                "GET", "/api/2.0/sql/statements/s", signal=signal
            )
        pool.request.assert_not_called()

    def test_command_type_is_set_for_retries(self, http_client, pool):
        pool.request.return_value = json_response(200, {})

        http_client._make_request("POST", "/api/2.0/sql/statements")

        assert http_client.retry_policy.command_type == CommandType.EXECUTE_STATEMENT

    @pytest.mark.parametrize(
        "method,path,expected",
        [
            ("POST", "/api/2.0/sql/statements", CommandType.EXECUTE_STATEMENT),
            ("GET", "/api/2.0/sql/statements/s1", CommandType.GET_STATEMENT),
            ("POST", "/api/2.0/sql/statements/s1/cancel", CommandType.CANCEL_STATEMENT),
            ("GET", "/api/2.0/sql/statements/s1/result/chunks/2", CommandType.GET_CHUNK),
            (
                "GET",
                "/api/2.0/sql/history/queries/s1?include_metrics=true",
                CommandType.GET_QUERY_METRICS,
            ),
            ("GET", "/api/2.0/other", CommandType.OTHER),
        ],
    )
    def test_command_type_from_path(self, http_client, method, path, expected):
        assert http_client._get_command_type_from_path(path, method) == expected

    def test_close(self, http_client, pool):
        http_client.close()

        pool.close.assert_called_once()
        with pytest.raises(RequestError):
            http_client._make_request("GET", "/api/2.0/sql/statements/s")


class TestExternalLinkClient:
    @pytest.fixture
    def pool_manager(self):
        with patch("databricks.sqlapi.backend.http_client.PoolManager") as manager_class:
            yield manager_class.return_value

    @pytest.fixture
    def link_client(self, pool_manager):
        return ExternalLinkClient(SSLOptions(), user_agent="PyDatabricksSqlApi/0.1.0")

    def stream_response(self, status=200, pieces=(), data=b"", reason="OK"):
        response = MagicMock()
        response.status = status
        response.reason = reason
        response.data = data
        response.headers = {}
        response.stream.return_value = iter(pieces)
        return response

    def test_streams_body_without_authorization(self, link_client, pool_manager):
        response = self.stream_response(pieces=[b"abc", b"def"])
        pool_manager.request.return_value = response

        pieces = list(
            link_client.iter_content(
                "https://bucket/c0?sig=1", headers={"x-amz-server-side-encryption": "AES256"}
            )
        )

        assert pieces == [b"abc", b"def"]
        args, kwargs = pool_manager.request.call_args
        assert args == ("GET", "https://bucket/c0?sig=1")
        assert "Authorization" not in kwargs["headers"]
        assert kwargs["headers"]["x-amz-server-side-encryption"] == "AES256"
        assert kwargs["headers"]["User-Agent"] == "PyDatabricksSqlApi/0.1.0"
        assert kwargs["preload_content"] is False
        response.release_conn.assert_called_once()

    def test_download_is_lazy(self, link_client, pool_manager):
        link_client.iter_content("https://bucket/c0")

        pool_manager.request.assert_not_called()

    def test_expired_link(self, link_client, pool_manager):
        response = self.stream_response(
            status=403, data=b'{"message": "Request has expired"}', reason="Forbidden"
        )
        pool_manager.request.return_value = response

        with pytest.raises(HttpError) as exc_info:
            list(link_client.iter_content("https://bucket/c0?sig=1"))

        assert exc_info.value.status == 403
        assert exc_info.value.context["url"] == "https://bucket/c0"
        response.release_conn.assert_called_once()

    def test_abort_between_pieces(self, link_client, pool_manager):
        response = self.stream_response(pieces=[b"abc", b"def"])
        pool_manager.request.return_value = response
        signal = AbortSignal()

        iterator = link_client.iter_content("https://bucket/c0", signal=signal)
        assert next(iterator) == b"abc"
        signal.abort()

        with pytest.raises(AbortError):
            next(iterator)
        response.release_conn.assert_called_once()

    def test_max_retry_error_becomes_request_error(self, link_client, pool_manager):
        pool_manager.request.side_effect = MaxRetryError(pool=None, url="https://bucket")

        with pytest.raises(RequestError):
            list(link_client.iter_content("https://bucket/c0"))

    def test_close(self, link_client, pool_manager):
        link_client.close()

        pool_manager.clear.assert_called_once()
