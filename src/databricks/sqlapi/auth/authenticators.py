from typing import Dict

from databricks.sqlapi.common.http import HttpHeader


class AuthProvider:
    def add_headers(self, request_headers: Dict[str, str]):
        pass


class AccessTokenAuthProvider(AuthProvider):
    """Authenticates requests with a Databricks personal access token."""

    def __init__(self, access_token: str):
        if not access_token:
            raise ValueError("access_token must be a non-empty string")
        self.__authorization_header_value = "Bearer {}".format(access_token)

    def add_headers(self, request_headers: Dict[str, str]):
        request_headers[HttpHeader.AUTHORIZATION.value] = self.__authorization_header_value
