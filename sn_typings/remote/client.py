"""
Table API Client

Thin HTTP client for the remote instance's REST Table API.
Supports basic authentication, OAuth password-grant tokens and retry logic.
"""

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable

import httpx

from sn_typings.core.cancellation import CancellationToken


URI_PATH_TABLE_API = "/api/now/table"
URI_PATH_AUTH_TOKEN = "/oauth_token.do"

DEFAULT_LIMIT = 10000


class RemoteConnectionError(Exception):
    """Raised when the remote instance cannot be reached."""
    pass


class RemoteAuthenticationError(RemoteConnectionError):
    """Raised when credentials are rejected."""
    pass


class RemoteAPIError(Exception):
    """Raised when the remote instance returns an error response."""

    def __init__(self, message: str, status_code: int | None = None, url: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class UnexpectedResponseShape(RemoteAPIError):
    """Raised when a response body is not the documented shape."""
    pass


@dataclass
class AccessToken:
    """OAuth access token with its refresh token and expiry."""

    access_token: str
    refresh_token: str
    expires_on: datetime

    def is_valid(self, now: datetime, margin: timedelta) -> bool:
        return self.expires_on - margin > now


@dataclass
class AccessTokenProvider:
    """
    Obtains and refreshes OAuth access tokens.

    The first call uses the password grant, later calls reuse the refresh
    token once the current token is within ``expiry_margin`` of expiring.

    Example:
        >>> provider = AccessTokenProvider(
        ...     url="https://dev1234.service-now.com",
        ...     client_id="abc",
        ...     client_secret="secret",
        ...     username="admin",
        ...     password="admin_password",
        ... )
        >>> provider.get_valid_token()
        'eyJ...'
    """

    url: str
    client_id: str
    client_secret: str
    username: str
    password: str
    timeout: float = 60.0
    expiry_margin: timedelta = timedelta(seconds=30)
    transport: httpx.BaseTransport | None = None
    clock: Callable[[], datetime] = datetime.now

    _token: AccessToken | None = field(default=None, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        self.url = self.url.rstrip("/")

    def get_valid_token(self) -> str:
        """
        Return a non-expired access token, fetching or refreshing as needed.

        Raises:
            RemoteAuthenticationError: If the token endpoint rejects the request
        """
        with self._lock:
            now = self.clock()
            token = self._token
            if token is not None and token.is_valid(now, self.expiry_margin):
                return token.access_token

            if token is None:
                form = {
                    "grant_type": "password",
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "username": self.username,
                    "password": self.password,
                }
            else:
                form = {
                    "grant_type": "refresh_token",
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "refresh_token": token.refresh_token,
                }
            self._token = self._request_token(form, now)
            return self._token.access_token

    def _request_token(self, form: dict[str, str], created_on: datetime) -> AccessToken:
        url = f"{self.url}{URI_PATH_AUTH_TOKEN}"
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                resp = client.post(url, data=form, headers={"Accept": "application/json"})
        except httpx.HTTPError as e:
            raise RemoteConnectionError(f"Token request to {url} failed: {e}") from e

        if resp.status_code in (400, 401, 403):
            raise RemoteAuthenticationError(f"Token request rejected ({resp.status_code}): {resp.text}")
        if resp.status_code >= 400:
            raise RemoteAPIError(f"Token request failed: {resp.text}", resp.status_code, url)

        try:
            body = resp.json()
            return AccessToken(
                access_token=body["access_token"],
                refresh_token=body["refresh_token"],
                expires_on=created_on + timedelta(seconds=int(body["expires_in"])),
            )
        except (ValueError, KeyError, TypeError) as e:
            raise UnexpectedResponseShape(f"Invalid token response: {resp.text}", resp.status_code, url) from e


@dataclass
class TableApiClient:
    """
    HTTP client for the Table API.

    Provides record lookups with built-in retry logic for transient
    failures. 4xx responses are never retried.

    Example:
        >>> client = TableApiClient(
        ...     url="https://dev1234.service-now.com",
        ...     username="admin",
        ...     password="admin_password",
        ... )
        >>> rows = client.query("sys_db_object", "name=incident")
    """

    url: str
    username: str | None = None
    password: str | None = None
    token_provider: AccessTokenProvider | None = None
    timeout: float = 60.0
    retry_attempts: int = 3
    retry_delay: float = 2.0
    transport: httpx.BaseTransport | None = None
    cancellation: CancellationToken | None = None
    on_request: Callable[[str, str | None], None] | None = None

    _client: httpx.Client | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        """Normalize URL."""
        self.url = self.url.rstrip("/")

    @property
    def fqdn(self) -> str:
        """Host name of the remote instance."""
        return httpx.URL(self.url).host

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            auth = None
            if self.token_provider is None and self.username is not None:
                auth = httpx.BasicAuth(self.username, self.password or "")
            self._client = httpx.Client(
                base_url=self.url,
                auth=auth,
                timeout=self.timeout,
                transport=self.transport,
                headers={"Accept": "application/json"},
            )
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "TableApiClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _headers(self) -> dict[str, str]:
        if self.token_provider is None:
            return {}
        return {"Authorization": f"Bearer {self.token_provider.get_valid_token()}"}

    def get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """
        GET a path and return the decoded JSON body.

        Raises:
            RemoteAPIError: On error responses
            RemoteAuthenticationError: On 401/403
            RemoteConnectionError: After all retries failed
            UnexpectedResponseShape: If the body is not JSON
        """
        return self._get_with_retry(path, params or {})

    def _get_with_retry(self, path: str, params: dict[str, Any]) -> Any:
        """Execute with retry logic for transient failures."""
        last_error: Exception | None = None

        for attempt in range(self.retry_attempts):
            if self.cancellation is not None:
                self.cancellation.raise_if_cancelled()
            try:
                resp = self._get_client().get(path, params=params, headers=self._headers())
            except (httpx.ConnectError, httpx.TimeoutException, httpx.RemoteProtocolError) as e:
                last_error = e
                if attempt < self.retry_attempts - 1:
                    time.sleep(self.retry_delay * (attempt + 1))
                continue

            if resp.status_code in (401, 403):
                raise RemoteAuthenticationError(
                    f"Access denied for {path} ({resp.status_code})"
                )
            if 400 <= resp.status_code < 500:
                # Don't retry on client errors
                raise RemoteAPIError(
                    f"Table API error on {path}: {resp.text}",
                    status_code=resp.status_code,
                    url=str(resp.request.url),
                )
            if resp.status_code >= 500:
                last_error = RemoteAPIError(
                    f"Server error on {path}: {resp.status_code}",
                    status_code=resp.status_code,
                    url=str(resp.request.url),
                )
                if attempt < self.retry_attempts - 1:
                    time.sleep(self.retry_delay * (attempt + 1))
                continue

            try:
                return resp.json()
            except ValueError as e:
                raise UnexpectedResponseShape(
                    f"Response from {path} is not JSON",
                    status_code=resp.status_code,
                    url=str(resp.request.url),
                ) from e

        raise RemoteConnectionError(
            f"Failed after {self.retry_attempts} attempts: {last_error}"
        )

    # -------------------------------------------------------------------------
    # Table API
    # -------------------------------------------------------------------------

    def query(
        self,
        table: str,
        query: str | None = None,
        limit: int = DEFAULT_LIMIT,
    ) -> list[dict[str, Any]]:
        """
        Query a table.

        Args:
            table: Table name (e.g., "sys_dictionary")
            query: Encoded query (e.g., "name=incident")
            limit: Maximum rows to return

        Returns:
            Result rows, with reference fields as value/display_value pairs
        """
        params: dict[str, Any] = {
            "sysparm_display_value": "all",
            "sysparm_exclude_reference_link": "true",
            "sysparm_limit": str(limit),
        }
        if query:
            params["sysparm_query"] = query
        if self.on_request is not None:
            self.on_request(table, query)

        body = self.get_json(f"{URI_PATH_TABLE_API}/{table}", params)
        result = _result_of(body, table)
        if not isinstance(result, list):
            raise UnexpectedResponseShape(f"Expected a result list from {table}, got {type(result).__name__}")
        return result

    def get_record(self, table: str, sys_id: str) -> dict[str, Any] | None:
        """
        Get a single record by sys_id.

        Returns:
            The record, or None if it does not exist
        """
        params = {
            "sysparm_display_value": "all",
            "sysparm_exclude_reference_link": "true",
        }
        if self.on_request is not None:
            self.on_request(table, f"sys_id={sys_id}")
        try:
            body = self.get_json(f"{URI_PATH_TABLE_API}/{table}/{sys_id}", params)
        except RemoteAPIError as e:
            if e.status_code == 404:
                return None
            raise

        result = _result_of(body, table)
        if isinstance(result, list):
            return result[0] if result else None
        if not isinstance(result, dict):
            raise UnexpectedResponseShape(f"Expected a record from {table}, got {type(result).__name__}")
        return result

    def test_connection(self) -> bool:
        """Check that the Table API is reachable with the configured credentials."""
        self.query("sys_db_object", "name=sys_db_object", limit=1)
        return True


def _result_of(body: Any, table: str) -> Any:
    if not isinstance(body, dict) or "result" not in body:
        raise UnexpectedResponseShape(f"Response from {table} has no 'result' property")
    return body["result"]
