"""API client for the ServiceNow Table API."""

from __future__ import annotations

import random
import time
from typing import TYPE_CHECKING, Any

import httpx

from .config import config
from .exceptions import (
    SNAPIError,
    SNAuthenticationError,
    SNConfigError,
    SNInvalidResponseError,
    SNNetworkError,
    SNNotFoundError,
    SNPermissionError,
    SNRateLimitError,
)

if TYPE_CHECKING:
    from .config import InstanceConfig

TABLE_API_PATH = "api/now/table"


def encode_query(query: dict[str, Any]) -> str:
    """Encode equality conditions as a ServiceNow encoded query.

    Conditions are joined with ``^`` (AND); literal carets in values are
    escaped as ``^^``.

    Examples:
        >>> encode_query({"name": "Util", "active": True})
        'name=Util^active=true'
    """
    parts = []
    for field_name, value in query.items():
        if isinstance(value, bool):
            value = "true" if value else "false"
        parts.append(f"{field_name}={str(value).replace('^', '^^')}")
    return "^".join(parts)


class ServiceNowClient:
    """Client for reading and updating records through the Table API."""

    def __init__(
        self,
        instance_url: str | None = None,
        username: str | None = None,
        password: str | None = None,
        instance_name: str | None = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 30.0,
    ):
        """Initialize ServiceNow API client.

        Credentials not passed explicitly come from the configured instance
        (``instance_name``, or the default instance).

        Args:
            instance_url: Base URL, e.g. https://dev12345.service-now.com
            username: User name for basic authentication
            password: Password for basic authentication
            instance_name: Configured instance to take missing values from
            max_retries: Maximum number of retry attempts (default: 3)
            retry_delay: Initial delay between retries in seconds (default: 1.0)
            timeout: Request timeout in seconds (default: 30.0)
        """
        if not (instance_url and username and password):
            instance = config.get_instance_or_default(instance_name)
            instance_url = instance_url or instance.url
            username = username or instance.username
            password = password or instance.password
            instance_name = instance_name or instance.name

        if not instance_url:
            raise SNConfigError("ServiceNow instance URL not configured.")

        self.instance_url = instance_url.rstrip("/")
        self.instance_name = instance_name
        self.username = username
        self.password = password
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout

        self._client: httpx.Client | None = None

    @classmethod
    def from_instance(cls, instance: InstanceConfig, **kwargs: Any) -> ServiceNowClient:
        """Create a client for a configured instance."""
        return cls(
            instance_url=instance.url,
            username=instance.username,
            password=instance.password,
            instance_name=instance.name,
            **kwargs,
        )

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                auth=httpx.BasicAuth(self.username or "", self.password or ""),
                headers={
                    "Accept": "application/json",
                    "Content-Type": "application/json",
                },
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
            )
        return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def __enter__(self) -> ServiceNowClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _should_retry(self, exception: Exception, attempt: int) -> bool:
        """Determine if a request should be retried.

        Args:
            exception: The exception that occurred
            attempt: Current attempt number (0-based)

        Returns:
            True if the request should be retried, False otherwise
        """
        if attempt >= self.max_retries:
            return False

        # Transient failures
        if isinstance(exception, (SNNetworkError, SNRateLimitError)):
            return True

        if isinstance(exception, httpx.HTTPStatusError):
            return 500 <= exception.response.status_code < 600

        return False

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Calculate delay before next retry using exponential backoff.

        Args:
            attempt: Current attempt number (0-based)

        Returns:
            Delay in seconds
        """
        base_delay = self.retry_delay * (2**attempt)
        # +/- 25% jitter
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter

    def _handle_http_error(
        self, e: httpx.HTTPStatusError, attempt: int
    ) -> tuple[Exception, bool]:
        """Translate an HTTP error and decide whether to retry.

        Args:
            e: The HTTP error exception
            attempt: Current attempt number

        Returns:
            Tuple of (exception to raise, should_retry)
        """
        status_code = e.response.status_code

        if status_code == 401:
            raise SNAuthenticationError(
                "Invalid credentials or unauthorized access"
            ) from e
        elif status_code == 403:
            raise SNPermissionError(
                "Access forbidden - check your roles and ACLs"
            ) from e
        elif status_code == 404:
            raise SNNotFoundError("Resource not found") from e
        elif status_code == 429:
            error = SNRateLimitError("Rate limit exceeded - please try again later")
            return (error, attempt < self.max_retries)

        error_msg = f"API request failed with status {status_code}"
        try:
            if e.response.content:
                error_data = e.response.json()
                if isinstance(error_data, dict):
                    # Table API errors look like {"error": {"message", "detail"}}
                    detail = error_data.get("error") or {}
                    if isinstance(detail, dict):
                        msg = detail.get("message") or detail.get("detail")
                    else:
                        msg = detail
                    if msg:
                        error_msg = f"{error_msg}: {msg}"
        except ValueError:
            pass

        return (SNAPIError(error_msg), self._should_retry(e, attempt))

    def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """Make an API request with retry logic.

        Args:
            method: HTTP method
            endpoint: API endpoint path relative to the instance URL
            **kwargs: Additional arguments passed to httpx

        Returns:
            Response JSON data

        Raises:
            SNAPIError: If the request fails after all retries
        """
        url = f"{self.instance_url}/{endpoint.lstrip('/')}"
        last_exception: Exception | None = None
        client = self._get_client()

        for attempt in range(self.max_retries + 1):
            try:
                response = client.request(method, url, **kwargs)
                response.raise_for_status()

                content_type = response.headers.get("Content-Type", "")
                if response.content and "application/json" not in content_type:
                    # A hibernating or SSO-protected instance answers with HTML
                    if "text/html" in content_type:
                        raise SNAuthenticationError(
                            "Instance returned HTML instead of JSON - "
                            "check the URL and credentials, or wake the instance"
                        )
                    raise SNInvalidResponseError(
                        f"Unexpected response type: {content_type}"
                    )

                if response.content:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise SNInvalidResponseError(
                            "Invalid JSON response from instance"
                        ) from e
                return {}

            except httpx.HTTPStatusError as e:
                error, should_retry = self._handle_http_error(e, attempt)
                last_exception = error

                if should_retry:
                    retry_after = e.response.headers.get("Retry-After")
                    if (
                        isinstance(error, SNRateLimitError)
                        and retry_after
                        and retry_after.isdigit()
                    ):
                        delay = float(retry_after)
                    else:
                        delay = self._calculate_retry_delay(attempt)
                    time.sleep(delay)
                    continue
                raise error from e
            except SNAPIError:
                raise
            except httpx.RequestError as e:
                error = SNNetworkError(f"Network error: {e}")
                last_exception = error
                if self._should_retry(error, attempt):
                    time.sleep(self._calculate_retry_delay(attempt))
                    continue
                raise error from e

        if last_exception:
            raise last_exception
        raise SNAPIError("Request failed after all retry attempts")

    # =========================
    # Table Operations
    # =========================

    def get_records(
        self,
        table: str,
        query: dict[str, Any] | None = None,
        limit: int | None = None,
        fields: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        """Query records from a table.

        Args:
            table: Table name, e.g. "sys_script_include"
            query: Field/value equality conditions, all of which must match
            limit: Maximum number of records to return
            fields: Only return these fields

        Returns:
            List of records in the order the instance returned them

        Examples:
            >>> client.get_records("sys_script_include", {"name": "Util"}, limit=1)
            [{'sys_id': '...', 'name': 'Util', 'script': '...'}]
        """
        params: dict[str, Any] = {}
        if query:
            params["sysparm_query"] = encode_query(query)
        if limit is not None:
            params["sysparm_limit"] = limit
        if fields:
            params["sysparm_fields"] = ",".join(fields)

        data = self._request("GET", f"{TABLE_API_PATH}/{table}", params=params)
        records = data.get("result") if isinstance(data, dict) else None
        if not isinstance(records, list):
            raise SNInvalidResponseError(
                f"Expected a list of records from table {table}"
            )
        return records

    def update_record(
        self, table: str, sys_id: str, data: dict[str, Any]
    ) -> dict[str, Any]:
        """Update fields of an existing record.

        Args:
            table: Table name
            sys_id: Record sys_id
            data: Field values to set

        Returns:
            The updated record
        """
        response = self._request(
            "PATCH", f"{TABLE_API_PATH}/{table}/{sys_id}", json=data
        )
        return response.get("result", {}) if isinstance(response, dict) else {}
