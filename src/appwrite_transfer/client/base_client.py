"""Base HTTP client for provider APIs.

This module provides a base async HTTP client with connection pooling,
rate limiting, exception mapping and request logging. Provider clients
subclass it and supply their own authentication headers.
"""

import asyncio
import time
from typing import Any
from urllib.parse import urljoin

import httpx

from appwrite_transfer.client.exceptions import (
    APIError,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServerError,
)
from appwrite_transfer.utils.logging import (
    get_logger,
    log_api_request,
    sanitize_payload,
    truncate_payload,
)

logger = get_logger(__name__)


class BaseAPIClient:
    """Base async HTTP client with rate limiting and error mapping.

    This client provides:
    - Connection pooling
    - Rate limiting
    - Request/response logging with secrets redacted
    - Mapping of HTTP error statuses onto the APIError hierarchy
    """

    def __init__(
        self,
        base_url: str,
        timeout: int = 30,
        rate_limit: int = 20,
        max_connections: int = 50,
        max_keepalive_connections: int = 20,
        log_payloads: bool = False,
        max_payload_size: int = 10000,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize base API client.

        Args:
            base_url: Base URL for API requests
            timeout: Request timeout in seconds
            rate_limit: Maximum requests per second (0 disables limiting)
            max_connections: Maximum number of connections in pool
            max_keepalive_connections: Maximum keep-alive connections
            log_payloads: Enable request/response payload logging at DEBUG level
            max_payload_size: Maximum payload size (chars) to log before truncation
            transport: Optional custom transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.log_payloads = log_payloads
        self.max_payload_size = max_payload_size

        self._rate_limit_lock = asyncio.Lock()
        self._last_request_time: float = 0
        self._min_request_interval = 1.0 / rate_limit if rate_limit > 0 else 0

        self.client = httpx.AsyncClient(
            headers=self._build_headers(),
            timeout=httpx.Timeout(timeout, connect=10.0),
            limits=httpx.Limits(
                max_connections=max_connections,
                max_keepalive_connections=max_keepalive_connections,
            ),
            follow_redirects=True,
            transport=transport,
        )
        self._closed = False

        logger.debug("client_initialized", base_url=self.base_url, rate_limit=rate_limit)

    def _build_headers(self) -> dict[str, str]:
        """Build HTTP headers for requests.

        Content-Type is left to httpx so multipart uploads get their boundary.

        Returns:
            Dictionary of HTTP headers
        """
        return {"Accept": "application/json"}

    def _build_url(self, endpoint: str) -> str:
        """Build full URL from endpoint.

        Absolute URLs are returned unchanged.
        """
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return urljoin(f"{self.base_url}/", endpoint.lstrip("/"))

    async def _rate_limit_wait(self) -> None:
        """Implement rate limiting by waiting if necessary."""
        if self._min_request_interval > 0:
            async with self._rate_limit_lock:
                now = time.monotonic()
                time_since_last = now - self._last_request_time

                if time_since_last < self._min_request_interval:
                    await asyncio.sleep(self._min_request_interval - time_since_last)

                self._last_request_time = time.monotonic()

    def _handle_error_response(self, response: httpx.Response) -> None:
        """Raise the exception matching an error response.

        Raises:
            AuthenticationError: For 401 responses
            AuthorizationError: For 403 responses
            NotFoundError: For 404 responses
            ConflictError: For 409 responses
            RateLimitError: For 429 responses
            ServerError: For 5xx responses
            APIError: For other error responses
        """
        status_code = response.status_code

        try:
            error_data = response.json()
        except ValueError:
            error_data = {"message": response.text}

        if not isinstance(error_data, dict):
            error_data = {"message": str(error_data)}

        error_message = error_data.get(
            "message", error_data.get("error_description", error_data.get("error", "Unknown error"))
        )
        if isinstance(error_message, dict):
            error_message = error_message.get("message", str(error_message))

        if status_code == 401:
            raise AuthenticationError(
                message="Authentication failed", status_code=status_code, response=error_data
            )
        elif status_code == 403:
            raise AuthorizationError(
                message="Authorization failed", status_code=status_code, response=error_data
            )
        elif status_code == 404:
            raise NotFoundError(
                message="Resource not found", status_code=status_code, response=error_data
            )
        elif status_code == 409:
            raise ConflictError(
                message=f"Resource conflict: {error_message}",
                status_code=status_code,
                response=error_data,
            )
        elif status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                message="Rate limit exceeded",
                status_code=status_code,
                response=error_data,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        elif 500 <= status_code < 600:
            raise ServerError(
                message=f"Server error: {error_message}",
                status_code=status_code,
                response=error_data,
            )
        else:
            raise APIError(
                message=f"API error: {error_message}",
                status_code=status_code,
                response=error_data,
            )

    async def send(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json_data: Any = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request and return the raw response after error mapping.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE, etc.)
            endpoint: API endpoint path or absolute URL
            params: Query parameters
            json_data: JSON request body
            **kwargs: Additional arguments passed to httpx

        Returns:
            Successful HTTP response

        Raises:
            NetworkError: For network-related errors
            Various APIError subclasses: For API errors
        """
        url = self._build_url(endpoint)

        await self._rate_limit_wait()

        if self.log_payloads and json_data is not None:
            logger.debug(
                "api_request_payload",
                method=method,
                url=url,
                payload=truncate_payload(sanitize_payload(json_data), self.max_payload_size),
            )

        start_time = time.monotonic()

        try:
            response = await self.client.request(
                method=method, url=url, params=params, json=json_data, **kwargs
            )
        except httpx.TimeoutException as e:
            logger.error("timeout_error", method=method, url=url, error=str(e))
            raise NetworkError(f"Request timeout: {e}") from e
        except httpx.TransportError as e:
            logger.error("network_error", method=method, url=url, error=str(e))
            raise NetworkError(f"Network error: {e}") from e

        log_api_request(
            logger,
            method=method,
            url=url,
            status_code=response.status_code,
            duration_ms=(time.monotonic() - start_time) * 1000,
        )

        if response.status_code >= 400:
            self._handle_error_response(response)

        return response

    async def request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json_data: Any = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Make an HTTP request and decode the JSON body.

        Returns:
            Response JSON data (empty dict for empty bodies)
        """
        response = await self.send(method, endpoint, params=params, json_data=json_data, **kwargs)

        if not response.content:
            return {}

        data = response.json()
        if self.log_payloads:
            logger.debug(
                "api_response_payload",
                method=method,
                endpoint=endpoint,
                payload=truncate_payload(sanitize_payload(data), self.max_payload_size),
            )
        return data

    async def get(
        self, endpoint: str, params: dict[str, Any] | None = None, **kwargs: Any
    ) -> dict[str, Any]:
        """Make a GET request."""
        return await self.request("GET", endpoint, params=params, **kwargs)

    async def get_bytes(
        self, endpoint: str, params: dict[str, Any] | None = None, **kwargs: Any
    ) -> bytes:
        """Make a GET request and return the raw body (file downloads)."""
        response = await self.send("GET", endpoint, params=params, **kwargs)
        return response.content

    async def post(
        self,
        endpoint: str,
        json_data: Any = None,
        params: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Make a POST request."""
        return await self.request("POST", endpoint, params=params, json_data=json_data, **kwargs)

    async def put(
        self,
        endpoint: str,
        json_data: Any = None,
        params: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Make a PUT request."""
        return await self.request("PUT", endpoint, params=params, json_data=json_data, **kwargs)

    async def delete(
        self, endpoint: str, params: dict[str, Any] | None = None, **kwargs: Any
    ) -> dict[str, Any]:
        """Make a DELETE request."""
        return await self.request("DELETE", endpoint, params=params, **kwargs)

    async def close(self) -> None:
        """Close the HTTP client. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        await self.client.aclose()
        logger.debug("client_closed", base_url=self.base_url)

    async def __aenter__(self) -> "BaseAPIClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()
