"""
JSON-over-HTTP transport for Veily Core.

An HTTPTransport binds one configuration (credential, extra headers,
timeout, base path) onto a pooled httpx.AsyncClient shared by every
configuration that targets the same origin. Creating one is cheap; the
connection pool behind it is what gets reused.

No retries happen here: timeouts, connection failures and HTTP >= 400 are
translated into veily_guard.errors types and raised to the caller.
"""

import asyncio
import json
import time
from typing import Any, Mapping, Optional

import httpx
from pydantic import ValidationError

from veily_guard.api.models import ErrorResponse
from veily_guard.errors import (
    HTTPStatusError,
    TransportConnectionError,
    TransportTimeoutError,
)
from veily_guard.logging.setup import get_logger, request_scope
from veily_guard.metrics.collectors import (
    REQUEST_COUNT,
    REQUEST_LATENCY,
    TRANSPORT_ERRORS,
)
from veily_guard.utils.text import redact_secret, sanitize_for_logging

logger = get_logger(__name__)


DEFAULT_TIMEOUT_SECONDS = 2.0


def origin_of(url: httpx.URL | str) -> str:
    """Return the scheme://host[:port] origin of a URL.

    Example:
        >>> origin_of("https://api.veily.dev/base/")
        'https://api.veily.dev'
    """
    url = httpx.URL(url)
    return f"{url.scheme}://{url.netloc.decode('ascii')}"


class HTTPTransport:
    """Sends JSON requests to one Veily Core origin.

    Example:
        >>> transport = pool.get_transport(cfg)
        >>> data = await transport.post_json("/v1/anonymize", {"prompt": "hi"})
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        api_key: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize the transport.

        Args:
            client: Pooled client for the base URL's origin.
            base_url: Base URL; its path is prefixed to every request path.
            api_key: Bearer credential. Omitted from requests when None.
            headers: Extra headers sent with every request.
            timeout: Total time allowed per request, in seconds.
        """
        url = httpx.URL(base_url)
        self.origin = origin_of(url)
        self.base_path = url.path.rstrip("/")
        self.timeout = timeout
        self._client = client
        self._api_key = api_key

        self._headers = {**(headers or {}), "content-type": "application/json"}
        if api_key:
            self._headers["authorization"] = f"Bearer {api_key}"

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    def url_for(self, path: str) -> str:
        return f"{self.origin}{self.base_path}{path}"

    async def post_json(self, path: str, body: Any) -> Any:
        """POST a JSON body and return the parsed JSON response.

        Args:
            path: Request path, appended to the base path.
            body: JSON-serializable body. None is sent as ``{}``.

        Returns:
            Parsed JSON, or the raw text if the body is not JSON.

        Raises:
            TransportTimeoutError: If the timeout elapses.
            TransportConnectionError: If the request cannot be delivered.
            HTTPStatusError: If the status code is >= 400.
        """
        content = json.dumps(body if body is not None else {}, ensure_ascii=False)
        return await self._request("POST", path, content.encode("utf-8"))

    async def get_json(self, path: str) -> Any:
        """GET a path and return the parsed JSON response.

        Raises the same errors as post_json.
        """
        return await self._request("GET", path, None)

    async def _request(self, method: str, path: str, content: Optional[bytes]) -> Any:
        with request_scope() as request_id:
            return await self._send(method, path, content, request_id)

    async def _send(
        self, method: str, path: str, content: Optional[bytes], request_id: str
    ) -> Any:
        headers = {**self._headers, "x-request-id": request_id}
        start = time.time()

        try:
            response = await asyncio.wait_for(
                self._client.request(
                    method,
                    self.url_for(path),
                    headers=headers,
                    content=content,
                    timeout=httpx.Timeout(self.timeout),
                ),
                timeout=self.timeout,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
            TRANSPORT_ERRORS.labels(error_type="timeout").inc()
            REQUEST_COUNT.labels(method=method, endpoint=path, status="timeout").inc()
            logger.warning(
                "Veily Core request timed out",
                extra={
                    "event": "transport_timeout",
                    "method": method,
                    "path": path,
                    "timeout_ms": int(self.timeout * 1000),
                },
            )
            raise TransportTimeoutError(
                f"{method} {path} timed out after {int(self.timeout * 1000)} ms"
            ) from exc
        except httpx.RequestError as exc:
            TRANSPORT_ERRORS.labels(error_type="request_error").inc()
            REQUEST_COUNT.labels(method=method, endpoint=path, status="error").inc()
            logger.error(
                "Veily Core request failed",
                extra={
                    "event": "transport_error",
                    "method": method,
                    "path": path,
                    "error_type": type(exc).__name__,
                },
            )
            raise TransportConnectionError(
                f"{method} {path} failed: {type(exc).__name__}"
            ) from exc

        duration = time.time() - start
        REQUEST_LATENCY.labels(method=method, endpoint=path).observe(duration)
        REQUEST_COUNT.labels(
            method=method, endpoint=path, status=str(response.status_code)
        ).inc()

        if response.status_code >= 400:
            message = self._error_message(response)
            TRANSPORT_ERRORS.labels(error_type="http_error").inc()
            logger.error(
                "Veily Core returned an error status",
                extra={
                    "event": "transport_http_error",
                    "method": method,
                    "path": path,
                    "status_code": response.status_code,
                    "duration_ms": round(duration * 1000, 2),
                },
            )
            raise HTTPStatusError(response.status_code, message)

        logger.debug(
            "Veily Core response received",
            extra={
                "event": "transport_response",
                "method": method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": round(duration * 1000, 2),
            },
        )

        try:
            return response.json()
        except ValueError:
            return response.text

    def _error_message(self, response: httpx.Response) -> str:
        """Best-effort, credential-free error message from an error body."""
        message = None
        try:
            data = response.json()
        except ValueError:
            data = None

        if isinstance(data, dict):
            try:
                error = ErrorResponse.model_validate(data)
            except ValidationError:
                error = None
            if error is not None:
                message = error.message or error.error

        if not message:
            message = response.text or f"HTTP {response.status_code}"

        return sanitize_for_logging(redact_secret(str(message), self._api_key))
