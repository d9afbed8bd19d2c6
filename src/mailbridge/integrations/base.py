"""Shared HTTP plumbing for provider REST APIs."""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from mailbridge.core.config import RetryConfig
from mailbridge.core.exceptions import (
    ProviderRequestError,
    ProviderUnavailable,
    TokenExpiredError,
)
from mailbridge.core.retry import with_retry
from mailbridge.integrations.throttle import TokenBucket

logger = structlog.get_logger(__name__)

# Throttling responses are treated like outages and retried with backoff.
RETRYABLE_STATUS = frozenset({408, 429})


class BaseApiClient:
    """Bearer-authenticated JSON client for one mailbox.

    Every request waits for a throttle token and runs under a timeout.
    Requests are retried with exponential backoff while the provider is
    unavailable. Responses are mapped onto the shared error taxonomy:

    - 401 raises ``TokenExpiredError`` so the caller can refresh and retry.
    - 5xx, 408, 429 and transport failures raise ``ProviderUnavailable``.
    - Any other 4xx raises ``ProviderRequestError``.

    Attributes:
        BASE_URL: API root that relative paths are joined to.
        PROVIDER: Provider tag recorded on raised errors.
    """

    BASE_URL = ""
    PROVIDER = ""

    def __init__(
        self,
        access_token: str,
        throttle: TokenBucket | None = None,
        retry_config: RetryConfig | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            access_token: Valid OAuth2 access token.
            throttle: Request pacing (default: TokenBucket()).
            retry_config: Backoff settings (default: RetryConfig()).
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport, used to stub the network.
        """
        self.throttle = throttle or TokenBucket()
        self.retry_config = retry_config or RetryConfig()
        self._client = httpx.AsyncClient(
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> BaseApiClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.close()

    def _url(self, path: str) -> str:
        if path.startswith("https://"):
            return path
        return f"{self.BASE_URL}/{path.lstrip('/')}"

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make a throttled API request with retries.

        Args:
            method: HTTP method (GET, POST, etc.).
            path: API path relative to BASE_URL, or an absolute URL.
            params: Query parameters.
            json_body: JSON body for POST requests.

        Returns:
            JSON response as dict (empty for bodiless responses).

        Raises:
            TokenExpiredError: If the access token was rejected.
            ProviderUnavailable: If the provider stayed unavailable after retries.
            ProviderRequestError: If the request was rejected.
        """
        send = with_retry(self.retry_config)(self._send)
        result: dict[str, Any] = await send(method, self._url(path), params, json_body)
        return result

    async def _send(
        self,
        method: str,
        url: str,
        params: dict[str, str] | None,
        json_body: dict[str, Any] | None,
    ) -> dict[str, Any]:
        await self.throttle.acquire()

        try:
            response = await self._client.request(method, url, params=params, json=json_body)
        except httpx.TransportError as e:
            await logger.awarning("provider_transport_error", provider=self.PROVIDER, error=str(e))
            raise ProviderUnavailable(f"Request failed: {e}", provider=self.PROVIDER) from e

        if response.status_code >= 400:
            raise self._error_for(response)

        if not response.content:
            return {}
        try:
            result = response.json()
        except ValueError as e:
            raise ProviderUnavailable(
                "Provider returned a non-JSON body",
                provider=self.PROVIDER,
                status_code=response.status_code,
            ) from e
        return result if isinstance(result, dict) else {}

    def _error_for(self, response: httpx.Response) -> Exception:
        """Map an error response onto the shared exception taxonomy."""
        message, error_code = _error_details(response)
        status = response.status_code

        if status == 401:
            return TokenExpiredError(message, provider=self.PROVIDER)
        if status >= 500 or status in RETRYABLE_STATUS:
            return ProviderUnavailable(message, provider=self.PROVIDER, status_code=status)
        return ProviderRequestError(
            message,
            provider=self.PROVIDER,
            status_code=status,
            error_code=error_code,
        )


def _error_details(response: httpx.Response) -> tuple[str, str | None]:
    """Pull ``(message, code)`` from a Google or Graph error envelope."""
    try:
        data = response.json() if response.content else {}
    except ValueError:
        return response.text, None

    error_info = data.get("error") if isinstance(data, dict) else None
    if not isinstance(error_info, dict):
        return response.text or f"HTTP {response.status_code}", None

    # Google puts the symbolic code in "status"; Graph puts it in "code".
    code = error_info.get("status") or error_info.get("code")
    return str(error_info.get("message", response.text)), str(code) if code else None
