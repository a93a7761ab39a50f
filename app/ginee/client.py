"""
Ginee OpenAPI client.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)


class GineeClientError(Exception):
    """Base exception for Ginee client errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Optional[Any] = None
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class GineeAuthError(GineeClientError):
    """Authentication error."""
    pass


class GineeRateLimitError(GineeClientError):
    """Rate limit exceeded."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message, status_code=429)
        self.retry_after = retry_after


class GineeConnectionError(GineeClientError):
    """Ginee could not be reached."""
    pass


class GineeClient:
    """
    Async HTTP client for the Ginee marketplace API.

    Handles authentication, rate limiting, and retries. Every method
    returns the 'data' portion of the response envelope.
    """

    MAX_RETRIES = 3
    BASE_RETRY_DELAY = 1.0  # seconds

    def __init__(
        self,
        base_url: str,
        api_token: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_delay: Optional[float] = None
    ):
        """
        Initialize Ginee client.

        Args:
            base_url: Integration base URL (e.g., "https://api.ginee.com")
            api_token: Bearer token for the integration
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used by tests)
            retry_delay: Override for the base backoff delay
        """
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.timeout = timeout
        self._transport = transport
        if retry_delay is not None:
            self.BASE_RETRY_DELAY = retry_delay

        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout, connect=10.0),
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self.api_token}",
                },
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Send a request with retry logic.

        Raises:
            GineeAuthError: If authentication fails
            GineeRateLimitError: If rate limit exceeded after retries
            GineeConnectionError: If Ginee stays unreachable after retries
            GineeClientError: For error responses and malformed bodies
        """
        client = await self._get_client()
        last_error: Optional[GineeClientError] = None

        for attempt in range(self.MAX_RETRIES):
            try:
                response = await client.request(method, path, json=json)

                if response.status_code in (401, 403):
                    raise GineeAuthError(
                        f"Authentication failed for {self.base_url}",
                        status_code=response.status_code,
                    )

                if response.status_code == 429:
                    retry_after = float(
                        response.headers.get("Retry-After", self.BASE_RETRY_DELAY)
                    )
                    raise GineeRateLimitError(
                        "Rate limit exceeded", retry_after=retry_after
                    )

                try:
                    body = response.json()
                except ValueError:
                    raise GineeClientError(
                        f"Malformed response from {method} {path} "
                        f"(HTTP {response.status_code})",
                        status_code=response.status_code,
                        response=response.text[:1000],
                    )

                if response.status_code >= 400:
                    message = body.get("message") if isinstance(body, dict) else None
                    raise GineeClientError(
                        f"HTTP {response.status_code} from {method} {path}: "
                        f"{message or 'request failed'}",
                        status_code=response.status_code,
                        response=body,
                    )

                if not isinstance(body, dict) or "code" not in body:
                    raise GineeClientError(
                        f"Malformed response from {method} {path}",
                        status_code=response.status_code,
                        response=body,
                    )

                if body["code"] != "SUCCESS":
                    raise GineeClientError(
                        f"Ginee error {body['code']}: {body.get('message', 'unknown error')}",
                        status_code=response.status_code,
                        response=body,
                    )

                return body.get("data")

            except GineeRateLimitError as e:
                last_error = e
                delay = e.retry_after or (
                    self.BASE_RETRY_DELAY * (2 ** attempt)
                )
                logger.warning(
                    f"Rate limited, waiting {delay:.1f}s "
                    f"(attempt {attempt + 1}/{self.MAX_RETRIES})"
                )
                await asyncio.sleep(delay)

            except httpx.RequestError as e:
                last_error = GineeConnectionError(f"Request error: {e}")
                delay = self.BASE_RETRY_DELAY * (2 ** attempt)
                logger.warning(
                    f"Request error, retrying in {delay:.1f}s: {e}"
                )
                await asyncio.sleep(delay)

        # All retries exhausted
        raise last_error or GineeClientError("Max retries exceeded")

    # ===== Endpoints =====

    async def health_check(self) -> Any:
        return await self.request("GET", "/health")

    async def get_product(self, external_id: str) -> Dict[str, Any]:
        return await self.request("GET", f"/v1/products/{external_id}")

    async def create_product(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self.request("POST", "/v1/products", json=payload)

    async def update_product(self, external_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self.request("PUT", f"/v1/products/{external_id}", json=payload)

    async def get_stocks(self, external_ids: List[str]) -> List[Dict[str, Any]]:
        return await self.request(
            "POST", "/v1/stocks/query", json={"productIds": external_ids}
        )

    async def push_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self.request("POST", "/v1/orders", json=payload)

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
