"""
Async HTTP client for the Meta Graph API.

Features:
- Connection pooling with httpx
- Access token passed as a query parameter, as the Graph API expects
- Graph ``error`` objects mapped to MetaAPIError
- Cursor paging via ``paging.next``
- Request correlation IDs for tracing

The client makes exactly one request per call. Retrying is left to callers
(see adsperf.resilience).
"""
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from adsperf.config import MetaAPIConfig, config
from adsperf.exceptions import (
    AuthMissingError,
    MetaAPIError,
    MetaConnectionError,
    MetaDataError,
)
from adsperf.observability import Timer, get_correlation_id, get_logger

logger = get_logger(__name__)


def _parse_graph_error(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return body["error"]
    return {}


class MetaGraphClient:
    """
    Async client for Graph API reads.

    Usage:
        async with MetaGraphClient(access_token=token) as client:
            payload = await client.get_insights("act_123", params)

        # Or with manual lifecycle:
        client = MetaGraphClient(access_token=token)
        await client.connect()
        try:
            payload = await client.get_insights("act_123", params)
        finally:
            await client.close()
    """

    def __init__(
        self,
        access_token: str = None,
        api_version: str = None,
        timeout: float = None,
        settings: Optional[MetaAPIConfig] = None,
    ):
        """
        Initialize Graph API client.

        Args:
            access_token: Token for the ad account (defaults to META_ACCESS_TOKEN)
            api_version: Graph API version, e.g. "v16.0" (defaults to META_API_VERSION)
            timeout: Request timeout in seconds
            settings: Meta API configuration (defaults to the global config)

        Raises:
            AuthMissingError: If no access token is available
        """
        self.settings = settings or config.meta
        self.access_token = access_token or self.settings.access_token
        self.api_version = api_version or self.settings.api_version
        self.timeout = timeout or self.settings.request_timeout
        self._client: Optional[httpx.AsyncClient] = None

        if not self.access_token:
            raise AuthMissingError(
                "Meta access token is required",
                "Connect an ad account or set META_ACCESS_TOKEN"
            )

    @property
    def base_url(self) -> str:
        return f"https://graph.facebook.com/{self.api_version}"

    async def connect(self) -> None:
        """Create HTTP client with connection pooling."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"Accept": "application/json"},
                timeout=self.timeout,
                limits=httpx.Limits(
                    max_keepalive_connections=10,
                    max_connections=20,
                )
            )

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "MetaGraphClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _request(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        operation: str = "graph_get",
    ) -> Dict[str, Any]:
        """
        Make a single GET request to the Graph API.

        Args:
            url: Absolute URL
            params: Query parameters (the access token is added here)
            operation: Name used for timing logs

        Returns:
            Decoded JSON object

        Raises:
            MetaConnectionError: Network/timeout errors
            MetaAPIError: API returned error response
            MetaDataError: Body is not a JSON object
        """
        if not self._client:
            await self.connect()

        query = dict(params or {})
        query.setdefault("access_token", self.access_token)

        request_headers = {}
        correlation_id = get_correlation_id()
        if correlation_id:
            request_headers["X-Request-ID"] = correlation_id

        try:
            with Timer(operation, logger):
                response = await self._client.request(
                    method="GET",
                    url=url,
                    params=query,
                    headers=request_headers if request_headers else None,
                )
        except httpx.TimeoutException as e:
            logger.error(
                f"Request timeout: {operation}",
                extra={"operation": operation, "timeout": self.timeout}
            )
            raise MetaConnectionError(
                f"Request timeout after {self.timeout}s",
                retry_after=5
            ) from e
        except httpx.RequestError as e:
            logger.error(
                f"Request failed: {operation} - {type(e).__name__}",
                extra={"operation": operation, "error": type(e).__name__}
            )
            raise MetaConnectionError("Graph API request failed", type(e).__name__) from e

        if response.status_code >= 400:
            error = _parse_graph_error(response)
            message = error.get("message") or response.text[:500]
            error_code = error.get("code")
            logger.error(
                f"Graph API error {response.status_code}: {message}",
                extra={
                    "operation": operation,
                    "status_code": response.status_code,
                    "error_code": error_code,
                    "fbtrace_id": error.get("fbtrace_id"),
                }
            )
            raise MetaAPIError(
                f"Graph API returned {response.status_code}",
                details=message,
                status_code=response.status_code,
                error_code=error_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise MetaDataError(
                "Graph API returned a non-JSON body",
                expected="object",
                got="text",
            ) from e

        if not isinstance(payload, dict):
            raise MetaDataError(
                "Graph API returned an unexpected body",
                expected="object",
                got=type(payload).__name__,
            )
        return payload

    async def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """GET an endpoint relative to the versioned base URL."""
        endpoint = endpoint.lstrip("/")
        return await self._request(
            f"{self.base_url}/{endpoint}",
            params=params,
            operation=f"graph_{endpoint.split('/')[-1]}",
        )

    async def get_insights(self, entity_id: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """Insights edge of an account, campaign, ad set, or ad."""
        return await self._request(
            f"{self.base_url}/{entity_id}/insights",
            params=params,
            operation="meta_insights",
        )

    async def get_url(self, url: str) -> Dict[str, Any]:
        """
        Fetch a ``paging.next`` URL.

        Next URLs already carry the original query; the token is merged in again.
        """
        return await self._request(url, operation="meta_insights_page")

    async def iter_pages(
        self,
        entity_id: str,
        params: Dict[str, Any],
        max_pages: Optional[int] = None,
    ) -> AsyncIterator[Dict[str, Any]]:
        """
        Yield insights response pages, following ``paging.next``.

        Stops after max_pages pages (defaults to config) with a warning.
        """
        max_pages = max_pages or self.settings.max_pages
        payload = await self.get_insights(entity_id, params)
        pages = 1
        yield payload

        while True:
            paging = payload.get("paging")
            next_url = paging.get("next") if isinstance(paging, dict) else None
            if not next_url:
                return
            if pages >= max_pages:
                logger.warning(
                    f"Stopped paging after {pages} pages",
                    extra={"entity_id": entity_id, "pages": pages}
                )
                return
            payload = await self.get_url(next_url)
            pages += 1
            yield payload
