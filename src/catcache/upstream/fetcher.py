"""
Upstream origin fetcher.

Fetches the blob for a key from the origin (https://http.cat/ by default)
when the local store misses. One GET per call, no retries.
"""

from __future__ import annotations

import httpx

from catcache import __version__
from catcache.logging import get_logger
from catcache.types import CacheKey, FetchResult, FetchStatus

logger = get_logger(__name__)

DEFAULT_BASE_URL = "https://http.cat/"

# Request timeout
REQUEST_TIMEOUT = 10.0

USER_AGENT = f"catcache/{__version__}"


class UpstreamFetcher:
    """Fetches blobs from the remote origin by key.

    A non-success response and a transport error both come back as a
    non-FETCHED FetchResult; they differ only in status and logging.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = REQUEST_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            base_url: Origin URL the key is appended to.
            timeout: Request timeout in seconds.
            client: Optional preconfigured client (tests pass one with a
                mock transport). Closed by close() either way.
        """
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers={"User-Agent": USER_AGENT},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def url_for(self, key: CacheKey) -> str:
        return f"{self.base_url}{key}"

    async def fetch(self, key: CacheKey) -> FetchResult:
        """Fetch the blob for key from the origin.

        Args:
            key: Validated cache key.

        Returns:
            FetchResult with FETCHED and the body on a 2xx response,
            NOT_FOUND on any other status, FAILURE on a transport error.
        """
        url = self.url_for(key)
        client = await self._get_client()

        try:
            response = await client.get(url)
        except httpx.HTTPError as e:
            logger.warning("Upstream fetch failed", url=url, error=str(e))
            return FetchResult(key=key, status=FetchStatus.FAILURE, error=str(e))

        if not response.is_success:
            logger.info(
                "Upstream has no entry",
                url=url,
                status_code=response.status_code,
            )
            return FetchResult(
                key=key,
                status=FetchStatus.NOT_FOUND,
                status_code=response.status_code,
            )

        logger.info("Fetched from upstream", url=url, size=len(response.content))
        return FetchResult(
            key=key,
            status=FetchStatus.FETCHED,
            blob=response.content,
            status_code=response.status_code,
        )
