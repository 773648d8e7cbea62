import httpx

from mathprereq.core.errors import SourceFetchError
from mathprereq.core.logging import get_logger
from mathprereq.services.resources.rate_limit import TokenBucket

logger = get_logger(__name__)


class RateLimitedFetcher:
    """HTTP GET for one source; every caller shares the source's token bucket."""

    def __init__(
        self,
        source: str,
        client: httpx.AsyncClient,
        limiter: TokenBucket,
        user_agent: str,
        timeout: float = 30.0,
    ):
        self.source = source
        self._client = client
        self._limiter = limiter
        self._headers = {
            "User-Agent": user_agent,
            "Accept": "text/html,application/xhtml+xml",
            "Accept-Language": "en-US,en;q=0.9",
        }
        self._timeout = timeout

    async def get_text(self, url: str) -> str:
        await self._limiter.acquire()
        try:
            response = await self._client.get(
                url, headers=self._headers, timeout=self._timeout, follow_redirects=True
            )
        except httpx.HTTPError as e:
            raise SourceFetchError(self.source, f"request to {url} failed: {e}") from e

        if response.status_code != 200:
            raise SourceFetchError(self.source, f"{url} returned status {response.status_code}")

        logger.debug("source_page_fetched", source=self.source, url=url, size=len(response.text))
        return response.text
