"""
Base class for external resource sources.

A source turns a concept into one or more search-page URLs, fetches each
page through its rate-limited fetcher and parses the HTML off the event
loop. ``search()`` never raises: a failing page is logged and the source
returns whatever it collected so far.
"""

import asyncio
from abc import ABC, abstractmethod
from urllib.parse import urljoin

from mathprereq.core.errors import SourceFetchError
from mathprereq.core.logging import get_logger
from mathprereq.services.resources.fetcher import RateLimitedFetcher
from mathprereq.services.resources.models import EducationalResource
from mathprereq.services.resources.search_terms import generate_search_terms

logger = get_logger(__name__)


def make_absolute_url(base_url: str, href: str) -> str:
    return urljoin(base_url, href.strip())


class ResourceSource(ABC):
    name: str = "base"
    max_results: int = 5
    max_search_terms: int = 1

    def __init__(self, fetcher: RateLimitedFetcher):
        self.fetcher = fetcher

    def search_terms(self, concept_name: str) -> list[str]:
        return generate_search_terms(concept_name)[: self.max_search_terms]

    @abstractmethod
    def search_urls(self, concept_name: str) -> list[str]:
        ...

    @abstractmethod
    def parse(
        self,
        html: str,
        page_url: str,
        concept_id: str,
        concept_name: str,
    ) -> list[EducationalResource]:
        """Extract resources from one search page. Runs in a worker thread."""
        ...

    async def search(self, concept_id: str, concept_name: str) -> list[EducationalResource]:
        found: list[EducationalResource] = []
        seen: set[str] = set()

        for url in self.search_urls(concept_name):
            if len(found) >= self.max_results:
                break
            try:
                html = await self.fetcher.get_text(url)
                page = await asyncio.to_thread(self.parse, html, url, concept_id, concept_name)
            except SourceFetchError as e:
                logger.warning("source_page_failed", source=self.name, url=url, error=str(e))
                continue
            except Exception as e:
                logger.warning(
                    "source_parse_failed", source=self.name, url=url, error=str(e), exc_info=True
                )
                continue

            for resource in page:
                if resource.url not in seen:
                    seen.add(resource.url)
                    found.append(resource)

        logger.info("source_search_completed", source=self.name, concept=concept_name, found=len(found))
        return found[: self.max_results]
