"""
Concurrent Resource Discovery Engine

# ── Flow ──
Concepts are processed in fixed-size batches, one batch at a time with a
pause in between. Inside a batch, concepts run concurrently under an
engine-wide semaphore, which also caps concepts in flight across
concurrent discover() runs. For each concept every source is searched
concurrently, each search bounded by its own timeout; a failing source
contributes nothing.
Results are merged in source order, deduplicated by URL, quality-filtered
and upserted by URL.

# ── Freshness ──
A concept with any resource scraped within ``recent_hours`` is skipped.
The check is not atomic with the write; two concurrent runs may both
scrape the same concept, and the URL upsert keeps the store consistent.
"""

import asyncio
from typing import Awaitable, Callable

import httpx
from pydantic import BaseModel, Field

from mathprereq.core.config import get_settings
from mathprereq.core.logging import get_logger
from mathprereq.services.resources.fetcher import RateLimitedFetcher
from mathprereq.services.resources.postprocess import dedupe_by_url, filter_quality
from mathprereq.services.resources.rate_limit import TokenBucket
from mathprereq.services.resources.search_terms import concept_id
from mathprereq.services.resources.sources import DEFAULT_SOURCES, ResourceSource
from mathprereq.services.resources.store import ResourceStore

logger = get_logger(__name__)


class ConceptOutcome(BaseModel):
    concept_name: str
    concept_id: str
    status: str  # "stored" | "skipped" | "failed"
    candidates: int = 0
    stored: int = 0
    error: str | None = None


class DiscoveryReport(BaseModel):
    concepts: list[ConceptOutcome] = Field(default_factory=list)

    @property
    def total_stored(self) -> int:
        return sum(c.stored for c in self.concepts)

    def outcome(self, name: str) -> ConceptOutcome | None:
        return next((c for c in self.concepts if c.concept_name == name), None)


class ResourceDiscoveryEngine:
    def __init__(
        self,
        sources: list[ResourceSource],
        store: ResourceStore,
        *,
        batch_size: int = 3,
        batch_pause: float = 2.0,
        max_concurrent: int = 5,
        source_timeout: float = 45.0,
        recent_hours: int = 24,
        min_quality: float = 0.4,
        max_per_concept: int = 6,
        max_videos: int = 3,
        max_articles: int = 3,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
        client: httpx.AsyncClient | None = None,
    ):
        self.sources = list(sources)
        self.store = store
        self.batch_size = max(1, batch_size)
        self.batch_pause = batch_pause
        self.source_timeout = source_timeout
        self.recent_hours = recent_hours
        self.min_quality = min_quality
        self.max_per_concept = max_per_concept
        self.max_videos = max_videos
        self.max_articles = max_articles
        # Shared by every discover() run on this engine
        self._semaphore = asyncio.Semaphore(max(1, max_concurrent))
        self._sleep = sleep
        self._client = client

    async def discover(self, concept_names: list[str]) -> DiscoveryReport:
        names = _unique_names(concept_names)
        report = DiscoveryReport()
        if not names:
            return report

        batches = [names[i:i + self.batch_size] for i in range(0, len(names), self.batch_size)]
        logger.info("discovery_started", concepts=len(names), batches=len(batches))

        for index, batch in enumerate(batches, start=1):
            if index > 1:
                await self._sleep(self.batch_pause)
            logger.info("discovery_batch", batch=index, total_batches=len(batches), concepts=batch)
            try:
                outcomes = await self._process_batch(batch)
            except Exception as e:
                logger.error("discovery_batch_failed", batch=index, error=str(e), exc_info=True)
                outcomes = [
                    ConceptOutcome(concept_name=n, concept_id=concept_id(n), status="failed", error=str(e))
                    for n in batch
                ]
            report.concepts.extend(outcomes)

        logger.info(
            "discovery_completed",
            concepts=len(names),
            stored=report.total_stored,
            failed=sum(1 for c in report.concepts if c.status == "failed"),
        )
        return report

    async def _process_batch(self, batch: list[str]) -> list[ConceptOutcome]:
        async def guarded(name: str) -> ConceptOutcome:
            async with self._semaphore:
                return await self._discover_concept(name)

        results = await asyncio.gather(*(guarded(n) for n in batch), return_exceptions=True)

        outcomes = []
        for name, result in zip(batch, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                logger.error("concept_discovery_failed", concept=name, error=str(result))
                outcomes.append(
                    ConceptOutcome(
                        concept_name=name,
                        concept_id=concept_id(name),
                        status="failed",
                        error=str(result) or type(result).__name__,
                    )
                )
            else:
                outcomes.append(result)
        return outcomes

    async def _search_source(self, source: ResourceSource, cid: str, name: str):
        return await asyncio.wait_for(source.search(cid, name), timeout=self.source_timeout)

    async def _discover_concept(self, name: str) -> ConceptOutcome:
        cid = concept_id(name)

        try:
            recent = await self.store.is_recently_scraped(cid, hours=self.recent_hours)
        except Exception as e:
            logger.warning("recent_scrape_check_failed", concept=name, error=str(e))
            recent = False
        if recent:
            logger.info("concept_recently_scraped", concept=name)
            return ConceptOutcome(concept_name=name, concept_id=cid, status="skipped")

        results = await asyncio.gather(
            *(self._search_source(source, cid, name) for source in self.sources),
            return_exceptions=True,
        )

        candidates = []
        for source, result in zip(self.sources, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.warning(
                    "source_failed",
                    source=source.name,
                    concept=name,
                    error=str(result) or type(result).__name__,
                )
                continue
            candidates.extend(result)

        unique = dedupe_by_url(candidates)
        selected = filter_quality(
            unique,
            min_quality=self.min_quality,
            max_per_concept=self.max_per_concept,
            max_videos=self.max_videos,
            max_articles=self.max_articles,
        )
        stored = await self.store.upsert_resources(selected) if selected else 0

        logger.info(
            "concept_discovered",
            concept=name,
            found=len(candidates),
            unique=len(unique),
            stored=stored,
        )
        return ConceptOutcome(
            concept_name=name,
            concept_id=cid,
            status="stored",
            candidates=len(candidates),
            stored=stored,
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()


def _unique_names(names: list[str]) -> list[str]:
    seen: set[str] = set()
    unique = []
    for name in names:
        cleaned = (name or "").strip()
        if cleaned and cleaned.lower() not in seen:
            seen.add(cleaned.lower())
            unique.append(cleaned)
    return unique


def build_default_engine(
    store: ResourceStore | None = None,
    client: httpx.AsyncClient | None = None,
) -> ResourceDiscoveryEngine:
    """Wire the four sources, one fetcher and token bucket per source."""
    settings = get_settings()
    client = client or httpx.AsyncClient(timeout=settings.scraper_timeout_seconds)
    sources = []
    for source_cls in DEFAULT_SOURCES:
        fetcher = RateLimitedFetcher(
            source_cls.name,
            client,
            TokenBucket(settings.scraper_rate_limit, burst=1),
            user_agent=settings.scraper_user_agent,
            timeout=settings.scraper_timeout_seconds,
        )
        sources.append(source_cls(fetcher))

    return ResourceDiscoveryEngine(
        sources,
        store or ResourceStore(),
        batch_size=settings.scraper_batch_size,
        batch_pause=settings.scraper_batch_pause_seconds,
        max_concurrent=settings.scraper_max_concurrent,
        source_timeout=settings.scraper_source_timeout_seconds,
        recent_hours=settings.scraper_recent_hours,
        min_quality=settings.resource_min_quality,
        max_per_concept=settings.resource_max_per_concept,
        max_videos=settings.resource_max_videos,
        max_articles=settings.resource_max_articles,
        client=client,
    )


# ── Singleton ─────────────────────────────────────────────────────────────────

_engine: ResourceDiscoveryEngine | None = None


def get_discovery_engine() -> ResourceDiscoveryEngine:
    global _engine
    if _engine is None:
        _engine = build_default_engine()
    return _engine


async def close_discovery_engine() -> None:
    global _engine
    if _engine is not None:
        await _engine.close()
    _engine = None
