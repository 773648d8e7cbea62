"""
Query Service

# ── Pipeline ──
process_query() runs four stages strictly in order, each timed, recorded as
a ProcessingStep and bounded by its own timeout:

    identify_concepts -> find_prerequisites -> vector_search -> generate_explanation

Concept identification, prerequisite resolution and explanation generation
are fatal: the run is marked failed and FatalStageError reaches the caller.
Retrieval is tolerated: the step is recorded as failed and generation
proceeds without context.

# ── Background work ──
Resource discovery for the identified concepts and persistence of the
finished (or failed) query run as detached jobs on the BackgroundJobRunner,
each with its own deadline and in its own lane. Neither can fail the request.

# ── Concept cache ──
smart_concept_query() serves a concept from a previous successful query if
one matched within the freshness window, and otherwise runs the pipeline on
a synthesized "explain this concept" question. Either way a background
resource refresh is dispatched.
"""

import asyncio
import re
import time
from datetime import datetime, timedelta
from typing import Awaitable, Callable

from mathprereq.core.config import Settings, get_settings
from mathprereq.core.database import utcnow
from mathprereq.core.errors import (
    DegradedStageError,
    FatalStageError,
    PersistenceError,
)
from mathprereq.core.logging import get_logger
from mathprereq.services.background import (
    DISCOVERY_LANE,
    PERSISTENCE_LANE,
    BackgroundJobRunner,
    get_background_runner,
)
from mathprereq.services.entities import Concept, Query, QueryResult, SmartQueryResult
from mathprereq.services.graph.concept_graph import ConceptGraph, get_concept_graph
from mathprereq.services.llm.orchestrator import LLMOrchestrator, get_orchestrator
from mathprereq.services.prompt_compiler import build_concept_query_prompt
from mathprereq.services.query_store import QueryRepository
from mathprereq.services.rag.retriever import SemanticIndex, get_semantic_index
from mathprereq.services.resources.discovery import ResourceDiscoveryEngine, get_discovery_engine
from mathprereq.services.resources.models import EducationalResource
from mathprereq.services.resources.postprocess import dedupe_by_url, rank_resources
from mathprereq.services.resources.search_terms import concept_id
from mathprereq.services.resources.store import ResourceStore

logger = get_logger(__name__)

QueryMatcher = Callable[[Query], bool]


def clean_concept_names(names: list[str]) -> list[str]:
    return [n.strip() for n in names if n and n.strip()]


def unique_case_insensitive(names: list[str]) -> list[str]:
    seen: set[str] = set()
    unique = []
    for name in clean_concept_names(names):
        key = name.lower()
        if key not in seen:
            seen.add(key)
            unique.append(name)
    return unique


def concept_matchers(concept_name: str) -> list[QueryMatcher]:
    """Cache matchers, most specific first."""
    normalized = concept_name.strip().lower()
    word = re.compile(rf"\b{re.escape(normalized)}\b", re.IGNORECASE)

    return [
        lambda q: concept_name in q.identified_concepts,
        lambda q: any(c.strip().lower() == normalized for c in q.identified_concepts),
        lambda q: bool(word.search(q.text)),
    ]


def _result_from(query: Query) -> dict:
    return {
        "query_id": query.id,
        "request_id": query.request_id,
        "identified_concepts": query.identified_concepts,
        "prerequisite_path": query.prerequisite_path,
        "explanation": query.explanation,
        "retrieved_context": query.retrieved_context,
        "processing_time_ms": query.processing_time_ms,
        "llm_provider": query.llm_provider,
        "llm_model": query.llm_model,
    }


class QueryService:
    def __init__(
        self,
        llm: LLMOrchestrator,
        graph: ConceptGraph,
        index: SemanticIndex,
        queries: QueryRepository,
        resources: ResourceStore,
        discovery: ResourceDiscoveryEngine,
        runner: BackgroundJobRunner,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.llm = llm
        self.graph = graph
        self.index = index
        self.queries = queries
        self.resources = resources
        self.discovery = discovery
        self.runner = runner
        self.settings = settings or get_settings()
        self._clock = clock

    # ── Pipeline ──────────────────────────────────────────────────────────────

    async def process_query(
        self,
        question: str,
        user_id: str | None = None,
        request_id: str | None = None,
        discover_also: list[str] | None = None,
    ) -> QueryResult:
        """Run the pipeline for ``question``.

        ``discover_also`` names concepts to include in the single resource
        discovery dispatched for this run, ahead of the identified ones.
        They are still dispatched if identification fails.
        """
        s = self.settings
        seed = clean_concept_names(discover_also or [])
        discovery_dispatched = False
        query = Query(
            text=question,
            user_id=user_id,
            request_id=request_id,
            llm_provider=self.llm.provider_name,
            llm_model=self.llm.model,
            timestamp=self._clock(),
        )
        started = time.perf_counter()
        log = logger.bind(query_id=str(query.id), request_id=request_id)

        try:
            raw_concepts = await self._run_stage(
                query, "identify_concepts",
                lambda: self.llm.identify_concepts(question),
                s.llm_timeout_seconds,
            )
            concepts = clean_concept_names(raw_concepts)
            query.identified_concepts = concepts
            to_discover = unique_case_insensitive(seed + concepts)[: s.max_discovery_concepts]
            discovery_dispatched = self.schedule_discovery(to_discover)

            path: list[Concept] = await self._run_stage(
                query, "find_prerequisites",
                lambda: self.graph.resolve_prerequisite_path(concepts),
                s.graph_timeout_seconds,
            )
            query.prerequisite_path = path

            try:
                results = await self._run_stage(
                    query, "vector_search",
                    lambda: self.index.search(question, s.retrieval_top_k),
                    s.search_timeout_seconds,
                    fatal=False,
                )
            except DegradedStageError as e:
                log.warning("retrieval_degraded", error=str(e))
                results = []
            query.retrieved_context = [r.content for r in results]

            query.explanation = await self._run_stage(
                query, "generate_explanation",
                lambda: self.llm.generate_explanation(question, path, query.retrieved_context),
                s.llm_timeout_seconds,
            )
            query.mark_completed(True)
        except FatalStageError as e:
            query.mark_completed(False, str(e))
            log.error("query_failed", stage=e.stage, error=str(e))
            raise
        except asyncio.CancelledError:
            query.mark_completed(False, "request cancelled")
            raise
        finally:
            query.processing_time_ms = int((time.perf_counter() - started) * 1000)
            if seed and not discovery_dispatched:
                self.schedule_discovery(seed[: s.max_discovery_concepts])
            self._schedule_save(query)

        log.info(
            "query_processed",
            concepts=len(query.identified_concepts),
            path_length=len(query.prerequisite_path),
            context_chunks=len(query.retrieved_context),
            processing_time_ms=query.processing_time_ms,
        )
        return QueryResult(**_result_from(query))

    async def _run_stage(
        self,
        query: Query,
        name: str,
        factory: Callable[[], Awaitable],
        timeout: float,
        fatal: bool = True,
    ):
        started = time.perf_counter()
        try:
            result = await asyncio.wait_for(factory(), timeout=timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error_cls = FatalStageError if fatal else DegradedStageError
            error = error_cls(name, e)
            query.add_processing_step(name, _elapsed_ms(started), False, str(error))
            raise error from e

        query.add_processing_step(name, _elapsed_ms(started), True)
        return result

    # ── Concept cache ─────────────────────────────────────────────────────────

    async def find_cached_concept_query(self, concept_name: str) -> Query | None:
        try:
            return await self._match_cached(concept_name)
        except Exception as e:
            logger.warning("concept_cache_lookup_failed", concept=concept_name, error=str(e))
            return None

    async def _match_cached(self, concept_name: str) -> Query | None:
        exact, normalized, word = concept_matchers(concept_name)

        # Concept-list matchers see every record naming the concept
        mentions = await self.queries.find_cached_candidates(concept_name, field="concepts", limit=None)
        for matcher in (exact, normalized):
            matches = [q for q in mentions if matcher(q)]
            if matches:
                return max(matches, key=lambda q: q.timestamp)

        # Text pages arrive newest first, so the first hit is the newest
        page_size = self.settings.cache_lookup_page_size
        offset = 0
        while True:
            page = await self.queries.find_cached_candidates(
                concept_name, field="text", limit=page_size, offset=offset
            )
            for query in page:
                if word(query):
                    return query
            if len(page) < page_size:
                return None
            offset += page_size

    def is_fresh(self, query: Query, now: datetime | None = None) -> bool:
        age = (now or self._clock()) - query.timestamp
        return age < timedelta(days=self.settings.cache_max_age_days)

    async def smart_concept_query(
        self,
        concept_name: str,
        user_id: str | None = None,
        request_id: str | None = None,
    ) -> SmartQueryResult:
        name = concept_name.strip()
        if not name:
            raise ValueError("concept_name must not be empty")

        now = self._clock()
        started = time.perf_counter()
        cached = await self.find_cached_concept_query(name)

        if cached is not None and self.is_fresh(cached, now):
            age = now - cached.timestamp
            refresh = unique_case_insensitive([name] + cached.identified_concepts)
            self.schedule_discovery(refresh[: self.settings.background_refresh_max_concepts])
            logger.info(
                "concept_cache_hit",
                concept=name,
                query_id=str(cached.id),
                cache_age_hours=round(age.total_seconds() / 3600, 1),
            )
            payload = _result_from(cached)
            payload["request_id"] = request_id
            payload["processing_time_ms"] = _elapsed_ms(started)
            return SmartQueryResult(
                **payload,
                concept_name=name,
                source="cache",
                cache_age_seconds=age.total_seconds(),
                timestamp=cached.timestamp,
            )

        if cached is not None:
            logger.info("concept_cache_stale", concept=name, query_id=str(cached.id))
        else:
            logger.info("concept_cache_miss", concept=name)

        result = await self.process_query(
            build_concept_query_prompt(name), user_id, request_id, discover_also=[name]
        )
        return SmartQueryResult(
            **result.model_dump(),
            concept_name=name,
            source="processed",
            timestamp=now,
        )

    # ── Resources ─────────────────────────────────────────────────────────────

    async def get_resources_for_concepts(
        self,
        concept_names: list[str],
        limit: int = 10,
    ) -> list[EducationalResource]:
        collected: list[EducationalResource] = []
        for name in clean_concept_names(concept_names):
            try:
                collected.extend(await self.resources.find_by_concept(concept_id(name), limit=limit))
            except Exception as e:
                logger.warning("resource_lookup_failed", concept=name, error=str(e))
        return rank_resources(dedupe_by_url(collected))[:limit]

    def schedule_discovery(self, concept_names: list[str]) -> bool:
        names = unique_case_insensitive(concept_names)
        if not names:
            return False
        self.runner.submit(
            f"discover_resources:{','.join(names)}",
            lambda: self.discovery.discover(names),
            timeout=self.settings.resource_job_timeout_seconds,
            lane=DISCOVERY_LANE,
        )
        return True

    # ── Persistence ───────────────────────────────────────────────────────────

    def _schedule_save(self, query: Query) -> None:
        self.runner.submit(
            f"save_query:{query.id}",
            lambda: self._save(query),
            timeout=self.settings.query_save_timeout_seconds,
            lane=PERSISTENCE_LANE,
        )

    async def _save(self, query: Query) -> None:
        try:
            await self.queries.save(query)
        except Exception as e:
            raise PersistenceError(f"failed to save query {query.id}: {e}") from e

    # ── Catalogue & analytics ─────────────────────────────────────────────────

    async def get_concept_detail(self, concept_id_or_name: str) -> dict | None:
        return await self.graph.get_concept_detail(concept_id_or_name)

    async def get_all_concepts(self) -> list[Concept]:
        return await self.graph.get_all_concepts()

    async def get_graph_stats(self) -> dict:
        return await self.graph.get_stats()

    async def get_cached_queries(self, limit: int = 20, offset: int = 0) -> list[Query]:
        return await self.queries.find_recent(limit=limit, offset=offset)

    async def clear_concept_cache(self, older_than_days: int) -> int:
        return await self.queries.delete_older_than(older_than_days, now=self._clock())

    async def get_query_stats(self) -> dict:
        return await self.queries.get_query_stats(now=self._clock())

    async def get_popular_concepts(self, limit: int = 10, days: int | None = None) -> list[dict]:
        return await self.queries.get_popular_concepts(limit=limit, days=days)

    async def get_query_trends(self, days: int = 7) -> list[dict]:
        return await self.queries.get_query_trends(days=days, now=self._clock())

    async def get_resource_stats(self) -> dict:
        return await self.resources.get_stats()


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


# ── Singleton ─────────────────────────────────────────────────────────────────

_service: QueryService | None = None


def get_query_service() -> QueryService:
    """FastAPI dependency; builds the service from the process-wide clients."""
    global _service
    if _service is None:
        _service = QueryService(
            llm=get_orchestrator(),
            graph=get_concept_graph(),
            index=get_semantic_index(),
            queries=QueryRepository(),
            resources=ResourceStore(),
            discovery=get_discovery_engine(),
            runner=get_background_runner(),
        )
    return _service


def reset_query_service() -> None:
    global _service
    _service = None
