import os
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker

from mathprereq.core.config import Settings, get_settings
from mathprereq.core.database import create_engine, init_models
from mathprereq.services.background import BackgroundJobRunner
from mathprereq.services.entities import Concept, VectorResult
from mathprereq.services.graph.concept_graph import ConceptGraph
from mathprereq.services.query_service import QueryService
from mathprereq.services.query_store import QueryRepository
from mathprereq.services.rag.retriever import SemanticIndex
from mathprereq.services.resources.store import ResourceStore

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def test_env(monkeypatch):
    monkeypatch.setenv('OPENAI_API_KEY', 'test')
    monkeypatch.setenv('NEO4J_URI', os.getenv('NEO4J_URI', 'bolt://localhost:7687'))
    monkeypatch.setenv('NEO4J_PASSWORD', os.getenv('NEO4J_PASSWORD', ''))
    monkeypatch.setenv('DATABASE_URL', 'sqlite+aiosqlite:///:memory:')
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        llm_timeout_seconds=2,
        graph_timeout_seconds=2,
        search_timeout_seconds=2,
        query_save_timeout_seconds=2,
        resource_job_timeout_seconds=5,
    )


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_models(engine)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def query_repo(session_factory):
    return QueryRepository(session_factory)


@pytest.fixture
def resource_store(session_factory):
    return ResourceStore(session_factory)


# ── Fakes ─────────────────────────────────────────────────────────────────────

class FakeGraph(ConceptGraph):
    def __init__(self, path: list[Concept] | None = None, error: Exception | None = None):
        self.path = path or []
        self.error = error
        self.calls: list[list[str]] = []

    async def resolve_prerequisite_path(self, names):
        self.calls.append(list(names))
        if self.error:
            raise self.error
        return list(self.path)

    async def get_concept_detail(self, concept_id):
        return None

    async def get_all_concepts(self):
        return list(self.path)

    async def get_stats(self):
        return {"total_concepts": len(self.path), "total_relationships": 0}

    async def is_healthy(self):
        return True


class FakeIndex(SemanticIndex):
    def __init__(self, results: list[VectorResult] | None = None, error: Exception | None = None):
        self.results = results or []
        self.error = error
        self.calls: list[tuple[str, int]] = []

    async def search(self, query, k):
        self.calls.append((query, k))
        if self.error:
            raise self.error
        return list(self.results)

    def status(self):
        return {"available": self.error is None, "chunk_count": len(self.results)}


def make_llm(concepts=None, explanation="An explanation."):
    llm = MagicMock()
    llm.provider_name = "fake"
    llm.model = "fake-model"
    llm.model_id = "fake-model"
    llm.identify_concepts = AsyncMock(return_value=list(concepts or []))
    llm.generate_explanation = AsyncMock(return_value=explanation)
    return llm


def make_discovery():
    discovery = MagicMock()
    discovery.discover = AsyncMock()
    return discovery


@pytest.fixture
def runner():
    return BackgroundJobRunner(max_concurrent=4)


@pytest.fixture
def make_service(settings, query_repo, resource_store, runner):
    def factory(llm=None, graph=None, index=None, discovery=None, queries=None, clock=lambda: NOW):
        return QueryService(
            llm=llm or make_llm(),
            graph=graph or FakeGraph(),
            index=index or FakeIndex(),
            queries=queries or query_repo,
            resources=resource_store,
            discovery=discovery or make_discovery(),
            runner=runner,
            settings=settings,
            clock=clock,
        )

    return factory
