from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import NOW, make_discovery, make_llm
from mathprereq.core.errors import FatalStageError
from mathprereq.services.entities import Query
from mathprereq.services.prompt_compiler import build_concept_query_prompt
from mathprereq.services.query_service import concept_matchers


def cached_query(text, concepts, age, explanation="Cached explanation.", success=True):
    return Query(
        text=text,
        identified_concepts=concepts,
        explanation=explanation if success else "",
        success=success,
        timestamp=NOW - age,
        llm_provider="openai",
        llm_model="gpt-4o",
    )


@pytest.mark.asyncio
async def test_fresh_match_is_served_from_cache(make_service, runner, query_repo):
    stored = cached_query("What is a derivative?", ["derivatives", "limits"], timedelta(days=10))
    stored.processing_time_ms = 45_000
    await query_repo.save(stored)
    llm = make_llm(["should", "not", "run"])
    discovery = make_discovery()
    service = make_service(llm=llm, discovery=discovery)

    result = await service.smart_concept_query("derivatives", request_id="req-9")
    await runner.drain()

    assert result.source == "cache"
    assert result.query_id == stored.id
    assert result.explanation == "Cached explanation."
    assert result.concept_name == "derivatives"
    assert result.request_id == "req-9"
    assert result.cache_age_seconds == timedelta(days=10).total_seconds()
    assert result.timestamp == stored.timestamp
    # Lookup latency, not the cached run's pipeline time
    assert result.processing_time_ms < 45_000
    llm.identify_concepts.assert_not_awaited()
    discovery.discover.assert_awaited_once_with(["derivatives", "limits"])


@pytest.mark.asyncio
async def test_entry_exactly_thirty_days_old_is_stale(make_service, runner, query_repo):
    await query_repo.save(cached_query("Explain derivatives", ["derivatives"], timedelta(days=30)))
    llm = make_llm(["derivatives"], explanation="Fresh explanation.")
    service = make_service(llm=llm)

    result = await service.smart_concept_query("derivatives")
    await runner.drain()

    assert result.source == "processed"
    assert result.explanation == "Fresh explanation."
    assert result.cache_age_seconds is None
    llm.identify_concepts.assert_awaited_once_with(build_concept_query_prompt("derivatives"))


@pytest.mark.asyncio
async def test_miss_runs_pipeline_on_synthesized_question(make_service, runner):
    llm = make_llm(["integrals", "antiderivatives"], explanation="All about integrals.")
    discovery = make_discovery()
    service = make_service(llm=llm, discovery=discovery)

    result = await service.smart_concept_query("  integrals ")
    await runner.drain()

    assert result.source == "processed"
    assert result.concept_name == "integrals"
    assert result.timestamp == NOW
    assert result.identified_concepts == ["integrals", "antiderivatives"]

    prompt = llm.identify_concepts.await_args.args[0]
    assert 'mathematical concept "integrals"' in prompt
    discovery.discover.assert_awaited_once_with(["integrals", "antiderivatives"])

    # The processed result becomes the next cache hit
    again = await service.smart_concept_query("integrals")
    await runner.drain()
    assert again.source == "cache"
    assert again.query_id == result.query_id


@pytest.mark.asyncio
async def test_exact_concept_match_beats_newer_text_match(make_service, runner, query_repo):
    older = cached_query("Explain limits", ["limits"], timedelta(days=20), explanation="exact")
    newer = cached_query(
        "What are limits of sequences?", ["sequences"], timedelta(days=1), explanation="text"
    )
    await query_repo.save(older)
    await query_repo.save(newer)
    service = make_service()

    result = await service.smart_concept_query("limits")
    await runner.drain()

    assert result.source == "cache"
    assert result.explanation == "exact"


@pytest.mark.asyncio
async def test_newest_match_wins_within_a_matcher(make_service, runner, query_repo):
    await query_repo.save(cached_query("limits one", ["limits"], timedelta(days=9), explanation="old"))
    await query_repo.save(cached_query("limits two", ["limits"], timedelta(days=2), explanation="new"))
    service = make_service()

    result = await service.smart_concept_query("limits")
    await runner.drain()

    assert result.explanation == "new"


@pytest.mark.asyncio
async def test_concept_match_is_case_insensitive(make_service, runner, query_repo):
    await query_repo.save(cached_query("Explain it", ["Derivatives"], timedelta(days=3)))
    service = make_service()

    result = await service.smart_concept_query("derivatives")
    await runner.drain()

    assert result.source == "cache"


@pytest.mark.asyncio
async def test_text_match_requires_whole_word(make_service, runner, query_repo):
    await query_repo.save(cached_query("What are limits?", ["sequences"], timedelta(days=1)))
    llm = make_llm(["limit"])
    service = make_service(llm=llm)

    result = await service.smart_concept_query("limit")
    await runner.drain()

    assert result.source == "processed"
    llm.identify_concepts.assert_awaited_once()


@pytest.mark.asyncio
async def test_failed_queries_are_never_served(make_service, runner, query_repo):
    await query_repo.save(cached_query("Explain limits", ["limits"], timedelta(days=1), success=False))
    service = make_service(llm=make_llm(["limits"]))

    result = await service.smart_concept_query("limits")
    await runner.drain()

    assert result.source == "processed"


@pytest.mark.asyncio
async def test_background_refresh_is_capped(make_service, runner, query_repo):
    await query_repo.save(
        cached_query(
            "Explain integrals",
            ["Integrals", "limits", "functions", "algebra", "sums"],
            timedelta(days=2),
        )
    )
    discovery = make_discovery()
    service = make_service(discovery=discovery)

    await service.smart_concept_query("integrals")
    await runner.drain()

    discovery.discover.assert_awaited_once_with(["integrals", "limits", "functions"])


@pytest.mark.asyncio
async def test_lookup_failure_is_treated_as_miss(make_service, runner):
    queries = MagicMock()
    queries.find_cached_candidates = AsyncMock(side_effect=RuntimeError("db unavailable"))
    queries.save = AsyncMock()
    llm = make_llm(["limits"])
    service = make_service(llm=llm, queries=queries)

    result = await service.smart_concept_query("limits")
    await runner.drain()

    assert result.source == "processed"
    queries.save.assert_awaited_once()


@pytest.mark.asyncio
async def test_blank_concept_name_is_rejected(make_service):
    service = make_service()
    with pytest.raises(ValueError):
        await service.smart_concept_query("   ")


@pytest.mark.asyncio
async def test_freshness_window_is_exclusive(make_service):
    service = make_service()
    just_inside = cached_query("q", [], timedelta(days=30) - timedelta(seconds=1))
    boundary = cached_query("q", [], timedelta(days=30))

    assert service.is_fresh(just_inside, NOW) is True
    assert service.is_fresh(boundary, NOW) is False


def test_matchers_are_ordered_most_specific_first():
    exact, normalized, word = concept_matchers("Limits")
    query = Query(text="what about LIMITS here", identified_concepts=["limits"])

    assert exact(query) is False
    assert normalized(query) is True
    assert word(query) is True


@pytest.mark.asyncio
async def test_exact_match_is_found_behind_many_newer_text_matches(make_service, runner, query_repo):
    await query_repo.save(cached_query("Explain it", ["limit"], timedelta(days=5), explanation="exact"))
    for n in range(60):
        await query_repo.save(
            cached_query(
                f"how do limits of sequences work {n}",
                ["sequences"],
                timedelta(days=1),
                explanation="text",
            )
        )
    llm = make_llm(["limit"], explanation="fresh")
    service = make_service(llm=llm)

    result = await service.smart_concept_query("limit")
    await runner.drain()

    assert result.source == "cache"
    assert result.explanation == "exact"
    llm.identify_concepts.assert_not_awaited()


@pytest.mark.asyncio
async def test_text_match_is_found_past_the_first_page(make_service, runner, query_repo, settings):
    settings.cache_lookup_page_size = 2
    await query_repo.save(
        cached_query("What is a limit anyway?", ["analysis"], timedelta(days=6), explanation="word")
    )
    for n in range(3):
        await query_repo.save(
            cached_query(f"Two limits, case {n}", ["sequences"], timedelta(days=1), explanation="plural")
        )
    service = make_service()

    result = await service.smart_concept_query("limit")
    await runner.drain()

    assert result.source == "cache"
    assert result.explanation == "word"


@pytest.mark.asyncio
async def test_miss_still_refreshes_concept_when_identification_fails(make_service, runner):
    llm = make_llm()
    llm.identify_concepts = AsyncMock(side_effect=RuntimeError("quota exceeded"))
    discovery = make_discovery()
    service = make_service(llm=llm, discovery=discovery)

    with pytest.raises(FatalStageError):
        await service.smart_concept_query("integrals")
    await runner.drain()

    discovery.discover.assert_awaited_once_with(["integrals"])
