from datetime import datetime, timedelta, timezone

import pytest

from mathprereq.services.resources.models import EducationalResource

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def res(url, concept="limits", kind="article", quality=0.8, scraped_at=T0, **extra):
    return EducationalResource(
        concept_id=concept,
        concept_name=concept,
        title=extra.pop("title", f"About {concept}"),
        url=url,
        resource_type=kind,
        source_domain="example.org",
        quality_score=quality,
        scraped_at=scraped_at,
        **extra,
    )


@pytest.mark.asyncio
async def test_upsert_inserts_and_reads_back(resource_store):
    video = res(
        "https://youtube.com/watch?v=1",
        kind="video",
        difficulty_level="beginner",
        tags=["limit", "calculus"],
        duration="12 minutes",
        view_count=25000,
        author_channel="Khan Academy",
        is_verified=True,
    )

    assert await resource_store.upsert_resources([video]) == 1

    [stored] = await resource_store.find_by_concept("limits")
    assert stored.id == video.id
    assert stored.resource_type == "video"
    assert stored.difficulty_level == "beginner"
    assert stored.tags == ["limit", "calculus"]
    assert stored.view_count == 25000
    assert stored.is_verified is True
    assert stored.scraped_at == T0


@pytest.mark.asyncio
async def test_upsert_updates_existing_url_and_keeps_id(resource_store):
    original = res("https://x.org/limits", title="Old title", quality=0.5)
    await resource_store.upsert_resources([original])

    updated = res("https://x.org/limits", title="New title", quality=0.9)
    await resource_store.upsert_resources([updated])

    [stored] = await resource_store.find_by_concept("limits")
    assert stored.id == original.id
    assert stored.title == "New title"
    assert stored.quality_score == 0.9


@pytest.mark.asyncio
async def test_upsert_ignores_duplicate_urls_in_one_batch(resource_store):
    count = await resource_store.upsert_resources(
        [res("https://x.org/a", title="first"), res("https://x.org/a", title="second")]
    )

    assert count == 1
    [stored] = await resource_store.find_by_concept("limits")
    assert stored.title == "first"


@pytest.mark.asyncio
async def test_upsert_of_nothing_is_a_noop(resource_store):
    assert await resource_store.upsert_resources([]) == 0


@pytest.mark.asyncio
async def test_find_by_concept_filters_and_orders(resource_store):
    await resource_store.upsert_resources(
        [
            res("https://x.org/1", quality=0.6),
            res("https://x.org/2", quality=0.9, kind="video", difficulty_level="advanced"),
            res("https://x.org/3", quality=0.9, kind="video", scraped_at=T0 - timedelta(days=1)),
            res("https://x.org/4", concept="series", quality=1.0),
        ]
    )

    all_limits = await resource_store.find_by_concept("limits")
    assert [r.url for r in all_limits] == ["https://x.org/2", "https://x.org/3", "https://x.org/1"]

    videos = await resource_store.find_by_concept("limits", resource_type="video")
    assert {r.url for r in videos} == {"https://x.org/2", "https://x.org/3"}

    good = await resource_store.find_by_concept("limits", min_quality=0.7)
    assert len(good) == 2

    advanced = await resource_store.find_by_concept("limits", difficulty="advanced")
    assert [r.url for r in advanced] == ["https://x.org/2"]

    assert len(await resource_store.find_by_concept("limits", limit=1)) == 1


@pytest.mark.asyncio
async def test_recently_scraped_window(resource_store):
    await resource_store.upsert_resources([res("https://x.org/1", scraped_at=T0 - timedelta(hours=5))])

    assert await resource_store.is_recently_scraped("limits", hours=24, now=T0) is True
    assert await resource_store.is_recently_scraped("limits", hours=4, now=T0) is False
    assert await resource_store.is_recently_scraped("series", hours=24, now=T0) is False


@pytest.mark.asyncio
async def test_stats(resource_store):
    assert (await resource_store.get_stats())["total_resources"] == 0

    await resource_store.upsert_resources(
        [
            res("https://x.org/1", quality=0.8, kind="video"),
            res("https://x.org/2", quality=0.6),
            res("https://x.org/3", concept="series", quality=0.4),
        ]
    )

    stats = await resource_store.get_stats()
    assert stats["total_concepts"] == 2
    assert stats["total_resources"] == 3
    assert stats["avg_resources_per_concept"] == 1.5
    assert stats["avg_quality_score"] == pytest.approx(0.55, abs=0.001)
    assert stats["resources_by_type"] == {"video": 1, "article": 2}


@pytest.mark.asyncio
async def test_resources_for_several_concepts_are_merged_and_ranked(make_service, resource_store):
    await resource_store.upsert_resources(
        [
            res("https://x.org/l1", concept="limits", quality=0.6),
            res("https://x.org/l2", concept="limits", quality=0.95),
            res("https://x.org/d1", concept="derivatives", quality=0.8),
            res("https://x.org/d2", concept="derivatives", quality=0.5),
        ]
    )
    service = make_service()

    resources = await service.get_resources_for_concepts(["limits", "Derivatives", "  ", "limits"], limit=3)

    assert [r.url for r in resources] == ["https://x.org/l2", "https://x.org/d1", "https://x.org/l1"]
