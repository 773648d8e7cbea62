from collections import defaultdict

from mathprereq.services.resources.models import EducationalResource

ARTICLE_LIKE = ("article", "tutorial")


def dedupe_by_url(resources: list[EducationalResource]) -> list[EducationalResource]:
    """Keep the first resource seen for each URL."""
    seen: set[str] = set()
    unique = []
    for resource in resources:
        if resource.url in seen:
            continue
        seen.add(resource.url)
        unique.append(resource)
    return unique


def rank_resources(resources: list[EducationalResource]) -> list[EducationalResource]:
    """Stable sort: quality desc, then most recently scraped first."""
    by_recency = sorted(resources, key=lambda r: r.scraped_at, reverse=True)
    return sorted(by_recency, key=lambda r: r.quality_score, reverse=True)


def filter_quality(
    resources: list[EducationalResource],
    min_quality: float = 0.4,
    max_per_concept: int = 6,
    max_videos: int = 3,
    max_articles: int = 3,
) -> list[EducationalResource]:
    """
    Keep the best resources per concept while enforcing type diversity.

    Articles and tutorials share one cap; references only count toward the
    per-concept total.
    """
    counts: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
    kept = []

    for resource in rank_resources(resources):
        if resource.quality_score < min_quality:
            continue

        per_type = counts[resource.concept_id]
        if sum(per_type.values()) >= max_per_concept:
            continue

        kind = resource.resource_type
        if kind == "video" and per_type["video"] >= max_videos:
            continue
        if kind in ARTICLE_LIKE and per_type["article"] + per_type["tutorial"] >= max_articles:
            continue

        kept.append(resource)
        per_type[kind] += 1

    return kept
