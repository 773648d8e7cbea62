from urllib.parse import quote_plus

from bs4 import BeautifulSoup

from mathprereq.services.resources.models import EducationalResource, ResourceKind
from mathprereq.services.resources.sources.base import ResourceSource, make_absolute_url


class KhanAcademySource(ResourceSource):
    """Khan Academy search; keeps links to exercises (/e/) and videos (/v/)."""

    name = "khan_academy"
    site = "https://www.khanacademy.org"
    max_results = 3

    def search_urls(self, concept_name: str) -> list[str]:
        return [f"{self.site}/search?search_again=1&page_search_query={quote_plus(concept_name)}"]

    def parse(self, html, page_url, concept_id, concept_name):
        soup = BeautifulSoup(html, "html.parser")
        resources = []
        for link in soup.select("a[href]"):
            if len(resources) >= self.max_results:
                break
            href = link.get("href", "")
            if "/e/" not in href and "/v/" not in href:
                continue

            title = link.get_text(" ", strip=True) or (link.get("aria-label") or "").strip()
            if len(title) <= 10:
                continue

            resources.append(
                EducationalResource(
                    concept_id=concept_id,
                    concept_name=concept_name,
                    title=title,
                    url=make_absolute_url(self.site, href),
                    description=f"Khan Academy lesson on {concept_name}",
                    resource_type=ResourceKind.TUTORIAL,
                    source_domain="khanacademy.org",
                    difficulty_level="beginner",
                    quality_score=0.9,
                    content_preview=title,
                    tags=["khan-academy", "tutorial"],
                    is_verified=True,
                )
            )
        return resources
