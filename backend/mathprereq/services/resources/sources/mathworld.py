from urllib.parse import quote_plus

from bs4 import BeautifulSoup

from mathprereq.services.resources.models import EducationalResource, ResourceKind
from mathprereq.services.resources.sources.base import ResourceSource, make_absolute_url


class MathWorldSource(ResourceSource):
    """Wolfram MathWorld topic pages."""

    name = "mathworld"
    site = "https://mathworld.wolfram.com"
    max_results = 2

    def search_urls(self, concept_name: str) -> list[str]:
        return [f"{self.site}/search/?query={quote_plus(concept_name)}"]

    def parse(self, html, page_url, concept_id, concept_name):
        soup = BeautifulSoup(html, "html.parser")
        resources = []
        for link in soup.select("a[href*='/topics/']"):
            if len(resources) >= self.max_results:
                break
            title = link.get_text(" ", strip=True)
            if len(title) <= 5:
                continue

            resources.append(
                EducationalResource(
                    concept_id=concept_id,
                    concept_name=concept_name,
                    title=f"{title} - MathWorld",
                    url=make_absolute_url(self.site, link["href"]),
                    description=f"Mathematical definition and explanation of {concept_name}",
                    resource_type=ResourceKind.REFERENCE,
                    source_domain="mathworld.wolfram.com",
                    difficulty_level="intermediate",
                    quality_score=0.8,
                    content_preview=title,
                    tags=["mathworld", "reference", "definition"],
                    is_verified=True,
                )
            )
        return resources
