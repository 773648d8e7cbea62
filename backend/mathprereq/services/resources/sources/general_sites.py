from urllib.parse import quote_plus, urlparse

from bs4 import BeautifulSoup

from mathprereq.services.resources.models import EducationalResource, ResourceKind
from mathprereq.services.resources.sources.base import ResourceSource, make_absolute_url

# domain -> (search URL template, quality)
SITES = {
    "brilliant.org": ("https://brilliant.org/search/?q={query}", 0.8),
    "mathsisfun.com": ("https://www.mathsisfun.com/search/search.html?query={query}", 0.7),
}


def site_for(url: str) -> str | None:
    host = urlparse(url).netloc.lower()
    for domain in SITES:
        if host == domain or host.endswith("." + domain):
            return domain
    return None


class GeneralSitesSource(ResourceSource):
    """Article links from general math education sites."""

    name = "general_sites"
    max_results = 4

    def search_urls(self, concept_name: str) -> list[str]:
        query = quote_plus(concept_name)
        return [template.format(query=query) for template, _ in SITES.values()]

    def parse(self, html, page_url, concept_id, concept_name):
        domain = site_for(page_url)
        if domain is None:
            return []
        quality = SITES[domain][1]
        needle = concept_name.strip().lower()

        soup = BeautifulSoup(html, "html.parser")
        resources = []
        for link in soup.select("a[href]"):
            if len(resources) >= self.max_results:
                break
            href = link["href"].strip()
            if not href or href.startswith("#"):
                continue

            text = link.get_text(" ", strip=True)
            if not 10 <= len(text) <= 200 or needle not in text.lower():
                continue

            resources.append(
                EducationalResource(
                    concept_id=concept_id,
                    concept_name=concept_name,
                    title=text,
                    url=make_absolute_url(page_url, href),
                    description=f"Educational content about {concept_name}",
                    resource_type=ResourceKind.ARTICLE,
                    source_domain=domain,
                    difficulty_level="intermediate",
                    quality_score=quality,
                    content_preview=text,
                    tags=["article", "education"],
                )
            )
        return resources
