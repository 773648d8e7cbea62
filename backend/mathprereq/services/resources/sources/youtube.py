"""
YouTube search results.

The results page embeds its data as ``var ytInitialData = {...};`` in a
script tag. Videos live under
contents.twoColumnSearchResultsRenderer.primaryContents.sectionListRenderer
.contents[].itemSectionRenderer.contents[].videoRenderer.
"""

import json
import re
from dataclasses import dataclass
from urllib.parse import quote_plus

from bs4 import BeautifulSoup

from mathprereq.services.resources.models import EducationalResource, ResourceKind, truncate
from mathprereq.services.resources.sources.base import ResourceSource

YT_INITIAL_DATA = "var ytInitialData = "

EDUCATIONAL_KEYWORDS = (
    "tutorial", "explained", "learn", "how to", "lesson", "lecture",
    "calculus", "mathematics", "math", "derivative", "integral",
    "step by step", "example", "practice", "course", "education",
)

EDUCATIONAL_CHANNELS = (
    "khan academy", "patrickjmt", "professor leonard", "organic chemistry tutor",
    "mathologer", "blackpenredpen", "bprp", "krista king math", "math and science",
    "eddie woo", "nancy pi", "professor dave explains", "3blue1brown",
)

REPUTABLE_CHANNELS = (
    "khan academy", "patrickjmt", "professor leonard",
    "organic chemistry tutor", "mathologer", "3blue1brown",
)

VERIFIED_CHANNELS = {
    "khan academy", "patrickjmt", "professor leonard",
    "organic chemistry tutor", "mathologer", "3blue1brown",
}

BEGINNER_KEYWORDS = ("intro", "basic", "beginner", "simple", "easy", "start", "fundamental")
ADVANCED_KEYWORDS = ("advanced", "complex", "graduate", "proof", "theorem", "rigorous")

MATH_TAGS = (
    "calculus", "derivative", "integral", "limit", "function",
    "algebra", "geometry", "trigonometry", "statistics", "probability",
)

_DIGITS = re.compile(r"[\d,]+")


@dataclass
class YouTubeVideo:
    video_id: str
    title: str
    description: str = ""
    duration: str = ""
    view_count: str = ""
    channel: str = ""
    thumbnail_url: str = ""
    published: str = ""


# ── ytInitialData extraction ─────────────────────────────────────────────────

def extract_initial_data(html: str) -> dict | None:
    soup = BeautifulSoup(html, "html.parser")
    for script in soup.find_all("script"):
        content = script.string or script.get_text()
        start = content.find(YT_INITIAL_DATA)
        if start < 0:
            continue
        try:
            data, _ = json.JSONDecoder().raw_decode(content, start + len(YT_INITIAL_DATA))
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data
    return None


def _text(obj) -> str:
    """Flatten a YouTube text object ({"runs": [...]} or {"simpleText": ...})."""
    if obj is None:
        return ""
    if not isinstance(obj, dict):
        return str(obj)
    if isinstance(obj.get("runs"), list):
        return "".join(run.get("text", "") for run in obj["runs"] if isinstance(run, dict))
    simple = obj.get("simpleText")
    return simple if isinstance(simple, str) else ""


def _accessible_text(obj) -> str:
    if isinstance(obj, dict):
        label = obj.get("accessibility", {}).get("accessibilityData", {}).get("label")
        if isinstance(label, str):
            return label
    return _text(obj)


def _thumbnail(obj) -> str:
    thumbnails = obj.get("thumbnails") if isinstance(obj, dict) else None
    if not thumbnails:
        return ""
    # Last entry is the highest resolution
    last = thumbnails[-1]
    return last.get("url", "") if isinstance(last, dict) else ""


def extract_videos(data: dict | None) -> list[YouTubeVideo]:
    if not data:
        return []
    try:
        sections = (
            data["contents"]["twoColumnSearchResultsRenderer"]["primaryContents"]
            ["sectionListRenderer"]["contents"]
        )
    except (KeyError, TypeError):
        return []

    videos = []
    for section in sections:
        items = (section or {}).get("itemSectionRenderer", {}).get("contents", [])
        for item in items:
            renderer = (item or {}).get("videoRenderer")
            if not isinstance(renderer, dict):
                continue
            video = YouTubeVideo(
                video_id=renderer.get("videoId") or "",
                title=_text(renderer.get("title")),
                description=_text(renderer.get("descriptionSnippet")),
                duration=_accessible_text(renderer.get("lengthText")),
                view_count=_text(renderer.get("viewCountText")),
                channel=_text(renderer.get("ownerText")),
                thumbnail_url=_thumbnail(renderer.get("thumbnail")),
                published=_text(renderer.get("publishedTimeText")),
            )
            if video.video_id and video.title:
                videos.append(video)
    return videos


# ── Scoring ──────────────────────────────────────────────────────────────────

def is_educational_video(video: YouTubeVideo) -> bool:
    channel = video.channel.lower()
    content = f"{video.title} {video.channel} {video.description}".lower()
    return any(k in content for k in EDUCATIONAL_KEYWORDS) or any(
        c in channel for c in EDUCATIONAL_CHANNELS
    )


def assess_difficulty(title: str, description: str) -> str:
    content = f"{title} {description}".lower()
    beginner = sum(1 for k in BEGINNER_KEYWORDS if k in content)
    advanced = sum(1 for k in ADVANCED_KEYWORDS if k in content)
    if beginner > advanced:
        return "beginner"
    if advanced > beginner:
        return "advanced"
    return "intermediate"


def parse_view_count(text: str) -> int:
    """'1,234,567 views' -> 1234567; unparseable -> 0"""
    match = _DIGITS.search(text or "")
    if not match:
        return 0
    digits = match.group(0).replace(",", "")
    return int(digits) if digits else 0


def quality_score(video: YouTubeVideo) -> float:
    score = 0.5
    channel = video.channel.lower()
    if any(c in channel for c in REPUTABLE_CHANNELS):
        score += 0.3

    title = video.title.lower()
    if len(video.title) > 20:
        score += 0.1
    if "explained" in title or "tutorial" in title:
        score += 0.1

    # Rough preference for 10-29 minute videos
    if "1" in video.duration or "2" in video.duration:
        score += 0.1

    if parse_view_count(video.view_count) > 10_000:
        score += 0.1

    return min(score, 1.0)


def video_tags(video: YouTubeVideo) -> list[str]:
    content = f"{video.title} {video.description}".lower()
    return [tag for tag in MATH_TAGS if tag in content]


def is_verified_channel(channel: str) -> bool:
    return channel.strip().lower() in VERIFIED_CHANNELS


# ── Source ───────────────────────────────────────────────────────────────────

class YouTubeSource(ResourceSource):
    name = "youtube"
    base_url = "https://www.youtube.com/results?search_query="
    max_results = 5
    max_search_terms = 2
    per_page = 3

    def search_urls(self, concept_name: str) -> list[str]:
        return [self.base_url + quote_plus(term) for term in self.search_terms(concept_name)]

    def parse(self, html, page_url, concept_id, concept_name):
        resources = []
        for video in extract_videos(extract_initial_data(html)):
            if len(resources) >= self.per_page:
                break
            if not is_educational_video(video):
                continue

            views = parse_view_count(video.view_count)
            resources.append(
                EducationalResource(
                    concept_id=concept_id,
                    concept_name=concept_name,
                    title=video.title,
                    url=f"https://www.youtube.com/watch?v={video.video_id}",
                    description=truncate(video.description, 500),
                    resource_type=ResourceKind.VIDEO,
                    source_domain="youtube.com",
                    difficulty_level=assess_difficulty(video.title, video.description),
                    quality_score=quality_score(video),
                    content_preview=truncate(video.description, 200),
                    tags=video_tags(video),
                    is_verified=is_verified_channel(video.channel),
                    duration=video.duration or None,
                    view_count=views or None,
                    thumbnail_url=video.thumbnail_url or None,
                    author_channel=video.channel or None,
                )
            )
        return resources
