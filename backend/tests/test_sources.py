import json

import httpx
import pytest

from mathprereq.core.errors import SourceFetchError
from mathprereq.services.resources.fetcher import RateLimitedFetcher
from mathprereq.services.resources.rate_limit import TokenBucket
from mathprereq.services.resources.sources import (
    GeneralSitesSource,
    KhanAcademySource,
    MathWorldSource,
    YouTubeSource,
)
from mathprereq.services.resources.sources.general_sites import site_for
from mathprereq.services.resources.sources.youtube import (
    YouTubeVideo,
    assess_difficulty,
    extract_initial_data,
    extract_videos,
    parse_view_count,
    quality_score,
)


def video_renderer(video_id, title, channel, description="", length="12 minutes, 3 seconds", views="1,234,567 views"):
    return {
        "videoRenderer": {
            "videoId": video_id,
            "title": {"runs": [{"text": title}]},
            "descriptionSnippet": {"runs": [{"text": description}]},
            "lengthText": {
                "accessibility": {"accessibilityData": {"label": length}},
                "simpleText": "12:03",
            },
            "viewCountText": {"simpleText": views},
            "ownerText": {"runs": [{"text": channel}]},
            "thumbnail": {"thumbnails": [{"url": "https://i.ytimg.com/small.jpg"}, {"url": "https://i.ytimg.com/large.jpg"}]},
            "publishedTimeText": {"simpleText": "2 years ago"},
        }
    }


YT_DATA = {
    "contents": {
        "twoColumnSearchResultsRenderer": {
            "primaryContents": {
                "sectionListRenderer": {
                    "contents": [
                        {
                            "itemSectionRenderer": {
                                "contents": [
                                    video_renderer("abc", "Derivatives explained step by step", "Khan Academy",
                                                   "An intro to the derivative"),
                                    {"adSlotRenderer": {}},
                                    video_renderer("cat", "Funny cats compilation", "Cats Daily"),
                                    video_renderer("def", "Derivative rules lesson", "Some Tutor"),
                                    video_renderer("ghi", "Rigorous proof of the power rule", "3Blue1Brown"),
                                    video_renderer("jkl", "Derivatives practice problems", "Nancy Pi"),
                                ]
                            }
                        }
                    ]
                }
            }
        }
    }
}

YT_HTML = (
    "<html><head><script>window.foo = 1;</script>"
    f"<script>var ytInitialData = {json.dumps(YT_DATA)};</script></head><body></body></html>"
)

KHAN_HTML = """
<html><body>
  <a href="/math/calculus/v/derivative-intro">Intro to derivatives video</a>
  <a href="/math/calculus/e/derivative-practice">Derivatives practice exercise</a>
  <a href="/math/calculus/v/short">Hi</a>
  <a href="/about">About Khan Academy and our mission</a>
  <a href="https://www.khanacademy.org/v/power-rule">Power rule walkthrough</a>
  <a href="/v/fourth">One more derivative lesson</a>
</body></html>
"""

MATHWORLD_HTML = """
<html><body>
  <a href="/topics/Calculus.html">Calculus and Analysis</a>
  <a href="/topics/Ab.html">Ab</a>
  <a href="/Derivative.html">Derivative</a>
  <a href="/topics/DifferentialCalculus.html">Differential Calculus</a>
  <a href="/topics/Limits.html">Limits and Continuity</a>
</body></html>
"""

BRILLIANT_HTML = """
<html><body>
  <a href="/wiki/limits/">Limits of Functions | Brilliant Math</a>
  <a href="#top">Limits of Functions anchor</a>
  <a href="/wiki/series/">Infinite Series | Brilliant</a>
</body></html>
"""

MATHSISFUN_HTML = """
<html><body>
  <a href="/calculus/limits.html">Introduction to Limits</a>
  <a href="/calculus/limits-infinity.html">Limits</a>
</body></html>
"""


def client_for(routes: dict[str, httpx.Response]) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        response = routes.get(request.url.host)
        if response is None:
            raise httpx.ConnectError("unreachable", request=request)
        return response

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def fetcher(name, client):
    return RateLimitedFetcher(name, client, TokenBucket(rate=100, burst=10), user_agent="test-agent")


# ── YouTube ──────────────────────────────────────────────────────────────────

def test_extract_initial_data_finds_embedded_json():
    data = extract_initial_data(YT_HTML)
    assert data == YT_DATA
    assert extract_initial_data("<html><script>var other = {};</script></html>") is None


def test_extract_videos_reads_renderers():
    videos = extract_videos(YT_DATA)

    assert [v.video_id for v in videos] == ["abc", "cat", "def", "ghi", "jkl"]
    first = videos[0]
    assert first.title == "Derivatives explained step by step"
    assert first.channel == "Khan Academy"
    assert first.duration == "12 minutes, 3 seconds"
    assert first.thumbnail_url == "https://i.ytimg.com/large.jpg"
    assert extract_videos({"contents": {}}) == []


def test_video_scoring_helpers():
    assert parse_view_count("1,234,567 views") == 1234567
    assert parse_view_count("No views") == 0

    assert assess_difficulty("Intro to limits", "") == "beginner"
    assert assess_difficulty("Rigorous proof", "advanced theorem") == "advanced"
    assert assess_difficulty("Limits", "") == "intermediate"

    plain = YouTubeVideo(video_id="x", title="Limits", channel="Random", duration="5:00", view_count="500 views")
    assert quality_score(plain) == 0.5
    best = YouTubeVideo(
        video_id="y",
        title="Limits explained for everyone",
        channel="Khan Academy",
        duration="12 minutes",
        view_count="50,000 views",
    )
    assert quality_score(best) == 1.0


@pytest.mark.asyncio
async def test_youtube_source_keeps_educational_videos():
    async with client_for({"www.youtube.com": httpx.Response(200, text=YT_HTML)}) as client:
        source = YouTubeSource(fetcher("youtube", client))
        results = await source.search("derivatives", "derivatives")

    # Same page for both search terms; duplicates collapse and the
    # non-educational video never appears
    assert [r.url for r in results] == [
        "https://www.youtube.com/watch?v=abc",
        "https://www.youtube.com/watch?v=def",
        "https://www.youtube.com/watch?v=ghi",
    ]
    first = results[0]
    assert first.resource_type == "video"
    assert first.source_domain == "youtube.com"
    assert first.is_verified is True
    assert first.view_count == 1234567
    assert first.difficulty_level == "beginner"
    assert "derivative" in first.tags
    assert results[2].difficulty_level == "advanced"


# ── Khan Academy / MathWorld / general sites ────────────────────────────────

@pytest.mark.asyncio
async def test_khan_academy_links():
    async with client_for({"www.khanacademy.org": httpx.Response(200, text=KHAN_HTML)}) as client:
        results = await KhanAcademySource(fetcher("khan_academy", client)).search("derivatives", "derivatives")

    assert [r.url for r in results] == [
        "https://www.khanacademy.org/math/calculus/v/derivative-intro",
        "https://www.khanacademy.org/math/calculus/e/derivative-practice",
        "https://www.khanacademy.org/v/power-rule",
    ]
    assert all(r.quality_score == 0.9 and r.resource_type == "tutorial" for r in results)


@pytest.mark.asyncio
async def test_mathworld_topics():
    async with client_for({"mathworld.wolfram.com": httpx.Response(200, text=MATHWORLD_HTML)}) as client:
        results = await MathWorldSource(fetcher("mathworld", client)).search("calculus", "calculus")

    assert [r.title for r in results] == [
        "Calculus and Analysis - MathWorld",
        "Differential Calculus - MathWorld",
    ]
    assert results[0].url == "https://mathworld.wolfram.com/topics/Calculus.html"
    assert results[0].resource_type == "reference"


@pytest.mark.asyncio
async def test_general_sites_match_concept_in_link_text():
    routes = {
        "brilliant.org": httpx.Response(200, text=BRILLIANT_HTML),
        "www.mathsisfun.com": httpx.Response(200, text=MATHSISFUN_HTML),
    }
    async with client_for(routes) as client:
        results = await GeneralSitesSource(fetcher("general_sites", client)).search("limits", "limits")

    assert [(r.url, r.quality_score) for r in results] == [
        ("https://brilliant.org/wiki/limits/", 0.8),
        ("https://www.mathsisfun.com/calculus/limits.html", 0.7),
    ]
    assert results[1].source_domain == "mathsisfun.com"


def test_site_for_matches_subdomains():
    assert site_for("https://www.mathsisfun.com/x") == "mathsisfun.com"
    assert site_for("https://brilliant.org/search") == "brilliant.org"
    assert site_for("https://notbrilliant.org/") is None


@pytest.mark.asyncio
async def test_one_failing_page_does_not_fail_the_source():
    routes = {"brilliant.org": httpx.Response(503, text="busy")}
    async with client_for(routes) as client:
        # mathsisfun is unreachable, brilliant answers 503
        results = await GeneralSitesSource(fetcher("general_sites", client)).search("limits", "limits")

    assert results == []


# ── Fetcher ──────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_fetcher_raises_on_non_200():
    async with client_for({"example.org": httpx.Response(404)}) as client:
        with pytest.raises(SourceFetchError) as exc_info:
            await fetcher("example", client).get_text("https://example.org/missing")

    assert exc_info.value.source == "example"
    assert "404" in str(exc_info.value)


@pytest.mark.asyncio
async def test_fetcher_wraps_transport_errors():
    async with client_for({}) as client:
        with pytest.raises(SourceFetchError):
            await fetcher("example", client).get_text("https://example.org/")


@pytest.mark.asyncio
async def test_fetcher_sends_browser_headers():
    seen = {}

    def handler(request):
        seen["ua"] = request.headers["user-agent"]
        return httpx.Response(200, text="ok")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        assert await fetcher("example", client).get_text("https://example.org/") == "ok"

    assert seen["ua"] == "test-agent"
