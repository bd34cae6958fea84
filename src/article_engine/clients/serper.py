"""Serper.dev adapter: SERP analysis, video lookup and reference search."""

from __future__ import annotations

import logging
import re
from urllib.parse import parse_qs, urlsplit

import httpx

from article_engine.clients.http import AsyncJSONClient
from article_engine.models import Competitor, Reference, SERPAnalysis, Video
from article_engine.references import registered_domain

log = logging.getLogger(__name__)

SERPER_BASE_URL = "https://google.serper.dev"

_INTENT_PATTERNS = [
    ("transactional", re.compile(r"\b(buy|price|pricing|cheap|deal|discount|coupon|order)\b", re.I)),
    ("commercial", re.compile(r"\b(best|top|vs|versus|review|reviews|compare|comparison|alternatives?)\b", re.I)),
    ("navigational", re.compile(r"\b(login|sign in|official site|website)\b", re.I)),
]

_VIDEO_QUERY_SUFFIX = {
    "how-to": "tutorial",
    "guide": "explained",
    "comparison": "comparison",
    "listicle": "tips",
    "deep-dive": "explained in depth",
}


def classify_intent(keyword: str) -> str:
    for intent, pattern in _INTENT_PATTERNS:
        if pattern.search(keyword):
            return intent
    return "informational"


def youtube_id(url: str) -> str:
    parts = urlsplit(url)
    host = (parts.hostname or "").lower()
    if host.endswith("youtu.be"):
        return parts.path.lstrip("/")
    if "youtube.com" in host:
        return parse_qs(parts.query).get("v", [""])[0]
    return ""


class SerperClient(AsyncJSONClient):
    service_name = "Serper"

    def __init__(self, api_key: str, timeout: float = 15, client: httpx.AsyncClient | None = None):
        super().__init__(
            SERPER_BASE_URL,
            headers={"X-API-KEY": api_key, "Content-Type": "application/json"},
            timeout=timeout,
            client=client,
        )

    async def analyze_serp(self, keyword: str, country: str = "us") -> SERPAnalysis:
        data = await self._post("/search", {"q": keyword, "gl": country, "num": 10})

        competitors = [
            Competitor(
                url=item.get("link", ""),
                title=item.get("title", ""),
                snippet=item.get("snippet", ""),
                position=item.get("position", i + 1),
            )
            for i, item in enumerate(data.get("organic", []))
            if item.get("link")
        ]
        questions = [q.get("question", "") for q in data.get("peopleAlsoAsk", []) if q.get("question")]
        related = [r.get("query", "") for r in data.get("relatedSearches", []) if r.get("query")]

        # Competitor titles suggest section topics; PAA questions are the gaps
        headings = []
        for c in competitors[:6]:
            title = re.split(r"\s[|\-–:]\s", c.title)[0].strip()
            if title and title.lower() != keyword.lower() and title not in headings:
                headings.append(title)

        return SERPAnalysis(
            keyword=keyword,
            recommended_word_count=2500 if len(competitors) < 5 else 3000,
            recommended_headings=headings,
            content_gaps=questions,
            semantic_entities=related,
            top_competitors=competitors,
            user_intent=classify_intent(keyword),
        )

    async def find_videos(self, keyword: str, content_type: str = "guide", limit: int = 3) -> list[Video]:
        query = f"{keyword} {_VIDEO_QUERY_SUFFIX.get(content_type, '')}".strip()
        data = await self._post("/videos", {"q": query, "num": 10})
        videos = []
        for item in data.get("videos", []):
            video_id = youtube_id(item.get("link", ""))
            if not video_id:
                continue
            videos.append(Video(
                id=video_id,
                title=item.get("title", ""),
                channel_title=item.get("channel", ""),
                url=item["link"],
                duration=item.get("duration", ""),
            ))
            if len(videos) >= limit:
                break
        return videos

    async def find_references(self, keyword: str) -> list[Reference]:
        data = await self._post("/search", {"q": f"{keyword} research study statistics", "num": 20})
        return [
            Reference(
                title=item.get("title", ""),
                url=item["link"],
                snippet=item.get("snippet", ""),
                source=registered_domain(item["link"]),
            )
            for item in data.get("organic", [])
            if item.get("link")
        ]
