"""NeuronWriter adapter: the external content-coverage scorer."""

from __future__ import annotations

import logging

import httpx

from article_engine.clients.http import AsyncJSONClient
from article_engine.errors import ProviderError, QueryNotReadyError
from article_engine.models import CoverageAnalysis, EntityData, HeadingData, TermData

log = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://app.neuronwriter.com/neuron-api/0.5/writer"
PROCESSING_STATUSES = {"", "in_progress", "pending", "processing", "queued", "waiting"}


def parse_terms(raw) -> list[TermData]:
    terms = []
    for t in raw if isinstance(raw, list) else []:
        if isinstance(t, str):
            terms.append(TermData(term=t))
            continue
        term = t.get("term") or t.get("keyword") or ""
        if not term:
            continue
        terms.append(TermData(
            term=term,
            type=t.get("type") or "recommended",
            frequency=t.get("frequency") or t.get("count") or 1,
            weight=t.get("weight") or t.get("score") or 50,
            usage_pc=t.get("usage_pc") or t.get("usage") or 50,
        ))
    return terms


def parse_entities(raw) -> list[EntityData]:
    entities = []
    for e in raw if isinstance(raw, list) else []:
        name = e if isinstance(e, str) else (e.get("entity") or e.get("name") or "")
        if name:
            usage = 50 if isinstance(e, str) else e.get("usage_pc") or 50
            entities.append(EntityData(entity=name, usage_pc=usage))
    return entities


def parse_headings(raw) -> list[HeadingData]:
    headings = []
    for h in raw if isinstance(raw, list) else []:
        text = h if isinstance(h, str) else (h.get("text") or h.get("heading") or h.get("title") or "")
        if text:
            headings.append(HeadingData(text=text, usage_pc=50 if isinstance(h, str) else h.get("usage_pc") or 50))
    return headings


def parse_analysis(query_id: str, data: dict) -> CoverageAnalysis:
    """Build a CoverageAnalysis from a /get-query payload.

    Raises QueryNotReadyError while the query is still processing and has no terms.
    """
    status = (data.get("status") or "").lower()
    analysis = CoverageAnalysis(
        query_id=query_id,
        status=status or "ready",
        keyword=data.get("keyword", ""),
        content_score=data.get("content_score") or data.get("contentScore") or 0,
        recommended_length=data.get("recommended_length") or data.get("recommendedLength") or 2500,
        terms=parse_terms(data.get("terms") or data.get("basicKeywords")),
        terms_extended=parse_terms(data.get("termsExtended") or data.get("extendedKeywords")),
        entities=parse_entities(data.get("entities")),
        headings_h2=parse_headings(data.get("headingsH2") or data.get("headings_h2")),
        headings_h3=parse_headings(data.get("headingsH3") or data.get("headings_h3")),
    )
    if not analysis.terms and not analysis.headings_h2 and status in PROCESSING_STATUSES:
        raise QueryNotReadyError(f"query {query_id} status={status or 'unknown'}")
    return analysis


class NeuronWriterClient(AsyncJSONClient):
    service_name = "NeuronWriter"

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        language: str = "English",
        engine: str = "google.com",
        timeout: float = 15,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(
            base_url,
            headers={"X-API-KEY": api_key, "Accept": "application/json", "Content-Type": "application/json"},
            timeout=timeout,
            client=client,
        )
        self.language = language
        self.engine = engine

    async def list_queries(self, project_id: str) -> list[dict]:
        data = await self._post("/list-queries", {"project": project_id})
        if isinstance(data, dict):
            data = data.get("queries") or data.get("data") or []
        return [q for q in data if isinstance(q, dict)]

    async def create_query(self, project_id: str, keyword: str) -> str:
        data = await self._post("/new-query", {
            "project": project_id,
            "keyword": keyword,
            "language": self.language,
            "engine": self.engine,
        })
        query_id = None
        if isinstance(data, dict):
            query_id = data.get("query") or data.get("query_id") or data.get("id")
        if not query_id:
            raise ProviderError(f"NeuronWriter returned no query id for '{keyword}'")
        return str(query_id)

    async def get_analysis(self, query_id: str) -> CoverageAnalysis:
        data = await self._post("/get-query", {"query": query_id})
        if not isinstance(data, dict):
            raise ProviderError(f"Unexpected /get-query payload for {query_id}")
        return parse_analysis(query_id, data)

    async def score_content(self, query_id: str, html: str, title: str = "") -> float:
        data = await self._post("/evaluate-content", {"query": query_id, "html": html, "title": title})
        score = data.get("content_score", data.get("contentScore")) if isinstance(data, dict) else None
        if not isinstance(score, (int, float)):
            raise ProviderError(f"NeuronWriter returned no content score for {query_id}")
        return float(score)
