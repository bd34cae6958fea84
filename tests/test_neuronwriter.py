"""Tests for the NeuronWriter adapter."""

import json

import httpx
import pytest

from article_engine.clients.neuronwriter import NeuronWriterClient, parse_analysis
from article_engine.errors import ProviderError, QueryNotReadyError

READY_PAYLOAD = {
    "status": "ready",
    "keyword": "intermittent fasting",
    "terms": [
        {"term": "eating window", "type": "required", "weight": 90},
        {"term": "autophagy", "type": "recommended", "weight": 70},
        {"term": "fasting app", "type": "optional"},
    ],
    "termsExtended": ["time-restricted eating"],
    "entities": [{"entity": "Mark Mattson"}, "ketosis"],
    "headingsH2": [{"text": "Benefits of intermittent fasting"}],
}


def make_client(routes, calls=None):
    def handler(request):
        if calls is not None:
            calls.append((request.url.path, json.loads(request.content)))
        return routes[request.url.path.rsplit("/", 1)[-1]]

    return NeuronWriterClient("nw-key", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


class TestParseAnalysis:
    def test_ready_payload(self):
        analysis = parse_analysis("q-1", READY_PAYLOAD)
        assert analysis.required_terms == ["eating window", "autophagy"]
        assert [t.term for t in analysis.terms_extended] == ["time-restricted eating"]
        assert analysis.entity_names == ["Mark Mattson", "ketosis"]
        assert analysis.heading_texts == ["Benefits of intermittent fasting"]
        assert analysis.has_terms

    def test_processing_payload_is_not_ready(self):
        with pytest.raises(QueryNotReadyError):
            parse_analysis("q-1", {"status": "in_progress"})

    def test_ready_but_empty_is_returned(self):
        analysis = parse_analysis("q-1", {"status": "ready"})
        assert not analysis.has_terms


class TestClient:
    async def test_list_queries_unwraps(self):
        client = make_client({"list-queries": httpx.Response(200, json={"queries": [{"query": "a", "keyword": "x"}, "junk"]})})
        assert await client.list_queries("proj") == [{"query": "a", "keyword": "x"}]

    async def test_create_query(self):
        calls = []
        client = make_client({"new-query": httpx.Response(200, json={"query": "abc", "query_url": "https://..."})}, calls)

        assert await client.create_query("proj", "intermittent fasting") == "abc"

        path, body = calls[0]
        assert path.endswith("/new-query")
        assert body["project"] == "proj" and body["keyword"] == "intermittent fasting"

    async def test_create_query_without_id(self):
        client = make_client({"new-query": httpx.Response(200, json={"status": "ok"})})
        with pytest.raises(ProviderError):
            await client.create_query("proj", "intermittent fasting")

    async def test_get_analysis(self):
        client = make_client({"get-query": httpx.Response(200, json=READY_PAYLOAD)})
        analysis = await client.get_analysis("q-9")
        assert analysis.query_id == "q-9"
        assert analysis.required_terms == ["eating window", "autophagy"]

    async def test_score_content(self):
        calls = []
        client = make_client({"evaluate-content": httpx.Response(200, json={"content_score": 87})}, calls)

        assert await client.score_content("q-9", "<p>x</p>", "Title") == 87.0
        assert calls[0][1] == {"query": "q-9", "html": "<p>x</p>", "title": "Title"}

    async def test_score_content_missing_score(self):
        client = make_client({"evaluate-content": httpx.Response(200, json={"status": "error"})})
        with pytest.raises(ProviderError):
            await client.score_content("q-9", "<p>x</p>")
