"""Tests for the Content Engine orchestrator, end to end with in-memory collaborators."""

import json
import re

import pytest

from article_engine.content_engine import ContentEngine, build_video_section, fallback_content_plan
from article_engine.errors import ContentGenerationError, ProviderError
from article_engine.models import GenerationRequest, OptimizationOutcome
from article_engine.progress import ProgressChannel
from article_engine.query_manager import QueryLifecycleManager, SessionQueryCache
from article_engine.research import ResearchCoordinator

from fakes import SAMPLE_REFERENCES, SAMPLE_VIDEOS, FakeGenerator, FakeScorer, StubResearch, article_html, make_analysis

KEYWORD = "intermittent fasting"
META = (
    "Intermittent fasting explained: how the 16:8 and 5:2 schedules work, what research says "
    "about weight loss and insulin, and how to start safely this week."
)
CLOSING = (
    "<h2>Frequently Asked Questions</h2>"
    "<h3>Is intermittent fasting safe?</h3><p>For most healthy adults it is, but check with a doctor first.</p>"
    "<h3>Can I drink coffee while fasting?</h3><p>Black coffee will not break a fast.</p>"
    "<h2>Conclusion</h2><p>Start with a 12 hour window and extend it slowly as it feels comfortable.</p>"
)
COVERAGE_SECTION = (
    "<h2>Benefits of intermittent fasting</h2><p>"
    + "The 16:8 method shortens the eating window, which supports autophagy and better insulin sensitivity. " * 3
    + "Researchers also link time-restricted eating to steadier energy through the afternoon.</p>"
)


def pipeline_responder(main_content=None):
    """Routes each prompt to the answer a well-behaved model would give."""
    state = {"continuations": 0}

    def respond(prompt):
        if prompt.startswith("Write one compelling article title"):
            return "Intermittent Fasting Explained: A Beginner's Guide"
        if prompt.startswith("Write a "):
            return main_content if main_content is not None else article_html(KEYWORD, sections=6)
        if prompt.startswith("Continue this article"):
            state["continuations"] += 1
            return article_html(KEYWORD, sections=3, start=20 * state["continuations"]) + CLOSING
        if "NEW self-contained section" in prompt:
            return COVERAGE_SECTION
        if prompt.startswith("Revise the article below"):
            return prompt.split("ARTICLE:\n", 1)[1] + COVERAGE_SECTION
        if prompt.startswith("Article title:"):
            return json.dumps({"seo_title": "Intermittent Fasting: A Beginner's Guide", "meta_description": META})
        raise AssertionError(f"unexpected prompt: {prompt[:80]}")

    return respond


@pytest.fixture
def analysis():
    return make_analysis(
        terms=["autophagy", "insulin sensitivity", "eating window"],
        entities=["16:8 method"],
        headings=["Benefits of intermittent fasting"],
    )


def build_engine(settings, site, generator, scorer=None, stub=None):
    stub = stub or StubResearch(videos=SAMPLE_VIDEOS, references=SAMPLE_REFERENCES)
    manager = QueryLifecycleManager(scorer, SessionQueryCache(), settings) if scorer else None
    research = ResearchCoordinator(
        stub, stub, stub, query_manager=manager, project_id="proj" if scorer else "", settings=settings,
    )
    return ContentEngine(generator, research, scorer, settings, site, model="test-model")


class TestGenerateContent:
    async def test_full_pipeline(self, settings, site, analysis):
        """A 2500-word request goes through every phase and produces a publishable article."""
        scorer = FakeScorer(analyses=[analysis], scores=[74, 93])
        engine = build_engine(settings, site, FakeGenerator(responder=pipeline_responder()), scorer)
        messages = []
        progress = ProgressChannel()
        request = GenerationRequest(keyword=KEYWORD, target_word_count=2500, on_progress=messages.append)

        result = await engine.generate_content(request, progress)

        assert result.metrics.word_count >= 2000
        assert result.slug == "intermittent-fasting"
        assert re.fullmatch(r"[a-z0-9-]+", result.slug)
        assert len(result.seo_title) <= 60
        assert 150 <= len(result.meta_description) <= 160
        assert result.title == "Intermittent Fasting Explained: A Beginner's Guide"
        assert result.primary_keyword == KEYWORD
        assert result.model == "test-model"

        assert result.optimization_outcome == OptimizationOutcome.PASSED
        assert result.coverage_score == 93
        assert "Benefits of intermittent fasting" in result.content

        assert "youtube.com/embed/abc123XYZ" in result.content
        assert result.content.index("Helpful Videos") < result.content.index("<h2>Conclusion</h2>")
        assert result.references[0].url == "https://www.nih.gov/news/fasting-review"
        assert not any("pinterest" in r.url for r in result.references)
        assert '<section class="references">' in result.content

        graph = result.schema["@graph"]
        assert [item["@type"] for item in graph] == ["Article", "BreadcrumbList", "FAQPage"]
        assert graph[0]["wordCount"] == result.metrics.word_count
        assert len(graph[2]["mainEntity"]) == 2
        assert result.quality_score.passes, result.quality_score.failures

        phases = [e.phase for e in progress.history]
        assert phases[0] == "research" and phases[-1] == "done"
        assert phases.index("optimization") < phases.index("critique") < phases.index("finalize")
        assert messages[-1].startswith("Generated ")

    async def test_without_scorer(self, settings, site):
        """No scorer configured: optimization is skipped and the draft still finishes."""
        engine = build_engine(settings, site, FakeGenerator(responder=pipeline_responder()))

        result = await engine.generate_content(GenerationRequest(keyword=KEYWORD, target_word_count=2500))

        assert result.optimization_outcome == OptimizationOutcome.SKIPPED
        assert result.coverage_score is None
        assert result.secondary_keywords == ["autophagy", "time-restricted eating"]

    async def test_research_failures_degrade(self, settings, site):
        """SERP, video and reference failures fall back to defaults; the target comes from the default analysis."""
        stub = StubResearch(fail={"serp", "videos", "references"})
        gen = FakeGenerator(responder=pipeline_responder())
        engine = build_engine(settings, site, gen, stub=stub)

        result = await engine.generate_content(GenerationRequest(keyword=KEYWORD))

        assert result.metrics.word_count >= 2000
        assert result.references == []
        assert "youtube.com/embed" not in result.content
        assert "Length: at least 2500 words" in gen.calls[1]

    async def test_empty_generation_raises(self, settings, site):
        engine = build_engine(settings, site, FakeGenerator(responder=pipeline_responder(main_content="")))
        progress = ProgressChannel()

        with pytest.raises(ContentGenerationError) as exc:
            await engine.generate_content(GenerationRequest(keyword=KEYWORD), progress)

        assert exc.value.step == "content generation"
        # Subscribers are released even when the run fails
        assert [e async for e in progress.subscribe()] == []

    async def test_generator_outage_raises(self, settings, site):
        def respond(prompt):
            if prompt.startswith("Write a "):
                return ProviderError("overloaded", 529)
            return pipeline_responder()(prompt)

        engine = build_engine(settings, site, FakeGenerator(responder=respond))
        with pytest.raises(ContentGenerationError, match="overloaded"):
            await engine.generate_content(GenerationRequest(keyword=KEYWORD))

    async def test_title_failure_uses_template(self, settings, site):
        def respond(prompt):
            if prompt.startswith("Write one compelling article title"):
                return ProviderError("busy", 503)
            return pipeline_responder()(prompt)

        engine = build_engine(settings, site, FakeGenerator(responder=respond))
        result = await engine.generate_content(GenerationRequest(keyword=KEYWORD, target_word_count=2500))
        assert result.title == "Intermittent Fasting: The Complete Guide"


class TestContentPlan:
    async def test_plan_from_generator(self, settings, site):
        plan_json = json.dumps({
            "pillarKeyword": "intermittent fasting",
            "pillarTitle": "Intermittent Fasting: Everything You Need to Know",
            "clusters": [
                {"keyword": "16:8 fasting", "title": "The 16:8 Schedule", "type": "how-to", "priority": "high"},
                {"keyword": "fasting and coffee", "title": "Coffee While Fasting", "type": "podcast", "priority": "urgent"},
                {"title": "no keyword"},
            ],
        })
        engine = build_engine(settings, site, FakeGenerator(responses=[f"Here is your plan:\n{plan_json}"]))

        plan = await engine.generate_content_plan("fasting")

        assert not plan.is_fallback
        assert plan.pillar_keyword == "intermittent fasting"
        assert [c.keyword for c in plan.clusters] == ["16:8 fasting", "fasting and coffee"]
        assert plan.clusters[1].type == "guide" and plan.clusters[1].priority == "medium"
        assert plan.total_estimated_words == 7500

    async def test_unusable_output_falls_back(self, settings, site):
        engine = build_engine(settings, site, FakeGenerator(responses=["I cannot help with that."]))
        plan = await engine.generate_content_plan("home espresso")
        assert plan.is_fallback
        assert plan == fallback_content_plan("home espresso")


def test_video_section_escapes_titles():
    html = build_video_section(SAMPLE_VIDEOS * 4)
    assert html.count("<iframe") == 3
    assert 'src="https://www.youtube.com/embed/abc123XYZ"' in html
