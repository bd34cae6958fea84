"""Research Fan-Out: SERP, videos, references and scorer query, gathered concurrently."""

from __future__ import annotations

import asyncio
import logging

from article_engine.config import PipelineSettings
from article_engine.models import GenerationRequest, QueryBundle, ResearchBundle, SERPAnalysis
from article_engine.utils.async_tools import run_in_batches, with_timeout

log = logging.getLogger(__name__)


def default_serp_analysis(keyword: str) -> SERPAnalysis:
    """Generic analysis used when the SERP lookup fails."""
    topic = keyword.strip().title()
    return SERPAnalysis(
        keyword=keyword,
        recommended_word_count=2500,
        recommended_headings=[
            f"What Is {topic}?",
            f"Why {topic} Matters",
            f"How {topic} Works",
            "Step-by-Step Guide",
            "Common Mistakes to Avoid",
            "Frequently Asked Questions",
            "Conclusion",
        ],
        content_gaps=[],
        semantic_entities=[],
        top_competitors=[],
        user_intent="informational",
        is_default=True,
    )


async def _empty_list() -> list:
    return []


async def _nothing() -> None:
    return None


class ResearchCoordinator:
    """Runs the independent research calls for a request and settles all of them."""

    TASK_NAMES = ("serp", "videos", "references", "query")

    def __init__(
        self,
        serp_analyzer,
        video_finder=None,
        reference_finder=None,
        query_manager=None,
        project_id: str = "",
        country: str = "us",
        settings: PipelineSettings | None = None,
    ):
        self.serp_analyzer = serp_analyzer
        self.video_finder = video_finder
        self.reference_finder = reference_finder
        self.query_manager = query_manager
        self.project_id = project_id
        self.country = country
        self.settings = settings or PipelineSettings()

    async def run_research(self, request: GenerationRequest) -> ResearchBundle:
        """Gather research for ``request``. Never raises for a failed source."""
        keyword = request.keyword
        timeout = self.settings.network_timeout

        coros = [
            (
                with_timeout(self.serp_analyzer.analyze_serp(keyword, self.country), timeout, "SERP analysis")
                if self.serp_analyzer is not None else _nothing()
            ),
            (
                with_timeout(self.video_finder.find_videos(keyword, request.content_type), timeout, "video lookup")
                if request.include_videos and self.video_finder else _empty_list()
            ),
            (
                with_timeout(self.reference_finder.find_references(keyword), timeout, "reference lookup")
                if request.include_references and self.reference_finder else _empty_list()
            ),
            (
                self._resolve_query(keyword)
                if self.query_manager is not None and self.project_id else _nothing()
            ),
        ]
        outcomes = await asyncio.gather(*coros, return_exceptions=True)

        results = {}
        for name, outcome in zip(self.TASK_NAMES, outcomes):
            if isinstance(outcome, BaseException):
                log.warning(f"Research task '{name}' failed for '{keyword}': {outcome}")
                results[name] = None
            else:
                results[name] = outcome

        serp = results["serp"] or default_serp_analysis(keyword)
        bundle = ResearchBundle(
            serp=serp,
            videos=list(results["videos"] or []),
            references=list(results["references"] or []),
            query=results["query"],
        )
        log.info(
            f"Research for '{keyword}': intent={serp.user_intent}, "
            f"{len(bundle.videos)} videos, {len(bundle.references)} references, "
            f"scorer query={'yes' if bundle.query else 'no'}"
        )
        return bundle

    async def _resolve_query(self, keyword: str) -> QueryBundle | None:
        bundle = await self.query_manager.resolve_query(keyword, self.project_id)
        if bundle is None or bundle.analysis.has_terms:
            return bundle

        # Ready but empty: the cached query is broken, replace it once
        log.warning(f"Scorer query {bundle.query_id} has no usable terms, creating a replacement")
        self.query_manager.remove_from_cache(keyword)
        replacement = await self.query_manager.resolve_query(keyword, self.project_id, force_new=True)
        if replacement is not None and replacement.analysis.has_terms:
            return replacement
        return bundle

    async def analyze_batch(
        self,
        keywords: list[str],
        cancel_event: asyncio.Event | None = None,
    ) -> dict[str, SERPAnalysis]:
        """SERP-analyze many keywords under the rate-limit window.

        Failed keywords get the default analysis; keywords not reached before
        ``cancel_event`` is set are left out.
        """
        async def analyze(keyword: str) -> SERPAnalysis:
            return await with_timeout(
                self.serp_analyzer.analyze_serp(keyword, self.country),
                self.settings.network_timeout,
                f"SERP analysis for '{keyword}'",
            )

        outcomes = await run_in_batches(
            keywords,
            analyze,
            concurrency=self.settings.batch_concurrency,
            delay=self.settings.batch_delay,
            cancel_event=cancel_event,
        )
        analyses = {}
        for keyword, outcome in outcomes:
            if isinstance(outcome, BaseException):
                log.warning(f"Batch SERP analysis failed for '{keyword}': {outcome}")
                analyses[keyword] = default_serp_analysis(keyword)
            else:
                analyses[keyword] = outcome
        return analyses
