"""Content Engine: runs one keyword through the whole generation pipeline.

Fan-Out → Title → Main content → Completion → Enhancement → Optimization →
Self-Critique → Finalizer. Phases run one after another; only the main
content call and the empty-draft check can abort a run.
"""

from __future__ import annotations

import dataclasses
import html as html_lib
import json
import logging
import time

from article_engine.completion import LongFormCompleter
from article_engine.config import PipelineSettings, ServiceCredentials, SiteProfile
from article_engine.critique import SelfCritic
from article_engine.draft_editor import DraftEditor
from article_engine.errors import ContentGenerationError, ProviderError
from article_engine.finalizer import Finalizer
from article_engine.html_tools import clean_generation_output, insert_before_conclusion, remove_ai_phrases
from article_engine.internal_links import InternalLinkEngine
from article_engine.metadata import MetadataWriter
from article_engine.models import (
    CONTENT_TYPES,
    ClusterPlan,
    ContentPlan,
    Draft,
    GeneratedContent,
    GenerationRequest,
    InternalLink,
    OptimizationOutcome,
    ResearchBundle,
    Video,
)
from article_engine.optimizer import CoverageOptimizer, ranked_terms
from article_engine.progress import ProgressChannel
from article_engine.query_manager import QueryLifecycleManager, SessionQueryCache
from article_engine.research import ResearchCoordinator
from article_engine.utils.async_tools import generation_timeout, with_timeout

log = logging.getLogger(__name__)

MIN_DRAFT_WORDS = 100

WRITER_SYSTEM_PROMPT = """You are an expert long-form writer with deep SEO knowledge.

Write in a direct, practical voice: short paragraphs, specific numbers, concrete examples.
Never use filler such as "delve", "in today's world", "it's important to note", "game-changer".
Output clean semantic HTML only (h2, h3, p, ul, ol, table, blockquote). No markdown, no <html> or <body>."""


def build_video_section(videos: list[Video]) -> str:
    """Embed block for up to three videos."""
    embeds = []
    for video in videos[:3]:
        title = html_lib.escape(video.title, quote=True)
        embeds.append(
            '<figure class="video-embed">\n'
            f'<iframe src="https://www.youtube.com/embed/{html_lib.escape(video.id, quote=True)}" '
            f'title="{title}" loading="lazy" allowfullscreen></iframe>\n'
            f"<figcaption>{title}"
            + (f" by {html_lib.escape(video.channel_title)}" if video.channel_title else "")
            + "</figcaption>\n</figure>"
        )
    return '<section class="video-resources">\n<h2>Helpful Videos</h2>\n' + "\n".join(embeds) + "\n</section>"


def fallback_content_plan(broad_topic: str) -> ContentPlan:
    return ContentPlan(
        pillar_topic=broad_topic,
        pillar_keyword=broad_topic,
        pillar_title=f"{broad_topic.title()}: The Complete Guide",
        clusters=[
            ClusterPlan(keyword=f"{broad_topic} guide", title=f"Complete {broad_topic} Guide", type="guide", priority="high"),
            ClusterPlan(keyword=f"{broad_topic} tips", title=f"Top {broad_topic} Tips", type="listicle", priority="high"),
            ClusterPlan(keyword=f"how to {broad_topic}", title=f"How to {broad_topic}", type="how-to", priority="medium"),
            ClusterPlan(keyword=f"{broad_topic} best practices", title=f"{broad_topic} Best Practices", type="deep-dive", priority="medium"),
        ],
        is_fallback=True,
    )


class ContentEngine:
    """The orchestrator. Collaborators are injected; ``from_config`` wires the real ones."""

    def __init__(
        self,
        generator,
        research: ResearchCoordinator,
        scorer=None,
        settings: PipelineSettings | None = None,
        site: SiteProfile | None = None,
        link_engine: InternalLinkEngine | None = None,
        model: str = "",
    ):
        self.generator = generator
        self.research = research
        self.settings = settings or PipelineSettings()
        self.site = site or SiteProfile()
        s = self.settings

        editor = DraftEditor(generator, s)
        self.completer = LongFormCompleter(generator, s)
        self.optimizer = CoverageOptimizer(scorer, generator, s, editor) if scorer is not None else None
        self.critic = SelfCritic(generator, s, editor)
        self.metadata = MetadataWriter(generator, s)
        self.finalizer = Finalizer(generator, s, self.site, metadata_writer=self.metadata, model=model)
        self.link_engine = link_engine or InternalLinkEngine(self.site.site_pages, max_links=s.max_internal_links)
        self._closables = []

    @classmethod
    def from_config(cls, config_path: str = "config.yaml", credentials: ServiceCredentials | None = None,
                    site_pages: list[dict] | None = None) -> "ContentEngine":
        """Wire Anthropic, Serper and (when configured) NeuronWriter from config.yaml and .env."""
        from article_engine.clients import AnthropicGenerator, NeuronWriterClient, SerperClient

        settings = PipelineSettings.from_yaml(config_path)
        site = SiteProfile.from_yaml(config_path)
        if site_pages:
            site.site_pages = site.site_pages + site_pages
        creds = credentials or ServiceCredentials.from_env()
        if not creds.anthropic_api_key:
            raise ValueError("ANTHROPIC_API_KEY is not set")

        generator = AnthropicGenerator(creds.anthropic_api_key, creds.anthropic_model)
        serper = SerperClient(creds.serper_api_key, timeout=settings.network_timeout) if creds.serper_api_key else None
        scorer = None
        query_manager = None
        if creds.scorer_configured:
            scorer = NeuronWriterClient(creds.neuronwriter_api_key, timeout=settings.network_timeout)
            query_manager = QueryLifecycleManager(scorer, SessionQueryCache(), settings)
        else:
            log.info("NeuronWriter not configured; coverage optimization will be skipped")

        research = ResearchCoordinator(
            serp_analyzer=serper,
            video_finder=serper,
            reference_finder=serper,
            query_manager=query_manager,
            project_id=creds.neuronwriter_project_id,
            country=site.target_country,
            settings=settings,
        )
        engine = cls(generator, research, scorer, settings, site, model=creds.anthropic_model)
        engine._closables = [c for c in (generator, serper, scorer) if c is not None]
        return engine

    async def aclose(self):
        for client in self._closables:
            await client.aclose()

    # ---- Pipeline ----

    async def generate_content(self, request: GenerationRequest, progress: ProgressChannel | None = None) -> GeneratedContent:
        """Run every phase for ``request``.

        Raises ContentGenerationError only when the main draft cannot be produced.
        """
        progress = progress or ProgressChannel()
        if request.on_progress is not None:
            progress.add_listener(lambda event: request.on_progress(event.message))

        started = time.monotonic()
        try:
            progress.publish("research", f"Researching '{request.keyword}'")
            research = await self.research.run_research(request)
            if not request.target_word_count:
                request = dataclasses.replace(request, target_word_count=research.serp.recommended_word_count)
            progress.publish(
                "research",
                f"Found {len(research.videos)} videos, {len(research.references)} references "
                f"({research.serp.user_intent} intent)",
            )

            title = await self.metadata.generate_title(request, research.serp)
            progress.publish("title", f"Title: {title}")

            progress.publish("generation", f"Writing ~{request.target_word_count} words")
            draft = await self._generate_main_content(request, title, research)

            progress.publish("completion", f"Draft at {draft.word_count} words, checking length")
            draft = await self.completer.complete_draft(draft, request)
            if draft.word_count < MIN_DRAFT_WORDS:
                raise ContentGenerationError("completion", f"draft is empty after completion ({draft.word_count} words)")

            progress.publish("enhancement", "Cleaning phrasing, adding videos and internal links")
            draft, links = self._enhance(draft, request, research)

            outcome = OptimizationOutcome.SKIPPED
            if research.query is not None and self.optimizer is not None:
                progress.publish("optimization", f"Optimizing term coverage: {research.query.analysis.summary()}")
                draft, outcome = await self._optimize(draft, research, title)
                progress.publish("optimization", f"Coverage {research.query.coverage_score}% ({outcome})")

            progress.publish("critique", "Final coverage check")
            draft = await self._self_critique(draft, research, request.keyword)

            progress.publish("finalize", "Metadata, references and schema")
            result = await self.finalizer.finalize(
                draft, research, request, title=title, internal_links=links, optimization_outcome=outcome,
            )
            progress.publish(
                "done",
                f"Generated {result.metrics.word_count} words in {time.monotonic() - started:.1f}s "
                f"(quality {result.quality_score.overall})",
            )
            return result
        finally:
            progress.close()

    async def _generate_main_content(self, request: GenerationRequest, title: str, research: ResearchBundle) -> Draft:
        target = request.target_word_count
        try:
            raw = await with_timeout(
                self.generator.generate(
                    self._content_prompt(request, title, research),
                    system_prompt=WRITER_SYSTEM_PROMPT,
                    temperature=0.7,
                    max_tokens=min(16000, max(4096, int(target * 2))),
                ),
                generation_timeout(target, self.settings),
                "content generation",
            )
        except ProviderError as e:
            raise ContentGenerationError("content generation", str(e)) from e

        draft = Draft.from_html(clean_generation_output(raw))
        if draft.word_count < MIN_DRAFT_WORDS:
            raise ContentGenerationError(
                "content generation", f"generator returned a near-empty draft ({draft.word_count} words)"
            )
        log.info(f"Main draft: {draft.word_count} words", extra={"phase": "generation", "keyword": request.keyword})
        return draft

    def _content_prompt(self, request: GenerationRequest, title: str, research: ResearchBundle) -> str:
        serp = research.serp
        sections = [
            f'Write a {request.content_type} article titled "{title}" targeting the keyword "{request.keyword}".',
            f"Length: at least {request.target_word_count} words. Search intent: {serp.user_intent}.",
        ]
        if serp.recommended_headings:
            sections.append("Cover these sections:\n" + "\n".join(f"- {h}" for h in serp.recommended_headings))
        if serp.content_gaps:
            sections.append("Answer questions competitors skip:\n" + "\n".join(f"- {q}" for q in serp.content_gaps[:8]))
        if serp.semantic_entities:
            sections.append("Related topics to mention: " + ", ".join(serp.semantic_entities[:15]))
        if research.query is not None:
            analysis = research.query.analysis
            terms = ranked_terms(analysis)[:40]
            if terms:
                sections.append("Use each of these terms naturally: " + ", ".join(terms))
            if analysis.entity_names:
                sections.append("Mention these entities with context: " + ", ".join(analysis.entity_names[:20]))
            if analysis.heading_texts:
                sections.append("Use these as H2/H3 headings: " + "; ".join(analysis.heading_texts[:10]))
        if research.references:
            sections.append(
                "Cite where relevant:\n" + "\n".join(f"- {r.title} ({r.url})" for r in research.references[:8])
            )
        sections.append("Include a FAQ section (h2 'Frequently Asked Questions', h3 questions) and end with a conclusion.")
        return "\n\n".join(sections)

    # ---- Post-processing phases (each isolated) ----

    def _enhance(self, draft: Draft, request: GenerationRequest, research: ResearchBundle) -> tuple[Draft, list[InternalLink]]:
        try:
            html, replaced = remove_ai_phrases(draft.html)
            if replaced:
                log.info(f"Removed {replaced} stock AI phrase(s)")
                draft = draft.replace(html)
        except Exception as e:
            log.warning(f"AI phrase cleanup skipped: {e}")

        if request.include_videos and research.videos and "youtube.com/embed" not in draft.html:
            try:
                draft = draft.replace(insert_before_conclusion(draft.html, build_video_section(research.videos)))
            except Exception as e:
                log.warning(f"Video section skipped: {e}")

        links = []
        if request.inject_links and self.link_engine.site_pages:
            try:
                candidates = self.link_engine.generate_link_opportunities(draft.html)
                html, links = self.link_engine.inject_links(draft.html, candidates)
                if links:
                    draft = draft.replace(html)
            except Exception as e:
                log.warning(f"Internal linking skipped: {e}")
                links = []
        return draft, links

    async def _optimize(self, draft: Draft, research: ResearchBundle, title: str) -> tuple[Draft, str]:
        try:
            optimized = await self.optimizer.optimize_coverage(draft, research.query, title)
        except Exception as e:
            log.warning(f"Coverage optimization skipped: {e}")
            return draft, OptimizationOutcome.SKIPPED
        state = self.optimizer.last_state
        return optimized, state.outcome if state else OptimizationOutcome.SKIPPED

    async def _self_critique(self, draft: Draft, research: ResearchBundle, keyword: str) -> Draft:
        if research.query is not None:
            analysis = research.query.analysis
            terms, entities, headings = analysis.required_terms, analysis.entity_names, analysis.heading_texts
        else:
            terms, entities, headings = [keyword], research.serp.semantic_entities[:10], []
        try:
            return await self.critic.self_critique(draft, terms, entities, headings, keyword)
        except Exception as e:
            log.warning(f"Self-critique skipped: {e}")
            return draft

    # ---- Planning ----

    async def generate_content_plan(self, broad_topic: str) -> ContentPlan:
        """Pillar keyword plus 8-12 cluster articles; a fixed plan if the generator output is unusable."""
        prompt = f"""Create a content cluster plan for the topic "{broad_topic}".

Return ONLY JSON:
{{"pillarKeyword": "...", "pillarTitle": "...",
  "clusters": [{{"keyword": "2-4 words", "title": "...", "type": "{'|'.join(CONTENT_TYPES)}", "priority": "high|medium|low"}}]}}

Include 8-12 clusters that support the pillar."""
        try:
            raw = await with_timeout(
                self.generator.generate(prompt, system_prompt="You are an SEO strategist.", temperature=0.7, max_tokens=2000),
                self.settings.generation_timeout,
                "content plan",
            )
            text = raw[raw.index("{"):raw.rindex("}") + 1]
            data = json.loads(text)
            clusters = [
                ClusterPlan(
                    keyword=c["keyword"],
                    title=c.get("title") or c["keyword"].title(),
                    type=c.get("type") if c.get("type") in CONTENT_TYPES else "guide",
                    priority=c.get("priority") if c.get("priority") in ("high", "medium", "low") else "medium",
                )
                for c in data.get("clusters", [])
                if isinstance(c, dict) and c.get("keyword")
            ]
            if not clusters:
                raise ValueError("plan has no clusters")
        except (ProviderError, ValueError, KeyError) as e:
            log.warning(f"Content plan generation failed, using fallback plan: {e}")
            return fallback_content_plan(broad_topic)

        return ContentPlan(
            pillar_topic=broad_topic,
            pillar_keyword=data.get("pillarKeyword") or broad_topic,
            pillar_title=data.get("pillarTitle") or "",
            clusters=clusters,
        )
