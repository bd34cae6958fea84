"""Finalizer: cleanup, references, metadata, metrics and schema for the finished draft."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from article_engine.completion import minimum_word_count
from article_engine.config import PipelineSettings, SiteProfile
from article_engine.html_tools import (
    convert_markdown_artifacts,
    enforce_visual_breaks,
    extract_faq_items,
    repair_heading_hierarchy,
)
from article_engine.metadata import ArticleMetadata, MetadataWriter, make_slug
from article_engine.models import (
    Draft,
    GeneratedContent,
    GenerationRequest,
    InternalLink,
    OptimizationOutcome,
    QualityScore,
    ResearchBundle,
)
from article_engine.quality import analyze_content, quality_check
from article_engine.references import rank_references, render_references_section
from article_engine.schema_builder import SchemaBuilder

log = logging.getLogger(__name__)


class Finalizer:
    """Turns the last good draft into a GeneratedContent.

    Every step is optional: a failure logs a warning and the draft from the
    previous step is kept.
    """

    def __init__(
        self,
        generator,
        settings: PipelineSettings | None = None,
        site: SiteProfile | None = None,
        schema_builder: SchemaBuilder | None = None,
        metadata_writer: MetadataWriter | None = None,
        model: str = "",
    ):
        self.settings = settings or PipelineSettings()
        self.site = site or SiteProfile()
        self.schema_builder = schema_builder or SchemaBuilder(site=self.site)
        self.metadata_writer = metadata_writer or MetadataWriter(generator, self.settings)
        self.model = model

    def clean_markup(self, draft: Draft) -> Draft:
        html = draft.html
        try:
            html, converted = convert_markdown_artifacts(html)
            if converted:
                log.info(f"Converted {converted} markdown fragment(s) to HTML")
        except Exception as e:
            log.warning(f"Markdown cleanup skipped: {e}")
        try:
            html, releveled = repair_heading_hierarchy(html)
            if releveled:
                log.info(f"Re-leveled {releveled} heading(s)")
        except Exception as e:
            log.warning(f"Heading repair skipped: {e}")
        try:
            html, violations = enforce_visual_breaks(
                html, self.settings.visual_break_max_words, self.settings.visual_break_html,
            )
            if violations:
                log.info(f"Broke up {len(violations)} wall(s) of text over {self.settings.visual_break_max_words} words")
        except Exception as e:
            log.warning(f"Visual break pass skipped: {e}")
        return draft.replace(html) if html != draft.html else draft

    async def finalize(
        self,
        draft: Draft,
        research: ResearchBundle,
        request: GenerationRequest,
        title: str = "",
        internal_links: list[InternalLink] | None = None,
        optimization_outcome: str = OptimizationOutcome.SKIPPED,
    ) -> GeneratedContent:
        s = self.settings
        title = title or request.title or self.metadata_writer.fallback_title(request)
        draft = self.clean_markup(draft)

        references = []
        if request.include_references:
            try:
                references = rank_references(research.references, s.max_references, s.max_references_per_domain)
                if references and 'class="references"' not in draft.html:
                    draft = draft.replace(f"{draft.html.rstrip()}\n{render_references_section(references)}")
            except Exception as e:
                log.warning(f"Reference ranking skipped: {e}")

        try:
            metadata = await self.metadata_writer.write_metadata(title, request.keyword, draft.html)
        except Exception as e:
            log.warning(f"Metadata generation skipped: {e}")
            metadata = ArticleMetadata(
                seo_title=self.metadata_writer.fit_title(title),
                meta_description=self.metadata_writer.fit_description("", title, draft.html),
                slug=make_slug(request.keyword),
            )

        metrics = analyze_content(draft.html, self.site.organization_url)
        try:
            quality = quality_check(
                draft.html,
                request.keyword,
                metadata.seo_title,
                metadata.meta_description,
                metrics=metrics,
                min_words=minimum_word_count(request.target_word_count, s),
            )
        except Exception as e:
            log.warning(f"Quality check skipped: {e}")
            quality = QualityScore(warnings=[f"Quality check failed: {e}"])

        query = research.query
        secondary = (query.analysis.required_terms if query else research.serp.semantic_entities)[:10]
        generated_at = datetime.now(timezone.utc)

        schema = {}
        if request.generate_schema:
            try:
                post_url = f"{self.site.organization_url}/{metadata.slug}/" if self.site.organization_url else ""
                schema = self.schema_builder.build_full_graph({
                    "headline": title,
                    "meta_description": metadata.meta_description,
                    "publish_date_iso": generated_at.isoformat(timespec="seconds"),
                    "word_count": metrics.word_count,
                    "keywords": [request.keyword, *secondary[:5]],
                    "content_type": request.content_type,
                    "post_url": post_url,
                    "citations": references,
                    "faq_items": extract_faq_items(draft.html),
                })
                validation = self.schema_builder.validate_schema(schema)
                for error in validation.errors:
                    log.warning(f"Schema: {error}")
            except Exception as e:
                log.warning(f"Schema generation skipped: {e}")
                schema = {}

        return GeneratedContent(
            title=title,
            seo_title=metadata.seo_title,
            slug=metadata.slug,
            meta_description=metadata.meta_description,
            content=draft.html,
            primary_keyword=request.keyword,
            metrics=metrics,
            quality_score=quality,
            coverage_score=query.coverage_score if query else None,
            optimization_outcome=optimization_outcome,
            secondary_keywords=list(secondary),
            references=references,
            internal_links=list(internal_links or []),
            schema=schema,
            model=self.model,
            generated_at=generated_at,
        )
