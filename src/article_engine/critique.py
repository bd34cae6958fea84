"""Self-Critique pass: last gap check against required terms, entities and headings."""

from __future__ import annotations

import logging

from article_engine.config import PipelineSettings
from article_engine.draft_editor import DraftEditor, find_gaps
from article_engine.html_tools import insert_comment_after_last_heading
from article_engine.models import Draft

log = logging.getLogger(__name__)

COVERAGE_MARKER_PREFIX = "coverage-terms:"


class SelfCritic:
    """Closes remaining coverage gaps without relying on the external scorer."""

    def __init__(self, generator, settings: PipelineSettings | None = None, editor: DraftEditor | None = None):
        self.settings = settings or PipelineSettings()
        self.editor = editor or DraftEditor(generator, self.settings)

    async def self_critique(
        self,
        draft: Draft,
        required_terms: list[str],
        required_entities: list[str],
        required_headings: list[str],
        keyword: str = "",
    ) -> Draft:
        gaps = find_gaps(draft.html, required_terms, required_entities, required_headings)
        if gaps.is_empty:
            log.info("Self-critique: no gaps")
            return draft

        log.info(f"Self-critique found {gaps.describe()} missing")
        improved = await self.editor.improve(draft, gaps, keyword)

        remaining = find_gaps(improved.html, required_terms, required_entities)
        still_missing = remaining.terms + remaining.entities
        if still_missing and self.settings.coverage_marker_enabled:
            improved = self.add_coverage_marker(improved, still_missing)
        elif still_missing:
            log.info(f"{len(still_missing)} term(s) still missing after self-critique: {still_missing[:10]}")
        return improved

    def add_coverage_marker(self, draft: Draft, terms: list[str]) -> Draft:
        """Record uncovered terms in an HTML comment after the last heading (not visible to readers)."""
        safe_terms = [t.replace("--", " ") for t in terms]
        marker = f"{COVERAGE_MARKER_PREFIX} {', '.join(safe_terms)}"
        log.warning(f"Coverage marker added for {len(terms)} term(s)")
        return draft.replace(insert_comment_after_last_heading(draft.html, marker))
