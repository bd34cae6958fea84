"""Targeted draft edits: patch mode (append sections) and rewrite mode (full revision)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from article_engine.config import PipelineSettings
from article_engine.errors import ProviderError
from article_engine.html_tools import clean_generation_output, count_words, insert_before_conclusion
from article_engine.models import Draft
from article_engine.utils.async_tools import generation_timeout, with_timeout

log = logging.getLogger(__name__)

EDITOR_SYSTEM_PROMPT = (
    "You are a senior SEO editor. You write clean HTML (h2, h3, p, ul, ol, table) "
    "in a direct, practical voice, and you never add commentary outside the HTML."
)

PATCH = "patch"
REWRITE = "rewrite"


@dataclass
class CoverageGaps:
    terms: list[str] = field(default_factory=list)
    entities: list[str] = field(default_factory=list)
    headings: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.terms or self.entities or self.headings)

    @property
    def total(self) -> int:
        return len(self.terms) + len(self.entities) + len(self.headings)

    def describe(self) -> str:
        return f"{len(self.terms)} terms, {len(self.entities)} entities, {len(self.headings)} headings"


def find_gaps(html: str, terms=(), entities=(), headings=(), heading_prefix_chars: int = 25) -> CoverageGaps:
    """Case-insensitive literal presence check of each term, entity and heading prefix."""
    text = (html or "").lower()

    def missing(items, prefix=None):
        seen, out = set(), []
        for item in items:
            needle = (item or "").strip().lower()
            if prefix:
                needle = needle[:prefix]
            if not needle or needle in seen:
                continue
            seen.add(needle)
            if needle not in text:
                out.append(item.strip())
        return out

    return CoverageGaps(
        terms=missing(terms),
        entities=missing(entities),
        headings=missing(headings, prefix=heading_prefix_chars),
    )


class DraftEditor:
    """Asks the generator for coverage edits and accepts them only when they are safe."""

    def __init__(self, generator, settings: PipelineSettings | None = None):
        self.generator = generator
        self.settings = settings or PipelineSettings()

    def mode_for(self, draft: Draft) -> str:
        """Large drafts are patched; reproducing them in full risks truncation."""
        if draft.char_count > self.settings.patch_mode_threshold_chars:
            return PATCH
        return REWRITE

    async def improve(self, draft: Draft, gaps: CoverageGaps, keyword: str) -> Draft:
        if gaps.is_empty:
            return draft
        mode = self.mode_for(draft)
        log.info(f"Improving coverage in {mode} mode ({gaps.describe()} missing)")
        if mode == PATCH:
            return await self.apply_patch(draft, gaps, keyword)
        return await self.apply_rewrite(draft, gaps, keyword)

    async def apply_patch(self, draft: Draft, gaps: CoverageGaps, keyword: str) -> Draft:
        """Append a few new sections covering the top missing items before the conclusion."""
        terms = (gaps.terms + gaps.entities)[:self.settings.patch_top_terms]
        headings = gaps.headings[:self.settings.patch_max_headings]
        sections = max(1, min(3, len(headings) or 2))

        prompt = f"""Write {sections} NEW self-contained section(s) for an article about "{keyword}".

Each section: one <h2> or <h3> heading followed by 2-3 substantial paragraphs.
{self._bullet_block("Use these headings (verbatim or very close)", headings)}
{self._bullet_block("Work these terms in naturally, each at least once", terms)}
Do not write an introduction or a conclusion. Output ONLY the HTML for the new sections."""

        try:
            raw = await with_timeout(
                self.generator.generate(prompt, system_prompt=EDITOR_SYSTEM_PROMPT, temperature=0.6, max_tokens=3000),
                generation_timeout(250 * sections, self.settings),
                "coverage patch",
            )
        except ProviderError as e:
            log.warning(f"Patch generation failed, keeping draft: {e}")
            return draft

        fragment = clean_generation_output(raw)
        if count_words(fragment) < 20:
            log.warning("Patch came back empty or trivial, keeping draft")
            return draft

        patched = draft.replace(insert_before_conclusion(draft.html, fragment))
        log.info(f"Patched draft: +{patched.word_count - draft.word_count} words")
        return patched

    async def apply_rewrite(self, draft: Draft, gaps: CoverageGaps, keyword: str) -> Draft:
        """Request a full revision; reject it if it came back noticeably shorter."""
        prompt = f"""Revise the article below about "{keyword}" so it covers the missing items.

{self._bullet_block("Missing terms to include naturally", gaps.terms)}
{self._bullet_block("Missing entities to mention with context", gaps.entities)}
{self._bullet_block("Missing headings to add as <h2> or <h3>", gaps.headings)}
Keep every existing section, link, table and embed. Do not shorten anything.
Return the COMPLETE revised article as HTML and nothing else.

ARTICLE:
{draft.html}"""

        max_tokens = min(16000, len(draft.html) // 3 + 2000)
        try:
            raw = await with_timeout(
                self.generator.generate(prompt, system_prompt=EDITOR_SYSTEM_PROMPT, temperature=0.5, max_tokens=max_tokens),
                generation_timeout(draft.word_count, self.settings),
                "coverage rewrite",
            )
        except ProviderError as e:
            log.warning(f"Rewrite failed, keeping draft: {e}")
            return draft

        revised = clean_generation_output(raw)
        min_length = self.settings.rewrite_min_length_ratio * len(draft.html)
        if len(revised) < min_length:
            log.warning(
                f"Rewrite rejected: {len(revised)} chars vs {len(draft.html)} original "
                f"(minimum {int(min_length)})"
            )
            return draft
        return draft.replace(revised)

    @staticmethod
    def _bullet_block(label: str, items: list[str]) -> str:
        if not items:
            return ""
        lines = "\n".join(f"- {item}" for item in items)
        return f"{label}:\n{lines}\n"
