"""Long-Form Completion Loop: keep asking the generator to continue until the draft is long enough."""

from __future__ import annotations

import logging

from article_engine.config import PipelineSettings
from article_engine.errors import ProviderError
from article_engine.html_tools import (
    clean_generation_output,
    count_words,
    has_incomplete_marker,
    normalize_text,
    plain_text,
    strip_continuation_artifacts,
)
from article_engine.models import Draft, GenerationRequest
from article_engine.utils.async_tools import generation_timeout, with_timeout

log = logging.getLogger(__name__)

CONTINUATION_SYSTEM_PROMPT = (
    "You are continuing a long-form HTML article that was cut off. "
    "Write only the missing remainder as clean HTML (h2, h3, p, ul, ol, table). "
    "Never repeat earlier sections and never ask whether to continue."
)


def minimum_word_count(target_word_count: int, settings: PipelineSettings) -> int:
    """Smallest acceptable length for a draft requested at ``target_word_count`` words."""
    base = max(settings.min_word_floor, target_word_count or 0)
    if (target_word_count or 0) >= settings.long_target_threshold:
        ratio = settings.completeness_ratio_long
    else:
        ratio = settings.completeness_ratio_default
    return int(base * ratio)


def continuation_budget(target_word_count: int, settings: PipelineSettings) -> int:
    target = target_word_count or 0
    if target < settings.long_target_threshold:
        return settings.continuation_budget_short
    if target < settings.very_long_target_threshold:
        return settings.continuation_budget_medium
    return settings.continuation_budget_long


class LongFormCompleter:
    """Extends a truncated draft chunk by chunk."""

    def __init__(self, generator, settings: PipelineSettings | None = None):
        self.generator = generator
        self.settings = settings or PipelineSettings()
        self.last_attempts = 0

    async def complete_draft(self, draft: Draft, request: GenerationRequest, min_words: int | None = None) -> Draft:
        """Return ``draft`` extended until it reaches ``min_words`` with no truncation marker.

        The returned draft never has fewer words than the input.
        """
        target = request.target_word_count or 0
        if min_words is None:
            min_words = minimum_word_count(target, self.settings)
        budget = continuation_budget(target, self.settings)

        current = draft
        attempts = 0
        while attempts < budget and self._needs_more(current, min_words):
            attempts += 1
            log.info(
                f"Draft at {current.word_count}/{min_words} words, requesting continuation {attempts}/{budget}",
                extra={"phase": "completion", "attempt": attempts},
            )

            try:
                raw = await with_timeout(
                    self.generator.generate(
                        self._build_prompt(request, current, min_words),
                        system_prompt=CONTINUATION_SYSTEM_PROMPT,
                        temperature=0.7,
                        max_tokens=8192,
                    ),
                    generation_timeout(min_words - current.word_count, self.settings),
                    "continuation",
                )
            except ProviderError as e:
                log.warning(f"Continuation request failed, keeping current draft: {e}")
                break

            chunk = clean_generation_output(raw)
            if count_words(chunk) == 0:
                log.warning("Continuation came back empty, stopping")
                break
            if self._is_repetition(current.html, chunk):
                log.warning("Continuation repeats existing text, stopping to avoid a loop")
                break

            base = strip_continuation_artifacts(current.html)
            candidate = current.replace(f"{base.rstrip()}\n{chunk}")
            if candidate.word_count <= current.word_count:
                log.warning("Continuation did not add any words, stopping")
                break
            current = candidate

        self.last_attempts = attempts
        if current.word_count < min_words:
            log.warning(
                f"Draft still short after {attempts} continuation(s): "
                f"{current.word_count}/{min_words} words"
            )
        return current

    def _needs_more(self, draft: Draft, min_words: int) -> bool:
        return draft.word_count < min_words or has_incomplete_marker(draft.html)

    def _is_repetition(self, existing_html: str, chunk_html: str) -> bool:
        chunk_text = normalize_text(plain_text(chunk_html))
        probe = chunk_text[:self.settings.repetition_probe_chars]
        if not probe:
            return False
        window_size = max(self.settings.repetition_window_chars, len(chunk_text) + len(probe))
        window = normalize_text(plain_text(existing_html))[-window_size:]
        return probe in window

    def _build_prompt(self, request: GenerationRequest, draft: Draft, min_words: int) -> str:
        seed = draft.html[-self.settings.continuation_seed_chars:]
        remaining = max(300, min_words - draft.word_count)
        return f"""Continue this article about "{request.keyword}" from exactly where it stops.

The article currently has {draft.word_count} words and needs at least {remaining} more.
Finish any section that was cut off, then cover the remaining topics and end with a conclusion.

LAST PART OF THE ARTICLE:
{seed}

Output ONLY the continuation HTML. Do not repeat the text above."""
