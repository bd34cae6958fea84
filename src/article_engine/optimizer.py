"""Term-Coverage Optimization Loop: score, find gaps, edit, repeat.

Terminal states:
    PASSED         score reached the target
    EXHAUSTED      attempt budget used up
    STAGNANT       score failed to improve for N consecutive rounds
    SCORER_FAILED  scorer call failed; a local term-presence score is used instead

The loop returns the best-scoring draft it has seen.
"""

from __future__ import annotations

import logging

from article_engine.config import PipelineSettings
from article_engine.draft_editor import DraftEditor, find_gaps
from article_engine.errors import ProviderError
from article_engine.models import (
    CoverageAnalysis,
    Draft,
    OptimizationOutcome,
    OptimizationState,
    QueryBundle,
)
from article_engine.utils.async_tools import with_timeout

log = logging.getLogger(__name__)


def _coverage(text: str, needles: list[str], prefix: int | None = None) -> tuple[int, list[str]]:
    matched, missing = 0, []
    for needle in needles:
        probe = (needle or "").lower().strip()
        if prefix:
            probe = probe[:prefix]
        if not probe:
            continue
        if probe in text:
            matched += 1
        else:
            missing.append(needle)
    total = matched + len(missing)
    return (round(matched / total * 100) if total else 100), missing


def local_coverage(html: str, analysis: CoverageAnalysis) -> float:
    """Approximate scorer: weighted term-presence ratio (basic 50%, extended 20%, entities 15%, headings 15%)."""
    if not html:
        return 0
    text = html.lower()
    basic, _ = _coverage(text, [t.term for t in analysis.terms])
    extended, _ = _coverage(text, [t.term for t in analysis.terms_extended])
    entities, _ = _coverage(text, analysis.entity_names)
    headings, _ = _coverage(text, analysis.heading_texts, prefix=25)
    return min(100, round(basic * 0.5 + extended * 0.2 + entities * 0.15 + headings * 0.15))


def ranked_terms(analysis: CoverageAnalysis) -> list[str]:
    """Required/recommended terms by weight, then extended terms."""
    basic = sorted(
        (t for t in analysis.terms if t.type in ("required", "recommended")),
        key=lambda t: t.weight,
        reverse=True,
    )
    return [t.term for t in basic] + [t.term for t in analysis.terms_extended]


class CoverageOptimizer:
    """Drives the scorer/editor loop for one draft."""

    def __init__(self, scorer, generator, settings: PipelineSettings | None = None, editor: DraftEditor | None = None):
        self.scorer = scorer
        self.settings = settings or PipelineSettings()
        self.editor = editor or DraftEditor(generator, self.settings)
        self.last_state: OptimizationState | None = None

    async def optimize_coverage(self, draft: Draft, query: QueryBundle, title: str = "") -> Draft:
        s = self.settings
        analysis = query.analysis
        state = OptimizationState()
        self.last_state = state
        current = draft

        for attempt in range(1, s.max_optimization_attempts + 1):
            try:
                score = await with_timeout(
                    self.scorer.score_content(query.query_id, current.html, title),
                    s.network_timeout,
                    "score content",
                )
            except ProviderError as e:
                score = local_coverage(current.html, analysis)
                log.warning(f"Scorer failed ({e}); local coverage estimate {score}%, stopping optimization")
                state.record(score, current)
                state.used_local_score = True
                state.outcome = OptimizationOutcome.SCORER_FAILED
                break

            state.record(score, current)
            log.info(
                f"Coverage attempt {attempt}/{s.max_optimization_attempts}: score {score}%",
                extra={"phase": "optimization", "attempt": attempt, "score": score},
            )

            if score >= s.target_score:
                state.outcome = OptimizationOutcome.PASSED
                break
            if attempt == s.max_optimization_attempts:
                state.outcome = OptimizationOutcome.EXHAUSTED
                break
            if state.stagnant_rounds >= s.stagnation_rounds:
                state.outcome = OptimizationOutcome.STAGNANT
                break

            gaps = find_gaps(current.html, ranked_terms(analysis), analysis.entity_names, analysis.heading_texts)
            if gaps.is_empty:
                log.info("Every term is already present; nothing left to target")
                state.outcome = OptimizationOutcome.STAGNANT
                break
            current = await self.editor.improve(current, gaps, query.keyword)

        best = state.best_draft or current
        query.coverage_score = state.best_score if state.best_score >= 0 else None
        log.info(f"Optimization finished: {state.outcome} after {state.attempts} score(s), best {state.best_score}%")
        return best
