"""Data model shared by every phase of the generation pipeline."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from article_engine.html_tools import count_words


CONTENT_TYPES = ("guide", "how-to", "comparison", "listicle", "deep-dive")


@dataclass(frozen=True)
class GenerationRequest:
    keyword: str
    title: str = ""
    target_word_count: int = 0
    content_type: str = "guide"
    include_videos: bool = True
    include_references: bool = True
    inject_links: bool = True
    generate_schema: bool = True
    on_progress: Callable[[str], None] | None = None

    def __post_init__(self):
        if not self.keyword or not self.keyword.strip():
            raise ValueError("GenerationRequest.keyword is required")
        if self.content_type not in CONTENT_TYPES:
            raise ValueError(f"Unknown content type: {self.content_type}")


# ---------------------------------------------------------------------------
# Research
# ---------------------------------------------------------------------------

@dataclass
class Competitor:
    url: str
    title: str
    snippet: str = ""
    position: int = 0


@dataclass
class SERPAnalysis:
    keyword: str
    recommended_word_count: int = 2500
    recommended_headings: list[str] = field(default_factory=list)
    content_gaps: list[str] = field(default_factory=list)
    semantic_entities: list[str] = field(default_factory=list)
    top_competitors: list[Competitor] = field(default_factory=list)
    user_intent: str = "informational"
    is_default: bool = False


@dataclass
class Video:
    id: str
    title: str
    channel_title: str = ""
    url: str = ""
    duration: str = ""


@dataclass
class Reference:
    title: str
    url: str
    snippet: str = ""
    source: str = ""
    type: str = "article"
    authority: int = 0


# ---------------------------------------------------------------------------
# Coverage scorer
# ---------------------------------------------------------------------------

@dataclass
class TermData:
    term: str
    type: str = "recommended"
    frequency: int = 1
    weight: float = 50
    usage_pc: float = 50


@dataclass
class EntityData:
    entity: str
    usage_pc: float = 50
    frequency: int = 1


@dataclass
class HeadingData:
    text: str
    usage_pc: float = 50


@dataclass
class CoverageAnalysis:
    query_id: str
    status: str = "ready"
    keyword: str = ""
    content_score: float = 0
    recommended_length: int = 2500
    terms: list[TermData] = field(default_factory=list)
    terms_extended: list[TermData] = field(default_factory=list)
    entities: list[EntityData] = field(default_factory=list)
    headings_h2: list[HeadingData] = field(default_factory=list)
    headings_h3: list[HeadingData] = field(default_factory=list)

    @property
    def has_terms(self) -> bool:
        return bool(self.terms or self.terms_extended or self.headings_h2)

    @property
    def required_terms(self) -> list[str]:
        return [t.term for t in self.terms if t.type in ("required", "recommended")]

    @property
    def entity_names(self) -> list[str]:
        return [e.entity for e in self.entities]

    @property
    def heading_texts(self) -> list[str]:
        return [h.text for h in self.headings_h2]

    def summary(self) -> str:
        parts = []
        if self.terms:
            parts.append(f"{len(self.terms)} basic keywords")
        if self.terms_extended:
            parts.append(f"{len(self.terms_extended)} extended keywords")
        if self.entities:
            parts.append(f"{len(self.entities)} entities")
        if self.headings_h2:
            parts.append(f"{len(self.headings_h2)} H2 headings")
        if self.headings_h3:
            parts.append(f"{len(self.headings_h3)} H3 headings")
        return ", ".join(parts) or "Analysis ready"


@dataclass
class QueryBundle:
    query_id: str
    keyword: str
    analysis: CoverageAnalysis
    coverage_score: float | None = None


@dataclass
class CachedQuery:
    query_id: str
    keyword: str
    status: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class ResearchBundle:
    serp: SERPAnalysis
    videos: list[Video] = field(default_factory=list)
    references: list[Reference] = field(default_factory=list)
    query: QueryBundle | None = None


# ---------------------------------------------------------------------------
# Drafts and optimization
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Draft:
    html: str
    word_count: int = 0

    @classmethod
    def from_html(cls, html: str) -> "Draft":
        return cls(html=html, word_count=count_words(html))

    def replace(self, html: str) -> "Draft":
        """Return a new Draft for ``html``; the current one is left untouched."""
        return Draft.from_html(html)

    @property
    def char_count(self) -> int:
        return len(self.html)


class OptimizationOutcome:
    PASSED = "passed"
    EXHAUSTED = "exhausted"
    STAGNANT = "stagnant"
    SCORER_FAILED = "scorer_failed"
    SKIPPED = "skipped"


@dataclass
class OptimizationState:
    current_score: float = 0
    previous_score: float | None = None
    best_score: float = -1
    best_draft: Draft | None = None
    stagnant_rounds: int = 0
    attempts: int = 0
    outcome: str = ""
    used_local_score: bool = False

    def record(self, score: float, draft: Draft):
        """Register a new measurement and update stagnation bookkeeping."""
        self.previous_score = self.current_score if self.attempts else None
        self.current_score = score
        self.attempts += 1
        if self.previous_score is not None and score <= self.previous_score:
            self.stagnant_rounds += 1
        else:
            self.stagnant_rounds = 0
        if score >= self.best_score:
            self.best_score = score
            self.best_draft = draft


# ---------------------------------------------------------------------------
# Final artifact
# ---------------------------------------------------------------------------

@dataclass
class ContentMetrics:
    word_count: int = 0
    character_count: int = 0
    sentence_count: int = 0
    paragraph_count: int = 0
    heading_count: int = 0
    image_count: int = 0
    table_count: int = 0
    list_count: int = 0
    internal_link_count: int = 0
    external_link_count: int = 0
    avg_sentence_length: float = 0
    reading_time_minutes: int = 0


@dataclass
class QualityScore:
    overall: int = 0
    structure: int = 0
    seo: int = 0
    readability: int = 0
    passes: bool = False
    failures: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class InternalLink:
    anchor: str
    target_url: str
    context: str = ""
    relevance: float = 0


@dataclass(frozen=True)
class GeneratedContent:
    title: str
    seo_title: str
    slug: str
    meta_description: str
    content: str
    primary_keyword: str
    metrics: ContentMetrics
    quality_score: QualityScore
    coverage_score: float | None
    optimization_outcome: str
    secondary_keywords: list[str] = field(default_factory=list)
    references: list[Reference] = field(default_factory=list)
    internal_links: list[InternalLink] = field(default_factory=list)
    schema: dict = field(default_factory=dict)
    model: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class ClusterPlan:
    keyword: str
    title: str
    type: str = "guide"
    priority: str = "medium"


@dataclass
class ContentPlan:
    pillar_topic: str
    pillar_keyword: str
    pillar_title: str = ""
    clusters: list[ClusterPlan] = field(default_factory=list)
    is_fallback: bool = False

    @property
    def total_estimated_words(self) -> int:
        return (len(self.clusters) + 1) * 2500
