"""Metadata writer: article title, SEO title, meta description and slug."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass

from slugify import slugify

from article_engine.config import PipelineSettings
from article_engine.errors import ProviderError
from article_engine.html_tools import parse, strip_wrappers
from article_engine.models import GenerationRequest, SERPAnalysis
from article_engine.utils.async_tools import with_timeout

log = logging.getLogger(__name__)

METADATA_SYSTEM_PROMPT = (
    "You write search metadata. Respond with a single JSON object and nothing else."
)

TITLE_TEMPLATES = {
    "guide": "{kw}: The Complete Guide",
    "how-to": "How to Get Started With {kw}",
    "comparison": "{kw}: Options Compared",
    "listicle": "{kw}: Tips That Actually Work",
    "deep-dive": "{kw}: An In-Depth Look",
}


@dataclass
class ArticleMetadata:
    seo_title: str
    meta_description: str
    slug: str


def truncate_at_word(text: str, max_chars: int) -> str:
    """Cut ``text`` to at most ``max_chars`` on a word boundary."""
    text = re.sub(r"\s+", " ", (text or "")).strip()
    if len(text) <= max_chars:
        return text
    cut = text[:max_chars + 1].rsplit(" ", 1)[0]
    if len(cut) < max_chars * 0.6:
        cut = text[:max_chars]
    return cut[:max_chars].rstrip(" -–:,;.")


def make_slug(text: str, max_length: int = 60) -> str:
    return slugify(text or "", max_length=max_length, word_boundary=True) or "article"


def _title_case(keyword: str) -> str:
    return " ".join(w if w.isupper() else w.capitalize() for w in keyword.split())


class MetadataWriter:
    """Asks the generator for titles and metadata and enforces length limits on whatever comes back."""

    def __init__(self, generator, settings: PipelineSettings | None = None):
        self.generator = generator
        self.settings = settings or PipelineSettings()

    def fallback_title(self, request: GenerationRequest) -> str:
        template = TITLE_TEMPLATES.get(request.content_type, TITLE_TEMPLATES["guide"])
        return self.fit_title(template.format(kw=_title_case(request.keyword)))

    def fit_title(self, title: str) -> str:
        title = re.sub(r"^(?:title|seo title)\s*:\s*", "", strip_wrappers(title).strip(), flags=re.I)
        title = title.strip("\"'").strip()
        return truncate_at_word(title, self.settings.title_max_chars)

    async def generate_title(self, request: GenerationRequest, serp: SERPAnalysis | None = None) -> str:
        """Title for the article, or a keyword template when the generator fails."""
        if request.title:
            return request.title.strip()

        competitors = ""
        if serp and serp.top_competitors:
            competitors = "\nCompeting titles:\n" + "\n".join(f"- {c.title}" for c in serp.top_competitors[:5])
        prompt = (
            f'Write one compelling article title for the keyword "{request.keyword}" '
            f"({request.content_type}). Include the keyword, stay under "
            f"{self.settings.title_max_chars} characters, output only the title.{competitors}"
        )
        try:
            raw = await with_timeout(
                self.generator.generate(prompt, system_prompt="You write headlines.", temperature=0.7, max_tokens=100),
                self.settings.network_timeout * 2,
                "title generation",
            )
        except ProviderError as e:
            log.warning(f"Title generation failed, using template: {e}")
            return self.fallback_title(request)

        title = self.fit_title(raw.splitlines()[0] if raw and raw.strip() else "")
        if not title:
            return self.fallback_title(request)
        return title

    # ---- Meta description ----

    def fit_description(self, description: str, title: str, html: str) -> str:
        """Clamp a description into the configured range, padding from the article if short."""
        lo, hi = self.settings.meta_min_chars, self.settings.meta_max_chars
        text = re.sub(r"\s+", " ", (description or "")).strip().strip("\"'")
        if not text:
            first = parse(html).find("p")
            text = first.get_text(" ", strip=True) if first else ""
        if not text:
            text = f"{title}. Everything you need to know, explained step by step with practical examples."

        if len(text) < lo:
            for p in parse(html).find_all("p"):
                sentence = p.get_text(" ", strip=True)
                if not sentence or sentence in text:
                    continue
                text = f"{text.rstrip('.')}. {sentence}"
                if len(text) >= lo:
                    break

        if len(text) > hi:
            cut = truncate_at_word(text, hi - 1).rstrip(".")
            if len(cut) + 1 < lo:
                # No word boundary inside the range
                cut = text[:hi - 1].rstrip(" .")
            text = cut + "."
        return text

    async def write_metadata(self, title: str, keyword: str, html: str) -> ArticleMetadata:
        s = self.settings
        excerpt = parse(html).get_text(" ", strip=True)[:1500]
        prompt = f"""Article title: {title}
Primary keyword: {keyword}

Opening of the article:
{excerpt}

Return JSON: {{"seo_title": "<= {s.title_max_chars} chars, includes the keyword",
"meta_description": "{s.meta_min_chars}-{s.meta_max_chars} chars, includes the keyword"}}"""

        seo_title, description = title, ""
        try:
            raw = await with_timeout(
                self.generator.generate(prompt, system_prompt=METADATA_SYSTEM_PROMPT, temperature=0.4, max_tokens=400),
                s.network_timeout * 2,
                "metadata generation",
            )
            data = json.loads(self._json_block(raw))
            seo_title = data.get("seo_title") or title
            description = data.get("meta_description") or ""
        except ProviderError as e:
            log.warning(f"Metadata generation failed, deriving from the draft: {e}")
        except (json.JSONDecodeError, AttributeError) as e:
            log.warning(f"Metadata response was not valid JSON, deriving from the draft: {e}")

        seo_title = self.fit_title(seo_title) or self.fit_title(title)
        return ArticleMetadata(
            seo_title=seo_title,
            meta_description=self.fit_description(description, seo_title, html),
            slug=make_slug(keyword or title),
        )

    @staticmethod
    def _json_block(raw: str) -> str:
        text = strip_wrappers(raw or "")
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            raise json.JSONDecodeError("no JSON object", text, 0)
        return text[start:end + 1]
