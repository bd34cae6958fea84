"""Content metrics and the pre-publish quality check."""

from __future__ import annotations

import logging
import math
import re
from urllib.parse import urlsplit

from article_engine.html_tools import HEADING_RE, parse
from article_engine.models import ContentMetrics, QualityScore

log = logging.getLogger(__name__)

WORDS_PER_MINUTE = 238
_SENTENCE_RE = re.compile(r"[^.!?]+[.!?]+")


def analyze_content(html: str, site_url: str = "") -> ContentMetrics:
    soup = parse(html)
    text = re.sub(r"\s+", " ", soup.get_text(" ")).strip()
    words = len(text.split())
    sentences = len(_SENTENCE_RE.findall(text)) or (1 if words else 0)

    site_host = (urlsplit(site_url).hostname or "").removeprefix("www.")
    internal = external = 0
    for a in soup.find_all("a", href=True):
        href = a["href"]
        host = (urlsplit(href).hostname or "").removeprefix("www.")
        if href.startswith("/") or (site_host and host == site_host):
            internal += 1
        elif host:
            external += 1

    return ContentMetrics(
        word_count=words,
        character_count=len(text),
        sentence_count=sentences,
        paragraph_count=len(soup.find_all("p")),
        heading_count=len(soup.find_all(HEADING_RE)),
        image_count=len(soup.find_all("img")),
        table_count=len(soup.find_all("table")),
        list_count=len(soup.find_all(["ul", "ol"])),
        internal_link_count=internal,
        external_link_count=external,
        avg_sentence_length=round(words / sentences, 1) if sentences else 0,
        reading_time_minutes=max(1, math.ceil(words / WORDS_PER_MINUTE)) if words else 0,
    )


def _count_statistics(text: str) -> int:
    patterns = [
        r"\d+%",
        r"\$[\d,.]+[MBK]?",
        r"\d{1,3}(?:,\d{3})+",
        r"\d+x\b",
    ]
    return sum(len(re.findall(p, text)) for p in patterns)


def quality_check(
    html: str,
    keyword: str,
    seo_title: str = "",
    meta_description: str = "",
    metrics: ContentMetrics | None = None,
    min_words: int = 2000,
) -> QualityScore:
    """Score a finished draft on structure, SEO and readability.

    Each category starts at 100 and loses points per issue. Failures block
    ``passes``; warnings do not.
    """
    metrics = metrics or analyze_content(html)
    soup = parse(html)
    failures, warnings = [], []
    structure = seo = readability = 100

    # ---- Structure ----
    if metrics.word_count < min_words:
        failures.append(f"Only {metrics.word_count} words (minimum {min_words})")
        structure -= 30

    h2s = [h.get_text(" ", strip=True) for h in soup.find_all("h2")]
    if not h2s:
        failures.append("No H2 headings")
        structure -= 30
    elif len(h2s) < 4:
        warnings.append(f"Only {len(h2s)} H2 headings (target: 5-10 for scannability)")
        structure -= 10

    levels = [int(h.name[1]) for h in soup.find_all(HEADING_RE)]
    for prev, curr in zip(levels, levels[1:]):
        if curr > prev + 1:
            warnings.append(f"Heading level skip: H{prev} → H{curr}")
            structure -= 10
            break

    if metrics.list_count == 0 and metrics.table_count == 0:
        warnings.append("No lists or tables")
        structure -= 10

    # ---- SEO ----
    kw = (keyword or "").lower().strip()
    text = soup.get_text(" ")
    if kw:
        kw_count = text.lower().count(kw)
        if metrics.word_count:
            density = kw_count * len(kw.split()) / metrics.word_count * 100
            if density < 0.3:
                warnings.append(f"Focus keyword '{kw}' appears {kw_count}x (~{density:.1f}% density)")
                seo -= 10
            elif density > 2.5:
                warnings.append(f"Focus keyword '{kw}' may be over-used: {kw_count}x (~{density:.1f}% density)")
                seo -= 10

        placements_missing = []
        if kw not in " ".join(text.split()[:100]).lower():
            placements_missing.append("first 100 words")
        if not any(kw in h.lower() for h in h2s):
            placements_missing.append("H2 heading")
        if seo_title and kw not in seo_title.lower():
            placements_missing.append("SEO title")
        if meta_description and kw not in meta_description.lower():
            placements_missing.append("meta description")
        if placements_missing:
            warnings.append(f"Focus keyword missing from: {', '.join(placements_missing)}")
            seo -= 5 * len(placements_missing)

    if not seo_title:
        failures.append("Missing SEO title")
        seo -= 20
    elif len(seo_title) > 60:
        warnings.append(f"SEO title is {len(seo_title)} chars (max 60)")
        seo -= 10

    if not meta_description:
        failures.append("Missing meta description")
        seo -= 20
    elif not 150 <= len(meta_description) <= 160:
        warnings.append(f"Meta description is {len(meta_description)} chars (target 150-160)")
        seo -= 5

    if metrics.external_link_count == 0:
        warnings.append("No external authority links")
        seo -= 5

    # ---- Readability ----
    if metrics.avg_sentence_length > 25:
        warnings.append(f"Average sentence length {metrics.avg_sentence_length} words (target under 20)")
        readability -= 15
    if metrics.paragraph_count and metrics.word_count / metrics.paragraph_count > 120:
        warnings.append("Paragraphs are long; consider splitting")
        readability -= 10
    expected_stats = metrics.word_count // 250
    stat_count = _count_statistics(text)
    if stat_count < expected_stats:
        warnings.append(f"Only {stat_count} stats found (expected ~{expected_stats})")
        readability -= 10

    structure, seo, readability = (max(0, v) for v in (structure, seo, readability))
    overall = round(structure * 0.35 + seo * 0.35 + readability * 0.3)
    result = QualityScore(
        overall=overall,
        structure=structure,
        seo=seo,
        readability=readability,
        passes=not failures,
        failures=failures,
        warnings=warnings,
    )
    log.info(f"Quality check: overall {overall}, {len(failures)} failure(s), {len(warnings)} warning(s)")
    return result
