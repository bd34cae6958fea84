"""Reference ranking: dedupe citations, drop low-signal domains, order by authority."""

from __future__ import annotations

import html as html_lib
import logging
from dataclasses import replace
from urllib.parse import urlsplit, urlunsplit

from article_engine.models import Reference

log = logging.getLogger(__name__)

TIER_GOV_EDU = 100
TIER_PUBLICATION = 80
TIER_GENERIC = 50

# Social and user-generated platforms are never cited
BLOCKED_DOMAINS = {
    "pinterest.com", "facebook.com", "instagram.com", "twitter.com", "x.com",
    "tiktok.com", "reddit.com", "quora.com", "linkedin.com", "youtube.com",
    "medium.com", "tumblr.com", "snapchat.com", "threads.net",
}

RECOGNIZED_PUBLICATIONS = {
    "nature.com", "science.org", "sciencedirect.com", "springer.com", "wiley.com",
    "thelancet.com", "nejm.org", "bmj.com", "jamanetwork.com", "cell.com",
    "who.int", "mayoclinic.org", "clevelandclinic.org", "hopkinsmedicine.org",
    "webmd.com", "healthline.com", "nytimes.com", "washingtonpost.com", "wsj.com",
    "reuters.com", "apnews.com", "bbc.com", "bbc.co.uk", "theguardian.com",
    "economist.com", "forbes.com", "bloomberg.com", "hbr.org", "ft.com",
    "statista.com", "pewresearch.org", "gartner.com", "mckinsey.com",
    "britannica.com", "scientificamerican.com", "nationalgeographic.com",
}

_GOV_EDU_SUFFIXES = (".gov", ".edu", ".mil", ".int")
_GOV_EDU_SECOND_LEVEL = ("gov", "edu", "ac", "mil", "gouv", "gob")


def registered_domain(url: str) -> str:
    host = (urlsplit(url).hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return host


def _matches(host: str, domains: set[str]) -> bool:
    return any(host == d or host.endswith("." + d) for d in domains)


def authority_score(url: str) -> int:
    """Authority tier for a URL, or 0 if the domain is blocked."""
    host = registered_domain(url)
    if not host or _matches(host, BLOCKED_DOMAINS):
        return 0
    if host.endswith(_GOV_EDU_SUFFIXES):
        return TIER_GOV_EDU
    labels = host.split(".")
    # gov.uk, ac.uk, edu.au, gob.mx ...
    if len(labels) >= 3 and labels[-2] in _GOV_EDU_SECOND_LEVEL:
        return TIER_GOV_EDU
    if _matches(host, RECOGNIZED_PUBLICATIONS):
        return TIER_PUBLICATION
    return TIER_GENERIC


def _canonical_url(url: str) -> str:
    parts = urlsplit(url.strip())
    path = parts.path.rstrip("/")
    host = (parts.hostname or "").lower().removeprefix("www.")
    return urlunsplit(("https", host, path, parts.query, ""))


def rank_references(references: list[Reference], limit: int = 10, per_domain: int = 2) -> list[Reference]:
    """Dedupe by URL, skip blocked domains, sort by authority tier and trim to ``limit``."""
    seen_urls = set()
    candidates = []
    for position, ref in enumerate(references or []):
        if not ref.url or not ref.url.startswith(("http://", "https://")):
            continue
        canonical = _canonical_url(ref.url)
        if canonical in seen_urls:
            continue
        seen_urls.add(canonical)

        score = authority_score(ref.url)
        if score == 0:
            log.debug(f"Skipping low-signal reference: {ref.url}")
            continue
        ranked_ref = replace(ref, authority=score, source=ref.source or registered_domain(ref.url))
        candidates.append((position, ranked_ref))

    # Stable: equal tiers keep the order the search returned them in
    candidates.sort(key=lambda item: (-item[1].authority, item[0]))

    ranked, per_domain_counts = [], {}
    for _, ref in candidates:
        domain = registered_domain(ref.url)
        if per_domain_counts.get(domain, 0) >= per_domain:
            continue
        per_domain_counts[domain] = per_domain_counts.get(domain, 0) + 1
        ranked.append(ref)
        if len(ranked) >= limit:
            break

    log.info(f"Kept {len(ranked)} of {len(references or [])} references")
    return ranked


def render_references_section(references: list[Reference]) -> str:
    if not references:
        return ""
    items = "\n".join(
        f'  <li><a href="{html_lib.escape(ref.url, quote=True)}" target="_blank" rel="noopener noreferrer">'
        f"{html_lib.escape(ref.title or ref.source)}</a> ({html_lib.escape(ref.source)})</li>"
        for ref in references
    )
    return (
        '<section class="references">\n'
        "<h2>References</h2>\n"
        f"<ol>\n{items}\n</ol>\n"
        "</section>"
    )
