"""Internal Link Engine: match draft paragraphs to site pages and inject contextual links."""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass

from bs4 import NavigableString

from article_engine.html_tools import parse
from article_engine.models import InternalLink

log = logging.getLogger(__name__)

STOP_WORDS = {
    "a", "an", "the", "and", "or", "but", "in", "on", "at", "to", "for", "of",
    "with", "by", "from", "as", "is", "was", "are", "were", "been", "be", "have",
    "has", "had", "do", "does", "did", "will", "would", "could", "should", "may",
    "might", "can", "this", "that", "these", "those", "i", "me", "my", "we", "our",
    "you", "your", "he", "him", "his", "she", "her", "it", "its", "they", "them",
    "their", "what", "which", "who", "how", "when", "where", "why", "not", "no",
    "so", "if", "then", "than", "too", "very", "just", "about", "after", "all",
    "also", "any", "because", "before", "both", "each", "more", "most", "other",
    "over", "some", "such", "through", "into", "out", "only", "own", "here",
    "there", "now", "even", "new", "way", "many", "much",
}

_SKIP_PARENTS = {"a", "h1", "h2", "h3", "h4", "h5", "h6", "script", "style", "code", "pre"}
_TOKEN_RE = re.compile(r"[^a-z0-9\s'-]")


def tokenize(text: str) -> list[str]:
    cleaned = _TOKEN_RE.sub(" ", (text or "").lower())
    return [w for w in cleaned.split() if len(w) > 2 and w not in STOP_WORDS]


@dataclass
class _Paragraph:
    index: int
    text: str
    tokens: list[str]
    word_count: int
    cumulative_words: int
    has_link: bool


class InternalLinkEngine:
    """TF-IDF style relevance between paragraphs and configured site pages.

    ``site_pages`` entries are dicts with ``url`` and ``title`` and optionally
    ``description``, ``slug`` and ``keywords``.
    """

    def __init__(
        self,
        site_pages: list[dict] | None = None,
        max_links: int = 12,
        min_relevance: float = 25,
        min_words_between_links: int = 200,
    ):
        self.max_links = max_links
        self.min_relevance = min_relevance
        self.min_words_between_links = min_words_between_links
        self.update_site_pages(site_pages or [])

    def update_site_pages(self, pages: list[dict]):
        self.site_pages = [p for p in pages if p.get("url")]
        self._page_tokens = []
        self._doc_freq: dict[str, int] = {}
        for page in self.site_pages:
            combined = " ".join([
                page.get("title", ""),
                page.get("description", ""),
                (page.get("slug") or "").replace("-", " ").replace("_", " "),
                " ".join(page.get("keywords", []) or []),
            ])
            tokens = tokenize(combined)
            self._page_tokens.append(tokens)
            for token in set(tokens):
                self._doc_freq[token] = self._doc_freq.get(token, 0) + 1

    # ---- Scoring ----

    def _relevance(self, paragraph_tokens: list[str], page_tokens: list[str]) -> float:
        if not paragraph_tokens or not page_tokens:
            return 0
        targets = set(page_tokens)
        corpus = len(self.site_pages)
        score, matched = 0.0, 0
        for token in paragraph_tokens:
            if token in targets:
                matched += 1
                score += math.log(corpus / self._doc_freq.get(token, 1)) + 1
        if not matched:
            return 0
        normalized = score / math.sqrt(len(paragraph_tokens)) * 10
        bonus = matched / min(len(paragraph_tokens), len(page_tokens)) * 20
        return min(100, round(normalized + bonus))

    @staticmethod
    def _anchor_text(paragraph_text: str, page_tokens: set[str], page_title: str) -> str | None:
        """Best 2-6 word phrase from the paragraph that overlaps the page's tokens."""
        words = paragraph_text.split()
        if len(words) < 4:
            return None

        best, best_score = "", 0.0
        for length in range(2, min(6, len(words)) + 1):
            for i in range(len(words) - length + 1):
                phrase = " ".join(words[i:i + length]).strip(".,;:!?\"'()")
                tokens = [w for w in _TOKEN_RE.sub("", phrase.lower()).split() if len(w) > 2]
                if not tokens or tokens[0] in STOP_WORDS or tokens[-1] in STOP_WORDS:
                    continue
                overlap = sum(1 for t in tokens if t in page_tokens)
                if not overlap:
                    continue
                score = overlap / len(tokens) * 50 + overlap * 10 + (5 if 3 <= length <= 5 else 0)
                if score > best_score:
                    best, best_score = phrase, score
        if best:
            return best

        title_words = page_title.split()[:5]
        lowered = paragraph_text.lower()
        for length in range(min(5, len(title_words)), 1, -1):
            snippet = " ".join(title_words[:length])
            if snippet.lower() in lowered:
                return snippet
        return None

    def _paragraphs(self, html: str) -> list[_Paragraph]:
        paragraphs, cumulative = [], 0
        for index, p in enumerate(parse(html).find_all("p")):
            text = p.get_text(" ", strip=True)
            words = len(text.split())
            cumulative += words
            paragraphs.append(_Paragraph(
                index=index,
                text=text,
                tokens=tokenize(text),
                word_count=words,
                cumulative_words=cumulative,
                has_link=p.find("a") is not None,
            ))
        return paragraphs

    # ---- Public API ----

    def generate_link_opportunities(self, html: str, max_links: int | None = None) -> list[InternalLink]:
        """Pick link candidates: one per paragraph and per target, spaced through the article."""
        limit = self.max_links if max_links is None else max_links
        if not self.site_pages or limit <= 0:
            return []

        candidates = []
        for para in self._paragraphs(html):
            if para.has_link or para.word_count < 10:
                continue
            for page, page_tokens in zip(self.site_pages, self._page_tokens):
                relevance = self._relevance(para.tokens, page_tokens)
                if relevance < self.min_relevance:
                    continue
                anchor = self._anchor_text(para.text, set(page_tokens), page.get("title", ""))
                if not anchor:
                    continue
                candidates.append((relevance, para, InternalLink(
                    anchor=anchor,
                    target_url=page["url"],
                    context=para.text[:150],
                    relevance=relevance,
                )))

        candidates.sort(key=lambda c: c[0], reverse=True)

        selected, used_urls, used_paragraphs, linked_positions = [], set(), set(), []
        for _, para, link in candidates:
            if len(selected) >= limit:
                break
            if link.target_url in used_urls or para.index in used_paragraphs:
                continue
            if any(abs(para.cumulative_words - pos) < self.min_words_between_links for pos in linked_positions):
                continue
            selected.append(link)
            used_urls.add(link.target_url)
            used_paragraphs.add(para.index)
            linked_positions.append(para.cumulative_words)
        return selected

    def inject_links(self, html: str, links: list[InternalLink]) -> tuple[str, list[InternalLink]]:
        """Wrap the first free occurrence of each anchor in a link.

        Returns the new HTML and the links that were actually placed.
        """
        if not links:
            return html, []

        soup = parse(html)
        placed = []
        for link in links:
            pattern = re.compile(r"\b" + re.escape(link.anchor) + r"\b", re.IGNORECASE)
            for p in soup.find_all("p"):
                if p.find("a") is not None:
                    continue
                text_node = next(
                    (n for n in p.find_all(string=pattern)
                     if not any(parent.name in _SKIP_PARENTS for parent in n.parents if parent.name)),
                    None,
                )
                if text_node is None:
                    continue

                text = str(text_node)
                match = pattern.search(text)
                a_tag = soup.new_tag("a", href=link.target_url, title=match.group(0))
                a_tag.string = match.group(0)
                before, after = NavigableString(text[:match.start()]), NavigableString(text[match.end():])
                text_node.replace_with(before)
                before.insert_after(a_tag)
                a_tag.insert_after(after)
                placed.append(link)
                break

        if placed:
            log.info(f"Injected {len(placed)} internal links")
        return str(soup), placed
