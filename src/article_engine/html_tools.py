"""HTML helpers: cleanup and tree transformations on generated drafts.

Drafts are parsed with BeautifulSoup ("html.parser") and edited as a tree.
"""

from __future__ import annotations

import html as html_lib
import re

import markdown as md_lib
from bs4 import BeautifulSoup, Comment, NavigableString

HEADING_RE = re.compile(r"^h[1-6]$")

# Text inside these tags is never rewritten
_PROTECTED_PARENTS = {"pre", "code", "script", "style", "a", "textarea"}

_CONCLUSION_RE = re.compile(r"^\s*(?:conclusion|final thoughts|wrapping up|the bottom line|next steps)", re.I)
_FAQ_RE = re.compile(r"(?:faq|frequently asked)", re.I)

# Generator chatter that must never reach the article body
CONTINUATION_ARTIFACTS = [
    re.compile(r"would you like me to (?:continue|expand|keep going|write)[^.?!]*[.?!]?", re.I),
    re.compile(r"shall i (?:continue|proceed|keep going)[^.?!]*[.?!]?", re.I),
    re.compile(r"let me know if you(?:'d| would) like me to (?:continue|expand)[^.?!]*[.?!]?", re.I),
    re.compile(r"[\[(]\s*(?:content |article )?(?:continued|continues)[^\])\n]{0,60}[\])]", re.I),
    re.compile(r"\b(?:to be )?continued in (?:the )?next (?:part|section|message|response)\b\.{0,3}", re.I),
    re.compile(r"(?:i'll|i will) continue (?:with|in)[^.?!]*[.?!]?", re.I),
    re.compile(r"^\s*continuing from where (?:i|we) left off[^.?!\n]*[.?!:]?", re.I | re.M),
    re.compile(r"\bto be continued\b\.{0,3}", re.I),
    re.compile(r"^[ \t]*[\[(]?[ \t]*please continue[ \t]*[.!\u2026]*[ \t]*[\])]?[ \t]*$", re.I | re.M),
]

# Markers that mean the generator stopped before the article was finished
INCOMPLETE_MARKERS = re.compile(
    r"to be continued|\[(?:content |article )?continued|\((?:content )?continued"
    r"|continue(?:d)? in (?:the )?next (?:part|section|message|response)"
    r"|would you like me to continue|shall i continue",
    re.I,
)
_STANDALONE_CONTINUE_RE = re.compile(r"^[\[(]?\s*please continue\s*[.!\u2026]*\s*[\])]?$", re.I)

_PREAMBLE_RE = re.compile(
    r"^\s*(?:sure[,!.]?\s*)?(?:here(?:'s| is) (?:the|your|an?) [^\n]{0,80}(?:article|continuation|content|version|draft)[^\n]*:?\s*\n)",
    re.I,
)
_FENCE_RE = re.compile(r"^\s*```[a-zA-Z]*\s*\n?|\n?\s*```\s*$")

_MARKDOWN_BLOCK_HINT = re.compile(r"(?m)^\s{0,3}(?:#{1,6}\s+\S|[-*+]\s+\S|\d+\.\s+\S|>\s+\S)")
_MARKDOWN_INLINE_HINT = re.compile(r"\*\*[^*\n]+\*\*|__[^_\n]+__|(?<![*\w])\*[^*\s][^*\n]*\*(?!\*)|\[[^\]\n]+\]\(\s*https?://[^)\s]+\s*\)")

AI_PHRASES = {
    r"\bit(?:'s| is) important to note that\s*": "",
    r"\bit(?:'s| is) worth noting that\s*": "",
    r"\bin today's (?:fast-paced |digital |modern )?world,?\s*": "",
    r"\bin this (?:comprehensive )?(?:article|guide|post),? (?:we(?:'ll| will)|you(?:'ll| will))\s*": "Below you'll ",
    r"\blet's dive (?:in|into)\b[.!]?\s*": "",
    r"\bdelve into\b": "explore",
    r"\bdelves into\b": "explores",
    r"\bdelving into\b": "exploring",
    r"\bgame[- ]changer\b": "big improvement",
    r"\bcutting[- ]edge\b": "modern",
    r"\bFurthermore,\s*": "Also, ",
    r"\bMoreover,\s*": "Plus, ",
    r"\bIn conclusion,\s*": "",
}
_AI_PHRASE_PATTERNS = [(re.compile(p, re.I), r) for p, r in AI_PHRASES.items()]


def parse(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def fragment_nodes(html: str) -> list:
    """Parse an HTML fragment and detach its top-level nodes for insertion elsewhere."""
    soup = parse(html)
    return [node.extract() for node in list(soup.contents)]


def plain_text(html: str) -> str:
    if not html:
        return ""
    text = parse(html).get_text(" ")
    return re.sub(r"\s+", " ", text).strip()


def count_words(html: str) -> int:
    return len(plain_text(html).split())


def normalize_text(text: str) -> str:
    return re.sub(r"\s+", " ", (text or "").lower()).strip()


def has_incomplete_marker(html: str) -> bool:
    if INCOMPLETE_MARKERS.search(plain_text(html)):
        return True
    # "Please continue" only counts on a line of its own
    return any(
        _STANDALONE_CONTINUE_RE.match(line.strip())
        for node in parse(html).find_all(string=True)
        if not isinstance(node, Comment)
        for line in str(node).splitlines()
    )


# ---------------------------------------------------------------------------
# Generator output cleanup
# ---------------------------------------------------------------------------

def strip_wrappers(text: str) -> str:
    """Remove code fences and a "Here is the article:" style first line."""
    text = _FENCE_RE.sub("", (text or "").strip()).strip()
    text = _PREAMBLE_RE.sub("", text, count=1)
    return _FENCE_RE.sub("", text.strip()).strip()


def strip_continuation_artifacts(html: str) -> str:
    """Drop "would you like me to continue"-style chatter from a chunk.

    A short element whose only content is chatter is removed entirely;
    longer elements just lose the matching phrase.
    """
    soup = parse(html)
    for node in list(soup.find_all(string=True)):
        if isinstance(node, Comment) or node.parent is None:
            continue
        if node.parent.name in _PROTECTED_PARENTS:
            continue
        text = str(node)
        cleaned = text
        for pattern in CONTINUATION_ARTIFACTS:
            cleaned = pattern.sub("", cleaned)
        if cleaned == text:
            continue

        parent = node.parent
        if not cleaned.strip() and parent.name in ("p", "em", "strong", "i", "b", "li", "span"):
            block = parent
            while block.parent is not None and block.parent.name in ("em", "strong", "i", "b", "span", "p"):
                block = block.parent
            if len(block.get_text(strip=True)) <= len(text.strip()):
                block.decompose()
                continue
        node.replace_with(NavigableString(cleaned))
    return str(soup).strip()


def clean_generation_output(text: str) -> str:
    return strip_continuation_artifacts(strip_wrappers(text))


# ---------------------------------------------------------------------------
# Markdown residue
# ---------------------------------------------------------------------------

def _render_block(text: str) -> str:
    return md_lib.markdown(html_lib.escape(text, quote=False), extensions=["tables"])


def _render_inline(text: str) -> str:
    rendered = md_lib.markdown(html_lib.escape(text, quote=False)).strip()
    if rendered.startswith("<p>") and rendered.endswith("</p>") and rendered.count("<p>") == 1:
        rendered = rendered[3:-4]
    return rendered


def convert_markdown_artifacts(html: str) -> tuple[str, int]:
    """Convert leftover markdown (headings, bold, italics, lists, links) into HTML.

    Returns the new HTML and the number of text runs converted.
    """
    soup = parse(html)
    converted = 0

    for node in list(soup.find_all(string=True)):
        if isinstance(node, Comment) or node.parent is None:
            continue
        if any(p.name in _PROTECTED_PARENTS for p in node.parents if p.name):
            continue
        text = str(node)
        has_block = bool(_MARKDOWN_BLOCK_HINT.search(text))
        has_inline = bool(_MARKDOWN_INLINE_HINT.search(text))
        if not (has_block or has_inline):
            continue

        parent = node.parent
        sole_child = parent.name == "p" and len(parent.contents) == 1
        at_block_level = parent.name in ("[document]", "div", "section", "article", "body")

        if has_block and (sole_child or at_block_level):
            target = parent if sole_child else node
            new_nodes = fragment_nodes(_render_block(text))
        else:
            target = node
            new_nodes = fragment_nodes(_render_inline(text))

        for new_node in new_nodes:
            target.insert_before(new_node)
        target.extract()
        converted += 1

    return str(soup), converted


# ---------------------------------------------------------------------------
# Structure
# ---------------------------------------------------------------------------

def repair_heading_hierarchy(html: str) -> tuple[str, int]:
    """Re-level headings so no level is skipped (h2 followed by h4 becomes h2, h3).

    H1 is treated as the page title and left alone. Returns the new HTML and
    the number of headings re-leveled.
    """
    soup = parse(html)
    previous = 1
    changed = 0
    for heading in soup.find_all(HEADING_RE):
        level = int(heading.name[1])
        if level == 1:
            previous = 1
            continue
        if level > previous + 1:
            level = previous + 1
            heading.name = f"h{level}"
            changed += 1
        previous = level
    return str(soup), changed


def insert_before_conclusion(html: str, fragment: str) -> str:
    """Insert ``fragment`` before the conclusion (or FAQ) heading, else append it."""
    soup = parse(html)
    h2s = soup.find_all("h2")
    anchor = next((h for h in h2s if _CONCLUSION_RE.search(h.get_text(" ", strip=True))), None)
    if anchor is None:
        anchor = next((h for h in h2s if _FAQ_RE.search(h.get_text(" ", strip=True))), None)

    if anchor is None:
        return f"{str(soup).rstrip()}\n{fragment.strip()}"

    for node in fragment_nodes(fragment):
        anchor.insert_before(node)
    return str(soup)


def insert_comment_after_last_heading(html: str, comment_text: str) -> str:
    soup = parse(html)
    headings = soup.find_all(HEADING_RE)
    comment = Comment(f" {comment_text} ")
    if headings:
        headings[-1].insert_after(comment)
    else:
        soup.append(comment)
    return str(soup)


# ---------------------------------------------------------------------------
# Visual breaks
# ---------------------------------------------------------------------------

def _paragraph_runs(soup: BeautifulSoup) -> list[list]:
    """Runs of sibling <p> elements with nothing but whitespace between them.

    Any other element or a comment ends the current run.
    """
    runs = []
    containers = [soup] + [p.parent for p in soup.find_all("p") if p.parent is not None]
    seen = set()
    for container in containers:
        if id(container) in seen:
            continue
        seen.add(id(container))
        run = []
        for child in container.children:
            if isinstance(child, NavigableString) and not isinstance(child, Comment) and not child.strip():
                continue
            if getattr(child, "name", None) == "p":
                run.append(child)
                continue
            if run:
                runs.append(run)
            run = []
        if run:
            runs.append(run)
    return runs


def find_break_violations(html: str, max_words: int = 200) -> list[dict]:
    """Paragraph runs longer than ``max_words`` with no heading, list, figure or other element between them."""
    return enforce_visual_breaks(html, max_words)[1]


def enforce_visual_breaks(html: str, max_words: int = 200, break_html: str = "<hr>") -> tuple[str, list[dict]]:
    """Insert ``break_html`` inside paragraph runs that exceed ``max_words``.

    A break goes before the paragraph that would push the run over the limit,
    so each stretch stays under it unless one paragraph alone is longer.
    Returns the new HTML and the violations found before fixing.
    """
    soup = parse(html)
    violations = []
    for run in _paragraph_runs(soup):
        counts = [len(p.get_text(" ", strip=True).split()) for p in run]
        if sum(counts) <= max_words:
            continue
        violations.append({
            "word_count": sum(counts),
            "paragraphs": len(run),
            "snippet": run[0].get_text(" ", strip=True)[:80],
        })
        stretch = 0
        for p, words in zip(run, counts):
            if stretch and stretch + words > max_words:
                for node in fragment_nodes(break_html):
                    p.insert_before(node)
                stretch = 0
            stretch += words
    return str(soup), violations


def remove_ai_phrases(html: str) -> tuple[str, int]:
    """Replace stock LLM phrasing in body text. Returns new HTML and replacement count."""
    soup = parse(html)
    replaced = 0
    for node in list(soup.find_all(string=True)):
        if isinstance(node, Comment) or node.parent is None or node.parent.name in _PROTECTED_PARENTS:
            continue
        text = str(node)
        new_text = text
        for pattern, repl in _AI_PHRASE_PATTERNS:
            new_text, n = pattern.subn(repl, new_text)
            replaced += n
        if new_text != text:
            if text.lstrip()[:1].isupper() and new_text.lstrip()[:1].islower():
                lead = len(new_text) - len(new_text.lstrip())
                new_text = new_text[:lead] + new_text[lead].upper() + new_text[lead + 1:]
            node.replace_with(NavigableString(new_text))
    return str(soup), replaced


def extract_faq_items(html: str) -> list[dict]:
    """Collect question/answer pairs from the FAQ section (h3 questions or <details>)."""
    soup = parse(html)
    items = []

    for details in soup.find_all("details"):
        summary = details.find("summary")
        if not summary:
            continue
        question = summary.get_text(" ", strip=True)
        summary.extract()
        answer = details.get_text(" ", strip=True)
        if question and answer:
            items.append({"question": question, "answer": answer})
    if items:
        return items

    faq_heading = next(
        (h for h in soup.find_all("h2") if _FAQ_RE.search(h.get_text(" ", strip=True))),
        None,
    )
    if faq_heading is None:
        return items

    question, answer_parts = None, []
    for sibling in faq_heading.find_next_siblings():
        if sibling.name in ("h2", "section"):
            break
        if sibling.name in ("h3", "h4"):
            if question and answer_parts:
                items.append({"question": question, "answer": " ".join(answer_parts)})
            question, answer_parts = sibling.get_text(" ", strip=True), []
        elif question and sibling.name:
            text = sibling.get_text(" ", strip=True)
            if text:
                answer_parts.append(text)
    if question and answer_parts:
        items.append({"question": question, "answer": " ".join(answer_parts)})
    return items
