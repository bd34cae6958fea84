"""In-memory collaborators and article builders shared by the test modules."""

from article_engine.errors import ProviderError, QueryNotReadyError
from article_engine.models import (
    Competitor,
    CoverageAnalysis,
    EntityData,
    HeadingData,
    Reference,
    SERPAnalysis,
    TermData,
    Video,
)

VOCAB = (
    "metabolism insulin schedule window breakfast protein energy hunger routine habit "
    "research study clinic morning evening hydration electrolyte coffee sleep muscle "
    "glucose appetite weekday weekend planning results progress patience balance fiber "
    "vegetables portion recovery training walking stress hormone journal tracking goal"
).split()


def filler(seed: int, words: int) -> str:
    """Deterministic prose that never repeats its opening across seeds."""
    out = [f"Point {seed}:"]
    for i in range(words - 2):
        out.append(VOCAB[(seed * 7 + i * 3 + i // len(VOCAB)) % len(VOCAB)])
        if i % 12 == 11:
            out[-1] += "."
    out.append("done.")
    return " ".join(out)


def article_html(keyword: str, sections: int = 6, paragraphs: int = 3, words: int = 80, start: int = 0) -> str:
    parts = [] if start else [f"<p>{keyword.capitalize()} is simpler than it sounds. {filler(9999, 40)}</p>"]
    for s in range(start, start + sections):
        parts.append(f"<h2>Section {s} on {keyword}</h2>")
        for p in range(paragraphs):
            parts.append(f"<p>{filler(s * 10 + p, words)}</p>")
    return "\n".join(parts)


class FakeGenerator:
    """Answers prompts with a callable (prompt -> str | Exception) or a fixed sequence."""

    def __init__(self, responder=None, responses=None):
        self.responder = responder
        self.responses = list(responses or [])
        self.calls = []

    async def generate(self, prompt, system_prompt="", temperature=0.7, max_tokens=4096):
        self.calls.append(prompt)
        if self.responder is not None:
            result = self.responder(prompt)
        elif self.responses:
            result = self.responses.pop(0)
        else:
            result = ""
        if isinstance(result, Exception):
            raise result
        return result


def make_analysis(query_id="q-1", terms=(), entities=(), headings=(), status="ready"):
    return CoverageAnalysis(
        query_id=query_id,
        status=status,
        terms=[TermData(term=t, type="required", weight=100 - i) for i, t in enumerate(terms)],
        entities=[EntityData(entity=e) for e in entities],
        headings_h2=[HeadingData(text=h) for h in headings],
    )


class FakeScorer:
    """Coverage scorer with scripted analyses and scores."""

    def __init__(self, existing=None, analyses=None, scores=None, create_delay=0.0):
        self.existing = list(existing or [])
        self.analyses = list(analyses or [])
        self.scores = list(scores or [])
        self.create_delay = create_delay
        self.created = []
        self.scored = []
        self.list_calls = 0

    async def list_queries(self, project_id):
        self.list_calls += 1
        return list(self.existing)

    async def create_query(self, project_id, keyword):
        import asyncio

        if self.create_delay:
            await asyncio.sleep(self.create_delay)
        query_id = f"q-{len(self.created) + 1}"
        self.created.append(keyword)
        return query_id

    async def get_analysis(self, query_id):
        item = self.analyses.pop(0) if len(self.analyses) > 1 else (self.analyses[0] if self.analyses else None)
        if item is None:
            raise QueryNotReadyError(f"{query_id} processing")
        if isinstance(item, Exception):
            raise item
        item.query_id = query_id
        return item

    async def score_content(self, query_id, html, title=""):
        self.scored.append(html)
        result = self.scores.pop(0) if len(self.scores) > 1 else self.scores[0]
        if isinstance(result, Exception):
            raise result
        return result


class StubResearch:
    """SERP analyzer, video finder and reference finder in one object."""

    def __init__(self, serp=None, videos=(), references=(), fail=()):
        self.serp = serp
        self.videos = list(videos)
        self.references = list(references)
        self.fail = set(fail)
        self.serp_calls = []

    async def analyze_serp(self, keyword, country="us"):
        self.serp_calls.append(keyword)
        if "serp" in self.fail or keyword in self.fail:
            raise ProviderError("serp down", 503)
        return self.serp or SERPAnalysis(
            keyword=keyword,
            recommended_word_count=2500,
            recommended_headings=[f"What is {keyword}"],
            semantic_entities=["autophagy", "time-restricted eating"],
            top_competitors=[Competitor(url="https://example.org/a", title="A", position=1)],
        )

    async def find_videos(self, keyword, content_type="guide"):
        if "videos" in self.fail:
            raise ProviderError("videos down", 500)
        return list(self.videos)

    async def find_references(self, keyword):
        if "references" in self.fail:
            raise ProviderError("references down", 500)
        return list(self.references)


SAMPLE_VIDEOS = [Video(id="abc123XYZ", title="Fasting basics", channel_title="Health Channel", url="https://www.youtube.com/watch?v=abc123XYZ")]

SAMPLE_REFERENCES = [
    Reference(title="Fasting pin board", url="https://www.pinterest.com/pin/123"),
    Reference(title="Blog post on fasting", url="https://somefitnessblog.com/fasting"),
    Reference(title="NIH fasting review", url="https://www.nih.gov/news/fasting-review"),
    Reference(title="Mayo Clinic on fasting", url="https://www.mayoclinic.org/fasting"),
]
