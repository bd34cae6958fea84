"""Tests for gap detection and the patch/rewrite editor."""

from article_engine.draft_editor import PATCH, REWRITE, CoverageGaps, DraftEditor, find_gaps
from article_engine.errors import ProviderError
from article_engine.models import Draft

from fakes import FakeGenerator, article_html


def test_find_gaps_is_case_insensitive_and_deduplicated():
    html = "<h2>How Cold Brew Works</h2><p>Coarse GRIND and a long steep.</p>"
    gaps = find_gaps(
        html,
        terms=["coarse grind", "Coarse Grind", "ratio"],
        entities=["Toddy"],
        headings=["How cold brew works", "Storage"],
    )
    assert gaps.terms == ["ratio"]
    assert gaps.entities == ["Toddy"]
    assert gaps.headings == ["Storage"]
    assert gaps.total == 3


def test_long_headings_match_on_prefix():
    html = "<h2>Frequently Asked Questions</h2>"
    gaps = find_gaps(html, headings=["Frequently asked questions about cold brew storage"])
    assert gaps.is_empty


class TestModeSelection:
    def test_small_draft_is_rewritten(self, settings):
        editor = DraftEditor(FakeGenerator(), settings)
        assert editor.mode_for(Draft.from_html("<p>short</p>")) == REWRITE

    def test_large_draft_is_patched(self, settings):
        editor = DraftEditor(FakeGenerator(), settings)
        draft = Draft.from_html(article_html("cold brew", sections=10))
        assert draft.char_count > settings.patch_mode_threshold_chars
        assert editor.mode_for(draft) == PATCH


class TestRewrite:
    async def test_shorter_rewrite_is_rejected(self, settings):
        """A rewrite under 97% of the original length is discarded."""
        original = Draft.from_html(article_html("cold brew", sections=2))
        truncated = original.html[: int(len(original.html) * 0.8)]
        editor = DraftEditor(FakeGenerator(responses=[truncated]), settings)

        result = await editor.improve(original, CoverageGaps(terms=["ratio"]), "cold brew")

        assert result == original

    async def test_full_rewrite_is_accepted(self, settings):
        original = Draft.from_html(article_html("cold brew", sections=2))
        revised = original.html + "\n<p>Use a 1:8 ratio of coffee to water for a smooth concentrate.</p>"
        editor = DraftEditor(FakeGenerator(responses=[f"```html\n{revised}\n```"]), settings)

        result = await editor.improve(original, CoverageGaps(terms=["ratio"]), "cold brew")

        assert "1:8 ratio" in result.html
        assert "```" not in result.html

    async def test_generator_failure_keeps_draft(self, settings):
        original = Draft.from_html(article_html("cold brew", sections=1))
        editor = DraftEditor(FakeGenerator(responses=[ProviderError("down", 500)]), settings)
        assert await editor.improve(original, CoverageGaps(terms=["ratio"]), "cold brew") == original


class TestPatch:
    async def test_section_inserted_before_conclusion(self, settings):
        html = article_html("cold brew", sections=10) + "\n<h2>Conclusion</h2>\n<p>Enjoy your coffee.</p>"
        original = Draft.from_html(html)
        section = "<h2>Choosing the Right Ratio</h2><p>" + "A 1:8 ratio with a coarse grind works for most beans. " * 4 + "</p>"
        gen = FakeGenerator(responses=[section])
        editor = DraftEditor(gen, settings)

        result = await editor.improve(original, CoverageGaps(terms=["ratio"], headings=["Choosing the Right Ratio"]), "cold brew")

        assert result.word_count > original.word_count
        assert result.html.index("Choosing the Right Ratio") < result.html.index("<h2>Conclusion</h2>")
        # Patch prompts never carry the full article
        assert original.html not in gen.calls[0]

    async def test_trivial_patch_is_ignored(self, settings):
        original = Draft.from_html(article_html("cold brew", sections=10))
        editor = DraftEditor(FakeGenerator(responses=["<p>ok</p>"]), settings)
        assert await editor.improve(original, CoverageGaps(terms=["ratio"]), "cold brew") == original

    async def test_no_gaps_no_call(self, settings):
        gen = FakeGenerator()
        draft = Draft.from_html("<p>x</p>")
        assert await DraftEditor(gen, settings).improve(draft, CoverageGaps(), "cold brew") == draft
        assert gen.calls == []
