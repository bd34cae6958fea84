"""Tests for content metrics and the quality check."""

from article_engine.quality import analyze_content, quality_check

from fakes import article_html


def good_article():
    body = article_html("cold brew", sections=10)
    return (
        "<p>Cold brew coffee is smooth, and 67% of drinkers prefer it iced.</p>\n"
        + body
        + "\n<h2>Cold brew checklist</h2><ul><li>Coarse grind</li><li>18 hours</li></ul>"
        + '\n<p>See the <a href="https://www.fda.gov/caffeine">FDA caffeine guide</a>.</p>'
    )


class TestAnalyzeContent:
    def test_counts(self):
        html = (
            "<h2>Intro</h2><p>One sentence here. Another one!</p>"
            '<p><a href="/internal">in</a> <a href="https://example.com/also">also in</a> '
            '<a href="https://other.org/">out</a></p><ul><li>x</li></ul><table><tr><td>1</td></tr></table>'
        )
        m = analyze_content(html, site_url="https://www.example.com")
        assert m.heading_count == 1
        assert m.paragraph_count == 2
        assert m.internal_link_count == 2
        assert m.external_link_count == 1
        assert m.list_count == 1 and m.table_count == 1
        assert m.reading_time_minutes == 1

    def test_empty(self):
        m = analyze_content("")
        assert m.word_count == 0 and m.reading_time_minutes == 0


class TestQualityCheck:
    def test_good_article_passes(self):
        meta = "Learn how to make cold brew at home: the right grind, ratio and steep time, plus storage tips that keep every batch smooth and fresh for up to two weeks."
        score = quality_check(good_article(), "cold brew", "Cold Brew at Home: A Complete Guide", meta)
        assert score.passes
        assert score.failures == []
        assert 0 < score.overall <= 100

    def test_short_article_fails(self):
        score = quality_check("<p>Cold brew is nice.</p>", "cold brew")
        assert not score.passes
        assert any("words" in f for f in score.failures)
        assert "No H2 headings" in score.failures
        assert "Missing SEO title" in score.failures
        assert "Missing meta description" in score.failures

    def test_heading_skip_warning(self):
        html = good_article() + "<h4>Deep detail</h4>"
        score = quality_check(html, "cold brew", "Cold Brew", "x" * 155)
        assert any("Heading level skip" in w for w in score.warnings)

    def test_long_title_warning(self):
        score = quality_check(good_article(), "cold brew", "Cold brew " * 8, "x" * 155)
        assert any("SEO title is" in w for w in score.warnings)
        assert score.passes
