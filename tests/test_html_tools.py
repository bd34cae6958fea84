"""Tests for HTML cleanup and structural transforms."""

from article_engine.html_tools import (
    clean_generation_output,
    convert_markdown_artifacts,
    count_words,
    enforce_visual_breaks,
    extract_faq_items,
    find_break_violations,
    has_incomplete_marker,
    insert_before_conclusion,
    remove_ai_phrases,
    repair_heading_hierarchy,
    strip_wrappers,
)


class TestHeadingHierarchy:
    def test_skipped_level_is_repaired(self):
        html = "<h2>Intro</h2><p>a</p><h4>Detail</h4><p>b</p>"
        repaired, changed = repair_heading_hierarchy(html)
        assert "<h3>Detail</h3>" in repaired
        assert changed == 1

    def test_valid_hierarchy_untouched(self):
        html = "<h2>A</h2><h3>B</h3><h2>C</h2>"
        assert repair_heading_hierarchy(html) == (html, 0)

    def test_deep_skip_from_top(self):
        repaired, changed = repair_heading_hierarchy("<h4>First</h4><h5>Second</h5>")
        assert repaired == "<h2>First</h2><h3>Second</h3>"
        assert changed == 2


class TestMarkdownArtifacts:
    def test_bold_inside_paragraph(self):
        html, n = convert_markdown_artifacts("<p>This is **very** important.</p>")
        assert "<strong>very</strong>" in html
        assert "**" not in html
        assert n == 1

    def test_heading_paragraph_becomes_heading(self):
        html, _ = convert_markdown_artifacts("<p>## Getting Started</p><p>Body text.</p>")
        assert "<h2>Getting Started</h2>" in html
        assert "##" not in html

    def test_list_at_top_level(self):
        html, _ = convert_markdown_artifacts("<h2>Steps</h2>\n- Grind beans\n- Steep overnight\n")
        assert "<li>Grind beans</li>" in html

    def test_code_is_left_alone(self):
        source = "<pre><code>**not bold**</code></pre>"
        assert convert_markdown_artifacts(source) == (source, 0)


class TestCleanup:
    def test_strip_wrappers(self):
        raw = "Here is the complete article:\n```html\n<h2>Title</h2>\n```"
        assert strip_wrappers(raw) == "<h2>Title</h2>"

    def test_continuation_chatter_removed(self):
        html = "<p>Steep for 18 hours.</p><p>Would you like me to continue with the next section?</p>"
        cleaned = clean_generation_output(html)
        assert cleaned == "<p>Steep for 18 hours.</p>"

    def test_chatter_inside_longer_paragraph(self):
        cleaned = clean_generation_output("<p>Strain twice for clarity. [Content continued below]</p>")
        assert cleaned == "<p>Strain twice for clarity. </p>"

    def test_incomplete_marker(self):
        assert has_incomplete_marker("<p>To be continued...</p>")
        assert not has_incomplete_marker("<p>The steeping continues for hours.</p>")

    def test_please_continue_in_prose_is_kept(self):
        html = "<p>If you feel fine, please continue the fast for another hour.</p>"
        assert clean_generation_output(html) == html
        assert not has_incomplete_marker(html)

    def test_standalone_please_continue_is_chatter(self):
        html = "<p>Break the fast with protein.</p>\n<p>[Please continue]</p>"
        assert has_incomplete_marker(html)
        assert clean_generation_output(html) == "<p>Break the fast with protein.</p>"
        assert has_incomplete_marker("<p>Eat slowly.</p>\nPlease continue.")

    def test_ai_phrases(self):
        html, n = remove_ai_phrases("<p>It's important to note that cold brew is less acidic.</p><a>delve into</a>")
        assert html.startswith("<p>Cold brew is less acidic.</p>")
        assert "<a>delve into</a>" in html
        assert n == 1


class TestStructure:
    def test_insert_before_conclusion(self):
        html = "<h2>Intro</h2><p>a</p><h2>Conclusion</h2><p>z</p>"
        out = insert_before_conclusion(html, "<h2>New</h2><p>n</p>")
        assert out == "<h2>Intro</h2><p>a</p><h2>New</h2><p>n</p><h2>Conclusion</h2><p>z</p>"

    def test_insert_appends_without_conclusion(self):
        assert insert_before_conclusion("<p>a</p>", "<p>b</p>") == "<p>a</p>\n<p>b</p>"

    def test_faq_extraction(self):
        html = (
            "<h2>Frequently Asked Questions</h2>"
            "<h3>How long does cold brew last?</h3><p>About two weeks.</p>"
            "<h3>Is it stronger?</h3><p>Usually, yes.</p>"
            "<h2>Conclusion</h2><p>Done.</p>"
        )
        assert extract_faq_items(html) == [
            {"question": "How long does cold brew last?", "answer": "About two weeks."},
            {"question": "Is it stronger?", "answer": "Usually, yes."},
        ]

    def test_count_words_ignores_markup(self):
        assert count_words("<h2>Two words</h2><p>and <b>three</b> more</p>") == 5


class TestVisualBreaks:
    def paragraph(self, words):
        return "<p>" + " ".join(["fasting"] * words) + "</p>"

    def test_long_run_is_broken_up(self):
        html = "<h2>Basics</h2>" + self.paragraph(90) * 3
        fixed, violations = enforce_visual_breaks(html, max_words=200)
        assert len(violations) == 1
        assert violations[0]["word_count"] == 270
        assert violations[0]["paragraphs"] == 3
        assert fixed.count("<hr/>") == 1
        # The break lands before the paragraph that crosses the limit
        assert fixed.index("<hr/>") > fixed.index("</p><p>")
        assert find_break_violations(fixed, max_words=200) == []

    def test_other_elements_reset_the_run(self):
        html = self.paragraph(150) + "<ul><li>Water</li></ul>" + self.paragraph(150) + "<h3>Next</h3>" + self.paragraph(150)
        fixed, violations = enforce_visual_breaks(html, max_words=200)
        assert violations == []
        assert fixed == html

    def test_comment_resets_the_run(self):
        html = self.paragraph(150) + "<!-- note -->" + self.paragraph(150)
        assert find_break_violations(html, max_words=200) == []

    def test_custom_break_fragment_in_nested_section(self):
        html = "<section>" + self.paragraph(120) * 2 + "</section>"
        fixed, violations = enforce_visual_breaks(html, max_words=200, break_html='<div class="break"></div>')
        assert len(violations) == 1
        assert '<div class="break"></div>' in fixed
        assert count_words(fixed) == 240
