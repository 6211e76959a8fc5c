"""
Unit tests for core/normalize.py

Tests text normalization used by every strategy:
- HTML to plain text (bullets, headings, table cells, entities)
- Whitespace collapsing
- Field rendering with format_job_text
"""

import pytest
from bs4 import BeautifulSoup

from core.normalize import (
    as_text_list,
    clean_text,
    collapse_whitespace,
    format_job_text,
    html_to_text,
    text_from_value,
)


class TestHtmlToText:

    def test_list_items_become_bullets(self):
        text = html_to_text("<ul><li>Python</li><li>SQL</li></ul>")
        assert text == "• Python\n• SQL"

    def test_headings_become_section_breaks(self):
        text = html_to_text("<p>Intro paragraph.</p><h2>Requirements</h2><p>Five years.</p>")
        assert text == "Intro paragraph.\n\nRequirements\n\nFive years."

    def test_table_cells_are_pipe_delimited(self):
        text = html_to_text("<table><tr><td>Location</td><td>Berlin</td></tr></table>")
        assert text == "Location | Berlin"

    def test_entities_decoded(self):
        assert html_to_text("<p>R&amp;D &ndash; Tools &amp; Infra</p>") == "R&D – Tools & Infra"

    def test_at_most_one_blank_line(self):
        text = html_to_text("<p>One</p><p></p><p></p><p>Two</p>")
        assert "\n\n\n" not in text
        assert text == "One\n\nTwo"

    def test_scripts_and_styles_removed(self):
        text = html_to_text("<div><script>var x = 1;</script><style>p{}</style><p>Visible</p></div>")
        assert text == "Visible"

    def test_input_element_not_modified(self):
        soup = BeautifulSoup("<div><ul><li>Item</li></ul></div>", "lxml")
        before = str(soup)
        html_to_text(soup.div)
        assert str(soup) == before

    def test_none_gives_empty_string(self):
        assert html_to_text(None) == ""


class TestCollapseWhitespace:

    def test_collapses_spaces_and_trims_lines(self):
        assert collapse_whitespace("  a   b  \n\tc  ") == "a b\nc"

    def test_removes_zero_width_and_nbsp(self):
        assert collapse_whitespace("a\u200bb\xa0c") == "ab c"

    def test_lone_bullet_joins_next_line(self):
        assert collapse_whitespace("•\nPython") == "• Python"


class TestFieldValues:

    def test_clean_text_single_line(self):
        assert clean_text("  Senior\n  Engineer  ") == "Senior Engineer"
        assert clean_text("") is None
        assert clean_text(None) is None

    def test_text_from_value_detects_html(self):
        assert text_from_value("<p>Build <strong>APIs</strong></p>") == "Build APIs"
        assert text_from_value("Plain &amp; simple") == "Plain & simple"

    def test_as_text_list_flattens(self):
        assert as_text_list(["A", {"name": "B"}, ["C"]]) == ["A", "B", "C"]
        assert as_text_list("• one\n• two") == ["one", "two"]
        assert as_text_list(None) == []


class TestFormatJobText:

    def test_renders_header_description_and_sections(self):
        text = format_job_text({
            "title": "Backend Engineer",
            "company": "Acme",
            "description": "Build services.",
            "responsibilities": ["Design APIs", "Review code"],
        })
        assert text == (
            "Job Title: Backend Engineer\n"
            "Company: Acme\n\n"
            "Description:\nBuild services.\n\n"
            "Responsibilities:\n- Design APIs\n- Review code"
        )

    @pytest.mark.parametrize("fields", [{}, {"title": None, "responsibilities": []}])
    def test_empty_fields_render_empty(self, fields):
        assert format_job_text(fields) == ""
