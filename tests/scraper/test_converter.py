"""Unit tests for HTML to markdown conversion and the markdown rule chain."""

from __future__ import annotations

import re

import pytest

from pagesift.core.exceptions import ConversionError
from pagesift.scraper.converter import apply_rule_chain, convert_to_markdown, html_to_markdown
from pagesift.scraper.rules import MarkdownRule, RuleStore, TransformKind, compile_markdown_rules

_SAMPLE = (
    "# Title\n\n"
    "Some paragraph text.\n"
    "## Section\n\n"
    "* item one\n"
    "* item two\n\n"
    "[Link](https://a.test)[Other](https://b.test)\n\n"
    "![A chart](chart.png)\n\n\n\n"
    "[](/products/blue-widget)\n\n"
    "##\n\n"
    "End"
)


@pytest.fixture(scope="module")
def bundled_chain() -> tuple[MarkdownRule, ...]:
    return RuleStore().markdown_rules()


class TestHtmlToMarkdown:
    def test_house_style(self) -> None:
        markdown = html_to_markdown("<h2>Heading</h2><ul><li>one</li><li>two</li></ul>")
        assert "## Heading" in markdown
        assert "* one" in markdown
        assert "* two" in markdown

    def test_empty_input(self) -> None:
        assert html_to_markdown("").strip() == ""

    def test_translation_failure_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def _boom(*args, **kwargs):
            raise RecursionError("too deep")

        monkeypatch.setattr("pagesift.scraper.converter.markdownify", _boom)
        with pytest.raises(ConversionError):
            html_to_markdown("<p>x</p>")


class TestApplyRuleChain:
    def test_double_empty_lines_scenario(self) -> None:
        chain = compile_markdown_rules({"double_empty_lines": "\n{3,}"})
        assert apply_rule_chain("a\n\n\n\nb", chain) == "a\nb"

    def test_bundled_chain_is_idempotent(self, bundled_chain) -> None:
        once = apply_rule_chain(_SAMPLE, bundled_chain)
        assert apply_rule_chain(once, bundled_chain) == once

    def test_bundled_chain_is_idempotent_when_removing_images(self, bundled_chain) -> None:
        once = apply_rule_chain(_SAMPLE, bundled_chain, remove_images=True)
        assert apply_rule_chain(once, bundled_chain, remove_images=True) == once

    @pytest.mark.parametrize(
        "markdown",
        [
            " #",
            "\t#\n\n### Title\n\nBody",
            "  \n* item\n[Link](https://a.test)",
            " * \n\n## \n\nText",
            "\t\n#\n#\n* a\n[b](/c)",
        ],
    )
    def test_leading_whitespace_still_reaches_a_fixed_point(
        self, bundled_chain, markdown: str
    ) -> None:
        once = apply_rule_chain(markdown, bundled_chain)
        assert apply_rule_chain(once, bundled_chain) == once

    def test_empty_header_exposed_by_trimming_is_removed(self, bundled_chain) -> None:
        assert apply_rule_chain(" #", bundled_chain) == ""
        assert apply_rule_chain("\t#\n\n### Title", bundled_chain) == "### Title"

    def test_images_become_placeholders_when_preserved(self, bundled_chain) -> None:
        result = apply_rule_chain(_SAMPLE, bundled_chain)
        assert "[;PLACEHOLDER_IMAGE: A chart]" in result
        assert "![" not in result

    def test_images_removed_when_requested(self, bundled_chain) -> None:
        result = apply_rule_chain(_SAMPLE, bundled_chain, remove_images=True)
        assert "chart.png" not in result
        assert "PLACEHOLDER_IMAGE" not in result

    def test_relative_link_gets_a_label(self, bundled_chain) -> None:
        result = apply_rule_chain(_SAMPLE, bundled_chain)
        assert "[Blue Widget](/products/blue-widget)" in result

    def test_adjacent_links_are_separated(self, bundled_chain) -> None:
        result = apply_rule_chain(_SAMPLE, bundled_chain)
        assert "[Link](https://a.test) [Other](https://b.test)" in result

    def test_headers_get_a_blank_line_before(self, bundled_chain) -> None:
        result = apply_rule_chain(_SAMPLE, bundled_chain)
        assert "Some paragraph text.\n\n## Section" in result

    def test_empty_headers_removed_and_blank_runs_collapsed(self, bundled_chain) -> None:
        result = apply_rule_chain(_SAMPLE, bundled_chain)
        assert "\n##\n" not in result
        assert "\n\n\n" not in result
        assert result.endswith("End")

    def test_failing_rule_is_skipped(self) -> None:
        bad = MarkdownRule("broken", re.compile(r"(x)"), TransformKind.BLANK_LINE_BETWEEN)
        empty_headers = re.compile(r"^#+$", re.MULTILINE)
        good = MarkdownRule("empty_headers", empty_headers, TransformKind.DELETE)
        assert apply_rule_chain("x\n##\ny", [bad, good]) == "x\n\ny"

    def test_doubled_closing_parens_repaired(self) -> None:
        assert apply_rule_chain("[a](https://x.test))", []) == "[a](https://x.test)"


class TestConvertToMarkdown:
    def test_without_aggressive_cleaning_returns_raw_translation(self, bundled_chain) -> None:
        html = "<p>one</p><p></p><p></p><p>two</p>"
        assert convert_to_markdown(
            html, aggressive_cleaning=False, chain=bundled_chain
        ) == html_to_markdown(html)

    def test_with_chain(self, bundled_chain) -> None:
        html = "<h1>Title</h1><p>Text <img src='x.png' alt='Logo'></p>"
        markdown = convert_to_markdown(html, chain=bundled_chain)
        assert markdown.startswith("# Title")
        assert "[;PLACEHOLDER_IMAGE: Logo]" in markdown

    @pytest.mark.parametrize(
        "html",
        [
            "\t<span>#</span>",
            " <span>#</span><h3>Title</h3><p>Body</p>",
            "<ul><li>one</li></ul><a href='/x'></a><a href='/a'>A</a><a href='/b'>B</a>",
        ],
    )
    def test_output_is_a_fixed_point_of_the_chain(self, bundled_chain, html: str) -> None:
        markdown = convert_to_markdown(html, chain=bundled_chain)
        assert apply_rule_chain(markdown, bundled_chain) == markdown
