"""Unit tests for the rule store.

Tests bundled rule loading, caching, degradation on missing or malformed
files, and compilation of the markdown rule chain (order, transform kinds,
explicit kinds and invalid patterns).
"""

from __future__ import annotations

import json
from pathlib import Path

from pagesift.scraper.rules import (
    BUNDLED_RULES_DIR,
    RuleStore,
    TransformKind,
    compile_markdown_rules,
)


# ---------------------------------------------------------------------------
# compile_markdown_rules
# ---------------------------------------------------------------------------


class TestCompileMarkdownRules:
    def test_preserves_declared_order(self) -> None:
        chain = compile_markdown_rules(
            {"remove_asterisks": r"^\*$", "double_empty_lines": r"\n{3,}", "empty_headers": "^#$"}
        )
        assert [rule.name for rule in chain] == [
            "remove_asterisks",
            "double_empty_lines",
            "empty_headers",
        ]

    def test_known_names_get_their_kind(self) -> None:
        chain = compile_markdown_rules(
            {
                "double_empty_lines": r"\n{3,}",
                "adjacent_links": r"(\))(\[)",
                "relative_url_link": r"\[\]\((/\S+)\)",
            }
        )
        kinds = {rule.name: rule.kind for rule in chain}
        assert kinds["double_empty_lines"] is TransformKind.COLLAPSE_TO_NEWLINE
        assert kinds["adjacent_links"] is TransformKind.SPACE_BETWEEN
        assert kinds["relative_url_link"] is TransformKind.BRAND_LINK

    def test_unknown_name_deletes_matches(self) -> None:
        (rule,) = compile_markdown_rules({"strip_tracking_footer": "Sent from my phone"})
        assert rule.kind is TransformKind.DELETE

    def test_explicit_kind_overrides_name(self) -> None:
        (rule,) = compile_markdown_rules(
            {"my_rule": {"pattern": r"(a)(b)", "kind": "space_between"}}
        )
        assert rule.kind is TransformKind.SPACE_BETWEEN

    def test_invalid_pattern_is_dropped(self) -> None:
        chain = compile_markdown_rules({"broken": "([unclosed", "empty_headers": "^#+$"})
        assert [rule.name for rule in chain] == ["empty_headers"]

    def test_unknown_explicit_kind_is_dropped(self) -> None:
        assert compile_markdown_rules({"odd": {"pattern": "x", "kind": "explode"}}) == ()

    def test_patterns_are_multiline(self) -> None:
        (rule,) = compile_markdown_rules({"empty_headers": r"^#+$"})
        assert rule.pattern.findall("text\n##\nmore") == ["##"]

    def test_image_rules_are_flagged(self) -> None:
        chain = compile_markdown_rules({"markdown_images": "!x", "empty_headers": "^#$"})
        assert [rule.is_image_rule for rule in chain] == [True, False]


# ---------------------------------------------------------------------------
# RuleStore
# ---------------------------------------------------------------------------


class TestRuleStore:
    def test_defaults_to_bundled_rules(self) -> None:
        store = RuleStore()
        assert store.rules_dir == BUNDLED_RULES_DIR
        rules = store.cleaning_rules()
        assert "header" in rules.tag_selectors
        assert "cookie" in rules.contains_patterns
        assert rules.cookie_selectors

    def test_bundled_markdown_chain_starts_with_double_empty_lines(self) -> None:
        chain = RuleStore().markdown_rules()
        assert chain[0].name == "double_empty_lines"
        assert all(isinstance(rule.kind, TransformKind) for rule in chain)

    def test_rules_are_cached(self, tmp_path: Path) -> None:
        (tmp_path / "header_footer_tags.json").write_text('["nav"]', encoding="utf-8")
        store = RuleStore(tmp_path)
        first = store.cleaning_rules()
        (tmp_path / "header_footer_tags.json").write_text('["footer"]', encoding="utf-8")
        assert store.cleaning_rules() is first
        assert first.tag_selectors == ("nav",)

    def test_missing_files_degrade_to_empty(self, tmp_path: Path) -> None:
        store = RuleStore(tmp_path)
        rules = store.cleaning_rules()
        assert rules.tag_selectors == ()
        assert rules.cookie_selectors == ()
        assert store.markdown_rules() == ()

    def test_malformed_files_degrade_to_empty(self, tmp_path: Path) -> None:
        (tmp_path / "header_footer_tags.json").write_text("{not json", encoding="utf-8")
        (tmp_path / "header_footer_ids.json").write_text('{"a": 1}', encoding="utf-8")
        (tmp_path / "markdown_rules.json").write_text('["not", "an", "object"]', encoding="utf-8")
        store = RuleStore(tmp_path)
        assert store.cleaning_rules().tag_selectors == ()
        assert store.cleaning_rules().id_selectors == ()
        assert store.markdown_rules() == ()

    def test_custom_markdown_rules(self, tmp_path: Path) -> None:
        (tmp_path / "markdown_rules.json").write_text(
            json.dumps({"double_empty_lines": "\\n{3,}"}), encoding="utf-8"
        )
        (rule,) = RuleStore(tmp_path).markdown_rules()
        assert rule.pattern.pattern == "\\n{3,}"
