"""Rule Store: boilerplate-removal rules and the markdown rule chain.

Rules live in JSON files (bundled in ``rules_data/`` or in the directory
named by the ``RULES_DIR`` setting):

``header_footer_tags.json``       list of tag names
``header_footer_classes.json``    list of class names
``header_footer_ids.json``        list of element ids
``contains_in_class_or_id.json``  list of case-insensitive substrings
``cookies_consent.json``          list of CSS selectors
``markdown_rules.json``           ordered object of rule name -> pattern

Each file is read once per :class:`RuleStore` and cached for the lifetime
of the process.  A missing or malformed file degrades to an empty rule list
and is logged; it never prevents extraction.

Markdown rules are compiled into :class:`MarkdownRule` values.  The
transform applied by each rule is a closed :class:`TransformKind` chosen
from the rule's name (or given explicitly as ``{"pattern": ..., "kind":
...}`` in the JSON file), and the declared order of the JSON object is the
order the chain runs in.
"""

from __future__ import annotations

import enum
import json
import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from pagesift.config.settings import get_settings

logger = logging.getLogger(__name__)

BUNDLED_RULES_DIR: Path = Path(__file__).parent / "rules_data"

# ---------------------------------------------------------------------------
# Rule types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CleaningRuleSet:
    """Immutable boilerplate-removal rules, in application order."""

    tag_selectors: tuple[str, ...] = ()
    class_selectors: tuple[str, ...] = ()
    id_selectors: tuple[str, ...] = ()
    contains_patterns: tuple[str, ...] = ()
    cookie_selectors: tuple[str, ...] = ()


class TransformKind(str, enum.Enum):
    """Closed set of markdown rule transforms."""

    COLLAPSE_TO_NEWLINE = "collapse_to_newline"
    BLANK_LINE_BETWEEN = "blank_line_between"
    DELETE = "delete"
    SPACE_BETWEEN = "space_between"
    FIRST_GROUP = "first_group"
    PARAGRAPH_BREAK = "paragraph_break"
    NEWLINE_BEFORE = "newline_before"
    REBUILD_LINK = "rebuild_link"
    SPLIT_LINK_TEXT = "split_link_text"
    BRAND_LINK = "brand_link"
    IMAGE_PLACEHOLDER = "image_placeholder"


#: Transform used for each well-known rule name.  Unknown names delete
#: their matches.
KIND_BY_RULE_NAME: dict[str, TransformKind] = {
    "double_empty_lines": TransformKind.COLLAPSE_TO_NEWLINE,
    "line_breaks_before_headers": TransformKind.BLANK_LINE_BETWEEN,
    "list_items_followed_by_bracket": TransformKind.BLANK_LINE_BETWEEN,
    "markdown_images": TransformKind.DELETE,
    "markdown_links_or_images": TransformKind.DELETE,
    "headers_with_markdown_links": TransformKind.DELETE,
    "empty_headers": TransformKind.DELETE,
    "empty_hash": TransformKind.DELETE,
    "remove_asterisks": TransformKind.DELETE,
    "empty_markdown_links": TransformKind.DELETE,
    "adjacent_links": TransformKind.SPACE_BETWEEN,
    "markdown_links_starting_with_hash": TransformKind.FIRST_GROUP,
    "extra_lines": TransformKind.PARAGRAPH_BREAK,
    "content_followed_by_dashes": TransformKind.NEWLINE_BEFORE,
    "clean_links": TransformKind.REBUILD_LINK,
    "fix_missing_bracket": TransformKind.REBUILD_LINK,
    "remove_outer_link": TransformKind.REBUILD_LINK,
    "link_followed_by_text_and_equals": TransformKind.SPLIT_LINK_TEXT,
    "relative_url_link": TransformKind.BRAND_LINK,
    "replace_placeholder_images": TransformKind.IMAGE_PLACEHOLDER,
}


@dataclass(frozen=True)
class MarkdownRule:
    """One compiled step of the markdown rule chain."""

    name: str
    pattern: re.Pattern[str]
    kind: TransformKind

    @property
    def is_image_rule(self) -> bool:
        return "image" in self.name


def compile_markdown_rules(raw: dict[str, Any]) -> tuple[MarkdownRule, ...]:
    """Compile an ordered ``name -> pattern`` mapping into a rule chain.

    Values are either a regex string or ``{"pattern": str, "kind": str}``.
    Patterns are compiled with ``re.MULTILINE``.  An entry that cannot be
    compiled is logged and left out of the chain.

    Args:
        raw: Mapping in declaration order.

    Returns:
        The rule chain, preserving the mapping's order.
    """
    chain: list[MarkdownRule] = []
    for name, entry in raw.items():
        try:
            if isinstance(entry, dict):
                pattern_text = entry["pattern"]
                kind = TransformKind(entry.get("kind") or KIND_BY_RULE_NAME.get(name, "delete"))
            else:
                pattern_text = entry
                kind = KIND_BY_RULE_NAME.get(name, TransformKind.DELETE)
            chain.append(MarkdownRule(name, re.compile(pattern_text, re.MULTILINE), kind))
        except (KeyError, TypeError, ValueError, re.error) as exc:
            logger.warning("scraper: skipping markdown rule %s: %s", name, exc)
    return tuple(chain)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class RuleStore:
    """Load-or-return-cached access to the rule files in one directory.

    Args:
        rules_dir: Directory holding the JSON files.  ``None`` selects the
            rules bundled with the package.
    """

    def __init__(self, rules_dir: Optional[Path] = None) -> None:
        self._rules_dir = Path(rules_dir) if rules_dir is not None else BUNDLED_RULES_DIR
        self._cleaning: Optional[CleaningRuleSet] = None
        self._markdown: Optional[tuple[MarkdownRule, ...]] = None

    @property
    def rules_dir(self) -> Path:
        return self._rules_dir

    def cleaning_rules(self) -> CleaningRuleSet:
        """Return the boilerplate-removal rules, reading them on first use."""
        if self._cleaning is None:
            self._cleaning = CleaningRuleSet(
                tag_selectors=self._read_list("header_footer_tags.json"),
                class_selectors=self._read_list("header_footer_classes.json"),
                id_selectors=self._read_list("header_footer_ids.json"),
                contains_patterns=self._read_list("contains_in_class_or_id.json"),
                cookie_selectors=self._read_list("cookies_consent.json"),
            )
            logger.info(
                "scraper: cleaning rules loaded from %s (%d tags, %d classes, %d ids, "
                "%d patterns, %d cookie selectors)",
                self.rules_dir,
                len(self._cleaning.tag_selectors),
                len(self._cleaning.class_selectors),
                len(self._cleaning.id_selectors),
                len(self._cleaning.contains_patterns),
                len(self._cleaning.cookie_selectors),
            )
        return self._cleaning

    def markdown_rules(self) -> tuple[MarkdownRule, ...]:
        """Return the compiled markdown rule chain, reading it on first use."""
        if self._markdown is None:
            raw = self._read_json("markdown_rules.json")
            if not isinstance(raw, dict):
                if raw is not None:
                    logger.warning("scraper: markdown_rules.json is not an object; ignoring")
                raw = {}
            self._markdown = compile_markdown_rules(raw)
            logger.info("scraper: %d markdown rules loaded", len(self._markdown))
        return self._markdown

    # ------------------------------------------------------------------

    def _read_json(self, filename: str) -> Any:
        path = self.rules_dir / filename
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.warning("scraper: rule file %s not found; using no rules", path)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("scraper: rule file %s unreadable (%s); using no rules", path, exc)
        return None

    def _read_list(self, filename: str) -> tuple[str, ...]:
        data = self._read_json(filename)
        if data is None:
            return ()
        if not isinstance(data, list):
            logger.warning("scraper: rule file %s is not a list; using no rules", filename)
            return ()
        return tuple(str(item) for item in data if str(item).strip())


@lru_cache
def get_rule_store() -> RuleStore:
    """Return the process-wide :class:`RuleStore` for the configured directory."""
    return RuleStore(get_settings().rules_dir)
