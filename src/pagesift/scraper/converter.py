"""HTML to markdown conversion and the markdown rule chain.

HTML is translated with markdownify (``*`` bullets, ATX headings, fenced
code blocks).  With aggressive cleaning on, the compiled rule chain from
the rule store then runs in its declared order, each rule's transform
selected by its :class:`~pagesift.scraper.rules.TransformKind`.

While images are preserved (``remove_images=False``) rules whose name
mentions ``image`` are skipped, except the placeholder rule, which turns
image markdown into ``[;PLACEHOLDER_IMAGE: <alt>]`` markers.
"""

from __future__ import annotations

import logging
import re
from typing import Sequence

from markdownify import ATX, markdownify

from pagesift.core.exceptions import ConversionError
from pagesift.scraper.rules import MarkdownRule, TransformKind

logger = logging.getLogger(__name__)

#: ``re.sub`` templates for every kind that is a plain substitution.
_TEMPLATES: dict[TransformKind, str] = {
    TransformKind.COLLAPSE_TO_NEWLINE: "\n",
    TransformKind.BLANK_LINE_BETWEEN: r"\g<1>\n\n\g<2>",
    TransformKind.DELETE: "",
    TransformKind.SPACE_BETWEEN: r"\g<1> \g<2>",
    TransformKind.FIRST_GROUP: r"\g<1>",
    TransformKind.PARAGRAPH_BREAK: "\n\n",
    TransformKind.NEWLINE_BEFORE: r"\n\g<1>\g<2>",
    TransformKind.REBUILD_LINK: r"[\g<1>](\g<2>)",
    TransformKind.SPLIT_LINK_TEXT: r"\g<1>\n\n\g<2>\n\g<3>",
}

_BLANK_LINE_RUN = re.compile(r"\n\s*\n\s*\n")
_DOUBLED_CLOSING_PARENS = re.compile(r"(\[.*?\]\(.*?)\)+")

# Passes until the chain reaches a fixed point.
_MAX_CHAIN_PASSES = 4


def html_to_markdown(html: str) -> str:
    """Translate HTML to markdown with the fixed house style.

    Raises:
        ConversionError: If the markup cannot be translated at all.
    """
    try:
        return markdownify(html or "", heading_style=ATX, bullets="*")
    except Exception as exc:
        raise ConversionError(f"HTML to markdown translation failed: {exc}") from exc


def _brand_link(match: re.Match[str]) -> str:
    target = match.group(1) or ""
    slug = target.rstrip("/").rsplit("/", 1)[-1]
    if not slug:
        return match.group(0)
    label = " ".join(word[:1].upper() + word[1:] for word in slug.split("-"))
    return f"[{label}]({target})"


def _image_placeholder(match: re.Match[str]) -> str:
    alt = (match.group(1) or "").strip() if match.re.groups else ""
    return f"[;PLACEHOLDER_IMAGE: {alt or 'Image'}]"


def _apply_rule(text: str, rule: MarkdownRule) -> str:
    """Apply one rule according to its transform kind."""
    if rule.kind is TransformKind.BRAND_LINK:
        return rule.pattern.sub(_brand_link, text)
    if rule.kind is TransformKind.IMAGE_PLACEHOLDER:
        return rule.pattern.sub(_image_placeholder, text)
    return rule.pattern.sub(_TEMPLATES[rule.kind], text)


def _run_chain_once(text: str, chain: Sequence[MarkdownRule], *, remove_images: bool) -> str:
    for rule in chain:
        if (
            not remove_images
            and rule.is_image_rule
            and rule.kind is not TransformKind.IMAGE_PLACEHOLDER
        ):
            continue
        try:
            text = _apply_rule(text, rule)
        except Exception as exc:  # noqa: BLE001
            logger.warning("scraper: markdown rule %s failed and was skipped: %s", rule.name, exc)

    text = text.strip()
    text = _BLANK_LINE_RUN.sub("\n\n", text)
    text = _DOUBLED_CLOSING_PARENS.sub(r"\1)", text)
    return text.strip()


def apply_rule_chain(
    markdown: str,
    chain: Sequence[MarkdownRule],
    *,
    remove_images: bool = False,
) -> str:
    """Run ``chain`` over ``markdown`` in order, then normalise whitespace.

    A rule that raises is logged and skipped; the chain always completes.
    Each pass ends by trimming the text, collapsing runs of blank lines and
    repairing doubled closing parentheses left after links.  Trimming can
    expose a new first line to the ``^``-anchored rules, so passes repeat
    until the output stops changing, which makes the result a fixed point
    of the chain.
    """
    text = markdown.strip()
    for _ in range(_MAX_CHAIN_PASSES):
        following = _run_chain_once(text, chain, remove_images=remove_images)
        if following == text:
            break
        text = following
    return text


def convert_to_markdown(
    html: str,
    *,
    aggressive_cleaning: bool = True,
    remove_images: bool = False,
    chain: Sequence[MarkdownRule] = (),
) -> str:
    """Convert cleaned HTML to markdown.

    Args:
        html: Markup produced by the cleaner.
        aggressive_cleaning: Apply ``chain``; otherwise return the raw
            translation.
        remove_images: Run the image-removal rules instead of placeholders.
        chain: Compiled markdown rules, usually
            ``RuleStore.markdown_rules()``.

    Raises:
        ConversionError: If the HTML cannot be translated.
    """
    markdown = html_to_markdown(html)
    if not aggressive_cleaning:
        return markdown
    return apply_rule_chain(markdown, chain, remove_images=remove_images)
