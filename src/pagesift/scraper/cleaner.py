"""DOM pruning: boilerplate removal with optional image preservation.

The rendered ``<body>`` markup is read from the live page once and pruned
offline with BeautifulSoup.  Rules run in a fixed order:

1. positive extraction (``target_selectors``)
2. tag removal
3. class removal
4. id removal
5. class/id substring patterns
6. cookie-consent selectors
7. caller-supplied ``remove_selectors``
8. empty-element pruning

When images are preserved, any removed element that contains ``<img>``
descendants first has those images moved up to its parent, so no
preserved image is dropped with its wrapper.

Every rule application produces a :class:`RuleOutcome`; a rule that fails
is recorded as skipped and the remaining rules still run.  Cleaning never
raises to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional, Sequence

from bs4 import BeautifulSoup, Tag
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from pagesift.core.schemas.extraction import ExtractionRequest
from pagesift.scraper.rules import CleaningRuleSet

logger = logging.getLogger(__name__)

_BODY_HTML_JS = "() => document.body ? document.body.innerHTML : ''"

# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RuleOutcome:
    """Result of applying one rule: applied (with a removal count) or skipped."""

    rule: str
    applied: bool
    removed: int = 0
    reason: Optional[str] = None

    @classmethod
    def ok(cls, rule: str, removed: int) -> "RuleOutcome":
        return cls(rule=rule, applied=True, removed=removed)

    @classmethod
    def skipped(cls, rule: str, reason: str) -> "RuleOutcome":
        return cls(rule=rule, applied=False, reason=reason)


@dataclass
class CleaningReport:
    """Pruned markup plus the outcome of every rule application."""

    html: str
    outcomes: list[RuleOutcome] = field(default_factory=list)

    @property
    def removed(self) -> int:
        return sum(o.removed for o in self.outcomes)

    @property
    def skipped(self) -> list[RuleOutcome]:
        return [o for o in self.outcomes if not o.applied]


# ---------------------------------------------------------------------------
# Tree helpers
# ---------------------------------------------------------------------------


def _is_attached(element: Tag, root: BeautifulSoup) -> bool:
    """``True`` if ``element`` is still part of ``root``'s tree."""
    node: Optional[Tag] = element
    while node is not None:
        if node is root:
            return True
        node = node.parent
    return False


def _hoist_images(element: Tag) -> None:
    """Move every ``<img>`` inside ``element`` to just before it."""
    if element.parent is None:
        return
    for image in element.find_all("img"):
        element.insert_before(image.extract())


def _remove_elements(
    elements: Iterable[Tag],
    root: BeautifulSoup,
    *,
    preserve_images: bool,
    image_selector: bool = False,
) -> int:
    """Remove ``elements`` from ``root``, honouring image preservation.

    Returns:
        Number of elements detached.
    """
    if preserve_images and image_selector:
        return 0
    removed = 0
    for element in list(elements):
        if not _is_attached(element, root):
            continue
        if preserve_images:
            if element.name == "img":
                continue
            _hoist_images(element)
        element.extract()
        removed += 1
    return removed


def _matches_pattern(element: Tag, patterns: Sequence[str]) -> bool:
    classes = element.get("class") or []
    if isinstance(classes, str):
        classes = [classes]
    class_text = " ".join(classes).lower()
    element_id = str(element.get("id") or "").lower()
    return any(p in class_text or p in element_id for p in patterns)


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def _extract_targets(soup: BeautifulSoup, selectors: Sequence[str]) -> tuple[BeautifulSoup, int]:
    """Collapse the document to the outer markup of every selector match."""
    fragments: list[str] = []
    for selector in selectors:
        try:
            fragments.extend(str(element) for element in soup.select(selector))
        except Exception as exc:  # noqa: BLE001
            logger.debug("scraper: target selector %r rejected: %s", selector, exc)
    if not fragments:
        return soup, 0
    joined = "\n".join(fragments)
    wrapped = BeautifulSoup(f'<div class="content-wrapper">{joined}</div>', "html.parser")
    return wrapped, len(fragments)


def _prune_empty(soup: BeautifulSoup, *, preserve_images: bool) -> int:
    """Remove childless, textless elements bottom-up."""
    candidates: list[Tag] = []
    stack: list[Tag] = [child for child in reversed(soup.find_all(True, recursive=False))]
    while stack:
        element = stack.pop()
        if preserve_images and (element.name == "img" or element.find("img") is not None):
            continue
        candidates.append(element)
        stack.extend(reversed(element.find_all(True, recursive=False)))

    removed = 0
    # Reversed pre-order visits every descendant before its ancestors.
    for element in reversed(candidates):
        if element.find(True) is None and not element.get_text(strip=True):
            element.extract()
            removed += 1
    return removed


def prune_html(
    html: str,
    rules: CleaningRuleSet,
    *,
    target_selectors: Sequence[str] = (),
    remove_selectors: Sequence[str] = (),
    preserve_images: bool = True,
) -> CleaningReport:
    """Apply the boilerplate rules to ``html``.

    Args:
        html: Body markup of the rendered page.
        rules: Cleaning rules from the rule store.
        target_selectors: If any match, only their markup is kept.
        remove_selectors: Extra selectors to remove.  A selector mentioning
            ``img`` is skipped entirely while images are preserved.
        preserve_images: Keep ``<img>`` elements, hoisting them out of
            removed wrappers.

    Returns:
        The pruned markup and one outcome per rule application.
    """
    outcomes: list[RuleOutcome] = []
    try:
        soup = BeautifulSoup(html, "html.parser")
    except Exception as exc:  # noqa: BLE001
        logger.warning("scraper: could not parse page markup, returning it unchanged: %s", exc)
        return CleaningReport(html=html, outcomes=[RuleOutcome.skipped("parse", str(exc))])

    def run(rule: str, action: Callable[[], int]) -> None:
        try:
            outcomes.append(RuleOutcome.ok(rule, action()))
        except Exception as exc:  # noqa: BLE001
            logger.warning("scraper: cleaning rule %s skipped: %s", rule, exc)
            outcomes.append(RuleOutcome.skipped(rule, str(exc)))

    if target_selectors:
        try:
            soup, matched = _extract_targets(soup, target_selectors)
            outcomes.append(RuleOutcome.ok("target_selectors", matched))
        except Exception as exc:  # noqa: BLE001
            logger.warning("scraper: positive extraction skipped: %s", exc)
            outcomes.append(RuleOutcome.skipped("target_selectors", str(exc)))

    for tag in rules.tag_selectors:
        run(
            f"tag:{tag}",
            lambda tag=tag: _remove_elements(
                soup.find_all(tag),
                soup,
                preserve_images=preserve_images,
                image_selector=tag.lower() == "img",
            ),
        )

    for class_name in rules.class_selectors:
        run(
            f"class:{class_name}",
            lambda class_name=class_name: _remove_elements(
                soup.find_all(class_=class_name), soup, preserve_images=preserve_images
            ),
        )

    for element_id in rules.id_selectors:
        run(
            f"id:{element_id}",
            lambda element_id=element_id: _remove_elements(
                soup.find_all(id=element_id), soup, preserve_images=preserve_images
            ),
        )

    if rules.contains_patterns:
        patterns = [p.lower() for p in rules.contains_patterns]
        run(
            "contains_in_class_or_id",
            lambda: _remove_elements(
                [el for el in soup.find_all(True) if _matches_pattern(el, patterns)],
                soup,
                preserve_images=preserve_images,
            ),
        )

    for selector in rules.cookie_selectors:
        run(
            f"cookie:{selector}",
            lambda selector=selector: _remove_elements(
                soup.select(selector), soup, preserve_images=preserve_images
            ),
        )

    for selector in remove_selectors:
        run(
            f"remove:{selector}",
            lambda selector=selector: _remove_elements(
                soup.select(selector),
                soup,
                preserve_images=preserve_images,
                image_selector="img" in selector.lower(),
            ),
        )

    run("empty_elements", lambda: _prune_empty(soup, preserve_images=preserve_images))

    report = CleaningReport(html=str(soup), outcomes=outcomes)
    logger.debug(
        "scraper: cleaning removed %d elements (%d rules skipped)",
        report.removed,
        len(report.skipped),
    )
    return report


async def clean_content(page: Page, request: ExtractionRequest, rules: CleaningRuleSet) -> str:
    """Return the cleaned body markup of ``page``.

    With ``aggressive_cleaning`` off, the body markup is returned exactly
    as rendered.  Never raises; on failure the best available markup (or
    an empty string) is returned.
    """
    try:
        body_html = await page.evaluate(_BODY_HTML_JS)
    except PlaywrightError as exc:
        logger.error("scraper: could not read page body: %s", exc)
        return ""
    body_html = body_html or ""

    if not request.aggressive_cleaning:
        return body_html

    try:
        report = prune_html(
            body_html,
            rules,
            target_selectors=request.target_selectors,
            remove_selectors=request.remove_selectors,
            preserve_images=request.preserve_images,
        )
    except Exception as exc:  # noqa: BLE001
        logger.error("scraper: content cleaning failed, using raw body: %s", exc)
        return body_html
    return report.html
