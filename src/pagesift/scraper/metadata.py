"""Page metadata extraction and formatting."""

from __future__ import annotations

import logging
from typing import Mapping

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

logger = logging.getLogger(__name__)

_METADATA_JS = """
() => {
    const meta = (name) => {
        const element = document.querySelector(`meta[name="${name}"]`)
            || document.querySelector(`meta[property="${name}"]`);
        return element ? element.content : null;
    };
    const canonical = document.querySelector('link[rel="canonical"]');
    return {
        title: document.title || '',
        description: meta('description') || meta('og:description'),
        keywords: meta('keywords'),
        author: meta('author'),
        ogTitle: meta('og:title'),
        ogType: meta('og:type'),
        ogImage: meta('og:image'),
        canonical: canonical ? canonical.href : null,
        language: document.documentElement.lang || '',
    };
}
"""


async def extract_metadata(page: Page) -> dict[str, str]:
    """Read title, description, Open Graph tags, canonical URL and language.

    Empty values are dropped.  Returns an empty dict if the page cannot be
    evaluated.
    """
    try:
        raw = await page.evaluate(_METADATA_JS)
    except PlaywrightError as exc:
        logger.warning("scraper: metadata extraction failed: %s", exc)
        return {}
    if not isinstance(raw, dict):
        return {}
    return {key: str(value) for key, value in raw.items() if value}


def format_metadata(metadata: Mapping[str, str]) -> str:
    """Render metadata as ``Key: value`` lines, key capitalised."""
    return "\n".join(f"{key[:1].upper()}{key[1:]}: {value}" for key, value in metadata.items())
