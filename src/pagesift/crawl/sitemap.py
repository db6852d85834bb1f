"""Site-map expansion for crawl jobs.

Downloads a ``urlset`` or ``sitemapindex`` document with httpx and returns
the page URLs it lists.  Nested site maps referenced from an index are
expanded recursively (depth-bounded, each site map fetched at most once).
Namespaced and namespace-less documents are both accepted.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import Optional
from urllib.parse import urljoin, urlparse

import httpx

from pagesift.config.settings import Settings

logger = logging.getLogger(__name__)

#: Maximum nesting of sitemap indexes followed from the submitted site map.
MAX_SITEMAP_DEPTH: int = 5


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1] if "}" in tag else tag


def _locs(root: ET.Element, parent: str) -> list[str]:
    """``<loc>`` texts of every ``parent`` element under ``root``."""
    found: list[str] = []
    for element in root.iter():
        if _local_name(element.tag) != parent:
            continue
        for child in element:
            if _local_name(child.tag) == "loc" and child.text and child.text.strip():
                found.append(child.text.strip())
    return found


def _is_valid_page_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class SitemapResolver:
    """Resolve a site map URL to the flat list of page URLs it references.

    Args:
        settings: Supplies the fetch timeout and user agent.
        client: Optional shared ``httpx.AsyncClient``; a short-lived client
            is created per :meth:`resolve` call otherwise.
    """

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> None:
        self._settings = settings
        self._client = client

    async def resolve(self, sitemap_url: str) -> list[str]:
        """Return the de-duplicated page URLs, in document order.

        Raises:
            httpx.HTTPError: If the submitted site map cannot be downloaded.
            ET.ParseError: If the submitted site map is not XML.
        """
        if self._client is not None:
            return await self._resolve_with(self._client, sitemap_url)
        async with httpx.AsyncClient(
            timeout=self._settings.sitemap_timeout,
            follow_redirects=True,
            headers={
                "User-Agent": self._settings.user_agent,
                "Accept": "application/xml,text/xml,*/*",
            },
        ) as client:
            return await self._resolve_with(client, sitemap_url)

    async def _resolve_with(self, client: httpx.AsyncClient, sitemap_url: str) -> list[str]:
        seen_sitemaps: set[str] = set()
        urls: list[str] = []
        await self._expand(client, sitemap_url, 0, seen_sitemaps, urls)

        unique: list[str] = []
        seen_urls: set[str] = set()
        for url in urls:
            if url in seen_urls or not _is_valid_page_url(url):
                continue
            seen_urls.add(url)
            unique.append(url)
        logger.info("crawl: site map %s expanded to %d URLs", sitemap_url, len(unique))
        return unique

    async def _expand(
        self,
        client: httpx.AsyncClient,
        sitemap_url: str,
        depth: int,
        seen: set[str],
        urls: list[str],
    ) -> None:
        seen.add(sitemap_url)
        response = await client.get(sitemap_url)
        response.raise_for_status()
        root = ET.fromstring(response.content)

        urls.extend(urljoin(sitemap_url, loc) for loc in _locs(root, "url"))

        for nested in _locs(root, "sitemap"):
            nested_url = urljoin(sitemap_url, nested)
            if nested_url in seen:
                continue
            if depth + 1 > MAX_SITEMAP_DEPTH:
                logger.warning("crawl: site map nesting too deep, skipping %s", nested_url)
                continue
            try:
                await self._expand(client, nested_url, depth + 1, seen, urls)
            except (httpx.HTTPError, ET.ParseError) as exc:
                logger.warning("crawl: nested site map %s skipped: %s", nested_url, exc)
