"""Unit tests for site map expansion using mocked httpx transports (respx)."""

from __future__ import annotations

import xml.etree.ElementTree as ET

import httpx
import pytest
import respx

from pagesift.crawl.sitemap import SitemapResolver

_NS = 'xmlns="http://www.sitemaps.org/schemas/sitemap/0.9"'


def _urlset(*locs: str, namespaced: bool = True) -> str:
    entries = "".join(f"<url><loc>{loc}</loc></url>" for loc in locs)
    return f'<?xml version="1.0"?><urlset {_NS if namespaced else ""}>{entries}</urlset>'


def _index(*locs: str) -> str:
    entries = "".join(f"<sitemap><loc>{loc}</loc></sitemap>" for loc in locs)
    return f'<?xml version="1.0"?><sitemapindex {_NS}>{entries}</sitemapindex>'


@pytest.mark.asyncio
class TestSitemapResolver:
    @respx.mock
    async def test_flat_urlset(self, settings) -> None:
        respx.get("https://site.test/sitemap.xml").mock(
            return_value=httpx.Response(
                200, text=_urlset("https://site.test/a", "https://site.test/b")
            )
        )
        urls = await SitemapResolver(settings).resolve("https://site.test/sitemap.xml")
        assert urls == ["https://site.test/a", "https://site.test/b"]

    @respx.mock
    async def test_sends_user_agent(self, settings) -> None:
        route = respx.get("https://site.test/sitemap.xml").mock(
            return_value=httpx.Response(200, text=_urlset("https://site.test/a"))
        )
        await SitemapResolver(settings).resolve("https://site.test/sitemap.xml")
        assert route.calls.last.request.headers["User-Agent"] == settings.user_agent

    @respx.mock
    async def test_namespace_less_document(self, settings) -> None:
        respx.get("https://site.test/sitemap.xml").mock(
            return_value=httpx.Response(200, text=_urlset("https://site.test/a", namespaced=False))
        )
        assert await SitemapResolver(settings).resolve("https://site.test/sitemap.xml") == [
            "https://site.test/a"
        ]

    @respx.mock
    async def test_nested_indexes_are_expanded_in_order(self, settings) -> None:
        respx.get("https://site.test/sitemap.xml").mock(
            return_value=httpx.Response(200, text=_index("/posts.xml", "/pages.xml"))
        )
        respx.get("https://site.test/posts.xml").mock(
            return_value=httpx.Response(
                200, text=_urlset("https://site.test/p1", "https://site.test/p2")
            )
        )
        respx.get("https://site.test/pages.xml").mock(
            return_value=httpx.Response(
                200, text=_urlset("https://site.test/about", "https://site.test/p1")
            )
        )
        urls = await SitemapResolver(settings).resolve("https://site.test/sitemap.xml")
        assert urls == ["https://site.test/p1", "https://site.test/p2", "https://site.test/about"]

    @respx.mock
    async def test_broken_nested_sitemap_is_skipped(self, settings) -> None:
        respx.get("https://site.test/sitemap.xml").mock(
            return_value=httpx.Response(200, text=_index("/ok.xml", "/gone.xml", "/junk.xml"))
        )
        respx.get("https://site.test/ok.xml").mock(
            return_value=httpx.Response(200, text=_urlset("https://site.test/a"))
        )
        respx.get("https://site.test/gone.xml").mock(return_value=httpx.Response(404))
        respx.get("https://site.test/junk.xml").mock(
            return_value=httpx.Response(200, text="<html>not xml")
        )
        urls = await SitemapResolver(settings).resolve("https://site.test/sitemap.xml")
        assert urls == ["https://site.test/a"]

    @respx.mock
    async def test_self_referencing_index_terminates(self, settings) -> None:
        respx.get("https://site.test/sitemap.xml").mock(
            return_value=httpx.Response(
                200, text=_index("https://site.test/sitemap.xml", "/leaf.xml")
            )
        )
        respx.get("https://site.test/leaf.xml").mock(
            return_value=httpx.Response(200, text=_urlset("https://site.test/a"))
        )
        urls = await SitemapResolver(settings).resolve("https://site.test/sitemap.xml")
        assert urls == ["https://site.test/a"]

    @respx.mock
    async def test_non_http_entries_are_dropped(self, settings) -> None:
        respx.get("https://site.test/sitemap.xml").mock(
            return_value=httpx.Response(
                200, text=_urlset("mailto:me@site.test", "https://site.test/a", "/relative")
            )
        )
        urls = await SitemapResolver(settings).resolve("https://site.test/sitemap.xml")
        assert urls == ["https://site.test/a", "https://site.test/relative"]

    @respx.mock
    async def test_top_level_http_error_raises(self, settings) -> None:
        respx.get("https://site.test/sitemap.xml").mock(return_value=httpx.Response(500))
        with pytest.raises(httpx.HTTPStatusError):
            await SitemapResolver(settings).resolve("https://site.test/sitemap.xml")

    @respx.mock
    async def test_top_level_parse_error_raises(self, settings) -> None:
        respx.get("https://site.test/sitemap.xml").mock(
            return_value=httpx.Response(200, text="definitely not xml <")
        )
        with pytest.raises(ET.ParseError):
            await SitemapResolver(settings).resolve("https://site.test/sitemap.xml")
