#!/usr/bin/env python3
"""
PageBench Single Fetch Module

Modular functions for fetching and saving individual benchmark pages.
Handles page rendering, link discovery, title sanitizing and file writes.

This module is used by fetch_pages.py and provides:
- extract_links(): Regex link scan of a seed page
- sanitize_title(): Page title -> filesystem-safe file stem
- fetch_page(): Headless-browser fetch, one browser per call
- SharedBrowser: One browser per run, one isolated context per fetch
- fetch_page_http(): Plain aiohttp fetch for static pages
- save_page(): Write page bytes to disk
"""

from __future__ import annotations

import asyncio
import html as html_lib
import os
import re
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from http import HTTPStatus
from typing import List, Optional
from urllib.parse import urljoin, urlsplit

import aiohttp
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeout
from playwright.async_api import async_playwright


DEFAULT_TIMEOUT_MS = 20_000
BROWSER_ARGS = ["--lang=en-US"]

# Tolerant <a ... href="..."> scan; not an HTML parser. Unquoted or
# single-quoted hrefs are missed on purpose.
_LINK_RE = re.compile(r'<a\s+(?:[^>]*?\s+)?href="([^"]*)"', re.IGNORECASE)
_TITLE_RE = re.compile(r"<title[^>]*>(.*?)</title\s*>", re.IGNORECASE | re.DOTALL)
_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*:", re.IGNORECASE)

_ILLEGAL_RE = re.compile(r'[<>:"/\\|?*]')
_CONTROL_RE = re.compile(r"[\x00-\x1f\x80-\x9f]")
_RESERVED_RE = re.compile(r"^\.+$")
_WINDOWS_RESERVED_RE = re.compile(r"^(con|prn|aux|nul|com\d|lpt\d)$", re.IGNORECASE)
_WINDOWS_TRAILING_RE = re.compile(r"[. ]+$")


class FetchError(Exception):
    """A single page could not be fetched (timeout, navigation or HTTP failure)."""

    def __init__(self, url: str, kind: str, message: str):
        super().__init__(f"{kind} error fetching {url}: {message}")
        self.url = url
        self.kind = kind


class PersistError(Exception):
    """Output directory or page file could not be written."""


@dataclass
class FetchedPage:
    """A fetched page; consumed immediately by persistence."""
    url: str
    title: str
    html: str


# =============================================================================
# LINK DISCOVERY AND NAMING
# =============================================================================

def extract_links(base_url: str, html: str, max_count: int) -> List[str]:
    """
    Scan a page for anchor links and return up to `max_count` absolute URLs.

    Args:
        base_url: URL of the page being scanned (its origin resolves relative links)
        html: Page HTML
        max_count: Maximum number of distinct links to collect

    Returns:
        Distinct absolute URLs in first-seen order (may be empty)
    """
    if max_count <= 0:
        return []

    parts = urlsplit(base_url)
    origin = f"{parts.scheme}://{parts.netloc}"
    # Path-relative links resolve against the origin root
    root = origin + "/"

    # dict keeps insertion order; used as an ordered set
    links: dict[str, None] = {}

    for match in _LINK_RE.finditer(html):
        link = match.group(1)
        if link.startswith("#"):
            continue
        if link.startswith("//"):
            link = f"{parts.scheme}:{link}"
        elif link.startswith("/"):
            link = origin + link
        elif _SCHEME_RE.match(link):
            # Skip mailto:, javascript:, data: and other non-http schemes
            if not link.lower().startswith(("http://", "https://")):
                continue
        else:
            link = urljoin(root, link)
        links[link] = None
        if len(links) >= max_count:
            break

    return list(links)


def sanitize_title(title: str) -> str:
    """
    Clean a page title for use as a file stem.

    Args:
        title: Raw page title

    Returns:
        Title without illegal/control characters, reserved device names or
        trailing dots/spaces. Empty if nothing usable remains.
    """
    name = _ILLEGAL_RE.sub("", title)
    name = _CONTROL_RE.sub("", name)
    name = _RESERVED_RE.sub("", name)
    name = _WINDOWS_RESERVED_RE.sub("", name)
    name = _WINDOWS_TRAILING_RE.sub("", name)
    return name.strip()


def title_from_html(html: str) -> str:
    """Pull the <title> text out of raw HTML (empty if absent)."""
    match = _TITLE_RE.search(html)
    if not match:
        return ""
    return " ".join(html_lib.unescape(match.group(1)).split())


# =============================================================================
# FETCHERS
# =============================================================================

@contextmanager
def _playwright_errors(url: str):
    """Map any Playwright failure raised inside the block to FetchError."""
    try:
        yield
    except PlaywrightTimeout as e:
        raise FetchError(url, "timeout", str(e)) from e
    except PlaywrightError as e:
        raise FetchError(url, "navigation", str(e)) from e


async def _render(page, url: str, timeout_ms: int) -> FetchedPage:
    """Navigate an open page and read title + serialized DOM."""
    await page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
    title = await page.title()
    content = await page.content()
    return FetchedPage(url=url, title=title, html=content)


async def fetch_page(url: str, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> FetchedPage:
    """
    Fetch one page in its own headless browser.

    A fresh browser is launched for every call and always closed, on both
    success and failure.

    Args:
        url: Page URL
        timeout_ms: Navigation timeout (until DOMContentLoaded)

    Returns:
        FetchedPage with title and serialized HTML

    Raises:
        FetchError: On timeout, launch or navigation failure
    """
    with _playwright_errors(url):
        async with async_playwright() as pw:
            browser = await pw.chromium.launch(args=BROWSER_ARGS)
            try:
                page = await browser.new_page()
                return await _render(page, url, timeout_ms)
            finally:
                await browser.close()


class SharedBrowser:
    """
    Long-lived browser reused across fetches.

    Each fetch still gets its own isolated context, closed after the fetch.
    Use as an async context manager around a whole run.
    """

    def __init__(self, timeout_ms: int = DEFAULT_TIMEOUT_MS):
        self.timeout_ms = timeout_ms
        self._pw_cm = None
        self._browser = None

    async def __aenter__(self) -> "SharedBrowser":
        self._pw_cm = async_playwright()
        pw = await self._pw_cm.__aenter__()
        try:
            self._browser = await pw.chromium.launch(args=BROWSER_ARGS)
        except BaseException:
            await self._pw_cm.__aexit__(None, None, None)
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            if self._browser is not None:
                await self._browser.close()
        finally:
            self._browser = None
            await self._pw_cm.__aexit__(exc_type, exc, tb)

    async def fetch(self, url: str) -> FetchedPage:
        if self._browser is None:
            raise RuntimeError("SharedBrowser used outside of 'async with'")
        with _playwright_errors(url):
            context = await self._browser.new_context(locale="en-US")
            try:
                page = await context.new_page()
                return await _render(page, url, self.timeout_ms)
            finally:
                await context.close()


async def fetch_page_http(
    session: aiohttp.ClientSession,
    url: str,
    timeout: float
) -> FetchedPage:
    """
    Fetch one page via plain HTTP GET (no script execution).

    Args:
        session: aiohttp ClientSession
        url: Page URL
        timeout: Request timeout in seconds

    Returns:
        FetchedPage with title taken from <title>

    Raises:
        FetchError: On timeout, connection error or non-200 status
    """
    try:
        async with session.get(url, timeout=aiohttp.ClientTimeout(total=timeout)) as response:
            if response.status != 200:
                try:
                    status_name = HTTPStatus(response.status).phrase
                except ValueError:
                    status_name = "Unknown"
                raise FetchError(url, "http", f"HTTP {response.status}: {status_name}")
            text = await response.text(errors="replace")
    except asyncio.TimeoutError as e:
        raise FetchError(url, "timeout", "Request Timeout") from e
    except aiohttp.ClientError as e:
        raise FetchError(url, "navigation", f"Connection Error: {e}") from e

    return FetchedPage(url=url, title=title_from_html(text), html=text)


# =============================================================================
# SAVING
# =============================================================================

def save_page(content: bytes, file_path: str) -> int:
    """
    Write page content to `file_path`.

    Returns:
        Number of bytes written

    Raises:
        PersistError: If the file cannot be written
    """
    try:
        with open(file_path, "wb") as f:
            f.write(content)
        return os.path.getsize(file_path)
    except OSError as e:
        raise PersistError(f"Failed to write {file_path}: {e}") from e


# Standalone main for testing a single page fetch
async def main_single(url: Optional[str] = None) -> None:
    """
    Fetch one page and print its title.
    Can be called directly for debugging.
    """
    url = url or "https://en.wikipedia.org/wiki/Rust_(programming_language)"
    try:
        page = await fetch_page(url)
    except FetchError as e:
        print(f"Error: {e}")
        return

    print(f"Success: {page.url}")
    print(f"  Title:     {page.title}")
    print(f"  Sanitized: {sanitize_title(page.title)}")
    print(f"  Size:      {len(page.html.encode('utf-8'))} bytes")
    print(f"  Links:     {len(extract_links(url, page.html, 1000))}")


if __name__ == "__main__":
    asyncio.run(main_single(sys.argv[1] if len(sys.argv) > 1 else None))
