"""
Article URL discovery from site listing pages.

For each configured site, every listing page is rendered through the shared
browser and its anchors are matched against the site's link selector. A link
is kept only when it stays on the site's host, avoids every exclude pattern
and matches at least one article-shaped include pattern. URLs already returned
earlier in the process are suppressed until ``clear_seen()``.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from ..config import DiscoveryConfig, SiteConfig
from ..core.errors import ErrorKind
from ..core.types import PipelineError, record_error
from ..logging_utils import log_event
from .browser import PageRenderer
from .pool import SleepFn

EXCLUDE_PATTERNS = (
    re.compile(r"/search/"),
    re.compile(r"/category/"),
    re.compile(r"/tag/"),
    re.compile(r"/author/"),
    re.compile(r"/page/"),
    re.compile(r"\.(jpg|jpeg|png|gif|pdf|doc|docx)$", re.IGNORECASE),
    re.compile(r"#"),
    re.compile(r"javascript:"),
    re.compile(r"mailto:"),
)

INCLUDE_PATTERNS = (
    re.compile(r"/news/"),
    re.compile(r"/article"),
    re.compile(r"/politik"),
    re.compile(r"/politics"),
    re.compile(r"NewsArchive"),
    re.compile(r"artikel\.php"),
    re.compile(r"/20\d{2}/\d{2}/"),
)

_BARE_LISTING_RE = re.compile(r"/news/?$")


def build_listing_url(base_url: str, path: str) -> str:
    if path.startswith("http://") or path.startswith("https://"):
        return path
    clean_base = base_url.rstrip("/")
    clean_path = path if path.startswith("/") else f"/{path}"
    return f"{clean_base}{clean_path}"


def is_article_url(url: str, site: SiteConfig) -> bool:
    """Check a resolved link against the host, exclude and include rules."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return False
    if parsed.hostname != urlparse(site.base_url).hostname:
        return False
    if any(pattern.search(url) for pattern in EXCLUDE_PATTERNS):
        return False
    if _BARE_LISTING_RE.search(url):
        return False
    return any(pattern.search(url) for pattern in INCLUDE_PATTERNS)


def extract_links(html: str, site: SiteConfig) -> list[str]:
    """Collect absolute hrefs matched by the site's link selector, in page order."""
    soup = BeautifulSoup(html, "html.parser")
    links: list[str] = []
    for element in soup.select(site.selectors.article_links):
        href = element.get("href")
        if not href:
            continue
        href = str(href).strip()
        if href.lower().startswith(("javascript:", "mailto:")):
            links.append(href)
            continue
        links.append(urljoin(site.base_url + "/", href))
    return links


class SourceDiscovery:
    """Discovers candidate article URLs and remembers what it has emitted.

    Args:
        cfg: Pause settings
        logger: Optional pipeline logger
        sleep: Awaitable sleep used for polite pauses; injectable for tests
    """

    def __init__(
        self,
        cfg: DiscoveryConfig | None = None,
        logger: logging.Logger | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.cfg = cfg or DiscoveryConfig()
        self.logger = logger
        self._sleep = sleep
        self._seen: set[str] = set()

    async def discover_all(
        self,
        browser: PageRenderer,
        sites: tuple[SiteConfig, ...] | list[SiteConfig],
        errors: list[PipelineError] | None = None,
    ) -> list[str]:
        """Discover new article URLs across sites.

        A failing site is recorded and skipped; the rest are still crawled.

        Returns:
            URLs not returned by any earlier call, in discovery order
        """
        collected: list[str] = []
        for index, site in enumerate(sites):
            if index and self.cfg.site_pause_seconds > 0:
                await self._sleep(self.cfg.site_pause_seconds)
            try:
                urls = await self.discover_site(browser, site, errors)
            except Exception as exc:  # noqa: BLE001
                record_error(errors, ErrorKind.NETWORK, f"Discovery failed for {site.name}: {exc}", site.base_url)
                if self.logger:
                    self.logger.error("Discovery failed for %s: %s", site.name, exc)
                continue
            collected.extend(urls)
            log_event(
                self.logger,
                f"Discovered {len(urls)} URLs from {site.name}",
                event="discovery_site",
                site=site.name,
                count=len(urls),
            )

        fresh = self.filter_seen(collected)
        log_event(
            self.logger,
            f"Total new URLs discovered: {len(fresh)}",
            event="discovery_done",
            raw=len(collected),
            new=len(fresh),
        )
        return fresh

    async def discover_site(
        self,
        browser: PageRenderer,
        site: SiteConfig,
        errors: list[PipelineError] | None = None,
    ) -> list[str]:
        """Crawl one site's listing pages. Does not consult or update the seen set."""
        urls: list[str] = []
        for index, path in enumerate(site.listing_paths):
            if index and self.cfg.page_pause_seconds > 0:
                await self._sleep(self.cfg.page_pause_seconds)
            listing_url = build_listing_url(site.base_url, path)
            try:
                page = await browser.render(listing_url)
            except Exception as exc:  # noqa: BLE001
                record_error(errors, ErrorKind.NETWORK, f"Failed to load listing page: {exc}", listing_url)
                if self.logger:
                    self.logger.warning("Listing page failed %s: %s", listing_url, exc)
                continue

            links = extract_links(page.html, site)
            valid = [link for link in links if is_article_url(link, site)]
            if self.logger:
                self.logger.debug(
                    "Listing %s: %d raw links, %d valid", listing_url, len(links), len(valid)
                )
            urls.extend(valid)
        return urls

    def filter_seen(self, urls: list[str]) -> list[str]:
        """Drop URLs emitted before (or repeated in ``urls``) and mark the rest seen."""
        fresh: list[str] = []
        for url in urls:
            if url in self._seen:
                continue
            self._seen.add(url)
            fresh.append(url)
        return fresh

    def clear_seen(self) -> None:
        self._seen.clear()
        log_event(self.logger, "Cleared discovered URL cache", event="discovery_clear")

    def stats(self) -> dict[str, Any]:
        return {"seen_urls": len(self._seen)}
