"""
Article field extraction from rendered pages.

Fields are read with the site's CSS selectors and fall back to generic
selectors when a site's markup drifts. When no paragraph text is found at
all, the body comes from a chain of content extractors:
1. trafilatura: Fast, purpose-built for article content (default)
2. readability: Mozilla's readability algorithm (fallback)
3. bs4: BeautifulSoup plain text extraction (last resort)
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import logging
from typing import Callable
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup
from readability import Document
import trafilatura

from ..config import ExtractionConfig, FieldSelectors, SiteConfig
from ..core.errors import ErrorKind
from ..core.text import count_words, estimate_read_minutes, infer_category_from_url, parse_datetime
from ..core.types import DocumentMetadata, PipelineError, RawDocument, record_error
from ..logging_utils import log_event
from .browser import PageRenderer
from .pool import SleepFn, run_in_groups

GENERIC_CONTENT_SELECTOR = "article, .article, .post, .entry-content, .story-body, main p"
GENERIC_AUTHOR_SELECTOR = '.author, .byline, .writer, [rel="author"]'
GENERIC_DATE_SELECTOR = ".date, .publish-date, .timestamp, time"
UNKNOWN_AUTHOR = "Unknown Author"
MIN_PARAGRAPH_CHARS = 10

_EXCLUDED_IMAGE_MARKERS = ("logo", "icon", "avatar")


def extract_text(html: str, primary: str, fallback: list[str]) -> str | None:
    """Extract plain text from HTML using a chain of extractors.

    Tries each extraction method in order until one produces non-empty
    output.

    Args:
        html: The HTML content to extract text from
        primary: Name of the primary extraction method to try first
        fallback: List of fallback method names to try if primary fails

    Returns:
        Extracted plain text with leading/trailing whitespace stripped,
        or None if all methods fail
    """
    order = [primary] + [name for name in fallback if name != primary]
    for method in order:
        extractor = _get_extractor(method)
        if not extractor:
            continue
        text = extractor(html)
        if text and text.strip():
            return text.strip()
    return None


def _get_extractor(name: str) -> Callable[[str], str | None] | None:
    if name == "trafilatura":
        return _extract_trafilatura
    if name == "readability":
        return _extract_readability
    if name == "bs4":
        return _extract_bs4
    return None


def _extract_trafilatura(html: str) -> str | None:
    return trafilatura.extract(html)


def _extract_readability(html: str) -> str | None:
    doc = Document(html)
    return _extract_bs4(doc.summary())


def _extract_bs4(html: str) -> str | None:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    text = soup.get_text(separator="\n")
    cleaned = "\n".join([line.strip() for line in text.splitlines() if line.strip()])
    return cleaned if cleaned else None


def parse_article_html(
    html: str,
    url: str,
    selectors: FieldSelectors,
    cfg: ExtractionConfig,
    now: datetime | None = None,
) -> RawDocument:
    """Read document fields from page HTML.

    No validation happens here; see ``validate_document``.

    Args:
        html: Rendered page HTML
        url: Page URL, used to resolve images and infer the category
        selectors: The site's field selectors
        cfg: Length caps and the generic extraction chain
        now: Extraction time, used for discovery time and missing dates

    Returns:
        A RawDocument with capped fields
    """
    now = now or datetime.now(timezone.utc)
    soup = BeautifulSoup(html, "html.parser")
    seo = _meta_tags(soup)

    title = (
        _first_text(soup, selectors.title)
        or (soup.title.get_text(strip=True) if soup.title else "")
        or _first_text(soup, "h1")
    )

    body = _joined_text(soup, selectors.content) or _joined_text(soup, GENERIC_CONTENT_SELECTOR)
    if not body:
        body = extract_text(html, cfg.primary, cfg.fallback) or ""

    author = (
        _first_text(soup, selectors.author)
        or _first_text(soup, GENERIC_AUTHOR_SELECTOR)
        or UNKNOWN_AUTHOR
    )

    publish_date = (
        _date_from(soup, selectors.publish_date)
        or _date_from(soup, GENERIC_DATE_SELECTOR)
        or _date_from(soup, "time[datetime]")
        or parse_datetime(seo.get("published_time"))
        or now
    )

    body = body[: cfg.max_body_chars]
    words = count_words(body)
    return RawDocument(
        url=url,
        title=title[: cfg.max_title_chars],
        body=body,
        author=author[: cfg.max_author_chars],
        publish_date=publish_date,
        category=infer_category_from_url(url),
        image_urls=tuple(_image_urls(soup, selectors.images, url)[: cfg.max_images]),
        metadata=DocumentMetadata(
            discovered_at=now,
            source_url=url,
            word_count=words,
            estimated_read_minutes=estimate_read_minutes(words),
        ),
        seo=seo,
    )


def validate_document(doc: RawDocument, cfg: ExtractionConfig) -> str | None:
    """Return the reason a document is unusable, or None when it is valid."""
    if len(doc.title) < cfg.min_title_chars:
        return f"title shorter than {cfg.min_title_chars} characters"
    if len(doc.body) < cfg.min_body_chars:
        return f"body shorter than {cfg.min_body_chars} characters"
    if doc.metadata.word_count < cfg.min_body_words:
        return f"body has fewer than {cfg.min_body_words} words"
    return None


class ContentExtractor:
    """Turns article URLs into validated RawDocuments.

    Args:
        cfg: Group size, caps and validation thresholds
        sites: Configured sites; a URL is handled only when its host matches one
        logger: Optional pipeline logger
        sleep: Awaitable sleep used between groups
        clock: Returns the current UTC time
    """

    def __init__(
        self,
        cfg: ExtractionConfig,
        sites: tuple[SiteConfig, ...] | list[SiteConfig],
        logger: logging.Logger | None = None,
        sleep: SleepFn = asyncio.sleep,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.cfg = cfg
        self.sites = tuple(sites)
        self.logger = logger
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def find_site(self, url: str) -> SiteConfig | None:
        host = urlparse(url).hostname
        if not host:
            return None
        for site in self.sites:
            if urlparse(site.base_url).hostname == host:
                return site
        return None

    async def extract(
        self,
        browser: PageRenderer,
        url: str,
        errors: list[PipelineError] | None = None,
    ) -> RawDocument | None:
        site = self.find_site(url)
        if site is None:
            if self.logger:
                self.logger.warning("No site configuration for %s", url)
            return None

        try:
            page = await browser.render(url)
        except Exception as exc:  # noqa: BLE001
            record_error(errors, ErrorKind.NETWORK, f"Failed to load article: {exc}", url)
            if self.logger:
                self.logger.warning("Article load failed %s: %s", url, exc)
            return None

        try:
            doc = parse_article_html(page.html, url, site.selectors, self.cfg, now=self._clock())
        except Exception as exc:  # noqa: BLE001
            record_error(errors, ErrorKind.PARSING, f"Failed to parse article: {exc}", url)
            return None

        reason = validate_document(doc, self.cfg)
        if reason:
            record_error(errors, ErrorKind.VALIDATION, f"Invalid article: {reason}", url)
            if self.logger:
                self.logger.info("Rejected %s: %s", url, reason)
            return None
        if doc.author == UNKNOWN_AUTHOR and self.logger:
            self.logger.debug("Article without author: %s", doc.title)
        return doc

    async def extract_many(
        self,
        browser: PageRenderer,
        urls: list[str],
        errors: list[PipelineError] | None = None,
    ) -> list[RawDocument]:
        """Extract URLs in bounded groups; failures are recorded, never raised."""

        async def worker(url: str) -> RawDocument | None:
            return await self.extract(browser, url, errors)

        results = await run_in_groups(
            urls,
            worker,
            group_size=self.cfg.group_size,
            pause_seconds=self.cfg.group_pause_seconds,
            sleep=self._sleep,
        )
        docs: list[RawDocument] = []
        for url, result in zip(urls, results):
            if isinstance(result, BaseException):
                record_error(errors, ErrorKind.PARSING, f"Extraction failed: {result}", url)
                continue
            if result is not None:
                docs.append(result)
        log_event(
            self.logger,
            f"Extracted {len(docs)} of {len(urls)} articles",
            event="extraction_done",
            requested=len(urls),
            extracted=len(docs),
        )
        return docs


def _first_text(soup: BeautifulSoup, selector: str) -> str:
    for element in soup.select(selector):
        text = element.get_text(" ", strip=True)
        if text:
            return text
    return ""


def _joined_text(soup: BeautifulSoup, selector: str) -> str:
    texts: list[str] = []
    seen: set[str] = set()
    for element in soup.select(selector):
        text = element.get_text(" ", strip=True)
        if len(text) > MIN_PARAGRAPH_CHARS and text not in seen:
            seen.add(text)
            texts.append(text)
    return "\n\n".join(texts)


def _date_from(soup: BeautifulSoup, selector: str) -> datetime | None:
    for element in soup.select(selector):
        value = element.get("datetime") or element.get_text(" ", strip=True)
        parsed = parse_datetime(str(value)) if value else None
        if parsed is not None:
            return parsed
    return None


def _image_urls(soup: BeautifulSoup, selector: str, page_url: str) -> list[str]:
    urls: list[str] = []
    for img in soup.select(selector):
        src = img.get("src")
        if not src:
            continue
        src = str(src).strip()
        if any(marker in src.lower() for marker in _EXCLUDED_IMAGE_MARKERS):
            continue
        absolute = urljoin(page_url, src)
        if absolute not in urls:
            urls.append(absolute)
    return urls


def _meta_tags(soup: BeautifulSoup) -> dict[str, str]:
    def meta(name: str) -> str:
        tag = soup.select_one(f'meta[name="{name}"], meta[property="{name}"]')
        content = tag.get("content") if tag else None
        return str(content).strip() if content else ""

    values = {
        "description": meta("description") or meta("og:description"),
        "keywords": meta("keywords"),
        "og_image": meta("og:image"),
        "published_time": meta("article:published_time") or meta("og:published_time"),
    }
    return {key: value for key, value in values.items() if value}
