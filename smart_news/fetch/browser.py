"""
Shared headless browser session backed by Crawl4AI.

One ``BrowserSession`` is opened per pipeline run and handed to discovery and
extraction. Pages are rendered with JavaScript (Playwright backend) so
client-rendered listing pages expose their article links.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Protocol

from ..config import BrowserConfig
from ..core.errors import BrowserUnavailableError, PageLoadError


@dataclass(frozen=True)
class RenderedPage:
    """Rendered HTML of one page.

    Attributes:
        url: The requested URL
        html: Page HTML after scripts ran
        status_code: HTTP status reported by the browser, if known
    """

    url: str
    html: str
    status_code: int | None = None


class PageRenderer(Protocol):
    async def render(self, url: str) -> RenderedPage: ...


class BrowserSession:
    """Async Crawl4AI crawler kept open for the duration of a run.

    Use ``start()``/``close()`` or ``async with``. ``close()`` is safe to call
    more than once.
    """

    def __init__(self, cfg: BrowserConfig, logger: logging.Logger | None = None) -> None:
        self.cfg = cfg
        self.logger = logger
        self._crawler: Any = None
        self._run_config: Any = None

    @property
    def is_open(self) -> bool:
        return self._crawler is not None

    async def start(self) -> "BrowserSession":
        if self._crawler is not None:
            return self
        try:
            from crawl4ai import AsyncWebCrawler, CacheMode, CrawlerRunConfig
            from crawl4ai import BrowserConfig as CrawlerBrowserConfig
        except Exception as exc:  # noqa: BLE001
            raise BrowserUnavailableError(f"ImportError: {exc}") from exc

        try:
            browser_cfg = CrawlerBrowserConfig(
                headless=self.cfg.headless,
                user_agent=self.cfg.user_agent,
                verbose=False,
            )
            crawler = AsyncWebCrawler(config=browser_cfg)
            await crawler.start()
        except Exception as exc:  # noqa: BLE001
            raise BrowserUnavailableError(f"{type(exc).__name__}: {exc}") from exc

        self._crawler = crawler
        self._run_config = CrawlerRunConfig(
            cache_mode=CacheMode.BYPASS,
            page_timeout=int(self.cfg.timeout_seconds * 1000),
            delay_before_return_html=self.cfg.settle_seconds,
            magic=self.cfg.magic,
            simulate_user=self.cfg.simulate_user,
            verbose=False,
        )
        if self.logger:
            self.logger.info("Browser started (headless=%s)", self.cfg.headless)
        return self

    async def render(self, url: str) -> RenderedPage:
        """Render a URL and return its HTML.

        Raises:
            PageLoadError: If the session is closed or the crawl failed
        """
        if self._crawler is None:
            raise PageLoadError("Browser session is not open")
        try:
            result = await self._crawler.arun(url=url, config=self._run_config)
        except Exception as exc:  # noqa: BLE001
            raise PageLoadError(f"{type(exc).__name__}: {exc}") from exc

        if not getattr(result, "success", True):
            error_message = getattr(result, "error_message", None) or "Crawl failed"
            raise PageLoadError(f"Crawl4AIError: {error_message}")

        html = getattr(result, "html", None) or ""
        if not html.strip():
            raise PageLoadError("Crawl4AIError: empty html")
        return RenderedPage(url=url, html=html, status_code=getattr(result, "status_code", None))

    async def close(self) -> None:
        crawler, self._crawler = self._crawler, None
        if crawler is None:
            return
        try:
            await crawler.close()
        except Exception as exc:  # noqa: BLE001
            if self.logger:
                self.logger.warning("Browser close failed: %s", exc)
        if self.logger:
            self.logger.info("Browser closed")

    async def __aenter__(self) -> "BrowserSession":
        return await self.start()

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
