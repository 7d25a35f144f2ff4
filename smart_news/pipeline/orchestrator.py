"""
Pipeline orchestration.

This module coordinates one run end to end:
1. Open the shared browser
2. Discover article URLs (capped per run)
3. Extract raw documents
4. Drop duplicate raw documents
5. Enrich through the model, with rule-based fallback when it is unusable
6. Store, then run retention and duplicate maintenance
7. Clear the discovery cache and release the browser

Only one run may be active at a time; a second caller fails fast. A run never
raises: failures are recorded on the returned ``PipelineResult``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
from typing import Any, Awaitable, Callable, Protocol

from ..config import AppConfig, SiteConfig
from ..core.dedup import dedup_documents
from ..core.errors import (
    ErrorKind,
    ErrorTracker,
    ModelUnavailableError,
    PipelineAlreadyRunningError,
    PipelineStoppedError,
)
from ..core.store import DocumentStore
from ..core.types import EnrichedDocument, PipelineError, PipelineResult, RawDocument, RunMetrics, record_error
from ..fetch.browser import BrowserSession, RenderedPage
from ..fetch.discovery import SourceDiscovery
from ..fetch.extractor import ContentExtractor
from ..fetch.pool import SleepFn
from ..llm.enricher import Enricher
from ..llm.fallback import fallback_enrich
from ..llm.tracing import set_span_output, start_span
from ..logging_utils import log_event


class Browser(Protocol):
    async def render(self, url: str) -> RenderedPage: ...

    async def close(self) -> None: ...


BrowserFactory = Callable[[], Awaitable[Browser]]


@dataclass
class _RunState:
    metrics: RunMetrics
    stop_requested: bool = False
    browser: Browser | None = None
    documents: list[EnrichedDocument] = field(default_factory=list)

    @property
    def errors(self) -> list[PipelineError]:
        return self.metrics.errors


class PipelineOrchestrator:
    """Runs the discover, extract, enrich and store sequence.

    Stage components are injectable; anything not supplied is built from
    ``cfg``.
    """

    def __init__(
        self,
        cfg: AppConfig,
        store: DocumentStore,
        enricher: Enricher,
        *,
        discovery: SourceDiscovery | None = None,
        extractor: ContentExtractor | None = None,
        browser_factory: BrowserFactory | None = None,
        tracker: ErrorTracker | None = None,
        logger: logging.Logger | None = None,
        sleep: SleepFn = asyncio.sleep,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.cfg = cfg
        self.store = store
        self.enricher = enricher
        self.logger = logger
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.discovery = discovery or SourceDiscovery(cfg.discovery, logger=logger, sleep=sleep)
        self.extractor = extractor or ContentExtractor(
            cfg.extraction, cfg.sites, logger=logger, sleep=sleep, clock=self._clock
        )
        self.tracker = tracker or ErrorTracker(clock=self._clock)
        self._browser_factory = browser_factory or self._default_browser
        self._active: _RunState | None = None
        self._last_metrics: RunMetrics | None = None

    @property
    def is_running(self) -> bool:
        return self._active is not None

    async def run_once(self, max_documents: int | None = None) -> PipelineResult:
        """Run the full pipeline over every configured site.

        Args:
            max_documents: Cap on discovered URLs; defaults to the configured cap

        Raises:
            PipelineAlreadyRunningError: If a run is in progress
        """
        cap = max_documents if max_documents is not None else self.cfg.discovery.max_documents_per_run

        async def work(state: _RunState) -> None:
            browser = await self._open_browser(state)
            self._check_stop(state)
            urls = await self.discovery.discover_all(browser, self.cfg.sites, state.errors)
            urls = urls[: max(cap, 0)]
            state.metrics.urls_discovered = len(urls)
            if not urls:
                if self.logger:
                    self.logger.warning("No URLs discovered, ending run")
                return
            await self._process_urls(state, browser, urls)
            self._finish(state)

        return await self._guarded("run_once", work)

    async def run_for_sites(
        self,
        names: list[str],
        max_documents: int | None = None,
    ) -> PipelineResult:
        """Run the pipeline for the named sites only.

        Each site is handled independently: an unknown name or a failing site
        is recorded and the remaining sites still run.

        Raises:
            PipelineAlreadyRunningError: If a run is in progress
        """
        cap = max_documents if max_documents is not None else self.cfg.discovery.max_documents_per_run

        async def work(state: _RunState) -> None:
            browser = await self._open_browser(state)
            for index, name in enumerate(names):
                self._check_stop(state)
                if index and self.cfg.discovery.site_pause_seconds > 0:
                    await self._sleep(self.cfg.discovery.site_pause_seconds)
                site = self.cfg.site_by_name(name)
                if site is None:
                    record_error(state.errors, ErrorKind.VALIDATION, f"Unknown site: {name}")
                    if self.logger:
                        self.logger.warning("Unknown site %s", name)
                    continue
                try:
                    await self._process_site(state, browser, site, cap)
                except PipelineStoppedError:
                    raise
                except Exception as exc:  # noqa: BLE001
                    record_error(
                        state.errors,
                        ErrorKind.NETWORK,
                        f"Failed to process site {name}: {exc}",
                        site.base_url,
                    )
                    if self.logger:
                        self.logger.exception("Failed to process site %s", name)
            self._finish(state)

        return await self._guarded("run_for_sites", work, sites=names)

    async def emergency_stop(self) -> bool:
        """Abort the active run and release its browser.

        Returns:
            True when a run was active
        """
        state = self._active
        if state is None:
            if self.logger:
                self.logger.info("Emergency stop requested but no run is active")
            return False
        if self.logger:
            self.logger.warning("Emergency stop requested")
        state.stop_requested = True
        self._active = None
        await self._release(state)
        return True

    def status(self) -> dict[str, Any]:
        return {
            "running": self.is_running,
            "current_metrics": self._last_metrics.to_dict() if self._last_metrics else None,
            "storage": self.store.storage_stats(),
        }

    def metrics(self) -> dict[str, Any]:
        return {
            "discovery": self.discovery.stats(),
            "storage": self.store.storage_stats(),
            "maintenance": self.store.maintenance_stats(),
            "errors": self.tracker.stats(),
        }

    async def _guarded(
        self,
        name: str,
        work: Callable[[_RunState], Awaitable[None]],
        **attributes: Any,
    ) -> PipelineResult:
        if self._active is not None:
            raise PipelineAlreadyRunningError()
        state = _RunState(metrics=RunMetrics(started_at=self._clock()))
        self._active = state
        self._last_metrics = state.metrics
        log_event(self.logger, "Pipeline start", event="pipeline_start", mode=name, **attributes)

        with start_span(f"smart_news.{name}", kind="chain", attributes=attributes) as span:
            try:
                await work(state)
            except PipelineStoppedError as exc:
                record_error(state.errors, ErrorKind.PIPELINE, str(exc))
            except Exception as exc:  # noqa: BLE001
                record_error(
                    state.errors,
                    ErrorKind.PIPELINE,
                    f"Pipeline execution failed: {exc}",
                    context={"error_type": type(exc).__name__},
                )
                if self.logger:
                    self.logger.exception("Pipeline execution failed")
            finally:
                await self._release(state)
                if self._active is state:
                    self._active = None

            result = self._build_result(state)
            set_span_output(span, result.to_dict())

        self.tracker.record_many(result.errors)
        log_event(
            self.logger,
            "Pipeline done",
            event="pipeline_done",
            mode=name,
            processed=result.total_processed,
            failed=result.failed,
            errors=len(result.errors),
            duration_ms=result.duration_ms,
        )
        return result

    async def _default_browser(self) -> Browser:
        return await BrowserSession(self.cfg.browser, logger=self.logger).start()

    async def _open_browser(self, state: _RunState) -> Browser:
        browser = await self._browser_factory()
        state.browser = browser
        if state.stop_requested:
            await self._release(state)
            raise PipelineStoppedError()
        return browser

    async def _release(self, state: _RunState) -> None:
        browser, state.browser = state.browser, None
        if browser is None:
            return
        try:
            await browser.close()
        except Exception as exc:  # noqa: BLE001
            if self.logger:
                self.logger.warning("Failed to release browser: %s", exc)

    def _check_stop(self, state: _RunState) -> None:
        if state.stop_requested:
            raise PipelineStoppedError()

    async def _process_site(
        self,
        state: _RunState,
        browser: Browser,
        site: SiteConfig,
        cap: int,
    ) -> None:
        urls = await self.discovery.discover_site(browser, site, state.errors)
        urls = self.discovery.filter_seen(urls)[: max(cap, 0)]
        state.metrics.urls_discovered += len(urls)
        log_event(
            self.logger,
            f"Discovered {len(urls)} URLs from {site.name}",
            event="site_discovered",
            site=site.name,
            count=len(urls),
        )
        if urls:
            await self._process_urls(state, browser, urls)

    async def _process_urls(self, state: _RunState, browser: Browser, urls: list[str]) -> None:
        self._check_stop(state)
        raw = await self.extractor.extract_many(browser, urls, state.errors)
        state.metrics.documents_extracted += len(raw)
        if self.cfg.dedup.enabled:
            before = len(raw)
            raw = dedup_documents(raw, self.cfg.dedup.title_similarity_threshold)
            dropped = before - len(raw)
            state.metrics.duplicates_dropped += dropped
            if self.logger and dropped:
                self.logger.info("Dropped %d duplicate documents before enrichment", dropped)

        self._check_stop(state)
        enriched = await self._enrich(raw, state.errors)
        state.metrics.documents_enriched += len(enriched)

        self._check_stop(state)
        self.store.put_many(enriched)
        state.documents.extend(enriched)

    async def _enrich(self, raw: list[RawDocument], errors: list[PipelineError]) -> list[EnrichedDocument]:
        try:
            return await self.enricher.enrich(raw, errors)
        except ModelUnavailableError as exc:
            record_error(
                errors,
                ErrorKind.ENRICHMENT,
                f"{exc}; using fallback enrichment",
                context={"pending": len(exc.pending), "accepted": len(exc.accepted)},
            )
            if self.logger:
                self.logger.warning("%s; using fallback enrichment", exc)
            confidence = self.cfg.enrichment.fallback_confidence
            fallback = [fallback_enrich(doc, confidence=confidence, clock=self._clock) for doc in exc.pending]
            return list(exc.accepted) + fallback

    def _finish(self, state: _RunState) -> None:
        self._check_stop(state)
        self.store.evict_expired()
        self.store.remove_duplicates()
        self.discovery.clear_seen()

    def _build_result(self, state: _RunState) -> PipelineResult:
        metrics = state.metrics
        duration = self._clock() - metrics.started_at
        return PipelineResult(
            total_processed=metrics.documents_enriched,
            successful=metrics.documents_enriched,
            failed=metrics.documents_extracted - metrics.documents_enriched,
            duration_ms=max(int(duration.total_seconds() * 1000), 0),
            errors=list(metrics.errors),
            documents=list(state.documents),
        )
