"""Tests for end-to-end pipeline runs with fake browser and model."""

from __future__ import annotations

import asyncio
import json

import pytest

from conftest import LONG_BODY, NOW, FakeBrowser, RecordingSleep, ScriptedProvider

from smart_news.config import AppConfig, FieldSelectors, SiteConfig
from smart_news.core.errors import BrowserUnavailableError, ErrorKind, PipelineAlreadyRunningError
from smart_news.core.store import DocumentStore
from smart_news.llm.enricher import Enricher
from smart_news.llm.fallback import FALLBACK_MODEL
from smart_news.llm.providers.base import CallResult
from smart_news.pipeline.orchestrator import PipelineOrchestrator

SITE = SiteConfig(
    name="Example News",
    base_url="https://news.example.com",
    listing_paths=("/politics",),
    selectors=FieldSelectors(article_links="a"),
)

URL_A = "https://news.example.com/news/politics/budget-debate"
URL_B = "https://news.example.com/news/sports/qualifier-win"

PAGES = {
    "https://news.example.com/politics": f'<a href="{URL_A}">A</a><a href="{URL_B}">B</a><a href="/about">About</a>',
    URL_A: f"<html><body><h1>Parliament debates the budget</h1><article><p>{LONG_BODY}</p></article></body></html>",
    URL_B: f"<html><body><h1>Black Stars win the qualifier</h1><article><p>{LONG_BODY}</p></article></body></html>",
}

REWRITES = [
    {
        "index": 0,
        "title": "Rewritten story one about parliament",
        "content": LONG_BODY,
        "summary": "Parliament spent the afternoon debating the national budget in detail.",
        "category": "Politics",
        "tags": ["budget", "parliament", "ghana"],
    },
    {
        "index": 1,
        "title": "Rewritten story two about football",
        "content": LONG_BODY,
        "summary": "The national team secured an important qualifier win on Saturday evening.",
        "category": "Sports",
        "tags": ["football", "black stars", "ghana"],
    },
]


def _pipeline(provider, browser=None, factory=None, sites=(SITE,)):
    cfg = AppConfig(sites=tuple(sites))
    sleep = RecordingSleep()
    browser = browser or FakeBrowser(PAGES)

    async def default_factory():
        return browser

    store = DocumentStore(cfg.storage, clock=lambda: NOW)
    enricher = Enricher(provider, cfg.enrichment, sleep=sleep, clock=lambda: NOW, rng=lambda: 0.0)
    orchestrator = PipelineOrchestrator(
        cfg,
        store,
        enricher,
        browser_factory=factory or default_factory,
        sleep=sleep,
        clock=lambda: NOW,
    )
    return orchestrator, browser, sleep


def _rewrite_provider():
    return ScriptedProvider([lambda prompt: CallResult.success(json.dumps(REWRITES))])


def test_run_once_stores_enriched_documents_and_releases_browser():
    orchestrator, browser, _ = _pipeline(_rewrite_provider())

    result = asyncio.run(orchestrator.run_once())

    assert result.ok
    assert result.total_processed == 2
    assert result.successful == 2
    assert result.failed == 0
    assert result.errors == []
    assert browser.closed
    assert not orchestrator.is_running
    assert len(orchestrator.store) == 2
    assert {d.category for d in orchestrator.store.all()} == {"Politics", "Sports"}
    assert orchestrator.discovery.stats() == {"seen_urls": 0}
    assert orchestrator.status()["current_metrics"]["documents_enriched"] == 2


def test_quota_exhaustion_falls_back_for_every_document():
    provider = ScriptedProvider([CallResult.rate_limited("HTTP 429: RESOURCE_EXHAUSTED", retry_after=1.0)])
    orchestrator, _, _ = _pipeline(provider)

    result = asyncio.run(orchestrator.run_once())

    assert result.ok
    assert result.successful == 2
    assert result.failed == 0
    assert {doc.enrichment.model for doc in result.documents} == {FALLBACK_MODEL}
    assert {doc.title for doc in result.documents} == {"Parliament debates the budget", "Black Stars win the qualifier"}
    assert all(error.kind is ErrorKind.ENRICHMENT for error in result.errors)
    assert orchestrator.metrics()["errors"]["by_kind"]["enrichment"] == len(result.errors)


def test_missing_provider_uses_fallback():
    orchestrator, _, _ = _pipeline(None)
    result = asyncio.run(orchestrator.run_once())
    assert result.successful == 2
    assert all(doc.enrichment.confidence_score == 0.7 for doc in result.documents)


def test_max_documents_caps_discovered_urls():
    orchestrator, browser, _ = _pipeline(_rewrite_provider())
    result = asyncio.run(orchestrator.run_once(max_documents=1))
    assert result.successful == 1
    assert URL_B not in browser.requested


def test_empty_discovery_ends_run_early():
    browser = FakeBrowser({"https://news.example.com/politics": "<p>No links today</p>"})
    provider = _rewrite_provider()
    orchestrator, _, _ = _pipeline(provider, browser=browser)

    result = asyncio.run(orchestrator.run_once())

    assert result.total_processed == 0
    assert result.ok
    assert provider.prompts == []
    assert browser.closed


def test_article_failures_are_counted_without_failing_the_run():
    pages = dict(PAGES)
    del pages[URL_B]
    orchestrator, _, _ = _pipeline(_rewrite_provider(), browser=FakeBrowser(pages))

    result = asyncio.run(orchestrator.run_once())

    assert result.ok
    assert result.successful == 1
    assert [e.kind for e in result.errors] == [ErrorKind.NETWORK]


def test_browser_failure_is_a_pipeline_error():
    async def factory():
        raise BrowserUnavailableError("Chromium is not installed")

    orchestrator, _, _ = _pipeline(_rewrite_provider(), factory=factory)
    result = asyncio.run(orchestrator.run_once())

    assert not result.ok
    assert result.errors[0].kind is ErrorKind.PIPELINE
    assert "Chromium" in result.errors[0].message
    assert not orchestrator.is_running


def test_second_run_is_rejected_while_first_is_active():
    browser = FakeBrowser(PAGES)

    async def scenario():
        gate = asyncio.Event()

        async def factory():
            await gate.wait()
            return browser

        orchestrator, _, _ = _pipeline(_rewrite_provider(), browser=browser, factory=factory)
        first = asyncio.ensure_future(orchestrator.run_once())
        await asyncio.sleep(0)
        assert orchestrator.is_running
        with pytest.raises(PipelineAlreadyRunningError):
            await orchestrator.run_once()
        gate.set()
        return await first

    result = asyncio.run(scenario())
    assert result.successful == 2


def test_emergency_stop_aborts_active_run():
    browser = FakeBrowser(PAGES)

    async def scenario():
        gate = asyncio.Event()

        async def factory():
            await gate.wait()
            return browser

        orchestrator, _, _ = _pipeline(_rewrite_provider(), browser=browser, factory=factory)
        assert await orchestrator.emergency_stop() is False
        first = asyncio.ensure_future(orchestrator.run_once())
        await asyncio.sleep(0)
        stopped = await orchestrator.emergency_stop()
        assert not orchestrator.is_running
        gate.set()
        return stopped, await first, orchestrator

    stopped, result, orchestrator = asyncio.run(scenario())

    assert stopped is True
    assert not result.ok
    assert result.errors[0].message == "Pipeline was stopped"
    assert browser.closed
    assert len(orchestrator.store) == 0


def test_run_for_sites_records_unknown_names_and_processes_the_rest():
    orchestrator, _, sleep = _pipeline(_rewrite_provider())

    result = asyncio.run(orchestrator.run_for_sites(["Nope", "Example News"]))

    assert result.successful == 2
    assert [e.kind for e in result.errors] == [ErrorKind.VALIDATION]
    assert "Nope" in result.errors[0].message
    assert 2 in sleep.calls


def test_metrics_shape():
    orchestrator, _, _ = _pipeline(_rewrite_provider())
    metrics = orchestrator.metrics()
    assert set(metrics) == {"discovery", "storage", "maintenance", "errors"}
    status = orchestrator.status()
    assert status["running"] is False
    assert status["current_metrics"] is None


SITE_A = SiteConfig(
    name="Site A",
    base_url="https://a.example.com",
    listing_paths=("/politics",),
    selectors=FieldSelectors(article_links="a"),
)
SITE_B = SiteConfig(
    name="Site B",
    base_url="https://b.example.com",
    listing_paths=("/politics",),
    selectors=FieldSelectors(article_links="a"),
)
URL_SITE_B = "https://b.example.com/news/politics/budget-debate"
PAGES_SITE_B = {
    "https://b.example.com/politics": f'<a href="{URL_SITE_B}">B</a>',
    URL_SITE_B: f"<html><body><h1>Parliament debates the budget</h1><article><p>{LONG_BODY}</p></article></body></html>",
}


def test_run_for_sites_continues_after_listing_page_fails():
    orchestrator, _, _ = _pipeline(
        _rewrite_provider(), browser=FakeBrowser(PAGES_SITE_B), sites=(SITE_A, SITE_B)
    )

    result = asyncio.run(orchestrator.run_for_sites(["Site A", "Site B"]))

    assert result.ok
    assert [doc.metadata.source_url for doc in result.documents] == [URL_SITE_B]
    assert [e.kind for e in result.errors] == [ErrorKind.NETWORK]
    assert result.errors[0].url == "https://a.example.com/politics"
    assert len(orchestrator.store) == 1


def test_run_for_sites_continues_after_site_discovery_raises():
    broken = SiteConfig(
        name="Site A",
        base_url="https://a.example.com",
        listing_paths=("/politics",),
        selectors=FieldSelectors(article_links="a["),
    )
    pages = dict(PAGES_SITE_B)
    pages["https://a.example.com/politics"] = '<a href="https://a.example.com/news/politics/x">A</a>'
    orchestrator, _, _ = _pipeline(_rewrite_provider(), browser=FakeBrowser(pages), sites=(broken, SITE_B))

    result = asyncio.run(orchestrator.run_for_sites(["Site A", "Site B"]))

    assert result.ok
    assert [doc.metadata.source_url for doc in result.documents] == [URL_SITE_B]
    assert [e.kind for e in result.errors] == [ErrorKind.NETWORK]
    assert result.errors[0].url == "https://a.example.com"
    assert "Site A" in result.errors[0].message


def test_duplicates_dropped_before_enrichment_count_as_extracted():
    pages = dict(PAGES)
    pages[URL_B] = pages[URL_A]
    orchestrator, _, _ = _pipeline(_rewrite_provider(), browser=FakeBrowser(pages))

    result = asyncio.run(orchestrator.run_once())

    metrics = orchestrator.status()["current_metrics"]
    assert metrics["documents_extracted"] == 2
    assert metrics["duplicates_dropped"] == 1
    assert metrics["documents_enriched"] == 1
    assert result.successful == 1
    assert result.failed == 1
