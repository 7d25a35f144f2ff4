"""Tests for article field extraction and validation."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from conftest import NOW, FakeBrowser, raw_document

from smart_news.config import ExtractionConfig, FieldSelectors, SiteConfig
from smart_news.core.errors import ErrorKind
from smart_news.fetch import extractor as extractor_module
from smart_news.fetch.extractor import (
    UNKNOWN_AUTHOR,
    ContentExtractor,
    extract_text,
    parse_article_html,
    validate_document,
)

SITE = SiteConfig(
    name="Example News",
    base_url="https://news.example.com",
    listing_paths=("/news",),
    selectors=FieldSelectors(article_links="a"),
)

PARAGRAPH = "The finance minister presented the mid-year budget review to parliament on Tuesday afternoon."

ARTICLE_HTML = f"""
<html>
<head>
  <title>Budget review | Example News</title>
  <meta name="description" content="Mid-year budget review">
  <meta property="article:published_time" content="2026-03-01T08:00:00Z">
</head>
<body>
  <h1>Finance minister presents mid-year budget review</h1>
  <span class="byline">Ama Owusu</span>
  <time datetime="2026-03-01T09:30:00+00:00">1 March</time>
  <article>
    <img src="/images/minister.jpg">
    <img src="/images/site-logo.png">
    <img src="/images/minister.jpg">
    <img src="https://cdn.example.com/chart.png">
    <p>{PARAGRAPH}</p>
    <p>{PARAGRAPH}</p>
    <p>Short.</p>
    <p>Opposition members questioned the revenue projections and the planned cuts to capital spending.</p>
  </article>
</body>
</html>
"""


def test_parse_article_html_reads_fields():
    doc = parse_article_html(
        ARTICLE_HTML,
        "https://news.example.com/news/politics/budget-review",
        SITE.selectors,
        ExtractionConfig(),
        now=NOW,
    )

    assert doc.title == "Finance minister presents mid-year budget review"
    assert doc.author == "Ama Owusu"
    assert doc.publish_date == datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)
    assert doc.body.split("\n\n") == [
        PARAGRAPH,
        "Opposition members questioned the revenue projections and the planned cuts to capital spending.",
    ]
    assert doc.image_urls == (
        "https://news.example.com/images/minister.jpg",
        "https://cdn.example.com/chart.png",
    )
    assert doc.category == "Politics"
    assert doc.metadata.discovered_at == NOW
    assert doc.metadata.word_count == len(doc.body.split())
    assert doc.seo["description"] == "Mid-year budget review"


def test_parse_article_html_applies_caps_and_fallbacks():
    html = "<html><head><title>Only a page title here</title></head><body><main><p>" + "word " * 50 + "</p></main></body></html>"
    cfg = ExtractionConfig(max_title_chars=10, max_body_chars=40, max_images=0)

    doc = parse_article_html(html, "https://news.example.com/news/x", SITE.selectors, cfg, now=NOW)

    assert doc.title == "Only a pag"
    assert len(doc.body) == 40
    assert doc.author == UNKNOWN_AUTHOR
    assert doc.publish_date == NOW
    assert doc.image_urls == ()


def test_validate_document_thresholds():
    cfg = ExtractionConfig()
    good = parse_article_html(
        f"<h1>A long enough headline</h1><article><p>{' '.join(['word'] * 120)}</p></article>",
        "https://news.example.com/news/a",
        SITE.selectors,
        cfg,
        now=NOW,
    )
    assert validate_document(good, cfg) is None

    short = parse_article_html(
        "<h1>Tiny</h1><article><p>Just a short paragraph here.</p></article>",
        "https://news.example.com/news/b",
        SITE.selectors,
        cfg,
        now=NOW,
    )
    assert "title" in validate_document(short, cfg)


def test_validate_document_rejects_thin_bodies_at_default_thresholds():
    cfg = ExtractionConfig()

    few_words = raw_document(body=" ".join(["Parliamentarians"] * 10))
    assert len(few_words.body) >= cfg.min_body_chars
    assert "fewer than 50 words" in validate_document(few_words, cfg)

    short_body = raw_document(title="Parliament debates the national budget", body="A short body of text.")
    assert "body shorter than 100 characters" in validate_document(short_body, cfg)

    assert validate_document(raw_document(), cfg) is None


def test_extract_text_falls_back_through_chain(monkeypatch):
    monkeypatch.setattr(extractor_module, "_extract_trafilatura", lambda html: None)
    text = extract_text("<html><body><script>x()</script><p>Hello world</p></body></html>", "trafilatura", ["bs4"])
    assert text == "Hello world"


def test_extract_records_validation_and_network_errors(sleep):
    good_url = "https://news.example.com/news/politics/budget-review"
    thin_url = "https://news.example.com/news/thin"
    browser = FakeBrowser({good_url: ARTICLE_HTML, thin_url: "<h1>Thin article headline</h1><article><p>Too short to keep.</p></article>"})
    extractor = ContentExtractor(
        ExtractionConfig(group_size=2, group_pause_seconds=3, min_body_words=20),
        [SITE],
        sleep=sleep,
        clock=lambda: NOW,
    )
    errors = []

    docs = asyncio.run(
        extractor.extract_many(
            browser,
            [good_url, thin_url, "https://news.example.com/news/missing", "https://unknown.example.net/news/x"],
            errors,
        )
    )

    assert [doc.url for doc in docs] == [good_url]
    kinds = sorted(error.kind.value for error in errors)
    assert kinds == ["network", "validation"]
    assert sleep.calls == [3]
    assert "https://unknown.example.net/news/x" not in browser.requested


def test_parse_failure_becomes_parsing_error(monkeypatch):
    url = "https://news.example.com/news/politics/budget-review"

    def broken(*args, **kwargs):
        raise RuntimeError("selector engine failed")

    monkeypatch.setattr(extractor_module, "parse_article_html", broken)
    extractor = ContentExtractor(ExtractionConfig(), [SITE])
    errors = []

    doc = asyncio.run(extractor.extract(FakeBrowser({url: ARTICLE_HTML}), url, errors))

    assert doc is None
    assert errors[0].kind is ErrorKind.PARSING
