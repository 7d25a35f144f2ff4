"""Shared builders and fakes for pipeline tests."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from smart_news.core.errors import PageLoadError
from smart_news.core.text import count_words, estimate_read_minutes
from smart_news.core.types import DocumentMetadata, EnrichedDocument, EnrichmentMetadata, RawDocument
from smart_news.fetch.browser import RenderedPage
from smart_news.llm.providers.base import GenerationProvider

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)

LONG_BODY = " ".join(
    f"Parliament debated the national budget in sitting number {i} and members raised questions."
    for i in range(30)
)


def raw_document(
    url: str = "https://www.graphic.com.gh/news/politics/budget-debate.html",
    title: str = "Parliament debates the national budget",
    body: str = LONG_BODY,
    category: str = "Politics",
    discovered_at: datetime = NOW,
    image_urls: tuple[str, ...] = ("https://www.graphic.com.gh/images/budget.jpg",),
) -> RawDocument:
    words = count_words(body)
    return RawDocument(
        url=url,
        title=title,
        body=body,
        author="Kwame Mensah",
        publish_date=discovered_at,
        category=category,
        image_urls=image_urls,
        metadata=DocumentMetadata(
            discovered_at=discovered_at,
            source_url=url,
            word_count=words,
            estimated_read_minutes=estimate_read_minutes(words),
        ),
    )


def enriched_document(
    doc_id: str = "article_1_abc",
    title: str = "Parliament debates the national budget",
    category: str = "Politics",
    tags: list[str] | None = None,
    publish_date: datetime = NOW,
    discovered_at: datetime = NOW,
    body: str = "Members of parliament debated the budget.",
) -> EnrichedDocument:
    return EnrichedDocument(
        id=doc_id,
        title=title,
        body=body,
        summary="A summary of the budget debate.",
        author="Kwame Mensah",
        publish_date=publish_date,
        category=category,
        tags=tags if tags is not None else ["politics", "budget", "ghana"],
        image_urls=(),
        metadata=DocumentMetadata(
            discovered_at=discovered_at,
            source_url=f"https://www.graphic.com.gh/news/{doc_id}",
            word_count=count_words(body),
            estimated_read_minutes=1,
        ),
        enrichment=EnrichmentMetadata(
            timestamp=discovered_at,
            model="test-model",
            confidence_score=0.8,
            original_word_count=count_words(body),
            enriched_word_count=count_words(body),
        ),
    )


class FakeBrowser:
    """Serves canned HTML by URL; unknown URLs fail to load."""

    def __init__(self, pages: dict[str, str] | None = None):
        self.pages = dict(pages or {})
        self.requested: list[str] = []
        self.closed = False

    async def render(self, url: str) -> RenderedPage:
        self.requested.append(url)
        if url not in self.pages:
            raise PageLoadError(f"HTTP 404 for {url}")
        return RenderedPage(url=url, html=self.pages[url], status_code=200)

    async def close(self) -> None:
        self.closed = True


class ScriptedProvider(GenerationProvider):
    """Returns queued results in order; the last one repeats once the queue drains."""

    def __init__(self, results, model: str = "test-model"):
        self.results = list(results)
        self.model = model
        self.prompts: list[str] = []

    async def generate(self, prompt, entry_logger=None):  # noqa: ANN001
        self.prompts.append(prompt)
        item = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if callable(item):
            return item(prompt)
        return item


class RecordingSleep:
    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def clock():
    return lambda: NOW


