"""
Core data types for the news pipeline.

This module defines the data structures passed between pipeline stages:
- RawDocument: Fields extracted from a rendered article page
- EnrichedDocument: Rewritten document with summary, category and tags
- PipelineError: A single recorded failure
- RunMetrics: Counters for one pipeline run
- PipelineResult: Outcome of one pipeline run
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .errors import ErrorKind, is_retryable


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DocumentMetadata:
    """Provenance and size information carried with every document.

    Attributes:
        discovered_at: When the document was extracted; drives retention
        source_url: The page the document was extracted from
        word_count: Words in the body
        estimated_read_minutes: ceil(word_count / 200)
    """

    discovered_at: datetime
    source_url: str
    word_count: int
    estimated_read_minutes: int


@dataclass(frozen=True)
class RawDocument:
    """Fields extracted from one article page, before rewriting.

    Attributes:
        url: Canonical article URL
        title: Headline, at most 200 characters
        body: Paragraph text joined by blank lines, at most 5000 characters
        author: Byline or "Unknown Author"
        publish_date: Publication time, or extraction time when unknown
        category: One of the standard categories inferred from the URL
        image_urls: Absolute image URLs in page order
        metadata: Provenance and size information
        seo: Page meta tags (description, keywords, og:image, published time)
    """

    url: str
    title: str
    body: str
    author: str
    publish_date: datetime
    category: str
    image_urls: tuple[str, ...]
    metadata: DocumentMetadata
    seo: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class EnrichmentMetadata:
    timestamp: datetime
    model: str
    confidence_score: float
    original_word_count: int
    enriched_word_count: int


@dataclass
class EnrichedDocument:
    """A rewritten document ready for storage.

    ``image_urls`` is always the source RawDocument's list, never model output.
    """

    id: str
    title: str
    body: str
    summary: str
    author: str
    publish_date: datetime
    category: str
    tags: list[str]
    image_urls: tuple[str, ...]
    metadata: DocumentMetadata
    enrichment: EnrichmentMetadata

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "body": self.body,
            "summary": self.summary,
            "author": self.author,
            "publish_date": self.publish_date.isoformat(),
            "category": self.category,
            "tags": list(self.tags),
            "image_urls": list(self.image_urls),
            "metadata": {
                "discovered_at": self.metadata.discovered_at.isoformat(),
                "source_url": self.metadata.source_url,
                "word_count": self.metadata.word_count,
                "estimated_read_minutes": self.metadata.estimated_read_minutes,
            },
            "enrichment": {
                "timestamp": self.enrichment.timestamp.isoformat(),
                "model": self.enrichment.model,
                "confidence_score": self.enrichment.confidence_score,
                "original_word_count": self.enrichment.original_word_count,
                "enriched_word_count": self.enrichment.enriched_word_count,
            },
        }


@dataclass(frozen=True)
class PipelineError:
    """A failure recorded during a run.

    ``retryable`` defaults to the kind's retryability when not given.
    """

    kind: ErrorKind
    message: str
    url: str | None = None
    timestamp: datetime = field(default_factory=utc_now)
    retryable: bool | None = None
    context: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", ErrorKind(self.kind))
        if self.retryable is None:
            object.__setattr__(self, "retryable", is_retryable(self.kind))

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "kind": self.kind.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "retryable": self.retryable,
        }
        if self.url is not None:
            payload["url"] = self.url
        if self.context:
            payload["context"] = self.context
        return payload


@dataclass
class RunMetrics:
    started_at: datetime = field(default_factory=utc_now)
    urls_discovered: int = 0
    documents_extracted: int = 0
    documents_enriched: int = 0
    duplicates_dropped: int = 0
    errors: list[PipelineError] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "urls_discovered": self.urls_discovered,
            "documents_extracted": self.documents_extracted,
            "documents_enriched": self.documents_enriched,
            "duplicates_dropped": self.duplicates_dropped,
            "errors": len(self.errors),
        }


@dataclass
class PipelineResult:
    """Outcome of one run; ``failed`` is extracted minus enriched."""

    total_processed: int
    successful: int
    failed: int
    duration_ms: int
    errors: list[PipelineError] = field(default_factory=list)
    documents: list[EnrichedDocument] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not any(error.kind is ErrorKind.PIPELINE for error in self.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_processed": self.total_processed,
            "successful": self.successful,
            "failed": self.failed,
            "duration_ms": self.duration_ms,
            "errors": [error.to_dict() for error in self.errors],
            "documents": [doc.id for doc in self.documents],
        }


def record_error(
    errors: list[PipelineError] | None,
    kind: ErrorKind,
    message: str,
    url: str | None = None,
    context: dict[str, Any] | None = None,
) -> PipelineError:
    """Build a PipelineError and append it to ``errors`` when a sink is given."""
    error = PipelineError(kind=kind, message=message, url=url, context=context)
    if errors is not None:
        errors.append(error)
    return error
