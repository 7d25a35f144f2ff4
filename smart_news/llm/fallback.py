"""Rule-based enrichment used when the generative model cannot be used."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

from ..core.text import generate_document_id, split_sentences, standardize_category
from ..core.types import EnrichedDocument, EnrichmentMetadata, RawDocument

FALLBACK_MODEL = "fallback"
DEFAULT_TAGS = ("news", "ghana")
MAX_TAGS = 5

TAG_VOCABULARY: dict[str, tuple[str, ...]] = {
    "Politics": ("politics", "government", "policy", "ghana"),
    "Sports": ("sports", "athletics", "competition", "ghana"),
    "Business": ("business", "economy", "finance", "ghana"),
    "Entertainment": ("entertainment", "culture", "ghana"),
    "General": ("news", "ghana", "africa"),
}


def fallback_summary(body: str) -> str:
    """First two sentences longer than 10 characters, else a 200-character prefix."""
    sentences = [s for s in split_sentences(body) if len(s) > 10]
    joined = ". ".join(sentences[:2]).strip()
    if len(joined) > 20:
        return joined + "."
    return body[:200] + "..."


def fallback_tags(body: str, category: str) -> list[str]:
    vocabulary = TAG_VOCABULARY.get(category, TAG_VOCABULARY["General"])
    lowered = body.lower()
    tags = [tag for tag in vocabulary if tag in lowered or f"{tag}s" in lowered]
    return tags[:MAX_TAGS] if tags else list(DEFAULT_TAGS)


def fallback_enrich(
    raw: RawDocument,
    confidence: float = 0.7,
    clock: Callable[[], datetime] | None = None,
) -> EnrichedDocument:
    """Build an EnrichedDocument from the raw fields without calling the model."""
    now = clock() if clock else datetime.now(timezone.utc)
    category = standardize_category(raw.category)
    return EnrichedDocument(
        id=generate_document_id(),
        title=raw.title,
        body=raw.body,
        summary=fallback_summary(raw.body),
        author=raw.author,
        publish_date=raw.publish_date,
        category=category,
        tags=fallback_tags(raw.body, category),
        image_urls=raw.image_urls,
        metadata=raw.metadata,
        enrichment=EnrichmentMetadata(
            timestamp=now,
            model=FALLBACK_MODEL,
            confidence_score=confidence,
            original_word_count=raw.metadata.word_count,
            enriched_word_count=raw.metadata.word_count,
        ),
    )
