"""
Raw document deduplication using URL matching and fuzzy title comparison.

This module removes duplicate documents before enrichment based on:
1. Exact URL matches (the same page discovered via two listing pages)
2. Fuzzy title similarity (the same story syndicated under different URLs)
"""

from __future__ import annotations

from rapidfuzz import fuzz

from .types import RawDocument


def dedup_documents(docs: list[RawDocument], threshold: int = 92) -> list[RawDocument]:
    """Remove duplicate raw documents from a list.

    Deduplication happens in two passes per document:
    1. Skip exact URL duplicates
    2. Skip documents whose title is similar to an already-kept title

    Args:
        docs: Raw documents in extraction order
        threshold: Similarity threshold (0-100) for fuzzy title matching.
                   Default 92 means titles must be 92% similar to be duplicates.

    Returns:
        Deduplicated list of documents, preserving original order
    """
    seen_urls: set[str] = set()
    kept: list[RawDocument] = []
    titles: list[str] = []

    for doc in docs:
        if doc.url in seen_urls:
            continue
        if _is_similar_title(doc.title, titles, threshold):
            continue
        seen_urls.add(doc.url)
        titles.append(doc.title)
        kept.append(doc)

    return kept


def _is_similar_title(title: str, titles: list[str], threshold: int) -> bool:
    """Check a title against the kept titles with rapidfuzz's Levenshtein ratio."""
    lowered = title.lower()
    for existing in titles:
        if fuzz.ratio(lowered, existing.lower()) >= threshold:
            return True
    return False
