"""Tests for the in-memory document store and its maintenance routines."""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

from conftest import NOW, enriched_document

from smart_news.config import StorageConfig
from smart_news.core.store import DocumentStore


def _store(**overrides) -> DocumentStore:
    return DocumentStore(StorageConfig(**overrides), clock=lambda: NOW)


def test_put_indexes_by_category_and_moves_on_update():
    store = _store()
    doc = enriched_document("a1", category="Politics")
    store.put(doc)
    assert [d.id for d in store.by_category("Politics")] == ["a1"]

    store.put(replace(doc, category="Sports"))
    assert store.by_category("Politics") == []
    assert [d.id for d in store.by_category("Sports")] == ["a1"]
    assert len(store) == 1


def test_remove_keeps_index_consistent():
    store = _store()
    store.put_many([enriched_document("a1"), enriched_document("a2", title="Black Stars win in Kumasi", category="Sports")])

    assert store.remove("a1")
    assert not store.remove("a1")
    assert "a1" not in store
    assert store.category_counts()["Politics"] == 0
    assert store.category_counts()["Sports"] == 1


def test_queries_return_newest_first():
    store = _store()
    store.put_many(
        [
            enriched_document("old", title="Cocoa prices rise", category="Business", publish_date=NOW - timedelta(hours=3)),
            enriched_document("new", title="Cedi gains against dollar", category="Business", publish_date=NOW),
        ]
    )
    assert [d.id for d in store.by_category("Business")] == ["new", "old"]
    assert [d.id for d in store.all(limit=1)] == ["new"]
    assert [d.id for d in store.search("cocoa")] == ["old"]
    assert [d.id for d in store.by_tag("budget")] == ["new", "old"]


def test_search_matches_tags_case_insensitively():
    store = _store()
    store.put(enriched_document("a1", tags=["Elections", "ghana", "policy"]))
    assert [d.id for d in store.search("ELECTION")] == ["a1"]
    assert store.search("football") == []


def test_evict_expired_uses_discovery_time():
    store = _store(retention_hours=24)
    store.put_many(
        [
            enriched_document("fresh", title="Fresh story about roads", discovered_at=NOW - timedelta(hours=2)),
            enriched_document("stale", title="Stale story about ports", discovered_at=NOW - timedelta(hours=25)),
        ]
    )
    assert store.evict_expired() == 1
    assert "fresh" in store
    assert "stale" not in store


def test_remove_duplicates_keeps_newest_published_copy():
    store = _store(duplicate_threshold=0.8)
    store.put_many(
        [
            enriched_document("first", title="President opens new hospital in Accra", publish_date=NOW - timedelta(hours=1)),
            enriched_document("second", title="President opens new hospital in Accra today", publish_date=NOW),
            enriched_document("other", title="Black Stars qualify for tournament", category="Sports"),
        ]
    )
    assert store.remove_duplicates() == 1
    assert "second" in store
    assert "first" not in store
    assert "other" in store


def test_perform_maintenance_reports_counts():
    store = _store()
    store.put(enriched_document("stale", discovered_at=NOW - timedelta(days=2)))
    report = store.perform_maintenance()
    assert report.expired_removed == 1
    assert report.duplicates_removed == 0
    assert report.index_rebuilt
    assert store.maintenance_stats()["index_rebuilds"] == 1


def test_maintenance_needed_for_expired_documents():
    store = _store()
    assert not store.maintenance_needed().needed

    store.put(enriched_document("stale", discovered_at=NOW - timedelta(days=2)))
    check = store.maintenance_needed()
    assert check.needed
    assert check.priority == "medium"
    assert store.auto_maintenance()
    assert "stale" not in store


def test_maintenance_priority_high_when_document_count_exceeds_limit():
    store = _store(max_documents_per_category=1)
    for i in range(6):
        store.put(enriched_document(f"d{i}", title=f"Distinct headline number {i} about topic {i * 7}"))
    check = store.maintenance_needed()
    assert check.priority == "high"
    assert "Document count exceeds recommended limits" in check.reasons


def test_health_report_flags_empty_store():
    report = _store().health_report()
    assert report["status"] == "warning"
    assert "No documents in storage" in report["issues"]
    assert report["stats"]["total_documents"] == 0


def test_health_report_healthy_with_documents():
    store = _store()
    store.put(enriched_document("a1"))
    report = store.health_report()
    assert report["status"] == "healthy"
    assert report["memory"]["document_count"] == 1
    assert report["memory"]["estimated_kb"] > 0


def test_storage_stats_bounds():
    store = _store()
    store.put_many(
        [
            enriched_document("a", title="Road construction begins", publish_date=NOW - timedelta(hours=5)),
            enriched_document("b", title="Fishermen protest fuel costs", publish_date=NOW),
        ]
    )
    stats = store.storage_stats()
    assert stats["total_documents"] == 2
    assert stats["oldest"] == (NOW - timedelta(hours=5)).isoformat()
    assert stats["newest"] == NOW.isoformat()


def test_remove_duplicates_compares_every_pair_in_a_chain():
    store = _store(duplicate_threshold=0.8)
    store.put_many(
        [
            enriched_document(
                "newest",
                title="government announces new plan for roads across the this week",
                publish_date=NOW,
            ),
            enriched_document(
                "middle",
                title="government announces new plan for roads across the northern region",
                publish_date=NOW - timedelta(hours=1),
            ),
            enriched_document(
                "oldest",
                title="new plan for roads across the northern region says minister",
                publish_date=NOW - timedelta(hours=2),
            ),
        ]
    )
    assert store.remove_duplicates() == 2
    assert [d.id for d in store.all()] == ["newest"]


def test_rebuild_index_restores_category_lookups():
    store = _store()
    store.put(enriched_document("a1", category="Politics"))
    store._index["Politics"].clear()
    assert store.by_category("Politics") == []

    store.rebuild_index()
    assert [d.id for d in store.by_category("Politics")] == ["a1"]
    assert store.category_counts()["Politics"] == 1


def test_limit_zero_returns_no_documents():
    store = _store()
    store.put(enriched_document("a1"))
    assert store.all(limit=0) == []
    assert store.by_category("Politics", limit=0) == []
    assert [d.id for d in store.all()] == ["a1"]
