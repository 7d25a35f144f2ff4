"""
In-memory document store with a category index and maintenance routines.

The store keeps a primary map of documents by id and a secondary index of
category -> ids. Both are updated together on every write. Maintenance covers
retention eviction, near-duplicate removal, index rebuild and a health report.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Callable

from ..config import StorageConfig
from ..logging_utils import log_event
from .text import STANDARD_CATEGORIES, title_similarity
from .types import EnrichedDocument


@dataclass
class MaintenanceStats:
    total_cleanups: int = 0
    documents_removed: int = 0
    duplicates_removed: int = 0
    index_rebuilds: int = 0
    last_maintenance: datetime | None = None


@dataclass(frozen=True)
class MaintenanceCheck:
    needed: bool
    reasons: list[str]
    priority: str


@dataclass(frozen=True)
class MaintenanceReport:
    expired_removed: int
    duplicates_removed: int
    index_rebuilt: bool
    duration_ms: int


class DocumentStore:
    """Indexed in-memory repository of enriched documents.

    Args:
        cfg: Retention, duplicate and health thresholds
        logger: Optional pipeline logger
        clock: Returns the current UTC time; injectable for tests
    """

    def __init__(
        self,
        cfg: StorageConfig | None = None,
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.cfg = cfg or StorageConfig()
        self.logger = logger
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._docs: dict[str, EnrichedDocument] = {}
        self._index: dict[str, set[str]] = {}
        self._stats = MaintenanceStats(last_maintenance=self._clock())
        self._reset_index()

    def _reset_index(self) -> None:
        self._index = {category: set() for category in STANDARD_CATEGORIES}

    def __len__(self) -> int:
        return len(self._docs)

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._docs

    # Writes

    def put(self, doc: EnrichedDocument) -> None:
        previous = self._docs.get(doc.id)
        if previous is not None and previous.category != doc.category:
            self._index.get(previous.category, set()).discard(doc.id)
        self._docs[doc.id] = doc
        self._index.setdefault(doc.category, set()).add(doc.id)

    def put_many(self, docs: list[EnrichedDocument]) -> int:
        for doc in docs:
            self.put(doc)
        log_event(self.logger, "Stored documents", event="store_put", count=len(docs))
        return len(docs)

    def remove(self, doc_id: str) -> bool:
        doc = self._docs.pop(doc_id, None)
        if doc is None:
            return False
        self._index.get(doc.category, set()).discard(doc_id)
        return True

    def clear(self) -> None:
        self._docs.clear()
        for ids in self._index.values():
            ids.clear()

    # Reads

    def get(self, doc_id: str) -> EnrichedDocument | None:
        return self._docs.get(doc_id)

    def by_category(self, category: str, limit: int | None = None) -> list[EnrichedDocument]:
        ids = self._index.get(category)
        if not ids:
            return []
        docs = [self._docs[doc_id] for doc_id in ids if doc_id in self._docs]
        return _newest_first(docs, limit)

    def by_tag(self, tag: str, limit: int | None = None) -> list[EnrichedDocument]:
        docs = [doc for doc in self._docs.values() if tag in doc.tags]
        return _newest_first(docs, limit)

    def search(self, query: str, limit: int | None = None) -> list[EnrichedDocument]:
        """Case-insensitive substring match over title, body and tags."""
        term = query.lower()
        docs = [
            doc
            for doc in self._docs.values()
            if term in doc.title.lower()
            or term in doc.body.lower()
            or any(term in tag.lower() for tag in doc.tags)
        ]
        return _newest_first(docs, limit)

    def all(self, limit: int | None = None) -> list[EnrichedDocument]:
        return _newest_first(list(self._docs.values()), limit)

    def trending(self, limit: int = 6) -> list[EnrichedDocument]:
        return self.all(limit)

    def category_counts(self) -> dict[str, int]:
        return {category: len(ids) for category, ids in self._index.items()}

    def storage_stats(self) -> dict[str, Any]:
        dates = [doc.publish_date for doc in self._docs.values()]
        return {
            "total_documents": len(self._docs),
            "category_counts": self.category_counts(),
            "oldest": min(dates).isoformat() if dates else None,
            "newest": max(dates).isoformat() if dates else None,
        }

    def memory_usage(self) -> dict[str, Any]:
        """Estimate footprint from the UTF-8 size of each document's text fields."""
        total_bytes = sum(_document_size(doc) for doc in self._docs.values())
        return {
            "document_count": len(self._docs),
            "estimated_kb": round(total_bytes / 1024, 2),
        }

    # Maintenance

    def evict_expired(self) -> int:
        """Remove documents discovered longer ago than the retention window."""
        cutoff = self._clock() - timedelta(hours=self.cfg.retention_hours)
        expired = [
            doc_id
            for doc_id, doc in self._docs.items()
            if doc.metadata.discovered_at < cutoff
        ]
        for doc_id in expired:
            self.remove(doc_id)
        self._stats.total_cleanups += 1
        self._stats.documents_removed += len(expired)
        self._stats.last_maintenance = self._clock()
        log_event(self.logger, "Evicted expired documents", event="store_evict", removed=len(expired))
        return len(expired)

    def remove_duplicates(self) -> int:
        """Remove near-duplicate titles, keeping the most recently published copy.

        Every pair of documents is compared; when their title similarity
        reaches the threshold the older-published one is removed.
        """
        docs = list(self._docs.values())
        duplicates: set[str] = set()
        for i, doc in enumerate(docs):
            for other in docs[i + 1 :]:
                if title_similarity(doc.title, other.title) < self.cfg.duplicate_threshold:
                    continue
                older = doc if doc.publish_date < other.publish_date else other
                duplicates.add(older.id)
        for doc_id in duplicates:
            self.remove(doc_id)
        self._stats.duplicates_removed += len(duplicates)
        self._stats.last_maintenance = self._clock()
        log_event(
            self.logger,
            "Removed duplicate documents",
            event="store_dedup",
            removed=len(duplicates),
        )
        return len(duplicates)

    def rebuild_index(self) -> None:
        """Reconstruct the category index from the primary map."""
        self._reset_index()
        for doc_id, doc in self._docs.items():
            self._index.setdefault(doc.category, set()).add(doc_id)
        self._stats.index_rebuilds += 1

    def perform_maintenance(self) -> MaintenanceReport:
        started = self._clock()
        expired = self.evict_expired()
        duplicates = self.remove_duplicates()
        self.rebuild_index()
        self._stats.last_maintenance = self._clock()
        duration_ms = int((self._stats.last_maintenance - started).total_seconds() * 1000)
        report = MaintenanceReport(
            expired_removed=expired,
            duplicates_removed=duplicates,
            index_rebuilt=True,
            duration_ms=duration_ms,
        )
        log_event(
            self.logger,
            "Maintenance completed",
            event="store_maintenance",
            expired_removed=expired,
            duplicates_removed=duplicates,
        )
        return report

    def maintenance_needed(self) -> MaintenanceCheck:
        now = self._clock()
        reasons: list[str] = []
        priority = "low"

        last = self._stats.last_maintenance
        interval = timedelta(hours=self.cfg.maintenance_interval_hours)
        if last is None or last < now - interval:
            reasons.append("Scheduled maintenance overdue")
            priority = "medium"

        if self.memory_usage()["estimated_kb"] > self.cfg.memory_warning_kb:
            reasons.append("High memory usage detected")
            priority = "high"

        if len(self._docs) > self.cfg.max_documents_per_category * 5:
            reasons.append("Document count exceeds recommended limits")
            priority = "high"

        cutoff = now - timedelta(hours=self.cfg.retention_hours)
        expired = sum(1 for doc in self._docs.values() if doc.metadata.discovered_at < cutoff)
        if expired:
            reasons.append(f"{expired} expired documents need cleanup")
            if priority == "low":
                priority = "medium"

        return MaintenanceCheck(needed=bool(reasons), reasons=reasons, priority=priority)

    def auto_maintenance(self) -> bool:
        """Run maintenance only when the check reports medium or high priority."""
        check = self.maintenance_needed()
        if not check.needed or check.priority == "low":
            return False
        log_event(
            self.logger,
            "Auto-maintenance triggered",
            event="store_auto_maintenance",
            reasons=check.reasons,
            priority=check.priority,
        )
        self.perform_maintenance()
        return True

    def maintenance_stats(self) -> dict[str, Any]:
        last = self._stats.last_maintenance
        next_scheduled = (
            last + timedelta(hours=self.cfg.maintenance_interval_hours) if last else None
        )
        return {
            "total_cleanups": self._stats.total_cleanups,
            "documents_removed": self._stats.documents_removed,
            "duplicates_removed": self._stats.duplicates_removed,
            "index_rebuilds": self._stats.index_rebuilds,
            "last_maintenance": last.isoformat() if last else None,
            "next_scheduled_maintenance": next_scheduled.isoformat() if next_scheduled else None,
        }

    def health_report(self) -> dict[str, Any]:
        stats = self.storage_stats()
        memory = self.memory_usage()
        check = self.maintenance_needed()
        issues: list[str] = []
        recommendations: list[str] = []
        status = "healthy"

        def warn() -> None:
            nonlocal status
            if status == "healthy":
                status = "warning"

        if memory["estimated_kb"] > self.cfg.memory_critical_kb:
            issues.append("Very high memory usage")
            recommendations.append("Perform immediate cleanup")
            status = "critical"
        elif memory["estimated_kb"] > self.cfg.memory_warning_kb:
            issues.append("High memory usage")
            recommendations.append("Schedule maintenance soon")
            warn()

        if check.needed and check.priority == "high":
            issues.append("Critical maintenance overdue")
            recommendations.append("Run maintenance immediately")
            status = "critical"
        elif check.needed:
            issues.append("Maintenance needed")
            recommendations.append("Schedule maintenance")
            warn()

        total = stats["total_documents"]
        if total == 0:
            issues.append("No documents in storage")
            recommendations.append("Check the scraping pipeline")
            warn()

        counts = list(stats["category_counts"].values())
        if counts and max(counts) > min(counts) * 10 and total > 10:
            issues.append("Unbalanced category distribution")
            recommendations.append("Review site configuration")
            warn()

        return {
            "status": status,
            "issues": issues,
            "recommendations": recommendations,
            "stats": stats,
            "maintenance": self.maintenance_stats(),
            "memory": memory,
        }


def _newest_first(docs: list[EnrichedDocument], limit: int | None) -> list[EnrichedDocument]:
    ordered = sorted(docs, key=lambda doc: doc.publish_date, reverse=True)
    return ordered[:limit] if limit is not None else ordered


def _document_size(doc: EnrichedDocument) -> int:
    parts = [doc.id, doc.title, doc.body, doc.summary, doc.author, doc.category]
    parts.extend(doc.tags)
    parts.extend(doc.image_urls)
    parts.append(doc.metadata.source_url)
    return sum(len(part.encode("utf-8")) for part in parts)
