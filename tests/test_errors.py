"""Tests for the error taxonomy, backoff and error-rate tracking."""

from __future__ import annotations

from datetime import timedelta

from conftest import NOW

from smart_news.core.errors import ErrorKind, ErrorTracker, backoff_delay, is_retryable
from smart_news.core.types import PipelineError, PipelineResult, record_error


def test_only_network_and_enrichment_errors_are_retryable():
    assert is_retryable(ErrorKind.NETWORK)
    assert is_retryable(ErrorKind.ENRICHMENT)
    assert not is_retryable(ErrorKind.PARSING)
    assert not is_retryable(ErrorKind.VALIDATION)
    assert not is_retryable(ErrorKind.PIPELINE)


def test_pipeline_error_defaults_retryable_from_kind():
    assert PipelineError(kind=ErrorKind.NETWORK, message="timeout").retryable is True
    assert PipelineError(kind="validation", message="short body").retryable is False
    assert PipelineError(kind="validation", message="short body").kind is ErrorKind.VALIDATION


def test_backoff_doubles_per_attempt_and_respects_cap():
    no_jitter = lambda: 0.0  # noqa: E731
    assert backoff_delay(0, ErrorKind.NETWORK, rng=no_jitter) == 1.0
    assert backoff_delay(2, ErrorKind.NETWORK, rng=no_jitter) == 4.0
    assert backoff_delay(1, ErrorKind.ENRICHMENT, rng=no_jitter) == 10.0
    assert backoff_delay(10, ErrorKind.ENRICHMENT, rng=no_jitter) == 30.0


def test_backoff_adds_jitter_below_one_second():
    delay = backoff_delay(0, ErrorKind.NETWORK, rng=lambda: 0.5)
    assert delay == 1.5


def test_error_rate_counts_only_the_last_hour():
    tracker = ErrorTracker(clock=lambda: NOW)
    tracker.record(PipelineError(ErrorKind.NETWORK, "old", timestamp=NOW - timedelta(hours=2)))
    for i in range(3):
        tracker.record(PipelineError(ErrorKind.PARSING, f"recent {i}", timestamp=NOW - timedelta(minutes=5)))

    assert tracker.error_rate() == 3
    assert tracker.is_error_rate_high(threshold=2)
    assert not tracker.is_error_rate_high(threshold=3)


def test_tracker_stats_and_bounded_history():
    tracker = ErrorTracker(max_recent=2, clock=lambda: NOW)
    tracker.record_many(
        [
            PipelineError(ErrorKind.NETWORK, "a", timestamp=NOW),
            PipelineError(ErrorKind.NETWORK, "b", timestamp=NOW),
            PipelineError(ErrorKind.VALIDATION, "c", timestamp=NOW),
        ]
    )

    stats = tracker.stats()
    assert stats["total"] == 3
    assert stats["by_kind"]["network"] == 2
    assert stats["by_kind"]["validation"] == 1
    assert stats["by_kind"]["pipeline"] == 0
    assert [e.message for e in tracker.recent()] == ["b", "c"]

    tracker.clear()
    assert tracker.stats()["total"] == 0


def test_record_error_appends_to_sink():
    errors: list[PipelineError] = []
    error = record_error(errors, ErrorKind.NETWORK, "boom", "https://example.com")
    assert errors == [error]
    assert record_error(None, ErrorKind.PARSING, "ignored").message == "ignored"


def test_result_is_not_ok_only_with_pipeline_errors():
    result = PipelineResult(total_processed=0, successful=0, failed=0, duration_ms=0)
    result.errors.append(PipelineError(ErrorKind.NETWORK, "listing failed"))
    assert result.ok
    result.errors.append(PipelineError(ErrorKind.PIPELINE, "crashed"))
    assert not result.ok
