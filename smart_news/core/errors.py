"""
Error taxonomy, exceptions and retry backoff.

Every pipeline stage reports failures as ``PipelineError`` values tagged with
an ``ErrorKind``. Only network and enrichment errors are considered transient.
``ErrorTracker`` keeps a bounded history used for error-rate checks.
"""

from __future__ import annotations

from collections import Counter, deque
from datetime import datetime, timedelta, timezone
from enum import Enum
import random
from typing import Any, Callable, TYPE_CHECKING

if TYPE_CHECKING:
    from .types import EnrichedDocument, PipelineError, RawDocument


class ErrorKind(str, Enum):
    NETWORK = "network"
    PARSING = "parsing"
    ENRICHMENT = "enrichment"
    VALIDATION = "validation"
    PIPELINE = "pipeline"


_RETRYABLE = frozenset({ErrorKind.NETWORK, ErrorKind.ENRICHMENT})

_BASE_DELAY_SECONDS = {
    ErrorKind.NETWORK: 1.0,
    ErrorKind.ENRICHMENT: 5.0,
}

MAX_BACKOFF_SECONDS = 30.0
MAX_RECENT_ERRORS = 100


def is_retryable(kind: ErrorKind) -> bool:
    return kind in _RETRYABLE


def backoff_delay(
    attempt: int,
    kind: ErrorKind = ErrorKind.NETWORK,
    base: float | None = None,
    cap: float = MAX_BACKOFF_SECONDS,
    rng: Callable[[], float] = random.random,
) -> float:
    """Exponential backoff with up to one second of jitter.

    Args:
        attempt: Zero-based retry attempt
        kind: Error kind, selects the base delay when ``base`` is not given
        base: Base delay in seconds
        cap: Upper bound on the returned delay
        rng: Source of jitter in [0, 1)

    Returns:
        Delay in seconds, never above ``cap``
    """
    if base is None:
        base = _BASE_DELAY_SECONDS.get(kind, 1.0)
    delay = base * (2 ** max(attempt, 0)) + rng()
    return min(delay, cap)


class SmartNewsError(Exception):
    """Base class for pipeline exceptions."""


class PipelineAlreadyRunningError(SmartNewsError):
    def __init__(self) -> None:
        super().__init__("Pipeline is already running")


class PipelineStoppedError(SmartNewsError):
    def __init__(self) -> None:
        super().__init__("Pipeline was stopped")


class SchedulerNotRunningError(SmartNewsError):
    def __init__(self) -> None:
        super().__init__("Scheduler is not running")


class BrowserUnavailableError(SmartNewsError):
    """The headless browser could not be started."""


class PageLoadError(SmartNewsError):
    """A single page failed to render."""


class ResponseParseError(SmartNewsError):
    """A model response did not contain usable JSON."""


class ModelUnavailableError(SmartNewsError):
    """The generative model could not be used for some documents.

    Carries the documents accepted before the model became unavailable and
    the raw documents still waiting for enrichment.
    """

    def __init__(
        self,
        accepted: list[EnrichedDocument],
        pending: list[RawDocument],
        reason: str = "Model unavailable",
    ) -> None:
        super().__init__(f"{reason}: {len(pending)} document(s) pending")
        self.accepted = accepted
        self.pending = pending
        self.reason = reason


class ErrorTracker:
    """Per-kind error counts plus a bounded list of recent errors."""

    def __init__(
        self,
        max_recent: int = MAX_RECENT_ERRORS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._recent: deque[PipelineError] = deque(maxlen=max_recent)
        self._counts: Counter[str] = Counter()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def record(self, error: PipelineError) -> None:
        self._counts[ErrorKind(error.kind).value] += 1
        self._recent.append(error)

    def record_many(self, errors: list[PipelineError]) -> None:
        for error in errors:
            self.record(error)

    def error_rate(self) -> int:
        """Number of recent errors timestamped within the last hour."""
        cutoff = self._clock() - timedelta(hours=1)
        return sum(1 for error in self._recent if error.timestamp > cutoff)

    def is_error_rate_high(self, threshold: int = 10) -> bool:
        return self.error_rate() > threshold

    def recent(self, limit: int = 10) -> list[PipelineError]:
        if limit <= 0:
            return []
        return list(self._recent)[-limit:]

    def stats(self) -> dict[str, Any]:
        return {
            "total": sum(self._counts.values()),
            "by_kind": {kind.value: self._counts.get(kind.value, 0) for kind in ErrorKind},
            "recent": len(self._recent),
            "error_rate": self.error_rate(),
        }

    def clear(self) -> None:
        self._recent.clear()
        self._counts.clear()
