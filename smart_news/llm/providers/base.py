"""Abstract interface for the generative model service."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
import logging


class CallStatus(str, Enum):
    OK = "ok"
    RATE_LIMITED = "rate_limited"
    FAILED = "failed"


@dataclass(frozen=True)
class CallResult:
    """Outcome of one generation call.

    Attributes:
        status: ok, rate_limited or failed
        text: Generated text when status is ok
        retry_after: Server-suggested wait in seconds, for rate-limited calls
        error: Error description for non-ok calls
    """

    status: CallStatus
    text: str = ""
    retry_after: float | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is CallStatus.OK

    @classmethod
    def success(cls, text: str) -> "CallResult":
        return cls(status=CallStatus.OK, text=text)

    @classmethod
    def rate_limited(cls, error: str, retry_after: float | None = None) -> "CallResult":
        return cls(status=CallStatus.RATE_LIMITED, retry_after=retry_after, error=error)

    @classmethod
    def failed(cls, error: str) -> "CallResult":
        return cls(status=CallStatus.FAILED, error=error)


class GenerationProvider(ABC):
    """A text-generation backend.

    Implementations never raise for service-side failures; they classify the
    outcome into a ``CallResult`` so callers can decide whether to retry.
    """

    model: str = "unknown"

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        entry_logger: logging.Logger | None = None,
    ) -> CallResult:
        """Send one prompt and return the classified result."""
        raise NotImplementedError

    async def aclose(self) -> None:
        return None
