"""
Core domain models and business logic.

This package contains data types, the error taxonomy and the document store,
independent of any specific pipeline stage.
"""

from .dedup import dedup_documents
from .errors import (
    ErrorKind,
    ErrorTracker,
    ModelUnavailableError,
    PipelineAlreadyRunningError,
    SmartNewsError,
    backoff_delay,
    is_retryable,
)
from .store import DocumentStore
from .types import (
    DocumentMetadata,
    EnrichedDocument,
    EnrichmentMetadata,
    PipelineError,
    PipelineResult,
    RawDocument,
    RunMetrics,
)

__all__ = [
    "DocumentMetadata",
    "DocumentStore",
    "EnrichedDocument",
    "EnrichmentMetadata",
    "ErrorKind",
    "ErrorTracker",
    "ModelUnavailableError",
    "PipelineAlreadyRunningError",
    "PipelineError",
    "PipelineResult",
    "RawDocument",
    "RunMetrics",
    "SmartNewsError",
    "backoff_delay",
    "dedup_documents",
    "is_retryable",
]
