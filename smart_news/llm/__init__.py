"""Generative rewriting, fallback enrichment and observability."""

from .enricher import Enricher
from .fallback import fallback_enrich
from .providers.base import CallResult, CallStatus, GenerationProvider
from .providers.factory import available_providers, create_provider
from .providers.gemini import GeminiProvider
from .tracing import flush, record_span_error, set_span_output, setup_langfuse, start_span

__all__ = [
    "CallResult",
    "CallStatus",
    "Enricher",
    "GeminiProvider",
    "GenerationProvider",
    "available_providers",
    "create_provider",
    "fallback_enrich",
    "flush",
    "record_span_error",
    "set_span_output",
    "setup_langfuse",
    "start_span",
]
