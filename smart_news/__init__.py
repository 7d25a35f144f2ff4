"""
Smart News - AI-assisted news aggregation pipeline.

This package discovers articles on configured news sites, extracts them
with a headless browser, rewrites them through a generative model (with a
rule-based fallback) and keeps a short-lived in-memory document store.

Main entry point is the CLI via `smart-news run` command.

Example:
    $ smart-news run --max-documents 5
"""

__all__ = ["__version__", "AppConfig", "DocumentStore", "PipelineOrchestrator", "load_config"]
__version__ = "0.1.0"

from .config import AppConfig, load_config
from .core.store import DocumentStore
from .pipeline.orchestrator import PipelineOrchestrator
