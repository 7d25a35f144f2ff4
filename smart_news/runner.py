"""
Wiring of the pipeline components from an AppConfig.

``build_pipeline`` sets up logging and tracing, creates the generation
provider and assembles the store, enricher and orchestrator. When no model
API key is configured the enricher runs without a provider and every run
falls back to rule-based enrichment.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path

from .config import AppConfig
from .core.errors import ErrorTracker
from .core.store import DocumentStore
from .llm.enricher import Enricher
from .llm.providers import GenerationProvider, create_provider
from .llm.tracing import setup_langfuse
from .logging_utils import log_event, setup_llm_logger, setup_logging
from .pipeline.orchestrator import PipelineOrchestrator


@dataclass
class Pipeline:
    cfg: AppConfig
    orchestrator: PipelineOrchestrator
    store: DocumentStore
    enricher: Enricher
    tracker: ErrorTracker
    provider: GenerationProvider | None
    logger: logging.Logger

    @property
    def model_available(self) -> bool:
        return self.provider is not None

    async def aclose(self) -> None:
        if self.provider is not None:
            await self.provider.aclose()


def build_pipeline(cfg: AppConfig, log_dir: Path | None = None) -> Pipeline:
    logger = setup_logging(cfg.logging, log_dir)
    llm_logger = setup_llm_logger(cfg.logging, log_dir)
    setup_langfuse(cfg.langfuse)

    provider: GenerationProvider | None
    try:
        provider = create_provider(cfg.provider, cfg.logging, llm_logger)
    except ValueError as exc:
        logger.warning("Generation model unavailable, using fallback enrichment: %s", exc)
        provider = None

    tracker = ErrorTracker()
    store = DocumentStore(cfg.storage, logger=logger)
    enricher = Enricher(provider, cfg.enrichment, logger=logger)
    orchestrator = PipelineOrchestrator(cfg, store, enricher, tracker=tracker, logger=logger)
    log_event(
        logger,
        "Pipeline ready",
        event="pipeline_ready",
        provider=provider.model if provider else None,
        sites=[site.name for site in cfg.sites],
    )
    return Pipeline(
        cfg=cfg,
        orchestrator=orchestrator,
        store=store,
        enricher=enricher,
        tracker=tracker,
        provider=provider,
        logger=logger,
    )
