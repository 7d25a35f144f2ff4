"""
Batched rewriting of raw documents through the generative model.

Documents are sent in batches. A batch whose call fails, or whose response
cannot be parsed, is retried one document at a time; documents missing from
an otherwise valid batch response are retried the same way. Every candidate
must pass structural acceptance checks before it becomes an EnrichedDocument.

Rate-limited calls are retried with backoff. A document whose individual call
is still rate limited after the last attempt is not dropped: it is reported
as pending through ``ModelUnavailableError`` so the caller can substitute the
rule-based fallback.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import logging
import random
from typing import Callable

from ..config import EnrichmentConfig
from ..core.errors import ErrorKind, ModelUnavailableError, ResponseParseError, backoff_delay
from ..core.text import count_words, generate_document_id, standardize_category
from ..core.types import EnrichedDocument, EnrichmentMetadata, PipelineError, RawDocument, record_error
from ..fetch.pool import SleepFn
from ..logging_utils import log_event
from .fallback import FALLBACK_MODEL
from .prompts import build_batch_prompt, build_single_prompt
from .providers.base import CallResult, CallStatus, GenerationProvider
from .response import RewriteCandidate, SchemaError, parse_batch_response, parse_single_response

DEFAULT_CONFIDENCE = 0.8


class Enricher:
    """Rewrites raw documents into enriched documents.

    Args:
        provider: Generation backend, or None when no API key is configured
        cfg: Batch size, retry and acceptance thresholds
        logger: Optional pipeline logger
        sleep: Awaitable sleep used for batch pauses and backoff
        clock: Returns the current UTC time
        rng: Jitter source for backoff
    """

    def __init__(
        self,
        provider: GenerationProvider | None,
        cfg: EnrichmentConfig | None = None,
        logger: logging.Logger | None = None,
        sleep: SleepFn = asyncio.sleep,
        clock: Callable[[], datetime] | None = None,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.provider = provider
        self.cfg = cfg or EnrichmentConfig()
        self.logger = logger
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._rng = rng

    async def enrich(
        self,
        docs: list[RawDocument],
        errors: list[PipelineError] | None = None,
    ) -> list[EnrichedDocument]:
        """Enrich documents batch by batch.

        Returns:
            Accepted documents in input order

        Raises:
            ModelUnavailableError: When the provider is missing or some
                documents ended rate limited; carries accepted and pending
        """
        if not docs:
            return []
        if self.provider is None:
            raise ModelUnavailableError([], list(docs), "No generation provider configured")

        accepted: list[EnrichedDocument] = []
        pending: list[RawDocument] = []
        size = max(1, self.cfg.batch_size)
        for start in range(0, len(docs), size):
            if start and self.cfg.batch_pause_seconds > 0:
                await self._sleep(self.cfg.batch_pause_seconds)
            batch = docs[start : start + size]
            batch_accepted, batch_pending = await self._enrich_batch(batch, errors)
            accepted.extend(batch_accepted)
            pending.extend(batch_pending)

        log_event(
            self.logger,
            f"Enriched {len(accepted)} of {len(docs)} documents",
            event="enrichment_done",
            requested=len(docs),
            accepted=len(accepted),
            pending=len(pending),
        )
        if pending:
            raise ModelUnavailableError(accepted, pending, "Model quota exhausted")
        return accepted

    async def call_with_backoff(self, prompt: str) -> CallResult:
        """Call the provider, retrying only rate-limited results.

        The server's suggested delay is honored when present; otherwise the
        enrichment backoff applies.
        """
        if self.provider is None:
            return CallResult.failed("No generation provider configured")
        attempts = max(1, self.cfg.max_attempts)
        result = CallResult.failed("No attempt made")
        for attempt in range(1, attempts + 1):
            result = await self.provider.generate(prompt)
            if result.status is not CallStatus.RATE_LIMITED or attempt == attempts:
                return result
            delay = result.retry_after
            if delay is None:
                delay = backoff_delay(attempt - 1, ErrorKind.ENRICHMENT, rng=self._rng)
            if self.logger:
                self.logger.warning(
                    "Rate limited, retrying in %.1fs (attempt %d/%d)", delay, attempt, attempts
                )
            await self._sleep(delay)
        return result

    async def _enrich_batch(
        self,
        batch: list[RawDocument],
        errors: list[PipelineError] | None,
    ) -> tuple[list[EnrichedDocument], list[RawDocument]]:
        results: dict[int, EnrichedDocument] = {}
        pending: list[RawDocument] = []
        retry_indices = list(range(len(batch)))

        result = await self.call_with_backoff(build_batch_prompt(batch, self.cfg.max_input_chars))
        if result.ok:
            try:
                parsed = parse_batch_response(result.text, len(batch))
            except ResponseParseError as exc:
                if self.logger:
                    self.logger.warning("Batch response unusable, retrying individually: %s", exc)
            else:
                retry_indices = []
                for index, doc in enumerate(batch):
                    item = parsed.get(index)
                    if item is None:
                        retry_indices.append(index)
                    elif isinstance(item, SchemaError):
                        record_error(errors, ErrorKind.VALIDATION, f"Rejected model output: {item}", doc.url)
                    else:
                        enriched = self._accept(doc, item, errors)
                        if enriched is not None:
                            results[index] = enriched
        elif self.logger:
            self.logger.warning(
                "Batch call %s (%s), retrying individually", result.status.value, result.error
            )

        for index in retry_indices:
            doc = batch[index]
            enriched, is_pending = await self._enrich_single(doc, errors)
            if enriched is not None:
                results[index] = enriched
            elif is_pending:
                pending.append(doc)

        return [results[index] for index in sorted(results)], pending

    async def _enrich_single(
        self,
        doc: RawDocument,
        errors: list[PipelineError] | None,
    ) -> tuple[EnrichedDocument | None, bool]:
        result = await self.call_with_backoff(build_single_prompt(doc, self.cfg.max_input_chars))
        if result.status is CallStatus.RATE_LIMITED:
            record_error(errors, ErrorKind.ENRICHMENT, f"Model quota exhausted: {result.error}", doc.url)
            return None, True
        if not result.ok:
            record_error(errors, ErrorKind.ENRICHMENT, f"Model call failed: {result.error}", doc.url)
            return None, False

        try:
            candidate = parse_single_response(result.text)
        except ResponseParseError as exc:
            record_error(errors, ErrorKind.PARSING, f"Unparseable model output: {exc}", doc.url)
            return None, False
        except SchemaError as exc:
            record_error(errors, ErrorKind.VALIDATION, f"Rejected model output: {exc}", doc.url)
            return None, False
        return self._accept(doc, candidate, errors), False

    def _accept(
        self,
        doc: RawDocument,
        candidate: RewriteCandidate,
        errors: list[PipelineError] | None,
    ) -> EnrichedDocument | None:
        reason = self._rejection_reason(candidate)
        if reason:
            record_error(errors, ErrorKind.VALIDATION, f"Enriched document rejected: {reason}", doc.url)
            if self.logger:
                self.logger.info("Rejected rewrite of %s: %s", doc.url, reason)
            return None

        model = self.provider.model if self.provider is not None else FALLBACK_MODEL
        return EnrichedDocument(
            id=generate_document_id(),
            title=candidate.title,
            body=candidate.content,
            summary=candidate.summary,
            author=candidate.author or doc.author,
            publish_date=doc.publish_date,
            category=standardize_category(candidate.category),
            tags=list(candidate.tags),
            image_urls=doc.image_urls,
            metadata=doc.metadata,
            enrichment=EnrichmentMetadata(
                timestamp=self._clock(),
                model=model,
                confidence_score=candidate.confidence if candidate.confidence is not None else DEFAULT_CONFIDENCE,
                original_word_count=doc.metadata.word_count,
                enriched_word_count=count_words(candidate.content),
            ),
        )

    def _rejection_reason(self, candidate: RewriteCandidate) -> str | None:
        cfg = self.cfg
        if len(candidate.title) < cfg.min_title_chars:
            return f"title shorter than {cfg.min_title_chars} characters"
        if len(candidate.content) < cfg.min_body_chars:
            return f"body shorter than {cfg.min_body_chars} characters"
        if count_words(candidate.content) < cfg.min_body_words:
            return f"body has fewer than {cfg.min_body_words} words"
        if len(candidate.summary) < cfg.min_summary_chars:
            return f"summary shorter than {cfg.min_summary_chars} characters"
        if not candidate.category:
            return "missing category"
        if len(candidate.tags) < cfg.min_tags:
            return f"fewer than {cfg.min_tags} tags"
        return None
