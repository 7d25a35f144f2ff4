"""Google Gemini provider over the generateContent REST endpoint."""

from __future__ import annotations

import logging
import re
from typing import Any

import httpx

from ...config import LoggingConfig, ProviderConfig
from ...logging_utils import log_event, redact_text, truncate_text
from ..tracing import record_span_error, set_span_output, start_span
from .base import CallResult, GenerationProvider

_DELAY_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)s\s*$")


class GeminiProvider(GenerationProvider):
    """Gemini-backed text generation.

    Quota and rate-limit responses (HTTP 429, ``RESOURCE_EXHAUSTED`` or a
    ``QuotaFailure`` detail) come back as rate-limited results carrying the
    server's ``RetryInfo.retryDelay``. Every other failure is a hard failure.
    """

    def __init__(
        self,
        cfg: ProviderConfig,
        api_key: str | None,
        log_cfg: LoggingConfig | None = None,
        llm_logger: logging.Logger | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        if not api_key:
            raise ValueError("Missing Google API key")
        self.cfg = cfg
        self.model = cfg.model
        self.api_key = api_key
        self.log_cfg = log_cfg or LoggingConfig()
        self.llm_logger = llm_logger
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.cfg.timeout_seconds,
                trust_env=self.cfg.trust_env,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def generate(
        self,
        prompt: str,
        entry_logger: logging.Logger | None = None,
    ) -> CallResult:
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self.cfg.temperature,
                "maxOutputTokens": self.cfg.max_output_tokens,
            },
        }
        with start_span(
            "gemini.generate",
            kind="llm",
            input_value=prompt,
            attributes={"llm.model": self.cfg.model, "llm.provider": "gemini"},
        ) as span:
            result = await self._post(payload)
            if result.ok:
                set_span_output(span, result.text)
            else:
                record_span_error(span, result.error or result.status.value)
        self._log_llm_response(result, prompt, entry_logger)
        return result

    async def _post(self, payload: dict[str, Any]) -> CallResult:
        url = f"{self.cfg.base_url}/v1beta/models/{self.cfg.model}:generateContent"
        try:
            resp = await self._get_client().post(url, params={"key": self.api_key}, json=payload)
        except httpx.HTTPError as exc:
            return CallResult.failed(f"{type(exc).__name__}: {exc}")

        if resp.status_code >= 400:
            return _classify_error(resp)

        try:
            data = resp.json()
        except ValueError as exc:
            return CallResult.failed(f"Invalid JSON from Gemini: {exc}")
        text = _extract_text(data)
        if not text:
            reason = _finish_reason(data)
            return CallResult.failed(f"Empty response (finishReason={reason})")
        return CallResult.success(text)

    def _log_llm_response(
        self,
        result: CallResult,
        prompt: str,
        logger: logging.Logger | None = None,
    ) -> None:
        active_logger = logger or self.llm_logger
        if active_logger is None:
            return
        detail = self.log_cfg.llm_log_detail
        redaction = self.log_cfg.llm_log_redaction
        content = result.text if result.ok else (result.error or "")
        fields: dict[str, Any] = {
            "event": "llm_response",
            "status": result.status.value,
            "model": self.cfg.model,
            "retry_after": result.retry_after,
            "raw_response": truncate_text(redact_text(content, redaction)),
        }
        if detail == "prompt_response":
            fields["raw_prompt"] = truncate_text(redact_text(prompt, redaction))
        log_event(active_logger, "LLM response", **fields)


def _classify_error(resp: httpx.Response) -> CallResult:
    try:
        body = resp.json()
    except ValueError:
        body = {}
    error = body.get("error") if isinstance(body, dict) else None
    error = error if isinstance(error, dict) else {}
    details = error.get("details") if isinstance(error.get("details"), list) else []
    message = str(error.get("message") or resp.reason_phrase or "Gemini request failed")
    status_text = str(error.get("status") or "")

    quota_failure = any("QuotaFailure" in str(d.get("@type", "")) for d in details if isinstance(d, dict))
    if resp.status_code == 429 or status_text == "RESOURCE_EXHAUSTED" or quota_failure:
        retry_after = _retry_delay(details)
        if retry_after is None:
            retry_after = _parse_seconds(resp.headers.get("retry-after"))
        return CallResult.rate_limited(f"HTTP {resp.status_code}: {message}", retry_after)
    return CallResult.failed(f"HTTP {resp.status_code}: {message}")


def _retry_delay(details: list[Any]) -> float | None:
    for detail in details:
        if isinstance(detail, dict) and "RetryInfo" in str(detail.get("@type", "")):
            return _parse_seconds(detail.get("retryDelay"))
    return None


def _parse_seconds(value: Any) -> float | None:
    """Parse ``"43s"``, ``"1.5s"`` or a bare number of seconds."""
    if value is None:
        return None
    text = str(value)
    match = _DELAY_RE.match(text)
    if match:
        return float(match.group(1))
    try:
        return float(text)
    except ValueError:
        return None


def _extract_text(data: dict[str, Any]) -> str:
    try:
        parts = data["candidates"][0]["content"]["parts"]
    except (KeyError, IndexError, TypeError):
        return ""
    if not isinstance(parts, list):
        return ""
    texts = [
        part["text"]
        for part in parts
        if isinstance(part, dict) and isinstance(part.get("text"), str) and not part.get("thought")
    ]
    if not texts:
        texts = [
            part["text"]
            for part in parts
            if isinstance(part, dict) and isinstance(part.get("text"), str)
        ]
    return "".join(texts)


def _finish_reason(data: dict[str, Any]) -> str | None:
    try:
        return data["candidates"][0].get("finishReason")
    except (KeyError, IndexError, TypeError, AttributeError):
        return None
