"""
Langfuse tracing around generative model calls.

Tracing is optional: when disabled, or when the langfuse package is not
installed, every helper here is a no-op and ``start_span`` yields None.
"""

from __future__ import annotations

from contextlib import contextmanager
import json
import logging
import os
import sys
from typing import Any, Iterator

from ..config import LangfuseConfig
from ..logging_utils import redact_text, truncate_text

logger = logging.getLogger("smart_news.tracing")

_TRACER: Any = None
_CFG: LangfuseConfig | None = None


def setup_langfuse(cfg: LangfuseConfig) -> bool:
    """Initialize the Langfuse client when enabled.

    Returns:
        True when a tracer is active
    """
    global _TRACER, _CFG  # noqa: PLW0603
    _CFG = cfg
    _TRACER = None
    if not cfg.enabled:
        return False
    try:
        from langfuse import Langfuse  # type: ignore
    except Exception as exc:  # noqa: BLE001
        logger.warning("Langfuse tracing requested but unavailable: %s", exc)
        return False

    _TRACER = Langfuse(
        public_key=_coalesce(cfg.public_key, "LANGFUSE_PUBLIC_KEY"),
        secret_key=_coalesce(cfg.secret_key, "LANGFUSE_SECRET_KEY"),
        host=_coalesce(cfg.host, "LANGFUSE_HOST"),
        environment=_coalesce(cfg.environment, "LANGFUSE_ENVIRONMENT"),
        release=_coalesce(cfg.release, "LANGFUSE_RELEASE"),
    )
    return True


def is_enabled() -> bool:
    return _TRACER is not None


@contextmanager
def start_span(
    name: str,
    kind: str,
    input_value: Any | None = None,
    attributes: dict[str, Any] | None = None,
) -> Iterator[Any | None]:
    """Open a Langfuse span for the enclosed block, or yield None when tracing is off."""
    tracer = _TRACER
    if tracer is None:
        yield None
        return

    metadata = _clean_attributes(attributes or {})
    if kind:
        metadata.setdefault("span.kind", kind)

    try:
        cm = tracer.start_as_current_span(
            name=name,
            input=_normalize_text(input_value),
            metadata=metadata,
        )
        span = cm.__enter__()
    except Exception as exc:  # noqa: BLE001
        logger.debug("Could not open span %s: %s", name, exc)
        yield None
        return

    try:
        yield span
    finally:
        try:
            cm.__exit__(*sys.exc_info())
        except Exception as exc:  # noqa: BLE001
            logger.debug("Could not close span %s: %s", name, exc)


def set_span_output(span: Any | None, output_value: Any) -> None:
    if span is None:
        return
    payload = _normalize_text(output_value)
    if payload is not None:
        _safe_update(span, output=payload)


def record_span_error(span: Any | None, error: BaseException | str) -> None:
    if span is None:
        return
    _safe_update(span, level="ERROR", status_message=str(error))


def flush() -> None:
    """Send pending traces before the process exits."""
    tracer = _TRACER
    if tracer is None or not hasattr(tracer, "flush"):
        return
    try:
        tracer.flush()
    except Exception as exc:  # noqa: BLE001
        logger.warning("Langfuse flush failed: %s", exc)


def _coalesce(value: str | None, env_key: str) -> str | None:
    return value or os.getenv(env_key)


def _normalize_text(value: Any) -> str | None:
    if value is None:
        return None
    text = value if isinstance(value, str) else json.dumps(value, ensure_ascii=True, default=str)
    if _CFG is None:
        return text
    return truncate_text(redact_text(text, _CFG.redaction), _CFG.max_text_chars)


def _clean_attributes(attrs: dict[str, Any]) -> dict[str, Any]:
    cleaned: dict[str, Any] = {}
    for key, value in attrs.items():
        if value is None:
            continue
        cleaned[key] = value if isinstance(value, (str, int, float, bool)) else str(value)
    return cleaned


def _safe_update(span: Any, **kwargs: Any) -> None:
    if not hasattr(span, "update"):
        return
    try:
        span.update(**kwargs)
    except Exception as exc:  # noqa: BLE001
        logger.debug("Span update failed: %s", exc)
