"""
Operator trigger handlers.

Transport-neutral request handlers for starting a run, reading pipeline
status and requesting an emergency stop. Each handler authenticates with a
shared API key and returns a ``TriggerResponse`` carrying an HTTP-style
status code, so any web framework (or the CLI) can expose them directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import hmac
import logging
import secrets
import time
from typing import Any, Awaitable, Callable

from ..core.errors import PipelineAlreadyRunningError, SmartNewsError
from ..core.types import PipelineResult, utc_now
from ..logging_utils import log_event
from .orchestrator import PipelineOrchestrator

MODES = ("full", "test", "websites")
DEFAULT_MODE = "full"

logger = logging.getLogger("smart_news.trigger")


@dataclass
class TriggerRequest:
    """Body of a trigger call.

    Attributes:
        mode: "full", "test" or "websites"; anything else runs in full mode
        websites: Site names, required for "websites" mode
        api_key: Key supplied in the request body
    """

    mode: str | None = DEFAULT_MODE
    websites: list[str] | None = None
    api_key: str | None = None

    @classmethod
    def from_dict(cls, payload: dict[str, Any] | None) -> "TriggerRequest":
        payload = payload or {}
        websites = payload.get("websites")
        return cls(
            mode=payload.get("mode") or DEFAULT_MODE,
            websites=list(websites) if isinstance(websites, (list, tuple)) else None,
            api_key=payload.get("apiKey") or payload.get("api_key"),
        )


@dataclass
class TriggerResponse:
    success: bool
    message: str
    status: int
    data: dict[str, Any] | None = None
    error: str | None = None
    timestamp: datetime = field(default_factory=utc_now)
    result: PipelineResult | None = field(default=None, repr=False)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": self.success,
            "message": self.message,
            "status": self.status,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.data is not None:
            payload["data"] = self.data
        if self.error is not None:
            payload["error"] = self.error
        return payload


def _authorized(provided: str | None, expected: str | None) -> bool:
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def _unauthorized() -> TriggerResponse:
    return TriggerResponse(
        success=False,
        message="Unauthorized access",
        status=401,
        error="Invalid API key",
    )


async def handle_trigger(
    request: TriggerRequest,
    orchestrator: PipelineOrchestrator,
    api_key: str | None,
    *,
    header_key: str | None = None,
    model_available: bool = True,
    test_max_documents: int = 5,
) -> TriggerResponse:
    """Start a pipeline run.

    The key may come from the request body or from ``header_key``; a
    request is rejected when no expected key is configured.

    Status codes:
        200 run finished (the result may still carry errors)
        400 "websites" mode without any site names
        401 key missing or wrong
        409 a run is already in progress
        500 the run raised unexpectedly
        503 no generation model is configured
    """
    if not _authorized(request.api_key or header_key, api_key):
        logger.warning("Unauthorized trigger attempt")
        return _unauthorized()

    if not model_available:
        return TriggerResponse(
            success=False,
            message="Service configuration error",
            status=503,
            error="Generation model API key not configured",
        )

    if orchestrator.is_running:
        return TriggerResponse(
            success=False,
            message="Pipeline is already running",
            status=409,
            error="Please wait for the current run to finish",
        )

    mode = request.mode if request.mode in MODES else DEFAULT_MODE
    websites = list(request.websites or [])
    if mode == "websites" and not websites:
        return TriggerResponse(
            success=False,
            message="Invalid request",
            status=400,
            error="Websites mode requires a non-empty list of site names",
        )

    log_event(logger, "Pipeline triggered", event="trigger", mode=mode, websites=request.websites)
    started = time.monotonic()
    try:
        if mode == "test":
            result = await orchestrator.run_once(max_documents=test_max_documents)
            message = "Test run completed"
        elif mode == "websites":
            result = await orchestrator.run_for_sites(websites)
            message = f"Run completed for {len(websites)} site(s)"
        else:
            result = await orchestrator.run_once()
            message = "Full run completed"
    except PipelineAlreadyRunningError as exc:
        return TriggerResponse(success=False, message="Pipeline is already running", status=409, error=str(exc))
    except Exception as exc:  # noqa: BLE001
        logger.exception("Trigger run failed")
        return TriggerResponse(
            success=False,
            message="Pipeline execution failed",
            status=500,
            error=str(exc) or type(exc).__name__,
        )

    processing_ms = int((time.monotonic() - started) * 1000)
    return TriggerResponse(
        success=True,
        message=message,
        status=200,
        data={
            "mode": mode,
            "result": result.to_dict(),
            "processing_time_ms": processing_ms,
            "metrics": orchestrator.metrics(),
        },
        result=result,
    )


def handle_status(
    orchestrator: PipelineOrchestrator,
    provided_key: str | None,
    api_key: str | None,
    scheduler_status: dict[str, Any] | None = None,
) -> TriggerResponse:
    if not _authorized(provided_key, api_key):
        return _unauthorized()
    data: dict[str, Any] = {
        "status": orchestrator.status(),
        "metrics": orchestrator.metrics(),
        "server_time": utc_now().isoformat(),
    }
    if scheduler_status is not None:
        data["scheduler"] = scheduler_status
    return TriggerResponse(success=True, message="Pipeline status retrieved", status=200, data=data)


async def handle_stop(
    orchestrator: PipelineOrchestrator,
    provided_key: str | None,
    api_key: str | None,
) -> TriggerResponse:
    """Emergency-stop the active run. Succeeds even when nothing is running."""
    if not _authorized(provided_key, api_key):
        return _unauthorized()
    logger.warning("Emergency stop requested via trigger")
    try:
        stopped = await orchestrator.emergency_stop()
    except Exception as exc:  # noqa: BLE001
        logger.exception("Emergency stop failed")
        return TriggerResponse(
            success=False,
            message="Failed to execute emergency stop",
            status=500,
            error=str(exc),
        )
    message = "Pipeline emergency stop executed successfully" if stopped else "No pipeline run was active"
    return TriggerResponse(success=True, message=message, status=200, data={"stopped": stopped})


def make_scheduled_job(
    orchestrator: PipelineOrchestrator,
    api_key: str | None = None,
    *,
    model_available: bool = True,
) -> Callable[[], Awaitable[PipelineResult]]:
    """Build the daily job: a full-mode trigger issued in-process.

    Without a configured key a one-off token is used for both sides of the
    check.

    Raises (from the job):
        SmartNewsError: When the trigger is not successful
    """
    key = api_key or secrets.token_urlsafe(16)

    async def job() -> PipelineResult:
        response = await handle_trigger(
            TriggerRequest(mode="full", api_key=key),
            orchestrator,
            key,
            model_available=model_available,
        )
        if not response.success or response.result is None:
            raise SmartNewsError(f"Scheduled run failed ({response.status}): {response.error}")
        return response.result

    return job
