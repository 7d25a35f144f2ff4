"""Run orchestration, daily scheduling and operator trigger handlers."""

from .orchestrator import PipelineOrchestrator
from .scheduler import DailyScheduler, next_fire_time, parse_fire_time
from .trigger import (
    TriggerRequest,
    TriggerResponse,
    handle_status,
    handle_stop,
    handle_trigger,
    make_scheduled_job,
)

__all__ = [
    "DailyScheduler",
    "PipelineOrchestrator",
    "TriggerRequest",
    "TriggerResponse",
    "handle_status",
    "handle_stop",
    "handle_trigger",
    "make_scheduled_job",
    "next_fire_time",
    "parse_fire_time",
]
