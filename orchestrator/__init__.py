"""Run orchestration: event sinks, run cache and the pipeline state machine."""

from .events import (
    CallbackEventSink,
    ChannelEventSink,
    EventSink,
    RecordingEventSink,
    encode_payload,
    encode_sse,
)
from .run_cache import RunCache
from .service import (
    PipelineOrchestrator,
    clamp_subject,
    get_default_orchestrator,
    get_run,
    join_both,
    list_recent_runs,
    set_default_orchestrator,
    start_run,
)

__all__ = [
    "CallbackEventSink",
    "ChannelEventSink",
    "EventSink",
    "PipelineOrchestrator",
    "RecordingEventSink",
    "RunCache",
    "clamp_subject",
    "encode_payload",
    "encode_sse",
    "get_default_orchestrator",
    "get_run",
    "join_both",
    "list_recent_runs",
    "set_default_orchestrator",
    "start_run",
]
