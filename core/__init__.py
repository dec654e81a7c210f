"""Core contracts and shared types for the run pipeline."""

from .contracts import (
    AgentRole,
    EventName,
    RunHistoryIndex,
    RunRecord,
    RunSummary,
    StoredEvent,
    Topology,
)

__all__ = [
    "AgentRole",
    "EventName",
    "RunHistoryIndex",
    "RunRecord",
    "RunSummary",
    "StoredEvent",
    "Topology",
]
