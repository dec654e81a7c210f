"""Canonical data contracts for runs, events and the run history index."""

from __future__ import annotations

from enum import Enum
from typing import Any, List

from pydantic import BaseModel, Field


class Topology(str, Enum):
    """Coordination strategy for one run."""

    SEQUENTIAL = "sequential"
    HIERARCHICAL = "hierarchical"


class AgentRole(str, Enum):
    """Fixed participants of the pipeline."""

    MANAGER = "Manager"
    NEWS_RESEARCHER = "NewsResearcher"
    FINANCIAL_ANALYST = "FinancialAnalyst"
    REPORT_WRITER = "ReportWriter"


class EventName(str, Enum):
    """Named event types carried on the push channel."""

    LOG = "log"
    RAW = "raw"
    FINAL = "final"
    ERROR = "error"
    DONE = "done"


class StoredEvent(BaseModel):
    """One recorded event; `data` is exactly what was encoded for the live frame."""

    event: str
    data: Any = None


class RunSummary(BaseModel):
    """Entry of the recent-runs index."""

    id: str
    subject: str
    topology: Topology
    created_at: str


class RunRecord(BaseModel):
    """A completed run with its full ordered event log."""

    id: str
    subject: str
    topology: Topology
    created_at: str
    events: List[StoredEvent] = Field(default_factory=list)

    def summary(self) -> RunSummary:
        return RunSummary(id=self.id, subject=self.subject, topology=self.topology, created_at=self.created_at)


class RunHistoryIndex(BaseModel):
    """Bounded, newest-first list of recent runs."""

    created_at: str
    runs: List[RunSummary] = Field(default_factory=list)
