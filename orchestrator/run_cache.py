"""Time-bounded cache of completed runs: latest pointer, full records and a recent-runs index."""

from __future__ import annotations

import copy
from datetime import datetime, timezone
import logging
import re
from typing import Iterable, Optional

from core import RunHistoryIndex, RunRecord, StoredEvent, Topology
from storage.cache import MemoryCache
from .events import EventSink


logger = logging.getLogger(__name__)

FIFTEEN_MINUTES_SEC = 15 * 60
RECENT_RUNS_LIMIT = 50


def _key_latest(subject: str, topology: Topology) -> str:
    return f"run:latest:{Topology(topology).value}:{subject.casefold()}"


def _key_record(run_id: str) -> str:
    return f"run:record:{run_id}"


def _key_index() -> str:
    return "run:index"


def _slug(subject: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", subject.strip().lower()).strip("-")
    return slug[:40] or "competitor"


class RunCache:
    """
    Process-wide run history backed by a lazily-expiring MemoryCache.

    The three writes of `save` share one TTL and are not transactional; a
    later save for the same (subject, topology) always wins the latest pointer.
    """

    def __init__(
        self,
        cache: Optional[MemoryCache] = None,
        *,
        ttl_sec: float = FIFTEEN_MINUTES_SEC,
        recent_limit: int = RECENT_RUNS_LIMIT,
    ) -> None:
        self._cache = cache or MemoryCache()
        self.ttl_sec = float(ttl_sec)
        self.recent_limit = max(1, int(recent_limit))

    def _now_iso(self) -> str:
        ts = datetime.fromtimestamp(self._cache.now(), tz=timezone.utc)
        return ts.isoformat(timespec="milliseconds").replace("+00:00", "Z")

    def _new_run_id(self, subject: str, topology: Topology) -> str:
        return f"{int(self._cache.now() * 1000)}-{Topology(topology).value}-{_slug(subject)}"

    def get_latest(self, subject: str, topology: Topology) -> Optional[RunRecord]:
        latest_id = self._cache.get(_key_latest(subject, topology))
        if not latest_id:
            return None
        return self.get_by_id(latest_id)

    def get_by_id(self, run_id: str) -> Optional[RunRecord]:
        record = self._cache.get(_key_record(run_id))
        # Callers get a private copy; the cached record stays untouched.
        return record.model_copy(deep=True) if record is not None else None

    def save(self, subject: str, topology: Topology, events: Iterable[StoredEvent]) -> RunRecord:
        topology = Topology(topology)
        record = RunRecord(
            id=self._new_run_id(subject, topology),
            subject=subject,
            topology=topology,
            created_at=self._now_iso(),
            events=[StoredEvent(event=item.event, data=copy.deepcopy(item.data)) for item in events],
        )

        self._cache.set(_key_record(record.id), record, self.ttl_sec)
        self._cache.set(_key_latest(subject, topology), record.id, self.ttl_sec)

        current = self._cache.get(_key_index()) or RunHistoryIndex(created_at=record.created_at)
        updated = RunHistoryIndex(
            created_at=current.created_at,
            runs=[record.summary(), *current.runs][: self.recent_limit],
        )
        self._cache.set(_key_index(), updated, self.ttl_sec)

        logger.info("Cached run %s (%s events)", record.id, len(record.events))
        return record.model_copy(deep=True)

    def list_recent(self) -> RunHistoryIndex:
        index = self._cache.get(_key_index())
        if index is None:
            return RunHistoryIndex(created_at=self._now_iso())
        return index.model_copy(deep=True)

    def replay(self, record: RunRecord, sink: EventSink) -> None:
        """Re-emit a recorded log verbatim through the live encoding path, then close."""
        for item in record.events:
            sink.write_event(item.event, item.data)
        sink.close()
