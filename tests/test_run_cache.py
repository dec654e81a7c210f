"""Tests for the run cache: TTL, key normalization, history index and replay."""

from __future__ import annotations

from typing import List

from core import StoredEvent, Topology
from orchestrator import CallbackEventSink, RunCache
from orchestrator.run_cache import RECENT_RUNS_LIMIT
from storage import MemoryCache

from fakes import ManualClock


def _events(marker: str = "x") -> List[StoredEvent]:
    return [
        StoredEvent(event="log", data={"ts": "2024-01-01T00:00:00.000Z", "agent": "NewsResearcher", "message": marker}),
        StoredEvent(event="final", data={"ts": "2024-01-01T00:00:01.000Z", "markdown": "# Memo ü"}),
        StoredEvent(event="done", data={"ts": "2024-01-01T00:00:02.000Z"}),
    ]


def _cache(clock: ManualClock, ttl_sec: float = 900) -> RunCache:
    return RunCache(MemoryCache(clock=clock), ttl_sec=ttl_sec)


def test_save_assigns_time_and_subject_derived_id() -> None:
    clock = ManualClock(1_700_000_000.5)
    cache = _cache(clock)

    record = cache.save("Acme Corp!", Topology.SEQUENTIAL, _events())

    assert record.id == "1700000000500-sequential-acme-corp"
    assert record.subject == "Acme Corp!"
    assert record.topology == Topology.SEQUENTIAL
    assert record.created_at == "2023-11-14T22:13:20.500Z"
    assert [item.event for item in record.events] == ["log", "final", "done"]


def test_slug_falls_back_for_symbol_only_subjects() -> None:
    cache = _cache(ManualClock(1.0))
    record = cache.save("???", Topology.HIERARCHICAL, _events())
    assert record.id == "1000-hierarchical-competitor"


def test_get_latest_honors_ttl_and_evicts_lazily() -> None:
    clock = ManualClock()
    cache = _cache(clock, ttl_sec=900)
    saved = cache.save("Acme", Topology.SEQUENTIAL, _events())

    clock.advance(899)
    hit = cache.get_latest("Acme", Topology.SEQUENTIAL)
    assert hit is not None
    assert hit.id == saved.id

    clock.advance(1)
    assert cache.get_latest("Acme", Topology.SEQUENTIAL) is None
    assert cache.get_by_id(saved.id) is None


def test_save_after_expiry_is_unaffected_by_evicted_entry() -> None:
    clock = ManualClock()
    cache = _cache(clock, ttl_sec=60)
    cache.save("Acme", Topology.SEQUENTIAL, _events("old"))

    clock.advance(60)
    assert cache.get_latest("Acme", Topology.SEQUENTIAL) is None

    fresh = cache.save("Acme", Topology.SEQUENTIAL, _events("new"))
    latest = cache.get_latest("Acme", Topology.SEQUENTIAL)
    assert latest is not None
    assert latest.id == fresh.id
    assert latest.events[0].data["message"] == "new"
    assert [item.id for item in cache.list_recent().runs] == [fresh.id]


def test_subject_keys_are_case_folded() -> None:
    cache = _cache(ManualClock())
    saved = cache.save("Acme Corp", Topology.SEQUENTIAL, _events())

    hit = cache.get_latest("ACME CORP", Topology.SEQUENTIAL)
    assert hit is not None
    assert hit.id == saved.id


def test_topologies_do_not_overwrite_each_other() -> None:
    clock = ManualClock()
    cache = _cache(clock)
    seq = cache.save("Acme", Topology.SEQUENTIAL, _events("seq"))
    clock.advance(1)
    hier = cache.save("Acme", Topology.HIERARCHICAL, _events("hier"))

    seq_hit = cache.get_latest("Acme", Topology.SEQUENTIAL)
    hier_hit = cache.get_latest("Acme", Topology.HIERARCHICAL)
    assert seq_hit is not None and seq_hit.id == seq.id
    assert hier_hit is not None and hier_hit.id == hier.id


def test_later_save_wins_latest_pointer() -> None:
    clock = ManualClock()
    cache = _cache(clock)
    cache.save("Acme", Topology.SEQUENTIAL, _events("first"))
    clock.advance(1)
    second = cache.save("Acme", Topology.SEQUENTIAL, _events("second"))

    latest = cache.get_latest("Acme", Topology.SEQUENTIAL)
    assert latest is not None
    assert latest.id == second.id


def test_recent_index_is_newest_first_and_bounded() -> None:
    clock = ManualClock()
    cache = _cache(clock)
    ids = []
    for idx in range(RECENT_RUNS_LIMIT + 5):
        ids.append(cache.save(f"Company {idx}", Topology.SEQUENTIAL, _events()).id)
        clock.advance(1)

    runs = cache.list_recent().runs
    assert len(runs) == RECENT_RUNS_LIMIT
    assert [item.id for item in runs] == list(reversed(ids))[:RECENT_RUNS_LIMIT]
    assert runs[0].subject == f"Company {RECENT_RUNS_LIMIT + 4}"


def test_list_recent_is_empty_before_any_save() -> None:
    index = _cache(ManualClock()).list_recent()
    assert index.runs == []
    assert index.created_at.endswith("Z")


def test_records_are_immutable_once_cached() -> None:
    cache = _cache(ManualClock())
    events = _events()
    saved = cache.save("Acme", Topology.SEQUENTIAL, events)

    events[0].data["message"] = "mutated by caller"
    saved.events[0].data["message"] = "mutated via returned copy"
    fetched = cache.get_by_id(saved.id)
    assert fetched is not None
    fetched.events.clear()

    again = cache.get_by_id(saved.id)
    assert again is not None
    assert again.events[0].data["message"] == "x"
    assert len(again.events) == 3


def test_replay_writes_every_event_in_order_then_closes() -> None:
    cache = _cache(ManualClock())
    saved = cache.save("Acme", Topology.SEQUENTIAL, _events())
    frames: List[bytes] = []
    closed: List[bool] = []
    sink = CallbackEventSink(frames.append, on_close=lambda: closed.append(True))

    cache.replay(saved, sink)

    assert frames == [
        'event: log\ndata: {"ts":"2024-01-01T00:00:00.000Z","agent":"NewsResearcher","message":"x"}\n\n'.encode("utf-8"),
        'event: final\ndata: {"ts":"2024-01-01T00:00:01.000Z","markdown":"# Memo ü"}\n\n'.encode("utf-8"),
        'event: done\ndata: {"ts":"2024-01-01T00:00:02.000Z"}\n\n'.encode("utf-8"),
    ]
    assert closed == [True]


def test_zero_ttl_disables_run_caching() -> None:
    cache = _cache(ManualClock(), ttl_sec=0)
    saved = cache.save("Acme", Topology.SEQUENTIAL, _events())

    assert cache.get_latest("Acme", Topology.SEQUENTIAL) is None
    assert cache.get_by_id(saved.id) is None
    assert cache.list_recent().runs == []
