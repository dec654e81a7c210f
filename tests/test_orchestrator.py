"""Tests for the pipeline orchestrator state machine under both topologies."""

from __future__ import annotations

import asyncio
from typing import Any, List, Optional, Tuple

import pytest

from config import LLMSettings, RunSettings
from core import AgentRole, Topology
from intelligence.agents import RevisionLimitExceeded, RevisionSlot
from orchestrator import CallbackEventSink, PipelineOrchestrator, RunCache
from storage import MemoryCache
from utils.exceptions import StreamFault

from fakes import (
    MEMO,
    ManualClock,
    ScriptedRuntime,
    envelope,
    finance_payload,
    happy_responses,
    news_payload,
    parse_frames,
    review_payload,
)


def _orchestrator(
    runtime: ScriptedRuntime,
    *,
    clock: Optional[ManualClock] = None,
    api_key: Optional[str] = "sk-test",
    stage_timeout_sec: float = 0,
) -> PipelineOrchestrator:
    cache = RunCache(MemoryCache(clock=clock or ManualClock()), ttl_sec=900)
    return PipelineOrchestrator(
        run_cache=cache,
        runtime=runtime,
        llm_settings=LLMSettings(api_key=api_key, base_url=None),
        run_settings=RunSettings(stage_timeout_sec=stage_timeout_sec, subject_max_length=80),
    )


async def _run(
    orchestrator: PipelineOrchestrator,
    subject: str,
    topology: Topology,
    *,
    bypass_cache: bool = False,
) -> Tuple[List[bytes], List[Tuple[str, Any]], CallbackEventSink]:
    frames: List[bytes] = []
    sink = CallbackEventSink(frames.append)
    await orchestrator.start_run(subject, topology, sink, bypass_cache=bypass_cache)
    return frames, parse_frames(frames), sink


def _shape(events: List[Tuple[str, Any]]) -> List[Tuple[str, Optional[str], Any]]:
    shaped = []
    for name, data in events:
        if name == "log":
            shaped.append((name, data["agent"], data["message"]))
        elif name == "raw":
            shaped.append((name, data["agent"], None))
        else:
            shaped.append((name, None, None))
    return shaped


def _raws(events: List[Tuple[str, Any]], agent: str) -> List[Any]:
    return [data["payload"] for name, data in events if name == "raw" and data["agent"] == agent]


def _index(events: List[Tuple[str, Any]], predicate) -> int:
    for idx, item in enumerate(events):
        if predicate(item):
            return idx
    raise AssertionError("event not found")


@pytest.mark.asyncio
async def test_sequential_run_emits_expected_sequence() -> None:
    runtime = ScriptedRuntime(happy_responses())
    orchestrator = _orchestrator(runtime)

    _, events, sink = await _run(orchestrator, "Acme Corp", Topology.SEQUENTIAL)

    assert _shape(events) == [
        ("log", "NewsResearcher", "searching…"),
        ("raw", "NewsResearcher", None),
        ("log", "NewsResearcher", "done (5 items)"),
        ("log", "FinancialAnalyst", "fetching…"),
        ("raw", "FinancialAnalyst", None),
        ("log", "FinancialAnalyst", "done (5 metrics)"),
        ("log", "ReportWriter", "drafting memo…"),
        ("raw", "ReportWriter", None),
        ("final", None, None),
        ("log", "ReportWriter", "done"),
        ("done", None, None),
    ]
    assert len(_raws(events, "NewsResearcher")[0]["key_events"]) == 5
    assert len(_raws(events, "FinancialAnalyst")[0]["key_metrics"]) == 5
    assert _raws(events, "ReportWriter") == [MEMO]
    assert events[-3][1]["markdown"] == MEMO
    assert [name for name, _ in runtime.calls] == ["NewsResearcher", "FinancialAnalyst", "ReportWriter"]
    assert sink.closed is True


@pytest.mark.asyncio
async def test_missing_credentials_emits_error_and_done_without_invoking_roles(monkeypatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("OPENAI_BASE_URL", raising=False)
    runtime = ScriptedRuntime(happy_responses())
    orchestrator = _orchestrator(runtime, api_key=None)

    _, events, sink = await _run(orchestrator, "Acme Corp", Topology.SEQUENTIAL)

    assert [name for name, _ in events] == ["error", "done"]
    assert "is missing" in events[0][1]["message"]
    assert runtime.calls == []
    assert sink.closed is True
    assert orchestrator.list_recent_runs().runs == []


@pytest.mark.asyncio
async def test_gateway_base_url_counts_as_credentials(monkeypatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    runtime = ScriptedRuntime(happy_responses())
    orchestrator = PipelineOrchestrator(
        run_cache=RunCache(MemoryCache(clock=ManualClock())),
        runtime=runtime,
        llm_settings=LLMSettings(api_key=None, base_url="http://localhost:8080/v1"),
        run_settings=RunSettings(stage_timeout_sec=0),
    )

    _, events, _ = await _run(orchestrator, "Acme Corp", Topology.SEQUENTIAL)

    assert events[-2][0] == "log"
    assert any(name == "final" for name, _ in events)


@pytest.mark.asyncio
async def test_sequential_warnings_reach_writer_prompt_in_order() -> None:
    responses = happy_responses()
    responses["NewsResearcher"] = [envelope(news_payload(3, warnings=["TAVILY_API_KEY is not set."]))]
    responses["FinancialAnalyst"] = [envelope(finance_payload(7, is_mock=True, warnings=["mock data"]))]
    runtime = ScriptedRuntime(responses)

    _, events, _ = await _run(_orchestrator(runtime), "Acme Corp", Topology.SEQUENTIAL)

    messages = [data["message"] for name, data in events if name == "log"]
    assert "done (3 items; warnings)" in messages
    assert "done (7 metrics; mock)" in messages

    writer_prompt = runtime.prompts_for("ReportWriter")[0]
    assert "Global warnings:\n- News: TAVILY_API_KEY is not set.\n- Finance: mock data" in writer_prompt
    assert writer_prompt.startswith("Competitor: Acme Corp")
    assert writer_prompt.endswith("Write the memo now.")


@pytest.mark.asyncio
async def test_raw_payload_omits_optional_fields_the_agent_left_out() -> None:
    runtime = ScriptedRuntime(happy_responses())

    _, events, _ = await _run(_orchestrator(runtime), "Acme Corp", Topology.SEQUENTIAL)

    news = _raws(events, "NewsResearcher")[0]
    finance = _raws(events, "FinancialAnalyst")[0]
    assert "warnings" not in news
    assert "is_mock" not in finance
    assert "price_series" not in finance
    assert finance["company"] == ""


@pytest.mark.asyncio
async def test_unknown_finance_fields_are_ignored_not_fatal() -> None:
    payload = finance_payload()
    payload["price_series"] = [{"date": "2024-01-01", "close": "n/a"}]
    responses = happy_responses()
    responses["FinancialAnalyst"] = [envelope(payload)]

    _, events, _ = await _run(_orchestrator(ScriptedRuntime(responses)), "Acme", Topology.SEQUENTIAL)

    assert [name for name, _ in events].count("error") == 0
    assert [data["markdown"] for name, data in events if name == "final"] == [MEMO]
    assert "price_series" not in _raws(events, "FinancialAnalyst")[0]


@pytest.mark.asyncio
async def test_hierarchical_run_reviews_after_both_specialists() -> None:
    runtime = ScriptedRuntime(
        happy_responses(review=review_payload(summary="Highlight the pricing change.")),
        delays={"NewsResearcher": 0.02},
    )

    _, events, _ = await _run(_orchestrator(runtime), "Acme Corp", Topology.HIERARCHICAL)

    news_raw = _index(events, lambda e: e[0] == "raw" and e[1]["agent"] == "NewsResearcher")
    finance_raw = _index(events, lambda e: e[0] == "raw" and e[1]["agent"] == "FinancialAnalyst")
    manager_log = _index(events, lambda e: e[0] == "log" and e[1]["agent"] == "Manager")
    first_writer = _index(events, lambda e: e[0] != "done" and e[1].get("agent") == "ReportWriter")

    assert max(news_raw, finance_raw) < manager_log < first_writer
    assert events[manager_log][1]["message"] == "reviewing completeness…"
    manager_logs = [data["message"] for name, data in events if name == "log" and data["agent"] == "Manager"]
    assert manager_logs == ["reviewing completeness…", "review complete"]
    assert len(_raws(events, "Manager")) == 1
    assert [name for name, _ in events[-2:]] == ["log", "done"]
    assert events[-3][0] == "final"

    writer_prompt = runtime.prompts_for("ReportWriter")[0]
    assert "Global warnings:\n- Manager: Highlight the pricing change." in writer_prompt


@pytest.mark.asyncio
async def test_hierarchical_handoff_summary_is_prepended_to_warnings() -> None:
    responses = happy_responses(review=review_payload(summary="Keep it short."))
    responses["NewsResearcher"] = [envelope(news_payload(warnings=["stale sources"]))]
    responses["FinancialAnalyst"] = [envelope(finance_payload(warnings=["no revenue data"]))]
    runtime = ScriptedRuntime(responses)

    await _run(_orchestrator(runtime), "Acme Corp", Topology.HIERARCHICAL)

    writer_prompt = runtime.prompts_for("ReportWriter")[0]
    assert (
        "Global warnings:\n- Manager: Keep it short.\n- News: stale sources\n- Finance: no revenue data"
        in writer_prompt
    )


@pytest.mark.asyncio
async def test_flagged_subtask_is_revised_exactly_once_with_default_request() -> None:
    responses = happy_responses(review=review_payload(news=True))
    responses["NewsResearcher"] = [
        envelope(news_payload(2)),
        envelope(news_payload(6)),
    ]
    runtime = ScriptedRuntime(responses)

    _, events, _ = await _run(_orchestrator(runtime), "Acme Corp", Topology.HIERARCHICAL)

    news_raws = _raws(events, "NewsResearcher")
    assert [len(item["key_events"]) for item in news_raws] == [2, 6]
    assert len(_raws(events, "FinancialAnalyst")) == 1

    revision_log = "revision requested: Please add at least 5 recent news items with links."
    assert ("log", "NewsResearcher", revision_log) in _shape(events)

    prompts = runtime.prompts_for("NewsResearcher")
    assert len(prompts) == 2
    assert "Revision request" not in prompts[0]
    assert "Revision request: Please add at least 5 recent news items with links." in prompts[1]
    assert prompts[1].replace(
        "Revision request: Please add at least 5 recent news items with links.\n", ""
    ) == prompts[0]

    # the writer sees the revised result
    assert '"title": "Event 5"' in runtime.prompts_for("ReportWriter")[0]
    assert len(runtime.prompts_for("Manager")) == 1


@pytest.mark.asyncio
async def test_both_subtasks_revised_with_reviewer_requests() -> None:
    responses = happy_responses(
        review=review_payload(
            news=True,
            news_request="Add Q3 launches.",
            finance=True,
            finance_request="Add margins.",
        )
    )
    runtime = ScriptedRuntime(responses)

    _, events, _ = await _run(_orchestrator(runtime), "Acme Corp", Topology.HIERARCHICAL)

    assert len(_raws(events, "NewsResearcher")) == 2
    assert len(_raws(events, "FinancialAnalyst")) == 2
    assert len(_raws(events, "Manager")) == 1
    assert "Revision request: Add Q3 launches." in runtime.prompts_for("NewsResearcher")[1]
    assert "Revision request: Add margins." in runtime.prompts_for("FinancialAnalyst")[1]
    assert ("log", "FinancialAnalyst", "revision requested: Add margins.") in _shape(events)


def test_revision_slot_rejects_a_second_revision() -> None:
    slot = RevisionSlot(role=AgentRole.NEWS_RESEARCHER, last_result="original")
    assert slot.can_revise is True

    slot.record_revision("revised")
    assert slot.attempts == 1
    assert slot.last_result == "revised"
    assert slot.can_revise is False

    with pytest.raises(RevisionLimitExceeded):
        slot.record_revision("again")
    assert slot.last_result == "revised"


@pytest.mark.asyncio
async def test_stage_failure_aborts_remaining_stages() -> None:
    responses = happy_responses()
    responses["FinancialAnalyst"] = [envelope("the numbers look fine")]
    runtime = ScriptedRuntime(responses)

    _, events, _ = await _run(_orchestrator(runtime), "Acme Corp", Topology.SEQUENTIAL)

    assert [name for name, _ in events[-2:]] == ["error", "done"]
    error = events[-2][1]
    assert error["message"] == "FinancialAnalyst output was not valid JSON."
    assert error["details"] == {"stage": "FinancialAnalyst", "error_type": "UnparseableOutputError"}
    assert not any(name == "final" for name, _ in events)
    assert runtime.prompts_for("ReportWriter") == []
    assert sum(1 for name, _ in events if name == "done") == 1


@pytest.mark.asyncio
async def test_schema_violation_is_reported_with_diagnostic() -> None:
    bad_news = news_payload(1)
    bad_news["key_events"][0]["url"] = "not-a-url"
    responses = happy_responses()
    responses["NewsResearcher"] = [envelope(bad_news)]
    runtime = ScriptedRuntime(responses)

    _, events, _ = await _run(_orchestrator(runtime), "Acme Corp", Topology.SEQUENTIAL)

    error = events[-2][1]
    assert error["message"].startswith("NewsResearcher JSON schema validation failed:")
    assert error["details"]["error_type"] == "SchemaViolationError"
    assert _raws(events, "NewsResearcher") == []
    assert runtime.prompts_for("FinancialAnalyst") == []


@pytest.mark.asyncio
async def test_fan_out_failure_cancels_sibling() -> None:
    responses = happy_responses()
    responses["NewsResearcher"] = [RuntimeError("search backend down")]
    runtime = ScriptedRuntime(responses, delays={"FinancialAnalyst": 5.0})

    _, events, _ = await asyncio.wait_for(
        _run(_orchestrator(runtime), "Acme Corp", Topology.HIERARCHICAL),
        timeout=2.0,
    )

    assert runtime.cancelled == ["FinancialAnalyst"]
    assert _raws(events, "FinancialAnalyst") == []
    assert [name for name, _ in events[-2:]] == ["error", "done"]
    assert events[-2][1]["details"] == {"stage": "NewsResearcher", "error_type": "RuntimeError"}
    assert runtime.prompts_for("Manager") == []


@pytest.mark.asyncio
async def test_stage_timeout_becomes_error_event() -> None:
    runtime = ScriptedRuntime(happy_responses(), delays={"NewsResearcher": 1.0})
    orchestrator = _orchestrator(runtime, stage_timeout_sec=0.05)

    _, events, _ = await _run(orchestrator, "Acme Corp", Topology.SEQUENTIAL)

    error = events[-2][1]
    assert error["details"] == {"stage": "NewsResearcher", "error_type": "StageTimeoutError"}
    assert events[-1][0] == "done"


@pytest.mark.asyncio
async def test_stream_fault_is_contained_and_not_cached() -> None:
    runtime = ScriptedRuntime(happy_responses())
    orchestrator = _orchestrator(runtime)
    received: List[bytes] = []

    def _emit(frame: bytes) -> None:
        if len(received) >= 2:
            raise BrokenPipeError("client went away")
        received.append(frame)

    sink = CallbackEventSink(_emit)
    await orchestrator.start_run("Acme Corp", Topology.SEQUENTIAL, sink)

    assert len(received) == 2
    assert runtime.prompts_for("FinancialAnalyst") == []
    assert orchestrator.list_recent_runs().runs == []


@pytest.mark.asyncio
async def test_cache_hit_replays_identical_frames_without_invoking_roles() -> None:
    runtime = ScriptedRuntime(happy_responses())
    orchestrator = _orchestrator(runtime)

    first, _, _ = await _run(orchestrator, "Acme Corp", Topology.HIERARCHICAL)
    calls_after_first = len(runtime.calls)

    second, _, sink = await _run(orchestrator, "acme corp", Topology.HIERARCHICAL)

    assert second == first
    assert len(runtime.calls) == calls_after_first
    assert sink.closed is True


@pytest.mark.asyncio
async def test_bypass_cache_runs_again_and_updates_latest() -> None:
    clock = ManualClock()
    runtime = ScriptedRuntime(happy_responses())
    orchestrator = _orchestrator(runtime, clock=clock)

    await _run(orchestrator, "Acme Corp", Topology.SEQUENTIAL)
    clock.advance(1)
    await _run(orchestrator, "Acme Corp", Topology.SEQUENTIAL, bypass_cache=True)

    assert len(runtime.prompts_for("ReportWriter")) == 2
    runs = orchestrator.list_recent_runs().runs
    assert len(runs) == 2
    latest = orchestrator.run_cache.get_latest("Acme Corp", Topology.SEQUENTIAL)
    assert latest is not None
    assert latest.id == runs[0].id


@pytest.mark.asyncio
async def test_failed_runs_are_cached_and_replayed() -> None:
    responses = happy_responses()
    responses["NewsResearcher"] = [envelope("")]
    runtime = ScriptedRuntime(responses)
    orchestrator = _orchestrator(runtime)

    first, events, _ = await _run(orchestrator, "Acme Corp", Topology.SEQUENTIAL)
    assert events[-2][1]["details"]["error_type"] == "NoOutputError"

    second, _, _ = await _run(orchestrator, "Acme Corp", Topology.SEQUENTIAL)
    assert second == first
    assert len(runtime.calls) == 1


@pytest.mark.asyncio
async def test_topologies_are_cached_independently() -> None:
    clock = ManualClock()
    runtime = ScriptedRuntime(happy_responses())
    orchestrator = _orchestrator(runtime, clock=clock)

    await _run(orchestrator, "Acme", Topology.SEQUENTIAL)
    clock.advance(1)
    await _run(orchestrator, "Acme", Topology.HIERARCHICAL)

    assert len(runtime.prompts_for("ReportWriter")) == 2
    seq = orchestrator.run_cache.get_latest("Acme", Topology.SEQUENTIAL)
    hier = orchestrator.run_cache.get_latest("Acme", Topology.HIERARCHICAL)
    assert seq is not None and hier is not None
    assert seq.id != hier.id


@pytest.mark.asyncio
async def test_subject_is_trimmed_and_capped_before_use() -> None:
    runtime = ScriptedRuntime(happy_responses())
    orchestrator = _orchestrator(runtime)
    long_subject = "  " + ("x" * 100) + "  "

    await _run(orchestrator, long_subject, Topology.SEQUENTIAL)

    prompt = runtime.prompts_for("NewsResearcher")[0]
    assert prompt.startswith("Competitor: " + "x" * 80 + "\n")
    record = orchestrator.get_run(orchestrator.list_recent_runs().runs[0].id)
    assert record is not None
    assert record.subject == "x" * 80


@pytest.mark.asyncio
async def test_get_run_returns_recorded_events() -> None:
    runtime = ScriptedRuntime(happy_responses())
    orchestrator = _orchestrator(runtime)

    _, events, _ = await _run(orchestrator, "Acme Corp", Topology.SEQUENTIAL)

    summary = orchestrator.list_recent_runs().runs[0]
    record = orchestrator.get_run(summary.id)
    assert record is not None
    assert [(item.event, item.data) for item in record.events] == events
    assert orchestrator.get_run("missing") is None


def test_stream_fault_type_is_part_of_error_taxonomy() -> None:
    fault = StreamFault("consumer gone", {"event": "log"})
    assert "consumer gone" in str(fault)
    assert "event" in str(fault)
