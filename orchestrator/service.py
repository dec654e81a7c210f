"""Pipeline orchestrator: drives one competitor-brief run under either topology."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, List, Optional, Tuple, TypeVar
import logging

from config import LLMSettings, RunSettings, get_llm_settings, get_run_settings
from core import AgentRole, RunHistoryIndex, RunRecord, Topology
from intelligence.agents import (
    FINANCIAL_ANALYST,
    NEWS_RESEARCHER,
    REPORT_WRITER,
    AgentRunner,
    FinanceOutput,
    ManagerReview,
    NewsResearcherOutput,
    ReviewGate,
    RevisionSlot,
    StructuredAgentInvoker,
    build_finance_prompt,
    build_news_prompt,
    build_writer_prompt,
    finance_revision_request,
    news_revision_request,
    to_payload,
)
from utils.exceptions import ConfigurationError, StageFailure, StreamFault
from .events import EventSink, RecordingEventSink
from .run_cache import RunCache


logger = logging.getLogger(__name__)

T = TypeVar("T")
A = TypeVar("A")
B = TypeVar("B")

MISSING_CREDENTIALS_MESSAGE = (
    "OPENAI_API_KEY is missing. Set it in your environment; it is required to run agents."
)


def clamp_subject(subject: str, max_length: int = 80) -> str:
    return str(subject or "").strip()[:max_length]


async def join_both(first: Awaitable[A], second: Awaitable[B]) -> Tuple[A, B]:
    """
    Run two awaitables concurrently and return both results.

    The first failure cancels the sibling and is re-raised; neither result is
    returned unless both complete.
    """
    tasks = [asyncio.ensure_future(first), asyncio.ensure_future(second)]
    try:
        await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        for task in tasks:
            if task.done() and not task.cancelled() and task.exception() is not None:
                raise task.exception()
        return tasks[0].result(), tasks[1].result()
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


class PipelineOrchestrator:
    """
    Top-level state machine for a run.

    Sequential: News -> Finance -> Writer.
    Hierarchical: (News || Finance) -> Manager review -> at most one revision
    per flagged specialist -> Writer.

    Every run ends with exactly one `done` event; stage failures become a
    single `error` event first. Completed logs are saved to the RunCache.
    """

    def __init__(
        self,
        *,
        run_cache: Optional[RunCache] = None,
        invoker: Optional[StructuredAgentInvoker] = None,
        runtime: Any = None,
        llm_settings: Optional[LLMSettings] = None,
        run_settings: Optional[RunSettings] = None,
    ) -> None:
        self._llm_settings = llm_settings or get_llm_settings()
        self._run_settings = run_settings or get_run_settings()
        self.run_cache = run_cache or RunCache(
            ttl_sec=self._run_settings.cache_ttl_sec,
            recent_limit=self._run_settings.recent_runs_limit,
        )
        self.invoker = invoker or StructuredAgentInvoker(
            runtime or AgentRunner(),
            stage_timeout_sec=self._run_settings.stage_timeout_sec,
        )
        self.review_gate = ReviewGate(self.invoker)

    async def start_run(
        self,
        subject: str,
        topology: Topology,
        sink: EventSink,
        *,
        bypass_cache: bool = False,
    ) -> None:
        """Drive one run (or a cache replay) to completion against `sink`, then close it."""
        subject = clamp_subject(subject, self._run_settings.subject_max_length)
        topology = Topology(topology)

        try:
            if not bypass_cache:
                cached = self.run_cache.get_latest(subject, topology)
                if cached is not None:
                    logger.info("Replaying cached run %s for %r (%s)", cached.id, subject, topology.value)
                    self.run_cache.replay(cached, sink)
                    return

            recorder = RecordingEventSink(sink)
            if not self._llm_settings.has_credentials():
                error = ConfigurationError(MISSING_CREDENTIALS_MESSAGE)
                logger.error("Run for %r aborted: %s", subject, error.message)
                recorder.error(error.message)
                recorder.done()
                recorder.close()
                return

            logger.info("Starting %s run for %r", topology.value, subject)
            await self._execute(subject, topology, recorder)
            self.run_cache.save(subject, topology, recorder.events)
            recorder.close()
        except StreamFault as fault:
            logger.warning("Run for %r lost its consumer: %s", subject, fault)

    def list_recent_runs(self) -> RunHistoryIndex:
        return self.run_cache.list_recent()

    def get_run(self, run_id: str) -> Optional[RunRecord]:
        return self.run_cache.get_by_id(run_id)

    async def _execute(self, subject: str, topology: Topology, sink: EventSink) -> None:
        try:
            if topology is Topology.SEQUENTIAL:
                await self._run_sequential(subject, sink)
            else:
                await self._run_hierarchical(subject, sink)
        except StreamFault:
            raise
        except StageFailure as failure:
            logger.error("Run for %r failed at %s: %s", subject, failure.stage, failure.cause)
            sink.error(str(failure.cause), {"stage": failure.stage, "error_type": failure.error_type})
        except Exception as exc:
            logger.exception("Run for %r failed outside a stage", subject)
            sink.error(str(exc), {"stage": "orchestrator", "error_type": type(exc).__name__})
        sink.done()

    async def _stage(self, role: AgentRole, call: Awaitable[T]) -> T:
        try:
            return await call
        except StreamFault:
            raise
        except Exception as exc:
            raise StageFailure(role.value, exc) from exc

    async def _run_sequential(self, subject: str, sink: EventSink) -> None:
        news = await self._run_news(subject, sink)
        finance = await self._run_finance(subject, sink)
        await self._run_writer(subject, sink, news, finance, self._collect_warnings(news, finance))

    async def _run_hierarchical(self, subject: str, sink: EventSink) -> None:
        news0, finance0 = await join_both(
            self._run_news(subject, sink),
            self._run_finance(subject, sink),
        )
        news_slot = RevisionSlot(role=AgentRole.NEWS_RESEARCHER, last_result=news0)
        finance_slot = RevisionSlot(role=AgentRole.FINANCIAL_ANALYST, last_result=finance0)

        review = await self._run_review(subject, sink, news0, finance0)

        request = news_revision_request(review)
        if request is not None:
            news_slot.record_revision(await self._run_news(subject, sink, request))
        request = finance_revision_request(review)
        if request is not None:
            finance_slot.record_revision(await self._run_finance(subject, sink, request))

        warnings = self._collect_warnings(news_slot.last_result, finance_slot.last_result)
        if review.handoff_summary:
            warnings.insert(0, f"Manager: {review.handoff_summary}")

        await self._run_writer(subject, sink, news_slot.last_result, finance_slot.last_result, warnings)

    def _collect_warnings(self, news: NewsResearcherOutput, finance: FinanceOutput) -> List[str]:
        warnings = [f"News: {item}" for item in news.warnings or []]
        warnings.extend(f"Finance: {item}" for item in finance.warnings or [])
        return warnings

    async def _run_news(
        self,
        subject: str,
        sink: EventSink,
        revision_request: Optional[str] = None,
    ) -> NewsResearcherOutput:
        role = AgentRole.NEWS_RESEARCHER
        sink.log(role, f"revision requested: {revision_request}" if revision_request else "searching…")
        news = await self._stage(
            role,
            self.invoker.invoke_json(
                NEWS_RESEARCHER,
                build_news_prompt(subject, revision_request),
                NewsResearcherOutput,
            ),
        )
        sink.raw(role, to_payload(news))
        suffix = "; warnings" if news.warnings else ""
        sink.log(role, f"done ({len(news.key_events)} items{suffix})")
        return news

    async def _run_finance(
        self,
        subject: str,
        sink: EventSink,
        revision_request: Optional[str] = None,
    ) -> FinanceOutput:
        role = AgentRole.FINANCIAL_ANALYST
        sink.log(role, f"revision requested: {revision_request}" if revision_request else "fetching…")
        finance = await self._stage(
            role,
            self.invoker.invoke_json(
                FINANCIAL_ANALYST,
                build_finance_prompt(subject, revision_request),
                FinanceOutput,
            ),
        )
        sink.raw(role, to_payload(finance))
        suffix = "; mock" if finance.is_mock else ""
        sink.log(role, f"done ({len(finance.key_metrics)} metrics{suffix})")
        return finance

    async def _run_review(
        self,
        subject: str,
        sink: EventSink,
        news: NewsResearcherOutput,
        finance: FinanceOutput,
    ) -> ManagerReview:
        role = AgentRole.MANAGER
        sink.log(role, "reviewing completeness…")
        review = await self._stage(role, self.review_gate.review(subject, news, finance))
        sink.raw(role, to_payload(review))
        sink.log(role, "review complete")
        return review

    async def _run_writer(
        self,
        subject: str,
        sink: EventSink,
        news: NewsResearcherOutput,
        finance: FinanceOutput,
        warnings: List[str],
    ) -> str:
        role = AgentRole.REPORT_WRITER
        sink.log(role, "drafting memo…")
        prompt = build_writer_prompt(subject, to_payload(news), to_payload(finance), warnings)
        markdown = await self._stage(role, self.invoker.invoke_markdown(REPORT_WRITER, prompt))
        sink.raw(role, markdown)
        sink.final(markdown)
        sink.log(role, "done")
        return markdown


_DEFAULT_ORCHESTRATOR: Optional[PipelineOrchestrator] = None


def get_default_orchestrator() -> PipelineOrchestrator:
    """The one process-wide orchestrator; its RunCache backs every entrypoint."""
    global _DEFAULT_ORCHESTRATOR
    if _DEFAULT_ORCHESTRATOR is None:
        _DEFAULT_ORCHESTRATOR = PipelineOrchestrator()
    return _DEFAULT_ORCHESTRATOR


def set_default_orchestrator(orchestrator: Optional[PipelineOrchestrator]) -> None:
    """Swap the shared orchestrator (tests, embedding). None resets to a lazily built default."""
    global _DEFAULT_ORCHESTRATOR
    _DEFAULT_ORCHESTRATOR = orchestrator


async def start_run(subject: str, topology: Topology, sink: EventSink, *, bypass_cache: bool = False) -> None:
    await get_default_orchestrator().start_run(subject, topology, sink, bypass_cache=bypass_cache)


def list_recent_runs() -> RunHistoryIndex:
    return get_default_orchestrator().list_recent_runs()


def get_run(run_id: str) -> Optional[RunRecord]:
    return get_default_orchestrator().get_run(run_id)
