"""Review gate and the single-revision bookkeeping for the hierarchical topology."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from core import AgentRole
from utils.exceptions import BriefError
from .invoker import StructuredAgentInvoker
from .roles import DEFAULT_FINANCE_REVISION, DEFAULT_NEWS_REVISION, MANAGER, build_review_prompt
from .schemas import FinanceOutput, ManagerReview, NewsResearcherOutput, to_payload


T = TypeVar("T")


class RevisionLimitExceeded(BriefError):
    """A role was asked to revise twice in the same run."""


@dataclass
class RevisionSlot(Generic[T]):
    """Bounded retry state for one sub-task: the original result plus at most one revision."""

    role: AgentRole
    last_result: T
    attempts: int = 0

    def record_revision(self, result: T) -> None:
        if self.attempts >= 1:
            raise RevisionLimitExceeded(f"{self.role.value} has already been revised once")
        self.attempts = 1
        self.last_result = result

    @property
    def can_revise(self) -> bool:
        return self.attempts == 0


class ReviewGate:
    """Asks the Manager role whether either specialist output needs one more pass."""

    def __init__(self, invoker: StructuredAgentInvoker):
        self.invoker = invoker

    async def review(
        self,
        subject: str,
        news: NewsResearcherOutput,
        finance: FinanceOutput,
    ) -> ManagerReview:
        prompt = build_review_prompt(subject, to_payload(news), to_payload(finance))
        return await self.invoker.invoke_json(MANAGER, prompt, ManagerReview)


def news_revision_request(review: ManagerReview) -> Optional[str]:
    if not review.needs_news_revision:
        return None
    return review.news_revision_request or DEFAULT_NEWS_REVISION


def finance_revision_request(review: ManagerReview) -> Optional[str]:
    if not review.needs_finance_revision:
        return None
    return review.finance_revision_request or DEFAULT_FINANCE_REVISION
