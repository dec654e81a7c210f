"""
Agents Module
四角色协作: NewsResearcher / FinancialAnalyst / Manager / ReportWriter
"""
from .schemas import (
    FinanceOutput,
    KeyEvent,
    ManagerReview,
    NewsResearcherOutput,
    to_payload,
)
from .runtime import AgentRunner, AgentRunResult, AgentSpec
from .roles import (
    DEFAULT_FINANCE_REVISION,
    DEFAULT_NEWS_REVISION,
    FINANCIAL_ANALYST,
    MANAGER,
    NEWS_RESEARCHER,
    REPORT_WRITER,
    build_finance_prompt,
    build_news_prompt,
    build_review_prompt,
    build_writer_prompt,
)
from .invoker import EXTRACTORS, StructuredAgentInvoker, extract_text, parse_json_text
from .review import (
    ReviewGate,
    RevisionLimitExceeded,
    RevisionSlot,
    finance_revision_request,
    news_revision_request,
)

__all__ = [
    "AgentRunResult",
    "AgentRunner",
    "AgentSpec",
    "DEFAULT_FINANCE_REVISION",
    "DEFAULT_NEWS_REVISION",
    "EXTRACTORS",
    "FINANCIAL_ANALYST",
    "FinanceOutput",
    "KeyEvent",
    "MANAGER",
    "ManagerReview",
    "NEWS_RESEARCHER",
    "NewsResearcherOutput",
    "REPORT_WRITER",
    "ReviewGate",
    "RevisionLimitExceeded",
    "RevisionSlot",
    "StructuredAgentInvoker",
    "build_finance_prompt",
    "build_news_prompt",
    "build_review_prompt",
    "build_writer_prompt",
    "extract_text",
    "finance_revision_request",
    "news_revision_request",
    "parse_json_text",
    "to_payload",
]
