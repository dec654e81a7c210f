"""
Role definitions and prompt builders for the four pipeline participants.
"""

from __future__ import annotations

import json
from typing import Any, List, Optional

from core import AgentRole
from intelligence.tools import FINANCE_LOOKUP, WEB_SEARCH
from .runtime import AgentSpec


DEFAULT_NEWS_REVISION = "Please add at least 5 recent news items with links."
DEFAULT_FINANCE_REVISION = "Please provide at least 5 financial metrics or explain why not possible."


NEWS_RESEARCHER = AgentSpec(
    role=AgentRole.NEWS_RESEARCHER,
    instructions="\n".join(
        [
            "Role: News Researcher.",
            "Goal: Find latest news, press releases, product launches, partnerships, controversies, "
            "and signals (hiring, layoffs) related to the competitor from the last 12 months.",
            "You MUST call the web_search tool at least once.",
            "Prefer sources within the last 12 months; if older, explicitly label it.",
            "Return ONLY a single JSON object with keys:",
            "key_events: array of {date, title, summary, url}",
            "positioning_notes: array of strings",
            "product_mentions: array of strings",
            "red_flags: array of strings",
            "warnings?: array of strings",
            "Constraints:",
            "- key_events must include urls and dates when available",
            "- include at least 5 key_events when possible",
        ]
    ),
    tools=(WEB_SEARCH,),
)

FINANCIAL_ANALYST = AgentSpec(
    role=AgentRole.FINANCIAL_ANALYST,
    instructions="\n".join(
        [
            "Role: Financial Analyst.",
            "Goal: Summarize financial performance and key metrics. If public: stock performance, "
            "revenue trend, profitability. If private: infer carefully using available sources and "
            "label as estimates.",
            "You MUST call finance_lookup(company) at least once.",
            "Return ONLY a single JSON object with keys:",
            "company_type: 'public' | 'private' | 'unknown'",
            "key_metrics: { metric: value } (>= 5 items when possible)",
            "performance_summary: string",
            "risks: string[]",
            "confidence: 'high'|'medium'|'low'",
            "is_mock?: boolean",
            "warnings?: string[]",
            "sources?: string[]",
            "If the finance tool returns mock data, keep is_mock true and confidence low.",
        ]
    ),
    tools=(FINANCE_LOOKUP,),
)

REPORT_WRITER = AgentSpec(
    role=AgentRole.REPORT_WRITER,
    instructions="\n".join(
        [
            "Role: Strategy & Insights Writer.",
            "Goal: Write a polished business memo combining news and financial findings into an "
            "actionable competitor brief.",
            "Output ONLY markdown with these sections:",
            "Executive Summary (5 bullets)",
            "Who They Are (positioning)",
            "Recent Moves (chronological bullets w/ links)",
            "Financial Snapshot (table)",
            "Threats & Opportunities (bullets)",
            "Recommended Actions (3-5 actions)",
            "Sources (list of links)",
            "Be internally consistent and clearly label any estimates or mocked data.",
        ]
    ),
)

MANAGER = AgentSpec(
    role=AgentRole.MANAGER,
    instructions="\n".join(
        [
            "Role: Research Manager.",
            "Goal: Check the specialists' work for completeness, request one revision if needed, "
            "then hand off to ReportWriter.",
            "Quality checks:",
            "- Ensure at least 5 news items with links (or explicitly explain limitations)",
            "- Ensure at least 5 financial metrics (or explicitly explain limitations)",
            "- Ensure the material is sufficient for a memo with sources that is internally consistent",
            "When asked to review outputs, respond with a JSON object with keys:",
            "needs_news_revision: boolean",
            "news_revision_request?: string",
            "needs_finance_revision: boolean",
            "finance_revision_request?: string",
            "handoff_summary: string (what to tell the ReportWriter)",
        ]
    ),
)


def _pretty(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, indent=2)


def build_news_prompt(subject: str, revision_request: Optional[str] = None) -> str:
    lines = [
        f"Competitor: {subject}",
        "Task: Gather at least 5 key events from the last 12 months with links.",
        f"Revision request: {revision_request}" if revision_request else "",
        'Use web_search with queries like: "<competitor> press release", "<competitor> partnership", '
        '"<competitor> product launch", "<competitor> layoffs".',
    ]
    return "\n".join(line for line in lines if line)


def build_finance_prompt(subject: str, revision_request: Optional[str] = None) -> str:
    lines = [
        f"Company: {subject}",
        "Task: Provide at least 5 key financial metrics when possible; if not possible, "
        "explain why and label estimates.",
        f"Revision request: {revision_request}" if revision_request else "",
        "You must call finance_lookup(company).",
    ]
    return "\n".join(line for line in lines if line)


def build_review_prompt(subject: str, news: Any, finance: Any) -> str:
    return "\n\n".join(
        [
            f"Competitor: {subject}",
            "Review the outputs below and decide if revisions are needed.",
            "NewsResearcher JSON:\n" + _pretty(news),
            "FinancialAnalyst JSON:\n" + _pretty(finance),
        ]
    )


def build_writer_prompt(subject: str, news: Any, finance: Any, warnings: List[str]) -> str:
    parts = [
        f"Competitor: {subject}",
        ("Global warnings:\n- " + "\n- ".join(warnings)) if warnings else "",
        "NewsResearcher JSON:\n" + _pretty(news),
        "FinancialAnalyst JSON:\n" + _pretty(finance),
        "Write the memo now.",
    ]
    return "\n\n".join(part for part in parts if part)
