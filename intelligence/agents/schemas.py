"""Output contracts for the JSON-producing roles."""

from __future__ import annotations

from typing import Dict, List, Literal, Optional, Union
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator


class KeyEvent(BaseModel):
    date: str = ""
    title: str = ""
    summary: str = ""
    url: str

    @field_validator("url")
    @classmethod
    def _absolute_url(cls, value: str) -> str:
        parsed = urlparse(str(value or "").strip())
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError("url must be an absolute http(s) URL")
        return value


class NewsResearcherOutput(BaseModel):
    key_events: List[KeyEvent] = Field(default_factory=list)
    positioning_notes: List[str] = Field(default_factory=list)
    product_mentions: List[str] = Field(default_factory=list)
    red_flags: List[str] = Field(default_factory=list)
    warnings: Optional[List[str]] = None


class FinanceOutput(BaseModel):
    company: str = ""
    company_type: Literal["public", "private", "unknown"]
    key_metrics: Dict[str, Union[str, float, int]]
    performance_summary: str
    risks: List[str] = Field(default_factory=list)
    confidence: Literal["high", "medium", "low"]
    is_mock: Optional[bool] = None
    warnings: Optional[List[str]] = None
    sources: Optional[List[str]] = None


class ManagerReview(BaseModel):
    """Revision directive produced by the review gate."""

    needs_news_revision: bool
    news_revision_request: Optional[str] = None
    needs_finance_revision: bool
    finance_revision_request: Optional[str] = None
    handoff_summary: str


def to_payload(model: BaseModel) -> dict:
    """JSON-ready dict of a validated output; optional fields the agent omitted are dropped."""
    return model.model_dump(mode="json", exclude_none=True)
