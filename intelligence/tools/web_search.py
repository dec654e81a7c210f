"""
Web Search Tool
Tavily 搜索 - 失败时降级为空结果 + warning。
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
import logging

import httpx
from pydantic import BaseModel, Field, ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from config import ToolSettings, get_tool_settings
from storage import MemoryCache
from utils.exceptions import UpstreamToolWarning
from .tool_cache import get_tool_cache


logger = logging.getLogger(__name__)

TAVILY_SEARCH_URL = "https://api.tavily.com/search"
_MAX_RESULTS = 8


class _TavilyResult(BaseModel):
    title: str = ""
    url: str
    content: Optional[str] = None
    snippet: Optional[str] = None
    published_date: Optional[str] = None


class _TavilyResponse(BaseModel):
    results: List[_TavilyResult] = Field(default_factory=list)


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(httpx.TransportError),
    reraise=True,
)
async def _post_search(client: httpx.AsyncClient, api_key: str, query: str) -> httpx.Response:
    return await client.post(
        TAVILY_SEARCH_URL,
        json={
            "api_key": api_key,
            "query": query,
            "search_depth": "advanced",
            "include_answer": False,
            "include_images": False,
            "include_raw_content": False,
            "max_results": _MAX_RESULTS,
        },
    )


async def _tavily_search(client: httpx.AsyncClient, api_key: str, query: str) -> List[Dict[str, Any]]:
    try:
        response = await _post_search(client, api_key, query)
    except httpx.HTTPError as exc:
        raise UpstreamToolWarning(f"Tavily request failed: {exc}", tool="web_search") from exc

    if response.status_code >= 400:
        raise UpstreamToolWarning(
            f"Tavily error: HTTP {response.status_code} {response.text[:300]}".rstrip(),
            tool="web_search",
            status_code=response.status_code,
        )

    try:
        parsed = _TavilyResponse.model_validate(response.json())
    except (ValueError, ValidationError) as exc:
        raise UpstreamToolWarning(
            "Tavily response validation failed; returning empty results.",
            tool="web_search",
        ) from exc

    results: List[Dict[str, Any]] = []
    for item in parsed.results:
        entry: Dict[str, Any] = {
            "title": item.title,
            "url": item.url,
            "snippet": item.snippet or item.content or "",
        }
        if item.published_date:
            entry["date"] = item.published_date
        results.append(entry)
    return results


async def web_search(
    query: str,
    *,
    settings: Optional[ToolSettings] = None,
    cache: Optional[MemoryCache] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, Any]:
    """
    搜索网页

    Returns:
        {"results": [{title, url, snippet, date?}], "warnings": [...]}
    """
    settings = settings or get_tool_settings()
    query = str(query or "").strip()

    if not settings.tavily_api_key:
        return {
            "results": [],
            "warnings": [
                "TAVILY_API_KEY is not set. Returning empty search results "
                "(news section may be incomplete)."
            ],
        }

    cache = cache if cache is not None else get_tool_cache()
    cache_key = f"tavily:{query}"
    cached = cache.get(cache_key)
    if cached is not None:
        return cached

    warnings: List[str] = []
    results: List[Dict[str, Any]] = []
    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=settings.tool_request_timeout_sec)
    try:
        results = await _tavily_search(client, settings.tavily_api_key, query)
    except UpstreamToolWarning as warning:
        logger.warning("web_search degraded for %r: %s", query, warning.message)
        warnings.append(warning.message)
    finally:
        if owns_client:
            await client.aclose()

    value = {"results": results, "warnings": warnings}
    cache.set(cache_key, value, settings.tool_cache_ttl_sec)
    return value
