"""
Finance Lookup Tool
Alpha Vantage 行情快照; 无 key 或请求失败时降级为确定性 mock。
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
import logging

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from config import ToolSettings, get_tool_settings
from storage import MemoryCache
from utils.exceptions import UpstreamToolWarning
from .tool_cache import get_tool_cache


logger = logging.getLogger(__name__)

ALPHA_VANTAGE_URL = "https://www.alphavantage.co/query"
_PRICE_SERIES_POINTS = 90


def stable_hash(text: str) -> int:
    """32-bit FNV-1a, folded to a non-negative int."""
    h = 0x811C9DC5
    for ch in text:
        h ^= ord(ch)
        h = (h * 16777619) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def mock_finance(company: str, warnings: Optional[List[str]] = None) -> Dict[str, Any]:
    """Deterministic placeholder snapshot; same company always yields the same numbers."""
    seed = stable_hash(company.lower())
    company_type = ("public", "private", "unknown")[seed % 3]

    revenue = 500_000_000 + (seed % 2_000_000_000)
    gross_margin = 0.35 + (seed % 25) / 100
    yoy = -0.05 + (seed % 30) / 100
    headcount = 400 + (seed % 6500)

    key_metrics: Dict[str, Any] = {
        "Revenue (est.)": f"${revenue / 1e9:.2f}B",
        "Revenue YoY (est.)": f"{yoy * 100:.1f}%",
        "Gross margin (est.)": f"{gross_margin * 100:.0f}%",
        "Headcount (signal)": headcount,
        "Cash runway (proxy)": f"{max(6, (seed % 24) + 6)} months",
    }
    if company_type == "public":
        price_change = -0.2 + (seed % 50) / 100
        market_cap = 2_000_000_000 + (seed % 80_000_000_000)
        key_metrics["Stock (12M change)"] = f"{price_change * 100:.1f}%"
        key_metrics["Market cap"] = f"${market_cap / 1e9:.1f}B"

    return {
        "company": company,
        "company_type": company_type,
        "key_metrics": key_metrics,
        "performance_summary": (
            "Mocked financial snapshot generated because real market data was unavailable. "
            "Treat as placeholders; replace with real data when available."
        ),
        "risks": [
            "Mock data may differ materially from real financials.",
            "Private-company estimates can be misleading without primary sources.",
        ],
        "confidence": "low",
        "is_mock": True,
        "warnings": warnings or ["Using deterministic mock finance tool (no Alpha Vantage key)."],
        "sources": [],
    }


def _unknown_symbol(company: str) -> Dict[str, Any]:
    return {
        "company": company,
        "company_type": "unknown",
        "key_metrics": {"Coverage": "No public symbol found via Alpha Vantage"},
        "performance_summary": (
            "Could not find a reliable public ticker symbol for this competitor; "
            "returning limited metrics."
        ),
        "risks": [
            "No ticker symbol found; financial metrics may be unavailable.",
            "Name ambiguity: multiple companies can share similar names.",
        ],
        "confidence": "low",
        "warnings": ["Alpha Vantage did not return a usable symbol."],
        "sources": ["https://www.alphavantage.co/documentation/"],
    }


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(httpx.TransportError),
    reraise=True,
)
async def _query(client: httpx.AsyncClient, params: Dict[str, str]) -> httpx.Response:
    return await client.get(ALPHA_VANTAGE_URL, params=params)


def _parse_price_series(payload: Dict[str, Any]) -> Optional[List[Dict[str, Any]]]:
    # Alpha Vantage reports failures and rate limits in-band
    if isinstance(payload.get("Error Message"), str) or isinstance(payload.get("Note"), str):
        return None
    series = payload.get("Time Series (Daily)")
    if not isinstance(series, dict):
        return None

    points: List[Dict[str, Any]] = []
    for date, values in series.items():
        if not isinstance(values, dict):
            continue
        try:
            close = float(values.get("4. close"))
        except (TypeError, ValueError):
            continue
        points.append({"date": date, "close": close})

    points.sort(key=lambda item: item["date"])
    return points[-_PRICE_SERIES_POINTS:]


async def _alpha_vantage_snapshot(client: httpx.AsyncClient, api_key: str, company: str) -> Dict[str, Any]:
    search = await _query(client, {"function": "SYMBOL_SEARCH", "keywords": company, "apikey": api_key})
    if search.status_code >= 400:
        raise UpstreamToolWarning(
            f"Alpha Vantage SYMBOL_SEARCH failed (HTTP {search.status_code}). Falling back to mock.",
            tool="finance_lookup",
            body=search.text[:300],
        )

    matches = search.json().get("bestMatches")
    best = matches[0] if isinstance(matches, list) and matches and isinstance(matches[0], dict) else {}
    symbol = best.get("1. symbol")
    if not isinstance(symbol, str) or not symbol:
        return _unknown_symbol(company)

    quote_response = await _query(client, {"function": "GLOBAL_QUOTE", "symbol": symbol, "apikey": api_key})
    quote: Dict[str, Any] = {}
    if quote_response.status_code < 400:
        quote = quote_response.json().get("Global Quote") or {}

    price: Any = "unknown"
    if quote.get("05. price"):
        try:
            price = float(quote["05. price"])
        except (TypeError, ValueError):
            price = "unknown"
    change_percent = str(quote["10. change percent"]) if quote.get("10. change percent") else "unknown"

    price_series = None
    try:
        series_response = await _query(
            client,
            {"function": "TIME_SERIES_DAILY", "symbol": symbol, "outputsize": "compact", "apikey": api_key},
        )
        if series_response.status_code < 400:
            price_series = _parse_price_series(series_response.json())
    except (httpx.HTTPError, ValueError) as exc:
        # quote metrics are still real data
        logger.warning("Alpha Vantage TIME_SERIES_DAILY failed for %s: %s", symbol, exc)

    value: Dict[str, Any] = {
        "company": company,
        "company_type": "public",
        "key_metrics": {
            "Symbol": symbol,
            "Last price": price,
            "Change percent": change_percent,
            "Exchange": best.get("4. region") if isinstance(best.get("4. region"), str) else "unknown",
            "Currency": best.get("8. currency") if isinstance(best.get("8. currency"), str) else "unknown",
        },
        "performance_summary": (
            "Public-market snapshot based on Alpha Vantage symbol search, global quote, and daily "
            "close series (when available). Revenue/profitability are not provided by this endpoint."
        ),
        "risks": [
            "Alpha Vantage free endpoints may be rate-limited.",
            "Revenue/profitability require additional data sources beyond price series.",
        ],
        "confidence": "medium" if price_series else "low",
        "warnings": [],
        "sources": ["https://www.alphavantage.co"],
    }
    if price_series is not None:
        value["price_series"] = price_series
    return value


async def finance_lookup(
    company: str,
    *,
    settings: Optional[ToolSettings] = None,
    cache: Optional[MemoryCache] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, Any]:
    """
    查询公司财务快照

    Returns:
        FinanceOutput 形状的 dict; mock 数据带 is_mock=True 与 confidence=low
    """
    settings = settings or get_tool_settings()
    company = str(company or "").strip()

    cache = cache if cache is not None else get_tool_cache()
    cache_key = f"finance:{company}"
    cached = cache.get(cache_key)
    if cached is not None:
        return cached

    if not settings.alpha_vantage_api_key:
        value = mock_finance(company)
        cache.set(cache_key, value, settings.tool_cache_ttl_sec)
        return value

    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=settings.tool_request_timeout_sec)
    try:
        value = await _alpha_vantage_snapshot(client, settings.alpha_vantage_api_key, company)
    except UpstreamToolWarning as warning:
        logger.warning("finance_lookup degraded for %r: %s", company, warning.message)
        body = str(warning.details.get("body") or "")
        value = mock_finance(company, warnings=[item for item in (warning.message, body) if item])
    except (httpx.HTTPError, ValueError, AttributeError) as exc:
        logger.warning("finance_lookup request error for %r: %s", company, exc)
        value = mock_finance(
            company,
            warnings=[f"Alpha Vantage request error: {exc}", "Falling back to deterministic mock."],
        )
    finally:
        if owns_client:
            await client.aclose()

    cache.set(cache_key, value, settings.tool_cache_ttl_sec)
    return value
