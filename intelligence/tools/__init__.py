"""
Tools Module
Agent 可调用的外部工具 (web search / finance lookup)
"""
from typing import Any, Dict

from .tool_specs import FINANCE_LOOKUP, TOOL_DEFINITIONS, WEB_SEARCH, tool_definitions
from .tool_cache import get_tool_cache, reset_tool_cache
from .web_search import web_search
from .finance import finance_lookup, mock_finance, stable_hash


async def execute_tool(tool_name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
    """Dispatch a function call from the model to the matching tool."""
    args = dict(arguments or {})
    if tool_name == WEB_SEARCH:
        query = str(args.get("query") or "").strip()
        if len(query) < 3:
            raise ValueError("web_search requires a query of at least 3 characters")
        return await web_search(query)
    if tool_name == FINANCE_LOOKUP:
        company = str(args.get("company") or "").strip()
        if not company:
            raise ValueError("finance_lookup requires a company name")
        return await finance_lookup(company)
    raise ValueError(f"Unknown tool: {tool_name}")


__all__ = [
    "FINANCE_LOOKUP",
    "TOOL_DEFINITIONS",
    "WEB_SEARCH",
    "execute_tool",
    "finance_lookup",
    "get_tool_cache",
    "mock_finance",
    "reset_tool_cache",
    "stable_hash",
    "tool_definitions",
    "web_search",
]
