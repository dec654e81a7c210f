"""Function-call tool schema definitions for the research tools."""

from __future__ import annotations

from typing import Any, Dict, List


def _tool_definition(
    *,
    name: str,
    description: str,
    properties: Dict[str, Any],
    required: List[str],
) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        },
    }


WEB_SEARCH = "web_search"
FINANCE_LOOKUP = "finance_lookup"

TOOL_DEFINITIONS: Dict[str, Dict[str, Any]] = {
    WEB_SEARCH: _tool_definition(
        name=WEB_SEARCH,
        description=(
            "Search the web for recent, relevant sources. Returns a list of structured "
            "results with title, snippet, url, and optional date."
        ),
        properties={
            "query": {
                "type": "string",
                "minLength": 3,
                "description": "Search query, e.g. '<company> product launch'",
            },
        },
        required=["query"],
    ),
    FINANCE_LOOKUP: _tool_definition(
        name=FINANCE_LOOKUP,
        description=(
            "Lookup financial performance and key metrics for a company. Returns structured "
            "data; may be mocked if ALPHA_VANTAGE_API_KEY is missing."
        ),
        properties={
            "company": {
                "type": "string",
                "minLength": 1,
                "description": "Company name",
            },
        },
        required=["company"],
    ),
}


def tool_definitions(names) -> List[Dict[str, Any]]:
    """Definitions for the given tool names, in the given order."""
    return [TOOL_DEFINITIONS[name] for name in names if name in TOOL_DEFINITIONS]
