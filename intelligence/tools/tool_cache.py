"""Process-wide cache shared by the research tools."""

from __future__ import annotations

from typing import Optional

from config import get_tool_settings
from storage import MemoryCache


_tool_cache: Optional[MemoryCache] = None


def get_tool_cache() -> MemoryCache:
    global _tool_cache
    if _tool_cache is None:
        _tool_cache = MemoryCache(ttl=get_tool_settings().tool_cache_ttl_sec)
    return _tool_cache


def reset_tool_cache() -> None:
    global _tool_cache
    _tool_cache = None
