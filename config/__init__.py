"""
Configuration Management Module
统一配置管理
"""
from .settings import (
    LLMSettings,
    RunSettings,
    Settings,
    ToolSettings,
    get_llm_settings,
    get_run_settings,
    get_settings,
    get_tool_settings,
)

__all__ = [
    "LLMSettings",
    "RunSettings",
    "Settings",
    "ToolSettings",
    "get_llm_settings",
    "get_run_settings",
    "get_settings",
    "get_tool_settings",
]
