"""
Intelligence Module
智能层 - LLM 抽象 + 工具 + 四角色 Agent
"""
from .llm import BaseLLM, OpenAILLM, get_llm
from .agents import AgentRunner, AgentSpec, StructuredAgentInvoker

__all__ = [
    "AgentRunner",
    "AgentSpec",
    "BaseLLM",
    "OpenAILLM",
    "StructuredAgentInvoker",
    "get_llm",
]
