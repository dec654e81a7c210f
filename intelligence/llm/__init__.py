"""
LLM Module
OpenAI 兼容 LLM 抽象层
"""
from .base import BaseLLM, LLMResponse, Message, MessageRole, ToolCall
from .openai_llm import OpenAILLM
from .factory import get_llm

__all__ = [
    "BaseLLM",
    "LLMResponse",
    "Message",
    "MessageRole",
    "OpenAILLM",
    "ToolCall",
    "get_llm",
]
