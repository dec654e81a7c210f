"""
Base LLM
OpenAI 兼容 chat 协议的消息与响应类型, 以及 LLM 抽象基类
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
import json
from typing import Any, Dict, List, Optional


class MessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass
class ToolCall:
    """模型请求的一次函数调用; id 用于把 tool 结果对应回这次调用"""
    id: str
    name: str
    arguments: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {
                "name": self.name,
                "arguments": json.dumps(self.arguments, ensure_ascii=False),
            },
        }


@dataclass
class Message:
    """
    一条对话消息

    assistant 消息可以携带 tool_calls; 每个调用的结果以一条 tool 消息回传,
    并用 tool_call_id 指向对应调用。
    """
    role: MessageRole
    content: Optional[str]
    tool_calls: List[ToolCall] = field(default_factory=list)
    tool_call_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            payload["tool_calls"] = [call.to_dict() for call in self.tool_calls]
        if self.tool_call_id:
            payload["tool_call_id"] = self.tool_call_id
        return payload

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(MessageRole.SYSTEM, content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(MessageRole.USER, content)

    @classmethod
    def assistant(cls, content: Optional[str], tool_calls: Optional[List[ToolCall]] = None) -> "Message":
        return cls(MessageRole.ASSISTANT, content, tool_calls=list(tool_calls or []))

    @classmethod
    def tool(cls, tool_call_id: str, content: str) -> "Message":
        return cls(MessageRole.TOOL, content, tool_call_id=tool_call_id)


@dataclass
class LLMResponse:
    """一轮补全的结果: 文本, 或者一组待执行的工具调用"""
    content: Optional[str]
    model: str
    usage: Dict[str, int] = field(default_factory=dict)
    tool_calls: Optional[List[ToolCall]] = None

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


class BaseLLM(ABC):
    """
    LLM 抽象基类

    实现类只需提供 provider 与 acomplete; 生成参数在构造时固定。
    """

    def __init__(
        self,
        model: str,
        temperature: float = 0.4,
        max_tokens: int = 4096,
        timeout: float = 120.0,
        **kwargs,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.extra_config = kwargs

    @property
    @abstractmethod
    def provider(self) -> str:
        """供应商名称, 用于日志与 LLMError"""

    @abstractmethod
    async def acomplete(
        self,
        messages: List[Message],
        tools: Optional[List[Dict]] = None,
        **kwargs,
    ) -> LLMResponse:
        """
        发送一轮对话

        Args:
            messages: 完整对话历史
            tools: function calling 定义; None 表示本轮不允许调用工具
        """

    async def aclose(self) -> None:
        """释放底层客户端 (默认无操作)"""
        return None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model={self.model}, provider={self.provider})"
