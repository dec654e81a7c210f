"""
Agent Runtime
单个角色的一次调用: 系统指令 + 用户 prompt, 有界的工具调用循环。
"""

from __future__ import annotations

from dataclasses import dataclass, field
import json
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple
import logging

from config import get_llm_settings
from core import AgentRole
from intelligence.llm import BaseLLM, LLMResponse, Message, get_llm
from intelligence.tools import execute_tool, tool_definitions


logger = logging.getLogger(__name__)

ToolExecutor = Callable[[str, Dict[str, Any]], Awaitable[Any]]

_MAX_OBSERVATION_CHARS = 12000


@dataclass(frozen=True)
class AgentSpec:
    """Fixed configuration of one role: who it is, what it must do, which tools it may call."""

    role: AgentRole
    instructions: str
    tools: Tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return self.role.value


@dataclass
class AgentRunResult:
    """
    Envelope returned by one agent run.

    `output_text` is the final assistant text; `output` mirrors it as a list of
    message segments, the shape most agent SDKs expose.
    """

    agent: str
    output_text: str = ""
    output: List[Dict[str, Any]] = field(default_factory=list)
    tool_calls: List[Dict[str, Any]] = field(default_factory=list)
    usage: Dict[str, int] = field(default_factory=dict)


class AgentRunner:
    """Runs an AgentSpec against an OpenAI-compatible LLM, executing tool calls in between."""

    def __init__(
        self,
        llm: Optional[BaseLLM] = None,
        *,
        tool_executor: Optional[ToolExecutor] = None,
        max_tool_rounds: Optional[int] = None,
    ):
        self._llm = llm
        self._tool_executor = tool_executor or execute_tool
        if max_tool_rounds is None:
            max_tool_rounds = get_llm_settings().max_tool_rounds
        self.max_tool_rounds = max(0, int(max_tool_rounds))

    @property
    def llm(self) -> BaseLLM:
        if self._llm is None:
            self._llm = get_llm()
        return self._llm

    async def run(self, spec: AgentSpec, prompt: str) -> AgentRunResult:
        messages = [Message.system(spec.instructions), Message.user(prompt)]
        definitions = tool_definitions(spec.tools)
        allowed = set(spec.tools)
        trace: List[Dict[str, Any]] = []
        usage: Dict[str, int] = {}
        rounds = 0

        while True:
            allow_tools = bool(definitions) and rounds < self.max_tool_rounds
            logger.info("%s round %s (tools=%s)", spec.name, rounds + 1, allow_tools)
            response = await self.llm.acomplete(messages, tools=definitions if allow_tools else None)
            self._accumulate_usage(usage, response)

            if not (allow_tools and response.has_tool_calls):
                return self._result(spec, response, trace, usage)

            rounds += 1
            # 一条 assistant 消息带全部 tool_calls, 之后每个调用回一条 tool 消息
            messages.append(Message.assistant(response.content, response.tool_calls))
            for tool_call in response.tool_calls or []:
                name = str(tool_call.name or "").strip()
                observation = await self._execute(name, tool_call.arguments, allowed)
                trace.append({"round": rounds, "tool": name, "arguments": dict(tool_call.arguments or {})})
                messages.append(Message.tool(tool_call.id, self._format_observation(observation)))

    async def _execute(self, name: str, arguments: Dict[str, Any], allowed: Sequence[str]) -> Any:
        if name not in allowed:
            return {"error": f"Tool '{name}' is not available to this agent."}
        try:
            return await self._tool_executor(name, dict(arguments or {}))
        except Exception as exc:
            logger.warning("Tool execution failed: %s(%s): %s", name, arguments, exc)
            return {"error": str(exc)}

    def _format_observation(self, observation: Any) -> str:
        text = json.dumps(observation, ensure_ascii=False, default=str)
        if len(text) > _MAX_OBSERVATION_CHARS:
            text = text[:_MAX_OBSERVATION_CHARS] + "…"
        return text

    def _accumulate_usage(self, usage: Dict[str, int], response: LLMResponse) -> None:
        for key, value in (response.usage or {}).items():
            usage[key] = usage.get(key, 0) + int(value or 0)

    def _result(
        self,
        spec: AgentSpec,
        response: LLMResponse,
        trace: List[Dict[str, Any]],
        usage: Dict[str, int],
    ) -> AgentRunResult:
        text = response.content or ""
        output: List[Dict[str, Any]] = []
        if text:
            output.append(
                {
                    "type": "message",
                    "role": "assistant",
                    "content": [{"type": "output_text", "text": text}],
                }
            )
        return AgentRunResult(agent=spec.name, output_text=text, output=output, tool_calls=trace, usage=usage)
