"""
OpenAI LLM
OpenAI 及兼容网关 (chat completions + function calling)
"""
from typing import List, Optional, Dict
import json
import logging

from utils.exceptions import LLMError
from .base import BaseLLM, Message, LLMResponse, ToolCall


logger = logging.getLogger(__name__)


class OpenAILLM(BaseLLM):
    """
    OpenAI LLM 实现

    `base_url` 允许指向任意 OpenAI 兼容网关; 网关场景下可以没有 api_key。
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: float = 0.4,
        max_tokens: int = 4096,
        timeout: float = 120.0,
        **kwargs,
    ):
        super().__init__(model, temperature, max_tokens, timeout, **kwargs)
        self.api_key = api_key
        self.base_url = base_url
        self._async_client = None

    @property
    def provider(self) -> str:
        return "openai"

    def _get_async_client(self):
        """获取异步客户端"""
        if self._async_client is None:
            from openai import AsyncOpenAI
            logger.info(
                "Creating OpenAI client (base_url=%s, api_key_present=%s, model=%s)",
                self.base_url or "(default)",
                bool(self.api_key),
                self.model,
            )
            self._async_client = AsyncOpenAI(
                # SDK 要求非空 key; 仅网关场景会走到占位值
                api_key=self.api_key or "gateway",
                base_url=self.base_url,
                timeout=self.timeout,
            )
        return self._async_client

    async def acomplete(
        self,
        messages: List[Message],
        tools: Optional[List[Dict]] = None,
        **kwargs,
    ) -> LLMResponse:
        """异步生成响应"""
        client = self._get_async_client()

        request_params = {
            "model": self.model,
            "messages": [m.to_dict() for m in messages],
            "temperature": kwargs.get("temperature", self.temperature),
            "max_tokens": kwargs.get("max_tokens", self.max_tokens),
        }

        if tools:
            request_params["tools"] = tools
            request_params["tool_choice"] = kwargs.get("tool_choice", "auto")

        from openai import OpenAIError

        try:
            response = await client.chat.completions.create(**request_params)
        except OpenAIError as exc:
            raise LLMError(str(exc), provider=self.provider, model=self.model) from exc

        choice = response.choices[0]
        content = choice.message.content

        tool_calls = None
        if choice.message.tool_calls:
            tool_calls = []
            for tc in choice.message.tool_calls:
                try:
                    arguments = json.loads(tc.function.arguments or "{}")
                except json.JSONDecodeError:
                    logger.warning("Discarding malformed tool arguments for %s", tc.function.name)
                    arguments = {}
                tool_calls.append(ToolCall(id=tc.id, name=tc.function.name, arguments=arguments))

        usage = {}
        if response.usage is not None:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        return LLMResponse(
            content=content,
            model=response.model,
            usage=usage,
            tool_calls=tool_calls,
        )

    async def aclose(self) -> None:
        client = self._async_client
        if client is None:
            return
        self._async_client = None
        await client.close()
