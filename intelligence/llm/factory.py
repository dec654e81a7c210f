"""
LLM Factory
工厂函数 - 根据配置创建 LLM 实例
"""
from typing import Optional
import logging

from config import LLMSettings, get_llm_settings
from .base import BaseLLM
from .openai_llm import OpenAILLM


logger = logging.getLogger(__name__)


def get_llm(
    model: Optional[str] = None,
    *,
    settings: Optional[LLMSettings] = None,
    **kwargs,
) -> BaseLLM:
    """
    获取 LLM 实例

    自动从 .env 读取配置，也可手动指定

    Example:
        llm = get_llm()
        llm = get_llm(model="gpt-4o", temperature=0.2)
    """
    settings = settings or get_llm_settings()

    params = {
        "temperature": settings.temperature,
        "max_tokens": settings.max_tokens,
        "timeout": settings.timeout,
    }
    params.update(kwargs)

    return OpenAILLM(
        model=model or settings.model,
        api_key=params.pop("api_key", None) or settings.api_key,
        base_url=params.pop("base_url", None) or settings.base_url,
        **params,
    )
