"""
Settings Configuration
使用 Pydantic 进行配置验证和管理
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class LLMSettings(BaseSettings):
    """Agent runtime (OpenAI-compatible) 配置"""
    api_key: Optional[str] = Field(default=None, description="OpenAI API Key")
    base_url: Optional[str] = Field(default=None, description="OpenAI-compatible gateway base URL")
    model: str = Field(default="gpt-4o-mini", description="模型名称")
    temperature: float = Field(default=0.4, description="生成温度")
    max_tokens: int = Field(default=4096, description="最大生成token数")
    timeout: float = Field(default=120.0, description="单次请求超时(秒)")
    max_tool_rounds: int = Field(default=4, description="单个 agent 最多工具调用轮数")

    class Config:
        env_prefix = "OPENAI_"

    def has_credentials(self) -> bool:
        """A key or a custom gateway URL is enough to reach the runtime."""
        return bool((self.api_key or "").strip() or (self.base_url or "").strip())


class ToolSettings(BaseSettings):
    """Web search / finance 工具配置"""
    tavily_api_key: Optional[str] = Field(default=None, description="Tavily API Key")
    alpha_vantage_api_key: Optional[str] = Field(default=None, description="Alpha Vantage API Key")
    tool_cache_ttl_sec: int = Field(default=600, description="工具结果缓存时间(秒)")
    tool_request_timeout_sec: float = Field(default=15.0, description="工具请求超时(秒)")


class RunSettings(BaseSettings):
    """Run orchestration 配置"""
    subject_max_length: int = Field(default=80, description="subject 最大长度")
    cache_ttl_sec: int = Field(default=900, description="run 缓存过期时间(秒)")
    recent_runs_limit: int = Field(default=50, description="最近运行索引上限")
    stage_timeout_sec: float = Field(default=180.0, description="单阶段超时(秒), 0 表示不限制")

    class Config:
        env_prefix = "RUN_"


class Settings(BaseSettings):
    """主配置类 - 聚合所有子配置"""

    llm: LLMSettings = Field(default_factory=LLMSettings)
    tools: ToolSettings = Field(default_factory=ToolSettings)
    run: RunSettings = Field(default_factory=RunSettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @classmethod
    def load_from_env_file(cls, env_path: Optional[Path] = None) -> "Settings":
        """从指定的 .env 文件加载配置"""
        if env_path is None:
            env_path = Path(__file__).parent / ".env"

        if env_path.exists():
            from dotenv import load_dotenv
            load_dotenv(env_path)

        return cls(
            llm=LLMSettings(),
            tools=ToolSettings(),
            run=RunSettings(),
        )


@lru_cache()
def get_settings() -> Settings:
    """获取全局配置单例"""
    return Settings.load_from_env_file()


def get_llm_settings() -> LLMSettings:
    return get_settings().llm


def get_tool_settings() -> ToolSettings:
    return get_settings().tools


def get_run_settings() -> RunSettings:
    return get_settings().run
