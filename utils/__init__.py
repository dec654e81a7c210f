"""
Utils Module
通用工具函数
"""
from .logger import setup_logger
from .exceptions import (
    AgentOutputError,
    BriefError,
    ConfigurationError,
    LLMError,
    NoOutputError,
    SchemaViolationError,
    StageFailure,
    StageTimeoutError,
    StreamFault,
    UnparseableOutputError,
    UpstreamToolWarning,
)

__all__ = [
    "setup_logger",
    "AgentOutputError",
    "BriefError",
    "ConfigurationError",
    "LLMError",
    "NoOutputError",
    "SchemaViolationError",
    "StageFailure",
    "StageTimeoutError",
    "StreamFault",
    "UnparseableOutputError",
    "UpstreamToolWarning",
]
