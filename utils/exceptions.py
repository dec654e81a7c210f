"""
Custom Exceptions
自定义异常类
"""


class BriefError(Exception):
    """Competitor brief 基础异常类"""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(BriefError):
    """配置错误 (缺少必需凭据)"""
    pass


class AgentOutputError(BriefError):
    """Agent 输出错误, 总是归属到某个角色"""

    def __init__(self, message: str, role: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.role = role


class NoOutputError(AgentOutputError):
    """Agent 未产生任何文本"""

    def __init__(self, role: str):
        super().__init__(f"{role} produced no parseable text output.", role=role)


class UnparseableOutputError(AgentOutputError):
    """Agent 文本不是合法 JSON"""

    def __init__(self, role: str):
        super().__init__(f"{role} output was not valid JSON.", role=role)


class SchemaViolationError(AgentOutputError):
    """Agent JSON 未通过 schema 校验"""

    def __init__(self, role: str, diagnostic: str):
        super().__init__(f"{role} JSON schema validation failed: {diagnostic}", role=role)
        self.diagnostic = diagnostic


class StageTimeoutError(AgentOutputError):
    """单阶段超时"""

    def __init__(self, role: str, timeout_sec: float):
        super().__init__(f"{role} did not finish within {timeout_sec:g}s.", role=role)
        self.timeout_sec = timeout_sec


class UpstreamToolWarning(BriefError):
    """外部工具降级 (非致命, 转为 warning 字符串)"""

    def __init__(self, message: str, tool: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.tool = tool


class StreamFault(BriefError):
    """消费端通道无法接收事件"""
    pass


class LLMError(BriefError):
    """LLM 调用错误"""

    def __init__(self, message: str, provider: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.provider = provider


class StageFailure(BriefError):
    """某个阶段失败; 保留失败角色与原始异常"""

    def __init__(self, stage: str, cause: BaseException):
        super().__init__(str(cause))
        self.stage = stage
        self.cause = cause

    @property
    def error_type(self) -> str:
        return type(self.cause).__name__
