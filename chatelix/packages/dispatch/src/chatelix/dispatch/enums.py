"""枚举定义 -- Provider、任务分析维度、错误分类、流事件类型

所有枚举均为 StrEnum，可直接序列化为 JSON 字符串。
"""

from enum import StrEnum


class ProviderTag(StrEnum):
    """后端 Provider 标签（固定五种）"""

    OPENAI = "openai"
    CLAUDE = "claude"
    GEMINI = "gemini"
    DEEPSEEK = "deepseek"
    OPENROUTER = "openrouter"


class TaskType(StrEnum):
    """任务类型"""

    CODE = "code"
    CREATIVE = "creative"
    REASONING = "reasoning"
    VISION = "vision"
    GENERAL = "general"
    TRANSLATION = "translation"
    MATH = "math"


class Complexity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ResponseLength(StrEnum):
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


class Budget(StrEnum):
    ECONOMY = "economy"
    BALANCED = "balanced"
    PREMIUM = "premium"


class SpeedPreference(StrEnum):
    FAST = "fast"
    BALANCED = "balanced"
    QUALITY = "quality"


class ExpectedSpeed(StrEnum):
    FAST = "fast"
    MEDIUM = "medium"
    SLOW = "slow"


class ErrorCode(StrEnum):
    """错误分类（封闭集合）"""

    RATE_LIMIT = "rate_limit"
    MODEL_OFFLINE = "model_offline"
    CONTEXT_LENGTH = "context_length"
    API_KEY = "api_key"
    QUOTA_EXCEEDED = "quota_exceeded"
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    CONTENT_FILTER = "content_filter"
    UNKNOWN = "unknown"


class Severity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RecoveryKind(StrEnum):
    """恢复策略"""

    RETRY = "retry"
    FALLBACK = "fallback"
    MANUAL = "manual"


class StreamEventType(StrEnum):
    """流事件类型

    delta 为增量文本；complete / error / cancelled 为终止事件，每次调用恰好一个。
    fallback 标识切换到替代模型（FallbackOrchestrator / RecoveringStreamer）；
    retry 标识同一模型稍后重试，仅由 RecoveringStreamer 发出。
    """

    DELTA = "delta"
    FALLBACK = "fallback"
    RETRY = "retry"
    COMPLETE = "complete"
    ERROR = "error"
    CANCELLED = "cancelled"


class StreamStatus(StrEnum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_EVENT_TYPES: set[StreamEventType] = {
    StreamEventType.COMPLETE,
    StreamEventType.ERROR,
    StreamEventType.CANCELLED,
}
