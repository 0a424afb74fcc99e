"""ErrorClassifier -- 错误分类与恢复建议

按固定顺序的关键字规则表将任意错误映射到封闭的错误分类；
所有方法均为纯函数，不抛异常。
"""

from collections.abc import Mapping
from typing import Any

from .enums import ErrorCode, RecoveryKind, Severity
from .models import ErrorInfo, RecoveryAction, RetryStrategy

UNKNOWN_ERROR_TEXT = "Unknown error"
DEFAULT_FALLBACK_MODEL = "openai/gpt-4o-mini"

# 错误分类表 -- 每个条目都满足 severity=high => can_retry=False
ERROR_CATALOG: dict[ErrorCode, ErrorInfo] = {
    ErrorCode.RATE_LIMIT: ErrorInfo(
        code=ErrorCode.RATE_LIMIT,
        message="Rate limit reached",
        original_error="Rate limit exceeded",
        suggestions=(
            "Wait a few seconds before trying again",
            "Use a less busy model",
            "Reduce the size of your request",
        ),
        fallback_model="openai/gpt-4o-mini",
        severity=Severity.MEDIUM,
        can_retry=True,
    ),
    ErrorCode.MODEL_OFFLINE: ErrorInfo(
        code=ErrorCode.MODEL_OFFLINE,
        message="Model temporarily unavailable",
        original_error="Model is currently offline",
        suggestions=(
            "The model should be available again shortly",
            "Try an alternative model with similar performance",
            "Enable automatic fallback",
        ),
        fallback_model="anthropic/claude-3-sonnet",
        severity=Severity.MEDIUM,
        can_retry=True,
    ),
    ErrorCode.CONTEXT_LENGTH: ErrorInfo(
        code=ErrorCode.CONTEXT_LENGTH,
        message="Message too long for this model",
        original_error="Context length exceeded",
        suggestions=(
            "Shorten your message",
            "Use a model with a larger context window",
            "Split your request into several parts",
        ),
        fallback_model="anthropic/claude-3-sonnet",
        severity=Severity.HIGH,
        can_retry=False,
    ),
    ErrorCode.API_KEY: ErrorInfo(
        code=ErrorCode.API_KEY,
        message="Authentication problem",
        original_error="Invalid API key",
        suggestions=(
            "Check your API key",
            "Contact support if the problem persists",
            "Try another provider",
        ),
        severity=Severity.HIGH,
        can_retry=False,
    ),
    ErrorCode.QUOTA_EXCEEDED: ErrorInfo(
        code=ErrorCode.QUOTA_EXCEEDED,
        message="Quota exceeded for this model",
        original_error="Quota exceeded",
        suggestions=(
            "Wait for your quota to renew",
            "Use a model with remaining quota",
            "Contact support to raise your limits",
        ),
        fallback_model="openai/gpt-4o-mini",
        severity=Severity.MEDIUM,
        can_retry=True,
    ),
    ErrorCode.NETWORK_ERROR: ErrorInfo(
        code=ErrorCode.NETWORK_ERROR,
        message="Network connection problem",
        original_error="Network error",
        suggestions=(
            "Check your internet connection",
            "Try again in a moment",
            "The problem may be on the server side",
        ),
        severity=Severity.MEDIUM,
        can_retry=True,
    ),
    ErrorCode.TIMEOUT: ErrorInfo(
        code=ErrorCode.TIMEOUT,
        message="Request timed out",
        original_error="Request timeout",
        suggestions=(
            "Simplify your request",
            "Try a faster model",
            "Retry with a longer timeout",
        ),
        fallback_model="openai/gpt-4o-mini",
        severity=Severity.MEDIUM,
        can_retry=True,
    ),
    ErrorCode.CONTENT_FILTER: ErrorInfo(
        code=ErrorCode.CONTENT_FILTER,
        message="Content blocked by filters",
        original_error="Content filtered",
        suggestions=(
            "Rephrase your request",
            "Avoid sensitive content",
            "Use a model with fewer restrictions",
        ),
        severity=Severity.LOW,
        can_retry=False,
    ),
    ErrorCode.UNKNOWN: ErrorInfo(
        code=ErrorCode.UNKNOWN,
        message="Unexpected error",
        original_error=UNKNOWN_ERROR_TEXT,
        suggestions=(
            "Try your request again",
            "Check your connection",
            "Contact support if the problem persists",
        ),
        fallback_model=DEFAULT_FALLBACK_MODEL,
        severity=Severity.MEDIUM,
        can_retry=True,
    ),
}

# (关键字, 分类) -- 顺序即优先级，首个命中生效
ERROR_RULES: tuple[tuple[tuple[str, ...], ErrorCode], ...] = (
    (("rate limit", "429"), ErrorCode.RATE_LIMIT),
    (("offline", "unavailable", "503"), ErrorCode.MODEL_OFFLINE),
    (("context", "token limit", "413"), ErrorCode.CONTEXT_LENGTH),
    (("api key", "unauthorized", "401"), ErrorCode.API_KEY),
    (("quota", "billing", "402"), ErrorCode.QUOTA_EXCEEDED),
    (("network", "connection", "fetch"), ErrorCode.NETWORK_ERROR),
    (("timeout", "408"), ErrorCode.TIMEOUT),
    (("content", "filter", "policy"), ErrorCode.CONTENT_FILTER),
)

# 按错误分类的恢复动作（未列出的分类走默认重试）
_RECOVERY: dict[ErrorCode, tuple[RecoveryKind, int | None, str]] = {
    ErrorCode.RATE_LIMIT: (RecoveryKind.RETRY, 5000, "Retrying in 5 seconds..."),
    ErrorCode.NETWORK_ERROR: (RecoveryKind.RETRY, 3000, "Reconnecting..."),
    ErrorCode.TIMEOUT: (RecoveryKind.RETRY, 3000, "Reconnecting..."),
    ErrorCode.CONTEXT_LENGTH: (RecoveryKind.MANUAL, None, "Manual intervention required"),
    ErrorCode.API_KEY: (RecoveryKind.MANUAL, None, "Manual intervention required"),
    ErrorCode.CONTENT_FILTER: (RecoveryKind.MANUAL, None, "Manual intervention required"),
}
_FALLBACK_CODES = {ErrorCode.MODEL_OFFLINE, ErrorCode.QUOTA_EXCEEDED}

# 按严重程度的重试策略
RETRY_STRATEGIES: dict[Severity, RetryStrategy] = {
    Severity.LOW: RetryStrategy(max_retries=1, base_delay_ms=1000, backoff_multiplier=1.0),
    Severity.MEDIUM: RetryStrategy(max_retries=3, base_delay_ms=2000, backoff_multiplier=1.5),
    Severity.HIGH: RetryStrategy(max_retries=0, base_delay_ms=0, backoff_multiplier=1.0),
}


def extract_error_message(error: Any) -> str:
    """从任意错误对象提取消息文本

    异常 -> str(exc)；含 message 键的映射 -> 该值；字符串 -> 自身；其他 -> str(obj)。
    结果为空时返回 "Unknown error"。
    """
    if error is None:
        return UNKNOWN_ERROR_TEXT
    if isinstance(error, BaseException | str):
        text = str(error)
    elif isinstance(error, Mapping) and error.get("message"):
        text = str(error["message"])
    else:
        message = getattr(error, "message", None)
        text = str(message) if message else str(error)
    return text or UNKNOWN_ERROR_TEXT


class ErrorClassifier:
    """错误分类器

    提供错误分类、恢复动作、重试策略、用户提示等静态方法。
    所有方法均不抛出异常。
    """

    @staticmethod
    def analyze_error(error: Any) -> ErrorInfo:
        """将错误映射为 ErrorInfo

        返回分类表条目的副本，original_error 替换为实际错误文本。
        无规则命中时返回 unknown（medium，可重试）。
        """
        message = extract_error_message(error)
        lowered = message.lower()
        for keywords, code in ERROR_RULES:
            if any(keyword in lowered for keyword in keywords):
                return ERROR_CATALOG[code].model_copy(update={"original_error": message})
        return ERROR_CATALOG[ErrorCode.UNKNOWN].model_copy(update={"original_error": message})

    @staticmethod
    def get_recovery_action(info: ErrorInfo) -> RecoveryAction:
        """按错误分类给出恢复动作：retry / fallback / manual"""
        if info.code in _FALLBACK_CODES:
            return RecoveryAction(
                action=RecoveryKind.FALLBACK,
                fallback_model=info.fallback_model,
                message=f"Switching to {info.fallback_model}",
            )
        action, delay_ms, message = _RECOVERY.get(
            info.code, (RecoveryKind.RETRY, 2000, "Retrying...")
        )
        return RecoveryAction(action=action, delay_ms=delay_ms, message=message)

    @staticmethod
    def get_retry_strategy(info: ErrorInfo) -> RetryStrategy:
        """按严重程度返回重试策略（RecoveringStreamer 使用；FallbackOrchestrator 的固定降级链不使用）"""
        return RETRY_STRATEGIES[info.severity]

    @staticmethod
    def format_user_message(info: ErrorInfo) -> str:
        """渲染面向用户的 markdown 提示"""
        parts = [
            f"**{info.message}**",
            "**Suggestions:**\n" + "\n".join(f"• {s}" for s in info.suggestions),
        ]
        if info.fallback_model:
            parts.append(f"**Alternative:** {info.fallback_model}")
        if info.documentation:
            parts.append(f"[Learn more]({info.documentation})")
        return "\n\n".join(parts)

    @staticmethod
    def should_show_to_user(info: ErrorInfo) -> bool:
        """低严重度且可自动恢复的错误不打扰用户"""
        return info.severity != Severity.LOW or not info.can_retry
