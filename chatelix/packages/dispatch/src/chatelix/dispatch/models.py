"""数据模型 -- 模型目录、任务分析、错误信息、流请求与流事件

值类型统一使用 pydantic BaseModel；目录和错误表中的条目为 frozen，进程内不可变。
"""

from pydantic import BaseModel, ConfigDict, Field

from .enums import (
    Budget,
    Complexity,
    ErrorCode,
    ExpectedSpeed,
    RecoveryKind,
    ResponseLength,
    Severity,
    SpeedPreference,
    StreamEventType,
    StreamStatus,
    TaskType,
)

# ============================================================
# 模型目录
# ============================================================


class ModelPricing(BaseModel):
    """每 token 价格（USD），仅用于成本估算"""

    model_config = ConfigDict(frozen=True)

    prompt: float = Field(default=0.0, ge=0.0, description="输入 token 单价")
    completion: float = Field(default=0.0, ge=0.0, description="输出 token 单价")


class ModelDescriptor(BaseModel):
    """一个可调用的 AI 模型

    id 形如 "<provider-prefix>/<model-name>"，在目录中唯一。
    name / provider / category 为展示信息，不影响路由。
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, description="模型 id，如 openai/gpt-4o-mini")
    name: str = Field(description="展示名称")
    provider: str = Field(description="厂商展示名（如 OpenAI）")
    category: str = Field(default="", description="展示分类")
    pricing: ModelPricing = Field(default_factory=ModelPricing)
    context_length: int = Field(gt=0, description="上下文长度（仅展示，不做校验）")
    description: str = Field(default="")


# ============================================================
# 任务分析与推荐
# ============================================================


class TaskAnalysis(BaseModel):
    """Prompt 的任务分类结果 -- 纯函数产物，相同输入得到相同输出"""

    model_config = ConfigDict(frozen=True)

    type: TaskType = TaskType.GENERAL
    complexity: Complexity = Complexity.LOW
    length: ResponseLength = ResponseLength.MEDIUM
    budget: Budget = Budget.BALANCED
    speed: SpeedPreference = SpeedPreference.BALANCED


class ModelRecommendation(BaseModel):
    """单个模型的推荐结果"""

    model: ModelDescriptor
    score: int = Field(ge=0, le=100)
    reason: str = ""
    tags: list[str] = Field(default_factory=list)
    estimated_cost: float = Field(default=0.0, ge=0.0, description="估算 USD 成本")
    expected_speed: ExpectedSpeed = ExpectedSpeed.SLOW
    match_explanation: str = ""


# ============================================================
# 错误分类
# ============================================================


class ErrorInfo(BaseModel):
    """错误分类结果"""

    model_config = ConfigDict(frozen=True)

    code: ErrorCode
    message: str = Field(description="面向用户的标题")
    original_error: str = Field(default="", description="原始错误文本")
    suggestions: tuple[str, ...] = Field(default=(), description="按优先级排列的建议")
    fallback_model: str | None = Field(default=None, description="建议的替代模型 id")
    documentation: str | None = Field(default=None, description="文档链接")
    severity: Severity = Severity.MEDIUM
    can_retry: bool = True


class RecoveryAction(BaseModel):
    """恢复动作"""

    action: RecoveryKind
    delay_ms: int | None = Field(default=None, ge=0)
    fallback_model: str | None = None
    message: str = ""


class RetryStrategy(BaseModel):
    """重试策略：重试次数上限与指数退避间隔"""

    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(ge=0)
    base_delay_ms: int = Field(ge=0)
    backoff_multiplier: float = Field(ge=1.0)

    def delay_for(self, attempt: int) -> float:
        """第 attempt 次重试（从 0 开始）前的等待毫秒数"""
        return self.base_delay_ms * self.backoff_multiplier**attempt


# ============================================================
# 流请求与流事件
# ============================================================


class ChatMessage(BaseModel):
    """对话消息"""

    role: str = Field(description="system / user / assistant")
    content: str = Field(default="")


class StreamRequest(BaseModel):
    """一次流式生成请求"""

    messages: list[ChatMessage] = Field(min_length=1, description="有序消息列表，非空")
    model: str = Field(min_length=1, description="模型 id")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=2000, gt=0)
    access_token: str | None = Field(
        default=None,
        description="调用方会话 token，为空时使用配置的默认 token 或 anonymous",
    )

    def payload(self) -> dict:
        """构建发往后端 endpoint 的 JSON body

        max_tokens 与 max_completion_tokens 同时携带，兼容参数命名不一致的 provider。
        """
        return {
            "messages": [m.model_dump() for m in self.messages],
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "max_completion_tokens": self.max_tokens,
            "stream": True,
        }

    def last_message_content(self) -> str:
        """最后一条消息的内容（无论角色）"""
        return self.messages[-1].content if self.messages else ""


class StreamEvent(BaseModel):
    """流事件

    error 事件同时携带原始异常（exception 字段，不参与序列化）。
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    type: StreamEventType
    delta: str = ""
    text: str = ""
    model: str = ""
    error: str = ""
    exception: Exception | None = Field(default=None, exclude=True)


class StreamResult(BaseModel):
    """一次流式调用（含降级链）的最终结果"""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    status: StreamStatus
    text: str = ""
    model: str = Field(default="", description="最终产生结果（或最后尝试）的模型")
    error: str = ""
    attempts: list[str] = Field(default_factory=list, description="按顺序尝试过的模型 id")
    is_fallback: bool = Field(default=False, description="是否由替代模型完成")
    fallback_reason: str = Field(default="", description="降级原因说明")
    retry_count: int = Field(default=0, description="同一模型的重试次数")
    duration_ms: int = Field(default=0, description="从发起到终止事件的总耗时")
    chars_per_second: float = Field(default=0.0, description="完成文本的平均输出速度")
    exception: Exception | None = Field(default=None, exclude=True)
