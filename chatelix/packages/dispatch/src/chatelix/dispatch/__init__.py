"""Chatelix Dispatch -- 模型调度与流式管线

packages/dispatch 的公开接口导出。
"""

# 数据模型
from .callbacks import StreamCallbacks
from .cancellation import CancellationToken
from .catalog import ModelCatalog, default_catalog

# 配置
from .config import DispatchConfig, load_dispatch_config
from .enums import (
    ErrorCode,
    ProviderTag,
    RecoveryKind,
    Severity,
    StreamEventType,
    StreamStatus,
    TaskType,
)

# 核心组件
from .errors import ErrorClassifier

# 异常
from .exceptions import (
    AllModelsFailedError,
    DispatchError,
    StreamCancelledError,
    StreamHTTPError,
    StreamTransportError,
)
from .fallback import FallbackOrchestrator, canonical_model_id
from .models import (
    ChatMessage,
    ErrorInfo,
    ModelDescriptor,
    ModelPricing,
    ModelRecommendation,
    RecoveryAction,
    RetryStrategy,
    StreamEvent,
    StreamRequest,
    StreamResult,
    TaskAnalysis,
)
from .recommender import ModelRecommender, analyze_prompt, suggest_parameters
from .recovery import RecoveringStreamer
from .resolver import endpoint_for, resolve_provider
from .transport import StreamTransport

__all__ = [
    "ChatMessage",
    "ErrorInfo",
    "ModelDescriptor",
    "ModelPricing",
    "ModelRecommendation",
    "RecoveryAction",
    "RetryStrategy",
    "StreamEvent",
    "StreamRequest",
    "StreamResult",
    "TaskAnalysis",
    "ErrorCode",
    "ProviderTag",
    "RecoveryKind",
    "Severity",
    "StreamEventType",
    "StreamStatus",
    "TaskType",
    "CancellationToken",
    "ModelCatalog",
    "default_catalog",
    "StreamCallbacks",
    "ErrorClassifier",
    "FallbackOrchestrator",
    "RecoveringStreamer",
    "canonical_model_id",
    "ModelRecommender",
    "StreamTransport",
    "analyze_prompt",
    "suggest_parameters",
    "endpoint_for",
    "resolve_provider",
    "DispatchConfig",
    "load_dispatch_config",
    "DispatchError",
    "StreamHTTPError",
    "StreamTransportError",
    "StreamCancelledError",
    "AllModelsFailedError",
]
