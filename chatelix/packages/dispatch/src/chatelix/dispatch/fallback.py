"""FallbackOrchestrator -- 流式调用的降级链

线性状态机，最多 3 次尝试，不循环、不重复同一个模型：
    A: primary（请求中的模型）
    B: 替代模型（GPT-5 / o3 / o4 家族 -> 固定的 GPT-4.1；否则由 ErrorClassifier
       给出默认替代，prompt 足够长时优先采用 ModelRecommender 的推荐）
    C: 固定的通用模型
全部失败时上报的错误保留 A 的失败原因。
"""

import contextlib
from collections.abc import AsyncGenerator, Callable, Sequence

import structlog

from .callbacks import StreamCallbacks, run_with_callbacks
from .cancellation import CancellationToken
from .enums import StreamEventType
from .errors import DEFAULT_FALLBACK_MODEL, ErrorClassifier
from .exceptions import AllModelsFailedError
from .models import StreamEvent, StreamRequest, StreamResult
from .recommender import ModelRecommender, analyze_prompt
from .transport import StreamTransport

log = structlog.get_logger()

MAX_ATTEMPTS = 3

# GPT-5 / o3 / o4 失败时使用的稳定 GPT-4 代模型
STABLE_GPT4_MODEL = "gpt-4.1-2025-04-14"

# 最终兜底模型
TERMINAL_FALLBACK_MODEL = "gpt-4o-mini"

# 候选模型已尝试过时依次顺延的备用列表，canonical id 两两不同
RESERVE_MODELS: tuple[str, ...] = (
    "openai/gpt-4o-mini",
    "google/gemini-flash-1.5",
    "anthropic/claude-3-5-haiku-20241022",
)

# 最后一条消息去除首尾空白后超过该长度才调用推荐器
MIN_PROMPT_LENGTH_FOR_RECOMMENDATION = 10


def canonical_model_id(model: str) -> str:
    """去掉 provider 前缀："openai/gpt-4o-mini" 与 "gpt-4o-mini" 是同一个模型"""
    return model.split("/", 1)[-1]


def _first_unattempted(candidates: Sequence[str], attempted: Sequence[str]) -> str:
    seen = {canonical_model_id(m) for m in attempted}
    return next((m for m in candidates if canonical_model_id(m) not in seen), candidates[-1])


class FallbackOrchestrator:
    """降级编排器

    降级链: primary -> 替代模型 -> 兜底模型
    每次尝试都是一次独立的 StreamTransport 调用；失败尝试中已产出的 delta 不会撤回。
    """

    def __init__(
        self,
        transport: StreamTransport,
        recommender: ModelRecommender,
        classifier: type[ErrorClassifier] = ErrorClassifier,
    ) -> None:
        """初始化降级编排器

        Args:
            transport: 执行单次流式调用的 StreamTransport
            recommender: 选择替代模型用的 ModelRecommender
            classifier: 错误分类器（提供 analyze_error）
        """
        self._transport = transport
        self._recommender = recommender
        self._classifier = classifier

    def choose_fallback_model(self, request: StreamRequest, error: object) -> str:
        """B 阶段替代模型选择（未去重）"""
        failed_model = request.model
        if "gpt-5" in failed_model or failed_model.startswith("openai/gpt-5"):
            return STABLE_GPT4_MODEL
        if "o3-" in failed_model or "o4-" in failed_model:
            return STABLE_GPT4_MODEL

        info = self._classifier.analyze_error(error)
        fallback_model = info.fallback_model or DEFAULT_FALLBACK_MODEL

        prompt = request.last_message_content()
        if len(prompt.strip()) > MIN_PROMPT_LENGTH_FOR_RECOMMENDATION:
            analysis = analyze_prompt(prompt)
            recommended = self._recommender.get_best_model_for_task(analysis)
            # 避免再次选中同样失败的 GPT-5 家族
            if recommended and "gpt-5" not in recommended:
                fallback_model = recommended

        log.debug(
            "fallback_model_chosen",
            failed_model=failed_model,
            error_code=info.code,
            fallback_model=fallback_model,
        )
        return fallback_model

    def _next_model(
        self, request: StreamRequest, failure: StreamEvent, attempted: list[str]
    ) -> str:
        if len(attempted) == 1:
            choice = self.choose_fallback_model(request, failure.exception or failure.error)
            return _first_unattempted((choice, *RESERVE_MODELS), attempted)
        return _first_unattempted((TERMINAL_FALLBACK_MODEL, *RESERVE_MODELS), attempted)

    async def iter_events(
        self,
        request: StreamRequest,
        cancel_token: CancellationToken | None = None,
    ) -> AsyncGenerator[StreamEvent, None]:
        """带降级的流式调用

        产出 delta / fallback 事件，随后恰好一个终止事件；
        全部失败时终止事件为携带 AllModelsFailedError 的 error。
        取消立即结束，不触发降级。
        """
        attempted: list[str] = []
        primary_failure: StreamEvent | None = None
        model = request.model

        for _ in range(MAX_ATTEMPTS):
            attempted.append(model)
            attempt_request = request.model_copy(update={"model": model})
            failure: StreamEvent | None = None

            async with contextlib.aclosing(
                self._transport.iter_events(attempt_request, cancel_token)
            ) as events:
                async for event in events:
                    if event.type == StreamEventType.ERROR:
                        failure = event
                        break
                    yield event
                    if event.type in (StreamEventType.COMPLETE, StreamEventType.CANCELLED):
                        if len(attempted) > 1 and event.type == StreamEventType.COMPLETE:
                            log.info(
                                "fallback_activated",
                                model=model,
                                attempts=attempted,
                                fallback_reason=primary_failure.error if primary_failure else "",
                            )
                        return

            if failure is None:
                # 事件流异常结束，按失败处理
                failure = StreamEvent(
                    type=StreamEventType.ERROR,
                    model=model,
                    error=f"Stream for {model} ended without a terminal event",
                )
            if primary_failure is None:
                primary_failure = failure

            if len(attempted) >= MAX_ATTEMPTS:
                break

            next_model = self._next_model(request, failure, attempted)
            log.warning(
                "attempt_failed_trying_fallback",
                failed_model=model,
                next_model=next_model,
                attempt=len(attempted),
                error=failure.error,
            )
            yield StreamEvent(
                type=StreamEventType.FALLBACK,
                model=next_model,
                error=failure.error,
            )
            model = next_model

        original_error = primary_failure.error if primary_failure else "unknown"
        error = AllModelsFailedError(original_error, attempted)
        log.error(
            "all_fallbacks_failed",
            attempts=attempted,
            primary_error=original_error,
            last_error=failure.error if failure else "",
        )
        yield StreamEvent(
            type=StreamEventType.ERROR,
            model=model,
            error=str(error),
            exception=error,
        )

    async def stream_with_fallback(
        self,
        request: StreamRequest,
        on_chunk: Callable[[str], None] | None = None,
        on_complete: Callable[[str], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
        on_cancel: Callable[[], None] | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> StreamResult:
        """回调形式的带降级流式调用，回调语义与 StreamTransport.stream_generation 相同

        Returns:
            StreamResult
            - primary 成功: is_fallback=False
            - 替代模型成功: is_fallback=True, fallback_reason=<primary 错误描述>
            - 全部失败: status=failed, exception 为 AllModelsFailedError
        """
        return await run_with_callbacks(
            self.iter_events(request, cancel_token),
            StreamCallbacks(
                on_chunk=on_chunk,
                on_complete=on_complete,
                on_error=on_error,
                on_cancel=on_cancel,
            ),
            model=request.model,
        )
