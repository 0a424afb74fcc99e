"""RecoveringStreamer -- 按错误分类的恢复建议驱动的流式调用

与 FallbackOrchestrator 的固定三段降级链不同，这里每次失败都交给 ErrorClassifier：
    retry:    同一模型等待后重试（间隔按重试策略的倍率递增），最多 MAX_RETRIES 次
    fallback: 切换到分类表给出的替代模型，已用过的模型（按 canonical id）不再使用
    manual:   无法自动恢复，直接上报错误
调用方未指定模型时由 ModelRecommender 按 prompt 选择。
"""

import asyncio
import contextlib
from collections.abc import AsyncGenerator, Awaitable, Callable

import structlog

from .callbacks import StreamCallbacks, run_with_callbacks
from .cancellation import CancellationToken
from .enums import RecoveryKind, StreamEventType
from .errors import ErrorClassifier
from .fallback import canonical_model_id
from .models import ChatMessage, ErrorInfo, StreamEvent, StreamRequest, StreamResult
from .recommender import ModelRecommender
from .transport import StreamTransport

log = structlog.get_logger()

MAX_RETRIES = 3

Sleep = Callable[[float], Awaitable[None]]


class RecoveringStreamer:
    """带自动恢复的流式调用

    重试与切换模型的决策完全来自 ErrorClassifier；
    失败尝试中已产出的 delta 不会撤回，每次重试前产出 retry 事件，切换前产出 fallback 事件。
    """

    def __init__(
        self,
        transport: StreamTransport,
        recommender: ModelRecommender,
        classifier: type[ErrorClassifier] = ErrorClassifier,
        max_retries: int = MAX_RETRIES,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """初始化

        Args:
            transport: 执行单次流式调用的 StreamTransport
            recommender: 未指定模型时用于选择模型
            classifier: 错误分类器（analyze_error / get_recovery_action / get_retry_strategy）
            max_retries: 同一次调用内重试次数上限（与重试策略的上限取较小值）
            sleep: 等待函数（测试时注入，避免真实等待）
        """
        self._transport = transport
        self._recommender = recommender
        self._classifier = classifier
        self._max_retries = max_retries
        self._sleep = sleep

    def prepare_request(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        **params,
    ) -> StreamRequest:
        """构建 StreamRequest；model 为空时按最后一条消息自动选择"""
        if not model:
            prompt = messages[-1].content if messages else ""
            model = self._recommender.best_model_for_prompt(prompt)
        return StreamRequest(messages=messages, model=model, **params)

    def _retry_delay_ms(self, info: ErrorInfo, delay_ms: int | None, retries: int) -> float:
        """恢复动作给出基础间隔，重试策略给出倍率"""
        strategy = self._classifier.get_retry_strategy(info)
        if delay_ms is not None:
            strategy = strategy.model_copy(update={"base_delay_ms": delay_ms})
        return strategy.delay_for(retries)

    def _retry_limit(self, info: ErrorInfo) -> int:
        return min(self._max_retries, self._classifier.get_retry_strategy(info).max_retries)

    async def _pause(self, delay_ms: float, cancel_token: CancellationToken | None) -> bool:
        """等待重试间隔；期间被取消返回 True"""
        if cancel_token is None:
            await self._sleep(delay_ms / 1000)
            return False
        if cancel_token.cancelled:
            return True

        sleeper = asyncio.create_task(self._sleep(delay_ms / 1000))
        waiter = asyncio.create_task(cancel_token.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                task.cancel()
        return cancel_token.cancelled

    async def iter_events(
        self,
        request: StreamRequest,
        cancel_token: CancellationToken | None = None,
    ) -> AsyncGenerator[StreamEvent, None]:
        """带自动恢复的流式调用

        产出 delta / retry / fallback 事件，随后恰好一个终止事件；
        无法恢复时终止事件为最后一次失败的 error。
        """
        model = request.model
        used = {canonical_model_id(model)}
        retries = 0

        while True:
            failure: StreamEvent | None = None
            attempt_request = request.model_copy(update={"model": model})
            async with contextlib.aclosing(
                self._transport.iter_events(attempt_request, cancel_token)
            ) as events:
                async for event in events:
                    if event.type == StreamEventType.ERROR:
                        failure = event
                        break
                    yield event
                    if event.type == StreamEventType.COMPLETE:
                        log.info(
                            "recovery_stream_completed",
                            model=model,
                            retries=retries,
                            fallback_used=model != request.model,
                        )
                        return
                    if event.type == StreamEventType.CANCELLED:
                        return

            if failure is None:
                failure = StreamEvent(
                    type=StreamEventType.ERROR,
                    model=model,
                    error=f"Stream for {model} ended without a terminal event",
                )

            info = self._classifier.analyze_error(failure.exception or failure.error)
            action = self._classifier.get_recovery_action(info)

            if action.action == RecoveryKind.RETRY and retries < self._retry_limit(info):
                delay_ms = self._retry_delay_ms(info, action.delay_ms, retries)
                retries += 1
                log.warning(
                    "stream_retry_scheduled",
                    model=model,
                    retry=retries,
                    delay_ms=delay_ms,
                    error_code=info.code,
                )
                yield StreamEvent(type=StreamEventType.RETRY, model=model, error=failure.error)
                if await self._pause(delay_ms, cancel_token):
                    yield StreamEvent(type=StreamEventType.CANCELLED, model=model)
                    return
                continue

            fallback_model = action.fallback_model
            if (
                action.action == RecoveryKind.FALLBACK
                and fallback_model
                and canonical_model_id(fallback_model) not in used
            ):
                used.add(canonical_model_id(fallback_model))
                log.warning(
                    "stream_switching_model",
                    failed_model=model,
                    next_model=fallback_model,
                    error_code=info.code,
                )
                yield StreamEvent(
                    type=StreamEventType.FALLBACK, model=fallback_model, error=failure.error
                )
                model = fallback_model
                continue

            log.error(
                "stream_recovery_exhausted",
                model=model,
                action=action.action,
                retries=retries,
                error_code=info.code,
                error=failure.error,
            )
            yield failure
            return

    async def stream_with_recovery(
        self,
        request: StreamRequest,
        callbacks: StreamCallbacks | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> StreamResult:
        """回调形式；on_retry / on_fallback 通知每次恢复动作

        Returns:
            StreamResult（retry_count、is_fallback、duration_ms、chars_per_second）
        """
        return await run_with_callbacks(
            self.iter_events(request, cancel_token),
            callbacks or StreamCallbacks(),
            model=request.model,
        )
