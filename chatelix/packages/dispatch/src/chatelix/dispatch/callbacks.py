"""回调适配 -- 将 StreamEvent 异步迭代器转换为 on_chunk/on_complete/on_error/on_cancel 回调

保证每次调用恰好触发一个终止回调：on_complete、on_error、on_cancel 三者互斥。
on_retry / on_fallback 为过程通知，可触发零或多次。
"""

import asyncio
import time
from collections.abc import AsyncGenerator, Callable
from dataclasses import dataclass, field

import structlog

from .enums import StreamEventType, StreamStatus
from .models import StreamEvent, StreamResult

log = structlog.get_logger()


@dataclass
class StreamCallbacks:
    """调用方提供的回调，均为同步函数，均可为空

    on_retry(retry_count, model)、on_fallback(from_model, to_model)
    """

    on_chunk: Callable[[str], None] | None = None
    on_complete: Callable[[str], None] | None = None
    on_error: Callable[[Exception], None] | None = None
    on_cancel: Callable[[], None] | None = None
    on_retry: Callable[[int, str], None] | None = None
    on_fallback: Callable[[str, str], None] | None = None


@dataclass
class _Progress:
    """消费事件流过程中累积的状态，终止时汇总为 StreamResult"""

    model: str
    attempts: list[str] = field(default_factory=list)
    fallback_reason: str = ""
    retry_count: int = 0
    started_at: float = field(default_factory=time.monotonic)

    def __post_init__(self) -> None:
        self.attempts.append(self.model)

    def result(self, status: StreamStatus, **kwargs) -> StreamResult:
        duration_s = time.monotonic() - self.started_at
        text = kwargs.get("text", "")
        kwargs.setdefault("model", self.model)
        return StreamResult(
            status=status,
            attempts=self.attempts,
            fallback_reason=self.fallback_reason,
            retry_count=self.retry_count,
            duration_ms=int(duration_s * 1000),
            chars_per_second=len(text) / duration_s if text and duration_s > 0 else 0.0,
            **kwargs,
        )


async def run_with_callbacks(
    events: AsyncGenerator[StreamEvent, None],
    callbacks: StreamCallbacks,
    model: str,
) -> StreamResult:
    """消费事件流并分发回调，返回最终 StreamResult

    on_chunk 抛出的异常视为本次调用失败：关闭事件流（释放 reader）后触发 on_error。

    Args:
        events: StreamTransport / FallbackOrchestrator / RecoveringStreamer 产生的事件流
        callbacks: 回调集合
        model: 首次尝试的模型 id

    Returns:
        StreamResult（附带重试次数、总耗时、输出速度）
    """
    progress = _Progress(model=model)

    try:
        async for event in events:
            if event.type == StreamEventType.DELTA:
                if callbacks.on_chunk is not None:
                    try:
                        callbacks.on_chunk(event.delta)
                    except Exception as e:
                        log.warning("on_chunk_callback_failed", model=progress.model, error=str(e))
                        await events.aclose()
                        if callbacks.on_error is not None:
                            callbacks.on_error(e)
                        return progress.result(StreamStatus.FAILED, error=str(e), exception=e)
                continue

            if event.type == StreamEventType.RETRY:
                progress.retry_count += 1
                if callbacks.on_retry is not None:
                    callbacks.on_retry(progress.retry_count, event.model)
                continue

            if event.type == StreamEventType.FALLBACK:
                if not progress.fallback_reason:
                    progress.fallback_reason = f"Primary failed: {event.error}"
                if callbacks.on_fallback is not None:
                    callbacks.on_fallback(progress.model, event.model)
                progress.model = event.model
                progress.attempts.append(event.model)
                continue

            if event.type == StreamEventType.COMPLETE:
                if callbacks.on_complete is not None:
                    callbacks.on_complete(event.text)
                return progress.result(
                    StreamStatus.COMPLETED,
                    text=event.text,
                    model=event.model or progress.model,
                    is_fallback=len(progress.attempts) > 1,
                )

            if event.type == StreamEventType.ERROR:
                error = event.exception or RuntimeError(event.error)
                if callbacks.on_error is not None:
                    callbacks.on_error(error)
                return progress.result(
                    StreamStatus.FAILED,
                    model=event.model or progress.model,
                    error=event.error,
                    exception=error,
                )

            if event.type == StreamEventType.CANCELLED:
                if callbacks.on_cancel is not None:
                    callbacks.on_cancel()
                return progress.result(
                    StreamStatus.CANCELLED, model=event.model or progress.model
                )
    except asyncio.CancelledError:
        if callbacks.on_cancel is not None:
            callbacks.on_cancel()
        raise
    finally:
        await events.aclose()

    # 事件流在终止事件之前结束，属于内部错误
    error = RuntimeError(f"Stream for {progress.model} ended without a terminal event")
    if callbacks.on_error is not None:
        callbacks.on_error(error)
    return progress.result(StreamStatus.FAILED, error=str(error), exception=error)
