"""流式对话路由

POST /api/chat/stream: 以 SSE 转发一次流式生成。
recovery=true 时经 RecoveringStreamer 按错误分类重试或切换模型；
fallback=true（默认）时经 FallbackOrchestrator 走降级链；两者都关闭时直接调用 StreamTransport。
未指定模型时由 ModelRecommender 按最后一条消息选择。
调用方的 Authorization: Bearer token 原样转发给后端。
客户端断开时设置 CancellationToken，上游流随之结束。
"""

import json

import structlog
from chatelix.dispatch import (
    CancellationToken,
    ChatMessage,
    DispatchConfig,
    ErrorClassifier,
    FallbackOrchestrator,
    RecoveringStreamer,
    StreamEvent,
    StreamTransport,
)
from chatelix.dispatch.enums import StreamEventType
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sse_starlette.sse import EventSourceResponse

from ..deps import (
    get_config,
    get_orchestrator,
    get_recovery,
    get_transport,
)

log = structlog.get_logger()

router = APIRouter()


class ChatStreamRequest(BaseModel):
    """流式对话请求体"""

    messages: list[ChatMessage] = Field(min_length=1, description="对话消息")
    model: str | None = Field(default=None, description="模型 id，为空时按 prompt 自动选择")
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, gt=0)
    fallback: bool = Field(default=True, description="失败时是否走降级链")
    recovery: bool = Field(default=False, description="按错误分类重试或切换模型，优先于 fallback")


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    return None


def _event_to_sse_data(event: StreamEvent) -> dict:
    """将 StreamEvent 转换为 SSE data JSON；error 事件附带分类结果"""
    data = event.model_dump(mode="json")
    if event.type == StreamEventType.ERROR:
        info = ErrorClassifier.analyze_error(event.exception or event.error)
        data["error_code"] = info.code
        data["user_message"] = ErrorClassifier.format_user_message(info)
        data["show_to_user"] = ErrorClassifier.should_show_to_user(info)
    return data


@router.post("/api/chat/stream")
async def chat_stream(
    body: ChatStreamRequest,
    request: Request,
    config: DispatchConfig = Depends(get_config),
    transport: StreamTransport = Depends(get_transport),
    orchestrator: FallbackOrchestrator = Depends(get_orchestrator),
    recovery: RecoveringStreamer = Depends(get_recovery),
):
    """SSE 流式对话端点

    事件类型: delta / retry / fallback，随后恰好一个 complete / error / cancelled。
    """
    stream_request = recovery.prepare_request(
        body.messages,
        model=body.model,
        temperature=(
            body.temperature if body.temperature is not None else config.default_temperature
        ),
        max_tokens=body.max_tokens or config.default_max_tokens,
        access_token=_bearer_token(request),
    )
    if body.recovery:
        source = recovery
    elif body.fallback:
        source = orchestrator
    else:
        source = transport
    log.info(
        "chat_stream_requested",
        model=stream_request.model,
        fallback=body.fallback,
        recovery=body.recovery,
        message_count=len(stream_request.messages),
    )

    async def event_generator():
        cancel_token = CancellationToken()
        events = source.iter_events(stream_request, cancel_token)
        try:
            async for event in events:
                yield {
                    "event": event.type,
                    "data": json.dumps(_event_to_sse_data(event), ensure_ascii=False),
                }
        finally:
            # 客户端断开时生成器在 yield 处被取消，这里通知上游停止读取
            cancel_token.cancel()
            await events.aclose()

    return EventSourceResponse(event_generator())
