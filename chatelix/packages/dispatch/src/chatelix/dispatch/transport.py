"""StreamTransport -- 单次流式调用

解析 provider -> 向对应后端 endpoint 发起一次 POST(stream=true) -> 增量解码 SSE ->
逐个产出文本增量。本组件从不重试，任何失败都作为该次尝试的终止错误上报，
重试与降级由 FallbackOrchestrator 负责。
"""

import asyncio
import contextlib
import time
from collections.abc import AsyncGenerator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

import httpx
import structlog
from ulid import ULID

from .callbacks import StreamCallbacks, run_with_callbacks
from .cancellation import CancellationToken
from .config import DEFAULT_FUNCTIONS_URL, DispatchConfig
from .enums import ProviderTag, StreamEventType
from .exceptions import (
    DispatchError,
    StreamCancelledError,
    StreamHTTPError,
    StreamTransportError,
)
from .models import StreamEvent, StreamRequest, StreamResult
from .resolver import endpoint_for, resolve_provider
from .sse import SSEDecoder

log = structlog.get_logger()

ANONYMOUS_TOKEN = "anonymous"

# 探测请求超时（硬编码，应快速响应）
PROBE_TIMEOUT_S = 10

T = TypeVar("T")


@dataclass
class StreamSession:
    """一次进行中的流式调用，由创建它的生成器独占"""

    model: str
    provider: ProviderTag
    endpoint: str
    session_id: str = field(default_factory=lambda: str(ULID()))
    decoder: SSEDecoder = field(default_factory=SSEDecoder)
    chunks: list[str] = field(default_factory=list)
    started_at: float = field(default_factory=time.monotonic)

    def append(self, delta: str) -> None:
        self.chunks.append(delta)

    @property
    def text(self) -> str:
        return "".join(self.chunks)

    @property
    def duration_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)


class StreamTransport:
    """后端流式 endpoint 客户端

    client 由外部注入时不负责关闭；未注入时自建 httpx.AsyncClient 并在 aclose() 中关闭。
    超时完全交给 httpx 客户端。
    """

    def __init__(
        self,
        functions_base_url: str = DEFAULT_FUNCTIONS_URL,
        access_token: str = "",
        timeout_s: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """初始化流式客户端

        Args:
            functions_base_url: 后端 endpoint 基础 URL
            access_token: 默认 Bearer token，请求未携带会话 token 时使用
            timeout_s: HTTP 超时（秒）
            client: 可选的外部 httpx.AsyncClient（测试时注入 MockTransport）
        """
        self._base_url = functions_base_url.rstrip("/")
        self._access_token = access_token
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_s)

    @classmethod
    def from_config(
        cls, config: DispatchConfig, client: httpx.AsyncClient | None = None
    ) -> "StreamTransport":
        return cls(
            functions_base_url=config.functions_base_url,
            access_token=config.access_token.get_secret_value(),
            timeout_s=config.timeout_s,
            client=client,
        )

    def url_for(self, endpoint: str) -> str:
        return f"{self._base_url}/{endpoint}"

    def _headers(self, access_token: str | None) -> dict[str, str]:
        token = access_token or self._access_token or ANONYMOUS_TOKEN
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
        }

    async def iter_events(
        self,
        request: StreamRequest,
        cancel_token: CancellationToken | None = None,
    ) -> AsyncGenerator[StreamEvent, None]:
        """发起流式调用并产出事件

        产出零或多个 delta 事件，随后恰好一个终止事件：
        complete（携带完整文本）、error（携带异常）或 cancelled。
        error 之后累计文本被丢弃，不会再产出 complete。
        """
        provider = resolve_provider(request.model)
        session = StreamSession(
            model=request.model,
            provider=provider,
            endpoint=endpoint_for(provider),
        )
        bound_log = log.bind(
            session_id=session.session_id,
            model=session.model,
            provider=session.provider,
            endpoint=session.endpoint,
        )
        bound_log.info("stream_started", message_count=len(request.messages))

        try:
            if cancel_token is not None and cancel_token.cancelled:
                raise StreamCancelledError(session.model)

            async with contextlib.AsyncExitStack() as stack:
                stream_ctx = self._client.stream(
                    "POST",
                    self.url_for(session.endpoint),
                    headers=self._headers(request.access_token),
                    json=request.payload(),
                )
                # 等待响应头同样可被取消
                response = await self._until_cancelled(
                    lambda: stack.enter_async_context(stream_ctx), cancel_token, session.model
                )
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise StreamHTTPError(response.status_code, response.reason_phrase, body)

                byte_iter = response.aiter_bytes()
                while True:
                    chunk = await self._until_cancelled(
                        lambda: anext(byte_iter, None), cancel_token, session.model
                    )
                    if chunk is None:
                        break
                    for delta in session.decoder.feed(chunk):
                        session.append(delta)
                        yield StreamEvent(
                            type=StreamEventType.DELTA,
                            delta=delta,
                            model=session.model,
                        )
        except StreamCancelledError:
            bound_log.info(
                "stream_cancelled",
                chunk_count=len(session.chunks),
                duration_ms=session.duration_ms,
            )
            yield StreamEvent(type=StreamEventType.CANCELLED, model=session.model)
            return
        except Exception as e:
            error = self._wrap_error(e, session.endpoint)
            bound_log.error(
                "stream_failed",
                error=str(error),
                error_type=type(e).__name__,
                chunk_count=len(session.chunks),
                duration_ms=session.duration_ms,
            )
            yield StreamEvent(
                type=StreamEventType.ERROR,
                model=session.model,
                error=str(error),
                exception=error,
            )
            return

        leftover = session.decoder.finish()
        if leftover.strip():
            bound_log.debug("stream_trailing_partial_line_dropped", size=len(leftover))

        text = session.text
        bound_log.info(
            "stream_completed",
            chunk_count=len(session.chunks),
            text_length=len(text),
            duration_ms=session.duration_ms,
        )
        yield StreamEvent(type=StreamEventType.COMPLETE, text=text, model=session.model)

    @staticmethod
    async def _until_cancelled(
        step: Callable[[], Awaitable[T]],
        cancel_token: CancellationToken | None,
        model: str,
    ) -> T:
        """执行一个挂起点（等待响应头或读取下一块字节），与取消信号竞争

        取消先到达时中止挂起的操作并抛出 StreamCancelledError。
        """
        if cancel_token is None:
            return await step()
        if cancel_token.cancelled:
            raise StreamCancelledError(model)

        async def _run() -> T:
            return await step()

        pending = asyncio.create_task(_run())
        waiter = asyncio.create_task(cancel_token.wait())
        try:
            done, _ = await asyncio.wait({pending, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not pending.done():
                pending.cancel()

        if pending in done:
            return pending.result()

        with contextlib.suppress(asyncio.CancelledError):
            await pending
        raise StreamCancelledError(model)

    @staticmethod
    def _wrap_error(e: Exception, endpoint: str) -> DispatchError:
        """将底层异常包装为 DispatchError

        消息措辞需能被 ErrorClassifier 识别：超时含 "timeout"，连接失败含 "network"。
        """
        if isinstance(e, DispatchError):
            return e
        if isinstance(e, httpx.TimeoutException | TimeoutError):
            return StreamTransportError(
                f"Request timeout while streaming from {endpoint}: {e}", original_error=e
            )
        if isinstance(e, httpx.TransportError | ConnectionError | OSError):
            return StreamTransportError(
                f"Network connection error while streaming from {endpoint}: {e}",
                original_error=e,
            )
        return StreamTransportError(f"Stream read error from {endpoint}: {e}", original_error=e)

    async def stream_generation(
        self,
        request: StreamRequest,
        on_chunk: Callable[[str], None] | None = None,
        on_complete: Callable[[str], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
        on_cancel: Callable[[], None] | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> StreamResult:
        """回调形式的流式调用

        on_chunk 按到达顺序同步调用；on_complete / on_error / on_cancel 恰好触发一个。

        Returns:
            StreamResult（status 与触发的终止回调一致）
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

    async def probe(self, model: str) -> bool:
        """检查模型对应 endpoint 是否可用

        发送非流式的最小请求（max_tokens=1）。

        Returns:
            True 如果 endpoint 返回 2xx，False 如果不可达或异常

        注意: 此方法不抛出异常，所有异常内部捕获并返回 False。
        """
        provider = resolve_provider(model)
        url = self.url_for(endpoint_for(provider))
        payload = {
            "messages": [{"role": "user", "content": "test"}],
            "model": model,
            "stream": False,
            "max_tokens": 1,
        }
        try:
            resp = await self._client.post(
                url, headers=self._headers(None), json=payload, timeout=PROBE_TIMEOUT_S
            )
            return resp.is_success
        except Exception as e:
            log.debug("stream_probe_failed", model=model, url=url, error=str(e))
            return False

    async def aclose(self) -> None:
        """关闭自建的 HTTP 客户端"""
        if self._owns_client:
            await self._client.aclose()
