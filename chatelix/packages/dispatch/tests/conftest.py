"""Dispatch 包测试 fixtures -- 可控读取边界的 SSE 后端"""

import asyncio
import json
from collections.abc import Callable

import httpx
import pytest
import pytest_asyncio
from chatelix.dispatch import ChatMessage, StreamRequest, StreamTransport


class ChunkedStream(httpx.AsyncByteStream):
    """按给定字节块逐个返回的响应体，每个块即一次网络读取

    hang=True 时在所有块之后挂起，直到被取消（模拟后端不再发送数据）。
    """

    def __init__(self, chunks: list[bytes], hang: bool = False) -> None:
        self.chunks = chunks
        self.hang = hang
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk
        if self.hang:
            await asyncio.Event().wait()

    async def aclose(self) -> None:
        self.closed = True


def sse_line(content: str) -> bytes:
    """构造一行 OpenAI 风格的 SSE delta 帧"""
    payload = {"choices": [{"delta": {"content": content}}]}
    return f"data: {json.dumps(payload)}\n".encode()


class FakeBackend:
    """记录请求并按 endpoint 返回预设响应的 MockTransport handler"""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.responses: dict[str, Callable[[], httpx.Response]] = {}
        self.streams: list[ChunkedStream] = []
        self.stalled: set[str] = set()

    def stream_ok(
        self, endpoint: str, chunks: list[bytes], hang: bool = False
    ) -> None:
        def factory() -> httpx.Response:
            stream = ChunkedStream(chunks, hang=hang)
            self.streams.append(stream)
            return httpx.Response(200, stream=stream)

        self.responses[endpoint] = factory

    def fail(self, endpoint: str, status_code: int, body: str) -> None:
        self.responses[endpoint] = lambda: httpx.Response(status_code, text=body)

    def raise_error(self, endpoint: str, error: Exception) -> None:
        def factory() -> httpx.Response:
            raise error

        self.responses[endpoint] = factory

    def stall(self, endpoint: str) -> None:
        """请求到达后永不返回响应头，直到被取消"""
        self.stalled.add(endpoint)

    def json_bodies(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        endpoint = request.url.path.rsplit("/", 1)[-1]
        if endpoint in self.stalled:
            await asyncio.Event().wait()
        factory = self.responses.get(endpoint)
        if factory is None:
            return httpx.Response(404, text=f"no such function {endpoint}")
        return factory()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest_asyncio.fixture
async def transport(backend: FakeBackend):
    """注入 MockTransport 的 StreamTransport"""
    async with httpx.AsyncClient(transport=httpx.MockTransport(backend)) as client:
        yield StreamTransport(
            functions_base_url="http://functions.test/v1",
            access_token="",
            client=client,
        )


@pytest.fixture
def make_request() -> Callable[..., StreamRequest]:
    """StreamRequest 工厂"""

    def _make(model: str = "openai/gpt-4o-mini", content: str = "Hello", **kwargs) -> StreamRequest:
        return StreamRequest(
            messages=[ChatMessage(role="user", content=content)],
            model=model,
            **kwargs,
        )

    return _make


@pytest.fixture
def sse() -> Callable[[str], bytes]:
    return sse_line
