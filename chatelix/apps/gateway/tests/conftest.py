"""apps/gateway 测试配置 -- 绕过 lifespan，直接向 app.state 注入 dispatch 组件"""

import asyncio
import json
import os
from collections.abc import AsyncGenerator, Callable

import httpx
import pytest_asyncio
from chatelix.dispatch import (
    DispatchConfig,
    FallbackOrchestrator,
    ModelRecommender,
    RecoveringStreamer,
    StreamTransport,
    default_catalog,
)
from httpx import ASGITransport, AsyncClient


class OpenStream(httpx.AsyncByteStream):
    """先发出给定字节，然后保持连接不结束；记录是否被关闭"""

    def __init__(self, body: bytes) -> None:
        self.body = body
        self.closed = False

    async def __aiter__(self):
        yield self.body
        await asyncio.Event().wait()

    async def aclose(self) -> None:
        self.closed = True


def _sse_body(*contents: str) -> str:
    return "".join(
        "data: " + json.dumps({"choices": [{"delta": {"content": c}}]}) + "\n\n"
        for c in contents
    )


class FunctionsBackend:
    """后端流式 endpoint 替身：按 endpoint 名称返回预设响应，并记录收到的请求"""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.handlers: dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.open_streams: list[OpenStream] = []

    def stream(self, endpoint: str, *contents: str) -> None:
        body = _sse_body(*contents) + "data: [DONE]\n\n"
        self.handlers[endpoint] = lambda _: httpx.Response(200, content=body.encode())

    def stream_open(self, endpoint: str, *contents: str) -> None:
        """发出 contents 后不再结束的流"""

        def handler(_: httpx.Request) -> httpx.Response:
            stream = OpenStream(_sse_body(*contents).encode())
            self.open_streams.append(stream)
            return httpx.Response(200, stream=stream)

        self.handlers[endpoint] = handler

    def fail(self, endpoint: str, status_code: int, body: str) -> None:
        self.handlers[endpoint] = lambda _: httpx.Response(status_code, text=body)

    def bodies(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        endpoint = request.url.path.rsplit("/", 1)[-1]
        handler = self.handlers.get(endpoint)
        if handler is None:
            return httpx.Response(503, text="service unavailable")
        return handler(request)


async def _no_wait(seconds: float) -> None:
    return None


@pytest_asyncio.fixture
async def functions_backend() -> FunctionsBackend:
    return FunctionsBackend()


@pytest_asyncio.fixture
async def app(functions_backend: FunctionsBackend):
    """创建测试用 FastAPI app（手动初始化 app.state）"""
    os.environ["LOGFIRE_SEND_TO_LOGFIRE"] = "false"

    from chatelix.gateway.main import create_app

    application = create_app()

    config = DispatchConfig(functions_base_url="http://functions.test/v1")
    catalog = default_catalog()
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(functions_backend))
    transport = StreamTransport.from_config(config, client=http_client)
    recommender = ModelRecommender(catalog)

    application.state.config = config
    application.state.catalog = catalog
    application.state.transport = transport
    application.state.recommender = recommender
    application.state.orchestrator = FallbackOrchestrator(transport, recommender)
    application.state.recovery = RecoveringStreamer(transport, recommender, sleep=_no_wait)

    yield application

    await http_client.aclose()
    os.environ.pop("LOGFIRE_SEND_TO_LOGFIRE", None)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """提供 httpx AsyncClient 用于测试"""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
