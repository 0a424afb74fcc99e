"""流式对话 SSE 测试

1. 直连（fallback=false）：delta 顺序 + 唯一 complete
2. Authorization: Bearer token 转发给后端
3. 降级链：fallback 事件 + 替代模型完成
4. 失败：error 事件携带分类结果
5. 未指定模型时按 prompt 自动选择
6. recovery=true：retry / fallback 事件
7. 客户端断开时关闭上游流
8. 请求校验
"""

import asyncio
import json

import httpx
from chatelix.dispatch import CancellationToken, endpoint_for, resolve_provider
from chatelix.gateway.routes import chat as chat_routes
from httpx import AsyncClient

CODE_PROMPT = "Write a Python function to sort a list"


async def _collect_sse(client: AsyncClient, body: dict, headers: dict | None = None) -> list[dict]:
    """读取 SSE 流，返回 [{"event": ..., **data}]"""
    events: list[dict] = []
    current_event = None
    async with client.stream("POST", "/api/chat/stream", json=body, headers=headers) as response:
        assert response.status_code == 200
        async for line in response.aiter_lines():
            if line.startswith("event:"):
                current_event = line[len("event:"):].strip()
            elif line.startswith("data:"):
                data = json.loads(line[len("data:"):].strip())
                events.append({"event": current_event, **data})
    return events


def _body(**kwargs) -> dict:
    body = {"messages": [{"role": "user", "content": "hi"}], "model": "openai/gpt-4o-mini"}
    body.update(kwargs)
    return body


class TestDirectStream:
    """fallback=false 直连 StreamTransport"""

    async def test_deltas_then_complete(self, client: AsyncClient, functions_backend):
        functions_backend.stream("openai-chat-stream", "Hel", "lo")

        events = await _collect_sse(client, _body(fallback=False))

        assert [e["event"] for e in events] == ["delta", "delta", "complete"]
        assert [e["delta"] for e in events[:2]] == ["Hel", "lo"]
        assert events[-1]["text"] == "Hello"
        assert events[-1]["model"] == "openai/gpt-4o-mini"

    async def test_config_defaults_applied(self, client: AsyncClient, functions_backend):
        functions_backend.stream("openai-chat-stream", "ok")

        await _collect_sse(client, _body(fallback=False))

        body = functions_backend.bodies()[0]
        assert body["model"] == "openai/gpt-4o-mini"
        assert body["temperature"] == 0.7
        assert body["max_tokens"] == 2000
        assert body["stream"] is True

    async def test_explicit_parameters(self, client: AsyncClient, functions_backend):
        functions_backend.stream("claude-chat-stream", "ok")

        await _collect_sse(
            client,
            _body(
                model="anthropic/claude-3.5-sonnet",
                temperature=0,
                max_tokens=64,
                fallback=False,
            ),
        )

        body = functions_backend.bodies()[0]
        assert body["model"] == "anthropic/claude-3.5-sonnet"
        assert body["temperature"] == 0
        assert body["max_tokens"] == 64

    async def test_bearer_token_forwarded(self, client: AsyncClient, functions_backend):
        functions_backend.stream("openai-chat-stream", "ok")

        await _collect_sse(
            client, _body(fallback=False), headers={"Authorization": "Bearer user-session"}
        )

        assert functions_backend.requests[0].headers["authorization"] == "Bearer user-session"

    async def test_anonymous_without_token(self, client: AsyncClient, functions_backend):
        functions_backend.stream("openai-chat-stream", "ok")

        await _collect_sse(client, _body(fallback=False))

        assert functions_backend.requests[0].headers["authorization"] == "Bearer anonymous"

    async def test_error_event_is_classified(self, client: AsyncClient, functions_backend):
        functions_backend.fail("openai-chat-stream", 429, "rate limit exceeded")

        events = await _collect_sse(client, _body(fallback=False))

        assert [e["event"] for e in events] == ["error"]
        error = events[0]
        assert error["error_code"] == "rate_limit"
        assert error["show_to_user"] is True
        assert error["user_message"].startswith("**Rate limit reached**")
        assert "HTTP 429" in error["error"]
        # 只尝试一次，不降级
        assert len(functions_backend.requests) == 1


class TestFallbackStream:
    """fallback=true（默认）走降级链"""

    async def test_cascade_to_working_model(self, client: AsyncClient, functions_backend):
        functions_backend.fail("claude-chat-stream", 503, "model unavailable")
        functions_backend.stream("openai-chat-stream", "saved")

        events = await _collect_sse(client, _body(model="anthropic/claude-3.5-sonnet"))

        assert [e["event"] for e in events] == ["fallback", "fallback", "delta", "complete"]
        assert events[0]["model"] == "anthropic/claude-3-sonnet"
        assert events[1]["model"] == "gpt-4o-mini"
        assert events[-1]["text"] == "saved"

    async def test_all_models_failed(self, client: AsyncClient, functions_backend):
        events = await _collect_sse(client, _body(model="deepseek/deepseek-chat"))

        assert [e["event"] for e in events] == ["fallback", "fallback", "error"]
        assert events[-1]["error"].startswith("Streaming failed for all models.")
        assert len(functions_backend.requests) == 3


class TestModelSelection:
    """未指定模型时由推荐器选择"""

    async def test_model_chosen_from_prompt(self, app, client: AsyncClient, functions_backend):
        expected = app.state.recommender.best_model_for_prompt(CODE_PROMPT)
        functions_backend.stream(endpoint_for(resolve_provider(expected)), "ok")

        events = await _collect_sse(
            client,
            {"messages": [{"role": "user", "content": CODE_PROMPT}], "fallback": False},
        )

        assert functions_backend.bodies()[0]["model"] == expected
        assert events[-1]["event"] == "complete"
        assert events[-1]["model"] == expected


class TestRecoveryStream:
    """recovery=true 按错误分类恢复"""

    async def test_retry_then_complete(self, client: AsyncClient, functions_backend):
        responses = iter(
            [
                httpx.Response(429, text="rate limit exceeded"),
                httpx.Response(
                    200, content=b'data: {"choices": [{"delta": {"content": "ok"}}]}\n\n'
                ),
            ]
        )
        functions_backend.handlers["openai-chat-stream"] = lambda _: next(responses)

        events = await _collect_sse(client, _body(recovery=True))

        assert [e["event"] for e in events] == ["retry", "delta", "complete"]
        assert events[0]["model"] == "openai/gpt-4o-mini"
        assert "HTTP 429" in events[0]["error"]
        assert events[-1]["text"] == "ok"
        assert len(functions_backend.requests) == 2

    async def test_switched_model_is_not_reused(self, client: AsyncClient, functions_backend):
        """替代模型同样下线时直接上报错误，不回到已用过的模型"""
        functions_backend.fail("claude-chat-stream", 503, "model unavailable")

        events = await _collect_sse(
            client, _body(model="anthropic/claude-3.5-sonnet", recovery=True)
        )

        assert [e["event"] for e in events] == ["fallback", "error"]
        assert events[0]["model"] == "anthropic/claude-3-sonnet"
        assert events[-1]["error_code"] == "model_offline"
        assert [b["model"] for b in functions_backend.bodies()] == [
            "anthropic/claude-3.5-sonnet",
            "anthropic/claude-3-sonnet",
        ]


class TestClientDisconnect:
    """客户端断开后上游流被关闭"""

    async def test_disconnect_closes_upstream(self, app, functions_backend, monkeypatch):
        functions_backend.stream_open("openai-chat-stream", "first")
        tokens: list[CancellationToken] = []

        class RecordingToken(CancellationToken):
            def __init__(self) -> None:
                super().__init__()
                tokens.append(self)

        monkeypatch.setattr(chat_routes, "CancellationToken", RecordingToken)

        body = json.dumps(_body(fallback=False)).encode()
        request_sent = False
        disconnected = asyncio.Event()
        chunks: list[bytes] = []

        async def receive() -> dict:
            nonlocal request_sent
            if not request_sent:
                request_sent = True
                return {"type": "http.request", "body": body, "more_body": False}
            await disconnected.wait()
            return {"type": "http.disconnect"}

        async def send(message: dict) -> None:
            if message["type"] == "http.response.body":
                chunks.append(message.get("body", b""))
                # 收到第一个 delta 后客户端离开
                if b"event: delta" in message.get("body", b""):
                    disconnected.set()

        scope = {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": "POST",
            "scheme": "http",
            "path": "/api/chat/stream",
            "raw_path": b"/api/chat/stream",
            "root_path": "",
            "query_string": b"",
            "headers": [(b"host", b"test"), (b"content-type", b"application/json")],
            "client": ("127.0.0.1", 50000),
            "server": ("test", 80),
        }

        await asyncio.wait_for(app(scope, receive, send), timeout=5)

        assert any(b"event: delta" in c for c in chunks)
        assert not any(b"event: complete" in c for c in chunks)
        assert len(tokens) == 1
        assert tokens[0].cancelled is True
        assert functions_backend.open_streams[0].closed is True


class TestValidation:
    """请求体校验"""

    async def test_empty_messages(self, client: AsyncClient):
        resp = await client.post("/api/chat/stream", json={"messages": []})
        assert resp.status_code == 422

    async def test_invalid_temperature(self, client: AsyncClient):
        resp = await client.post("/api/chat/stream", json=_body(temperature=5))
        assert resp.status_code == 422
