"""LoggingMiddleware -- 请求级日志

request_id 优先沿用调用方的 X-Request-ID，否则生成 ULID；
绑定到 structlog contextvars，使 dispatch 组件在同一请求内的日志都带上它。
健康检查请求降为 debug，5xx 响应升为 warning。
"""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from ulid import ULID

REQUEST_ID_HEADER = "X-Request-ID"

# 探活路径，频繁调用，不在 info 级别记录
_QUIET_PATHS = frozenset({"/health", "/ready"})

log = structlog.get_logger()


def _level_for(path: str, status_code: int) -> str:
    if status_code >= 500:
        return "warning"
    if path in _QUIET_PATHS:
        return "debug"
    return "info"


class LoggingMiddleware(BaseHTTPMiddleware):
    """为每个请求绑定 request_id 并记录耗时"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(ULID())
        path = request.url.path

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id, method=request.method, path=path
        )
        started = time.monotonic()

        response = await call_next(request)

        # 对 SSE 响应而言这里只代表响应头已发出
        emit = getattr(log, _level_for(path, response.status_code))
        emit(
            "request_completed",
            status_code=response.status_code,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
