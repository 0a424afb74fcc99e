"""健康检查路由

GET /health: Liveness 检查，永远返回 200。
GET /ready: Readiness 检查，profile 查询参数决定是否真实探测后端 endpoint。
"""

from typing import Literal

import structlog
from fastapi import APIRouter, Query, Request
from starlette.responses import JSONResponse

log = structlog.get_logger()

router = APIRouter()


@router.get("/health")
async def health():
    """Liveness 检查 -- 永远返回 200"""
    return {"status": "ok"}


@router.get("/ready")
async def ready(
    request: Request,
    profile: Literal["core", "llm", "full"] | None = Query(
        default=None,
        description="检查配置：core（默认）仅核心检查；llm/full 额外探测默认模型的 endpoint",
    ),
):
    """Readiness 检查 -- 验证核心组件与后端可用性

    profile 参数:
        - None / "core": 仅核心检查，backend="skipped"
        - "llm": 核心检查 + 默认模型 endpoint 真实探测
        - "full": 等同于 "llm"

    检查项：
    1. catalog: 模型目录已加载且非空
    2. transport: StreamTransport 已初始化
    3. backend: 根据 profile 决定是否探测
    """
    effective_profile = profile or "core"

    checks: dict[str, str | int] = {}
    all_ok = True

    catalog = getattr(request.app.state, "catalog", None)
    if catalog is not None and len(catalog) > 0:
        checks["catalog"] = len(catalog)
    else:
        checks["catalog"] = "error: catalog is empty"
        all_ok = False

    transport = getattr(request.app.state, "transport", None)
    checks["transport"] = "ok" if transport is not None else "error: not initialized"
    if transport is None:
        all_ok = False

    if effective_profile in ("llm", "full") and transport is not None:
        config = request.app.state.config
        try:
            reachable = await transport.probe(config.default_model)
        except Exception as e:
            log.warning("health_check_error", error=str(e))
            reachable = False
        if reachable:
            checks["backend"] = "ok"
        else:
            checks["backend"] = "unreachable"
            all_ok = False
    else:
        checks["backend"] = "skipped"

    status_code = 200 if all_ok else 503
    status_text = "ready" if all_ok else "not_ready"

    return JSONResponse(
        status_code=status_code,
        content={
            "status": status_text,
            "profile": effective_profile,
            "checks": checks,
        },
    )
