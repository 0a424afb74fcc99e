"""FastAPI 应用主文件

app 创建 + lifespan 管理：dispatch 组件初始化/关闭 + 路由注册。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from chatelix.dispatch import (
    FallbackOrchestrator,
    ModelRecommender,
    RecoveringStreamer,
    StreamTransport,
    default_catalog,
    load_dispatch_config,
)
from fastapi import FastAPI

from .middleware.logging_config import setup_logfire, setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .routes import chat, errors, health, models

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时构建 dispatch 组件，关闭时释放 HTTP 连接"""
    config = load_dispatch_config()
    app.state.config = config

    # 目录只构建一次，推荐器与降级编排器共享同一个实例
    catalog = default_catalog()
    app.state.catalog = catalog

    transport = StreamTransport.from_config(config)
    recommender = ModelRecommender(catalog)
    app.state.transport = transport
    app.state.recommender = recommender
    app.state.orchestrator = FallbackOrchestrator(transport, recommender)
    app.state.recovery = RecoveringStreamer(transport, recommender)

    log.info(
        "dispatch_initialized",
        functions_url=config.functions_base_url,
        timeout_s=config.timeout_s,
        default_model=config.default_model,
        catalog_size=len(catalog),
    )

    yield

    await transport.aclose()


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="Chatelix Gateway",
        version="0.1.0",
        description="Chatelix 模型调度与流式对话 API",
        lifespan=lifespan,
    )

    app.add_middleware(LoggingMiddleware)

    # 初始化日志
    setup_logging()
    setup_logfire(app)

    # 注册路由
    app.include_router(chat.router, tags=["chat"])
    app.include_router(models.router, tags=["models"])
    app.include_router(errors.router, tags=["errors"])
    app.include_router(health.router, tags=["health"])

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()
