"""依赖注入模块 -- 通过 FastAPI Depends 注入 dispatch 组件

组件实例通过 app.state 管理，在 lifespan 中初始化/清理。
"""

from chatelix.dispatch import (
    DispatchConfig,
    FallbackOrchestrator,
    ModelCatalog,
    ModelRecommender,
    RecoveringStreamer,
    StreamTransport,
)
from fastapi import Request


def get_config(request: Request) -> DispatchConfig:
    """从 app.state 获取 DispatchConfig"""
    return request.app.state.config


def get_catalog(request: Request) -> ModelCatalog:
    """从 app.state 获取 ModelCatalog"""
    return request.app.state.catalog


def get_transport(request: Request) -> StreamTransport:
    """从 app.state 获取 StreamTransport"""
    return request.app.state.transport


def get_recommender(request: Request) -> ModelRecommender:
    """从 app.state 获取 ModelRecommender"""
    return request.app.state.recommender


def get_orchestrator(request: Request) -> FallbackOrchestrator:
    """从 app.state 获取 FallbackOrchestrator"""
    return request.app.state.orchestrator


def get_recovery(request: Request) -> RecoveringStreamer:
    """从 app.state 获取 RecoveringStreamer"""
    return request.app.state.recovery
