"""structlog 配置模块

dev 模式：ConsoleRenderer 可读输出
json 模式：结构化 JSON 输出（生产环境），异常栈格式化为字符串字段
stdlib logging 的记录（uvicorn、httpx 等）经 ProcessorFormatter 统一渲染。
Logfire APM 由 LOGFIRE_SEND_TO_LOGFIRE 控制，默认关闭。
"""

import logging
import os

import structlog
from fastapi import FastAPI
from structlog.types import Processor

# 逐请求输出连接细节的第三方 logger，默认只保留 WARNING 以上
NOISY_LOGGERS = ("httpx", "httpcore")


def _shared_processors(json_mode: bool) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if json_mode:
        processors.append(structlog.processors.format_exc_info)
    return processors


def _root_handler(renderer: Processor, pre_chain: list[Processor]) -> logging.Handler:
    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=pre_chain)
    )
    return handler


def setup_logging(log_format: str | None = None, log_level: str | None = None) -> None:
    """初始化 structlog 配置

    参数为空时读取环境变量：
    - CHATELIX_LOG_FORMAT: "json" 或 "dev"（默认）
    - CHATELIX_LOG_LEVEL: 日志级别（默认 INFO，无法识别时按 INFO 处理）
    """
    log_format = (log_format or os.environ.get("CHATELIX_LOG_FORMAT", "dev")).lower()
    log_level = (log_level or os.environ.get("CHATELIX_LOG_LEVEL", "INFO")).upper()

    json_mode = log_format == "json"
    shared = _shared_processors(json_mode)
    renderer: Processor = (
        structlog.processors.JSONRenderer(ensure_ascii=False)
        if json_mode
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(_root_handler(renderer, shared))
    root_logger.setLevel(getattr(logging, log_level, logging.INFO))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_logfire(app: FastAPI) -> None:
    """Logfire 可选初始化

    LOGFIRE_SEND_TO_LOGFIRE="true" 时启用（需要 LOGFIRE_TOKEN），
    同时采集 FastAPI 请求与发往后端 endpoint 的 httpx 调用；其余情况仅本地日志。
    """
    if os.environ.get("LOGFIRE_SEND_TO_LOGFIRE", "false").lower() != "true":
        return
    try:
        import logfire

        logfire.configure()
        logfire.instrument_fastapi(app)
        logfire.instrument_httpx()
    except Exception as e:
        # Logfire 初始化失败不影响服务运行
        structlog.get_logger().warning("logfire_init_failed", error=str(e))
