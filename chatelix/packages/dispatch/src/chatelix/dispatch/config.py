"""DispatchConfig -- Dispatch 配置加载

从环境变量加载配置，非法数值记录 warning 后回退默认值，不阻塞启动。
"""

import os

import structlog
from pydantic import BaseModel, Field, SecretStr, ValidationError

log = structlog.get_logger()

DEFAULT_FUNCTIONS_URL = "http://localhost:54321/functions/v1"


class DispatchConfig(BaseModel):
    """Dispatch 包配置 -- 从环境变量加载

    环境变量:
        CHATELIX_FUNCTIONS_URL: 后端 endpoint 基础 URL
        CHATELIX_ACCESS_TOKEN: 默认 Bearer token（为空时使用 anonymous）
        CHATELIX_TIMEOUT_S: HTTP 超时（秒，默认 60）
        CHATELIX_DEFAULT_MODEL: 默认模型（就绪检查探测用）
        CHATELIX_DEFAULT_TEMPERATURE: 默认采样温度
        CHATELIX_DEFAULT_MAX_TOKENS: 默认最大生成 token 数
    """

    functions_base_url: str = Field(
        default=DEFAULT_FUNCTIONS_URL,
        description="后端 endpoint 基础 URL",
    )
    access_token: SecretStr = Field(
        default=SecretStr(""),
        description="默认 Bearer token，调用方未提供会话 token 时使用",
    )
    timeout_s: float = Field(default=60.0, gt=0, description="HTTP 超时（秒）")
    default_model: str = Field(default="openai/gpt-4o-mini", min_length=1)
    default_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    default_max_tokens: int = Field(default=2000, gt=0)


def _read_number(env_var: str, field_name: str, cast, fallback) -> object | None:
    """读取数值环境变量；无法解析或超出字段约束时记录 warning 并返回 None"""
    val = os.environ.get(env_var)
    if not val:
        return None
    try:
        value = cast(val)
        # 单独校验该字段的取值范围，其余字段保持默认
        DispatchConfig(**{field_name: value})
    except (ValueError, ValidationError):
        log.warning("invalid_number_config", env_var=env_var, value=val, fallback=fallback)
        return None
    return value


def load_dispatch_config() -> DispatchConfig:
    """从环境变量加载 Dispatch 配置

    Returns:
        DispatchConfig 实例
    """
    kwargs: dict = {}

    if val := os.environ.get("CHATELIX_FUNCTIONS_URL"):
        kwargs["functions_base_url"] = val.rstrip("/")

    if val := os.environ.get("CHATELIX_ACCESS_TOKEN"):
        kwargs["access_token"] = SecretStr(val)

    if val := os.environ.get("CHATELIX_DEFAULT_MODEL"):
        kwargs["default_model"] = val

    numeric = (
        ("CHATELIX_TIMEOUT_S", "timeout_s", float, 60.0),
        ("CHATELIX_DEFAULT_TEMPERATURE", "default_temperature", float, 0.7),
        ("CHATELIX_DEFAULT_MAX_TOKENS", "default_max_tokens", int, 2000),
    )
    for env_var, field_name, cast, fallback in numeric:
        value = _read_number(env_var, field_name, cast, fallback)
        if value is not None:
            kwargs[field_name] = value

    return DispatchConfig(**kwargs)
