"""Provider 解析 -- 模型 id -> ProviderTag -> endpoint 名称

规则表按优先级排列，首个命中的规则生效：有直连 key 的 provider 优先于聚合器，
即使同一个 id 同时命中多条启发式规则。未识别的模型统一走 OpenRouter。
"""

from collections.abc import Callable

import structlog

from .enums import ProviderTag

log = structlog.get_logger()


def _matches(prefixes: tuple[str, ...] = (), keywords: tuple[str, ...] = ()) -> Callable[[str], bool]:
    def predicate(model_id: str) -> bool:
        return model_id.startswith(prefixes) or any(k in model_id for k in keywords)

    return predicate


# (名称, 谓词, provider) -- 顺序即优先级
PROVIDER_RULES: tuple[tuple[str, Callable[[str], bool], ProviderTag], ...] = (
    (
        "openai",
        _matches(("openai/",), ("gpt-4", "gpt-3", "o1", "gpt", "chatgpt")),
        ProviderTag.OPENAI,
    ),
    ("gemini", _matches(("google/",), ("gemini", "bard")), ProviderTag.GEMINI),
    ("deepseek", _matches(("deepseek/",), ("deepseek",)), ProviderTag.DEEPSEEK),
    ("claude", _matches(("anthropic/",), ("claude",)), ProviderTag.CLAUDE),
    (
        "third_party",
        _matches(("meta/", "mistralai/", "cohere/", "perplexity/", "nvidia/", "x-ai/")),
        ProviderTag.OPENROUTER,
    ),
)

DEFAULT_PROVIDER = ProviderTag.OPENROUTER

# provider -> 后端流式 endpoint 名称（一一对应）
ENDPOINTS: dict[ProviderTag, str] = {
    ProviderTag.OPENAI: "openai-chat-stream",
    ProviderTag.CLAUDE: "claude-chat-stream",
    ProviderTag.GEMINI: "gemini-chat-stream",
    ProviderTag.DEEPSEEK: "deepseek-chat-stream",
    ProviderTag.OPENROUTER: "openrouter-chat-stream",
}


def resolve_provider(model_id: str) -> ProviderTag:
    """将模型 id 解析为 ProviderTag

    纯函数，对任意字符串都返回五种标签之一，不抛异常。
    """
    for name, predicate, provider in PROVIDER_RULES:
        if predicate(model_id):
            log.debug("provider_resolved", model=model_id, rule=name, provider=provider)
            return provider

    log.debug("provider_defaulted", model=model_id, provider=DEFAULT_PROVIDER)
    return DEFAULT_PROVIDER


def endpoint_for(provider: ProviderTag) -> str:
    """provider 对应的后端 endpoint 名称"""
    return ENDPOINTS[provider]
