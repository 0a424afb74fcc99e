"""ModelCatalog -- 不可变模型目录

启动时构建一次，通过构造参数注入 ModelRecommender / FallbackOrchestrator / gateway，
不使用模块级单例，测试可替换为自定义目录。
"""

from collections.abc import Iterable, Iterator

import structlog

from .enums import TaskType
from .models import ModelDescriptor, ModelPricing

log = structlog.get_logger()

# 按任务类型的固定推荐（"fast" 为额外的速度优先入口）
RECOMMENDED_BY_TASK: dict[str, str] = {
    TaskType.CODE: "mistralai/codestral-2405",
    TaskType.CREATIVE: "anthropic/claude-3.5-sonnet",
    TaskType.REASONING: "openai/o1-preview",
    TaskType.GENERAL: "openai/gpt-4o-mini",
    "fast": "openai/gpt-4o-mini",
}


class ModelCatalog:
    """模型目录 -- 有序、只读

    相同 id 的重复条目折叠为一条（保留首次出现的条目），并记录 warning。
    id 不同但指向同一底层模型的条目视为不同的后端路由，全部保留。
    """

    def __init__(self, models: Iterable[ModelDescriptor]) -> None:
        index: dict[str, ModelDescriptor] = {}
        for model in models:
            if model.id in index:
                log.warning("catalog_duplicate_model_dropped", model_id=model.id)
                continue
            index[model.id] = model
        self._index = index
        self._models: tuple[ModelDescriptor, ...] = tuple(index.values())

    @property
    def models(self) -> tuple[ModelDescriptor, ...]:
        return self._models

    def __len__(self) -> int:
        return len(self._models)

    def __iter__(self) -> Iterator[ModelDescriptor]:
        return iter(self._models)

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._index

    def find_by_id(self, model_id: str) -> ModelDescriptor | None:
        """按 id 查询单个模型"""
        return self._index.get(model_id)

    def by_category(self) -> dict[str, list[ModelDescriptor]]:
        """按 category 分组（保持目录顺序）"""
        groups: dict[str, list[ModelDescriptor]] = {}
        for model in self._models:
            groups.setdefault(model.category, []).append(model)
        return groups

    def recommended_for(self, task_kind: str) -> str:
        """按任务类型返回固定推荐模型 id，未知类型返回 general 推荐"""
        return RECOMMENDED_BY_TASK.get(task_kind, RECOMMENDED_BY_TASK[TaskType.GENERAL])


def _model(
    model_id: str,
    name: str,
    provider: str,
    category: str,
    prompt: float,
    completion: float,
    context_length: int,
    description: str,
) -> ModelDescriptor:
    return ModelDescriptor(
        id=model_id,
        name=name,
        provider=provider,
        category=category,
        pricing=ModelPricing(prompt=prompt, completion=completion),
        context_length=context_length,
        description=description,
    )


def _get_default_models() -> list[ModelDescriptor]:
    """内置热门模型列表"""
    return [
        # OpenAI
        _model("openai/gpt-4o", "GPT-4o", "OpenAI", "Flagship",
               0.005, 0.015, 128000, "OpenAI GPT-4 Omni, multimodal"),
        _model("openai/gpt-4o-mini", "GPT-4o Mini", "OpenAI", "Economy",
               0.00015, 0.0006, 128000, "Cheap and fast GPT-4o variant"),
        _model("openai/gpt-4-turbo", "GPT-4 Turbo", "OpenAI", "Performance",
               0.01, 0.03, 128000, "GPT-4 Turbo tuned for throughput"),
        _model("openai/o1-preview", "O1 Preview", "OpenAI", "Reasoning",
               0.015, 0.06, 128000, "O1 reasoning model preview"),
        _model("openai/o1-mini", "O1 Mini", "OpenAI", "Fast reasoning",
               0.003, 0.012, 128000, "Fast and efficient reasoning"),
        # Anthropic
        _model("anthropic/claude-3.5-sonnet", "Claude 3.5 Sonnet", "Anthropic", "Flagship",
               0.003, 0.015, 200000, "Most capable Claude 3.5"),
        _model("anthropic/claude-3-5-haiku-20241022", "Claude 3.5 Haiku", "Anthropic", "Fast",
               0.0008, 0.004, 200000, "Fastest Claude for instant answers"),
        _model("anthropic/claude-3-7-sonnet-20250219", "Claude 3.7 Sonnet", "Anthropic",
               "Extended thinking", 0.006, 0.03, 200000, "Extended thinking Sonnet"),
        _model("anthropic/claude-3-5-sonnet-20241022", "Claude 3.5 Sonnet", "Anthropic",
               "Generalist", 0.003, 0.015, 200000, "Previous Sonnet snapshot"),
        # Google
        _model("google/gemini-pro-1.5", "Gemini Pro 1.5", "Google", "Pro",
               0.00125, 0.005, 2000000, "Gemini Pro 1.5 with 2M context"),
        _model("google/gemini-flash-1.5", "Gemini Flash 1.5", "Google", "Fast",
               0.00015, 0.0006, 1000000, "Fast and cheap Gemini"),
        # Meta
        _model("meta-llama/llama-3.3-70b-instruct", "Llama 3.3 70B", "Meta", "Latest",
               0.0006, 0.0006, 32768, "Latest Llama release"),
        _model("meta-llama/llama-3.2-90b-vision-instruct", "Llama 3.2 90B Vision", "Meta",
               "Vision", 0.0008, 0.0008, 32768, "Large vision model"),
        _model("meta-llama/llama-3.2-11b-vision-instruct", "Llama 3.2 11B Vision", "Meta",
               "Compact vision", 0.0002, 0.0002, 32768, "Compact and cheap vision model"),
        _model("meta-llama/llama-3.1-nemotron-70b-instruct", "Llama 3.1 Nemotron 70B", "Meta",
               "Optimized", 0.0005, 0.0005, 32768, "Performance tuned Llama"),
        _model("meta-llama/llama-3.1-405b-instruct-free", "Llama 3.1 405B Free", "Meta", "Free",
               0.0, 0.0, 32768, "Free tier of the 405B model"),
        # Mistral
        _model("mistralai/mistral-large-2411", "Mistral Large 2411", "Mistral", "Latest",
               0.002, 0.006, 32768, "Latest Mistral Large"),
        _model("mistralai/pixtral-large-2411", "Pixtral Large 2411", "Mistral", "Multimodal",
               0.003, 0.009, 32768, "Multimodal model with vision"),
        _model("mistralai/ministral-8b-2410", "Ministral 8B", "Mistral", "Compact",
               0.0002, 0.0006, 32768, "Compact and fast"),
        _model("mistralai/ministral-3b-2410", "Ministral 3B", "Mistral", "Ultra-compact",
               0.0001, 0.0003, 32768, "Ultra-compact and cheap"),
        _model("mistralai/codestral-2405", "Codestral 2405", "Mistral", "Code",
               0.0015, 0.0045, 32768, "Specialized for code and programming"),
        # DeepSeek
        _model("deepseek/deepseek-v3", "DeepSeek V3", "DeepSeek", "Latest",
               0.0008, 0.0024, 64000, "Latest DeepSeek generation"),
        _model("deepseek/deepseek-r1-lite-preview", "DeepSeek R1 Lite", "DeepSeek", "Reasoning",
               0.001, 0.003, 32000, "Lightweight reasoning model"),
        _model("deepseek/deepseek-coder-v2-lite-instruct", "DeepSeek Coder V2 Lite", "DeepSeek",
               "Code", 0.0006, 0.0018, 32000, "Code model for development"),
        _model("deepseek/deepseek-chat", "DeepSeek Chat", "DeepSeek", "Chat",
               0.0014, 0.0028, 16384, "General chat model"),
        _model("deepseek/deepseek-reasoner", "DeepSeek Reasoner", "DeepSeek", "Pure reasoning",
               0.0012, 0.0036, 32000, "Pure reasoning and logic"),
        # xAI
        _model("x-ai/grok-2-1212", "Grok 2.1212", "xAI", "Latest",
               0.002, 0.01, 131072, "Latest Grok generation"),
        _model("x-ai/grok-2-vision-1212", "Grok 2 Vision", "xAI", "Vision",
               0.003, 0.015, 131072, "Grok with vision"),
        _model("x-ai/grok-beta", "Grok Beta", "xAI", "Beta",
               0.0015, 0.0075, 131072, "Experimental beta"),
        # Cohere
        _model("cohere/command-r-plus-08-2024", "Command R+ 08-2024", "Cohere", "Premium",
               0.003, 0.015, 128000, "Command R+ advanced"),
        _model("cohere/command-r-08-2024", "Command R 08-2024", "Cohere", "Standard",
               0.0015, 0.0075, 128000, "Command R standard"),
        _model("cohere/command-light", "Command Light", "Cohere", "Light",
               0.0003, 0.0015, 4096, "Light and cheap"),
        # Perplexity
        _model("perplexity/llama-3.1-sonar-huge-128k-online", "Sonar Huge 128K Online",
               "Perplexity", "Online search", 0.005, 0.005, 128000, "Online search, huge model"),
        _model("perplexity/llama-3.1-sonar-large-128k-online", "Sonar Large 128K Online",
               "Perplexity", "Online search", 0.002, 0.002, 128000, "Online search, large model"),
        _model("perplexity/llama-3.1-sonar-small-128k-online", "Sonar Small 128K Online",
               "Perplexity", "Online search", 0.0005, 0.0005, 128000, "Online search, small model"),
    ]


def default_catalog() -> ModelCatalog:
    """构建内置目录"""
    return ModelCatalog(_get_default_models())
