"""ModelRecommender -- 基于任务的模型推荐

analyze_prompt() 通过关键字把 prompt 归类为 TaskAnalysis；
ModelRecommender 按加分表为目录中每个模型打分（基础分 50，截断到 [0, 100]），
排序后返回前 N 个。无随机性、无隐藏状态：相同输入总是得到相同输出。
"""

from collections.abc import Callable

import structlog

from .catalog import ModelCatalog
from .enums import (
    Budget,
    Complexity,
    ExpectedSpeed,
    ResponseLength,
    SpeedPreference,
    TaskType,
)
from .models import ModelDescriptor, ModelRecommendation, TaskAnalysis

log = structlog.get_logger()

DEFAULT_BEST_MODEL = "openai/gpt-5-mini-2025-08-07"
BASE_SCORE = 50

Predicate = Callable[[ModelDescriptor], bool]


def _any(*keywords: str) -> Predicate:
    return lambda model: any(k in model.id for k in keywords)


def _all(*keywords: str) -> Predicate:
    return lambda model: all(k in model.id for k in keywords)


def _prompt_price(check: Callable[[float], bool]) -> Predicate:
    return lambda model: check(model.pricing.prompt)


# ============================================================
# Prompt 分析规则
# ============================================================

# (关键字, 任务类型) -- 顺序即优先级
TASK_TYPE_RULES: tuple[tuple[tuple[str, ...], TaskType], ...] = (
    (("code", "programming", "debug", "function", "algorithm"), TaskType.CODE),
    (("creative", "story", "poem", "marketing", "blog"), TaskType.CREATIVE),
    (("analyze", "compare", "logic", "reasoning", "think"), TaskType.REASONING),
    (("image", "photo", "visual", "picture"), TaskType.VISION),
    (("translate", "translation", "language"), TaskType.TRANSLATION),
    (("math", "calculate", "equation", "formula"), TaskType.MATH),
)

_HIGH_COMPLEXITY_WORDS = ("complex", "detailed", "comprehensive")
_MEDIUM_COMPLEXITY_WORDS = ("analyze", "explain")
_LONG_WORDS = ("detailed", "comprehensive", "complete")
_SHORT_WORDS = ("brief", "short", "quick")


def analyze_prompt(
    prompt: str,
    budget: Budget = Budget.BALANCED,
    speed: SpeedPreference = SpeedPreference.BALANCED,
) -> TaskAnalysis:
    """将 prompt 归类为 TaskAnalysis

    仅依据文本长度与关键字；budget / speed 为调用方偏好，默认 balanced。
    """
    text = prompt.lower()

    task_type = TaskType.GENERAL
    for keywords, candidate in TASK_TYPE_RULES:
        if any(k in text for k in keywords):
            task_type = candidate
            break

    if len(text) > 500 or any(k in text for k in _HIGH_COMPLEXITY_WORDS):
        complexity = Complexity.HIGH
    elif len(text) > 100 or any(k in text for k in _MEDIUM_COMPLEXITY_WORDS):
        complexity = Complexity.MEDIUM
    else:
        complexity = Complexity.LOW

    if any(k in text for k in _LONG_WORDS):
        length = ResponseLength.LONG
    elif any(k in text for k in _SHORT_WORDS):
        length = ResponseLength.SHORT
    else:
        length = ResponseLength.MEDIUM

    return TaskAnalysis(
        type=task_type,
        complexity=complexity,
        length=length,
        budget=budget,
        speed=speed,
    )


# ============================================================
# 打分表 -- 每张表内首个命中的条目生效
# ============================================================

TASK_BONUSES: dict[TaskType, tuple[tuple[Predicate, int], ...]] = {
    TaskType.CODE: (
        (_any("codestral-2405"), 45),
        (_any("deepseek-coder-v2"), 40),
        (_any("claude-opus-4", "claude-sonnet-4"), 35),
        (_any("claude"), 25),
    ),
    TaskType.CREATIVE: (
        (_any("claude-opus-4"), 45),
        (_any("gpt-5"), 40),
        (_any("mistral-large-2411"), 35),
        (_any("gpt-4"), 20),
    ),
    TaskType.REASONING: (
        (_any("o3-2025"), 50),
        (_any("claude-opus-4"), 45),
        (_any("deepseek-reasoner"), 40),
        (_any("o4-mini"), 35),
        (_any("claude", "o1"), 25),
    ),
    TaskType.VISION: (
        (_all("llama-3.2", "vision"), 45),
        (_any("pixtral-large"), 40),
        (_any("grok-2-vision"), 35),
        (_any("gemini-2.0"), 30),
        (_any("gpt-4"), 25),
    ),
    TaskType.MATH: (
        (_any("o3-2025"), 50),
        (_any("deepseek-reasoner"), 45),
        (_any("claude-opus-4"), 40),
        (_any("o1"), 35),
    ),
}

SPEED_BONUSES: dict[SpeedPreference, tuple[tuple[Predicate, int], ...]] = {
    SpeedPreference.FAST: (
        (_any("gpt-5-nano"), 35),
        (_any("ministral-3b", "ministral-8b"), 30),
        (_any("gemini-flash-1.5-8b"), 25),
        (_any("mini", "haiku"), 20),
    ),
    SpeedPreference.QUALITY: (
        (_any("claude-opus-4", "claude-sonnet-4"), 35),
        (_any("gpt-5-2025"), 30),
        (_any("claude-3-5-sonnet"), 20),
    ),
}

BUDGET_BONUSES: dict[Budget, tuple[tuple[Predicate, int], ...]] = {
    Budget.ECONOMY: (
        (_prompt_price(lambda p: p == 0), 25),
        (_prompt_price(lambda p: p < 0.0005), 20),
        (_prompt_price(lambda p: p < 0.001), 15),
    ),
    Budget.PREMIUM: (
        (_any("claude-opus-4", "gpt-5", "o3"), 15),
        (_prompt_price(lambda p: p > 0.01), 10),
    ),
}

_FRESH_MARKERS = ("2025", "2411", "v3")
_SMALL_MARKERS = ("mini", "nano", "light")
FRESHNESS_BONUS = 10
HIGH_COMPLEXITY_BONUS = 15
LOW_COMPLEXITY_BONUS = 10

# 期望回复长度 -> 估算 token 数
_ESTIMATED_TOKENS = {
    ResponseLength.SHORT: 100,
    ResponseLength.MEDIUM: 500,
    ResponseLength.LONG: 2000,
}


def _first_bonus(table: tuple[tuple[Predicate, int], ...], model: ModelDescriptor) -> int:
    for predicate, points in table:
        if predicate(model):
            return points
    return 0


def _is_small(model: ModelDescriptor) -> bool:
    return any(k in model.id for k in _SMALL_MARKERS)


class ModelRecommender:
    """模型推荐器 -- 目录通过构造参数注入"""

    def __init__(self, catalog: ModelCatalog) -> None:
        self._catalog = catalog

    @property
    def catalog(self) -> ModelCatalog:
        return self._catalog

    def get_recommendations(
        self, analysis: TaskAnalysis, max_results: int = 3
    ) -> list[ModelRecommendation]:
        """为目录中每个模型打分，按分数降序返回前 max_results 个

        同分时保持目录顺序。
        """
        recommendations = [
            ModelRecommendation(
                model=model,
                score=self.calculate_score(model, analysis),
                reason=self._reason(model, analysis),
                tags=self._tags(model, analysis),
                estimated_cost=self.estimate_cost(model, analysis),
                expected_speed=self._expected_speed(model),
                match_explanation=self._match_explanation(model, analysis),
            )
            for model in self._catalog
        ]
        recommendations.sort(key=lambda r: r.score, reverse=True)
        return recommendations[: max(max_results, 0)]

    def get_best_model_for_task(self, analysis: TaskAnalysis) -> str:
        """返回得分最高的模型 id，目录为空时返回默认模型"""
        ranked = self.get_recommendations(analysis, 1)
        if not ranked:
            log.warning("recommender_empty_catalog", default_model=DEFAULT_BEST_MODEL)
            return DEFAULT_BEST_MODEL
        return ranked[0].model.id

    def best_model_for_prompt(self, prompt: str) -> str:
        """调用方未指定模型时，按 prompt 的任务分析自动选择"""
        model = self.get_best_model_for_task(analyze_prompt(prompt))
        log.debug("model_auto_selected", model=model, prompt_length=len(prompt))
        return model

    @staticmethod
    def calculate_score(model: ModelDescriptor, analysis: TaskAnalysis) -> int:
        """启发式打分，结果截断到 [0, 100]"""
        score = BASE_SCORE
        score += _first_bonus(TASK_BONUSES.get(analysis.type, ()), model)
        score += _first_bonus(SPEED_BONUSES.get(analysis.speed, ()), model)
        score += _first_bonus(BUDGET_BONUSES.get(analysis.budget, ()), model)

        if any(k in model.id for k in _FRESH_MARKERS):
            score += FRESHNESS_BONUS

        if analysis.complexity == Complexity.HIGH and not _is_small(model):
            score += HIGH_COMPLEXITY_BONUS
        if analysis.complexity == Complexity.LOW and _is_small(model):
            score += LOW_COMPLEXITY_BONUS

        return min(100, max(0, score))

    @staticmethod
    def estimate_cost(model: ModelDescriptor, analysis: TaskAnalysis) -> float:
        tokens = _ESTIMATED_TOKENS[analysis.length]
        return model.pricing.prompt * tokens + model.pricing.completion * tokens

    @staticmethod
    def _reason(model: ModelDescriptor, analysis: TaskAnalysis) -> str:
        reasons = []
        if analysis.type == TaskType.CODE and "claude" in model.id:
            reasons.append("Excellent for code")
        if analysis.type == TaskType.CREATIVE and "gpt" in model.id:
            reasons.append("Very creative")
        if analysis.speed == SpeedPreference.FAST and "mini" in model.id:
            reasons.append("Fast response")
        if analysis.budget == Budget.ECONOMY and model.pricing.prompt < 0.001:
            reasons.append("Economical")
        if model.context_length > 100000:
            reasons.append("Large context")
        return " • ".join(reasons) or "Versatile model"

    @staticmethod
    def _tags(model: ModelDescriptor, analysis: TaskAnalysis) -> list[str]:
        model_id = model.id
        tags = []

        if model.pricing.prompt == 0:
            tags.append("free")
        elif "mini" in model_id or "nano" in model_id or model.pricing.prompt < 0.001:
            tags.append("economy")

        if "gpt-5" in model_id or ("claude" in model_id and "4" in model_id):
            tags.append("premium")
        elif "o3" in model_id or "claude-opus-4" in model_id:
            tags.append("flagship")

        if "nano" in model_id or "ministral-3b" in model_id:
            tags.append("ultra-fast")
        elif any(k in model_id for k in ("mini", "haiku", "flash")):
            tags.append("fast")

        if analysis.type == TaskType.CODE or "code" in model_id or "coder" in model_id:
            tags.append("code")
        if analysis.type == TaskType.CREATIVE or model.category == "Creative":
            tags.append("creative")
        if "vision" in model_id or "pixtral" in model_id:
            tags.append("vision")
        if any(k in model_id for k in ("reasoning", "reasoner", "o3", "o4")):
            tags.append("reasoning")

        if model.context_length > 100000:
            tags.append("large-context")
        if "online" in model_id or model.provider == "Perplexity":
            tags.append("web-search")

        if any(k in model_id for k in _FRESH_MARKERS):
            tags.append("new")
        if any(k in model_id for k in ("exp", "beta", "preview")):
            tags.append("experimental")

        if model.provider in ("Mistral", "Mistral AI"):
            tags.append("french")
        if model.provider == "xAI":
            tags.append("grok")
        if model.provider == "Meta":
            tags.append("open-source")

        return tags

    @staticmethod
    def _expected_speed(model: ModelDescriptor) -> ExpectedSpeed:
        if "mini" in model.id or "haiku" in model.id:
            return ExpectedSpeed.FAST
        if "gpt-5" in model.id or "claude-3-5-sonnet" in model.id:
            return ExpectedSpeed.MEDIUM
        return ExpectedSpeed.SLOW

    @staticmethod
    def _match_explanation(model: ModelDescriptor, analysis: TaskAnalysis) -> str:
        explanations = []
        if analysis.type == TaskType.CODE and "claude" in model.id:
            explanations.append("Claude excels at programming and debugging")
        if analysis.complexity == Complexity.HIGH and "mini" not in model.id:
            explanations.append("Powerful model suited to complex tasks")
        if analysis.speed == SpeedPreference.FAST and "mini" in model.id:
            explanations.append("Optimized for fast answers")
        return ". ".join(explanations) or f"{model.name} is a solid choice for this task"


# ============================================================
# 请求参数建议
# ============================================================

_NEW_GENERATION_PREFIXES = ("gpt-5", "o3-", "o4-")
_MAX_TOKENS_BY_LENGTH = {
    ResponseLength.LONG: 4000,
    ResponseLength.MEDIUM: 2000,
    ResponseLength.SHORT: 1000,
}


def suggest_parameters(model: str, analysis: TaskAnalysis) -> dict:
    """按模型代际与任务给出请求参数

    新一代模型（gpt-5 / o3- / o4- 开头）只接受 max_completion_tokens，不传 temperature；
    其余模型使用 max_tokens，并按任务类型设置 temperature。
    """
    params: dict = {"model": model}
    max_tokens = _MAX_TOKENS_BY_LENGTH[analysis.length]

    if model.startswith(_NEW_GENERATION_PREFIXES):
        params["max_completion_tokens"] = max_tokens
    else:
        params["max_tokens"] = max_tokens
        if analysis.type == TaskType.CREATIVE:
            params["temperature"] = 0.8
        elif analysis.type == TaskType.CODE:
            params["temperature"] = 0.3
        else:
            params["temperature"] = 0.7
    return params
