"""ModelRecommender / analyze_prompt / suggest_parameters 单元测试"""

import pytest
from chatelix.dispatch import (
    ModelCatalog,
    ModelDescriptor,
    ModelPricing,
    ModelRecommender,
    analyze_prompt,
    default_catalog,
    suggest_parameters,
)
from chatelix.dispatch.enums import (
    Budget,
    Complexity,
    ExpectedSpeed,
    ResponseLength,
    SpeedPreference,
    TaskType,
)
from chatelix.dispatch.models import TaskAnalysis

CODE_PROMPT = "Write a Python function to sort a list"


def _descriptor(model_id: str, prompt: float = 0.001, **kwargs) -> ModelDescriptor:
    return ModelDescriptor(
        id=model_id,
        name=kwargs.pop("name", model_id),
        provider=kwargs.pop("provider", "Test"),
        category=kwargs.pop("category", ""),
        pricing=ModelPricing(prompt=prompt, completion=prompt),
        context_length=kwargs.pop("context_length", 8000),
    )


@pytest.fixture
def recommender() -> ModelRecommender:
    return ModelRecommender(default_catalog())


class TestAnalyzePrompt:
    """Prompt 分类"""

    @pytest.mark.parametrize(
        "prompt, expected",
        [
            (CODE_PROMPT, TaskType.CODE),
            ("Write a short story about a dragon", TaskType.CREATIVE),
            ("Compare these two approaches", TaskType.REASONING),
            ("Describe this photo", TaskType.VISION),
            ("Translate this into French", TaskType.TRANSLATION),
            ("Solve this equation", TaskType.MATH),
            ("Hello there", TaskType.GENERAL),
        ],
    )
    def test_task_type(self, prompt: str, expected: TaskType):
        assert analyze_prompt(prompt).type == expected

    def test_first_rule_wins(self):
        """同时含 code 与 story 关键字时按规则表顺序归为 code"""
        assert analyze_prompt("a story about code").type == TaskType.CODE

    def test_complexity(self):
        assert analyze_prompt("hi").complexity == Complexity.LOW
        assert analyze_prompt("please explain this").complexity == Complexity.MEDIUM
        assert analyze_prompt("x" * 101).complexity == Complexity.MEDIUM
        assert analyze_prompt("a detailed plan").complexity == Complexity.HIGH
        assert analyze_prompt("x" * 501).complexity == Complexity.HIGH

    def test_length(self):
        assert analyze_prompt("give a complete answer").length == ResponseLength.LONG
        assert analyze_prompt("a brief answer").length == ResponseLength.SHORT
        assert analyze_prompt("an answer").length == ResponseLength.MEDIUM

    def test_preferences_default_to_balanced(self):
        analysis = analyze_prompt(CODE_PROMPT)
        assert analysis.budget == Budget.BALANCED
        assert analysis.speed == SpeedPreference.BALANCED

    def test_preferences_override(self):
        analysis = analyze_prompt(CODE_PROMPT, budget=Budget.ECONOMY, speed=SpeedPreference.FAST)
        assert analysis.budget == Budget.ECONOMY
        assert analysis.speed == SpeedPreference.FAST


class TestRecommendations:
    """打分与排序"""

    def test_code_prompt_prefers_codestral(self, recommender):
        analysis = analyze_prompt(CODE_PROMPT)

        ranked = recommender.get_recommendations(analysis, 3)

        assert ranked[0].model.id == "mistralai/codestral-2405"
        assert ranked[0].model.category == "Code"
        assert ranked[0].score == 95
        assert recommender.get_best_model_for_task(analysis) == "mistralai/codestral-2405"
        assert "code" in ranked[0].tags

    def test_deterministic_and_bounded(self, recommender):
        for prompt in (CODE_PROMPT, "Write a detailed story", "analyze this complex image"):
            for budget in Budget:
                for speed in SpeedPreference:
                    analysis = analyze_prompt(prompt, budget=budget, speed=speed)
                    first = recommender.get_recommendations(analysis, 10)
                    second = recommender.get_recommendations(analysis, 10)
                    assert first == second
                    assert all(0 <= r.score <= 100 for r in first)
                    scores = [r.score for r in first]
                    assert scores == sorted(scores, reverse=True)

    def test_ties_keep_catalog_order(self):
        catalog = ModelCatalog([_descriptor("vendor/a"), _descriptor("vendor/b")])
        ranked = ModelRecommender(catalog).get_recommendations(TaskAnalysis(), 2)
        assert [r.model.id for r in ranked] == ["vendor/a", "vendor/b"]

    def test_max_results(self, recommender):
        analysis = analyze_prompt(CODE_PROMPT)
        assert len(recommender.get_recommendations(analysis, 5)) == 5
        assert recommender.get_recommendations(analysis, 0) == []

    def test_empty_catalog_default(self):
        recommender = ModelRecommender(ModelCatalog([]))
        assert recommender.get_recommendations(TaskAnalysis()) == []
        assert recommender.get_best_model_for_task(TaskAnalysis()) == "openai/gpt-5-mini-2025-08-07"


class TestCalculateScore:
    """单项加分"""

    def test_base_score(self):
        assert ModelRecommender.calculate_score(_descriptor("vendor/plain"), TaskAnalysis()) == 50

    def test_score_is_clamped(self):
        model = _descriptor("openai/o3-2025-04-16")
        analysis = TaskAnalysis(
            type=TaskType.REASONING,
            complexity=Complexity.HIGH,
            budget=Budget.PREMIUM,
        )
        # 50 + 50 + 15 + 10 + 15 > 100
        assert ModelRecommender.calculate_score(model, analysis) == 100

    def test_economy_budget_prefers_free(self):
        analysis = TaskAnalysis(budget=Budget.ECONOMY)
        free = ModelRecommender.calculate_score(_descriptor("vendor/x", prompt=0), analysis)
        cheap = ModelRecommender.calculate_score(_descriptor("vendor/y", prompt=0.0004), analysis)
        assert (free, cheap) == (75, 70)

    def test_low_complexity_prefers_small_models(self):
        analysis = TaskAnalysis(complexity=Complexity.LOW)
        assert ModelRecommender.calculate_score(_descriptor("vendor/x-mini"), analysis) == 60
        assert ModelRecommender.calculate_score(_descriptor("vendor/x-large"), analysis) == 50

    def test_estimated_cost_by_length(self):
        model = _descriptor("vendor/x", prompt=0.001)
        cost = ModelRecommender.estimate_cost(model, TaskAnalysis(length=ResponseLength.LONG))
        assert cost == pytest.approx(4.0)

    def test_expected_speed(self, recommender):
        catalog = recommender.catalog
        assert (
            ModelRecommender._expected_speed(catalog.find_by_id("openai/gpt-4o-mini"))
            == ExpectedSpeed.FAST
        )
        assert (
            ModelRecommender._expected_speed(catalog.find_by_id("openai/gpt-4o"))
            == ExpectedSpeed.SLOW
        )


class TestSuggestParameters:
    """请求参数建议"""

    @pytest.mark.parametrize("model", ["gpt-5-mini-2025-08-07", "o3-mini", "o4-mini"])
    def test_new_generation_models(self, model: str):
        params = suggest_parameters(model, TaskAnalysis(length=ResponseLength.LONG))
        assert params == {"model": model, "max_completion_tokens": 4000}

    @pytest.mark.parametrize(
        "task_type, temperature",
        [(TaskType.CREATIVE, 0.8), (TaskType.CODE, 0.3), (TaskType.GENERAL, 0.7)],
    )
    def test_temperature_by_task(self, task_type: TaskType, temperature: float):
        params = suggest_parameters("openai/gpt-4o", TaskAnalysis(type=task_type))
        assert params["temperature"] == temperature
        assert params["max_tokens"] == 2000

    def test_short_answers(self):
        params = suggest_parameters("openai/gpt-4o", TaskAnalysis(length=ResponseLength.SHORT))
        assert params["max_tokens"] == 1000
