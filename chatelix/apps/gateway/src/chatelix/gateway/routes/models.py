"""模型目录与推荐路由

GET  /api/models: 列出目录中的模型（可按 category 过滤），附带路由结果。
GET  /api/models/{model_id}: 查询单个模型，不存在返回 404。
POST /api/models/recommend: 分析 prompt，返回排序后的推荐与建议参数。
"""

from chatelix.dispatch import (
    ModelCatalog,
    ModelDescriptor,
    ModelRecommendation,
    ModelRecommender,
    TaskAnalysis,
    analyze_prompt,
    endpoint_for,
    resolve_provider,
    suggest_parameters,
)
from chatelix.dispatch.enums import Budget, SpeedPreference
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse

from ..deps import get_catalog, get_recommender

router = APIRouter()


class ModelEntry(BaseModel):
    """目录条目 + 路由结果"""

    model: ModelDescriptor
    provider_tag: str
    endpoint: str


class ModelListResponse(BaseModel):
    """目录列表响应"""

    models: list[ModelEntry]
    total: int


class RecommendRequest(BaseModel):
    """推荐请求体"""

    prompt: str = Field(description="待分析的 prompt 文本")
    max_results: int = Field(default=3, ge=1, le=20, description="最多返回的推荐数")
    budget: Budget = Field(default=Budget.BALANCED, description="预算偏好")
    speed: SpeedPreference = Field(default=SpeedPreference.BALANCED, description="速度偏好")


class RecommendResponse(BaseModel):
    """推荐响应"""

    analysis: TaskAnalysis
    recommendations: list[ModelRecommendation]
    best_model: str
    parameters: dict


def _entry(model: ModelDescriptor) -> ModelEntry:
    provider = resolve_provider(model.id)
    return ModelEntry(model=model, provider_tag=provider.value, endpoint=endpoint_for(provider))


@router.get("/api/models", response_model=ModelListResponse)
async def list_models(
    category: str | None = Query(default=None, description="按展示分类过滤"),
    catalog: ModelCatalog = Depends(get_catalog),
):
    """列出目录中的模型（保持目录顺序）"""
    models = [m for m in catalog if category is None or m.category == category]
    return ModelListResponse(models=[_entry(m) for m in models], total=len(models))


@router.post("/api/models/recommend", response_model=RecommendResponse)
async def recommend_models(
    body: RecommendRequest,
    recommender: ModelRecommender = Depends(get_recommender),
):
    """分析 prompt 并返回推荐模型"""
    analysis = analyze_prompt(body.prompt, budget=body.budget, speed=body.speed)
    recommendations = recommender.get_recommendations(analysis, max_results=body.max_results)
    best_model = recommender.get_best_model_for_task(analysis)
    return RecommendResponse(
        analysis=analysis,
        recommendations=recommendations,
        best_model=best_model,
        parameters=suggest_parameters(best_model, analysis),
    )


@router.get("/api/models/{model_id:path}", response_model=ModelEntry)
async def get_model(
    model_id: str,
    catalog: ModelCatalog = Depends(get_catalog),
):
    """查询单个模型"""
    model = catalog.find_by_id(model_id)
    if model is None:
        return JSONResponse(
            status_code=404,
            content={
                "error": {
                    "code": "MODEL_NOT_FOUND",
                    "message": f"Model with id {model_id} does not exist",
                }
            },
        )
    return _entry(model)
