"""错误分析路由

POST /api/errors/analyze: 对任意错误文本做分类，返回恢复建议与面向用户的提示。
"""

from chatelix.dispatch import ErrorClassifier, ErrorInfo, RecoveryAction, RetryStrategy
from fastapi import APIRouter
from pydantic import BaseModel, Field

router = APIRouter()


class AnalyzeErrorRequest(BaseModel):
    """错误分析请求体"""

    error: str = Field(description="原始错误文本")


class AnalyzeErrorResponse(BaseModel):
    """错误分析响应"""

    info: ErrorInfo
    recovery: RecoveryAction
    retry_strategy: RetryStrategy
    user_message: str
    show_to_user: bool


@router.post("/api/errors/analyze", response_model=AnalyzeErrorResponse)
async def analyze_error(body: AnalyzeErrorRequest):
    """错误分类 + 恢复动作 + 用户提示"""
    info = ErrorClassifier.analyze_error(body.error)
    return AnalyzeErrorResponse(
        info=info,
        recovery=ErrorClassifier.get_recovery_action(info),
        retry_strategy=ErrorClassifier.get_retry_strategy(info),
        user_message=ErrorClassifier.format_user_message(info),
        show_to_user=ErrorClassifier.should_show_to_user(info),
    )
