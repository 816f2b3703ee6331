"""
新闻统计分析 API 路由
"""
import logging
from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from ...models.database import AsyncSessionLocal
from ...storage.news_repository import NewsRepository

logger = logging.getLogger(__name__)

router = APIRouter()


class StatsResponse(BaseModel):
    """统计响应模型"""
    success: bool
    data: Optional[Dict[str, Any]] = None


def get_news_repository() -> NewsRepository:
    """新闻仓储（FastAPI 依赖注入）"""
    return NewsRepository(AsyncSessionLocal)


@router.get("/overview", response_model=StatsResponse, summary="概览统计")
async def get_overview(repository: NewsRepository = Depends(get_news_repository)):
    """
    总数、各状态数量、今日/本周新增及成功率
    """
    return StatsResponse(success=True, data=await repository.get_overview_stats())


@router.get("/distribution", response_model=StatsResponse, summary="分布统计")
async def get_distribution(repository: NewsRepository = Depends(get_news_repository)):
    """
    地区分布及来源、作者前 10
    """
    return StatsResponse(success=True, data=await repository.get_distribution(limit=10))


@router.get("/trend", response_model=StatsResponse, summary="趋势统计")
async def get_trend(
    days: int = Query(30, ge=1, le=365, description="统计天数"),
    repository: NewsRepository = Depends(get_news_repository),
):
    """
    每日入库趋势与按月发布趋势

    - **days**: 统计最近多少天
    """
    return StatsResponse(success=True, data=await repository.get_trend(days=days))


@router.get("/content", response_model=StatsResponse, summary="内容分析")
async def get_content(repository: NewsRepository = Depends(get_news_repository)):
    """
    正文长度分布与含图片文章数量
    """
    return StatsResponse(success=True, data=await repository.get_content_stats())
