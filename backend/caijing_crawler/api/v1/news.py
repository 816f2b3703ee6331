"""
新闻查询 API 路由
"""
import logging
from typing import List, Optional
from datetime import date, datetime, time, timedelta
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, asc, desc, func, or_

from ...core.config import settings
from ...core.database import get_db
from ...models.news import News
from ...storage.news_repository import BEIJING_OFFSET

logger = logging.getLogger(__name__)

router = APIRouter()

# 允许排序的字段
ORDER_FIELDS = {
    "publish_time": News.publish_time,
    "created_at": News.created_at,
    "crawl_time": News.crawl_time,
    "source_id": News.source_id,
    "id": News.id,
}


# ========== Pydantic Models ==========

class NewsResponse(BaseModel):
    """新闻响应模型"""
    model_config = {"from_attributes": True}

    id: int
    source_id: str
    title: str
    source_url: str
    category: Optional[str] = None
    region: Optional[str] = None
    author: Optional[str] = None
    source_name: Optional[str] = None
    status: str
    error_message: Optional[str] = None
    publish_time: Optional[datetime] = None
    crawl_time: Optional[datetime] = None
    created_at: datetime


class NewsDetailResponse(NewsResponse):
    """新闻详情响应模型"""
    content: Optional[str] = None
    content_text: Optional[str] = None


class NewsListResponse(BaseModel):
    """新闻列表响应模型"""
    success: bool
    data: List[NewsResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class FilterOptions(BaseModel):
    """筛选项"""
    authors: List[str]
    regions: List[str]
    source_names: List[str]
    categories: List[str]


class FilterOptionsResponse(BaseModel):
    """筛选项响应模型"""
    success: bool
    data: FilterOptions


# ========== API Endpoints ==========

@router.get("/", response_model=NewsListResponse, summary="分页查询新闻")
async def get_news_list(
    page: int = Query(1, ge=1, description="页码"),
    page_size: int = Query(20, ge=1, le=settings.MAX_NEWS_PER_REQUEST, description="每页条数"),
    status: Optional[str] = Query(None, description="按爬取状态筛选（pending, crawled, failed）"),
    category: Optional[str] = Query(None, description="按分类筛选"),
    region: Optional[str] = Query(None, description="按地区筛选"),
    source_name: Optional[str] = Query(None, description="按来源筛选"),
    author: Optional[str] = Query(None, description="作者模糊搜索"),
    title: Optional[str] = Query(None, description="标题模糊搜索"),
    keyword: Optional[str] = Query(None, description="标题或作者模糊搜索"),
    start_date: Optional[date] = Query(None, description="发布日期起（北京时间，含）"),
    end_date: Optional[date] = Query(None, description="发布日期止（北京时间，含）"),
    order_by: str = Query("publish_time", description="排序字段"),
    order: str = Query("desc", pattern="^(asc|desc)$", description="排序方向"),
    db: AsyncSession = Depends(get_db)
):
    """
    分页查询新闻，默认按发布时间倒序

    - **status / category / region / source_name**: 精确筛选
    - **author / title**: 模糊搜索
    - **keyword**: 标题或作者包含的关键词
    - **start_date / end_date**: 发布日期范围
    - **order_by**: publish_time, created_at, crawl_time, source_id, id
    """
    order_column = ORDER_FIELDS.get(order_by)
    if order_column is None:
        raise HTTPException(status_code=400, detail=f"Unsupported order_by: {order_by}")

    conditions = []
    if status:
        conditions.append(News.status == status)
    if category:
        conditions.append(News.category == category)
    if region:
        conditions.append(News.region == region)
    if source_name:
        conditions.append(News.source_name == source_name)
    if author:
        conditions.append(News.author.ilike(f"%{author}%"))
    if title:
        conditions.append(News.title.ilike(f"%{title}%"))
    if keyword:
        pattern = f"%{keyword}%"
        conditions.append(or_(News.title.ilike(pattern), News.author.ilike(pattern)))
    if start_date:
        conditions.append(News.publish_time >= datetime.combine(start_date, time.min) - BEIJING_OFFSET)
    if end_date:
        end = datetime.combine(end_date + timedelta(days=1), time.min) - BEIJING_OFFSET
        conditions.append(News.publish_time < end)

    direction = asc if order == "asc" else desc
    total = await db.scalar(select(func.count(News.id)).where(*conditions)) or 0
    result = await db.execute(
        select(News)
        .where(*conditions)
        .order_by(direction(order_column), direction(News.id))
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    news_list = result.scalars().all()

    return NewsListResponse(
        success=True,
        data=[NewsResponse.model_validate(news) for news in news_list],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=(total + page_size - 1) // page_size,
    )


@router.get("/filter-options", response_model=FilterOptionsResponse, summary="获取筛选项")
async def get_filter_options(db: AsyncSession = Depends(get_db)):
    """
    作者、地区、来源、分类的去重取值（升序）
    """
    async def distinct_values(column) -> List[str]:
        result = await db.execute(
            select(column).where(column.isnot(None), column != "").distinct().order_by(column)
        )
        return list(result.scalars().all())

    return FilterOptionsResponse(
        success=True,
        data=FilterOptions(
            authors=await distinct_values(News.author),
            regions=await distinct_values(News.region),
            source_names=await distinct_values(News.source_name),
            categories=await distinct_values(News.category),
        ),
    )


@router.get("/{news_id}", response_model=NewsDetailResponse, summary="获取新闻详情")
async def get_news_detail(
    news_id: int,
    db: AsyncSession = Depends(get_db)
):
    """
    获取新闻详情（含正文）

    - **news_id**: 新闻ID
    """
    news = await db.get(News, news_id)
    if not news:
        raise HTTPException(status_code=404, detail="News not found")
    return NewsDetailResponse.model_validate(news)
