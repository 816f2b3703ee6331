"""
爬取任务 API 路由
"""
import logging
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Query
from pydantic import BaseModel, Field

from ...tasks.crawl_manager import CrawlTaskManager, CrawlValidationError, get_crawl_manager

logger = logging.getLogger(__name__)

router = APIRouter()


# Pydantic 模型
class StartCrawlRequest(BaseModel):
    """启动爬取请求模型"""
    start_page: int = Field(..., ge=1, description="起始页码")
    end_page: int = Field(..., ge=1, description="结束页码")
    skip_existing: bool = Field(default=True, description="是否跳过已存在的文章")


class SessionRequest(BaseModel):
    """会话操作请求模型"""
    session_id: int = Field(..., description="会话ID")


class CrawlResponse(BaseModel):
    """通用响应模型"""
    success: bool
    message: Optional[str] = None
    data: Optional[Dict[str, Any]] = None


class HistoryResponse(BaseModel):
    """爬取历史响应模型"""
    success: bool
    data: List[Dict[str, Any]]
    total: int
    page: int
    page_size: int
    total_pages: int


# 依赖
async def require_site_cookie(
    x_site_cookie: Optional[str] = Header(None, description="原站登录 Cookie"),
    manager: CrawlTaskManager = Depends(get_crawl_manager),
) -> str:
    """校验原站登录态，返回 Cookie"""
    if not x_site_cookie:
        raise HTTPException(status_code=401, detail="请先登录")
    if not await manager.list_crawler.acheck_login_status(x_site_cookie):
        raise HTTPException(status_code=401, detail="登录已过期，请重新登录")
    return x_site_cookie


# API 端点
@router.post("/start", response_model=CrawlResponse)
async def start_crawl(
    request: StartCrawlRequest,
    cookie: str = Depends(require_site_cookie),
    manager: CrawlTaskManager = Depends(get_crawl_manager),
):
    """
    启动爬取任务（立即返回，任务在后台执行）

    - **start_page**: 起始页码
    - **end_page**: 结束页码
    - **skip_existing**: 是否跳过已存在的文章
    """
    try:
        progress = await manager.start(
            start_page=request.start_page,
            end_page=request.end_page,
            skip_existing=request.skip_existing,
            cookie=cookie,
        )
    except CrawlValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return CrawlResponse(success=True, message="爬取任务已启动", data=progress.to_dict())


@router.post("/pause", response_model=CrawlResponse)
async def pause_crawl(
    request: SessionRequest,
    manager: CrawlTaskManager = Depends(get_crawl_manager),
):
    """暂停运行中的任务"""
    if not await manager.pause(request.session_id):
        raise HTTPException(status_code=400, detail="任务不存在或无法暂停")
    return CrawlResponse(success=True, message="任务已暂停")


@router.post("/resume", response_model=CrawlResponse)
async def resume_crawl(
    request: SessionRequest,
    cookie: str = Depends(require_site_cookie),
    manager: CrawlTaskManager = Depends(get_crawl_manager),
):
    """继续已暂停的任务"""
    if not await manager.resume(request.session_id, cookie):
        raise HTTPException(status_code=400, detail="任务不存在或无法继续")
    return CrawlResponse(success=True, message="任务已继续")


@router.get("/status/{session_id}", response_model=CrawlResponse)
async def get_crawl_status(
    session_id: int,
    manager: CrawlTaskManager = Depends(get_crawl_manager),
):
    """获取任务进度"""
    progress = await manager.get_status(session_id)
    if progress is None:
        raise HTTPException(status_code=404, detail="任务不存在")
    return CrawlResponse(success=True, data=progress.to_dict())


@router.post("/retry", response_model=CrawlResponse)
async def retry_failed(
    cookie: str = Depends(require_site_cookie),
    manager: CrawlTaskManager = Depends(get_crawl_manager),
):
    """将所有失败文章重置为待爬取"""
    result = await manager.retry_failed_articles()
    return CrawlResponse(
        success=True,
        message=f"已重置 {result['count']} 篇失败文章为待爬取状态",
        data=result,
    )


@router.get("/current", response_model=CrawlResponse)
async def get_current_crawl(
    manager: CrawlTaskManager = Depends(get_crawl_manager),
):
    """获取最近一个运行中或已暂停的任务"""
    progress = await manager.get_current_task()
    return CrawlResponse(success=True, data=progress.to_dict() if progress else None)


@router.get("/history", response_model=HistoryResponse)
async def get_crawl_history(
    page: int = Query(1, ge=1, description="页码"),
    page_size: int = Query(10, ge=1, le=100, description="每页条数"),
    status: Optional[str] = Query(None, description="按状态筛选（all 表示全部）"),
    manager: CrawlTaskManager = Depends(get_crawl_manager),
):
    """获取爬取历史"""
    sessions, total = await manager.repository.list_sessions(page=page, page_size=page_size, status=status)
    return HistoryResponse(
        success=True,
        data=[crawl_session.to_dict() for crawl_session in sessions],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=(total + page_size - 1) // page_size,
    )


@router.get("/stats", response_model=CrawlResponse)
async def get_crawl_stats(
    manager: CrawlTaskManager = Depends(get_crawl_manager),
):
    """获取新闻爬取统计"""
    stats = await manager.repository.get_news_stats()
    return CrawlResponse(success=True, data=stats)
