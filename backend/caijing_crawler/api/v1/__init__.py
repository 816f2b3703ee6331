"""
API v1 模块
"""
from fastapi import APIRouter
from . import crawl, news, stats

# 创建主路由器
api_router = APIRouter()

# 注册子路由
api_router.include_router(crawl.router, prefix="/crawl", tags=["crawl"])
api_router.include_router(news.router, prefix="/news", tags=["news"])
api_router.include_router(stats.router, prefix="/stats", tags=["stats"])

__all__ = ["api_router"]
