"""
数据模型模块
"""
from .database import Base, AsyncSessionLocal, async_engine, init_db
from .news import News, ArticleStatus
from .crawl_session import CrawlSession, CrawlPhase, SessionStatus, TERMINAL_STATUSES

__all__ = [
    "Base",
    "AsyncSessionLocal",
    "async_engine",
    "init_db",
    "News",
    "ArticleStatus",
    "CrawlSession",
    "CrawlPhase",
    "SessionStatus",
    "TERMINAL_STATUSES",
]
