"""
存储模块
"""
from .news_repository import NewsRepository, PendingArticle

__all__ = ["NewsRepository", "PendingArticle"]
