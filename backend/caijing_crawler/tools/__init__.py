"""
工具模块
"""
from .crawler_base import (
    BaseCrawler,
    ArticleListItem,
    ListPageResult,
    ArticleDetail,
    LoginRequiredError,
    parse_publish_time,
)
from .list_crawler import ListPageCrawler, filter_valid_articles, is_login_required
from .detail_crawler import DetailPageCrawler, analyze_region, extract_author

__all__ = [
    "BaseCrawler",
    "ArticleListItem",
    "ListPageResult",
    "ArticleDetail",
    "LoginRequiredError",
    "parse_publish_time",
    "ListPageCrawler",
    "filter_valid_articles",
    "is_login_required",
    "DetailPageCrawler",
    "analyze_region",
    "extract_author",
]
