"""
爬取任务模块
"""
from .task_registry import TaskStateRegistry, TaskRunState
from .progress import calculate_speed, estimate_remaining_minutes
from .detail_pool import DetailCrawlPool, DetailOutcome
from .crawl_manager import (
    CrawlTaskManager,
    CrawlProgress,
    CrawlValidationError,
    get_crawl_manager,
    shutdown_crawl_manager,
)

__all__ = [
    "TaskStateRegistry",
    "TaskRunState",
    "calculate_speed",
    "estimate_remaining_minutes",
    "DetailCrawlPool",
    "DetailOutcome",
    "CrawlTaskManager",
    "CrawlProgress",
    "CrawlValidationError",
    "get_crawl_manager",
    "shutdown_crawl_manager",
]
