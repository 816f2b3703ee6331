"""
测试公共夹具

编排层测试使用内存版仓储和爬虫替身，不访问网络和数据库。
"""
import asyncio
import itertools
from datetime import datetime
from typing import Dict, Iterable, List, Optional

import pytest

from caijing_crawler.core.config import Settings
from caijing_crawler.models.crawl_session import (
    CrawlSession,
    CrawlPhase,
    SessionStatus,
    TERMINAL_STATUSES,
)
from caijing_crawler.storage.news_repository import PendingArticle, SESSION_FIELDS
from caijing_crawler.tasks.crawl_manager import CrawlTaskManager
from caijing_crawler.tasks.task_registry import TaskStateRegistry
from caijing_crawler.tools.crawler_base import (
    ArticleDetail,
    ArticleListItem,
    ListPageResult,
    LoginRequiredError,
)

VALID_COOKIE = "PHPSESSID=valid"


def make_item(source_id: str, status: str = "通过") -> ArticleListItem:
    """构造列表页条目"""
    return ArticleListItem(
        source_id=source_id,
        url=f"https://www.ahcaijing.com/news/{source_id}.html",
        title=f"标题 {source_id}",
        category="财经",
        publish_time="2025-12-24 19:49:52",
        status=status,
    )


class FakeNewsRepository:
    """内存版仓储，接口与 NewsRepository 一致"""

    def __init__(self):
        self.news: Dict[str, dict] = {}
        self.sessions: Dict[int, CrawlSession] = {}
        self._session_ids = itertools.count(1)
        self._seq = itertools.count(1)

    def add_article(self, source_id: str, status: str = "pending", error_message: Optional[str] = None):
        self.news[source_id] = {
            "source_id": source_id,
            "source_url": f"https://www.ahcaijing.com/news/{source_id}.html",
            "title": f"标题 {source_id}",
            "status": status,
            "error_message": error_message,
            "seq": next(self._seq),
        }

    # 新闻表
    async def insert_articles(self, articles: Iterable[ArticleListItem]) -> int:
        await asyncio.sleep(0)
        inserted = 0
        for article in articles:
            if article.source_id in self.news:
                continue
            self.add_article(article.source_id)
            inserted += 1
        return inserted

    async def get_existing_article_ids(self, source_ids):
        return {source_id for source_id in source_ids if source_id in self.news}

    async def update_article_detail(self, detail: ArticleDetail) -> None:
        await asyncio.sleep(0)
        self.news[detail.source_id].update(
            title=detail.title,
            status="crawled",
            error_message=None,
        )

    async def mark_article_failed(self, source_id: str, error_message: str) -> None:
        await asyncio.sleep(0)
        self.news[source_id].update(status="failed", error_message=error_message)

    async def get_pending_articles(self, limit: int = 100) -> List[PendingArticle]:
        rows = sorted(
            (row for row in self.news.values() if row["status"] == "pending"),
            key=lambda row: row["seq"],
        )
        return [PendingArticle(row["source_id"], row["source_url"]) for row in rows[:limit]]

    async def get_pending_count(self) -> int:
        return self.count("pending")

    async def retry_all_failed(self) -> int:
        failed = [row for row in self.news.values() if row["status"] == "failed"]
        for row in failed:
            row.update(status="pending", error_message=None)
        return len(failed)

    async def get_news_stats(self):
        return {
            "total": len(self.news),
            "pending": self.count("pending"),
            "crawled": self.count("crawled"),
            "failed": self.count("failed"),
        }

    def count(self, status: str) -> int:
        return sum(1 for row in self.news.values() if row["status"] == status)

    # 会话表
    async def create_session(self, session_name, total_pages, start_page, end_page, skip_existing=True) -> int:
        session_id = next(self._session_ids)
        self.sessions[session_id] = CrawlSession(
            id=session_id,
            session_name=session_name,
            start_page=start_page,
            end_page=end_page,
            skip_existing=skip_existing,
            total_pages=total_pages,
            current_page=0,
            phase=CrawlPhase.LIST.value,
            status=SessionStatus.RUNNING.value,
            total_news=0,
            pending_news=0,
            crawled_news=0,
            failed_news=0,
            avg_speed=0,
            error_message=None,
            started_at=datetime.utcnow(),
            finished_at=None,
            updated_at=datetime.utcnow(),
        )
        return session_id

    async def update_session(self, session_id: int, **fields) -> None:
        assert set(fields) <= SESSION_FIELDS, fields
        await asyncio.sleep(0)
        row = self.sessions.get(session_id)
        if row is None:
            return
        for name, value in fields.items():
            setattr(row, name, value)
        row.updated_at = datetime.utcnow()
        if row.status in TERMINAL_STATUSES and row.finished_at is None:
            row.finished_at = datetime.utcnow()

    async def pause_session(self, session_id: int) -> bool:
        await asyncio.sleep(0)
        row = self.sessions.get(session_id)
        if row is None or row.status != SessionStatus.RUNNING.value:
            return False
        row.status = SessionStatus.PAUSED.value
        row.updated_at = datetime.utcnow()
        return True

    async def get_session(self, session_id: int) -> Optional[CrawlSession]:
        row = self.sessions.get(session_id)
        return _snapshot(row) if row is not None else None

    async def get_current_session(self) -> Optional[CrawlSession]:
        active = [
            row for row in self.sessions.values()
            if row.status in (SessionStatus.RUNNING.value, SessionStatus.PAUSED.value)
        ]
        return _snapshot(max(active, key=lambda row: row.id)) if active else None

    async def list_sessions(self, page=1, page_size=10, status=None):
        rows = [
            row for row in sorted(self.sessions.values(), key=lambda row: row.id, reverse=True)
            if not status or status == "all" or row.status == status
        ]
        start = (page - 1) * page_size
        return [_snapshot(row) for row in rows[start:start + page_size]], len(rows)


def _snapshot(row: CrawlSession) -> CrawlSession:
    """复制会话（模拟从数据库读取到的独立对象）"""
    return CrawlSession(**{column.name: getattr(row, column.name) for column in CrawlSession.__table__.columns})


class FakeListCrawler:
    """列表页爬虫替身"""

    def __init__(self, pages: Optional[Dict[int, List[ArticleListItem]]] = None, login_required_pages=(), gate=None):
        self.pages = pages or {}
        self.login_required_pages = set(login_required_pages)
        self.gate = gate
        self.calls: List[int] = []

    async def aget_list_page(self, page: int, cookie: str) -> ListPageResult:
        self.calls.append(page)
        if self.gate is not None:
            await self.gate.wait()
        await asyncio.sleep(0)
        if page in self.login_required_pages:
            raise LoginRequiredError(f"第 {page} 页需要登录")
        articles = list(self.pages.get(page, []))
        return ListPageResult(page=page, total=len(articles), articles=articles)

    async def acheck_login_status(self, cookie: str) -> bool:
        return cookie == VALID_COOKIE


class FakeDetailCrawler:
    """详情页爬虫替身，记录最大并发数"""

    def __init__(self, failing_ids=(), delay: float = 0):
        self.failing_ids = set(failing_ids)
        self.delay = delay
        self.calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def aget_article_detail(self, source_id: str, url: str) -> ArticleDetail:
        self.calls.append(source_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if source_id in self.failing_ids:
                raise RuntimeError(f"detail page broken: {source_id}")
            return ArticleDetail(
                source_id=source_id,
                title=f"详情 {source_id}",
                content="<p>正文</p>",
                content_text="正文",
            )
        finally:
            self.in_flight -= 1


@pytest.fixture
def test_settings() -> Settings:
    """无延迟的测试配置"""
    return Settings(
        CRAWL_LIST_PAGE_DELAY=0,
        CRAWL_DETAIL_PAGE_DELAY=0,
        CRAWL_ITEM_DELAY=0,
        CRAWL_CONCURRENCY=3,
        CRAWL_BATCH_SIZE=4,
        CRAWL_MAX_PAGES_PER_TASK=10,
    )


@pytest.fixture
def repository() -> FakeNewsRepository:
    return FakeNewsRepository()


@pytest.fixture
def registry() -> TaskStateRegistry:
    return TaskStateRegistry()


@pytest.fixture
def make_manager(repository, registry, test_settings):
    """按需组装管理器"""
    def _make(list_crawler=None, detail_crawler=None, registry_override=None):
        return CrawlTaskManager(
            repository=repository,
            list_crawler=list_crawler or FakeListCrawler(),
            detail_crawler=detail_crawler or FakeDetailCrawler(),
            registry=registry_override if registry_override is not None else registry,
            config=test_settings,
        )
    return _make
