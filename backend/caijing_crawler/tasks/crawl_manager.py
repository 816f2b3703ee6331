"""
爬取任务管理器

两阶段爬取：
1. 列表阶段：按页码顺序请求列表页，过滤有效文章后幂等入库（status=pending）
2. 详情阶段：分批拉取 pending 文章，并发爬取详情并更新状态

任务在后台 asyncio.Task 中执行，start / resume 立即返回；
任务内的任何异常都会记录到会话（status=failed），不会抛给调用方。
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, Optional

from ..core.config import Settings, settings as default_settings
from ..models.crawl_session import CrawlPhase, CrawlSession, SessionStatus
from ..tools.crawler_base import LoginRequiredError
from ..tools.list_crawler import filter_valid_articles
from .detail_pool import DetailCrawlPool, OUTCOME_CRAWLED, OUTCOME_FAILED
from .progress import calculate_speed, estimate_remaining_minutes
from .task_registry import TaskStateRegistry

logger = logging.getLogger(__name__)


class CrawlValidationError(Exception):
    """爬取参数无效（页码范围错误或超过单次任务上限）"""
    pass


@dataclass
class CrawlProgress:
    """爬取进度快照"""
    session_id: int
    status: str
    phase: str
    current_page: int
    total_pages: int
    total_news: int = 0
    pending_news: int = 0
    crawled_news: int = 0
    failed_news: int = 0
    avg_speed: float = 0
    estimated_time: int = 0
    started_at: Optional[datetime] = None
    updated_at: datetime = field(default_factory=datetime.utcnow)
    error: Optional[str] = None

    @classmethod
    def from_session(cls, crawl_session: CrawlSession) -> "CrawlProgress":
        phase = crawl_session.phase or CrawlPhase.LIST.value
        pending = crawl_session.pending_news or 0
        avg_speed = crawl_session.avg_speed or 0
        estimated = 0
        if phase == CrawlPhase.DETAIL.value:
            estimated = estimate_remaining_minutes(pending, avg_speed)
        return cls(
            session_id=crawl_session.id,
            status=crawl_session.status,
            phase=phase,
            current_page=crawl_session.current_page or 0,
            total_pages=crawl_session.total_pages,
            total_news=crawl_session.total_news or 0,
            pending_news=pending,
            crawled_news=crawl_session.crawled_news or 0,
            failed_news=crawl_session.failed_news or 0,
            avg_speed=avg_speed,
            estimated_time=estimated,
            started_at=crawl_session.started_at,
            updated_at=crawl_session.updated_at or crawl_session.started_at or datetime.utcnow(),
            error=crawl_session.error_message,
        )

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result["started_at"] = self.started_at.isoformat() if self.started_at else None
        result["updated_at"] = self.updated_at.isoformat()
        return result


class CrawlTaskManager:
    """
    爬取任务管理器

    Args:
        repository: 新闻/会话仓储（见 storage.news_repository.NewsRepository）
        list_crawler: 提供 aget_list_page(page, cookie)
        detail_crawler: 提供 aget_article_detail(source_id, url)
        registry: 任务状态注册表，默认新建
        config: 配置，默认全局 settings
    """

    def __init__(
        self,
        repository,
        list_crawler,
        detail_crawler,
        registry: Optional[TaskStateRegistry] = None,
        config: Optional[Settings] = None,
    ):
        self.repository = repository
        self.list_crawler = list_crawler
        self.detail_crawler = detail_crawler
        self.registry = registry if registry is not None else TaskStateRegistry()
        self.config = config or default_settings
        self._tasks: Dict[int, asyncio.Task] = {}

    # ==================== 对外操作 ====================

    async def start(
        self,
        start_page: int,
        end_page: int,
        skip_existing: bool = True,
        cookie: str = "",
    ) -> CrawlProgress:
        """
        启动爬取任务（不等待完成）

        Raises:
            CrawlValidationError: 页码范围无效或超过单次任务上限
        """
        if start_page < 1 or end_page < start_page:
            raise CrawlValidationError("无效的页码范围")

        total_pages = end_page - start_page + 1
        max_pages = self.config.CRAWL_MAX_PAGES_PER_TASK
        if total_pages > max_pages:
            raise CrawlValidationError(f"单次任务最多 {max_pages} 页")

        session_id = await self.repository.create_session(
            session_name=f"爬取 {start_page}-{end_page} 页",
            total_pages=total_pages,
            start_page=start_page,
            end_page=end_page,
            skip_existing=skip_existing,
        )
        run_id = self.registry.begin_run(session_id)
        logger.info(f"[Session {session_id}] 🚀 创建爬取任务: 第 {start_page}-{end_page} 页")

        self._launch(session_id, run_id, cookie)

        return CrawlProgress(
            session_id=session_id,
            status=SessionStatus.RUNNING.value,
            phase=CrawlPhase.LIST.value,
            current_page=0,
            total_pages=total_pages,
            started_at=datetime.utcnow(),
        )

    async def pause(self, session_id: int) -> bool:
        """暂停运行中的任务，任务不存在或未在运行时返回 False"""
        if not self.registry.transition(session_id, SessionStatus.RUNNING.value, SessionStatus.PAUSED.value):
            return False
        if not await self.repository.pause_session(session_id):
            logger.warning(f"[Session {session_id}] 暂停失败：会话记录已不在运行状态")
            return False
        logger.info(f"[Session {session_id}] ⏸️  任务已暂停")
        return True

    async def resume(self, session_id: int, cookie: str) -> bool:
        """
        继续已暂停的任务（调用方需先验证 cookie 有效）
        从会话记录的阶段继续：列表阶段接着下一页，详情阶段直接继续拉取 pending 文章
        """
        crawl_session = await self.repository.get_session(session_id)
        if crawl_session is None or crawl_session.status != SessionStatus.PAUSED.value:
            return False
        if crawl_session.phase == CrawlPhase.COMPLETED.value or crawl_session.finished_at is not None:
            logger.warning(f"[Session {session_id}] 会话已结束，无法继续")
            return False

        run_id = self.registry.begin_run(session_id)
        await self.repository.update_session(session_id, status=SessionStatus.RUNNING.value)
        logger.info(f"[Session {session_id}] ▶️  任务继续 (phase={crawl_session.phase})")

        self._launch(session_id, run_id, cookie)
        return True

    async def get_status(self, session_id: int) -> Optional[CrawlProgress]:
        """获取任务进度，会话不存在时返回 None"""
        crawl_session = await self.repository.get_session(session_id)
        if crawl_session is None:
            return None
        return CrawlProgress.from_session(crawl_session)

    async def get_current_task(self) -> Optional[CrawlProgress]:
        """获取最近一个运行中或已暂停的任务"""
        crawl_session = await self.repository.get_current_session()
        if crawl_session is None:
            return None
        return CrawlProgress.from_session(crawl_session)

    async def retry_failed_articles(self) -> Dict[str, int]:
        """将所有失败文章重置为待爬取"""
        count = await self.repository.retry_all_failed()
        logger.info(f"🔁 已重置 {count} 篇失败文章为待爬取状态")
        return {"count": count}

    async def join(self, session_id: int) -> None:
        """等待会话的后台任务结束"""
        task = self._tasks.get(session_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def shutdown(self) -> None:
        """取消所有后台任务（进程退出时调用）"""
        tasks = [task for task in self._tasks.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Cancelled {len(tasks)} crawl task(s)")

    # ==================== 后台执行 ====================

    def _launch(self, session_id: int, run_id: int, cookie: str) -> None:
        previous = self._tasks.get(session_id)
        task = asyncio.create_task(
            self._run_guarded(session_id, run_id, cookie, previous),
            name=f"crawl-session-{session_id}-run-{run_id}",
        )
        self._tasks[session_id] = task
        task.add_done_callback(lambda t: self._forget(session_id, t))

    def _forget(self, session_id: int, task: asyncio.Task) -> None:
        if self._tasks.get(session_id) is task:
            del self._tasks[session_id]

    async def _run_guarded(
        self,
        session_id: int,
        run_id: int,
        cookie: str,
        previous: Optional[asyncio.Task],
    ) -> None:
        """执行任务并把未处理的异常记录为会话失败"""
        try:
            if previous is not None and not previous.done():
                # 上一次运行还在处理当前批次，等它结束后再继续
                await asyncio.gather(previous, return_exceptions=True)
            await self._execute_crawl_task(session_id, run_id, cookie)
        except asyncio.CancelledError:
            logger.info(f"[Session {session_id}] 后台任务已取消")
            raise
        except Exception as e:
            logger.exception(f"[Session {session_id}] ❌ 任务执行出错: {e}")
            await self._mark_failed(session_id, run_id, str(e) or type(e).__name__)

    async def _mark_failed(self, session_id: int, run_id: int, error_message: str) -> None:
        if self.registry.is_running(session_id) and not self.registry.is_running(session_id, run_id):
            # 已有新的运行接管该会话
            return
        self.registry.update(session_id, status=SessionStatus.FAILED.value)
        try:
            await self.repository.update_session(
                session_id,
                status=SessionStatus.FAILED.value,
                error_message=error_message[:1000],
            )
        except Exception as e:
            logger.error(f"[Session {session_id}] 无法记录失败状态: {e}", exc_info=True)

    async def _execute_crawl_task(self, session_id: int, run_id: int, cookie: str) -> None:
        if not self.registry.is_running(session_id, run_id):
            return

        crawl_session = await self.repository.get_session(session_id)
        if crawl_session is None:
            raise RuntimeError(f"会话 {session_id} 不存在")

        if crawl_session.phase == CrawlPhase.LIST.value:
            finished = await self._crawl_list_pages(session_id, run_id, crawl_session, cookie)
            if not finished:
                return

        if crawl_session.phase != CrawlPhase.COMPLETED.value:
            await self._crawl_details(session_id, run_id, crawl_session)

    async def _crawl_list_pages(
        self,
        session_id: int,
        run_id: int,
        crawl_session: CrawlSession,
        cookie: str,
    ) -> bool:
        """
        列表阶段

        从 start_page + current_page 继续（首次运行 current_page=0），
        continuing 运行强制跳过已存在文章。

        Returns:
            所有页面处理完成返回 True；暂停或登录失效返回 False
        """
        task_start = crawl_session.start_page
        first_page = task_start + (crawl_session.current_page or 0)
        end_page = crawl_session.end_page
        skip_existing = crawl_session.skip_existing or first_page > task_start
        total_news = crawl_session.total_news or 0
        delay = self.config.CRAWL_LIST_PAGE_DELAY / 1000

        logger.info(f"[Session {session_id}] 开始爬取列表页 {first_page} - {end_page}")

        for page in range(first_page, end_page + 1):
            if not self.registry.is_running(session_id, run_id):
                logger.info(f"[Session {session_id}] 任务已暂停或取消")
                return False

            try:
                result = await self.list_crawler.aget_list_page(page, cookie)
            except LoginRequiredError:
                logger.error(f"[Session {session_id}] 第 {page} 页需要登录，任务终止")
                await self._mark_failed(session_id, run_id, f"第 {page} 页需要登录")
                return False

            articles = filter_valid_articles(result.articles, self.config.CRAWL_VALID_ARTICLE_STATUS)

            if skip_existing and articles:
                existing_ids = await self.repository.get_existing_article_ids(
                    [article.source_id for article in articles]
                )
                articles = [article for article in articles if article.source_id not in existing_ids]

            if articles:
                inserted = await self.repository.insert_articles(articles)
                total_news += inserted
                logger.info(f"[Session {session_id}] 第 {page} 页插入 {inserted} 篇文章")

            # 使用相对页码而非绝对页码
            await self.repository.update_session(
                session_id,
                current_page=page - task_start + 1,
                total_news=total_news,
                pending_news=total_news,
            )

            await asyncio.sleep(delay)

        return True

    async def _crawl_details(self, session_id: int, run_id: int, crawl_session: CrawlSession) -> None:
        """详情阶段：分批拉取 pending 文章并发爬取，直到没有待爬取文章"""
        crawled_news = crawl_session.crawled_news or 0
        failed_news = crawl_session.failed_news or 0
        crawled_in_run = 0
        batch_size = self.config.CRAWL_BATCH_SIZE
        batch_delay = self.config.CRAWL_DETAIL_PAGE_DELAY / 1000

        pending_count = await self.repository.get_pending_count()
        await self.repository.update_session(
            session_id,
            phase=CrawlPhase.DETAIL.value,
            pending_news=pending_count,
        )

        detail_start_time = time.time()
        self.registry.update(session_id, detail_start_time=detail_start_time, crawled_in_session=0)

        pool = DetailCrawlPool(
            fetch_detail=self.detail_crawler.aget_article_detail,
            repository=self.repository,
            concurrency=self.config.CRAWL_CONCURRENCY,
            item_delay=self.config.CRAWL_ITEM_DELAY / 1000,
        )

        def should_continue() -> bool:
            return self.registry.is_running(session_id, run_id)

        logger.info(
            f"[Session {session_id}] 开始并发爬取详情页 "
            f"(并发数: {pool.concurrency}, 待爬取: {pending_count})"
        )

        batch_count = 0
        drained = False
        while should_continue():
            batch = await self.repository.get_pending_articles(batch_size)
            if not batch:
                logger.info(f"[Session {session_id}] 没有待爬取的文章了")
                drained = True
                break

            logger.info(f"[Session {session_id}] 开始处理第 {batch_count + 1} 批，共 {len(batch)} 篇")
            outcomes = await pool.run(session_id, batch, should_continue)

            batch_crawled = sum(1 for outcome in outcomes if outcome.status == OUTCOME_CRAWLED)
            batch_failed = sum(1 for outcome in outcomes if outcome.status == OUTCOME_FAILED)
            crawled_news += batch_crawled
            failed_news += batch_failed
            crawled_in_run += batch_crawled
            self.registry.update(session_id, crawled_in_session=crawled_in_run)

            avg_speed = calculate_speed(crawled_in_run, detail_start_time)
            remaining = await self.repository.get_pending_count()
            await self.repository.update_session(
                session_id,
                crawled_news=crawled_news,
                failed_news=failed_news,
                pending_news=remaining,
                avg_speed=avg_speed,
            )

            batch_count += 1
            logger.info(
                f"[Session {session_id}] 完成第 {batch_count} 批，已爬取 {crawled_news} 篇，"
                f"失败 {failed_news} 篇，速度 {avg_speed} 篇/分钟"
            )

            if should_continue():
                await asyncio.sleep(batch_delay)

        if not drained:
            logger.info(f"[Session {session_id}] 详情阶段已暂停")
            return

        # 与 pause 竞争同一状态，只有一方能成功
        if not self.registry.transition(
            session_id, SessionStatus.RUNNING.value, SessionStatus.COMPLETED.value, run_id=run_id
        ):
            logger.info(f"[Session {session_id}] 任务在完成前已暂停")
            return

        await self.repository.update_session(
            session_id,
            status=SessionStatus.COMPLETED.value,
            phase=CrawlPhase.COMPLETED.value,
            pending_news=0,
        )
        logger.info(
            f"[Session {session_id}] ✅ 任务完成，共爬取 {crawled_news} 篇，失败 {failed_news} 篇"
        )


# 全局管理器实例（按需创建）
_crawl_manager: Optional[CrawlTaskManager] = None


def get_crawl_manager() -> CrawlTaskManager:
    """获取全局爬取任务管理器（FastAPI 依赖注入）"""
    global _crawl_manager
    if _crawl_manager is None:
        from ..models.database import AsyncSessionLocal
        from ..storage.news_repository import NewsRepository
        from ..tools.list_crawler import ListPageCrawler
        from ..tools.detail_crawler import DetailPageCrawler

        _crawl_manager = CrawlTaskManager(
            repository=NewsRepository(AsyncSessionLocal),
            list_crawler=ListPageCrawler(),
            detail_crawler=DetailPageCrawler(),
        )
    return _crawl_manager


async def shutdown_crawl_manager() -> None:
    """关闭全局管理器的后台任务"""
    if _crawl_manager is not None:
        await _crawl_manager.shutdown()
