"""
详情页并发爬取池
"""
import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence, Set

from ..storage.news_repository import PendingArticle
from ..tools.crawler_base import ArticleDetail

logger = logging.getLogger(__name__)

OUTCOME_CRAWLED = "crawled"
OUTCOME_FAILED = "failed"
OUTCOME_SKIPPED = "skipped"


@dataclass
class DetailOutcome:
    """单篇文章的处理结果"""
    source_id: str
    status: str
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == OUTCOME_CRAWLED


class DetailCrawlPool:
    """
    有界并发的详情爬取池

    同时处理的文章数不超过 concurrency。每篇文章开始前检查任务是否仍在运行，
    已停止时跳过（保持 pending，留给下一批或下次继续）。成功写入详情，失败
    记录错误信息，互不影响。每篇处理完后固定等待 item_delay 秒再释放名额。
    """

    def __init__(
        self,
        fetch_detail: Callable[[str, str], Awaitable[ArticleDetail]],
        repository,
        concurrency: int = 5,
        item_delay: float = 0.2,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.fetch_detail = fetch_detail
        self.repository = repository
        self.concurrency = concurrency
        self.item_delay = item_delay

    async def run(
        self,
        session_id: int,
        articles: Sequence[PendingArticle],
        should_continue: Callable[[], bool],
    ) -> List[DetailOutcome]:
        """
        并发处理一批文章

        Returns:
            与输入等长的结果列表（顺序不保证）
        """
        queue = deque(articles)
        in_flight: Set[asyncio.Task] = set()
        outcomes: List[DetailOutcome] = []

        try:
            while queue or in_flight:
                while queue and len(in_flight) < self.concurrency:
                    article = queue.popleft()
                    in_flight.add(asyncio.create_task(
                        self._process_article(session_id, article, should_continue)
                    ))

                done, in_flight = await asyncio.wait(in_flight, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    outcomes.append(task.result())
        except BaseException:
            for task in in_flight:
                task.cancel()
            await asyncio.gather(*in_flight, return_exceptions=True)
            raise

        return outcomes

    async def _process_article(
        self,
        session_id: int,
        article: PendingArticle,
        should_continue: Callable[[], bool],
    ) -> DetailOutcome:
        try:
            if not should_continue():
                return DetailOutcome(source_id=article.source_id, status=OUTCOME_SKIPPED)

            try:
                logger.debug(f"[Session {session_id}] 爬取文章 {article.source_id}")
                detail = await self.fetch_detail(article.source_id, article.source_url)
                await self.repository.update_article_detail(detail)
                return DetailOutcome(source_id=article.source_id, status=OUTCOME_CRAWLED)
            except Exception as e:
                error_message = str(e) or type(e).__name__
                logger.warning(f"[Session {session_id}] 文章 {article.source_id} 爬取失败: {error_message}")
                await self.repository.mark_article_failed(article.source_id, error_message)
                return DetailOutcome(source_id=article.source_id, status=OUTCOME_FAILED, error=error_message)
        finally:
            # 单篇请求间的小延迟，避免请求过于密集
            await asyncio.sleep(self.item_delay)
