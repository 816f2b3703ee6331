"""
新闻与爬取会话仓储
爬取编排只通过这里读写数据库，每次调用使用独立的短事务
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import select, update, func, desc
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..models.news import News, ArticleStatus
from ..models.crawl_session import CrawlSession, CrawlPhase, SessionStatus, TERMINAL_STATUSES
from ..tools.crawler_base import ArticleListItem, ArticleDetail, parse_publish_time

logger = logging.getLogger(__name__)

# 库中时间为不带时区的 UTC，按北京时间切分日期
BEIJING_OFFSET = timedelta(hours=8)

# 正文长度分布区间（上界不含，None 表示无上界）
LENGTH_BUCKETS = [
    (500, "0-500"),
    (1000, "500-1000"),
    (2000, "1000-2000"),
    (5000, "2000-5000"),
    (None, "5000+"),
]

# update_session 允许写入的字段
SESSION_FIELDS = {
    "current_page",
    "total_news",
    "pending_news",
    "crawled_news",
    "failed_news",
    "phase",
    "status",
    "avg_speed",
    "error_message",
}


@dataclass
class PendingArticle:
    """待爬取详情的文章"""
    source_id: str
    source_url: str


class NewsRepository:
    """
    新闻仓储

    Example:
        >>> repo = NewsRepository(AsyncSessionLocal)
        >>> inserted = await repo.insert_articles(items)
        >>> batch = await repo.get_pending_articles(limit=20)
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    # ==================== 新闻表操作 ====================

    async def insert_articles(self, articles: Iterable[ArticleListItem]) -> int:
        """
        批量插入新文章（列表阶段）
        source_id 已存在时忽略，不报错

        Returns:
            实际新插入的条数
        """
        now = datetime.utcnow()
        records: Dict[str, Dict[str, Any]] = {}
        for article in articles:
            records.setdefault(article.source_id, {
                "source_id": article.source_id,
                "title": article.title,
                "source_url": article.url,
                "category": article.category,
                "publish_time": parse_publish_time(article.publish_time),
                "status": ArticleStatus.PENDING.value,
                "created_at": now,
                "updated_at": now,
            })
        if not records:
            return 0

        async with self.session_factory() as db:
            dialect = db.get_bind().dialect.name
            insert_fn = pg_insert if dialect == "postgresql" else sqlite_insert
            stmt = (
                insert_fn(News)
                .values(list(records.values()))
                .on_conflict_do_nothing(index_elements=["source_id"])
                .returning(News.id)
            )
            result = await db.execute(stmt)
            inserted = len(result.all())
            await db.commit()

        logger.debug(f"Inserted {inserted}/{len(records)} articles")
        return inserted

    async def get_existing_article_ids(self, source_ids: Iterable[str]) -> Set[str]:
        """返回已存在的原站文章ID"""
        source_ids = list(source_ids)
        if not source_ids:
            return set()
        async with self.session_factory() as db:
            result = await db.execute(
                select(News.source_id).where(News.source_id.in_(source_ids))
            )
            return set(result.scalars().all())

    async def update_article_detail(self, detail: ArticleDetail) -> None:
        """写入详情页解析结果并标记为已爬取"""
        values = {
            "title": detail.title,
            "content": detail.content,
            "content_text": detail.content_text,
            "author": detail.author,
            "source_name": detail.source_name,
            "category": detail.category,
            "region": detail.region,
            "status": ArticleStatus.CRAWLED.value,
            "error_message": None,
            "crawl_time": datetime.utcnow(),
            "raw_html": detail.raw_html,
        }
        publish_time = parse_publish_time(detail.publish_time)
        if publish_time:
            values["publish_time"] = publish_time

        async with self.session_factory() as db:
            await db.execute(
                update(News).where(News.source_id == detail.source_id).values(**values)
            )
            await db.commit()

    async def mark_article_failed(self, source_id: str, error_message: str) -> None:
        """标记文章为爬取失败"""
        async with self.session_factory() as db:
            await db.execute(
                update(News)
                .where(News.source_id == source_id)
                .values(status=ArticleStatus.FAILED.value, error_message=(error_message or "")[:1000])
            )
            await db.commit()

    async def get_pending_articles(self, limit: int = 100) -> List[PendingArticle]:
        """获取待爬取的文章（按入库时间先进先出）"""
        async with self.session_factory() as db:
            result = await db.execute(
                select(News.source_id, News.source_url)
                .where(News.status == ArticleStatus.PENDING.value)
                .order_by(News.created_at.asc(), News.id.asc())
                .limit(limit)
            )
            return [PendingArticle(source_id=row.source_id, source_url=row.source_url) for row in result]

    async def get_pending_count(self) -> int:
        """获取待爬取文章数量"""
        return await self._count_news(ArticleStatus.PENDING.value)

    async def retry_all_failed(self) -> int:
        """
        将所有失败文章重置为待爬取（不区分会话）

        Returns:
            受影响的条数
        """
        async with self.session_factory() as db:
            result = await db.execute(
                update(News)
                .where(News.status == ArticleStatus.FAILED.value)
                .values(status=ArticleStatus.PENDING.value, error_message=None)
            )
            await db.commit()
            return result.rowcount or 0

    async def get_news_stats(self) -> Dict[str, int]:
        """获取新闻统计（总数及各状态数量）"""
        async with self.session_factory() as db:
            result = await db.execute(
                select(News.status, func.count(News.id)).group_by(News.status)
            )
            by_status = {status: count for status, count in result.all()}
        return {
            "total": sum(by_status.values()),
            "pending": by_status.get(ArticleStatus.PENDING.value, 0),
            "crawled": by_status.get(ArticleStatus.CRAWLED.value, 0),
            "failed": by_status.get(ArticleStatus.FAILED.value, 0),
        }

    async def _count_news(self, status: str) -> int:
        async with self.session_factory() as db:
            count = await db.scalar(
                select(func.count(News.id)).where(News.status == status)
            )
            return count or 0

    # ==================== 统计分析 ====================

    async def get_overview_stats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        概览统计

        今日、本周（周日起）按北京时间零点计算入库数量；
        成功率 = 已爬取 / (已爬取 + 失败)，保留一位小数，没有处理过的文章时为 100

        Args:
            now: 当前 UTC 时间（默认取系统时间）
        """
        now = now or datetime.utcnow()
        today = (now + BEIJING_OFFSET).date()
        today_start = datetime.combine(today, time.min) - BEIJING_OFFSET
        week_start = today_start - timedelta(days=(today.weekday() + 1) % 7)

        stats = await self.get_news_stats()
        async with self.session_factory() as db:
            today_count = await db.scalar(
                select(func.count(News.id)).where(News.created_at >= today_start)
            )
            week_count = await db.scalar(
                select(func.count(News.id)).where(News.created_at >= week_start)
            )

        processed = stats["crawled"] + stats["failed"]
        success_rate = (
            math.floor(stats["crawled"] / processed * 1000 + 0.5) / 10 if processed else 100
        )
        return {
            **stats,
            "today_count": today_count or 0,
            "week_count": week_count or 0,
            "success_rate": success_rate,
        }

    async def get_distribution(self, limit: int = 10) -> Dict[str, List[Dict[str, Any]]]:
        """地区分布（全部）及来源、作者分布（前 limit 个）"""
        async with self.session_factory() as db:
            return {
                "regions": await self._count_by(db, News.region),
                "sources": await self._count_by(db, News.source_name, limit),
                "authors": await self._count_by(db, News.author, limit),
            }

    async def _count_by(self, db, column, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        count = func.count(News.id).label("count")
        stmt = (
            select(column, count)
            .where(column.isnot(None), column != "")
            .group_by(column)
            .order_by(desc(count), column)
        )
        if limit:
            stmt = stmt.limit(limit)
        result = await db.execute(stmt)
        return [{"name": name, "count": total} for name, total in result.all()]

    async def get_trend(self, days: int = 30, now: Optional[datetime] = None) -> Dict[str, List[Dict[str, Any]]]:
        """
        趋势统计

        - crawl_trend: 最近 days 天每天入库数量（北京时间，无数据的日期补 0）
        - publish_trend: 同一时间窗口内按发布月份统计
        """
        now = now or datetime.utcnow()
        first_day = (now + BEIJING_OFFSET).date() - timedelta(days=days - 1)
        window_start = datetime.combine(first_day, time.min) - BEIJING_OFFSET

        crawl_counts = {
            (first_day + timedelta(days=offset)).isoformat(): 0 for offset in range(days)
        }
        publish_counts: Dict[str, int] = {}

        async with self.session_factory() as db:
            created = await db.execute(
                select(News.created_at).where(News.created_at >= window_start)
            )
            for created_at in created.scalars():
                day = (created_at + BEIJING_OFFSET).date().isoformat()
                if day in crawl_counts:
                    crawl_counts[day] += 1

            published = await db.execute(
                select(News.publish_time).where(News.publish_time >= window_start)
            )
            for publish_time in published.scalars():
                month = (publish_time + BEIJING_OFFSET).strftime("%Y-%m")
                publish_counts[month] = publish_counts.get(month, 0) + 1

        return {
            "crawl_trend": [{"date": day, "count": count} for day, count in crawl_counts.items()],
            "publish_trend": [
                {"month": month, "count": publish_counts[month]} for month in sorted(publish_counts)
            ],
        }

    async def get_content_stats(self) -> Dict[str, Any]:
        """已爬取文章的正文长度分布与含图片数量"""
        length = func.length(News.content_text)
        crawled = News.status == ArticleStatus.CRAWLED.value

        bucket_counts = {label: 0 for _, label in LENGTH_BUCKETS}
        async with self.session_factory() as db:
            result = await db.execute(
                select(length, func.count(News.id))
                .where(crawled, News.content_text.isnot(None))
                .group_by(length)
            )
            for text_length, total in result.all():
                for upper, label in LENGTH_BUCKETS:
                    if upper is None or text_length < upper:
                        bucket_counts[label] += total
                        break

            crawled_total = await db.scalar(select(func.count(News.id)).where(crawled))
            with_images = await db.scalar(
                select(func.count(News.id)).where(crawled, News.content.like("%<img%"))
            )

        crawled_total = crawled_total or 0
        with_images = with_images or 0
        return {
            "length_distribution": [
                {"range": label, "count": count} for label, count in bucket_counts.items()
            ],
            "with_images": with_images,
            "without_images": crawled_total - with_images,
        }

    # ==================== 爬取会话操作 ====================

    async def create_session(
        self,
        session_name: str,
        total_pages: int,
        start_page: int,
        end_page: int,
        skip_existing: bool = True,
    ) -> int:
        """创建爬取会话（status=running, phase=list）"""
        async with self.session_factory() as db:
            crawl_session = CrawlSession(
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
                started_at=datetime.utcnow(),
            )
            db.add(crawl_session)
            await db.commit()
            await db.refresh(crawl_session)
            return crawl_session.id

    async def update_session(self, session_id: int, **fields: Any) -> None:
        """
        更新爬取会话进度
        状态首次变为 completed / failed 时写入 finished_at
        """
        unknown = set(fields) - SESSION_FIELDS
        if unknown:
            raise ValueError(f"Unknown session fields: {sorted(unknown)}")

        async with self.session_factory() as db:
            crawl_session = await db.get(CrawlSession, session_id)
            if crawl_session is None:
                logger.warning(f"[Session {session_id}] 更新失败：会话不存在")
                return

            for name, value in fields.items():
                setattr(crawl_session, name, value.value if hasattr(value, "value") else value)

            if crawl_session.status in TERMINAL_STATUSES and crawl_session.finished_at is None:
                crawl_session.finished_at = datetime.utcnow()
            await db.commit()

    async def pause_session(self, session_id: int) -> bool:
        """
        仅当会话仍为 running 时标记为 paused

        Returns:
            是否更新成功（会话不存在或已不在运行时为 False）
        """
        async with self.session_factory() as db:
            result = await db.execute(
                update(CrawlSession)
                .where(
                    CrawlSession.id == session_id,
                    CrawlSession.status == SessionStatus.RUNNING.value,
                )
                .values(status=SessionStatus.PAUSED.value, updated_at=datetime.utcnow())
            )
            await db.commit()
            return (result.rowcount or 0) > 0

    async def get_session(self, session_id: int) -> Optional[CrawlSession]:
        """获取爬取会话"""
        async with self.session_factory() as db:
            return await db.get(CrawlSession, session_id)

    async def get_current_session(self) -> Optional[CrawlSession]:
        """获取最近一个运行中或已暂停的会话"""
        async with self.session_factory() as db:
            result = await db.execute(
                select(CrawlSession)
                .where(CrawlSession.status.in_([SessionStatus.RUNNING.value, SessionStatus.PAUSED.value]))
                .order_by(desc(CrawlSession.started_at), desc(CrawlSession.id))
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def list_sessions(
        self,
        page: int = 1,
        page_size: int = 10,
        status: Optional[str] = None,
    ) -> Tuple[List[CrawlSession], int]:
        """分页查询爬取历史（按开始时间倒序）"""
        conditions = [CrawlSession.status == status] if status and status != "all" else []
        async with self.session_factory() as db:
            total = await db.scalar(select(func.count(CrawlSession.id)).where(*conditions))
            result = await db.execute(
                select(CrawlSession)
                .where(*conditions)
                .order_by(desc(CrawlSession.started_at), desc(CrawlSession.id))
                .offset((page - 1) * page_size)
                .limit(page_size)
            )
            return list(result.scalars().all()), total or 0
