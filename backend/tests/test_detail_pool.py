"""
详情并发爬取池测试
"""
import pytest

from caijing_crawler.storage.news_repository import PendingArticle
from caijing_crawler.tasks.detail_pool import (
    DetailCrawlPool,
    OUTCOME_CRAWLED,
    OUTCOME_FAILED,
    OUTCOME_SKIPPED,
)

from conftest import FakeDetailCrawler


def _pending(repository, count, prefix="a"):
    articles = []
    for index in range(count):
        source_id = f"{prefix}{index}"
        repository.add_article(source_id)
        articles.append(PendingArticle(source_id, repository.news[source_id]["source_url"]))
    return articles


def _always():
    return True


class TestDetailCrawlPool:
    """有界并发与失败隔离"""

    def test_rejects_invalid_concurrency(self, repository):
        """测试并发数必须至少为 1"""
        with pytest.raises(ValueError):
            DetailCrawlPool(FakeDetailCrawler().aget_article_detail, repository, concurrency=0)

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, repository):
        """测试同时处理的文章不超过并发数"""
        crawler = FakeDetailCrawler(delay=0.01)
        pool = DetailCrawlPool(crawler.aget_article_detail, repository, concurrency=3, item_delay=0)
        articles = _pending(repository, 10)

        outcomes = await pool.run(1, articles, _always)

        assert len(outcomes) == 10
        assert crawler.max_in_flight == 3
        assert {outcome.source_id for outcome in outcomes} == {article.source_id for article in articles}
        assert all(outcome.success for outcome in outcomes)
        assert repository.count("crawled") == 10

    @pytest.mark.asyncio
    async def test_failure_is_isolated(self, repository):
        """测试单篇失败不影响其他文章"""
        crawler = FakeDetailCrawler(failing_ids={"a2"})
        pool = DetailCrawlPool(crawler.aget_article_detail, repository, concurrency=2, item_delay=0)
        articles = _pending(repository, 5)

        outcomes = await pool.run(1, articles, _always)

        by_id = {outcome.source_id: outcome for outcome in outcomes}
        assert by_id["a2"].status == OUTCOME_FAILED
        assert "a2" in by_id["a2"].error
        assert sum(1 for outcome in outcomes if outcome.status == OUTCOME_CRAWLED) == 4
        assert repository.news["a2"]["status"] == "failed"
        assert repository.news["a2"]["error_message"] == "detail page broken: a2"
        assert repository.count("crawled") == 4

    @pytest.mark.asyncio
    async def test_skips_when_stopped(self, repository):
        """测试任务已停止时不发起请求，文章保持 pending"""
        crawler = FakeDetailCrawler()
        pool = DetailCrawlPool(crawler.aget_article_detail, repository, concurrency=3, item_delay=0)
        articles = _pending(repository, 4)

        outcomes = await pool.run(1, articles, lambda: False)

        assert len(outcomes) == 4
        assert all(outcome.status == OUTCOME_SKIPPED for outcome in outcomes)
        assert crawler.calls == []
        assert repository.count("pending") == 4

    @pytest.mark.asyncio
    async def test_stop_mid_batch(self, repository):
        """测试批次中途暂停，剩余文章被跳过"""
        crawler = FakeDetailCrawler()
        pool = DetailCrawlPool(crawler.aget_article_detail, repository, concurrency=1, item_delay=0)
        articles = _pending(repository, 5)
        checks = []

        def should_continue():
            checks.append(True)
            return len(checks) <= 2

        outcomes = await pool.run(1, articles, should_continue)

        statuses = [outcome.status for outcome in outcomes]
        assert statuses.count(OUTCOME_CRAWLED) == 2
        assert statuses.count(OUTCOME_SKIPPED) == 3
        assert crawler.calls == ["a0", "a1"]
        assert repository.count("pending") == 3

    @pytest.mark.asyncio
    async def test_storage_error_propagates(self, repository):
        """测试写库失败会中止整批"""
        async def broken_mark_failed(source_id, error_message):
            raise RuntimeError("database unavailable")

        repository.mark_article_failed = broken_mark_failed
        crawler = FakeDetailCrawler(failing_ids={"a0"})
        pool = DetailCrawlPool(crawler.aget_article_detail, repository, concurrency=2, item_delay=0)

        with pytest.raises(RuntimeError, match="database unavailable"):
            await pool.run(1, _pending(repository, 3), _always)
