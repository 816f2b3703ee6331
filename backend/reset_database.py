"""
清空新闻与爬取会话数据
用于重新开始一轮全量爬取
"""
import asyncio
import logging
import os
import sys

from sqlalchemy import delete

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from caijing_crawler.models.database import async_engine  # noqa: E402
from caijing_crawler.models.news import News  # noqa: E402
from caijing_crawler.models.crawl_session import CrawlSession  # noqa: E402

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def reset_database() -> bool:
    """删除所有新闻和会话记录"""
    try:
        async with async_engine.begin() as conn:
            logger.info("=" * 60)
            logger.info("开始清空数据库...")

            result = await conn.execute(delete(News))
            logger.info(f"✅ 已删除 {result.rowcount} 条新闻记录")

            result = await conn.execute(delete(CrawlSession))
            logger.info(f"✅ 已删除 {result.rowcount} 条爬取会话")

        logger.info("✨ 数据重置完成！下一步：调用 /api/v1/crawl/start 重新爬取")
        logger.info("=" * 60)
        return True
    except Exception as e:
        logger.error(f"❌ 清空数据失败: {e}")
        return False
    finally:
        await async_engine.dispose()


if __name__ == "__main__":
    answer = input("⚠️  将删除所有新闻和爬取记录，确认继续？(yes/no): ")
    if answer.strip().lower() != "yes":
        logger.info("已取消")
        sys.exit(0)
    sys.exit(0 if asyncio.run(reset_database()) else 1)
