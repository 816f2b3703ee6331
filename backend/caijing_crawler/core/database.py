"""
数据库连接和依赖注入
"""
import logging
from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.database import (
    AsyncSessionLocal,
    init_db as create_tables,
)

logger = logging.getLogger(__name__)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI 依赖注入：获取数据库会话

    Usage:
        @app.get("/items")
        async def get_items(db: AsyncSession = Depends(get_db)):
            ...

    Yields:
        AsyncSession: 数据库会话
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_database():
    """
    初始化数据库
    创建所有表结构
    """
    logger.info("Initializing CaijingCrawler database...")
    try:
        await create_tables()
        logger.info("✓ Database initialization completed successfully!")
    except Exception as e:
        logger.error(f"✗ Database initialization failed: {e}")
        raise
