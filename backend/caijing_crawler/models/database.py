"""
数据库连接和会话管理
"""
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base

from ..core.config import settings

# 声明基类
Base = declarative_base()


def _engine_options(url: str) -> dict:
    """连接池参数（SQLite 不支持 pool_size / max_overflow）"""
    if url.startswith("sqlite"):
        return {}
    return {"pool_size": 10, "max_overflow": 20}


# 异步引擎（应用运行时与建表共用）
async_engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    pool_pre_ping=True,
    **_engine_options(settings.DATABASE_URL),
)

# 异步会话工厂
AsyncSessionLocal = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def init_db(engine=None):
    """
    初始化数据库表
    在首次运行或重置数据库时调用

    Args:
        engine: 目标异步引擎，默认使用全局引擎
    """
    from .news import News  # noqa: F401
    from .crawl_session import CrawlSession  # noqa: F401

    engine = engine or async_engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
