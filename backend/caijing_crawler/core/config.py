"""
CaijingCrawler 核心配置模块
使用 Pydantic Settings 管理环境变量和配置
"""
from typing import Optional, List
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """应用配置类"""

    # 应用基础配置
    APP_NAME: str = "CaijingCrawler"
    APP_VERSION: str = "0.1.0"
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = Field(default=True)

    # 服务器配置
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8000)

    # CORS 配置
    BACKEND_CORS_ORIGINS: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8000"]
    )

    # PostgreSQL 数据库配置
    POSTGRES_USER: str = Field(default="caijing")
    POSTGRES_PASSWORD: str = Field(default="caijing_dev_password")
    POSTGRES_HOST: str = Field(default="localhost")
    POSTGRES_PORT: int = Field(default=5432)
    POSTGRES_DB: str = Field(default="caijing_db")
    DATABASE_URL_OVERRIDE: Optional[str] = Field(
        default=None,
        description="完整的异步数据库 URL（如 sqlite+aiosqlite:///./caijing.db），设置后忽略 POSTGRES_*"
    )

    @property
    def DATABASE_URL(self) -> str:
        """异步数据库连接 URL"""
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    # 原站配置（安徽财经网）
    SITE_BASE_URL: str = Field(default="https://www.ahcaijing.com")
    SITE_ENCODING: str = Field(default="gbk", description="原站页面编码")

    @property
    def SITE_MEMBER_PAGE_URL(self) -> str:
        """会员已发布文章列表页（同时用于检测登录状态）"""
        return f"{self.SITE_BASE_URL}/index.php?m=member&c=content&a=published"

    # 爬虫配置
    CRAWLER_USER_AGENT: str = Field(
        default="Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
                "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    CRAWLER_TIMEOUT: int = Field(default=30)

    # 爬取任务配置（时间单位：毫秒）
    CRAWL_LIST_PAGE_DELAY: int = Field(default=1000, description="列表页间隔（毫秒）")
    CRAWL_DETAIL_PAGE_DELAY: int = Field(default=500, description="详情页批次间隔（毫秒）")
    CRAWL_ITEM_DELAY: int = Field(default=200, description="并发池内单篇文章间隔（毫秒）")
    CRAWL_CONCURRENCY: int = Field(default=5, ge=1, description="同时爬取的详情页数量")
    CRAWL_BATCH_SIZE: int = Field(default=20, ge=1, description="每批处理的文章数")
    CRAWL_MAX_PAGES_PER_TASK: int = Field(default=100, ge=1, description="单次任务最大页数")
    CRAWL_MAX_RETRIES: int = Field(default=3, ge=1, description="单次请求最大尝试次数")
    CRAWL_RETRY_DELAY: int = Field(default=3000, description="请求重试间隔（毫秒）")
    CRAWL_SAVE_RAW_HTML: bool = Field(default=False, description="是否保存详情页原始 HTML")
    CRAWL_VALID_ARTICLE_STATUS: str = Field(default="通过", description="只有该状态的文章才会被爬取")

    # 日志配置
    LOG_LEVEL: str = Field(default="INFO")

    # 业务配置
    MAX_NEWS_PER_REQUEST: int = Field(default=100)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        env_ignore_empty=True,
    )


# 全局配置实例
settings = Settings()


# 便捷访问函数
def get_settings() -> Settings:
    """获取配置实例（用于依赖注入）"""
    return settings
