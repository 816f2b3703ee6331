"""
爬虫基类
封装原站请求（带重试）、编码处理和 HTML 解析
"""
import re
import asyncio
import logging
from typing import List, Optional
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
import requests
from bs4 import BeautifulSoup
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from ..core.config import settings

logger = logging.getLogger(__name__)

# 原站显示的时间为北京时间
BEIJING_TZ = timezone(timedelta(hours=8))
_DATETIME_PATTERN = re.compile(r"(\d{4})-(\d{2})-(\d{2})\s+(\d{2}):(\d{2}):(\d{2})")


class LoginRequiredError(Exception):
    """原站登录态失效（需要在站外重新登录）"""
    pass


@dataclass
class ArticleListItem:
    """列表页文章条目"""
    source_id: str
    url: str
    title: str
    category: str = ""
    publish_time: str = ""
    status: str = ""


@dataclass
class ListPageResult:
    """列表页解析结果"""
    page: int
    total: int
    articles: List[ArticleListItem] = field(default_factory=list)


@dataclass
class ArticleDetail:
    """详情页解析结果"""
    source_id: str
    title: str
    content: str
    content_text: str
    source_name: str = ""
    author: str = ""
    category: str = ""
    region: str = ""
    publish_time: str = ""
    raw_html: Optional[str] = None


def parse_publish_time(text: Optional[str]) -> Optional[datetime]:
    """
    解析发布时间字符串

    支持 ISO 格式（带时区时转换为 UTC）和原站的 "YYYY-MM-DD HH:MM:SS"
    （按北京时间处理）。返回不带时区的 UTC 时间，无法解析时返回 None。
    """
    if not text:
        return None
    text = text.strip()

    match = _DATETIME_PATTERN.search(text)
    if match:
        local = datetime(*(int(part) for part in match.groups()), tzinfo=BEIJING_TZ)
        return local.astimezone(timezone.utc).replace(tzinfo=None)

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=BEIJING_TZ)
    return parsed.astimezone(timezone.utc).replace(tzinfo=None)


class BaseCrawler:
    """
    原站爬虫基类
    子类负责具体页面的请求和解析
    """

    def __init__(self, name: str = "base_crawler"):
        self.name = name
        self.user_agent = settings.CRAWLER_USER_AGENT
        self.timeout = settings.CRAWLER_TIMEOUT
        self.encoding = settings.SITE_ENCODING
        self.session = requests.Session()
        self.session.headers.update({'User-Agent': self.user_agent})

    @retry(
        stop=stop_after_attempt(settings.CRAWL_MAX_RETRIES),
        wait=wait_fixed(settings.CRAWL_RETRY_DELAY / 1000),
        retry=retry_if_exception_type(requests.RequestException),
        reraise=True,
    )
    def _fetch_page(self, url: str, cookie: Optional[str] = None) -> str:
        """
        获取网页内容（网络错误时重试）

        Args:
            url: 目标URL
            cookie: 原站登录 Cookie

        Returns:
            按原站编码解码后的 HTML
        """
        headers = {'Cookie': cookie} if cookie else None
        try:
            response = self.session.get(url, headers=headers, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.warning(f"Failed to fetch {url}: {e}")
            raise
        response.encoding = self.encoding
        return response.text

    def _parse_html(self, html: str) -> BeautifulSoup:
        """解析HTML"""
        return BeautifulSoup(html, 'lxml')

    async def _run_sync(self, func, *args):
        """在默认线程池中执行同步请求，避免阻塞事件循环"""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: func(*args))
