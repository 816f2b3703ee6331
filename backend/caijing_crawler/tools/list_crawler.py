"""
安徽财经网 会员已发布文章列表爬虫
"""
import re
import logging
from typing import List

from .crawler_base import (
    BaseCrawler,
    ArticleListItem,
    ListPageResult,
    LoginRequiredError,
)
from ..core.config import settings

logger = logging.getLogger(__name__)

# 未登录或会话失效时原站返回的提示页标题
LOGIN_NOTICE_TITLE = "提示信息"


def is_login_required(soup) -> bool:
    """检查页面是否为登录提示页"""
    title = soup.title.get_text().strip() if soup.title else ""
    return title == LOGIN_NOTICE_TITLE


def filter_valid_articles(articles: List[ArticleListItem], valid_status: str = None) -> List[ArticleListItem]:
    """
    过滤有效文章（原站审核状态为"通过"）

    Args:
        articles: 列表页解析出的文章
        valid_status: 有效状态值，默认取配置

    Returns:
        状态有效的文章
    """
    valid_status = valid_status or settings.CRAWL_VALID_ARTICLE_STATUS
    return [article for article in articles if article.status == valid_status]


class ListPageCrawler(BaseCrawler):
    """
    列表页爬虫
    按页码请求会员文章列表，解析文章ID、链接、标题、分类、时间和审核状态
    """

    def __init__(self):
        super().__init__(name="caijing_list_crawler")
        self.base_url = settings.SITE_BASE_URL
        self.list_url = f"{settings.SITE_MEMBER_PAGE_URL}&page="

    def parse_list_page(self, page: int, html: str) -> ListPageResult:
        """
        解析列表页

        Args:
            page: 页码
            html: 页面 HTML

        Returns:
            列表页结果

        Raises:
            LoginRequiredError: 页面为登录提示页
        """
        soup = self._parse_html(html)
        if is_login_required(soup):
            raise LoginRequiredError(f"第 {page} 页需要登录")

        # 总条数
        total = 0
        total_link = soup.select_one("a.a1")
        if total_link:
            match = re.search(r"(\d+)", total_link.get_text())
            if match:
                total = int(match.group(1))

        articles = []
        for row in soup.find_all("tr"):
            cells = row.find_all("td", recursive=False)
            if len(cells) < 5:  # 表头或无效行
                continue

            center_cells = [td for td in cells if td.get("align") == "center"]
            left_cells = [td for td in cells if td.get("align") == "left"]
            if len(center_cells) < 4 or not left_cells:
                continue

            link_tag = left_cells[0].find("a")
            source_id = center_cells[0].get_text().strip()
            link = (link_tag.get("href") or "").strip() if link_tag else ""
            if not source_id or not link:
                continue

            articles.append(ArticleListItem(
                source_id=source_id,
                url=link if link.startswith("http") else f"{self.base_url}{link}",
                title=link_tag.get_text().strip(),
                category=center_cells[1].get_text().strip(),
                publish_time=center_cells[2].get_text().strip(),
                status=center_cells[3].get_text().strip(),
            ))

        return ListPageResult(page=page, total=total, articles=articles)

    def get_list_page(self, page: int, cookie: str) -> ListPageResult:
        """请求并解析列表页"""
        logger.info(f"Fetching list page {page}")
        html = self._fetch_page(f"{self.list_url}{page}", cookie=cookie)
        return self.parse_list_page(page, html)

    def check_login_status(self, cookie: str) -> bool:
        """检查原站登录态是否有效"""
        try:
            html = self._fetch_page(settings.SITE_MEMBER_PAGE_URL, cookie=cookie)
        except Exception as e:
            logger.warning(f"Login status check failed: {e}")
            return False
        return not is_login_required(self._parse_html(html))

    async def aget_list_page(self, page: int, cookie: str) -> ListPageResult:
        """异步请求并解析列表页"""
        return await self._run_sync(self.get_list_page, page, cookie)

    async def acheck_login_status(self, cookie: str) -> bool:
        """异步检查原站登录态"""
        return await self._run_sync(self.check_login_status, cookie)
