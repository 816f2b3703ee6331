"""
安徽财经网 文章详情页爬虫
"""
import re
import logging
from typing import Dict, List

from .crawler_base import BaseCrawler, ArticleDetail
from ..core.config import settings

logger = logging.getLogger(__name__)

# 地区关键词映射（从标题分析地区）
REGION_KEYWORDS: Dict[str, List[str]] = {
    "屯溪区": ["屯溪"],
    "黟县": ["黟县"],
    "祁门县": ["祁门"],
    "歙县": ["歙县"],
    "休宁县": ["休宁"],
    "黄山区": ["黄山区"],
    "徽州区": ["徽州区"],
}
DEFAULT_REGION = "黄山"

# 作者位于正文末尾括号内，先匹配英文括号再匹配中文括号
AUTHOR_PATTERNS = [
    (re.compile(r"\([^()]+\)"), re.compile(r"[()]")),
    (re.compile(r"（[^（）]+）"), re.compile(r"[（）]")),
]


def analyze_region(title: str) -> str:
    """从标题分析地区，未命中时返回默认地区"""
    for region, keywords in REGION_KEYWORDS.items():
        if any(keyword in title for keyword in keywords):
            return region
    return DEFAULT_REGION


def extract_author(content: str) -> str:
    """从正文提取作者（取最后一个括号内的内容）"""
    for pattern, brackets in AUTHOR_PATTERNS:
        matches = pattern.findall(content)
        if matches:
            return brackets.sub("", matches[-1]).strip()
    return ""


class DetailPageCrawler(BaseCrawler):
    """
    详情页爬虫
    解析标题、正文、来源、分类、发布时间，并推断作者和地区
    """

    def __init__(self, save_raw_html: bool = None):
        super().__init__(name="caijing_detail_crawler")
        self.save_raw_html = settings.CRAWL_SAVE_RAW_HTML if save_raw_html is None else save_raw_html

    def html_to_text(self, html: str) -> str:
        """HTML 转纯文本（移除脚本和样式，合并空白）"""
        if not html:
            return ""
        soup = self._parse_html(html)
        for tag in soup(["script", "style"]):
            tag.decompose()
        return re.sub(r"\s+", " ", soup.get_text()).strip()

    def parse_detail_page(self, source_id: str, html: str) -> ArticleDetail:
        """
        解析详情页

        Args:
            source_id: 原站文章ID
            html: 页面 HTML

        Returns:
            文章详情
        """
        soup = self._parse_html(html)

        title_tag = soup.select_one(".article-hd h1")
        title = title_tag.get_text().strip() if title_tag else ""

        content_tag = soup.select_one("#text_content")
        content = content_tag.decode_contents() if content_tag else ""

        # 来源：xxx 编辑：xxx
        source_tag = soup.select_one(".source")
        source_text = source_tag.get_text() if source_tag else ""
        source_name = (
            source_text.split("编辑：")[0]
            .replace("来源：", "")
            .replace("\xa0", "")
            .replace("&nbsp;", "")
            .strip()
        )

        crumbs = soup.select("div.crumbs a")
        category = crumbs[-1].get_text().strip() if crumbs else ""

        time_tag = soup.select_one("span.time")
        publish_time = time_tag.get_text().strip() if time_tag else ""

        return ArticleDetail(
            source_id=source_id,
            title=title,
            content=content,
            content_text=self.html_to_text(content),
            source_name=source_name,
            author=extract_author(content),
            category=category,
            region=analyze_region(title),
            publish_time=publish_time,
            raw_html=html if self.save_raw_html else None,
        )

    def get_article_detail(self, source_id: str, url: str) -> ArticleDetail:
        """请求并解析详情页（强制 HTTPS）"""
        secure_url = url.replace("http://", "https://", 1)
        html = self._fetch_page(secure_url)
        return self.parse_detail_page(source_id, html)

    async def aget_article_detail(self, source_id: str, url: str) -> ArticleDetail:
        """异步请求并解析详情页"""
        return await self._run_sync(self.get_article_detail, source_id, url)
