"""
列表页爬虫测试
"""
import pytest
import requests
from tenacity import wait_none

from caijing_crawler.tools.crawler_base import BaseCrawler, LoginRequiredError, parse_publish_time
from caijing_crawler.tools.list_crawler import ListPageCrawler, filter_valid_articles

from conftest import make_item

LIST_PAGE_HTML = """
<html>
<head><meta charset="gbk"><title>已发布稿件</title></head>
<body>
<table>
  <tr>
    <th>ID</th><th>标题</th><th>栏目</th><th>发布时间</th><th>状态</th>
  </tr>
  <tr>
    <td align="center">52101</td>
    <td align="left"><a href="/news/2025/52101.html" target="_blank">屯溪老街迎来客流高峰</a></td>
    <td align="center">旅游</td>
    <td align="center">2025-12-24 19:49:52</td>
    <td align="center">通过</td>
  </tr>
  <tr>
    <td align="center">52102</td>
    <td align="left"><a href="https://www.ahcaijing.com/news/2025/52102.html">黄山区招商推介会举行</a></td>
    <td align="center">财经</td>
    <td align="center">2025-12-24 10:00:00</td>
    <td align="center">待审核</td>
  </tr>
  <tr>
    <td align="center">52103</td>
    <td align="center">缺少标题列</td>
    <td align="center">财经</td>
    <td align="center">2025-12-24 10:00:00</td>
    <td align="center">通过</td>
  </tr>
  <tr><td colspan="5" align="center"><a class="a1">共 37 条</a></td></tr>
</table>
</body>
</html>
"""

LOGIN_NOTICE_HTML = """
<html><head><title>提示信息</title></head>
<body><div class="notice">请先登录后再操作</div></body></html>
"""


class FakeResponse:
    """requests.Response 替身"""

    def __init__(self, text: str, status_code: int = 200):
        self.text = text
        self.status_code = status_code
        self.encoding = None

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")


class TestParseListPage:
    """列表页解析"""

    def test_parse_rows(self):
        """测试解析文章行与总条数"""
        crawler = ListPageCrawler()

        result = crawler.parse_list_page(3, LIST_PAGE_HTML)

        assert result.page == 3
        assert result.total == 37
        assert [article.source_id for article in result.articles] == ["52101", "52102"]
        first = result.articles[0]
        assert first.url == "https://www.ahcaijing.com/news/2025/52101.html"
        assert first.title == "屯溪老街迎来客流高峰"
        assert first.category == "旅游"
        assert first.publish_time == "2025-12-24 19:49:52"
        assert first.status == "通过"
        assert result.articles[1].url == "https://www.ahcaijing.com/news/2025/52102.html"

    def test_login_notice_page(self):
        """测试登录提示页抛出 LoginRequiredError"""
        crawler = ListPageCrawler()
        with pytest.raises(LoginRequiredError):
            crawler.parse_list_page(1, LOGIN_NOTICE_HTML)

    def test_empty_page(self):
        """测试没有文章的页面"""
        result = ListPageCrawler().parse_list_page(99, "<html><title>已发布稿件</title><table></table></html>")
        assert result.total == 0
        assert result.articles == []

    def test_filter_valid_articles(self):
        """测试只保留审核通过的文章"""
        articles = [make_item("1"), make_item("2", status="退稿"), make_item("3")]

        assert [a.source_id for a in filter_valid_articles(articles)] == ["1", "3"]
        assert [a.source_id for a in filter_valid_articles(articles, "退稿")] == ["2"]


class TestFetch:
    """请求与登录检查"""

    def test_get_list_page_sends_cookie(self, monkeypatch):
        """测试请求列表页时携带 Cookie 并按页码拼接URL"""
        crawler = ListPageCrawler()
        calls = []

        def fake_get(url, headers=None, timeout=None):
            calls.append((url, headers))
            return FakeResponse(LIST_PAGE_HTML)

        monkeypatch.setattr(crawler.session, "get", fake_get)

        result = crawler.get_list_page(2, "PHPSESSID=abc")

        assert len(result.articles) == 2
        url, headers = calls[0]
        assert url.endswith("index.php?m=member&c=content&a=published&page=2")
        assert headers == {"Cookie": "PHPSESSID=abc"}

    def test_check_login_status(self, monkeypatch):
        """测试登录态检查"""
        crawler = ListPageCrawler()

        monkeypatch.setattr(crawler.session, "get", lambda url, headers=None, timeout=None: FakeResponse(LIST_PAGE_HTML))
        assert crawler.check_login_status("PHPSESSID=ok") is True

        monkeypatch.setattr(crawler.session, "get", lambda url, headers=None, timeout=None: FakeResponse(LOGIN_NOTICE_HTML))
        assert crawler.check_login_status("PHPSESSID=expired") is False

    def test_check_login_status_network_error(self, monkeypatch):
        """测试网络错误时视为未登录"""
        crawler = ListPageCrawler()
        monkeypatch.setattr(crawler, "_fetch_page", _raise_connection_error)
        assert crawler.check_login_status("PHPSESSID=ok") is False

    @pytest.mark.asyncio
    async def test_async_wrapper(self, monkeypatch):
        """测试异步包装在线程池中执行"""
        crawler = ListPageCrawler()
        monkeypatch.setattr(crawler, "_fetch_page", lambda url, cookie=None: LIST_PAGE_HTML)

        result = await crawler.aget_list_page(1, "PHPSESSID=abc")

        assert result.total == 37

    def test_fetch_retries_network_errors(self, monkeypatch):
        """测试网络错误会重试，成功后返回内容"""
        crawler = ListPageCrawler()
        attempts = []

        def flaky_get(url, headers=None, timeout=None):
            attempts.append(url)
            if len(attempts) < 3:
                raise requests.ConnectionError("connection reset")
            return FakeResponse("<html>ok</html>")

        monkeypatch.setattr(crawler.session, "get", flaky_get)
        fetch = BaseCrawler._fetch_page.retry_with(wait=wait_none())

        assert fetch(crawler, "https://www.ahcaijing.com/") == "<html>ok</html>"
        assert len(attempts) == 3

    def test_fetch_gives_up_after_max_retries(self, monkeypatch):
        """测试超过重试次数后抛出原始异常"""
        crawler = ListPageCrawler()
        attempts = []

        def failing_get(url, headers=None, timeout=None):
            attempts.append(url)
            return FakeResponse("", status_code=502)

        monkeypatch.setattr(crawler.session, "get", failing_get)
        fetch = BaseCrawler._fetch_page.retry_with(wait=wait_none())

        with pytest.raises(requests.HTTPError):
            fetch(crawler, "https://www.ahcaijing.com/")
        assert len(attempts) == 3


def _raise_connection_error(url, cookie=None):
    raise requests.ConnectionError("unreachable")


class TestParsePublishTime:
    """发布时间解析"""

    def test_site_format_is_beijing_time(self):
        """测试原站时间按北京时间转换为 UTC"""
        assert parse_publish_time("2025-12-24 19:49:52") == parse_publish_time("2025-12-24T11:49:52+00:00")
        assert parse_publish_time("2025-12-24 19:49:52").hour == 11

    def test_invalid_values(self):
        """测试无法解析的值"""
        assert parse_publish_time("") is None
        assert parse_publish_time(None) is None
        assert parse_publish_time("昨天") is None
