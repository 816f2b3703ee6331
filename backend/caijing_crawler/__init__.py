"""
CaijingCrawler - 安徽财经网两阶段新闻爬取服务
"""
__version__ = "0.1.0"
