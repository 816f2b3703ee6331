"""
新闻数据模型
列表阶段写入基础字段（status=pending），详情阶段补全正文并更新状态
"""
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, Integer, String, Text, DateTime, Index

from .database import Base


class ArticleStatus(str, Enum):
    """文章爬取状态枚举"""
    PENDING = "pending"             # 待爬取详情
    CRAWLED = "crawled"             # 已爬取
    FAILED = "failed"               # 爬取失败


class News(Base):
    """新闻表模型"""

    __tablename__ = "news"

    # 主键
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # 原站文章ID（自然键，用于幂等插入）
    source_id = Column(String(64), unique=True, nullable=False, index=True, comment="原站文章ID")

    # 基本信息
    title = Column(String(500), nullable=False, default="", comment="新闻标题")
    source_url = Column(String(1000), nullable=False, comment="原文链接")
    category = Column(String(100), nullable=True, index=True, comment="分类")
    region = Column(String(50), nullable=True, index=True, comment="地区")
    author = Column(String(200), nullable=True, comment="作者")
    source_name = Column(String(200), nullable=True, comment="来源")

    # 正文
    content = Column(Text, nullable=True, comment="正文HTML")
    content_text = Column(Text, nullable=True, comment="正文纯文本")
    raw_html = Column(Text, nullable=True, comment="原始HTML内容")

    # 爬取状态
    status = Column(String(20), nullable=False, default=ArticleStatus.PENDING.value, index=True, comment="爬取状态")
    error_message = Column(String(1000), nullable=True, comment="失败原因")

    # 时间信息
    publish_time = Column(DateTime, nullable=True, index=True, comment="发布时间")
    crawl_time = Column(DateTime, nullable=True, comment="详情爬取时间")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, comment="入库时间")
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, comment="更新时间")

    __table_args__ = (
        # 按状态+入库时间拉取待爬取文章（最常用）
        Index('idx_news_status_created_at', 'status', 'created_at'),
    )

    def __repr__(self):
        return f"<News(id={self.id}, source_id='{self.source_id}', status='{self.status}')>"

    def to_dict(self, include_content: bool = False):
        """转换为字典"""
        result = {
            "id": self.id,
            "source_id": self.source_id,
            "title": self.title,
            "source_url": self.source_url,
            "category": self.category,
            "region": self.region,
            "author": self.author,
            "source_name": self.source_name,
            "status": self.status,
            "error_message": self.error_message,
            "publish_time": self.publish_time.isoformat() if self.publish_time else None,
            "crawl_time": self.crawl_time.isoformat() if self.crawl_time else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_content:
            result["content"] = self.content
            result["content_text"] = self.content_text
        return result
