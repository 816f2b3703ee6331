"""
爬取会话数据模型
"""
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, Integer, String, DateTime, Float, Boolean

from .database import Base


class CrawlPhase(str, Enum):
    """爬取阶段枚举"""
    LIST = "list"                   # 列表页阶段
    DETAIL = "detail"               # 详情页阶段
    COMPLETED = "completed"         # 已完成


class SessionStatus(str, Enum):
    """会话状态枚举"""
    RUNNING = "running"             # 执行中
    PAUSED = "paused"               # 已暂停
    COMPLETED = "completed"         # 已完成
    FAILED = "failed"               # 失败


TERMINAL_STATUSES = (SessionStatus.COMPLETED.value, SessionStatus.FAILED.value)


class CrawlSession(Base):
    """爬取会话表"""

    __tablename__ = "crawl_sessions"

    # 主键
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # 任务配置
    session_name = Column(String(200), nullable=False, comment="会话名称")
    start_page = Column(Integer, nullable=False, comment="起始页码")
    end_page = Column(Integer, nullable=False, comment="结束页码")
    skip_existing = Column(Boolean, nullable=False, default=True, comment="是否跳过已存在文章")

    # 执行进度
    total_pages = Column(Integer, nullable=False, comment="总页数")
    current_page = Column(Integer, nullable=False, default=0, comment="当前页码（相对本任务范围）")
    phase = Column(String(20), nullable=False, default=CrawlPhase.LIST.value, comment="当前阶段")
    status = Column(String(20), nullable=False, default=SessionStatus.RUNNING.value, index=True, comment="会话状态")

    # 统计
    total_news = Column(Integer, nullable=False, default=0, comment="发现的文章数")
    pending_news = Column(Integer, nullable=False, default=0, comment="待爬取数")
    crawled_news = Column(Integer, nullable=False, default=0, comment="已爬取数")
    failed_news = Column(Integer, nullable=False, default=0, comment="失败数")
    avg_speed = Column(Float, nullable=False, default=0, comment="平均速度（篇/分钟）")
    error_message = Column(String(1000), nullable=True, comment="错误信息")

    # 时间戳
    started_at = Column(DateTime, default=datetime.utcnow, nullable=False, comment="开始时间")
    finished_at = Column(DateTime, nullable=True, comment="结束时间")
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, comment="更新时间")

    def __repr__(self):
        return f"<CrawlSession(id={self.id}, phase='{self.phase}', status='{self.status}')>"

    def to_dict(self):
        """转换为字典"""
        return {
            "id": self.id,
            "session_name": self.session_name,
            "start_page": self.start_page,
            "end_page": self.end_page,
            "skip_existing": self.skip_existing,
            "total_pages": self.total_pages,
            "current_page": self.current_page,
            "phase": self.phase,
            "status": self.status,
            "total_news": self.total_news,
            "pending_news": self.pending_news,
            "crawled_news": self.crawled_news,
            "failed_news": self.failed_news,
            "avg_speed": self.avg_speed,
            "error_message": self.error_message,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
