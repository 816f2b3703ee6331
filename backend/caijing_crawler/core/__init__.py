"""
核心模块
"""
from .config import settings, get_settings
from .database import get_db, init_database

__all__ = ["settings", "get_settings", "get_db", "init_database"]
