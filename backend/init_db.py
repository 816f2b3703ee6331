#!/usr/bin/env python
"""
数据库初始化脚本
独立运行以创建数据库表
"""
import sys
import os
import asyncio

# 添加当前目录到 Python 路径
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

if __name__ == "__main__":
    print("=" * 60)
    print("Initializing CaijingCrawler Database...")
    print("=" * 60)

    try:
        from caijing_crawler.core.config import settings
        from caijing_crawler.core.database import init_database

        print(f"\nConnecting to database: {settings.POSTGRES_HOST}:{settings.POSTGRES_PORT}/{settings.POSTGRES_DB}")
        print("Creating tables...")
        asyncio.run(init_database())

        print("\nDatabase initialized successfully!")
        print("   - news table created")
        print("   - crawl_sessions table created")
        print("=" * 60)
        sys.exit(0)

    except Exception as e:
        print(f"\nDatabase initialization failed: {e}")
        import traceback
        traceback.print_exc()
        print("=" * 60)
        sys.exit(1)
