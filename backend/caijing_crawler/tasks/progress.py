"""
爬取速度与剩余时间计算
"""
import math
import time
from typing import Optional

# 启动不足 0.1 分钟时不计算速度
MIN_ELAPSED_MINUTES = 0.1


def calculate_speed(crawled: int, start_time: float, now: Optional[float] = None) -> float:
    """
    计算平均速度

    Args:
        crawled: 已爬取篇数
        start_time: 起始时间戳（秒）
        now: 当前时间戳，默认 time.time()

    Returns:
        篇/分钟，保留 1 位小数
    """
    now = time.time() if now is None else now
    elapsed = (now - start_time) / 60
    if elapsed < MIN_ELAPSED_MINUTES:
        return 0
    return round(crawled / elapsed, 1)


def estimate_remaining_minutes(pending: int, speed: float) -> int:
    """按当前速度预估剩余分钟数，速度为 0 时返回 0"""
    if speed <= 0:
        return 0
    return math.ceil(pending / speed)
