"""
基础模型模块

定义所有模型共用的基础类和时间工具函数。
"""
from datetime import datetime, timezone

from sqlmodel import SQLModel


def utc_now() -> datetime:
    """获取当前 UTC 时间"""
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """
    统一转换为带时区的 UTC 时间

    部分驱动（如 SQLite）读回的时间不带时区，这里按 UTC 处理。
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def isoformat_utc(value: datetime | None) -> str | None:
    """
    格式化为 ISO-8601 UTC 字符串，使用 "Z" 后缀

    示例：
        2025-06-01T00:00:00Z
    """
    dt = as_utc(value)
    if dt is None:
        return None
    return dt.isoformat().replace("+00:00", "Z")


__all__ = ["SQLModel", "utc_now", "as_utc", "isoformat_utc"]
