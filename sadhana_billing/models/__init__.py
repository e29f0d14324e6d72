"""
数据库模型定义模块

本模块使用 SQLModel 定义所有数据库表结构。

模型按功能拆分：
- subscription.py: 订阅模型
- order.py: 支付订单模型
"""
from sqlmodel import SQLModel

from .base import as_utc, isoformat_utc, utc_now
from .order import PaymentOrder
from .subscription import Subscription

__all__ = [
    "SQLModel",
    "utc_now",
    "as_utc",
    "isoformat_utc",
    "Subscription",
    "PaymentOrder",
]
