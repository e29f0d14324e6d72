"""
枚举类型定义模块

所有枚举都继承自 str 和 Enum，这样既可以用作字符串，又具有枚举的特性。
"""
from enum import Enum


class SubscriptionStatus(str, Enum):
    """
    订阅状态枚举

    - pending: 待激活（支付尚未确认）
    - active: 激活中
    - cancelled: 已取消（在 current_period_end 之前仍可访问）
    - expired: 已过期

    状态只会前进：active -> cancelled，active/pending -> expired。
    """
    pending = "pending"
    active = "active"
    cancelled = "cancelled"
    expired = "expired"


class GatewayCancelStatus(str, Enum):
    """
    网关侧取消状态枚举（对账钩子）

    本地取消先提交，网关侧取消是尽力而为：
    - pending: 本地已取消，网关调用尚未完成
    - succeeded: 网关已确认取消
    - failed: 网关调用失败，等待对账 worker 重试
    """
    pending = "pending"
    succeeded = "succeeded"
    failed = "failed"
