"""
订阅模型模块

定义订阅相关的数据库模型。
"""
from datetime import datetime

from sqlalchemy import Column, DateTime, String, Text
from sqlmodel import Field, SQLModel

from sadhana_billing.enums import GatewayCancelStatus, SubscriptionStatus

from .base import utc_now


class Subscription(SQLModel, table=True):
    """
    订阅记录模型

    订阅由支付完成后的外部流程创建；本服务只负责取消。
    取消后 current_period_end 保持不变，用户在此之前仍可访问。

    字段说明：
    - id: 主键（不透明字符串，不可变）
    - user_id: 所属用户 ID，一条订阅只属于一个用户
    - plan: 订阅计划（monthly / yearly）
    - status: 订阅状态（待激活/激活/取消/过期）
    - external_subscription_id: Razorpay 侧的订阅 ID（可为空）
    - current_period_start: 当前订阅周期开始时间
    - current_period_end: 当前订阅周期结束时间（访问截止时间）
    - cancelled_at: 取消时间，只在 active -> cancelled 时写入一次
    - gateway_cancel_status: 网关侧取消状态（对账钩子）
    - gateway_cancel_error: 最近一次网关取消失败的错误信息
    - gateway_cancel_attempts: 网关取消已尝试次数
    - created_at: 创建时间
    - updated_at: 更新时间
    """
    __tablename__ = "subscriptions"
    id: str = Field(sa_column=Column(String(64), primary_key=True))
    user_id: str = Field(sa_column=Column(String(64), index=True, nullable=False))

    plan: str | None = Field(default=None, max_length=32)
    status: SubscriptionStatus = Field(sa_column=Column(String(16), nullable=False))
    external_subscription_id: str | None = Field(default=None, max_length=64)

    current_period_start: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    current_period_end: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    cancelled_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )

    gateway_cancel_status: GatewayCancelStatus | None = Field(
        default=None, sa_column=Column(String(16), index=True, nullable=True)
    )
    gateway_cancel_error: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    gateway_cancel_attempts: int = Field(default=0)

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
