"""
订单模型模块

定义支付订单相关的数据库模型。
"""
from datetime import datetime

from sqlalchemy import BigInteger, Column, DateTime, String
from sqlmodel import Field, SQLModel

from .base import utc_now


class PaymentOrder(SQLModel, table=True):
    """
    支付订单模型

    在 Razorpay 创建订单成功后写入一次，之后本服务不再修改。
    支付结算、webhook 处理由外部流程负责。

    字段说明：
    - id: 主键，使用 Razorpay 返回的订单 ID（不在本地生成）
    - user_id: 用户 ID
    - plan_id: 订阅计划 ID（可为空）
    - amount: 订单金额（整数，最小货币单位，如 INR 的 paise）
    - currency: 货币代码（ISO 4217）
    - receipt: 收据号（唯一，用于幂等和对账）
    - gateway_status: 创建时网关返回的订单状态（如 "created"）
    - created_at: 创建时间
    """
    __tablename__ = "payment_orders"
    id: str = Field(sa_column=Column(String(64), primary_key=True))
    user_id: str = Field(sa_column=Column(String(64), index=True, nullable=False))
    plan_id: str | None = Field(default=None, max_length=64)

    amount: int = Field(sa_column=Column(BigInteger, nullable=False))
    currency: str = Field(max_length=3)

    receipt: str = Field(
        sa_column=Column(String(40), unique=True, index=True, nullable=False)
    )
    gateway_status: str | None = Field(default=None, max_length=16)

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
