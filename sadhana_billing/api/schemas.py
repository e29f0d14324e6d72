"""
API 请求/响应数据模型（Schema）

定义对外接口的响应数据结构。
JSON 字段使用 camelCase（orderId、accessUntil），与前端调用方保持一致。

关键概念：
- BaseModel: Pydantic 的模型基类，用于数据验证
- alias_generator: 自动把 snake_case 字段名转换为 camelCase 别名
- 这些模型不是数据库表，只用于 API 数据交换
"""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """
    camelCase 序列化基类

    populate_by_name=True 允许在 Python 代码中继续使用 snake_case 字段名构造。
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorResponse(BaseModel):
    """
    错误响应模型

    所有失败响应都使用这个格式：
        {"error": "Subscription not found"}
    """
    error: str


class CreateOrderData(CamelModel):
    """
    创建订单响应

    只返回网关给出的订单 ID、金额和币种，不暴露任何内部 ID。

    示例响应：
        {"orderId": "order_abc", "amount": 50000, "currency": "INR"}
    """
    order_id: str
    amount: int
    currency: str


class CancelSubscriptionData(CamelModel):
    """
    取消订阅响应

    access_until 为取消前的 current_period_end（ISO-8601，UTC，"Z" 后缀），
    取消不会改变访问截止时间。
    """
    success: bool = True
    message: str
    access_until: str | None = None
