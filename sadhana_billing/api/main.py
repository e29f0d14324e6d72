"""
API 路由聚合模块

将所有业务路由模块聚合到一个统一的 router 中。
这个 router 会被注册到主应用（sadhana_billing/main.py）上。

路由模块说明：
- orders: 支付订单创建
- subscription: 订阅取消
- utils: 工具相关（健康检查等）
"""
from fastapi import APIRouter

from sadhana_billing.api.routes import (
    orders,  # 订单路由
    subscription,  # 订阅路由
    utils,  # 工具路由
)

api_router = APIRouter()

api_router.include_router(orders.router)  # /create-order
api_router.include_router(subscription.router)  # /cancel
api_router.include_router(utils.router)  # /utils/*
