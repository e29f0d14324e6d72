"""
FastAPI 依赖注入模块

提供可复用的依赖项，用于路由处理函数中。

- get_db: 每个请求一个数据库会话，请求结束自动关闭
- get_gateway: 进程内共享的 Razorpay 客户端（懒加载，只读），不会每个请求重新创建
"""
from collections.abc import Generator  # 生成器类型，用于资源管理
from typing import Annotated  # 类型注解，用于依赖注入

from fastapi import Depends
from sqlmodel import Session

from sadhana_billing.core.db import engine
from sadhana_billing.services.razorpay_service import RazorpayClient, get_razorpay_client


def get_db() -> Generator[Session, None, None]:
    """
    获取数据库会话（依赖注入）

    使用 yield 确保会话在请求结束后自动关闭。
    """
    with Session(engine) as session:
        yield session


def get_gateway() -> RazorpayClient:
    """获取支付网关客户端（依赖注入），测试中通过 dependency_overrides 替换"""
    return get_razorpay_client()


# 类型别名，简化依赖注入的写法
SessionDep = Annotated[Session, Depends(get_db)]  # 数据库会话依赖
GatewayDep = Annotated[RazorpayClient, Depends(get_gateway)]  # 支付网关依赖
