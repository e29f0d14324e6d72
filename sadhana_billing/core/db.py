"""
数据库连接模块

管理数据库引擎和会话的创建。
使用 SQLModel 的 create_engine 创建数据库连接池。

重要提示：
- 数据库表结构通过 Alembic 迁移管理，不要在这里创建表
- 每次存储调用都受超时约束：连接超时、语句超时、连接池等待超时
"""
from sqlmodel import create_engine  # SQLModel 的数据库工具

from sadhana_billing.core.config import settings

# 创建数据库引擎（连接池）
engine = create_engine(
    str(settings.SQLALCHEMY_DATABASE_URI),
    pool_pre_ping=True,  # 取出连接前先探活，避免使用已断开的连接
    pool_timeout=settings.DATABASE_POOL_TIMEOUT_SECONDS,
    connect_args={
        "connect_timeout": settings.DATABASE_CONNECT_TIMEOUT_SECONDS,
        "options": f"-c statement_timeout={settings.DATABASE_STATEMENT_TIMEOUT_MS}",
    },
)
