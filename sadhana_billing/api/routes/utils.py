"""
工具路由模块

- GET /utils/health-check/: 存活探针，进程正常即返回 true
- GET /utils/ready/: 就绪探针，额外检查数据库连接
"""
import logging

from fastapi import APIRouter
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from sadhana_billing.api.deps import SessionDep
from sadhana_billing.api.errors import StoreError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/utils", tags=["utils"])


@router.get("/health-check/")
async def health_check() -> bool:
    return True


@router.get("/ready/")
def ready(session: SessionDep) -> bool:
    """
    就绪检查

    执行 SELECT 1，数据库不可用时返回 500，负载均衡器据此摘除实例。
    """
    try:
        session.exec(select(1))
    except SQLAlchemyError as e:
        logger.error("readiness check failed: %s", e)
        raise StoreError("Database unavailable") from e
    return True
