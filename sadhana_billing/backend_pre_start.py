"""
应用启动前检查脚本

在应用启动、执行迁移之前等待数据库可用。
Postgres 容器可能还在初始化，通过 tenacity 重试避免启动失败。

运行方式：
    python -m sadhana_billing.backend_pre_start
    alembic upgrade head
"""
import logging

from sqlalchemy import Engine
from sqlmodel import Session, select
from tenacity import (
    after_log,
    before_log,
    retry,
    stop_after_attempt,
    wait_fixed,
)

from sadhana_billing.core.db import engine

logger = logging.getLogger(__name__)

max_tries = 60 * 5  # 最多等待 5 分钟
wait_seconds = 1


@retry(
    stop=stop_after_attempt(max_tries),
    wait=wait_fixed(wait_seconds),
    before=before_log(logger, logging.INFO),
    after=after_log(logger, logging.WARN),
)
def init(db_engine: Engine) -> None:
    """
    执行 SELECT 1 检查数据库是否就绪，失败时由 tenacity 重试
    """
    try:
        with Session(db_engine) as session:
            session.exec(select(1))
    except Exception as e:
        logger.error(e)
        raise e


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    logger.info("Waiting for database")
    init(engine)
    logger.info("Database is ready")


if __name__ == "__main__":  # pragma: no cover
    main()
