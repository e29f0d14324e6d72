"""
网关取消对账 worker

本地取消已提交、但网关侧取消失败（或 pending 超时）的订阅，在这里重试网关取消。
只更新 gateway_cancel_* 字段，不会修改订阅状态和 cancelled_at。
累计尝试达到 RECONCILE_MAX_ATTEMPTS 的订阅不再重试，需要人工处理。

运行方式：
    python -m sadhana_billing.worker.reconcile_cancellations
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlmodel import Session

from sadhana_billing import crud
from sadhana_billing.api.errors import StoreError
from sadhana_billing.core.config import settings
from sadhana_billing.core.db import engine
from sadhana_billing.enums import GatewayCancelStatus
from sadhana_billing.models import utc_now
from sadhana_billing.services.cancellation_service import cancel_at_gateway
from sadhana_billing.services.razorpay_service import RazorpayClient, get_razorpay_client

logger = logging.getLogger("reconcile_cancellations")


def reconcile(
    *,
    session: Session,
    gateway: RazorpayClient,
    now: datetime | None = None,
    limit: int | None = None,
) -> dict[str, int]:
    """
    处理一批待对账的订阅

    Returns:
        统计结果：{"succeeded": n, "failed": n}
    """
    now = now or utc_now()
    pending_before = now - timedelta(seconds=settings.RECONCILE_PENDING_GRACE_SECONDS)
    backlog = crud.list_gateway_cancel_backlog(
        session=session,
        pending_before=pending_before,
        max_attempts=settings.RECONCILE_MAX_ATTEMPTS,
        limit=limit or settings.RECONCILE_BATCH_SIZE,
    )

    stats = {"succeeded": 0, "failed": 0}
    for sub in backlog:
        # Snapshot before the commit inside cancel_at_gateway expires the instance.
        subscription_id, user_id = sub.id, sub.user_id
        external_id = sub.external_subscription_id
        if not external_id:
            continue
        outcome = cancel_at_gateway(
            session=session,
            gateway=gateway,
            subscription_id=subscription_id,
            external_subscription_id=external_id,
            user_id=user_id,
        )
        if outcome == GatewayCancelStatus.succeeded:
            stats["succeeded"] += 1
        else:
            stats["failed"] += 1
    return stats


def run_once() -> dict[str, int]:
    """执行一轮对账（调度器的定时任务入口）"""
    gateway = get_razorpay_client()
    with Session(engine) as session:
        try:
            stats = reconcile(session=session, gateway=gateway)
        except StoreError:
            logger.exception("reconciliation aborted: backlog could not be loaded")
            raise
    logger.info(
        "reconciliation done: succeeded=%s failed=%s", stats["succeeded"], stats["failed"]
    )
    return stats


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    run_once()


if __name__ == "__main__":  # pragma: no cover
    main()
