"""
定时任务调度器

按固定间隔运行网关取消对账。

运行方式：
    python -m sadhana_billing.worker.scheduler
"""

import logging
from datetime import timezone

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from sadhana_billing.core.config import settings
from sadhana_billing.worker.reconcile_cancellations import run_once

logger = logging.getLogger(__name__)


def build_scheduler() -> BlockingScheduler:
    scheduler = BlockingScheduler(timezone=timezone.utc)
    scheduler.add_job(
        run_once,
        IntervalTrigger(minutes=settings.RECONCILE_INTERVAL_MINUTES),
        id="reconcile_cancellations",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    return scheduler


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    scheduler = build_scheduler()
    logger.info(
        "Scheduler started. Cancellation reconciliation runs every %s minutes.",
        settings.RECONCILE_INTERVAL_MINUTES,
    )
    scheduler.start()


if __name__ == "__main__":  # pragma: no cover
    main()
