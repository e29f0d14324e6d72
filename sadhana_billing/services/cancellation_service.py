"""
订阅取消服务

步骤（顺序固定）：
1. 按 (subscription_id, user_id) 校验归属
2. 条件更新 active -> cancelled，写入 cancelled_at；已取消则幂等返回
3. 有 Razorpay 订阅 ID 时调用网关取消（尽力而为）

本地取消先提交，以本地为准：网关取消失败不会回滚本地状态，
失败结果记录在 gateway_cancel_* 字段，由对账 worker 重试。
取消不会改变 current_period_end，用户在此之前仍可访问。
"""
from __future__ import annotations

import logging

from sqlmodel import Session
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from sadhana_billing import crud
from sadhana_billing.api.errors import (
    ConflictError,
    GatewayError,
    NotFoundError,
    OwnershipError,
    StateError,
    StoreError,
)
from sadhana_billing.api.schemas import CancelSubscriptionData
from sadhana_billing.core.config import settings
from sadhana_billing.enums import GatewayCancelStatus, SubscriptionStatus
from sadhana_billing.models import Subscription, isoformat_utc, utc_now
from sadhana_billing.services.ownership import verify_subscription_owner
from sadhana_billing.services.razorpay_service import RazorpayClient

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Subscription cancelled. Access continues until period end."


def _to_result(sub: Subscription) -> CancelSubscriptionData:
    return CancelSubscriptionData(
        success=True,
        message=CANCELLED_MESSAGE,
        access_until=isoformat_utc(sub.current_period_end),
    )


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, GatewayError) and exc.retryable


def cancel_at_gateway(
    *,
    session: Session,
    gateway: RazorpayClient,
    subscription_id: str,
    external_subscription_id: str,
    user_id: str,
) -> GatewayCancelStatus:
    """
    调用网关取消订阅并记录结果

    只重试可重试的错误（网络失败、5xx、429），指数退避，
    最多 GATEWAY_CANCEL_MAX_ATTEMPTS 次。结果写入 gateway_cancel_status。
    任何失败都只记录日志，不向上抛出。

    Returns:
        GatewayCancelStatus: succeeded 或 failed
    """
    retrying = Retrying(
        stop=stop_after_attempt(settings.GATEWAY_CANCEL_MAX_ATTEMPTS),
        wait=wait_exponential(multiplier=settings.GATEWAY_RETRY_BACKOFF_SECONDS, max=10),
        retry=retry_if_exception(_is_retryable),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    error: str | None = None
    try:
        for attempt in retrying:
            with attempt:
                gateway.cancel_subscription(
                    external_subscription_id,
                    cancel_at_cycle_end=settings.GATEWAY_CANCEL_AT_CYCLE_END,
                )
    except GatewayError as e:
        outcome = GatewayCancelStatus.failed
        error = str(e)
        logger.error(
            "gateway cancellation failed, left for reconciliation: "
            "subscription_id=%s user_id=%s external_id=%s error=%s",
            subscription_id,
            user_id,
            external_subscription_id,
            error,
        )
    else:
        outcome = GatewayCancelStatus.succeeded
        logger.info("gateway cancellation succeeded: subscription_id=%s external_id=%s", subscription_id, external_subscription_id)

    try:
        crud.record_gateway_cancel_result(
            session=session, subscription_id=subscription_id, status=outcome, error=error
        )
    except StoreError:
        logger.exception(
            "failed to record gateway cancellation outcome %s: subscription_id=%s user_id=%s",
            outcome.value,
            subscription_id,
            user_id,
        )
    return outcome


def cancel_subscription(
    *,
    session: Session,
    gateway: RazorpayClient,
    subscription_id: str,
    user_id: str,
) -> CancelSubscriptionData:
    """
    取消订阅，访问权限保留到 current_period_end

    Returns:
        CancelSubscriptionData: access_until 为原 current_period_end

    Raises:
        OwnershipError: 订阅不存在或不属于该用户
        StateError: 订阅不是 active（也不是已取消）
        StoreError: 数据库错误
    """
    sub = verify_subscription_owner(session=session, subscription_id=subscription_id, user_id=user_id)

    if sub.status == SubscriptionStatus.cancelled:
        logger.info("subscription %s already cancelled for user %s", subscription_id, user_id)
        return _to_result(sub)
    if sub.status != SubscriptionStatus.active:
        raise StateError(f"Subscription cannot be cancelled from status {SubscriptionStatus(sub.status).value}")

    now = utc_now()
    fields: dict[str, object] = {"cancelled_at": now, "updated_at": now}
    if sub.external_subscription_id:
        fields["gateway_cancel_status"] = GatewayCancelStatus.pending.value

    try:
        updated = crud.conditional_update_status(
            session=session,
            subscription_id=subscription_id,
            expected_status=SubscriptionStatus.active,
            new_status=SubscriptionStatus.cancelled,
            fields=fields,
            user_id=user_id,
        )
    except NotFoundError:
        raise OwnershipError()
    except ConflictError:
        # Lost the race: another request already moved the subscription on.
        current = crud.get_subscription_for_user(
            session=session, subscription_id=subscription_id, user_id=user_id
        )
        if current is None:
            raise OwnershipError()
        if current.status == SubscriptionStatus.cancelled:
            logger.info("subscription %s cancelled concurrently for user %s", subscription_id, user_id)
            return _to_result(current)
        raise StateError(f"Subscription cannot be cancelled from status {SubscriptionStatus(current.status).value}")

    logger.info("subscription %s cancelled for user %s", subscription_id, user_id)
    result = _to_result(updated)

    if updated.external_subscription_id:
        cancel_at_gateway(
            session=session,
            gateway=gateway,
            subscription_id=subscription_id,
            external_subscription_id=updated.external_subscription_id,
            user_id=user_id,
        )

    return result
