"""
订阅 CRUD 操作

所有状态变更都通过条件更新完成（UPDATE ... WHERE status = 预期状态），
不允许"先读后无条件写"。存储层不做隐式重试。
"""
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from sqlalchemy import and_, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from sadhana_billing.api.errors import ConflictError, NotFoundError, StoreError
from sadhana_billing.enums import GatewayCancelStatus, SubscriptionStatus
from sadhana_billing.models import Subscription, utc_now


def get_by_id(*, session: Session, subscription_id: str) -> Subscription | None:
    """根据 ID 查询订阅（仅供内部使用，不对外暴露）"""
    try:
        return session.exec(select(Subscription).where(Subscription.id == subscription_id)).first()
    except SQLAlchemyError as e:
        session.rollback()
        raise StoreError("Failed to load subscription") from e


def get_by_id_for_user(*, session: Session, subscription_id: str, user_id: str) -> Subscription | None:
    """根据 ID + 用户 ID 查询订阅，一次查询同时完成归属校验"""
    stmt = select(Subscription).where(
        Subscription.id == subscription_id, Subscription.user_id == user_id
    )
    try:
        return session.exec(stmt).first()
    except SQLAlchemyError as e:
        session.rollback()
        raise StoreError("Failed to load subscription") from e


def conditional_update_status(
    *,
    session: Session,
    subscription_id: str,
    expected_status: SubscriptionStatus,
    new_status: SubscriptionStatus,
    fields: Mapping[str, Any] | None = None,
    user_id: str | None = None,
) -> Subscription:
    """
    条件更新订阅状态

    只有存储中的状态仍等于 expected_status 时才会更新；
    并发情况下同一时刻只有一个请求能成功。

    Raises:
        ConflictError: 记录存在，但状态已不是 expected_status
        NotFoundError: 记录不存在
        StoreError: 数据库错误
    """
    values: dict[str, Any] = dict(fields or {})
    values["status"] = new_status.value
    values.setdefault("updated_at", utc_now())

    stmt = update(Subscription).where(
        Subscription.id == subscription_id,
        Subscription.status == expected_status.value,
    )
    if user_id is not None:
        stmt = stmt.where(Subscription.user_id == user_id)
    stmt = stmt.values(**values).execution_options(synchronize_session=False)

    try:
        result = session.exec(stmt)  # type: ignore[call-overload]
        matched = result.rowcount
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise StoreError("Failed to update subscription") from e

    if user_id is not None:
        current = get_by_id_for_user(session=session, subscription_id=subscription_id, user_id=user_id)
    else:
        current = get_by_id(session=session, subscription_id=subscription_id)
    if current is None:
        raise NotFoundError("Subscription not found")
    if matched == 0:
        raise ConflictError(
            f"Subscription {subscription_id} is no longer {expected_status.value}"
        )
    return current


def record_gateway_cancel_result(
    *,
    session: Session,
    subscription_id: str,
    status: GatewayCancelStatus,
    error: str | None = None,
) -> bool:
    """
    记录网关侧取消结果（对账钩子）

    只更新 gateway_cancel_* 字段，不会修改 status 和 cancelled_at。
    仅对 pending/failed 的已取消订阅生效，已成功的记录不会被覆盖。

    Returns:
        是否有记录被更新
    """
    stmt = (
        update(Subscription)
        .where(
            Subscription.id == subscription_id,
            Subscription.status == SubscriptionStatus.cancelled.value,
            Subscription.gateway_cancel_status.in_(  # type: ignore[union-attr]
                [GatewayCancelStatus.pending.value, GatewayCancelStatus.failed.value]
            ),
        )
        .values(
            gateway_cancel_status=status.value,
            gateway_cancel_error=error,
            gateway_cancel_attempts=Subscription.gateway_cancel_attempts + 1,
            updated_at=utc_now(),
        )
        .execution_options(synchronize_session=False)
    )
    try:
        result = session.exec(stmt)  # type: ignore[call-overload]
        matched = result.rowcount
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise StoreError("Failed to record gateway cancellation result") from e
    return matched > 0


def list_gateway_cancel_backlog(
    *, session: Session, pending_before: datetime, max_attempts: int, limit: int = 100
) -> list[Subscription]:
    """
    查询需要对账的订阅：已取消、有网关订阅 ID，且网关取消失败或 pending 已超时

    gateway_cancel_attempts 已达到 max_attempts 的记录不再返回。
    """
    stmt = (
        select(Subscription)
        .where(
            Subscription.status == SubscriptionStatus.cancelled.value,
            Subscription.external_subscription_id.is_not(None),  # type: ignore[union-attr]
            Subscription.gateway_cancel_attempts < max_attempts,
            or_(
                Subscription.gateway_cancel_status == GatewayCancelStatus.failed.value,
                and_(
                    Subscription.gateway_cancel_status == GatewayCancelStatus.pending.value,
                    Subscription.updated_at <= pending_before,
                ),
            ),
        )
        .order_by(Subscription.updated_at)
        .limit(limit)
    )
    try:
        return list(session.exec(stmt).all())
    except SQLAlchemyError as e:
        session.rollback()
        raise StoreError("Failed to load reconciliation backlog") from e
