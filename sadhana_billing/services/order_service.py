"""
支付订单创建服务

流程：
1. 校验参数（在任何外部调用之前）
2. 根据 userId + 幂等键生成确定性的 receipt
3. 如果同一 receipt 的订单已存在，直接返回（不再调用网关）
4. 调用 Razorpay 创建订单
5. 写入 payment_orders；receipt 已被并发请求写入时返回先写入的订单，
   其他写入失败只记录对账日志，不回滚网关订单
"""
from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlmodel import Session

from sadhana_billing import crud
from sadhana_billing.api.errors import (
    GatewayError,
    StateError,
    StoreError,
    ValidationError,
    missing_fields,
)
from sadhana_billing.api.schemas import CreateOrderData
from sadhana_billing.core.config import settings
from sadhana_billing.models import PaymentOrder, utc_now
from sadhana_billing.services.razorpay_service import RazorpayClient

logger = logging.getLogger(__name__)

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")
_MAX_IDEMPOTENCY_KEY_LENGTH = 255
# user_id / plan_id 列宽
_MAX_ID_LENGTH = 64


@dataclass(frozen=True)
class OrderRequest:
    """创建订单请求（未校验的原始输入）"""
    amount: Any
    currency: Any
    user_id: Any
    plan_id: Any = None
    idempotency_key: Any = None


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_order_request(request: OrderRequest) -> None:
    """
    校验创建订单请求

    Raises:
        ValidationError: 必填字段缺失（"Missing required fields"）或字段非法
    """
    required = (("amount", request.amount), ("currency", request.currency), ("userId", request.user_id))
    missing = [name for name, value in required if _is_missing(value)]
    if missing:
        raise missing_fields(missing)

    invalid: list[str] = []
    # bool is a subclass of int.
    if isinstance(request.amount, bool) or not isinstance(request.amount, int) or request.amount <= 0:
        invalid.append("amount")
    if not isinstance(request.currency, str) or not _CURRENCY_RE.match(request.currency):
        invalid.append("currency")
    if not isinstance(request.user_id, str) or len(request.user_id) > _MAX_ID_LENGTH:
        invalid.append("userId")
    plan_id = request.plan_id
    if plan_id is not None and (not isinstance(plan_id, str) or len(plan_id) > _MAX_ID_LENGTH):
        invalid.append("planId")
    key = request.idempotency_key
    if key is not None and (not isinstance(key, str) or len(key) > _MAX_IDEMPOTENCY_KEY_LENGTH):
        invalid.append("idempotencyKey")
    if invalid:
        raise ValidationError(fields=invalid)


def build_receipt(
    *,
    user_id: str,
    amount: int,
    currency: str,
    plan_id: str | None,
    idempotency_key: str | None,
    now: datetime,
) -> str:
    """
    生成确定性的 receipt（Razorpay 限制最长 40 个字符）

    - 有幂等键：sha256(userId:幂等键)
    - 无幂等键：按时间窗口分桶，同一窗口内相同参数的重复提交得到相同 receipt

    示例：
        rcpt_3f2a9c0e5b7d41a8c6e2f0b9d1a4c7e3
    """
    if idempotency_key:
        token = idempotency_key
    else:
        bucket = int(now.timestamp()) // settings.ORDER_IDEMPOTENCY_WINDOW_SECONDS
        token = f"{plan_id or ''}:{amount}:{currency}:{bucket}"
    digest = hashlib.sha256(f"{user_id}:{token}".encode()).hexdigest()[:32]
    return f"rcpt_{digest}"


def _replay(existing: PaymentOrder, *, amount: int, currency: str, plan_id: str | None) -> CreateOrderData:
    if existing.amount != amount or existing.currency != currency or existing.plan_id != plan_id:
        raise StateError("Idempotency key was already used with different order parameters")
    return CreateOrderData(order_id=existing.id, amount=existing.amount, currency=existing.currency)


def _find_persisted(*, session: Session, receipt: str, user_id: str) -> PaymentOrder | None:
    try:
        return crud.get_order_by_receipt(session=session, receipt=receipt, user_id=user_id)
    except StoreError:
        logger.exception("failed to re-read order by receipt %s for user %s", receipt, user_id)
        return None


def create_payment_order(
    *,
    session: Session,
    gateway: RazorpayClient,
    request: OrderRequest,
    now: datetime | None = None,
) -> CreateOrderData:
    """
    创建支付订单

    Args:
        session: 数据库会话
        gateway: Razorpay 客户端（进程内共享）
        request: 创建订单请求
        now: 当前时间（用于无幂等键时的时间分桶）

    Returns:
        CreateOrderData: 网关返回的订单 ID、金额、币种

    Raises:
        ValidationError: 参数缺失或非法，此时不会调用网关
        StateError: 同一幂等键被用于不同的订单参数
        GatewayError: 网关调用失败
        StoreError: 查询已有订单失败
    """
    validate_order_request(request)
    user_id: str = request.user_id
    amount: int = request.amount
    currency: str = request.currency
    plan_id: str | None = request.plan_id or None

    receipt = build_receipt(
        user_id=user_id,
        amount=amount,
        currency=currency,
        plan_id=plan_id,
        idempotency_key=request.idempotency_key or None,
        now=now or utc_now(),
    )

    # Replay: the same logical request never creates a second gateway order.
    existing = crud.get_order_by_receipt(session=session, receipt=receipt, user_id=user_id)
    if existing:
        logger.info("replaying order %s for user %s (receipt=%s)", existing.id, user_id, receipt)
        return _replay(existing, amount=amount, currency=currency, plan_id=plan_id)

    try:
        gw_order = gateway.create_order(
            amount=amount,
            currency=currency,
            receipt=receipt,
            notes={"userId": user_id, "planId": plan_id or ""},
        )
    except GatewayError as e:
        logger.error(
            "gateway create_order failed: user_id=%s receipt=%s amount=%s currency=%s error=%s",
            user_id,
            receipt,
            amount,
            currency,
            e,
        )
        raise GatewayError(
            gateway_code=e.gateway_code, message="Failed to create order", retryable=e.retryable
        ) from e

    order = PaymentOrder(
        id=gw_order.id,
        user_id=user_id,
        plan_id=plan_id,
        amount=gw_order.amount,
        currency=gw_order.currency,
        receipt=receipt,
        gateway_status=gw_order.status,
    )
    try:
        crud.insert_order(session=session, order=order)
    except StoreError as e:
        # A concurrent request with the same receipt may have persisted first.
        winner = _find_persisted(session=session, receipt=receipt, user_id=user_id)
        if winner is not None:
            logger.warning(
                "receipt %s already persisted as order %s for user %s; gateway order %s left unpaid",
                receipt,
                winner.id,
                user_id,
                gw_order.id,
            )
            return _replay(winner, amount=amount, currency=currency, plan_id=plan_id)
        # The gateway order stays; reconciliation picks it up from the gateway side by receipt.
        logger.error(
            "reconciliation gap: gateway order %s created for user %s but not persisted (receipt=%s): %s",
            gw_order.id,
            user_id,
            receipt,
            e.__cause__ or e,
        )
    else:
        logger.info("created order %s for user %s", gw_order.id, user_id)

    return CreateOrderData(order_id=gw_order.id, amount=gw_order.amount, currency=gw_order.currency)
