"""
订单路由模块

处理支付订单创建：
- POST /create-order（兼容旧路径 /create-payment-order）

金额使用最小货币单位（如 INR 的 paise）。
幂等键可以通过 Idempotency-Key 请求头或请求体中的 idempotencyKey 传入。
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Header
from fastapi.responses import PlainTextResponse

from sadhana_billing.api.deps import GatewayDep, SessionDep
from sadhana_billing.api.schemas import CreateOrderData, ErrorResponse
from sadhana_billing.services.order_service import OrderRequest, create_payment_order

router = APIRouter(tags=["order"])


@router.post(
    "/create-order",
    response_model=CreateOrderData,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
@router.post("/create-payment-order", response_model=CreateOrderData, include_in_schema=False)
def create_order(
    session: SessionDep,
    gateway: GatewayDep,
    payload: dict[str, Any],
    idempotency_key: str | None = Header(default=None),
) -> CreateOrderData:
    """
    创建支付订单

    请求路径: POST /api/v1/create-order

    请求体：
        {"amount": 29900, "currency": "INR", "planId": "plan_monthly", "userId": "u_1"}

    Returns:
        CreateOrderData: {"orderId": ..., "amount": ..., "currency": ...}
    """
    request = OrderRequest(
        amount=payload.get("amount"),
        currency=payload.get("currency"),
        user_id=payload.get("userId"),
        plan_id=payload.get("planId"),
        idempotency_key=idempotency_key or payload.get("idempotencyKey"),
    )
    return create_payment_order(session=session, gateway=gateway, request=request)


@router.options("/create-order", include_in_schema=False)
@router.options("/create-payment-order", include_in_schema=False)
def create_order_preflight() -> PlainTextResponse:
    return PlainTextResponse("ok")
