from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from sadhana_billing.api.deps import GatewayDep, SessionDep
from sadhana_billing.api.errors import ValidationError, missing_fields
from sadhana_billing.api.schemas import CancelSubscriptionData, ErrorResponse
from sadhana_billing.services.cancellation_service import cancel_subscription

router = APIRouter(tags=["subscription"])


@router.post(
    "/cancel",
    response_model=CancelSubscriptionData,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
@router.post("/cancel-subscription", response_model=CancelSubscriptionData, include_in_schema=False)
def cancel(session: SessionDep, gateway: GatewayDep, payload: dict[str, Any]) -> CancelSubscriptionData:
    subscription_id = payload.get("subscriptionId")
    user_id = payload.get("userId")
    # userId is trusted as already authenticated by the caller.
    missing = [
        name
        for name, value in (("subscriptionId", subscription_id), ("userId", user_id))
        if value is None or value == ""
    ]
    if missing:
        raise missing_fields(missing)
    invalid = [
        name
        for name, value in (("subscriptionId", subscription_id), ("userId", user_id))
        if not isinstance(value, str)
    ]
    if invalid:
        raise ValidationError(fields=invalid)

    return cancel_subscription(
        session=session,
        gateway=gateway,
        subscription_id=subscription_id,
        user_id=user_id,
    )


@router.options("/cancel", include_in_schema=False)
@router.options("/cancel-subscription", include_in_schema=False)
def cancel_preflight() -> PlainTextResponse:
    return PlainTextResponse("ok")
