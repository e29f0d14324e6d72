"""
订阅归属校验

按 (subscription_id, user_id) 一次查询完成校验，而不是先按 ID 查询再比较 user_id，
避免在查询和鉴权之间泄露其他用户记录的信息。
"""
import logging

from sqlmodel import Session

from sadhana_billing import crud
from sadhana_billing.api.errors import OwnershipError
from sadhana_billing.models import Subscription

logger = logging.getLogger(__name__)


def verify_subscription_owner(*, session: Session, subscription_id: str, user_id: str) -> Subscription:
    """
    校验订阅属于当前用户

    Returns:
        Subscription: 当前用户名下的订阅

    Raises:
        OwnershipError: 不存在或不属于该用户（对外统一表现为 404）
    """
    sub = crud.get_subscription_for_user(
        session=session, subscription_id=subscription_id, user_id=user_id
    )
    if sub is None:
        logger.info("subscription not found for owner: subscription_id=%s user_id=%s", subscription_id, user_id)
        raise OwnershipError()
    return sub
