"""CRUD 操作模块"""
from .order import get_order_by_receipt, insert_order
from .subscription import (
    conditional_update_status,
    get_by_id as get_subscription,
)
from .subscription import (
    get_by_id_for_user as get_subscription_for_user,
)
from .subscription import (
    list_gateway_cancel_backlog,
    record_gateway_cancel_result,
)

__all__ = [
    "get_order_by_receipt",
    "insert_order",
    "get_subscription",
    "get_subscription_for_user",
    "conditional_update_status",
    "record_gateway_cancel_result",
    "list_gateway_cancel_backlog",
]
