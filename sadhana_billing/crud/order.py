"""支付订单 CRUD 操作"""
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from sadhana_billing.api.errors import StoreError
from sadhana_billing.models import PaymentOrder


def get_order_by_receipt(*, session: Session, receipt: str, user_id: str) -> PaymentOrder | None:
    """根据收据号查询当前用户的订单"""
    stmt = select(PaymentOrder).where(
        PaymentOrder.receipt == receipt, PaymentOrder.user_id == user_id
    )
    try:
        return session.exec(stmt).first()
    except SQLAlchemyError as e:
        session.rollback()
        raise StoreError("Failed to load payment order") from e


def insert_order(*, session: Session, order: PaymentOrder) -> PaymentOrder:
    """
    写入支付订单（只写一次，之后不再修改）

    Raises:
        StoreError: 收据号/订单号冲突或数据库错误
    """
    try:
        session.add(order)
        session.commit()
        session.refresh(order)
    except IntegrityError as e:
        session.rollback()
        raise StoreError("Duplicate payment order") from e
    except SQLAlchemyError as e:
        session.rollback()
        raise StoreError("Failed to save payment order") from e
    return order
