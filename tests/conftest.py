from __future__ import annotations

import os

# Settings are read at import time and fail fast without these.
os.environ.setdefault("POSTGRES_SERVER", "localhost")
os.environ.setdefault("POSTGRES_USER", "postgres")
os.environ.setdefault("POSTGRES_PASSWORD", "test-password")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "rzp_test_secret")
os.environ.setdefault("GATEWAY_RETRY_BACKOFF_SECONDS", "0")

from collections.abc import Generator  # noqa: E402
from typing import Any  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine, delete  # noqa: E402

from sadhana_billing.api.deps import get_db, get_gateway  # noqa: E402
from sadhana_billing.main import app  # noqa: E402
from sadhana_billing.models import PaymentOrder, Subscription  # noqa: E402
from sadhana_billing.services.razorpay_service import GatewayAck, GatewayOrder  # noqa: E402


class FakeGateway:
    """In-memory stand-in for RazorpayClient that records every call."""

    def __init__(self) -> None:
        self.orders: list[dict[str, Any]] = []
        self.cancelled: list[str] = []
        self.order_ids: list[str] = []
        self.create_error: Exception | None = None
        self.cancel_errors: list[Exception] = []

    def create_order(
        self,
        *,
        amount: int,
        currency: str,
        receipt: str,
        notes: dict[str, str] | None = None,
    ) -> GatewayOrder:
        if self.create_error is not None:
            raise self.create_error
        order_id = self.order_ids.pop(0) if self.order_ids else f"order_{len(self.orders) + 1}"
        self.orders.append(
            {"id": order_id, "amount": amount, "currency": currency, "receipt": receipt, "notes": notes}
        )
        return GatewayOrder(id=order_id, amount=amount, currency=currency, receipt=receipt, status="created")

    def cancel_subscription(self, external_subscription_id: str, *, cancel_at_cycle_end: bool = True) -> GatewayAck:
        self.cancelled.append(external_subscription_id)
        if self.cancel_errors:
            raise self.cancel_errors.pop(0)
        return GatewayAck(id=external_subscription_id, status="cancelled")


@pytest.fixture(scope="session")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture(autouse=True)
def _clean_tables(engine) -> Generator[None, None, None]:
    yield
    with Session(engine) as session:
        session.exec(delete(PaymentOrder))
        session.exec(delete(Subscription))
        session.commit()


@pytest.fixture(scope="function")
def db(engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session
        session.rollback()


@pytest.fixture(scope="function")
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture(scope="function")
def client(engine, gateway) -> Generator[TestClient, None, None]:
    def _override_get_db() -> Generator[Session, None, None]:
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
