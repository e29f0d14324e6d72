"""
Razorpay 支付网关服务

文档: https://razorpay.com/docs/api/orders/
订阅取消: https://razorpay.com/docs/api/payments/subscriptions/#cancel-a-subscription

客户端本身不做重试，重试策略由调用方决定；所有失败统一转换为 GatewayError。
"""
from __future__ import annotations

import logging
import threading
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import BaseModel

from sadhana_billing.api.errors import GatewayError
from sadhana_billing.core.config import settings

logger = logging.getLogger(__name__)


class GatewayOrder(BaseModel):
    """网关创建订单的返回结果"""
    id: str
    amount: int
    currency: str
    receipt: str | None = None
    status: str | None = None


class GatewayAck(BaseModel):
    """网关取消订阅的确认结果"""
    id: str
    status: str | None = None


class RazorpayClient:
    """Razorpay REST API 封装"""

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        *,
        base_url: str = "https://api.razorpay.com/v1",
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """
        初始化 Razorpay 客户端

        凭证只在构造时传入一次，之后只读；缺失时立即失败。

        Args:
            key_id: Razorpay key_id
            key_secret: Razorpay key_secret
            base_url: API 基础地址
            timeout: 单次请求超时（秒）
            transport: 自定义 httpx transport（测试时注入 MockTransport）

        Raises:
            ValueError: 凭证缺失时
        """
        if not key_id or not key_secret:
            raise ValueError("Razorpay credentials are not configured")
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            auth=(key_id, key_secret),
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )
        logger.info("Razorpay client initialized")

    def create_order(
        self,
        *,
        amount: int,
        currency: str,
        receipt: str,
        notes: dict[str, str] | None = None,
    ) -> GatewayOrder:
        """
        创建订单

        Args:
            amount: 金额（最小货币单位，必须为正整数）
            currency: 货币代码（ISO 4217）
            receipt: 收据号（每次逻辑请求唯一，最长 40 个字符）
            notes: 附加信息（如 userId、planId）

        Returns:
            GatewayOrder: 网关返回的订单

        Raises:
            GatewayError: 网关返回非 2xx、响应无法解析或网络失败
        """
        payload: dict[str, Any] = {
            "amount": amount,
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
        }
        data = self._request("POST", "/orders", payload)
        try:
            return GatewayOrder(
                id=str(data["id"]),
                amount=int(data["amount"]),
                currency=str(data["currency"]),
                receipt=data.get("receipt"),
                status=data.get("status"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise GatewayError(
                gateway_code="INVALID_RESPONSE",
                message="Payment gateway returned an unexpected order payload",
            ) from e

    def cancel_subscription(
        self, external_subscription_id: str, *, cancel_at_cycle_end: bool = True
    ) -> GatewayAck:
        """
        取消网关侧订阅

        Args:
            external_subscription_id: Razorpay 订阅 ID（sub_xxx）
            cancel_at_cycle_end: 是否在当前计费周期结束时才停止

        Raises:
            GatewayError: 网关返回非 2xx 或网络失败
        """
        path = f"/subscriptions/{quote(external_subscription_id, safe='')}/cancel"
        data = self._request("POST", path, {"cancel_at_cycle_end": 1 if cancel_at_cycle_end else 0})
        return GatewayAck(id=str(data.get("id") or external_subscription_id), status=data.get("status"))

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = self._client.request(method, path, json=payload)
        except httpx.TimeoutException as e:
            raise GatewayError(
                gateway_code="GATEWAY_TIMEOUT",
                message="Payment gateway timed out",
                retryable=True,
            ) from e
        except httpx.HTTPError as e:
            raise GatewayError(
                gateway_code="GATEWAY_UNAVAILABLE",
                message="Payment gateway is unreachable",
                retryable=True,
            ) from e

        if response.is_success:
            try:
                body = response.json()
            except ValueError as e:
                raise GatewayError(
                    gateway_code="INVALID_RESPONSE",
                    message="Payment gateway returned a non-JSON response",
                ) from e
            if not isinstance(body, dict):
                raise GatewayError(
                    gateway_code="INVALID_RESPONSE",
                    message="Payment gateway returned a non-object response",
                )
            return body

        raise self._translate_error(response)

    @staticmethod
    def _translate_error(response: httpx.Response) -> GatewayError:
        """将 Razorpay 错误响应 {"error": {"code", "description"}} 转换为 GatewayError"""
        code = f"HTTP_{response.status_code}"
        message = f"Payment gateway responded with status {response.status_code}"
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            err = body["error"]
            code = str(err.get("code") or code)
            message = str(err.get("description") or message)
        retryable = response.status_code >= 500 or response.status_code == 429
        return GatewayError(gateway_code=code, message=message, retryable=retryable)


# 全局 Razorpay 客户端实例（进程内共享，初始化后只读）
_razorpay_client: RazorpayClient | None = None
_init_lock = threading.Lock()


def init_razorpay_client(
    key_id: str,
    key_secret: str,
    *,
    transport: httpx.BaseTransport | None = None,
) -> RazorpayClient:
    """
    初始化全局 Razorpay 客户端

    Returns:
        Razorpay 客户端实例
    """
    global _razorpay_client
    client = RazorpayClient(
        key_id,
        key_secret,
        base_url=settings.RAZORPAY_BASE_URL,
        timeout=settings.GATEWAY_TIMEOUT_SECONDS,
        transport=transport,
    )
    _razorpay_client = client
    return client


def get_razorpay_client() -> RazorpayClient:
    """
    获取全局 Razorpay 客户端实例，首次调用时从配置懒加载

    Raises:
        ValueError: 如果配置中缺少凭证
    """
    client = _razorpay_client
    if client is None:
        with _init_lock:
            client = _razorpay_client
            if client is None:
                client = init_razorpay_client(settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET)
    return client


def reset_razorpay_client() -> None:
    """关闭并清除全局客户端（应用关闭时调用）"""
    global _razorpay_client
    with _init_lock:
        if _razorpay_client is not None:
            _razorpay_client.close()
        _razorpay_client = None
