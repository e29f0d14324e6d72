"""
自定义异常模块

定义应用特定的异常类，用于统一的错误处理。
所有业务异常都继承自 AppError，在 main.py 中有统一的异常处理器，
响应体统一为 {"error": "<message>"}。

错误分类：
- ValidationError: 请求参数缺失/非法（400），不会触达网关和存储
- OwnershipError: 调用者名下没有该记录（404），与"记录不存在"无法区分
- StateError: 在非法的前置状态上尝试变更（409）
- GatewayError: 支付网关调用失败（500）
- StoreError: 持久化失败（500）
- ConflictError / NotFoundError: 存储层条件更新的结果，由 service 层转换
"""
from __future__ import annotations

from collections.abc import Sequence


class AppError(Exception):
    """
    应用自定义异常类

    - code: 业务错误码（用于日志和排查）
    - message: 返回给调用者的错误消息
    - status_code: HTTP 状态码

    使用示例：
        raise AppError(code=400001, message="Missing required fields", status_code=400)
    """

    def __init__(self, *, code: int, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code


class ValidationError(AppError):
    """请求参数缺失或非法，fields 为出错的字段列表"""

    def __init__(self, *, fields: Sequence[str], message: str | None = None) -> None:
        self.fields = list(fields)
        if message is None:
            message = f"Invalid fields: {', '.join(self.fields)}"
        super().__init__(code=400001, message=message, status_code=400)


class OwnershipError(AppError):
    # 404 rather than 403 so the record's existence is never confirmed to a non-owner.
    def __init__(self, message: str = "Subscription not found") -> None:
        super().__init__(code=404001, message=message, status_code=404)


class StateError(AppError):
    def __init__(self, message: str) -> None:
        super().__init__(code=409001, message=message, status_code=409)


class GatewayError(AppError):
    """
    支付网关错误

    - gateway_code: 网关返回的错误码（如 "BAD_REQUEST_ERROR"），传输失败时为 "GATEWAY_UNAVAILABLE"
    - retryable: 是否可重试（传输失败、5xx、429）

    message 只包含网关自己返回的描述，不包含凭证。
    """

    def __init__(self, *, gateway_code: str, message: str, retryable: bool = False) -> None:
        super().__init__(code=502001, message=message, status_code=500)
        self.gateway_code = gateway_code
        self.retryable = retryable

    def __str__(self) -> str:
        return f"{self.gateway_code}: {self.message}"


class StoreError(AppError):
    def __init__(self, message: str = "Storage failure") -> None:
        super().__init__(code=500001, message=message, status_code=500)


class ConflictError(AppError):
    """条件更新时，存储中的状态已不是预期状态"""

    def __init__(self, message: str = "Record state changed concurrently") -> None:
        super().__init__(code=409002, message=message, status_code=409)


class NotFoundError(AppError):
    def __init__(self, message: str = "Record not found") -> None:
        super().__init__(code=404002, message=message, status_code=404)


def missing_fields(fields: Sequence[str]) -> ValidationError:
    """
    创建"缺少必填字段"异常（便捷函数）

    使用示例：
        if not subscription_id:
            raise missing_fields(["subscriptionId"])
    """
    return ValidationError(fields=fields, message="Missing required fields")
