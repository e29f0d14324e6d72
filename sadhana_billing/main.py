"""
FastAPI 应用主入口

这是应用的启动文件，负责：
1. 创建 FastAPI 应用实例
2. 配置全局中间件（CORS、Sentry）
3. 注册全局异常处理器，所有错误统一返回 {"error": "<message>"}
4. 注册 API 路由

运行方式：
    uvicorn sadhana_billing.main:app --reload  # 开发模式
"""
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import sentry_sdk  # Sentry 错误监控
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError  # 请求验证错误
from fastapi.middleware.cors import CORSMiddleware  # CORS 中间件
from fastapi.responses import JSONResponse  # JSON 响应
from fastapi.routing import APIRoute  # 路由类型
from starlette.exceptions import HTTPException  # FastAPI 的 HTTPException 也是它的子类

from sadhana_billing.api.errors import AppError
from sadhana_billing.api.main import api_router
from sadhana_billing.core.config import settings
from sadhana_billing.services.razorpay_service import get_razorpay_client, reset_razorpay_client

logger = logging.getLogger(__name__)

# 浏览器端调用时携带的请求头（Supabase 客户端会附带 x-client-info / apikey）
CORS_ALLOW_HEADERS = ["authorization", "x-client-info", "apikey", "content-type", "idempotency-key"]


def custom_generate_unique_id(route: APIRoute) -> str:
    """
    自定义 OpenAPI 操作 ID 生成函数

    格式：{tag}-{route_name}，例如 "order-create_order"
    """
    return f"{route.tags[0]}-{route.name}"


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    # 启动时创建网关客户端，凭证缺失时立即失败，而不是在请求中途才失败
    get_razorpay_client()
    yield
    reset_razorpay_client()


# 初始化 Sentry 错误监控（仅在生产/测试环境）
if settings.SENTRY_DSN and settings.ENVIRONMENT != "local":  # pragma: no cover
    sentry_sdk.init(dsn=str(settings.SENTRY_DSN), enable_tracing=True)

app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    generate_unique_id_function=custom_generate_unique_id,
    lifespan=lifespan,
)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """
    应用自定义异常处理器

    4xx 只记录 info，5xx 记录 error，方便人工对账。
    """
    if exc.status_code >= 500:
        logger.error(
            "%s %s failed: code=%s message=%s cause=%s",
            request.method,
            request.url.path,
            exc.code,
            exc.message,
            exc.__cause__,
        )
    else:
        logger.info("%s %s rejected: code=%s message=%s", request.method, request.url.path, exc.code, exc.message)
    return _error(exc.status_code, exc.message)


@app.exception_handler(HTTPException)
async def http_error_handler(_: Request, exc: HTTPException) -> JSONResponse:
    """HTTP 异常处理器（404 路由不存在、405 方法不允许等）"""
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    """
    请求验证错误处理器

    请求体不是合法的 JSON 对象时触发，统一返回 400。
    """
    logger.info("invalid request body: %s", exc.errors())
    return _error(400, "Invalid request body")


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return _error(500, "Internal server error")


# 配置 CORS 中间件
# 预检请求由中间件直接应答（200 "OK"；请求头不在 CORS_ALLOW_HEADERS 中时 400），
# 不带预检头的 OPTIONS 才会到达路由返回 "ok"
if settings.all_cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.all_cors_origins,
        allow_credentials=False,  # 使用通配符源时不能携带凭证
        allow_methods=["POST", "OPTIONS", "GET"],
        allow_headers=CORS_ALLOW_HEADERS,
    )

# 注册 API 路由，所有路由都会添加 /api/v1 前缀
app.include_router(api_router, prefix=settings.API_V1_STR)
