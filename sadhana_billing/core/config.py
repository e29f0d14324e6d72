"""
计费服务配置

所有配置来自环境变量（或项目根目录下的 .env），由 pydantic-settings 做类型校验。

Razorpay 凭证和 Postgres 连接信息没有默认值：缺失时 Settings() 在导入阶段就抛出
ValidationError，进程起不来，而不是等到第一笔订单才失败。
"""
import warnings
from typing import Annotated, Any, Literal

from pydantic import BeforeValidator, HttpUrl, PostgresDsn, computed_field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing_extensions import Self


def parse_cors(v: Any) -> list[str] | str:
    """
    CORS 源：逗号分隔字符串（如 "*"）或 JSON 列表

    Raises:
        ValueError: 既不是字符串也不是列表
    """
    if isinstance(v, str) and not v.startswith("["):
        return [origin.strip() for origin in v.split(",") if origin.strip()]
    if isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    """
    服务配置（环境变量 > .env > 默认值）

    分组：
    - 基础：API 前缀、运行环境、Sentry、CORS
    - 存储：Postgres 连接与超时
    - 网关：Razorpay 凭证、超时、取消重试
    - 订单幂等与取消对账
    """
    model_config = SettingsConfigDict(env_file=".env", env_ignore_empty=True, extra="ignore")

    PROJECT_NAME: str = "Sadhana Billing"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    SENTRY_DSN: HttpUrl | None = None

    # 浏览器端直接调用下单/取消接口，默认放开所有来源
    BACKEND_CORS_ORIGINS: Annotated[list[str] | str, BeforeValidator(parse_cors)] = ["*"]

    @computed_field  # type: ignore[prop-decorator]
    @property
    def all_cors_origins(self) -> list[str]:
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS]

    # --- Postgres ---
    POSTGRES_SERVER: str
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str
    POSTGRES_PASSWORD: str
    POSTGRES_DB: str = ""

    DATABASE_CONNECT_TIMEOUT_SECONDS: int = 5
    DATABASE_STATEMENT_TIMEOUT_MS: int = 5000  # Postgres statement_timeout
    DATABASE_POOL_TIMEOUT_SECONDS: int = 10

    @computed_field  # type: ignore[prop-decorator]
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> PostgresDsn:
        """psycopg 3 驱动的连接串"""
        return PostgresDsn.build(
            scheme="postgresql+psycopg",
            username=self.POSTGRES_USER,
            password=self.POSTGRES_PASSWORD,
            host=self.POSTGRES_SERVER,
            port=self.POSTGRES_PORT,
            path=self.POSTGRES_DB,
        )

    # --- Razorpay ---
    RAZORPAY_KEY_ID: str
    RAZORPAY_KEY_SECRET: str  # 只在服务端使用，不能出现在日志和响应里
    RAZORPAY_BASE_URL: str = "https://api.razorpay.com/v1"
    GATEWAY_TIMEOUT_SECONDS: float = 10.0
    GATEWAY_CANCEL_MAX_ATTEMPTS: int = 3
    GATEWAY_RETRY_BACKOFF_SECONDS: float = 0.5  # 指数退避基数
    GATEWAY_CANCEL_AT_CYCLE_END: bool = True

    # --- 订单幂等 ---
    # 没有幂等键时，同一窗口内参数相同的重复提交视为同一笔订单
    ORDER_IDEMPOTENCY_WINDOW_SECONDS: int = 300

    # --- 取消对账 ---
    RECONCILE_BATCH_SIZE: int = 100
    # pending 超过这个时长才交给 worker，避免和进行中的请求重复调用网关
    RECONCILE_PENDING_GRACE_SECONDS: int = 600
    RECONCILE_INTERVAL_MINUTES: int = 10
    # 网关取消累计尝试达到上限后不再自动重试，留给人工处理
    RECONCILE_MAX_ATTEMPTS: int = 5

    def _check_default_secret(self, var_name: str, value: str | None) -> None:
        """占位值 "changethis"：本地环境只警告，其他环境拒绝启动"""
        if value != "changethis":
            return
        message = (
            f'The value of {var_name} is "changethis", '
            "for security, please change it, at least for deployments."
        )
        if self.ENVIRONMENT == "local":
            warnings.warn(message, stacklevel=1)
        else:
            raise ValueError(message)

    @model_validator(mode="after")
    def _enforce_non_default_secrets(self) -> Self:
        for name in ("POSTGRES_PASSWORD", "RAZORPAY_KEY_SECRET"):
            self._check_default_secret(name, getattr(self, name))
        return self


settings = Settings()  # type: ignore
