"""
配置文件 - 项目配置管理

所有配置在进程启动时解析一次并立即校验，缺失必需项时直接失败。
"""
from typing import Annotated, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


DEFAULT_APP_URL = "http://localhost:3000"


class DatabaseSettings(BaseModel):
    url: str = "sqlite+aiosqlite:///./mistika.db"
    echo: bool = False
    # 仅对 PostgreSQL 连接池生效
    pool_size: int = 5
    max_overflow: int = 10
    pool_recycle: int = 1800


class WebhookSettings(BaseModel):
    # 超过该时长仍处于 received 的事件视为处理中断，允许重新认领
    processing_lease_seconds: int = 120
    max_payload_chars: int = 32_000


class Settings(BaseSettings):
    """项目配置"""

    # 基础配置
    PROJECT_NAME: str = Field(default="MISTIKA Storefront API", validation_alias=AliasChoices("PROJECT_NAME", "SERVICE_NAME"))
    VERSION: str = Field(default="1.0.0", validation_alias=AliasChoices("VERSION", "APP_VERSION"))
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    LOG_LEVEL: Optional[str] = None
    LOG_FORMAT: Optional[str] = None  # json | console，默认随 DEBUG 切换

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)

    # 安全配置
    ORDER_TOKEN_SECRET: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("ORDER_TOKEN_SECRET", "JWT_SECRET"),
        description="订单访问链接的 HMAC 签名密钥，所有环境必须设置",
    )
    SECRET_KEY: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("SECRET_KEY", "ADMIN_JWT_SECRET"),
        description="管理端 JWT 验签密钥，未设置时使用 ORDER_TOKEN_SECRET",
    )
    ALGORITHM: str = "HS256"
    ORDER_TOKEN_TTL_HOURS: int = 24

    # 应用对外地址（优先级：APP_URL -> SITE_URL -> https://VERCEL_URL -> 本地默认）
    APP_URL: Optional[str] = Field(default=None, validation_alias=AliasChoices("APP_URL", "NEXT_PUBLIC_APP_URL"))
    SITE_URL: Optional[str] = Field(default=None, validation_alias=AliasChoices("SITE_URL", "NEXT_PUBLIC_SITE_URL"))
    VERCEL_URL: Optional[str] = None

    # CORS配置
    CORS_ORIGINS: Annotated[list[str], NoDecode] = Field(
        default=["http://localhost:3000"],
    )

    # 日志/请求体记录配置
    LOG_REQUEST_BODY_ENABLE_BY_DEFAULT: bool = True
    LOG_REQUEST_BODY_MAX_BYTES: int = 2048

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
        populate_by_name=True,
    )

    @model_validator(mode="after")
    def _validate_secrets(self):
        # 签名密钥缺失时拒绝启动，避免以不安全的方式签发订单链接
        if not self.ORDER_TOKEN_SECRET:
            raise ValueError(
                "ORDER_TOKEN_SECRET 未配置。请在环境变量或 .env 中设置 ORDER_TOKEN_SECRET（或 JWT_SECRET）"
            )
        if not self.SECRET_KEY:
            self.SECRET_KEY = self.ORDER_TOKEN_SECRET
        return self

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v):
        """允许 JSON 字符串或逗号分隔字符串两种格式。"""
        if isinstance(v, list):
            return v
        if isinstance(v, str):
            s = v.strip()
            if s.startswith("[") and s.endswith("]"):
                import json
                try:
                    arr = json.loads(s)
                    if isinstance(arr, list):
                        return arr
                except ValueError:
                    pass
            return [item.strip() for item in s.split(",") if item.strip()]
        return v

    @property
    def app_base_url(self) -> str:
        """客户可访问的应用根地址，不带结尾斜杠"""
        url = (
            self.APP_URL
            or self.SITE_URL
            or (f"https://{self.VERCEL_URL}" if self.VERCEL_URL else None)
            or DEFAULT_APP_URL
        )
        return url.rstrip("/")

    @property
    def log_level(self) -> str:
        if self.LOG_LEVEL:
            return self.LOG_LEVEL.upper()
        return "DEBUG" if self.DEBUG else "INFO"


settings = Settings()
