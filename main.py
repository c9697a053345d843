"""
FastAPI应用主入口
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import admin_webhooks as admin_webhooks_routes
from api.routes import checkout as checkout_routes
from api.routes import orders as orders_routes
from api.routes import payments as payments_routes
from api.routes import webhooks as webhooks_routes
from api.middleware import RequestIDMiddleware, LoggingMiddleware
from application.services.order_token_service import OrderTokenService
from core.config import settings
from core.exceptions import register_exception_handlers
from core.response import success_response
from core.logging_config import get_logger, configure_logging
from infrastructure.database import create_tables, engine
from infrastructure.external.payments import get_payment_gateway


# 初始化日志：在入口处显式配置，避免模块导入时的副作用
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理：外部客户端只在启动时创建一次"""
    # 开发环境自动建表；生产环境的表结构由外部迁移流程管理
    if settings.DEBUG:
        await create_tables()
        logger.info("database_initialized", message="Database tables created (development)")

    app.state.order_token_service = OrderTokenService(
        settings.ORDER_TOKEN_SECRET,
        ttl_hours=settings.ORDER_TOKEN_TTL_HOURS,
        base_url=settings.app_base_url,
    )
    gateway = get_payment_gateway("mercadopago")
    app.state.payment_gateway = gateway
    logger.info(
        "application_started",
        environment=settings.ENVIRONMENT,
        mercadopago_configured=gateway.is_configured,
    )

    yield

    close = getattr(gateway, "aclose", None)
    if callable(close):
        await close()
    await engine.dispose()
    logger.info("application_shutdown", message="Application shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="MISTIKA 店面后端：结账草稿、Mercado Pago 支付回调与订单访问链接",
)

# 添加中间件（注意顺序：从下往上执行）
# 1. 日志中间件（依赖request_id）
app.add_middleware(LoggingMiddleware)

# 2. Request ID中间件（最先执行，为后续中间件提供request_id）
app.add_middleware(RequestIDMiddleware)

# 3. CORS中间件
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册全局异常处理器
register_exception_handlers(app)


# 注册路由
app.include_router(checkout_routes.router, prefix="/api")
app.include_router(payments_routes.router, prefix="/api")
app.include_router(orders_routes.router, prefix="/api")
app.include_router(webhooks_routes.router, prefix="/api")
app.include_router(admin_webhooks_routes.router, prefix="/api")


# 健康检查
@app.get("/health", tags=["Health"])
async def health_check():
    """健康检查端点"""
    return success_response(data={"status": "healthy", "version": settings.VERSION})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
