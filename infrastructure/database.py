"""
数据库配置和连接管理

支持 PostgreSQL（asyncpg）与 SQLite（aiosqlite）。webhook 幂等插入依赖这两种方言的
INSERT .. ON CONFLICT，其他数据库不在支持范围内。
"""
from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from core.config import DatabaseSettings, settings
from infrastructure.models import Base


_ASYNC_DRIVERS = {
    "postgresql": "postgresql+asyncpg",
    "postgres": "postgresql+asyncpg",
    "sqlite": "sqlite+aiosqlite",
}


def _build_async_url(database_url: str) -> str:
    """补全异步驱动：postgres://... -> postgresql+asyncpg://..."""
    url = make_url(database_url)
    if "+" in url.drivername:
        return database_url
    if url.drivername not in _ASYNC_DRIVERS:
        raise ValueError(f"不支持的数据库驱动: {url.drivername}. 请使用 PostgreSQL 或 SQLite（DATABASE__URL）")
    return url.set(drivername=_ASYNC_DRIVERS[url.drivername]).render_as_string(hide_password=False)


def _engine_options(url: str, cfg: DatabaseSettings) -> dict[str, Any]:
    options: dict[str, Any] = {"echo": cfg.echo}
    if make_url(url).get_backend_name() == "sqlite":
        # aiosqlite 在线程中执行语句
        options["connect_args"] = {"check_same_thread": False}
    else:
        options.update(
            pool_pre_ping=True,
            pool_size=cfg.pool_size,
            max_overflow=cfg.max_overflow,
            pool_recycle=cfg.pool_recycle,
        )
    return options


def build_engine(cfg: DatabaseSettings = settings.database) -> AsyncEngine:
    url = _build_async_url(cfg.url)
    return create_async_engine(url, **_engine_options(url, cfg))


engine = build_engine()

# expire_on_commit=False：提交后仍可读取实体属性（仓储在事务内完成实体转换）
AsyncSessionLocal = async_sessionmaker(bind=engine, expire_on_commit=False)


async def create_tables(bind: AsyncEngine = engine) -> None:
    """
    创建所有表

    本服务不负责迁移；仅用于本地开发（DEBUG）与测试
    """
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_tables(bind: AsyncEngine = engine) -> None:
    """删除所有表（仅测试环境）"""
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
