"""
Structlog 日志配置模块

- DEBUG 下输出彩色控制台日志，其他环境输出单行 JSON
- 标准库 logging（uvicorn / sqlalchemy / httpx）经 ProcessorFormatter 进入同一处理链
- 订单令牌、MP 访问令牌、签名等字段在渲染前统一打码
"""
import json
import logging
from typing import Any, List

import structlog
from structlog.contextvars import merge_contextvars
from structlog.dev import ConsoleRenderer
from structlog.processors import JSONRenderer, TimeStamper, add_log_level
from structlog.stdlib import ProcessorFormatter

from core.config import settings


REDACTED = "[REDACTED]"

# 日志字段名（小写）中出现这些片段即打码
_SENSITIVE_FRAGMENTS = ("token", "secret", "password", "authorization", "signature", "detail_url")

# 第三方库默认日志级别
_QUIET_LOGGERS = {
    "httpx": logging.WARNING,          # 会以 INFO 打印完整 URL（含查询参数）
    "uvicorn.access": logging.WARNING,  # 访问日志由 LoggingMiddleware 负责
}


def _use_json() -> bool:
    fmt = (settings.LOG_FORMAT or "").lower()
    if fmt in {"json", "console"}:
        return fmt == "json"
    return not settings.DEBUG


def get_renderer() -> Any:
    if not _use_json():
        return ConsoleRenderer(colors=True)

    # structlog 会向 serializer 传入 default 等关键字参数
    def _dumps(obj, default=None, **kwargs):
        return json.dumps(obj, ensure_ascii=False, default=default, **kwargs)

    return JSONRenderer(serializer=_dumps)


def _add_service_context(logger: Any, method_name: str, event_dict: dict) -> dict:
    event_dict.setdefault("service", settings.PROJECT_NAME)
    event_dict.setdefault("environment", settings.ENVIRONMENT)
    return event_dict


def redact_sensitive_fields(logger: Any, method_name: str, event_dict: dict) -> dict:
    """顶层字段按名称打码；嵌套结构由调用方（如 LoggingMiddleware）自行脱敏"""
    for key in list(event_dict):
        lowered = key.lower()
        if any(fragment in lowered for fragment in _SENSITIVE_FRAGMENTS):
            event_dict[key] = REDACTED
    return event_dict


def configure_logging() -> None:
    """配置 structlog 并桥接标准库 logging；可重复调用"""
    shared_pre_chain: List[Any] = [
        merge_contextvars,
        add_log_level,
        TimeStamper(fmt="iso", utc=True),
        _add_service_context,
        redact_sensitive_fields,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[*shared_pre_chain, ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        ProcessorFormatter(
            foreign_pre_chain=shared_pre_chain,
            processors=[ProcessorFormatter.remove_processors_meta, get_renderer()],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(settings.log_level)

    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if settings.database.echo else logging.WARNING)
    for name, level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """获取 structlog logger 实例。"""
    return structlog.get_logger(name)
