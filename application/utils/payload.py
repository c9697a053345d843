"""
Webhook 原始负载脱敏与截断

存储前对密钥类字段打码、邮箱部分打码，并限制最大长度。
"""
from __future__ import annotations

import json
from typing import Any, Optional

MASK_VALUE = "[REDACTED]"
TRUNCATED_SUFFIX = "\n...[truncated]"
DEFAULT_MAX_CHARS = 32_000

SENSITIVE_KEYS = frozenset({
    "x-signature", "x_signature", "signature", "token", "access_token", "secret",
    "password", "authorization", "api_key", "apikey", "private_key", "credential", "auth", "bearer",
})


def mask_email(value: str) -> str:
    at = value.find("@")
    if at <= 0:
        return value[:2] + "***" if len(value) > 4 else "***"
    local, domain = value[:at], value[at:]
    if len(local) <= 2:
        return "***" + domain
    return local[:2] + "***" + domain


def _is_sensitive(key: str) -> bool:
    k = key.lower()
    return k in SENSITIVE_KEYS or "secret" in k or "token" in k


def sanitize_value(value: Any) -> Any:
    if isinstance(value, list):
        return [sanitize_value(v) for v in value]
    if isinstance(value, dict):
        out = {}
        for k, v in value.items():
            key = str(k)
            if _is_sensitive(key):
                out[key] = MASK_VALUE
            elif key.lower() == "email" and isinstance(v, str):
                out[key] = mask_email(v)
            else:
                out[key] = sanitize_value(v)
        return out
    return value


def _truncate(text: str, max_chars: int) -> str:
    if len(text) > max_chars:
        return text[:max_chars] + TRUNCATED_SUFFIX
    return text


def sanitize_payload(raw: Optional[str], max_chars: int = DEFAULT_MAX_CHARS) -> str:
    """
    脱敏并截断原始负载

    - 空或全空白 -> ""
    - 非 JSON 文本原样截断
    - JSON 按键名脱敏后格式化输出再截断
    """
    if raw is None or not raw.strip():
        return ""
    try:
        parsed = json.loads(raw)
    except ValueError:
        return _truncate(raw, max_chars)
    text = json.dumps(sanitize_value(parsed), indent=2, ensure_ascii=False)
    return _truncate(text, max_chars)
