"""
管理端身份校验 - HS256 JWT

令牌由外部登录流程签发，本服务只负责验签与角色检查。
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt

from core.config import settings
from core.exceptions import ForbiddenException, UnauthorizedException
from core.logging_config import get_logger


logger = get_logger(__name__)

ADMIN_ROLE = "admin"


def create_admin_token(
    subject: str,
    *,
    role: str = ADMIN_ROLE,
    expires_minutes: int = 60,
    secret: Optional[str] = None,
) -> str:
    """签发管理端访问令牌（供运维脚本与测试使用）"""
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    to_encode = {
        "sub": subject,
        "role": role,
        "exp": expire,
        "type": "access",
    }
    return jwt.encode(to_encode, secret or settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_admin_token(token: str, *, secret: Optional[str] = None) -> dict[str, Any]:
    """
    校验管理端令牌

    - 缺失、签名错误或过期: UnauthorizedException (401)
    - 角色不是 admin: ForbiddenException (403)
    """
    if not token:
        raise UnauthorizedException()
    try:
        payload = jwt.decode(
            token,
            secret or settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedException("Token expirado")
    except jwt.InvalidTokenError as e:
        logger.warning("invalid_admin_token", error=str(e))
        raise UnauthorizedException("Token inválido")

    if payload.get("role") != ADMIN_ROLE:
        logger.warning("admin_role_required", sub=payload.get("sub"), role=payload.get("role"))
        raise ForbiddenException()
    return payload
