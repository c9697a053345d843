"""
订单访问令牌服务 - 为客户签发带有效期的订单详情链接

令牌 = HMAC-SHA256(secret, "{order_id}:{expires_at}") 十六进制摘要的前 32 位，
expires_at 为毫秒级 Unix 时间戳。校验失败一律返回 False，不抛异常。
"""
from __future__ import annotations

import hashlib
import hmac
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional
from urllib.parse import quote, urlencode

from core.logging_config import get_logger


logger = get_logger(__name__)

TOKEN_LENGTH = 32
MS_PER_HOUR = 60 * 60 * 1000


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class OrderAccessToken:
    order_id: str
    token: str
    expires_at: int


class OrderTokenService:
    """签发与校验订单访问令牌"""

    def __init__(
        self,
        secret: str,
        *,
        ttl_hours: int = 24,
        base_url: str = "http://localhost:3000",
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        if not secret:
            raise ValueError("order token secret must be a non-empty string")
        self._secret = secret.encode("utf-8")
        self._ttl_ms = ttl_hours * MS_PER_HOUR
        self._base_url = base_url.rstrip("/")
        self._clock = clock

    def _sign(self, order_id: str, expires_at: int) -> str:
        msg = f"{order_id}:{expires_at}".encode("utf-8")
        return hmac.new(self._secret, msg, hashlib.sha256).hexdigest()[:TOKEN_LENGTH]

    def issue(self, order_id: str) -> OrderAccessToken:
        expires_at = self._clock() + self._ttl_ms
        return OrderAccessToken(
            order_id=str(order_id),
            token=self._sign(str(order_id), expires_at),
            expires_at=expires_at,
        )

    def verify(self, order_id: str, token: Optional[str], expires_at: Any) -> bool:
        if not token or len(token) != TOKEN_LENGTH:
            return False
        try:
            expires_ms = int(str(expires_at).strip())
        except (TypeError, ValueError):
            return False
        if expires_ms <= 0:
            return False
        if self._clock() > expires_ms:
            return False
        expected = self._sign(str(order_id), expires_ms)
        try:
            return hmac.compare_digest(token.encode("ascii"), expected.encode("ascii"))
        except UnicodeEncodeError:
            return False

    def build_detail_url(self, order_id: str, order_number: str, base_url: Optional[str] = None) -> str:
        """生成订单详情链接（链接本身即凭证，不写日志）"""
        issued = self.issue(order_id)
        base = (base_url or self._base_url).rstrip("/")
        query = urlencode({
            "token": issued.token,
            "expires": issued.expires_at,
            "orderNumber": order_number,
        })
        return f"{base}/orders/details/{quote(str(order_id), safe='')}?{query}"
