"""
统一响应格式定义

店面前端依赖的信封格式：成功 {"success": true, "data": ...}，失败 {"success": false, "error": "..."}
"""
from typing import Any, Optional, Generic, TypeVar

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel


T = TypeVar("T")


class Response(BaseModel, Generic[T]):
    """统一响应模型（用于 OpenAPI 文档）"""
    success: bool
    data: Optional[T] = None
    error: Optional[str] = None


class PaginatedData(BaseModel, Generic[T]):
    """分页数据模型"""
    items: list[T]
    total: int
    page: int
    limit: int
    totalPages: int


def success_response(data: Any = None, message: Optional[str] = None) -> dict:
    """
    创建成功响应

    Args:
        data: 返回数据（pydantic 模型按别名序列化）
        message: 可选提示消息

    Returns:
        dict: 可直接序列化的响应体
    """
    body: dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = jsonable_encoder(data, by_alias=True)
    if message:
        body["message"] = message
    return body


def error_response(error: str, details: Optional[dict] = None) -> dict:
    """
    创建错误响应

    Args:
        error: 面向用户的错误消息（不包含内部细节）
        details: 附加的安全字段，平铺到响应体
    """
    body: dict[str, Any] = {"success": False, "error": error}
    if details:
        body.update(jsonable_encoder(details))
    return body


def paginated_data(items: list, total: int, page: int, limit: int) -> PaginatedData:
    """创建分页数据"""
    pages = (total + limit - 1) // limit if limit > 0 else 0
    return PaginatedData(items=items, total=total, page=page, limit=limit, totalPages=pages)
