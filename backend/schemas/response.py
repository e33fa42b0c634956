"""
统一响应格式
API返回的标准JSON结构
"""

from typing import Any


def success(data: Any = None, message: str = "success") -> dict:
    """成功响应"""
    return {
        "code": 200,
        "message": message,
        "data": data
    }
