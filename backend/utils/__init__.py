"""
工具函数目录
按功能分类组织
"""

from .timezone import utc_now, ensure_utc, get_zone, to_zone

__all__ = [
    # 时区
    "utc_now",
    "ensure_utc",
    "get_zone",
    "to_zone",
]
