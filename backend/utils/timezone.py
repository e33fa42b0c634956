# -*- coding: utf-8 -*-
"""
时区工具模块
存储与比较统一使用带时区的 UTC 时间
"""

from datetime import datetime, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def utc_now() -> datetime:
    """
    获取当前 UTC 时间

    Returns:
        datetime: 带有 UTC 时区信息的当前时间
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    将任意时间规范为 UTC

    无时区信息的时间视为 UTC。
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def get_zone(name: Optional[str]) -> tzinfo:
    """
    根据 IANA 名称获取时区，空值或 "UTC" 返回 UTC

    Raises:
        ValueError: 未知的时区名称
    """
    if not name or name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError as e:
        raise ValueError(f"未知的时区: {name}") from e


def to_zone(dt: Optional[datetime], zone: tzinfo) -> Optional[datetime]:
    """将时间转换到指定时区（无时区信息的时间视为 UTC）"""
    if dt is None:
        return None
    return ensure_utc(dt).astimezone(zone)
