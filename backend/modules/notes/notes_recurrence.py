# -*- coding: utf-8 -*-
"""
提醒重复规则计算

纯函数，无状态。
- 秒/分/时：按绝对时长相加
- 日/周/月/年：按 last_time 自身时区的墙上时间计算（跨夏令时保持钟点不变）
- 月/年：日期保留，超出目标月份天数时取该月最后一天（1月31日 + 1个月 = 2月28/29日）
- 星期编号：0=周日 ... 6=周六
"""

import calendar
from datetime import datetime, timedelta, timezone, tzinfo
from typing import List, Optional

from core.errors import ValidationException
from utils.timezone import ensure_utc, utc_now

from .notes_schemas import Reminder, RepeatOptions, RepeatUnit


def next_occurrence(last_time: datetime, repeat: Optional[RepeatOptions]) -> Optional[datetime]:
    """
    计算下一次触发时间

    Args:
        last_time: 上一次（当前）触发时间
        repeat: 重复规则

    Returns:
        下一次触发时间；不重复、间隔非正或超过结束日期时返回 None
    """
    if repeat is None or repeat.interval is None or repeat.interval <= 0:
        return None

    if last_time.tzinfo is None:
        last_time = ensure_utc(last_time)

    unit = repeat.unit
    interval = repeat.interval

    if unit in (RepeatUnit.SECONDS, RepeatUnit.MINUTES, RepeatUnit.HOURS):
        delta = timedelta(**{unit.value: interval})
        result = (last_time.astimezone(timezone.utc) + delta).astimezone(last_time.tzinfo)
    elif unit == RepeatUnit.DAYS:
        result = last_time + timedelta(days=interval)
    elif unit == RepeatUnit.WEEKS:
        if repeat.days_of_week:
            result = _next_listed_weekday(last_time, repeat.days_of_week, interval)
        else:
            result = last_time + timedelta(days=7 * interval)
    elif unit == RepeatUnit.MONTHS:
        result = add_months(last_time, interval)
    elif unit == RepeatUnit.YEARS:
        result = add_months(last_time, 12 * interval)
    else:
        return None

    if repeat.end_date is not None and result > repeat.end_date:
        return None
    return result


def weekday_number(dt: datetime) -> int:
    """星期编号（0=周日）"""
    return dt.isoweekday() % 7


def _next_listed_weekday(last_time: datetime, days: List[int], interval: int) -> datetime:
    # 本周内还有更晚的星期则取之，否则跳到 interval 周后那一周的第一个星期
    days = sorted(set(days))
    current = weekday_number(last_time)
    later = [day for day in days if day > current]
    if later:
        offset = later[0] - current
    else:
        offset = (7 - current) + days[0] + (interval - 1) * 7
    return last_time + timedelta(days=offset)


def add_months(dt: datetime, months: int) -> datetime:
    """按日历加月，日期超出目标月份时取月末"""
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def effective_time(reminder: Reminder) -> datetime:
    """下一次实际触发时间（稍后提醒优先）"""
    return reminder.snoozed_until or reminder.timestamp


def is_due(reminder: Optional[Reminder], now: datetime) -> bool:
    """提醒是否到期"""
    if reminder is None or not reminder.enabled:
        return False
    return effective_time(reminder) <= now


def snooze(reminder: Reminder, minutes: int, now: Optional[datetime] = None) -> Reminder:
    """稍后提醒：只设置 snoozed_until，不改动 timestamp 和重复规则"""
    if minutes <= 0:
        raise ValidationException("稍后提醒的分钟数必须为正整数")
    now = now or utc_now()
    return reminder.model_copy(update={"snoozed_until": ensure_utc(now) + timedelta(minutes=minutes)})


def advance_after_fire(
    reminder: Reminder,
    fired_at: datetime,
    zone: Optional[tzinfo] = None
) -> Reminder:
    """
    计算提醒触发后的状态

    下一次时间以 timestamp 为基准，在 zone 时区内计算；
    有下一次则更新 timestamp 并清除稍后提醒，否则停用（timestamp 保持不变）。
    """
    base = reminder.timestamp.astimezone(zone) if zone is not None else reminder.timestamp
    next_time = next_occurrence(base, reminder.repeat_options)

    changes = {
        "last_triggered": ensure_utc(fired_at),
        "trigger_count": reminder.trigger_count + 1,
        "snoozed_until": None,
    }
    if next_time is not None:
        changes["timestamp"] = ensure_utc(next_time)
    else:
        changes["enabled"] = False
    return reminder.model_copy(update=changes)
