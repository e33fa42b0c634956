"""
时区工具单元测试
覆盖：UTC 当前时间、UTC 规范化、时区解析与转换
"""

import pytest
from datetime import datetime, timezone, timedelta
from zoneinfo import ZoneInfo

from utils.timezone import ensure_utc, get_zone, to_zone, utc_now


class TestUtcNow:
    """获取 UTC 时间测试"""

    def test_has_timezone_info(self):
        """测试包含时区信息"""
        now = utc_now()
        assert now.tzinfo is not None
        assert now.utcoffset() == timedelta(0)

    def test_close_to_current_time(self):
        """测试返回时间接近当前时间"""
        diff = abs((utc_now() - datetime.now(timezone.utc)).total_seconds())
        assert diff < 2  # 2 秒内误差


class TestEnsureUtc:
    """UTC 规范化测试"""

    def test_none_input(self):
        """测试 None 输入"""
        assert ensure_utc(None) is None

    def test_naive_treated_as_utc(self):
        """测试无时区信息的时间视为 UTC"""
        result = ensure_utc(datetime(2024, 1, 1, 12, 0))
        assert result == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert result.tzinfo is timezone.utc

    def test_aware_converted(self):
        """测试带时区的时间转换为 UTC"""
        beijing = datetime(2024, 1, 1, 20, 0, tzinfo=timezone(timedelta(hours=8)))
        result = ensure_utc(beijing)
        assert result.hour == 12
        assert result.tzinfo is timezone.utc


class TestZones:
    """时区解析测试"""

    @pytest.mark.parametrize("name", [None, "", "UTC", "utc"])
    def test_utc_names(self, name):
        """测试 UTC 别名"""
        assert get_zone(name) is timezone.utc

    def test_iana_name(self):
        """测试 IANA 时区名"""
        assert get_zone("Asia/Shanghai") == ZoneInfo("Asia/Shanghai")

    def test_unknown_name(self):
        """测试未知时区"""
        with pytest.raises(ValueError):
            get_zone("Mars/Olympus_Mons")

    def test_to_zone(self):
        """测试转换到指定时区"""
        result = to_zone(datetime(2024, 7, 1, 12, 0), ZoneInfo("America/New_York"))
        assert result.hour == 8
        assert to_zone(None, timezone.utc) is None
