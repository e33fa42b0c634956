"""
核心配置模块单元测试
"""

import pytest
from core.config import Settings, get_settings, reload_settings


class TestSettings:
    """配置类测试"""

    def test_default_settings_structure(self):
        """测试配置类结构"""
        settings = Settings()

        # 测试配置类属性存在
        assert hasattr(settings, 'app_name')
        assert hasattr(settings, 'app_version')
        assert hasattr(settings, 'debug')
        assert hasattr(settings, 'database_url')
        assert hasattr(settings, 'jwt_secret')

    def test_custom_settings(self):
        """测试自定义配置值"""
        settings = Settings(
            app_name="Test App",
            app_version="2.0.0",
            debug=True,
        )

        assert settings.app_name == "Test App"
        assert settings.app_version == "2.0.0"
        assert settings.debug is True

    def test_db_url(self):
        """测试数据库 URL"""
        settings = Settings(database_url="sqlite+aiosqlite:///./data/test.db")
        assert settings.db_url == "sqlite+aiosqlite:///./data/test.db"

    def test_env_override(self, monkeypatch):
        """测试环境变量覆盖"""
        monkeypatch.setenv("REMINDER_CHECK_INTERVAL", "15")
        monkeypatch.setenv("REMINDER_TIMEZONE", "Asia/Shanghai")
        settings = Settings()
        assert settings.reminder_check_interval == 15
        assert settings.reminder_timezone == "Asia/Shanghai"

    def test_get_settings_singleton(self):
        """测试配置单例模式"""
        settings1 = get_settings()
        settings2 = get_settings()

        assert settings1 is settings2

    def test_reload_settings(self):
        """测试配置重新加载"""
        settings1 = get_settings()
        settings2 = reload_settings()

        # 重新加载后应该是新实例
        assert settings1 is not settings2
        assert get_settings() is settings2


class TestReminderConfig:
    """提醒调度配置测试"""

    def test_default_reminder_settings(self, monkeypatch):
        """测试默认提醒配置"""
        monkeypatch.delenv("REMINDER_ENABLED", raising=False)
        settings = Settings(_env_file=None)

        assert settings.reminder_enabled is True
        assert settings.reminder_check_interval == 60
        assert settings.reminder_timezone == "UTC"
        assert settings.reminder_shutdown_timeout == 10.0

    def test_test_environment_disables_scheduler(self):
        """测试环境下不启动后台调度"""
        assert get_settings().reminder_enabled is False


class TestJWTConfig:
    """JWT 配置测试"""

    def test_default_jwt_settings(self, monkeypatch):
        """测试默认 JWT 配置"""
        monkeypatch.delenv("JWT_SECRET", raising=False)
        settings = Settings(_env_file=None)

        assert settings.jwt_algorithm == "HS256"
        assert settings.jwt_expire_minutes == 60

    def test_jwt_custom_settings(self):
        """测试自定义 JWT 配置"""
        settings = Settings(
            jwt_secret="custom-secret",
            jwt_expire_minutes=1440,  # 1天
        )

        assert settings.jwt_secret == "custom-secret"
        assert settings.jwt_expire_minutes == 1440
