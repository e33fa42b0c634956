"""
pytest 入口
在加载核心模块之前切换到测试配置（内存数据库、固定密钥、关闭后台提醒调度），
fixtures 统一定义在 tests/test_conftest.py 与各模块的 *_conftest.py 中。
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-secret-key")
os.environ.setdefault("REMINDER_ENABLED", "false")

from tests.test_conftest import *
