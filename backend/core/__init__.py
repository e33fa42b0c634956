"""
核心模块
提供框架的基础设施和通用功能

导出列表：
- 配置管理: get_settings, Settings
- 数据库: Base, async_session
- 安全认证: get_current_user, create_token, decode_token
- 错误处理: ErrorCode, AppException, register_exception_handlers
- 后台调度: Scheduler
- 实时通信: ConnectionManager
"""

# 配置管理
from .config import get_settings, Settings, reload_settings

# 数据库
from .database import Base, async_session, init_db, close_db

# 安全认证
from .security import get_current_user, create_token, decode_token, TokenData

# 错误处理
from .errors import ErrorCode, AppException, register_exception_handlers

# 后台调度
from .scheduler import Scheduler

# 实时通信
from .ws_manager import ConnectionManager

__all__ = [
    "get_settings", "Settings", "reload_settings",
    "Base", "async_session", "init_db", "close_db",
    "get_current_user", "create_token", "decode_token", "TokenData",
    "ErrorCode", "AppException", "register_exception_handlers",
    "Scheduler",
    "ConnectionManager",
]
