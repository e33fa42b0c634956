"""
数据库连接管理
提供异步数据库连接和会话管理
"""

import logging
from pathlib import Path
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from .config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

# 创建异步引擎
engine = create_async_engine(
    settings.db_url,
    echo=settings.db_echo,
    pool_pre_ping=True,
)

# 会话工厂
async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False
)


class Base(DeclarativeBase):
    """模型基类"""
    pass


def ensure_sqlite_directory(url: str) -> None:
    """SQLite 文件数据库：确保所在目录存在"""
    parsed = make_url(url)
    if not parsed.drivername.startswith("sqlite"):
        return
    database = parsed.database
    if not database or database == ":memory:":
        return
    Path(database).parent.mkdir(parents=True, exist_ok=True)


async def init_db(target: AsyncEngine = None):
    """初始化数据库（创建所有表）"""
    # 导入模型以注册到 Base.metadata
    from modules.notes import notes_models  # noqa: F401

    target = target or engine
    ensure_sqlite_directory(str(target.url))

    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.debug(f"数据库表初始化完成（共 {len(Base.metadata.sorted_tables)} 张表）")


async def close_db():
    """关闭数据库连接"""
    await engine.dispose()
