"""
测试配置和 Fixtures
提供测试用的数据库、存储、客户端和通用工具
"""

import os

# 立即设置测试环境变量，确保核心模块加载时使用测试配置
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-secret-key")
os.environ.setdefault("REMINDER_ENABLED", "false")

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from core.database import init_db
from core.lifespan import init_app_state
from core.security import TokenData, create_token
from main import app
from modules.notes.notes_store import TreeStore

# 模块测试夹具
from modules.notes.notes_tests.notes_conftest import *


# ==================== 测试夹具 (Fixtures) ====================

@pytest_asyncio.fixture(scope="function")
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """
    每个测试独立的内存数据库
    StaticPool 保证所有会话共用同一个连接（内存库按连接隔离）
    """
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    """测试用会话工厂"""
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
def tree_store(session_factory) -> TreeStore:
    """基于内存数据库的笔记树存储"""
    return TreeStore(session_factory)


@pytest.fixture
def app_state(session_factory):
    """
    初始化应用级服务
    ASGITransport 不会触发 lifespan，这里直接挂载到 app.state
    """
    return init_app_state(app, session_factory=session_factory)


@pytest_asyncio.fixture(scope="function")
async def client(app_state) -> AsyncGenerator[AsyncClient, None]:
    """创建异步测试客户端"""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def make_token(user_id: int = 1, username: str = "tester") -> str:
    """生成测试用访问令牌"""
    return create_token(TokenData(user_id=user_id, username=username))


@pytest.fixture
def auth_headers() -> dict:
    """用户 1 的认证头"""
    return {"Authorization": f"Bearer {make_token(1)}"}


@pytest_asyncio.fixture(scope="function")
async def user_client(client: AsyncClient, auth_headers: dict) -> AsyncClient:
    """提供已登录用户的客户端"""
    client.headers.update(auth_headers)
    return client
