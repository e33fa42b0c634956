"""
笔记树存储

整树读取 / 整树替换，不做局部写入。
同一用户的 读取 -> 修改 -> 写回 由 lock(user_id) 串行化（单进程内）。
"""

import asyncio
import logging
from typing import Dict, List

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.errors import StorageException

from .notes_models import NotesTree
from .notes_schemas import TreeNode, dump_tree
from .notes_tree import has_enabled_reminders

logger = logging.getLogger(__name__)


class TreeStore:
    """基于 SQLAlchemy 的笔记树存储"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self._locks: Dict[int, asyncio.Lock] = {}

    def lock(self, user_id: int) -> asyncio.Lock:
        """获取用户级写锁"""
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        return lock

    async def load_tree(self, user_id: int) -> List[TreeNode]:
        """读取用户的整棵树，没有记录时返回空列表"""
        try:
            async with self._session_factory() as session:
                record = await session.get(NotesTree, user_id)
                raw = list(record.tree or []) if record is not None else []
        except SQLAlchemyError as e:
            logger.error(f"读取用户 {user_id} 的笔记树失败: {e}")
            raise StorageException("读取笔记树失败", user_id=user_id) from e

        try:
            return [TreeNode.model_validate(item) for item in raw]
        except ValidationError as e:
            logger.error(f"用户 {user_id} 的笔记树数据损坏: {e}")
            raise StorageException("笔记树数据损坏", user_id=user_id) from e

    async def replace_tree(self, user_id: int, nodes: List[TreeNode]) -> int:
        """
        原子替换用户的整棵树

        Returns:
            写入后的版本号
        """
        payload = dump_tree(nodes)
        has_reminders = has_enabled_reminders(nodes)
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    record = await session.get(NotesTree, user_id)
                    if record is None:
                        record = NotesTree(user_id=user_id, tree=payload, has_reminders=has_reminders, version=1)
                        session.add(record)
                    else:
                        record.tree = payload
                        record.has_reminders = has_reminders
                        record.version = (record.version or 0) + 1
                version = record.version
        except SQLAlchemyError as e:
            logger.error(f"写入用户 {user_id} 的笔记树失败: {e}")
            raise StorageException("保存笔记树失败", user_id=user_id) from e

        logger.debug(f"用户 {user_id} 笔记树已保存，版本 {version}")
        return version

    async def list_reminder_users(self) -> List[int]:
        """有启用中提醒的用户ID"""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(NotesTree.user_id)
                    .where(NotesTree.has_reminders.is_(True))
                    .order_by(NotesTree.user_id)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"查询提醒用户失败: {e}")
            raise StorageException("查询提醒用户失败") from e
