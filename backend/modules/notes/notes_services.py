"""
笔记服务
包装树引擎：按用户加锁读取整树 -> 调用引擎 -> 整树写回 -> 向用户其他会话转发事件
"""

import logging
from datetime import datetime, tzinfo
from typing import Any, Callable, Dict, List, Optional, Protocol

from core.errors import ItemNotFoundException, ReminderNotFoundException
from utils.timezone import utc_now

from .notes_recurrence import advance_after_fire, snooze
from .notes_schemas import ItemCreate, ReminderSet, TreeNode, dump_tree
from .notes_store import TreeStore
from .notes_tree import (
    collect_reminders,
    create_node,
    delete_node,
    find_due_reminders,
    find_node,
    insert_node,
    move_node,
    normalize_tree,
    update_node,
)

logger = logging.getLogger(__name__)


class RelayChannel(Protocol):
    async def broadcast(
        self,
        user_id: int,
        event_name: str,
        body: Dict[str, Any],
        exclude_session: Optional[str] = None
    ) -> Any:
        ...


class NotesService:
    """笔记服务"""

    def __init__(
        self,
        store: TreeStore,
        relay: Optional[RelayChannel] = None,
        clock: Callable[[], datetime] = utc_now,
        zone: Optional[tzinfo] = None,
    ):
        self.store = store
        self.relay = relay
        self.clock = clock
        self.zone = zone

    # ============ 内部工具 ============

    async def _apply(self, user_id: int, mutate: Callable[[List[TreeNode]], List[TreeNode]]):
        """在用户锁内完成 读取 -> 修改 -> 写回，返回 (旧树, 新树)"""
        async with self.store.lock(user_id):
            nodes = await self.store.load_tree(user_id)
            new_nodes = mutate(nodes)
            if new_nodes is not nodes:
                await self.store.replace_tree(user_id, new_nodes)
        return nodes, new_nodes

    async def _emit(self, user_id: int, event_name: str, body: Dict[str, Any], origin: Optional[str]):
        """转发事件（不保证送达，失败只记录日志）"""
        if self.relay is None:
            return
        try:
            await self.relay.broadcast(user_id, event_name, body, exclude_session=origin)
        except Exception as e:
            logger.warning(f"转发事件 {event_name} 失败: 用户 {user_id}: {e}")

    @staticmethod
    def _require(nodes: List[TreeNode], item_id: str) -> TreeNode:
        found = find_node(nodes, item_id)
        if found is None:
            raise ItemNotFoundException(item_id)
        return found.node

    # ============ 树操作 ============

    async def get_tree(self, user_id: int) -> List[TreeNode]:
        """获取整棵树"""
        return await self.store.load_tree(user_id)

    async def get_item(self, user_id: int, item_id: str) -> TreeNode:
        """获取单个条目"""
        return self._require(await self.store.load_tree(user_id), item_id)

    async def create_item(
        self,
        user_id: int,
        data: ItemCreate,
        parent_id: Optional[str] = None,
        origin: Optional[str] = None
    ) -> TreeNode:
        """创建条目（parent_id 为空时放在根层级）"""
        node = create_node(
            data.type,
            data.label,
            content=data.content,
            completed=data.completed,
            reminder=data.reminder,
            now=self.clock(),
        )
        await self._apply(user_id, lambda nodes: insert_node(nodes, parent_id, node))

        logger.info(f"用户 {user_id} 创建{node.type.value}: {node.label}")
        await self._emit(user_id, "itemCreated", {"parentId": parent_id, "item": node.to_dict()}, origin)
        return node

    async def update_item(
        self,
        user_id: int,
        item_id: str,
        patch: Dict[str, Any],
        origin: Optional[str] = None
    ) -> TreeNode:
        """更新条目，值未变化时不写库也不转发"""
        now = self.clock()
        old, new = await self._apply(user_id, lambda nodes: update_node(nodes, item_id, patch, now=now))
        node = self._require(new, item_id)
        if new is old:
            return node

        logger.info(f"用户 {user_id} 更新条目: {item_id} ({', '.join(sorted(patch))})")
        await self._emit(user_id, "itemUpdated", {"item": node.to_dict()}, origin)
        return node

    async def delete_item(self, user_id: int, item_id: str, origin: Optional[str] = None) -> bool:
        """删除条目及其子树，条目不存在时返回 False"""
        old, new = await self._apply(user_id, lambda nodes: delete_node(nodes, item_id))
        if new is old:
            return False

        logger.info(f"用户 {user_id} 删除条目: {item_id}")
        await self._emit(user_id, "itemDeleted", {"itemId": item_id}, origin)
        return True

    async def move_item(
        self,
        user_id: int,
        item_id: str,
        parent_id: Optional[str],
        index: Optional[int] = None,
        origin: Optional[str] = None
    ) -> TreeNode:
        """移动条目到新的父级和位置"""
        now = self.clock()
        _, new = await self._apply(
            user_id, lambda nodes: move_node(nodes, item_id, parent_id, index, now=now)
        )
        node = self._require(new, item_id)

        logger.info(f"用户 {user_id} 移动条目: {item_id} -> {parent_id or '根目录'}")
        await self._emit(
            user_id,
            "itemMoved",
            {"itemId": item_id, "parentId": parent_id, "index": index, "item": node.to_dict()},
            origin,
        )
        return node

    async def replace_tree(self, user_id: int, raw_nodes: List[Any], origin: Optional[str] = None) -> List[TreeNode]:
        """整树替换（导入）"""
        normalized = normalize_tree(raw_nodes, now=self.clock())
        async with self.store.lock(user_id):
            await self.store.replace_tree(user_id, normalized)

        logger.info(f"用户 {user_id} 导入笔记树: {len(normalized)} 个顶层条目")
        await self._emit(user_id, "treeReplaced", {"tree": dump_tree(normalized)}, origin)
        return normalized

    # ============ 提醒 ============

    async def set_reminder(
        self,
        user_id: int,
        item_id: str,
        data: ReminderSet,
        origin: Optional[str] = None
    ) -> TreeNode:
        """设置（或覆盖）条目的提醒"""
        now = self.clock()
        reminder = data.to_reminder()
        _, new = await self._apply(
            user_id, lambda nodes: update_node(nodes, item_id, {"reminder": reminder}, now=now)
        )
        node = self._require(new, item_id)
        logger.info(f"用户 {user_id} 设置提醒: {item_id} @ {reminder.timestamp.isoformat()}")
        await self._emit(user_id, "reminderSet", {"itemId": item_id, "reminder": _dump_reminder(node)}, origin)
        return node

    async def clear_reminder(self, user_id: int, item_id: str, origin: Optional[str] = None) -> TreeNode:
        """清除条目的提醒"""
        now = self.clock()

        def mutate(nodes: List[TreeNode]) -> List[TreeNode]:
            if self._require(nodes, item_id).reminder is None:
                raise ReminderNotFoundException(item_id)
            return update_node(nodes, item_id, {"reminder": None}, now=now)

        _, new = await self._apply(user_id, mutate)
        logger.info(f"用户 {user_id} 清除提醒: {item_id}")
        await self._emit(user_id, "reminderCleared", {"itemId": item_id}, origin)
        return self._require(new, item_id)

    async def snooze_reminder(
        self,
        user_id: int,
        item_id: str,
        minutes: int,
        origin: Optional[str] = None
    ) -> TreeNode:
        """稍后提醒"""
        now = self.clock()

        def mutate(nodes: List[TreeNode]) -> List[TreeNode]:
            reminder = self._require(nodes, item_id).reminder
            if reminder is None:
                raise ReminderNotFoundException(item_id)
            return update_node(nodes, item_id, {"reminder": snooze(reminder, minutes, now)}, now=now)

        _, new = await self._apply(user_id, mutate)
        node = self._require(new, item_id)
        logger.info(f"用户 {user_id} 稍后提醒 {minutes} 分钟: {item_id}")
        await self._emit(user_id, "reminderSnoozed", {"itemId": item_id, "reminder": _dump_reminder(node)}, origin)
        return node

    async def trigger_reminder(
        self,
        user_id: int,
        item_id: str,
        origin: Optional[str] = None
    ) -> TreeNode:
        """手动触发提醒：立即进入触发后的状态（重排下一次或停用）"""
        now = self.clock()

        def mutate(nodes: List[TreeNode]) -> List[TreeNode]:
            reminder = self._require(nodes, item_id).reminder
            if reminder is None:
                raise ReminderNotFoundException(item_id)
            fired = advance_after_fire(reminder, now, self.zone)
            return update_node(nodes, item_id, {"reminder": fired}, now=now)

        _, new = await self._apply(user_id, mutate)
        node = self._require(new, item_id)
        logger.info(f"用户 {user_id} 手动触发提醒: {item_id}, 累计 {node.reminder.trigger_count} 次")
        await self._emit(user_id, "reminderTriggered", {"itemId": item_id, "reminder": _dump_reminder(node)}, origin)
        return node

    async def list_reminders(self, user_id: int, active_only: bool = True) -> List[TreeNode]:
        """带提醒的条目，按下一次触发时间排序"""
        return collect_reminders(await self.store.load_tree(user_id), active_only=active_only)

    async def list_due_reminders(self, user_id: int) -> List[TreeNode]:
        """当前已到期的提醒"""
        return find_due_reminders(await self.store.load_tree(user_id), self.clock())


def _dump_reminder(node: TreeNode) -> Optional[Dict[str, Any]]:
    if node.reminder is None:
        return None
    return node.reminder.model_dump(by_alias=True, exclude_none=True, mode="json")
