"""
提醒调度

每轮检查（tick）：
1. 若上一轮仍在进行，直接丢弃本轮
2. 逐个用户：读取整树 -> 找出到期提醒 -> 推送 -> 计算触发后状态 -> 整树写回一次
3. 推送失败只记录日志，不影响重排；单个用户存储失败不影响其他用户
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import Any, Callable, Dict, List, Optional, Tuple

from core.errors import ItemNotFoundException, StorageException
from core.scheduler import Scheduler
from utils.timezone import utc_now

from .notes_push import PushGateway, build_reminder_payload
from .notes_recurrence import advance_after_fire
from .notes_schemas import TreeNode
from .notes_store import TreeStore
from .notes_tree import find_due_reminders, update_node

logger = logging.getLogger(__name__)

JOB_NAME = "notes_reminders"


@dataclass
class TickResult:
    """单轮检查结果"""
    users_scanned: int = 0
    reminders_fired: int = 0
    users_persisted: int = 0
    failed_users: List[int] = field(default_factory=list)
    stopped_early: bool = False


class ReminderScheduler:
    """提醒调度器"""

    def __init__(
        self,
        store: TreeStore,
        push: PushGateway,
        clock: Callable[[], datetime] = utc_now,
        zone: Optional[tzinfo] = None,
        interval: float = 60,
    ):
        self.store = store
        self.push = push
        self.clock = clock
        self.zone = zone or timezone.utc
        self.interval = interval

        self.is_running = False
        self.is_processing = False
        self.last_check_time: Optional[datetime] = None
        self.check_count = 0
        self.processed_count = 0
        self._stop_requested = False

    async def start(self, scheduler: Scheduler):
        """注册到后台调度器"""
        self._stop_requested = False
        await scheduler.schedule_periodic(self.tick, self.interval, name=JOB_NAME)
        self.is_running = True
        logger.info(f"提醒调度已启动，检查间隔 {self.interval} 秒")

    def request_stop(self):
        """请求停止：进行中的检查处理完当前用户后结束"""
        self._stop_requested = True
        self.is_running = False

    async def tick(self) -> Optional[TickResult]:
        """执行一轮检查；上一轮未结束时返回 None"""
        if self.is_processing:
            logger.debug("上一轮提醒检查尚未结束，跳过本轮")
            return None

        self.is_processing = True
        result = TickResult()
        try:
            now = self.clock()
            self.check_count += 1
            self.last_check_time = now

            try:
                user_ids = await self.store.list_reminder_users()
            except StorageException as e:
                logger.error(f"获取提醒用户列表失败: {e.message}")
                return result

            for user_id in user_ids:
                if self._stop_requested:
                    result.stopped_early = True
                    logger.info("收到停止请求，提前结束本轮提醒检查")
                    break

                result.users_scanned += 1
                try:
                    fired, persisted = await self._process_user(user_id, now)
                except StorageException as e:
                    logger.error(f"处理用户 {user_id} 的提醒失败: {e.message}")
                    result.failed_users.append(user_id)
                    continue
                except Exception as e:
                    logger.error(f"处理用户 {user_id} 的提醒时发生异常: {e}", exc_info=True)
                    result.failed_users.append(user_id)
                    continue

                result.reminders_fired += fired
                if persisted:
                    result.users_persisted += 1

            self.processed_count += result.reminders_fired
            if result.reminders_fired:
                logger.info(
                    f"提醒检查完成: 扫描 {result.users_scanned} 个用户, "
                    f"触发 {result.reminders_fired} 条提醒"
                )
            return result
        finally:
            self.is_processing = False

    async def _process_user(self, user_id: int, now: datetime) -> Tuple[int, bool]:
        """处理单个用户，返回 (触发数, 是否写回)"""
        async with self.store.lock(user_id):
            nodes = await self.store.load_tree(user_id)
            due = find_due_reminders(nodes, now)
            if not due:
                return 0, False

            updated = nodes
            fired = 0
            for node in due:
                await self._deliver(user_id, node, now)
                fired += 1

                next_state = advance_after_fire(node.reminder, now, self.zone)
                try:
                    updated = update_node(updated, node.id, {"reminder": next_state}, now=now)
                except ItemNotFoundException:
                    logger.error(f"到期提醒所在条目在处理过程中消失: 用户 {user_id}, 条目 {node.id}")
                    continue

                if next_state.enabled:
                    logger.debug(f"提醒已重排: 条目 {node.id} -> {next_state.timestamp.isoformat()}")
                else:
                    logger.debug(f"提醒已停用: 条目 {node.id}")

            if updated is not nodes:
                await self.store.replace_tree(user_id, updated)
                return fired, True
            return fired, False

    async def _deliver(self, user_id: int, node: TreeNode, now: datetime):
        payload = build_reminder_payload(node, now)
        try:
            results = await self.push.deliver(user_id, payload)
        except Exception as e:
            logger.warning(f"推送提醒失败: 用户 {user_id}, 条目 {node.id}: {e}")
            return

        failed = [r for r in results if not r.success]
        if failed:
            logger.warning(
                f"部分终端推送失败: 用户 {user_id}, 条目 {node.id}, "
                f"{len(failed)}/{len(results)} 失败"
            )

    def get_status(self) -> Dict[str, Any]:
        """调度器运行状态"""
        return {
            "is_running": self.is_running,
            "is_processing": self.is_processing,
            "last_check_time": self.last_check_time.isoformat() if self.last_check_time else None,
            "check_count": self.check_count,
            "processed_count": self.processed_count,
            "interval": self.interval,
        }
