"""
提醒推送

PushGateway 是调度器依赖的推送能力：把一条提醒投递到用户的零个或多个终端，逐个终端返回结果。
默认实现通过 WebSocket 连接管理器投递，每个在线会话视为一个终端。
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from core.ws_manager import ConnectionManager
from utils.timezone import ensure_utc

from .notes_recurrence import effective_time
from .notes_schemas import NodeType, TreeNode

logger = logging.getLogger(__name__)

REMINDER_EVENT = "reminderFired"


@dataclass
class DeliveryResult:
    """单个终端的投递结果"""
    endpoint: str
    success: bool
    error: Optional[str] = None
    expired: bool = False  # 终端已失效，应当清理


class PushGateway(Protocol):
    async def deliver(self, user_id: int, payload: Dict[str, Any]) -> List[DeliveryResult]:
        ...


def build_reminder_payload(node: TreeNode, fired_at: datetime) -> Dict[str, Any]:
    """构建提醒推送内容：标题、正文（条目名称）以及条目ID供客户端跳转"""
    reminder_time = effective_time(node.reminder) if node.reminder else fired_at
    return {
        "type": "reminder",
        "title": "待办提醒" if node.type == NodeType.TASK else "笔记提醒",
        "body": node.label,
        "itemId": node.id,
        "tag": f"reminder-{node.id}",
        "url": f"/app?focus={node.id}",
        "reminderTime": ensure_utc(reminder_time).isoformat(),
        "firedAt": ensure_utc(fired_at).isoformat(),
    }


class WebSocketPushGateway:
    """通过 WebSocket 推送提醒"""

    def __init__(self, manager: ConnectionManager):
        self._manager = manager

    async def deliver(self, user_id: int, payload: Dict[str, Any]) -> List[DeliveryResult]:
        message = {"type": REMINDER_EVENT, "data": payload}
        results: List[DeliveryResult] = []
        for session_id in self._manager.get_sessions(user_id):
            if await self._manager.send_to_session(message, user_id, session_id):
                results.append(DeliveryResult(endpoint=session_id, success=True))
            else:
                results.append(DeliveryResult(
                    endpoint=session_id, success=False, error="连接已断开", expired=True
                ))

        if not results:
            logger.debug(f"用户 {user_id} 没有在线终端，提醒未推送: {payload.get('itemId')}")
        return results
