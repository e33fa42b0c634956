"""
WebSocket 管理器
处理 WebSocket 连接和消息推送
"""

import json
import logging
import uuid
from typing import Dict, Optional, Set
from fastapi import WebSocket

from utils.timezone import utc_now

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    WebSocket 连接管理器

    同一用户的每个设备/标签页是一个会话，会话ID由客户端提供或在连接时生成。
    实例由应用创建并挂在 app.state 上，不使用模块级单例。
    """

    def __init__(self):
        # 用户ID -> {会话ID: WebSocket}
        self.active_connections: Dict[int, Dict[str, WebSocket]] = {}

    async def connect(self, websocket: WebSocket, user_id: int, session_id: Optional[str] = None) -> str:
        """接受连接，返回会话ID"""
        await websocket.accept()

        session_id = session_id or uuid.uuid4().hex
        sessions = self.active_connections.setdefault(user_id, {})
        previous = sessions.get(session_id)
        if previous is not None and previous is not websocket:
            logger.debug(f"会话 {session_id} 重复连接，替换旧连接: 用户 {user_id}")
        sessions[session_id] = websocket
        logger.debug(f"WebSocket 连接已建立: 用户 {user_id}, 会话 {session_id}")
        return session_id

    def disconnect(self, user_id: int, session_id: str, websocket: Optional[WebSocket] = None):
        """断开连接（指定 websocket 时，仅当该会话仍是这条连接才移除）"""
        sessions = self.active_connections.get(user_id)
        if not sessions:
            return
        if websocket is not None and sessions.get(session_id) is not websocket:
            return
        sessions.pop(session_id, None)
        if not sessions:
            del self.active_connections[user_id]
        logger.debug(f"WebSocket 连接已断开: 用户 {user_id}, 会话 {session_id}")

    async def send_to_session(self, message: dict, user_id: int, session_id: str) -> bool:
        """向单个会话发送消息，失败时清理该连接"""
        websocket = self.active_connections.get(user_id, {}).get(session_id)
        if websocket is None:
            return False
        try:
            await websocket.send_text(json.dumps(message, ensure_ascii=False))
            return True
        except Exception as e:
            logger.error(f"发送消息失败: 用户 {user_id}, 会话 {session_id}: {e}")
            self.disconnect(user_id, session_id, websocket)
            return False

    async def send_personal_message(
        self,
        message: dict,
        user_id: int,
        exclude_session: Optional[str] = None
    ) -> int:
        """向指定用户的所有会话发送消息，返回成功送达的会话数"""
        sessions = self.get_sessions(user_id)
        if not sessions:
            logger.debug(f"忽略离线用户消息推送: {user_id}")
            return 0

        delivered = 0
        for session_id in sessions:
            if session_id == exclude_session:
                continue
            if await self.send_to_session(message, user_id, session_id):
                delivered += 1
        return delivered

    async def broadcast(
        self,
        user_id: int,
        event_name: str,
        body: dict,
        exclude_session: Optional[str] = None
    ) -> int:
        """
        向用户的其他会话转发事件（多端同步）

        不保证送达，也没有确认机制。
        """
        message = {
            "type": event_name,
            "data": body,
            "timestamp": utc_now().isoformat()
        }
        return await self.send_personal_message(message, user_id, exclude_session)

    def get_sessions(self, user_id: int) -> Dict[str, WebSocket]:
        """获取用户当前的会话（副本）"""
        return dict(self.active_connections.get(user_id, {}))

    def get_online_users(self) -> Set[int]:
        """获取在线用户ID集合"""
        return set(self.active_connections.keys())

    def get_connection_count(self) -> int:
        """获取总连接数"""
        return sum(len(sessions) for sessions in self.active_connections.values())
