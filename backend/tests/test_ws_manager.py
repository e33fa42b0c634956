"""
WebSocket 管理器单元测试
"""

import json

import pytest
from unittest.mock import AsyncMock
from core.ws_manager import ConnectionManager


class TestConnectionManager:
    """WebSocket 连接管理器测试"""

    @pytest.mark.asyncio
    async def test_connect_disconnect(self):
        """测试连接和断开"""
        manager = ConnectionManager()
        mock_ws = AsyncMock()
        user_id = 1

        # 测试连接（未指定会话ID时自动生成）
        session_id = await manager.connect(mock_ws, user_id)
        assert session_id
        assert manager.active_connections[user_id][session_id] is mock_ws
        mock_ws.accept.assert_called_once()

        # 测试断开
        manager.disconnect(user_id, session_id)
        assert user_id not in manager.active_connections

    @pytest.mark.asyncio
    async def test_reconnect_same_session(self):
        """同一会话重连后，旧连接的断开不影响新连接"""
        manager = ConnectionManager()
        old_ws, new_ws = AsyncMock(), AsyncMock()

        await manager.connect(old_ws, 1, "tab")
        await manager.connect(new_ws, 1, "tab")
        manager.disconnect(1, "tab", old_ws)

        assert manager.get_sessions(1) == {"tab": new_ws}

    @pytest.mark.asyncio
    async def test_send_personal_message(self):
        """测试发送个人消息"""
        manager = ConnectionManager()
        mock_ws = AsyncMock()
        user_id = 1
        await manager.connect(mock_ws, user_id)

        message = {"type": "test", "content": "你好"}
        delivered = await manager.send_personal_message(message, user_id)

        assert delivered == 1
        mock_ws.send_text.assert_called_once()
        # 验证发送的内容包含消息
        call_args = mock_ws.send_text.call_args[0][0]
        assert '"test"' in call_args
        assert '"你好"' in call_args

    @pytest.mark.asyncio
    async def test_offline_user(self):
        """离线用户不报错"""
        manager = ConnectionManager()
        assert await manager.send_personal_message({"type": "x"}, 99) == 0
        assert await manager.send_to_session({"type": "x"}, 99, "none") is False

    @pytest.mark.asyncio
    async def test_broadcast_excludes_origin(self):
        """测试事件转发给同一用户的其他会话"""
        manager = ConnectionManager()
        phone, laptop, stranger = AsyncMock(), AsyncMock(), AsyncMock()

        await manager.connect(phone, 1, "phone")
        await manager.connect(laptop, 1, "laptop")
        await manager.connect(stranger, 2, "other")

        delivered = await manager.broadcast(1, "itemCreated", {"itemId": "abc"}, exclude_session="phone")

        assert delivered == 1
        phone.send_text.assert_not_called()
        stranger.send_text.assert_not_called()
        sent = json.loads(laptop.send_text.call_args[0][0])
        assert sent["type"] == "itemCreated"
        assert sent["data"] == {"itemId": "abc"}
        assert "timestamp" in sent

    @pytest.mark.asyncio
    async def test_failed_send_drops_connection(self):
        """发送失败时清理该连接"""
        manager = ConnectionManager()
        broken = AsyncMock()
        broken.send_text.side_effect = RuntimeError("closed")
        healthy = AsyncMock()

        await manager.connect(broken, 1, "broken")
        await manager.connect(healthy, 1, "healthy")

        assert await manager.broadcast(1, "itemDeleted", {}) == 1
        assert list(manager.get_sessions(1)) == ["healthy"]

    @pytest.mark.asyncio
    async def test_get_online_users(self):
        """测试获取在线用户"""
        manager = ConnectionManager()
        await manager.connect(AsyncMock(), 1, "a")
        await manager.connect(AsyncMock(), 1, "b")
        await manager.connect(AsyncMock(), 2, "c")

        online_users = manager.get_online_users()
        assert online_users == {1, 2}
        assert manager.get_connection_count() == 3
