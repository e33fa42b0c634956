"""
WebSocket 路由
提供实时通信功能：多端同步事件转发、提醒推送
"""

import json
import logging
from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect

from core.security import decode_token, get_current_user, TokenData
from core.ws_manager import ConnectionManager
from schemas import success
from utils.timezone import utc_now

router = APIRouter()
logger = logging.getLogger(__name__)


def _extract_token(websocket: WebSocket, token: str = None) -> str:
    """从查询参数或协议头获取 token"""
    if token:
        return token
    token = websocket.query_params.get("token")
    if token:
        return token
    auth_header = websocket.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:]
    return ""


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, token: str = None, session_id: str = None):
    """
    WebSocket 连接端点

    连接参数：
    - token: JWT token（通过查询参数或协议头传递）
    - session_id: 客户端会话ID（可选，不传则由服务端生成）

    客户端消息：
    - {"type": "ping"} -> {"type": "pong"}
    - {"type": "sync", "event": "...", "data": {...}} -> 转发给同一用户的其他会话
    """
    manager: ConnectionManager = websocket.app.state.ws_manager

    token = _extract_token(websocket, token)
    if not token:
        await websocket.close(code=1008, reason="缺少认证 token")
        return

    user_info = decode_token(token)
    if user_info is None:
        logger.error("WebSocket 认证失败: 无效的 token")
        await websocket.close(code=1008, reason="无效的 token")
        return

    user_id = user_info.user_id
    session_id = await manager.connect(websocket, user_id, session_id)

    try:
        # 发送连接成功消息
        await websocket.send_text(json.dumps({
            "type": "connected",
            "message": "WebSocket 连接成功",
            "user_id": user_id,
            "session_id": session_id,
            "timestamp": utc_now().isoformat()
        }, ensure_ascii=False))

        # 保持连接并接收消息
        while True:
            data = await websocket.receive_text()

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                logger.warning(f"收到无效的 JSON 消息: {data}")
                continue
            if not isinstance(message, dict):
                logger.warning(f"收到无效的消息: {data}")
                continue

            message_type = message.get("type", "unknown")

            # 处理心跳
            if message_type == "ping":
                await websocket.send_text(json.dumps({
                    "type": "pong",
                    "timestamp": utc_now().isoformat()
                }, ensure_ascii=False))

            # 客户端发起的变更事件，转发给同一用户的其他设备
            elif message_type == "sync":
                event_name = message.get("event")
                if not event_name:
                    logger.warning(f"同步消息缺少 event 字段: 用户 {user_id}")
                    continue
                await manager.broadcast(user_id, event_name, message.get("data") or {}, exclude_session=session_id)

            else:
                logger.debug(f"收到消息: {message}")

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"WebSocket 连接异常: {e}", exc_info=True)
        await websocket.close(code=1011, reason="服务器内部错误")
    finally:
        manager.disconnect(user_id, session_id, websocket)


@router.get("/ws/sessions")
async def get_my_sessions(request: Request, user: TokenData = Depends(get_current_user)):
    """当前用户的在线会话"""
    manager: ConnectionManager = request.app.state.ws_manager
    return success({
        "online": user.user_id in manager.get_online_users(),
        "sessions": list(manager.get_sessions(user.user_id)),
    })
