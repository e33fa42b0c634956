"""
笔记API路由
RESTful风格，所有接口都需要认证且限定用户
"""

from typing import Optional
from fastapi import APIRouter, Depends, Header, Query, Request

from core.security import get_current_user, TokenData
from schemas import success

from .notes_reminders import ReminderScheduler
from .notes_schemas import ItemCreate, ItemMove, ItemUpdate, ReminderSet, ReminderSnooze, TreeReplace, dump_tree
from .notes_services import NotesService

router = APIRouter()


def get_service(request: Request) -> NotesService:
    """获取应用级笔记服务实例"""
    return request.app.state.notes_service


def get_reminder_scheduler(request: Request) -> ReminderScheduler:
    return request.app.state.reminder_scheduler


# 发起请求的客户端会话，转发同步事件时排除
SessionHeader = Header(None, alias="X-Session-Id")


# ============ 整树接口 ============

@router.get("/tree")
async def get_tree(
    service: NotesService = Depends(get_service),
    user: TokenData = Depends(get_current_user)
):
    """获取完整笔记树"""
    tree = await service.get_tree(user.user_id)
    return success(dump_tree(tree))


@router.put("/tree")
async def replace_tree(
    data: TreeReplace,
    service: NotesService = Depends(get_service),
    user: TokenData = Depends(get_current_user),
    session_id: Optional[str] = SessionHeader
):
    """整树替换（导入）"""
    tree = await service.replace_tree(user.user_id, data.tree, origin=session_id)
    return success(dump_tree(tree), "导入成功")


# ============ 条目接口 ============

@router.get("/items/{item_id}")
async def get_item(
    item_id: str,
    service: NotesService = Depends(get_service),
    user: TokenData = Depends(get_current_user)
):
    """获取条目详情"""
    node = await service.get_item(user.user_id, item_id)
    return success(node.to_dict())


@router.post("/items")
async def create_root_item(
    data: ItemCreate,
    service: NotesService = Depends(get_service),
    user: TokenData = Depends(get_current_user),
    session_id: Optional[str] = SessionHeader
):
    """在根目录创建条目"""
    node = await service.create_item(user.user_id, data, origin=session_id)
    return success(node.to_dict(), "创建成功")


@router.post("/items/{parent_id}")
async def create_child_item(
    parent_id: str,
    data: ItemCreate,
    service: NotesService = Depends(get_service),
    user: TokenData = Depends(get_current_user),
    session_id: Optional[str] = SessionHeader
):
    """在文件夹内创建条目"""
    node = await service.create_item(user.user_id, data, parent_id=parent_id, origin=session_id)
    return success(node.to_dict(), "创建成功")


@router.patch("/items/{item_id}")
async def update_item(
    item_id: str,
    data: ItemUpdate,
    service: NotesService = Depends(get_service),
    user: TokenData = Depends(get_current_user),
    session_id: Optional[str] = SessionHeader
):
    """更新条目"""
    node = await service.update_item(user.user_id, item_id, data.to_patch(), origin=session_id)
    return success(node.to_dict(), "更新成功")


@router.delete("/items/{item_id}")
async def delete_item(
    item_id: str,
    service: NotesService = Depends(get_service),
    user: TokenData = Depends(get_current_user),
    session_id: Optional[str] = SessionHeader
):
    """删除条目（不存在时同样返回成功）"""
    deleted = await service.delete_item(user.user_id, item_id, origin=session_id)
    return success({"itemId": item_id, "deleted": deleted}, "删除成功")


@router.post("/items/{item_id}/move")
async def move_item(
    item_id: str,
    data: ItemMove,
    service: NotesService = Depends(get_service),
    user: TokenData = Depends(get_current_user),
    session_id: Optional[str] = SessionHeader
):
    """移动条目"""
    node = await service.move_item(user.user_id, item_id, data.parent_id, data.index, origin=session_id)
    return success(node.to_dict(), "移动成功")


# ============ 提醒接口 ============

@router.get("/reminders")
async def list_reminders(
    active_only: bool = Query(True, alias="activeOnly"),
    service: NotesService = Depends(get_service),
    user: TokenData = Depends(get_current_user)
):
    """提醒列表，按下一次触发时间排序"""
    nodes = await service.list_reminders(user.user_id, active_only=active_only)
    return success(dump_tree(nodes))


@router.get("/reminders/due")
async def list_due_reminders(
    service: NotesService = Depends(get_service),
    user: TokenData = Depends(get_current_user)
):
    """已到期的提醒"""
    nodes = await service.list_due_reminders(user.user_id)
    return success(dump_tree(nodes))


@router.get("/reminders/status")
async def get_reminder_status(
    scheduler: ReminderScheduler = Depends(get_reminder_scheduler),
    user: TokenData = Depends(get_current_user)
):
    """提醒调度器状态"""
    return success(scheduler.get_status())


@router.put("/items/{item_id}/reminder")
async def set_reminder(
    item_id: str,
    data: ReminderSet,
    service: NotesService = Depends(get_service),
    user: TokenData = Depends(get_current_user),
    session_id: Optional[str] = SessionHeader
):
    """设置提醒"""
    node = await service.set_reminder(user.user_id, item_id, data, origin=session_id)
    return success(node.to_dict(), "提醒已设置")


@router.delete("/items/{item_id}/reminder")
async def clear_reminder(
    item_id: str,
    service: NotesService = Depends(get_service),
    user: TokenData = Depends(get_current_user),
    session_id: Optional[str] = SessionHeader
):
    """清除提醒"""
    node = await service.clear_reminder(user.user_id, item_id, origin=session_id)
    return success(node.to_dict(), "提醒已清除")


@router.post("/items/{item_id}/reminder/snooze")
async def snooze_reminder(
    item_id: str,
    data: ReminderSnooze,
    service: NotesService = Depends(get_service),
    user: TokenData = Depends(get_current_user),
    session_id: Optional[str] = SessionHeader
):
    """稍后提醒"""
    node = await service.snooze_reminder(user.user_id, item_id, data.minutes, origin=session_id)
    return success(node.to_dict(), f"将在 {data.minutes} 分钟后再次提醒")


@router.post("/items/{item_id}/reminder/trigger")
async def trigger_reminder(
    item_id: str,
    service: NotesService = Depends(get_service),
    user: TokenData = Depends(get_current_user),
    session_id: Optional[str] = SessionHeader
):
    """手动触发提醒"""
    node = await service.trigger_reminder(user.user_id, item_id, origin=session_id)
    return success(node.to_dict(), "提醒已触发")
