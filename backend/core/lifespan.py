"""
应用生命周期管理
负责创建应用级服务实例（挂在 app.state 上）、启动与停止后台提醒调度
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.config import Settings, get_settings
from core.database import async_session, init_db, close_db
from core.scheduler import Scheduler
from core.ws_manager import ConnectionManager
from modules.notes.notes_push import WebSocketPushGateway
from modules.notes.notes_reminders import ReminderScheduler
from modules.notes.notes_services import NotesService
from modules.notes.notes_store import TreeStore
from utils.timezone import get_zone

logger = logging.getLogger(__name__)


def init_app_state(
    app: FastAPI,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    settings: Optional[Settings] = None,
):
    """
    创建应用级服务并挂载到 app.state

    所有长生命周期对象只在这里创建一次，通过引用传给需要的组件。
    """
    settings = settings or get_settings()
    zone = get_zone(settings.reminder_timezone)

    store = TreeStore(session_factory or async_session)
    ws_manager = ConnectionManager()
    notes_service = NotesService(store, relay=ws_manager, zone=zone)
    reminder_scheduler = ReminderScheduler(
        store,
        WebSocketPushGateway(ws_manager),
        zone=zone,
        interval=settings.reminder_check_interval,
    )

    app.state.settings = settings
    app.state.tree_store = store
    app.state.ws_manager = ws_manager
    app.state.notes_service = notes_service
    app.state.reminder_scheduler = reminder_scheduler
    app.state.scheduler = Scheduler()
    return app.state


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # -------------------- [启动阶段] --------------------
    settings = get_settings()
    logger.info(f"🚀 正在启动 {settings.app_name} v{settings.app_version}...")

    await init_db()
    logger.info("✅ 数据库初始化完成")

    state = init_app_state(app, settings=settings)

    if settings.reminder_enabled:
        state.scheduler.start()
        await state.reminder_scheduler.start(state.scheduler)
        logger.info("✅ 提醒调度任务已就绪")
    else:
        logger.info("提醒调度已在配置中关闭")

    logger.info(f"🎉 {settings.app_name} 启动完成!")

    yield

    # -------------------- [关闭阶段] --------------------
    logger.info("🛑 系统正在关闭...")
    state.reminder_scheduler.request_stop()
    await state.scheduler.stop(timeout=settings.reminder_shutdown_timeout)
    await close_db()
    logger.info("👋 系统已安全关闭")
