"""
笔记模块测试夹具
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from modules.notes.notes_push import DeliveryResult
from modules.notes.notes_reminders import ReminderScheduler
from modules.notes.notes_services import NotesService

BASE_TIME = datetime(2024, 3, 14, 9, 30, tzinfo=timezone.utc)  # 周四


class FakeClock:
    """可手动推进的时钟"""

    def __init__(self, start: datetime = BASE_TIME):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingRelay:
    """记录转发事件的同步通道"""

    def __init__(self, fail: bool = False):
        self.events: List[Dict[str, Any]] = []
        self.fail = fail

    async def broadcast(self, user_id: int, event_name: str, body: Dict[str, Any], exclude_session: Optional[str] = None):
        if self.fail:
            raise ConnectionError("relay offline")
        self.events.append({
            "user_id": user_id,
            "event": event_name,
            "body": body,
            "exclude_session": exclude_session,
        })

    def names(self) -> List[str]:
        return [event["event"] for event in self.events]


class RecordingPush:
    """记录推送内容；endpoints 为每个用户模拟的终端，failing 中的终端投递失败"""

    def __init__(self, endpoints: int = 1, failing: Optional[set] = None, raise_error: bool = False):
        self.deliveries: List[Dict[str, Any]] = []
        self.endpoints = endpoints
        self.failing = failing or set()
        self.raise_error = raise_error

    async def deliver(self, user_id: int, payload: Dict[str, Any]) -> List[DeliveryResult]:
        self.deliveries.append({"user_id": user_id, "payload": payload})
        if self.raise_error:
            raise ConnectionError("push service unavailable")
        results = []
        for index in range(self.endpoints):
            endpoint = f"endpoint-{index}"
            if endpoint in self.failing:
                results.append(DeliveryResult(endpoint=endpoint, success=False, error="410 Gone", expired=True))
            else:
                results.append(DeliveryResult(endpoint=endpoint, success=True))
        return results


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def relay() -> RecordingRelay:
    return RecordingRelay()


@pytest.fixture
def push() -> RecordingPush:
    return RecordingPush()


@pytest.fixture
def notes_service(tree_store, relay, clock) -> NotesService:
    """笔记服务（内存数据库 + 记录型同步通道 + 假时钟）"""
    return NotesService(tree_store, relay=relay, clock=clock)


@pytest.fixture
def reminder_scheduler(tree_store, push, clock) -> ReminderScheduler:
    """提醒调度器（内存数据库 + 记录型推送 + 假时钟）"""
    return ReminderScheduler(tree_store, push, clock=clock, interval=60)
