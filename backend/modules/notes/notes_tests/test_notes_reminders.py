# -*- coding: utf-8 -*-
"""
提醒调度测试
"""

import asyncio
from datetime import timedelta

import pytest

from core.scheduler import Scheduler
from modules.notes.notes_models import NotesTree
from modules.notes.notes_reminders import JOB_NAME, ReminderScheduler
from modules.notes.notes_schemas import ItemCreate, RepeatOptions, ReminderSet
from modules.notes.notes_tests.notes_conftest import RecordingPush


async def add_task(service, user_id, label, timestamp, repeat=None):
    node = await service.create_item(user_id, ItemCreate(type="task", label=label))
    await service.set_reminder(user_id, node.id, ReminderSet(timestamp=timestamp, repeat_options=repeat))
    return node


class TestReminderTick:
    """测试单轮检查"""

    @pytest.mark.asyncio
    async def test_no_users(self, reminder_scheduler, push):
        result = await reminder_scheduler.tick()
        assert result.users_scanned == 0
        assert push.deliveries == []
        assert reminder_scheduler.check_count == 1

    @pytest.mark.asyncio
    async def test_one_shot_fires_once(self, reminder_scheduler, notes_service, push, clock):
        task = await add_task(notes_service, 1, "Pay rent", clock.now - timedelta(seconds=5))

        result = await reminder_scheduler.tick()
        assert result.reminders_fired == 1
        assert result.users_persisted == 1

        payload = push.deliveries[0]["payload"]
        assert push.deliveries[0]["user_id"] == 1
        assert payload["title"] == "待办提醒"
        assert payload["body"] == "Pay rent"
        assert payload["itemId"] == task.id

        reminder = (await notes_service.get_item(1, task.id)).reminder
        assert reminder.enabled is False
        assert reminder.timestamp == clock.now - timedelta(seconds=5)
        assert reminder.last_triggered == clock.now
        assert reminder.trigger_count == 1

        clock.advance(minutes=1)
        second = await reminder_scheduler.tick()
        assert second.users_scanned == 0
        assert len(push.deliveries) == 1

    @pytest.mark.asyncio
    async def test_daily_reschedules_and_clears_snooze(self, reminder_scheduler, notes_service, push, clock):
        start = clock.now - timedelta(minutes=30)
        task = await add_task(notes_service, 1, "Water plants", start, RepeatOptions(unit="days"))
        await notes_service.snooze_reminder(1, task.id, 10)

        assert (await reminder_scheduler.tick()).reminders_fired == 0

        clock.advance(minutes=10)
        assert (await reminder_scheduler.tick()).reminders_fired == 1
        reminder = (await notes_service.get_item(1, task.id)).reminder
        assert reminder.enabled is True
        assert reminder.timestamp == start + timedelta(days=1)
        assert reminder.snoozed_until is None

    @pytest.mark.asyncio
    async def test_future_reminder_not_fired(self, reminder_scheduler, notes_service, push, clock):
        await add_task(notes_service, 1, "Tomorrow", clock.now + timedelta(days=1))
        result = await reminder_scheduler.tick()
        assert result.users_scanned == 1
        assert result.reminders_fired == 0
        assert result.users_persisted == 0
        assert push.deliveries == []

    @pytest.mark.asyncio
    async def test_push_error_still_reschedules(self, tree_store, notes_service, clock):
        push = RecordingPush(raise_error=True)
        scheduler = ReminderScheduler(tree_store, push, clock=clock)
        task = await add_task(notes_service, 1, "Gym", clock.now, RepeatOptions(unit="hours", interval=2))

        result = await scheduler.tick()
        assert result.reminders_fired == 1
        assert result.failed_users == []
        assert (await notes_service.get_item(1, task.id)).reminder.timestamp == clock.now + timedelta(hours=2)

    @pytest.mark.asyncio
    async def test_partial_endpoint_failure(self, tree_store, notes_service, clock):
        push = RecordingPush(endpoints=2, failing={"endpoint-1"})
        scheduler = ReminderScheduler(tree_store, push, clock=clock)
        task = await add_task(notes_service, 1, "Meds", clock.now)

        await scheduler.tick()
        assert (await notes_service.get_item(1, task.id)).reminder.enabled is False

    @pytest.mark.asyncio
    async def test_several_due_in_one_tree_persist_once(self, reminder_scheduler, notes_service, tree_store, clock):
        a = await add_task(notes_service, 1, "A", clock.now)
        b = await add_task(notes_service, 1, "B", clock.now - timedelta(hours=1))
        async with tree_store._session_factory() as session:
            version_before = (await session.get(NotesTree, 1)).version

        result = await reminder_scheduler.tick()
        assert result.reminders_fired == 2
        async with tree_store._session_factory() as session:
            assert (await session.get(NotesTree, 1)).version == version_before + 1
        for node in (a, b):
            assert (await notes_service.get_item(1, node.id)).reminder.trigger_count == 1

    @pytest.mark.asyncio
    async def test_storage_failure_is_isolated(self, reminder_scheduler, notes_service, session_factory, push, clock):
        async with session_factory() as session:
            session.add(NotesTree(user_id=1, tree=[{"label": "broken"}], has_reminders=True, version=1))
            await session.commit()
        await add_task(notes_service, 2, "Healthy", clock.now)

        result = await reminder_scheduler.tick()
        assert result.failed_users == [1]
        assert result.users_scanned == 2
        assert result.reminders_fired == 1
        assert [d["user_id"] for d in push.deliveries] == [2]

    @pytest.mark.asyncio
    async def test_overlapping_tick_is_dropped(self, reminder_scheduler):
        reminder_scheduler.is_processing = True
        assert await reminder_scheduler.tick() is None
        assert reminder_scheduler.check_count == 0

    @pytest.mark.asyncio
    async def test_stop_request_ends_tick_between_users(self, tree_store, notes_service, clock):
        await add_task(notes_service, 1, "First", clock.now)
        await add_task(notes_service, 2, "Second", clock.now)

        class StoppingPush(RecordingPush):
            async def deliver(self, user_id, payload):
                scheduler.request_stop()
                return await super().deliver(user_id, payload)

        push = StoppingPush()
        scheduler = ReminderScheduler(tree_store, push, clock=clock)
        result = await scheduler.tick()

        assert result.stopped_early is True
        assert result.users_scanned == 1
        assert [d["user_id"] for d in push.deliveries] == [1]
        assert (await tree_store.list_reminder_users()) == [2]


class TestReminderLifecycle:
    """测试调度器启动与停止"""

    @pytest.mark.asyncio
    async def test_runs_on_scheduler_and_stops(self, tree_store, push, clock):
        reminders = ReminderScheduler(tree_store, push, clock=clock, interval=0.01)
        scheduler = Scheduler()
        scheduler.start()
        await reminders.start(scheduler)
        assert reminders.is_running is True

        await asyncio.sleep(0.05)
        reminders.request_stop()
        await scheduler.stop(timeout=1)

        assert reminders.check_count >= 1
        assert reminders.is_running is False
        assert not scheduler.is_busy(JOB_NAME)

    @pytest.mark.asyncio
    async def test_status(self, reminder_scheduler):
        status = reminder_scheduler.get_status()
        assert status["is_running"] is False
        assert status["last_check_time"] is None
        assert status["interval"] == 60
