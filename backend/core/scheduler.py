"""
后台任务调度器
按固定间隔执行异步任务，如提醒检查
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict

logger = logging.getLogger(__name__)


class Scheduler:
    """
    简单任务调度器

    每个定期任务按固定节拍触发；若上一次执行尚未结束，本次触发直接丢弃（不排队）。
    """

    def __init__(self):
        self.tasks: list[asyncio.Task] = []
        self.running = False
        # 任务名称 -> 正在执行的那一次调用
        self._inflight: Dict[str, asyncio.Task] = {}
        self.skipped: Dict[str, int] = {}

    async def schedule_periodic(
        self,
        func: Callable[[], Awaitable],
        interval_seconds: float,
        name: str = "periodic_task"
    ):
        """
        调度定期任务

        Args:
            func: 要执行的异步函数
            interval_seconds: 执行间隔（秒）
            name: 任务名称
        """
        async def periodic_task():
            loop = asyncio.get_running_loop()
            next_run = loop.time()
            while self.running:
                current = self._inflight.get(name)
                if current is not None and not current.done():
                    self.skipped[name] = self.skipped.get(name, 0) + 1
                    logger.debug(f"定期任务 {name} 上一次执行尚未结束，跳过本次")
                else:
                    self._inflight[name] = asyncio.create_task(self._run_once(func, name))

                next_run += interval_seconds
                now = loop.time()
                if next_run <= now:
                    # 落后一个以上周期时不补跑
                    next_run = now + interval_seconds
                await asyncio.sleep(next_run - now)

        task = asyncio.create_task(periodic_task())
        self.tasks.append(task)
        logger.debug(f"已调度定期任务: {name}, 间隔: {interval_seconds}秒")

    async def _run_once(self, func: Callable[[], Awaitable], name: str):
        try:
            logger.debug(f"执行定期任务: {name}")
            await func()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"定期任务执行失败 {name}: {e}", exc_info=True)

    def is_busy(self, name: str) -> bool:
        """指定任务当前是否正在执行"""
        current = self._inflight.get(name)
        return current is not None and not current.done()

    def start(self):
        """启动调度器"""
        self.running = True
        logger.debug("任务调度器已启动")

    async def stop(self, timeout: float = 10.0):
        """
        停止调度器，等待运行中的任务完成

        Args:
            timeout: 等待超时时间（秒），超时后强制取消
        """
        self.running = False

        # 节拍循环只在 sleep 中等待，直接取消
        for task in self.tasks:
            task.cancel()
        if self.tasks:
            await asyncio.gather(*self.tasks, return_exceptions=True)

        pending = [task for task in self._inflight.values() if not task.done()]
        if pending:
            _, still_running = await asyncio.wait(pending, timeout=timeout)
            if still_running:
                logger.warning(f"调度器停止超时（{timeout}s），强制取消剩余任务")
                for task in still_running:
                    task.cancel()
                await asyncio.gather(*still_running, return_exceptions=True)

        self.tasks.clear()
        self._inflight.clear()
        logger.debug("任务调度器已停止")
