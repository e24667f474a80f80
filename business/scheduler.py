"""定时任务调度器 - 通用的任务调度框架

具体的任务逻辑通过回调注入，例如快照的后台刷新（refresh_snapshot_task）
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from typing import Callable, Optional
from loguru import logger
from config.settings import settings
from database.errors import LoadError
from database.store import EntityStore
import asyncio


class Scheduler:
    """定时任务调度器

    通用的任务调度框架，不包含具体的业务逻辑
    业务逻辑通过回调函数注入，保持 core 层的独立性
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        """初始化调度器

        Args:
            loop: 事件循环（可选，默认使用当前事件循环）
        """
        if loop is None:
            try:
                loop = asyncio.get_event_loop()
                if loop.is_closed():
                    loop = asyncio.new_event_loop()
                    asyncio.set_event_loop(loop)
            except RuntimeError:
                loop = asyncio.new_event_loop()
                asyncio.set_event_loop(loop)
        self.scheduler = AsyncIOScheduler(event_loop=loop)

    def add_interval_task(
        self,
        task_func: Callable,
        seconds: Optional[int] = None,
        task_id: str = 'interval_task',
        task_name: str = '周期任务'
    ):
        """添加周期任务

        Args:
            task_func: 任务函数
            seconds: 执行间隔（秒），默认取 settings.refresh_interval_seconds
            task_id: 任务ID
            task_name: 任务名称
        """
        seconds = seconds or settings.refresh_interval_seconds
        self.scheduler.add_job(
            task_func,
            trigger=IntervalTrigger(seconds=seconds),
            id=task_id,
            name=task_name,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info(f"Added interval task '{task_name}' every {seconds}s")

    def get_job(self, job_id: str):
        return self.scheduler.get_job(job_id)

    def start(self):
        """启动调度器"""
        self.scheduler.start()
        logger.info("Scheduler started")

    def stop(self):
        """停止调度器"""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")

    def remove_job(self, job_id: str):
        """移除任务

        Args:
            job_id: 任务ID
        """
        if self.scheduler.get_job(job_id) is None:
            logger.warning(f"Job {job_id} not found")
            return
        self.scheduler.remove_job(job_id)
        logger.info(f"Job {job_id} removed")


def refresh_snapshot_task(store: EntityStore) -> Callable[[], bool]:
    """生成后台刷新任务：仅在已连接时刷新快照，失败只记录日志。"""

    def _refresh() -> bool:
        try:
            return store.refresh_if_connected()
        except LoadError as e:
            logger.warning(f"Background refresh failed, keeping last snapshot: {e}")
            return False

    return _refresh


def schedule_refresh(scheduler: Scheduler, store: EntityStore,
                     seconds: Optional[int] = None) -> None:
    """注册快照后台刷新任务。"""
    scheduler.add_interval_task(
        refresh_snapshot_task(store),
        seconds=seconds,
        task_id='snapshot_refresh',
        task_name='快照刷新',
    )
