"""
SOCKS2HTTP - 资源监控模块

定期记录进程级资源使用情况：协程数量、文件描述符、内存和 CPU。
只观察进程整体状态，不维护任何连接登记表。
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Optional

import psutil

logger = logging.getLogger('socks2http-monitor')


@dataclass
class ResourceSnapshot:
    """
    进程资源快照

    Attributes:
        tasks: 当前事件循环中的任务数量
        num_fds: 打开的文件描述符数量（不支持的平台为 0）
        memory_mb: 常驻内存（MB）
        cpu_percent: CPU 使用率
    """
    tasks: int
    num_fds: int
    memory_mb: float
    cpu_percent: float

    def __str__(self) -> str:
        return (f"任务数={self.tasks}, 文件描述符={self.num_fds}, "
                f"内存={self.memory_mb:.1f}MB, CPU={self.cpu_percent:.1f}%")


class ResourceReporter:
    """
    资源报告器

    Attributes:
        interval: 报告间隔（秒）
    """

    def __init__(self, interval: float, process: Optional[psutil.Process] = None):
        self.interval = interval
        self.process = process or psutil.Process(os.getpid())
        self._task: Optional[asyncio.Task] = None

    def snapshot(self) -> ResourceSnapshot:
        """采集一次资源快照"""
        with self.process.oneshot():
            num_fds = self.process.num_fds() if hasattr(self.process, 'num_fds') else 0
            memory_mb = self.process.memory_info().rss / 1024 / 1024
            cpu_percent = self.process.cpu_percent(interval=None)
        return ResourceSnapshot(
            tasks=len(asyncio.all_tasks()),
            num_fds=num_fds,
            memory_mb=memory_mb,
            cpu_percent=cpu_percent,
        )

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval)
            try:
                logger.info(f"资源统计: {self.snapshot()}")
            except psutil.Error as e:
                logger.warning(f"采集资源统计失败: {e}")

    def start(self):
        """在后台启动报告任务"""
        if self.interval > 0 and self._task is None:
            self._task = asyncio.create_task(self._run())

    async def stop(self):
        """停止报告任务"""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
