"""
SOCKS2HTTP - 连接计时模块

记录 CONNECT 连接的四个时间点:
1. 开始建立隧道
2. 到上游代理的 TCP 连接完成
3. HTTP CONNECT 认证完成
4. 数据转发结束

并计算三段耗时：TCP 连接、认证、数据传输，每一段都相对于上一个时间点。
"""

import time
from dataclasses import dataclass
from typing import Callable, Optional


@dataclass
class TimingRecord:
    """
    单个连接的计时记录

    所有时间戳来自单调时钟，记录只用于日志输出，不做持久化。

    Attributes:
        started: 开始建立隧道的时间
        connected: TCP 连接完成的时间
        authenticated: HTTP CONNECT 认证完成的时间
        closed: 数据转发结束的时间
    """
    started: float
    connected: Optional[float] = None
    authenticated: Optional[float] = None
    closed: Optional[float] = None
    clock: Callable[[], float] = time.monotonic

    @classmethod
    def start(cls, clock: Callable[[], float] = time.monotonic) -> 'TimingRecord':
        return cls(started=clock(), clock=clock)

    def mark_connected(self):
        self.connected = self.clock()

    def mark_authenticated(self):
        self.authenticated = self.clock()

    def mark_closed(self):
        self.closed = self.clock()

    @staticmethod
    def _delta(later: Optional[float], earlier: Optional[float]) -> float:
        if later is None or earlier is None:
            return 0.0
        return max(0.0, later - earlier)

    @property
    def connect_latency(self) -> float:
        """TCP 连接耗时（秒）"""
        return self._delta(self.connected, self.started)

    @property
    def auth_latency(self) -> float:
        """HTTP CONNECT 认证耗时（秒），从 TCP 连接完成算起"""
        return self._delta(self.authenticated, self.connected)

    @property
    def relay_duration(self) -> float:
        """数据转发耗时（秒），从认证完成算起"""
        return self._delta(self.closed, self.authenticated)

    @property
    def total(self) -> float:
        return self.connect_latency + self.auth_latency + self.relay_duration

    def summary(self, destination: str) -> str:
        """
        生成日志摘要

        Args:
            destination: 目标地址 host:port

        Returns:
            str: 人类可读的计时摘要（毫秒）
        """
        return (
            f"Connection to {destination} closed after {_ms(self.total)}ms "
            f"(HTTP: {_ms(self.connect_latency)}ms, "
            f"Auth: {_ms(self.auth_latency)}ms, "
            f"Data: {_ms(self.relay_duration)}ms)"
        )


def _ms(seconds: float) -> int:
    return int(round(seconds * 1000))
