"""
SOCKS2HTTP - 数据转发模块

在 SOCKS 客户端和上游隧道之间双向转发数据。

一个方向读到 EOF 时，向对端发送 EOF（半关闭），另一个方向继续转发，
两个方向都结束后关闭两端连接。任意方向出错时立即停止两个方向。
传输不支持半关闭时，EOF 同样结束整个转发。

连接被重置属于正常的连接生命周期，转发函数不会抛出异常，
而是在 RelayResult.error 中返回终止原因。
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from .errors import RelayIoError

logger = logging.getLogger('socks2http-relay')

DEFAULT_BUFFER_SIZE = 65536


@dataclass
class RelayResult:
    """
    转发结果

    Attributes:
        sent: 从客户端转发到上游的字节数
        received: 从上游转发到客户端的字节数
        error: 导致转发终止的 I/O 错误，正常 EOF 时为 None
    """
    sent: int = 0
    received: int = 0
    error: Optional[RelayIoError] = None


class _Pipe:
    """单方向的数据管道"""

    def __init__(self, name: str, reader: asyncio.StreamReader,
                 writer: asyncio.StreamWriter, buffer_size: int):
        self.name = name
        self.reader = reader
        self.writer = writer
        self.buffer_size = buffer_size
        self.transferred = 0

    async def run(self) -> bool:
        """
        转发数据直到读到 EOF

        Returns:
            bool: EOF 已传递给对端时为 True，对端不支持半关闭时为 False
        """
        while True:
            data = await self.reader.read(self.buffer_size)
            if not data:
                break
            self.writer.write(data)
            await self.writer.drain()
            self.transferred += len(data)

        if not self.writer.can_write_eof():
            logger.debug(f"{self.name}: 收到 EOF，对端不支持半关闭")
            return False
        logger.debug(f"{self.name}: 收到 EOF，半关闭对端")
        self.writer.write_eof()
        return True


async def close_writer(writer: asyncio.StreamWriter):
    """关闭流写入器，忽略对端已断开时的错误"""
    if not writer.is_closing():
        writer.close()
    try:
        await writer.wait_closed()
    except (ConnectionError, OSError):
        pass


async def relay(client_reader: asyncio.StreamReader, client_writer: asyncio.StreamWriter,
                tunnel_reader: asyncio.StreamReader, tunnel_writer: asyncio.StreamWriter,
                buffer_size: int = DEFAULT_BUFFER_SIZE) -> RelayResult:
    """
    双向转发数据直到两个方向都结束或任意方向出错

    Args:
        client_reader: SOCKS 客户端读取器
        client_writer: SOCKS 客户端写入器
        tunnel_reader: 上游隧道读取器
        tunnel_writer: 上游隧道写入器
        buffer_size: 单次读取的最大字节数

    Returns:
        RelayResult: 转发的字节数和终止原因
    """
    upload = _Pipe('client->upstream', client_reader, tunnel_writer, buffer_size)
    download = _Pipe('upstream->client', tunnel_reader, client_writer, buffer_size)
    tasks = {
        asyncio.ensure_future(upload.run()),
        asyncio.ensure_future(download.run()),
    }

    result = RelayResult()
    pending = tasks
    try:
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            if any(task.exception() is not None or not task.result() for task in done):
                break
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)
        for exc in outcomes:
            if isinstance(exc, Exception):
                result.error = RelayIoError(f"{type(exc).__name__}: {exc}")
                result.error.__cause__ = exc
                break

        await close_writer(client_writer)
        await close_writer(tunnel_writer)

    result.sent = upload.transferred
    result.received = download.transferred
    return result
