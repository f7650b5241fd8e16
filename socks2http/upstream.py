"""
SOCKS2HTTP - 上游隧道模块

负责建立到固定上游 HTTP 代理的隧道:
1. 建立 TCP 连接
2. 发送带 Basic 认证的 HTTP CONNECT 请求
3. 校验 2xx 响应

成功后连接变成透明的字节管道，HTTP 语义到此结束。
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from .auth import Credential
from .errors import ProtocolDecodeError, UpstreamAuthError, UpstreamConnectError
from .protocol import Destination, build_connect_request, read_response
from .relay import close_writer
from .timing import TimingRecord

logger = logging.getLogger('socks2http-upstream')


@dataclass
class Tunnel:
    """
    已建立的上游隧道

    Attributes:
        reader: 上游连接的流读取器（可能已缓存部分隧道数据）
        writer: 上游连接的流写入器
        destination: 隧道目标地址
    """
    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter
    destination: Destination

    async def close(self):
        """关闭隧道"""
        await close_writer(self.writer)


class UpstreamProxy:
    """
    上游 HTTP 代理

    Attributes:
        host: 上游代理地址
        port: 上游代理端口
        connect_timeout: TCP 连接超时（秒），None 表示不限制
        handshake_timeout: CONNECT 握手超时（秒），None 表示不限制
    """

    def __init__(self, host: str, port: int,
                 connect_timeout: Optional[float] = None,
                 handshake_timeout: Optional[float] = None):
        self.host = host
        self.port = port
        self.connect_timeout = connect_timeout
        self.handshake_timeout = handshake_timeout

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    async def open_tunnel(self, destination: Destination, credential: Credential,
                          timing: Optional[TimingRecord] = None) -> Tunnel:
        """
        打开到目标地址的隧道

        Args:
            destination: 客户端请求的目标地址
            credential: SOCKS5 认证阶段捕获的凭据
            timing: 计时记录，依次标记 TCP 连接和认证完成时间

        Returns:
            Tunnel: 可直接转发字节的隧道

        Raises:
            UpstreamConnectError: TCP 连接失败或超时
            UpstreamAuthError: CONNECT 握手被拒绝、响应格式错误或超时
        """
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.connect_timeout
            )
        except asyncio.TimeoutError as e:
            raise UpstreamConnectError(
                f"连接上游代理 {self.address} 超时", self.address) from e
        except OSError as e:
            raise UpstreamConnectError(
                f"连接上游代理 {self.address} 失败: {e}", self.address) from e

        if timing:
            timing.mark_connected()
        logger.debug(f"已连接上游代理 {self.address}")

        tunnel = Tunnel(reader, writer, destination)
        try:
            await asyncio.wait_for(
                self._handshake(tunnel, credential),
                timeout=self.handshake_timeout
            )
        except asyncio.TimeoutError as e:
            await tunnel.close()
            raise UpstreamAuthError(
                f"上游代理 {self.address} 的 CONNECT 握手超时", self.address) from e
        except BaseException:
            await tunnel.close()
            raise

        if timing:
            timing.mark_authenticated()
        return tunnel

    async def _handshake(self, tunnel: Tunnel, credential: Credential):
        """发送 CONNECT 请求并校验响应"""
        authority = tunnel.destination.authority()
        try:
            tunnel.writer.write(
                build_connect_request(authority, credential.username, credential.password))
            await tunnel.writer.drain()
            response = await read_response(tunnel.reader)
        except ProtocolDecodeError as e:
            raise UpstreamAuthError(
                f"上游代理 {self.address} 的 CONNECT 响应无效: {e}", self.address) from e
        except (ConnectionError, OSError) as e:
            raise UpstreamAuthError(
                f"与上游代理 {self.address} 的 CONNECT 握手失败: {e}", self.address) from e

        if not response.ok:
            raise UpstreamAuthError(
                f"上游代理 {self.address} 拒绝 CONNECT {authority}: "
                f"{response.status} {response.reason}".rstrip(),
                self.address, response.status)

        logger.debug(f"CONNECT {authority} 已通过上游认证: {response.status}")
