"""
SOCKS2HTTP - SOCKS5 服务器模块

监听本地端口，接受 SOCKS5 客户端连接，每个连接由独立的任务处理。

工作流程:
1. 绑定监听地址（失败时抛出 BindError，进程不应继续运行）
2. 接受 SOCKS5 客户端连接
3. 为每个连接启动独立的 ClientConnection 任务
4. 单次 accept 失败只记录日志，不会停止监听
"""

import asyncio
import logging
from typing import Optional, Tuple

from .auth import CredentialForwarder
from .config import ProxyConfig, format_address
from .connection import ClientConnection
from .errors import BindError
from .upstream import UpstreamProxy

logger = logging.getLogger('socks2http-server')


class SOCKS5Server:
    """
    SOCKS5 代理服务器

    Attributes:
        config: 代理配置
        upstream: 上游 HTTP 代理
        forwarder: 凭据转发器
    """

    def __init__(self, config: ProxyConfig, upstream: Optional[UpstreamProxy] = None,
                 forwarder: Optional[CredentialForwarder] = None):
        logger.info(f"初始化 SOCKS5 服务器: host={config.listen_host}, port={config.listen_port}")
        self.config = config
        self.upstream = upstream or UpstreamProxy(
            config.upstream_host,
            config.upstream_port,
            connect_timeout=config.connect_timeout,
            handshake_timeout=config.upstream_handshake_timeout,
        )
        self.forwarder = forwarder or CredentialForwarder()
        self._server: Optional[asyncio.AbstractServer] = None

    @property
    def address(self) -> Tuple[str, int]:
        """实际绑定的地址（监听端口为 0 时由系统分配）"""
        if not self._server or not self._server.sockets:
            return self.config.listen_host, self.config.listen_port
        sockname = self._server.sockets[0].getsockname()
        return sockname[0], sockname[1]

    async def handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """
        处理 SOCKS5 客户端连接

        Args:
            reader: 从 SOCKS 客户端读取数据的异步流读取器
            writer: 向 SOCKS 客户端写入数据的异步流写入器
        """
        connection = ClientConnection(
            reader, writer, self.upstream,
            forwarder=self.forwarder,
            handshake_timeout=self.config.handshake_timeout,
            buffer_size=self.config.buffer_size,
        )
        logger.debug(f"接受连接: {connection.peer}")
        await connection.run()

    async def start(self):
        """
        绑定监听地址

        Raises:
            BindError: 地址已被占用、权限不足等
        """
        if not self.config.is_loopback():
            logger.warning(f"监听地址 {self.config.listen_address} 不是本机地址，本地没有任何认证！")
        try:
            self._server = await asyncio.start_server(
                self.handle_client, self.config.listen_host, self.config.listen_port)
        except OSError as e:
            raise BindError(self.config.listen_host, self.config.listen_port, str(e)) from e

        host, port = self.address
        logger.info(f"SOCKS5 代理在 {format_address(host, port)}，上游 HTTP 代理 {self.upstream.address}")

    async def serve_forever(self):
        """
        启动并持续运行服务器

        创建异步 TCP 服务器，监听指定地址和端口。
        服务器将持续运行，接受客户端连接。
        """
        if self._server is None:
            await self.start()
        async with self._server:
            await self._server.serve_forever()

    async def close(self):
        """停止接受新连接"""
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            logger.info("SOCKS5 服务器已关闭")
