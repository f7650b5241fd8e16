"""
SOCKS2HTTP - 连接处理模块

每个被接受的 SOCKS5 连接由一个 ClientConnection 独立处理，
连接之间不共享任何可变状态。

处理流程:
1. 方法协商（只提供用户名/密码认证）
2. 凭据捕获（总是回复成功）
3. 读取一个 SOCKS5 请求
4. 按命令分发:
   - CONNECT: 回复 Succeeded，建立上游隧道，双向转发数据
   - BIND / UDP ASSOCIATE: 回复 CommandNotSupported 后关闭

注意: CONNECT 的 Succeeded 响应在上游隧道建立之前发送，
上游失败时客户端只会看到连接被关闭。
"""

import asyncio
import logging
from enum import Enum
from typing import Optional

from .auth import Credential, CredentialForwarder
from .errors import AuthenticationError, IoError, ProtocolDecodeError, ProxyError, UpstreamError
from .logger import add_context, clear_context
from .protocol import (
    AuthMethod, Command, Destination, Reply, Request, RequestDecodeError,
    read_method_request, read_request, write_method_reply, write_reply,
)
from .relay import DEFAULT_BUFFER_SIZE, RelayResult, close_writer, relay
from .timing import TimingRecord
from .upstream import UpstreamProxy

logger = logging.getLogger('socks2http-connection')


class ConnectionState(Enum):
    """连接状态，只能按顺序前进，失败时直接进入 CLOSED"""
    ACCEPTED = 'accepted'
    AUTHENTICATING = 'authenticating'
    AUTHENTICATED = 'authenticated'
    AWAITING_REQUEST = 'awaiting_request'
    DISPATCHING = 'dispatching'
    RELAYING = 'relaying'
    REJECTED = 'rejected'
    CLOSED = 'closed'


class ClientConnection:
    """
    单个 SOCKS5 客户端连接

    Attributes:
        reader: 客户端流读取器
        writer: 客户端流写入器
        peer: 客户端地址 host:port
        state: 当前连接状态
        credential: 捕获的凭据（认证完成后可用）
        request: 客户端请求（读取后可用）
        timing: CONNECT 的计时记录
        error: 导致连接终止的错误
    """

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter,
                 upstream: UpstreamProxy, forwarder: Optional[CredentialForwarder] = None,
                 handshake_timeout: Optional[float] = None,
                 buffer_size: int = DEFAULT_BUFFER_SIZE):
        self.reader = reader
        self.writer = writer
        self.upstream = upstream
        self.forwarder = forwarder or CredentialForwarder()
        self.handshake_timeout = handshake_timeout
        self.buffer_size = buffer_size

        peername = writer.get_extra_info('peername')
        self.peer = f"{peername[0]}:{peername[1]}" if peername else '-'

        self.state = ConnectionState.ACCEPTED
        self.credential: Optional[Credential] = None
        self.request: Optional[Request] = None
        self.timing: Optional[TimingRecord] = None
        self.relay_result: Optional[RelayResult] = None
        self.error: Optional[BaseException] = None

    @property
    def destination(self) -> Optional[Destination]:
        return self.request.destination if self.request else None

    def _transition(self, state: ConnectionState):
        logger.debug(f"状态 {self.state.value} -> {state.value}")
        self.state = state

    async def run(self):
        """
        处理连接直到关闭

        所有单连接错误在此捕获并记录，不会传播到监听器。
        日志上下文（peer、dest）只在连接处理期间有效，结束时清除。
        """
        add_context(peer=self.peer)
        try:
            await self._serve()
        except ProxyError as e:
            self.error = e
            self._log_failure(e)
        except asyncio.CancelledError:
            logger.debug("连接任务被取消")
            raise
        except Exception as e:
            self.error = e
            logger.exception(f"处理连接时发生未预期的错误: {e}")
        finally:
            await close_writer(self.writer)
            self._transition(ConnectionState.CLOSED)
            clear_context()

    def _log_failure(self, error: ProxyError):
        if isinstance(error, UpstreamError):
            logger.error(f"Connection to {self.destination} via {self.upstream.address} failed: {error}")
        elif self.destination is not None:
            logger.error(f"Connection to {self.destination} failed: {error}")
        else:
            logger.warning(f"SOCKS5 握手失败: {error}")

    async def _serve(self):
        try:
            self.credential, self.request = await asyncio.wait_for(
                self._handshake(), timeout=self.handshake_timeout)
        except asyncio.TimeoutError as e:
            if self.state in (ConnectionState.AWAITING_REQUEST, ConnectionState.AUTHENTICATED):
                raise ProtocolDecodeError(f"等待 SOCKS5 请求超时 ({self.handshake_timeout}s)") from e
            raise AuthenticationError(f"SOCKS5 认证超时 ({self.handshake_timeout}s)") from e

        add_context(dest=self.request.destination)
        await self._dispatch(self.request, self.credential)

    async def _handshake(self):
        """方法协商、凭据捕获和请求读取"""
        credential = await self.authenticate()
        request = await self.wait_request()
        return credential, request

    async def authenticate(self) -> Credential:
        """
        执行方法协商并捕获凭据

        Returns:
            Credential: 客户端提交的凭据

        Raises:
            AuthenticationError: 客户端不支持用户名/密码认证，或认证数据无法解码
        """
        self._transition(ConnectionState.AUTHENTICATING)
        try:
            methods = await read_method_request(self.reader)
            if self.forwarder.auth_method not in methods:
                await write_method_reply(self.writer, AuthMethod.NO_ACCEPTABLE)
                raise AuthenticationError(
                    f"客户端不支持用户名/密码认证 (提供的方法: {methods})")
            await write_method_reply(self.writer, self.forwarder.auth_method)

            credential = await self.forwarder.execute(self.reader, self.writer)
        except (ProtocolDecodeError, IoError) as e:
            raise AuthenticationError(f"认证失败: {e}") from e

        self._transition(ConnectionState.AUTHENTICATED)
        return credential

    async def wait_request(self) -> Request:
        """
        读取客户端请求

        解码失败时先发送对应的错误响应（如有）再抛出异常。

        Returns:
            Request: 客户端请求

        Raises:
            ProtocolDecodeError: 请求格式错误
        """
        self._transition(ConnectionState.AWAITING_REQUEST)
        try:
            return await read_request(self.reader)
        except RequestDecodeError as e:
            if e.reply is not None:
                await write_reply(self.writer, e.reply)
            raise

    async def _dispatch(self, request: Request, credential: Credential):
        self._transition(ConnectionState.DISPATCHING)

        if request.command == Command.CONNECT:
            await self._connect(request.destination, credential)
        elif request.command == Command.BIND:
            await self._reject(request)
        elif request.command == Command.UDP_ASSOCIATE:
            await self._reject(request)
        else:
            raise ProtocolDecodeError(f"未处理的命令: {request.command!r}")

    async def _reject(self, request: Request):
        logger.info(f"拒绝不支持的命令 {request.command.name} {request.destination}")
        await write_reply(self.writer, Reply.COMMAND_NOT_SUPPORTED)
        self._transition(ConnectionState.REJECTED)

    async def _connect(self, destination: Destination, credential: Credential):
        # 本地一跳成功即回复 Succeeded，上游结果不再通过 SOCKS5 反馈
        await write_reply(self.writer, Reply.SUCCEEDED)

        logger.info(f"Connection to {destination} via {self.upstream.address}...")
        self.timing = TimingRecord.start()

        tunnel = await self.upstream.open_tunnel(destination, credential, self.timing)
        self._transition(ConnectionState.RELAYING)
        try:
            self.relay_result = await relay(
                self.reader, self.writer, tunnel.reader, tunnel.writer, self.buffer_size)
        finally:
            await tunnel.close()
            self.timing.mark_closed()

        # 连接被中止时 relay 会返回错误，这是正常的连接关闭，只在这里丢弃
        if self.relay_result.error is not None:
            logger.debug(f"转发终止: {self.relay_result.error}")

        logger.info(self.timing.summary(str(destination)))
        logger.debug(f"已转发: 上行 {self.relay_result.sent} 字节, 下行 {self.relay_result.received} 字节")
