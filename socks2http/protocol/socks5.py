"""
SOCKS2HTTP - SOCKS5 服务端协议编解码模块

本模块实现了服务端所需的 SOCKS5 消息读写（RFC 1928 / RFC 1929）。

消息格式:

方法协商请求:
┌─────────┬──────────┬──────────────┐
│ VER     │ NMETHODS │ METHODS      │
│ 1 字节  │ 1 字节   │ 1-255 字节   │
└─────────┴──────────┴──────────────┘

用户名/密码子协商请求 (RFC 1929):
┌─────────┬──────┬──────────┬──────┬──────────┐
│ VER=1   │ ULEN │ UNAME    │ PLEN │ PASSWD   │
│ 1 字节  │ 1    │ ULEN     │ 1    │ PLEN     │
└─────────┴──────┴──────────┴──────┴──────────┘

请求 / 响应:
┌─────────┬───────────┬─────┬──────┬──────────┬──────────┐
│ VER     │ CMD / REP │ RSV │ ATYP │ ADDR     │ PORT     │
│ 1 字节  │ 1 字节    │ 0   │ 1    │ 可变长度 │ 2 字节   │
└─────────┴───────────┴─────┴──────┴──────────┴──────────┘

所有多字节字段使用大端序（网络字节序）。
"""

import asyncio
import ipaddress
import logging
import socket
import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import List, Optional, Tuple

from ..errors import IoError, ProtocolDecodeError

logger = logging.getLogger('socks2http-socks5')


# ============================================================================
# 协议常量
# ============================================================================

SOCKS_VERSION = 0x05
PASSWORD_AUTH_VERSION = 0x01

# 凭据在 str 与原始字节之间无损转换
CREDENTIAL_ENCODING = 'utf-8'
CREDENTIAL_ERRORS = 'surrogateescape'


class AuthMethod(IntEnum):
    """SOCKS5 认证方法"""
    NO_AUTH = 0x00
    GSSAPI = 0x01
    USERNAME_PASSWORD = 0x02
    NO_ACCEPTABLE = 0xFF


class PasswordStatus(IntEnum):
    """用户名/密码子协商状态"""
    SUCCEEDED = 0x00
    FAILED = 0x01


class Command(IntEnum):
    """
    SOCKS5 请求命令

    封闭集合，调度器对三个取值逐一处理。
    """
    CONNECT = 0x01
    BIND = 0x02
    UDP_ASSOCIATE = 0x03


class AddressType(IntEnum):
    """SOCKS5 地址类型"""
    IPV4 = 0x01
    DOMAIN = 0x03
    IPV6 = 0x04


class Reply(IntEnum):
    """SOCKS5 响应码"""
    SUCCEEDED = 0x00
    GENERAL_FAILURE = 0x01
    NOT_ALLOWED = 0x02
    NETWORK_UNREACHABLE = 0x03
    HOST_UNREACHABLE = 0x04
    CONNECTION_REFUSED = 0x05
    TTL_EXPIRED = 0x06
    COMMAND_NOT_SUPPORTED = 0x07
    ADDRESS_TYPE_NOT_SUPPORTED = 0x08


# ============================================================================
# 数据结构
# ============================================================================

@dataclass(frozen=True)
class Destination:
    """
    客户端请求的目标地址

    Attributes:
        host: 域名或 IP 地址字面量
        port: 目标端口（0-65535）
    """
    host: str
    port: int

    @property
    def is_ipv6(self) -> bool:
        try:
            return isinstance(ipaddress.ip_address(self.host), ipaddress.IPv6Address)
        except ValueError:
            return False

    def authority(self) -> str:
        """返回 host:port 形式，IPv6 地址加方括号"""
        if self.is_ipv6:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"

    def __str__(self) -> str:
        return self.authority()


UNSPECIFIED_ADDRESS = Destination('0.0.0.0', 0)


@dataclass(frozen=True)
class Request:
    """
    解码后的 SOCKS5 请求

    Attributes:
        command: 请求命令
        destination: 目标地址
    """
    command: Command
    destination: Destination


class RequestDecodeError(ProtocolDecodeError):
    """
    请求解码失败

    Attributes:
        reply: 关闭连接前应发送给客户端的响应码，None 表示直接关闭
    """

    def __init__(self, message: str, reply: Optional[Reply] = None):
        super().__init__(message)
        self.reply = reply


# ============================================================================
# 读写辅助函数
# ============================================================================

async def _read_exactly(reader: asyncio.StreamReader, n: int, what: str) -> bytes:
    try:
        return await reader.readexactly(n)
    except asyncio.IncompleteReadError as e:
        raise ProtocolDecodeError(
            f"读取{what}时数据被截断: 需要 {n} 字节，收到 {len(e.partial)} 字节"
        ) from e


async def _write(writer: asyncio.StreamWriter, data: bytes, what: str):
    try:
        writer.write(data)
        await writer.drain()
    except (ConnectionError, OSError) as e:
        raise IoError(f"写入{what}失败: {e}") from e


# ============================================================================
# 方法协商
# ============================================================================

async def read_method_request(reader: asyncio.StreamReader) -> List[int]:
    """
    读取客户端的方法协商请求

    Args:
        reader: 客户端流读取器

    Returns:
        List[int]: 客户端支持的认证方法列表

    Raises:
        ProtocolDecodeError: 版本错误、方法列表为空或数据被截断
    """
    version, nmethods = await _read_exactly(reader, 2, "方法协商头")
    if version != SOCKS_VERSION:
        raise ProtocolDecodeError(f"不支持的 SOCKS 版本: {version}")
    if nmethods == 0:
        raise ProtocolDecodeError("客户端未提供任何认证方法")
    methods = await _read_exactly(reader, nmethods, "认证方法列表")
    return list(methods)


async def write_method_reply(writer: asyncio.StreamWriter, method: int):
    """发送方法协商响应"""
    await _write(writer, bytes([SOCKS_VERSION, method]), "方法协商响应")


# ============================================================================
# 用户名/密码子协商
# ============================================================================

async def read_password_request(reader: asyncio.StreamReader) -> Tuple[str, str]:
    """
    读取用户名/密码子协商请求

    用户名和密码可以为空字符串；非 UTF-8 字节以 surrogateescape 方式保留，
    重新编码后与客户端发送的原始字节完全一致。

    Args:
        reader: 客户端流读取器

    Returns:
        Tuple[str, str]: (用户名, 密码)

    Raises:
        ProtocolDecodeError: 子协商版本错误或数据被截断
    """
    version, ulen = await _read_exactly(reader, 2, "认证请求头")
    if version != PASSWORD_AUTH_VERSION:
        raise ProtocolDecodeError(f"不支持的用户名/密码子协商版本: {version}")
    username = await _read_exactly(reader, ulen, "用户名")
    plen = (await _read_exactly(reader, 1, "密码长度"))[0]
    password = await _read_exactly(reader, plen, "密码")
    return (
        username.decode(CREDENTIAL_ENCODING, CREDENTIAL_ERRORS),
        password.decode(CREDENTIAL_ENCODING, CREDENTIAL_ERRORS),
    )


async def write_password_reply(writer: asyncio.StreamWriter, status: PasswordStatus):
    """发送用户名/密码子协商响应"""
    await _write(writer, bytes([PASSWORD_AUTH_VERSION, status]), "认证响应")


# ============================================================================
# 请求 / 响应
# ============================================================================

async def read_request(reader: asyncio.StreamReader) -> Request:
    """
    读取 SOCKS5 请求

    Args:
        reader: 客户端流读取器

    Returns:
        Request: 解码后的请求

    Raises:
        RequestDecodeError: 请求格式错误，reply 属性指明应回复的响应码
    """
    try:
        version, cmd, _, atyp = await _read_exactly(reader, 4, "请求头")
    except ProtocolDecodeError as e:
        raise RequestDecodeError(str(e)) from e

    if version != SOCKS_VERSION:
        raise RequestDecodeError(f"不支持的 SOCKS 版本: {version}")

    try:
        command = Command(cmd)
    except ValueError:
        raise RequestDecodeError(f"未知命令: {cmd:#04x}", Reply.COMMAND_NOT_SUPPORTED)

    try:
        if atyp == AddressType.IPV4:
            host = socket.inet_ntoa(await _read_exactly(reader, 4, "IPv4 地址"))
        elif atyp == AddressType.DOMAIN:
            length = (await _read_exactly(reader, 1, "域名长度"))[0]
            raw = await _read_exactly(reader, length, "域名")
            try:
                host = raw.decode('utf-8')
            except UnicodeDecodeError as e:
                raise RequestDecodeError(f"域名不是合法的 UTF-8: {raw!r}") from e
        elif atyp == AddressType.IPV6:
            host = socket.inet_ntop(socket.AF_INET6, await _read_exactly(reader, 16, "IPv6 地址"))
        else:
            raise RequestDecodeError(f"未知地址类型: {atyp:#04x}", Reply.ADDRESS_TYPE_NOT_SUPPORTED)

        port = struct.unpack('>H', await _read_exactly(reader, 2, "端口"))[0]
    except RequestDecodeError:
        raise
    except ProtocolDecodeError as e:
        raise RequestDecodeError(str(e)) from e

    return Request(command, Destination(host, port))


def encode_address(address: Destination) -> bytes:
    """
    编码地址为 ATYP + ADDR + PORT

    Args:
        address: 要编码的地址

    Returns:
        bytes: 编码后的地址字段
    """
    try:
        ip = ipaddress.ip_address(address.host)
    except ValueError:
        host_bytes = address.host.encode('utf-8')
        if len(host_bytes) > 255:
            raise ValueError(f"域名过长: {len(host_bytes)} 字节")
        return (struct.pack('>BB', AddressType.DOMAIN, len(host_bytes))
                + host_bytes + struct.pack('>H', address.port))

    if isinstance(ip, ipaddress.IPv4Address):
        return struct.pack('>B', AddressType.IPV4) + ip.packed + struct.pack('>H', address.port)
    return struct.pack('>B', AddressType.IPV6) + ip.packed + struct.pack('>H', address.port)


def encode_reply(reply: Reply, address: Destination = UNSPECIFIED_ADDRESS) -> bytes:
    """编码 SOCKS5 响应"""
    return bytes([SOCKS_VERSION, reply, 0x00]) + encode_address(address)


async def write_reply(writer: asyncio.StreamWriter, reply: Reply,
                      address: Destination = UNSPECIFIED_ADDRESS):
    """
    发送 SOCKS5 响应

    Args:
        writer: 客户端流写入器
        reply: 响应码
        address: 绑定地址，默认为未指定地址 0.0.0.0:0
    """
    logger.debug(f"发送 SOCKS5 响应: {reply.name}")
    await _write(writer, encode_reply(reply, address), "SOCKS5 响应")
