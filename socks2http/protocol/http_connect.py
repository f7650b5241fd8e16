"""
SOCKS2HTTP - HTTP CONNECT 协议编解码模块

本模块负责构造带 Basic 认证的 HTTP CONNECT 请求，并解析上游代理的响应头。

请求格式:
    CONNECT example.com:443 HTTP/1.1
    Host: example.com:443
    Proxy-Authorization: Basic YWxpY2U6c2VjcmV0

响应头以空行结束，之后的字节属于隧道数据，不在本模块中消费。
"""

import asyncio
import base64
import re
from dataclasses import dataclass, field
from typing import Dict

from ..errors import ProtocolDecodeError
from .socks5 import CREDENTIAL_ENCODING, CREDENTIAL_ERRORS

# 上游响应头最大长度
MAX_RESPONSE_HEAD = 64 * 1024

HEAD_TERMINATOR = b'\r\n\r\n'

STATUS_LINE = re.compile(r'^HTTP/(\d)\.(\d) (\d{3})(?: (.*))?$')


@dataclass
class ConnectResponse:
    """
    上游代理对 CONNECT 请求的响应

    Attributes:
        status: HTTP 状态码
        reason: 状态描述
        headers: 响应头（键为小写）
    """
    status: int
    reason: str = ''
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def basic_auth_token(username: str, password: str) -> str:
    """
    构造 Basic 认证令牌

    Args:
        username: 用户名
        password: 密码

    Returns:
        str: base64(username:password)
    """
    raw = f"{username}:{password}".encode(CREDENTIAL_ENCODING, CREDENTIAL_ERRORS)
    return base64.b64encode(raw).decode('ascii')


def build_connect_request(authority: str, username: str, password: str) -> bytes:
    """
    构造 HTTP CONNECT 请求

    Args:
        authority: 目标地址，格式为 host:port（IPv6 已加方括号）
        username: 用户名
        password: 密码

    Returns:
        bytes: 完整的请求头
    """
    lines = [
        f"CONNECT {authority} HTTP/1.1",
        f"Host: {authority}",
        f"Proxy-Authorization: Basic {basic_auth_token(username, password)}",
        "",
        "",
    ]
    return "\r\n".join(lines).encode('utf-8')


def parse_response_head(head: bytes) -> ConnectResponse:
    """
    解析响应头

    Args:
        head: 以空行结尾的响应头字节

    Returns:
        ConnectResponse: 解析结果

    Raises:
        ProtocolDecodeError: 状态行或头部格式错误
    """
    text = head.decode('latin-1')
    lines = text.split('\r\n')
    match = STATUS_LINE.match(lines[0])
    if not match:
        raise ProtocolDecodeError(f"无效的 HTTP 状态行: {lines[0]!r}")

    headers = {}
    for line in lines[1:]:
        if not line:
            continue
        name, sep, value = line.partition(':')
        if not sep:
            raise ProtocolDecodeError(f"无效的 HTTP 响应头: {line!r}")
        headers[name.strip().lower()] = value.strip()

    return ConnectResponse(
        status=int(match.group(3)),
        reason=match.group(4) or '',
        headers=headers,
    )


async def read_response(reader: asyncio.StreamReader) -> ConnectResponse:
    """
    读取并解析上游代理的响应头

    响应头之后的数据留在 reader 的缓冲区中，作为隧道数据继续转发。

    Args:
        reader: 上游连接的流读取器

    Returns:
        ConnectResponse: 解析结果

    Raises:
        ProtocolDecodeError: 连接提前关闭、响应头过长或格式错误
    """
    try:
        head = await reader.readuntil(HEAD_TERMINATOR)
    except asyncio.IncompleteReadError as e:
        raise ProtocolDecodeError(
            f"上游在响应头结束前关闭连接 (已收到 {len(e.partial)} 字节)"
        ) from e
    except asyncio.LimitOverrunError as e:
        raise ProtocolDecodeError("上游响应头过长") from e

    if len(head) > MAX_RESPONSE_HEAD:
        raise ProtocolDecodeError(f"上游响应头过长: {len(head)} 字节")

    return parse_response_head(head[:-len(HEAD_TERMINATOR)])
