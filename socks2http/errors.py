"""
SOCKS2HTTP - 错误类型模块

本模块定义了代理在各个阶段可能抛出的异常。

错误分类:
┌──────────────────────┬────────────────────────────────────────────┐
│ BindError            │ 启动失败，监听地址无法绑定（致命）         │
│ ProtocolDecodeError  │ 客户端发送的 SOCKS5 数据格式错误           │
│ IoError              │ 向客户端写回响应失败                       │
│ AuthenticationError  │ SOCKS5 方法协商 / 认证阶段失败             │
│ UpstreamConnectError │ 无法建立到上游 HTTP 代理的 TCP 连接        │
│ UpstreamAuthError    │ 上游 HTTP CONNECT 握手被拒绝或响应格式错误 │
│ RelayIoError         │ 转发阶段断开（正常的连接生命周期事件）     │
└──────────────────────┴────────────────────────────────────────────┘

除 BindError 外，所有错误都只影响单个连接，在连接任务的顶层被捕获并记录。
"""

from typing import Optional


class ProxyError(Exception):
    """所有代理错误的基类"""


class BindError(ProxyError):
    """
    监听地址绑定失败

    Attributes:
        host: 监听地址
        port: 监听端口
    """

    def __init__(self, host: str, port: int, reason: str):
        super().__init__(f"无法绑定 {host}:{port}: {reason}")
        self.host = host
        self.port = port


class ProtocolDecodeError(ProxyError):
    """客户端数据不是合法的 SOCKS5 消息（长度字段错误、数据被截断等）"""


class IoError(ProxyError):
    """写回客户端的响应未能完成"""


class AuthenticationError(ProxyError):
    """SOCKS5 认证阶段失败（解码失败，而不是凭据内容被拒绝）"""


class UpstreamError(ProxyError):
    """
    上游错误基类

    Attributes:
        upstream: 上游代理地址，格式为 host:port
    """

    def __init__(self, message: str, upstream: Optional[str] = None):
        super().__init__(message)
        self.upstream = upstream


class UpstreamConnectError(UpstreamError):
    """到上游 HTTP 代理的 TCP 连接失败或超时"""


class UpstreamAuthError(UpstreamError):
    """
    上游 HTTP CONNECT 握手失败

    Attributes:
        status: 上游返回的 HTTP 状态码，响应无法解析时为 None
    """

    def __init__(self, message: str, upstream: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message, upstream)
        self.status = status


class RelayIoError(ProxyError):
    """转发阶段的 I/O 错误，属于正常的连接终止"""
