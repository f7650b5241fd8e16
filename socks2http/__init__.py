"""
SOCKS2HTTP - SOCKS5 到 HTTP CONNECT 的凭据转发代理

本地提供 SOCKS5 监听，捕获客户端在 SOCKS5 认证阶段提交的用户名和密码，
再用这组凭据通过 Basic 认证向固定的上游 HTTP 代理发起 CONNECT，
最后在客户端和上游隧道之间双向转发数据。

使用示例：
    from socks2http import ProxyConfig, SOCKS5Server

    config = ProxyConfig(upstream_host='proxy.example.com', upstream_port=8080)
    server = SOCKS5Server(config)
    await server.serve_forever()
"""

__version__ = "0.1.0"

from .auth import Credential, CredentialForwarder
from .config import ProxyConfig, load_config, parse_address
from .connection import ClientConnection, ConnectionState
from .errors import (
    ProxyError,
    BindError,
    ProtocolDecodeError,
    IoError,
    AuthenticationError,
    UpstreamError,
    UpstreamConnectError,
    UpstreamAuthError,
    RelayIoError,
)
from .relay import RelayResult, relay
from .server import SOCKS5Server
from .timing import TimingRecord
from .upstream import Tunnel, UpstreamProxy

__all__ = [
    '__version__',
    'Credential',
    'CredentialForwarder',
    'ProxyConfig',
    'load_config',
    'parse_address',
    'ClientConnection',
    'ConnectionState',
    'ProxyError',
    'BindError',
    'ProtocolDecodeError',
    'IoError',
    'AuthenticationError',
    'UpstreamError',
    'UpstreamConnectError',
    'UpstreamAuthError',
    'RelayIoError',
    'RelayResult',
    'relay',
    'SOCKS5Server',
    'TimingRecord',
    'Tunnel',
    'UpstreamProxy',
]
