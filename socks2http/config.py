"""
SOCKS2HTTP - 配置管理模块

功能概述:
1. 加载 YAML 格式的配置文件
2. 代理配置数据类（监听地址、上游代理地址、超时等）
3. host:port 地址解析

配置文件格式:
    proxy:
      listen: 127.0.0.1:42000
      upstream: http.yourproxyprovider.com:40000
      handshake_timeout: 30
    logging:
      level: INFO
"""

import ipaddress
import logging
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional, Tuple

import yaml

logger = logging.getLogger('socks2http-config')

# 保持 SOCKS5 监听地址在本机 - 本地没有认证！
DEFAULT_LISTEN_HOST = "127.0.0.1"
DEFAULT_LISTEN_PORT = 42000
DEFAULT_UPSTREAM_HOST = "http.yourproxyprovider.com"
DEFAULT_UPSTREAM_PORT = 40000


# ============================================================================
# 配置数据类
# ============================================================================

@dataclass
class ProxyConfig:
    """
    代理配置数据类

    Attributes:
        listen_host: SOCKS5 监听地址（默认: "127.0.0.1"）
        listen_port: SOCKS5 监听端口（默认: 42000）
        upstream_host: 上游 HTTP 代理地址
        upstream_port: 上游 HTTP 代理端口（默认: 40000）
        handshake_timeout: SOCKS5 握手超时（秒，0 或 None 表示不限制）
        connect_timeout: 上游 TCP 连接超时（秒）
        upstream_handshake_timeout: 上游 CONNECT 握手超时（秒）
        buffer_size: 转发缓冲区大小（字节）
        stats_interval: 资源统计日志间隔（秒，0 表示关闭）
    """
    listen_host: str = DEFAULT_LISTEN_HOST
    listen_port: int = DEFAULT_LISTEN_PORT
    upstream_host: str = DEFAULT_UPSTREAM_HOST
    upstream_port: int = DEFAULT_UPSTREAM_PORT
    handshake_timeout: Optional[float] = 30.0
    connect_timeout: Optional[float] = 30.0
    upstream_handshake_timeout: Optional[float] = 30.0
    buffer_size: int = 65536
    stats_interval: float = 0

    def __post_init__(self):
        self.listen_port = _check_port(self.listen_port)
        self.upstream_port = _check_port(self.upstream_port)
        for name in ('handshake_timeout', 'connect_timeout', 'upstream_handshake_timeout'):
            value = getattr(self, name)
            setattr(self, name, float(value) if value else None)
        if int(self.buffer_size) <= 0:
            raise ValueError(f"buffer_size 必须为正数: {self.buffer_size}")
        self.buffer_size = int(self.buffer_size)
        self.stats_interval = float(self.stats_interval or 0)

    @property
    def listen_address(self) -> str:
        return format_address(self.listen_host, self.listen_port)

    @property
    def upstream_address(self) -> str:
        return format_address(self.upstream_host, self.upstream_port)

    def is_loopback(self) -> bool:
        """监听地址是否为本机回环地址"""
        if self.listen_host == 'localhost':
            return True
        try:
            return ipaddress.ip_address(self.listen_host).is_loopback
        except ValueError:
            return False

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'ProxyConfig':
        """
        从配置文件的 proxy 段构造配置

        支持 listen / upstream 的 "host:port" 简写，未知字段被忽略。

        Args:
            data: proxy 段字典（可为 None）

        Returns:
            ProxyConfig: 代理配置对象

        Raises:
            ValueError: 地址或端口格式错误
        """
        data = dict(data or {})
        known = {f.name for f in fields(cls)}

        if 'listen' in data:
            data['listen_host'], data['listen_port'] = parse_address(
                str(data.pop('listen')), DEFAULT_LISTEN_PORT)
        if 'upstream' in data:
            data['upstream_host'], data['upstream_port'] = parse_address(
                str(data.pop('upstream')), DEFAULT_UPSTREAM_PORT)

        unknown = set(data) - known
        if unknown:
            logger.warning(f"忽略未知配置项: {', '.join(sorted(unknown))}")

        return cls(**{k: v for k, v in data.items() if k in known})


# ============================================================================
# 地址解析
# ============================================================================

def _check_port(port: Any) -> int:
    try:
        value = int(port)
    except (TypeError, ValueError):
        raise ValueError(f"无效的端口: {port!r}")
    if not 0 <= value <= 65535:
        raise ValueError(f"端口超出范围: {value}")
    return value


def parse_address(text: str, default_port: Optional[int] = None) -> Tuple[str, int]:
    """
    解析 host:port 格式的地址

    支持以下格式:
    - "example.com:8080"
    - "127.0.0.1:8080"
    - "[::1]:8080"
    - "example.com"（使用 default_port）

    Args:
        text: 地址字符串
        default_port: 未指定端口时使用的默认端口

    Returns:
        Tuple[str, int]: (主机, 端口)

    Raises:
        ValueError: 地址格式错误或缺少端口
    """
    text = text.strip()
    if text.startswith('['):
        host, sep, rest = text[1:].partition(']')
        if not sep:
            raise ValueError(f"无效的 IPv6 地址: {text!r}")
        if rest.startswith(':'):
            port = rest[1:]
        elif not rest:
            port = None
        else:
            raise ValueError(f"无效的地址: {text!r}")
    elif text.count(':') == 1:
        host, port = text.split(':')
    else:
        # 无端口的主机名或未加方括号的 IPv6 地址
        host, port = text, None

    if not host:
        raise ValueError(f"地址缺少主机: {text!r}")
    if port is None:
        if default_port is None:
            raise ValueError(f"地址缺少端口: {text!r}")
        port = default_port
    return host, _check_port(port)


def format_address(host: str, port: int) -> str:
    """格式化地址为 host:port，IPv6 地址加方括号"""
    if ':' in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


# ============================================================================
# 配置文件管理函数
# ============================================================================

def load_config(config_file: str) -> Dict[str, Any]:
    """
    加载配置文件

    从 YAML 格式的配置文件中加载配置数据

    Args:
        config_file: 配置文件路径

    Returns:
        Dict[str, Any]: 配置数据字典，如果文件不存在或格式错误则返回空字典
    """
    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        return {}
    except yaml.YAMLError as e:
        logger.warning(f"配置文件格式错误: {e}")
        return {}

    if not isinstance(data, dict):
        if data is not None:
            logger.warning(f"配置文件顶层必须是映射: {config_file}")
        return {}
    return data
