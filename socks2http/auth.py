"""
SOCKS2HTTP - 凭据转发模块

SOCKS5 层不做访问控制，只负责捕获客户端提交的用户名和密码，
由上游 HTTP 代理完成真正的认证。因此无论凭据内容如何，
本模块总是向客户端返回认证成功。

监听地址应保持在本机回环地址上，本地没有任何认证！
"""

import asyncio
import logging
from dataclasses import dataclass

from .protocol import AuthMethod, PasswordStatus, read_password_request, write_password_reply

logger = logging.getLogger('socks2http-auth')


@dataclass(frozen=True)
class Credential:
    """
    客户端在 SOCKS5 认证阶段提交的凭据

    每个连接捕获一次，之后不可修改。

    Attributes:
        username: 用户名（可以为空）
        password: 密码（可以为空，从不写入日志）
    """
    username: str
    password: str

    def __repr__(self) -> str:
        return f"Credential(username={self.username!r}, password='***')"


class CredentialForwarder:
    """
    凭据转发器

    实现 SOCKS5 用户名/密码子协商的服务端，读取凭据后无条件回复成功。
    """

    auth_method = AuthMethod.USERNAME_PASSWORD

    async def execute(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> Credential:
        """
        执行用户名/密码子协商

        Args:
            reader: 位于子协商起始位置的客户端流读取器
            writer: 客户端流写入器

        Returns:
            Credential: 捕获的凭据

        Raises:
            ProtocolDecodeError: 请求格式错误或数据被截断
            IoError: 响应写入失败
        """
        username, password = await read_password_request(reader)

        # 总是返回成功
        await write_password_reply(writer, PasswordStatus.SUCCEEDED)

        logger.debug(f"已捕获凭据: username={username!r}")
        return Credential(username, password)
