"""
SOCKS2HTTP 协议包

本包提供了代理两端使用的协议编解码：
- SOCKS5 服务端消息读写（方法协商、用户名/密码子协商、请求与响应）
- HTTP CONNECT 请求构造与响应解析

使用示例：
    from socks2http.protocol import read_request, write_reply, Reply

    request = await read_request(reader)
    await write_reply(writer, Reply.SUCCEEDED)
"""

from .socks5 import (
    # 协议常量
    SOCKS_VERSION,
    PASSWORD_AUTH_VERSION,

    # 枚举
    AuthMethod,
    PasswordStatus,
    Command,
    AddressType,
    Reply,

    # 数据结构
    Destination,
    Request,
    RequestDecodeError,
    UNSPECIFIED_ADDRESS,

    # 读写函数
    read_method_request,
    write_method_reply,
    read_password_request,
    write_password_reply,
    read_request,
    write_reply,
    encode_address,
    encode_reply,
)

from .http_connect import (
    ConnectResponse,
    basic_auth_token,
    build_connect_request,
    parse_response_head,
    read_response,
)
