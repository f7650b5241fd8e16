#!/usr/bin/env python3
"""
凭据转发测试

测试内容:
1. 任意凭据（包括空字符串）都回复成功并原样返回
2. 格式错误的子协商请求抛出 ProtocolDecodeError
3. 响应写入失败抛出 IoError
4. 凭据的 repr 不包含密码

使用方法:
    python3 test_auth.py
    pytest test_auth.py
"""

import asyncio
import logging
import sys
import time

from socks2http.auth import Credential, CredentialForwarder
from socks2http.errors import IoError, ProtocolDecodeError
from socks2http.protocol import AuthMethod

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger('auth-test')


class FakeWriter:
    """记录写入数据的流写入器"""

    def __init__(self, fail: bool = False):
        self.data = b''
        self.fail = fail
        self.closed = False

    def write(self, data: bytes):
        self.data += data

    async def drain(self):
        if self.fail:
            raise ConnectionResetError("连接被对端重置")

    def is_closing(self) -> bool:
        return self.closed

    def close(self):
        self.closed = True

    async def wait_closed(self):
        pass


def _password_request(username: bytes, password: bytes) -> bytes:
    return bytes([1, len(username)]) + username + bytes([len(password)]) + password


def _execute(data: bytes, writer: FakeWriter) -> Credential:
    async def runner():
        reader = asyncio.StreamReader()
        reader.feed_data(data)
        reader.feed_eof()
        return await CredentialForwarder().execute(reader, writer)
    return asyncio.run(runner())


def test_auth_method():
    """只提供用户名/密码认证"""
    assert CredentialForwarder.auth_method == AuthMethod.USERNAME_PASSWORD


def test_always_succeeds():
    """任意凭据都回复成功，凭据原样返回"""
    pairs = [
        ('alice', 'secret'),
        ('', ''),
        ('user', ''),
        ('', 'pass'),
        ('user-zone-custom-region-us', 'p@ss:word with spaces'),
        ('x' * 255, 'y' * 255),
        ('用户', '密码'),
    ]
    for username, password in pairs:
        writer = FakeWriter()
        credential = _execute(
            _password_request(username.encode('utf-8'), password.encode('utf-8')), writer)
        assert credential == Credential(username, password), credential
        assert writer.data == b'\x01\x00', writer.data


def test_malformed_request():
    """格式错误或截断的请求不回复，抛出 ProtocolDecodeError"""
    for data in (b'', b'\x02\x00\x00', b'\x01\x05ab', b'\x01\x01a'):
        writer = FakeWriter()
        try:
            _execute(data, writer)
        except ProtocolDecodeError:
            assert writer.data == b'', writer.data
            continue
        raise AssertionError(f"应拒绝格式错误的请求: {data!r}")


def test_write_failure():
    """响应写入失败抛出 IoError"""
    try:
        _execute(_password_request(b'alice', b'secret'), FakeWriter(fail=True))
    except IoError:
        return
    raise AssertionError("应抛出 IoError")


def test_credential_repr_hides_password():
    """凭据的 repr 不包含密码"""
    text = repr(Credential('alice', 'secret'))
    assert 'alice' in text
    assert 'secret' not in text


# ============================================================================
# 主程序
# ============================================================================

TESTS = [obj for name, obj in sorted(globals().items()) if name.startswith('test_') and callable(obj)]


def main() -> int:
    failed = 0
    for test in TESTS:
        start_time = time.time()
        try:
            test()
            logger.info(f"✓ PASS | {test.__name__} | {time.time() - start_time:.3f}s | {test.__doc__}")
        except Exception as e:
            failed += 1
            logger.error(f"✗ FAIL | {test.__name__} | {time.time() - start_time:.3f}s | {e!r}")
    logger.info(f"总计: {len(TESTS)}, 通过: {len(TESTS) - failed}, 失败: {failed}")
    return 1 if failed else 0


if __name__ == '__main__':
    sys.exit(main())
