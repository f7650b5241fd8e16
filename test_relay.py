#!/usr/bin/env python3
"""
数据转发测试

测试内容:
1. 双向数据原样转发
2. 客户端先关闭: EOF 传递给上游，上游关闭后转发结束，两端都被关闭
3. 上游先关闭: 客户端收到剩余数据和 EOF，两端都被关闭
4. 客户端半关闭: 上游的响应仍然完整转发给客户端
5. 对端不支持半关闭: EOF 结束整个转发
6. 写入时连接被重置: 不抛出异常，错误记录在 RelayResult 中

使用方法:
    python3 test_relay.py
    pytest test_relay.py
"""

import asyncio
import logging
import socket
import sys
import time

from socks2http.errors import RelayIoError
from socks2http.relay import relay

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger('relay-test')


async def _stream_pair():
    """创建一对互相连接的流，返回 (应用端, 代理端)"""
    a, b = socket.socketpair()
    app = await asyncio.open_connection(sock=a)
    proxy = await asyncio.open_connection(sock=b)
    return app, proxy


class FakeWriter:
    """不支持半关闭的写入器，reset=True 时 drain 模拟连接重置"""

    def __init__(self, reset: bool = False):
        self.reset = reset
        self.data = b''
        self.closed = False

    def write(self, data: bytes):
        self.data += data

    async def drain(self):
        if self.reset:
            raise ConnectionResetError("连接被对端重置")

    def can_write_eof(self) -> bool:
        return False

    def is_closing(self) -> bool:
        return self.closed

    def close(self):
        self.closed = True

    async def wait_closed(self):
        pass


async def _setup():
    (client_r, client_w), (proxy_client_r, proxy_client_w) = await _stream_pair()
    (upstream_r, upstream_w), (proxy_upstream_r, proxy_upstream_w) = await _stream_pair()
    task = asyncio.ensure_future(relay(
        proxy_client_r, proxy_client_w, proxy_upstream_r, proxy_upstream_w, buffer_size=1024))
    return (client_r, client_w), (upstream_r, upstream_w), (proxy_client_w, proxy_upstream_w), task


def test_bidirectional_then_client_closes():
    """双向转发，客户端先关闭"""
    async def runner():
        (client_r, client_w), (upstream_r, upstream_w), proxy_writers, task = await _setup()

        client_w.write(b'GET / HTTP/1.1\r\n\r\n')
        await client_w.drain()
        assert await asyncio.wait_for(upstream_r.readexactly(18), 5) == b'GET / HTTP/1.1\r\n\r\n'

        payload = bytes(range(256)) * 16
        upstream_w.write(payload)
        await upstream_w.drain()
        assert await asyncio.wait_for(client_r.readexactly(len(payload)), 5) == payload

        client_w.close()
        assert await asyncio.wait_for(upstream_r.read(), 5) == b''
        upstream_w.close()
        result = await asyncio.wait_for(task, 5)

        assert result.sent == 18, result
        assert result.received == len(payload), result
        assert all(w.is_closing() for w in proxy_writers)

    asyncio.run(runner())


def test_upstream_closes_first():
    """上游先关闭，客户端收到剩余数据和 EOF"""
    async def runner():
        (client_r, client_w), (upstream_r, upstream_w), proxy_writers, task = await _setup()

        upstream_w.write(b'bye')
        await upstream_w.drain()
        upstream_w.close()

        assert await asyncio.wait_for(client_r.read(), 5) == b'bye'
        client_w.close()

        result = await asyncio.wait_for(task, 5)
        assert result.received == 3, result
        assert all(w.is_closing() for w in proxy_writers)

    asyncio.run(runner())


def test_client_half_close_keeps_response():
    """客户端发送请求后半关闭，仍能收到上游的完整响应"""
    async def runner():
        (client_r, client_w), (upstream_r, upstream_w), proxy_writers, task = await _setup()

        client_w.write(b'GET / HTTP/1.0\r\n\r\n')
        await client_w.drain()
        client_w.write_eof()

        request = await asyncio.wait_for(upstream_r.read(), 5)
        assert request == b'GET / HTTP/1.0\r\n\r\n', request
        upstream_w.write(b'RESPONSE:' + request)
        await upstream_w.drain()
        upstream_w.close()

        response = await asyncio.wait_for(client_r.read(), 5)
        assert response == b'RESPONSE:GET / HTTP/1.0\r\n\r\n', response

        result = await asyncio.wait_for(task, 5)
        assert result.sent == 18, result
        assert result.received == 27, result
        assert result.error is None, result
        assert all(w.is_closing() for w in proxy_writers)
        client_w.close()

    asyncio.run(runner())


def test_eof_without_half_close_support():
    """对端不支持半关闭时，任意一端 EOF 结束整个转发"""
    async def runner():
        client_reader = asyncio.StreamReader()
        client_reader.feed_data(b'last')
        client_reader.feed_eof()
        tunnel_reader = asyncio.StreamReader()
        client_writer = FakeWriter()
        tunnel_writer = FakeWriter()

        result = await asyncio.wait_for(
            relay(client_reader, client_writer, tunnel_reader, tunnel_writer), 5)

        assert result.error is None, result
        assert result.sent == 4
        assert tunnel_writer.data == b'last'
        assert client_writer.closed and tunnel_writer.closed

    asyncio.run(runner())


def test_reset_is_not_raised():
    """连接重置时返回错误而不是抛出异常"""
    async def runner():
        client_reader = asyncio.StreamReader()
        client_reader.feed_data(b'data')
        tunnel_reader = asyncio.StreamReader()
        client_writer = FakeWriter(reset=True)
        tunnel_writer = FakeWriter(reset=True)

        result = await asyncio.wait_for(
            relay(client_reader, client_writer, tunnel_reader, tunnel_writer), 5)

        assert isinstance(result.error, RelayIoError), result
        assert isinstance(result.error.__cause__, ConnectionResetError)
        assert result.sent == 0
        assert client_writer.closed and tunnel_writer.closed

    asyncio.run(runner())


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
