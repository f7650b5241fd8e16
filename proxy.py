#!/usr/bin/env python3
"""
SOCKS2HTTP 代理入口

用法:
    python3 proxy.py --config config.yaml
    python3 proxy.py --listen 127.0.0.1:42000 --upstream proxy.example.com:40000

命令行参数优先于配置文件，配置文件优先于默认值。
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from socks2http import __version__
from socks2http.config import ProxyConfig, load_config, parse_address
from socks2http.errors import BindError
from socks2http.logger import LogConfig, setup_logging
from socks2http.monitor import ResourceReporter
from socks2http.server import SOCKS5Server

logger = logging.getLogger('socks2http')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='SOCKS5 到 HTTP CONNECT 凭据转发代理')
    parser.add_argument('--config', '-c', default='config.yaml', help='配置文件路径')
    parser.add_argument('--listen', '-l', default=None, help='SOCKS5 监听地址 host:port')
    parser.add_argument('--upstream', '-u', default=None, help='上游 HTTP 代理地址 host:port')
    parser.add_argument('--log-level', default=None, help='日志级别 (DEBUG, INFO, WARNING, ERROR)')
    parser.add_argument('--debug', '-d', action='store_true', help='启用调试模式')
    parser.add_argument('--version', action='version', version=f'SOCKS2HTTP v{__version__}')
    return parser


def build_config(args: argparse.Namespace, config_data: dict) -> ProxyConfig:
    """
    合并配置文件和命令行参数

    Args:
        args: 命令行参数
        config_data: 配置文件数据

    Returns:
        ProxyConfig: 代理配置

    Raises:
        ValueError: 地址或端口格式错误
    """
    config = ProxyConfig.from_dict(config_data.get('proxy'))
    if args.listen:
        config.listen_host, config.listen_port = parse_address(args.listen, config.listen_port)
    if args.upstream:
        config.upstream_host, config.upstream_port = parse_address(args.upstream, config.upstream_port)
    return config


async def run_proxy(config: ProxyConfig):
    """
    运行代理直到被中断

    Args:
        config: 代理配置
    """
    server = SOCKS5Server(config)
    await server.start()

    reporter = ResourceReporter(config.stats_interval)
    reporter.start()
    try:
        await server.serve_forever()
    finally:
        await reporter.stop()
        await server.close()


def main(argv: Optional[List[str]] = None) -> int:
    """
    主函数 - 解析命令行参数并启动代理

    Returns:
        int: 进程退出码
    """
    args = build_parser().parse_args(argv)

    config_data = load_config(args.config)

    log_config = LogConfig.from_dict(config_data.get('logging'))
    if args.log_level:
        log_config.level = args.log_level
    manager = setup_logging(log_config)
    if args.debug:
        manager.set_level('DEBUG')

    logger.info(f"SOCKS2HTTP v{__version__}")

    try:
        config = build_config(args, config_data)
    except (TypeError, ValueError) as e:
        logger.error(f"配置错误: {e}")
        return 1

    logger.info(f"代理配置: SOCKS5={config.listen_address}, 上游={config.upstream_address}")

    try:
        asyncio.run(run_proxy(config))
    except BindError as e:
        logger.error(str(e))
        return 1
    except KeyboardInterrupt:
        logger.info("收到键盘中断信号，正在关闭...")
    return 0


if __name__ == '__main__':
    sys.exit(main())
