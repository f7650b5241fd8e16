"""
SOCKS2HTTP - 日志管理模块

功能概述:
本模块提供了日志管理功能，包括：
1. 多级别日志记录（DEBUG, INFO, WARNING, ERROR, CRITICAL）
2. 日志轮转（按日期/大小）
3. 结构化日志格式（时间戳、级别、连接上下文）
4. 配置文件和环境变量支持

连接上下文（客户端地址、目标地址）保存在 contextvars 中，
每个连接任务拥有独立的上下文，互不影响。
"""

import contextvars
import logging
import logging.handlers
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(context)s] - %(message)s"

_context: contextvars.ContextVar = contextvars.ContextVar('socks2http_log_context', default=None)


@dataclass
class LogConfig:
    """
    日志配置数据类

    Attributes:
        level: 日志级别（DEBUG, INFO, WARNING, ERROR, CRITICAL）
        log_dir: 日志存储目录
        log_file: 日志文件名
        max_bytes: 单个日志文件最大大小（字节）
        backup_count: 保留的备份文件数量
        rotation_type: 轮转类型（size, date, none）
        format_string: 日志格式字符串
        enable_console: 是否输出到控制台
        enable_file: 是否输出到文件
        context_fields: 上下文字段列表
    """
    level: str = "INFO"
    log_dir: str = "logs"
    log_file: str = "socks2http.log"
    max_bytes: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 10
    rotation_type: str = "size"
    format_string: str = DEFAULT_FORMAT
    enable_console: bool = True
    enable_file: bool = False
    context_fields: List[str] = field(default_factory=lambda: ["peer", "dest"])

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'LogConfig':
        """
        从配置文件的 logging 段和环境变量构造日志配置

        环境变量优先于配置文件。

        Args:
            data: 配置文件中的 logging 段（可为 None）

        Returns:
            LogConfig: 日志配置对象
        """
        data = data or {}
        defaults = cls()
        return cls(
            level=os.getenv('LOG_LEVEL', data.get('level', defaults.level)),
            log_dir=os.getenv('LOG_DIR', data.get('log_dir', defaults.log_dir)),
            log_file=os.getenv('LOG_FILE', data.get('log_file', defaults.log_file)),
            max_bytes=int(os.getenv('LOG_MAX_BYTES', data.get('max_bytes', defaults.max_bytes))),
            backup_count=int(os.getenv('LOG_BACKUP_COUNT', data.get('backup_count', defaults.backup_count))),
            rotation_type=os.getenv('LOG_ROTATION_TYPE', data.get('rotation_type', defaults.rotation_type)),
            format_string=os.getenv('LOG_FORMAT', data.get('format_string', defaults.format_string)),
            enable_console=_env_bool('LOG_ENABLE_CONSOLE', data.get('enable_console', defaults.enable_console)),
            enable_file=_env_bool('LOG_ENABLE_FILE', data.get('enable_file', defaults.enable_file)),
            context_fields=data.get('context_fields', defaults.context_fields),
        )


def _env_bool(name: str, default: Any) -> bool:
    return os.getenv(name, str(default)).lower() in ('true', '1', 'yes')


# ============================================================================
# 连接上下文
# ============================================================================

def add_context(**kwargs):
    """
    为当前任务添加日志上下文

    Args:
        **kwargs: 上下文键值对
    """
    current = dict(_context.get() or {})
    current.update(kwargs)
    _context.set(current)


def clear_context():
    """清除当前任务的日志上下文"""
    _context.set(None)


def get_context() -> Dict[str, Any]:
    return dict(_context.get() or {})


class ContextFilter(logging.Filter):
    """
    上下文过滤器

    为日志记录添加当前任务的上下文信息
    """

    def __init__(self, context_fields: List[str] = None):
        super().__init__()
        self.context_fields = context_fields or []

    def filter(self, record):
        data = _context.get() or {}
        parts = [f"{name}={data[name]}" for name in self.context_fields if name in data]
        record.context = " | ".join(parts) or "-"
        return True


class LogFormatter(logging.Formatter):
    """
    自定义日志格式化器

    支持彩色输出
    """

    COLORS = {
        'DEBUG': '\033[36m',      # 青色
        'INFO': '\033[32m',       # 绿色
        'WARNING': '\033[33m',    # 黄色
        'ERROR': '\033[31m',      # 红色
        'CRITICAL': '\033[35m',   # 紫色
    }
    RESET = '\033[0m'

    def __init__(self, fmt=None, datefmt=None, style='%', use_color=False):
        super().__init__(fmt, datefmt, style)
        self.use_color = use_color

    def format(self, record):
        # 确保context字段存在
        if not hasattr(record, 'context'):
            record.context = "-"

        levelname = record.levelname
        if self.use_color and levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


# ============================================================================
# 日志管理器
# ============================================================================

class LoggerManager:
    """
    日志管理器

    管理日志系统的初始化和配置
    """

    _instance = None
    _initialized = False

    def __new__(cls):
        """
        单例模式
        """
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if not self._initialized:
            self.config = None
            self.context_filter = None
            self._initialized = True

    def initialize(self, config: Optional[LogConfig] = None):
        """
        初始化日志系统

        Args:
            config: 日志配置对象，为 None 时仅使用环境变量
        """
        self.config = config or LogConfig.from_dict(None)
        self.context_filter = ContextFilter(self.config.context_fields)

        root_logger = logging.getLogger()
        root_logger.setLevel(self.level)
        root_logger.handlers.clear()

        if self.config.enable_console:
            self._add_console_handler(root_logger)

        if self.config.enable_file:
            self._add_file_handler(root_logger)

    @property
    def level(self) -> int:
        return getattr(logging, self.config.level.upper(), logging.INFO)

    def set_level(self, level: str):
        """运行时调整日志级别（例如 --debug）"""
        self.config.level = level
        logging.getLogger().setLevel(self.level)
        for handler in logging.getLogger().handlers:
            handler.setLevel(self.level)

    def _add_console_handler(self, logger: logging.Logger):
        """
        添加控制台处理器

        Args:
            logger: 日志记录器
        """
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(self.level)
        console_handler.addFilter(self.context_filter)
        console_handler.setFormatter(LogFormatter(
            fmt=self.config.format_string,
            datefmt='%Y-%m-%d %H:%M:%S',
            use_color=sys.stdout.isatty()
        ))
        logger.addHandler(console_handler)

    def _add_file_handler(self, logger: logging.Logger):
        """
        添加文件处理器（支持轮转）

        Args:
            logger: 日志记录器
        """
        log_dir = Path(self.config.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file_path = log_dir / self.config.log_file

        if self.config.rotation_type == 'size':
            file_handler = logging.handlers.RotatingFileHandler(
                filename=log_file_path,
                maxBytes=self.config.max_bytes,
                backupCount=self.config.backup_count,
                encoding='utf-8'
            )
        elif self.config.rotation_type == 'date':
            file_handler = logging.handlers.TimedRotatingFileHandler(
                filename=log_file_path,
                when='midnight',
                interval=1,
                backupCount=self.config.backup_count,
                encoding='utf-8'
            )
        else:
            file_handler = logging.FileHandler(
                filename=log_file_path,
                encoding='utf-8'
            )

        file_handler.setLevel(self.level)
        file_handler.addFilter(self.context_filter)
        file_handler.setFormatter(LogFormatter(
            fmt=self.config.format_string,
            datefmt='%Y-%m-%d %H:%M:%S',
            use_color=False
        ))
        logger.addHandler(file_handler)


def setup_logging(config: Optional[LogConfig] = None) -> LoggerManager:
    """
    初始化日志系统（便捷函数）

    Args:
        config: 日志配置对象

    Returns:
        LoggerManager: 日志管理器
    """
    manager = LoggerManager()
    manager.initialize(config)
    return manager
