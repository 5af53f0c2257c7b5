"""
rock5 - 日志管理模块

版本: 1.0.0

功能概述:
本模块提供代理服务器的日志管理功能，包括：
1. 多级别日志记录（DEBUG, INFO, WARNING, ERROR, CRITICAL）
2. 日志轮转（按日期/大小）
3. 结构化日志格式（时间戳、级别、会话上下文）
4. YAML 配置文件和环境变量支持
5. 可选的 systemd journal 输出

会话上下文（peer、session_id）保存在 ContextVar 中，
每个会话任务拥有独立的上下文副本，并发会话之间互不干扰。
"""

import contextvars
import logging
import logging.handlers
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

try:
    from systemd.journal import JournalHandler
    HAS_JOURNAL = True
except ImportError:
    HAS_JOURNAL = False


DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(context)s] - %(message)s"

_log_context: contextvars.ContextVar = contextvars.ContextVar('rock5_log_context', default={})


def _env_bool(name: str, default) -> bool:
    return os.getenv(name, str(default)).lower() == 'true'


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
        enable_journal: 是否输出到系统日志
        context_fields: 上下文字段列表
    """
    level: str = "INFO"
    log_dir: str = "logs"
    log_file: str = "rock5.log"
    max_bytes: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 10
    rotation_type: str = "size"  # size, date, none
    format_string: str = DEFAULT_FORMAT
    enable_console: bool = True
    enable_file: bool = False
    enable_journal: bool = False
    context_fields: list = None

    def __post_init__(self):
        if self.context_fields is None:
            self.context_fields = ["peer", "session_id"]


class ContextFilter(logging.Filter):
    """
    上下文过滤器

    为日志记录添加当前任务的上下文信息
    """

    def __init__(self, context_fields: list = None):
        super().__init__()
        self.context_fields = context_fields or []

    def filter(self, record):
        context_data = _log_context.get()
        context_parts = []
        for field in self.context_fields:
            value = context_data.get(field, "-")
            context_parts.append(f"{field}={value}")

        record.context = " | ".join(context_parts)
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

    def load_config_from_file(self, config_file: str) -> LogConfig:
        """
        从 YAML 配置文件加载日志配置

        读取文件中的 logging 段，环境变量优先于文件中的值。

        Args:
            config_file: 配置文件路径

        Returns:
            LogConfig: 日志配置对象
        """
        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                config_data = yaml.safe_load(f) or {}
        except FileNotFoundError:
            return self._load_config_from_env()
        except (OSError, yaml.YAMLError) as e:
            print(f"加载日志配置文件失败: {e}，使用环境变量配置", file=sys.stderr)
            return self._load_config_from_env()

        log_config = config_data.get('logging') or {}
        return self._load_config_from_env(log_config)

    def _load_config_from_env(self, base: Optional[dict] = None) -> LogConfig:
        """
        从环境变量加载日志配置

        Args:
            base: 配置文件中的默认值（可选）

        Returns:
            LogConfig: 日志配置对象
        """
        base = base or {}
        defaults = LogConfig()
        return LogConfig(
            level=os.getenv('LOG_LEVEL', base.get('level', defaults.level)),
            log_dir=os.getenv('LOG_DIR', base.get('log_dir', defaults.log_dir)),
            log_file=os.getenv('LOG_FILE', base.get('log_file', defaults.log_file)),
            max_bytes=int(os.getenv('LOG_MAX_BYTES', base.get('max_bytes', defaults.max_bytes))),
            backup_count=int(os.getenv('LOG_BACKUP_COUNT', base.get('backup_count', defaults.backup_count))),
            rotation_type=os.getenv('LOG_ROTATION_TYPE', base.get('rotation_type', defaults.rotation_type)),
            format_string=os.getenv('LOG_FORMAT', base.get('format_string', defaults.format_string)),
            enable_console=_env_bool('LOG_ENABLE_CONSOLE', base.get('enable_console', defaults.enable_console)),
            enable_file=_env_bool('LOG_ENABLE_FILE', base.get('enable_file', defaults.enable_file)),
            enable_journal=_env_bool('LOG_ENABLE_JOURNAL', base.get('enable_journal', defaults.enable_journal)),
            context_fields=base.get('context_fields', defaults.context_fields)
        )

    def initialize(self, config: Optional[LogConfig] = None, config_file: Optional[str] = None):
        """
        初始化日志系统

        Args:
            config: 日志配置对象（可选）
            config_file: YAML 配置文件路径（可选）
        """
        if config:
            self.config = config
        elif config_file:
            self.config = self.load_config_from_file(config_file)
        else:
            self.config = self._load_config_from_env()

        if self.config.enable_file:
            Path(self.config.log_dir).mkdir(parents=True, exist_ok=True)

        self._setup_root_logger()

    @property
    def level(self) -> int:
        return getattr(logging, self.config.level.upper(), logging.INFO)

    def set_level(self, level: int):
        """调整根日志记录器及其处理器的级别"""
        root_logger = logging.getLogger()
        root_logger.setLevel(level)
        for handler in root_logger.handlers:
            handler.setLevel(level)

    def _setup_root_logger(self):
        """
        设置根日志记录器

        上下文过滤器挂在处理器上，子日志记录器传播的记录也会经过它。
        """
        root_logger = logging.getLogger()
        root_logger.setLevel(self.level)

        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)

        self.context_filter = ContextFilter(self.config.context_fields)

        if self.config.enable_console:
            self._add_handler(root_logger, logging.StreamHandler(sys.stdout), sys.stdout.isatty())

        if self.config.enable_file:
            self._add_handler(root_logger, self._make_file_handler(), False)

        if self.config.enable_journal and HAS_JOURNAL:
            self._add_handler(root_logger, JournalHandler(), False)

    def _add_handler(self, logger: logging.Logger, handler: logging.Handler, use_color: bool):
        handler.setLevel(self.level)
        handler.addFilter(self.context_filter)
        handler.setFormatter(LogFormatter(
            fmt=self.config.format_string,
            datefmt='%Y-%m-%d %H:%M:%S',
            use_color=use_color
        ))
        logger.addHandler(handler)

    def _make_file_handler(self) -> logging.Handler:
        """
        创建文件处理器（支持轮转）
        """
        log_file_path = Path(self.config.log_dir) / self.config.log_file

        if self.config.rotation_type == 'size':
            return logging.handlers.RotatingFileHandler(
                filename=log_file_path,
                maxBytes=self.config.max_bytes,
                backupCount=self.config.backup_count,
                encoding='utf-8'
            )
        if self.config.rotation_type == 'date':
            return logging.handlers.TimedRotatingFileHandler(
                filename=log_file_path,
                when='midnight',
                interval=1,
                backupCount=self.config.backup_count,
                encoding='utf-8'
            )
        return logging.FileHandler(filename=log_file_path, encoding='utf-8')


def add_context(**kwargs):
    """
    为当前任务添加上下文信息

    在 asyncio 任务中调用时，只影响该任务（以及它之后创建的子任务）。

    Args:
        **kwargs: 上下文键值对
    """
    context = dict(_log_context.get())
    context.update(kwargs)
    _log_context.set(context)


def clear_context():
    """
    清除当前任务的上下文信息
    """
    _log_context.set({})


def get_context() -> dict:
    """返回当前任务的上下文信息副本"""
    return dict(_log_context.get())
