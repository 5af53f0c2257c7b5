"""
rock5 - 配置管理模块
加载代理服务器的监听地址和超时等配置。

版本: 1.0.0

功能概述:
1. 定位平台配置目录下的 rock5/config.ini
2. 读取 [config] 段中的 host、port 等键
3. 文件或键缺失时使用默认值
4. 数值无效时抛出 ConfigError（启动时致命错误）

配置文件格式:
    [config]
    host = 0.0.0.0
    port = 1080
    connect_timeout = 30
    handshake_timeout = 60
    monitor_interval = 0
"""

import configparser
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger('rock5-config')

CONFIG_SUBPATH = Path('rock5') / 'config.ini'
MAIN_SECTION = 'config'


class ConfigError(Exception):
    """配置值无效"""


# ============================================================================
# 配置数据类
# ============================================================================

@dataclass
class ProxyConfig:
    """
    代理服务器配置数据类

    Attributes:
        host: 监听地址（默认: "0.0.0.0"）
        port: 监听端口（默认: 1080）
        connect_timeout: 出站连接超时，秒（默认: 30）
        handshake_timeout: 握手超时，秒（默认: 60，0 表示不限制）
        monitor_interval: 资源监控间隔，秒（默认: 0，表示关闭）
    """
    host: str = "0.0.0.0"
    port: int = 1080
    connect_timeout: float = 30.0
    handshake_timeout: float = 60.0
    monitor_interval: float = 0

    @property
    def listen_address(self) -> str:
        return f"{self.host}:{self.port}"


# ============================================================================
# 配置文件管理函数
# ============================================================================

def config_dir() -> Optional[Path]:
    """
    返回平台配置目录

    - Windows: %APPDATA%
    - macOS: ~/Library/Application Support
    - 其他: $XDG_CONFIG_HOME，未设置时为 ~/.config
    """
    if sys.platform == 'win32':
        appdata = os.environ.get('APPDATA')
        return Path(appdata) if appdata else None
    if sys.platform == 'darwin':
        return Path.home() / 'Library' / 'Application Support'
    xdg = os.environ.get('XDG_CONFIG_HOME')
    if xdg and os.path.isabs(xdg):
        return Path(xdg)
    return Path.home() / '.config'


def default_config_path() -> Path:
    """默认配置文件路径: <配置目录>/rock5/config.ini"""
    base = config_dir()
    if base is None:
        return CONFIG_SUBPATH
    return base / CONFIG_SUBPATH


def _parse_port(value: str) -> int:
    try:
        port = int(value)
    except ValueError:
        raise ConfigError(f"配置中的端口无效: '{value}'") from None
    if not 0 <= port <= 65535:
        raise ConfigError(f"配置中的端口超出范围: {port}")
    return port


def _parse_seconds(key: str, value: str) -> float:
    try:
        seconds = float(value)
    except ValueError:
        raise ConfigError(f"配置中的 {key} 无效: '{value}'") from None
    if seconds < 0:
        raise ConfigError(f"配置中的 {key} 不能为负数: {seconds}")
    return seconds


def load_config(config_file: Optional[str] = None) -> ProxyConfig:
    """
    加载配置文件

    文件不存在、格式错误或缺少 [config] 段时使用默认配置；
    存在但无法解析为数值的端口或超时会抛出 ConfigError。

    Args:
        config_file: 配置文件路径，None 时使用 default_config_path()

    Returns:
        ProxyConfig: 配置对象

    Raises:
        ConfigError: 配置值无效
    """
    path = Path(config_file) if config_file else default_config_path()
    config = ProxyConfig()
    logger.info(f"尝试读取配置文件 {path}")

    parser = configparser.ConfigParser(interpolation=None)
    try:
        found = parser.read(path, encoding='utf-8')
    except configparser.Error as e:
        logger.warning(f"配置文件格式错误: {e}，使用默认配置")
        return config

    if not found:
        logger.info(f"未找到配置文件 {path}，使用默认配置")
        return config

    if not parser.has_section(MAIN_SECTION):
        logger.warning(f"配置文件缺少 [{MAIN_SECTION}] 段，使用默认配置")
        return config

    section = parser[MAIN_SECTION]

    if 'port' in section:
        config.port = _parse_port(section['port'].strip())
    if 'host' in section:
        config.host = section['host'].strip()
    for key in ('connect_timeout', 'handshake_timeout', 'monitor_interval'):
        if key in section:
            setattr(config, key, _parse_seconds(key, section[key].strip()))

    logger.debug(f"已加载配置: {config}")
    return config
