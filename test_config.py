#!/usr/bin/env python3
"""
配置与日志测试

测试内容:
1. 配置文件缺失、格式错误、缺少段/键时使用默认值
2. 非整数端口是致命错误
3. 平台配置目录解析
4. 日志上下文在并发任务之间隔离
5. YAML 日志配置加载
"""

import asyncio
import logging
import os
import sys
from pathlib import Path

import pytest

# 添加当前目录到路径
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import config as config_module
from config import ConfigError, ProxyConfig, load_config
from logger import ContextFilter, LoggerManager, add_context, get_context
from server import main


def write_ini(tmp_path: Path, text: str) -> str:
    path = tmp_path / 'config.ini'
    path.write_text(text, encoding='utf-8')
    return str(path)


def test_missing_file_uses_defaults(tmp_path):
    config = load_config(str(tmp_path / 'absent.ini'))
    assert config == ProxyConfig()
    assert config.listen_address == '0.0.0.0:1080'


def test_host_and_port_are_read(tmp_path):
    path = write_ini(tmp_path, "[config]\nhost = 127.0.0.1\nport = 9050\n")
    config = load_config(path)
    assert config.host == '127.0.0.1'
    assert config.port == 9050
    assert config.connect_timeout == 30.0


def test_missing_keys_fall_back(tmp_path):
    path = write_ini(tmp_path, "[config]\nport = 2080\n")
    config = load_config(path)
    assert config.host == '0.0.0.0'
    assert config.port == 2080


def test_missing_section_falls_back(tmp_path):
    path = write_ini(tmp_path, "[other]\nport = 2080\n")
    assert load_config(path) == ProxyConfig()


def test_unparsable_file_falls_back(tmp_path):
    path = write_ini(tmp_path, "port = 2080\nnot an ini file\n")
    assert load_config(path) == ProxyConfig()


@pytest.mark.parametrize('value', ['abc', '10.5', '', '70000'])
def test_invalid_port_is_fatal(tmp_path, value):
    path = write_ini(tmp_path, f"[config]\nport = {value}\n")
    with pytest.raises(ConfigError):
        load_config(path)


def test_timeouts_are_read(tmp_path):
    path = write_ini(tmp_path, "[config]\nconnect_timeout = 5\nhandshake_timeout = 0\nmonitor_interval = 30\n")
    config = load_config(path)
    assert config.connect_timeout == 5.0
    assert config.handshake_timeout == 0.0
    assert config.monitor_interval == 30.0


def test_invalid_timeout_is_fatal(tmp_path):
    path = write_ini(tmp_path, "[config]\nconnect_timeout = soon\n")
    with pytest.raises(ConfigError):
        load_config(path)


def test_default_path_uses_xdg(monkeypatch, tmp_path):
    monkeypatch.setattr(config_module.sys, 'platform', 'linux')
    monkeypatch.setenv('XDG_CONFIG_HOME', str(tmp_path))
    assert config_module.default_config_path() == tmp_path / 'rock5' / 'config.ini'


def test_default_path_without_xdg(monkeypatch):
    monkeypatch.setattr(config_module.sys, 'platform', 'linux')
    monkeypatch.delenv('XDG_CONFIG_HOME', raising=False)
    assert config_module.default_config_path() == Path.home() / '.config' / 'rock5' / 'config.ini'


def test_main_exits_nonzero_on_invalid_port(tmp_path, monkeypatch):
    monkeypatch.setenv('LOG_ENABLE_CONSOLE', 'false')
    path = write_ini(tmp_path, "[config]\nport = eighty\n")
    assert main(['--config', path]) == 1


# ============================================================================
# 日志
# ============================================================================

def test_log_context_is_task_local():
    async def worker(name: str, results: dict):
        add_context(peer=name)
        await asyncio.sleep(0.01)
        results[name] = get_context().get('peer')

    async def _test():
        results = {}
        await asyncio.gather(worker('a', results), worker('b', results))
        return results

    assert asyncio.run(_test()) == {'a': 'a', 'b': 'b'}
    assert 'peer' not in get_context()


def test_context_filter_formats_fields():
    async def _test():
        add_context(peer='10.0.0.1:5000', session_id=7)
        record = logging.LogRecord('rock5-test', logging.INFO, __file__, 1, 'msg', None, None)
        ContextFilter(['peer', 'session_id', 'missing']).filter(record)
        return record.context

    assert asyncio.run(_test()) == 'peer=10.0.0.1:5000 | session_id=7 | missing=-'


def test_log_config_from_yaml(tmp_path, monkeypatch):
    monkeypatch.delenv('LOG_LEVEL', raising=False)
    path = tmp_path / 'logging.yaml'
    path.write_text("logging:\n  level: DEBUG\n  enable_file: false\n  backup_count: 3\n", encoding='utf-8')
    log_config = LoggerManager().load_config_from_file(str(path))
    assert log_config.level == 'DEBUG'
    assert log_config.backup_count == 3
    assert log_config.enable_file is False


def test_log_config_env_overrides_yaml(tmp_path, monkeypatch):
    monkeypatch.setenv('LOG_LEVEL', 'WARNING')
    path = tmp_path / 'logging.yaml'
    path.write_text("logging:\n  level: DEBUG\n", encoding='utf-8')
    assert LoggerManager().load_config_from_file(str(path)).level == 'WARNING'
