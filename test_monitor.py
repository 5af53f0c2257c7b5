#!/usr/bin/env python3
"""
资源监控测试
"""

import os
import sys

# 添加当前目录到路径
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from monitor import ResourceMonitor
from proxy.server import ServerStats


def test_monitor_once_includes_process_and_session_stats():
    stats = ServerStats(active_sessions=2, total_sessions=5, bytes_client_to_target=100)
    result = ResourceMonitor(stats).monitor_once()

    assert result['pid'] == os.getpid()
    assert result['memory_mb'] > 0
    assert result['active_sessions'] == 2
    assert result['total_sessions'] == 5
    assert result['bytes_client_to_target'] == 100
    assert result['warnings'] == []


def test_thresholds_produce_warnings():
    monitor = ResourceMonitor(ServerStats(active_sessions=5))
    monitor.thresholds['active_sessions'] = 3
    monitor.thresholds['memory_mb'] = 0

    warnings = monitor.monitor_once()['warnings']
    assert any('活跃会话过多' in w for w in warnings)
    assert any('内存使用过高' in w for w in warnings)
