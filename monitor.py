"""
资源监控 - 定期记录代理进程的资源使用和会话统计

功能:
1. 采集本进程的内存、CPU、线程和文件描述符数量
2. 汇总服务器会话统计（活跃/累计/失败会话，转发字节数）
3. 超过阈值时输出告警日志
"""

import asyncio
import logging
from datetime import datetime
from typing import Dict, List, Optional

import psutil

logger = logging.getLogger('rock5-monitor')


class ResourceMonitor:
    """资源监控器"""

    def __init__(self, stats=None, check_interval: float = 60):
        """
        初始化资源监控器

        参数:
            stats: ServerStats 对象（可选）
            check_interval: 检查间隔 (秒)
        """
        self.stats = stats
        self.check_interval = check_interval
        self.process = psutil.Process()

        # 告警阈值
        self.thresholds = {
            'memory_mb': 500,          # 内存阈值: 500MB
            'cpu_percent': 80,         # CPU 阈值: 80%
            'num_fds': 1000,           # 文件描述符阈值: 1000
            'active_sessions': 1000,   # 活跃会话阈值: 1000
        }

    def get_process_stats(self) -> Optional[Dict]:
        """
        获取进程统计信息

        返回:
            Dict: 统计信息，进程不可访问时返回 None
        """
        try:
            with self.process.oneshot():
                memory_info = self.process.memory_info()
                return {
                    'pid': self.process.pid,
                    'memory_mb': memory_info.rss / 1024 / 1024,
                    'cpu_percent': self.process.cpu_percent(interval=None),
                    'num_threads': self.process.num_threads(),
                    'num_fds': self.process.num_fds() if hasattr(self.process, 'num_fds') else 0,
                }
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return None

    def check_thresholds(self, result: Dict) -> List[str]:
        """
        检查是否超过阈值

        参数:
            result: 监控结果

        返回:
            List[str]: 告警信息列表
        """
        warnings = []

        if result.get('memory_mb', 0) > self.thresholds['memory_mb']:
            warnings.append(f"内存使用过高: {result['memory_mb']:.2f} MB > {self.thresholds['memory_mb']} MB")

        if result.get('cpu_percent', 0) > self.thresholds['cpu_percent']:
            warnings.append(f"CPU 使用过高: {result['cpu_percent']:.2f}% > {self.thresholds['cpu_percent']}%")

        if result.get('num_fds', 0) > self.thresholds['num_fds']:
            warnings.append(f"文件描述符过多: {result['num_fds']} > {self.thresholds['num_fds']}")

        if result.get('active_sessions', 0) > self.thresholds['active_sessions']:
            warnings.append(f"活跃会话过多: {result['active_sessions']} > {self.thresholds['active_sessions']}")

        return warnings

    def monitor_once(self) -> Dict:
        """
        执行一次监控检查

        返回:
            Dict: 监控结果
        """
        result = {'timestamp': datetime.now()}
        result.update(self.get_process_stats() or {})
        if self.stats is not None:
            result.update(self.stats.as_dict())
        result['warnings'] = self.check_thresholds(result)
        return result

    def log_status(self, result: Dict):
        """记录监控状态"""
        logger.info(
            f"内存={result.get('memory_mb', 0):.2f}MB "
            f"CPU={result.get('cpu_percent', 0):.1f}% "
            f"线程={result.get('num_threads', 0)} "
            f"fd={result.get('num_fds', 0)} "
            f"活跃会话={result.get('active_sessions', 0)} "
            f"累计会话={result.get('total_sessions', 0)} "
            f"失败会话={result.get('failed_sessions', 0)} "
            f"上行={result.get('bytes_client_to_target', 0)}B "
            f"下行={result.get('bytes_target_to_client', 0)}B"
        )
        for warning in result['warnings']:
            logger.warning(warning)

    async def monitor_loop(self):
        """持续监控，直到任务被取消"""
        logger.info(f"资源监控已启动，检查间隔: {self.check_interval} 秒")
        while True:
            await asyncio.sleep(self.check_interval)
            self.log_status(self.monitor_once())
