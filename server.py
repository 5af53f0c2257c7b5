#!/usr/bin/env python3
"""
rock5 - SOCKS5 代理服务端

版本: 1.0.0

协议:
1. 方法协商 - 只接受“无需认证”
2. CONNECT 请求 - 支持 IPv4、IPv6 和域名目标
3. 连接目标并应答
4. 双向透明转发，直到任一方关闭

中断信号（Ctrl+C）会立即终止所有会话，不做排空，进程以非零状态退出。
"""

import argparse
import asyncio
import logging
import sys

from config import ConfigError, ProxyConfig, load_config
from logger import LoggerManager
from monitor import ResourceMonitor
from proxy.server import ProxyServer

logger = logging.getLogger('rock5-main')


async def run_server(config: ProxyConfig):
    """
    启动服务端并持续运行

    监听套接字由 ProxyServer 的上下文管理器持有，任何退出路径都会关闭。
    """
    async with ProxyServer(config) as server:
        monitor_task = None
        if config.monitor_interval:
            monitor = ResourceMonitor(server.stats, config.monitor_interval)
            monitor_task = asyncio.create_task(monitor.monitor_loop())
        try:
            await server.serve_forever()
        finally:
            if monitor_task:
                monitor_task.cancel()


def main(argv=None) -> int:
    """主函数"""
    parser = argparse.ArgumentParser(description='rock5 SOCKS5 代理服务端')
    parser.add_argument('--config', '-c', default=None, help='配置文件路径（默认：平台配置目录下的 rock5/config.ini）')
    parser.add_argument('--log-config', default=None, help='YAML 日志配置文件')
    parser.add_argument('--debug', '-d', action='store_true', help='启用调试模式')
    args = parser.parse_args(argv)

    manager = LoggerManager()
    manager.initialize(config_file=args.log_config)

    # 设置调试级别
    if args.debug:
        manager.set_level(logging.DEBUG)

    # 加载配置文件
    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.critical(f"配置无效: {e}")
        return 1

    logger.info(f"监听地址: {config.listen_address}")

    try:
        asyncio.run(run_server(config))
    except KeyboardInterrupt:
        logger.info("正在终止")
        return 1
    except OSError as e:
        logger.critical(f"无法监听 {config.listen_address}: {e}")
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
