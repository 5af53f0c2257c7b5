"""
SOCKS5 代理服务端

ProxyServer 是服务器上下文：拥有监听套接字，以 async with 方式获取和释放，
任何退出路径（包括中断信号）都会关闭监听套接字。
每个接受的连接在独立任务中运行 ClientSession，会话之间完全隔离。
"""

import asyncio
import logging
from dataclasses import dataclass, asdict
from typing import Optional, Set, Tuple

from config import ProxyConfig
from .connector import Connector
from .session import ClientSession, SessionState

logger = logging.getLogger('rock5-server')


@dataclass
class ServerStats:
    """
    服务器运行统计

    Attributes:
        active_sessions: 当前活跃会话数
        total_sessions: 累计接受的会话数
        failed_sessions: 以 FAILED 状态结束的会话数
        bytes_client_to_target: 累计 客户端 -> 目标 字节数
        bytes_target_to_client: 累计 目标 -> 客户端 字节数
    """
    active_sessions: int = 0
    total_sessions: int = 0
    failed_sessions: int = 0
    bytes_client_to_target: int = 0
    bytes_target_to_client: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


class ProxyServer:
    """
    SOCKS5 代理服务端

    用法:
        async with ProxyServer(config) as server:
            await server.serve_forever()

    Attributes:
        config: 代理配置
        connector: 出站连接器（所有会话共用，本身无状态）
        stats: 运行统计
    """

    def __init__(self, config: ProxyConfig, connector: Optional[Connector] = None):
        self.config = config
        self.connector = connector or Connector(timeout=config.connect_timeout or None)
        self.stats = ServerStats()
        self.sessions: Set[ClientSession] = set()
        self._server: Optional[asyncio.AbstractServer] = None

    @property
    def address(self) -> Tuple:
        """实际监听地址（端口为 0 时由系统分配）"""
        if self._server is None or not self._server.sockets:
            raise RuntimeError("服务端尚未启动")
        return self._server.sockets[0].getsockname()

    async def start(self):
        """
        绑定监听地址

        Raises:
            OSError: 绑定失败（启动时致命错误）
        """
        self._server = await asyncio.start_server(
            self.handle_client,
            self.config.host,
            self.config.port
        )
        addr = self.address
        logger.info(f"SOCKS5 代理运行在 {addr[0]}:{addr[1]}")

    async def close(self):
        """关闭监听套接字，并立即中止正在进行的会话（不做排空）"""
        if self._server is None:
            return
        self._server.close()
        if self.sessions:
            logger.info(f"中止 {len(self.sessions)} 个活跃会话")
        for session in list(self.sessions):
            session.abort()
        await self._server.wait_closed()
        self._server = None
        logger.info("监听套接字已关闭")

    async def __aenter__(self) -> 'ProxyServer':
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def serve_forever(self):
        """持续接受连接，直到被取消"""
        if self._server is None:
            raise RuntimeError("服务端尚未启动")
        await self._server.serve_forever()

    async def handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """处理客户端连接（每个连接一个任务）"""
        session = ClientSession(
            reader,
            writer,
            self.connector,
            handshake_timeout=self.config.handshake_timeout or None,
            on_close=self._session_closed
        )
        self.sessions.add(session)
        self.stats.active_sessions += 1
        self.stats.total_sessions += 1
        await session.run()

    def _session_closed(self, session: ClientSession):
        """会话结束回调，汇总统计"""
        self.sessions.discard(session)
        self.stats.active_sessions -= 1
        if session.state == SessionState.FAILED:
            self.stats.failed_sessions += 1
        if session.outcome is not None:
            self.stats.bytes_client_to_target += session.outcome.bytes_client_to_target
            self.stats.bytes_target_to_client += session.outcome.bytes_target_to_client
