"""
出站连接模块

解析目标地址并建立到目标主机的 TCP 连接，把连接错误映射为 SOCKS5 应答码。

映射表（近似映射，为兼容性保持原样）:
    ConnectionRefusedError -> 0x05 连接被拒绝
    EADDRNOTAVAIL          -> 0x04 主机不可达
    超时                   -> 0x06 TTL 过期
    其他                   -> 0x01 一般失败
"""

import asyncio
import errno
import logging
import socket
from typing import Tuple

from protocol import (
    ConnectRequest, ReplyCode, ConnectError, TargetUnresolvable,
)

logger = logging.getLogger('rock5-connector')


def map_connect_error(exc: BaseException) -> ReplyCode:
    """
    将连接异常映射为 SOCKS5 应答码

    Args:
        exc: 出站连接抛出的异常

    Returns:
        ReplyCode: 对应的应答码
    """
    if isinstance(exc, ConnectionRefusedError):
        return ReplyCode.CONNECTION_REFUSED
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return ReplyCode.TTL_EXPIRED
    if isinstance(exc, OSError):
        if exc.errno == errno.EADDRNOTAVAIL:
            return ReplyCode.HOST_UNREACHABLE
        if exc.errno == errno.ETIMEDOUT:
            return ReplyCode.TTL_EXPIRED
    return ReplyCode.GENERAL_FAILURE


class Connector:
    """
    目标连接器

    使用系统名称解析，只尝试第一个解析结果，不在多个地址之间回退。

    Attributes:
        timeout: 出站连接超时（秒），None 表示使用系统默认
    """

    def __init__(self, timeout: float = 30.0):
        self.timeout = timeout

    async def resolve(self, request: ConnectRequest) -> Tuple:
        """
        解析目标地址，返回第一个套接字地址

        Raises:
            TargetUnresolvable: 解析失败或没有返回任何地址
        """
        loop = asyncio.get_running_loop()
        try:
            infos = await loop.getaddrinfo(
                request.host, request.port, type=socket.SOCK_STREAM
            )
        except (socket.gaierror, UnicodeError) as e:
            raise TargetUnresolvable(f"无法解析目标地址 {request}: {e}") from e

        if not infos:
            raise TargetUnresolvable(f"无法解析目标地址 {request}")

        family, _, _, _, sockaddr = infos[0]
        logger.debug(f"解析 {request} -> {sockaddr} (共 {len(infos)} 个地址)")
        return family, sockaddr

    async def connect(self, request: ConnectRequest) -> Tuple[asyncio.StreamReader, asyncio.StreamWriter, Tuple]:
        """
        连接到请求的目标

        Args:
            request: CONNECT 请求

        Returns:
            tuple: (reader, writer, local_addr)，local_addr 为出站套接字的本地地址，
                   用作成功应答中的 BND.ADDR / BND.PORT

        Raises:
            TargetUnresolvable: 目标无法解析
            ConnectError: 连接失败，reply_code 为映射后的应答码
        """
        family, sockaddr = await self.resolve(request)
        logger.info(f"正在连接目标: {sockaddr[0]}:{sockaddr[1]}")

        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(sockaddr[0], sockaddr[1], family=family),
                timeout=self.timeout
            )
        except (OSError, asyncio.TimeoutError) as e:
            rep = map_connect_error(e)
            logger.warning(f"连接目标 {sockaddr[0]}:{sockaddr[1]} 失败: {e!r} -> {rep.name}")
            raise ConnectError(f"连接 {request} 失败: {e}", reply_code=rep) from e

        local_addr = writer.get_extra_info('sockname')
        logger.info(f"已连接目标: {sockaddr[0]}:{sockaddr[1]}, 本地地址={local_addr[0]}:{local_addr[1]}")
        return reader, writer, local_addr
