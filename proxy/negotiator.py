"""
SOCKS5 方法协商

读取客户端的版本/方法列表，决定是否接受会话。只接受“无需认证”(0x00)。
"""

import asyncio
import logging

from protocol import (
    SOCKS5, AuthMethod, read_exactly,
    UnsupportedVersion, NoMethodsOffered, NoAcceptableAuthMethod,
)

logger = logging.getLogger('rock5-negotiator')


async def negotiate_methods(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> bytes:
    """
    执行方法协商

    1. 读取 VER + NMETHODS
    2. 读取 NMETHODS 个方法字节
    3. 方法列表包含 0x00 时回复 05 00，否则回复 05 FF 并报错

    Args:
        reader: 客户端流读取器
        writer: 客户端流写入器

    Returns:
        bytes: 客户端提供的方法列表

    Raises:
        UnsupportedVersion: 版本字节不是 0x05
        NoMethodsOffered: NMETHODS 为 0
        NoAcceptableAuthMethod: 方法列表中没有 0x00（已发送拒绝应答）
        StreamClosed: 客户端提前关闭连接
    """
    version, nmethods = await read_exactly(reader, 2)

    if version != SOCKS5.VERSION:
        raise UnsupportedVersion(f"不支持的 SOCKS 版本: {version}")

    if nmethods == 0:
        raise NoMethodsOffered("客户端未提供任何认证方法")

    methods = await read_exactly(reader, nmethods)
    logger.debug(f"客户端方法列表: {methods.hex()}")

    if AuthMethod.NO_AUTH not in methods:
        # 拒绝路径上唯一需要先发送应答的情况
        writer.write(bytes([SOCKS5.VERSION, SOCKS5.NO_ACCEPTABLE_METHODS]))
        await writer.drain()
        raise NoAcceptableAuthMethod("客户端不支持“无需认证”方法")

    writer.write(bytes([SOCKS5.VERSION, AuthMethod.NO_AUTH]))
    await writer.drain()
    return methods
