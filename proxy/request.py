"""
SOCKS5 请求解析

读取 CONNECT 请求头、目标地址和端口，生成 ConnectRequest。
域名目标不在这里解析。
"""

import asyncio
import logging

from protocol import (
    SOCKS5, AddressType, Command, ConnectRequest,
    read_exactly, decode_address, decode_port,
    UnsupportedVersion, MalformedRequest, UnsupportedCommand,
)

logger = logging.getLogger('rock5-request')


async def read_connect_request(reader: asyncio.StreamReader) -> ConnectRequest:
    """
    读取并校验连接请求

    校验顺序: 版本 -> 保留字节 -> 命令 -> 地址类型。
    错误携带 GENERAL_FAILURE 应答码，由会话负责发送失败应答。

    Args:
        reader: 客户端流读取器

    Returns:
        ConnectRequest: 解析后的请求

    Raises:
        UnsupportedVersion: 版本字节不是 0x05
        MalformedRequest: 保留字节不是 0x00
        UnsupportedCommand: 命令不是 CONNECT
        UnsupportedAddressType: 未知地址类型
        StreamClosed: 请求不完整
    """
    version, cmd, rsv, atyp = await read_exactly(reader, 4)

    if version != SOCKS5.VERSION:
        raise UnsupportedVersion(f"请求中的 SOCKS 版本无效: {version}")

    if rsv != SOCKS5.RSV:
        raise MalformedRequest(f"保留字节不为 0: {rsv:#04x}")

    if cmd != Command.CONNECT:
        try:
            name = Command(cmd).name
        except ValueError:
            name = f"{cmd:#04x}"
        raise UnsupportedCommand(f"不支持的命令: {name}")

    address = await decode_address(atyp, reader)
    port = await decode_port(reader)

    request = ConnectRequest(address_type=AddressType(atyp), address=address, port=port)
    logger.debug(f"解析请求: {request}")
    return request
