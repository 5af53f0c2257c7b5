"""
rock5 - 地址与应答编解码模块

提供 SOCKS5 地址字段（ATYP + 地址）的读取和写入，以及固定格式应答的编码。
所有函数均为无状态函数。
"""

import asyncio
import ipaddress
import logging
import struct
from typing import Tuple, Union

from .core import (
    SOCKS5, AddressType, AddressValue, ReplyCode,
    IPV4_LENGTH, IPV6_LENGTH, PORT_LENGTH,
)
from .errors import StreamClosed, UnsupportedAddressType

logger = logging.getLogger('rock5-protocol')


async def read_exactly(reader: asyncio.StreamReader, n: int) -> bytes:
    """
    从流中精确读取 n 个字节

    Raises:
        StreamClosed: 对端在读满 n 字节之前关闭了连接
    """
    try:
        return await reader.readexactly(n)
    except asyncio.IncompleteReadError as e:
        raise StreamClosed(f"连接提前关闭: 需要 {n} 字节，实际 {len(e.partial)} 字节") from e


async def decode_address(atyp: int, reader: asyncio.StreamReader) -> AddressValue:
    """
    根据地址类型读取 DST.ADDR

    - IPv4: 4 字节
    - IPv6: 16 字节
    - 域名: 1 字节长度 + 域名字节（按 UTF-8 宽松解码，非法字节替换为 U+FFFD）

    Args:
        atyp: 地址类型字节
        reader: 客户端流读取器

    Returns:
        AddressValue: IPv4Address、IPv6Address 或域名字符串

    Raises:
        UnsupportedAddressType: atyp 不是 0x01 / 0x03 / 0x04
        StreamClosed: 地址字节不完整
    """
    if atyp == AddressType.IPV4:
        return ipaddress.IPv4Address(await read_exactly(reader, IPV4_LENGTH))
    if atyp == AddressType.IPV6:
        return ipaddress.IPv6Address(await read_exactly(reader, IPV6_LENGTH))
    if atyp == AddressType.DOMAIN:
        length = (await read_exactly(reader, 1))[0]
        raw = await read_exactly(reader, length)
        return raw.decode('utf-8', errors='replace')
    raise UnsupportedAddressType(f"不支持的地址类型: {atyp:#04x}")


async def decode_port(reader: asyncio.StreamReader) -> int:
    """读取 2 字节大端序端口"""
    return struct.unpack('>H', await read_exactly(reader, PORT_LENGTH))[0]


def encode_address(addr: Union[str, ipaddress.IPv4Address, ipaddress.IPv6Address]) -> bytes:
    """
    编码 BND.ADDR: ATYP 字节 + 4 或 16 字节原始地址

    应答中只使用字面 IP 地址，域名从不重新编码。

    Raises:
        ValueError: addr 不是 IP 地址
    """
    ip = ipaddress.ip_address(addr)
    if ip.version == 4:
        return bytes([AddressType.IPV4]) + ip.packed
    return bytes([AddressType.IPV6]) + ip.packed


def encode_reply(rep: ReplyCode, bind_addr: Tuple) -> bytes:
    """
    编码 SOCKS5 应答

    VER(0x05) + REP + RSV(0x00) + ATYP + BND.ADDR + BND.PORT(大端序)
    成功和失败使用同一格式，由调用方选择 (rep, bind_addr)。

    Args:
        rep: 应答码
        bind_addr: 套接字地址元组，(host, port) 或 IPv6 的 (host, port, flowinfo, scope_id)
    """
    host, port = bind_addr[0], bind_addr[1]
    # getsockname() 返回的 IPv6 地址可能带有 %scope 后缀
    if isinstance(host, str) and '%' in host:
        host = host.split('%', 1)[0]
    logger.debug(f"编码应答: rep={int(rep):#04x}, bind={host}:{port}")
    return (
        struct.pack('>BBB', SOCKS5.VERSION, rep, SOCKS5.RSV)
        + encode_address(host)
        + struct.pack('>H', port)
    )
