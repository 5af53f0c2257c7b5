"""
rock5 - 核心协议模块
定义 SOCKS5 协议（RFC 1928 子集）的常量、枚举和请求数据结构。

版本: 1.0.0

功能概述:
本模块提供 SOCKS5 代理使用的协议定义，包括版本号、认证方法、
命令、地址类型和应答码。编解码函数见 codec.py。

线路格式:
方法协商请求:
┌─────┬──────────┬──────────┐
│ VER │ NMETHODS │ METHODS  │
│  1  │    1     │ 1 到 255 │
└─────┴──────────┴──────────┘

连接请求:
┌─────┬─────┬───────┬──────┬──────────┬──────────┐
│ VER │ CMD │  RSV  │ ATYP │ DST.ADDR │ DST.PORT │
│  1  │  1  │ X'00' │  1   │   可变   │    2     │
└─────┴─────┴───────┴──────┴──────────┴──────────┘

应答:
┌─────┬─────┬───────┬──────┬──────────┬──────────┐
│ VER │ REP │  RSV  │ ATYP │ BND.ADDR │ BND.PORT │
│  1  │  1  │ X'00' │  1   │   可变   │    2     │
└─────┴─────┴───────┴──────┴──────────┴──────────┘

端口始终为 2 字节大端序（网络字节序）。
"""

import ipaddress
from dataclasses import dataclass
from enum import IntEnum
from typing import Tuple, Union


# ============================================================================
# 协议常量
# ============================================================================

class SOCKS5:
    """
    SOCKS5 协议常量定义

    仅支持 CONNECT 命令和“无需认证”方法。
    """
    VERSION = 0x05
    RSV = 0x00
    NO_ACCEPTABLE_METHODS = 0xFF


class AuthMethod(IntEnum):
    """认证方法"""
    NO_AUTH = 0x00
    GSSAPI = 0x01
    USERNAME_PASSWORD = 0x02
    NO_ACCEPTABLE = 0xFF


class Command(IntEnum):
    """
    请求命令

    BIND 和 UDP_ASSOCIATE 可以识别但不支持。
    """
    CONNECT = 0x01
    BIND = 0x02
    UDP_ASSOCIATE = 0x03


class AddressType(IntEnum):
    """地址类型（ATYP）"""
    IPV4 = 0x01
    DOMAIN = 0x03
    IPV6 = 0x04


class ReplyCode(IntEnum):
    """应答码（REP）"""
    SUCCEEDED = 0x00
    GENERAL_FAILURE = 0x01
    NOT_ALLOWED = 0x02
    NETWORK_UNREACHABLE = 0x03
    HOST_UNREACHABLE = 0x04
    CONNECTION_REFUSED = 0x05
    TTL_EXPIRED = 0x06
    COMMAND_NOT_SUPPORTED = 0x07
    ADDRESS_TYPE_NOT_SUPPORTED = 0x08


IPV4_LENGTH = 4
IPV6_LENGTH = 16
PORT_LENGTH = 2

# 失败应答使用的绑定地址
UNSPECIFIED_ADDRESS = ('0.0.0.0', 0)


AddressValue = Union[ipaddress.IPv4Address, ipaddress.IPv6Address, str]


# ============================================================================
# 连接请求
# ============================================================================

@dataclass(frozen=True)
class ConnectRequest:
    """
    已解析的 CONNECT 请求

    创建后不可修改，生命周期为一次握手。域名不在此处解析，交给 Connector 处理。

    Attributes:
        address_type: 地址类型
        address: IPv4Address / IPv6Address，或按 UTF-8 宽松解码的域名字符串
        port: 目标端口（0-65535）
    """
    address_type: AddressType
    address: AddressValue
    port: int

    @property
    def host(self) -> str:
        """用于名称解析的主机字符串"""
        return str(self.address)

    def __str__(self) -> str:
        if self.address_type == AddressType.IPV6:
            return f"[{self.address}]:{self.port}"
        return f"{self.address}:{self.port}"

    def target(self) -> Tuple[str, int]:
        return self.host, self.port
