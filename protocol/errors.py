"""
rock5 - 错误类型模块

定义 SOCKS5 代理会话中可能出现的所有错误。

错误分类:
1. ProtocolError   - 客户端违反 SOCKS5 协议（版本、保留字节、命令、地址类型等）
2. ResolutionError - 目标主机名无法解析
3. ConnectError    - 出站 TCP 连接失败（已映射为 SOCKS5 应答码）
4. ProxyIOError    - 客户端或目标连接的读写失败

所有错误都只影响当前会话，不会传播到接收循环。
每个错误携带一个可选的 reply_code，表示在仍可应答时应发送给客户端的 SOCKS5 应答码；
为 None 表示不发送应答，直接关闭连接。
"""

from typing import Optional

from .core import ReplyCode


class ProxyError(Exception):
    """代理会话错误基类"""

    reply_code: Optional[ReplyCode] = None

    def __init__(self, message: str = '', reply_code: Optional[ReplyCode] = None):
        super().__init__(message)
        if reply_code is not None:
            self.reply_code = reply_code


# ============================================================================
# 协议错误
# ============================================================================

class ProtocolError(ProxyError):
    """
    客户端发送了不符合 SOCKS5 协议的数据

    方法协商完成之前不会发送应答，因此协商阶段的错误虽然携带应答码也不会发出。
    """
    reply_code = ReplyCode.GENERAL_FAILURE


class UnsupportedVersion(ProtocolError):
    """版本字节不是 0x05"""


class NoMethodsOffered(ProtocolError):
    """方法协商中 NMETHODS 为 0"""


class NoAcceptableAuthMethod(ProtocolError):
    """客户端未提供“无需认证”方法（已回复 05 FF）"""


class MalformedRequest(ProtocolError):
    """请求格式错误（例如保留字节不为 0x00）"""


class UnsupportedCommand(ProtocolError):
    """命令不是 CONNECT（BIND / UDP ASSOCIATE 不支持）"""


class UnsupportedAddressType(ProtocolError):
    """未知的 ATYP 地址类型"""


# ============================================================================
# 解析与连接错误
# ============================================================================

class ResolutionError(ProxyError):
    """目标地址解析失败"""
    reply_code = ReplyCode.GENERAL_FAILURE


class TargetUnresolvable(ResolutionError):
    """名称解析没有返回任何地址"""


class ConnectError(ProxyError):
    """
    出站连接失败

    reply_code 由 connector.map_connect_error 根据底层 OSError 决定，
    原始异常保存在 __cause__ 中。
    """
    reply_code = ReplyCode.GENERAL_FAILURE


# ============================================================================
# I/O 错误（从不触发应答）
# ============================================================================

class ProxyIOError(ProxyError):
    """客户端或目标连接读写失败"""


class StreamClosed(ProxyIOError):
    """对端在握手过程中关闭了连接"""


class HandshakeTimeout(ProxyIOError):
    """握手未在限定时间内完成"""


class RelayError(ProxyIOError):
    """
    数据转发过程中发生错误

    Attributes:
        outcome: 出错前已转发的字节统计（RelayOutcome）
    """

    def __init__(self, message: str, outcome=None):
        super().__init__(message)
        self.outcome = outcome
