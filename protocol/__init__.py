"""
rock5 SOCKS5 协议包

本包提供 SOCKS5 协议的定义和编解码实现，包括：
- 协议常量和枚举（版本、方法、命令、地址类型、应答码）
- CONNECT 请求数据类
- 地址字段和应答的编解码
- 错误类型

使用示例：
    from protocol import ReplyCode, encode_reply

    reply = encode_reply(ReplyCode.SUCCEEDED, ('127.0.0.1', 40000))
"""

from .core import (
    # 协议常量
    SOCKS5,
    UNSPECIFIED_ADDRESS,

    # 枚举
    AuthMethod,
    Command,
    AddressType,
    ReplyCode,

    # 请求数据类
    ConnectRequest,
)
from .codec import (
    read_exactly,
    decode_address,
    decode_port,
    encode_address,
    encode_reply,
)
from .errors import (
    ProxyError,
    ProtocolError,
    UnsupportedVersion,
    NoMethodsOffered,
    NoAcceptableAuthMethod,
    MalformedRequest,
    UnsupportedCommand,
    UnsupportedAddressType,
    ResolutionError,
    TargetUnresolvable,
    ConnectError,
    ProxyIOError,
    StreamClosed,
    HandshakeTimeout,
    RelayError,
)
