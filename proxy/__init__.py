"""
rock5 SOCKS5 代理模块

本模块实现代理的会话处理流程：
- 方法协商（negotiator）
- 请求解析（request）
- 出站连接（connector）
- 双向转发（relay）
- 会话状态机（session）
- 服务端与接收循环（server）

使用示例：
    from proxy import ProxyServer
    async with ProxyServer(config) as server:
        await server.serve_forever()
"""

from .connector import Connector, map_connect_error
from .negotiator import negotiate_methods
from .relay import RelayOutcome, relay
from .request import read_connect_request


# 延迟导入会话和服务端模块，它们依赖顶层的 logger 和 config 模块
def __getattr__(name):
    if name in ('ClientSession', 'SessionState'):
        from . import session
        return getattr(session, name)
    elif name in ('ProxyServer', 'ServerStats'):
        from . import server
        return getattr(server, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

__all__ = [
    'Connector',
    'map_connect_error',
    'negotiate_methods',
    'RelayOutcome',
    'relay',
    'read_connect_request',
    'ClientSession',
    'SessionState',
    'ProxyServer',
    'ServerStats',
]
