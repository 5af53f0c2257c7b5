#!/usr/bin/env python3
"""
SOCKS5 协议单元测试

测试内容:
1. 地址编解码（IPv4 / IPv6 / 域名 / 未知类型）
2. 应答编码
3. 方法协商（接受、拒绝、版本错误、零方法）
4. 请求解析（版本、保留字节、命令、截断）
5. 连接错误到应答码的映射

使用方法:
    python3 -m pytest test_protocol.py
"""

import asyncio
import errno
import ipaddress
import os
import sys

import pytest

# 添加当前目录到路径
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from protocol import (
    AddressType, ReplyCode, UNSPECIFIED_ADDRESS,
    decode_address, encode_address, encode_reply,
    UnsupportedVersion, NoMethodsOffered, NoAcceptableAuthMethod,
    MalformedRequest, UnsupportedCommand, UnsupportedAddressType, StreamClosed,
)
from proxy.connector import map_connect_error
from proxy.negotiator import negotiate_methods
from proxy.request import read_connect_request


class MockStreamWriter:
    """记录写入数据的 StreamWriter 替身"""

    def __init__(self):
        self.written_data = b''
        self.closed = False

    def write(self, data: bytes):
        self.written_data += data

    async def drain(self):
        pass

    def close(self):
        self.closed = True

    async def wait_closed(self):
        pass

    def get_extra_info(self, name: str):
        if name == 'peername':
            return ('127.0.0.1', 12345)
        return None


def make_reader(data: bytes) -> asyncio.StreamReader:
    """创建已写入数据并结束的 StreamReader（必须在事件循环中调用）"""
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    reader.feed_eof()
    return reader


def run(coro):
    return asyncio.run(coro)


# ============================================================================
# 地址编解码
# ============================================================================

def test_decode_ipv4_address():
    async def _test():
        return await decode_address(AddressType.IPV4, make_reader(bytes([10, 0, 0, 1])))
    assert run(_test()) == ipaddress.IPv4Address('10.0.0.1')


def test_decode_ipv6_address():
    raw = ipaddress.IPv6Address('2001:db8::1').packed

    async def _test():
        return await decode_address(AddressType.IPV6, make_reader(raw))
    assert run(_test()) == ipaddress.IPv6Address('2001:db8::1')


def test_decode_domain_address():
    async def _test():
        return await decode_address(AddressType.DOMAIN, make_reader(b'\x0bexample.com'))
    assert run(_test()) == 'example.com'


def test_decode_domain_is_utf8_lossy():
    async def _test():
        return await decode_address(AddressType.DOMAIN, make_reader(b'\x03a\xffb'))
    assert run(_test()) == 'a\ufffdb'


def test_decode_empty_domain():
    async def _test():
        return await decode_address(AddressType.DOMAIN, make_reader(b'\x00'))
    assert run(_test()) == ''


def test_decode_unknown_address_type():
    async def _test():
        await decode_address(0x02, make_reader(b'\x00' * 8))
    with pytest.raises(UnsupportedAddressType):
        run(_test())


def test_decode_truncated_address():
    async def _test():
        await decode_address(AddressType.IPV4, make_reader(b'\x7f\x00'))
    with pytest.raises(StreamClosed):
        run(_test())


def test_encode_address():
    assert encode_address('192.168.1.2') == b'\x01\xc0\xa8\x01\x02'
    assert encode_address('::1') == b'\x04' + b'\x00' * 15 + b'\x01'


def test_encode_address_rejects_domain():
    with pytest.raises(ValueError):
        encode_address('example.com')


# ============================================================================
# 应答编码
# ============================================================================

def test_encode_success_reply_ipv4():
    reply = encode_reply(ReplyCode.SUCCEEDED, ('127.0.0.1', 0x1F90))
    assert reply == bytes([5, 0, 0, 1, 127, 0, 0, 1, 0x1F, 0x90])


def test_encode_failure_reply_unspecified():
    reply = encode_reply(ReplyCode.GENERAL_FAILURE, UNSPECIFIED_ADDRESS)
    assert reply == bytes([5, 1, 0, 1, 0, 0, 0, 0, 0, 0])


def test_encode_reply_ipv6_sockname():
    # getsockname() 对 IPv6 返回四元组
    reply = encode_reply(ReplyCode.CONNECTION_REFUSED, ('::1', 1080, 0, 0))
    assert reply[:4] == bytes([5, 5, 0, 4])
    assert len(reply) == 4 + 16 + 2
    assert reply[-2:] == b'\x04\x38'


# ============================================================================
# 方法协商
# ============================================================================

def test_negotiate_accepts_no_auth():
    writer = MockStreamWriter()

    async def _test():
        return await negotiate_methods(make_reader(b'\x05\x02\x02\x00'), writer)
    assert run(_test()) == b'\x02\x00'
    assert writer.written_data == b'\x05\x00'


def test_negotiate_rejects_without_no_auth():
    writer = MockStreamWriter()

    async def _test():
        await negotiate_methods(make_reader(b'\x05\x01\x02'), writer)
    with pytest.raises(NoAcceptableAuthMethod):
        run(_test())
    assert writer.written_data == b'\x05\xff'


def test_negotiate_wrong_version():
    writer = MockStreamWriter()

    async def _test():
        await negotiate_methods(make_reader(b'\x04\x01\x00'), writer)
    with pytest.raises(UnsupportedVersion):
        run(_test())
    assert writer.written_data == b''


def test_negotiate_zero_methods():
    writer = MockStreamWriter()

    async def _test():
        await negotiate_methods(make_reader(b'\x05\x00'), writer)
    with pytest.raises(NoMethodsOffered):
        run(_test())
    assert writer.written_data == b''


def test_negotiate_truncated_methods():
    async def _test():
        await negotiate_methods(make_reader(b'\x05\x03\x00'), MockStreamWriter())
    with pytest.raises(StreamClosed):
        run(_test())


# ============================================================================
# 请求解析
# ============================================================================

def test_parse_ipv4_connect():
    async def _test():
        return await read_connect_request(make_reader(b'\x05\x01\x00\x01\x7f\x00\x00\x01\x00\x50'))
    request = run(_test())
    assert request.address_type == AddressType.IPV4
    assert request.host == '127.0.0.1'
    assert request.port == 80


def test_parse_domain_connect():
    async def _test():
        return await read_connect_request(make_reader(b'\x05\x01\x00\x03\x09localhost\x01\xbb'))
    request = run(_test())
    assert request.address_type == AddressType.DOMAIN
    assert request.target() == ('localhost', 443)
    assert str(request) == 'localhost:443'


def test_parse_ipv6_connect():
    data = b'\x05\x01\x00\x04' + ipaddress.IPv6Address('::1').packed + b'\x1f\x90'

    async def _test():
        return await read_connect_request(make_reader(data))
    request = run(_test())
    assert request.host == '::1'
    assert str(request) == '[::1]:8080'


def test_parse_request_wrong_version():
    async def _test():
        await read_connect_request(make_reader(b'\x04\x01\x00\x01\x7f\x00\x00\x01\x00\x50'))
    with pytest.raises(UnsupportedVersion):
        run(_test())


def test_parse_request_nonzero_reserved():
    async def _test():
        await read_connect_request(make_reader(b'\x05\x01\x01\x01\x7f\x00\x00\x01\x00\x50'))
    with pytest.raises(MalformedRequest) as exc_info:
        run(_test())
    assert exc_info.value.reply_code == ReplyCode.GENERAL_FAILURE


@pytest.mark.parametrize('cmd', [0x02, 0x03, 0x09])
def test_parse_request_unsupported_command(cmd):
    async def _test():
        await read_connect_request(make_reader(bytes([5, cmd, 0, 1, 127, 0, 0, 1, 0, 80])))
    with pytest.raises(UnsupportedCommand) as exc_info:
        run(_test())
    assert exc_info.value.reply_code == ReplyCode.GENERAL_FAILURE


def test_parse_request_unsupported_address_type():
    async def _test():
        await read_connect_request(make_reader(b'\x05\x01\x00\x05\x00\x00'))
    with pytest.raises(UnsupportedAddressType):
        run(_test())


def test_parse_request_truncated_port():
    async def _test():
        await read_connect_request(make_reader(b'\x05\x01\x00\x01\x7f\x00\x00\x01\x00'))
    with pytest.raises(StreamClosed):
        run(_test())


# ============================================================================
# 连接错误映射
# ============================================================================

def test_map_connect_error_table():
    assert map_connect_error(ConnectionRefusedError()) == ReplyCode.CONNECTION_REFUSED
    assert map_connect_error(OSError(errno.EADDRNOTAVAIL, 'x')) == ReplyCode.HOST_UNREACHABLE
    assert map_connect_error(OSError(errno.ETIMEDOUT, 'x')) == ReplyCode.TTL_EXPIRED
    assert map_connect_error(asyncio.TimeoutError()) == ReplyCode.TTL_EXPIRED
    assert map_connect_error(OSError(errno.ENETUNREACH, 'x')) == ReplyCode.GENERAL_FAILURE
    assert map_connect_error(RuntimeError('x')) == ReplyCode.GENERAL_FAILURE
