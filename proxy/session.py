"""
SOCKS5 客户端会话

按顺序完成一个已接受连接的全部处理:
    方法协商 -> 请求解析 -> 连接目标 -> 发送应答 -> 数据转发

状态只能向前推进:
    AWAITING_METHODS -> AWAITING_REQUEST -> CONNECTING -> RELAYING -> CLOSED
任何状态都可以进入吸收态 FAILED。任何协议违规都会立即结束会话。
"""

import asyncio
import itertools
import logging
from enum import IntEnum
from typing import Callable, Optional, Tuple

from logger import add_context
from protocol import (
    ReplyCode, ConnectRequest, UNSPECIFIED_ADDRESS, encode_reply,
    ProxyError, ProtocolError, ProxyIOError, HandshakeTimeout,
)
from .connector import Connector
from .negotiator import negotiate_methods
from .relay import RelayOutcome, relay
from .request import read_connect_request

logger = logging.getLogger('rock5-session')

_session_ids = itertools.count(1)


class SessionState(IntEnum):
    """会话状态，数值越大越靠后"""
    AWAITING_METHODS = 1
    AWAITING_REQUEST = 2
    CONNECTING = 3
    RELAYING = 4
    CLOSED = 5
    FAILED = 6


class ClientSession:
    """
    处理单个 SOCKS5 客户端连接的会话

    会话只属于处理它的任务，不与其他会话共享任何套接字或缓冲区。

    Attributes:
        reader: 客户端流读取器
        writer: 客户端流写入器
        peer: 客户端地址字符串
        session_id: 会话编号（进程内递增）
        state: 当前状态
        request: 解析出的 CONNECT 请求
        outcome: 转发结束后的字节统计
        reply_sent: 是否已向客户端发送过应答
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        connector: Connector,
        handshake_timeout: Optional[float] = 60.0,
        on_close: Optional[Callable[['ClientSession'], None]] = None
    ):
        self.reader = reader
        self.writer = writer
        self.connector = connector
        self.handshake_timeout = handshake_timeout
        self.on_close = on_close

        self.session_id = next(_session_ids)
        self.state = SessionState.AWAITING_METHODS
        self.request: Optional[ConnectRequest] = None
        self.outcome: Optional[RelayOutcome] = None
        self.error: Optional[BaseException] = None
        self.reply_sent = False
        self.local_addr: Optional[Tuple] = None

        self.target_writer: Optional[asyncio.StreamWriter] = None

        peer = writer.get_extra_info('peername')
        self.peer = f"{peer[0]}:{peer[1]}" if peer else "unknown"

    def _transition(self, new_state: SessionState):
        """推进状态；除进入 FAILED 外不允许回退或停留"""
        if self.state in (SessionState.CLOSED, SessionState.FAILED):
            raise RuntimeError(f"会话已结束，无法进入 {new_state.name}")
        if new_state != SessionState.FAILED and new_state <= self.state:
            raise RuntimeError(f"非法状态转换: {self.state.name} -> {new_state.name}")
        logger.debug(f"状态: {self.state.name} -> {new_state.name}")
        self.state = new_state

    async def run(self):
        """主会话处理器"""
        add_context(peer=self.peer, session_id=self.session_id)
        logger.info(f"接受来自 {self.peer} 的连接")

        target_reader = None
        try:
            if self.handshake_timeout:
                try:
                    await asyncio.wait_for(self._handshake(), timeout=self.handshake_timeout)
                except asyncio.TimeoutError as e:
                    raise HandshakeTimeout(f"握手超时 ({self.handshake_timeout}s)") from e
            else:
                await self._handshake()

            target_reader, self.target_writer, self.local_addr = \
                await self.connector.connect(self.request)

            await self._send_reply(ReplyCode.SUCCEEDED, self.local_addr)
            self._transition(SessionState.RELAYING)

            self.outcome = await relay(self.reader, self.writer, target_reader, self.target_writer)
            self._transition(SessionState.CLOSED)
            logger.info(
                f"连接关闭 {self.peer} -> {self.request}: "
                f"发送 {self.outcome.bytes_client_to_target} 字节, "
                f"接收 {self.outcome.bytes_target_to_client} 字节"
            )

        except asyncio.CancelledError:
            self._transition(SessionState.FAILED)
            raise
        except ProtocolError as e:
            logger.warning(f"协议错误 ({type(e).__name__}): {e}")
            await self._fail(e)
        except ProxyIOError as e:
            outcome = getattr(e, 'outcome', None)
            if outcome is not None:
                self.outcome = outcome
            logger.info(f"会话 I/O 结束 ({type(e).__name__}): {e}")
            await self._fail(e)
        except ProxyError as e:
            logger.warning(f"会话失败 ({type(e).__name__}): {e}")
            await self._fail(e)
        except OSError as e:
            logger.info(f"连接错误: {e!r}")
            await self._fail(e)
        except Exception as e:
            logger.error(f"会话意外错误: {e!r}")
            logger.debug("异常详情", exc_info=True)
            await self._fail(e)
        finally:
            await self._cleanup()

    async def _handshake(self):
        """方法协商和请求解析，两者都在握手超时的范围内"""
        await negotiate_methods(self.reader, self.writer)
        self._transition(SessionState.AWAITING_REQUEST)

        self.request = await read_connect_request(self.reader)
        logger.info(f"客户端 {self.peer} 请求连接: {self.request}")
        self._transition(SessionState.CONNECTING)

    async def _send_reply(self, rep: ReplyCode, bind_addr: Tuple):
        self.writer.write(encode_reply(rep, bind_addr))
        await self.writer.drain()
        self.reply_sent = True

    async def _fail(self, error: BaseException):
        """
        进入 FAILED 状态，并尽力发送失败应答

        仅当方法协商已完成、尚未发送过应答且错误携带应答码时才发送。
        发送失败只记录日志，因为客户端连接无论如何都会被放弃。
        """
        self.error = error
        state = self.state
        if state not in (SessionState.CLOSED, SessionState.FAILED):
            self._transition(SessionState.FAILED)

        rep = getattr(error, 'reply_code', None)
        if rep is None or self.reply_sent:
            return
        if state not in (SessionState.AWAITING_REQUEST, SessionState.CONNECTING):
            return

        try:
            await self._send_reply(rep, self.local_addr or UNSPECIFIED_ADDRESS)
            logger.debug(f"已发送失败应答: {rep.name}")
        except (ConnectionError, OSError) as e:
            logger.debug(f"发送失败应答出错: {e!r}")

    def abort(self):
        """立即中止会话的所有连接，不做排空"""
        for writer in (self.target_writer, self.writer):
            if writer is not None and writer.transport is not None:
                writer.transport.abort()

    async def _cleanup(self):
        """关闭目标和客户端连接"""
        try:
            for writer in (self.target_writer, self.writer):
                if writer is None:
                    continue
                try:
                    writer.close()
                    await writer.wait_closed()
                except (ConnectionError, OSError) as e:
                    logger.debug(f"关闭连接时出错: {e!r}")
        finally:
            if self.on_close:
                self.on_close(self)
