"""
双向数据转发

两个方向各由一个独立的复制循环完成，任一方向结束（EOF 或错误）即结束整个转发。
不做半关闭协商，不解析、不限速。
"""

import asyncio
import logging
from dataclasses import dataclass

from protocol import RelayError

logger = logging.getLogger('rock5-relay')

BUFFER_SIZE = 65536


@dataclass
class RelayOutcome:
    """
    转发结果统计，仅用于日志和统计

    Attributes:
        bytes_client_to_target: 客户端 -> 目标 的字节数
        bytes_target_to_client: 目标 -> 客户端 的字节数
    """
    bytes_client_to_target: int = 0
    bytes_target_to_client: int = 0

    @property
    def total(self) -> int:
        return self.bytes_client_to_target + self.bytes_target_to_client


async def _pipe(reader: asyncio.StreamReader, writer: asyncio.StreamWriter,
                outcome: RelayOutcome, field: str):
    """从 reader 复制到 writer 直到 EOF，实时累加 outcome 中的计数"""
    while True:
        data = await reader.read(BUFFER_SIZE)
        if not data:
            break
        writer.write(data)
        await writer.drain()
        setattr(outcome, field, getattr(outcome, field) + len(data))


async def relay(client_reader: asyncio.StreamReader, client_writer: asyncio.StreamWriter,
                target_reader: asyncio.StreamReader, target_writer: asyncio.StreamWriter) -> RelayOutcome:
    """
    在客户端和目标之间双向转发数据

    两个复制任务并发运行，先结束的一方决定转发结束，另一方被取消。
    调用方负责关闭两端连接。

    Returns:
        RelayOutcome: 两个方向的字节数

    Raises:
        RelayError: 先结束的方向发生读写错误（outcome 中保存已转发的字节数）
    """
    outcome = RelayOutcome()
    upstream = asyncio.ensure_future(
        _pipe(client_reader, target_writer, outcome, 'bytes_client_to_target'))
    downstream = asyncio.ensure_future(
        _pipe(target_reader, client_writer, outcome, 'bytes_target_to_client'))
    tasks = {upstream, downstream}

    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        # 等待被取消的任务结束，避免遗留未处理的异常
        await asyncio.gather(*tasks, return_exceptions=True)

    for task in done:
        exc = task.exception()
        if exc is not None:
            direction = '客户端->目标' if task is upstream else '目标->客户端'
            logger.debug(f"转发出错 ({direction}): {exc!r}")
            raise RelayError(f"转发出错 ({direction}): {exc}", outcome) from exc

    return outcome
