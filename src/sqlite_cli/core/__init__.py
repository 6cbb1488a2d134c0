"""核心协议：子进程会话、命令帧、超时控制与结果解码。"""

from __future__ import annotations

from sqlite_cli.core.decoder import DecodeMode, decode_response, ensure_terminated
from sqlite_cli.core.process_session import ProcessSession, SessionState
from sqlite_cli.core.protocol import FramedQueryProtocol, PendingResponse

__all__ = [
    "DecodeMode",
    "FramedQueryProtocol",
    "PendingResponse",
    "ProcessSession",
    "SessionState",
    "decode_response",
    "ensure_terminated",
]
