"""
Timeout governor：在 deadline 内等待响应就绪。

说明：
- 协作式、单线程：调用方线程自己驱动 dispatcher，不创建 worker 线程；
- 每轮只处理一个 I/O 事件，然后重新检查 ready 标志；
- 除超时外没有取消路径：命令一旦写入 stdin，sqlite3 仍会执行它。
"""

from __future__ import annotations

import time
from typing import Callable

from sqlite_cli.core.errors import EngineError, QueryTimeoutError


def wait_until_ready(
    *,
    is_ready: Callable[[], bool],
    pump: Callable[[float], bool],
    output_open: Callable[[], bool],
    deadline: float,
    issued_at: float,
    command: str,
    timeout_ms: int,
    stderr_text: Callable[[], str],
) -> None:
    """
    反复驱动 dispatcher，直到 `is_ready()` 为真或超过 deadline。

    参数：
    - is_ready：ready 标志读取函数
    - pump：处理一个 I/O 事件，参数为最长等待秒数
    - output_open：stdout 是否仍可能有数据（False 表示进程已关闭输出）
    - deadline / issued_at：`time.monotonic()` 时间点
    - command / timeout_ms：用于错误诊断
    - stderr_text：读取本次命令期间收集到的 stderr

    异常：
    - QueryTimeoutError：超过 deadline 仍未就绪
    - EngineError(ENGINE_EXITED)：sentinel 到达前 stdout 已 EOF
    """

    while not is_ready():
        now = time.monotonic()
        if now > deadline:
            raise QueryTimeoutError(
                command=command,
                timeout_ms=timeout_ms,
                elapsed_ms=int((now - issued_at) * 1000),
            )
        if not output_open():
            stderr = stderr_text()
            raise EngineError(
                stderr.strip() or "sqlite3 closed its output before answering",
                command=command,
                stderr=stderr,
                code="ENGINE_EXITED",
            )
        pump(deadline - now)
