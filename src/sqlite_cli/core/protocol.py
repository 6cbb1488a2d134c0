"""
Framed query protocol（命令 + sentinel 帧）。

每条命令的写入格式：

    <command>\\n
    .print '<sentinel>'\\n

sqlite3 按顺序处理输入，因此无论命令本身输出多少行，stdout 最终都会出现 sentinel。
响应以“上次重置以来累计输出中第一个独占一行的 sentinel”为界；
行数据里恰好出现 sentinel 文本（例如 JSON 字符串值）不会提前结束响应。

约束：
- 严格 request/response：同一时刻最多一条未完成命令；
- 每条命令开始前重置 stdout/stderr 累加器与 ready 标志（新建 `PendingResponse`）；
- sentinel 可能跨越两个 chunk，因此在累计缓冲上查找，而不是逐 chunk 查找；
- 每条命令使用唯一 sentinel（`<prefix>:<seq>`）。超时被放弃的命令的 sentinel 会被记住：
  它迟到出现时，之前的字节都属于被放弃的命令，会被丢弃（stdout 因此重新对齐）；
  stderr 不分帧，在所有被放弃的 sentinel 出现之前，stderr 的归属不可信（`out_of_sync`）。
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Union

from sqlite_cli.core.errors import EngineError, QueryTimeoutError
from sqlite_cli.core.governor import wait_until_ready
from sqlite_cli.core.process_session import ProcessSession

logger = logging.getLogger(__name__)

TextOrBytes = Union[str, bytes, bytearray]


def find_sentinel_line(buf: TextOrBytes, marker: TextOrBytes, start: int = 0) -> int:
    """
    查找独占一行的 sentinel，返回其起始下标；找不到返回 -1。

    参数：
    - buf：累计缓冲（str 或 bytes）
    - marker：sentinel（与 buf 同类型）
    - start：`\\n<marker>\\n` 模式的查找起点（增量查找用）
    """

    newline = b"\n" if isinstance(buf, (bytes, bytearray)) else "\n"
    if buf.startswith(marker + newline):  # type: ignore[operator]
        return 0
    idx = buf.find(newline + marker + newline, start)  # type: ignore[operator]
    return -1 if idx == -1 else idx + 1


@dataclass
class PendingResponse:
    """单条命令的临时状态（累加器 + ready 标志 + deadline）。"""

    command: str
    sentinel: str
    issued_at: float
    deadline: float
    output: bytearray = field(default_factory=bytearray)
    error: bytearray = field(default_factory=bytearray)
    ready: bool = False

    def feed_output(self, chunk: bytes) -> None:
        """追加 stdout 字节；累计缓冲中出现独占一行的 sentinel 时置 ready。"""

        marker = self.sentinel.encode("utf-8")
        # `\n<marker>\n` 可能从上一块的末尾开始
        start = max(0, len(self.output) - len(marker) - 1)
        self.output.extend(chunk)
        if not self.ready and find_sentinel_line(self.output, marker, start) != -1:
            self.ready = True

    def feed_error(self, chunk: bytes) -> None:
        """追加 stderr 字节（stderr 不分帧）。"""

        self.error.extend(chunk)

    def error_text(self) -> str:
        """stderr 累加器的文本形式。"""

        return self.error.decode("utf-8", errors="replace")


class FramedQueryProtocol:
    """
    在 `ProcessSession` 之上实现“写命令 → 等 sentinel → 取响应”的同步协议。

    参数：
    - sentinel_prefix：sentinel 前缀（每条命令追加 `:<seq>`）
    - timeout_ms：单条命令的等待上限
    - debug：是否输出 DEBUG trace
    """

    def __init__(self, *, sentinel_prefix: str, timeout_ms: int, debug: bool = False) -> None:
        """创建协议对象；需随后调用 `bind()` 绑定会话。"""

        self._sentinel_prefix = sentinel_prefix
        self._timeout_ms = int(timeout_ms)
        self._debug = bool(debug)
        self._session: Optional[ProcessSession] = None
        self._pending: Optional[PendingResponse] = None
        self._sequence = 0
        self._abandoned: List[str] = []
        self._stray = bytearray()

    @property
    def timeout_ms(self) -> int:
        """单条命令的超时毫秒数。"""

        return self._timeout_ms

    @property
    def out_of_sync(self) -> bool:
        """是否还有被放弃（超时）命令的 sentinel 尚未出现。"""

        return bool(self._abandoned)

    def bind(self, session: ProcessSession) -> None:
        """绑定会话（会话的 stdout/stderr sink 应指向 `on_stdout/on_stderr`）。"""

        self._session = session

    def on_stdout(self, chunk: bytes) -> None:
        """stdout sink：追加到当前命令的累加器；无未完成命令时记为游离字节。"""

        pending = self._pending
        if pending is None:
            self._trace("stray stdout bytes: %d", len(chunk))
            self._stray.extend(chunk)
            return
        pending.feed_output(chunk)
        if pending.ready:
            self._trace("sentinel %s observed", pending.sentinel)

    def on_stderr(self, chunk: bytes) -> None:
        """stderr sink：追加到当前命令的 stderr 累加器；无未完成命令时丢弃。"""

        pending = self._pending
        if pending is None:
            self._trace("discarding %d stray stderr bytes", len(chunk))
            return
        pending.feed_error(chunk)

    def execute_raw(self, command: str) -> str:
        """
        执行一条命令并返回 sentinel 剥离、trim 后的原始响应文本。

        异常：
        - NotConnectedError：会话不是 OPEN
        - QueryTimeoutError：deadline 内未观察到 sentinel
        - EngineError：stderr 非空，或进程在响应前退出
        """

        session = self._require_session()
        session.ensure_open()
        if self._pending is not None:
            raise RuntimeError("a command is already in flight on this session")
        self._discard_stray()
        if self._abandoned:
            logger.warning(
                "executing on a session with %d timed-out command(s) still pending; error output may be misattributed",
                len(self._abandoned),
            )

        self._sequence += 1
        issued_at = time.monotonic()
        pending = PendingResponse(
            command=command,
            sentinel=f"{self._sentinel_prefix}:{self._sequence}",
            issued_at=issued_at,
            deadline=issued_at + self._timeout_ms / 1000.0,
        )
        self._pending = pending
        self._trace("executing: %s", command)
        try:
            session.write(f"{command}\n.print '{pending.sentinel}'\n".encode("utf-8"))
            wait_until_ready(
                is_ready=lambda: pending.ready,
                pump=session.pump,
                output_open=lambda: session.output_open,
                deadline=pending.deadline,
                issued_at=pending.issued_at,
                command=command,
                timeout_ms=self._timeout_ms,
                stderr_text=lambda: self._collect_stderr(session, pending),
            )
            # stderr 先于 sentinel 写出，但两个管道的事件顺序不确定：收尾时再处理一次已就绪事件
            session.drain()
        except QueryTimeoutError:
            self._abandoned.append(pending.sentinel)
            raise
        finally:
            self._pending = None

        stderr = pending.error_text()
        if stderr.strip():
            raise EngineError(stderr.strip(), command=command, stderr=stderr)
        return self._take_response(pending)

    def _take_response(self, pending: PendingResponse) -> str:
        """取出 sentinel 之前的文本，并丢弃其中属于被放弃命令的部分。"""

        text = pending.output.decode("utf-8", errors="replace")
        end = find_sentinel_line(text, pending.sentinel)
        if end == -1:
            return text.strip()
        head, tail = text[:end], text[end + len(pending.sentinel) :]
        if self._abandoned:
            head = self._skip_abandoned(head)
        return (head + tail).strip()

    def _skip_abandoned(self, text: str) -> str:
        """按顺序查找被放弃的 sentinel；找到则丢弃其之前（含自身）的文本。"""

        while self._abandoned:
            idx = find_sentinel_line(text, self._abandoned[0])
            if idx == -1:
                break
            self._trace("resynchronized past abandoned sentinel %s", self._abandoned[0])
            text = text[idx + len(self._abandoned[0]) :]
            self._abandoned.pop(0)
        return text

    def _discard_stray(self) -> None:
        """丢弃命令之间到达的游离 stdout 字节（同时消费其中的被放弃 sentinel）。"""

        if not self._stray:
            return
        self._skip_abandoned(self._stray.decode("utf-8", errors="replace"))
        self._stray.clear()

    def _collect_stderr(self, session: ProcessSession, pending: PendingResponse) -> str:
        """处理已就绪事件后返回本次命令的 stderr 文本。"""

        session.drain()
        return pending.error_text()

    def _require_session(self) -> ProcessSession:
        """返回已绑定的会话。"""

        if self._session is None:
            raise RuntimeError("protocol is not bound to a session")
        return self._session

    def _trace(self, msg: str, *args: object) -> None:
        """debug 打开时输出 trace 日志（不影响控制流）。"""

        if self._debug:
            logger.debug(msg, *args)
