"""
sqlite3 子进程会话（Process Session）。

职责：
- 启动 `sqlite3 <path>`，持有 stdin/stdout/stderr 三个管道与进程句柄；
- 把 stdout/stderr 注册到 `IoDispatcher`，数据到达时转交给调用方提供的 sink；
- 生命周期：未启动 → OPEN → CLOSED；资源（管道、selector、进程）只释放一次。

说明：
- 子进程退出被建模为一次性 future（`exited`），可能在 close 之前、之中或之后被解析；
- 两个输出管道都到达 EOF 时视为进程正在退出：若已退出则回收进程并释放管道（不阻塞）；
- 本模块不理解 SQL，也不理解 sentinel；framing 由 `protocol.py` 负责。
"""

from __future__ import annotations

import logging
import os
import subprocess
from concurrent.futures import Future
from enum import Enum
from typing import Callable, List, Optional, Sequence

from sqlite_cli.core.dispatcher import IoDispatcher
from sqlite_cli.core.errors import AlreadyClosedError, EngineError, NotConnectedError, SpawnFailedError

logger = logging.getLogger(__name__)

ChunkSink = Callable[[bytes], None]


class SessionState(str, Enum):
    """Session 生命周期状态。"""

    OPEN = "open"
    CLOSED = "closed"


class ProcessSession:
    """
    一个 sqlite3 子进程及其三个字节流。

    参数：
    - argv：完整命令行（例如 `["sqlite3", ":memory:"]`）
    - on_stdout / on_stderr：数据到达时的回调（参数为新到达的字节块）
    - read_chunk_bytes：单次 read 的最大字节数
    - close_timeout_ms：close 时等待子进程退出的最长时间，超时后 kill
    - debug：是否输出 DEBUG trace
    """

    def __init__(
        self,
        *,
        argv: Sequence[str],
        on_stdout: ChunkSink,
        on_stderr: ChunkSink,
        read_chunk_bytes: int = 64 * 1024,
        close_timeout_ms: int = 1000,
        debug: bool = False,
    ) -> None:
        """创建会话对象（不启动进程；见 `spawn()`）。"""

        if not argv:
            raise ValueError("argv must not be empty")
        self._argv: List[str] = [str(a) for a in argv]
        self._on_stdout = on_stdout
        self._on_stderr = on_stderr
        self._read_chunk_bytes = int(read_chunk_bytes)
        self._close_timeout_sec = max(0, int(close_timeout_ms)) / 1000.0
        self._debug = bool(debug)

        self._dispatcher = IoDispatcher()
        self._proc: Optional[subprocess.Popen[bytes]] = None
        self._state: Optional[SessionState] = None
        self._released = False
        self.exited: "Future[int]" = Future()

    @property
    def argv(self) -> List[str]:
        """启动子进程使用的 argv（副本）。"""

        return list(self._argv)

    @property
    def state(self) -> Optional[SessionState]:
        """当前生命周期状态；尚未 spawn 时为 None。"""

        return self._state

    @property
    def pid(self) -> Optional[int]:
        """子进程 pid（未启动时为 None）。"""

        return None if self._proc is None else self._proc.pid

    @property
    def output_open(self) -> bool:
        """stdout 是否仍可能有数据到达（未 EOF 且未释放）。"""

        if self._proc is None or self._released or self._proc.stdout is None:
            return False
        return self._dispatcher.is_registered(self._proc.stdout.fileno())

    def _trace(self, msg: str, *args: object) -> None:
        """debug 打开时输出 trace 日志（不影响控制流）。"""

        if self._debug:
            logger.debug(msg, *args)

    def spawn(self) -> None:
        """
        启动子进程并注册输出管道。

        异常：
        - SpawnFailedError：可执行文件不存在、无权限或其它 OSError（同步抛出，不会表现为 hang）
        """

        if self._state is not None:
            raise RuntimeError("session already spawned")
        self._trace("spawning %s", self._argv)
        try:
            proc = subprocess.Popen(  # noqa: S603
                self._argv,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                bufsize=0,
                close_fds=True,
            )
        except OSError as exc:
            raise SpawnFailedError(
                f"failed to start {self._argv[0]}: {exc.strerror or exc}",
                details={"argv": list(self._argv), "errno": exc.errno, "reason": str(exc)},
            ) from exc

        assert proc.stdout is not None and proc.stderr is not None
        self._proc = proc
        self._dispatcher.register(proc.stdout.fileno(), lambda fd: self._on_readable(fd, self._on_stdout, "stdout"))
        self._dispatcher.register(proc.stderr.fileno(), lambda fd: self._on_readable(fd, self._on_stderr, "stderr"))
        self._state = SessionState.OPEN
        self._trace("spawned pid=%s", proc.pid)

    def ensure_open(self) -> None:
        """
        断言会话处于 OPEN。

        异常：
        - NotConnectedError：尚未 spawn，或已 close
        """

        if self._state is not SessionState.OPEN:
            raise NotConnectedError(
                "database session is not open",
                details={"state": None if self._state is None else self._state.value},
            )

    def write(self, data: bytes) -> None:
        """
        把字节完整写入子进程 stdin。

        异常：
        - NotConnectedError：会话不是 OPEN
        - EngineError(ENGINE_EXITED)：子进程已退出 / 管道已断开
        """

        self.ensure_open()
        assert self._proc is not None and self._proc.stdin is not None
        if self._released or self.exited.done():
            raise self._exited_error(command=data.decode("utf-8", errors="replace"))
        fd = self._proc.stdin.fileno()
        view = memoryview(data)
        try:
            while view:
                written = os.write(fd, view)
                view = view[written:]
        except BrokenPipeError as exc:
            raise self._exited_error(command=data.decode("utf-8", errors="replace")) from exc

    def pump(self, timeout: float) -> bool:
        """驱动 dispatcher 处理一个 I/O 事件（最多等待 timeout 秒）。"""

        if self._released:
            return False
        return self._dispatcher.run_once(timeout)

    def drain(self) -> int:
        """处理所有已就绪的 I/O 事件（不等待）。"""

        if self._released:
            return 0
        return self._dispatcher.drain()

    def close(self) -> None:
        """
        优雅关闭：写 `.exit`、释放管道、回收进程。

        异常：
        - AlreadyClosedError：会话不是 OPEN（重复 close 属于编程错误）
        """

        if self._state is not SessionState.OPEN:
            raise AlreadyClosedError(
                "database session is already closed",
                details={"state": None if self._state is None else self._state.value},
            )
        self._state = SessionState.CLOSED
        self._trace("closing pid=%s", self.pid)
        if not self._released and not self.exited.done():
            assert self._proc is not None and self._proc.stdin is not None
            try:
                os.write(self._proc.stdin.fileno(), b".exit\n")
            except BrokenPipeError:
                self._trace("stdin already closed by sqlite3")
        self._release_streams()
        self._reap()

    def _exited_error(self, *, command: str) -> EngineError:
        """构造“子进程已退出”的 EngineError。"""

        exit_code = self.exited.result() if self.exited.done() else None
        return EngineError(
            "sqlite3 process has exited",
            command=command,
            code="ENGINE_EXITED",
            details={"exit_code": exit_code},
        )

    def _on_readable(self, fd: int, sink: ChunkSink, name: str) -> None:
        """fd 可读回调：读取一块数据交给 sink；EOF 时注销 fd。"""

        try:
            chunk = os.read(fd, self._read_chunk_bytes)
        except BlockingIOError:
            return
        if chunk:
            self._trace("%s chunk: %r", name, chunk)
            sink(chunk)
            return
        self._trace("%s reached EOF", name)
        self._dispatcher.unregister(fd)
        if not self._dispatcher.active:
            self._on_streams_eof()

    def _on_streams_eof(self) -> None:
        """两个输出管道都 EOF：子进程已退出时回收并释放资源；仍存活则留给 `close()` 回收。"""

        assert self._proc is not None
        # 这里运行在 governor 的等待循环里，不能阻塞
        code = self._proc.poll()
        if code is None:
            self._trace("output streams closed but pid=%s is still running", self._proc.pid)
            return
        self._resolve_exit(code)
        self._release_streams()

    def _release_streams(self) -> None:
        """关闭 selector 与三个管道（幂等）。"""

        if self._released:
            return
        self._released = True
        self._dispatcher.close()
        if self._proc is None:
            return
        for stream in (self._proc.stdin, self._proc.stdout, self._proc.stderr):
            if stream is not None:
                stream.close()
        self._trace("streams released")

    def _reap(self) -> None:
        """等待子进程退出（最多 close_timeout），超时则 kill。"""

        if self._proc is None or self.exited.done():
            return
        try:
            code = self._proc.wait(timeout=self._close_timeout_sec)
        except subprocess.TimeoutExpired:
            logger.warning("sqlite3 pid=%s did not exit after %.3fs; killing", self._proc.pid, self._close_timeout_sec)
            self._proc.kill()
            code = self._proc.wait()
        self._resolve_exit(code)

    def _resolve_exit(self, code: int) -> None:
        """解析 exited future（只解析一次）。"""

        if self.exited.done():
            return
        self._trace("sqlite3 exited with code %s", code)
        self.exited.set_result(int(code))
