"""
错误分类（异常类型）。

说明：
- 所有对外异常均继承 `SqliteCliError`，并携带稳定的 `code/message/details`；
- 异常总是同步抛给直接调用方：本包不吞异常、不自动重试（写语句超时后盲目重试可能导致重复执行）；
- `to_issue()` 把异常投影为可序列化对象，供 CLI 输出 JSON。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class ErrorIssue:
    """结构化错误对象（可 JSON 序列化）。"""

    code: str
    message: str
    details: Dict[str, Any]


class SqliteCliError(Exception):
    """错误基类（英文 `code/message/details`）。"""

    default_code = "SQLITE_CLI_ERROR"

    def __init__(self, message: str, *, code: Optional[str] = None, details: Dict[str, Any] | None = None) -> None:
        """创建错误。

        参数：
        - `message`：英文错误消息
        - `code`：稳定错误码（英文大写下划线）；缺省为类上的 `default_code`
        - `details`：结构化上下文（命令文本、超时配置、原始输出等）
        """

        super().__init__(message)
        self.code = code or self.default_code
        self.message = message
        self.details: Dict[str, Any] = details or {}

    def __str__(self) -> str:
        """返回用于日志的字符串表示。"""

        return f"{self.code}: {self.message}"

    def to_issue(self) -> ErrorIssue:
        """把异常转换为可序列化问题对象。"""

        return ErrorIssue(code=self.code, message=self.message, details=dict(self.details))


class ConfigError(SqliteCliError):
    """配置文件缺失/格式错误/校验失败。"""

    default_code = "CONFIG_INVALID"


class SpawnFailedError(SqliteCliError):
    """sqlite3 进程无法启动（可执行文件不存在、无执行权限等）；在 open 时同步抛出。"""

    default_code = "SPAWN_FAILED"


class NotConnectedError(SqliteCliError):
    """在已关闭（或从未打开）的 session 上执行操作（编程错误）。"""

    default_code = "NOT_CONNECTED"


class AlreadyClosedError(SqliteCliError):
    """重复 close（编程错误）。"""

    default_code = "ALREADY_CLOSED"


class QueryTimeoutError(SqliteCliError):
    """
    在 deadline 前未观察到 sentinel。

    说明：
    - 超时后 session 内部的 framing 状态不可再信任；推荐的恢复方式是 close 后重新 open。
    """

    default_code = "QUERY_TIMEOUT"

    def __init__(self, *, command: str, timeout_ms: int, elapsed_ms: int) -> None:
        """
        创建超时错误。

        参数：
        - `command`：超时的命令文本
        - `timeout_ms`：配置的超时毫秒数
        - `elapsed_ms`：实际等待的毫秒数
        """

        super().__init__(
            f"sqlite3 did not answer within {timeout_ms} ms",
            details={"command": command, "timeout_ms": timeout_ms, "elapsed_ms": elapsed_ms},
        )
        self.command = command
        self.timeout_ms = timeout_ms
        self.elapsed_ms = elapsed_ms


class EngineError(SqliteCliError):
    """sqlite3 在 stderr 上报告了错误（或进程在响应前退出）。"""

    default_code = "ENGINE_ERROR"

    def __init__(
        self,
        message: str,
        *,
        command: str,
        stderr: str = "",
        code: Optional[str] = None,
        details: Dict[str, Any] | None = None,
    ) -> None:
        """
        创建引擎错误。

        参数：
        - `message`：英文错误消息（通常即 sqlite3 的诊断文本）
        - `command`：触发错误的命令文本
        - `stderr`：本次命令期间收集到的 stderr 原文
        - `code`：`ENGINE_ERROR`（默认）或 `ENGINE_EXITED`
        - `details`：额外上下文（例如 exit_code）
        """

        merged: Dict[str, Any] = {"command": command, "stderr": stderr}
        merged.update(details or {})
        super().__init__(message, code=code, details=merged)
        self.command = command
        self.stderr = stderr


class DecodeFailedError(SqliteCliError):
    """请求了结构化解码，但响应不是合法 JSON。"""

    default_code = "DECODE_FAILED"

    def __init__(self, message: str, *, raw: str) -> None:
        """
        创建解码错误。

        参数：
        - `message`：英文错误消息（包含 JSON 解析器的原因）
        - `raw`：sentinel 剥离后的原始响应文本
        """

        super().__init__(message, details={"raw": raw})
        self.raw = raw


class UnexpectedShapeError(SqliteCliError):
    """响应是合法 JSON，但不是 row-list / row-object 形态。"""

    default_code = "UNEXPECTED_SHAPE"

    def __init__(self, message: str, *, raw: str, actual: str) -> None:
        """
        创建形态错误。

        参数：
        - `message`：英文错误消息
        - `raw`：原始响应文本
        - `actual`：解析后值的 Python 类型名
        """

        super().__init__(message, details={"raw": raw, "actual": actual})
        self.raw = raw


class ModelError(SqliteCliError):
    """ORM 使用错误（未连接、主键定义不满足要求等）。"""

    default_code = "MODEL_ERROR"


class ModelNotConnectedError(ModelError):
    """Model 尚未 connect 就被调用。"""

    default_code = "MODEL_NOT_CONNECTED"
