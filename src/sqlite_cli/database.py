"""
Database：面向调用方的 session 句柄。

组成：
- `ProcessSession`：sqlite3 子进程与三个管道
- `FramedQueryProtocol`：命令 + sentinel 帧与超时等待
- `decode_response`：raw / structured 解码

对外操作：
- `open(path, config)` / `close()` / `execute(command, mode)` / `sql(command)`
- CRUD 便捷方法（insert/select/update/delete/create_table/drop_table/get_tables/get_columns）：
  只拼接 SQL 字符串并委托给 `execute` / `sql`，不绕过 framing 协议

并发：
- 一个 Database 同一时刻只允许一条命令；多个逻辑调用方需自行串行化（或各自 open 一个 session）。
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import Future
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

from sqlite_cli.config.loader import ConfigLike, SessionConfig, coerce_config
from sqlite_cli.core.decoder import DecodeMode, Decoded, Rows, decode_response, ensure_terminated
from sqlite_cli.core.process_session import ProcessSession, SessionState
from sqlite_cli.core.protocol import FramedQueryProtocol
from sqlite_cli.utils import join_fields, sql_literal

logger = logging.getLogger(__name__)

MEMORY = ":memory:"

PathLike = Union[str, "os.PathLike[str]"]


def _path_argument(path: PathLike) -> str:
    """把数据库路径转换为 sqlite3 的位置参数（避免以 `-` 开头被当作选项）。"""

    text = os.fspath(path)
    if text.startswith("-"):
        return os.path.join(".", text)
    return text


class Database:
    """
    一个到 sqlite3 子进程的 session。

    说明：
    - 通过 `Database.open()`（或模块级 `open()`）创建；构造函数本身不启动进程；
    - 支持 `with` 语句：退出时若仍 OPEN 则 close。
    """

    def __init__(self, path: PathLike, config: SessionConfig) -> None:
        """
        创建未启动的 Database。

        参数：
        - path：数据库文件路径，或 `:memory:`
        - config：校验后的 `SessionConfig`
        """

        self.path = os.fspath(path)
        self.config = config
        self._protocol = FramedQueryProtocol(
            sentinel_prefix=config.sentinel,
            timeout_ms=config.timeout_ms,
            debug=config.debug,
        )
        self._session = ProcessSession(
            argv=[config.executable, *config.extra_args, _path_argument(path)],
            on_stdout=self._protocol.on_stdout,
            on_stderr=self._protocol.on_stderr,
            read_chunk_bytes=config.read_chunk_bytes,
            close_timeout_ms=config.close_timeout_ms,
            debug=config.debug,
        )
        self._protocol.bind(self._session)

    @classmethod
    def open(cls, path: PathLike = MEMORY, config: ConfigLike = None, **overrides: Any) -> "Database":
        """
        启动 sqlite3 并执行 bootstrap 命令。

        参数：
        - path：数据库文件路径，或 `:memory:`
        - config：`SessionConfig` / dict / None
        - overrides：逐字段覆盖（例如 `timeout_ms=200, debug=True`）

        异常：
        - SpawnFailedError：sqlite3 无法启动
        - EngineError / QueryTimeoutError：bootstrap 命令失败（此时进程已被关闭）
        """

        db = cls(path, coerce_config(config, **overrides))
        db._trace("opening database at %s", db.path)
        db._session.spawn()
        try:
            db._bootstrap()
        except BaseException:
            db._session.close()
            raise
        return db

    @property
    def debug(self) -> bool:
        """是否输出 DEBUG trace。"""

        return self.config.debug

    @property
    def timeout_ms(self) -> int:
        """单条命令的超时毫秒数。"""

        return self.config.timeout_ms

    @property
    def state(self) -> Optional[SessionState]:
        """生命周期状态。"""

        return self._session.state

    @property
    def is_open(self) -> bool:
        """是否处于 OPEN。"""

        return self._session.state is SessionState.OPEN

    @property
    def pid(self) -> Optional[int]:
        """sqlite3 子进程 pid。"""

        return self._session.pid

    @property
    def exited(self) -> "Future[int]":
        """子进程退出事件（结果为 exit code）。"""

        return self._session.exited

    @property
    def out_of_sync(self) -> bool:
        """是否曾发生超时（之后的响应不再可信，建议 close 后重新 open）。"""

        return self._protocol.out_of_sync

    def _bootstrap(self) -> None:
        """配置输出模式（JSON）与可选的 busy timeout。"""

        self.execute(".mode json", mode="raw")
        if self.config.busy_timeout_ms is not None:
            self.execute(f".timeout {int(self.config.busy_timeout_ms)}", mode="raw")

    def _trace(self, msg: str, *args: object) -> None:
        """debug 打开时输出 trace 日志。"""

        if self.config.debug:
            logger.debug(msg, *args)

    def execute(self, command: str, mode: DecodeMode = "structured") -> Optional[Decoded]:
        """
        执行一条命令（SQL 或 dot-command）并解码结果。

        参数：
        - command：原样写入 sqlite3；SQL 语句需自带 `;`（或使用 `sql()`）
        - mode：`structured`（默认，JSON 行数据）或 `raw`（文本）

        返回：
        - None（无数据）、行数据，或 raw 文本
        """

        raw = self._protocol.execute_raw(command)
        return decode_response(raw, mode, debug=self.config.debug)

    def sql(self, command: str) -> Optional[Decoded]:
        """执行 SQL（自动补 `;`），按 structured 模式解码。"""

        return self.execute(ensure_terminated(command), mode="structured")

    def close(self) -> None:
        """
        关闭 session：写 `.exit`、释放管道、回收进程。

        异常：
        - AlreadyClosedError：重复 close
        """

        self._trace("closing database connection")
        self._session.close()

    def __enter__(self) -> "Database":
        """上下文管理器入口。"""

        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        """上下文管理器出口：仍 OPEN 时关闭。"""

        if self.is_open:
            self.close()

    def __repr__(self) -> str:
        """调试表示。"""

        state = self.state.value if self.state is not None else "new"
        return f"Database(path={self.path!r}, state={state})"

    def insert(self, table: str, data: Mapping[str, Any]) -> Optional[int]:
        """
        插入一行，返回新行的 rowid。

        参数：
        - table：表名
        - data：列名 → 值（值按 `sql_literal` 渲染）
        """

        if not data:
            raise ValueError("insert data must not be empty")
        keys = ", ".join(data.keys())
        values = ", ".join(sql_literal(v) for v in data.values())
        command = f"INSERT INTO {table} ({keys}) VALUES ({values}); SELECT last_insert_rowid() AS id;"
        self._trace("inserting into %s: %s", table, command)
        rows = self.sql(command)
        if isinstance(rows, list) and rows:
            return int(rows[0]["id"])
        return None

    def select(
        self,
        table: str,
        condition: Optional[str] = None,
        columns: Union[str, Sequence[str]] = "*",
    ) -> Optional[Rows]:
        """
        查询行。

        参数：
        - table：表名
        - condition：可选 WHERE 条件（原样拼接）
        - columns：列（字符串或列表），默认 `*`

        返回：
        - 行列表；无行时为 None
        """

        command = f"SELECT {join_fields(columns)} FROM {table}"
        if condition:
            command += f" WHERE {condition}"
        self._trace("selecting from %s with condition: %s", table, condition)
        return self.sql(command)  # type: ignore[return-value]

    def update(self, table: str, data: Mapping[str, Any], condition: Optional[str] = None) -> None:
        """按条件更新行（`SET k = v, ...`）。"""

        if not data:
            raise ValueError("update data must not be empty")
        assignments = ", ".join(f"{k} = {sql_literal(v)}" for k, v in data.items())
        command = f"UPDATE {table} SET {assignments}"
        if condition:
            command += f" WHERE {condition}"
        self._trace("updating %s: %s", table, command)
        self.sql(command)

    def delete(self, table: str, condition: Optional[str] = None) -> None:
        """按条件删除行；不带条件时删除全部。"""

        command = f"DELETE FROM {table}"
        if condition:
            command += f" WHERE {condition}"
        self._trace("deleting from %s with condition: %s", table, condition)
        self.sql(command)

    def create_table(self, table: str, columns: Iterable[str]) -> None:
        """创建表；columns 为列定义字符串（例如 `"id INTEGER PRIMARY KEY"`）。"""

        self.sql(f"CREATE TABLE {table} ({join_fields(list(columns))})")

    def drop_table(self, table: str) -> None:
        """删除表。"""

        self.sql(f"DROP TABLE {table}")

    def get_tables(self) -> Optional[Rows]:
        """列出所有表（`[{"name": ...}]`）；没有表时为 None。"""

        return self.sql("SELECT name FROM sqlite_master WHERE type='table'")  # type: ignore[return-value]

    def get_columns(self, table: str) -> Optional[Rows]:
        """返回 `PRAGMA table_info` 的行（cid/name/type/notnull/dflt_value/pk）。"""

        return self.sql(f"PRAGMA table_info({table})")  # type: ignore[return-value]


def open(path: PathLike = MEMORY, config: ConfigLike = None, **overrides: Any) -> Database:  # noqa: A001
    """打开一个 session（`Database.open` 的模块级别名）。"""

    return Database.open(path, config, **overrides)


def table_names(rows: Optional[List[Mapping[str, Any]]]) -> List[str]:
    """把 `get_tables()` 的结果投影为表名列表（None → 空列表）。"""

    return [str(r["name"]) for r in rows or []]
