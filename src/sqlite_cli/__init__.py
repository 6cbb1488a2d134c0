"""
sqlite-cli-bridge：通过驱动外部 `sqlite3` 命令行进程访问 SQLite。

说明：
- 不链接 SQLite 库；每个 session 是一个 `sqlite3` 子进程，命令经 stdin 写入，
  响应以 sentinel 标记结束，stderr 非空即视为失败；
- 核心入口：`open()` → `Database.execute()` / `Database.sql()` → `Database.close()`；
- 附带 CRUD 便捷方法、极简 ORM（`sqlite_cli.orm`）与 JSON CLI（`sqlite-cli-bridge`）。
"""

from __future__ import annotations

from sqlite_cli.config.loader import SessionConfig, load_config
from sqlite_cli.core.errors import (
    AlreadyClosedError,
    ConfigError,
    DecodeFailedError,
    EngineError,
    ErrorIssue,
    ModelError,
    ModelNotConnectedError,
    NotConnectedError,
    QueryTimeoutError,
    SpawnFailedError,
    SqliteCliError,
    UnexpectedShapeError,
)
from sqlite_cli.database import MEMORY, Database, open
from sqlite_cli.utils import escape_sql_string, sql_literal

__all__ = [
    "AlreadyClosedError",
    "ConfigError",
    "Database",
    "DecodeFailedError",
    "EngineError",
    "ErrorIssue",
    "MEMORY",
    "ModelError",
    "ModelNotConnectedError",
    "NotConnectedError",
    "QueryTimeoutError",
    "SessionConfig",
    "SpawnFailedError",
    "SqliteCliError",
    "UnexpectedShapeError",
    "__version__",
    "escape_sql_string",
    "load_config",
    "open",
    "sql_literal",
]

__version__ = "0.3.0"
