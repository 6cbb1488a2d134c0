"""
sqlite-cli-bridge CLI（query/tables/columns）。

约束：
- 使用 argparse（不引入第三方 CLI 依赖）
- stdout 输出单个机器可读 JSON；失败时也输出 JSON
- `--debug` 时 trace 日志写到 stderr，不污染 stdout

退出码：
- 0：成功
- 2：参数错误 / 配置错误
- 10：sqlite3 无法启动
- 11：sqlite3 报错（stderr 非空或进程提前退出）
- 12：超时
- 13：响应解码失败 / 形态不符
- 14：session 未连接 / 已关闭
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence

from sqlite_cli.config.loader import SessionConfig, coerce_config, load_config
from sqlite_cli.core.errors import (
    AlreadyClosedError,
    ConfigError,
    DecodeFailedError,
    EngineError,
    NotConnectedError,
    QueryTimeoutError,
    SpawnFailedError,
    SqliteCliError,
    UnexpectedShapeError,
)
from sqlite_cli.database import Database, table_names

_EXIT_CODES: Dict[type, int] = {
    ConfigError: 2,
    SpawnFailedError: 10,
    EngineError: 11,
    QueryTimeoutError: 12,
    DecodeFailedError: 13,
    UnexpectedShapeError: 13,
    NotConnectedError: 14,
    AlreadyClosedError: 14,
}


def _ensure_utf8_stdio() -> None:
    """best-effort 把 stdout/stderr 切到 UTF-8（`C` locale 下输出非 ASCII 时避免崩溃）。"""

    for stream in (sys.stdout, sys.stderr):
        reconfigure = getattr(stream, "reconfigure", None)
        if callable(reconfigure):
            try:
                reconfigure(encoding="utf-8", errors="replace")
            except (ValueError, OSError):
                continue


def _dump_json_to_stdout(obj: Dict[str, Any], *, pretty: bool) -> None:
    """
    将 dict 输出为 JSON 到 stdout（末尾包含换行）。

    参数：
    - obj：待输出对象
    - pretty：是否启用 pretty-print（indent=2）
    """

    if pretty:
        text = json.dumps(obj, ensure_ascii=False, indent=2)
    else:
        text = json.dumps(obj, ensure_ascii=False, separators=(",", ":"))
    print(text)


def _exit_code_for_error(exc: SqliteCliError) -> int:
    """按异常类型映射退出码（未知类型为 1）。"""

    for cls in type(exc).__mro__:
        if cls in _EXIT_CODES:
            return _EXIT_CODES[cls]
    return 1


def _error_payload(exc: SqliteCliError) -> Dict[str, Any]:
    """把异常投影为 CLI 错误 envelope。"""

    issue = exc.to_issue()
    return {"ok": False, "error": {"code": issue.code, "message": issue.message, "details": issue.details}}


def _build_parser() -> argparse.ArgumentParser:
    """构造 argparse parser。"""

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", action="append", default=[], help="YAML config overlay (repeatable; later wins)")
    common.add_argument("--timeout-ms", type=int, default=None, help="per-command timeout in milliseconds")
    common.add_argument("--executable", default=None, help="sqlite3 executable (default: sqlite3 on PATH)")
    common.add_argument("--pretty", action="store_true", help="pretty-print JSON output")
    common.add_argument("--debug", action="store_true", help="write protocol trace logs to stderr")

    parser = argparse.ArgumentParser(prog="sqlite-cli-bridge", description="Drive the sqlite3 CLI and print JSON.")
    sub = parser.add_subparsers(dest="command", required=True)

    p_query = sub.add_parser("query", parents=[common], help="run one command and print its result")
    p_query.add_argument("path", help="database path or :memory:")
    p_query.add_argument("sql", help="SQL statement (terminator added) or dot-command with --raw")
    p_query.add_argument("--raw", action="store_true", help="return the response text instead of decoding JSON")

    p_tables = sub.add_parser("tables", parents=[common], help="list table names")
    p_tables.add_argument("path", help="database path or :memory:")

    p_columns = sub.add_parser("columns", parents=[common], help="show PRAGMA table_info for a table")
    p_columns.add_argument("path", help="database path or :memory:")
    p_columns.add_argument("table", help="table name")

    return parser


def _load_cli_config(args: argparse.Namespace) -> SessionConfig:
    """加载 `--config` overlays，并叠加命令行覆盖项。"""

    base = load_config([Path(p).expanduser() for p in args.config]) if args.config else None
    return coerce_config(
        base,
        timeout_ms=args.timeout_ms,
        executable=args.executable,
        debug=True if args.debug else None,
    )


def _run_query(db: Database, args: argparse.Namespace) -> Any:
    """`query` 子命令。"""

    if args.raw:
        return db.execute(args.sql, mode="raw")
    return db.sql(args.sql)


def _run_tables(db: Database, args: argparse.Namespace) -> Any:
    """`tables` 子命令。"""

    return table_names(db.get_tables())


def _run_columns(db: Database, args: argparse.Namespace) -> Any:
    """`columns` 子命令。"""

    return db.get_columns(args.table) or []


_HANDLERS: Dict[str, Callable[[Database, argparse.Namespace], Any]] = {
    "query": _run_query,
    "tables": _run_tables,
    "columns": _run_columns,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    CLI 入口。

    参数：
    - argv：参数列表（None 表示使用 sys.argv）

    返回：
    - 退出码（见模块 docstring）
    """

    _ensure_utf8_stdio()

    parser = _build_parser()
    try:
        args = parser.parse_args(list(argv) if argv is not None else None)
    except SystemExit as exc:
        # argparse 约定：--help 为 0，参数错误为 2
        code = getattr(exc, "code", 2)
        return 2 if code is None else int(code)

    if args.debug:
        logging.basicConfig(level=logging.DEBUG, stream=sys.stderr, format="%(asctime)s %(name)s %(message)s")

    pretty = bool(args.pretty)
    try:
        config = _load_cli_config(args)
        with Database.open(args.path, config) as db:
            result = _HANDLERS[args.command](db, args)
    except SqliteCliError as exc:
        _dump_json_to_stdout(_error_payload(exc), pretty=pretty)
        return _exit_code_for_error(exc)

    _dump_json_to_stdout({"ok": True, "result": result}, pretty=pretty)
    return 0


def _entrypoint() -> None:
    """console_scripts 入口。"""

    raise SystemExit(main())


__all__ = ["main"]


if __name__ == "__main__":  # pragma: no cover
    _entrypoint()
