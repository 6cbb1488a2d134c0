from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict

import pytest

# 一个行为足够像 sqlite3 shell 的假引擎：按行读取 stdin，支持 `.print/.mode/.timeout/.exit`，
# 并提供若干测试专用指令，用于在没有 sqlite3 可执行文件时覆盖协议层行为。
#
# - ROWS <json>   原样输出一行（模拟 `.mode json` 的查询结果）
# - FAIL <text>   向 stderr 输出一行
# - SLEEP <sec>   阻塞若干秒（用于超时）
# - SPLIT         下一次 `.print` 分两次写出（sentinel 跨 chunk）
# - NOISE <text>  同时写 stderr 与 stdout
# - DIE           写 stderr 后以 exit code 3 退出
# - IGNORE_EXIT   之后忽略 `.exit` 与 stdin EOF（用于 close 的 kill 路径）
# - CLOSE_PIPES   关闭 stdout/stderr 但继续读 stdin，直到 `.exit` 才退出
FAKE_ENGINE = r'''
import os
import sys
import time

mode = "list"
split_next = False
ignore_exit = False
pipes_closed = False
path = sys.argv[-1]


def out(text):
    if pipes_closed:
        return
    sys.stdout.write(text)
    sys.stdout.flush()


def err(text):
    if pipes_closed:
        return
    sys.stderr.write(text)
    sys.stderr.flush()


while True:
    line = sys.stdin.readline()
    if not line:
        if ignore_exit:
            time.sleep(30)
        break
    line = line.rstrip("\n")
    if path == "refuse.db" and line.startswith(".mode"):
        err("Error: unable to open database \"refuse.db\"\n")
        continue
    if line.startswith(".print "):
        text = line[len(".print "):].strip().strip("'") + "\n"
        if split_next:
            split_next = False
            half = len(text) // 2
            out(text[:half])
            time.sleep(0.05)
            out(text[half:])
        else:
            out(text)
    elif line == ".exit":
        if ignore_exit:
            continue
        break
    elif line.startswith(".mode"):
        parts = line.split()
        if len(parts) == 1:
            out("current output mode: " + mode + "\n")
        else:
            mode = parts[1]
    elif line.startswith(".timeout"):
        continue
    elif line.startswith("ROWS "):
        out(line[len("ROWS "):] + "\n")
    elif line.startswith("FAIL "):
        err(line[len("FAIL "):] + "\n")
    elif line.startswith("NOISE "):
        err(line[len("NOISE "):] + "\n")
        out("[]\n")
    elif line.startswith("SLEEP "):
        time.sleep(float(line.split()[1]))
    elif line == "SPLIT":
        split_next = True
    elif line == "DIE":
        err("fatal: engine crashed\n")
        sys.exit(3)
    elif line == "IGNORE_EXIT":
        ignore_exit = True
    elif line == "CLOSE_PIPES":
        pipes_closed = True
        os.close(1)
        os.close(2)
'''


@pytest.fixture
def fake_engine(tmp_path: Path) -> Dict[str, Any]:
    """返回可直接传给 `open(..., config=...)` 的假引擎配置。"""

    script = tmp_path / "fake_sqlite3.py"
    script.write_text(FAKE_ENGINE, encoding="utf-8")
    return {"executable": sys.executable, "extra_args": ["-u", str(script)], "close_timeout_ms": 500}
