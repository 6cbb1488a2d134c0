"""SQL 字面量渲染工具。"""

from __future__ import annotations

import math
from typing import Any, Iterable, Union


def escape_sql_string(value: str) -> str:
    """把字符串渲染为单引号 SQL 字面量（内部单引号加倍）。"""

    return "'" + str(value).replace("'", "''") + "'"


def sql_literal(value: Any) -> str:
    """
    把 Python 值渲染为 SQL 字面量。

    规则：
    - None → `NULL`
    - bool → `1` / `0`（SQLite 没有独立的布尔类型）
    - int / float → `repr` 文本
    - ±inf → `9e999` / `-9e999`（SQLite 把溢出的实数字面量读作无穷大）
    - NaN → `NULL`（SQLite 不存储 NaN）
    - 其它 → 按字符串转义
    """

    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, float):
        if math.isnan(value):
            return "NULL"
        if math.isinf(value):
            return "9e999" if value > 0 else "-9e999"
    if isinstance(value, (int, float)):
        return repr(value)
    return escape_sql_string(str(value))


def join_fields(fields: Union[str, Iterable[str]]) -> str:
    """字段列表 → `a, b, c`；字符串原样返回。"""

    if isinstance(fields, str):
        return fields
    return ", ".join(str(f) for f in fields)
