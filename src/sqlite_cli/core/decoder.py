"""
Result decoder：把原始响应文本解码为调用方需要的形态。

模式：
- `raw`：原样返回 trim 后的文本；空文本返回 None（“无数据”）
- `structured`：空文本返回 None；否则按 JSON 解析，只接受 row-list（对象数组）或单个对象

说明：
- bootstrap 阶段把 sqlite3 配置为 `.mode json`，因此 SELECT 的输出总是对象数组；
- 标量（或混入非对象元素的数组）说明输出格式偏离预期或 framing 出错，按 UnexpectedShape 报告；
- “无数据”用 None 表达，与真实的空列表 `[]` 区分。
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Literal, Optional, Union

from sqlite_cli.core.errors import DecodeFailedError, UnexpectedShapeError

logger = logging.getLogger(__name__)

DecodeMode = Literal["raw", "structured"]
Row = Dict[str, Any]
Rows = List[Row]
Decoded = Union[Rows, Row, str]

DECODE_MODES = ("raw", "structured")


def decode_response(raw: str, mode: DecodeMode = "structured", *, debug: bool = False) -> Optional[Decoded]:
    """
    解码一条响应。

    参数：
    - raw：sentinel 剥离后的响应文本
    - mode：`raw` 或 `structured`
    - debug：是否输出 DEBUG trace（不影响控制流）

    返回：
    - None：响应为空（“无数据”）
    - str：raw 模式下的文本
    - list[dict] / dict：structured 模式下的行数据

    异常：
    - DecodeFailedError：structured 模式下不是合法 JSON
    - UnexpectedShapeError：合法 JSON 但不是行数据形态
    """

    if mode not in DECODE_MODES:
        raise ValueError(f"mode must be one of {DECODE_MODES}; got: {mode!r}")

    text = raw.strip()
    if not text:
        if debug:
            logger.debug("response is empty; returning no data")
        return None
    if mode == "raw":
        return text

    try:
        value = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DecodeFailedError(f"response is not valid JSON: {exc.msg}", raw=text) from exc
    if debug:
        logger.debug("decoded JSON value of type %s", type(value).__name__)

    if isinstance(value, dict):
        return value
    if isinstance(value, list):
        for item in value:
            if not isinstance(item, dict):
                raise UnexpectedShapeError(
                    "response array contains non-object rows",
                    raw=text,
                    actual=type(item).__name__,
                )
        return value
    raise UnexpectedShapeError(
        "response is a JSON scalar, expected rows",
        raw=text,
        actual=type(value).__name__,
    )


def ensure_terminated(command: str) -> str:
    """去掉尾部空白；若末尾不是 `;` 则补上语句结束符。"""

    text = command.rstrip()
    if text.endswith(";"):
        return text
    return f"{text};"
