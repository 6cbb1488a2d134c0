"""
配置加载器（YAML）。

设计目标：
- 支持加载多个 YAML，并按顺序做深度合并（后者覆盖前者）。
- 使用 pydantic 做 schema 校验；默认拒绝未知字段（避免拼写错误与误配置被静默吞掉）。
- `open()` 也接受 dict / `SessionConfig` / 关键字覆盖，统一经由 `coerce_config` 归一化。
"""

from __future__ import annotations

from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, List, Mapping, MutableMapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from sqlite_cli.core.errors import ConfigError


def _deep_merge(base: MutableMapping[str, Any], overlay: Mapping[str, Any]) -> MutableMapping[str, Any]:
    """
    深度合并两个 dict（overlay 覆盖 base）。

    合并规则：
    - dict + dict：递归合并
    - 其它类型（含 list）：overlay 直接覆盖
    """

    for key, overlay_value in overlay.items():
        if key in base and isinstance(base[key], dict) and isinstance(overlay_value, Mapping):
            _deep_merge(base[key], overlay_value)  # type: ignore[arg-type]
            continue
        base[key] = deepcopy(overlay_value)
    return base


class SessionConfig(BaseModel):
    """
    单个 sqlite3 session 的配置。

    字段说明：
    - executable：sqlite3 可执行文件（按 PATH 查找，或绝对路径）
    - extra_args：放在数据库路径之前的额外命令行参数（例如 `-readonly`）
    - timeout_ms：单条命令等待 sentinel 的最长时间
    - busy_timeout_ms：可选；open 时通过 `.timeout` 设置引擎的 busy timeout
    - close_timeout_ms：close 时等待子进程退出的最长时间，超时则 kill
    - debug：是否输出 DEBUG 级 trace 日志
    - sentinel：响应结束标记前缀（每条命令会追加唯一序号）
    - read_chunk_bytes：单次从管道读取的最大字节数
    """

    model_config = ConfigDict(extra="forbid")

    executable: str = Field(default="sqlite3", min_length=1)
    extra_args: List[str] = Field(default_factory=list)
    timeout_ms: int = Field(default=5000, ge=1)
    busy_timeout_ms: Optional[int] = Field(default=None, ge=0)
    close_timeout_ms: int = Field(default=1000, ge=0)
    debug: bool = False
    sentinel: str = Field(default="--EOF--", min_length=1)
    read_chunk_bytes: int = Field(default=64 * 1024, ge=1)

    @field_validator("sentinel")
    @classmethod
    def _validate_sentinel(cls, value: str) -> str:
        """sentinel 会被放进 `.print '...'`，因此不能包含引号、换行或首尾空白。"""

        if value != value.strip():
            raise ValueError("sentinel must not have leading/trailing whitespace")
        if any(ch in value for ch in ("'", '"', "\n", "\r")):
            raise ValueError("sentinel must not contain quotes or newlines")
        return value


ConfigLike = Union[SessionConfig, Mapping[str, Any], None]


def _load_yaml_file(path: Path) -> Dict[str, Any]:
    """读取 YAML 文件为 dict；空文件返回空 dict。"""

    if not path.exists():
        raise ConfigError(f"config file not found: {path}", details={"path": str(path)})
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"config file is not valid YAML: {path}", details={"path": str(path), "reason": str(exc)}) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"config root must be a mapping: {path}",
            details={"path": str(path), "actual": type(data).__name__},
        )
    return data


def load_config_dicts(config_dicts: List[Mapping[str, Any]]) -> SessionConfig:
    """
    加载并合并多个 dict 配置，返回校验后的 `SessionConfig`。

    参数：
    - config_dicts：按顺序做深度合并（后者覆盖前者）

    异常：
    - ConfigError：合并结果未通过 schema 校验
    """

    merged: Dict[str, Any] = {}
    for overlay in config_dicts:
        if not overlay:
            continue
        _deep_merge(merged, overlay)
    try:
        return SessionConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError("config is invalid", details={"reason": str(exc)}) from exc


def load_config(config_paths: List[Path]) -> SessionConfig:
    """
    加载并合并多个配置文件，返回校验后的 `SessionConfig`。

    参数：
    - config_paths：YAML 路径列表；按顺序合并（后者覆盖前者）
    """

    return load_config_dicts([_load_yaml_file(Path(p)) for p in config_paths])


def coerce_config(config: ConfigLike = None, **overrides: Any) -> SessionConfig:
    """
    把 None / dict / SessionConfig 与关键字覆盖归一化为 `SessionConfig`。

    参数：
    - config：基础配置
    - overrides：逐字段覆盖（值为 None 的项忽略）
    """

    if isinstance(config, SessionConfig):
        base: Dict[str, Any] = config.model_dump()
    elif config is None:
        base = {}
    else:
        base = dict(config)
    extra = {k: v for k, v in overrides.items() if v is not None}
    return load_config_dicts([base, extra])
