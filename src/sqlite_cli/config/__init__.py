"""Session 配置（pydantic schema + YAML overlay 加载）。"""

from __future__ import annotations

from sqlite_cli.config.loader import SessionConfig, coerce_config, load_config, load_config_dicts

__all__ = ["SessionConfig", "coerce_config", "load_config", "load_config_dicts"]
