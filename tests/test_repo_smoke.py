from __future__ import annotations

import re
from pathlib import Path

import sqlite_cli
from sqlite_cli import config
from sqlite_cli.core import errors


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[1]


def test_package_version_matches_pyproject() -> None:
    text = (_repo_root() / "pyproject.toml").read_text(encoding="utf-8")
    match = re.search(r'^version\s*=\s*"([^"]+)"\s*$', text, re.MULTILINE)
    assert match is not None
    assert sqlite_cli.__version__ == match.group(1)


def test_public_surface_is_importable() -> None:
    assert sqlite_cli.MEMORY == ":memory:"
    assert callable(sqlite_cli.open)
    assert sqlite_cli.Database.open is not None
    assert issubclass(errors.EngineError, errors.SqliteCliError)
    assert config.SessionConfig().executable == "sqlite3"


def test_every_error_has_a_distinct_code() -> None:
    codes = [
        errors.ConfigError.default_code,
        errors.SpawnFailedError.default_code,
        errors.NotConnectedError.default_code,
        errors.AlreadyClosedError.default_code,
        errors.QueryTimeoutError.default_code,
        errors.EngineError.default_code,
        errors.DecodeFailedError.default_code,
        errors.UnexpectedShapeError.default_code,
        errors.ModelError.default_code,
        errors.ModelNotConnectedError.default_code,
    ]
    assert len(set(codes)) == len(codes)


def test_error_issue_projection() -> None:
    err = errors.QueryTimeoutError(command="SELECT 1;", timeout_ms=10, elapsed_ms=12)
    issue = err.to_issue()
    assert issue.code == "QUERY_TIMEOUT"
    assert issue.details == {"command": "SELECT 1;", "timeout_ms": 10, "elapsed_ms": 12}
    assert str(err).startswith("QUERY_TIMEOUT: ")
