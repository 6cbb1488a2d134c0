from __future__ import annotations

import ast
from pathlib import Path
from typing import Iterator, List, Set, Tuple, Union

from sqlite_cli.core import errors

_SRC_ROOT = Path(__file__).resolve().parents[1] / "src" / "sqlite_cli"

FunctionNode = Union[ast.FunctionDef, ast.AsyncFunctionDef]


def _package_error_names() -> Set[str]:
    return {
        name
        for name, obj in vars(errors).items()
        if isinstance(obj, type) and issubclass(obj, errors.SqliteCliError)
    }


def _parsed_modules() -> Iterator[Tuple[Path, ast.Module]]:
    for py_path in sorted(_SRC_ROOT.rglob("*.py")):
        yield py_path, ast.parse(py_path.read_text(encoding="utf-8"), filename=str(py_path))


def _public_functions(tree: ast.Module) -> Iterator[Tuple[str, FunctionNode]]:
    """模块级函数与类方法（不含 `_` 开头的私有/dunder 成员）。"""

    for node in tree.body:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)) and not node.name.startswith("_"):
            yield node.name, node
        elif isinstance(node, ast.ClassDef):
            for member in node.body:
                if isinstance(member, (ast.FunctionDef, ast.AsyncFunctionDef)) and not member.name.startswith("_"):
                    yield f"{node.name}.{member.name}", member


def _raised_names(func: FunctionNode) -> Set[str]:
    """函数体内 `raise SomeError(...)` 直接抛出的异常类名。"""

    names: Set[str] = set()
    for node in ast.walk(func):
        if isinstance(node, ast.Raise) and isinstance(node.exc, ast.Call) and isinstance(node.exc.func, ast.Name):
            names.add(node.exc.func.id)
    return names


def test_every_module_class_and_def_has_a_docstring() -> None:
    missing: List[str] = []
    for py_path, tree in _parsed_modules():
        rel = py_path.relative_to(_SRC_ROOT)
        if ast.get_docstring(tree) is None:
            missing.append(f"{rel} (module)")
        for node in ast.walk(tree):
            if isinstance(node, (ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef)) and ast.get_docstring(node) is None:
                missing.append(f"{rel}:{node.lineno} {node.name}")
    assert missing == [], "missing docstrings:\n" + "\n".join(missing)


def test_public_raisers_document_their_errors() -> None:
    """公开函数直接抛出的包内异常，必须写在 docstring 的 `异常：` 段里。"""

    error_names = _package_error_names()
    undocumented: List[str] = []
    for py_path, tree in _parsed_modules():
        rel = py_path.relative_to(_SRC_ROOT)
        for qualname, func in _public_functions(tree):
            raised = _raised_names(func) & error_names
            if not raised:
                continue
            doc = ast.get_docstring(func) or ""
            _, sep, section = doc.partition("异常：")
            for name in sorted(raised):
                if not sep or name not in section:
                    undocumented.append(f"{rel}:{func.lineno} {qualname} raises {name}")
    assert undocumented == [], "errors missing from 异常 sections:\n" + "\n".join(undocumented)


def test_raiser_scan_sees_the_core_entry_points() -> None:
    scanned = {
        qualname
        for _, tree in _parsed_modules()
        for qualname, func in _public_functions(tree)
        if _raised_names(func) & _package_error_names()
    }
    assert {
        "ProcessSession.spawn",
        "ProcessSession.close",
        "FramedQueryProtocol.execute_raw",
        "decode_response",
        "wait_until_ready",
    } <= scanned
