"""Architectural tests for the survey_intake package layout.

Static inspection only: modules are parsed with ``ast`` rather than imported,
so these checks run without a database or web stack.
"""

from __future__ import annotations

import ast
import pathlib
from typing import Iterable, List, Set

import pytest


PACKAGE_ROOT = pathlib.Path(__file__).resolve().parents[2] / "survey_intake"
CORE_DIRS = ("logic", "models", "config", "db")
HTTP_LIBRARIES = {"fastapi", "starlette", "uvicorn"}


def _modules(subdirs: Iterable[str] = ()) -> List[pathlib.Path]:
    roots = [PACKAGE_ROOT / d for d in subdirs] if subdirs else [PACKAGE_ROOT]
    out: List[pathlib.Path] = []
    for root in roots:
        out.extend(p for p in sorted(root.rglob("*.py")) if p.name != "__init__.py")
    return out


def _parse(path: pathlib.Path) -> ast.Module:
    return ast.parse(path.read_text(encoding="utf-8"), filename=str(path))


def _imported_roots(tree: ast.Module) -> Set[str]:
    roots: Set[str] = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            roots.update(alias.name.split(".")[0] for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and node.module and node.level == 0:
            roots.add(node.module.split(".")[0])
    return roots


def _module_id(path: pathlib.Path) -> str:
    return str(path.relative_to(PACKAGE_ROOT.parent))


def test_package_exists():
    assert PACKAGE_ROOT.is_dir(), f"package directory missing: {PACKAGE_ROOT}"
    assert (PACKAGE_ROOT / "migrations" / "001_submissions.sql").is_file()


@pytest.mark.parametrize("path", _modules(CORE_DIRS), ids=_module_id)
def test_core_does_not_depend_on_http_stack(path):
    leaked = _imported_roots(_parse(path)) & HTTP_LIBRARIES
    assert not leaked, f"{_module_id(path)} imports {sorted(leaked)}"


def test_package_init_does_not_import_web_stack():
    tree = _parse(PACKAGE_ROOT / "__init__.py")
    assert not (_imported_roots(tree) & HTTP_LIBRARIES)


@pytest.mark.parametrize("path", _modules(), ids=_module_id)
def test_every_module_declares_public_names(path):
    tree = _parse(path)
    names = {
        target.id
        for node in tree.body
        if isinstance(node, ast.Assign)
        for target in node.targets
        if isinstance(target, ast.Name)
    }
    assert "__all__" in names, f"{_module_id(path)} has no __all__"


@pytest.mark.parametrize("path", _modules(("logic", "db", "http")), ids=_module_id)
def test_modules_with_behaviour_use_module_logger(path):
    source = path.read_text(encoding="utf-8")
    if "logger." not in source:
        pytest.skip("module does not log")
    assert "logger = logging.getLogger(__name__)" in source


def test_no_print_calls_in_package():
    offenders = []
    for path in _modules():
        for node in ast.walk(_parse(path)):
            if isinstance(node, ast.Call) and isinstance(node.func, ast.Name) and node.func.id == "print":
                offenders.append(_module_id(path))
    assert offenders == []


def test_no_bare_except_in_package():
    offenders = []
    for path in _modules():
        for node in ast.walk(_parse(path)):
            if isinstance(node, ast.ExceptHandler) and node.type is None:
                offenders.append(f"{_module_id(path)}:{node.lineno}")
    assert offenders == []


def test_store_calls_are_not_made_on_the_event_loop():
    """Pipeline methods reach the store only through the worker-thread helper."""
    tree = _parse(PACKAGE_ROOT / "logic" / "submission_pipeline.py")
    direct_calls = [
        node.lineno
        for node in ast.walk(tree)
        if isinstance(node, ast.Call)
        and isinstance(node.func, ast.Attribute)
        and isinstance(node.func.value, ast.Attribute)
        and node.func.value.attr == "_store"
    ]
    assert direct_calls == []


def test_sql_lives_only_in_repository_and_db_modules():
    allowed = {"repository_submissions.py", "migrations_runner.py"}
    offenders = []
    for path in _modules():
        if path.name in allowed:
            continue
        if "sql_text(" in path.read_text(encoding="utf-8"):
            offenders.append(_module_id(path))
    assert offenders == []
