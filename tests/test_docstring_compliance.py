from __future__ import annotations

import ast
import importlib
import pkgutil
from pathlib import Path
from types import ModuleType

import pytest

import tsbridge

# 纯实现细节模块：不要求模块级 docstring（其中的 class/def 仍然要求）
_MODULE_DOC_EXEMPT = frozenset({"tsbridge.runtime.paths", "tsbridge.services._utils"})


def _tsbridge_modules() -> list[ModuleType]:
    names = [tsbridge.__name__]
    names.extend(info.name for info in pkgutil.walk_packages(tsbridge.__path__, prefix=f"{tsbridge.__name__}."))
    return [importlib.import_module(name) for name in sorted(names)]


def _undocumented_defs(module: ModuleType) -> list[str]:
    """返回模块中缺少 docstring 的 class/def（含嵌套定义），格式 `lineno qualname`。"""

    path = Path(str(module.__file__))
    tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
    out: list[str] = []

    def walk(node: ast.AST, prefix: str) -> None:
        for child in ast.iter_child_nodes(node):
            if isinstance(child, (ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef)):
                qualname = f"{prefix}{child.name}"
                if ast.get_docstring(child) is None:
                    out.append(f"{child.lineno} {qualname}")
                walk(child, f"{qualname}.")
            else:
                walk(child, prefix)

    walk(tree, "")
    return out


@pytest.mark.parametrize("module", _tsbridge_modules(), ids=lambda m: m.__name__)
def test_public_surface_is_documented(module: ModuleType) -> None:
    """
    tsbridge 每个模块的 class/def 都必须带 docstring；模块 docstring 仅豁免 `_MODULE_DOC_EXEMPT`。
    """

    missing = _undocumented_defs(module)
    assert missing == [], f"{module.__name__}: missing docstrings at " + ", ".join(missing)
    if module.__name__ not in _MODULE_DOC_EXEMPT:
        assert module.__doc__, f"{module.__name__}: missing module docstring"


def test_module_docstring_exemptions_are_current() -> None:
    known = {m.__name__: m for m in _tsbridge_modules()}

    for name in _MODULE_DOC_EXEMPT:
        assert name in known, f"stale exemption: {name}"
        assert not known[name].__doc__, f"{name} now has a module docstring; drop its exemption"
