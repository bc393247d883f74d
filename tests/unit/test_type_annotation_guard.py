"""Guardrails for runtime type-check coverage.

Public callables in the swarmjax package must keep explicit parameter and
return annotations so the jaxtyping+beartype import hook can validate them,
and every jitted kernel must also carry ``jaxtyped`` so its contract is checked
at trace time even when the hook is off.
"""

from __future__ import annotations

import ast
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[2]
PACKAGE_ROOT = PROJECT_ROOT / "swarmjax"


def _package_modules() -> list[tuple[Path, ast.Module]]:
    modules = []
    for path in sorted(PACKAGE_ROOT.rglob("*.py")):
        if path.name == "__init__.py":
            continue
        modules.append((path, ast.parse(path.read_text())))
    return modules


def _annotation_status(node: ast.FunctionDef | ast.AsyncFunctionDef) -> tuple[bool, bool]:
    args = node.args
    all_args = args.posonlyargs + args.args + args.kwonlyargs
    args_ok = all(arg.annotation is not None for arg in all_args)
    for star in (args.vararg, args.kwarg):
        if star is not None:
            args_ok = args_ok and star.annotation is not None
    return args_ok, node.returns is not None


def _decorator_names(node: ast.FunctionDef) -> set[str]:
    names = set()
    for decorator in node.decorator_list:
        target = decorator.func if isinstance(decorator, ast.Call) else decorator
        if isinstance(target, ast.Call):
            target = target.func
        names.add(ast.unparse(target))
        if isinstance(decorator, ast.Call):
            names.update(ast.unparse(arg) for arg in decorator.args)
    return names


def test_all_non_private_callables_are_fully_annotated() -> None:
    missing = []
    for path, tree in _package_modules():
        for node in ast.walk(tree):
            if not isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
                continue
            if node.name.startswith("_"):
                continue
            args_ok, ret_ok = _annotation_status(node)
            if not (args_ok and ret_ok):
                missing.append(
                    f"- {path.relative_to(PROJECT_ROOT)}:{node.lineno} `{node.name}` "
                    f"(args={args_ok}, return={ret_ok})"
                )

    assert not missing, (
        "Found callables with incomplete type annotations. "
        "Add parameter and return annotations so runtime type-checking remains "
        "comprehensive.\n" + "\n".join(missing)
    )


def test_jitted_kernels_are_jaxtyped() -> None:
    unchecked = []
    for path, tree in _package_modules():
        for node in tree.body:
            if not isinstance(node, ast.FunctionDef):
                continue
            names = _decorator_names(node)
            if any(name.endswith("jax.jit") for name in names) and "jaxtyped" not in names:
                unchecked.append(f"- {path.relative_to(PROJECT_ROOT)}:{node.lineno} `{node.name}`")

    assert not unchecked, "jitted kernels without @jaxtyped:\n" + "\n".join(unchecked)
