"""Opt-in runtime contract checks for swarmjax.

Setting ``SWARMJAX_RUNTIME_TYPECHECK`` to anything other than a falsy value
before ``import swarmjax`` makes every annotated callable in the package check
its arguments and return value. This is a debugging aid for scenario code: it
catches host ints and numpy arrays passed where device arrays are expected,
at the cost of slower dispatch.
"""

from __future__ import annotations

import os
from typing import Any

_FALSY = frozenset({"0", "false", "no", "off"})
_TYPECHECK_HOOK: Any = None


def _runtime_typecheck_enabled() -> bool:
    raw = os.getenv("SWARMJAX_RUNTIME_TYPECHECK", "0").strip().lower()
    return raw not in _FALSY


def enable_runtime_typecheck() -> bool:
    """Install the checking hook once; return whether it is active."""
    global _TYPECHECK_HOOK

    if _TYPECHECK_HOOK is not None:
        return True
    if not _runtime_typecheck_enabled():
        return False

    from jaxtyping import install_import_hook

    # Must run before the solver, store and evaluator modules are imported;
    # already imported modules are not instrumented.
    _TYPECHECK_HOOK = install_import_hook("swarmjax", typechecker="beartype.beartype")
    return True


__all__ = ["enable_runtime_typecheck"]
