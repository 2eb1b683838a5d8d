"""Restricted global environments for declaration files.

Core modules get a permissive environment where the host editor API is an
inert stand-in. Extras get a richer one that answers the capability probes
they commonly make (``LazyVim.has``, ``vim.fn.executable`` ...) with
negative constants.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from constants import Constants
from luaspec import stdlib
from luaspec.interpreter import HostFunction, HostObject, Interpreter, LuaTable

CORE = "core"
EXTRAS = "extras"


class Inert(HostObject):
    """Absorbs any index, call or assignment without side effects."""

    def __init__(self, path: str = "stub"):
        self.path = path

    def lua_index(self, key: Any) -> Any:
        return Inert(f"{self.path}.{key}")

    def lua_setindex(self, key: Any, value: Any) -> None:
        return None

    def lua_call(self, args: List[Any]) -> Any:
        return None

    def lua_type(self) -> str:
        return "table"

    def __repr__(self) -> str:
        return f"Inert({self.path})"


def const(name: str, value: Any) -> HostFunction:
    return HostFunction(name, lambda args: value)


def noop(name: str = "noop") -> HostFunction:
    return HostFunction(name, lambda args: None)


def with_fallback(members: Dict[str, Any], fallback: Callable[[Any], Any]) -> LuaTable:
    """Table with explicit members whose unknown keys resolve via ``fallback``."""
    table = LuaTable()
    for key, value in members.items():
        table.set(key, value)
    meta = LuaTable()
    meta.set("__index", HostFunction("__index", lambda args: fallback(args[1] if len(args) > 1 else None)))
    table.metatable = meta
    return table


def _vim_fn() -> LuaTable:
    zero = const("zero", 0)
    empty = const("empty", "")
    members = {name: zero for name in ("has", "executable", "is_win", "isdirectory", "filereadable", "line", "col")}
    members.update({name: empty for name in ("stdpath", "expand", "trim", "tolower", "glob", "input")})
    members["json_decode"] = HostFunction("json_decode", lambda args: LuaTable())
    return with_fallback(members, lambda key: zero)


def _require(args: List[Any]) -> Any:
    return Inert(f"require({args[0] if args else ''})")


def _install_core(interp: Interpreter) -> None:
    g = interp.globals
    g.set("LazyVim", with_fallback(
        {"util": with_fallback({}, lambda key: noop(f"util.{key}"))},
        lambda key: Inert(f"LazyVim.{key}"),
    ))
    g.set("vim", with_fallback({"fn": _vim_fn()}, lambda key: Inert(f"vim.{key}")))


def _install_extras(interp: Interpreter) -> None:
    g = interp.globals
    false = const("const_false", False)
    g.set("LazyVim", with_fallback(
        {
            "has": false,
            "has_extra": false,
            "on_very_lazy": noop("on_very_lazy"),
            "memoize": HostFunction("memoize", lambda args: args[1] if len(args) > 1 else args[0] if args else None),
            "cmp": with_fallback({}, lambda key: LuaTable()),
            "pick": with_fallback({}, lambda key: noop(f"pick.{key}")),
            "util": with_fallback({}, lambda key: noop(f"util.{key}")),
        },
        lambda key: Inert(f"LazyVim.{key}"),
    ))
    g.set("vim", with_fallback(
        {
            "fn": _vim_fn(),
            "cmd": noop("cmd"),
            "g": LuaTable(),
            "api": with_fallback({}, lambda key: noop(f"api.{key}")),
            "loop": with_fallback({}, lambda key: noop(f"loop.{key}")),
        },
        lambda key: Inert(f"vim.{key}"),
    ))


def build_interpreter(kind: str = CORE, max_steps: Optional[int] = None) -> Interpreter:
    """Create an interpreter whose globals are the stdlib plus host stand-ins.

    Args:
        kind: ``"core"`` or ``"extras"``.
        max_steps: Instruction budget override.

    Returns:
        Interpreter: Ready to run a parsed chunk.
    """
    interp = Interpreter(max_steps=max_steps or Constants.LUA_MAX_STEPS)
    stdlib.install(interp)
    interp.globals.set("require", HostFunction("require", _require))
    if kind == EXTRAS:
        _install_extras(interp)
    else:
        _install_core(interp)
    return interp
