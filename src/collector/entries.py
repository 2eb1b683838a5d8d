"""Tagged variants for evaluated declaration values.

Declaration files return loosely shaped tables: a bare ``"owner/repo"``
string, a spec table whose first positional element names the plugin, or a
plain list nesting more of either. ``to_entry`` decides the shape once so
the collector switches on the variant instead of re-inspecting tables.
"""
from dataclasses import dataclass, field
from typing import Any, List, Optional, Set, Union

from luaspec.interpreter import LuaTable, lua_type


@dataclass
class IdentifierRef:
    """Literal string entry."""
    name: str


@dataclass
class PluginEntry:
    """Spec table naming a plugin (first positional element or ``name``)."""
    name: str
    table: LuaTable
    optional: bool = False
    children: List["Entry"] = field(default_factory=list)
    dependencies: List["Entry"] = field(default_factory=list)


@dataclass
class SpecList:
    """Table without a plugin name: a list of further entries."""
    items: List["Entry"] = field(default_factory=list)
    optional: bool = False


@dataclass
class Ignored:
    """Anything else (functions, numbers, booleans, host stubs)."""
    kind: str


Entry = Union[IdentifierRef, PluginEntry, SpecList, Ignored]


def _entries_of(values: List[Any], active: Set[int]) -> List["Entry"]:
    return [to_entry(value, active) for value in values]


def plain_value(value: Any) -> Any:
    """Lua value as plain data for the manifest; functions and stubs become None."""
    if isinstance(value, LuaTable):
        return value.to_python()
    if lua_type(value) in ("nil", "boolean", "number", "string"):
        return value
    return None


def to_entry(value: Any, _active: Optional[Set[int]] = None) -> Entry:
    """Classify one evaluated value.

    A table nested inside itself is ignored where it repeats.
    """
    if isinstance(value, str):
        return IdentifierRef(value)
    if not isinstance(value, LuaTable):
        return Ignored(lua_type(value))
    active = set() if _active is None else _active
    if id(value) in active:
        return Ignored("cycle")
    active.add(id(value))
    try:
        return _table_entry(value, active)
    finally:
        active.discard(id(value))


def _table_entry(value: LuaTable, active: Set[int]) -> Entry:
    first = value.get(1)
    name: Optional[str] = first if isinstance(first, str) else None
    if name is None and isinstance(value.get("name"), str):
        name = value.get("name")
    optional = value.get("optional") is True
    children = _entries_of(value.array(), active)
    if name is None:
        return SpecList(items=children, optional=optional)
    deps = value.get("dependencies")
    if isinstance(deps, LuaTable):
        dependencies = _entries_of(deps.array(), active)
    elif isinstance(deps, str):
        dependencies = [IdentifierRef(deps)]
    else:
        dependencies = []
    return PluginEntry(name=name, table=value, optional=optional, children=children, dependencies=dependencies)
