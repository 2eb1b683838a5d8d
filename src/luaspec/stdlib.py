"""Pure, I/O-free subset of the Lua standard library.

Only what declaration files reach for: base functions, ``string`` (with a
Lua-pattern to ``re`` translation), ``table`` and ``math``. Nothing here
touches the filesystem, the environment or the process.
"""
from __future__ import annotations

import functools
import math
import re
from typing import Any, List, Optional, Tuple

from constants import Constants
from luaspec.interpreter import (
    HostFunction,
    HostObject,
    Interpreter,
    LuaBudgetExceeded,
    LuaRuntimeError,
    LuaTable,
    check_string_size,
    lua_eq,
    lua_type,
    str_to_number,
    tostring,
    truthy,
)

_CLASSES = {
    "a": "A-Za-z",
    "c": "\\x00-\\x1f\\x7f",
    "d": "0-9",
    "g": "\\x21-\\x7e",
    "l": "a-z",
    "p": re.escape("!\"#$%&'()*+,-./:;<=>?@[\\]^_`{|}~"),
    "s": " \\t\\n\\r\\f\\v",
    "u": "A-Z",
    "w": "A-Za-z0-9",
    "x": "0-9A-Fa-f",
}


def _arg(args: List[Any], i: int, default: Any = None) -> Any:
    return args[i] if i < len(args) and args[i] is not None else default


def _check_str(args: List[Any], i: int, fname: str) -> str:
    value = _arg(args, i)
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return tostring(value)
    raise LuaRuntimeError(f"bad argument #{i + 1} to '{fname}' (string expected, got {lua_type(value)})")


def _check_int(args: List[Any], i: int, fname: str, default: Optional[int] = None) -> int:
    value = _arg(args, i)
    if value is None and default is not None:
        return default
    if isinstance(value, str):
        value = str_to_number(value)
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    raise LuaRuntimeError(f"bad argument #{i + 1} to '{fname}' (number expected, got {lua_type(_arg(args, i))})")


def _check_table(args: List[Any], i: int, fname: str) -> LuaTable:
    value = _arg(args, i)
    if isinstance(value, LuaTable):
        return value
    raise LuaRuntimeError(f"bad argument #{i + 1} to '{fname}' (table expected, got {lua_type(value)})")


# Lua patterns
def _class_body(letter: str) -> Optional[str]:
    body = _CLASSES.get(letter.lower())
    if body is None:
        return None
    return body


def _translate_class(letter: str) -> str:
    body = _class_body(letter)
    if body is None:
        return re.escape(letter)
    if letter.isupper():
        return f"[^{body}]"
    return f"[{body}]"


@functools.lru_cache(maxsize=256)
def lua_pattern(pattern: str) -> Tuple["re.Pattern[str]", bool]:
    """Translate a Lua pattern into a compiled regex and an anchored flag."""
    anchored = pattern.startswith("^")
    i = 1 if anchored else 0
    n = len(pattern)
    out: List[str] = []
    last_atom = False
    while i < n:
        c = pattern[i]
        if c == "%":
            if i + 1 >= n:
                raise LuaRuntimeError("malformed pattern (ends with '%')")
            nxt = pattern[i + 1]
            if nxt in "bf":
                raise LuaRuntimeError(f"pattern item '%{nxt}' is not supported")
            if nxt.isdigit():
                out.append(f"(?P=g{nxt})")
            else:
                out.append(_translate_class(nxt) if nxt.isalpha() else re.escape(nxt))
            i += 2
            last_atom = True
        elif c == "[":
            j = i + 1
            parts = ["["]
            if j < n and pattern[j] == "^":
                parts.append("^")
                j += 1
            first = True
            while j < n and (pattern[j] != "]" or first):
                ch = pattern[j]
                first = False
                if ch == "%" and j + 1 < n:
                    letter = pattern[j + 1]
                    body = _class_body(letter) if letter.isalpha() else None
                    if body is not None and letter.isupper():
                        raise LuaRuntimeError(f"negated class '%{letter}' inside a set is not supported")
                    parts.append(body if body is not None else re.escape(letter))
                    j += 2
                    continue
                if ch in "\\[":
                    parts.append("\\" + ch)
                elif ch == "]":
                    parts.append("\\]")
                else:
                    parts.append(ch)
                j += 1
            if j >= n:
                raise LuaRuntimeError("malformed pattern (missing ']')")
            parts.append("]")
            out.append("".join(parts))
            i = j + 1
            last_atom = True
        elif c == "(":
            if i + 1 < n and pattern[i + 1] == ")":
                raise LuaRuntimeError("position captures are not supported")
            group = sum(1 for part in out if part.startswith("(?P<g")) + 1
            out.append(f"(?P<g{group}>")
            i += 1
            last_atom = False
        elif c == ")":
            out.append(")")
            i += 1
            last_atom = True
        elif c == ".":
            out.append(".")
            i += 1
            last_atom = True
        elif c in "*+?" and last_atom:
            out.append(c)
            i += 1
            last_atom = False
        elif c == "-" and last_atom:
            out.append("*?")
            i += 1
            last_atom = False
        elif c == "$" and i == n - 1:
            out.append("\\Z")
            i += 1
        else:
            out.append(re.escape(c))
            i += 1
            last_atom = True
    try:
        return re.compile("".join(out), re.S), anchored
    except re.error as exc:
        raise LuaRuntimeError(f"malformed pattern: {exc}") from exc


def _start_index(init: int, length: int) -> int:
    if init < 0:
        init = max(length + init + 1, 1)
    elif init == 0:
        init = 1
    return init - 1


def _search(subject: str, pattern: str, pos: int) -> Optional["re.Match[str]"]:
    regex, anchored = lua_pattern(pattern)
    if anchored:
        return regex.match(subject, pos)
    return regex.search(subject, pos)


def _captures(m: "re.Match[str]") -> List[Any]:
    groups = list(m.groups())
    return groups if groups else [m.group(0)]


_SPECIALS = set("^$*+?.([%-")


def install(interp: Interpreter) -> None:
    """Populate ``interp.globals`` with the pure standard library."""
    g = interp.globals

    def define(table: LuaTable, name: str, fn) -> None:
        table.set(name, HostFunction(name, fn))

    # base
    def lua_pairs(args):
        if isinstance(_arg(args, 0), HostObject):
            items = []
            table = args[0]
        else:
            table = _check_table(args, 0, "pairs")
            items = list(table.items())
        position = [0]

        def step(_):
            if position[0] >= len(items):
                return None
            key, value = items[position[0]]
            position[0] += 1
            return [key, value]

        return [HostFunction("pairs_iter", step), table, None]

    def lua_ipairs(args):
        value = _arg(args, 0)
        if value is None:
            raise LuaRuntimeError("bad argument #1 to 'ipairs' (table expected, got nil)")

        def step(step_args):
            if isinstance(step_args[0], HostObject):
                return None
            i = step_args[1] + 1
            item = interp.index(step_args[0], i)
            return None if item is None else [i, item]

        return [HostFunction("ipairs_iter", step), value, 0]

    def lua_next(args):
        table = _check_table(args, 0, "next")
        key = _arg(args, 1)
        keys = table.keys()
        if key is None:
            index = 0
        else:
            index = next((i + 1 for i, k in enumerate(keys) if lua_eq(k, key)), None)
            if index is None:
                raise LuaRuntimeError("invalid key to 'next'")
        if index >= len(keys):
            return [None]
        return [keys[index], table.get(keys[index])]

    def lua_select(args):
        selector = _arg(args, 0)
        rest = args[1:]
        if selector == "#":
            return len(rest)
        n = _check_int(args, 0, "select")
        if n < 0:
            n = len(rest) + n
            if n < 0:
                raise LuaRuntimeError("bad argument #1 to 'select' (index out of range)")
            return rest[n:]
        if n == 0:
            raise LuaRuntimeError("bad argument #1 to 'select' (index out of range)")
        return rest[n - 1:]

    def lua_tonumber(args):
        value = _arg(args, 0)
        base = _arg(args, 1)
        if isinstance(value, (int, float)) and not isinstance(value, bool) and base is None:
            return value
        if isinstance(value, str):
            return str_to_number(value, base)
        return None

    def lua_error(args):
        raise LuaRuntimeError(_arg(args, 0))

    def lua_assert(args):
        if not args or not truthy(args[0]):
            raise LuaRuntimeError(_arg(args, 1, "assertion failed!"))
        return args

    def lua_pcall(args):
        if not args:
            raise LuaRuntimeError("bad argument #1 to 'pcall' (value expected)")
        try:
            return [True] + interp.call(args[0], list(args[1:]))
        except LuaBudgetExceeded:
            raise
        except LuaRuntimeError as exc:
            return [False, exc.value]

    def lua_setmetatable(args):
        table = _check_table(args, 0, "setmetatable")
        meta = _arg(args, 1)
        if meta is not None and not isinstance(meta, LuaTable):
            raise LuaRuntimeError("bad argument #2 to 'setmetatable' (nil or table expected)")
        table.metatable = meta
        return table

    def lua_getmetatable(args):
        value = _arg(args, 0)
        if isinstance(value, LuaTable) and value.metatable is not None:
            guard = value.metatable.get("__metatable")
            return guard if guard is not None else value.metatable
        return None

    def lua_unpack(args):
        table = _check_table(args, 0, "unpack")
        first = _check_int(args, 1, "unpack", 1)
        last = _check_int(args, 2, "unpack", table.length())
        if last - first >= Constants.LUA_MAX_RESULTS:
            raise LuaRuntimeError("too many results to unpack")
        return [table.get(i) for i in range(first, last + 1)]

    define(g, "pairs", lua_pairs)
    define(g, "ipairs", lua_ipairs)
    define(g, "next", lua_next)
    define(g, "select", lua_select)
    define(g, "type", lambda args: lua_type(_arg(args, 0)) if args else _raise("bad argument #1 to 'type' (value expected)"))
    define(g, "tostring", lambda args: tostring(_arg(args, 0)))
    define(g, "tonumber", lua_tonumber)
    define(g, "error", lua_error)
    define(g, "assert", lua_assert)
    define(g, "pcall", lua_pcall)
    define(g, "setmetatable", lua_setmetatable)
    define(g, "getmetatable", lua_getmetatable)
    define(g, "unpack", lua_unpack)
    define(g, "print", lambda args: None)
    g.set("_G", g)
    g.set("_VERSION", "Lua 5.1")

    # string
    string = LuaTable()

    def str_sub(args):
        s = _check_str(args, 0, "sub")
        length = len(s)
        i = _check_int(args, 1, "sub", 1)
        j = _check_int(args, 2, "sub", -1)
        if i < 0:
            i = max(length + i + 1, 1)
        elif i == 0:
            i = 1
        if j < 0:
            j = length + j + 1
        elif j > length:
            j = length
        return s[i - 1:j] if i <= j else ""

    def str_find(args):
        s = _check_str(args, 0, "find")
        pattern = _check_str(args, 1, "find")
        start = _start_index(_check_int(args, 2, "find", 1), len(s))
        if start > len(s):
            return None
        plain = truthy(_arg(args, 3)) or not any(c in _SPECIALS for c in pattern)
        if plain:
            found = s.find(pattern, start)
            return None if found < 0 else [found + 1, found + len(pattern)]
        m = _search(s, pattern, start)
        if m is None:
            return None
        return [m.start() + 1, m.end()] + list(m.groups())

    def str_match(args):
        s = _check_str(args, 0, "match")
        pattern = _check_str(args, 1, "match")
        start = _start_index(_check_int(args, 2, "match", 1), len(s))
        if start > len(s):
            return None
        m = _search(s, pattern, start)
        return None if m is None else _captures(m)

    def str_gmatch(args):
        s = _check_str(args, 0, "gmatch")
        pattern = _check_str(args, 1, "gmatch")
        regex, anchored = lua_pattern(pattern)
        matches = iter([regex.match(s)] if anchored else regex.finditer(s))

        def step(_):
            m = next(matches, None)
            return None if m is None else _captures(m)

        return HostFunction("gmatch_iter", step)

    def str_gsub(args):
        s = _check_str(args, 0, "gsub")
        pattern = _check_str(args, 1, "gsub")
        repl = _arg(args, 2)
        limit = _check_int(args, 3, "gsub", -1)
        regex, anchored = lua_pattern(pattern)
        count = [0]

        def substitute(m: "re.Match[str]") -> str:
            if 0 <= limit <= count[0]:
                return m.group(0)
            count[0] += 1
            whole = m.group(0)
            first = m.group(1) if m.groups() else whole
            if isinstance(repl, (str, int, float)) and not isinstance(repl, bool):
                text = tostring(repl)

                def expand(em: "re.Match[str]") -> str:
                    ch = em.group(1)
                    if ch == "0":
                        return whole
                    if ch.isdigit():
                        index = int(ch)
                        if index == 1 and not m.groups():
                            return whole
                        return tostring(m.group(index))
                    return ch

                return re.sub(r"%(.)", expand, text)
            if isinstance(repl, LuaTable):
                value = interp.index(repl, first)
            else:
                results = interp.call(repl, list(m.groups()) or [whole])
                value = results[0] if results else None
            if not truthy(value):
                return whole
            return tostring(value)

        grown = [0]

        def checked(m: "re.Match[str]") -> str:
            text = substitute(m)
            grown[0] += len(text) - len(m.group(0))
            check_string_size(len(s) + grown[0])
            return text

        if anchored:
            m = regex.match(s)
            if m is None:
                return [s, 0]
            return [s[:m.start()] + checked(m) + s[m.end():], count[0]]
        return [regex.sub(checked, s), count[0]]

    def str_rep(args):
        s = _check_str(args, 0, "rep")
        n = _check_int(args, 1, "rep")
        sep = _check_str(args, 2, "rep") if _arg(args, 2) is not None else ""
        if n <= 0:
            return ""
        check_string_size(len(s) * n + len(sep) * (n - 1))
        return sep.join([s] * n)

    def str_format(args):
        fmt = _check_str(args, 0, "format")
        values = list(args[1:])
        position = [0]

        def take():
            if position[0] >= len(values):
                raise LuaRuntimeError(f"bad argument #{position[0] + 2} to 'format' (no value)")
            value = values[position[0]]
            position[0] += 1
            return value

        def render(m: "re.Match[str]") -> str:
            spec, conv = m.group(1), m.group(2)
            width, _, precision = spec.lstrip("-+ #0").partition(".")
            if len(width) > 2 or len(precision) > 2:
                raise LuaRuntimeError("invalid conversion to 'format'")
            if conv == "%":
                return "%"
            value = take()
            if conv == "s":
                return ("%" + spec + "s") % tostring(value)
            if conv == "q":
                text = tostring(value).replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
                return f'"{text}"'
            if conv in "di":
                return ("%" + spec + "d") % _check_int([value], 0, "format")
            if conv in "xXoc":
                number = _check_int([value], 0, "format")
                return chr(number) if conv == "c" else ("%" + spec + conv) % number
            number = interp.to_number(value)
            return ("%" + spec + conv) % number

        text = re.sub(r"%([-+ #0]*\d*(?:\.\d+)?)([sdiqxXofgeEGc%])", render, fmt)
        check_string_size(len(text))
        return text

    define(string, "sub", str_sub)
    define(string, "find", str_find)
    define(string, "match", str_match)
    define(string, "gmatch", str_gmatch)
    define(string, "gsub", str_gsub)
    define(string, "rep", str_rep)
    define(string, "format", str_format)
    define(string, "len", lambda args: len(_check_str(args, 0, "len")))
    define(string, "lower", lambda args: _check_str(args, 0, "lower").lower())
    define(string, "upper", lambda args: _check_str(args, 0, "upper").upper())
    g.set("string", string)
    interp.string_lib = string

    # table
    table_lib = LuaTable()

    def tbl_insert(args):
        table = _check_table(args, 0, "insert")
        n = table.length()
        if len(args) == 2:
            table.set(n + 1, args[1])
            return None
        if len(args) != 3:
            raise LuaRuntimeError("wrong number of arguments to 'insert'")
        pos = _check_int(args, 1, "insert")
        if pos < 1 or pos > n + 1:
            raise LuaRuntimeError("bad argument #2 to 'insert' (position out of bounds)")
        for i in range(n, pos - 1, -1):
            table.set(i + 1, table.get(i))
        table.set(pos, args[2])
        return None

    def tbl_remove(args):
        table = _check_table(args, 0, "remove")
        n = table.length()
        if n == 0:
            return None
        pos = _check_int(args, 1, "remove", n)
        value = table.get(pos)
        for i in range(pos, n):
            table.set(i, table.get(i + 1))
        table.set(n, None)
        return value

    def tbl_concat(args):
        table = _check_table(args, 0, "concat")
        sep = _check_str(args, 1, "concat") if _arg(args, 1) is not None else ""
        first = _check_int(args, 2, "concat", 1)
        last = _check_int(args, 3, "concat", table.length())
        parts = []
        for i in range(first, last + 1):
            value = table.get(i)
            if not isinstance(value, (str, int, float)) or isinstance(value, bool):
                raise LuaRuntimeError(f"invalid value (at index {i}) in table for 'concat'")
            parts.append(tostring(value))
        check_string_size(sum(len(part) for part in parts) + len(sep) * max(len(parts) - 1, 0))
        return sep.join(parts)

    def tbl_sort(args):
        table = _check_table(args, 0, "sort")
        comp = _arg(args, 1)
        items = table.array()

        if comp is None:
            def less(a, b):
                return -1 if interp.less_than(a, b) else (1 if interp.less_than(b, a) else 0)
        else:
            def less(a, b):
                if truthy((interp.call(comp, [a, b]) or [None])[0]):
                    return -1
                if truthy((interp.call(comp, [b, a]) or [None])[0]):
                    return 1
                return 0

        items.sort(key=functools.cmp_to_key(less))
        for i, value in enumerate(items, start=1):
            table.set(i, value)
        return None

    def tbl_pack(args):
        table = LuaTable()
        for i, value in enumerate(args, start=1):
            table.set(i, value)
        table.set("n", len(args))
        return table

    define(table_lib, "insert", tbl_insert)
    define(table_lib, "remove", tbl_remove)
    define(table_lib, "concat", tbl_concat)
    define(table_lib, "sort", tbl_sort)
    define(table_lib, "pack", tbl_pack)
    define(table_lib, "unpack", lua_unpack)
    g.set("table", table_lib)

    # math
    math_lib = LuaTable()

    def num(args, i, fname):
        value = _arg(args, i)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return value
        raise LuaRuntimeError(f"bad argument #{i + 1} to '{fname}' (number expected, got {lua_type(value)})")

    def math_floor(args):
        value = num(args, 0, "floor")
        return value if isinstance(value, int) else int(math.floor(value))

    def math_ceil(args):
        value = num(args, 0, "ceil")
        return value if isinstance(value, int) else int(math.ceil(value))

    def math_max(args):
        best = num(args, 0, "max")
        for i in range(1, len(args)):
            value = num(args, i, "max")
            if value > best:
                best = value
        return best

    def math_min(args):
        best = num(args, 0, "min")
        for i in range(1, len(args)):
            value = num(args, i, "min")
            if value < best:
                best = value
        return best

    def math_tointeger(args):
        value = _arg(args, 0)
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        return None

    define(math_lib, "floor", math_floor)
    define(math_lib, "ceil", math_ceil)
    define(math_lib, "max", math_max)
    define(math_lib, "min", math_min)
    define(math_lib, "abs", lambda args: abs(num(args, 0, "abs")))
    define(math_lib, "tointeger", math_tointeger)
    math_lib.set("huge", float("inf"))
    math_lib.set("maxinteger", 2 ** 63 - 1)
    math_lib.set("mininteger", -(2 ** 63))
    g.set("math", math_lib)


def _raise(message: str) -> Any:
    raise LuaRuntimeError(message)
