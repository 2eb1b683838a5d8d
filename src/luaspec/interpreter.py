"""Tree-walking interpreter for parsed declaration chunks.

Runs with an instruction budget and a call-depth limit so a hostile or
looping declaration file fails fast instead of hanging the pipeline. The
interpreter itself has no I/O surface; everything a chunk can reach comes
from the globals table handed to it.
"""
from __future__ import annotations

import math
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from constants import Constants

_MULTI = frozenset(("call", "method", "vararg"))
_ARITH = frozenset(("+", "-", "*", "/", "%", "^"))
_BREAK = object()

_TRUE_KEY = ("boolean", True)
_FALSE_KEY = ("boolean", False)

_INT_MASK = (1 << 64) - 1
_INT_MIN = -(1 << 63)
_INT_MAX = (1 << 63) - 1


class LuaRuntimeError(Exception):
    """Error raised while executing a chunk; ``value`` is the Lua error object."""

    def __init__(self, message: Any):
        super().__init__(message if isinstance(message, str) else tostring(message))
        self.value = message


class LuaBudgetExceeded(LuaRuntimeError):
    """The chunk ran past its instruction budget. Not catchable by pcall."""


def _encode_key(key: Any) -> Any:
    if key is True:
        return _TRUE_KEY
    if key is False:
        return _FALSE_KEY
    if isinstance(key, float) and key.is_integer():
        return int(key)
    return key


def _decode_key(key: Any) -> Any:
    if isinstance(key, tuple):
        return key[1]
    return key


class LuaTable:
    """Lua table: one hash part, integer keys 1..n form the sequence."""

    __slots__ = ("hash", "metatable", "__weakref__")

    def __init__(self) -> None:
        self.hash: Dict[Any, Any] = {}
        self.metatable: Optional["LuaTable"] = None

    @classmethod
    def from_python(cls, value: Any) -> Any:
        """Convert nested lists/dicts into tables; other values pass through."""
        if isinstance(value, (list, tuple)):
            table = cls()
            for i, item in enumerate(value, start=1):
                table.set(i, cls.from_python(item))
            return table
        if isinstance(value, dict):
            table = cls()
            for key, item in value.items():
                table.set(key, cls.from_python(item))
            return table
        return value

    def get(self, key: Any) -> Any:
        return self.hash.get(_encode_key(key))

    def set(self, key: Any, value: Any) -> None:
        if key is None:
            raise LuaRuntimeError("table index is nil")
        if isinstance(key, float) and key != key:
            raise LuaRuntimeError("table index is NaN")
        key = _encode_key(key)
        if value is None:
            self.hash.pop(key, None)
        else:
            self.hash[key] = value

    def length(self) -> int:
        n = 0
        while (n + 1) in self.hash:
            n += 1
        return n

    def array(self) -> List[Any]:
        """Values of the sequence part, in order."""
        return [self.hash[i] for i in range(1, self.length() + 1)]

    def items(self) -> Iterator[Tuple[Any, Any]]:
        """Sequence entries first, then the remaining keys in insertion order."""
        n = self.length()
        for i in range(1, n + 1):
            yield i, self.hash[i]
        for key, value in list(self.hash.items()):
            if isinstance(key, int) and 1 <= key <= n:
                continue
            yield _decode_key(key), value

    def keys(self) -> List[Any]:
        return [k for k, _ in self.items()]

    def to_python(self, _active: Optional[set] = None) -> Any:
        """Plain list for pure sequences, dict otherwise (nested tables converted).

        A table that contains itself, directly or further down, converts to
        None at the point where it repeats.
        """
        active = set() if _active is None else _active
        active.add(id(self))
        try:
            n = self.length()
            if n == len(self.hash):
                return [_to_python(v, active) for v in self.array()]
            return {k: _to_python(v, active) for k, v in self.items()}
        finally:
            active.discard(id(self))

    def __repr__(self) -> str:
        return f"LuaTable({self.to_python()!r})"


def _to_python(value: Any, active: set) -> Any:
    if isinstance(value, LuaTable):
        if id(value) in active:
            return None
        return value.to_python(active)
    return value


def wrap_int(value: int) -> int:
    """Two's-complement wrap into the 64-bit integer range."""
    if _INT_MIN <= value <= _INT_MAX:
        return value
    return ((value - _INT_MIN) & _INT_MASK) + _INT_MIN


def power(a: Any, b: Any) -> float:
    """``a ^ b`` as a float; overflow gives inf, undefined results nan."""
    try:
        return math.pow(a, b)
    except OverflowError:
        negative = a < 0 and float(b).is_integer() and int(b) % 2 == 1
        return -math.inf if negative else math.inf
    except ValueError:
        # pow(0, negative) or a negative base with a fractional exponent
        return math.inf if a == 0 else math.nan


class LuaFunction:
    """Closure over a parsed function body."""

    __slots__ = ("params", "is_vararg", "body", "scope", "name")

    def __init__(self, params: List[str], is_vararg: bool, body: List[Tuple], scope: "Scope", name: Optional[str] = None):
        self.params = params
        self.is_vararg = is_vararg
        self.body = body
        self.scope = scope
        self.name = name

    def __repr__(self) -> str:
        return f"<function {self.name or '?'}>"


class HostFunction:
    """Python callable exposed to chunks; ``fn`` takes the argument list."""

    __slots__ = ("name", "fn")

    def __init__(self, name: str, fn: Callable[[List[Any]], Any]):
        self.name = name
        self.fn = fn

    def __repr__(self) -> str:
        return f"<builtin {self.name}>"


class HostObject:
    """Base for host-provided values with custom index/call behavior."""

    def lua_index(self, key: Any) -> Any:
        return None

    def lua_setindex(self, key: Any, value: Any) -> None:
        raise LuaRuntimeError(f"attempt to index a {self.lua_type()} value")

    def lua_call(self, args: List[Any]) -> Any:
        raise LuaRuntimeError(f"attempt to call a {self.lua_type()} value")

    def lua_len(self) -> int:
        return 0

    def lua_type(self) -> str:
        return "userdata"


class Scope:
    __slots__ = ("vars", "parent", "varargs")

    def __init__(self, parent: Optional["Scope"] = None):
        self.vars: Dict[str, Any] = {}
        self.parent = parent
        self.varargs: Optional[List[Any]] = None


def truthy(value: Any) -> bool:
    return value is not None and value is not False


def lua_type(value: Any) -> str:
    if value is None:
        return "nil"
    if value is True or value is False:
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, LuaTable):
        return "table"
    if isinstance(value, (LuaFunction, HostFunction)):
        return "function"
    if isinstance(value, HostObject):
        return value.lua_type()
    return "userdata"


def number_to_str(value: Any) -> str:
    if isinstance(value, float):
        if value != value:
            return "nan"
        if math.isinf(value):
            return "inf" if value > 0 else "-inf"
        if value.is_integer() and abs(value) < 1e16:
            return "%.1f" % value
        return "%.14g" % value
    return str(value)


def tostring(value: Any) -> str:
    if value is None:
        return "nil"
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, (int, float)):
        return number_to_str(value)
    if isinstance(value, str):
        return value
    return f"{lua_type(value)}: 0x{id(value):08x}"


def str_to_number(text: str, base: Optional[int] = None) -> Optional[Any]:
    """Lua ``tonumber`` semantics for strings; None when not numeric."""
    text = text.strip()
    if not text:
        return None
    if base is not None:
        try:
            return int(text, base)
        except ValueError:
            return None
    sign = 1
    body = text
    if body[0] in "+-":
        sign = -1 if body[0] == "-" else 1
        body = body[1:]
    if body[:2].lower() == "0x":
        try:
            return wrap_int(sign * int(body[2:], 16))
        except ValueError:
            try:
                return sign * float.fromhex(body)
            except ValueError:
                return None
    if body.lower() in ("inf", "nan", "infinity") or "_" in body:
        return None
    try:
        if any(c in body for c in ".eE"):
            return sign * float(body)
        value = sign * int(body)
    except ValueError:
        return None
    # decimal integers that do not fit become floats
    return value if _INT_MIN <= value <= _INT_MAX else sign * float(body)


def lua_eq(a: Any, b: Any) -> bool:
    if a is b:
        return True
    ta = lua_type(a)
    if ta != lua_type(b):
        return False
    if ta in ("number", "string", "boolean"):
        return a == b
    return False


def _as_results(result: Any) -> List[Any]:
    if result is None:
        return []
    if isinstance(result, list):
        return result
    if isinstance(result, tuple):
        return list(result)
    return [result]


class Interpreter:
    """Executes parsed chunks against a globals table."""

    def __init__(self, max_steps: int = Constants.LUA_MAX_STEPS, max_depth: int = Constants.LUA_MAX_DEPTH):
        self.max_steps = max_steps
        self.max_depth = max_depth
        self.steps = 0
        self.depth = 0
        self.globals = LuaTable()
        self.string_lib: Optional[LuaTable] = None
        self._statements = {
            "assign": self._stat_assign,
            "callstat": self._stat_call,
            "do": self._stat_do,
            "while": self._stat_while,
            "repeat": self._stat_repeat,
            "if": self._stat_if,
            "fornum": self._stat_fornum,
            "forin": self._stat_forin,
            "return": self._stat_return,
            "break": lambda stmt, scope: _BREAK,
        }

    # entry points
    def run(self, block: List[Tuple]) -> List[Any]:
        """Execute a main chunk and return its return values."""
        scope = Scope()
        scope.varargs = []
        result = self.exec_block(block, scope)
        return result if isinstance(result, list) else []

    def tick(self) -> None:
        self.steps += 1
        if self.steps > self.max_steps:
            raise LuaBudgetExceeded(f"instruction budget of {self.max_steps} exhausted")

    # statements
    def exec_block(self, block: List[Tuple], scope: Scope) -> Any:
        signal, _ = self._run(block, Scope(scope))
        return signal

    def _run(self, block: List[Tuple], scope: Scope) -> Tuple[Any, Scope]:
        for stmt in block:
            self.tick()
            kind = stmt[0]
            if kind == "local":
                values = self.eval_list(stmt[2], scope)
                scope = Scope(scope)
                for i, name in enumerate(stmt[1]):
                    scope.vars[name] = values[i] if i < len(values) else None
                continue
            if kind == "localfunc":
                scope = Scope(scope)
                scope.vars[stmt[1]] = None
                scope.vars[stmt[1]] = self.make_function(stmt[2], scope, stmt[1])
                continue
            signal = self._statements[kind](stmt, scope)
            if signal is not None:
                return signal, scope
        return None, scope

    def _stat_assign(self, stmt: Tuple, scope: Scope) -> None:
        refs = []
        for target in stmt[1]:
            if target[0] == "name":
                refs.append((target[1], None, None))
            else:
                refs.append((None, self.eval(target[1], scope), self.eval(target[2], scope)))
        values = self.eval_list(stmt[2], scope)
        for i, (name, obj, key) in enumerate(refs):
            value = values[i] if i < len(values) else None
            if name is not None:
                self.assign_name(name, value, scope)
            else:
                self.setindex(obj, key, value)
        return None

    def _stat_call(self, stmt: Tuple, scope: Scope) -> None:
        self.eval_multi(stmt[1], scope)
        return None

    def _stat_do(self, stmt: Tuple, scope: Scope) -> Any:
        return self.exec_block(stmt[1], scope)

    def _stat_while(self, stmt: Tuple, scope: Scope) -> Any:
        while truthy(self.eval(stmt[1], scope)):
            self.tick()
            signal = self.exec_block(stmt[2], scope)
            if signal is _BREAK:
                break
            if signal is not None:
                return signal
        return None

    def _stat_repeat(self, stmt: Tuple, scope: Scope) -> Any:
        while True:
            self.tick()
            signal, inner = self._run(stmt[1], Scope(scope))
            if signal is _BREAK:
                break
            if signal is not None:
                return signal
            if truthy(self.eval(stmt[2], inner)):
                break
        return None

    def _stat_if(self, stmt: Tuple, scope: Scope) -> Any:
        for cond, block in stmt[1]:
            if truthy(self.eval(cond, scope)):
                return self.exec_block(block, scope)
        if stmt[2] is not None:
            return self.exec_block(stmt[2], scope)
        return None

    def _stat_fornum(self, stmt: Tuple, scope: Scope) -> Any:
        _, var, start_e, stop_e, step_e, body = stmt
        start = self.to_number(self.eval(start_e, scope), "'for' initial value")
        stop = self.to_number(self.eval(stop_e, scope), "'for' limit")
        step = self.to_number(self.eval(step_e, scope), "'for' step") if step_e is not None else 1
        if step == 0:
            raise LuaRuntimeError("'for' step is zero")
        if isinstance(start, float) or isinstance(step, float):
            start, stop, step = float(start), float(stop), float(step)
        i = start
        while (step > 0 and i <= stop) or (step < 0 and i >= stop):
            self.tick()
            loop = Scope(scope)
            loop.vars[var] = i
            signal = self.exec_block(body, loop)
            if signal is _BREAK:
                break
            if signal is not None:
                return signal
            i += step
        return None

    def _stat_forin(self, stmt: Tuple, scope: Scope) -> Any:
        _, names, exprs, body = stmt
        values = self.eval_list(exprs, scope) + [None, None, None]
        fn, state, control = values[0], values[1], values[2]
        while True:
            self.tick()
            results = self.call(fn, [state, control])
            if not results or results[0] is None:
                break
            control = results[0]
            loop = Scope(scope)
            for i, name in enumerate(names):
                loop.vars[name] = results[i] if i < len(results) else None
            signal = self.exec_block(body, loop)
            if signal is _BREAK:
                break
            if signal is not None:
                return signal
        return None

    def _stat_return(self, stmt: Tuple, scope: Scope) -> List[Any]:
        return self.eval_list(stmt[1], scope)

    # names
    def lookup(self, name: str, scope: Scope) -> Any:
        s: Optional[Scope] = scope
        while s is not None:
            if name in s.vars:
                return s.vars[name]
            s = s.parent
        return self.index(self.globals, name)

    def assign_name(self, name: str, value: Any, scope: Scope) -> None:
        s: Optional[Scope] = scope
        while s is not None:
            if name in s.vars:
                s.vars[name] = value
                return
            s = s.parent
        self.setindex(self.globals, name, value)

    def varargs(self, scope: Scope) -> List[Any]:
        s: Optional[Scope] = scope
        while s is not None:
            if s.varargs is not None:
                return s.varargs
            s = s.parent
        return []

    # expressions
    def eval(self, node: Tuple, scope: Scope) -> Any:
        kind = node[0]
        if kind == "str" or kind == "num":
            return node[1]
        if kind == "name":
            return self.lookup(node[1], scope)
        if kind == "index":
            obj = self.eval(node[1], scope)
            return self.index(obj, self.eval(node[2], scope), node[1])
        if kind in _MULTI:
            results = self.eval_multi(node, scope)
            return results[0] if results else None
        if kind == "table":
            return self.eval_table(node, scope)
        if kind == "func":
            return self.make_function(node, scope)
        if kind == "and":
            left = self.eval(node[1], scope)
            return self.eval(node[2], scope) if truthy(left) else left
        if kind == "or":
            left = self.eval(node[1], scope)
            return left if truthy(left) else self.eval(node[2], scope)
        if kind == "bin":
            return self.binop(node[1], self.eval(node[2], scope), self.eval(node[3], scope))
        if kind == "un":
            return self.unop(node[1], self.eval(node[2], scope))
        if kind == "paren":
            return self.eval(node[1], scope)
        if kind == "nil":
            return None
        if kind == "true":
            return True
        if kind == "false":
            return False
        raise LuaRuntimeError(f"unknown expression {kind}")

    def eval_multi(self, node: Tuple, scope: Scope) -> List[Any]:
        kind = node[0]
        if kind == "call":
            fn = self.eval(node[1], scope)
            return self.call(fn, self.eval_list(node[2], scope), _describe(node[1]))
        if kind == "method":
            obj = self.eval(node[1], scope)
            fn = self.index(obj, node[2], node[1])
            return self.call(fn, [obj] + self.eval_list(node[3], scope), node[2])
        if kind == "vararg":
            return list(self.varargs(scope))
        return [self.eval(node, scope)]

    def eval_list(self, exprs: Sequence[Tuple], scope: Scope) -> List[Any]:
        out: List[Any] = []
        last = len(exprs) - 1
        for i, expr in enumerate(exprs):
            if i == last and expr[0] in _MULTI:
                out.extend(self.eval_multi(expr, scope))
            else:
                out.append(self.eval(expr, scope))
        return out

    def eval_table(self, node: Tuple, scope: Scope) -> LuaTable:
        table = LuaTable()
        n = 0
        fields = node[1]
        last = len(fields) - 1
        for i, (kind, key, value) in enumerate(fields):
            if kind == "pos":
                if i == last and value[0] in _MULTI:
                    for item in self.eval_multi(value, scope):
                        n += 1
                        table.set(n, item)
                else:
                    n += 1
                    table.set(n, self.eval(value, scope))
            else:
                table.set(self.eval(key, scope), self.eval(value, scope))
        return table

    def make_function(self, node: Tuple, scope: Scope, name: Optional[str] = None) -> LuaFunction:
        return LuaFunction(node[1], node[2], node[3], scope, name)

    # calls
    def call(self, fn: Any, args: List[Any], name: Optional[str] = None) -> List[Any]:
        self.tick()
        if isinstance(fn, LuaFunction):
            return self._call_function(fn, args)
        if isinstance(fn, HostFunction):
            try:
                result = fn.fn(args)
            except (TypeError, ValueError, IndexError, KeyError, AttributeError, OverflowError, ZeroDivisionError) as exc:
                raise LuaRuntimeError(f"bad argument to '{fn.name}' ({exc})") from exc
            return _as_results(result)
        if isinstance(fn, HostObject):
            return _as_results(fn.lua_call(args))
        if isinstance(fn, LuaTable):
            handler = self.metamethod(fn, "__call")
            if handler is not None:
                return self.call(handler, [fn] + list(args), name)
        suffix = f" ({name})" if name else ""
        raise LuaRuntimeError(f"attempt to call a {lua_type(fn)} value{suffix}")

    def _call_function(self, fn: LuaFunction, args: List[Any]) -> List[Any]:
        self.depth += 1
        try:
            if self.depth > self.max_depth:
                raise LuaRuntimeError("stack overflow")
            scope = Scope(fn.scope)
            for i, param in enumerate(fn.params):
                scope.vars[param] = args[i] if i < len(args) else None
            scope.varargs = list(args[len(fn.params):]) if fn.is_vararg else []
            result = self.exec_block(fn.body, scope)
        finally:
            self.depth -= 1
        return result if isinstance(result, list) else []

    # tables and metatables
    def metamethod(self, value: Any, event: str) -> Any:
        if isinstance(value, LuaTable) and value.metatable is not None:
            return value.metatable.get(event)
        return None

    def index(self, obj: Any, key: Any, source: Optional[Tuple] = None) -> Any:
        for _ in range(100):
            if isinstance(obj, LuaTable):
                value = obj.get(key)
                if value is not None:
                    return value
                handler = self.metamethod(obj, "__index")
                if handler is None:
                    return None
                if isinstance(handler, (LuaFunction, HostFunction)):
                    results = self.call(handler, [obj, key])
                    return results[0] if results else None
                obj = handler
                continue
            if isinstance(obj, str) and self.string_lib is not None:
                return self.string_lib.get(key)
            if isinstance(obj, HostObject):
                return obj.lua_index(key)
            what = f" ({_describe(source)})" if source is not None and _describe(source) else ""
            raise LuaRuntimeError(f"attempt to index a {lua_type(obj)} value{what}")
        raise LuaRuntimeError("'__index' chain too long")

    def setindex(self, obj: Any, key: Any, value: Any) -> None:
        if isinstance(obj, LuaTable):
            handler = self.metamethod(obj, "__newindex")
            if handler is None or obj.get(key) is not None:
                obj.set(key, value)
            elif isinstance(handler, (LuaFunction, HostFunction)):
                self.call(handler, [obj, key, value])
            else:
                self.setindex(handler, key, value)
            return
        if isinstance(obj, HostObject):
            obj.lua_setindex(key, value)
            return
        raise LuaRuntimeError(f"attempt to index a {lua_type(obj)} value")

    def length(self, value: Any) -> int:
        if isinstance(value, str):
            return len(value)
        if isinstance(value, LuaTable):
            return value.length()
        if isinstance(value, HostObject):
            return value.lua_len()
        raise LuaRuntimeError(f"attempt to get length of a {lua_type(value)} value")

    # operators
    def to_number(self, value: Any, what: str = "arithmetic") -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            number = str_to_number(value)
            if number is not None:
                return number
        raise LuaRuntimeError(f"attempt to perform {what} on a {lua_type(value)} value")

    def binop(self, op: str, a: Any, b: Any) -> Any:
        if op == "==":
            return lua_eq(a, b)
        if op == "~=":
            return not lua_eq(a, b)
        if op == "..":
            return self.concat(a, b)
        if op == "<":
            return self.less_than(a, b)
        if op == ">":
            return self.less_than(b, a)
        if op == "<=":
            return self.less_equal(a, b)
        if op == ">=":
            return self.less_equal(b, a)
        if op in _ARITH:
            return self.arith(op, self.to_number(a), self.to_number(b))
        raise LuaRuntimeError(f"unknown operator {op}")

    def arith(self, op: str, a: Any, b: Any) -> Any:
        result = self._arith(op, a, b)
        return wrap_int(result) if isinstance(result, int) else result

    def _arith(self, op: str, a: Any, b: Any) -> Any:
        if op == "+":
            return a + b
        if op == "-":
            return a - b
        if op == "*":
            return a * b
        if op == "/":
            if b == 0:
                if a == 0 or a != a:
                    return float("nan")
                return math.copysign(float("inf"), a) * math.copysign(1.0, b)
            return float(a) / float(b)
        if op == "%":
            if b == 0:
                if isinstance(a, int) and isinstance(b, int):
                    raise LuaRuntimeError("attempt to perform 'n%0'")
                return float("nan")
            return a % b
        return power(a, b)

    def concat(self, a: Any, b: Any) -> str:
        for value in (a, b):
            if not isinstance(value, (str, int, float)) or isinstance(value, bool):
                raise LuaRuntimeError(f"attempt to concatenate a {lua_type(value)} value")
        left, right = tostring(a), tostring(b)
        check_string_size(len(left) + len(right))
        return left + right

    def less_than(self, a: Any, b: Any) -> bool:
        if lua_type(a) == lua_type(b) == "number" or (isinstance(a, str) and isinstance(b, str)):
            return a < b
        raise LuaRuntimeError(f"attempt to compare {lua_type(a)} with {lua_type(b)}")

    def less_equal(self, a: Any, b: Any) -> bool:
        if lua_type(a) == lua_type(b) == "number" or (isinstance(a, str) and isinstance(b, str)):
            return a <= b
        raise LuaRuntimeError(f"attempt to compare {lua_type(a)} with {lua_type(b)}")

    def unop(self, op: str, value: Any) -> Any:
        if op == "not":
            return not truthy(value)
        if op == "-":
            number = self.to_number(value)
            return wrap_int(-number) if isinstance(number, int) else -number
        return self.length(value)


def check_string_size(size: int) -> None:
    if size > Constants.LUA_MAX_STRING:
        raise LuaRuntimeError("resulting string too large")


def _describe(node: Optional[Tuple]) -> Optional[str]:
    """Best-effort source name of an expression for error messages."""
    if node is None:
        return None
    if node[0] == "name":
        return f"global '{node[1]}'"
    if node[0] == "index" and node[2][0] == "str":
        return f"field '{node[2][1]}'"
    return None
