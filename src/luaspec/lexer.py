"""Tokenizer for the Lua subset used by plugin declaration files."""
from __future__ import annotations

import re
from typing import Any, List, NamedTuple, Optional, Tuple

from luaspec.interpreter import wrap_int

KEYWORDS = frozenset(
    "and break do else elseif end false for function if in local nil not or "
    "repeat return then true until while".split()
)

# Longest first so "..." wins over ".." and "."
SYMBOLS = (
    "...", "..", "==", "~=", "<=", ">=",
    "+", "-", "*", "/", "%", "^", "#", "<", ">", "=",
    "(", ")", "{", "}", "[", "]", ";", ":", ",", ".",
)

_NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_DEC_RE = re.compile(r"(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_HEX_RE = re.compile(r"0[xX]([0-9a-fA-F]*)(?:\.([0-9a-fA-F]*))?(?:[pP]([+-]?\d+))?")

_SIMPLE_ESCAPES = {
    "a": "\a", "b": "\b", "f": "\f", "n": "\n", "r": "\r", "t": "\t", "v": "\v",
    "\\": "\\", '"': '"', "'": "'", "\n": "\n",
}


class LuaSyntaxError(Exception):
    """Source text could not be tokenized or parsed."""


class Token(NamedTuple):
    kind: str  # name | keyword | number | string | op | eof
    value: Any
    line: int


def _long_bracket_level(source: str, i: int) -> Optional[int]:
    """Return the level of a long bracket opening at ``i``, or None."""
    if i >= len(source) or source[i] != "[":
        return None
    j = i + 1
    while j < len(source) and source[j] == "=":
        j += 1
    if j < len(source) and source[j] == "[":
        return j - i - 1
    return None


def _read_long_bracket(source: str, i: int, level: int, line: int, chunk: str) -> Tuple[int, str]:
    start = i + level + 2
    close = "]" + "=" * level + "]"
    end = source.find(close, start)
    if end < 0:
        raise LuaSyntaxError(f"{chunk}:{line}: unfinished long string/comment")
    content = source[start:end]
    if content.startswith("\r\n"):
        content = content[2:]
    elif content.startswith("\n"):
        content = content[1:]
    return end + len(close), content


def _read_number(source: str, i: int, line: int, chunk: str) -> Tuple[int, Any]:
    m = _HEX_RE.match(source, i)
    if m:
        int_part, frac, exp = m.group(1), m.group(2), m.group(3)
        if not int_part and not frac:
            raise LuaSyntaxError(f"{chunk}:{line}: malformed number")
        if frac is None and exp is None:
            return m.end(), wrap_int(int(int_part, 16))
        try:
            value = float(int(int_part or "0", 16))
            if frac:
                value += int(frac, 16) / (16 ** len(frac))
            if exp:
                value *= 2.0 ** int(exp)
        except OverflowError:
            raise LuaSyntaxError(f"{chunk}:{line}: number out of range") from None
        return m.end(), value
    m = _DEC_RE.match(source, i)
    if not m:
        raise LuaSyntaxError(f"{chunk}:{line}: malformed number")
    text = m.group(0)
    if any(c in text for c in ".eE") or len(text.lstrip("0")) > 19:
        return m.end(), float(text)
    value = int(text)
    # decimal literals that do not fit an integer read as floats
    return m.end(), value if value == wrap_int(value) else float(text)


def _read_string(source: str, i: int, line: int, chunk: str) -> Tuple[int, str, int]:
    quote = source[i]
    i += 1
    out: List[str] = []
    n = len(source)
    while True:
        if i >= n:
            raise LuaSyntaxError(f"{chunk}:{line}: unfinished string")
        c = source[i]
        if c == quote:
            return i + 1, "".join(out), line
        if c == "\n":
            raise LuaSyntaxError(f"{chunk}:{line}: unfinished string")
        if c != "\\":
            out.append(c)
            i += 1
            continue
        i += 1
        if i >= n:
            raise LuaSyntaxError(f"{chunk}:{line}: unfinished string")
        e = source[i]
        if e in _SIMPLE_ESCAPES:
            out.append(_SIMPLE_ESCAPES[e])
            if e == "\n":
                line += 1
            i += 1
        elif e == "x":
            digits = source[i + 1:i + 3]
            if len(digits) != 2 or not all(d in "0123456789abcdefABCDEF" for d in digits):
                raise LuaSyntaxError(f"{chunk}:{line}: invalid hex escape")
            out.append(chr(int(digits, 16)))
            i += 3
        elif e == "z":
            i += 1
            while i < n and source[i] in " \t\r\n\f\v":
                if source[i] == "\n":
                    line += 1
                i += 1
        elif e in "0123456789":
            j = i
            while j < n and j < i + 3 and source[j] in "0123456789":
                j += 1
            out.append(chr(int(source[i:j])))
            i = j
        elif e == "u" and source.startswith("{", i + 1):
            end = source.find("}", i + 2)
            if end < 0:
                raise LuaSyntaxError(f"{chunk}:{line}: invalid unicode escape")
            try:
                out.append(chr(int(source[i + 2:end], 16)))
            except (ValueError, OverflowError):
                raise LuaSyntaxError(f"{chunk}:{line}: invalid unicode escape") from None
            i = end + 1
        else:
            raise LuaSyntaxError(f"{chunk}:{line}: invalid escape sequence '\\{e}'")


def tokenize(source: str, chunk: str = "chunk") -> List[Token]:
    """Split Lua source into tokens, dropping comments and whitespace."""
    tokens: List[Token] = []
    i = 0
    n = len(source)
    line = 1
    if source.startswith("#"):
        i = source.find("\n")
        i = n if i < 0 else i

    while i < n:
        c = source[i]
        if c == "\n":
            line += 1
            i += 1
            continue
        if c in " \t\r\f\v":
            i += 1
            continue
        if source.startswith("--", i):
            level = _long_bracket_level(source, i + 2)
            if level is not None:
                end, _ = _read_long_bracket(source, i + 2, level, line, chunk)
                line += source.count("\n", i, end)
                i = end
            else:
                nl = source.find("\n", i)
                i = n if nl < 0 else nl
            continue
        if c.isalpha() or c == "_":
            m = _NAME_RE.match(source, i)
            word = m.group(0)
            kind = "keyword" if word in KEYWORDS else "name"
            tokens.append(Token(kind, word, line))
            i = m.end()
            continue
        if c.isdigit() or (c == "." and i + 1 < n and source[i + 1].isdigit()):
            i, value = _read_number(source, i, line, chunk)
            tokens.append(Token("number", value, line))
            continue
        if c in "\"'":
            start_line = line
            i, value, line = _read_string(source, i, line, chunk)
            tokens.append(Token("string", value, start_line))
            continue
        if c == "[":
            level = _long_bracket_level(source, i)
            if level is not None:
                end, content = _read_long_bracket(source, i, level, line, chunk)
                tokens.append(Token("string", content, line))
                line += source.count("\n", i, end)
                i = end
                continue
        for sym in SYMBOLS:
            if source.startswith(sym, i):
                tokens.append(Token("op", sym, line))
                i += len(sym)
                break
        else:
            raise LuaSyntaxError(f"{chunk}:{line}: unexpected symbol near '{c}'")

    tokens.append(Token("eof", None, line))
    return tokens
