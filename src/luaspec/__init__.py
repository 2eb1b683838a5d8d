"""Safe evaluation of Lua plugin declaration files.

A small interpreter for the Lua subset declaration files use, run inside a
stubbed environment. Failures never propagate: the file contributes nothing
and a warning is logged.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from common.logging_utils import Timer, extra_context, is_debug_enabled
from luaspec.interpreter import LuaRuntimeError, LuaTable
from luaspec.lexer import LuaSyntaxError
from luaspec.parser import parse
from luaspec.sandbox import CORE, EXTRAS, build_interpreter

logger = logging.getLogger(__name__)

__all__ = [
    "CORE",
    "EXTRAS",
    "LuaRuntimeError",
    "LuaSyntaxError",
    "LuaTable",
    "evaluate_file",
    "evaluate_source",
]


def evaluate_source(source: str, chunk: str = "chunk", kind: str = CORE, max_steps: Optional[int] = None) -> Any:
    """Run declaration source and return the first value it returns.

    Args:
        source: Lua source text.
        chunk: Name used in diagnostics.
        kind: Sandbox flavor (``"core"`` or ``"extras"``).
        max_steps: Optional instruction budget override.

    Returns:
        The returned value (usually a LuaTable), or None when the file fails
        to parse or execute.
    """
    with Timer() as timer:
        try:
            block = parse(source, chunk)
        except LuaSyntaxError as exc:
            logger.warning("Failed to parse %s: %s", chunk, exc)
            return None
        except RecursionError:
            logger.warning("Failed to parse %s: nesting too deep", chunk)
            return None
        interp = build_interpreter(kind, max_steps=max_steps)
        try:
            results = interp.run(block)
        except LuaRuntimeError as exc:
            logger.warning("Failed to execute %s: %s", chunk, exc)
            return None
        except RecursionError:
            logger.warning("Failed to execute %s: nesting too deep", chunk)
            return None
        except (ArithmeticError, MemoryError, ValueError, TypeError) as exc:
            logger.warning("Failed to execute %s: %s: %s", chunk, type(exc).__name__, exc)
            return None
    if is_debug_enabled(logger):
        logger.debug(
            "Evaluated declaration chunk",
            extra=extra_context(
                event="evaluate",
                component="luaspec",
                action=kind,
                target=chunk,
                outcome="success",
                duration_ms=timer.duration_ms(),
                steps=interp.steps,
            ),
        )
    return results[0] if results else None


def evaluate_file(path: str, chunk: Optional[str] = None, kind: str = CORE) -> Any:
    """Read and evaluate a declaration file; unreadable files yield None."""
    try:
        with open(path, "r", encoding="utf-8") as handle:
            source = handle.read()
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Failed to read %s: %s", path, exc)
        return None
    return evaluate_source(source, chunk or path, kind)
