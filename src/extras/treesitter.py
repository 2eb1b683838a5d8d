"""Treesitter parser extraction: core ``ensure_installed`` plus ``lang.*`` extras."""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterator, List, Optional

from cache.store import ContentCache
from collector.scan import DeclarationFile, core_module_files
from luaspec import CORE, EXTRAS, LuaTable, evaluate_source

logger = logging.getLogger(__name__)

TREESITTER_PLUGIN = "nvim-treesitter/nvim-treesitter"
LANG_PREFIX = "lang/"

_QUOTED = re.compile(r'"([^"]+)"')
_CORE_PATTERN = re.compile(r"ensure_installed\s*=\s*\{\s*(.*?)\s*\}", re.S)
_BLOCK_PATTERN = re.compile(r'"nvim-treesitter/nvim-treesitter".*?\}', re.S)
_OPTS_PATTERNS = (
    re.compile(r"opts\s*=\s*\{[^}]*ensure_installed\s*=\s*\{\s*(.*?)\s*\}", re.S),
    re.compile(r"opts\s*=\s*function\(.*?ensure_installed\s*=\s*\{\s*(.*?)\s*\}", re.S),
)


def plugin_tables(value: Any, identifier: str) -> Iterator[LuaTable]:
    """Every spec table (at any list depth) whose first element is ``identifier``."""
    pending = [value]
    visited = set()
    while pending:
        item = pending.pop()
        if not isinstance(item, LuaTable) or id(item) in visited:
            continue
        visited.add(id(item))
        if item.get(1) == identifier:
            yield item
            continue
        pending.extend(reversed(item.array()))


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, LuaTable):
        return []
    return [item for item in value.array() if isinstance(item, str)]


def parsers_from_value(value: Any) -> Optional[List[str]]:
    """``ensure_installed`` of the treesitter spec(s) in an evaluated file.

    Returns None when a matching spec exists but its ``opts`` is not a plain
    table, so the caller can fall back to text matching.
    """
    parsers: List[str] = []
    found_table_opts = False
    for spec in plugin_tables(value, TREESITTER_PLUGIN):
        opts = spec.get("opts")
        if not isinstance(opts, LuaTable):
            continue
        found_table_opts = True
        for parser in _string_list(opts.get("ensure_installed")):
            if parser not in parsers:
                parsers.append(parser)
    return parsers if found_table_opts else None


def parsers_from_text(content: str) -> List[str]:
    """Pattern fallback over the first treesitter spec block of a file."""
    block = _BLOCK_PATTERN.search(content)
    if not block:
        return []
    # the block ends at the first closing brace, so match from its start
    tail = content[block.start():]
    for pattern in _OPTS_PATTERNS:
        m = pattern.search(tail)
        if m:
            return _QUOTED.findall(m.group(1))
    return []


def extract_core_parsers(root: str) -> List[str]:
    for module, declaration in core_module_files(root):
        if module != "treesitter" or declaration is None:
            continue
        parsers = parsers_from_value(evaluate_source(declaration.content, declaration.path, CORE))
        if not parsers:
            m = _CORE_PATTERN.search(declaration.content)
            parsers = _QUOTED.findall(m.group(1)) if m else []
        if not parsers:
            logger.warning("No core parsers found in %s", declaration.path)
        return parsers
    logger.warning("Core treesitter declaration not found")
    return []


def extract_file_parsers(declaration: DeclarationFile) -> List[str]:
    if TREESITTER_PLUGIN not in declaration.content:
        return []
    parsers = parsers_from_value(evaluate_source(declaration.content, declaration.relative, EXTRAS))
    if parsers is None:
        parsers = parsers_from_text(declaration.content)
    return parsers


def extract_treesitter(root: str, extras_files: List[DeclarationFile], cache: Optional[ContentCache] = None) -> Dict[str, Any]:
    """Build the ``treesitter.json`` document.

    Args:
        root: Declaration root.
        extras_files: Extras declaration files from collection.
        cache: Content-addressed cache for per-file results.

    Returns:
        Dict[str, Any]: ``{"core": [...], "extras": {"lang.<name>": [...]}}``.
    """
    logger.info("=== Extracting treesitter parsers ===")
    core = extract_core_parsers(root)
    logger.info("Found %d core parsers", len(core))
    extras: Dict[str, List[str]] = {}
    for declaration in extras_files:
        relative = declaration.relative
        if not relative.startswith(LANG_PREFIX) or relative.count("/") != 1:
            continue
        parsers = cache.get(declaration.digest) if cache is not None else None
        if not isinstance(parsers, list):
            parsers = extract_file_parsers(declaration)
            if cache is not None:
                cache.put(declaration.digest, parsers)
        if parsers:
            name = relative[len(LANG_PREFIX):].rsplit(".", 1)[0]
            extras["lang." + name] = parsers
    logger.info(
        "Found %d extra parsers across %d language extras",
        sum(len(p) for p in extras.values()),
        len(extras),
    )
    return {"core": core, "extras": dict(sorted(extras.items()))}
