"""Spec collection: walk declaration results into deduplicated PluginSpecs.

Core specs are walked first, then extras, then the user's own plugin
directory, all through one CollectionContext. The first discovery of an
identifier wins; later occurrences are dropped, never merged.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from collector.entries import Entry, Ignored, IdentifierRef, PluginEntry, SpecList, plain_value, to_entry
from collector.normalize import classify_constraint, normalize_deps, normalize_name, split_identifier
from collector.scan import DeclarationFile, check_root, core_module_files, extra_source_tag, scan_extras, scan_user_dir
from common.logging_utils import Timer, extra_context, is_debug_enabled
from constants import Constants
from luaspec import CORE, EXTRAS, evaluate_source
from luaspec.interpreter import LuaTable
from versioning.models import MultiModuleMapping, PluginSpec

logger = logging.getLogger(__name__)


def multi_module_repository(identifier: str, package: str) -> str:
    """``owner/`` plus the package name with a trailing ``-nvim`` turned into ``.nvim``."""
    owner, _ = split_identifier(identifier)
    return f"{owner}/{re.sub(r'-nvim$', '.nvim', package)}"


@dataclass
class CollectionContext:
    """Mutable state threaded through one collection pass."""
    multi_module: Dict[str, Tuple[str, str]] = field(default_factory=dict)  # identifier -> (package, module)
    plugins: List[PluginSpec] = field(default_factory=list)
    index: Dict[str, PluginSpec] = field(default_factory=dict)
    repo_index: Dict[str, str] = field(default_factory=dict)  # owner/repo -> clone URL
    skipped_optional: List[str] = field(default_factory=list)

    def seen(self, identifier: str) -> bool:
        return identifier in self.index

    def add(self, spec: PluginSpec) -> None:
        mapping = self.multi_module.get(spec.identifier)
        if mapping is not None and spec.multi_module is None:
            package, module = mapping
            spec.multi_module = MultiModuleMapping(
                base_package=package,
                module=module,
                repository=multi_module_repository(spec.identifier, package),
            )
        self.index[spec.identifier] = spec
        self.plugins.append(spec)
        self.repo_index[spec.repo_key] = Constants.GITHUB_URL_TEMPLATE.format(owner=spec.owner, repo=spec.repo)

    def truncate(self, plugins: int, skipped: int) -> None:
        """Forget everything added after the given counts."""
        for spec in self.plugins[plugins:]:
            del self.index[spec.identifier]
        del self.plugins[plugins:]
        del self.skipped_optional[skipped:]
        self.repo_index = {
            spec.repo_key: Constants.GITHUB_URL_TEMPLATE.format(owner=spec.owner, repo=spec.repo)
            for spec in self.plugins
        }


@dataclass
class CollectionResult:
    plugins: List[PluginSpec]
    repo_index: Dict[str, str]
    extras_files: List[DeclarationFile]


def _bool_or_none(value) -> Optional[bool]:
    return value if isinstance(value, bool) else None


def _number_or_none(value) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def _spec_from_table(identifier: str, table: LuaTable, is_core: bool, source_tag: str) -> PluginSpec:
    owner, repo = split_identifier(identifier)
    return PluginSpec(
        identifier=identifier,
        owner=owner,
        repo=repo,
        constraint=classify_constraint(table),
        dependencies=normalize_deps(table.get("dependencies")),
        source_file=source_tag or "table_spec",
        is_core=is_core,
        event=plain_value(table.get("event")),
        cmd=plain_value(table.get("cmd")),
        ft=plain_value(table.get("ft")),
        enabled=_bool_or_none(table.get("enabled")),
        lazy=_bool_or_none(table.get("lazy")),
        priority=_number_or_none(table.get("priority")),
    )


def collect_entry(ctx: CollectionContext, entry: Entry, is_core: bool, source_tag: str) -> None:
    """Walk one entry (and everything nested in it) into ``ctx``."""
    if isinstance(entry, IdentifierRef):
        identifier = normalize_name(entry.name)
        if identifier and not ctx.seen(identifier):
            owner, repo = split_identifier(identifier)
            ctx.add(PluginSpec(
                identifier=identifier,
                owner=owner,
                repo=repo,
                source_file=source_tag or "string_spec",
                is_core=is_core,
            ))
        return
    if isinstance(entry, Ignored):
        return
    if entry.optional:
        name = entry.name if isinstance(entry, PluginEntry) else "unknown"
        logger.info("    Skipping optional plugin: %s", name)
        ctx.skipped_optional.append(name)
        return
    if isinstance(entry, SpecList):
        for item in entry.items:
            collect_entry(ctx, item, is_core, source_tag)
        return

    identifier = normalize_name(entry.name)
    if identifier and not ctx.seen(identifier):
        ctx.add(_spec_from_table(identifier, entry.table, is_core, source_tag))
    for child in entry.children:
        collect_entry(ctx, child, is_core, source_tag)
    for dep in entry.dependencies:
        collect_entry(ctx, dep, is_core, source_tag)


def collect_source(ctx: CollectionContext, source: str, chunk: str, kind: str, is_core: bool, source_tag: str) -> int:
    """Evaluate declaration text and walk its result; returns plugins added."""
    before, skipped = len(ctx.plugins), len(ctx.skipped_optional)
    with Timer() as timer:
        result = evaluate_source(source, chunk, kind)
        if result is not None:
            try:
                collect_entry(ctx, to_entry(result), is_core, source_tag)
            except RecursionError:
                logger.warning("Failed to collect %s: nesting too deep", chunk)
                ctx.truncate(before, skipped)
                result = None
    added = len(ctx.plugins) - before
    if is_debug_enabled(logger):
        logger.debug(
            "Collected declaration file",
            extra=extra_context(
                event="collect",
                component="collector",
                action=kind,
                target=chunk,
                outcome="success" if result is not None else "empty",
                duration_ms=timer.duration_ms(),
                added=added,
            ),
        )
    return added


def collect_core(ctx: CollectionContext, root: str) -> None:
    collect_source(ctx, Constants.CORE_INIT_SPECS, "init", CORE, True, Constants.CORE_INIT_SOURCE)
    for module, declaration in core_module_files(root):
        if declaration is None:
            continue
        collect_source(ctx, declaration.content, declaration.path, CORE, True, f"core.{module}")


def collect_extras(ctx: CollectionContext, files: List[DeclarationFile]) -> int:
    logger.info("=== Scanning LazyVim extras ===")
    added = 0
    for declaration in files:
        logger.info("  Processing extra: %s", declaration.relative)
        added += collect_source(ctx, declaration.content, declaration.relative, EXTRAS, False, extra_source_tag(declaration.relative))
    logger.info("Found %d plugins from extras", added)
    return added


def collect_user(ctx: CollectionContext, files: List[DeclarationFile]) -> int:
    """Merge user plugins; identifiers already collected are reported and skipped."""
    logger.info("=== Scanning for user plugins ===")
    user_ctx = CollectionContext(multi_module=ctx.multi_module)
    for declaration in files:
        collect_source(user_ctx, declaration.content, declaration.path, EXTRAS, False, Constants.USER_CONFIG_SOURCE)
    if user_ctx.plugins:
        logger.info("Found %d user plugins, merging with core plugins", len(user_ctx.plugins))
    added = 0
    for spec in user_ctx.plugins:
        if ctx.seen(spec.identifier):
            logger.info("Skipping user plugin %s (already exists in core)", spec.identifier)
            continue
        spec.user_plugin = True
        spec.source_file = Constants.USER_CONFIG_SOURCE
        ctx.add(spec)
        added += 1
    return added


def collect_plugins(
    root: str,
    multi_module: Optional[Dict[str, Tuple[str, str]]] = None,
    user_dir: Optional[str] = None,
    include_user: bool = True,
) -> CollectionResult:
    """Run the full collection pass over a declaration root.

    Args:
        root: LazyVim checkout (the declaration root).
        multi_module: identifier -> (package, module) table.
        user_dir: Local user plugin directory.
        include_user: Whether to merge user plugins at all.

    Returns:
        CollectionResult: Plugins in discovery order, repo index and the
        extras files read (shared with the supplemental extractors).

    Raises:
        DeclarationRootError: The root or its plugins directory is missing.
    """
    check_root(root)
    ctx = CollectionContext(multi_module=dict(multi_module or {}))
    collect_core(ctx, root)
    extras_files = scan_extras(root)
    collect_extras(ctx, extras_files)
    if include_user:
        collect_user(ctx, scan_user_dir(user_dir))
    logger.info("Collected %d plugins (%d optional skipped)", len(ctx.plugins), len(ctx.skipped_optional))
    return CollectionResult(plugins=ctx.plugins, repo_index=ctx.repo_index, extras_files=extras_files)
