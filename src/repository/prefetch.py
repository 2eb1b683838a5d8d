"""Content fetch/verify with ``nix-prefetch-git``, reusing unchanged results."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from common.errors import FetchError
from common.logging_utils import short_ref
from common.subprocess_pool import ProcessTask, Runner, SubprocessPool
from constants import Constants
from versioning.models import PluginSpec, VersionInfo

logger = logging.getLogger(__name__)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime(Constants.FETCHED_AT_FORMAT)


def prefetch_argv(url: str, rev: str, prefetch_bin: str = Constants.PREFETCH_BIN) -> List[str]:
    return [prefetch_bin, "--quiet", "--url", url, "--rev", rev]


@dataclass
class FetchSummary:
    reused: List[str] = field(default_factory=list)
    fetched: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)


def _can_reuse(plugin: PluginSpec, existing: Optional[VersionInfo]) -> bool:
    target = plugin.target
    return bool(
        target is not None
        and target.commit
        and existing is not None
        and existing.commit == target.commit
        and existing.sha256
    )


def fetch_plugins(
    plugins: List[PluginSpec],
    prior: Dict[str, VersionInfo],
    concurrency: int = Constants.DEFAULT_PREFETCH_CONCURRENCY,
    prefetch_bin: str = Constants.PREFETCH_BIN,
    runner: Optional[Runner] = None,
    clock: Callable[[], str] = utc_timestamp,
) -> FetchSummary:
    """Fetch every plugin whose resolved commit has no reusable prior record.

    A prior record with the same commit and a checksum is reused as-is,
    including its original ``fetched_at``. ``fetched_at`` is only refreshed
    when the fetched commit differs from the prior one.

    Args:
        plugins: Plugins with targets selected.
        prior: Previous version info keyed by identifier.
        concurrency: Maximum in-flight fetches.
        prefetch_bin: nix-prefetch-git executable.
        runner: Injectable subprocess runner.
        clock: Timestamp source.

    Returns:
        FetchSummary: Identifiers reused, fetched and updated.

    Raises:
        FetchError: A fetch failed or produced unusable output.
        ToolSpawnError: The fetch tool could not be started.
    """
    summary = FetchSummary()
    queue: List[ProcessTask] = []
    for plugin in plugins:
        if plugin.target is None:
            continue
        existing = prior.get(plugin.identifier)
        info = plugin.version_info
        if _can_reuse(plugin, existing):
            info.commit = plugin.target.commit
            info.sha256 = existing.sha256
            info.fetched_at = existing.fetched_at or clock()
            summary.reused.append(plugin.identifier)
            logger.info("      ↺ Reusing cached prefetch for %s (%s)", plugin.identifier, short_ref(plugin.target.commit))
            continue
        url = Constants.GITHUB_URL_TEMPLATE.format(owner=plugin.owner, repo=plugin.repo)
        queue.append(ProcessTask(
            key=plugin.identifier,
            argv=prefetch_argv(url, plugin.target.prefetch_rev or plugin.target.commit, prefetch_bin),
            payload=(plugin, existing),
        ))

    if not queue:
        return summary

    logger.info("=== Prefetching %d plugins (concurrency %d) ===", len(queue), concurrency)
    pool = SubprocessPool(concurrency, runner=runner, name="prefetch")
    for result in pool.run(queue):
        plugin, existing = result.task.payload
        result.raise_if_spawn_failed()
        if not result.ok:
            raise FetchError(plugin.identifier, result.stderr or f"exit code {result.returncode}")
        try:
            data = json.loads(result.stdout)
        except ValueError as exc:
            raise FetchError(plugin.identifier, f"invalid nix-prefetch-git output: {exc}") from exc
        if not isinstance(data, dict) or not data.get("rev") or not data.get("sha256"):
            raise FetchError(plugin.identifier, "invalid nix-prefetch-git output: missing rev or sha256")

        commit = data["rev"]
        info = plugin.version_info
        changed = not (existing is not None and existing.commit == commit)
        info.commit = commit
        info.sha256 = data["sha256"]
        if changed or not (existing is not None and existing.fetched_at):
            info.fetched_at = clock()
        else:
            info.fetched_at = existing.fetched_at
        summary.fetched.append(plugin.identifier)
        if changed:
            summary.updated.append(plugin.identifier)
            logger.info("      ✓ %s updated to %s", plugin.identifier, short_ref(commit))
        else:
            logger.info("      ✓ %s verified at %s (unchanged)", plugin.identifier, short_ref(commit))
    return summary
