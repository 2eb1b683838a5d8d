"""Remote ref listing: one ``git ls-remote`` per distinct repository."""
from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Tuple

from common.errors import RemoteListingError
from common.subprocess_pool import ProcessTask, Runner, SubprocessPool
from constants import Constants
from versioning.models import RemoteRepoState

logger = logging.getLogger(__name__)

_LINE = re.compile(r"^([0-9a-fA-F]+)\s+(\S.*)$")
_PEELED = "^{}"


def ls_remote_argv(url: str, git_bin: str = Constants.GIT_BIN) -> List[str]:
    return [git_bin, "ls-remote", url, "HEAD", "refs/heads/*", "refs/tags/*"]


def parse_ls_remote(output: str) -> RemoteRepoState:
    """Parse ``git ls-remote`` output into head, branches and tags.

    A peeled annotated tag (``refs/tags/x^{}``) wins over the tag object's
    own commit regardless of line order. Without a HEAD line the head falls
    back to ``main`` then ``master``.
    """
    state = RemoteRepoState()
    peeled: Dict[str, str] = {}
    for line in output.splitlines():
        m = _LINE.match(line.strip())
        if not m:
            continue
        commit, ref = m.group(1), m.group(2).strip()
        if ref == "HEAD":
            state.head = commit
        elif ref.startswith("refs/heads/"):
            state.branches[ref[len("refs/heads/"):]] = commit
        elif ref.startswith("refs/tags/"):
            name = ref[len("refs/tags/"):]
            if name.endswith(_PEELED):
                peeled[name[: -len(_PEELED)]] = commit
            else:
                state.tags.setdefault(name, commit)
    state.tags.update(peeled)
    if not state.head:
        state.head = state.branches.get("main") or state.branches.get("master")
    return state


def resolve_remote_refs(
    repo_index: Dict[str, str],
    concurrency: int = Constants.DEFAULT_REMOTE_CONCURRENCY,
    git_bin: str = Constants.GIT_BIN,
    runner: Optional[Runner] = None,
) -> Dict[str, RemoteRepoState]:
    """List refs for every repository exactly once.

    Args:
        repo_index: owner/repo -> clone URL.
        concurrency: Maximum in-flight listings.
        git_bin: git executable.
        runner: Injectable subprocess runner.

    Returns:
        Dict[str, RemoteRepoState]: State per owner/repo.

    Raises:
        RemoteListingError: One or more listings failed; carries all of them.
        ToolSpawnError: git could not be started.
    """
    if not repo_index:
        return {}
    logger.info(
        "=== Resolving remote metadata for %d repositories (concurrency %d) ===",
        len(repo_index),
        concurrency,
    )
    tasks = [ProcessTask(key=key, argv=ls_remote_argv(url, git_bin)) for key, url in repo_index.items()]
    pool = SubprocessPool(concurrency, runner=runner, name="remote")
    results: Dict[str, RemoteRepoState] = {}
    failures: List[Tuple[str, str]] = []
    for result in pool.run(tasks):
        result.raise_if_spawn_failed()
        if result.ok:
            results[result.task.key] = parse_ls_remote(result.stdout)
        else:
            failures.append((result.task.key, result.stderr or f"exit code {result.returncode}"))
    if failures:
        raise RemoteListingError(failures)
    return results
