"""Target selection: which commit each plugin is pinned to."""

import logging
from typing import Dict, List

from common.errors import ResolutionError
from common.logging_utils import extra_context, is_debug_enabled, short_ref
from constants import ConstraintKind, TargetMode
from versioning.models import DeclaredConstraint, FetchTarget, PluginSpec, RemoteRepoState
from versioning.tags import select_latest_tag

logger = logging.getLogger(__name__)


def determine_target(constraint: DeclaredConstraint, remote: RemoteRepoState, identifier: str = "") -> FetchTarget:
    """Map a declared constraint and remote state to a single commit.

    | constraint     | mode   | commit                         | pinned build |
    | branch(b)      | branch | branches[b], else head         | no           |
    | commit(c)      | commit | c                              | no           |
    | tag(t)         | tag    | tags[t]                        | yes          |
    | version=false  | head   | head                           | no           |
    | none / version | auto   | highest tag's commit, else head| if tag found |

    A target whose branch or tag is missing remotely falls back to head.

    Raises:
        ResolutionError: Not even a head commit is available.
    """
    kind = constraint.kind
    if kind == ConstraintKind.BRANCH:
        target = FetchTarget(mode=TargetMode.BRANCH, branch=constraint.value)
        target.commit = remote.branches.get(constraint.value) or remote.head
    elif kind == ConstraintKind.COMMIT:
        target = FetchTarget(mode=TargetMode.COMMIT, commit=constraint.value)
    elif kind == ConstraintKind.TAG:
        target = FetchTarget(
            mode=TargetMode.TAG,
            tag=constraint.value,
            latest_tag=constraint.value,
            commit=remote.tags.get(constraint.value),
            pinned_build_eligible=True,
        )
    elif kind == ConstraintKind.FLOATING_FALSE:
        target = FetchTarget(mode=TargetMode.HEAD, commit=remote.head)
    else:
        latest_tag, latest_commit = select_latest_tag(remote.tags)
        if latest_tag and latest_commit:
            target = FetchTarget(
                mode=TargetMode.AUTO,
                tag=latest_tag,
                latest_tag=latest_tag,
                commit=latest_commit,
                pinned_build_eligible=True,
            )
        else:
            target = FetchTarget(mode=TargetMode.HEAD, commit=remote.head)

    if not target.commit:
        target.commit = remote.head
    if not target.commit:
        raise ResolutionError(f"No commit could be resolved for {identifier or 'plugin'} (no head, branch or tag)")
    target.prefetch_rev = target.commit
    return target


def resolve_targets(plugins: List[PluginSpec], remote_map: Dict[str, RemoteRepoState]) -> None:
    """Select targets for every plugin and record them in ``version_info``.

    Raises:
        ResolutionError: A plugin's repository has no remote state, or no
            commit could be resolved for it.
    """
    for plugin in plugins:
        remote = remote_map.get(plugin.repo_key)
        if remote is None:
            raise ResolutionError(f"Missing remote metadata for {plugin.repo_key}")
        target = determine_target(plugin.constraint, remote, plugin.identifier)
        plugin.target = target
        info = plugin.version_info
        info.lazyvim_version = plugin.constraint.declared_value
        info.lazyvim_version_type = plugin.constraint.version_type
        info.branch = target.branch
        info.tag = target.tag
        info.latest_tag = target.latest_tag
        info.commit = target.commit
        if is_debug_enabled(logger):
            logger.debug(
                "Selected target",
                extra=extra_context(
                    event="select_target",
                    component="selector",
                    action=target.mode.value,
                    target=plugin.identifier,
                    outcome="success",
                    commit=short_ref(target.commit),
                ),
            )
