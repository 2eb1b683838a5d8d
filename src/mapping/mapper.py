"""Name mapping: canonical identifier -> registry package name.

Explicit table first, then a heuristic candidate per plugin, then one batch
existence probe for every distinct candidate.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol

from collector.normalize import split_identifier
from common.logging_utils import Timer, extra_context, is_debug_enabled
from constants import MappedStatus
from mapping.mappings import Mappings
from versioning.models import PluginSpec

logger = logging.getLogger(__name__)


class Registry(Protocol):
    def probe(self, names: List[str]) -> Dict[str, bool]:
        ...

    def list_names(self) -> List[str]:
        ...


def guess_registry_name(identifier: str) -> Optional[str]:
    """Heuristic registry attribute for ``owner/repo``.

    ``foo.nvim`` -> ``foo-nvim``; names already ending in ``-nvim`` or
    starting with ``nvim-`` pass through; anything else has ``-`` and ``.``
    replaced by ``_``.
    """
    owner, repo = split_identifier(identifier)
    if not owner or not repo:
        return None
    if repo.endswith(".nvim"):
        return repo[: -len(".nvim")] + "-nvim"
    if repo.endswith("-nvim") or repo.startswith("nvim-"):
        return repo
    return re.sub(r"[-.]", "_", repo)


@dataclass
class MappingOutcome:
    mapped: int = 0
    multi_module: int = 0
    unmapped: List[str] = field(default_factory=list)


def map_plugins(plugins: List[PluginSpec], mappings: Mappings, registry: Registry) -> MappingOutcome:
    """Set ``mapped_status`` and ``registry_name`` on every plugin.

    Args:
        plugins: Collected plugins.
        mappings: Explicit mapping table.
        registry: Registry answering the batch probe.

    Returns:
        MappingOutcome: Counts plus unmapped identifiers in input order.

    Raises:
        RegistryQueryError: The batch probe failed.
    """
    outcome = MappingOutcome()
    candidates: List[str] = []
    seen_candidates = set()
    for plugin in plugins:
        if plugin.multi_module is not None:
            outcome.multi_module += 1
        if mappings.is_explicit(plugin.identifier):
            plugin.mapped_status = MappedStatus.EXPLICIT
            plugin.registry_name = mappings.registry_name(plugin.identifier)
            outcome.mapped += 1
            continue
        candidate = guess_registry_name(plugin.identifier)
        plugin.registry_name = candidate
        if candidate and candidate not in seen_candidates:
            seen_candidates.add(candidate)
            candidates.append(candidate)

    with Timer() as timer:
        present = registry.probe(candidates) if candidates else {}
    if is_debug_enabled(logger):
        logger.debug(
            "Registry probe finished",
            extra=extra_context(
                event="probe",
                component="mapper",
                action="batch",
                outcome="success",
                duration_ms=timer.duration_ms(),
                candidates=len(candidates),
                found=sum(1 for v in present.values() if v),
            ),
        )

    for plugin in plugins:
        if plugin.mapped_status == MappedStatus.EXPLICIT:
            continue
        if plugin.registry_name and present.get(plugin.registry_name):
            plugin.mapped_status = MappedStatus.AUTO
            outcome.mapped += 1
        else:
            plugin.mapped_status = MappedStatus.UNMAPPED
            outcome.unmapped.append(plugin.identifier)
    logger.info(
        "Mapped %d plugins (%d unmapped, %d multi-module)",
        outcome.mapped,
        len(outcome.unmapped),
        outcome.multi_module,
    )
    return outcome
