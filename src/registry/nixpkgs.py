"""Registry access: which vim plugin attributes exist in nixpkgs.

Two interchangeable sources share one interface: a live ``nix eval`` probe
and a JSON snapshot file. Existence checks are always a single batched
query, never one call per plugin.
"""
from __future__ import annotations

import json
import logging
from typing import Dict, Iterable, List, Optional

from common.errors import RegistryQueryError
from common.logging_utils import Timer, extra_context, is_debug_enabled
from common.subprocess_pool import ProcessTask, Runner, SubprocessPool
from constants import Constants

logger = logging.getLogger(__name__)


def presence_expression(names: Iterable[str], attrset: str = Constants.REGISTRY_ATTRSET) -> str:
    """Nix expression mapping every name to whether ``pkgs.<attrset>`` has it."""
    quoted = " ".join(json.dumps(name) for name in names)
    return (
        f"let pkgs = import <nixpkgs> {{}}; names = [ {quoted} ]; in "
        f"builtins.listToAttrs (map (name: {{ name = name; value = builtins.hasAttr name pkgs.{attrset}; }}) names)"
    )


def names_expression(attrset: str = Constants.REGISTRY_ATTRSET) -> str:
    return f"builtins.attrNames (import <nixpkgs> {{}}).{attrset}"


class NixRegistry:
    """Live registry queried through ``nix eval``."""

    def __init__(self, nix_bin: str = Constants.NIX_BIN, attrset: str = Constants.REGISTRY_ATTRSET, runner: Optional[Runner] = None):
        self.nix_bin = nix_bin
        self.attrset = attrset
        self.runner = runner
        self._names: Optional[List[str]] = None

    def _eval(self, expr: str, action: str):
        argv = [self.nix_bin, "eval", "--json", "--impure", "--expr", expr]
        pool = SubprocessPool(1, runner=self.runner, name="registry")
        with Timer() as timer:
            result = pool.run([ProcessTask(key=action, argv=argv)])[0]
        if is_debug_enabled(logger):
            logger.debug(
                "Registry query finished",
                extra=extra_context(
                    event="registry_query",
                    component="nixpkgs",
                    action=action,
                    outcome="success" if result.ok else "failure",
                    duration_ms=timer.duration_ms(),
                ),
            )
        result.raise_if_spawn_failed()
        if not result.ok:
            raise RegistryQueryError(f"Failed to evaluate nix attribute presence: {result.stderr.strip()}")
        try:
            return json.loads(result.stdout)
        except ValueError as exc:
            raise RegistryQueryError(f"Could not decode nix eval output: {exc}") from exc

    def probe(self, names: List[str]) -> Dict[str, bool]:
        """Batch existence check for candidate attribute names."""
        if not names:
            return {}
        decoded = self._eval(presence_expression(names, self.attrset), "probe")
        if not isinstance(decoded, dict):
            raise RegistryQueryError("Could not decode nix eval output: expected an object")
        return {name: bool(decoded.get(name)) for name in names}

    def list_names(self) -> List[str]:
        """Every attribute name in the registry set (cached per instance)."""
        if self._names is None:
            decoded = self._eval(names_expression(self.attrset), "list")
            if not isinstance(decoded, list):
                raise RegistryQueryError("Could not decode nix eval output: expected a list")
            self._names = sorted(str(name) for name in decoded)
        return self._names


class SnapshotRegistry:
    """Registry answered from a JSON snapshot (list of names or object keyed by name)."""

    def __init__(self, names: Iterable[str]):
        self._names = sorted(set(names))
        self._lookup = set(self._names)

    @classmethod
    def from_file(cls, path: str) -> "SnapshotRegistry":
        """Load a snapshot file.

        Raises:
            RegistryQueryError: The file is unreadable or not a list/object.
        """
        try:
            with open(path, "r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, ValueError) as exc:
            raise RegistryQueryError(f"Could not load registry snapshot {path}: {exc}") from exc
        if isinstance(data, dict):
            return cls(str(k) for k in data.keys())
        if isinstance(data, list):
            return cls(str(n) for n in data)
        raise RegistryQueryError(f"Registry snapshot {path} must be a JSON list or object")

    def probe(self, names: List[str]) -> Dict[str, bool]:
        return {name: name in self._lookup for name in names}

    def list_names(self) -> List[str]:
        return self._names
