"""Exception taxonomy for the extraction pipeline.

Lower layers (evaluator, collector) log and continue; the resolver and
fetcher layers raise one of these so the CLI can abort the whole run with a
matching exit code instead of writing a partially resolved manifest.
"""
from __future__ import annotations

from typing import List, Tuple

from constants import ExitCodes


class LazypinError(Exception):
    """Base class for all pipeline failures."""

    exit_code = ExitCodes.FILE_ERROR


class DeclarationRootError(LazypinError):
    """The declaration tree is missing or unreadable."""

    exit_code = ExitCodes.FILE_ERROR


class OutputWriteError(LazypinError):
    """An output file could not be written."""

    exit_code = ExitCodes.FILE_ERROR


class ToolSpawnError(LazypinError):
    """An external tool could not be started."""

    exit_code = ExitCodes.TOOL_ERROR

    def __init__(self, program: str, reason: str):
        super().__init__(f"failed to spawn {program}: {reason}")
        self.program = program
        self.reason = reason


class RegistryQueryError(LazypinError):
    """The registry existence probe failed or returned garbage."""

    exit_code = ExitCodes.TOOL_ERROR


class RemoteListingError(LazypinError):
    """One or more remote ref listings failed.

    Carries every failure so they can be reported together.
    """

    exit_code = ExitCodes.CONNECTION_ERROR

    def __init__(self, failures: List[Tuple[str, str]]):
        self.failures = sorted(failures)
        lines = [f"{key}: {stderr.strip()}" for key, stderr in self.failures]
        super().__init__("Failed to fetch remote refs:\n" + "\n".join(lines))


class ResolutionError(LazypinError):
    """A plugin resolved to no commit at all."""

    exit_code = ExitCodes.RESOLUTION_ERROR


class FetchError(LazypinError):
    """Fetching a plugin at its resolved commit failed."""

    exit_code = ExitCodes.TOOL_ERROR

    def __init__(self, identifier: str, detail: str):
        super().__init__(f"nix-prefetch-git failed for {identifier}: {detail.strip()}")
        self.identifier = identifier
        self.detail = detail
