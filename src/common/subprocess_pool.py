"""Bounded subprocess dispatcher.

A single asyncio event loop drives up to ``limit`` external processes at a
time from an ordered queue. Completion bookkeeping (results, active/pending
counts) happens on the loop thread only, so there is no shared-memory
concurrency. ``run()`` blocks until the whole queue has drained.
"""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, List, Optional, Sequence, Tuple

from common.errors import ToolSpawnError
from common.logging_utils import Timer, extra_context, is_debug_enabled

logger = logging.getLogger(__name__)

SPAWN_FAILURE = "failed to spawn "

Runner = Callable[[Sequence[str]], Awaitable[Tuple[int, str, str]]]


@dataclass
class ProcessTask:
    """One queued invocation; ``payload`` travels back with the result."""

    key: str
    argv: List[str]
    payload: Any = None


@dataclass
class ProcessResult:
    """Captured outcome of a finished invocation."""

    task: ProcessTask
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def spawn_failed(self) -> bool:
        return self.returncode == -1 and self.stderr.startswith(SPAWN_FAILURE)

    def raise_if_spawn_failed(self) -> None:
        """Raise ToolSpawnError when the executable could not be started."""
        if self.spawn_failed:
            reason = self.stderr[len(SPAWN_FAILURE):].split(": ", 1)[-1]
            raise ToolSpawnError(self.task.argv[0], reason)


async def exec_capture(argv: Sequence[str]) -> Tuple[int, str, str]:
    """Run ``argv`` to completion and capture both streams.

    A process that cannot be spawned is reported as return code -1 with the
    reason on stderr, matching how a failed run is reported.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        return -1, "", f"{SPAWN_FAILURE}{argv[0]}: {exc}"
    stdout, stderr = await proc.communicate()
    return (
        proc.returncode if proc.returncode is not None else -1,
        stdout.decode("utf-8", errors="replace"),
        stderr.decode("utf-8", errors="replace"),
    )


class SubprocessPool:
    """Work queue with a fixed number of in-flight subprocesses."""

    def __init__(self, limit: int, runner: Optional[Runner] = None, name: str = "pool"):
        self.limit = max(1, int(limit))
        self.runner: Runner = runner or exec_capture
        self.name = name
        self.active = 0
        self.max_active = 0

    def run(self, tasks: Sequence[ProcessTask]) -> List[ProcessResult]:
        """Execute every task and return results in queue order."""
        if not tasks:
            return []
        return asyncio.run(self.drain(tasks))

    async def drain(self, tasks: Sequence[ProcessTask]) -> List[ProcessResult]:
        """Coroutine form of :meth:`run` for callers already inside a loop."""
        queue: Deque[Tuple[int, ProcessTask]] = deque(enumerate(tasks))
        results: List[Optional[ProcessResult]] = [None] * len(tasks)

        async def worker() -> None:
            while queue:
                index, task = queue.popleft()
                self.active += 1
                self.max_active = max(self.max_active, self.active)
                with Timer() as timer:
                    code, out, err = await self.runner(task.argv)
                self.active -= 1
                results[index] = ProcessResult(task=task, returncode=code, stdout=out, stderr=err)
                if is_debug_enabled(logger):
                    logger.debug(
                        "Subprocess finished",
                        extra=extra_context(
                            event="subprocess_exit",
                            component=self.name,
                            action=task.argv[0],
                            target=task.key,
                            outcome="success" if code == 0 else "failure",
                            duration_ms=timer.duration_ms(),
                            pending=len(queue),
                        ),
                    )

        workers = min(self.limit, len(tasks))
        await asyncio.gather(*(worker() for _ in range(workers)))
        return [r for r in results if r is not None]
