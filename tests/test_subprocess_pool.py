"""Tests for the bounded subprocess dispatcher."""

import asyncio

import pytest

from common.errors import ToolSpawnError
from common.subprocess_pool import SPAWN_FAILURE, ProcessResult, ProcessTask, SubprocessPool, exec_capture


class SleepyRunner:
    """Sleeps a little per call so several calls overlap."""

    def __init__(self):
        self.seen = []

    async def __call__(self, argv):
        self.seen.append(argv[1])
        await asyncio.sleep(0.01)
        return 0, "out-" + argv[1], ""


def _tasks(n):
    return [ProcessTask(key=f"k{i}", argv=["tool", str(i)]) for i in range(n)]


class TestSubprocessPool:
    """Concurrency bound and ordering."""

    def test_never_exceeds_limit(self):
        pool = SubprocessPool(2, runner=SleepyRunner())
        pool.run(_tasks(7))
        assert pool.max_active == 2
        assert pool.active == 0

    def test_results_follow_queue_order(self):
        results = SubprocessPool(3, runner=SleepyRunner()).run(_tasks(5))
        assert [r.task.key for r in results] == ["k0", "k1", "k2", "k3", "k4"]
        assert [r.stdout for r in results] == ["out-0", "out-1", "out-2", "out-3", "out-4"]
        assert all(r.ok for r in results)

    def test_limit_below_one_is_clamped(self):
        pool = SubprocessPool(0, runner=SleepyRunner())
        pool.run(_tasks(3))
        assert pool.max_active == 1

    def test_empty_queue(self):
        assert SubprocessPool(4, runner=SleepyRunner()).run([]) == []

    def test_payload_travels_with_result(self):
        task = ProcessTask(key="a", argv=["tool", "x"], payload={"id": 1})
        (result,) = SubprocessPool(1, runner=SleepyRunner()).run([task])
        assert result.task.payload == {"id": 1}


class TestSpawnFailure:
    def test_missing_executable_reported_as_spawn_failure(self):
        code, out, err = asyncio.run(exec_capture(["/nonexistent/lazypin-no-such-tool"]))
        assert code == -1
        assert out == ""
        assert err.startswith(SPAWN_FAILURE)

    def test_raise_if_spawn_failed(self):
        task = ProcessTask(key="a", argv=["nix-prefetch-git"])
        result = ProcessResult(task, -1, "", SPAWN_FAILURE + "nix-prefetch-git: No such file or directory")
        with pytest.raises(ToolSpawnError, match="failed to spawn nix-prefetch-git: No such file or directory"):
            result.raise_if_spawn_failed()

    def test_ordinary_failure_is_not_spawn_failure(self):
        result = ProcessResult(ProcessTask(key="a", argv=["git"]), 128, "", "fatal: repository not found")
        assert not result.spawn_failed
        result.raise_if_spawn_failed()
