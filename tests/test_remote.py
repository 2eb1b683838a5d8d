"""Tests for remote ref listing and parsing."""

import pytest

from common.errors import RemoteListingError, ToolSpawnError
from common.subprocess_pool import SPAWN_FAILURE
from repository.remote import ls_remote_argv, parse_ls_remote, resolve_remote_refs


class TestParseLsRemote:
    """Parsing ``git ls-remote`` output."""

    def test_head_branches_and_tags(self):
        state = parse_ls_remote(
            "aaa\tHEAD\n"
            "aaa\trefs/heads/main\n"
            "bbb\trefs/heads/dev\n"
            "ccc\trefs/tags/v1.0.0\n"
        )
        assert state.head == "aaa"
        assert state.branches == {"main": "aaa", "dev": "bbb"}
        assert state.tags == {"v1.0.0": "ccc"}

    @pytest.mark.parametrize("lines", [
        ["111\trefs/tags/v2.0.0", "222\trefs/tags/v2.0.0^{}"],
        ["222\trefs/tags/v2.0.0^{}", "111\trefs/tags/v2.0.0"],
    ])
    def test_peeled_tag_wins_regardless_of_order(self, lines):
        assert parse_ls_remote("\n".join(lines)).tags == {"v2.0.0": "222"}

    def test_head_falls_back_to_main_then_master(self):
        assert parse_ls_remote("ddd\trefs/heads/master\neee\trefs/heads/main").head == "eee"
        assert parse_ls_remote("ddd\trefs/heads/master").head == "ddd"
        assert parse_ls_remote("ddd\trefs/heads/dev").head is None

    def test_garbage_lines_ignored(self):
        state = parse_ls_remote("warning: redirecting\n\nabc\tHEAD\n")
        assert state.head == "abc"

    def test_argv(self):
        assert ls_remote_argv("https://github.com/a/b") == [
            "git", "ls-remote", "https://github.com/a/b", "HEAD", "refs/heads/*", "refs/tags/*",
        ]


class TestResolveRemoteRefs:
    """One listing per repository, failures batched."""

    def test_one_listing_per_repository(self, fake_runner):
        runner = fake_runner(refs={
            "https://github.com/a/b": "c1\tHEAD",
            "https://github.com/c/d": "c2\trefs/heads/main",
        })
        states = resolve_remote_refs(
            {"a/b": "https://github.com/a/b", "c/d": "https://github.com/c/d"}, concurrency=2, runner=runner,
        )
        assert states["a/b"].head == "c1"
        assert states["c/d"].head == "c2"
        assert len(runner.calls) == 2

    def test_failures_are_batched_and_sorted(self, fake_runner):
        runner = fake_runner(
            refs={"https://github.com/ok/one": "c1\tHEAD"},
            failures={
                "https://github.com/z/z": "fatal: repository not found",
                "https://github.com/a/a": "fatal: could not read Username",
            },
        )
        index = {
            "z/z": "https://github.com/z/z",
            "ok/one": "https://github.com/ok/one",
            "a/a": "https://github.com/a/a",
        }
        with pytest.raises(RemoteListingError) as excinfo:
            resolve_remote_refs(index, runner=runner)
        assert [key for key, _ in excinfo.value.failures] == ["a/a", "z/z"]
        assert "z/z: fatal: repository not found" in str(excinfo.value)
        assert len(runner.calls) == 3

    def test_git_missing_raises_spawn_error(self):
        async def runner(argv):
            return -1, "", SPAWN_FAILURE + "git: No such file or directory"

        with pytest.raises(ToolSpawnError):
            resolve_remote_refs({"a/b": "https://github.com/a/b"}, runner=runner)

    def test_empty_index(self):
        assert resolve_remote_refs({}) == {}
