"""Shared fixtures: a fake LazyVim checkout and a scripted subprocess runner."""

import json
import os

import pytest


def write_files(root, files):
    """Create ``files`` (relative path -> text) under ``root``."""
    for relative, text in files.items():
        path = os.path.join(str(root), relative)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w", encoding="utf-8") as handle:
            handle.write(text)


class FakeRunner:
    """Async runner standing in for git / nix-prefetch-git / nix.

    ``refs`` maps clone URL -> ls-remote output; ``failures`` maps URL ->
    stderr for listings that should fail; fetches echo the requested rev.
    """

    def __init__(self, refs=None, failures=None, fetch_failures=None):
        self.refs = refs or {}
        self.failures = failures or {}
        self.fetch_failures = fetch_failures or {}
        self.calls = []

    async def __call__(self, argv):
        self.calls.append(list(argv))
        if argv[1] == "ls-remote":
            url = argv[2]
            if url in self.failures:
                return 128, "", self.failures[url]
            return 0, self.refs.get(url, ""), ""
        if "--rev" in argv:
            url = argv[argv.index("--url") + 1]
            rev = argv[argv.index("--rev") + 1]
            if url in self.fetch_failures:
                return 1, "", self.fetch_failures[url]
            return 0, json.dumps({"url": url, "rev": rev, "sha256": "sha-" + rev}), ""
        return 127, "", "unexpected command"

    def fetch_calls(self):
        return [c for c in self.calls if "--rev" in c]


@pytest.fixture
def lazyvim_root(tmp_path):
    """Factory building a LazyVim-shaped tree; returns its path as str."""

    def _make(core=None, extras=None, extra_files=None):
        root = tmp_path / "LazyVim"
        files = {}
        for module, text in (core or {}).items():
            files[f"lua/lazyvim/plugins/{module}.lua"] = text
        for relative, text in (extras or {}).items():
            files[f"lua/lazyvim/plugins/extras/{relative}"] = text
        files.update(extra_files or {})
        os.makedirs(root / "lua" / "lazyvim" / "plugins", exist_ok=True)
        write_files(root, files)
        return str(root)

    return _make


@pytest.fixture
def fake_runner():
    """The FakeRunner class, for tests that script subprocess output."""
    return FakeRunner
