"""End-to-end runs of the pipeline over a small LazyVim tree, no network."""

import json
import logging
import os

import pytest

import lazypin
from cli_config import PipelineConfig
from common.errors import RemoteListingError
from pipeline import Pipeline
from registry.nixpkgs import SnapshotRegistry

REFS = {
    "https://github.com/a/b": "c1\trefs/heads/main",
    "https://github.com/folke/lazy.nvim": "c2\trefs/tags/v1.0.0",
    "https://github.com/LazyVim/LazyVim": "c3\trefs/tags/v2.0.0",
    "https://github.com/folke/snacks.nvim": "c4\tHEAD",
    "https://github.com/nvim-treesitter/nvim-treesitter": "c5\trefs/heads/main",
}


@pytest.fixture
def config(lazyvim_root, tmp_path):
    root = lazyvim_root(
        core={"editor": 'return { { "a/b", branch = "main" } }'},
        extras={"lang/go.lua": 'return { { "nvim-treesitter/nvim-treesitter", opts = { ensure_installed = { "go" } } } }'},
    )
    out = tmp_path / "out"
    return PipelineConfig(
        lazyvim_root=root,
        output=str(out / "plugins.json"),
        report=str(out / "report.md"),
        dependencies_output=str(out / "dependencies.json"),
        treesitter_output=str(out / "treesitter.json"),
        extras_output=str(out / "extras.json"),
        mappings=str(tmp_path / "mappings.json"),
        include_user=False,
    )


def _run(config, runner, clock="2026-01-01T00:00:00Z"):
    pipeline = Pipeline(
        config,
        registry=SnapshotRegistry(["lazy-nvim", "snacks-nvim"]),
        runner=runner,
        clock=lambda: clock,
        generated=lambda: "2026-01-01 00:00:00",
    )
    return pipeline.run()


def _manifest(config):
    with open(config.output, encoding="utf-8") as handle:
        return json.load(handle)


class TestPipelineRun:
    """A full run writes a consistent manifest."""

    def test_manifest_contents(self, config, fake_runner):
        ctx = _run(config, fake_runner(refs=REFS))
        manifest = _manifest(config)
        plugins = {p["name"]: p for p in manifest["plugins"]}

        assert plugins["a/b"]["version_info"]["commit"] == "c1"
        assert plugins["a/b"]["version_info"]["branch"] == "main"
        assert plugins["a/b"]["version_info"]["sha256"] == "sha-c1"
        assert plugins["a/b"]["needsSourceBuild"] is True
        assert plugins["folke/lazy.nvim"]["version_info"]["commit"] == "c2"
        assert plugins["folke/lazy.nvim"]["version_info"]["latest_tag"] == "v1.0.0"
        assert plugins["folke/lazy.nvim"]["needsSourceBuild"] is False
        assert plugins["LazyVim/LazyVim"]["version_info"]["commit"] == "c3"
        assert plugins["folke/snacks.nvim"]["version_info"]["commit"] == "c4"

        order = [p["name"] for p in sorted(manifest["plugins"], key=lambda p: p["loadOrder"])]
        assert order.index("LazyVim/LazyVim") < order.index("a/b") < order.index("folke/lazy.nvim")
        assert sorted(p["loadOrder"] for p in manifest["plugins"]) == list(range(1, len(plugins) + 1))

        report = manifest["extraction_report"]
        assert report["total_plugins"] == len(manifest["plugins"])
        assert report["mapped_plugins"] + report["unmapped_plugins"] == report["total_plugins"]
        assert ctx.unmapped == report["unmapped_plugins"] == 3
        assert manifest["generated"] == "2026-01-01 00:00:00"

    def test_supplemental_outputs_and_report(self, config, fake_runner):
        _run(config, fake_runner(refs=REFS))
        with open(config.treesitter_output, encoding="utf-8") as handle:
            assert json.load(handle)["extras"] == {"lang.go": ["go"]}
        with open(config.extras_output, encoding="utf-8") as handle:
            assert json.load(handle)["lang"]["go"]["import"] == "lazyvim.plugins.extras.lang.go"
        assert os.path.isfile(config.dependencies_output)
        with open(config.report, encoding="utf-8") as handle:
            text = handle.read()
        assert "## LazyVim/LazyVim" in text
        assert "## a/b" in text

    def test_second_run_reuses_prefetch(self, config, fake_runner):
        _run(config, fake_runner(refs=REFS), clock="2026-01-01T00:00:00Z")
        second = fake_runner(refs=REFS)
        ctx = _run(config, second, clock="2026-02-02T00:00:00Z")
        assert second.fetch_calls() == []
        assert len(ctx.fetch.reused) == len(ctx.plugins)
        for plugin in _manifest(config)["plugins"]:
            assert plugin["version_info"]["fetched_at"] == "2026-01-01T00:00:00Z"

    def test_moved_branch_is_refetched(self, config, fake_runner):
        _run(config, fake_runner(refs=REFS))
        moved = dict(REFS, **{"https://github.com/a/b": "c9\trefs/heads/main"})
        runner = fake_runner(refs=moved)
        ctx = _run(config, runner, clock="2026-03-03T00:00:00Z")
        assert len(runner.fetch_calls()) == 1
        assert ctx.fetch.updated == ["a/b"]
        plugins = {p["name"]: p for p in _manifest(config)["plugins"]}
        assert plugins["a/b"]["version_info"]["commit"] == "c9"
        assert plugins["a/b"]["version_info"]["fetched_at"] == "2026-03-03T00:00:00Z"

    def test_remote_failure_writes_nothing(self, config, fake_runner):
        runner = fake_runner(refs=REFS, failures={"https://github.com/a/b": "fatal: repository not found"})
        with pytest.raises(RemoteListingError):
            _run(config, runner)
        assert not os.path.exists(config.output)
        assert runner.fetch_calls() == []


class FakeContext:
    def __init__(self, unmapped):
        self.plugins = ["x/y"]
        self.unmapped = unmapped


class TestMain:
    """Exit codes of the command line entry point."""

    def test_missing_root_exits_with_file_error(self, tmp_path):
        with pytest.raises(SystemExit) as excinfo:
            lazypin.main(["--lazyvim", str(tmp_path / "missing"), "--no-user-plugins"])
        assert excinfo.value.code == 1

    def test_unwritable_logfile_exits_with_file_error(self, tmp_path):
        root = logging.getLogger()
        handlers = list(root.handlers)
        try:
            with pytest.raises(SystemExit) as excinfo:
                lazypin.main(["--lazyvim", str(tmp_path), "--logfile", str(tmp_path / "missing" / "run.log")])
        finally:
            root.handlers[:] = handlers
        assert excinfo.value.code == 1

    @pytest.mark.parametrize("flags,code", [([], 0), (["--error-on-warnings"], 3)])
    def test_unmapped_plugins_and_warnings(self, tmp_path, monkeypatch, flags, code):
        class FakePipeline:
            def __init__(self, config):
                self.config = config

            def run(self):
                return FakeContext(unmapped=2)

        monkeypatch.setattr(lazypin, "Pipeline", FakePipeline)
        with pytest.raises(SystemExit) as excinfo:
            lazypin.main(["--lazyvim", str(tmp_path), *flags])
        assert excinfo.value.code == code
