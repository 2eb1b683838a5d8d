"""Tests for treesitter, system-dependency and extras catalogue extraction."""

import os

import pytest

from cache.store import ContentCache
from collector.scan import DeclarationFile
from extras import dependencies
from extras.dependencies import (
    FALLBACK_CORE_TOOLS,
    extract_core_tools,
    extract_dependencies,
    extract_file_tools,
    load_mason_runtimes,
    resolve_package_name,
    should_exclude_tool,
)
from extras.metadata import extras_metadata
from extras.treesitter import extract_core_parsers, extract_file_parsers, extract_treesitter, parsers_from_text

from conftest import write_files

GO_EXTRA = """
return {
  { "nvim-treesitter/nvim-treesitter", opts = { ensure_installed = { "go", "gomod" } } },
  {
    "neovim/nvim-lspconfig",
    opts = { servers = { gopls = {}, } },
  },
  { "mason-org/mason.nvim", opts = { ensure_installed = { "goimports", "go" } } },
  {
    "nvimtools/none-ls.nvim",
    opts = function(_, opts)
      if vim.fn.executable("gofumpt") == 1 then
        table.insert(opts.ensure_installed, "delve")
      end
    end,
  },
}
"""

RUST_EXTRA = """
return {
  {
    "nvim-treesitter/nvim-treesitter",
    opts = function(_, opts)
      opts.ensure_installed = { "rust", "ron" }
    end,
  },
}
"""


def _decl(relative, content):
    return DeclarationFile(path="/virtual/" + relative, relative=relative, content=content)


class TestTreesitter:
    """Parser lists from core and language extras."""

    def test_core_from_evaluated_opts(self, lazyvim_root):
        root = lazyvim_root(core={"treesitter": 'return { { "nvim-treesitter/nvim-treesitter", opts = { ensure_installed = { "bash", "lua" } } } }'})
        assert extract_core_parsers(root) == ["bash", "lua"]

    def test_core_regex_fallback(self, lazyvim_root):
        root = lazyvim_root(core={"treesitter": 'return { { "nvim-treesitter/nvim-treesitter", opts = function() return { ensure_installed = { "c" } } end } }'})
        assert extract_core_parsers(root) == ["c"]

    def test_core_missing_is_warning(self, lazyvim_root, caplog):
        assert extract_core_parsers(lazyvim_root()) == []
        assert "Core treesitter declaration not found" in caplog.text

    def test_extra_table_opts(self):
        assert extract_file_parsers(_decl("lang/go.lua", GO_EXTRA)) == ["go", "gomod"]

    def test_extra_function_opts_uses_text_fallback(self):
        assert extract_file_parsers(_decl("lang/rust.lua", RUST_EXTRA)) == ["rust", "ron"]
        assert parsers_from_text(RUST_EXTRA) == ["rust", "ron"]

    def test_files_without_treesitter(self):
        assert extract_file_parsers(_decl("lang/x.lua", 'return { "a/b" }')) == []

    def test_self_containing_tables(self):
        source = (
            'local ts = { "nvim-treesitter/nvim-treesitter", opts = { ensure_installed = { "go" } } }'
            " local l = { ts } l[2] = l return l"
        )
        assert extract_file_parsers(_decl("lang/go.lua", source)) == ["go"]
        assert extract_file_parsers(_decl("lang/x.lua", "local t = {} t[1] = t return t")) == []

    def test_document_only_covers_language_extras(self, lazyvim_root):
        root = lazyvim_root(core={"treesitter": 'return { { "nvim-treesitter/nvim-treesitter", opts = { ensure_installed = { "lua" } } } }'})
        files = [
            _decl("lang/rust.lua", RUST_EXTRA),
            _decl("lang/go.lua", GO_EXTRA),
            _decl("editor/x.lua", GO_EXTRA),
            _decl("lang/nested/y.lua", GO_EXTRA),
        ]
        document = extract_treesitter(root, files)
        assert document == {"core": ["lua"], "extras": {"lang.go": ["go", "gomod"], "lang.rust": ["rust", "ron"]}}


class TestToolFilters:
    @pytest.mark.parametrize("name", ["go", "FileType", "ABC", "ab", "settings"])
    def test_excluded(self, name):
        assert should_exclude_tool(name)

    @pytest.mark.parametrize("name", ["rg", "fd", "gofumpt", "ruff"])
    def test_kept(self, name):
        assert not should_exclude_tool(name)

    def test_package_resolution(self):
        assert resolve_package_name("rg") == "ripgrep"
        assert resolve_package_name("node18") == "nodejs"
        assert resolve_package_name("python") == "python3"
        assert resolve_package_name("npm") is None
        assert resolve_package_name("unknown-tool") is None


class TestDependencies:
    """System tool extraction."""

    def test_core_tools_from_health(self, lazyvim_root):
        root = lazyvim_root(extra_files={
            "lua/lazyvim/health.lua": 'for _, cmd in ipairs({ "git", "rg", { "fd", "fdfind" }, "lazygit" }) do end',
        })
        assert extract_core_tools(root) == ["git", "rg", "fd", "fdfind", "lazygit"]

    def test_core_tools_fallback(self, lazyvim_root, caplog):
        assert extract_core_tools(lazyvim_root()) == FALLBACK_CORE_TOOLS
        assert "Could not read LazyVim health.lua" in caplog.text

    def test_file_tools(self):
        assert extract_file_tools(GO_EXTRA) == ["gofumpt", "gopls", "goimports", "delve"]

    def test_mason_runtimes(self, tmp_path):
        write_files(tmp_path / "mason", {
            "packages/gopls/package.yaml": "name: gopls\nsource:\n  id: pkg:golang/golang.org/x/tools/gopls@v0.16.0\n",
            "packages/broken/package.yaml": "source: [unclosed\n",
        })
        runtimes = load_mason_runtimes(str(tmp_path / "mason"), ["gopls", "broken", "absent"])
        assert runtimes == {"gopls": ["go"]}

    def test_mason_path_without_packages(self, tmp_path, caplog):
        assert load_mason_runtimes(str(tmp_path), ["gopls"]) == {}
        assert "Invalid Mason registry path" in caplog.text

    def test_document(self, lazyvim_root, tmp_path):
        root = lazyvim_root(extra_files={"lua/lazyvim/health.lua": 'ipairs({ "git", "rg" })'})
        write_files(tmp_path / "mason", {"packages/gopls/package.yaml": "source:\n  id: pkg:golang/x/gopls\n"})
        document = extract_dependencies(root, [_decl("lang/go.lua", GO_EXTRA)], mason_path=str(tmp_path / "mason"))
        assert document["core"] == [{"name": "git", "nixpkg": "git"}, {"name": "rg", "nixpkg": "ripgrep"}]
        go_tools = {entry["name"]: entry for entry in document["extras"]["lang.go"]}
        assert go_tools["gopls"]["runtime_dependencies"] == [{"name": "go", "nixpkg": "go"}]
        assert go_tools["delve"] == {"name": "delve", "nixpkg": "delve"}

    def test_cached_results_skip_extraction(self, lazyvim_root, tmp_path, monkeypatch):
        root = lazyvim_root()
        cache = ContentCache(str(tmp_path / "cache"), "dependencies")
        files = [_decl("lang/go.lua", GO_EXTRA)]
        first = extract_dependencies(root, files, cache=cache)

        def boom(content):
            raise AssertionError("extraction should come from the cache")

        monkeypatch.setattr(dependencies, "extract_file_tools", boom)
        second = extract_dependencies(root, files, cache=cache)
        assert second["extras"] == first["extras"]
        assert cache.hits == 1


class TestContentCache:
    """Content-addressed cache entries."""

    def test_disabled_without_root(self):
        cache = ContentCache(None, "x")
        cache.put("k", [1])
        assert cache.get("k") is None
        assert not cache.enabled

    def test_put_then_get(self, tmp_path):
        cache = ContentCache(str(tmp_path), "treesitter")
        assert cache.get("k") is None
        cache.put("k", ["lua"])
        assert cache.get("k") == ["lua"]
        assert os.path.isfile(tmp_path / "treesitter" / "k.json")
        assert (cache.hits, cache.misses) == (1, 1)

    def test_unreadable_entry_is_a_miss(self, tmp_path, caplog):
        write_files(tmp_path, {"ns/k.json": "{ nope"})
        cache = ContentCache(str(tmp_path), "ns")
        assert cache.get("k") is None
        assert cache.misses == 1
        assert "Ignoring unreadable cache entry" in caplog.text


def test_extras_metadata():
    files = [
        _decl("lang/go.lua", ""),
        _decl("ai/copilot-chat.lua", ""),
        _decl("vscode.lua", ""),
        _decl("lang/deep/x.lua", ""),
    ]
    assert extras_metadata(files) == {
        "ai": {"copilot_chat": {"name": "copilot-chat", "category": "ai", "import": "lazyvim.plugins.extras.ai.copilot-chat"}},
        "lang": {"go": {"name": "go", "category": "lang", "import": "lazyvim.plugins.extras.lang.go"}},
    }
