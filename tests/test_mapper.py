"""Tests for registry name mapping and the registry sources."""

import json
import logging

import pytest

from common.errors import RegistryQueryError
from constants import MappedStatus
from mapping.mapper import guess_registry_name, map_plugins
from mapping.mappings import Mappings, load_mappings, parse_mappings
from registry.nixpkgs import NixRegistry, SnapshotRegistry, presence_expression
from versioning.models import MultiModuleMapping, PluginSpec


def _plugin(identifier):
    owner, repo = identifier.split("/")
    return PluginSpec(identifier=identifier, owner=owner, repo=repo)


class CountingRegistry(SnapshotRegistry):
    """Snapshot registry that records every probe call."""

    def __init__(self, names):
        super().__init__(names)
        self.probes = []

    def probe(self, names):
        self.probes.append(list(names))
        return super().probe(names)


class TestGuessRegistryName:
    """Heuristic name transforms."""

    @pytest.mark.parametrize("identifier,expected", [
        ("folke/lazy.nvim", "lazy-nvim"),
        ("nvim-lua/plenary.nvim", "plenary-nvim"),
        ("nvim-treesitter/nvim-treesitter", "nvim-treesitter"),
        ("someone/telescope-nvim", "telescope-nvim"),
        ("tpope/vim-fugitive", "vim_fugitive"),
        ("nvim-mini/mini.ai", "mini_ai"),
    ])
    def test_transforms(self, identifier, expected):
        assert guess_registry_name(identifier) == expected

    def test_invalid_identifier(self):
        assert guess_registry_name("nope") is None


class TestMapPlugins:
    """Explicit table first, then one batch probe."""

    def test_explicit_auto_and_unmapped(self):
        plugins = [_plugin("folke/lazy.nvim"), _plugin("x/mystery.nvim"), _plugin("catppuccin/nvim")]
        mappings = Mappings(standard={"catppuccin/nvim": "catppuccin-nvim"})
        registry = CountingRegistry(["lazy-nvim"])
        outcome = map_plugins(plugins, mappings, registry)
        by_id = {p.identifier: p for p in plugins}
        assert by_id["catppuccin/nvim"].mapped_status == MappedStatus.EXPLICIT
        assert by_id["catppuccin/nvim"].registry_name == "catppuccin-nvim"
        assert by_id["folke/lazy.nvim"].mapped_status == MappedStatus.AUTO
        assert by_id["x/mystery.nvim"].mapped_status == MappedStatus.UNMAPPED
        assert by_id["x/mystery.nvim"].registry_name == "mystery-nvim"
        assert outcome.mapped == 2
        assert outcome.unmapped == ["x/mystery.nvim"]

    def test_single_batch_probe_with_distinct_candidates(self):
        plugins = [_plugin("a/foo.nvim"), _plugin("b/foo.nvim"), _plugin("c/bar.nvim")]
        registry = CountingRegistry([])
        map_plugins(plugins, Mappings(), registry)
        assert registry.probes == [["foo-nvim", "bar-nvim"]]

    def test_no_probe_when_everything_is_explicit(self):
        registry = CountingRegistry([])
        map_plugins([_plugin("a/b")], Mappings(standard={"a/b": "b"}), registry)
        assert registry.probes == []

    def test_multi_module_counted_and_explicit(self):
        plugin = _plugin("nvim-mini/mini.ai")
        plugin.multi_module = MultiModuleMapping("mini-nvim", "ai", "nvim-mini/mini.nvim")
        mappings = Mappings(multi_module={"nvim-mini/mini.ai": ("mini-nvim", "ai")})
        outcome = map_plugins([plugin], mappings, CountingRegistry([]))
        assert outcome.multi_module == 1
        assert plugin.registry_name == "mini-nvim"
        assert plugin.mapped_status == MappedStatus.EXPLICIT


class TestMappingsFile:
    """Loading ``mappings.json``."""

    def test_parse_skips_comment_and_splits_tables(self):
        mappings = parse_mappings({
            "_comment": "hand maintained",
            "a/b": "b-nvim",
            "nvim-mini/mini.ai": {"package": "mini-nvim", "module": "ai"},
            "broken/entry": {"package": "x"},
        })
        assert mappings.standard == {"a/b": "b-nvim"}
        assert mappings.multi_module == {"nvim-mini/mini.ai": ("mini-nvim", "ai")}

    def test_missing_file_is_empty(self, tmp_path, caplog):
        mappings = load_mappings(str(tmp_path / "nope.json"))
        assert mappings.standard == {}
        assert "proceeding without existing mappings" in caplog.text

    def test_invalid_file_is_empty(self, tmp_path):
        path = tmp_path / "mappings.json"
        path.write_text("{ not json")
        assert load_mappings(str(path)).multi_module == {}

    def test_valid_file(self, tmp_path, caplog):
        caplog.set_level(logging.INFO)
        path = tmp_path / "mappings.json"
        path.write_text(json.dumps({"a/b": "b"}))
        assert load_mappings(str(path)).registry_name("a/b") == "b"
        assert "Loaded 1 standard mappings and 0 multi-module mappings" in caplog.text


class TestRegistries:
    """Snapshot and live registry sources."""

    def test_snapshot_from_list_and_object(self, tmp_path):
        listing = tmp_path / "list.json"
        listing.write_text(json.dumps(["b", "a", "a"]))
        keyed = tmp_path / "keyed.json"
        keyed.write_text(json.dumps({"x": {"version": "1"}}))
        assert SnapshotRegistry.from_file(str(listing)).list_names() == ["a", "b"]
        assert SnapshotRegistry.from_file(str(keyed)).probe(["x", "y"]) == {"x": True, "y": False}

    def test_snapshot_rejects_scalars_and_missing(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("42")
        with pytest.raises(RegistryQueryError):
            SnapshotRegistry.from_file(str(path))
        with pytest.raises(RegistryQueryError):
            SnapshotRegistry.from_file(str(tmp_path / "missing.json"))

    def test_nix_probe_is_one_eval(self):
        calls = []

        async def runner(argv):
            calls.append(argv)
            return 0, json.dumps({"lazy-nvim": True, "nope": False}), ""

        registry = NixRegistry(runner=runner)
        assert registry.probe(["lazy-nvim", "nope"]) == {"lazy-nvim": True, "nope": False}
        assert len(calls) == 1
        assert calls[0][:3] == ["nix", "eval", "--json"]

    def test_nix_probe_failure(self):
        async def runner(argv):
            return 1, "", "error: file 'nixpkgs' was not found"

        with pytest.raises(RegistryQueryError, match="Failed to evaluate"):
            NixRegistry(runner=runner).probe(["x"])

    def test_presence_expression_quotes_names(self):
        expr = presence_expression(["a-nvim", 'we"ird'])
        assert '"a-nvim"' in expr
        assert '"we\\"ird"' in expr
        assert "pkgs.vimPlugins" in expr
