"""Tests for argument parsing and layered run configuration."""

import pytest

from args import parse_args
from cli_config import build_config, load_config_file, parse_bool, positive_int
from constants import Constants


def _args(*extra):
    return parse_args(["--lazyvim", "/src/LazyVim", *extra])


class TestParseArgs:
    """CLI surface."""

    def test_lazyvim_is_required(self):
        with pytest.raises(SystemExit):
            parse_args([])

    def test_unset_flags_stay_none(self):
        args = _args()
        assert args.LAZYVIM_ROOT == "/src/LazyVim"
        assert args.OUTPUT is None
        assert args.VERIFY is None
        assert args.INCLUDE_USER is None

    def test_loglevel_is_case_insensitive(self):
        assert _args("--loglevel", "debug").LOG_LEVEL == "DEBUG"

    def test_no_user_plugins(self):
        assert _args("--no-user-plugins").INCLUDE_USER is False


class TestBuildConfig:
    """Precedence: CLI > environment > YAML > defaults."""

    def test_defaults(self):
        config = build_config(_args(), environ={})
        assert config.lazyvim_root == "/src/LazyVim"
        assert config.output == Constants.DEFAULT_PLUGINS_OUTPUT
        assert config.remote_concurrency == 6
        assert config.prefetch_concurrency == 6
        assert config.include_user is True
        assert config.verify is False

    def test_precedence(self, tmp_path):
        path = tmp_path / "lazypin.yml"
        path.write_text(
            "lazypin:\n"
            "  remote_concurrency: 2\n"
            "  prefetch_concurrency: 3\n"
            "  output: from-file.json\n"
            "  report: from-file.md\n"
        )
        args = _args("-c", str(path), "--prefetch-concurrency", "9", "--output", "cli.json")
        environ = {"LAZYVIM_REMOTE_CONCURRENCY": "4", "LAZYVIM_PREFETCH_CONCURRENCY": "5"}
        config = build_config(args, environ=environ)
        assert config.remote_concurrency == 4
        assert config.prefetch_concurrency == 9
        assert config.output == "cli.json"
        assert config.report == "from-file.md"

    def test_top_level_keys_without_section(self, tmp_path):
        path = tmp_path / "lazypin.yml"
        path.write_text("cache_root: /tmp/cache\nbogus: 1\n")
        config = build_config(_args("--config", str(path)), environ={})
        assert config.cache_root == "/tmp/cache"

    def test_unknown_key_warns(self, tmp_path, caplog):
        path = tmp_path / "lazypin.yml"
        path.write_text("bogus: 1\n")
        build_config(_args("--config", str(path)), environ={})
        assert "Ignoring unknown config key: bogus" in caplog.text

    @pytest.mark.parametrize("value", ["0", "-3", "many"])
    def test_invalid_concurrency_falls_back(self, value, caplog):
        config = build_config(_args(), environ={"LAZYVIM_REMOTE_CONCURRENCY": value})
        assert config.remote_concurrency == 6
        assert "Invalid remote_concurrency" in caplog.text

    def test_verify_env(self):
        assert build_config(_args(), environ={"VERIFY_NIXPKGS_PACKAGES": "1"}).verify is True
        assert build_config(_args(), environ={"VERIFY_NIXPKGS_PACKAGES": "0"}).verify is False

    def test_file_booleans_accept_words(self, tmp_path):
        path = tmp_path / "lazypin.yml"
        path.write_text('verify: "false"\ninclude_user: "no"\nerror_on_warnings: "Yes"\n')
        config = build_config(_args("--config", str(path)), environ={})
        assert (config.verify, config.include_user, config.error_on_warnings) == (False, False, True)

    def test_file_values_of_the_wrong_type_are_ignored(self, tmp_path, caplog):
        path = tmp_path / "lazypin.yml"
        path.write_text(
            "verify: maybe\n"
            "output: [a, b]\n"
            "remote_concurrency: true\n"
            "lazyvim_commit: 1234567\n"
            "cache_root:\n"
        )
        config = build_config(_args("--config", str(path)), environ={})
        assert config.verify is False
        assert config.output == Constants.DEFAULT_PLUGINS_OUTPUT
        assert config.remote_concurrency == 6
        assert config.lazyvim_commit == "1234567"
        assert config.cache_root is None
        assert "Invalid verify 'maybe', ignoring" in caplog.text
        assert "Invalid output ['a', 'b'], expected a string" in caplog.text
        assert "Invalid remote_concurrency True" in caplog.text

    def test_boolean_flags(self):
        config = build_config(_args("--verify", "--error-on-warnings", "--no-user-plugins"), environ={})
        assert (config.verify, config.error_on_warnings, config.include_user) == (True, True, False)


class TestConfigFile:
    def test_missing_file(self, tmp_path, caplog):
        assert load_config_file(str(tmp_path / "none.yml")) == {}
        assert "Config file not found" in caplog.text

    def test_invalid_yaml(self, tmp_path, caplog):
        path = tmp_path / "bad.yml"
        path.write_text("key: [unclosed\n")
        assert load_config_file(str(path)) == {}
        assert "Failed to load config" in caplog.text

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "list.yml"
        path.write_text("- a\n- b\n")
        assert load_config_file(str(path)) == {}


def test_positive_int():
    assert positive_int("8", 6, "x") == 8
    assert positive_int(None, 6, "x") == 6
    assert positive_int(True, 6, "x") == 6


@pytest.mark.parametrize("value,expected", [(True, True), ("on", True), (" 0 ", False), ("off", False), (2, None), ("sure", None)])
def test_parse_bool(value, expected):
    assert parse_bool(value, "x") is expected
