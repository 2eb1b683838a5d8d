"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    EXIT_WARNINGS = 3
    TOOL_ERROR = 4
    RESOLUTION_ERROR = 5


class ConstraintKind(Enum):
    """Declared version constraint of a plugin spec.

    Args:
        Enum (string): Constraint kinds, mutually exclusive per plugin.
    """

    NONE = "none"
    BRANCH = "branch"
    TAG = "tag"
    COMMIT = "commit"
    VERSION = "version"
    FLOATING_FALSE = "floating_false"


class TargetMode(Enum):
    """Selection mode chosen for a plugin's remote target."""

    BRANCH = "branch"
    COMMIT = "commit"
    TAG = "tag"
    HEAD = "head"
    AUTO = "auto"


class MappedStatus(Enum):
    """Outcome of registry name mapping."""

    EXPLICIT = "explicit"
    AUTO = "auto"
    UNMAPPED = "unmapped"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
    ENV_LOG_LEVEL = "LAZYPIN_LOG_LEVEL"

    # Declaration tree layout (relative to the LazyVim checkout)
    PLUGINS_SUBDIR = "lua/lazyvim/plugins"
    EXTRAS_SUBDIR = "lua/lazyvim/plugins/extras"
    HEALTH_FILE = "lua/lazyvim/health.lua"
    DECLARATION_SUFFIX = ".lua"
    CORE_MODULES = [
        "coding",
        "colorscheme",
        "editor",
        "formatting",
        "linting",
        "lsp",
        "treesitter",
        "ui",
        "util",
    ]
    # Mirrors LazyVim's init.lua bootstrap specs
    CORE_INIT_SPECS = """
return {
  { "folke/lazy.nvim", version = "*" },
  { "LazyVim/LazyVim", priority = 10000, lazy = false, version = "*" },
  { "folke/snacks.nvim", priority = 1000, lazy = false },
}
"""
    CORE_INIT_SOURCE = "core.init"
    USER_CONFIG_SOURCE = "user_config"
    DEFAULT_USER_CONFIG_DIR = "~/.config/nvim/lua/plugins"

    # Unqualified names LazyVim uses for a few plugins
    SHORT_NAME_ALIASES = {
        "mason.nvim": "mason-org/mason.nvim",
        "gitsigns.nvim": "lewis6991/gitsigns.nvim",
        "snacks.nvim": "folke/snacks.nvim",
    }

    # Default data locations
    DEFAULT_PLUGINS_OUTPUT = "data/plugins.json"
    DEFAULT_MAPPINGS_FILE = "data/mappings.json"
    DEFAULT_REPORT_FILE = "data/mapping-analysis-report.md"
    DEFAULT_DEPENDENCIES_OUTPUT = "data/dependencies.json"
    DEFAULT_TREESITTER_OUTPUT = "data/treesitter.json"
    DEFAULT_EXTRAS_OUTPUT = "data/extras.json"

    # Remote/prefetch tuning
    GITHUB_URL_TEMPLATE = "https://github.com/{owner}/{repo}"
    DEFAULT_REMOTE_CONCURRENCY = 6
    DEFAULT_PREFETCH_CONCURRENCY = 6
    ENV_REMOTE_CONCURRENCY = "LAZYVIM_REMOTE_CONCURRENCY"
    ENV_PREFETCH_CONCURRENCY = "LAZYVIM_PREFETCH_CONCURRENCY"
    ENV_VERIFY_PACKAGES = "VERIFY_NIXPKGS_PACKAGES"
    GIT_BIN = "git"
    PREFETCH_BIN = "nix-prefetch-git"
    NIX_BIN = "nix"
    REGISTRY_ATTRSET = "vimPlugins"

    # Manifest formatting
    GENERATED_FORMAT = "%Y-%m-%d %H:%M:%S"
    FETCHED_AT_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

    # Cache namespaces under --cache-root
    CACHE_NS_DEPENDENCIES = "dependencies"
    CACHE_NS_TREESITTER = "treesitter"

    # Evaluator guard rails
    LUA_MAX_STEPS = 200000
    LUA_MAX_DEPTH = 64
    LUA_MAX_STRING = 1 << 24
    LUA_MAX_RESULTS = 1 << 16

    SUGGESTION_LIMIT = 5
    SUGGESTION_CUTOFF = 0.6
