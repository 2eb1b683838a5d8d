"""System tool extraction: what LazyVim and its extras expect on ``$PATH``.

Core tools come from the command list ``health.lua`` checks. Extras
contribute ``vim.fn.executable`` probes, LSP ``servers`` keys and
``ensure_installed`` entries. Tool names map to registry packages through a
fixed table; Mason package manifests, when available, add runtimes.
"""
from __future__ import annotations

import logging
import os
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

import yaml

from cache.store import ContentCache
from collector.scan import DeclarationFile, extra_source_tag
from constants import Constants

logger = logging.getLogger(__name__)

FALLBACK_CORE_TOOLS = ["git", "rg", "fd", "lazygit", "fzf", "curl"]
CORE_TOOLS = frozenset(FALLBACK_CORE_TOOLS + ["fdfind"])

EXCLUDED_IDENTIFIERS = frozenset([
    # languages
    "angular", "astro", "bash", "c", "c_sharp", "clojure", "cmake", "cpp", "css", "dart",
    "dockerfile", "eex", "elixir", "elm", "erlang", "fsharp", "go", "graphql", "haskell",
    "hcl", "heex", "html", "java", "javascript", "jsdoc", "json", "json5", "jsonc", "julia",
    "kotlin", "latex", "lua", "luadoc", "luap", "markdown", "markdown_inline", "ninja", "nix",
    "nu", "nushell", "ocaml", "php", "python", "query", "r", "rasi", "regex", "rego", "rnoweb",
    "ron", "rst", "ruby", "rust", "scala", "scss", "sql", "svelte", "thrift", "toml", "tsx",
    "typescript", "typst", "vim", "vimdoc", "vue", "xml", "yaml", "zig", "twig", "solidity",
    # LSP server names configured by lspconfig
    "angularls", "ansiblels", "bashls", "dartls", "dockerls", "elixirls", "elmls", "erlangls",
    "julials", "kotlin_language_server", "nil_ls", "ocamllsp", "prismals", "r_language_server",
    "ruby_lsp", "solidity_ls", "terraformls", "tsserver", "vue_ls", "yamlls", "bacon_ls",
    "twiggy_language_server", "jdtls", "phpactor", "marksman", "texlab", "helm_ls", "neocmake",
    # config keys and internal identifiers
    "FileType", "RUFF_TRACE", "arguments", "before_init", "buf_name", "capabilities", "chrome",
    "cmd_env", "codelenses", "command", "completionmode", "copilot", "count", "desc", "diagnostics",
    "diff", "dynamicRegistration", "ember", "enabled", "file_name", "filetypes", "filetypes_exclude",
    "foldingRange", "gc_details", "generate", "git_config", "git_rebase", "gitattributes", "gitcommit",
    "gitignore", "glimmer", "glimmer_javascript", "glimmer_typescript", "gomod", "gosum", "gowork",
    "http", "keys", "lineFoldingOnly", "lint", "lsp", "missingrefs", "mode", "msedge", "node",
    "null-ls", "nvimtools/none-ls.nvim", "params", "printf", "regenerate_cgo", "root_markers",
    "run_govulncheck", "schemas", "settings", "silent", "test", "textDocument", "tidy",
    "upgrade_dependency", "vendor", "workingDirectories", "bibtex",
])

PACKAGE_MANAGERS = frozenset(["pip", "npm", "composer", "luarocks", "opam", "gem"])

DIRECT_PACKAGES = {
    "rg": "ripgrep",
    "fdfind": "fd",
    "fd": "fd",
    "git": "git",
    "fzf": "fzf",
    "curl": "curl",
    "lazygit": "lazygit",
    "delta": "delta",
    "rust_analyzer": "rust-analyzer",
    "rust-analyzer": "rust-analyzer",
    "shellcheck": "shellcheck",
    "hadolint": "hadolint",
    "gitui": "gitui",
    "taplo": "taplo",
    "stylua": "stylua",
    "clangd": "clang-tools",
    "helm": "kubernetes-helm",
    "terraform": "terraform",
    "gleam": "gleam",
    "tinymist": "tinymist",
    "haskell-language-server": "haskell-language-server",
    "gopls": "gopls",
    "gofumpt": "gofumpt",
    "goimports": "go",
    "gomodifytags": "gomodifytags",
    "impl": "impl",
    "golangci-lint": "golangci-lint",
    "delve": "delve",
    "regols": "regols",
    "black": "python3Packages.black",
    "ruff": "python3Packages.ruff",
    "sqlfluff": "sqlfluff",
    "prettier": "nodePackages.prettier",
    "eslint": "nodePackages.eslint",
    "codelldb": "vscode-extensions.vadimcn.vscode-lldb",
    "ansible-lint": "ansible-lint",
    "tflint": "tflint",
    "ktlint": "ktlint",
    "cmakelang": "python3Packages.cmakelang",
    "cmakelint": "python3Packages.cmakelint",
    "markdownlint-cli2": "nodePackages.markdownlint-cli2",
    "markdown-toc": "nodePackages.markdown_toc",
    "erb-formatter": "rubyPackages.erb_formatter",
    "nodejs": "nodejs",
    "cargo": "cargo",
    "rustc": "rustc",
    "ruby": "ruby",
    "python3": "python3",
    "go": "go",
    "php": "php",
    "dotnet-sdk": "dotnet-sdk",
    "lua": "lua",
    "ocaml": "ocaml",
}

RUNTIMES_BY_PACKAGE_TYPE = {
    "npm": ["nodejs", "npm"],
    "cargo": ["cargo", "rustc"],
    "gem": ["ruby", "gem"],
    "pip": ["python3", "pip"],
    "pypi": ["python3", "pip"],
    "go": ["go"],
    "golang": ["go"],
    "composer": ["php", "composer"],
    "nuget": ["dotnet-sdk"],
    "opam": ["ocaml", "opam"],
    "luarocks": ["lua", "luarocks"],
}

_HEALTH_LIST = re.compile(r"ipairs\s*\(\s*\{\s*(.*?)\s*\}\s*\)", re.S)
_QUOTED = re.compile(r'"([^"]+)"')
_EXECUTABLE_PATTERNS = (
    re.compile(r'vim\.fn\.executable\s*\(\s*"([^"]+)"\s*\)\s*==\s*1'),
    re.compile(r"vim\.fn\.executable\s*\(\s*'([^']+)'\s*\)\s*==\s*1"),
    re.compile(r'if\s+vim\.fn\.executable\s*\(\s*"([^"]+)"\s*\)'),
)
_SERVERS_BLOCK = re.compile(r"servers\s*=\s*\{([^}]*)\}")
_SERVER_KEY = re.compile(r"([\w-]+)\s*=")
_ENSURE_BLOCK = re.compile(r"ensure_installed[^{]*\{([^}]*)\}")
_INSERT_ENSURE = re.compile(r'table\.insert\(opts\.ensure_installed,\s*"([^"]+)"')


def should_exclude_tool(name: str) -> bool:
    """True for language, server and config identifiers that are not tools."""
    if name in CORE_TOOLS:
        return False
    return (
        name in EXCLUDED_IDENTIFIERS
        or re.fullmatch(r"[A-Z]+", name) is not None
        or (re.fullmatch(r"[a-z_]+", name) is not None and len(name) < 3)
    )


def resolve_package_name(tool: str) -> Optional[str]:
    """Registry package for a tool name, or None when there is no mapping."""
    if tool in PACKAGE_MANAGERS:
        return None
    if tool in DIRECT_PACKAGES:
        return DIRECT_PACKAGES[tool]
    if tool.startswith("node"):
        return "nodejs"
    if tool == "python":
        return "python3"
    return None


def _unique(items: List[str]) -> List[str]:
    seen = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


def extract_core_tools(root: str) -> List[str]:
    health_path = os.path.join(root, Constants.HEALTH_FILE)
    try:
        with open(health_path, "r", encoding="utf-8") as handle:
            content = handle.read()
    except (OSError, UnicodeDecodeError):
        logger.warning("Could not read LazyVim health.lua")
        return list(FALLBACK_CORE_TOOLS)
    tools: List[str] = []
    m = _HEALTH_LIST.search(content)
    if m:
        tools = _unique([t for t in _QUOTED.findall(m.group(1)) if not should_exclude_tool(t)])
    if not tools:
        logger.warning("Could not parse dependencies from health.lua, using fallback")
        tools = list(FALLBACK_CORE_TOOLS)
    logger.info("Extracted %d core dependencies from LazyVim health.lua", len(tools))
    return tools


def extract_file_tools(content: str) -> List[str]:
    """Executable probes, then configured servers and ensure_installed entries."""
    found: List[str] = []
    for pattern in _EXECUTABLE_PATTERNS:
        found.extend(pattern.findall(content))
    for block in _SERVERS_BLOCK.findall(content):
        found.extend(_SERVER_KEY.findall(block))
    for block in _ENSURE_BLOCK.findall(content):
        found.extend(_QUOTED.findall(block))
    found.extend(_INSERT_ENSURE.findall(content))
    return _unique([tool for tool in found if not should_exclude_tool(tool)])


def load_mason_runtimes(mason_path: Optional[str], tools: List[str]) -> Dict[str, List[str]]:
    """Runtime requirements per tool from ``<mason>/packages/<tool>/package.yaml``."""
    runtimes: Dict[str, List[str]] = {}
    if not mason_path:
        return runtimes
    if not os.path.isdir(os.path.join(mason_path, "packages")):
        logger.warning("Invalid Mason registry path: %s (packages directory not found)", mason_path)
        return runtimes
    for tool in tools:
        path = os.path.join(mason_path, "packages", tool, "package.yaml")
        if not os.path.isfile(path):
            continue
        try:
            with open(path, "r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
        except (OSError, yaml.YAMLError) as exc:
            logger.warning("Could not parse Mason package %s: %s", path, exc)
            continue
        source = data.get("source") if isinstance(data, dict) else None
        source_id = source.get("id") if isinstance(source, dict) else None
        m = re.match(r"pkg:([^/]+)", str(source_id or ""))
        if m and m.group(1) in RUNTIMES_BY_PACKAGE_TYPE:
            runtimes[tool] = list(RUNTIMES_BY_PACKAGE_TYPE[m.group(1)])
    return runtimes


def _tool_entry(tool: str, runtimes: Dict[str, List[str]]) -> Dict[str, Any]:
    entry: Dict[str, Any] = {"name": tool}
    package = resolve_package_name(tool)
    if package:
        entry["nixpkg"] = package
    if runtimes.get(tool):
        entry["runtime_dependencies"] = [_tool_entry(dep, {}) for dep in runtimes[tool]]
    return entry


def extract_dependencies(
    root: str,
    extras_files: List[DeclarationFile],
    cache: Optional[ContentCache] = None,
    mason_path: Optional[str] = None,
) -> Dict[str, Any]:
    """Build the ``dependencies.json`` document.

    Args:
        root: Declaration root.
        extras_files: Extras declaration files from collection.
        cache: Content-addressed cache for per-file tool lists.
        mason_path: Optional Mason registry checkout for runtime requirements.

    Returns:
        Dict[str, Any]: Core tool entries and per-extra tool entries.
    """
    logger.info("=== Extracting system dependencies ===")
    core = extract_core_tools(root)
    per_extra: Dict[str, List[str]] = {}
    for declaration in extras_files:
        tools = cache.get(declaration.digest) if cache is not None else None
        if not isinstance(tools, list):
            tools = extract_file_tools(declaration.content)
            if cache is not None:
                cache.put(declaration.digest, tools)
        if tools:
            per_extra[extra_source_tag(declaration.relative)[len("extras."):]] = tools
    logger.info("Found tools in %d LazyVim extras", len(per_extra))

    all_tools = sorted(set(core).union(*per_extra.values()))
    runtimes = load_mason_runtimes(mason_path, all_tools)
    unmapped = [tool for tool in all_tools if resolve_package_name(tool) is None]
    logger.info(
        "Total unique tools found: %d (%d without a package mapping)",
        len(all_tools),
        len(unmapped),
    )
    return {
        "_comment": "LazyVim system dependencies with nixpkgs mappings - tools and their runtime_dependencies",
        "generated": datetime.now().strftime(Constants.GENERATED_FORMAT),
        "lazyvim_path": root,
        "mason_path": mason_path,
        "core": [_tool_entry(tool, {}) for tool in core],
        "extras": {name: [_tool_entry(t, runtimes) for t in per_extra[name]] for name in sorted(per_extra)},
    }
