"""Run configuration: YAML file, environment and CLI overrides.

Precedence, highest first: CLI flags, environment variables, the YAML
config file (top-level keys or a ``lazypin:`` section), then the defaults
in ``Constants``. The result is a ``PipelineConfig`` passed explicitly to
every stage.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from typing import Any, Dict, Mapping, Optional

import yaml

from constants import Constants

logger = logging.getLogger(__name__)

CONFIG_SECTION = "lazypin"


@dataclass
class PipelineConfig:  # pylint: disable=too-many-instance-attributes
    """Resolved settings for one run; treat as read-only once built."""

    lazyvim_root: str = ""
    output: str = Constants.DEFAULT_PLUGINS_OUTPUT
    report: str = Constants.DEFAULT_REPORT_FILE
    dependencies_output: Optional[str] = Constants.DEFAULT_DEPENDENCIES_OUTPUT
    treesitter_output: Optional[str] = Constants.DEFAULT_TREESITTER_OUTPUT
    extras_output: Optional[str] = Constants.DEFAULT_EXTRAS_OUTPUT
    mappings: str = Constants.DEFAULT_MAPPINGS_FILE
    registry_snapshot: Optional[str] = None
    lazyvim_version: Optional[str] = None
    lazyvim_commit: Optional[str] = None
    cache_root: Optional[str] = None
    mason_registry: Optional[str] = None
    user_config: str = Constants.DEFAULT_USER_CONFIG_DIR
    include_user: bool = True
    remote_concurrency: int = Constants.DEFAULT_REMOTE_CONCURRENCY
    prefetch_concurrency: int = Constants.DEFAULT_PREFETCH_CONCURRENCY
    verify: bool = False
    error_on_warnings: bool = False
    git_bin: str = Constants.GIT_BIN
    prefetch_bin: str = Constants.PREFETCH_BIN
    nix_bin: str = Constants.NIX_BIN


# argparse dest -> PipelineConfig field
CLI_FIELDS = {
    "LAZYVIM_ROOT": "lazyvim_root",
    "OUTPUT": "output",
    "REPORT": "report",
    "DEPENDENCIES_OUTPUT": "dependencies_output",
    "TREESITTER_OUTPUT": "treesitter_output",
    "EXTRAS_OUTPUT": "extras_output",
    "MAPPINGS": "mappings",
    "REGISTRY_SNAPSHOT": "registry_snapshot",
    "LAZYVIM_VERSION": "lazyvim_version",
    "LAZYVIM_COMMIT": "lazyvim_commit",
    "CACHE_ROOT": "cache_root",
    "MASON_REGISTRY": "mason_registry",
    "USER_CONFIG": "user_config",
    "INCLUDE_USER": "include_user",
    "REMOTE_CONCURRENCY": "remote_concurrency",
    "PREFETCH_CONCURRENCY": "prefetch_concurrency",
    "VERIFY": "verify",
    "ERROR_ON_WARNINGS": "error_on_warnings",
}

_CONCURRENCY_FIELDS = ("remote_concurrency", "prefetch_concurrency")
_BOOLEAN_FIELDS = ("include_user", "verify", "error_on_warnings")
_TRUE_WORDS = ("1", "true", "yes", "on")
_FALSE_WORDS = ("0", "false", "no", "off")


def load_config_file(path: Optional[str]) -> Dict[str, Any]:
    """Read the YAML config file; a missing or invalid file yields ``{}``."""
    if not path:
        return {}
    if not os.path.isfile(path):
        logger.warning("Config file not found: %s", path)
        return {}
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except (OSError, yaml.YAMLError) as exc:
        logger.error("Failed to load config: %s", exc)
        return {}
    if not isinstance(data, dict):
        return {}
    section = data.get(CONFIG_SECTION)
    return section if isinstance(section, dict) else data


def positive_int(value: Any, default: int, name: str) -> int:
    """``value`` as an int >= 1, else ``default`` with a warning."""
    try:
        if isinstance(value, bool):
            raise TypeError(value)
        number = int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid %s %r, using %d", name, value, default)
        return default
    if number < 1:
        logger.warning("Invalid %s %r, using %d", name, value, default)
        return default
    return number


def parse_bool(value: Any, name: str) -> Optional[bool]:
    """YAML boolean or a yes/no style word; None (with a warning) otherwise."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    logger.warning("Invalid %s %r, ignoring", name, value)
    return None


def file_value(name: str, value: Any) -> Any:
    """Config file value coerced to its field's type, or None when unusable."""
    if name in _BOOLEAN_FIELDS:
        return parse_bool(value, name)
    if name in _CONCURRENCY_FIELDS or value is None:
        return value
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    logger.warning("Invalid %s %r, expected a string", name, value)
    return None


def env_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if environ.get(Constants.ENV_REMOTE_CONCURRENCY):
        overrides["remote_concurrency"] = environ[Constants.ENV_REMOTE_CONCURRENCY]
    if environ.get(Constants.ENV_PREFETCH_CONCURRENCY):
        overrides["prefetch_concurrency"] = environ[Constants.ENV_PREFETCH_CONCURRENCY]
    if environ.get(Constants.ENV_VERIFY_PACKAGES) == "1":
        overrides["verify"] = True
    return overrides


def cli_overrides(args: Any) -> Dict[str, Any]:
    """Flags the user actually passed (argparse defaults are None)."""
    overrides: Dict[str, Any] = {}
    for dest, name in CLI_FIELDS.items():
        value = getattr(args, dest, None)
        if value is not None:
            overrides[name] = value
    return overrides


def build_config(args: Any, environ: Optional[Mapping[str, str]] = None) -> PipelineConfig:
    """Layer defaults, config file, environment and CLI into a PipelineConfig.

    Args:
        args: Parsed CLI namespace (UPPERCASE dests).
        environ: Environment mapping; defaults to ``os.environ``.

    Returns:
        PipelineConfig: The resolved settings.
    """
    environ = os.environ if environ is None else environ
    known = {f.name for f in fields(PipelineConfig)}
    values: Dict[str, Any] = {}

    file_values = load_config_file(getattr(args, "CONFIG", None))
    for key, value in file_values.items():
        if key not in known:
            logger.warning("Ignoring unknown config key: %s", key)
            continue
        value = file_value(key, value)
        if value is not None:
            values[key] = value
    values.update(env_overrides(environ))
    values.update(cli_overrides(args))

    for name in _CONCURRENCY_FIELDS:
        if name in values:
            values[name] = positive_int(values[name], getattr(PipelineConfig, name), name)
    return PipelineConfig(**values)
