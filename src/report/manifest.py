"""Manifest (``plugins.json``) serialization and atomic output writing."""
from __future__ import annotations

import json
import logging
import os
import tempfile
from typing import Any, Dict, List, Optional

from common.errors import OutputWriteError
from versioning.models import PluginSpec, VersionInfo

logger = logging.getLogger(__name__)

# Lazy-loading keys copied only when the declaration set them
_OPTIONAL_KEYS = ("event", "cmd", "ft", "enabled", "lazy", "priority")


def write_text_atomic(path: str, text: str) -> None:
    """Write ``text`` to ``path`` via a sibling temp file and ``os.replace``.

    Raises:
        OutputWriteError: The directory or file could not be written.
    """
    directory = os.path.dirname(os.path.abspath(path))
    try:
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".lazypin-", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(text)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
    except OSError as exc:
        raise OutputWriteError(f"Could not write {path}: {exc}") from exc


def write_json_atomic(path: str, data: Any) -> None:
    write_text_atomic(path, json.dumps(data, ensure_ascii=False, indent=2) + "\n")


def plugin_to_dict(plugin: PluginSpec) -> Dict[str, Any]:
    """Serialize one plugin with the manifest's fixed key order."""
    data: Dict[str, Any] = {
        "name": plugin.name,
        "owner": plugin.owner,
        "repo": plugin.repo,
        "loadOrder": plugin.load_order,
        "dependencies": list(plugin.dependencies),
    }
    if plugin.multi_module is not None:
        data["multiModule"] = plugin.multi_module.to_dict()
    data["source_file"] = plugin.source_file
    data["is_core"] = plugin.is_core
    for key in _OPTIONAL_KEYS:
        value = getattr(plugin, key)
        if value is not None:
            data[key] = value
    data["version_info"] = plugin.version_info.to_dict()
    data["needsSourceBuild"] = plugin.needs_source_build
    return data


def build_manifest(
    plugins: List[PluginSpec],
    extraction_report: Dict[str, Any],
    version: Optional[str],
    commit: Optional[str],
    generated: str,
) -> Dict[str, Any]:
    return {
        "version": version,
        "commit": commit,
        "generated": generated,
        "extraction_report": extraction_report,
        "plugins": [plugin_to_dict(p) for p in plugins],
    }


def load_prior_records(path: Optional[str]) -> Dict[str, VersionInfo]:
    """Read ``version_info`` of every plugin in a previous manifest.

    A missing or unparsable manifest yields no records; neither is fatal.

    Args:
        path: Location of the previous ``plugins.json``.

    Returns:
        Dict[str, VersionInfo]: Prior version info keyed by identifier.
    """
    if not path or not os.path.isfile(path):
        logger.info("Note: No existing plugins.json found at %s, will create new one", path)
        return {}
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
    except (OSError, ValueError) as exc:
        logger.warning("Could not parse existing plugins.json (%s)", exc)
        return {}
    plugins = data.get("plugins") if isinstance(data, dict) else None
    if not isinstance(plugins, list):
        logger.warning("Could not parse existing plugins.json (no plugins list)")
        return {}
    records: Dict[str, VersionInfo] = {}
    for entry in plugins:
        if isinstance(entry, dict) and entry.get("name") and isinstance(entry.get("version_info"), dict):
            records[entry["name"]] = VersionInfo.from_dict(entry["version_info"])
    logger.info("Loaded %d existing plugins from %s", len(records), path)
    return records
