"""Extras catalogue (``extras.json``): category -> key -> import path."""
from typing import Dict, List

from collector.scan import DeclarationFile
from constants import Constants


def extras_metadata(extras_files: List[DeclarationFile]) -> Dict[str, Dict[str, Dict[str, str]]]:
    """Index every ``<category>/<name>.lua`` directly under the extras directory.

    Keys replace hyphens with underscores so they are valid attribute names;
    files at the extras root or nested deeper are not extras.
    """
    catalogue: Dict[str, Dict[str, Dict[str, str]]] = {}
    for declaration in extras_files:
        parts = declaration.relative.split("/")
        if len(parts) != 2 or not parts[1].endswith(Constants.DECLARATION_SUFFIX):
            continue
        category, filename = parts
        name = filename[: -len(Constants.DECLARATION_SUFFIX)]
        catalogue.setdefault(category, {})[name.replace("-", "_")] = {
            "name": name,
            "category": category,
            "import": f"lazyvim.plugins.extras.{category}.{name}",
        }
    return {category: dict(sorted(entries.items())) for category, entries in sorted(catalogue.items())}
