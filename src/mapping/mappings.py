"""Explicit identifier -> registry name table (``data/mappings.json``)."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass
class Mappings:
    """Plain mappings plus multi-module ``{package, module}`` mappings."""

    standard: Dict[str, str] = field(default_factory=dict)
    multi_module: Dict[str, Tuple[str, str]] = field(default_factory=dict)

    def is_explicit(self, identifier: str) -> bool:
        return identifier in self.standard or identifier in self.multi_module

    def registry_name(self, identifier: str) -> Optional[str]:
        if identifier in self.standard:
            return self.standard[identifier]
        if identifier in self.multi_module:
            return self.multi_module[identifier][0]
        return None


def parse_mappings(data: object) -> Mappings:
    """Split decoded mappings JSON into standard and multi-module tables."""
    mappings = Mappings()
    if not isinstance(data, dict):
        return mappings
    for identifier, value in data.items():
        if identifier == "_comment":
            continue
        if isinstance(value, str):
            mappings.standard[identifier] = value
        elif isinstance(value, dict) and value.get("package") and value.get("module"):
            mappings.multi_module[identifier] = (str(value["package"]), str(value["module"]))
    return mappings


def load_mappings(path: Optional[str]) -> Mappings:
    """Load the mappings file; a missing or invalid file yields empty mappings.

    Args:
        path: Path to the JSON mappings file.

    Returns:
        Mappings: Parsed mappings (possibly empty).
    """
    if not path:
        return Mappings()
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
    except FileNotFoundError:
        logger.warning("Could not open %s, proceeding without existing mappings", path)
        return Mappings()
    except (OSError, ValueError) as exc:
        logger.warning("Could not parse mappings %s (%s), proceeding without existing mappings", path, exc)
        return Mappings()
    mappings = parse_mappings(data)
    logger.info(
        "Loaded %d standard mappings and %d multi-module mappings",
        len(mappings.standard),
        len(mappings.multi_module),
    )
    return mappings
