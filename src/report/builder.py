"""Extraction report: counts, load order and unmapped-plugin remediation."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from constants import MappedStatus
from report.suggestions import Suggestion, suggest
from versioning.models import PluginSpec

logger = logging.getLogger(__name__)


@dataclass
class ExtractionReport:
    total_plugins: int = 0
    mapped_plugins: int = 0
    unmapped_plugins: int = 0
    multi_module_plugins: int = 0
    mapping_suggestions: List[Suggestion] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_plugins": self.total_plugins,
            "mapped_plugins": self.mapped_plugins,
            "unmapped_plugins": self.unmapped_plugins,
            "multi_module_plugins": self.multi_module_plugins,
            "mapping_suggestions": [s.to_dict() for s in self.mapping_suggestions],
        }


def assign_load_order(plugins: List[PluginSpec]) -> List[PluginSpec]:
    """Sort by identifier (byte-wise, case-sensitive) and number from 1."""
    ordered = sorted(plugins, key=lambda p: p.identifier.encode("utf-8"))
    for index, plugin in enumerate(ordered, start=1):
        plugin.load_order = index
    return ordered


def build_report(plugins: List[PluginSpec], registry_names: Optional[Sequence[str]] = None) -> ExtractionReport:
    """Aggregate mapping outcomes over the final plugin list.

    Args:
        plugins: Plugins after mapping, in load order.
        registry_names: Registry listing for ranked suggestions, if available.

    Returns:
        ExtractionReport: Counts plus suggestions for each unmapped plugin.
    """
    report = ExtractionReport(total_plugins=len(plugins))
    for plugin in plugins:
        if plugin.mapped_status == MappedStatus.UNMAPPED:
            report.unmapped_plugins += 1
            report.mapping_suggestions.append(suggest(plugin.identifier, plugin.registry_name, registry_names))
        else:
            report.mapped_plugins += 1
        if plugin.multi_module is not None:
            report.multi_module_plugins += 1
    return report


def log_summary(report: ExtractionReport, report_path: Optional[str] = None) -> None:
    logger.info("=== Plugin Extraction Summary ===")
    logger.info("Total plugins extracted: %d", report.total_plugins)
    logger.info("Mapped plugins: %d", report.mapped_plugins)
    logger.info("Unmapped plugins: %d", report.unmapped_plugins)
    logger.info("Multi-module plugins: %d", report.multi_module_plugins)
    if report.unmapped_plugins > 0:
        logger.info("Mapping suggestions generated: %d", len(report.mapping_suggestions))
        if report_path:
            logger.info("Review %s for details on unmapped plugins", report_path)
