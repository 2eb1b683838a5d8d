"""Stage orchestration: collect, map, list remotes, select targets, fetch, report.

Stages run strictly in order over one ``PipelineContext``. Nothing is
written until every stage has succeeded, so a failed run leaves the previous
outputs untouched.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from cache.store import ContentCache
from cli_config import PipelineConfig
from collector.collect import collect_plugins
from collector.scan import DeclarationFile
from common.logging_utils import Timer, extra_context, is_debug_enabled
from common.subprocess_pool import Runner
from constants import Constants, MappedStatus
from extras.dependencies import extract_dependencies
from extras.metadata import extras_metadata
from extras.treesitter import extract_treesitter
from mapping.mapper import MappingOutcome, Registry, map_plugins
from mapping.mappings import Mappings, load_mappings
from registry.nixpkgs import NixRegistry, SnapshotRegistry
from report.builder import ExtractionReport, assign_load_order, build_report, log_summary
from report.manifest import build_manifest, load_prior_records, write_json_atomic, write_text_atomic
from report.suggestions import format_report
from repository.prefetch import FetchSummary, fetch_plugins, utc_timestamp
from repository.remote import resolve_remote_refs
from versioning.models import PluginSpec, RemoteRepoState
from versioning.selector import resolve_targets

logger = logging.getLogger(__name__)


def local_timestamp() -> str:
    return datetime.now().strftime(Constants.GENERATED_FORMAT)


@dataclass
class PipelineContext:  # pylint: disable=too-many-instance-attributes
    """Everything one run produces, threaded explicitly through the stages."""

    config: PipelineConfig
    mappings: Mappings = field(default_factory=Mappings)
    plugins: List[PluginSpec] = field(default_factory=list)
    repo_index: Dict[str, str] = field(default_factory=dict)
    extras_files: List[DeclarationFile] = field(default_factory=list)
    mapping: Optional[MappingOutcome] = None
    remote: Dict[str, RemoteRepoState] = field(default_factory=dict)
    fetch: Optional[FetchSummary] = None
    report: Optional[ExtractionReport] = None
    manifest: Dict[str, Any] = field(default_factory=dict)
    supplemental: Dict[str, Any] = field(default_factory=dict)

    @property
    def unmapped(self) -> int:
        return self.report.unmapped_plugins if self.report else 0


class Pipeline:
    """Runs stages 1 through 7 for one configuration.

    Args:
        config: Resolved run settings.
        registry: Registry override; defaults to the snapshot file when
            configured, else live ``nix eval`` probes.
        runner: Subprocess runner override shared by every stage.
        clock: UTC timestamp source for ``fetched_at``.
    """

    def __init__(
        self,
        config: PipelineConfig,
        registry: Optional[Registry] = None,
        runner: Optional[Runner] = None,
        clock: Callable[[], str] = utc_timestamp,
        generated: Callable[[], str] = local_timestamp,
    ):
        self.config = config
        self.runner = runner
        self.clock = clock
        self.generated = generated
        self.registry = registry if registry is not None else self._default_registry()

    def _default_registry(self) -> Registry:
        if self.config.registry_snapshot:
            return SnapshotRegistry.from_file(self.config.registry_snapshot)
        return NixRegistry(nix_bin=self.config.nix_bin, runner=self.runner)

    def _stage(self, name: str, fn: Callable[[PipelineContext], None], ctx: PipelineContext) -> None:
        with Timer() as timer:
            fn(ctx)
        if is_debug_enabled(logger):
            logger.debug(
                "Stage finished",
                extra=extra_context(
                    event="stage", component="pipeline", action=name, outcome="success", duration_ms=timer.duration_ms()
                ),
            )

    def run(self) -> PipelineContext:
        """Run every stage, then write outputs.

        Raises:
            LazypinError: Any fatal stage failure; nothing is written then.
        """
        ctx = PipelineContext(config=self.config)
        self._stage("collect", self.collect, ctx)
        self._stage("map", self.map, ctx)
        self._stage("remote", self.list_remotes, ctx)
        self._stage("select", self.select_targets, ctx)
        self._stage("fetch", self.fetch, ctx)
        self._stage("report", self.build_report, ctx)
        self._stage("extras", self.extract_supplemental, ctx)
        self.write_outputs(ctx)
        return ctx

    def collect(self, ctx: PipelineContext) -> None:
        ctx.mappings = load_mappings(self.config.mappings)
        result = collect_plugins(
            self.config.lazyvim_root,
            multi_module=ctx.mappings.multi_module,
            user_dir=self.config.user_config,
            include_user=self.config.include_user,
        )
        ctx.plugins = result.plugins
        ctx.repo_index = result.repo_index
        ctx.extras_files = result.extras_files

    def map(self, ctx: PipelineContext) -> None:
        ctx.mapping = map_plugins(ctx.plugins, ctx.mappings, self.registry)

    def list_remotes(self, ctx: PipelineContext) -> None:
        ctx.remote = resolve_remote_refs(
            ctx.repo_index,
            concurrency=self.config.remote_concurrency,
            git_bin=self.config.git_bin,
            runner=self.runner,
        )

    def select_targets(self, ctx: PipelineContext) -> None:
        resolve_targets(ctx.plugins, ctx.remote)

    def fetch(self, ctx: PipelineContext) -> None:
        prior = load_prior_records(self.config.output)
        ctx.fetch = fetch_plugins(
            ctx.plugins,
            prior,
            concurrency=self.config.prefetch_concurrency,
            prefetch_bin=self.config.prefetch_bin,
            runner=self.runner,
            clock=self.clock,
        )

    def _registry_names(self) -> Optional[List[str]]:
        if self.config.registry_snapshot or self.config.verify:
            return self.registry.list_names()
        return None

    def build_report(self, ctx: PipelineContext) -> None:
        ctx.plugins = assign_load_order(ctx.plugins)
        names = self._registry_names() if any(p.mapped_status == MappedStatus.UNMAPPED for p in ctx.plugins) else None
        ctx.report = build_report(ctx.plugins, names)
        ctx.manifest = build_manifest(
            ctx.plugins,
            ctx.report.to_dict(),
            version=self.config.lazyvim_version,
            commit=self.config.lazyvim_commit,
            generated=self.generated(),
        )

    def extract_supplemental(self, ctx: PipelineContext) -> None:
        root = self.config.lazyvim_root
        cache_root = self.config.cache_root
        if self.config.dependencies_output:
            ctx.supplemental["dependencies"] = extract_dependencies(
                root,
                ctx.extras_files,
                ContentCache(cache_root, Constants.CACHE_NS_DEPENDENCIES),
                mason_path=self.config.mason_registry,
            )
        if self.config.treesitter_output:
            ctx.supplemental["treesitter"] = extract_treesitter(
                root, ctx.extras_files, ContentCache(cache_root, Constants.CACHE_NS_TREESITTER)
            )
        if self.config.extras_output:
            ctx.supplemental["extras"] = extras_metadata(ctx.extras_files)

    def write_outputs(self, ctx: PipelineContext) -> None:
        """Write the manifest, the report and the supplemental documents.

        Raises:
            OutputWriteError: A file could not be written.
        """
        write_json_atomic(self.config.output, ctx.manifest)
        logger.info("Wrote %d plugins to %s", len(ctx.plugins), self.config.output)
        if ctx.report and ctx.report.unmapped_plugins > 0 and self.config.report:
            write_text_atomic(self.config.report, format_report(ctx.report.mapping_suggestions, ctx.manifest["generated"]))
            logger.info("Generated mapping analysis report: %s", self.config.report)
        targets = {
            "dependencies": self.config.dependencies_output,
            "treesitter": self.config.treesitter_output,
            "extras": self.config.extras_output,
        }
        for key, path in targets.items():
            if key in ctx.supplemental and path:
                write_json_atomic(path, ctx.supplemental[key])
                logger.info("Wrote %s to %s", key, path)
        if ctx.report:
            log_summary(ctx.report, self.config.report)
