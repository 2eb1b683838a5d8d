"""Data models for plugin discovery, version resolution and fetching."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from constants import ConstraintKind, MappedStatus, TargetMode

# lazyvim_version_type recorded in the manifest per constraint kind
_VERSION_TYPES = {
    ConstraintKind.BRANCH: "branch",
    ConstraintKind.COMMIT: "commit",
    ConstraintKind.TAG: "tag",
    ConstraintKind.VERSION: "version",
    ConstraintKind.FLOATING_FALSE: "version",
}


@dataclass(frozen=True)
class DeclaredConstraint:
    """Version constraint exactly as declared; ``value`` is False for version=false."""
    kind: ConstraintKind = ConstraintKind.NONE
    value: Any = None

    @property
    def version_type(self) -> Optional[str]:
        return _VERSION_TYPES.get(self.kind)

    @property
    def declared_value(self) -> Any:
        if self.kind == ConstraintKind.FLOATING_FALSE:
            return False
        return self.value

    @property
    def is_floating(self) -> bool:
        return self.kind in (ConstraintKind.NONE, ConstraintKind.VERSION)

    @classmethod
    def from_version_info(cls, version_type: Optional[str], value: Any) -> "DeclaredConstraint":
        """Rebuild a constraint from manifest ``lazyvim_version(_type)`` fields."""
        if version_type == "branch" and value:
            return cls(ConstraintKind.BRANCH, value)
        if version_type == "commit" and value:
            return cls(ConstraintKind.COMMIT, value)
        if version_type == "tag" and value:
            return cls(ConstraintKind.TAG, value)
        if value is False:
            return cls(ConstraintKind.FLOATING_FALSE, False)
        if version_type == "version":
            return cls(ConstraintKind.VERSION, value)
        return cls()


@dataclass
class MultiModuleMapping:
    """One registry package exposing several logical sub-plugins."""
    base_package: str
    module: str
    repository: str

    def to_dict(self) -> Dict[str, str]:
        return {"basePackage": self.base_package, "module": self.module, "repository": self.repository}


@dataclass
class VersionInfo:
    """Mutable resolution state; every field is None until resolved."""
    lazyvim_version: Any = None
    lazyvim_version_type: Optional[str] = None
    commit: Optional[str] = None
    branch: Optional[str] = None
    tag: Optional[str] = None
    latest_tag: Optional[str] = None
    sha256: Optional[str] = None
    fetched_at: Optional[str] = None
    nixpkgs_version: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lazyvim_version": self.lazyvim_version,
            "lazyvim_version_type": self.lazyvim_version_type,
            "commit": self.commit,
            "branch": self.branch,
            "tag": self.tag,
            "latest_tag": self.latest_tag,
            "sha256": self.sha256,
            "fetched_at": self.fetched_at,
            "nixpkgs_version": self.nixpkgs_version,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "VersionInfo":
        data = data or {}
        known = cls.__dataclass_fields__  # type: ignore[attr-defined]
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class RemoteRepoState:
    """Authoritative ref state of one remote repository."""
    head: Optional[str] = None
    branches: Dict[str, str] = field(default_factory=dict)
    tags: Dict[str, str] = field(default_factory=dict)


@dataclass
class FetchTarget:
    """Selected target for one plugin; ``prefetch_rev`` is what gets fetched."""
    mode: TargetMode
    commit: Optional[str] = None
    branch: Optional[str] = None
    tag: Optional[str] = None
    latest_tag: Optional[str] = None
    prefetch_rev: Optional[str] = None
    pinned_build_eligible: bool = False


@dataclass
class PluginSpec:
    """One discovered plugin, enriched in place through the pipeline."""
    identifier: str  # canonical owner/repo
    owner: str
    repo: str
    constraint: DeclaredConstraint = field(default_factory=DeclaredConstraint)
    dependencies: List[str] = field(default_factory=list)
    source_file: str = "table_spec"
    is_core: bool = False
    user_plugin: bool = False
    multi_module: Optional[MultiModuleMapping] = None
    version_info: VersionInfo = field(default_factory=VersionInfo)
    load_order: Optional[int] = None
    mapped_status: MappedStatus = MappedStatus.UNMAPPED
    registry_name: Optional[str] = None  # explicit mapping or heuristic candidate
    target: Optional[FetchTarget] = None
    # lazy-loading metadata, plain data only
    event: Any = None
    cmd: Any = None
    ft: Any = None
    enabled: Optional[bool] = None
    lazy: Optional[bool] = None
    priority: Optional[int] = None

    def __post_init__(self) -> None:
        if self.version_info.lazyvim_version_type is None:
            self.version_info.lazyvim_version = self.constraint.declared_value
            self.version_info.lazyvim_version_type = self.constraint.version_type

    @property
    def name(self) -> str:
        return self.identifier

    @property
    def repo_key(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def needs_source_build(self) -> bool:
        """True unless a registry build exists and the target allows using it."""
        if self.target is None or not self.target.pinned_build_eligible:
            return True
        return self.mapped_status == MappedStatus.UNMAPPED
