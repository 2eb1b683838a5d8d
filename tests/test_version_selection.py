"""Tests for tag ranking and version target selection."""

import pytest

from common.errors import ResolutionError
from constants import ConstraintKind, MappedStatus, TargetMode
from versioning.models import DeclaredConstraint, PluginSpec, RemoteRepoState, VersionInfo
from versioning.selector import determine_target, resolve_targets
from versioning.tags import parse_tag, select_latest_tag


class TestTagRanking:
    """Semantic-version ordering of tags."""

    def test_numeric_minor_comparison(self):
        tags = {"v1.2.0": "a", "v1.10.0": "b", "v1.9.5": "c"}
        assert select_latest_tag(tags) == ("v1.10.0", "b")

    def test_higher_major_prerelease_wins(self):
        assert select_latest_tag({"v1.10.0": "a", "v2.0.0-rc1": "b"}) == ("v2.0.0-rc1", "b")

    def test_prerelease_below_same_release(self):
        assert select_latest_tag({"v1.10.0": "a", "v1.10.0-rc1": "b"}) == ("v1.10.0", "a")

    def test_unparsable_tags_excluded(self):
        tags = {"stable": "a", "nightly": "b", "2024-01-01": "c", "v0.1.0": "d"}
        assert select_latest_tag(tags) == ("v0.1.0", "d")

    def test_no_parsable_tags(self):
        assert select_latest_tag({"stable": "a"}) == (None, None)
        assert select_latest_tag({}) == (None, None)

    def test_short_versions_are_padded(self):
        assert str(parse_tag("v1.2")) == "1.2.0"
        assert select_latest_tag({"v1.2": "a", "v1.1.9": "b"}) == ("v1.2", "a")

    def test_equal_versions_keep_smallest_name(self):
        assert select_latest_tag({"v1.0.0": "a", "1.0.0": "b"}) == ("1.0.0", "b")

    @pytest.mark.parametrize("tag", ["latest", "v", "1", "release-1.0"])
    def test_parse_rejects(self, tag):
        assert parse_tag(tag) is None


REMOTE = RemoteRepoState(
    head="h0",
    branches={"main": "h0", "dev": "d1"},
    tags={"v1.0.0": "t1", "v1.2.0": "t2"},
)


class TestDetermineTarget:
    """The constraint -> target table."""

    def test_branch(self):
        target = determine_target(DeclaredConstraint(ConstraintKind.BRANCH, "dev"), REMOTE)
        assert (target.mode, target.commit, target.branch) == (TargetMode.BRANCH, "d1", "dev")
        assert target.pinned_build_eligible is False

    def test_missing_branch_falls_back_to_head(self):
        target = determine_target(DeclaredConstraint(ConstraintKind.BRANCH, "gone"), REMOTE)
        assert target.commit == "h0"

    def test_commit_verbatim(self):
        target = determine_target(DeclaredConstraint(ConstraintKind.COMMIT, "abc"), REMOTE)
        assert (target.mode, target.commit, target.prefetch_rev) == (TargetMode.COMMIT, "abc", "abc")
        assert target.pinned_build_eligible is False

    def test_tag(self):
        target = determine_target(DeclaredConstraint(ConstraintKind.TAG, "v1.0.0"), REMOTE)
        assert (target.mode, target.commit, target.tag) == (TargetMode.TAG, "t1", "v1.0.0")
        assert target.pinned_build_eligible is True

    def test_missing_tag_falls_back_to_head(self):
        target = determine_target(DeclaredConstraint(ConstraintKind.TAG, "v9"), REMOTE)
        assert target.commit == "h0"

    def test_floating_false_tracks_head(self):
        target = determine_target(DeclaredConstraint(ConstraintKind.FLOATING_FALSE, False), REMOTE)
        assert (target.mode, target.commit, target.tag) == (TargetMode.HEAD, "h0", None)
        assert target.pinned_build_eligible is False

    @pytest.mark.parametrize("constraint", [DeclaredConstraint(), DeclaredConstraint(ConstraintKind.VERSION, "*")])
    def test_auto_picks_latest_tag(self, constraint):
        target = determine_target(constraint, REMOTE)
        assert (target.mode, target.commit, target.tag, target.latest_tag) == (TargetMode.AUTO, "t2", "v1.2.0", "v1.2.0")
        assert target.pinned_build_eligible is True

    def test_auto_without_tags_uses_head(self):
        target = determine_target(DeclaredConstraint(), RemoteRepoState(head="h9"))
        assert (target.mode, target.commit) == (TargetMode.HEAD, "h9")
        assert target.pinned_build_eligible is False

    def test_nothing_resolvable_is_fatal(self):
        with pytest.raises(ResolutionError):
            determine_target(DeclaredConstraint(ConstraintKind.BRANCH, "x"), RemoteRepoState(), "a/b")


def _plugin(identifier, constraint=None, status=MappedStatus.AUTO):
    owner, repo = identifier.split("/")
    spec = PluginSpec(identifier=identifier, owner=owner, repo=repo, constraint=constraint or DeclaredConstraint())
    spec.mapped_status = status
    return spec


class TestResolveTargets:
    """Targets land in version_info and drive needsSourceBuild."""

    def test_branch_always_needs_source_build(self):
        plugin = _plugin("a/b", DeclaredConstraint(ConstraintKind.BRANCH, "dev"), MappedStatus.EXPLICIT)
        resolve_targets([plugin], {"a/b": REMOTE})
        assert plugin.version_info.commit == "d1"
        assert plugin.version_info.branch == "dev"
        assert plugin.version_info.lazyvim_version == "dev"
        assert plugin.version_info.lazyvim_version_type == "branch"
        assert plugin.needs_source_build is True

    def test_floating_false_needs_source_build(self):
        plugin = _plugin("a/b", DeclaredConstraint(ConstraintKind.FLOATING_FALSE, False), MappedStatus.EXPLICIT)
        resolve_targets([plugin], {"a/b": REMOTE})
        assert plugin.version_info.lazyvim_version is False
        assert plugin.needs_source_build is True

    def test_tagged_mapped_plugin_can_use_registry(self):
        plugin = _plugin("a/b")
        resolve_targets([plugin], {"a/b": REMOTE})
        assert plugin.version_info.latest_tag == "v1.2.0"
        assert plugin.needs_source_build is False

    def test_unmapped_needs_source_build(self):
        plugin = _plugin("a/b", status=MappedStatus.UNMAPPED)
        resolve_targets([plugin], {"a/b": REMOTE})
        assert plugin.needs_source_build is True

    def test_missing_remote_state_is_fatal(self):
        with pytest.raises(ResolutionError, match="Missing remote metadata for a/b"):
            resolve_targets([_plugin("a/b")], {})


class TestVersionInfo:
    def test_dict_round_trip_ignores_unknown_keys(self):
        info = VersionInfo.from_dict({"commit": "c", "sha256": "s", "bogus": 1})
        assert info.commit == "c"
        assert list(info.to_dict())[:3] == ["lazyvim_version", "lazyvim_version_type", "commit"]

    def test_constraint_from_version_info(self):
        assert DeclaredConstraint.from_version_info("branch", "main").kind == ConstraintKind.BRANCH
        assert DeclaredConstraint.from_version_info("version", False).kind == ConstraintKind.FLOATING_FALSE
        assert DeclaredConstraint.from_version_info(None, None).kind == ConstraintKind.NONE
