"""Tests for cross-project package version conflict resolution."""

from unittest.mock import MagicMock

import pytest

from sdkmigrate.core.errors import PackageSourceError
from sdkmigrate.core.models import PackageReference, VersionConflict
from sdkmigrate.core.packaging import (
    PackageVersionConflictResolver,
    ResolutionOptions,
    ResolutionStrategy,
    merge_with_existing,
)
from sdkmigrate.core.references import PackageSource


# ── Fixtures ──────────────────────────────────────────────────────────────


def _resolve(versions, strategy=ResolutionStrategy.USE_HIGHEST, **kwargs):
    return PackageVersionConflictResolver(kwargs.pop("source", None)).resolve(
        "Foo", versions, strategy=strategy, **kwargs
    )


# ── Tests: Strategies ────────────────────────────────────────────────────


class TestStrategies:
    """Each selectable strategy."""

    def test_use_highest_lists_every_request(self):
        conflict = _resolve(["1.0.0", "2.1.0", "2.0.5"])

        assert conflict.resolved_version == "2.1.0"
        assert conflict.requested_versions == ["1.0.0", "2.1.0", "2.0.5"]
        assert conflict.strategy_used == "UseHighest"
        assert conflict.has_conflict

    def test_every_discarded_version_is_reported(self):
        conflict = _resolve(
            ["1.0.0", "2.1.0", "2.0.5"],
            requesters={"1.0.0": ["/src/A/A.csproj"], "2.0.5": ["/src/B/B.csproj"]},
        )

        assert "Discarded Foo 1.0.0 requested by A.csproj" in conflict.warnings
        assert "Discarded Foo 2.0.5 requested by B.csproj" in conflict.warnings
        assert any(w.startswith("Major version spread for Foo: 1, 2") for w in conflict.warnings)

    def test_single_version_has_no_warnings(self):
        conflict = _resolve(["1.0.0", "1.0.0"])

        assert not conflict.has_conflict
        assert conflict.warnings == []

    def test_use_lowest(self):
        assert _resolve(["1.0.0", "2.1.0"], ResolutionStrategy.USE_LOWEST).resolved_version == "1.0.0"

    def test_latest_stable_skips_prerelease(self):
        conflict = _resolve(["2.0.0", "3.0.0-beta1"], ResolutionStrategy.USE_LATEST_STABLE)
        assert conflict.resolved_version == "2.0.0"

    def test_only_prerelease_candidates(self):
        conflict = _resolve(["3.0.0-beta1", "3.0.0-beta2"], ResolutionStrategy.USE_LATEST_STABLE)
        assert conflict.resolved_version == "3.0.0-beta2"

    def test_most_common_breaks_ties_by_highest(self):
        versions = ["1.0.0", "1.0.0", "2.0.0", "3.0.0", "3.0.0"]
        conflict = _resolve(versions, ResolutionStrategy.USE_MOST_COMMON)
        assert conflict.resolved_version == "3.0.0"

    def test_semantic_compatible_keeps_majority_major(self):
        versions = ["1.2.0", "1.4.0", "1.4.0", "2.0.0"]
        conflict = _resolve(versions, ResolutionStrategy.SEMANTIC_COMPATIBLE)

        assert conflict.resolved_version == "1.4.0"
        assert any("kept major version 1" in w for w in conflict.warnings)

    def test_framework_compatible_prefers_version_supporting_all(self):
        source = MagicMock(spec=PackageSource)
        source.is_compatible.side_effect = lambda pid, version, tfm: version == "1.5.0"

        conflict = _resolve(
            ["1.5.0", "2.0.0"],
            ResolutionStrategy.FRAMEWORK_COMPATIBLE,
            target_frameworks=["net472", "net8.0"],
            source=source,
        )

        assert conflict.resolved_version == "1.5.0"
        assert conflict.target_frameworks == ["net472", "net8.0"]

    def test_framework_compatible_falls_back_with_warning(self):
        source = MagicMock(spec=PackageSource)
        source.is_compatible.return_value = False

        conflict = _resolve(
            ["1.5.0", "2.0.0"],
            ResolutionStrategy.FRAMEWORK_COMPATIBLE,
            target_frameworks=["net472"],
            source=source,
        )

        assert conflict.resolved_version == "2.0.0"
        assert any("using highest (2.0.0)" in w for w in conflict.warnings)

    def test_override_wins(self):
        options = ResolutionOptions(package_overrides={"foo": "9.9.9"})
        conflict = _resolve(["1.0.0", "2.0.0"], options=options)

        assert conflict.resolved_version == "9.9.9"
        assert conflict.strategy_used == "Override"

    def test_wildcards_are_not_candidates(self):
        conflict = _resolve(["*", "1.2.0"])

        assert conflict.requested_versions == ["1.2.0"]
        assert conflict.resolved_version == "1.2.0"

    def test_only_wildcards_use_latest_from_source(self):
        source = MagicMock(spec=PackageSource)
        source.get_latest_version.return_value = "4.0.0"
        assert _resolve(["*"], source=source).resolved_version == "4.0.0"

    def test_latest_lookup_failure_keeps_wildcard(self):
        source = MagicMock(spec=PackageSource)
        source.get_latest_version.side_effect = PackageSourceError("offline")

        conflict = _resolve(["*"], source=source)

        assert conflict.resolved_version == "*"
        assert "offline" in conflict.warnings[0]

    @pytest.mark.parametrize("text", ["UseHighest", "usehighest", "use_highest", "USE-HIGHEST"])
    def test_strategy_parse(self, text):
        assert ResolutionStrategy.parse(text) == ResolutionStrategy.USE_HIGHEST

    def test_strategy_parse_rejects_unknown(self):
        with pytest.raises(ValueError):
            ResolutionStrategy.parse("Newest")


# ── Tests: Batch ─────────────────────────────────────────────────────────


class TestResolveAll:
    """Resolution across every migrated project."""

    def test_groups_by_case_insensitive_id(self):
        packages = {
            "/src/A/A.csproj": [PackageReference("Newtonsoft.Json", "12.0.3")],
            "/src/B/B.csproj": [PackageReference("newtonsoft.json", "13.0.1")],
        }
        results = PackageVersionConflictResolver().resolve_all(packages)

        assert list(results) == ["Newtonsoft.Json"]
        conflict = results["Newtonsoft.Json"]
        assert conflict.resolved_version == "13.0.1"
        assert conflict.requesters["12.0.3"] == ["/src/A/A.csproj"]

    def test_transitive_packages_take_no_part(self):
        packages = {
            "/src/A/A.csproj": [PackageReference("System.Memory", "4.5.5", is_transitive=True)],
        }
        assert PackageVersionConflictResolver().resolve_all(packages) == {}

    def test_existing_central_versions_take_part(self):
        packages = {
            "/src/A/A.csproj": [PackageReference("Newtonsoft.Json", "12.0.3")],
            "/src/B/B.csproj": [PackageReference("Newtonsoft.Json", "13.0.1")],
        }
        results = PackageVersionConflictResolver().resolve_all(
            packages,
            existing={"newtonsoft.json": "13.0.3", "Polly": "8.2.0"},
            existing_path="/src/Directory.Packages.props",
        )

        assert list(results) == ["Newtonsoft.Json"]
        conflict = results["Newtonsoft.Json"]
        assert conflict.resolved_version == "13.0.3"
        assert conflict.strategy_used == "ExistingCentral"
        assert conflict.requested_versions == ["12.0.3", "13.0.1", "13.0.3"]
        assert conflict.requesters["13.0.3"] == ["/src/Directory.Packages.props"]
        assert "Discarded Newtonsoft.Json 13.0.1 requested by B.csproj" in conflict.warnings


class TestExistingVersion:
    """A version already declared centrally on disk."""

    PROPS = "/src/Directory.Packages.props"

    def test_higher_existing_version_wins(self):
        conflict = _resolve(["1.0.0", "2.0.0"], existing_version="2.5.0", existing_path=self.PROPS)

        assert conflict.resolved_version == "2.5.0"
        assert conflict.strategy_used == "ExistingCentral"
        assert "Kept existing Foo 2.5.0 (higher than resolved 2.0.0)" in conflict.warnings
        assert "Discarded Foo 2.0.0" in conflict.warnings

    def test_lower_existing_version_is_listed_and_discarded(self):
        conflict = _resolve(["2.0.0"], existing_version="1.5.0", existing_path=self.PROPS)

        assert conflict.resolved_version == "2.0.0"
        assert conflict.strategy_used == "UseHighest"
        assert conflict.requested_versions == ["2.0.0", "1.5.0"]
        assert conflict.has_conflict
        assert "Updated existing Foo from 1.5.0 to 2.0.0" in conflict.warnings
        assert "Discarded Foo 1.5.0 requested by Directory.Packages.props" in conflict.warnings

    def test_matching_existing_version_is_not_a_conflict(self):
        conflict = _resolve(["2.0.0"], existing_version="2.0.0", existing_path=self.PROPS)

        assert not conflict.has_conflict
        assert conflict.warnings == []
        assert conflict.requesters == {"2.0.0": [self.PROPS]}

    def test_override_ignores_existing_version(self):
        options = ResolutionOptions(package_overrides={"Foo": "9.9.9"})
        conflict = _resolve(["1.0.0"], options=options, existing_version="3.0.0")

        assert conflict.resolved_version == "9.9.9"
        assert conflict.strategy_used == "Override"
        assert "3.0.0" in conflict.requested_versions


# ── Tests: Existing central versions ─────────────────────────────────────


class TestMergeWithExisting:
    """Pre-existing Directory.Packages.props declarations."""

    def _resolved(self, package_id, version):
        return {package_id: VersionConflict(package_id, [version], version, "UseHighest")}

    def test_existing_higher_version_wins(self):
        versions, warnings = merge_with_existing(
            self._resolved("Serilog", "2.10.0"), {"serilog": "3.1.1"}
        )
        assert versions == {"Serilog": "3.1.1"}
        assert warnings == ["Kept existing Serilog 3.1.1 (higher than resolved 2.10.0)"]

    def test_existing_lower_version_is_updated(self):
        versions, warnings = merge_with_existing(
            self._resolved("Serilog", "3.1.1"), {"Serilog": "2.10.0"}
        )
        assert versions == {"Serilog": "3.1.1"}
        assert warnings == ["Updated existing Serilog from 2.10.0 to 3.1.1"]

    def test_existing_only_packages_are_kept(self):
        versions, warnings = merge_with_existing(self._resolved("Serilog", "3.1.1"), {"Polly": "8.2.1"})

        assert versions == {"Serilog": "3.1.1", "Polly": "8.2.1"}
        assert warnings == []
