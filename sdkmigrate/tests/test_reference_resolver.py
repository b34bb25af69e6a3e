"""Tests for assembly reference -> package resolution."""

from unittest.mock import MagicMock

from sdkmigrate.core.errors import PackageSourceError
from sdkmigrate.core.models import Item, PackageReference
from sdkmigrate.core.references import (
    AssemblyReferenceResolver,
    OfflinePackageSource,
    PackageCandidate,
    PackageSource,
    ResolutionCache,
)
from sdkmigrate.core.references.resolver import (
    REASON_FRAMEWORK_REFERENCE,
    REASON_NOT_FOUND,
    REASON_TOKEN_MISMATCH,
)


# ── Fixtures ──────────────────────────────────────────────────────────────

NEWTONSOFT_HINT = "..\\packages\\Newtonsoft.Json.12.0.3\\lib\\net45\\Newtonsoft.Json.dll"


def _reference(include: str, hint_path: str = None, **metadata) -> Item:
    if hint_path:
        metadata["HintPath"] = hint_path
    return Item("Reference", include, metadata=metadata)


def _newtonsoft(token: str = "30ad4fe6b2a6aeed") -> Item:
    return _reference(
        f"Newtonsoft.Json, Version=12.0.0.0, Culture=neutral, PublicKeyToken={token}",
        NEWTONSOFT_HINT,
        Private="True",
    )


# ── Tests ────────────────────────────────────────────────────────────────


class TestHintPathResolution:
    """References carrying a HintPath into a packages folder."""

    def test_newtonsoft_version_from_package_folder(self):
        result = AssemblyReferenceResolver().resolve([_newtonsoft()], "net472")

        assert [(p.package_id, p.version) for p in result.packages] == [("Newtonsoft.Json", "12.0.3")]
        assert result.unconverted == []
        assert result.warnings == []

    def test_token_mismatch_keeps_reference(self):
        result = AssemblyReferenceResolver().resolve([_newtonsoft("deadbeefdeadbeef")], "net472")

        assert result.packages == []
        assert len(result.unconverted) == 1
        kept = result.unconverted[0]
        assert kept.reason == REASON_TOKEN_MISMATCH
        assert kept.hint_path == NEWTONSOFT_HINT
        assert kept.private is True
        assert "public key token mismatch" in result.warnings[0]

    def test_reference_covered_by_migrated_package(self):
        migrated = [PackageReference("Newtonsoft.Json", "12.0.3")]
        result = AssemblyReferenceResolver().resolve([_newtonsoft()], "net472", migrated)

        assert result.packages == []
        assert result.covered == ["Newtonsoft.Json"]

    def test_unknown_assembly_is_not_found(self):
        item = _reference("Acme.Internal", "..\\lib\\Acme.Internal.dll")
        result = AssemblyReferenceResolver().resolve([item], "net472")

        assert result.unconverted[0].reason == REASON_NOT_FOUND
        assert result.unconverted[0].include == "Acme.Internal"

    def test_default_version_fallback_is_reported(self):
        item = _reference("Dapper", "..\\lib\\Dapper.dll")
        result = AssemblyReferenceResolver().resolve([item], "net472")

        assert result.packages[0].package_id == "Dapper"
        assert result.packages[0].version == "2.1.28"
        assert "falling back to default version 2.1.28" in result.warnings[0]

    def test_duplicate_package_emitted_once(self):
        items = [_newtonsoft(), _newtonsoft()]
        result = AssemblyReferenceResolver().resolve(items, "net472")
        assert len(result.packages) == 1


class TestFrameworkReferences:
    """References without a HintPath."""

    def test_kept_for_net_framework_targets(self):
        result = AssemblyReferenceResolver().resolve([_reference("System.Data")], "net472")

        assert result.unconverted[0].reason == REASON_FRAMEWORK_REFERENCE
        assert result.builtin == []

    def test_builtin_on_modern_targets(self):
        result = AssemblyReferenceResolver().resolve([_reference("System.Data")], "net8.0")

        assert result.builtin == ["System.Data"]
        assert result.unconverted == []

    def test_framework_table_maps_to_package_on_modern_targets(self):
        item = _reference("System.Configuration.ConfigurationManager")
        result = AssemblyReferenceResolver().resolve([item], "net8.0")

        assert result.packages[0].package_id == "System.Configuration.ConfigurationManager"

    def test_non_reference_items_ignored(self):
        result = AssemblyReferenceResolver().resolve([Item("Compile", "Foo.cs")], "net472")
        assert result.packages == [] and result.unconverted == []


class TestPackageSourceInteraction:
    """Injected package source and cache."""

    def test_source_error_becomes_warning(self):
        source = MagicMock(spec=PackageSource)
        source.find_package_for_assembly.side_effect = PackageSourceError("feed down")
        item = _reference("Acme.Widgets", "..\\lib\\Acme.Widgets.dll")

        result = AssemblyReferenceResolver(source=source).resolve([item], "net472")

        assert result.unconverted[0].reason == REASON_NOT_FOUND
        assert "feed down" in result.warnings[0]

    def test_unvalidated_candidate_is_rejected(self):
        source = MagicMock(spec=PackageSource)
        source.find_package_for_assembly.return_value = PackageCandidate("Widgets", "1.0.0")
        source.get_package_assemblies.return_value = ["Something.Else"]
        item = _reference("Acme.Widgets", "..\\lib\\Acme.Widgets.dll")

        result = AssemblyReferenceResolver(source=source).resolve([item], "net472")

        assert result.packages == []
        assert result.unconverted[0].reason == "validation failed"

    def test_lookups_are_cached(self):
        source = MagicMock(wraps=OfflinePackageSource())
        cache = ResolutionCache()
        resolver = AssemblyReferenceResolver(source=source, cache=cache)

        resolver.resolve([_newtonsoft()], "net472")
        resolver.resolve([_newtonsoft()], "net472")

        assert source.find_package_for_assembly.call_count == 1
        assert cache.get_stats()["hits"] == 1


class TestBuckets:
    """Every reference lands in exactly one bucket, with its condition."""

    EF_HINT = "..\\packages\\EntityFramework.6.4.4\\lib\\net45\\{}.dll"
    EF_TOKEN = "Version=6.0.0.0, Culture=neutral, PublicKeyToken=b77a5c561934e089"

    def test_second_assembly_of_same_package_is_covered(self):
        items = [
            _reference(f"EntityFramework, {self.EF_TOKEN}", self.EF_HINT.format("EntityFramework")),
            _reference(
                f"EntityFramework.SqlServer, {self.EF_TOKEN}",
                self.EF_HINT.format("EntityFramework.SqlServer"),
            ),
        ]
        result = AssemblyReferenceResolver().resolve(items, "net472")

        assert [(p.package_id, p.version) for p in result.packages] == [("EntityFramework", "6.4.4")]
        assert result.covered == ["EntityFramework.SqlServer"]
        assert result.unconverted == []

    def test_package_carries_item_group_condition(self):
        item = _newtonsoft()
        item.group_condition = " '$(Configuration)' == 'Debug' "

        result = AssemblyReferenceResolver().resolve([item], "net472")

        assert result.packages[0].condition == "'$(Configuration)' == 'Debug'"

    def test_unconverted_reference_combines_conditions(self):
        item = _reference("Legacy.Interop", "..\\lib\\Legacy.Interop.dll")
        item.group_condition = "'$(Configuration)' == 'Debug'"
        item.condition = "Exists('..\\lib\\Legacy.Interop.dll')"

        result = AssemblyReferenceResolver().resolve([item], "net472")

        assert result.unconverted[0].reason == REASON_NOT_FOUND
        assert result.unconverted[0].condition == (
            "('$(Configuration)' == 'Debug') And (Exists('..\\lib\\Legacy.Interop.dll'))"
        )
