"""Tests for Directory.Packages.props generation and version stripping."""

import xml.etree.ElementTree as ET
from unittest.mock import MagicMock

import pytest

from sdkmigrate.core.models import PackageReference, VersionConflict
from sdkmigrate.core.packaging.cpm import (
    PROPS_FILE_NAME,
    CentralPackageManagementGenerator,
    ExistingCpm,
    ExistingCpmDetector,
    PackageCategory,
    classify_package,
    strip_versions,
)


# ── Fixtures ──────────────────────────────────────────────────────────────


def _conflict(package_id: str, version: str) -> VersionConflict:
    return VersionConflict(
        package_id=package_id,
        requested_versions=[version],
        resolved_version=version,
        strategy_used="UseHighest",
    )


@pytest.fixture
def conflicts():
    return {
        "Newtonsoft.Json": _conflict("Newtonsoft.Json", "13.0.3"),
        "StyleCop.Analyzers": _conflict("StyleCop.Analyzers", "1.1.118"),
        "xunit": _conflict("xunit", "2.6.2"),
        "Microsoft.Extensions.Logging": _conflict("Microsoft.Extensions.Logging", "8.0.0"),
    }


def _no_existing():
    detector = MagicMock(spec=ExistingCpmDetector)
    detector.detect.return_value = None
    return detector


# ── Tests: Classification ────────────────────────────────────────────────


class TestClassifyPackage:
    """Category buckets used to group the props file."""

    @pytest.mark.parametrize("package_id, category", [
        ("StyleCop.Analyzers", PackageCategory.ANALYZER),
        ("Contoso.Rules.Analyzers", PackageCategory.ANALYZER),
        ("Microsoft.SourceLink.GitHub", PackageCategory.BUILD_TOOL),
        ("Nerdbank.GitVersioning", PackageCategory.BUILD_TOOL),
        ("xunit.runner.visualstudio", PackageCategory.TESTING),
        ("Moq", PackageCategory.TESTING),
        ("System.Text.Json", PackageCategory.MICROSOFT_RUNTIME),
        ("Serilog.Sinks.Console", PackageCategory.RUNTIME),
        ("Humanizer", PackageCategory.THIRD_PARTY_RUNTIME),
    ])
    def test_categories(self, package_id, category):
        assert classify_package(package_id) == category

    def test_private_assets_all_is_development_only(self):
        category = classify_package("Contoso.Design", {"PrivateAssets": "All"})
        assert category == PackageCategory.DEVELOPMENT_ONLY


# ── Tests: Tree ──────────────────────────────────────────────────────────


class TestBuildTree:
    """Layout of the generated props file."""

    def test_property_group(self):
        root = CentralPackageManagementGenerator.build_tree({"Humanizer": "2.14.1"})

        group = root.find("PropertyGroup")
        assert group.findtext("ManagePackageVersionsCentrally") == "true"
        assert group.findtext("CentralPackageTransitivePinningEnabled") == "true"

    def test_groups_in_category_order(self):
        versions = {
            "StyleCop.Analyzers": "1.1.118",
            "Humanizer": "2.14.1",
            "Microsoft.Extensions.Logging": "8.0.0",
            "Newtonsoft.Json": "13.0.3",
        }
        root = CentralPackageManagementGenerator.build_tree(versions)

        groups = root.findall("ItemGroup")
        assert [g[0].get("Include") for g in groups] == [
            "Microsoft.Extensions.Logging",
            "Newtonsoft.Json",
            "Humanizer",
            "StyleCop.Analyzers",
        ]

    def test_analyzers_are_global_references(self):
        root = CentralPackageManagementGenerator.build_tree(
            {"StyleCop.Analyzers": "1.1.118", "Dapper": "2.1.28"}
        )

        assert root.find(".//GlobalPackageReference").get("Include") == "StyleCop.Analyzers"
        versions = {p.get("Include"): p.get("Version") for p in root.iter("PackageVersion")}
        assert versions == {"Dapper": "2.1.28"}

    def test_ids_sorted_case_insensitively(self):
        root = CentralPackageManagementGenerator.build_tree(
            {"zeta.Lib": "1.0.0", "Alpha.Lib": "1.0.0", "beta.Lib": "1.0.0"}
        )

        ids = [p.get("Include") for p in root.iter("PackageVersion")]
        assert ids == ["Alpha.Lib", "beta.Lib", "zeta.Lib"]


# ── Tests: Generation ────────────────────────────────────────────────────


class TestGenerate:
    """Dry-run and write paths, existing props merge."""

    def test_dry_run_does_not_write(self, tmp_path, conflicts):
        generator = CentralPackageManagementGenerator(detector=_no_existing())
        result = generator.generate(str(tmp_path), conflicts, dry_run=True)

        assert result.written is False
        assert result.package_count == 4
        assert result.path == str(tmp_path / PROPS_FILE_NAME)
        assert not (tmp_path / PROPS_FILE_NAME).exists()
        assert "<ManagePackageVersionsCentrally>true</ManagePackageVersionsCentrally>" in result.xml

    def test_writes_props_file(self, tmp_path, conflicts):
        generator = CentralPackageManagementGenerator(detector=_no_existing())
        result = generator.generate(str(tmp_path), conflicts)

        assert result.written is True
        root = ET.parse(str(tmp_path / PROPS_FILE_NAME)).getroot()
        versions = {p.get("Include"): p.get("Version") for p in root.iter("PackageVersion")}
        assert versions["Newtonsoft.Json"] == "13.0.3"
        assert versions["xunit"] == "2.6.2"

    def test_package_metadata_drives_category(self, tmp_path):
        conflicts = {"Contoso.Design": _conflict("Contoso.Design", "1.0.0")}
        packages = [PackageReference(
            package_id="Contoso.Design", version="1.0.0", metadata={"PrivateAssets": "all"}
        )]
        generator = CentralPackageManagementGenerator(detector=_no_existing())
        result = generator.generate(str(tmp_path), conflicts, packages, dry_run=True)

        assert "Development and Design-Time Packages" in result.xml

    def test_merges_existing_props(self, tmp_path, conflicts):
        (tmp_path / PROPS_FILE_NAME).write_text(
            "<Project><ItemGroup>"
            '<PackageVersion Include="Newtonsoft.Json" Version="13.0.1" />'
            '<PackageVersion Include="Polly" Version="8.2.0" />'
            "</ItemGroup></Project>"
        )
        result = CentralPackageManagementGenerator().generate(str(tmp_path), conflicts, dry_run=True)

        root = ET.fromstring(result.xml)
        versions = {p.get("Include"): p.get("Version") for p in root.iter("PackageVersion")}
        assert versions["Polly"] == "8.2.0"
        assert versions["Newtonsoft.Json"] == "13.0.3"
        assert result.package_count == 5

    def test_existing_props_handed_to_before_write(self, tmp_path, conflicts):
        path = tmp_path / PROPS_FILE_NAME
        path.write_text(
            '<Project><ItemGroup><PackageVersion Include="Polly" Version="8.2.0" /></ItemGroup></Project>'
        )
        seen = []

        def before_write(target):
            seen.append((target, path.read_text()))

        result = CentralPackageManagementGenerator().generate(
            str(tmp_path), conflicts, before_write=before_write
        )

        assert seen == [(str(path), '<Project><ItemGroup><PackageVersion Include="Polly" Version="8.2.0" /></ItemGroup></Project>')]
        assert result.written is True
        assert 'Include="Polly"' in path.read_text(encoding="utf-8")

    def test_before_write_skipped_without_props_or_in_dry_run(self, tmp_path, conflicts):
        before_write = MagicMock()
        generator = CentralPackageManagementGenerator(detector=_no_existing())

        generator.generate(str(tmp_path), conflicts, before_write=before_write)
        generator.generate(str(tmp_path), conflicts, dry_run=True, before_write=before_write)

        before_write.assert_not_called()


# ── Tests: Existing props ────────────────────────────────────────────────


class TestExistingCpmDetector:
    """Lookup walks up from the project directory."""

    def test_detects_in_parent(self, tmp_path):
        (tmp_path / PROPS_FILE_NAME).write_text(
            '<Project xmlns="http://schemas.microsoft.com/developer/msbuild/2003"><ItemGroup>'
            '<PackageVersion Include="Dapper" Version="2.1.28" />'
            '<GlobalPackageReference Include="StyleCop.Analyzers" Version="1.1.118" />'
            "</ItemGroup></Project>"
        )
        nested = tmp_path / "src" / "App"
        nested.mkdir(parents=True)

        existing = ExistingCpmDetector().detect(str(nested))

        assert isinstance(existing, ExistingCpm)
        assert existing.versions == {"Dapper": "2.1.28"}
        assert existing.global_references == {"StyleCop.Analyzers": "1.1.118"}

    def test_unreadable_props_is_ignored(self, tmp_path):
        path = tmp_path / PROPS_FILE_NAME
        path.write_text("<Project>")
        assert ExistingCpmDetector().read(str(path)) is None


# ── Tests: Version stripping ─────────────────────────────────────────────


class TestStripVersions:
    """Regex-based attribute removal that leaves formatting alone."""

    def test_removes_version_attribute(self):
        xml = (
            '<Project Sdk="Microsoft.NET.Sdk">\n'
            "  <ItemGroup>\n"
            '    <PackageReference Include="Serilog" Version="3.1.1" />\n'
            "    <PackageReference Include='Polly' Version='8.2.0'>\n"
            "      <PrivateAssets>all</PrivateAssets>\n"
            "    </PackageReference>\n"
            "  </ItemGroup>\n"
            "</Project>\n"
        )
        stripped = strip_versions(xml)

        assert '<PackageReference Include="Serilog" />' in stripped
        assert "<PackageReference Include='Polly'>" in stripped
        assert "      <PrivateAssets>all</PrivateAssets>\n" in stripped

    def test_keeps_version_override(self):
        xml = '<PackageReference Include="Serilog" VersionOverride="2.12.0" />'
        assert strip_versions(xml) == xml

    def test_other_elements_untouched(self):
        xml = '<PackageVersion Include="Serilog" Version="3.1.1" />'
        assert strip_versions(xml) == xml
