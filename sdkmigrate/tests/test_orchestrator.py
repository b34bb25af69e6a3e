"""Tests for batch migration of a directory tree.

These run the real pipeline against small project trees on disk with the
offline package source.
"""

import os
import threading
import xml.etree.ElementTree as ET
from unittest.mock import MagicMock

import pytest

from sdkmigrate.core.config import MigrationOptions
from sdkmigrate.core.errors import ConfigurationError, LockAcquisitionError, PreflightError
from sdkmigrate.core.migrator import ItemAndPropertyMigrator
from sdkmigrate.core.models import BatchState, ProjectState
from sdkmigrate.core.orchestrator import MigrationOrchestrator
from sdkmigrate.core.orchestrator.backup import BACKUP_DIR_PREFIX, MANIFEST_FILE_NAME
from sdkmigrate.core.orchestrator.lock import LOCK_FILE_NAME, LockService
from sdkmigrate.core.orchestrator.orchestrator import SKIP_ALREADY_SDK
from sdkmigrate.core.packaging.cpm import PROPS_FILE_NAME
from sdkmigrate.core.references import OfflinePackageSource


# ── Fixtures ──────────────────────────────────────────────────────────────


LEGACY = """<?xml version="1.0" encoding="utf-8"?>
<Project ToolsVersion="15.0" xmlns="http://schemas.microsoft.com/developer/msbuild/2003">
  <PropertyGroup>
    <ProjectGuid>{{5D3A1C7E-0000-4000-8000-000000000001}}</ProjectGuid>
    <OutputType>Library</OutputType>
    <AssemblyName>{name}</AssemblyName>
    <TargetFrameworkVersion>v4.7.2</TargetFrameworkVersion>
  </PropertyGroup>
  <ItemGroup>
    <Reference Include="System" />
    <Reference Include="System.Xml" />
  </ItemGroup>
  <ItemGroup>
    <Compile Include="Class1.cs" />
  </ItemGroup>
  {extra}
  <Import Project="$(MSBuildToolsPath)\\Microsoft.CSharp.targets" />
</Project>
"""

SDK_STYLE = """<Project Sdk="Microsoft.NET.Sdk">
  <PropertyGroup>
    <TargetFramework>net8.0</TargetFramework>
  </PropertyGroup>
  <ItemGroup>
    <PackageReference Include="Serilog" Version="3.1.1" />
  </ItemGroup>
</Project>
"""

PACKAGES_CONFIG = """<?xml version="1.0" encoding="utf-8"?>
<packages>
  <package id="Newtonsoft.Json" version="{version}" targetFramework="net472" />
</packages>
"""


def _write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def _legacy(root, name, newtonsoft=None, extra=""):
    project = _write(root / name / f"{name}.csproj", LEGACY.format(name=name, extra=extra))
    _write(root / name / "Class1.cs", "class Class1 { }")
    if newtonsoft:
        _write(root / name / "packages.config", PACKAGES_CONFIG.format(version=newtonsoft))
    return project


@pytest.fixture
def tree(tmp_path):
    """App and Lib (legacy), Modern (SDK-style), Schema (database)."""
    _legacy(tmp_path, "App", newtonsoft="12.0.3")
    _legacy(tmp_path, "Lib", newtonsoft="13.0.1")
    _write(tmp_path / "Modern" / "Modern.csproj", SDK_STYLE)
    _write(tmp_path / "Db" / "Schema.sqlproj", LEGACY.format(name="Schema", extra=""))
    return tmp_path


def _orchestrator(**options) -> MigrationOrchestrator:
    return MigrationOrchestrator(MigrationOptions(**options), source=OfflinePackageSource())


def _snapshot(root):
    return {
        str(p.relative_to(root)): p.read_bytes()
        for p in root.rglob("*") if p.is_file()
    }


def _by_name(report):
    return {os.path.basename(r.project_path): r for r in report.results}


# ── Tests: Scanning ──────────────────────────────────────────────────────


class TestScan:
    """Project discovery."""

    def test_finds_projects_and_skips_build_folders(self, tree):
        _write(tree / "App" / "bin" / "Debug" / "Copy.csproj", SDK_STYLE)
        _write(tree / "packages" / "Some.Package" / "Tool.csproj", SDK_STYLE)
        _write(tree / "App" / "App.legacy.csproj", SDK_STYLE)
        _write(tree / f"{BACKUP_DIR_PREFIX}20240101_000000" / "App.csproj", SDK_STYLE)
        _write(tree / "App" / "readme.txt", "x")

        paths = _orchestrator().scan(str(tree))

        assert [os.path.relpath(p, tree) for p in paths] == [
            os.path.join("App", "App.csproj"),
            os.path.join("Db", "Schema.sqlproj"),
            os.path.join("Lib", "Lib.csproj"),
            os.path.join("Modern", "Modern.csproj"),
        ]

    def test_skips_output_directory(self, tree):
        _write(tree / "out" / "App" / "App.csproj", SDK_STYLE)
        paths = _orchestrator(output_directory=str(tree / "out")).scan(str(tree))
        assert not any(os.sep + "out" + os.sep in p for p in paths)


# ── Tests: Single project ────────────────────────────────────────────────


class TestMigrateProject:
    """Per-project state transitions."""

    def test_already_sdk_style_is_skipped(self, tree):
        result = _orchestrator().migrate_project(str(tree / "Modern" / "Modern.csproj"))

        assert result.state == ProjectState.SKIPPED
        assert result.skip_reason == SKIP_ALREADY_SDK
        assert result.success is True

    def test_database_project_is_skipped(self, tree):
        result = _orchestrator().migrate_project(str(tree / "Db" / "Schema.sqlproj"))

        assert result.state == ProjectState.SKIPPED
        assert result.skip_reason == "database project"
        assert result.warnings == ["Project cannot be migrated: database project"]

    def test_failure_is_captured(self, tree):
        migrator = MagicMock(spec=ItemAndPropertyMigrator)
        migrator.migrate.side_effect = RuntimeError("boom")
        orchestrator = MigrationOrchestrator(
            MigrationOptions(), source=OfflinePackageSource(), migrator=migrator
        )

        result = orchestrator.migrate_project(str(tree / "App" / "App.csproj"))

        assert result.state == ProjectState.FAILED
        assert result.success is False
        assert result.errors == ["boom"]


# ── Tests: Batch ─────────────────────────────────────────────────────────


class TestDryRun:
    """Dry runs compute everything and touch nothing."""

    def test_no_files_change(self, tree):
        before = _snapshot(tree)

        report = _orchestrator(dry_run=True, enable_cpm=True).migrate_directory(str(tree))

        assert _snapshot(tree) == before
        assert report.dry_run
        assert report.total_projects_found == 4
        assert report.written == 2
        assert report.skipped == 2
        assert report.cpm_path == str(tree / PROPS_FILE_NAME)
        assert not (tree / LOCK_FILE_NAME).exists()
        assert not any(p.name.startswith(BACKUP_DIR_PREFIX) for p in tree.iterdir())

    def test_results_carry_rendered_xml(self, tree):
        report = _orchestrator(dry_run=True).migrate_directory(str(tree))

        app = _by_name(report)["App.csproj"]
        assert app.state == ProjectState.WRITTEN
        root = ET.fromstring(app.output_xml)
        assert root.get("Sdk") == "Microsoft.NET.Sdk"
        assert root.find(".//PackageReference").get("Version") == "12.0.3"

    def test_report_written_for_dry_run(self, tree, tmp_path_factory):
        report_path = tmp_path_factory.mktemp("reports") / "migration.md"

        _orchestrator(dry_run=True, report_path=str(report_path)).migrate_directory(str(tree))

        text = report_path.read_text(encoding="utf-8")
        assert "_Dry run: no files were written._" in text
        assert "**Status:** Skipped (already SDK-style)" in text


class TestInPlace:
    """In-place migration with backups."""

    def test_rewrites_projects_and_backs_up(self, tree):
        original = (tree / "App" / "App.csproj").read_bytes()

        report = _orchestrator().migrate_directory(str(tree))

        assert not report.has_failures
        migrated = (tree / "App" / "App.csproj").read_text(encoding="utf-8")
        assert migrated.startswith('<Project Sdk="Microsoft.NET.Sdk">')
        assert "<TargetFramework>net472</TargetFramework>" in migrated
        assert not (tree / "App" / "packages.config").exists()

        backups = [p for p in tree.iterdir() if p.name.startswith(BACKUP_DIR_PREFIX)]
        assert len(backups) == 1
        assert (backups[0] / "App" / "App.csproj").read_bytes() == original
        assert (backups[0] / "App" / "packages.config").exists()
        assert (backups[0] / MANIFEST_FILE_NAME).exists()
        assert not (tree / LOCK_FILE_NAME).exists()

    def test_batch_returns_to_idle_and_output_validates(self, tree):
        orchestrator = _orchestrator()
        report = orchestrator.migrate_directory(str(tree))

        assert orchestrator.state == BatchState.IDLE
        for result in report.results:
            assert not any(w.startswith("Post-migration check") for w in result.warnings)

    def test_sdk_and_database_projects_untouched(self, tree):
        modern = (tree / "Modern" / "Modern.csproj").read_bytes()
        schema = (tree / "Db" / "Schema.sqlproj").read_bytes()

        _orchestrator().migrate_directory(str(tree))

        assert (tree / "Modern" / "Modern.csproj").read_bytes() == modern
        assert (tree / "Db" / "Schema.sqlproj").read_bytes() == schema

    def test_no_backup_option(self, tree):
        _orchestrator(create_backup=False).migrate_directory(str(tree))
        assert not any(p.name.startswith(BACKUP_DIR_PREFIX) for p in tree.iterdir())

    def test_version_conflict_is_reported(self, tree):
        report = _orchestrator().migrate_directory(str(tree))

        conflicts = {c.package_id: c for c in report.version_conflicts}
        assert conflicts["Newtonsoft.Json"].resolved_version == "13.0.1"
        assert conflicts["Newtonsoft.Json"].has_conflict
        assert any("Newtonsoft.Json" in w for w in report.warnings)

    def test_parallel_results_are_sorted(self, tree):
        for name in ("Alpha", "Beta", "Gamma"):
            _legacy(tree, name)

        report = _orchestrator(max_parallelism=4).migrate_directory(str(tree))

        paths = [r.project_path for r in report.results]
        assert paths == sorted(paths)
        assert report.written == 5


class TestOutputDirectory:
    """Writing to a separate output tree."""

    def test_mirrors_layout_and_keeps_originals(self, tree):
        out = tree / "migrated"
        original = (tree / "Lib" / "Lib.csproj").read_bytes()

        report = _orchestrator(output_directory=str(out)).migrate_directory(str(tree))

        assert (out / "Lib" / "Lib.csproj").read_text(encoding="utf-8").startswith("<Project Sdk=")
        assert (tree / "Lib" / "Lib.csproj").read_bytes() == original
        assert (tree / "Lib" / "packages.config").exists()
        assert _by_name(report)["Lib.csproj"].output_path == str(out / "Lib" / "Lib.csproj")


class TestCentralPackageManagement:
    """Directory.Packages.props generation across the batch."""

    def test_generates_props_and_strips_versions(self, tree):
        report = _orchestrator(enable_cpm=True).migrate_directory(str(tree))

        props = ET.parse(str(tree / PROPS_FILE_NAME)).getroot()
        versions = {p.get("Include"): p.get("Version") for p in props.iter("PackageVersion")}
        assert versions == {"Newtonsoft.Json": "13.0.1", "Serilog": "3.1.1"}
        assert report.cpm_path == str(tree / PROPS_FILE_NAME)

        app = ET.parse(str(tree / "App" / "App.csproj")).getroot()
        assert app.find(".//PackageReference").get("Version") is None

        modern = (tree / "Modern" / "Modern.csproj").read_text(encoding="utf-8")
        assert '<PackageReference Include="Serilog" />' in modern
        assert "<TargetFramework>net8.0</TargetFramework>" in modern

    def test_existing_props_are_merged_and_backed_up(self, tree):
        existing = (
            "<Project>\n"
            "  <ItemGroup>\n"
            '    <PackageVersion Include="Newtonsoft.Json" Version="13.0.3" />\n'
            '    <PackageVersion Include="Polly" Version="8.2.0" />\n'
            "  </ItemGroup>\n"
            "</Project>\n"
        )
        props_path = _write(tree / PROPS_FILE_NAME, existing)

        report = _orchestrator(enable_cpm=True).migrate_directory(str(tree))

        props = ET.parse(str(props_path)).getroot()
        versions = {p.get("Include"): p.get("Version") for p in props.iter("PackageVersion")}
        assert versions == {"Newtonsoft.Json": "13.0.3", "Polly": "8.2.0", "Serilog": "3.1.1"}

        conflict = {c.package_id: c for c in report.version_conflicts}["Newtonsoft.Json"]
        assert conflict.resolved_version == "13.0.3"
        assert "13.0.3" in conflict.requested_versions
        assert conflict.requesters["13.0.3"] == [str(props_path)]
        assert "Kept existing Newtonsoft.Json 13.0.3 (higher than resolved 13.0.1)" in report.warnings

        backups = [p for p in tree.iterdir() if p.name.startswith(BACKUP_DIR_PREFIX)]
        assert (backups[0] / PROPS_FILE_NAME).read_text(encoding="utf-8") == existing


class TestBatchFailures:
    """Conditions that fail one project or the whole run."""

    def test_broken_project_does_not_stop_batch_when_forced(self, tree):
        _write(tree / "Broken" / "Broken.csproj", "<Project><PropertyGroup>")

        report = _orchestrator(force=True).migrate_directory(str(tree))

        results = _by_name(report)
        assert results["Broken.csproj"].state == ProjectState.FAILED
        assert results["App.csproj"].state == ProjectState.WRITTEN
        assert report.has_failures
        assert any(w.startswith("Ignored blocking issue: Broken.csproj") for w in report.warnings)

    def test_preflight_blocks_before_writing(self, tree):
        _legacy(
            tree, "Web",
            extra='<ItemGroup><ProjectReference Include="..\\Missing\\Missing.csproj" /></ItemGroup>',
        )
        before = _snapshot(tree)

        with pytest.raises(PreflightError) as excinfo:
            _orchestrator().migrate_directory(str(tree))

        assert excinfo.value.issues == [
            "Web.csproj: referenced project not found: ..\\Missing\\Missing.csproj"
        ]
        assert _snapshot(tree) == before

    def test_live_lock_aborts(self, tree):
        holder = LockService(str(tree))
        holder.acquire()
        try:
            with pytest.raises(LockAcquisitionError):
                _orchestrator().migrate_directory(str(tree))
            assert (tree / LOCK_FILE_NAME).exists()
        finally:
            holder.release()

    def test_missing_root(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Directory not found"):
            _orchestrator().migrate_directory(str(tmp_path / "nope"))

    def test_cancellation_before_start(self, tree):
        cancel = threading.Event()
        cancel.set()

        report = _orchestrator(dry_run=True).migrate_directory(str(tree), cancel)

        assert report.results == []

    def test_cancellation_mid_run_stops_remaining_projects(self, tree):
        cancel = threading.Event()
        orchestrator = _orchestrator(dry_run=True, max_parallelism=1)
        migrate_project = orchestrator.migrate_project
        started = []

        def first_project_cancels(path):
            started.append(path)
            cancel.set()
            return migrate_project(path)

        orchestrator.migrate_project = first_project_cancels
        report = orchestrator.migrate_directory(str(tree), cancel)

        assert len(started) == 1
        assert report.cancelled
        assert [r.project_path for r in report.results] == started
        assert orchestrator.state == BatchState.IDLE
