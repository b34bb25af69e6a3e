"""Tests for the Markdown migration report."""

from datetime import datetime, timedelta

from sdkmigrate.core.models import (
    AssemblyIdentity,
    MigrationReport,
    MigrationResult,
    PackageReference,
    ProjectState,
    SdkVariant,
    SdkVariantKind,
    UnconvertedReference,
    VersionConflict,
)
from sdkmigrate.core.orchestrator import render_report, write_report


def _report(**kwargs) -> MigrationReport:
    start = datetime(2026, 3, 2, 9, 30, 0)
    defaults = dict(
        start_time=start,
        end_time=start + timedelta(seconds=12.5),
        root_directory="/repo",
        total_projects_found=3,
    )
    defaults.update(kwargs)
    return MigrationReport(**defaults)


def _results():
    return [
        MigrationResult(
            project_path="/repo/App/App.csproj",
            output_path="/repo/App/App.csproj",
            success=True,
            state=ProjectState.WRITTEN,
            sdk_variant=SdkVariant(kind=SdkVariantKind.WEB, sdk="Microsoft.NET.Sdk.Web"),
            warnings=["Preserved custom target 'Obfuscate'. Manual review recommended."],
            migrated_packages=[PackageReference(package_id="Serilog", version="3.1.1")],
            unconverted_references=[UnconvertedReference(
                identity=AssemblyIdentity("Legacy.Interop"), reason="no package mapping"
            )],
            removed_elements=["Property ProjectGuid: legacy-only property"],
        ),
        MigrationResult(
            project_path="/repo/Db/Schema.sqlproj",
            success=True,
            state=ProjectState.SKIPPED,
            skip_reason="database project",
        ),
        MigrationResult(
            project_path="/repo/Broken/Broken.csproj",
            state=ProjectState.FAILED,
            errors=["/repo/Broken/Broken.csproj: malformed XML"],
        ),
    ]


class TestRenderReport:
    """Summary, conflicts and per-project sections."""

    def test_summary(self):
        text = render_report(_report(results=_results()))

        assert text.startswith("# SDK-style migration report\n")
        assert "- Root: `/repo`" in text
        assert "- Finished: 2026-03-02T09:30:12.500000 (12.5s)" in text
        assert "- Projects found: 3" in text
        assert "- Written: 1" in text
        assert "- Skipped: 1" in text
        assert "- Failed: 1" in text
        assert "_Dry run" not in text

    def test_dry_run_and_cancel_banners(self):
        text = render_report(_report(dry_run=True, cancelled=True))

        assert "_Dry run: no files were written._" in text
        assert "_Run was cancelled before all projects were processed._" in text

    def test_project_sections(self):
        text = render_report(_report(results=_results()))

        assert "### `/repo/App/App.csproj`" in text
        assert "**Status:** Written" in text
        assert "**SDK variant:** Web (`Microsoft.NET.Sdk.Web`)" in text
        assert "- Serilog 3.1.1" in text
        assert "- Legacy.Interop: no package mapping" in text
        assert "- Property ProjectGuid: legacy-only property" in text
        assert "**Status:** Skipped (database project)" in text
        assert "- /repo/Broken/Broken.csproj: malformed XML" in text

    def test_conflict_table_lists_only_real_conflicts(self):
        conflicts = [
            VersionConflict(
                package_id="Newtonsoft.Json",
                requested_versions=["12.0.3", "13.0.1"],
                resolved_version="13.0.1",
                strategy_used="UseHighest",
                warnings=["Major version spread for Newtonsoft.Json: 12, 13 (resolved to 13.0.1)"],
            ),
            VersionConflict(
                package_id="Serilog",
                requested_versions=["3.1.1"],
                resolved_version="3.1.1",
                strategy_used="UseHighest",
            ),
        ]
        text = render_report(_report(version_conflicts=conflicts, warnings=["run warning"]))

        assert "## Warnings\n\n- run warning" in text
        assert "| Newtonsoft.Json | 12.0.3, 13.0.1 | 13.0.1 | UseHighest |" in text
        assert "| Serilog |" not in text
        assert "- Major version spread for Newtonsoft.Json" in text


class TestWriteReport:
    """Report file output."""

    def test_writes_to_nested_path(self, tmp_path):
        target = tmp_path / "out" / "reports" / "migration.md"

        path = write_report(_report(results=_results()), str(target))

        assert path == str(target)
        assert target.read_text(encoding="utf-8").startswith("# SDK-style migration report")
