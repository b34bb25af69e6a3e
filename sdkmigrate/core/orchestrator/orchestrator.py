"""Batch migration of a directory tree.

Per project:
    Pending -> Parsing -> Classifying -> Migrating -> Written
    | Skipped (already SDK-style, unmigratable) | Failed

Per batch:
    Idle -> LockAcquired -> Scanning (scan, pre-flight)
    -> MigratingProjects (worker pool)
    -> Aggregating (conflicts, central package management)
    -> Validating (structural checks on the rendered XML)
    -> Finalizing (backup manifest, lock release) -> Idle

A failing project is recorded and never stops the batch.  Only lock
contention and the pre-flight gate abort a run, and both happen before
any file is touched.
"""

import logging
import os
import threading
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from datetime import datetime
from typing import Callable, Dict, List, Optional

from ..classifier import SdkTypeClassifier
from ..config import MigrationOptions
from ..errors import ConfigurationError, PreflightError
from ..migrator import ItemAndPropertyMigrator, serialize, write_text
from ..models import (
    BatchState,
    EvaluatedProject,
    MigrationReport,
    MigrationResult,
    PackageReference,
    ProjectState,
)
from ..packaging import (
    CentralPackageManagementGenerator,
    PackageVersionConflictResolver,
    strip_versions,
)
from ..project_loader import load_project
from ..references import (
    AssemblyReferenceResolver,
    PackageSource,
    ResolutionCache,
    create_package_source,
)
from .analyzer import MigrationAnalyzer
from .backup import BACKUP_DIR_PREFIX, BackupSession
from .lock import LockService
from .report import write_report
from .validator import validate_project_xml

logger = logging.getLogger(__name__)

PROJECT_EXTENSIONS = (".csproj", ".vbproj", ".fsproj", ".sqlproj", ".dcproj", ".shproj")
SKIPPED_DIRECTORIES = frozenset({"bin", "obj", "packages", "node_modules", ".git", ".vs"})

SKIP_ALREADY_SDK = "already SDK-style"


class MigrationOrchestrator:
    """Drive migration of every project under a directory.

    Args:
        options: effective migration options
        source: package source; built from ``options`` when omitted
        classifier: SDK variant classifier
        loader: ``path -> EvaluatedProject``
        migrator: item/property migrator
    """

    def __init__(
        self,
        options: Optional[MigrationOptions] = None,
        source: Optional[PackageSource] = None,
        classifier: Optional[SdkTypeClassifier] = None,
        loader: Callable[[str], EvaluatedProject] = load_project,
        migrator: Optional[ItemAndPropertyMigrator] = None,
    ):
        self.options = options or MigrationOptions()
        self._source = source or create_package_source(
            offline=self.options.offline,
            feed_url=self.options.nuget_feed_url,
            timeout=self.options.http_timeout,
        )
        self._cache = ResolutionCache()
        self._resolver = AssemblyReferenceResolver(self._source, self._cache)
        self._classifier = classifier or SdkTypeClassifier(
            target_framework=self.options.target_framework
        )
        self._load = loader
        self._migrator = migrator or ItemAndPropertyMigrator(enable_cpm=self.options.enable_cpm)
        self._analyzer = MigrationAnalyzer(self._classifier, loader)
        self._conflict_resolver = PackageVersionConflictResolver(self._source)
        self._cpm = CentralPackageManagementGenerator()

        self._report_lock = threading.Lock()
        self._packages_lock = threading.Lock()
        self._packages: Dict[str, List[PackageReference]] = {}
        self._frameworks: Dict[str, List[str]] = {}
        self._sdk_style: List[str] = []
        self._backup: Optional[BackupSession] = None
        self._root = ""
        self.state = BatchState.IDLE

    def _enter(self, state: BatchState) -> None:
        logger.debug("Batch state %s -> %s", self.state.value, state.value)
        self.state = state

    # ── Scanning ─────────────────────────────────────────────────

    def scan(self, root: str, cancel_event: Optional[threading.Event] = None) -> List[str]:
        """Project descriptors under ``root``, sorted."""
        root = os.path.abspath(root)
        output_dir = (
            os.path.abspath(self.options.output_directory)
            if self.options.output_directory else None
        )
        found = []
        for current, dirs, files in os.walk(root):
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Scan cancelled")
                break
            dirs[:] = sorted(
                d for d in dirs
                if d.lower() not in SKIPPED_DIRECTORIES
                and not d.startswith(BACKUP_DIR_PREFIX)
                and os.path.join(current, d) != output_dir
            )
            for name in files:
                if ".legacy." in name:
                    continue
                if os.path.splitext(name)[1].lower() in PROJECT_EXTENSIONS:
                    found.append(os.path.join(current, name))

        logger.info(f"Found {len(found)} project files under {root}")
        return sorted(found)

    # ── Single project ───────────────────────────────────────────

    def migrate_project(self, path: str) -> MigrationResult:
        """Run one project through the pipeline.  Never raises."""
        path = os.path.abspath(path)
        result = MigrationResult(project_path=path)
        try:
            result.state = ProjectState.PARSING
            project = self._load(path)

            if project.is_sdk_style:
                logger.info(f"Skipping {path} - already SDK-style")
                result.state = ProjectState.SKIPPED
                result.skip_reason = SKIP_ALREADY_SDK
                result.success = True
                result.output_path = path
                self._record_sdk_style(project)
                return result

            result.state = ProjectState.CLASSIFYING
            variant = self._classifier.classify(project)
            result.sdk_variant = variant
            if not variant.is_migratable:
                logger.warning(f"Skipping {path}: {variant.reason}")
                result.state = ProjectState.SKIPPED
                result.skip_reason = variant.reason
                result.warnings.append(f"Project cannot be migrated: {variant.reason}")
                return result

            result.state = ProjectState.MIGRATING
            resolution = self._resolver.resolve(
                project.all_items(), variant.target_framework, project.packages_config
            )
            output = self._migrator.migrate(project, variant, resolution)
            xml = serialize(output.tree)

            result.warnings.extend(output.warnings)
            result.removed_elements.extend(output.removed_elements)
            result.migrated_packages = list(output.packages)
            result.unconverted_references = list(output.unconverted)
            result.output_xml = xml
            result.output_path = self._output_path(path)

            if self.options.dry_run:
                logger.info(f"[DRY RUN] Would write {result.output_path}")
            else:
                self._write(project, result.output_path, xml, result)

            with self._packages_lock:
                self._packages[path] = list(output.packages)
                self._frameworks[path] = list(variant.frameworks)

            result.state = ProjectState.WRITTEN
            result.success = True
            logger.info(
                "Migrated %s as %s with %d warnings", path, variant, len(result.warnings)
            )
        except Exception as e:
            logger.error(f"Error processing project {path}: {e}", exc_info=True)
            result.state = ProjectState.FAILED
            result.success = False
            result.errors.append(str(e))
        return result

    def _record_sdk_style(self, project: EvaluatedProject) -> None:
        # Versions declared inline must move into Directory.Packages.props.
        packages = [
            PackageReference(package_id=item.include, version=item.get("Version"))
            for item in project.items_of_type("PackageReference")
            if item.include and item.get("Version")
        ]
        if not packages:
            return
        with self._packages_lock:
            self._packages[os.path.abspath(project.path)] = packages
            self._sdk_style.append(os.path.abspath(project.path))

    def _output_path(self, path: str) -> str:
        if not self.options.output_directory:
            return path
        base = self._root or os.path.dirname(path)
        relative = os.path.relpath(path, base)
        return os.path.abspath(os.path.join(self.options.output_directory, relative))

    def _write(
        self, project: EvaluatedProject, output_path: str, xml: str, result: MigrationResult
    ) -> None:
        in_place = os.path.abspath(output_path) == os.path.abspath(project.path)
        if in_place and self._backup is not None:
            self._backup.backup_file(project.path)

        parent = os.path.dirname(output_path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        write_text(output_path, xml)
        logger.debug(f"Wrote {output_path}")

        packages_config = os.path.join(project.directory, "packages.config")
        if in_place and project.packages_config and os.path.isfile(packages_config):
            if self._backup is not None:
                self._backup.backup_file(packages_config)
            os.remove(packages_config)
            result.removed_elements.append("packages.config: migrated to PackageReference items")
            logger.info(f"Removed {packages_config}")

    # ── Batch ────────────────────────────────────────────────────

    def migrate_directory(
        self, root: str, cancel_event: Optional[threading.Event] = None
    ) -> MigrationReport:
        """Migrate every project under ``root`` and return the report.

        Raises ``LockAcquisitionError`` or ``PreflightError`` before any
        project file is modified.
        """
        root = os.path.abspath(root)
        if not os.path.isdir(root):
            raise ConfigurationError(f"Directory not found: {root}")

        self._root = root
        self._packages.clear()
        self._frameworks.clear()
        self._sdk_style.clear()
        self._backup = None

        report = MigrationReport(root_directory=root, dry_run=self.options.dry_run)
        lock = LockService(root, stale_hours=self.options.lock_stale_hours)
        lock.acquire()
        self._enter(BatchState.LOCK_ACQUIRED)
        try:
            self._enter(BatchState.SCANNING)
            paths = self.scan(root, cancel_event)
            report.total_projects_found = len(paths)

            self._preflight(paths, root, report, cancel_event)

            if self.options.create_backup and not self.options.dry_run:
                self._backup = BackupSession(root, self._backup_parameters())

            self._enter(BatchState.MIGRATING_PROJECTS)
            self._migrate_all(paths, report, cancel_event)
            self._enter(BatchState.AGGREGATING)
            self._aggregate(report, root)
            self._enter(BatchState.VALIDATING)
            self._validate(report)
        finally:
            self._enter(BatchState.FINALIZING)
            if self._backup is not None:
                try:
                    self._backup.finalize()
                except OSError as e:
                    logger.error(f"Failed to write backup manifest: {e}")
            lock.release()
            report.end_time = datetime.utcnow()
            self._enter(BatchState.IDLE)

        if self.options.report_path:
            write_report(report, self.options.report_path)

        logger.info(
            "Migration finished: %d written, %d skipped, %d failed in %.1fs",
            report.written, report.skipped, report.failed, report.duration_seconds,
        )
        return report

    def _preflight(
        self,
        paths: List[str],
        root: str,
        report: MigrationReport,
        cancel_event: Optional[threading.Event],
    ) -> None:
        analysis = self._analyzer.analyze(paths, cancel_event, root)
        report.warnings.extend(analysis.warnings)
        if analysis.can_proceed:
            return
        if self.options.force or self.options.dry_run:
            for issue in analysis.blocking_issues:
                logger.warning(f"Ignoring blocking issue: {issue}")
                report.warnings.append(f"Ignored blocking issue: {issue}")
            return
        for issue in analysis.blocking_issues:
            logger.error(f"Blocking issue: {issue}")
        raise PreflightError(analysis.blocking_issues)

    def _backup_parameters(self) -> Dict[str, str]:
        return {
            "target_framework": self.options.target_framework or "",
            "output_directory": self.options.output_directory or "",
            "enable_cpm": str(self.options.enable_cpm),
            "strategy": self.options.strategy.value,
            "max_parallelism": str(self.options.max_parallelism),
        }

    def _migrate_all(
        self,
        paths: List[str],
        report: MigrationReport,
        cancel_event: Optional[threading.Event],
    ) -> None:
        total = len(paths)
        pending = list(enumerate(paths, 1))
        pending.reverse()
        in_flight = set()
        # Cancellation is checked before each submit; at most max_parallelism in flight.
        with ThreadPoolExecutor(max_workers=self.options.max_parallelism) as executor:
            while pending or in_flight:
                while pending and len(in_flight) < self.options.max_parallelism:
                    if cancel_event is not None and cancel_event.is_set():
                        logger.info(
                            "Cancellation requested, %d of %d projects not started",
                            len(pending), total,
                        )
                        report.cancelled = True
                        pending.clear()
                        break
                    index, path = pending.pop()
                    logger.info(f"[{index}/{total}] Processing {path}")
                    in_flight.add(executor.submit(self.migrate_project, path))

                if not in_flight:
                    break
                done, in_flight = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in done:
                    result = future.result()
                    with self._report_lock:
                        report.results.append(result)

        report.results.sort(key=lambda r: r.project_path)

    def _aggregate(self, report: MigrationReport, root: str) -> None:
        if not self._packages:
            return

        existing = self._cpm.detect(root) if self.options.enable_cpm else None
        conflicts = self._conflict_resolver.resolve_all(
            self._packages,
            self.options.strategy,
            self.options.resolution_options(),
            self._frameworks,
            existing=existing.all_versions if existing is not None else None,
            existing_path=existing.path if existing is not None else None,
        )
        report.version_conflicts = list(conflicts.values())
        for conflict in conflicts.values():
            if conflict.has_conflict:
                report.warnings.extend(conflict.warnings)

        if not self.options.enable_cpm:
            return

        packages = [p for project_packages in self._packages.values() for p in project_packages]
        cpm = self._cpm.generate(
            root,
            conflicts,
            packages,
            dry_run=self.options.dry_run,
            existing=existing,
            before_write=self._backup.backup_file if self._backup is not None else None,
        )
        report.cpm_path = cpm.path
        report.warnings.extend(cpm.warnings)

        for path in self._sdk_style:
            self._strip_inline_versions(path, report)

    @staticmethod
    def _validate(report: MigrationReport) -> None:
        for result in report.results:
            if result.state != ProjectState.WRITTEN or not result.output_xml:
                continue
            for issue in validate_project_xml(result.output_xml):
                logger.warning(f"Post-migration check for {result.project_path}: {issue}")
                result.warnings.append(f"Post-migration check: {issue}")

    def _strip_inline_versions(self, path: str, report: MigrationReport) -> None:
        try:
            with open(path, "r", encoding="utf-8-sig", newline="") as f:
                original = f.read()
        except OSError as e:
            report.warnings.append(f"Could not read {path} to remove package versions: {e}")
            return

        stripped = strip_versions(original)
        if stripped == original:
            return
        if self.options.dry_run:
            logger.info(f"[DRY RUN] Would remove inline package versions from {path}")
            return
        if self._backup is not None:
            self._backup.backup_file(path)
        write_text(path, stripped)
        logger.info(f"Removed inline package versions from {path}")
