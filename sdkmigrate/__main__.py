import argparse
import logging
import signal
import sys
import threading
from typing import List, Optional

from .core.config import load_config
from .core.errors import (
    ConfigurationError,
    LockAcquisitionError,
    PreflightError,
    SdkMigrateError,
)
from .core.orchestrator import MigrationOrchestrator
from .core.packaging.conflicts import ResolutionStrategy

EXIT_OK = 0
EXIT_PROJECT_FAILED = 1
EXIT_FATAL = 2
EXIT_INTERRUPTED = 130


def setup_logging(log_level: str = "INFO") -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )
    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


def _interrupt_handler(cancel_event: threading.Event):
    """SIGINT handler: the first interrupt lets running projects finish."""

    def handle_signal(signum, frame):
        if cancel_event.is_set():
            raise KeyboardInterrupt
        logger.warning(
            "Interrupt received, finishing projects in progress (press Ctrl+C again to abort)"
        )
        cancel_event.set()

    return handle_signal


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sdkmigrate",
        description="Convert legacy MSBuild project files to SDK-style projects",
    )
    parser.add_argument(
        "directory",
        help="Root directory to scan for project files"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="Show what would change without writing any file"
    )
    parser.add_argument(
        "--output-dir",
        dest="output_directory",
        help="Write migrated projects here instead of in place"
    )
    parser.add_argument(
        "--target-framework",
        help="Target framework moniker for single-targeted projects, e.g. net8.0"
    )
    parser.add_argument(
        "--no-backup",
        dest="create_backup",
        action="store_false",
        default=None,
        help="Do not copy originals into a backup directory"
    )
    parser.add_argument(
        "--force",
        action="store_true",
        default=None,
        help="Proceed even if pre-flight analysis finds blocking issues"
    )
    parser.add_argument(
        "--parallel",
        dest="max_parallelism",
        type=int,
        metavar="N",
        help="Number of projects to migrate concurrently"
    )
    cpm = parser.add_mutually_exclusive_group()
    cpm.add_argument(
        "--cpm",
        dest="enable_cpm",
        action="store_true",
        default=None,
        help="Generate Directory.Packages.props (central package management)"
    )
    cpm.add_argument(
        "--no-cpm",
        dest="enable_cpm",
        action="store_false",
        help="Keep package versions in each project"
    )
    parser.add_argument(
        "--strategy",
        choices=[s.value for s in ResolutionStrategy],
        help="Version conflict resolution strategy"
    )
    parser.add_argument(
        "--config",
        help="Path to the YAML configuration file"
    )
    parser.add_argument(
        "--report",
        dest="report_path",
        help="Write a Markdown migration report to this path"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level"
    )
    return parser


def _overrides(args: argparse.Namespace) -> dict:
    return {
        "dry_run": args.dry_run,
        "output_directory": args.output_directory,
        "target_framework": args.target_framework,
        "create_backup": args.create_backup,
        "force": args.force,
        "max_parallelism": args.max_parallelism,
        "enable_cpm": args.enable_cpm,
        "strategy": args.strategy,
        "report_path": args.report_path,
    }


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for sdkmigrate."""
    args = build_parser().parse_args(argv)

    setup_logging(args.log_level)
    logger.info(f"Starting sdkmigrate in {args.directory}")

    try:
        options = load_config(args.config, overrides=_overrides(args))
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_FATAL

    cancel_event = threading.Event()
    orchestrator = MigrationOrchestrator(options)
    previous_handler = signal.signal(signal.SIGINT, _interrupt_handler(cancel_event))
    try:
        report = orchestrator.migrate_directory(args.directory, cancel_event)
    except KeyboardInterrupt:
        logger.warning("Migration interrupted")
        return EXIT_INTERRUPTED
    except (LockAcquisitionError, PreflightError, ConfigurationError) as e:
        logger.error(str(e))
        return EXIT_FATAL
    except SdkMigrateError as e:
        logger.error(f"Migration aborted: {e}", exc_info=True)
        return EXIT_FATAL
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    print(
        f"\n  Projects found: {report.total_projects_found}"
        f"  written: {report.written}"
        f"  skipped: {report.skipped}"
        f"  failed: {report.failed}"
    )
    if report.dry_run:
        print("  Dry run: no files were changed.")
    if report.cpm_path:
        print(f"  Central package management: {report.cpm_path}")
    print()

    if report.cancelled:
        logger.warning(f"Migration cancelled after {len(report.results)} projects")
        return EXIT_INTERRUPTED
    return EXIT_PROJECT_FAILED if report.has_failures else EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
