"""Exception taxonomy for sdkmigrate.

Expected domain conditions (unmigratable projects, failed identity
validation, version conflicts, per-item transform problems) are reported
through result objects.  These exceptions cover the truly exceptional
paths: I/O failures, lock contention and the pre-flight gate.
"""

from typing import List, Optional


class SdkMigrateError(Exception):
    """Base class for all sdkmigrate errors."""


class ConfigurationError(SdkMigrateError):
    """Configuration file or option values are invalid."""


class ProjectLoadError(SdkMigrateError):
    """A project descriptor could not be read or parsed."""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"{path}: {message}")


class UnmigratableProjectError(SdkMigrateError):
    """Classification decided the project cannot be converted."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path} cannot be migrated: {reason}")


class MigrationError(SdkMigrateError):
    """A whole-project invariant was violated during migration."""


class LockAcquisitionError(SdkMigrateError):
    """Another live migration holds the directory lock."""

    def __init__(self, lock_path: str, owner: Optional[dict] = None):
        self.lock_path = lock_path
        self.owner = owner or {}
        detail = ""
        if self.owner:
            detail = (
                f" (held by pid {self.owner.get('pid')} on "
                f"{self.owner.get('machine')} since {self.owner.get('acquired_at')})"
            )
        super().__init__(
            f"Could not acquire migration lock {lock_path}{detail}. "
            "Another migration may be in progress."
        )


class PreflightError(SdkMigrateError):
    """Pre-flight analysis found blocking issues."""

    def __init__(self, issues: List[str]):
        self.issues = list(issues)
        super().__init__(
            "Migration cannot proceed due to critical issues. "
            "Use --force to override or fix the issues first: "
            + "; ".join(self.issues)
        )


class PackageSourceError(SdkMigrateError):
    """A package source (registry) lookup failed."""
