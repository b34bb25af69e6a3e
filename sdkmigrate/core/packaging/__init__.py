"""Cross-project package version handling and central package management."""

from .conflicts import (
    PackageVersionConflictResolver,
    ResolutionOptions,
    ResolutionStrategy,
    merge_with_existing,
)
from .cpm import (
    CentralPackageManagementGenerator,
    CpmResult,
    ExistingCpm,
    ExistingCpmDetector,
    PackageCategory,
    classify_package,
    strip_versions,
)

__all__ = [
    "CentralPackageManagementGenerator",
    "CpmResult",
    "ExistingCpm",
    "ExistingCpmDetector",
    "PackageCategory",
    "PackageVersionConflictResolver",
    "ResolutionOptions",
    "ResolutionStrategy",
    "classify_package",
    "merge_with_existing",
    "strip_versions",
]
