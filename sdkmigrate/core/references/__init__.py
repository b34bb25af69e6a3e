"""Assembly reference to package resolution."""

from .cache import ResolutionCache
from .package_sources import (
    NuGetPackageSource,
    OfflinePackageSource,
    PackageCandidate,
    PackageSource,
    create_package_source,
)
from .resolver import AssemblyReferenceResolver
from .transitive import TransitiveDependencyDetector

__all__ = [
    "AssemblyReferenceResolver",
    "NuGetPackageSource",
    "OfflinePackageSource",
    "PackageCandidate",
    "PackageSource",
    "ResolutionCache",
    "TransitiveDependencyDetector",
    "create_package_source",
]
