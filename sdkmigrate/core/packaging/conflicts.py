"""Cross-project package version conflict resolution.

When several projects request different versions of the same package,
central package management needs exactly one.  The strategy decides which;
every discarded version is reported with the projects that asked for it.

Usage:
    resolver = PackageVersionConflictResolver(source)
    conflicts = resolver.resolve_all(packages_by_project, ResolutionStrategy.USE_HIGHEST)
"""

import logging
import os
from collections import Counter, OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from ..errors import PackageSourceError
from ..models import PackageReference, VersionConflict
from ..references.mappings import WILDCARD_VERSION
from ..references.package_sources import PackageSource
from ..versioning import (
    compare_versions,
    highest_version,
    is_prerelease,
    lowest_version,
    major_of,
    sort_frameworks,
    version_sort_key,
)

logger = logging.getLogger(__name__)

EXISTING_STRATEGY = "ExistingCentral"


class ResolutionStrategy(str, Enum):
    USE_HIGHEST = "UseHighest"
    USE_LOWEST = "UseLowest"
    USE_LATEST_STABLE = "UseLatestStable"
    USE_MOST_COMMON = "UseMostCommon"
    SEMANTIC_COMPATIBLE = "SemanticCompatible"
    FRAMEWORK_COMPATIBLE = "FrameworkCompatible"

    @classmethod
    def parse(cls, value: str) -> "ResolutionStrategy":
        """Case-insensitive lookup by value or member name."""
        text = value.strip().lower().replace("_", "").replace("-", "")
        for member in cls:
            if text in (member.value.lower(), member.name.lower().replace("_", "")):
                return member
        raise ValueError(f"Unknown resolution strategy: {value}")


@dataclass
class ResolutionOptions:
    package_overrides: Dict[str, str] = field(default_factory=dict)
    prefer_stable: bool = False

    def override_for(self, package_id: str) -> Optional[str]:
        lowered = package_id.lower()
        for key, version in self.package_overrides.items():
            if key.lower() == lowered:
                return version
        return None


def _unique(versions: Iterable[str]) -> List[str]:
    seen = OrderedDict()
    for version in versions:
        if version and version != WILDCARD_VERSION:
            seen.setdefault(version.lower(), version)
    return list(seen.values())


class PackageVersionConflictResolver:
    """Pick one version per package across all migrated projects.

    Args:
        source: package source consulted by ``FrameworkCompatible`` and
            when every request is a wildcard
    """

    def __init__(self, source: Optional[PackageSource] = None):
        self._source = source

    # ── Public API ───────────────────────────────────────────────

    def resolve(
        self,
        package_id: str,
        requested_versions: List[str],
        target_frameworks: Optional[List[str]] = None,
        strategy: ResolutionStrategy = ResolutionStrategy.USE_HIGHEST,
        options: Optional[ResolutionOptions] = None,
        requesters: Optional[Dict[str, List[str]]] = None,
        existing_version: Optional[str] = None,
        existing_path: Optional[str] = None,
    ) -> VersionConflict:
        """Pick one version of ``package_id``.

        ``existing_version`` is a centrally managed declaration already on
        disk (in ``existing_path``).  It is listed as a requested version but
        never chosen by the strategy; it replaces the strategy's pick only
        when it is higher.
        """
        options = options or ResolutionOptions()
        frameworks = sort_frameworks(target_frameworks or [])
        requesters = {v: list(p) for v, p in (requesters or {}).items()}
        candidates = _unique(requested_versions)
        warnings: List[str] = []

        override = options.override_for(package_id)
        if override:
            resolved = override
            used = "Override"
            warnings.append(f"Version override for {package_id}: using {override}")
        elif not candidates:
            resolved = self._latest_or_wildcard(package_id, warnings)
            used = strategy.value
        else:
            pool = candidates
            if options.prefer_stable:
                stable = [v for v in candidates if not is_prerelease(v)]
                pool = stable or candidates
            resolved = self._apply_strategy(
                package_id, pool, requested_versions, frameworks, strategy, warnings
            )
            used = strategy.value

        if existing_version and existing_version != WILDCARD_VERSION:
            if not override:
                chosen, message = existing_decision(package_id, resolved, existing_version)
                if message:
                    logger.info(message)
                    warnings.append(message)
                if chosen != resolved:
                    resolved, used = chosen, EXISTING_STRATEGY
            if existing_version.lower() not in {v.lower() for v in candidates}:
                candidates.append(existing_version)
            if existing_path:
                requesters.setdefault(existing_version, []).append(existing_path)

        conflict = VersionConflict(
            package_id=package_id,
            requested_versions=list(candidates),
            resolved_version=resolved,
            strategy_used=used,
            warnings=warnings,
            requesters=dict(requesters),
            target_frameworks=frameworks,
        )
        if not conflict.has_conflict:
            return conflict

        for version in candidates:
            if version.lower() == resolved.lower():
                continue
            projects = requesters.get(version) or []
            names = ", ".join(os.path.basename(p) for p in projects)
            warnings.append(
                f"Discarded {package_id} {version} requested by {names}"
                if names else f"Discarded {package_id} {version}"
            )

        if len(frameworks) > 1:
            warnings.append(
                f"{package_id} requested across frameworks {', '.join(frameworks)}; "
                f"verify {resolved} supports each of them"
            )

        majors = sorted({m for m in (major_of(v) for v in candidates) if m is not None})
        if len(majors) > 1:
            warnings.append(
                f"Major version spread for {package_id}: "
                f"{', '.join(str(m) for m in majors)} (resolved to {resolved})"
            )

        logger.info(
            "Resolved %s to %s using %s (requested: %s)",
            package_id, resolved, used, ", ".join(candidates),
        )
        return conflict

    def resolve_all(
        self,
        packages_by_project: Dict[str, List[PackageReference]],
        strategy: ResolutionStrategy = ResolutionStrategy.USE_HIGHEST,
        options: Optional[ResolutionOptions] = None,
        frameworks_by_project: Optional[Dict[str, List[str]]] = None,
        existing: Optional[Dict[str, str]] = None,
        existing_path: Optional[str] = None,
    ) -> Dict[str, VersionConflict]:
        """Resolve every package declared by any project.

        Transitive references take no part.  Results are keyed by the first
        spelling of each package id seen.  ``existing`` holds the versions of
        an on-disk Directory.Packages.props; they take part in each package's
        resolution.
        """
        frameworks_by_project = frameworks_by_project or {}
        existing_by_key = {k.lower(): v for k, v in (existing or {}).items()}
        grouped: "OrderedDict[str, Tuple[str, List[str], Dict[str, List[str]], List[str]]]" = OrderedDict()

        for project_path, packages in packages_by_project.items():
            for package in packages:
                if package.is_transitive:
                    continue
                key = package.key
                if key not in grouped:
                    grouped[key] = (package.package_id, [], {}, [])
                _, versions, requesters, frameworks = grouped[key]
                version = package.version or WILDCARD_VERSION
                versions.append(version)
                requesters.setdefault(version, []).append(project_path)
                frameworks.extend(frameworks_by_project.get(project_path, []))
                if package.target_framework:
                    frameworks.append(package.target_framework)

        results: Dict[str, VersionConflict] = {}
        for package_id, versions, requesters, frameworks in grouped.values():
            results[package_id] = self.resolve(
                package_id, versions, frameworks, strategy, options, requesters,
                existing_version=existing_by_key.get(package_id.lower()),
                existing_path=existing_path,
            )

        conflicted = sum(1 for c in results.values() if c.has_conflict)
        logger.info(
            "Resolved %d packages across %d projects (%d version conflicts)",
            len(results), len(packages_by_project), conflicted,
        )
        return results

    # ── Strategies ───────────────────────────────────────────────

    def _apply_strategy(
        self,
        package_id: str,
        candidates: List[str],
        requested: List[str],
        frameworks: List[str],
        strategy: ResolutionStrategy,
        warnings: List[str],
    ) -> str:
        if strategy == ResolutionStrategy.USE_LOWEST:
            return lowest_version(candidates)

        if strategy == ResolutionStrategy.USE_LATEST_STABLE:
            stable = [v for v in candidates if not is_prerelease(v)]
            return highest_version(stable or candidates)

        if strategy == ResolutionStrategy.USE_MOST_COMMON:
            counts = Counter(v.lower() for v in requested if v and v != WILDCARD_VERSION)
            best = max(counts[v.lower()] for v in candidates)
            return highest_version([v for v in candidates if counts[v.lower()] == best])

        if strategy == ResolutionStrategy.SEMANTIC_COMPATIBLE:
            return self._semantic_compatible(package_id, candidates, requested, warnings)

        if strategy == ResolutionStrategy.FRAMEWORK_COMPATIBLE:
            return self._framework_compatible(package_id, candidates, frameworks, warnings)

        return highest_version(candidates)

    @staticmethod
    def _semantic_compatible(
        package_id: str, candidates: List[str], requested: List[str], warnings: List[str]
    ) -> str:
        majors = Counter(
            major_of(v) for v in requested
            if v and v != WILDCARD_VERSION and major_of(v) is not None
        )
        if not majors:
            return highest_version(candidates)
        # Most requesters first, then the higher major.
        chosen_major = max(majors.items(), key=lambda kv: (kv[1], kv[0]))[0]
        in_major = [v for v in candidates if major_of(v) == chosen_major]
        if len(majors) > 1:
            warnings.append(
                f"{package_id}: kept major version {chosen_major}; "
                "projects on other major versions may need code changes"
            )
        return highest_version(in_major or candidates)

    def _framework_compatible(
        self,
        package_id: str,
        candidates: List[str],
        frameworks: List[str],
        warnings: List[str],
    ) -> str:
        if self._source is None or not frameworks:
            return highest_version(candidates)

        for version in sorted(candidates, key=version_sort_key, reverse=True):
            try:
                if all(self._source.is_compatible(package_id, version, f) for f in frameworks):
                    return version
            except PackageSourceError as e:
                warnings.append(f"Compatibility check for {package_id} {version} failed: {e}")
                break

        fallback = highest_version(candidates)
        warnings.append(
            f"No requested version of {package_id} supports all of "
            f"{', '.join(frameworks)}; using highest ({fallback})"
        )
        return fallback

    def _latest_or_wildcard(self, package_id: str, warnings: List[str]) -> str:
        if self._source is None:
            return WILDCARD_VERSION
        try:
            return self._source.get_latest_version(package_id) or WILDCARD_VERSION
        except PackageSourceError as e:
            warnings.append(f"Latest version lookup for {package_id} failed: {e}")
            return WILDCARD_VERSION


def existing_decision(package_id: str, ours: str, existing: str) -> Tuple[str, Optional[str]]:
    """Apply "the existing central version wins only when higher".

    Returns the chosen version and a message when the two differ.
    """
    if ours.lower() == existing.lower():
        return ours, None
    if ours == WILDCARD_VERSION or compare_versions(existing, ours) > 0:
        return existing, f"Kept existing {package_id} {existing} (higher than resolved {ours})"
    return ours, f"Updated existing {package_id} from {existing} to {ours}"


def merge_with_existing(
    resolved: Dict[str, VersionConflict], existing: Dict[str, str]
) -> Tuple[Dict[str, str], List[str]]:
    """Merge resolved versions with an existing Directory.Packages.props.

    The existing declaration wins only when it is higher.  Packages only
    declared in the existing file are kept.  Returns ``(versions, warnings)``.
    """
    merged: "OrderedDict[str, str]" = OrderedDict()
    by_key: Dict[str, str] = {}
    warnings: List[str] = []

    for package_id, conflict in resolved.items():
        merged[package_id] = conflict.resolved_version
        by_key[package_id.lower()] = package_id

    for package_id, version in existing.items():
        known = by_key.get(package_id.lower())
        if known is None:
            merged[package_id] = version
            by_key[package_id.lower()] = package_id
            continue
        merged[known], message = existing_decision(known, merged[known], version)
        # Already reported when the resolver weighed the existing version.
        if message and message not in resolved[known].warnings:
            logger.info(message)
            warnings.append(message)

    return dict(merged), warnings
