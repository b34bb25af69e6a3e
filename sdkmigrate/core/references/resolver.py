"""Assembly reference -> package reference resolution.

Every legacy ``<Reference>`` ends up in exactly one bucket:

* ``packages``     -- replaced by a validated PackageReference
* ``covered``      -- already provided by a migrated package
* ``builtin``      -- implicit in the target SDK, no package needed
* ``unconverted``  -- kept as a reference, always with a reason

A reference is never dropped silently, and a package is only substituted
when the match can be validated (known assembly list or strong-name
token).  A wrong substitution is worse than a manual fix.
"""

import logging
import re
from typing import Iterable, List, Optional, Tuple

from ..errors import PackageSourceError
from ..models import (
    AssemblyIdentity,
    Item,
    PackageReference,
    ReferenceResolution,
    UnconvertedReference,
)
from ..versioning import (
    framework_matches,
    is_net_framework,
    normalize_assembly_version,
    parse_version,
)
from .cache import ResolutionCache
from .mappings import (
    ASSEMBLY_VERSION_MAP,
    BUILTIN_FRAMEWORK_ASSEMBLIES,
    DEFAULT_PACKAGE_VERSIONS,
    FRAMEWORK_PACKAGE_MAP,
    PUBLIC_KEY_TOKENS,
    WILDCARD_VERSION,
)
from .package_sources import OfflinePackageSource, PackageCandidate, PackageSource

logger = logging.getLogger(__name__)

REASON_NOT_FOUND = "no matching package found"
REASON_VALIDATION_FAILED = "validation failed"
REASON_TOKEN_MISMATCH = "public key token mismatch"
REASON_FRAMEWORK_REFERENCE = "Framework reference for .NET Framework target"

_SEGMENT_SPLIT = re.compile(r"[\\/]")


def _package_folder(hint_path: str) -> Optional[str]:
    """``..\\packages\\Foo.1.2.3\\lib\\net45\\Foo.dll`` -> ``Foo.1.2.3``."""
    parts = _SEGMENT_SPLIT.split(hint_path)
    for index, part in enumerate(parts[:-1]):
        if part.lower() == "packages":
            return parts[index + 1]
    return None


def _version_from_folder(folder: str, package_id: str) -> Optional[str]:
    prefix = package_id.lower() + "."
    if not folder.lower().startswith(prefix):
        return None
    version = folder[len(prefix):]
    return version if parse_version(version) else None


class AssemblyReferenceResolver:
    """Resolve legacy ``Reference`` items to package references.

    Args:
        source: package source for the general lookup and versions
        cache: shared read-through cache for general lookups
    """

    def __init__(
        self,
        source: Optional[PackageSource] = None,
        cache: Optional[ResolutionCache] = None,
    ):
        self._source = source or OfflinePackageSource()
        self._cache = cache or ResolutionCache()

    def resolve(
        self,
        items: Iterable[Item],
        target_framework: str,
        already_migrated: Iterable[PackageReference] = (),
    ) -> ReferenceResolution:
        result = ReferenceResolution()
        migrated = list(already_migrated)
        references = [i for i in items if i.item_type == "Reference"]

        hinted = [r for r in references if r.get("HintPath")]
        bare = [r for r in references if not r.get("HintPath")]
        logger.debug(
            "Found %d hint-path and %d framework references for %s",
            len(hinted), len(bare), target_framework,
        )

        for item in hinted:
            identity = AssemblyIdentity.parse(item.include)
            covering = self._covering_package(item.get("HintPath"), migrated)
            if covering is not None:
                logger.debug(
                    "Reference %s is provided by package %s", identity.name, covering.package_id
                )
                result.covered.append(identity.name)
                continue
            self._resolve_one(item, identity, target_framework, result)

        if is_net_framework(target_framework):
            # Implicit under .NET Framework; re-emitted as-is.
            for item in bare:
                result.unconverted.append(
                    self._unconverted(item, AssemblyIdentity.parse(item.include), REASON_FRAMEWORK_REFERENCE)
                )
        else:
            for item in bare:
                identity = AssemblyIdentity.parse(item.include)
                if identity.name.lower() in BUILTIN_FRAMEWORK_ASSEMBLIES:
                    logger.debug(
                        "Skipping built-in framework reference %s for %s",
                        identity.name, target_framework,
                    )
                    result.builtin.append(identity.name)
                    continue
                self._resolve_one(item, identity, target_framework, result)

        logger.info(
            "Converted %d references to packages, kept %d references for %s",
            len(result.packages), len(result.unconverted), target_framework,
        )
        return result

    # ── Single reference ─────────────────────────────────────────

    def _resolve_one(
        self,
        item: Item,
        identity: AssemblyIdentity,
        target_framework: str,
        result: ReferenceResolution,
    ) -> None:
        try:
            candidate, from_table = self._find_candidate(identity, target_framework)
        except PackageSourceError as e:
            result.warnings.append(f"Package lookup for '{identity.name}' failed: {e}")
            result.unconverted.append(self._unconverted(item, identity, REASON_NOT_FOUND))
            return

        if candidate is None:
            logger.debug("No package provides %s for %s", identity.name, target_framework)
            result.unconverted.append(self._unconverted(item, identity, REASON_NOT_FOUND))
            return

        failure = self._validate(candidate, identity)
        if failure is not None:
            result.warnings.append(
                f"Assembly '{identity.name}' does not match package "
                f"'{candidate.package_id}' ({failure}); keeping as local reference"
            )
            result.unconverted.append(self._unconverted(item, identity, failure))
            return

        version = self._select_version(candidate, identity, item.get("HintPath"), result)
        if any(p.key == candidate.package_id.lower() for p in result.packages):
            logger.debug(
                "Reference %s is provided by package %s", identity.name, candidate.package_id
            )
            result.covered.append(identity.name)
            return
        result.packages.append(PackageReference(
            package_id=candidate.package_id,
            version=version,
            condition=item.effective_condition,
        ))
        logger.info(
            "%s: converted reference %s to package %s %s for %s",
            "Framework-aware table" if from_table else "Package source",
            identity.name, candidate.package_id, version, target_framework,
        )

    def _find_candidate(
        self, identity: AssemblyIdentity, target_framework: str
    ) -> Tuple[Optional[PackageCandidate], bool]:
        table_hit = self._find_in_framework_table(identity.name, target_framework)
        if table_hit is not None:
            return table_hit, True

        key = ResolutionCache.make_key(identity.name, target_framework)
        candidate = self._cache.get_or_load(
            key,
            lambda: self._source.find_package_for_assembly(identity.name, target_framework),
        )
        if candidate is not None and not candidate.included_assemblies:
            candidate.included_assemblies = self._source.get_package_assemblies(candidate.package_id)
        return candidate, False

    @staticmethod
    def _find_in_framework_table(
        assembly_name: str, target_framework: str
    ) -> Optional[PackageCandidate]:
        lowered = assembly_name.lower()
        for package_id, frameworks in FRAMEWORK_PACKAGE_MAP.items():
            for pattern, assemblies in frameworks.items():
                if not framework_matches(pattern, target_framework):
                    continue
                if any(a.lower() == lowered for a in assemblies):
                    return PackageCandidate(
                        package_id=package_id,
                        version=DEFAULT_PACKAGE_VERSIONS.get(package_id.lower()),
                        included_assemblies=list(assemblies),
                    )
        return None

    @staticmethod
    def _validate(candidate: PackageCandidate, identity: AssemblyIdentity) -> Optional[str]:
        """Return ``None`` when the match is valid, else the failure reason.

        A strong-name token that contradicts a known package token rejects
        the match outright.  Otherwise the package's assembly list, then
        the token allow-list, must confirm it.
        """
        expected_token = PUBLIC_KEY_TOKENS.get(candidate.package_id.lower())
        token = (identity.public_key_token or "").lower()

        if expected_token and token and token != expected_token:
            logger.warning(
                "Public key token mismatch for package %s and assembly %s: expected %s, got %s",
                candidate.package_id, identity.name, expected_token, token,
            )
            return REASON_TOKEN_MISMATCH
        if candidate.provides(identity.name):
            return None
        if expected_token and token == expected_token:
            return None
        return REASON_VALIDATION_FAILED

    def _select_version(
        self,
        candidate: PackageCandidate,
        identity: AssemblyIdentity,
        hint_path: Optional[str],
        result: ReferenceResolution,
    ) -> str:
        if hint_path:
            folder = _package_folder(hint_path)
            if folder:
                from_folder = _version_from_folder(folder, candidate.package_id)
                if from_folder:
                    return from_folder

        if identity.version:
            mapped = ASSEMBLY_VERSION_MAP.get(candidate.package_id.lower(), {}).get(identity.version)
            if mapped:
                return mapped
            normalized = normalize_assembly_version(identity.version)
            if normalized.count(".") == 2 and parse_version(normalized):
                return normalized

        version = candidate.version
        if not version:
            try:
                version = self._source.default_version(candidate.package_id)
            except PackageSourceError as e:
                logger.warning("Default version lookup failed for %s: %s", candidate.package_id, e)
                version = DEFAULT_PACKAGE_VERSIONS.get(candidate.package_id.lower(), WILDCARD_VERSION)
        result.warnings.append(
            f"Package '{candidate.package_id}' for assembly '{identity.name}': "
            f"no version could be matched, falling back to default version {version}"
        )
        return version

    # ── Helpers ──────────────────────────────────────────────────

    @staticmethod
    def _covering_package(
        hint_path: Optional[str], migrated: List[PackageReference]
    ) -> Optional[PackageReference]:
        if not hint_path:
            return None
        folder = _package_folder(hint_path)
        if not folder:
            return None
        folder = folder.lower()
        for package in migrated:
            if package.version and folder == f"{package.package_id}.{package.version}".lower():
                return package
        return None

    @staticmethod
    def _unconverted(item: Item, identity: AssemblyIdentity, reason: str) -> UnconvertedReference:
        private = item.get("Private")
        metadata = {
            k: v for k, v in item.metadata.items()
            if k.lower() not in ("hintpath", "private")
        }
        return UnconvertedReference(
            identity=identity,
            reason=reason,
            hint_path=item.get("HintPath"),
            private=None if private is None else private.lower() == "true",
            metadata=metadata,
            include=item.include,
            condition=item.effective_condition,
        )
