"""Package sources -- pluggable assembly -> package lookup.

``OfflinePackageSource`` answers from the static tables in
``mappings.py`` and never touches the network.  ``NuGetPackageSource``
adds live version and framework data from a NuGet v3 flat-container feed
over httpx, and falls back to the offline tables for assembly mapping.
"""

import logging
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import httpx

from ..errors import PackageSourceError
from ..versioning import (
    highest_version,
    is_framework_compatible,
    is_prerelease,
)
from .mappings import (
    DEFAULT_PACKAGE_VERSIONS,
    PACKAGE_ASSEMBLIES,
    WILDCARD_VERSION,
)

logger = logging.getLogger(__name__)


@dataclass
class PackageCandidate:
    """A package a resolver believes provides an assembly."""

    package_id: str
    version: Optional[str] = None
    included_assemblies: List[str] = field(default_factory=list)

    def provides(self, assembly_name: str) -> bool:
        lowered = assembly_name.lower()
        return any(a.lower() == lowered for a in self.included_assemblies)


class PackageSource(ABC):
    """Abstract base for package sources."""

    @abstractmethod
    def find_package_for_assembly(
        self, assembly_name: str, target_framework: str
    ) -> Optional[PackageCandidate]:
        """Best package providing ``assembly_name``, or ``None``."""
        ...

    @abstractmethod
    def get_package_assemblies(self, package_id: str) -> List[str]:
        """Assemblies a package is known to ship (may be empty)."""
        ...

    @abstractmethod
    def get_latest_version(
        self, package_id: str, include_prerelease: bool = False
    ) -> Optional[str]:
        ...

    @abstractmethod
    def is_compatible(self, package_id: str, version: str, target_framework: str) -> bool:
        ...

    def default_version(self, package_id: str) -> str:
        """Version used when nothing better is known."""
        return (
            self.get_latest_version(package_id)
            or DEFAULT_PACKAGE_VERSIONS.get(package_id.lower())
            or WILDCARD_VERSION
        )


# ── Offline ──────────────────────────────────────────────────────────


class OfflinePackageSource(PackageSource):
    """Static-table package source."""

    def __init__(self, extra_assemblies: Optional[Dict[str, List[str]]] = None):
        self._assemblies: Dict[str, List[str]] = dict(PACKAGE_ASSEMBLIES)
        if extra_assemblies:
            self._assemblies.update(extra_assemblies)
        self._by_assembly: Dict[str, str] = {}
        for package_id, assemblies in self._assemblies.items():
            for assembly in assemblies:
                self._by_assembly.setdefault(assembly.lower(), package_id)

    def find_package_for_assembly(
        self, assembly_name: str, target_framework: str
    ) -> Optional[PackageCandidate]:
        package_id = self._by_assembly.get(assembly_name.lower())
        if package_id is None:
            return None
        return PackageCandidate(
            package_id=package_id,
            version=DEFAULT_PACKAGE_VERSIONS.get(package_id.lower()),
            included_assemblies=list(self._assemblies[package_id]),
        )

    def get_package_assemblies(self, package_id: str) -> List[str]:
        lowered = package_id.lower()
        for known, assemblies in self._assemblies.items():
            if known.lower() == lowered:
                return list(assemblies)
        return []

    def get_latest_version(
        self, package_id: str, include_prerelease: bool = False
    ) -> Optional[str]:
        return DEFAULT_PACKAGE_VERSIONS.get(package_id.lower())

    def is_compatible(self, package_id: str, version: str, target_framework: str) -> bool:
        # No framework data offline; assume compatible.
        return True


# ── NuGet v3 ─────────────────────────────────────────────────────────


class NuGetPackageSource(PackageSource):
    """NuGet v3 flat-container source.

    Args:
        feed_url: feed root, e.g. ``https://api.nuget.org``
        timeout: HTTP timeout in seconds
        client: optional pre-built ``httpx.Client`` (tests pass one with a
            ``MockTransport``)
    """

    def __init__(
        self,
        feed_url: str = "https://api.nuget.org",
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
        fallback: Optional[PackageSource] = None,
    ):
        self._base = feed_url.rstrip("/") + "/v3-flatcontainer"
        self._timeout = timeout
        self._client = client
        self._fallback = fallback or OfflinePackageSource()
        self._versions: Dict[str, List[str]] = {}
        self._frameworks: Dict[str, List[str]] = {}

    def _get(self, url: str) -> Optional[httpx.Response]:
        try:
            if self._client is not None:
                response = self._client.get(url)
            else:
                with httpx.Client(timeout=self._timeout) as client:
                    response = client.get(url)
        except httpx.RequestError as e:
            raise PackageSourceError(f"NuGet request failed for {url}: {e}") from e

        if response.status_code == 404:
            return None
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise PackageSourceError(
                f"NuGet feed returned {response.status_code} for {url}"
            ) from e
        return response

    def list_versions(self, package_id: str) -> List[str]:
        """All published versions of a package (empty if unknown)."""
        key = package_id.lower()
        if key in self._versions:
            return self._versions[key]

        response = self._get(f"{self._base}/{key}/index.json")
        versions: List[str] = []
        if response is not None:
            try:
                versions = list(response.json().get("versions", []))
            except ValueError as e:
                raise PackageSourceError(f"Invalid version index for {package_id}: {e}") from e
        logger.debug("NuGet: %s has %d versions", package_id, len(versions))
        self._versions[key] = versions
        return versions

    def get_package_frameworks(self, package_id: str, version: str) -> List[str]:
        """Target frameworks declared in a package's nuspec dependency groups."""
        key = f"{package_id.lower()}/{version.lower()}"
        if key in self._frameworks:
            return self._frameworks[key]

        response = self._get(
            f"{self._base}/{package_id.lower()}/{version.lower()}/{package_id.lower()}.nuspec"
        )
        frameworks: List[str] = []
        if response is not None:
            try:
                root = ET.fromstring(response.content)
            except ET.ParseError as e:
                raise PackageSourceError(f"Invalid nuspec for {package_id} {version}: {e}") from e
            for node in root.iter():
                tag = node.tag.split("}", 1)[-1] if isinstance(node.tag, str) else ""
                if tag == "group" and node.get("targetFramework"):
                    frameworks.append(node.get("targetFramework"))
        self._frameworks[key] = frameworks
        return frameworks

    def find_package_for_assembly(
        self, assembly_name: str, target_framework: str
    ) -> Optional[PackageCandidate]:
        candidate = self._fallback.find_package_for_assembly(assembly_name, target_framework)
        if candidate is not None:
            latest = self.get_latest_version(candidate.package_id)
            if latest:
                candidate.version = latest
            return candidate

        # Many packages ship an assembly named after the package id.
        latest = self.get_latest_version(assembly_name)
        if latest is None:
            return None
        return PackageCandidate(
            package_id=assembly_name,
            version=latest,
            included_assemblies=self._fallback.get_package_assemblies(assembly_name),
        )

    def get_package_assemblies(self, package_id: str) -> List[str]:
        return self._fallback.get_package_assemblies(package_id)

    def get_latest_version(
        self, package_id: str, include_prerelease: bool = False
    ) -> Optional[str]:
        versions = self.list_versions(package_id)
        if not include_prerelease:
            versions = [v for v in versions if not is_prerelease(v)]
        return highest_version(versions)

    def is_compatible(self, package_id: str, version: str, target_framework: str) -> bool:
        frameworks = self.get_package_frameworks(package_id, version)
        if not frameworks:
            # No dependency groups: nuspec says nothing, treat as compatible.
            return True
        return any(is_framework_compatible(target_framework, f) for f in frameworks)


def create_package_source(
    offline: bool = True,
    feed_url: str = "https://api.nuget.org",
    timeout: float = 30.0,
) -> PackageSource:
    """Build the package source selected by configuration."""
    if offline:
        logger.info("Using offline package source")
        return OfflinePackageSource()
    logger.info("Using NuGet package source at %s", feed_url)
    return NuGetPackageSource(feed_url=feed_url, timeout=timeout)
