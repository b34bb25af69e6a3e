"""Central Package Management (Directory.Packages.props).

* ``classify_package`` -- group packages by purpose for a readable file
* ``ExistingCpmDetector`` -- find and read an existing props file
* ``CentralPackageManagementGenerator`` -- render and write the props file
* ``strip_versions`` -- drop ``Version`` from project PackageReferences
"""

import logging
import os
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, Dict, Iterable, List, Optional

from ..models import PackageReference, VersionConflict
from ..migrator.writer import serialize, write_text
from ..project_loader import strip_namespaces
from .conflicts import merge_with_existing

logger = logging.getLogger(__name__)

PROPS_FILE_NAME = "Directory.Packages.props"


class PackageCategory(IntEnum):
    MICROSOFT_RUNTIME = 1
    RUNTIME = 2
    THIRD_PARTY_RUNTIME = 3
    TESTING = 4
    BUILD_TOOL = 5
    ANALYZER = 6
    DEVELOPMENT_ONLY = 7


CATEGORY_COMMENTS = {
    PackageCategory.MICROSOFT_RUNTIME: "Microsoft Runtime and Framework Packages",
    PackageCategory.RUNTIME: "Runtime Packages",
    PackageCategory.THIRD_PARTY_RUNTIME: "Third-Party Runtime Packages",
    PackageCategory.TESTING: "Testing Framework Packages",
    PackageCategory.BUILD_TOOL: "Build Tools Applied Globally",
    PackageCategory.ANALYZER: "Code Analysis Tools (Applied Globally)",
    PackageCategory.DEVELOPMENT_ONLY: "Development and Design-Time Packages",
}

GLOBAL_CATEGORIES = (PackageCategory.ANALYZER, PackageCategory.BUILD_TOOL)

_ANALYZERS = (
    "stylecop.analyzers", "sonaranalyzer.csharp", "roslynator.analyzers",
    "microsoft.codeanalysis.netanalyzers", "microsoft.codeanalysis.fxcopanalyzers",
    "meziantou.analyzer", "securitycodescan",
)
_BUILD_TOOLS = (
    "microsoft.sourcelink.", "nerdbank.gitversioning", "gitversion",
    "minver", "msbuild.sdk.extras", "microsoft.build.",
)
_TESTING = (
    "microsoft.net.test.sdk", "xunit", "nunit", "mstest.", "moq",
    "fluentassertions", "coverlet.", "nsubstitute", "fakeiteasy", "shouldly",
    "autofixture", "bogus",
)
_RUNTIME = (
    "newtonsoft.json", "serilog", "nlog", "log4net", "polly", "dapper",
    "automapper", "mediatr", "fluentvalidation",
)


def classify_package(package_id: str, metadata: Optional[Dict[str, str]] = None) -> PackageCategory:
    """Bucket a package for grouping in Directory.Packages.props."""
    lowered = package_id.lower()
    if lowered.endswith(".analyzers") or lowered.startswith(_ANALYZERS):
        return PackageCategory.ANALYZER
    if lowered.startswith(_BUILD_TOOLS):
        return PackageCategory.BUILD_TOOL
    if lowered.startswith(_TESTING):
        return PackageCategory.TESTING
    private_assets = next(
        (v for k, v in (metadata or {}).items() if k.lower() == "privateassets"), ""
    )
    if private_assets.strip().lower() == "all":
        return PackageCategory.DEVELOPMENT_ONLY
    if lowered.startswith(("microsoft.", "system.")):
        return PackageCategory.MICROSOFT_RUNTIME
    if lowered.startswith(_RUNTIME):
        return PackageCategory.RUNTIME
    return PackageCategory.THIRD_PARTY_RUNTIME


# ── Existing props ───────────────────────────────────────────────────


@dataclass
class ExistingCpm:
    path: str
    versions: Dict[str, str] = field(default_factory=dict)
    global_references: Dict[str, str] = field(default_factory=dict)

    @property
    def all_versions(self) -> Dict[str, str]:
        merged = dict(self.versions)
        merged.update(self.global_references)
        return merged


class ExistingCpmDetector:
    """Locate a Directory.Packages.props at or above a directory."""

    def detect(self, directory: str) -> Optional[ExistingCpm]:
        current = os.path.abspath(directory)
        while True:
            candidate = os.path.join(current, PROPS_FILE_NAME)
            if os.path.isfile(candidate):
                return self.read(candidate)
            parent = os.path.dirname(current)
            if parent == current:
                return None
            current = parent

    def read(self, path: str) -> Optional[ExistingCpm]:
        try:
            root = strip_namespaces(ET.parse(path).getroot())
        except (ET.ParseError, OSError) as e:
            logger.warning(f"Could not read existing {path}: {e}")
            return None

        existing = ExistingCpm(path=path)
        for node in root.iter("PackageVersion"):
            if node.get("Include") and node.get("Version"):
                existing.versions[node.get("Include")] = node.get("Version")
        for node in root.iter("GlobalPackageReference"):
            if node.get("Include") and node.get("Version"):
                existing.global_references[node.get("Include")] = node.get("Version")
        logger.info(
            "Found existing %s with %d packages", path, len(existing.versions)
        )
        return existing


# ── Generation ───────────────────────────────────────────────────────


@dataclass
class CpmResult:
    path: str
    xml: str
    package_count: int
    written: bool = False
    warnings: List[str] = field(default_factory=list)


class CentralPackageManagementGenerator:
    """Render and write Directory.Packages.props."""

    def __init__(self, detector: Optional[ExistingCpmDetector] = None):
        self._detector = detector or ExistingCpmDetector()

    def detect(self, directory: str) -> Optional[ExistingCpm]:
        return self._detector.detect(directory)

    def generate(
        self,
        directory: str,
        conflicts: Dict[str, VersionConflict],
        packages: Iterable[PackageReference] = (),
        dry_run: bool = False,
        existing: Optional[ExistingCpm] = None,
        before_write: Optional[Callable[[str], None]] = None,
    ) -> CpmResult:
        """Build the props file for ``directory`` and write it unless dry-run.

        ``packages`` supplies per-package metadata (``PrivateAssets``) for
        categorisation.  ``existing`` is detected from ``directory`` when not
        given.  ``before_write`` is called with the path of a props file that
        is about to be overwritten.
        """
        path = os.path.join(os.path.abspath(directory), PROPS_FILE_NAME)
        metadata: Dict[str, Dict[str, str]] = {}
        for package in packages:
            metadata.setdefault(package.key, {}).update(package.metadata)

        if existing is None:
            existing = self.detect(directory)
        existing_versions = existing.all_versions if existing is not None else {}
        versions, warnings = merge_with_existing(conflicts, existing_versions)

        root = self.build_tree(versions, metadata)
        xml = serialize(root)
        result = CpmResult(path=path, xml=xml, package_count=len(versions), warnings=warnings)

        if dry_run:
            logger.info("[DRY RUN] Would write %s with %d packages", path, len(versions))
            return result

        if before_write is not None and os.path.isfile(path):
            before_write(path)
        write_text(path, xml)
        result.written = True
        logger.info("Wrote %s with %d packages", path, len(versions))
        return result

    @staticmethod
    def build_tree(
        versions: Dict[str, str], metadata: Optional[Dict[str, Dict[str, str]]] = None
    ) -> ET.Element:
        metadata = metadata or {}
        root = ET.Element("Project")
        root.append(ET.Comment(" Central Package Management "))
        group = ET.SubElement(root, "PropertyGroup")
        ET.SubElement(group, "ManagePackageVersionsCentrally").text = "true"
        ET.SubElement(group, "CentralPackageTransitivePinningEnabled").text = "true"

        by_category: Dict[PackageCategory, List[str]] = {}
        for package_id in versions:
            category = classify_package(package_id, metadata.get(package_id.lower()))
            by_category.setdefault(category, []).append(package_id)

        for category in sorted(by_category):
            ids = sorted(by_category[category], key=str.lower)
            root.append(ET.Comment(f" {CATEGORY_COMMENTS[category]} "))
            items = ET.SubElement(root, "ItemGroup")
            tag = "GlobalPackageReference" if category in GLOBAL_CATEGORIES else "PackageVersion"
            for package_id in ids:
                ET.SubElement(items, tag, {"Include": package_id, "Version": versions[package_id]})
        return root


# ── Project rewriting ────────────────────────────────────────────────

_PACKAGE_REFERENCE_TAG = re.compile(r"<PackageReference\b[^>]*>", re.IGNORECASE)
_VERSION_ATTR = re.compile(r"\s+Version\s*=\s*(\"[^\"]*\"|'[^']*')", re.IGNORECASE)


def strip_versions(xml: str) -> str:
    """Remove ``Version`` attributes from PackageReference elements.

    References carrying ``VersionOverride`` keep their attributes.  The
    rest of the text, formatting included, is left untouched.
    """

    def _strip(match):
        tag = match.group(0)
        if "versionoverride" in tag.lower():
            return tag
        return _VERSION_ATTR.sub("", tag, count=1)

    return _PACKAGE_REFERENCE_TAG.sub(_strip, xml)
