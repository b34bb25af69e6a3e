"""SDK type classifier.

Inspects an evaluated legacy project and returns exactly one
``SdkVariant``.  Rules run first-match-wins, most specific first:

1. file-extension hard stops (database, docker-compose, shared projects)
2. declared-package fingerprints (Functions, Blazor, gRPC, MAUI, hosting)
3. legacy ProjectTypeGuids (UWP, Office, web application / web site)
4. .NET Framework fallback
5. desktop item probes (WPF / Windows Forms)

The only file-system access is the injected ``file_exists`` predicate.
"""

import logging
import os
from typing import Callable, List, Optional, Tuple

from ..models import EvaluatedProject, SdkVariant, SdkVariantKind
from ..versioning import (
    DEFAULT_MODERN_FRAMEWORK,
    convert_framework_version,
    is_modern_framework,
    is_net_framework,
    sort_frameworks,
)
from .registry import VariantRegistry

logger = logging.getLogger(__name__)

# ── Project type identifiers ─────────────────────────────────────────

UWP_GUID = "{A5A43C5B-DE2A-4C0C-9213-0A381AF9435A}"
OFFICE_GUID = "{BAA0C2D2-18E2-41B9-852F-F413020CAA33}"
WEB_APPLICATION_GUID = "{349C5851-65DF-11DA-9384-00065B846F21}"
WEB_SITE_GUID = "{E24C65DC-7377-472B-9ABA-BC803B73C61A}"
BLAZOR_GUID = "{A9ACE9BB-CECE-4E62-9AA4-C7E7C5BD2124}"

UNMIGRATABLE_EXTENSIONS = {
    ".sqlproj": "database project",
    ".dcproj": "docker-compose orchestration project",
    ".shproj": "shared project",
}

_IN_PROCESS_FUNCTIONS = ("microsoft.net.sdk.functions", "microsoft.azure.webjobs")
_ISOLATED_FUNCTIONS = ("microsoft.azure.functions.worker",)


def _any_prefix(package_ids: List[str], prefixes: Tuple[str, ...]) -> bool:
    return any(p.startswith(prefix) for p in package_ids for prefix in prefixes)


class SdkTypeClassifier:
    """Classify legacy projects into SDK variants.

    Args:
        file_exists: predicate used for sibling-file probes
            (defaults to ``os.path.isfile``)
        target_framework: optional override for single-targeted projects
    """

    def __init__(
        self,
        file_exists: Optional[Callable[[str], bool]] = None,
        target_framework: Optional[str] = None,
    ):
        self._file_exists = file_exists or os.path.isfile
        self._target_framework = target_framework

    def classify(self, project: EvaluatedProject) -> SdkVariant:
        reason = UNMIGRATABLE_EXTENSIONS.get(project.extension)
        if reason:
            logger.warning(f"{project.path} is a {reason} and cannot be migrated")
            return SdkVariant.unmigratable(reason)

        try:
            frameworks, multi = self.compute_frameworks(project)
            variant = self._classify_kind(project, frameworks)
        except Exception as e:
            logger.error(f"Classification failed for {project.path}: {e}", exc_info=True)
            return SdkVariant.unmigratable(f"classification failed: {e}")

        if not variant.is_migratable:
            return variant

        variant.frameworks = frameworks
        variant.multi_targeting = multi
        strategy = VariantRegistry.for_variant(variant)
        if strategy is not None:
            variant.sdk = strategy.sdk

        logger.info(
            "Classified %s as %s (%s)",
            project.name,
            variant.kind.value,
            ";".join(frameworks),
        )
        return variant

    # ── Frameworks ───────────────────────────────────────────────

    def compute_frameworks(self, project: EvaluatedProject) -> Tuple[List[str], bool]:
        """Target monikers for the project and whether it multi-targets."""
        explicit_multi = project.get_property("TargetFrameworks")
        if explicit_multi:
            frameworks = [f.strip() for f in explicit_multi.split(";") if f.strip()]
            return self._with_modern_fallback(frameworks), True

        versions = list(dict.fromkeys(project.explicit_values("TargetFrameworkVersion")))
        profiles = list(dict.fromkeys(project.explicit_values("TargetFrameworkProfile")))

        if len(versions) > 1 or len(profiles) > 1:
            frameworks = []
            for version, profile in self._version_profile_pairs(project):
                frameworks.append(convert_framework_version(version, profile))
            return self._with_modern_fallback(frameworks), True

        explicit = project.get_property("TargetFramework")
        if explicit:
            return [explicit], False
        if self._target_framework:
            return [self._target_framework], False

        return [
            convert_framework_version(
                project.get_property("TargetFrameworkVersion"),
                project.get_property("TargetFrameworkProfile"),
            )
        ], False

    @staticmethod
    def _version_profile_pairs(project: EvaluatedProject) -> List[Tuple[Optional[str], Optional[str]]]:
        # A profile declared in the same group as a version belongs to it.
        pairs = []
        for group in project.property_groups:
            version = None
            profile = None
            for prop in group.properties:
                if prop.name == "TargetFrameworkVersion" and prop.value:
                    version = prop.value
                elif prop.name == "TargetFrameworkProfile" and prop.value:
                    profile = prop.value
            if version or (profile and profile.startswith("Profile")):
                pairs.append((version, profile))
        return pairs

    @staticmethod
    def _with_modern_fallback(frameworks: List[str]) -> List[str]:
        if not any(is_modern_framework(f) for f in frameworks):
            frameworks = frameworks + [DEFAULT_MODERN_FRAMEWORK]
        return sort_frameworks(frameworks)

    # ── Kind ─────────────────────────────────────────────────────

    def _classify_kind(self, project: EvaluatedProject, frameworks: List[str]) -> SdkVariant:
        packages = [p.lower() for p in project.declared_package_ids()]
        primary = self._primary_framework(frameworks)

        variant = self._classify_by_packages(project, packages)
        if variant is not None:
            return variant

        variant = self._classify_by_type_guids(project, packages, primary)
        if variant is not None:
            return variant

        if any(is_net_framework(f) for f in frameworks) and not any(
            is_modern_framework(f) for f in frameworks
        ):
            return SdkVariant(kind=SdkVariantKind.STANDARD_LIBRARY)

        return self._classify_desktop(project, primary)

    def _classify_by_packages(
        self, project: EvaluatedProject, packages: List[str]
    ) -> Optional[SdkVariant]:
        in_process = _any_prefix(packages, _IN_PROCESS_FUNCTIONS)
        isolated = _any_prefix(packages, _ISOLATED_FUNCTIONS)
        has_host_json = self._file_exists(os.path.join(project.directory, "host.json"))
        if in_process or isolated or (has_host_json and "microsoft.azure.functions.extensions" in packages):
            return SdkVariant(
                kind=SdkVariantKind.WEB_FUNCTIONS,
                needs_isolated_worker=in_process and not isolated,
            )

        if _any_prefix(packages, ("microsoft.aspnetcore.components.webassembly",)):
            return SdkVariant(kind=SdkVariantKind.BLAZOR_WASM)
        if _any_prefix(packages, ("grpc.aspnetcore",)):
            return SdkVariant(kind=SdkVariantKind.WEB)
        if _any_prefix(packages, ("microsoft.maui",)) or "xamarin.forms" in packages:
            return SdkVariant(kind=SdkVariantKind.MAUI)
        if _any_prefix(packages, ("microsoft.extensions.hosting",)) and not _any_prefix(
            packages, ("microsoft.aspnetcore",)
        ):
            return SdkVariant(kind=SdkVariantKind.WORKER)
        return None

    def _classify_by_type_guids(
        self, project: EvaluatedProject, packages: List[str], primary: str
    ) -> Optional[SdkVariant]:
        guids = (project.get_property("ProjectTypeGuids") or "").upper()
        if not guids:
            return None

        if UWP_GUID in guids:
            return SdkVariant.unmigratable("UWP project")
        if OFFICE_GUID in guids:
            return SdkVariant.unmigratable("Office add-in project")
        if WEB_APPLICATION_GUID in guids or WEB_SITE_GUID in guids:
            if is_net_framework(primary):
                logger.info("Detected .NET Framework web project - using MSBuild.SDK.SystemWeb")
                return SdkVariant(kind=SdkVariantKind.LEGACY_WEB_FRAMEWORK)
            return SdkVariant(kind=SdkVariantKind.WEB)
        if BLAZOR_GUID in guids:
            return SdkVariant(kind=SdkVariantKind.BLAZOR_WASM)
        return None

    def _classify_desktop(self, project: EvaluatedProject, primary: str) -> SdkVariant:
        has_wpf = bool(
            project.items_of_type("ApplicationDefinition") or project.items_of_type("Page")
        )
        has_winforms = any(
            (item.get("SubType") or "") in ("Form", "UserControl")
            for item in project.items_of_type("Compile")
        )
        if not (has_wpf or has_winforms):
            return SdkVariant(kind=SdkVariantKind.STANDARD_LIBRARY)

        if primary.lower().startswith("netcoreapp3"):
            return SdkVariant(
                kind=SdkVariantKind.WINDOWS_DESKTOP,
                use_wpf=has_wpf,
                use_windows_forms=has_winforms,
            )
        if is_modern_framework(primary):
            return SdkVariant(
                kind=SdkVariantKind.STANDARD_LIBRARY,
                use_wpf=has_wpf,
                use_windows_forms=has_winforms,
            )
        return SdkVariant(kind=SdkVariantKind.STANDARD_LIBRARY)

    @staticmethod
    def _primary_framework(frameworks: List[str]) -> str:
        # Multi-targeted projects are judged by their oldest legacy target.
        for tfm in frameworks:
            if not is_modern_framework(tfm):
                return tfm
        return frameworks[0] if frameworks else DEFAULT_MODERN_FRAMEWORK
