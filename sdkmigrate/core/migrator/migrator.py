"""Item and property migration pass.

Builds the SDK-style ``<Project>`` tree for one classified legacy project.
Every legacy element ends up in exactly one place: the output tree, the
``removed_elements`` log (with a reason), an unconverted reference, or a
warning.

Output order:

1. main PropertyGroup (frameworks, basic properties, variant extras)
2. conditional PropertyGroups
3. Choose / When / Otherwise
4. PackageReference, Reference, ProjectReference, COMReference groups
   (one ItemGroup per condition; item and ItemGroup conditions are combined)
5. remaining items (implicit-inclusion suppression applied)
6. ``Compile Remove`` for stray source files
7. custom Imports, then Targets
"""

import copy
import logging
import os
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ..classifier import VariantRegistry, glob_match, normalize_path
from ..classifier.base import VariantStrategy
from ..errors import MigrationError, UnmigratableProjectError
from ..models import (
    EvaluatedProject,
    Item,
    PackageReference,
    ReferenceResolution,
    SdkVariant,
    UnconvertedReference,
)
from ..references.transitive import TransitiveDependencyDetector
from ..versioning import DEFAULT_MODERN_FRAMEWORK, rewrite_framework_condition
from . import rules

logger = logging.getLogger(__name__)


@dataclass
class MigrationOutput:
    tree: ET.Element
    warnings: List[str] = field(default_factory=list)
    removed_elements: List[str] = field(default_factory=list)
    packages: List[PackageReference] = field(default_factory=list)
    unconverted: List[UnconvertedReference] = field(default_factory=list)


def enumerate_source_files(directory: str) -> List[str]:
    """Source files under ``directory``, relative and ``/``-separated.

    ``obj``, ``bin`` and ``publish`` directories are not descended into.
    """
    found = []
    for current, dirs, files in os.walk(directory):
        dirs[:] = [
            d for d in dirs
            if d.lower() not in rules.EXCLUDED_SOURCE_DIRS and not d.startswith(".")
        ]
        for name in files:
            rel = os.path.relpath(os.path.join(current, name), directory)
            found.append(rel.replace(os.sep, "/"))
    return sorted(found)


def _sub(parent: ET.Element, tag: str, text: Optional[str] = None, **attrs) -> ET.Element:
    element = ET.SubElement(parent, tag, {k: v for k, v in attrs.items() if v is not None})
    if text is not None:
        element.text = text
    return element


class _ConditionalGroups:
    """ItemGroups keyed by Condition; the unconditional group comes first."""

    def __init__(self, variant: SdkVariant):
        self._multi_targeting = variant.multi_targeting
        self._groups: Dict[Optional[str], ET.Element] = {}

    def group_for(self, condition: Optional[str]) -> ET.Element:
        if condition and self._multi_targeting:
            condition = rewrite_framework_condition(condition)
        if condition not in self._groups:
            self._groups[condition] = ET.Element(
                "ItemGroup", {"Condition": condition} if condition else {}
            )
        return self._groups[condition]

    def attach(self, root: ET.Element) -> None:
        ordered = sorted(self._groups.items(), key=lambda kv: kv[0] is not None)
        for _, group in ordered:
            if len(group):
                root.append(group)


class ItemAndPropertyMigrator:
    """Transform an ``EvaluatedProject`` into an SDK-style project tree.

    Args:
        file_enumerator: ``directory -> relative paths`` used to find source
            files the legacy project did not compile
        file_exists: predicate for AssemblyInfo and key-file probes
        enable_cpm: omit ``Version`` from PackageReference items
    """

    def __init__(
        self,
        file_enumerator: Optional[Callable[[str], Iterable[str]]] = None,
        file_exists: Optional[Callable[[str], bool]] = None,
        enable_cpm: bool = False,
    ):
        self._enumerate = file_enumerator or enumerate_source_files
        self._file_exists = file_exists or os.path.isfile
        self._enable_cpm = enable_cpm
        self._transitive = TransitiveDependencyDetector()

    def migrate(
        self,
        project: EvaluatedProject,
        variant: SdkVariant,
        resolution: Optional[ReferenceResolution] = None,
    ) -> MigrationOutput:
        if project.is_empty:
            raise MigrationError(f"{project.path}: project has no property or item groups")
        if not variant.is_migratable:
            raise UnmigratableProjectError(project.path, variant.reason or str(variant))

        resolution = resolution or ReferenceResolution()
        strategy = VariantRegistry.for_variant(variant)
        root = ET.Element("Project", {"Sdk": variant.sdk})
        out = MigrationOutput(tree=root)

        out.warnings.extend(strategy.warnings(project, variant))
        out.warnings.extend(resolution.warnings)

        self._main_property_group(root, project, variant, strategy, out)
        self._conditional_property_groups(root, project, variant, out)
        self._choose_elements(root, project, variant)
        self._package_references(root, project, variant, strategy, resolution, out)
        self._references(root, variant, strategy, resolution, out)
        self._project_references(root, project, variant, out)
        self._com_references(root, project, variant)
        self._other_items(root, project, variant, strategy, out)
        if not strategy.skips_compile_removal():
            self._compile_removals(root, project, out)
        self._imports(root, project, out)
        self._targets(root, project, out)

        logger.info(
            "Migrated %s: %d packages, %d unconverted references, %d removed elements",
            project.name, len(out.packages), len(out.unconverted), len(out.removed_elements),
        )
        return out

    # ── Properties ───────────────────────────────────────────────

    def _main_property_group(
        self,
        root: ET.Element,
        project: EvaluatedProject,
        variant: SdkVariant,
        strategy: VariantStrategy,
        out: MigrationOutput,
    ) -> None:
        group = _sub(root, "PropertyGroup")
        frameworks = variant.frameworks or [DEFAULT_MODERN_FRAMEWORK]
        if variant.multi_targeting:
            _sub(group, "TargetFrameworks", ";".join(frameworks))
        else:
            _sub(group, "TargetFramework", frameworks[0])

        emitted = set()

        def emit(name: str, value: Optional[str]) -> None:
            if value is None or name.lower() in emitted:
                return
            _sub(group, name, value)
            emitted.add(name.lower())

        assembly_name = project.get_property("AssemblyName")
        for name in rules.BASIC_PROPERTIES:
            if not project.has_explicit_property(name):
                continue
            value = project.expand(project.get_property(name))
            if name == "RootNamespace" and assembly_name is not None \
                    and value == project.expand(assembly_name):
                out.removed_elements.append("Property RootNamespace: same as AssemblyName")
                continue
            emit(name, value)

        for name, value in strategy.extra_properties(project, variant):
            emit(name, value)

        emit("GenerateAssemblyInfo", "false" if self._has_assembly_info(project) else "true")
        self._strong_naming(project, emit, out)

        handled = {p.lower() for p in rules.BASIC_PROPERTIES + rules.STRONG_NAMING_PROPERTIES}
        handled.update(p.lower() for p in rules.FRAMEWORK_PROPERTIES)
        for prop_group in project.property_groups:
            if prop_group.condition:
                continue
            for prop in prop_group.properties:
                lowered = prop.name.lower()
                if lowered in handled:
                    if lowered in rules.PROPERTIES_TO_REMOVE:
                        out.removed_elements.append(
                            f"Property {prop.name}: replaced by TargetFramework"
                        )
                    continue
                if lowered in rules.PROPERTIES_TO_REMOVE:
                    out.removed_elements.append(f"Property {prop.name}: legacy-only property")
                elif prop.condition:
                    out.removed_elements.append(
                        f"Property {prop.name}: conditional default ({prop.condition.strip()})"
                    )
                elif lowered in emitted:
                    continue
                elif not prop.value:
                    out.removed_elements.append(f"Property {prop.name}: empty value")
                else:
                    emit(prop.name, project.expand(prop.value))

    def _has_assembly_info(self, project: EvaluatedProject) -> bool:
        if any(rules.is_assembly_info(i.include) for i in project.items_of_type("Compile")):
            return True
        candidates = (
            os.path.join("Properties", "AssemblyInfo.cs"),
            "AssemblyInfo.cs",
            os.path.join("My Project", "AssemblyInfo.vb"),
            "AssemblyInfo.vb",
        )
        return any(self._file_exists(os.path.join(project.directory, c)) for c in candidates)

    def _strong_naming(self, project: EvaluatedProject, emit, out: MigrationOutput) -> None:
        if (project.get_property("SignAssembly") or "").lower() != "true":
            return
        emit("SignAssembly", "true")

        key_file = project.expand(project.get_property("AssemblyOriginatorKeyFile"))
        if key_file:
            if os.path.isabs(key_file):
                key_file = os.path.relpath(key_file, project.directory)
            if not self._file_exists(os.path.join(project.directory, key_file)):
                out.warnings.append(f"Strong name key file not found: {key_file}")
            emit("AssemblyOriginatorKeyFile", key_file)

        if (project.get_property("DelaySign") or "").lower() == "true":
            emit("DelaySign", "true")

    def _conditional_property_groups(
        self,
        root: ET.Element,
        project: EvaluatedProject,
        variant: SdkVariant,
        out: MigrationOutput,
    ) -> None:
        keep = {p.lower() for p in rules.CONDITIONAL_PROPERTIES}
        grouped: Dict[str, List[Tuple[str, str]]] = {}

        for prop_group in project.property_groups:
            if not prop_group.condition:
                continue
            condition = prop_group.condition
            if variant.multi_targeting:
                condition = rewrite_framework_condition(condition)
            for prop in prop_group.properties:
                lowered = prop.name.lower()
                if lowered in (p.lower() for p in rules.FRAMEWORK_PROPERTIES):
                    # Carried by TargetFrameworks.
                    out.removed_elements.append(
                        f"Property {prop.name} ({prop_group.condition.strip()}): "
                        "replaced by TargetFrameworks"
                    )
                    continue
                if lowered not in keep:
                    out.removed_elements.append(
                        f"Property {prop.name} ({prop_group.condition.strip()}): SDK default"
                    )
                    continue
                if lowered == "outputpath" and rules.DEFAULT_OUTPUT_PATH.match(prop.value or ""):
                    out.removed_elements.append(
                        f"Property OutputPath ({prop_group.condition.strip()}): SDK default layout"
                    )
                    continue
                if not prop.value:
                    continue
                grouped.setdefault(condition, []).append((prop.name, project.expand(prop.value)))

        for condition, props in grouped.items():
            group = _sub(root, "PropertyGroup", Condition=condition)
            for name, value in props:
                _sub(group, name, value)

    def _choose_elements(
        self, root: ET.Element, project: EvaluatedProject, variant: SdkVariant
    ) -> None:
        for choose in project.choose_elements:
            element = copy.deepcopy(choose)
            if variant.multi_targeting:
                for node in element.iter():
                    if node.get("Condition"):
                        node.set("Condition", rewrite_framework_condition(node.get("Condition")))
            root.append(element)
            logger.debug("Preserved Choose construct in %s", project.name)

    # ── References ───────────────────────────────────────────────

    def _collect_packages(
        self, project: EvaluatedProject, resolution: ReferenceResolution
    ) -> List[PackageReference]:
        collected: List[PackageReference] = []
        for item in project.items_of_type("PackageReference"):
            metadata = {k: v for k, v in item.metadata.items() if k.lower() != "version"}
            collected.append(PackageReference(
                package_id=item.include,
                version=item.get("Version"),
                metadata=metadata,
                condition=item.effective_condition,
            ))

        from_config = [replace(p, metadata=dict(p.metadata)) for p in project.packages_config]
        self._transitive.detect(from_config)
        collected.extend(from_config)
        collected.extend(resolution.packages)
        return collected

    def _package_references(
        self,
        root: ET.Element,
        project: EvaluatedProject,
        variant: SdkVariant,
        strategy: VariantStrategy,
        resolution: ReferenceResolution,
        out: MigrationOutput,
    ) -> None:
        seen = set()
        groups = _ConditionalGroups(variant)
        for package in self._collect_packages(project, resolution):
            if not package.package_id or (package.key, package.condition) in seen:
                continue
            seen.add((package.key, package.condition))
            if package.key in strategy.implicit_packages:
                out.removed_elements.append(
                    f"PackageReference {package.package_id}: provided implicitly by {strategy.sdk}"
                )
                continue
            if package.is_transitive:
                out.removed_elements.append(
                    f"PackageReference {package.package_id}: transitive dependency"
                )
                continue

            attrs = {"Include": package.package_id}
            if package.version and not self._enable_cpm:
                attrs["Version"] = package.version
            element = ET.SubElement(groups.group_for(package.condition), "PackageReference", attrs)
            for key, value in package.metadata.items():
                if value:
                    _sub(element, key, value)
            out.packages.append(package)

        groups.attach(root)

    def _references(
        self,
        root: ET.Element,
        variant: SdkVariant,
        strategy: VariantStrategy,
        resolution: ReferenceResolution,
        out: MigrationOutput,
    ) -> None:
        for name in resolution.covered:
            out.removed_elements.append(f"Reference {name}: provided by a migrated package")
        for name in resolution.builtin:
            out.removed_elements.append(f"Reference {name}: implicit framework reference")

        groups = _ConditionalGroups(variant)
        for reference in resolution.unconverted:
            if reference.name.lower() in strategy.implicit_references:
                out.removed_elements.append(
                    f"Reference {reference.name}: implicit in {strategy.sdk}"
                )
                continue
            element = ET.SubElement(
                groups.group_for(reference.condition),
                "Reference",
                {"Include": reference.include or str(reference.identity)},
            )
            if reference.hint_path:
                _sub(element, "HintPath", reference.hint_path)
            if reference.private is not None:
                _sub(element, "Private", "True" if reference.private else "False")
            for key, value in reference.metadata.items():
                if value:
                    _sub(element, key, value)
            out.unconverted.append(reference)
            logger.info(
                "Preserved unconverted reference %s: %s", reference.name, reference.reason
            )

        groups.attach(root)

    def _project_references(
        self,
        root: ET.Element,
        project: EvaluatedProject,
        variant: SdkVariant,
        out: MigrationOutput,
    ) -> None:
        essential = {m.lower() for m in rules.PROJECT_REFERENCE_METADATA}
        groups = _ConditionalGroups(variant)
        for item in project.items_of_type("ProjectReference"):
            element = ET.SubElement(
                groups.group_for(item.group_condition), "ProjectReference", {"Include": item.include}
            )
            if item.condition:
                element.set("Condition", item.condition)
            dropped = []
            for key, value in item.metadata.items():
                if key.lower() in essential and value:
                    _sub(element, key, value)
                else:
                    dropped.append(key)
            if dropped:
                out.removed_elements.append(
                    f"ProjectReference {item.include}: dropped metadata {', '.join(dropped)}"
                )
        groups.attach(root)

    @staticmethod
    def _com_references(root: ET.Element, project: EvaluatedProject, variant: SdkVariant) -> None:
        items = project.items_of_type("COMReference")
        if not items:
            return
        groups = _ConditionalGroups(variant)
        for item in items:
            attrs = {"Include": item.include}
            if item.condition:
                attrs["Condition"] = item.condition
            element = ET.SubElement(groups.group_for(item.group_condition), "COMReference", attrs)
            for name in rules.COM_REFERENCE_METADATA:
                value = item.get(name)
                if value:
                    _sub(element, name, value)
            if not item.has_metadata("EmbedInteropTypes"):
                # SDK projects default to true; legacy behavior was false.
                _sub(element, "EmbedInteropTypes", "False")
        groups.attach(root)
        logger.info("Migrated %d COM references", len(items))

    # ── Other items ──────────────────────────────────────────────

    def _other_items(
        self,
        root: ET.Element,
        project: EvaluatedProject,
        variant: SdkVariant,
        strategy: VariantStrategy,
        out: MigrationOutput,
    ) -> None:
        groups = _ConditionalGroups(variant)
        glob_removals: List[ET.Element] = []

        for item_group in project.item_groups:
            for item in item_group.items:
                if item.item_type.lower() in rules.REFERENCE_ITEM_TYPES:
                    continue
                try:
                    element = self._migrate_item(item, variant, strategy, out, glob_removals)
                except Exception as e:
                    logger.warning(
                        f"Could not migrate {item.item_type} '{item.identity}': {e}",
                        exc_info=True,
                    )
                    out.warnings.append(
                        f"Skipped {item.item_type} '{item.identity}': {e}"
                    )
                    continue
                if element is not None:
                    groups.group_for(item_group.condition).append(element)

        # The unconditional group is attached first, ahead of the conditional includes.
        groups.group_for(None).extend(glob_removals)
        groups.attach(root)

    def _migrate_item(
        self,
        item: Item,
        variant: SdkVariant,
        strategy: VariantStrategy,
        out: MigrationOutput,
        glob_removals: List[ET.Element],
    ) -> Optional[ET.Element]:
        label = f"{item.item_type} {item.identity}"
        lowered_type = item.item_type.lower()

        if lowered_type in rules.ITEM_TYPES_TO_REMOVE:
            out.removed_elements.append(f"{label}: not used by SDK-style projects")
            return None
        if lowered_type in rules.EMPTY_ITEM_TYPES_TO_REMOVE and not item.metadata:
            out.removed_elements.append(f"{label}: empty placeholder")
            return None
        if lowered_type == "compile" and rules.is_assembly_info(item.include) \
                and not item.has_metadata("Link") and not item.effective_condition:
            out.removed_elements.append(f"{label}: included by SDK default globs")
            return None
        if lowered_type == "content" and normalize_path(item.include).lower().endswith(
            "packages.config"
        ):
            out.removed_elements.append(f"{label}: replaced by PackageReference")
            return None

        if item.include and strategy.is_implicitly_included(item, variant):
            custom = [m for m in rules.CUSTOM_METADATA if item.get(m)]
            if not custom:
                out.removed_elements.append(f"{label}: included implicitly by {strategy.sdk}")
                return None
            mode = "Include" if item.has_metadata("Link") else "Update"
            logger.debug("Using %s for SDK-default item with metadata: %s", mode, label)
            return self._item_element(item, mode)

        if item.include and item.effective_condition \
                and strategy.matches_default_globs(item, variant):
            # Out of the SDK glob, back in under the original condition.
            if not any(
                r.tag == item.item_type and r.get("Remove") == item.include for r in glob_removals
            ):
                glob_removals.append(ET.Element(item.item_type, {"Remove": item.include}))
            logger.debug("Conditional item covered by SDK globs: %s", label)

        return self._item_element(item, None)

    @staticmethod
    def _item_element(item: Item, mode: Optional[str]) -> ET.Element:
        attrs: Dict[str, str] = {}
        if mode is not None:
            attrs[mode] = item.include
        elif item.include:
            attrs["Include"] = item.include
        elif item.update:
            attrs["Update"] = item.update
        elif item.remove:
            attrs["Remove"] = item.remove
        exclude = item.get("Exclude")
        if exclude:
            attrs["Exclude"] = exclude
        if item.condition:
            attrs["Condition"] = item.condition

        element = ET.Element(item.item_type, attrs)
        for key, value in item.metadata.items():
            if key == "Exclude" or not value:
                continue
            _sub(element, key, value)
        return element

    def _compile_removals(
        self, root: ET.Element, project: EvaluatedProject, out: MigrationOutput
    ) -> None:
        extensions = rules.SOURCE_EXTENSIONS.get(project.extension, (".cs", ".vb"))
        compiled = set()
        patterns = []
        includes = [item.include for item in project.items_of_type("Compile")]
        # Compile items inside a preserved Choose stay compiled.
        for choose in project.choose_elements:
            includes.extend(node.get("Include", "") for node in choose.iter("Compile"))
        for include in includes:
            path = normalize_path(include)
            if "*" in path or "?" in path:
                patterns.append(path)
            elif path:
                compiled.add(path.lower())

        try:
            files = list(self._enumerate(project.directory))
        except OSError as e:
            out.warnings.append(f"Could not scan {project.directory} for source files: {e}")
            return

        stray = []
        for rel in files:
            path = normalize_path(rel)
            if not path.lower().endswith(extensions):
                continue
            if path.lower() in compiled or any(glob_match(path, p) for p in patterns):
                continue
            stray.append(path.replace("/", "\\"))

        if not stray:
            return
        group = _sub(root, "ItemGroup")
        for path in stray:
            _sub(group, "Compile", Remove=path)
        logger.debug("Added %d Compile Remove items for %s", len(stray), project.name)

    # ── Imports and targets ──────────────────────────────────────

    @staticmethod
    def _imports(root: ET.Element, project: EvaluatedProject, out: MigrationOutput) -> None:
        for imp in project.imports:
            if not imp.path:
                continue
            if rules.is_sdk_import(imp.path):
                out.removed_elements.append(f"Import {imp.path}: provided by the SDK")
                continue
            if rules.is_package_import(imp.path):
                out.removed_elements.append(
                    f"Import {imp.path}: package build assets are imported by PackageReference"
                )
                continue
            _sub(root, "Import", Project=imp.path, Condition=imp.condition, Label=imp.label)
            out.warnings.append(
                f"Preserved custom import: {imp.path}. Manual review recommended."
            )
            logger.info("Preserved custom import: %s", imp.path)

    @staticmethod
    def _targets(root: ET.Element, project: EvaluatedProject, out: MigrationOutput) -> None:
        for target in project.targets:
            if target.name == rules.NUGET_IMPORT_TARGET:
                out.removed_elements.append(
                    f"Target {target.name}: packages.config restore check"
                )
                continue
            if rules.is_sdk_target(target.name) and not target.children:
                out.removed_elements.append(f"Target {target.name}: empty SDK target")
                continue

            if target.element is not None:
                element = copy.deepcopy(target.element)
            else:
                element = ET.Element("Target", {"Name": target.name})
                for name, value in (
                    ("BeforeTargets", target.before_targets),
                    ("AfterTargets", target.after_targets),
                    ("DependsOnTargets", target.depends_on_targets),
                    ("Condition", target.condition),
                ):
                    if value:
                        element.set(name, value)
                element.extend(copy.deepcopy(c) for c in target.children)
            root.append(element)
            out.warnings.append(
                f"Preserved custom target '{target.name}'. Manual review recommended."
            )
            logger.info("Preserved custom target: %s", target.name)
