"""Legacy project loader built on ElementTree.

Reads a legacy MSBuild descriptor and produces an ``EvaluatedProject``:
- PropertyGroup / ItemGroup / Import / Target / Choose elements, in order
- sibling packages.config entries
- SDK-style detection (``<Project Sdk=...>`` or ``<Import Sdk=...>``)

This is not an MSBuild evaluator.  ``$(Name)`` references in item
includes and metadata are substituted from declared properties; nothing
else is evaluated.
"""

import logging
import os
import xml.etree.ElementTree as ET
from typing import List, Optional

from .errors import ProjectLoadError
from .models import (
    EvaluatedProject,
    Import,
    Item,
    ItemGroup,
    PackageReference,
    Property,
    PropertyGroup,
    Target,
)

logger = logging.getLogger(__name__)

MSBUILD_NAMESPACE = "http://schemas.microsoft.com/developer/msbuild/2003"


def _strip_namespace(tag: str) -> str:
    """Remove XML namespace prefix from a tag.

    '{http://schemas.microsoft.com/developer/msbuild/2003}Project' -> 'Project'
    """
    if tag.startswith("{"):
        return tag.split("}", 1)[1]
    return tag


def _local_findall(element: ET.Element, local_name: str) -> List[ET.Element]:
    """Find all child elements by local name, ignoring namespaces."""
    return [
        child for child in element
        if _strip_namespace(child.tag) == local_name
    ]


def strip_namespaces(element: ET.Element) -> ET.Element:
    """Drop the MSBuild namespace from an element tree, in place."""
    for node in element.iter():
        if isinstance(node.tag, str):
            node.tag = _strip_namespace(node.tag)
    return element


def _text(element: ET.Element) -> str:
    return (element.text or "").strip()


def _read_property_group(element: ET.Element) -> PropertyGroup:
    group = PropertyGroup(
        condition=element.get("Condition"),
        label=element.get("Label"),
    )
    for child in element:
        if not isinstance(child.tag, str):
            continue  # comments
        group.properties.append(Property(
            name=_strip_namespace(child.tag),
            value=_text(child),
            condition=child.get("Condition"),
        ))
    return group


def _read_item(element: ET.Element, group_condition: Optional[str] = None) -> Item:
    item = Item(
        item_type=_strip_namespace(element.tag),
        include=element.get("Include", ""),
        update=element.get("Update"),
        remove=element.get("Remove"),
        condition=element.get("Condition"),
        group_condition=group_condition,
    )
    # Metadata may be declared as attributes or as child elements.
    for name, value in element.attrib.items():
        if name not in ("Include", "Update", "Remove", "Condition", "Exclude"):
            item.metadata[name] = value
    if element.get("Exclude"):
        item.metadata["Exclude"] = element.get("Exclude")
    for child in element:
        if isinstance(child.tag, str):
            item.metadata[_strip_namespace(child.tag)] = _text(child)
    return item


def _read_item_group(element: ET.Element) -> ItemGroup:
    group = ItemGroup(
        condition=element.get("Condition"),
        label=element.get("Label"),
    )
    for child in element:
        if isinstance(child.tag, str):
            group.items.append(_read_item(child, group.condition))
    return group


def _read_target(element: ET.Element) -> Target:
    return Target(
        name=element.get("Name", ""),
        before_targets=element.get("BeforeTargets"),
        after_targets=element.get("AfterTargets"),
        depends_on_targets=element.get("DependsOnTargets"),
        condition=element.get("Condition"),
        children=[c for c in element if isinstance(c.tag, str)],
        element=element,
    )


def parse_packages_config(path: str) -> List[PackageReference]:
    """Parse a packages.config file.

    ``developmentDependency="true"`` becomes ``PrivateAssets=all``.
    Returns an empty list (with an error logged) when the file is
    malformed; packages.config problems never block a migration.
    """
    packages: List[PackageReference] = []
    try:
        root = ET.parse(path).getroot()
    except (ET.ParseError, OSError) as e:
        logger.error(f"Failed to parse packages.config at {path}: {e}")
        return packages

    for element in _local_findall(root, "package"):
        package_id = element.get("id")
        version = element.get("version")
        if not package_id or not version:
            continue
        package = PackageReference(
            package_id=package_id,
            version=version,
            target_framework=element.get("targetFramework"),
        )
        if (element.get("developmentDependency") or "").lower() == "true":
            package.metadata["PrivateAssets"] = "all"
        packages.append(package)

    logger.debug("Read %d packages from %s", len(packages), path)
    return packages


def is_sdk_style_root(root: ET.Element) -> bool:
    if root.get("Sdk"):
        return True
    return any(imp.get("Sdk") for imp in _local_findall(root, "Import"))


def load_project_source(source: str, path: str) -> EvaluatedProject:
    """Build an ``EvaluatedProject`` from descriptor XML text."""
    try:
        root = ET.fromstring(source)
    except ET.ParseError as e:
        raise ProjectLoadError(path, f"malformed XML: {e}") from e

    root = strip_namespaces(root)
    if root.tag != "Project":
        raise ProjectLoadError(path, f"root element is <{root.tag}>, expected <Project>")

    project = EvaluatedProject(path=path, is_sdk_style=is_sdk_style_root(root))

    for child in root:
        if not isinstance(child.tag, str):
            continue
        tag = child.tag
        if tag == "PropertyGroup":
            project.property_groups.append(_read_property_group(child))
        elif tag == "ItemGroup":
            project.item_groups.append(_read_item_group(child))
        elif tag == "Import":
            project.imports.append(Import(
                path=child.get("Project", ""),
                condition=child.get("Condition"),
                label=child.get("Label"),
            ))
        elif tag == "Target":
            project.targets.append(_read_target(child))
        elif tag == "Choose":
            project.choose_elements.append(child)
        elif tag == "ImportGroup":
            for imp in _local_findall(child, "Import"):
                project.imports.append(Import(
                    path=imp.get("Project", ""),
                    condition=imp.get("Condition") or child.get("Condition"),
                    label=child.get("Label"),
                ))

    _expand_items(project)
    return project


def _expand_items(project: EvaluatedProject) -> None:
    for item in project.all_items():
        if "$(" in item.include:
            item.include = project.expand(item.include)
        for key, value in list(item.metadata.items()):
            if value and "$(" in value:
                item.metadata[key] = project.expand(value)


def load_project(path: str) -> EvaluatedProject:
    """Load a legacy descriptor (and its packages.config) from disk."""
    try:
        with open(path, "r", encoding="utf-8-sig") as f:
            source = f.read()
    except OSError as e:
        raise ProjectLoadError(path, f"cannot read file: {e}") from e

    project = load_project_source(source, path)

    packages_config = os.path.join(os.path.dirname(os.path.abspath(path)), "packages.config")
    if os.path.isfile(packages_config):
        logger.info(f"Found packages.config at {packages_config}")
        project.packages_config = parse_packages_config(packages_config)

    return project
