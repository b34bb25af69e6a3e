"""Structural checks on migrated project XML.

Run after aggregation, before finalizing.  Findings are warnings only; a
project that fails a check has already been written and stays written.
"""

import logging
import xml.etree.ElementTree as ET
from typing import List

logger = logging.getLogger(__name__)

KNOWN_SDKS = (
    "Microsoft.NET.Sdk",
    "MSBuild.SDK.SystemWeb",
)


def validate_project_xml(xml: str) -> List[str]:
    """Return the problems found in a migrated descriptor."""
    try:
        root = ET.fromstring(xml)
    except ET.ParseError as e:
        return [f"output is not well-formed XML: {e}"]

    if root.tag != "Project":
        return [f"root element is <{root.tag}>, expected <Project>"]

    issues = []
    sdk = (root.get("Sdk") or "").strip()
    if not sdk:
        issues.append("missing Sdk attribute")
    elif not sdk.lower().startswith(tuple(s.lower() for s in KNOWN_SDKS)):
        issues.append(f"unusual Sdk value: {sdk}")
    if root.get("ToolsVersion") is not None:
        issues.append("ToolsVersion attribute is still present")

    single = [e for e in root.iter("TargetFramework") if (e.text or "").strip()]
    multi = [e for e in root.iter("TargetFrameworks") if (e.text or "").strip()]
    if not single and not multi:
        issues.append("no TargetFramework or TargetFrameworks property")
    elif single and multi:
        issues.append("both TargetFramework and TargetFrameworks are set")

    seen = set()
    for reference in root.iter("PackageReference"):
        include = (reference.get("Include") or "").lower()
        if not include:
            continue
        if include in seen:
            issues.append(f"duplicate PackageReference: {reference.get('Include')}")
        seen.add(include)

    return issues
