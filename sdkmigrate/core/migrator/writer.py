"""Descriptor tree -> XML text.

SDK-style descriptors carry no XML declaration, use two-space indentation
and the platform's line endings.
"""

import copy
import os
import xml.etree.ElementTree as ET


def serialize(root: ET.Element, indent: str = "  ") -> str:
    """Render ``root`` as SDK-style descriptor text."""
    tree = copy.deepcopy(root)
    ET.indent(tree, space=indent)
    text = ET.tostring(tree, encoding="unicode", short_empty_elements=True)
    return text.replace("\n", os.linesep) + os.linesep


def write_text(path: str, text: str) -> None:
    """Write descriptor text, keeping ``os.linesep`` endings as rendered."""
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(text)
