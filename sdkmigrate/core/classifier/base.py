"""SDK variant strategy base class.

A variant strategy owns what is unique to one target SDK:

* the ``Sdk`` attribute written on the new ``<Project>`` root;
* which legacy items the SDK includes implicitly (and must be suppressed);
* extra properties the SDK needs;
* packages and references the SDK already brings in.

Classification and migration stay in core -- strategies only hold the
per-SDK knowledge, so the classifier dispatches exactly once.
"""

import re
from abc import ABC, abstractmethod
from typing import FrozenSet, List, Tuple

from ..models import EvaluatedProject, Item, SdkVariant, SdkVariantKind

_GLOB_CACHE = {}


def normalize_path(path: str) -> str:
    path = path.replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path


def glob_match(path: str, pattern: str) -> bool:
    """Match an MSBuild-style glob (``**``, ``*``, ``?``) case-insensitively."""
    regex = _GLOB_CACHE.get(pattern)
    if regex is None:
        out = []
        i = 0
        pat = pattern.replace("\\", "/")
        while i < len(pat):
            if pat.startswith("**/", i):
                out.append("(?:.*/)?")
                i += 3
            elif pat.startswith("**", i):
                out.append(".*")
                i += 2
            elif pat[i] == "*":
                out.append("[^/]*")
                i += 1
            elif pat[i] == "?":
                out.append("[^/]")
                i += 1
            else:
                out.append(re.escape(pat[i]))
                i += 1
        regex = re.compile("^" + "".join(out) + "$", re.IGNORECASE)
        _GLOB_CACHE[pattern] = regex
    return bool(regex.match(normalize_path(path)))


def _extension(path: str) -> str:
    name = normalize_path(path).rsplit("/", 1)[-1]
    return "." + name.rsplit(".", 1)[-1].lower() if "." in name else ""


def _file_name(path: str) -> str:
    return normalize_path(path).rsplit("/", 1)[-1].lower()


COMPILE_EXTENSIONS = (".cs", ".vb", ".fs")


# ── Abstract Base Class ──────────────────────────────────────────────


class VariantStrategy(ABC):
    """Abstract base for SDK variant strategies."""

    # ── Identity ─────────────────────────────────────────────────

    @property
    @abstractmethod
    def kind(self) -> SdkVariantKind:
        """The variant this strategy handles."""
        ...

    @property
    @abstractmethod
    def display_name(self) -> str:
        ...

    @property
    def sdk(self) -> str:
        """Value of the ``Sdk`` attribute on the migrated project."""
        return "Microsoft.NET.Sdk"

    # ── Implicit inclusion ───────────────────────────────────────

    @property
    def content_patterns(self) -> List[str]:
        """Glob patterns the SDK picks up as Content."""
        return []

    @property
    def implicit_packages(self) -> FrozenSet[str]:
        """Package ids (lower-cased) the SDK brings in by itself."""
        return frozenset()

    @property
    def implicit_references(self) -> FrozenSet[str]:
        """Assembly names (lower-cased) the SDK references by itself."""
        return frozenset()

    def is_implicitly_included(self, item: Item, variant: SdkVariant) -> bool:
        """True when the target SDK would include ``item`` on its own.

        A conditional item never is: the SDK globs apply in every
        configuration.  Whether the item carries metadata worth keeping is
        decided by the migrator.
        """
        if item.effective_condition:
            return False
        return self.matches_default_globs(item, variant)

    def matches_default_globs(self, item: Item, variant: SdkVariant) -> bool:
        """True when the SDK default globs cover ``item``, conditions aside."""
        include = item.include
        if not include or item.has_metadata("Link"):
            return False
        path = normalize_path(include)
        if path.startswith("obj/") or path.startswith("bin/") or "*" in path:
            return False

        item_type = item.item_type
        ext = _extension(path)
        name = _file_name(path)

        if item_type == "Compile":
            return ext in COMPILE_EXTENSIONS
        if item_type == "EmbeddedResource":
            return ext == ".resx"
        if item_type == "Content":
            if name in ("app.config", "packages.config"):
                return True
            return any(glob_match(path, p) for p in self.content_patterns)
        if item_type == "None":
            if ext == ".config" and name not in ("app.config", "web.config"):
                return True
            if ext == ".json" and not name.startswith("appsettings"):
                return True
            return ext in (".ts", ".tsx", ".md", ".txt")
        if variant.use_wpf or self.kind == SdkVariantKind.WINDOWS_DESKTOP:
            return self._is_implicit_xaml(item_type, path, ext, name)
        return False

    @staticmethod
    def _is_implicit_xaml(item_type: str, path: str, ext: str, name: str) -> bool:
        if item_type == "ApplicationDefinition":
            return name == "app.xaml"
        if item_type == "Page":
            return ext == ".xaml"
        if item_type == "Resource":
            return ext in (".png", ".jpg", ".jpeg", ".gif", ".bmp", ".ico")
        return False

    # ── Properties ───────────────────────────────────────────────

    def extra_properties(
        self, project: EvaluatedProject, variant: SdkVariant
    ) -> List[Tuple[str, str]]:
        """Properties the migrated project needs for this SDK."""
        props: List[Tuple[str, str]] = []
        if variant.use_wpf:
            props.append(("UseWPF", "true"))
        if variant.use_windows_forms:
            props.append(("UseWindowsForms", "true"))
        return props

    def warnings(self, project: EvaluatedProject, variant: SdkVariant) -> List[str]:
        """Variant-specific manual follow-ups to surface in the result."""
        return []

    def skips_compile_removal(self) -> bool:
        """Whether on-disk source enumeration should be skipped."""
        return False
