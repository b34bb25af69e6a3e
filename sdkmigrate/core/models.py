"""Data model for project migration.

Every structure here is created fresh for one migration run.  The
``EvaluatedProject`` is a read-only view of a legacy descriptor; the engine
never mutates it.  Only the accumulated ``PackageReference`` set survives
across projects (for version conflict resolution).
"""

import os
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional


_PROPERTY_REF = re.compile(r"\$\(([A-Za-z_][A-Za-z0-9_.\-]*)\)")


def combine_conditions(*conditions: Optional[str]) -> Optional[str]:
    """Join MSBuild conditions with ``And``; blanks are ignored."""
    present = [c.strip() for c in conditions if c and c.strip()]
    if not present:
        return None
    if len(present) == 1:
        return present[0]
    return " And ".join(f"({c})" for c in present)


# ── Legacy project view ──────────────────────────────────────────────


@dataclass
class Property:
    name: str
    value: str
    condition: Optional[str] = None


@dataclass
class PropertyGroup:
    condition: Optional[str] = None
    properties: List[Property] = field(default_factory=list)
    label: Optional[str] = None


@dataclass
class Item:
    """One legacy item, e.g. ``<Compile Include="Foo.cs" />``.

    ``item_type`` is open-ended; MSBuild allows custom item types.
    ``metadata`` keeps declaration order.
    ``group_condition`` is the Condition of the enclosing ItemGroup.
    """

    item_type: str
    include: str = ""
    update: Optional[str] = None
    remove: Optional[str] = None
    condition: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)
    group_condition: Optional[str] = None

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Case-insensitive metadata lookup."""
        lowered = name.lower()
        for key, value in self.metadata.items():
            if key.lower() == lowered:
                return value
        return default

    def has_metadata(self, name: str) -> bool:
        return self.get(name) is not None

    @property
    def identity(self) -> str:
        return self.include or self.update or self.remove or ""

    @property
    def effective_condition(self) -> Optional[str]:
        """ItemGroup and item conditions combined, or ``None``."""
        return combine_conditions(self.group_condition, self.condition)


@dataclass
class ItemGroup:
    condition: Optional[str] = None
    items: List[Item] = field(default_factory=list)
    label: Optional[str] = None


@dataclass
class Import:
    path: str
    condition: Optional[str] = None
    label: Optional[str] = None


@dataclass
class Target:
    name: str
    before_targets: Optional[str] = None
    after_targets: Optional[str] = None
    depends_on_targets: Optional[str] = None
    condition: Optional[str] = None
    children: List[ET.Element] = field(default_factory=list)
    element: Optional[ET.Element] = None  # original node, copied verbatim


@dataclass
class EvaluatedProject:
    """Evaluated view of a legacy project descriptor."""

    path: str
    property_groups: List[PropertyGroup] = field(default_factory=list)
    item_groups: List[ItemGroup] = field(default_factory=list)
    imports: List[Import] = field(default_factory=list)
    targets: List[Target] = field(default_factory=list)
    choose_elements: List[ET.Element] = field(default_factory=list)
    packages_config: List["PackageReference"] = field(default_factory=list)
    is_sdk_style: bool = False
    property_lookup: Optional[Callable[[str], Optional[str]]] = None

    # ── Paths ─────────────────────────────────────────────────────

    @property
    def directory(self) -> str:
        return os.path.dirname(os.path.abspath(self.path))

    @property
    def extension(self) -> str:
        return os.path.splitext(self.path)[1].lower()

    @property
    def name(self) -> str:
        return os.path.splitext(os.path.basename(self.path))[0]

    # ── Properties ────────────────────────────────────────────────

    def explicit_values(self, name: str) -> List[str]:
        """Every declared value of ``name``, conditional duplicates included."""
        lowered = name.lower()
        values = []
        for group in self.property_groups:
            for prop in group.properties:
                if prop.name.lower() == lowered and prop.value:
                    values.append(prop.value)
        return values

    def get_property(self, name: str) -> Optional[str]:
        """Resolve a property value.

        Uses the injected lookup when one was supplied by the evaluator;
        otherwise the last unconditional declaration wins, falling back to
        the first conditional one.
        """
        if self.property_lookup is not None:
            return self.property_lookup(name)

        lowered = name.lower()
        unconditional = None
        conditional = None
        for group in self.property_groups:
            for prop in group.properties:
                if prop.name.lower() != lowered:
                    continue
                if group.condition or prop.condition:
                    if conditional is None:
                        conditional = prop.value
                else:
                    unconditional = prop.value
        return unconditional if unconditional is not None else conditional

    def has_explicit_property(self, name: str) -> bool:
        return bool(self.explicit_values(name))

    def expand(self, value: Optional[str]) -> str:
        """Substitute ``$(Name)`` references with known property values."""
        if not value:
            return ""

        def _sub(match):
            resolved = self.get_property(match.group(1))
            return resolved if resolved is not None else match.group(0)

        return _PROPERTY_REF.sub(_sub, value)

    # ── Items ─────────────────────────────────────────────────────

    def all_items(self) -> List[Item]:
        return [item for group in self.item_groups for item in group.items]

    def items_of_type(self, item_type: str) -> List[Item]:
        lowered = item_type.lower()
        return [i for i in self.all_items() if i.item_type.lower() == lowered]

    def declared_package_ids(self) -> List[str]:
        """Package ids from PackageReference items and packages.config."""
        ids = [i.include for i in self.items_of_type("PackageReference") if i.include]
        ids.extend(p.package_id for p in self.packages_config)
        return ids

    @property
    def is_empty(self) -> bool:
        return not self.property_groups and not self.item_groups


# ── Identities and references ────────────────────────────────────────


class AssemblyIdentity:
    """Strong-name identity parsed from a ``Reference`` include string.

    Equality and hashing use the name only (case-insensitive) so
    identities can key lookup tables.  Use :meth:`matches` for full
    identity comparison.
    """

    def __init__(
        self,
        name: str,
        version: Optional[str] = None,
        culture: Optional[str] = None,
        public_key_token: Optional[str] = None,
        processor_architecture: Optional[str] = None,
    ):
        self.name = name
        self.version = version
        self.culture = culture
        self.public_key_token = public_key_token
        self.processor_architecture = processor_architecture

    @classmethod
    def parse(cls, include: str) -> "AssemblyIdentity":
        """Parse ``Name, Version=1.0.0.0, Culture=neutral, PublicKeyToken=...``."""
        parts = [p.strip() for p in (include or "").split(",")]
        identity = cls(name=parts[0] if parts else "")
        for part in parts[1:]:
            if "=" not in part:
                continue
            key, value = (s.strip() for s in part.split("=", 1))
            key = key.lower()
            if key == "version":
                identity.version = value or None
            elif key == "culture":
                identity.culture = None if value.lower() == "neutral" else value
            elif key == "publickeytoken":
                identity.public_key_token = None if value.lower() == "null" else value.lower()
            elif key == "processorarchitecture":
                identity.processor_architecture = value
        return identity

    def matches(self, other: "AssemblyIdentity") -> bool:
        """Full identity comparison (name, version, culture, token)."""
        return (
            self.name.lower() == other.name.lower()
            and (self.version or "") == (other.version or "")
            and (self.culture or "").lower() == (other.culture or "").lower()
            and (self.public_key_token or "").lower() == (other.public_key_token or "").lower()
        )

    def __eq__(self, other):
        if not isinstance(other, AssemblyIdentity):
            return NotImplemented
        return self.name.lower() == other.name.lower()

    def __hash__(self):
        return hash(self.name.lower())

    def __str__(self):
        parts = [self.name]
        if self.version:
            parts.append(f"Version={self.version}")
        if self.culture:
            parts.append(f"Culture={self.culture}")
        if self.public_key_token:
            parts.append(f"PublicKeyToken={self.public_key_token}")
        return ", ".join(parts)

    def __repr__(self):
        return f"AssemblyIdentity({str(self)!r})"


@dataclass
class PackageReference:
    package_id: str
    version: Optional[str] = None
    is_transitive: bool = False
    target_framework: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)
    condition: Optional[str] = None

    @property
    def key(self) -> str:
        """Uniqueness key (package ids are case-insensitive)."""
        return self.package_id.lower()


@dataclass
class UnconvertedReference:
    """A legacy reference kept as-is, always with a reason."""

    identity: AssemblyIdentity
    reason: str
    hint_path: Optional[str] = None
    private: Optional[bool] = None
    metadata: Dict[str, str] = field(default_factory=dict)
    include: Optional[str] = None  # original include text
    condition: Optional[str] = None

    @property
    def name(self) -> str:
        return self.identity.name


@dataclass
class ReferenceResolution:
    packages: List[PackageReference] = field(default_factory=list)
    unconverted: List[UnconvertedReference] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    covered: List[str] = field(default_factory=list)  # refs already provided by a package
    builtin: List[str] = field(default_factory=list)  # refs implicit in the target SDK


# ── SDK variant ──────────────────────────────────────────────────────


class SdkVariantKind(str, Enum):
    STANDARD_LIBRARY = "StandardLibrary"
    WEB = "Web"
    WEB_FUNCTIONS = "WebFunctions"
    WORKER = "Worker"
    BLAZOR_WASM = "BlazorWasm"
    WINDOWS_DESKTOP = "WindowsDesktop"
    MAUI = "Maui"
    LEGACY_WEB_FRAMEWORK = "LegacyWebFramework"
    UNMIGRATABLE = "Unmigratable"


@dataclass
class SdkVariant:
    """Classification outcome: variant kind plus routing flags."""

    kind: SdkVariantKind
    reason: Optional[str] = None  # only set for UNMIGRATABLE
    multi_targeting: bool = False
    frameworks: List[str] = field(default_factory=list)
    use_wpf: bool = False
    use_windows_forms: bool = False
    needs_isolated_worker: bool = False  # in-process Functions host
    sdk: str = "Microsoft.NET.Sdk"

    @classmethod
    def unmigratable(cls, reason: str) -> "SdkVariant":
        return cls(kind=SdkVariantKind.UNMIGRATABLE, reason=reason, sdk="")

    @property
    def is_migratable(self) -> bool:
        return self.kind != SdkVariantKind.UNMIGRATABLE

    @property
    def target_framework(self) -> Optional[str]:
        """Primary target moniker (first framework)."""
        return self.frameworks[0] if self.frameworks else None

    def __str__(self):
        if self.kind == SdkVariantKind.UNMIGRATABLE:
            return f"Unmigratable({self.reason})"
        return self.kind.value


# ── Conflict resolution ──────────────────────────────────────────────


@dataclass
class VersionConflict:
    package_id: str
    requested_versions: List[str]
    resolved_version: str
    strategy_used: str
    warnings: List[str] = field(default_factory=list)
    requesters: Dict[str, List[str]] = field(default_factory=dict)  # version -> project paths
    target_frameworks: List[str] = field(default_factory=list)

    @property
    def has_conflict(self) -> bool:
        return len({v.lower() for v in self.requested_versions}) > 1


# ── Results ──────────────────────────────────────────────────────────


class ProjectState(str, Enum):
    PENDING = "Pending"
    PARSING = "Parsing"
    CLASSIFYING = "Classifying"
    MIGRATING = "Migrating"
    WRITTEN = "Written"
    SKIPPED = "Skipped"
    FAILED = "Failed"


class BatchState(str, Enum):
    IDLE = "Idle"
    LOCK_ACQUIRED = "LockAcquired"
    SCANNING = "Scanning"
    MIGRATING_PROJECTS = "MigratingProjects"
    AGGREGATING = "Aggregating"
    VALIDATING = "Validating"
    FINALIZING = "Finalizing"


@dataclass
class MigrationResult:
    project_path: str
    output_path: Optional[str] = None
    success: bool = False
    state: ProjectState = ProjectState.PENDING
    skip_reason: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    removed_elements: List[str] = field(default_factory=list)
    migrated_packages: List[PackageReference] = field(default_factory=list)
    unconverted_references: List[UnconvertedReference] = field(default_factory=list)
    sdk_variant: Optional[SdkVariant] = None
    output_xml: Optional[str] = None


@dataclass
class MigrationReport:
    start_time: datetime = field(default_factory=datetime.utcnow)
    end_time: Optional[datetime] = None
    root_directory: str = ""
    dry_run: bool = False
    total_projects_found: int = 0
    results: List[MigrationResult] = field(default_factory=list)
    version_conflicts: List[VersionConflict] = field(default_factory=list)
    cpm_path: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    cancelled: bool = False

    def _count(self, state: ProjectState) -> int:
        return sum(1 for r in self.results if r.state == state)

    @property
    def written(self) -> int:
        return self._count(ProjectState.WRITTEN)

    @property
    def skipped(self) -> int:
        return self._count(ProjectState.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(ProjectState.FAILED)

    @property
    def has_failures(self) -> bool:
        return self.failed > 0

    @property
    def duration_seconds(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()
