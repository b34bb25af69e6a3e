"""Version and target-framework utilities.

* NuGet-style semantic version parsing and ordering
  (``1.2.3``, ``1.2.3.4``, ``2.0.0-beta.1``).
* Assembly version to package version normalisation.
* Legacy ``TargetFrameworkVersion`` to target framework moniker (TFM)
  conversion, portable-profile mapping and framework family matching.
"""

import functools
import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_MODERN_FRAMEWORK = "net8.0"

_VERSION_RE = re.compile(
    r"^\s*v?(?P<nums>\d+(?:\.\d+){0,3})"
    r"(?:-(?P<pre>[0-9A-Za-z\-.]+))?"
    r"(?:\+(?P<meta>[0-9A-Za-z\-.]+))?\s*$"
)


# ── Semantic versions ────────────────────────────────────────────────


@dataclass(frozen=True)
class PackageVersion:
    """Parsed NuGet package version."""

    numbers: Tuple[int, int, int, int]
    prerelease: Tuple[str, ...] = field(default_factory=tuple)
    original: str = ""

    @property
    def major(self) -> int:
        return self.numbers[0]

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)

    def __str__(self):
        return self.original


def parse_version(text: Optional[str]) -> Optional[PackageVersion]:
    """Parse a package version.  Returns ``None`` when unparseable."""
    if not text:
        return None
    match = _VERSION_RE.match(text)
    if not match:
        return None
    nums = [int(n) for n in match.group("nums").split(".")]
    nums += [0] * (4 - len(nums))
    pre = tuple(match.group("pre").split(".")) if match.group("pre") else ()
    return PackageVersion(numbers=tuple(nums), prerelease=pre, original=text.strip())


def _compare_prerelease(a: Tuple[str, ...], b: Tuple[str, ...]) -> int:
    # A release sorts above any prerelease of the same numbers.
    if not a and not b:
        return 0
    if not a:
        return 1
    if not b:
        return -1
    for left, right in zip(a, b):
        left_num, right_num = left.isdigit(), right.isdigit()
        if left_num and right_num:
            diff = int(left) - int(right)
            if diff:
                return 1 if diff > 0 else -1
        elif left_num != right_num:
            return -1 if left_num else 1
        else:
            ll, rl = left.lower(), right.lower()
            if ll != rl:
                return 1 if ll > rl else -1
    if len(a) == len(b):
        return 0
    return 1 if len(a) > len(b) else -1


def compare_versions(a: str, b: str) -> int:
    """Total order over version strings.

    Parsed semantic comparison when both sides parse; ordinal string
    comparison otherwise.
    """
    pa, pb = parse_version(a), parse_version(b)
    if pa is None or pb is None:
        if a == b:
            return 0
        return 1 if a > b else -1
    if pa.numbers != pb.numbers:
        return 1 if pa.numbers > pb.numbers else -1
    return _compare_prerelease(pa.prerelease, pb.prerelease)


version_sort_key = functools.cmp_to_key(compare_versions)


def highest_version(versions: Iterable[str]) -> Optional[str]:
    ordered = sorted(versions, key=version_sort_key)
    return ordered[-1] if ordered else None


def lowest_version(versions: Iterable[str]) -> Optional[str]:
    ordered = sorted(versions, key=version_sort_key)
    return ordered[0] if ordered else None


def is_prerelease(version: str) -> bool:
    parsed = parse_version(version)
    if parsed is None:
        return "-" in version
    return parsed.is_prerelease


def major_of(version: str) -> Optional[int]:
    parsed = parse_version(version)
    return parsed.major if parsed else None


def normalize_assembly_version(version: str) -> str:
    """Assembly version to package version: ``12.0.3.0`` -> ``12.0.3``.

    A trailing zero revision is dropped; three-part versions are kept.
    """
    parts = version.strip().split(".")
    if len(parts) == 4 and parts[3] == "0":
        parts = parts[:3]
    return ".".join(parts)


# ── Target frameworks ────────────────────────────────────────────────

PCL_PROFILE_MAP = {
    "Profile7": "netstandard1.1",
    "Profile31": "netstandard1.0",
    "Profile32": "netstandard1.2",
    "Profile44": "netstandard1.2",
    "Profile49": "netstandard1.0",
    "Profile78": "netstandard1.0",
    "Profile84": "netstandard1.0",
    "Profile111": "netstandard1.1",
    "Profile151": "netstandard1.2",
    "Profile157": "netstandard1.0",
    "Profile259": "netstandard1.0",
}

_NET_FRAMEWORK_TFM = re.compile(r"^net(\d)(\d)(\d?)$", re.IGNORECASE)
_MODERN_TFM = re.compile(r"^net(\d+)\.(\d+)", re.IGNORECASE)
_TFV_CONDITION = re.compile(
    r"'\$\(TargetFrameworkVersion\)'\s*==\s*'v?(\d+(?:\.\d+)*)'", re.IGNORECASE
)


def convert_profile(profile: str) -> Optional[str]:
    """Map a portable class library profile to a netstandard moniker."""
    return PCL_PROFILE_MAP.get(profile)


def convert_framework_version(version: Optional[str], profile: Optional[str] = None) -> str:
    """Convert a legacy ``TargetFrameworkVersion`` (+ profile) to a TFM."""
    if profile and profile.startswith("Profile"):
        mapped = convert_profile(profile)
        if mapped:
            return mapped
        logger.warning("Unknown portable profile %s, using %s", profile, DEFAULT_MODERN_FRAMEWORK)
        return DEFAULT_MODERN_FRAMEWORK

    if not version:
        return DEFAULT_MODERN_FRAMEWORK

    if profile == "Client":
        logger.info("Converting .NET Framework Client Profile to full framework")

    v = version.strip().lstrip("vV")
    if v.startswith("4."):
        return "net" + v.replace(".", "")
    if v in ("3.5", "3.0", "2.0"):
        return "net" + v.replace(".", "")
    if v.startswith("2.") or v.startswith("3."):
        return f"netcoreapp{v}"
    major = v.split(".")[0]
    if major.isdigit() and int(major) >= 5:
        return f"net{v}"
    return DEFAULT_MODERN_FRAMEWORK


def is_net_framework(tfm: Optional[str]) -> bool:
    """True for .NET Framework monikers (net20 .. net481)."""
    return bool(tfm and _NET_FRAMEWORK_TFM.match(tfm.strip()))


def is_modern_framework(tfm: Optional[str]) -> bool:
    """True for net5.0 and later."""
    if not tfm:
        return False
    match = _MODERN_TFM.match(tfm.strip())
    return bool(match and int(match.group(1)) >= 5)


def framework_family(tfm: str) -> str:
    """Family name used by the framework-aware package table."""
    tfm = tfm.strip().lower()
    if is_net_framework(tfm):
        return "netframework"
    if tfm.startswith("netcoreapp"):
        return "netcoreapp"
    if tfm.startswith("netstandard"):
        return "netstandard"
    if is_modern_framework(tfm):
        return "net"
    return "unknown"


def framework_matches(pattern: str, tfm: str) -> bool:
    """Match a table pattern: exact moniker, family name, or ``*``."""
    pattern = pattern.strip().lower()
    if pattern == "*":
        return True
    if pattern == tfm.strip().lower():
        return True
    return pattern == framework_family(tfm)


def rewrite_framework_condition(condition: Optional[str]) -> Optional[str]:
    """Rewrite TargetFrameworkVersion conditions to TargetFramework form.

    ``'$(TargetFrameworkVersion)' == 'v4.5'`` becomes
    ``'$(TargetFramework)' == 'net45'``.  Configuration|Platform
    conditions are returned unchanged.
    """
    if not condition:
        return condition
    if "'$(Configuration)|$(Platform)'" in condition:
        return condition

    def _sub(match):
        return f"'$(TargetFramework)' == '{convert_framework_version(match.group(1))}'"

    return _TFV_CONDITION.sub(_sub, condition)


def sort_frameworks(frameworks: Iterable[str]) -> List[str]:
    return sorted(set(frameworks), key=str.lower)


# ── Compatibility ────────────────────────────────────────────────────


def normalize_nuspec_framework(value: str) -> str:
    """``.NETFramework4.5`` -> ``net45``, ``.NETStandard2.0`` -> ``netstandard2.0``."""
    text = value.strip().lower()
    if text.startswith(".netframework"):
        version = text[len(".netframework"):].lstrip("v")
        return "net" + version.replace(".", "")
    if text.startswith(".netstandard"):
        return "netstandard" + text[len(".netstandard"):]
    if text.startswith(".netcoreapp"):
        return "netcoreapp" + text[len(".netcoreapp"):]
    return text


def _numeric(tfm: str, prefix: str) -> Tuple[int, ...]:
    rest = tfm[len(prefix):].split("-")[0]
    if "." not in rest and rest.isdigit():
        # net472 style
        return tuple(int(c) for c in rest)
    try:
        return tuple(int(p) for p in rest.split(".") if p)
    except ValueError:
        return ()


def _netstandard_floor(target: str) -> Optional[Tuple[int, ...]]:
    """Highest netstandard version a target can consume."""
    family = framework_family(target)
    if family == "net":
        return (2, 1)
    if family == "netcoreapp":
        version = _numeric(target.lower(), "netcoreapp")
        return (2, 1) if version >= (3,) else (2, 0)
    if family == "netframework":
        version = _numeric(target.lower(), "net")
        return (2, 0) if version >= (4, 6, 1) else (1, 2) if version >= (4, 5, 1) else (1, 1)
    return None


def is_framework_compatible(target: str, package_framework: str) -> bool:
    """Can a project targeting ``target`` consume assets built for
    ``package_framework``?  A simplified NuGet compatibility matrix."""
    target = target.strip().lower()
    pkg = normalize_nuspec_framework(package_framework)
    if not pkg or pkg in ("any", "*"):
        return True

    target_family = framework_family(target)
    pkg_family = framework_family(pkg)

    if pkg_family == "netstandard":
        if target_family == "netstandard":
            return _numeric(target, "netstandard") >= _numeric(pkg, "netstandard")
        floor = _netstandard_floor(target)
        return floor is not None and floor >= _numeric(pkg, "netstandard")
    if pkg_family == "netframework":
        return target_family == "netframework" and _numeric(target, "net") >= _numeric(pkg, "net")
    if pkg_family == "netcoreapp":
        if target_family == "netcoreapp":
            return _numeric(target, "netcoreapp") >= _numeric(pkg, "netcoreapp")
        return target_family == "net"
    if pkg_family == "net":
        return target_family == "net" and _numeric(target, "net") >= _numeric(pkg, "net")
    return False
