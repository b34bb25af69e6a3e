"""Migration options.

Precedence, lowest first: field defaults, ``config/sdkmigrate.yaml`` (or
the file given with ``--config``), ``SDKMIGRATE_*`` environment variables,
command-line flags.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ConfigurationError
from .packaging.conflicts import ResolutionOptions, ResolutionStrategy

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config" / "sdkmigrate.yaml"

# YAML section -> {yaml key: option field}
_YAML_LAYOUT = {
    "migration": {
        "dry_run": "dry_run",
        "output_directory": "output_directory",
        "target_framework": "target_framework",
        "create_backup": "create_backup",
        "force": "force",
        "max_parallelism": "max_parallelism",
        "report_path": "report_path",
    },
    "packages": {
        "enable_cpm": "enable_cpm",
        "strategy": "strategy",
        "prefer_stable": "prefer_stable",
        "package_overrides": "package_overrides",
    },
    "nuget": {
        "offline": "offline",
        "feed_url": "nuget_feed_url",
        "http_timeout": "http_timeout",
    },
    "lock": {
        "stale_hours": "lock_stale_hours",
    },
}

_TRUE_VALUES = ("1", "true", "yes", "on")


class MigrationOptions(BaseModel):
    """Options for one migration run."""
    dry_run: bool = Field(False, description="Report what would change without writing")
    output_directory: Optional[str] = Field(None, description="Write migrated projects here instead of in place")
    target_framework: Optional[str] = Field(None, description="Override the target moniker of single-targeted projects")
    create_backup: bool = Field(True, description="Copy originals aside before overwriting")
    force: bool = Field(False, description="Proceed despite critical pre-flight issues")
    max_parallelism: int = Field(1, ge=1, description="Projects migrated concurrently")
    enable_cpm: bool = Field(False, description="Generate Directory.Packages.props")
    strategy: ResolutionStrategy = Field(ResolutionStrategy.USE_HIGHEST, description="Version conflict strategy")
    prefer_stable: bool = Field(True, description="Prefer stable versions when a strategy has a choice")
    package_overrides: Dict[str, str] = Field(default_factory=dict, description="Pinned package versions")
    offline: bool = Field(True, description="Resolve packages from the built-in tables only")
    nuget_feed_url: str = Field("https://api.nuget.org", description="NuGet v3 feed root")
    http_timeout: float = Field(30.0, gt=0, description="NuGet request timeout in seconds")
    lock_stale_hours: float = Field(24, gt=0, description="Age after which a lock file is considered stale")
    report_path: Optional[str] = Field(None, description="Where to write the Markdown report")

    @field_validator("strategy", mode="before")
    @classmethod
    def _parse_strategy(cls, value: Any) -> Any:
        if isinstance(value, str):
            return ResolutionStrategy.parse(value)
        return value

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "MigrationOptions":
        """Validate ``values``; raises ``ConfigurationError`` on bad input."""
        try:
            return cls(**values)
        except (ValidationError, ValueError) as e:
            raise ConfigurationError(f"Invalid migration options: {e}") from e

    def merged_with(self, overrides: Mapping[str, Any]) -> "MigrationOptions":
        """Return a copy where every non-empty value in ``overrides`` wins.

        ``None`` and empty strings leave the current value in place; so do
        empty override maps.  Unknown keys are rejected.
        """
        unknown = set(overrides) - set(type(self).model_fields)
        if unknown:
            raise ConfigurationError(f"Unknown option(s): {', '.join(sorted(unknown))}")

        def pick(name: str) -> Any:
            value = overrides.get(name)
            if value is None or value == "":
                return getattr(self, name)
            return value

        merged_overrides = dict(self.package_overrides)
        merged_overrides.update(overrides.get("package_overrides") or {})

        return MigrationOptions.from_mapping({
            "dry_run": pick("dry_run"),
            "output_directory": pick("output_directory"),
            "target_framework": pick("target_framework"),
            "create_backup": pick("create_backup"),
            "force": pick("force"),
            "max_parallelism": pick("max_parallelism"),
            "enable_cpm": pick("enable_cpm"),
            "strategy": pick("strategy"),
            "prefer_stable": pick("prefer_stable"),
            "package_overrides": merged_overrides,
            "offline": pick("offline"),
            "nuget_feed_url": pick("nuget_feed_url"),
            "http_timeout": pick("http_timeout"),
            "lock_stale_hours": pick("lock_stale_hours"),
            "report_path": pick("report_path"),
        })

    def resolution_options(self) -> ResolutionOptions:
        return ResolutionOptions(
            package_overrides=dict(self.package_overrides),
            prefer_stable=self.prefer_stable,
        )


def _flatten_yaml(config: Mapping[str, Any], path: Path) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for section, keys in _YAML_LAYOUT.items():
        block = config.get(section) or {}
        if not isinstance(block, dict):
            raise ConfigurationError(f"{path}: section '{section}' must be a mapping")
        for yaml_key, field_name in keys.items():
            if yaml_key in block and block[yaml_key] is not None:
                values[field_name] = block[yaml_key]
        for yaml_key in block:
            if yaml_key not in keys:
                logger.warning(f"Ignoring unknown key '{section}.{yaml_key}' in {path}")
    return values


def load_yaml_options(path: Optional[str] = None) -> Dict[str, Any]:
    """Read option values from the YAML config file.

    A missing file yields ``{}`` with a warning.  Malformed YAML raises
    ``ConfigurationError``.
    """
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    if not config_path.exists():
        logger.warning(f"Config file not found at {config_path}, using defaults")
        return {}

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Error loading {config_path}: {e}") from e

    if not isinstance(config, dict):
        raise ConfigurationError(f"{config_path}: top level must be a mapping")

    values = _flatten_yaml(config, config_path)
    logger.debug(f"Loaded options from {config_path}: {sorted(values)}")
    return values


def env_options(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Option values from ``SDKMIGRATE_*`` environment variables."""
    environ = os.environ if environ is None else environ
    values: Dict[str, Any] = {}

    parallelism = environ.get("SDKMIGRATE_PARALLELISM")
    if parallelism:
        try:
            values["max_parallelism"] = int(parallelism)
        except ValueError as e:
            raise ConfigurationError(
                f"SDKMIGRATE_PARALLELISM must be an integer, got '{parallelism}'"
            ) from e

    feed = environ.get("SDKMIGRATE_NUGET_FEED")
    if feed:
        values["nuget_feed_url"] = feed

    offline = environ.get("SDKMIGRATE_OFFLINE")
    if offline:
        values["offline"] = offline.strip().lower() in _TRUE_VALUES

    return values


def load_config(
    path: Optional[str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> MigrationOptions:
    """Build the effective options: defaults < YAML < environment < ``overrides``."""
    options = MigrationOptions.from_mapping(load_yaml_options(path))
    options = options.merged_with(env_options(environ))
    if overrides:
        options = options.merged_with(overrides)
    logger.info(
        "Effective options: dry_run=%s parallelism=%d cpm=%s strategy=%s offline=%s",
        options.dry_run, options.max_parallelism, options.enable_cpm,
        options.strategy.value, options.offline,
    )
    return options
