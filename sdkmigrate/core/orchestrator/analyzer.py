"""Pre-flight migration analysis.

Runs over every discovered project before anything is written and decides
whether the batch can proceed.  Only two conditions block a run: a
descriptor that cannot be read, and a ProjectReference to a file that does
not exist.  Everything else is reported as a warning.
"""

import logging
import os
import threading
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, List, Optional

from ..classifier import SdkTypeClassifier
from ..errors import ProjectLoadError
from ..migrator import rules
from ..models import EvaluatedProject
from ..project_loader import load_project

logger = logging.getLogger(__name__)


class RiskLevel(IntEnum):
    LOW = 0
    MEDIUM = 1
    HIGH = 2
    CRITICAL = 3


class IssueSeverity(IntEnum):
    INFO = 0
    WARNING = 1
    ERROR = 2
    CRITICAL = 3


@dataclass
class MigrationIssue:
    severity: IssueSeverity
    category: str
    description: str


@dataclass
class ProjectAnalysis:
    project_path: str
    can_migrate: bool = True
    already_sdk_style: bool = False
    sdk_variant: Optional[str] = None
    issues: List[MigrationIssue] = field(default_factory=list)
    risk: RiskLevel = RiskLevel.LOW

    def add(self, severity: IssueSeverity, category: str, description: str) -> None:
        self.issues.append(MigrationIssue(severity, category, description))

    @property
    def blocking_issues(self) -> List[MigrationIssue]:
        return [i for i in self.issues if i.severity == IssueSeverity.CRITICAL]


@dataclass
class PreflightAnalysis:
    directory: str
    projects: List[ProjectAnalysis] = field(default_factory=list)
    overall_risk: RiskLevel = RiskLevel.LOW
    cancelled: bool = False

    @property
    def can_proceed(self) -> bool:
        return not self.blocking_issues

    @property
    def blocking_issues(self) -> List[str]:
        return [
            f"{os.path.basename(p.project_path)}: {i.description}"
            for p in self.projects
            for i in p.blocking_issues
        ]

    @property
    def warnings(self) -> List[str]:
        return [
            f"{os.path.basename(p.project_path)}: {i.description}"
            for p in self.projects
            for i in p.issues
            if i.severity in (IssueSeverity.WARNING, IssueSeverity.ERROR)
        ]


def project_risk(analysis: ProjectAnalysis) -> RiskLevel:
    severities = [i.severity for i in analysis.issues]
    if IssueSeverity.CRITICAL in severities:
        return RiskLevel.CRITICAL
    if IssueSeverity.ERROR in severities or not analysis.can_migrate:
        return RiskLevel.HIGH
    warnings = severities.count(IssueSeverity.WARNING)
    if warnings > 3:
        return RiskLevel.HIGH
    if warnings:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def overall_risk(projects: List[ProjectAnalysis]) -> RiskLevel:
    if not projects:
        return RiskLevel.LOW
    if any(p.risk == RiskLevel.CRITICAL for p in projects):
        return RiskLevel.CRITICAL
    if sum(1 for p in projects if p.risk == RiskLevel.HIGH) > len(projects) // 3:
        return RiskLevel.HIGH
    if sum(1 for p in projects if p.risk >= RiskLevel.MEDIUM) > len(projects) // 2:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


class MigrationAnalyzer:
    """Pre-flight checks over a set of project files."""

    def __init__(
        self,
        classifier: Optional[SdkTypeClassifier] = None,
        loader: Callable[[str], EvaluatedProject] = load_project,
    ):
        self._classifier = classifier or SdkTypeClassifier()
        self._load = loader

    def analyze(
        self,
        paths: List[str],
        cancel_event: Optional[threading.Event] = None,
        directory: str = "",
    ) -> PreflightAnalysis:
        result = PreflightAnalysis(directory=directory)
        for path in paths:
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Pre-flight analysis cancelled")
                result.cancelled = True
                break
            result.projects.append(self.analyze_project(path))

        result.overall_risk = overall_risk(result.projects)
        logger.info(
            "Pre-flight analysis of %d projects: risk %s, %d blocking issues",
            len(result.projects), result.overall_risk.name, len(result.blocking_issues),
        )
        return result

    def analyze_project(self, path: str) -> ProjectAnalysis:
        analysis = ProjectAnalysis(project_path=path)
        try:
            project = self._load(path)
        except ProjectLoadError as e:
            analysis.can_migrate = False
            analysis.add(IssueSeverity.CRITICAL, "ProjectLoad", f"cannot read project: {e}")
            analysis.risk = project_risk(analysis)
            return analysis

        if project.is_sdk_style:
            analysis.already_sdk_style = True
            return analysis

        variant = self._classifier.classify(project)
        analysis.sdk_variant = str(variant)
        if not variant.is_migratable:
            analysis.can_migrate = False
            analysis.add(
                IssueSeverity.WARNING, "ProjectType", f"will be skipped: {variant.reason}"
            )

        for item in project.items_of_type("ProjectReference"):
            target = os.path.normpath(
                os.path.join(project.directory, item.include.replace("\\", os.sep))
            )
            if not os.path.isfile(target):
                analysis.add(
                    IssueSeverity.CRITICAL,
                    "ProjectReference",
                    f"referenced project not found: {item.include}",
                )

        for target in project.targets:
            if rules.is_sdk_target(target.name) or target.name == rules.NUGET_IMPORT_TARGET:
                continue
            analysis.add(
                IssueSeverity.WARNING,
                "CustomTarget",
                f"custom target '{target.name}' needs manual review",
            )

        if project.items_of_type("WCFMetadata") or project.items_of_type("WCFMetadataStorage"):
            analysis.add(
                IssueSeverity.WARNING,
                "ServiceReference",
                "WCF service references must be regenerated (dotnet-svcutil)",
            )

        analysis.risk = project_risk(analysis)
        return analysis
