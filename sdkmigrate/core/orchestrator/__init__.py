"""Batch coordination around the per-project migration pipeline."""

from .analyzer import MigrationAnalyzer, PreflightAnalysis, ProjectAnalysis, RiskLevel
from .backup import BackupSession
from .lock import LockService
from .orchestrator import MigrationOrchestrator
from .report import render_report, write_report
from .validator import validate_project_xml

__all__ = [
    "BackupSession",
    "LockService",
    "MigrationAnalyzer",
    "MigrationOrchestrator",
    "PreflightAnalysis",
    "ProjectAnalysis",
    "RiskLevel",
    "render_report",
    "validate_project_xml",
    "write_report",
]
