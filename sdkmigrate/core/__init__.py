# Lazy imports so that targeted imports like
# `from sdkmigrate.core.versioning import compare_versions`
# do not pull in the YAML/pydantic configuration layer or httpx.

__all__ = [
    "MigrationOptions",
    "load_config",
    "MigrationOrchestrator",
    "SdkTypeClassifier",
    "AssemblyReferenceResolver",
    "PackageVersionConflictResolver",
    "ItemAndPropertyMigrator",
    "load_project",
]

_IMPORT_MAP = {
    "MigrationOptions": ".config",
    "load_config": ".config",
    "MigrationOrchestrator": ".orchestrator",
    "SdkTypeClassifier": ".classifier",
    "AssemblyReferenceResolver": ".references",
    "PackageVersionConflictResolver": ".packaging",
    "ItemAndPropertyMigrator": ".migrator",
    "load_project": ".project_loader",
}


def __getattr__(name):
    if name in _IMPORT_MAP:
        import importlib
        module = importlib.import_module(_IMPORT_MAP[name], __package__)
        return getattr(module, name)
    raise AttributeError(f"module 'sdkmigrate.core' has no attribute {name}")
