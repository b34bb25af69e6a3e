"""Legacy -> SDK-style item and property migration."""

from .migrator import ItemAndPropertyMigrator, MigrationOutput, enumerate_source_files
from .writer import serialize, write_text

__all__ = [
    "ItemAndPropertyMigrator",
    "MigrationOutput",
    "enumerate_source_files",
    "serialize",
    "write_text",
]
