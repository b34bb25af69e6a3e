"""Backup session for one migration run.

Files are copied into ``_sdkmigrator_backup_<timestamp>`` under the root
directory right before they are overwritten.  ``finalize()`` writes a
``manifest.json`` with a SHA-256 hash of every original.
"""

import getpass
import hashlib
import json
import logging
import os
import shutil
import socket
import threading
from datetime import datetime
from typing import Dict, List, Optional

from ... import __version__

logger = logging.getLogger(__name__)

BACKUP_DIR_PREFIX = "_sdkmigrator_backup_"
MANIFEST_FILE_NAME = "manifest.json"


def file_sha256(path: str) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


class BackupSession:
    """Copies originals aside before they are replaced."""

    def __init__(self, root_directory: str, parameters: Optional[Dict[str, str]] = None):
        self.root_directory = os.path.abspath(root_directory)
        self.start_time = datetime.utcnow()
        self.session_id = self.start_time.strftime("%Y%m%d_%H%M%S")
        self.backup_directory = os.path.join(
            self.root_directory, f"{BACKUP_DIR_PREFIX}{self.session_id}"
        )
        self.parameters = dict(parameters or {})
        self.files: List[dict] = []
        self._backed_up = set()
        self._lock = threading.Lock()

        os.makedirs(self.backup_directory, exist_ok=True)
        with open(os.path.join(self.backup_directory, ".gitignore"), "w", encoding="utf-8") as f:
            f.write("*\n")
        logger.info(f"Initialized backup session {self.session_id} at {self.backup_directory}")

    def backup_file(self, path: str) -> Optional[str]:
        """Copy ``path`` into the backup tree.  Returns the backup path."""
        source = os.path.abspath(path)
        if not os.path.isfile(source):
            logger.warning(f"File {source} does not exist, skipping backup")
            return None

        with self._lock:
            if source in self._backed_up:
                return None
            self._backed_up.add(source)

        relative = os.path.relpath(source, self.root_directory)
        if relative.startswith(".."):
            relative = os.path.basename(source)
        target = os.path.join(self.backup_directory, relative)
        os.makedirs(os.path.dirname(target), exist_ok=True)

        file_hash = file_sha256(source)
        shutil.copy2(source, target)

        entry = {
            "original_path": source,
            "backup_path": target,
            "original_hash": file_hash,
            "backup_time": datetime.utcnow().isoformat(),
            "file_size": os.path.getsize(source),
        }
        with self._lock:
            self.files.append(entry)
        logger.debug(f"Backed up {source} to {target} (sha256 {file_hash[:12]})")
        return target

    def finalize(self) -> str:
        """Write the manifest and return its path."""
        manifest_path = os.path.join(self.backup_directory, MANIFEST_FILE_NAME)
        try:
            user = getpass.getuser()
        except Exception:
            user = "unknown"
        with self._lock:
            manifest = {
                "session_id": self.session_id,
                "start_time": self.start_time.isoformat(),
                "end_time": datetime.utcnow().isoformat(),
                "root_directory": self.root_directory,
                "backup_directory": self.backup_directory,
                "tool_version": __version__,
                "user": user,
                "machine": socket.gethostname(),
                "parameters": self.parameters,
                "files": list(self.files),
            }
        with open(manifest_path, "w", encoding="utf-8") as f:
            json.dump(manifest, f, indent=2)
        logger.info(
            "Backup session %s finalized with %d files", self.session_id, len(manifest["files"])
        )
        return manifest_path
