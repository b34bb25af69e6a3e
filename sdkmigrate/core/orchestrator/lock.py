"""Advisory directory lock for migration runs.

Only one migration may touch a directory tree at a time.  The lock is a
JSON file at the root of the tree; a lock whose owning process is gone,
or which is older than the stale threshold, is cleaned up and re-acquired.

Usage:
    with LockService(root) as lock:
        ...  # migrate
"""

import getpass
import json
import logging
import os
import socket
import sys
from datetime import datetime, timedelta
from typing import Optional

from ..errors import LockAcquisitionError

logger = logging.getLogger(__name__)

LOCK_FILE_NAME = ".sdkmigrator.lock"


def _process_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, owned by someone else.
        return True
    except OSError:
        return False
    return True


def _current_user() -> str:
    try:
        return getpass.getuser()
    except Exception:
        return "unknown"


class LockService:
    """Exclusive-create lock file in a directory."""

    def __init__(self, directory: str, stale_hours: float = 24):
        self.directory = os.path.abspath(directory)
        self.lock_path = os.path.join(self.directory, LOCK_FILE_NAME)
        self.stale_hours = stale_hours
        self._owned = False

    @property
    def is_held(self) -> bool:
        return self._owned

    def read(self) -> Optional[dict]:
        """Lock file contents, or ``None`` when absent or unreadable."""
        try:
            with open(self.lock_path, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to read lock file {self.lock_path}: {e}")
            return {}

    def is_stale(self, info: dict) -> bool:
        pid = info.get("pid")
        if not isinstance(pid, int) or not _process_alive(pid):
            return True
        try:
            acquired = datetime.fromisoformat(info.get("acquired_at", ""))
        except (TypeError, ValueError):
            return True
        return datetime.utcnow() - acquired > timedelta(hours=self.stale_hours)

    def acquire(self) -> None:
        """Take the lock or raise ``LockAcquisitionError``."""
        existing = self.read()
        if existing is not None:
            if not self.is_stale(existing):
                logger.warning(
                    "Migration already in progress by process %s (%s) started at %s",
                    existing.get("pid"), existing.get("process_name"), existing.get("acquired_at"),
                )
                raise LockAcquisitionError(self.lock_path, existing)
            logger.info(f"Found stale lock from process {existing.get('pid')}, cleaning up")
            try:
                os.remove(self.lock_path)
            except FileNotFoundError:
                pass

        info = {
            "pid": os.getpid(),
            "process_name": os.path.basename(sys.argv[0]) if sys.argv and sys.argv[0] else "python",
            "acquired_at": datetime.utcnow().isoformat(),
            "machine": socket.gethostname(),
            "user": _current_user(),
        }
        try:
            fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError as e:
            # Lost a race with another process.
            raise LockAcquisitionError(self.lock_path, self.read() or {}) from e

        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(info, f, indent=2)
        self._owned = True
        logger.info(f"Lock acquired at {self.lock_path} for process {info['pid']}")

    def release(self) -> None:
        """Delete the lock file if this process owns it."""
        if not self._owned:
            return
        info = self.read()
        if info and info.get("pid") != os.getpid():
            logger.warning(f"Lock {self.lock_path} is owned by another process, not removing")
            self._owned = False
            return
        try:
            os.remove(self.lock_path)
            logger.info("Lock released")
        except FileNotFoundError:
            pass
        self._owned = False

    def __enter__(self) -> "LockService":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
