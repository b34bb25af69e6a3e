"""Tests for the advisory directory lock."""

import json
import os
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from sdkmigrate.core.errors import LockAcquisitionError
from sdkmigrate.core.orchestrator.lock import LOCK_FILE_NAME, LockService


# ── Fixtures ──────────────────────────────────────────────────────────────


def _write_lock(directory, pid, acquired_at=None):
    info = {
        "pid": pid,
        "process_name": "sdkmigrate",
        "acquired_at": (acquired_at or datetime.utcnow()).isoformat(),
        "machine": "build-agent-7",
        "user": "ci",
    }
    (directory / LOCK_FILE_NAME).write_text(json.dumps(info))
    return info


# ── Tests: Acquire / release ─────────────────────────────────────────────


class TestLockLifecycle:
    """Acquire, inspect and release."""

    def test_acquire_writes_owner_info(self, tmp_path):
        lock = LockService(str(tmp_path))
        lock.acquire()

        info = json.loads((tmp_path / LOCK_FILE_NAME).read_text())
        assert info["pid"] == os.getpid()
        assert set(info) == {"pid", "process_name", "acquired_at", "machine", "user"}
        assert lock.is_held

        lock.release()
        assert not (tmp_path / LOCK_FILE_NAME).exists()
        assert not lock.is_held

    def test_context_manager(self, tmp_path):
        with LockService(str(tmp_path)) as lock:
            assert lock.is_held
            assert (tmp_path / LOCK_FILE_NAME).exists()
        assert not (tmp_path / LOCK_FILE_NAME).exists()

    def test_release_without_acquire_is_noop(self, tmp_path):
        _write_lock(tmp_path, os.getpid())
        LockService(str(tmp_path)).release()
        assert (tmp_path / LOCK_FILE_NAME).exists()

    def test_release_leaves_foreign_lock(self, tmp_path):
        lock = LockService(str(tmp_path))
        lock.acquire()
        _write_lock(tmp_path, os.getpid() + 1)

        lock.release()

        assert (tmp_path / LOCK_FILE_NAME).exists()
        assert not lock.is_held


# ── Tests: Contention ────────────────────────────────────────────────────


class TestContention:
    """Live locks block; stale ones are taken over."""

    def test_live_lock_raises(self, tmp_path):
        _write_lock(tmp_path, os.getpid())

        with pytest.raises(LockAcquisitionError) as excinfo:
            LockService(str(tmp_path)).acquire()

        assert excinfo.value.owner["machine"] == "build-agent-7"
        assert "Another migration may be in progress" in str(excinfo.value)

    def test_dead_process_is_stale(self, tmp_path):
        _write_lock(tmp_path, 424242)

        with patch("sdkmigrate.core.orchestrator.lock._process_alive", return_value=False):
            lock = LockService(str(tmp_path))
            lock.acquire()

        info = json.loads((tmp_path / LOCK_FILE_NAME).read_text())
        assert info["pid"] == os.getpid()
        lock.release()

    def test_old_lock_is_stale(self, tmp_path):
        _write_lock(tmp_path, os.getpid(), datetime.utcnow() - timedelta(hours=30))

        lock = LockService(str(tmp_path), stale_hours=24)
        lock.acquire()

        assert lock.is_held
        lock.release()

    def test_recent_lock_within_threshold_is_live(self, tmp_path):
        info = _write_lock(tmp_path, os.getpid(), datetime.utcnow() - timedelta(hours=2))
        assert LockService(str(tmp_path), stale_hours=24).is_stale(info) is False

    @pytest.mark.parametrize("info", [
        {},
        {"pid": "1234"},
        {"pid": os.getpid(), "acquired_at": "yesterday"},
    ])
    def test_malformed_info_is_stale(self, tmp_path, info):
        assert LockService(str(tmp_path)).is_stale(info) is True

    def test_corrupt_lock_file_is_replaced(self, tmp_path):
        (tmp_path / LOCK_FILE_NAME).write_text("{not json")

        lock = LockService(str(tmp_path))
        assert lock.read() == {}
        lock.acquire()

        assert lock.is_held
        lock.release()
